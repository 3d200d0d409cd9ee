"""Runtime execution context for the build steps."""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Any

from .errors import BuildError, MissingKeyError

if TYPE_CHECKING:
    from .client import CloudStackClient
    from .host import Hook, Ui

logger = logging.getLogger(__name__)

KEYS: frozenset[str] = frozenset(
    {
        "config",
        "client",
        "ui",
        "hook",
        "ssh_key_name",
        "ssh_private_key",
        "instance_id",
        "instance_ip",
        "template_id",
        "template_name",
        "error",
    }
)


class Context[C]:
    """State shared by every step of a single build run.

    Each canonical key is an attribute that starts out as ``None``; steps fill
    them in with ``put`` and read them back with ``get``, which treats an
    unset key as a broken contract between steps.
    """

    def __init__(
        self,
        config: C,
        client: CloudStackClient,
        ui: Ui,
        *,
        hook: Hook | None = None,
    ) -> None:
        self.config = config
        self.client = client
        self.ui = ui
        self.hook = hook

        self.ssh_key_name: str | None = None
        self.ssh_private_key: str | None = None
        self.instance_id: str | None = None
        self.instance_ip: str | None = None
        self.template_id: str | None = None
        self.template_name: str | None = None
        self.error: BuildError | None = None

        self.cancel_event = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def put(self, key: str, value: Any) -> None:
        if key not in KEYS:
            raise KeyError(f"unknown context key '{key}'")
        logger.debug("Context: %s set", key)
        setattr(self, key, value)

    def get[T](self, key: str, expected: type[T] | None = None) -> T:
        """Return the value for key, raising MissingKeyError if unset or mistyped."""
        value = getattr(self, key, None) if key in KEYS else None
        if value is None:
            raise MissingKeyError(key)
        if expected is not None and not isinstance(value, expected):
            raise MissingKeyError(key, expected)
        return value

    def get_ok(self, key: str) -> tuple[Any, bool]:
        value = getattr(self, key, None) if key in KEYS else None
        return value, value is not None

    def fail(self, error: BuildError) -> None:
        """Record why the build halted; the first recorded error wins."""
        if self.error is None:
            self.error = error
        else:
            logger.debug("Ignoring subsequent error: %s", error)
