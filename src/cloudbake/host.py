"""Host services injected into a build: user output and provisioning hook."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

logger = logging.getLogger("cloudbake.ui")


@runtime_checkable
class Ui(Protocol):
    """User-facing output for a running build."""

    def say(self, message: str) -> None: ...

    def message(self, message: str) -> None: ...

    def error(self, message: str) -> None: ...

    def ask(self, prompt: str) -> str: ...


@runtime_checkable
class Hook(Protocol):
    """Callback invoked by the host at named points of a build."""

    def run(self, name: str, ui: Ui, data: Any) -> None: ...


class LoggingUi:
    """Ui that writes build output to the ``cloudbake.ui`` logger."""

    def __init__(self, prefix: str = "") -> None:
        self.prefix = f"{prefix}: " if prefix else ""

    def say(self, message: str) -> None:
        logger.info("==> %s%s", self.prefix, message)

    def message(self, message: str) -> None:
        logger.info("    %s%s", self.prefix, message)

    def error(self, message: str) -> None:
        logger.error("%s%s", self.prefix, message)

    def ask(self, prompt: str) -> str:
        return input(f"{self.prefix}{prompt} ")


@dataclass
class Host:
    """Services the caller provides to a build."""

    ui: Ui = field(default_factory=LoggingUi)
    hook: Hook | None = None
