"""Builder ABC, builder registration and the CloudStack builder."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any, ClassVar

from pydantic import BaseModel

from .artifact import Artifact
from .client import CloudStackClient
from .config import CloudStackConfig
from .context import Context
from .errors import BuildCancelledError, BuildError
from .host import Host, Ui
from .runner import Runner
from .step import Step
from .steps import (
    CreateSSHKeyPair,
    CreateTemplate,
    DeployVirtualMachine,
    DetachIso,
    Provision,
    StopVirtualMachine,
    VirtualMachineState,
)

logger = logging.getLogger(__name__)

# -- Builder Registry --

_builder_registry: dict[str, type[Builder]] = {}


def builder(name: str):
    """Register a Builder class under a template block name."""

    def decorator(cls):
        _builder_registry[name] = cls
        return cls

    return decorator


def debug_pause(ui: Ui):
    """Return a pause function that waits for the user after each step."""

    def pause(step: Step, ctx: Context) -> None:
        ui.ask(f"Pausing after run of step '{step.name}'. Press enter to continue.")

    return pause


# -- Builder ABC --


class Builder[C: BaseModel](ABC):
    """Prepare a configuration, run the build steps and produce an artifact."""

    builder_id: ClassVar[str]
    config_type: ClassVar[type[BaseModel]]

    def __init__(self, name: str = "") -> None:
        self.name = name or type(self).__name__
        self.config: C | None = None
        self.runner: Runner | None = None

    def prepare(self, *raws: Mapping[str, Any]) -> list[str]:
        """Merge raw configuration mappings (later wins) and validate them."""
        merged: dict[str, Any] = {}
        for raw in raws:
            merged.update(raw)
        logger.debug("Preparing %s '%s'", type(self).__name__, self.name)
        self.config = self.config_type(**merged)  # type: ignore[assignment]
        return []

    @abstractmethod
    def create_client(self) -> CloudStackClient:
        """Construct the API client from the prepared configuration."""

    @abstractmethod
    def steps(self) -> list[Step]:
        """Return the ordered steps for one build."""

    def run(self, host: Host, *, client: CloudStackClient | None = None) -> Artifact:
        """Run the build; raise the recorded error if any step halted."""
        if self.config is None:
            raise BuildError(f"builder '{self.name}' has not been prepared")

        client = client or self.create_client()
        ctx: Context[C] = Context(self.config, client, host.ui, hook=host.hook)

        pause = debug_pause(host.ui) if getattr(self.config, "debug", False) else None
        self.runner = Runner(self.steps(), pause=pause)

        logger.info("Running build '%s'", self.name)
        self.runner.run(ctx)

        if ctx.error is not None:
            raise ctx.error
        if ctx.cancelled:
            raise BuildCancelledError(f"build '{self.name}' was cancelled")

        template_name, ok = ctx.get_ok("template_name")
        if not ok:
            raise BuildError(f"build '{self.name}' finished without recording a template")

        return Artifact(
            builder_id=self.builder_id,
            template_id=ctx.get("template_id", str),
            template_name=template_name,
            client=client,
        )

    def cancel(self) -> None:
        """Cancel a running build and wait for its cleanup to finish."""
        if self.runner is not None:
            logger.info("Cancelling build '%s'", self.name)
            self.runner.cancel()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


@builder("cloudstack")
class CloudStackBuilder(Builder[CloudStackConfig]):
    """Build a CloudStack template from a disposable virtual machine."""

    builder_id = "cloudbake.cloudstack"
    config_type = CloudStackConfig

    def create_client(self) -> CloudStackClient:
        c = self.config
        assert c is not None
        return CloudStackClient(c.api_url, c.api_key.get_secret_value(), c.secret.get_secret_value())

    def steps(self) -> list[Step]:
        assert self.config is not None
        steps: list[Step] = [
            CreateSSHKeyPair(),
            DeployVirtualMachine(),
            VirtualMachineState(),
            Provision(),
        ]
        if self.config.detach_iso:
            steps.append(DetachIso())
        steps += [
            StopVirtualMachine(),
            CreateTemplate(),
        ]
        return steps
