"""Step base class and step outcomes."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from enum import Enum

from .context import Context
from .errors import BuildError

logger = logging.getLogger(__name__)


class StepAction(Enum):
    CONTINUE = "continue"
    HALT = "halt"


class Step(ABC):
    """One unit of work in a build.

    ``run`` is called at most once. ``cleanup`` is called once after ``run``
    whenever ``run`` was reached, and must undo only what this instance
    created.
    """

    @property
    def name(self) -> str:
        return type(self).__name__

    @abstractmethod
    def run(self, ctx: Context) -> StepAction:
        """Perform the step and say whether the build may continue."""

    def cleanup(self, ctx: Context) -> None:  # noqa: B027
        """Undo whatever run created (nothing by default)."""

    def halt(self, ctx: Context, error: BuildError) -> StepAction:
        """Record error, report it to the user and stop the build."""
        ctx.fail(error)
        ctx.ui.error(str(error))
        return StepAction.HALT

    def __repr__(self) -> str:
        return f"{self.name}()"
