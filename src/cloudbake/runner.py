"""Execute steps in order and unwind them in reverse."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable

from .context import Context
from .errors import ContractViolation
from .step import Step, StepAction

logger = logging.getLogger(__name__)

PauseFn = Callable[[Step, Context], None]


class Runner:
    """Run a fixed sequence of steps against one context.

    Steps run strictly in order until one halts or the run is cancelled. Every
    step whose ``run`` was invoked is then cleaned up, last-run-first. With a
    ``pause`` function (debug mode) the runner calls it after each step.
    """

    def __init__(self, steps: Iterable[Step], *, pause: PauseFn | None = None) -> None:
        self.steps = list(steps)
        self.pause = pause
        self._lock = threading.Lock()
        self._ctx: Context | None = None
        self._cancelled = threading.Event()
        self._done = threading.Event()
        self._done.set()

    def run(self, ctx: Context) -> None:
        with self._lock:
            if self._ctx is not None:
                raise RuntimeError("runner is already running")
            self._ctx = ctx
            self._done.clear()
            if self._cancelled.is_set():
                ctx.cancel_event.set()

        ran: list[Step] = []
        try:
            for step in self.steps:
                if ctx.cancelled:
                    logger.info("Build cancelled; skipping %s", step.name)
                    break
                ran.append(step)
                action = self._run_step(step, ctx)
                if self.pause is not None:
                    self.pause(step, ctx)
                if action is StepAction.HALT:
                    logger.debug("%s halted the build", step.name)
                    break
        finally:
            for step in reversed(ran):
                self._cleanup_step(step, ctx)
            with self._lock:
                self._ctx = None
                self._done.set()

    def cancel(self, *, wait: bool = True) -> None:
        """Ask the running step to stop and, optionally, wait for the unwind."""
        logger.info("Cancelling the step runner...")
        with self._lock:
            self._cancelled.set()
            ctx = self._ctx
            if ctx is None:
                return
            ctx.cancel_event.set()
        if wait:
            self._done.wait()

    def _run_step(self, step: Step, ctx: Context) -> StepAction:
        logger.debug("Running %s", step.name)
        try:
            return step.run(ctx)
        except ContractViolation as exc:
            logger.debug("%s violated the build contract: %s", step.name, exc)
            return step.halt(ctx, exc)

    def _cleanup_step(self, step: Step, ctx: Context) -> None:
        logger.debug("Cleaning up %s", step.name)
        try:
            step.cleanup(ctx)
        except Exception as exc:
            logger.warning("Cleanup of %s failed: %s", step.name, exc)
            ctx.ui.error(f"Error cleaning up {step.name}: {exc}. Manual cleanup may be required.")
