"""Poll remote async jobs and virtual machine state until they settle."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from datetime import timedelta

from .client import AsyncJobResult, CloudStackClient, CloudStackError, JobStatus, VirtualMachine
from .errors import (
    JobFailedError,
    JobQueryError,
    JobTimeoutError,
    StateQueryError,
    StateTimeoutError,
    WaitCancelledError,
    _seconds,
)

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 2.0

Clock = Callable[[], float]


def _pause(cancel: threading.Event | None, delay: float) -> bool:
    """Sleep for delay seconds; return True if cancelled meanwhile."""
    if cancel is None:
        time.sleep(delay)
        return False
    return cancel.wait(delay)


def state_matches(state: str, desired: str) -> bool:
    """Compare virtual machine states the way the API reports them (any case)."""
    return state.lower() == desired.lower()


def wait_for_job(
    client: CloudStackClient,
    job_id: str,
    timeout: timedelta | float,
    *,
    interval: float = DEFAULT_POLL_INTERVAL,
    cancel: threading.Event | None = None,
    clock: Clock = time.monotonic,
) -> AsyncJobResult:
    """Poll an async job until it succeeds, fails or the timeout elapses.

    A result only counts when its query returned before the deadline; a job
    that settles later is reported as timed out. Query errors are not retried;
    they surface as JobQueryError. When a cancel event is given it is checked
    on every tick.
    """
    deadline = clock() + _seconds(timeout)
    logger.debug("Waiting up to %gs for async job %s", _seconds(timeout), job_id)

    while True:
        if cancel is not None and cancel.is_set():
            raise WaitCancelledError(f"async job {job_id}")

        try:
            result = client.query_async_job_result(job_id)
        except CloudStackError as exc:
            raise JobQueryError(job_id, exc) from exc

        remaining = deadline - clock()
        if remaining <= 0:
            raise JobTimeoutError(job_id, timeout)

        if result.status is JobStatus.SUCCEEDED:
            logger.debug("Async job %s succeeded", job_id)
            return result
        if result.status is JobStatus.FAILED:
            raise JobFailedError(job_id, result.result_code)

        logger.debug("Async job %s still pending", job_id)
        if _pause(cancel, min(interval, remaining)):
            raise WaitCancelledError(f"async job {job_id}")


def wait_for_state(
    client: CloudStackClient,
    instance_id: str,
    desired: str,
    timeout: timedelta | float,
    *,
    interval: float = DEFAULT_POLL_INTERVAL,
    cancel: threading.Event | None = None,
    clock: Clock = time.monotonic,
) -> VirtualMachine:
    """Poll a virtual machine until it reports the desired state before the deadline."""
    deadline = clock() + _seconds(timeout)
    logger.debug("Waiting up to %gs for %s to become %s", _seconds(timeout), instance_id, desired)

    while True:
        if cancel is not None and cancel.is_set():
            raise WaitCancelledError(f"virtual machine {instance_id}")

        try:
            machines = client.list_virtual_machines(instance_id)
        except CloudStackError as exc:
            raise StateQueryError(instance_id, exc) from exc

        remaining = deadline - clock()
        if remaining <= 0:
            raise StateTimeoutError(instance_id, desired, timeout)

        if machines and state_matches(machines[0].state, desired):
            return machines[0]

        logger.debug(
            "Virtual machine %s is %s", instance_id, machines[0].state if machines else "not listed"
        )
        if _pause(cancel, min(interval, remaining)):
            raise WaitCancelledError(f"virtual machine {instance_id}")
