"""Build error hierarchy."""

from __future__ import annotations

from datetime import timedelta


def _seconds(timeout: timedelta | float) -> float:
    if isinstance(timeout, timedelta):
        return timeout.total_seconds()
    return float(timeout)


class BuildError(Exception):
    """Base class for all build failures."""


# -- Contract violations --


class ContractViolation(BuildError):
    """A step found the build state in a shape it should never have."""


class MissingKeyError(ContractViolation):
    """A context key was absent or held a value of the wrong type."""

    def __init__(self, key: str, expected: type | None = None) -> None:
        self.key = key
        self.expected = expected
        if expected is None:
            msg = f"context key '{key}' is not set"
        else:
            msg = f"context key '{key}' is not a {expected.__name__}"
        super().__init__(msg)


class TemplateLookupInconsistencyError(ContractViolation):
    """The template job succeeded but the template cannot be listed."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"template '{name}' was reported created but could not be found")


# -- Waiting on remote operations --


class WaitError(BuildError):
    """Base class for async job and resource state waits."""


class WaitCancelledError(WaitError):
    """The wait was interrupted by a cancellation request."""

    def __init__(self, subject: str) -> None:
        self.subject = subject
        super().__init__(f"cancelled while waiting for {subject}")


class JobError(WaitError):
    """An async job did not complete successfully."""

    def __init__(self, job_id: str, message: str) -> None:
        self.job_id = job_id
        super().__init__(message)


class JobFailedError(JobError):
    def __init__(self, job_id: str, result_code: int) -> None:
        self.result_code = result_code
        super().__init__(job_id, f"async job {job_id} failed with result code {result_code}")


class JobTimeoutError(JobError):
    def __init__(self, job_id: str, timeout: timedelta | float) -> None:
        self.timeout = timeout
        super().__init__(job_id, f"timeout after {_seconds(timeout):g}s waiting for async job {job_id}")


class JobQueryError(JobError):
    def __init__(self, job_id: str, cause: Exception) -> None:
        self.cause = cause
        super().__init__(job_id, f"unable to query async job {job_id}: {cause}")


class StateTimeoutError(WaitError):
    def __init__(self, instance_id: str, state: str, timeout: timedelta | float) -> None:
        self.instance_id = instance_id
        self.state = state
        self.timeout = timeout
        super().__init__(
            f"timeout after {_seconds(timeout):g}s waiting for virtual machine "
            f"{instance_id} to become {state}"
        )


class StateQueryError(WaitError):
    def __init__(self, instance_id: str, cause: Exception) -> None:
        self.instance_id = instance_id
        self.cause = cause
        super().__init__(f"unable to query virtual machine {instance_id}: {cause}")


# -- Step failures --


class StepError(BuildError):
    """A step could not complete its remote operation."""

    def __init__(self, message: str, *, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.__cause__ = cause


class SSHKeyCreationError(StepError):
    pass


class InstanceDeployError(StepError):
    pass


class InstanceNotReadyError(StepError):
    pass


class ProvisionError(StepError):
    pass


class IsoDetachError(StepError):
    pass


class InstanceStopError(StepError):
    pass


class TemplateCreationError(StepError):
    pass


class BuildCancelledError(BuildError):
    """The build was cancelled before it produced an artifact."""
