"""Exception hierarchy for Droplet Pilot."""
from typing import Optional

from .models import DeploymentStage


class DropletPilotError(Exception):
    """Base class for all Droplet Pilot errors."""


class ConfigError(DropletPilotError):
    """Configuration is missing or invalid."""


class SSLValidationError(ConfigError):
    """SSL material was provided but failed validation."""


class RetryExhausted(DropletPilotError):
    """An operation kept failing after every allowed attempt."""

    def __init__(self, description: str, attempts: int, last_error: Optional[BaseException] = None):
        self.description = description
        self.attempts = attempts
        self.last_error = last_error
        message = f"{description} failed after {attempts} attempts"
        if last_error is not None:
            message += f": {last_error}"
        super().__init__(message)


class RegistryApiError(DropletPilotError):
    """The registry HTTP API could not be reached or answered with an error."""


class ResponseDecodeError(RegistryApiError):
    """A registry API response body is not valid JSON of the expected shape."""


class DeploymentError(DropletPilotError):
    """Fatal failure of a deployment stage.

    ``stage`` is the state the orchestrator was trying to reach; it is filled in
    by the orchestrator when the error is raised from a capability.
    """

    def __init__(self, reason: str, guidance: str = "", stage: Optional[DeploymentStage] = None):
        super().__init__(reason)
        self.reason = reason
        self.guidance = guidance
        self.stage = stage


class ConnectivityError(DeploymentError):
    """The registry could not be reached before any mutating action."""


class FatalAuthError(DeploymentError):
    """Registry login was rejected; nothing downstream can succeed."""


class PullFailed(DeploymentError):
    pass


class PushFailed(DeploymentError):
    pass


class CleanupFailed(DeploymentError):
    """Stale staging containers survived removal."""


class StartFailed(DeploymentError):
    """The runtime refused to create or start a container."""

    def __init__(self, reason: str, output: str = "", **kwargs):
        super().__init__(reason, **kwargs)
        self.output = output


class HealthCheckTimeout(DeploymentError):
    pass


class RollbackFailed(DeploymentError):
    pass
