"""Exception hierarchy for deploy, login and reconciliation failures."""


class DeployError(Exception):
    """Base class for every failure surfaced to the caller as a result."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigurationError(DeployError):
    """Contradictory or missing settings.  Raised before any network call."""


class AuthenticationError(DeployError):
    """Token acquisition failed.  Not retried automatically."""


class ReconciliationError(DeployError):
    """Remote lookup or rename left the registry in an unexpected state."""


class RemoteCallError(DeployError):
    """The Fabric API answered with a non-success status code."""

    def __init__(self, status_code: int, body: str, action: str = "Request"):
        self.status_code = status_code
        self.body = body
        super().__init__(f"{action} failed ({status_code}): {body}")


class OperationFailedError(DeployError):
    """A long-running operation reached the Failed state."""


class OperationTimeoutError(DeployError):
    """A long-running operation did not finish within the poll budget."""


def redact(message: str, *secrets) -> str:
    """Replace every non-empty secret value in *message* with asterisks."""
    for secret in secrets:
        if secret:
            message = message.replace(secret, "***")
    return message
