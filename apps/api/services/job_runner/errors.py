from __future__ import annotations


class DeployerError(RuntimeError):
    pass


class ValidationError(DeployerError):
    """Malformed trigger payload; rejected before anything is scheduled."""


class AuthenticationError(DeployerError):
    """Webhook signature mismatch."""


class ConflictError(DeployerError):
    """The workspace for a repository/branch is held by another job."""


class ExecutionError(DeployerError):
    """Fetch, build or teardown failure inside a job."""


class DeliveryError(DeployerError):
    """A callback sink could not deliver its notification."""
