from __future__ import annotations


class PatcherError(Exception):
    """Base class for errors raised while reconciling a namespace."""


class NotFoundError(PatcherError):
    """The requested object does not exist; drives the create path."""


class ClusterAccessError(PatcherError):
    """A Kubernetes API call failed for a reason other than not-found.

    Carries the HTTP ``status`` and ``reason`` of the underlying
    ``ApiException`` (both ``None`` when the failure never reached the API).
    """

    def __init__(self, message: str, status: int | None = None, reason: str | None = None) -> None:
        super().__init__(message)
        self.status = status
        self.reason = reason


class ValidationFailure(PatcherError):
    """A managed object exists but does not match its desired state.

    Raised instead of repairing when force-overwrite is disabled; the object
    is left untouched.
    """

    def __init__(self, kind: str, namespace: str, name: str, reason: str) -> None:
        super().__init__(f"[{namespace}] {kind} {name} is not valid: {reason}")
        self.kind = kind
        self.namespace = namespace
        self.name = name
        self.reason = reason


class UnmanagedResourceError(ValidationFailure):
    """The object lacks the managed-by marker and managed-only mode is on."""

    def __init__(self, kind: str, namespace: str, name: str) -> None:
        super().__init__(kind, namespace, name, "present but not managed by imagepullsecret-patcher")
