"""
Error taxonomy for load balancer reconciliation and sweeping.

Remote errors are classified by the client into transient, not-found,
permission and validation failures. Local errors describe declared-state
problems and reconciliation outcomes.
"""

from typing import Any, List, Optional, Tuple


class SlbError(Exception):
    """Base class for all errors raised by this package."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class RemoteCallError(SlbError):
    """A remote control plane call failed."""

    def __init__(
        self,
        message: str,
        code: str = "",
        request_id: Optional[str] = None,
    ):
        self.code = code
        self.request_id = request_id
        super().__init__(message)

    def __str__(self) -> str:
        if self.code:
            return f"[{self.code}] {self.message}"
        return self.message


class TransientError(RemoteCallError):
    """Network failure, timeout, throttling or service unavailability."""


class NotFoundError(RemoteCallError):
    """The remote side reports no such resource."""


class PermissionDeniedError(RemoteCallError):
    """The credentials are not allowed to perform the call."""


class RemoteValidationError(RemoteCallError):
    """The remote side rejected the request parameters."""


class RetryExhaustedError(RemoteCallError):
    """A transient error persisted through every allowed attempt."""

    def __init__(self, operation: str, attempts: int, last_error: RemoteCallError):
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"{operation} failed after {attempts} attempts: {last_error}",
            code=last_error.code,
            request_id=last_error.request_id,
        )


class InvalidSpecError(SlbError):
    """The declared state violates the schema or a joint field constraint."""


class ImmutableFieldChangedError(SlbError):
    """
    A declared change touches fields that cannot be updated in place.

    Attributes:
        changes: List of (field, old, new) tuples for every offending field.
    """

    def __init__(self, changes: List[Tuple[str, Any, Any]]):
        self.changes = changes
        self.fields = [change[0] for change in changes]
        details = ", ".join(
            f"{name}: {old!r} -> {new!r}" for name, old, new in changes
        )
        super().__init__(
            f"Cannot update immutable field(s) {', '.join(self.fields)} "
            f"({details}); the load balancer must be recreated"
        )


class CreateFailedError(SlbError):
    """Create did not reach a confirmed Present state."""

    def __init__(self, message: str, load_balancer_id: Optional[str] = None):
        self.load_balancer_id = load_balancer_id
        super().__init__(message)


class UpdateFailedError(SlbError):
    """An update was issued but the re-read never matched the declared state."""


class DeleteFailedError(SlbError):
    """Delete failed with anything other than NotFound."""

    def __init__(self, load_balancer_id: str, cause: Exception):
        self.load_balancer_id = load_balancer_id
        self.cause = cause
        super().__init__(f"Failed to delete load balancer {load_balancer_id}: {cause}")


class OperationCancelledError(SlbError):
    """The caller's cancellation token was set before a remote call."""


class SweepListingError(SlbError):
    """Listing failed, so no ownership decision can be made safely."""

    def __init__(self, region: str, cause: Exception):
        self.region = region
        self.cause = cause
        super().__init__(f"Error retrieving SLBs in region {region}: {cause}")
