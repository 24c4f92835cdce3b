"""Error taxonomy for contact synchronization.

Three families matter to callers:

- :class:`PreconditionFailure`: the operation cannot start (for example no
  identity token has been enrolled).  Fatal for that call; never retried.
- :class:`RemoteFailure`: a transport or HTTP-level failure while talking to
  the contacts API.  Non-fatal for the engine: the affected record stays dirty
  and is retried on the next reconciliation pass.
- :class:`LocalStoreFailure`: the local record store rejected an operation.
  Treated as unexpected and always propagated.
"""

from __future__ import annotations


class ContactSyncError(RuntimeError):
    """Base contacts sync error."""


class PreconditionFailure(ContactSyncError):
    """Raised when an operation's preconditions are not met."""


class MissingIdentityTokenError(PreconditionFailure):
    """Raised when a remote operation is attempted before enrollment."""

    def __init__(self, message: str = "No identity token; enroll this device first") -> None:
        super().__init__(message)


class RemoteFailure(ContactSyncError):
    """Raised when a contacts API request fails.

    Attributes:
        status_code: HTTP status of the failed response, or ``None`` when the
            request never produced one (connection errors, timeouts).
        message: Sanitized, length-bounded error description.
    """

    def __init__(self, *, status_code: int | None, message: str) -> None:
        self.status_code = status_code
        self.message = message
        if status_code is None:
            super().__init__(f"Contacts API request failed: {message}")
        else:
            super().__init__(f"Contacts API request failed ({status_code}): {message}")


class LocalStoreFailure(ContactSyncError):
    """Raised when the local contact store cannot complete an operation."""
