"""
Typed failures raised at the record store boundary.

Callers decide retry / enqueue / surface by matching on the class (or on
`kind`), never by inspecting message text.
"""

from enum import Enum


class RemoteErrorKind(str, Enum):
    NETWORK = "network"
    AUTH = "auth"
    NOT_FOUND = "not_found"
    STALE_ADDRESS = "stale_address"
    VALIDATION = "validation"
    CONFIGURATION = "configuration"


class RemoteStoreError(Exception):
    """Base class for record store failures."""

    kind: RemoteErrorKind = RemoteErrorKind.NETWORK
    recoverable: bool = True

    def __init__(
        self,
        message: str,
        operation: str | None = None,
        status_code: int | None = None,
        response_data: dict | None = None,
    ):
        super().__init__(message)
        self.operation = operation
        self.status_code = status_code
        self.response_data = response_data or {}

    @property
    def is_transient(self) -> bool:
        """Transient failures are retried later (reads) or queued (writes)."""
        return self.kind in (RemoteErrorKind.NETWORK, RemoteErrorKind.STALE_ADDRESS)


class RemoteNetworkError(RemoteStoreError):
    """Timeout, refused connection, rate limit or upstream 5xx."""

    kind = RemoteErrorKind.NETWORK


class RemoteAuthError(RemoteStoreError):
    """Credentials rejected by the provider."""

    kind = RemoteErrorKind.AUTH
    recoverable = False


class RecordNotFoundError(RemoteStoreError):
    """Identity could not be re-resolved to a row."""

    kind = RemoteErrorKind.NOT_FOUND
    recoverable = False


class StaleAddressError(RemoteStoreError):
    """Identity resolved, but the row address is unusable for a write."""

    kind = RemoteErrorKind.STALE_ADDRESS


class RemoteValidationError(RemoteStoreError):
    """The provider rejected the payload."""

    kind = RemoteErrorKind.VALIDATION
    recoverable = False


class RemoteConfigurationError(RemoteStoreError):
    """Spreadsheet id or credentials missing or malformed."""

    kind = RemoteErrorKind.CONFIGURATION
    recoverable = False
