"""
Google Sheets record store.

Exposes the adapter and the typed errors other layers match on.
"""

from leadsync.services.sheets.errors import (
    RecordNotFoundError,
    RemoteAuthError,
    RemoteConfigurationError,
    RemoteErrorKind,
    RemoteNetworkError,
    RemoteStoreError,
    RemoteValidationError,
    StaleAddressError,
)
from leadsync.services.sheets.google_sheets_client import GoogleSheetsStore

__all__ = [
    "GoogleSheetsStore",
    "RecordNotFoundError",
    "RemoteAuthError",
    "RemoteConfigurationError",
    "RemoteErrorKind",
    "RemoteNetworkError",
    "RemoteStoreError",
    "RemoteValidationError",
    "StaleAddressError",
]
