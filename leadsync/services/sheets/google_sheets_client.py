"""
Google Sheets record store adapter.

Reads the MASTER DATA and BACKEND SHEET worksheets, appends new leads and
applies field updates by identity. Row positions shift whenever someone
inserts or sorts rows, so every update re-reads the sheet and re-resolves the
identity to a row before writing; the caller's address is only a hint.
"""

import asyncio
import time
from typing import Any
from urllib.parse import quote

import httpx

from leadsync.config import Settings, settings
from leadsync.infrastructure.observability.logging import get_logger
from leadsync.models.domain.lead_domain import Lead, LeadIdentity, SheetUser
from leadsync.services.sheets.errors import (
    RecordNotFoundError,
    RemoteAuthError,
    RemoteConfigurationError,
    RemoteNetworkError,
    RemoteValidationError,
    StaleAddressError,
)
from leadsync.services.sheets.row_mapping import (
    HEADER_ROWS,
    find_by_identity,
    lead_to_row,
    rows_to_leads,
    rows_to_users,
    update_ranges,
)
from leadsync.services.sheets.service_account import (
    ServiceAccountTokenProvider,
    parse_service_account,
)

logger = get_logger(__name__)

SHEETS_API_BASE_URL = "https://sheets.googleapis.com/v4/spreadsheets"

MAX_RETRIES = 3
BACKOFF_FACTOR = 1
RETRY_STATUS_CODES = {429, 500, 502, 503, 504}


def quote_worksheet(worksheet: str) -> str:
    """A1 notation sheet name: 'MASTER DATA' -> \"'MASTER DATA'\"."""
    return "'" + worksheet.replace("'", "''") + "'"


class GoogleSheetsStore:
    """
    Remote record store backed by one spreadsheet.

    Reads may use an API key; writes need a service account.
    """

    def __init__(self, config: Settings = settings, client: httpx.AsyncClient | None = None):
        self.config = config
        self.mappings = config.column_mappings()
        self._client = client or self._create_client()
        self._token_provider: ServiceAccountTokenProvider | None = None
        self._leads_cache: tuple[float, list[Lead]] | None = None

    def _create_client(self) -> httpx.AsyncClient:
        timeout = httpx.Timeout(self.config.SHEETS_REQUEST_TIMEOUT)
        limits = httpx.Limits(max_keepalive_connections=10, max_connections=20)
        return httpx.AsyncClient(timeout=timeout, limits=limits)

    async def close(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Auth and transport
    # ------------------------------------------------------------------

    def _spreadsheet_url(self, suffix: str = "") -> str:
        spreadsheet_id = self.config.SHEETS_SPREADSHEET_ID
        if not spreadsheet_id:
            raise RemoteConfigurationError(
                "Spreadsheet id not configured (set SHEETS_SPREADSHEET_ID)",
                operation="configure",
            )
        return f"{SHEETS_API_BASE_URL}/{spreadsheet_id}{suffix}"

    def _get_token_provider(self) -> ServiceAccountTokenProvider | None:
        if self._token_provider is None and self.config.SHEETS_SERVICE_ACCOUNT_JSON:
            account = parse_service_account(self.config.SHEETS_SERVICE_ACCOUNT_JSON)
            self._token_provider = ServiceAccountTokenProvider(account, self._client)
        return self._token_provider

    async def _auth(self, write: bool) -> tuple[dict[str, str], dict[str, str]]:
        """Headers and query params authenticating one request."""
        provider = self._get_token_provider()
        if provider is not None:
            token = await provider.get_token()
            return {"Authorization": f"Bearer {token}", "Accept": "application/json"}, {}

        if write:
            raise RemoteConfigurationError(
                "Writes need a service account (set SHEETS_SERVICE_ACCOUNT_JSON)",
                operation="configure",
            )
        if self.config.SHEETS_API_KEY:
            return {"Accept": "application/json"}, {"key": self.config.SHEETS_API_KEY}

        raise RemoteConfigurationError(
            "No Sheets credentials configured (SHEETS_API_KEY or SHEETS_SERVICE_ACCOUNT_JSON)",
            operation="configure",
        )

    async def _request_with_retry(
        self, method: str, url: str, operation: str, write: bool = False, **kwargs
    ) -> dict[str, Any]:
        """Execute an authenticated request with retry and backoff."""
        headers, params = await self._auth(write)
        params.update(kwargs.pop("params", {}) or {})

        for attempt in range(1, MAX_RETRIES + 1):
            try:
                response = await self._client.request(
                    method, url, headers=headers, params=params, **kwargs
                )
            except httpx.RequestError as e:
                if attempt >= MAX_RETRIES:
                    raise RemoteNetworkError(
                        f"Sheets {operation} failed: {type(e).__name__}: {e}",
                        operation=operation,
                    ) from e
                backoff = BACKOFF_FACTOR * (2 ** (attempt - 1))
                logger.debug(
                    "Sheets API request error, retrying",
                    operation=operation,
                    attempt=attempt,
                    error=str(e),
                    backoff_seconds=backoff,
                )
                await asyncio.sleep(backoff)
                continue

            if response.status_code in RETRY_STATUS_CODES and attempt < MAX_RETRIES:
                backoff = BACKOFF_FACTOR * (2 ** (attempt - 1))
                logger.debug(
                    "Sheets API retrying request",
                    operation=operation,
                    attempt=attempt,
                    status_code=response.status_code,
                    backoff_seconds=backoff,
                )
                await asyncio.sleep(backoff)
                continue

            return self._handle_api_response(response, operation)

        raise RuntimeError("Sheets API retry loop exhausted")

    def _handle_api_response(self, response: httpx.Response, operation: str) -> dict[str, Any]:
        """
        Parse a Sheets API response or raise the matching typed error.

        Raises:
            RemoteNetworkError: 429 or 5xx after retries
            RemoteAuthError: 401 / 403
            RemoteConfigurationError: 404 (spreadsheet or worksheet missing)
            RemoteValidationError: any other rejection
        """
        if response.is_success:
            try:
                return response.json() if response.text else {}
            except ValueError as e:
                raise RemoteValidationError(
                    f"Invalid Sheets response format: {e}", operation=operation
                ) from e

        try:
            error_data = response.json() if response.text else {}
        except ValueError:
            error_data = {"body": response.text[:200] if response.text else ""}
        message = (error_data.get("error") or {}).get("message") or f"HTTP {response.status_code}"
        status = response.status_code

        logger.error(
            f"Sheets API {operation} failed",
            status_code=status,
            error_message=message,
        )

        if status in RETRY_STATUS_CODES:
            raise RemoteNetworkError(
                f"Sheets service unavailable: {message}",
                operation=operation,
                status_code=status,
                response_data=error_data,
            )
        if status in (401, 403):
            if self._token_provider is not None:
                self._token_provider.invalidate()
            raise RemoteAuthError(
                f"Sheets access denied: {message}",
                operation=operation,
                status_code=status,
                response_data=error_data,
            )
        if status == 404:
            raise RemoteConfigurationError(
                f"Spreadsheet or worksheet not found: {message}",
                operation=operation,
                status_code=status,
                response_data=error_data,
            )
        raise RemoteValidationError(
            f"Sheets rejected {operation}: {message}",
            operation=operation,
            status_code=status,
            response_data=error_data,
        )

    async def _get_values(self, worksheet: str, operation: str) -> list[list[Any]]:
        sheet_range = quote(f"{quote_worksheet(worksheet)}!A:Z", safe="")
        data = await self._request_with_retry(
            "GET", self._spreadsheet_url(f"/values/{sheet_range}"), operation
        )
        return data.get("values", [])

    # ------------------------------------------------------------------
    # Record store operations
    # ------------------------------------------------------------------

    def clear_cache(self) -> None:
        self._leads_cache = None

    async def fetch_all(self, force_refresh: bool = False) -> list[Lead]:
        """
        All leads in sheet order.

        Served from the in-process read cache for SHEETS_READ_CACHE_SECONDS
        unless force_refresh is set.
        """
        if not force_refresh and self._leads_cache is not None:
            cached_at, leads = self._leads_cache
            if time.monotonic() - cached_at < self.config.SHEETS_READ_CACHE_SECONDS:
                logger.debug("Serving leads from read cache", count=len(leads))
                return list(leads)

        rows = await self._get_values(self.config.SHEETS_LEADS_WORKSHEET, "fetch_all")
        leads = rows_to_leads(rows, self.mappings)
        self._leads_cache = (time.monotonic(), leads)

        logger.info(
            "Fetched leads",
            row_count=max(len(rows) - HEADER_ROWS, 0),
            lead_count=len(leads),
            forced=force_refresh,
        )
        return list(leads)

    async def fetch_users(self) -> list[SheetUser]:
        rows = await self._get_values(self.config.SHEETS_USERS_WORKSHEET, "fetch_users")
        users = rows_to_users(rows)
        logger.info("Fetched users", user_count=len(users))
        return users

    async def append(self, fields: dict[str, Any]) -> None:
        """Append one lead as a new row."""
        if not str(fields.get("traveller_name") or "").strip():
            raise RemoteValidationError("Traveller name is required", operation="append")
        if not str(fields.get("created_at") or "").strip():
            raise RemoteValidationError("Creation timestamp is required", operation="append")

        worksheet = quote_worksheet(self.config.SHEETS_LEADS_WORKSHEET)
        sheet_range = quote(f"{worksheet}!A:Z", safe="")
        await self._request_with_retry(
            "POST",
            self._spreadsheet_url(f"/values/{sheet_range}:append"),
            "append",
            write=True,
            params={"valueInputOption": "USER_ENTERED", "insertDataOption": "INSERT_ROWS"},
            json={"values": [lead_to_row(fields, self.mappings)]},
        )
        self.clear_cache()
        logger.info("Lead appended", traveller_name=fields.get("traveller_name"))

    async def update_by_identity(
        self,
        identity: LeadIdentity,
        fields: dict[str, Any],
        address_hint: int | None = None,
    ) -> int:
        """
        Write field deltas to the row currently holding the identity.

        Re-applying the same deltas yields the same cells.

        Returns:
            int: The row address that was written

        Raises:
            RecordNotFoundError: Identity no longer present in the sheet
            StaleAddressError: Identity resolved to an unusable row address
            RemoteValidationError: No writable field in the deltas
        """
        if identity.is_empty():
            raise RecordNotFoundError("Lead identity is empty", operation="update")

        leads = await self.fetch_all(force_refresh=True)
        lead = find_by_identity(leads, identity)
        if lead is None:
            raise RecordNotFoundError(
                f"Lead not found: {identity.traveller_name} ({identity.created_at})",
                operation="update",
            )

        row_address = lead.row_address
        if row_address is None or row_address <= HEADER_ROWS:
            raise StaleAddressError(
                f"Resolved row address {row_address} is not writable", operation="update"
            )
        if address_hint is not None and address_hint != row_address:
            logger.info(
                "Row address hint was stale",
                lead_key=identity.key,
                hint=address_hint,
                resolved=row_address,
            )

        data = update_ranges(
            quote_worksheet(self.config.SHEETS_LEADS_WORKSHEET), row_address, fields, self.mappings
        )
        if not data:
            raise RemoteValidationError("No writable fields in update", operation="update")

        await self._request_with_retry(
            "POST",
            self._spreadsheet_url("/values:batchUpdate"),
            "update",
            write=True,
            json={"valueInputOption": "USER_ENTERED", "data": data},
        )
        self.clear_cache()

        logger.info(
            "Lead updated",
            lead_key=identity.key,
            row_address=row_address,
            fields=sorted(fields.keys()),
        )
        return row_address

    def config_snapshot(self) -> dict[str, Any]:
        """Layout in force for writes, recorded alongside queued mutations."""
        return {
            "spreadsheet_id": self.config.SHEETS_SPREADSHEET_ID,
            "worksheet": self.config.SHEETS_LEADS_WORKSHEET,
            "column_mappings": dict(self.mappings),
        }
