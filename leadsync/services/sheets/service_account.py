"""
Service-account access tokens for the Sheets API (OAuth 2.0 JWT bearer grant).
"""

import json
import time
from dataclasses import dataclass

import httpx
import jwt

from leadsync.infrastructure.observability.logging import get_logger
from leadsync.services.sheets.errors import (
    RemoteAuthError,
    RemoteConfigurationError,
    RemoteNetworkError,
)

logger = get_logger(__name__)

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
SHEETS_SCOPE = "https://www.googleapis.com/auth/spreadsheets"
ASSERTION_LIFETIME_SECONDS = 3600
EXPIRY_SAFETY_SECONDS = 60


@dataclass(slots=True)
class ServiceAccount:
    client_email: str
    private_key: str
    private_key_id: str | None = None
    token_uri: str = GOOGLE_TOKEN_URL


def parse_service_account(raw: str | None) -> ServiceAccount:
    """
    Parse service account JSON.

    Raises:
        RemoteConfigurationError: If the JSON is missing, malformed or lacks a key
    """
    if not raw:
        raise RemoteConfigurationError("Service account JSON not configured", operation="auth")
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise RemoteConfigurationError(f"Service account JSON invalid: {e}", operation="auth") from e

    if not data.get("client_email") or not data.get("private_key"):
        raise RemoteConfigurationError(
            "Service account JSON missing client_email or private_key", operation="auth"
        )

    return ServiceAccount(
        client_email=data["client_email"],
        # keys pasted through env files often carry escaped newlines
        private_key=str(data["private_key"]).replace("\\n", "\n"),
        private_key_id=data.get("private_key_id"),
        token_uri=data.get("token_uri") or GOOGLE_TOKEN_URL,
    )


class ServiceAccountTokenProvider:
    """Mints and caches short-lived access tokens."""

    def __init__(self, account: ServiceAccount, client: httpx.AsyncClient):
        self.account = account
        self._client = client
        self._access_token: str | None = None
        self._expires_at: float = 0.0

    def invalidate(self) -> None:
        self._access_token = None
        self._expires_at = 0.0

    def _build_assertion(self, now: int) -> str:
        headers = {"kid": self.account.private_key_id} if self.account.private_key_id else None
        payload = {
            "iss": self.account.client_email,
            "scope": SHEETS_SCOPE,
            "aud": self.account.token_uri,
            "iat": now,
            "exp": now + ASSERTION_LIFETIME_SECONDS,
        }
        try:
            return jwt.encode(payload, self.account.private_key, algorithm="RS256", headers=headers)
        except (ValueError, TypeError, jwt.PyJWTError) as e:
            raise RemoteConfigurationError(
                f"Service account private key unusable: {e}", operation="auth"
            ) from e

    async def get_token(self) -> str:
        if self._access_token and time.time() < self._expires_at:
            return self._access_token

        now = int(time.time())
        assertion = self._build_assertion(now)

        try:
            response = await self._client.post(
                self.account.token_uri,
                data={
                    "grant_type": "urn:ietf:params:oauth:grant-type:jwt-bearer",
                    "assertion": assertion,
                },
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
        except httpx.RequestError as e:
            raise RemoteNetworkError(
                f"Token request failed: {type(e).__name__}: {e}", operation="auth"
            ) from e

        if response.status_code >= 500 or response.status_code == 429:
            raise RemoteNetworkError(
                f"Token endpoint unavailable ({response.status_code})",
                operation="auth",
                status_code=response.status_code,
            )
        if response.status_code != 200:
            raise RemoteAuthError(
                f"Service account token rejected ({response.status_code})",
                operation="auth",
                status_code=response.status_code,
                response_data=_safe_json(response),
            )

        data = response.json()
        self._access_token = data["access_token"]
        expires_in = int(data.get("expires_in", ASSERTION_LIFETIME_SECONDS))
        self._expires_at = time.time() + max(expires_in - EXPIRY_SAFETY_SECONDS, 0)

        logger.info(
            "Service account token minted",
            client_email=self.account.client_email,
            expires_in=expires_in,
        )
        return self._access_token


def _safe_json(response: httpx.Response) -> dict:
    try:
        data = response.json()
        return data if isinstance(data, dict) else {"body": data}
    except ValueError:
        return {"body": response.text[:200]}
