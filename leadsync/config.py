import json
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"

# Default column letters of the MASTER DATA worksheet
DEFAULT_COLUMN_MAPPINGS: dict[str, str] = {
    "trip_id": "A",
    "created_at": "B",
    "owner": "C",
    "status": "D",
    "traveller_name": "E",
    "travel_date": "G",
    "travel_state": "H",
    "destination": "I",
    "remarks": "K",
    "nights": "L",
    "pax": "M",
    "hotel_category": "N",
    "meal_plan": "O",
    "phone": "P",
    "email": "Q",
}


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    debug: bool = False
    LOG_LEVEL: str = "INFO"
    TIMEZONE: str = "UTC"

    # Durable store (Redis)
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_MAX_CONNECTIONS: int = 10
    REDIS_SOCKET_TIMEOUT: float = 5.0
    STORE_NAMESPACE: str = "leadsync"

    # Google Sheets record store
    SHEETS_SPREADSHEET_ID: str | None = None
    SHEETS_API_KEY: str | None = None
    SHEETS_SERVICE_ACCOUNT_JSON: str | None = None
    SHEETS_LEADS_WORKSHEET: str = "MASTER DATA"
    SHEETS_USERS_WORKSHEET: str = "BACKEND SHEET"
    SHEETS_COLUMN_MAPPINGS: str | None = None
    SHEETS_REQUEST_TIMEOUT: float = 20.0
    SHEETS_READ_CACHE_SECONDS: int = 300

    ENCRYPTION_KEY: str | None = None

    # =================================================================
    # SESSION LIFETIMES
    # =================================================================
    ACCESS_TOKEN_TTL_MINUTES: int = 45
    REFRESH_TOKEN_TTL_DAYS: int = 120
    ACCESS_REFRESH_GRACE_MINUTES: int = 5
    REFRESH_ROTATE_WINDOW_DAYS: int = 15
    SESSION_IDLE_TTL_DAYS: int = 30
    MIN_REFRESH_DELAY_SECONDS: int = 30

    # Sync
    SYNC_INTERVAL_MINUTES: int = 5
    SYNC_FETCH_TIMEOUT_SECONDS: float = 30.0
    RUN_SCHEDULERS: bool = True

    # Notifications
    NOTIFICATION_DEDUP_WINDOW_HOURS: int = 4
    DELIVERY_LOG_LIMIT: int = 200
    NEW_LEAD_SUMMARY_THRESHOLD: int = 3
    PUSH_RELAY_URL: str | None = None

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def column_mappings(self) -> dict[str, str]:
        """
        Column letters per lead field.

        SHEETS_COLUMN_MAPPINGS may override any subset of the defaults, e.g.
        '{"status": "F", "remarks": "L"}'.
        """
        mappings = dict(DEFAULT_COLUMN_MAPPINGS)
        if self.SHEETS_COLUMN_MAPPINGS:
            overrides = json.loads(self.SHEETS_COLUMN_MAPPINGS)
            mappings.update({k: str(v).strip().upper() for k, v in overrides.items() if v})
        return mappings

    def sheets_configured(self) -> bool:
        """True when a spreadsheet id and at least one credential are present."""
        return bool(
            self.SHEETS_SPREADSHEET_ID
            and (self.SHEETS_SERVICE_ACCOUNT_JSON or self.SHEETS_API_KEY)
        )


settings = Settings()
