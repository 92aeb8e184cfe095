"""
Session manager: owns the signed-in user's access/refresh token lifecycle.

Other components ask `ensure_fresh()` before touching the record store and
receive read-only copies of the session; only this service mutates it.
The session is persisted Fernet-encrypted on every rotation.
"""

import asyncio
import hmac
import secrets
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from pydantic import ValidationError

from leadsync.config import Settings, settings
from leadsync.infrastructure.observability.logging import get_logger
from leadsync.infrastructure.security.encryption_service import (
    EncryptionError,
    decrypt_text,
    encrypt_text,
)
from leadsync.infrastructure.storage.redis_client import StoreError
from leadsync.models.domain.lead_domain import normalize_person
from leadsync.models.domain.session_domain import Session, SessionUser
from leadsync.services.sheets.errors import RemoteStoreError

logger = get_logger(__name__)

SESSION_STORAGE_KEY = "session"
LOGIN_FETCH_RETRIES = 2
LOGIN_RETRY_DELAY_SECONDS = 0.7
ACCESS_TOKEN_BYTES = 48
REFRESH_TOKEN_BYTES = 80

SessionListener = Callable[[Session | None], None]


class SessionServiceError(Exception):
    """Custom exception for session operations."""

    def __init__(self, message: str, operation: str | None = None, recoverable: bool = True):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


def _utcnow() -> datetime:
    return datetime.now(UTC)


def generate_token(num_bytes: int) -> str:
    return secrets.token_urlsafe(num_bytes)


class SessionManager:
    """
    Single owner of the local session.

    A single pending timer refreshes the access token `grace` before it
    expires; the timer is rescheduled after every rotation and touch.
    """

    def __init__(
        self,
        store,
        user_directory,
        config: Settings = settings,
        clock: Callable[[], datetime] = _utcnow,
        token_factory: Callable[[int], str] = generate_token,
        encryption_key: str | None = None,
    ):
        self.store = store
        self.user_directory = user_directory
        self.config = config
        self.clock = clock
        self.token_factory = token_factory
        self.encryption_key = encryption_key or config.ENCRYPTION_KEY

        self.access_ttl = timedelta(minutes=config.ACCESS_TOKEN_TTL_MINUTES)
        self.refresh_ttl = timedelta(days=config.REFRESH_TOKEN_TTL_DAYS)
        self.grace = timedelta(minutes=config.ACCESS_REFRESH_GRACE_MINUTES)
        self.rotate_window = timedelta(days=config.REFRESH_ROTATE_WINDOW_DAYS)
        self.idle_ttl = timedelta(days=config.SESSION_IDLE_TTL_DAYS)

        self._session: Session | None = None
        self._initialized = False
        self._listeners: list[SessionListener] = []
        self._timer: asyncio.Task | None = None
        self._refresh_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    def current(self) -> Session | None:
        """Copy of the current session; mutating it has no effect."""
        return self._session.model_copy(deep=True) if self._session else None

    def current_user(self) -> SessionUser | None:
        return self._session.user.model_copy() if self._session else None

    def is_authenticated(self) -> bool:
        return self._session is not None

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Register a listener; it is invoked at once with the current session."""
        self._listeners.append(listener)
        self._call_listener(listener, self.current())

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _call_listener(self, listener: SessionListener, snapshot: Session | None) -> None:
        try:
            listener(snapshot)
        except Exception as e:
            logger.error("Session listener failed", error=str(e), error_type=type(e).__name__)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            self._call_listener(listener, self.current())

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def _persist(self, session: Session) -> None:
        """
        Write the encrypted session.

        Raises:
            SessionServiceError: If encryption or the store write fails
        """
        try:
            blob = encrypt_text(session.model_dump_json(), self.encryption_key)
            await self.store.set_with_ttl(SESSION_STORAGE_KEY, blob)
        except (EncryptionError, StoreError) as e:
            raise SessionServiceError(
                f"Failed to persist session: {e}", operation="persist"
            ) from e

    async def _load(self) -> Session | None:
        blob = await self.store.get(SESSION_STORAGE_KEY)
        if not blob:
            return None
        try:
            return Session.model_validate_json(decrypt_text(blob, self.encryption_key))
        except (EncryptionError, ValidationError) as e:
            logger.warning("Discarding unreadable stored session", error=str(e))
            await self.store.delete(SESSION_STORAGE_KEY)
            return None

    async def _commit(self, session: Session) -> None:
        """Persist, adopt, notify and reschedule."""
        await self._persist(session)
        self._session = session
        self._notify()
        self._schedule_refresh()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """
        Hydrate the stored session once.

        Sessions past refresh expiry or idle too long are discarded; an
        access token inside the grace window is refreshed at once.
        """
        if self._initialized:
            return

        try:
            stored = await self._load()
        except StoreError as e:
            logger.error("Session hydrate failed", error=str(e))
            stored = None

        now = self.clock()
        if stored is None:
            logger.info("No stored session found")
        elif stored.is_refresh_expired(now) or stored.is_idle_expired(now, self.idle_ttl):
            logger.info(
                "Stored session expired, removing",
                user=stored.user.identity,
                refresh_expires_at=stored.refresh_expires_at.isoformat(),
            )
            await self._discard()
        else:
            self._session = stored
            if stored.access_needs_refresh(now, self.grace):
                await self._refresh("init-expiry")
            else:
                self._notify()
                self._schedule_refresh()
            logger.info("Session hydrated", user=stored.user.identity)

        self._initialized = True

    async def close(self) -> None:
        self._cancel_timer()

    async def _discard(self) -> None:
        self._cancel_timer()
        self._session = None
        try:
            await self.store.delete(SESSION_STORAGE_KEY)
        except StoreError as e:
            logger.error("Failed to remove stored session", error=str(e))
        self._notify()

    # ------------------------------------------------------------------
    # Contract
    # ------------------------------------------------------------------

    async def check_auth(self) -> bool:
        await self.initialize()
        if self._session is None:
            return False
        return await self.ensure_fresh("check_auth")

    async def touch(self) -> None:
        """Extend the activity marker without rotating tokens."""
        if self._session is None:
            return
        touched = self._session.model_copy(update={"last_touched_at": self.clock()})
        self._session = touched
        try:
            await self._persist(touched)
        except SessionServiceError as e:
            logger.warning("Session touch not persisted", error=str(e))
        self._schedule_refresh()

    async def ensure_fresh(self, reason: str) -> bool:
        """
        Make sure the session may call the record store.

        Never raises: every failure resolves to False.
        """
        if self._session is None:
            return False

        now = self.clock()
        if self._session.is_refresh_expired(now):
            logger.warning("Refresh token expired, logging out", reason=reason)
            await self.logout()
            return False
        if self._session.is_idle_expired(now, self.idle_ttl):
            logger.warning("Session idle too long, logging out", reason=reason)
            await self.logout()
            return False

        if self._session.access_needs_refresh(now, self.grace):
            return await self._refresh(reason) is not None

        await self.touch()
        return self._session is not None

    async def _refresh(self, reason: str) -> Session | None:
        async with self._refresh_lock:
            current = self._session
            if current is None:
                return None

            now = self.clock()
            if current.is_refresh_expired(now):
                logger.warning("Refresh token expired during refresh, logging out", reason=reason)
                await self.logout()
                return None
            # Another caller rotated while we waited on the lock
            if not current.access_needs_refresh(now, self.grace) and reason != "scheduled":
                return current

            rotate_refresh = current.refresh_needs_rotation(now, self.rotate_window)
            try:
                refresh_token = (
                    self.token_factory(REFRESH_TOKEN_BYTES) if rotate_refresh else current.refresh_token
                )
                refresh_expires_at = (
                    now + self.refresh_ttl if rotate_refresh else current.refresh_expires_at
                )
                updated = current.model_copy(
                    update={
                        "access_token": self.token_factory(ACCESS_TOKEN_BYTES),
                        "access_expires_at": min(now + self.access_ttl, refresh_expires_at),
                        "refresh_token": refresh_token,
                        "refresh_expires_at": refresh_expires_at,
                        "last_touched_at": now,
                        "last_refreshed_at": now,
                    }
                )
                await self._commit(updated)
            except Exception as e:
                logger.error(
                    "Token refresh failed",
                    reason=reason,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                return None

            logger.info(
                "Session tokens refreshed",
                reason=reason,
                rotated_refresh=rotate_refresh,
                access_expires_at=updated.access_expires_at.isoformat(),
            )
            return updated

    async def login(self, email: str, password: str) -> tuple[Session | None, str | None]:
        """
        Sign in against the users worksheet.

        Returns:
            (session, None) on success, (None, error message) otherwise
        """
        identity = normalize_person(email)
        secret = (password or "").strip()
        if not identity or not secret:
            return None, "Email and password are required"

        users = None
        for attempt in range(LOGIN_FETCH_RETRIES + 1):
            try:
                users = await self.user_directory.fetch_users()
                break
            except RemoteStoreError as e:
                if attempt >= LOGIN_FETCH_RETRIES or not e.is_transient:
                    logger.error("Login user fetch failed", error=str(e), kind=e.kind.value)
                    return None, str(e)
                await asyncio.sleep(LOGIN_RETRY_DELAY_SECONDS)

        matched = next(
            (
                user
                for user in users or []
                if user.identity == identity
                and hmac.compare_digest(user.password.strip().encode(), secret.encode())
            ),
            None,
        )
        if matched is None:
            logger.warning("Login failed: no matching user", email=identity)
            return None, "Invalid email or password"

        now = self.clock()
        try:
            refresh_expires_at = now + self.refresh_ttl
            session = Session(
                user=SessionUser(
                    identity=matched.identity,
                    display_name=matched.display_name,
                    phone=matched.phone,
                    role=matched.role,
                ),
                access_token=self.token_factory(ACCESS_TOKEN_BYTES),
                access_expires_at=min(now + self.access_ttl, refresh_expires_at),
                refresh_token=self.token_factory(REFRESH_TOKEN_BYTES),
                refresh_expires_at=refresh_expires_at,
                last_touched_at=now,
            )
            await self._commit(session)
        except Exception as e:
            logger.error("Login failed to create session", error=str(e), error_type=type(e).__name__)
            return None, f"Could not create session: {e}"

        self._initialized = True
        logger.info("User logged in", user=session.user.identity, role=session.user.role)
        return self.current(), None

    async def logout(self) -> None:
        user = self._session.user.identity if self._session else None
        await self._discard()
        logger.info("User logged out", user=user)

    # ------------------------------------------------------------------
    # Refresh timer
    # ------------------------------------------------------------------

    def refresh_delay_seconds(self) -> float | None:
        """Seconds until the scheduled refresh, never below the minimum delay."""
        if self._session is None:
            return None
        until = (self._session.access_expires_at - self.clock() - self.grace).total_seconds()
        return max(float(self.config.MIN_REFRESH_DELAY_SECONDS), until)

    def _schedule_refresh(self) -> None:
        self._cancel_timer()
        delay = self.refresh_delay_seconds()
        if delay is None:
            return
        try:
            self._timer = asyncio.get_running_loop().create_task(self._run_timer(delay))
        except RuntimeError:
            logger.debug("No running loop, refresh timer not scheduled")

    def _cancel_timer(self) -> None:
        timer, self._timer = self._timer, None
        # The timer task reschedules itself through _commit; never cancel it from inside
        if timer and not timer.done() and timer is not asyncio.current_task():
            timer.cancel()

    async def _run_timer(self, delay: float) -> None:
        try:
            await asyncio.sleep(delay)
            await self._refresh("scheduled")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning("Scheduled refresh failed", error=str(e))
