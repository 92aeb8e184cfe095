"""
Presentation sinks: where delivered notifications go.

A sink must never raise. Delivery failures are logged here and the
pipeline carries on.
"""

import httpx

from leadsync.infrastructure.observability.logging import get_logger
from leadsync.models.domain.notification_domain import Notification

logger = get_logger(__name__)

PUSH_RELAY_TIMEOUT = 10  # seconds


class PresentationSink:
    """Base sink; every method is a safe no-op."""

    async def present(self, notification: Notification) -> None:
        return None

    async def set_badge_count(self, count: int, recipient: str | None = None) -> None:
        return None

    async def close(self) -> None:
        return None


class LoggingSink(PresentationSink):
    async def present(self, notification: Notification) -> None:
        logger.info(
            "Notification presented",
            notification_id=notification.id,
            recipient=notification.recipient,
            category=notification.category.value,
            priority=notification.priority.value,
            title=notification.title,
        )

    async def set_badge_count(self, count: int, recipient: str | None = None) -> None:
        logger.debug("Badge count updated", recipient=recipient, count=count)


class PushRelaySink(PresentationSink):
    """Forwards notifications and badge updates to an HTTP push relay."""

    def __init__(self, url: str, client: httpx.AsyncClient | None = None):
        self.url = url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(PUSH_RELAY_TIMEOUT))

    async def _post(self, path: str, payload: dict, **log_context) -> None:
        try:
            response = await self._client.post(f"{self.url}{path}", json=payload)
            if not response.is_success:
                logger.warning(
                    "Push relay rejected request",
                    path=path,
                    status_code=response.status_code,
                    **log_context,
                )
        except Exception as e:
            logger.warning(
                "Push relay unreachable",
                path=path,
                error=str(e),
                error_type=type(e).__name__,
                **log_context,
            )

    async def present(self, notification: Notification) -> None:
        await self._post(
            "/notifications",
            notification.model_dump(mode="json"),
            notification_id=notification.id,
        )

    async def set_badge_count(self, count: int, recipient: str | None = None) -> None:
        await self._post("/badge", {"recipient": recipient, "count": count}, recipient=recipient)

    async def close(self) -> None:
        await self._client.aclose()


class CompositeSink(PresentationSink):
    def __init__(self, sinks: list[PresentationSink]):
        self.sinks = list(sinks)

    async def present(self, notification: Notification) -> None:
        for sink in self.sinks:
            try:
                await sink.present(notification)
            except Exception as e:
                logger.error("Sink present failed", sink=type(sink).__name__, error=str(e))

    async def set_badge_count(self, count: int, recipient: str | None = None) -> None:
        for sink in self.sinks:
            try:
                await sink.set_badge_count(count, recipient)
            except Exception as e:
                logger.error("Sink badge update failed", sink=type(sink).__name__, error=str(e))

    async def close(self) -> None:
        for sink in self.sinks:
            await sink.close()
