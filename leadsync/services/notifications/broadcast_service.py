"""
Admin broadcasts to every user (or admins only) listed in the users sheet.
"""

import hashlib
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Literal

from leadsync.infrastructure.observability.logging import get_logger
from leadsync.models.domain.notification_domain import (
    DeepLink,
    Notification,
    NotificationCategory,
    NotificationPriority,
)
from leadsync.models.domain.session_domain import SessionUser
from leadsync.services.notifications.dispatcher import DispatchReport, NotificationDispatcher

logger = get_logger(__name__)

BROADCAST_ACTION = "BROADCAST"

Audience = Literal["all", "admins"]


class BroadcastError(Exception):
    def __init__(self, message: str, operation: str | None = None, recoverable: bool = False):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


class BroadcastService:
    def __init__(
        self,
        user_directory,
        dispatcher: NotificationDispatcher,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ):
        self.user_directory = user_directory
        self.dispatcher = dispatcher
        self.clock = clock

    async def recipients(self, audience: Audience = "all") -> list[str]:
        """Unique recipient identities, case-insensitive, in sheet order."""
        seen: set[str] = set()
        result = []
        for user in await self.user_directory.fetch_users():
            if audience == "admins" and not user.is_admin():
                continue
            if user.identity and user.identity not in seen:
                seen.add(user.identity)
                result.append(user.identity)
        return result

    async def broadcast(
        self,
        sender: SessionUser,
        title: str,
        body: str,
        audience: Audience = "all",
        priority: NotificationPriority = NotificationPriority.NORMAL,
    ) -> DispatchReport:
        """
        Raises:
            BroadcastError: Sender is not an admin or the message is empty
            RemoteStoreError: The users sheet could not be read
        """
        if not sender.is_admin():
            raise BroadcastError("Only admins can broadcast", operation="broadcast")
        if not title.strip() or not body.strip():
            raise BroadcastError("Title and body are required", operation="broadcast")

        # Same message twice inside the dedup window reaches each user once
        digest = hashlib.sha256(f"{title.strip()}|{body.strip()}".encode("utf-8")).hexdigest()[:12]
        now = self.clock()
        candidates = [
            Notification.build(
                recipient=recipient,
                source_entity=f"broadcast:{digest}",
                action=BROADCAST_ACTION,
                title=title.strip(),
                body=body.strip(),
                category=NotificationCategory.ADMIN_BROADCAST,
                priority=priority,
                created_at=now,
                deep_link=DeepLink(route="/notifications"),
            )
            for recipient in await self.recipients(audience)
        ]

        logger.info(
            "Broadcast prepared",
            sender=sender.identity,
            audience=audience,
            recipient_count=len(candidates),
        )
        return await self.dispatcher.dispatch(candidates)
