"""
Process-local view of app visibility and network reachability.

The lifecycle service is the only writer; everything else reads.
"""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime

from leadsync.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class ConnectivitySnapshot:
    online: bool
    foreground: bool
    changed_at: datetime


class ConnectivityState:
    def __init__(self, online: bool = True, foreground: bool = True):
        self._online = online
        self._foreground = foreground
        self._changed_at = datetime.now(UTC)
        self._listeners: list[Callable[[ConnectivitySnapshot], None]] = []

    @property
    def online(self) -> bool:
        return self._online

    @property
    def foreground(self) -> bool:
        return self._foreground

    def snapshot(self) -> ConnectivitySnapshot:
        return ConnectivitySnapshot(self._online, self._foreground, self._changed_at)

    def set_online(self, online: bool) -> bool:
        """Returns True when this is an offline -> online transition."""
        came_online = online and not self._online
        if online != self._online:
            self._online = online
            self._changed_at = datetime.now(UTC)
            logger.info("Connectivity changed", online=online)
            self._notify()
        return came_online

    def set_foreground(self, foreground: bool) -> bool:
        """Returns True when this is a background -> foreground transition."""
        came_forward = foreground and not self._foreground
        if foreground != self._foreground:
            self._foreground = foreground
            self._changed_at = datetime.now(UTC)
            logger.info("Visibility changed", foreground=foreground)
            self._notify()
        return came_forward

    def subscribe(self, listener: Callable[[ConnectivitySnapshot], None]) -> Callable[[], None]:
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener) if listener in self._listeners else None

    def _notify(self) -> None:
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                logger.error("Connectivity listener failed", error=str(e))
