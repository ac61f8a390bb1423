"""Domain events handed to the external notification fan-out."""
import enum
import logging
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Optional, Protocol

logger = logging.getLogger('filevault.events')


class EventType(enum.Enum):
    UPLOADED = "uploaded"
    DEDUPED = "deduped"
    DELETED = "deleted"
    SHARED = "shared"
    DOWNLOADED = "downloaded"
    QUOTA_DENIED = "quota_denied"


@dataclass
class VaultEvent:
    type: EventType
    user_id: Optional[str]
    file_id: Optional[str] = None
    content_hash: Optional[str] = None
    size: Optional[int] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        data = asdict(self)
        data['type'] = self.type.value
        data['timestamp'] = self.timestamp.isoformat()
        return data


class EventSink(Protocol):
    """Fire-and-forget consumer of vault events."""

    def emit(self, event: VaultEvent) -> None:
        ...


class LoggingEventSink:
    """Default sink: writes every event to the ``filevault.events`` logger."""

    def emit(self, event: VaultEvent) -> None:
        logger.info(f"{event.type.value} {event.to_dict()}")


def emit_safely(sink: EventSink, event: VaultEvent) -> None:
    """
    Hand ``event`` to ``sink``. A failing sink is logged and never fails
    the operation that produced the event.
    """
    try:
        sink.emit(event)
    except Exception:
        logger.exception(f"Event sink failed for {event.type.value} event")
