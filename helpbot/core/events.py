"""
Bot Events

The events the bot reacts to. Each event carries a `kind` so the handler
can dispatch on it explicitly instead of on the shape of the payload.
"""

from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Optional, Union


class EventKind(Enum):
    """Event kind enumeration"""
    MESSAGE = "message"
    RELOAD = "reload"


@dataclass(frozen=True)
class IncomingMessage:
    """A text message received in a room."""

    room_id: str
    body: str
    sender: Optional[str] = None
    event_id: Optional[str] = None
    room_alias: Optional[str] = None

    kind: ClassVar[EventKind] = EventKind.MESSAGE


@dataclass(frozen=True)
class ReloadRequest:
    """Admin request to reload the tag table from disk."""

    reason: str = "manual"

    kind: ClassVar[EventKind] = EventKind.RELOAD


BotEvent = Union[IncomingMessage, ReloadRequest]
