"""Tag lookup and event dispatch, independent of the Matrix transport."""

from .events import BotEvent, EventKind, IncomingMessage, ReloadRequest
from .handler import BotEventHandler, RoomGate
from .resolver import LookupPolicy, TagResolver, TRIGGER
from .tags import TagEntry, TagStore, TagTable, load_tag_table, parse_tag_lines

__all__ = [
    "BotEvent",
    "BotEventHandler",
    "EventKind",
    "IncomingMessage",
    "LookupPolicy",
    "ReloadRequest",
    "RoomGate",
    "TRIGGER",
    "TagEntry",
    "TagResolver",
    "TagStore",
    "TagTable",
    "load_tag_table",
    "parse_tag_lines",
]
