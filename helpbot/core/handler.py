"""
Bot Event Handler

Single dispatch point for bot events. Messages go through the optional room
gate and then the tag resolver; reload requests refresh the tag table.
"""

import logging
from typing import Optional

from .events import BotEvent, EventKind, IncomingMessage, ReloadRequest
from .resolver import TagResolver, extract_query
from .tags import TagStore

logger = logging.getLogger(__name__)

DEFAULT_REJECTION_MESSAGE = "This bot only answers in its designated room."


class RoomGate:
    """Restricts lookups to one room, identified by room ID or alias."""

    def __init__(self, allowed_room: str, rejection_message: str = DEFAULT_REJECTION_MESSAGE):
        self.allowed_room = allowed_room
        self.rejection_message = rejection_message

    def permits(self, message: IncomingMessage) -> bool:
        return self.allowed_room in (message.room_id, message.room_alias)


class BotEventHandler:
    """Dispatches bot events and returns the reply text, if any."""

    def __init__(
        self,
        resolver: TagResolver,
        store: Optional[TagStore] = None,
        gate: Optional[RoomGate] = None,
    ):
        self.resolver = resolver
        self.store = store or resolver.store
        self.gate = gate

    def dispatch(self, event: BotEvent) -> Optional[str]:
        """Handle one event. Returns the reply to send, or None."""
        kind = getattr(event, "kind", None)
        if kind is EventKind.MESSAGE:
            return self._handle_message(event)
        if kind is EventKind.RELOAD:
            self._handle_reload(event)
            return None
        raise TypeError(f"Unsupported bot event: {event!r}")

    def _handle_message(self, message: IncomingMessage) -> Optional[str]:
        query = extract_query(message.body)
        if query is None:
            return None

        if self.gate and not self.gate.permits(message):
            logger.info(
                f"BotEventHandler: Rejecting lookup from {message.sender} in {message.room_id}"
            )
            return self.gate.rejection_message

        reply = self.resolver.resolve_query(query)
        logger.info(f"BotEventHandler: {message.sender} asked for {query!r} in {message.room_id}")
        return reply

    def _handle_reload(self, request: ReloadRequest) -> None:
        logger.info(f"BotEventHandler: Reloading tag table ({request.reason})")
        self.store.reload()
