"""
Matrix Event Handlers

Turns nio room events into bot events, hands them to the bot event handler
and sends the reply back to the originating room.
"""

import logging
from typing import Any, Dict, Optional

from nio import AsyncClient, InviteMemberEvent, JoinError, MatrixRoom, RoomMessageText

from ....core.events import IncomingMessage
from ....core.handler import BotEventHandler
from .messages import MatrixMessageOperations

logger = logging.getLogger(__name__)


class MatrixEventHandler:
    """Handles Matrix text messages and invites."""

    def __init__(
        self,
        user_id: str,
        bot_handler: BotEventHandler,
        message_ops: MatrixMessageOperations,
        client: Optional[AsyncClient] = None,
        auto_join_invites: bool = True,
    ):
        self.user_id = user_id
        self.bot_handler = bot_handler
        self.message_ops = message_ops
        self.client = client
        self.auto_join_invites = auto_join_invites

    async def handle_message(self, room: MatrixRoom, event: RoomMessageText) -> Optional[Dict[str, Any]]:
        """Handle an incoming text message. Returns the send result when a reply was sent."""
        if event.sender == self.user_id:
            return None

        message = IncomingMessage(
            room_id=room.room_id,
            body=event.body,
            sender=event.sender,
            event_id=event.event_id,
            room_alias=room.canonical_alias,
        )

        try:
            reply = self.bot_handler.dispatch(message)
        except Exception as e:
            logger.error(
                f"MatrixEventHandler: Error handling message {event.event_id} in {room.room_id}: {e}",
                exc_info=True,
            )
            return None

        if reply is None:
            return None

        result = await self.message_ops.send_message(room.room_id, reply)
        if not result.get("success"):
            logger.warning(
                f"MatrixEventHandler: Reply to {event.event_id} in {room.room_id} not delivered: "
                f"{result.get('error')}"
            )
        return result

    async def handle_invite(self, room: MatrixRoom, event: InviteMemberEvent) -> bool:
        """Accept invitations addressed to the bot when auto-join is enabled."""
        if event.state_key != self.user_id or event.membership != "invite":
            return False

        logger.info(f"MatrixEventHandler: Received invite to {room.room_id} from {event.sender}")

        if not self.auto_join_invites or not self.client:
            return False

        try:
            response = await self.client.join(room.room_id)
        except Exception as e:
            logger.error(f"MatrixEventHandler: Error joining {room.room_id}: {e}", exc_info=True)
            return False

        if isinstance(response, JoinError):
            logger.warning(f"MatrixEventHandler: Could not join {room.room_id}: {response.message}")
            return False

        logger.info(f"MatrixEventHandler: Joined {room.room_id}")
        return True
