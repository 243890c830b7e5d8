"""
Matrix Message Operations

Sends plain text replies to Matrix rooms. Every send is bounded by a
timeout; failures are reported in the result instead of raised.
"""

import asyncio
import logging
from typing import Any, Dict

from nio import AsyncClient, RoomSendResponse

from ....exceptions import ReplySendError

logger = logging.getLogger(__name__)


class MatrixMessageOperations:
    """Handles Matrix message sending operations."""

    def __init__(self, client: AsyncClient, send_timeout: float = 10.0):
        self.client = client
        self.send_timeout = send_timeout

    async def send_message(self, room_id: str, content: str) -> Dict[str, Any]:
        """Send a plain text message to a room."""
        if not self.client:
            return {"success": False, "error": "Matrix client not available"}

        message_content = {
            "msgtype": "m.text",
            "body": str(content),
        }

        logger.debug(f"MatrixMessageOps: Sending message to {room_id}")

        try:
            event_id = await asyncio.wait_for(
                self._room_send(room_id, message_content),
                timeout=self.send_timeout,
            )
        except asyncio.TimeoutError:
            error_msg = f"Timed out after {self.send_timeout}s sending message to {room_id}"
            logger.warning(f"MatrixMessageOps: {error_msg}")
            return {"success": False, "error": error_msg, "timeout": True}
        except ReplySendError as e:
            logger.error(f"MatrixMessageOps: {e}")
            return {"success": False, "error": str(e)}
        except Exception as e:
            error_msg = f"Error sending message to {room_id}: {e}"
            logger.error(f"MatrixMessageOps: {error_msg}")
            return {"success": False, "error": error_msg}

        logger.debug(f"MatrixMessageOps: Message sent to {room_id}: {message_content['body'][:100]}")
        return {
            "success": True,
            "event_id": event_id,
            "room_id": room_id,
        }

    async def _room_send(self, room_id: str, content: Dict[str, Any]) -> str:
        response = await self.client.room_send(
            room_id=room_id,
            message_type="m.room.message",
            content=content,
        )
        if isinstance(response, RoomSendResponse):
            return response.event_id
        raise ReplySendError(room_id, str(response))
