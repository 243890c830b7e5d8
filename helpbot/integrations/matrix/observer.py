"""
Matrix Observer

Owns the nio client: logs in, performs the initial sync, attaches the
message callbacks and keeps the incremental sync loop alive. Message
handling and sending are delegated to the components package.
"""

import logging
from pathlib import Path
from typing import Callable, Optional

from nio import (
    AsyncClient,
    DiscoveryInfoResponse,
    InviteMemberEvent,
    MatrixRoom,
    RoomMessageText,
    SyncError,
    SyncResponse,
)

from ...config import MatrixConfig
from ...core.handler import BotEventHandler
from ...exceptions import MatrixIntegrationError
from ..base_observer import ObserverStatus, SupervisedObserver
from .components.auth import MatrixAuthHandler
from .components.events import MatrixEventHandler
from .components.messages import MatrixMessageOperations

logger = logging.getLogger(__name__)


class MatrixObserver(SupervisedObserver):
    """Matrix session driver that delegates to specialized components."""

    def __init__(
        self,
        password: str,
        bot_handler: BotEventHandler,
        config: Optional[MatrixConfig] = None,
        client_factory: Callable[..., AsyncClient] = AsyncClient,
    ):
        self.config = config or MatrixConfig()
        super().__init__(
            "MatrixObserver",
            retry_base_delay=self.config.sync_retry_base_delay,
            retry_max_delay=self.config.sync_retry_max_delay,
        )

        self.user_id = self.config.user_id
        self.password = password
        self.bot_handler = bot_handler
        self.homeserver = self.config.homeserver or f"https://{self.config.server_name}"
        self._discover_homeserver = self.config.homeserver is None
        self._client_factory = client_factory

        self.client: Optional[AsyncClient] = None
        self.store_path = Path(self.config.store_path)

        self.auth_handler: Optional[MatrixAuthHandler] = None
        self.event_handler: Optional[MatrixEventHandler] = None
        self.message_ops: Optional[MatrixMessageOperations] = None

        logger.debug(f"MatrixObserver: Initialized for {self.user_id}@{self.homeserver}")

    async def start(self) -> None:
        """Connect and start the sync loop. Raises MatrixIntegrationError if connecting fails."""
        if not await self.connect():
            raise MatrixIntegrationError(self.last_error or "Failed to connect to Matrix")
        self._start_session()

    async def connect(self) -> bool:
        """Log in and perform the initial sync."""
        try:
            self._set_status(ObserverStatus.CONNECTING)
            self.store_path.mkdir(parents=True, exist_ok=True)

            self.client = self._client_factory(
                self.homeserver,
                self.user_id,
                device_id=self.config.device_id or "",
                store_path=str(self.store_path),
            )

            if self._discover_homeserver:
                await self._discover()

            self._initialize_components()

            if not await self._authenticate():
                self._set_status(ObserverStatus.ERROR, "Authentication failed")
                return False

            await self._initial_sync()
            self._setup_event_callbacks()
            await self._accept_pending_invites()

            self._mark_healthy()
            logger.info(f"MatrixObserver: Connected to {self.homeserver} as {self.user_id}")
            return True

        except Exception as e:
            self._set_status(ObserverStatus.ERROR, f"Failed to connect to Matrix: {e}")
            return False

    async def _discover(self):
        """Resolve the homeserver URL through .well-known discovery."""
        try:
            response = await self.client.discovery_info()
        except Exception as e:
            logger.warning(f"MatrixObserver: Homeserver discovery failed, using {self.homeserver}: {e}")
            return

        if isinstance(response, DiscoveryInfoResponse):
            self.homeserver = response.homeserver_url.rstrip("/")
            self.client.homeserver = self.homeserver
            logger.debug(f"MatrixObserver: Discovered homeserver {self.homeserver}")
        else:
            logger.debug(f"MatrixObserver: No discovery info, using {self.homeserver}")

    def _initialize_components(self):
        """Initialize all components with the Matrix client."""
        self.auth_handler = MatrixAuthHandler(
            self.homeserver,
            self.user_id,
            self.password,
            self.store_path,
            device_name=self.config.device_name,
        )
        self.message_ops = MatrixMessageOperations(self.client, send_timeout=self.config.send_timeout_seconds)
        self.event_handler = MatrixEventHandler(
            self.user_id,
            self.bot_handler,
            self.message_ops,
            client=self.client,
            auto_join_invites=self.config.auto_join_invites,
        )
        logger.debug("MatrixObserver: All components initialized")

    async def _authenticate(self) -> bool:
        """Reuse the saved session if valid, otherwise log in with the password."""
        if await self.auth_handler.restore_session(self.client):
            return True

        access_token = await self.auth_handler.login_with_retry(
            self.client, max_attempts=self.config.login_max_attempts
        )
        return access_token is not None

    async def _initial_sync(self):
        """Full state sync before any callback is attached."""
        response = await self.client.sync(timeout=0, full_state=True)
        if isinstance(response, SyncError):
            raise MatrixIntegrationError(f"Initial sync failed: {response.message}")
        logger.info(f"MatrixObserver: Initial sync complete, {len(self.client.rooms)} rooms joined")

    def _setup_event_callbacks(self):
        """Set up Matrix event callbacks."""
        self.client.add_event_callback(self._on_message, RoomMessageText)
        self.client.add_event_callback(self._on_invite, InviteMemberEvent)
        self.client.add_response_callback(self._on_sync_response, SyncResponse)
        logger.debug("MatrixObserver: Event callbacks configured")

    async def _accept_pending_invites(self):
        """Handle invites that arrived before the callbacks were attached."""
        if not self.config.auto_join_invites:
            return
        for room_id in list(self.client.invited_rooms):
            logger.info(f"MatrixObserver: Accepting pending invite to {room_id}")
            try:
                await self.client.join(room_id)
            except Exception as e:
                logger.error(f"MatrixObserver: Error joining {room_id}: {e}")

    async def _run_session(self) -> None:
        """Incremental sync, continuing from the initial sync token."""
        await self.client.sync_forever(timeout=self.config.sync_timeout_ms)

    async def _on_message(self, room: MatrixRoom, event: RoomMessageText):
        if self.event_handler:
            await self.event_handler.handle_message(room, event)

    async def _on_invite(self, room: MatrixRoom, event: InviteMemberEvent):
        if self.event_handler:
            await self.event_handler.handle_invite(room, event)

    async def _on_sync_response(self, response: SyncResponse):
        if self.status is not ObserverStatus.CONNECTED:
            self._mark_healthy()

    async def disconnect(self) -> None:
        """Stop the sync loop and close the client."""
        try:
            await self._stop_session()

            if self.client:
                await self.client.close()
                self.client = None

            self._set_status(ObserverStatus.DISCONNECTED)
            logger.debug("MatrixObserver: Disconnected successfully")

        except Exception as e:
            logger.error(f"MatrixObserver: Error during disconnect: {e}")
