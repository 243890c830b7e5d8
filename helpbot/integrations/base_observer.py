"""
Supervised Observer

A platform observer owns one long running session (for Matrix, the
`sync_forever` loop). Once connected, the session runs in a background task
under supervision: a failed session is counted, reported as RECONNECTING
and restarted after an exponential backoff. Only `disconnect()` ends it.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class ObserverStatus(Enum):
    """Observer connection status enumeration"""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"
    RECONNECTING = "reconnecting"


class SupervisedObserver(ABC):
    """
    Base class for an observer whose session is restarted on failure.

    Subclasses implement `connect()` (login and initial state) and
    `_run_session()` (the long running call). `_start_session()` launches
    the supervisor, `_stop_session()` cancels it.
    """

    def __init__(self, name: str, retry_base_delay: float = 1.0, retry_max_delay: float = 60.0):
        self.name = name
        self.retry_base_delay = retry_base_delay
        self.retry_max_delay = retry_max_delay

        self.session_task: Optional[asyncio.Task] = None
        self._status = ObserverStatus.DISCONNECTED
        self._last_error: Optional[str] = None
        self._consecutive_failures = 0
        self._stopping = False

    @property
    def status(self) -> ObserverStatus:
        return self._status

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    @property
    def consecutive_failures(self) -> int:
        """Session failures since the last healthy session or successful connect."""
        return self._consecutive_failures

    @abstractmethod
    async def connect(self) -> bool:
        """Establish the session. Returns False and sets ERROR on failure."""

    @abstractmethod
    async def _run_session(self) -> None:
        """Run the session until it returns or raises."""

    def retry_delay(self, attempt: int) -> float:
        """Backoff before restart number `attempt` (1-based), capped at retry_max_delay."""
        delay = self.retry_base_delay * (2 ** max(attempt - 1, 0))
        return min(delay, self.retry_max_delay)

    def _set_status(self, status: ObserverStatus, error: Optional[str] = None) -> None:
        old_status = self._status
        self._status = status
        self._last_error = error

        if status != old_status:
            logger.debug(f"{self.name}: Status changed from {old_status.value} to {status.value}")

        if error:
            logger.error(f"{self.name}: Error - {error}")

    def _mark_healthy(self) -> None:
        """Record that the session is delivering again."""
        recovering = self._status is ObserverStatus.RECONNECTING
        self._consecutive_failures = 0
        self._set_status(ObserverStatus.CONNECTED)
        if recovering:
            logger.info(f"{self.name}: Session healthy")

    def _start_session(self) -> None:
        self._stopping = False
        self.session_task = asyncio.create_task(self._supervise())
        logger.debug(f"{self.name}: Session task started")

    async def _supervise(self) -> None:
        """Run the session, restarting it with backoff until it returns or stop is requested."""
        while not self._stopping:
            try:
                await self._run_session()
                return
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._consecutive_failures += 1
                delay = self.retry_delay(self._consecutive_failures)
                self._set_status(ObserverStatus.RECONNECTING, f"Session failed: {e}")
                logger.warning(
                    f"{self.name}: Restarting session in {delay:.1f}s "
                    f"(attempt {self._consecutive_failures})"
                )
                await asyncio.sleep(delay)

    async def _stop_session(self) -> None:
        self._stopping = True
        if self.session_task and not self.session_task.done():
            self.session_task.cancel()
            try:
                await self.session_task
            except asyncio.CancelledError:
                pass

    async def is_healthy(self) -> bool:
        """Connected and the session task is still running."""
        if self._status is not ObserverStatus.CONNECTED:
            return False
        return self.session_task is not None and not self.session_task.done()

    def get_status_info(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "status": self._status.value,
            "last_error": self._last_error,
            "consecutive_failures": self._consecutive_failures,
        }
