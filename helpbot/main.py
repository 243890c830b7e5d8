"""
Main entry point for the help bot.

    python -m helpbot <password-or-password-file>

SIGHUP reloads the tag table, SIGINT and SIGTERM stop the bot.
"""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from helpbot.config import AppConfig, VALID_LOG_LEVELS, VALID_POLICIES, create_settings
from helpbot.core.events import ReloadRequest
from helpbot.core.handler import BotEventHandler, RoomGate
from helpbot.core.resolver import LookupPolicy, TagResolver
from helpbot.core.tags import TagStore
from helpbot.exceptions import ConfigurationError, HelpBotBaseException
from helpbot.integrations.matrix.observer import MatrixObserver
from helpbot.utils.logging_config import get_logger, setup_logging

logger = logging.getLogger(__name__)


def read_password(value: str) -> str:
    """Return the password, reading the first line of `value` if it names a file."""
    path = Path(value)
    if not path.is_file():
        return value

    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except OSError as e:
        raise ConfigurationError(f"Cannot read password file '{path}': {e}") from e

    password = lines[0].strip() if lines else ""
    if not password:
        raise ConfigurationError(f"Password file '{path}' is empty")
    return password


def build_handler(settings: AppConfig) -> BotEventHandler:
    """Load the tag table and wire resolver, room gate and event handler."""
    store = TagStore.load(settings.tags.file)
    resolver = TagResolver(
        store,
        policy=LookupPolicy(settings.tags.policy),
        doc_base_url=settings.tags.doc_base_url,
    )

    gate = None
    if settings.matrix.allowed_room:
        gate = RoomGate(settings.matrix.allowed_room, settings.matrix.rejection_message)

    return BotEventHandler(resolver, store=store, gate=gate)


class HelpBotApp:
    """Runs the Matrix observer until a stop signal arrives."""

    def __init__(self, settings: AppConfig, password: str):
        self.settings = settings
        self.password = password
        self.handler: Optional[BotEventHandler] = None
        self.observer: Optional[MatrixObserver] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._installed_signals: List[int] = []

    def request_stop(self):
        if self._stop_event and not self._stop_event.is_set():
            logger.info("Stop requested, shutting down...")
            self._stop_event.set()

    def request_reload(self):
        if self.handler:
            self.handler.dispatch(ReloadRequest(reason="SIGHUP"))

    def _install_signal_handlers(self):
        loop = asyncio.get_running_loop()
        handlers = [
            ("SIGINT", self.request_stop),
            ("SIGTERM", self.request_stop),
            ("SIGHUP", self.request_reload),
        ]
        for name, callback in handlers:
            signum = getattr(signal, name, None)
            if signum is None:
                continue
            try:
                loop.add_signal_handler(signum, callback)
                self._installed_signals.append(signum)
            except (NotImplementedError, RuntimeError):
                logger.debug(f"Signal {name} not supported on this platform")

    def _remove_signal_handlers(self):
        loop = asyncio.get_running_loop()
        for signum in self._installed_signals:
            loop.remove_signal_handler(signum)
        self._installed_signals = []

    async def run(self):
        """Start the bot and block until stopped."""
        self._stop_event = asyncio.Event()
        self.handler = build_handler(self.settings)
        self.observer = MatrixObserver(self.password, self.handler, config=self.settings.matrix)

        self._install_signal_handlers()

        try:
            await self.observer.start()
            get_logger(__name__).info(
                "helpbot started",
                user_id=self.settings.matrix.user_id,
                policy=self.settings.tags.policy,
                tags=len(self.handler.store.table),
            )
            await self._stop_event.wait()
        finally:
            await self.observer.disconnect()
            self._remove_signal_handlers()
            logger.debug(f"Application shutdown complete: {self.observer.get_status_info()}")


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="helpbot",
        description="Matrix bot that answers '!h <tag>' with a link into the Neovim user manual",
    )
    parser.add_argument(
        "password",
        help="Matrix account password, or a path to a file whose first line is the password",
    )
    parser.add_argument(
        "--tags",
        help="Path to the tag data file (overrides TAGS_FILE)",
    )
    parser.add_argument(
        "--policy",
        choices=VALID_POLICIES,
        help="Lookup policy for tags without an exact match (overrides TAGS_POLICY)",
    )
    parser.add_argument(
        "--log-level",
        choices=VALID_LOG_LEVELS,
        help="Override log level from configuration",
    )
    return parser.parse_args(argv)


def load_settings(args: argparse.Namespace) -> AppConfig:
    """Load settings and apply command line overrides."""
    try:
        settings = create_settings()
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e

    if args.tags:
        settings.tags.file = args.tags
    if args.policy:
        settings.tags.policy = args.policy
    if args.log_level:
        settings.log_level = args.log_level
    return settings


async def main(argv: Optional[List[str]] = None) -> int:
    """Main application entry point. Returns the process exit status."""
    args = parse_arguments(argv)

    try:
        settings = load_settings(args)
        setup_logging(settings.log_level, settings.log_format, settings.log_file)
        password = read_password(args.password)
        await HelpBotApp(settings, password).run()
    except HelpBotBaseException as e:
        logger.error(f"Startup failed: {e}")
        print(f"helpbot: error: {e}", file=sys.stderr)
        return 1

    return 0


def run() -> None:
    """Console script entry point."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
