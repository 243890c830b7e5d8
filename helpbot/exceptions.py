"""
Custom Exception Classes

This module defines the exceptions raised by the help bot so that startup
failures can be told apart from recoverable runtime errors.
"""

from pathlib import Path
from typing import Optional, Union


class HelpBotBaseException(Exception):
    """Base exception for the help bot."""

    pass


class ConfigurationError(HelpBotBaseException):
    """Raised for configuration problems. Fatal at startup."""

    pass


class TagTableError(ConfigurationError):
    """Raised when the tag data file cannot be read."""

    def __init__(
        self,
        path: Union[str, Path],
        original_error: Optional[Exception] = None,
        message: Optional[str] = None,
    ):
        self.path = Path(path)
        self.original_error = original_error
        details = f"Cannot load tag file '{self.path}'"
        if original_error is not None:
            details = f"{details}: {original_error}"
        if message:
            super().__init__(f"{message} - Details: {details}")
        else:
            super().__init__(details)


class MatrixIntegrationError(HelpBotBaseException):
    """Raised for errors specific to Matrix integration."""

    pass


class ReplySendError(HelpBotBaseException):
    """Raised when a reply could not be delivered to a room."""

    def __init__(self, room_id: str, reason: str):
        self.room_id = room_id
        self.reason = reason
        super().__init__(f"Failed to send reply to {room_id}: {reason}")
