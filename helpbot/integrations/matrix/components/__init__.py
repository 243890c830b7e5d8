"""
Matrix integration components package.

This package contains modular components for the Matrix integration:
- auth: Authentication and token management
- events: Event handlers for text messages and invites
- messages: Reply sending with a bounded timeout
"""

from .auth import MatrixAuthHandler
from .events import MatrixEventHandler
from .messages import MatrixMessageOperations

__all__ = ["MatrixAuthHandler", "MatrixEventHandler", "MatrixMessageOperations"]
