"""
Matrix Authentication Handler

Handles Matrix client authentication, token management, and session persistence.
"""

import asyncio
import json
import logging
import os
import time
from pathlib import Path
from typing import Any, Dict, Optional

from nio import AsyncClient, LoginError, LoginResponse, WhoamiResponse

logger = logging.getLogger(__name__)

RATE_LIMIT_CODE = "M_LIMIT_EXCEEDED"


class MatrixAuthHandler:
    """Handles Matrix authentication and token management."""

    def __init__(
        self,
        homeserver: str,
        user_id: str,
        password: str,
        store_path: Path,
        device_name: str = "nvim_help_bot",
    ):
        self.homeserver = homeserver
        self.user_id = user_id
        self.password = password
        self.store_path = Path(store_path)
        self.device_name = device_name
        self.token_file = self.store_path / "matrix_token.json"

    def load_session(self) -> Optional[Dict[str, Any]]:
        """Load the saved session from file if it exists and has a token."""
        if not self.token_file.exists():
            logger.debug("MatrixAuthHandler: No token file found")
            return None

        try:
            with open(self.token_file, 'r') as f:
                token_data = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            logger.warning(f"MatrixAuthHandler: Error loading token file: {e}")
            return None

        if not token_data.get('access_token'):
            logger.warning("MatrixAuthHandler: Token file exists but no access_token found")
            return None

        if token_data.get('user_id', self.user_id) != self.user_id:
            logger.warning("MatrixAuthHandler: Token file belongs to another user, ignoring it")
            return None

        logger.debug("MatrixAuthHandler: Loaded existing token")
        return token_data

    async def verify_token_with_backoff(self, client: AsyncClient, max_retries: int = 3) -> bool:
        """Verify token is valid with exponential backoff."""
        for attempt in range(max_retries):
            try:
                response = await client.whoami()
                if isinstance(response, WhoamiResponse) and response.user_id == self.user_id:
                    logger.debug("MatrixAuthHandler: Token verification successful")
                    return True
                logger.warning(f"MatrixAuthHandler: Token verification failed: {response}")
                return False

            except Exception as e:
                delay = 2 ** attempt
                logger.warning(
                    f"MatrixAuthHandler: Token verification attempt {attempt + 1} failed: {e}. "
                    f"Retrying in {delay}s..."
                )
                if attempt < max_retries - 1:
                    await asyncio.sleep(delay)
                else:
                    logger.error("MatrixAuthHandler: Token verification failed after all retries")

        return False

    def save_token(self, access_token: str, device_id: str):
        """Save access token and device ID to file."""
        try:
            token_data = {
                'access_token': access_token,
                'device_id': device_id,
                'user_id': self.user_id,
                'homeserver': self.homeserver,
                'saved_at': time.time()
            }

            self.token_file.parent.mkdir(parents=True, exist_ok=True)

            with open(self.token_file, 'w') as f:
                json.dump(token_data, f, indent=2)

            os.chmod(self.token_file, 0o600)
            logger.info("MatrixAuthHandler: Token saved successfully")

        except OSError as e:
            logger.error(f"MatrixAuthHandler: Error saving token: {e}")

    async def restore_session(self, client: AsyncClient) -> bool:
        """Restore a saved session on the client if its token is still valid."""
        session = self.load_session()
        if not session:
            return False

        client.restore_login(
            user_id=session.get('user_id', self.user_id),
            device_id=session.get('device_id') or "",
            access_token=session['access_token'],
        )

        if await self.verify_token_with_backoff(client):
            logger.debug("MatrixAuthHandler: Using existing valid token")
            return True

        logger.warning("MatrixAuthHandler: Existing token invalid, re-authenticating")
        self.clear_token()
        return False

    async def login_with_retry(self, client: AsyncClient, max_attempts: int = 3) -> Optional[str]:
        """Attempt login with retry logic and rate limit handling."""
        for attempt in range(max_attempts):
            last_attempt = attempt == max_attempts - 1
            try:
                logger.info(f"MatrixAuthHandler: Login attempt {attempt + 1} for {self.user_id}")

                response = await client.login(self.password, device_name=self.device_name)

            except Exception as login_error:
                error_str = str(login_error)
                if last_attempt:
                    raise

                if '429' in error_str or 'rate' in error_str.lower():
                    delay = min(60, 2 ** attempt * 5)
                    logger.warning(
                        f"MatrixAuthHandler: Rate limited on attempt {attempt + 1}. "
                        f"Waiting {delay}s before retry..."
                    )
                else:
                    delay = 2 ** attempt
                    logger.error(f"MatrixAuthHandler: Login attempt {attempt + 1} failed: {login_error}")
                await asyncio.sleep(delay)
                continue

            if isinstance(response, LoginResponse):
                logger.info("MatrixAuthHandler: Login successful")
                self.save_token(response.access_token, response.device_id)
                return response.access_token

            if isinstance(response, LoginError) and response.status_code == RATE_LIMIT_CODE and not last_attempt:
                if response.retry_after_ms:
                    delay = response.retry_after_ms / 1000
                else:
                    delay = min(60, 2 ** attempt * 5)
                logger.warning(
                    f"MatrixAuthHandler: Rate limited on attempt {attempt + 1}. "
                    f"Waiting {delay}s before retry..."
                )
                await asyncio.sleep(delay)
                continue

            logger.error(f"MatrixAuthHandler: Login failed: {response}")
            return None

        return None

    def clear_token(self):
        """Clear saved token file."""
        if self.token_file.exists():
            try:
                self.token_file.unlink()
                logger.info("MatrixAuthHandler: Cleared token file")
            except OSError as e:
                logger.error(f"MatrixAuthHandler: Error clearing token file: {e}")
