"""
Global test configuration and fixtures.
"""

from pathlib import Path
from unittest.mock import AsyncMock, Mock

import pytest

from helpbot.config import MatrixConfig
from helpbot.core.handler import BotEventHandler
from helpbot.core.resolver import LookupPolicy, TagResolver
from helpbot.core.tags import TagStore

BOT_USER_ID = "@nvim-bot:matrix.org"

SAMPLE_TAGS = """\
:q\tediting.txt\t/*:q*
:wq\tediting.txt\t/*:wq*
:help\thelphelp.txt\t/*:help*
autocmd\tautocmd.txt\t/*autocmd*
lsp\tlsp.txt\t/*lsp*
vim.api\tapi.txt\t/*vim.api*
"""


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    """Keep tests independent of the developer's environment and .env file."""
    for name in [
        "LOG_LEVEL", "LOG_FORMAT", "LOG_FILE",
        "TAGS_FILE", "TAGS_POLICY", "TAGS_DOC_BASE_URL",
        "MATRIX_HOMESERVER", "MATRIX_USER_ID", "MATRIX_DEVICE_ID", "MATRIX_STORE_PATH",
        "MATRIX_ALLOWED_ROOM", "MATRIX_REJECTION_MESSAGE", "MATRIX_AUTO_JOIN_INVITES",
    ]:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def tag_file(tmp_path) -> Path:
    """Tag data file with a handful of Neovim help tags."""
    path = tmp_path / "tags"
    path.write_text(SAMPLE_TAGS, encoding="utf-8")
    return path


@pytest.fixture
def tag_store(tag_file) -> TagStore:
    return TagStore.load(tag_file)


@pytest.fixture
def exact_resolver(tag_store) -> TagResolver:
    return TagResolver(tag_store, policy=LookupPolicy.EXACT)


@pytest.fixture
def nearest_resolver(tag_store) -> TagResolver:
    return TagResolver(tag_store, policy=LookupPolicy.NEAREST)


@pytest.fixture
def bot_handler(exact_resolver) -> BotEventHandler:
    return BotEventHandler(exact_resolver)


@pytest.fixture
def matrix_config(tmp_path) -> MatrixConfig:
    return MatrixConfig(
        homeserver="https://matrix.example.org",
        user_id=BOT_USER_ID,
        store_path=str(tmp_path / "matrix_store"),
        sync_retry_base_delay=0.01,
        sync_retry_max_delay=0.05,
    )


@pytest.fixture
def mock_client() -> Mock:
    """A stand-in for nio.AsyncClient with the coroutine methods the bot uses."""
    client = Mock()
    client.rooms = {}
    client.invited_rooms = {}
    client.access_token = ""
    client.login = AsyncMock()
    client.whoami = AsyncMock()
    client.sync = AsyncMock()
    client.sync_forever = AsyncMock()
    client.room_send = AsyncMock()
    client.join = AsyncMock()
    client.close = AsyncMock()
    client.discovery_info = AsyncMock()
    return client
