"""
Tests for the Matrix message, event and auth components.
"""

import asyncio
import json
import os
import stat
from unittest.mock import AsyncMock, Mock

import pytest
from nio import JoinError, LoginError, LoginResponse, MatrixRoom, RoomSendError, RoomSendResponse, WhoamiResponse

from helpbot.core.handler import BotEventHandler, RoomGate
from helpbot.integrations.matrix.components.auth import MatrixAuthHandler
from helpbot.integrations.matrix.components.events import MatrixEventHandler
from helpbot.integrations.matrix.components.messages import MatrixMessageOperations

BOT_USER_ID = "@nvim-bot:matrix.org"

ROOM_ID = "!help:matrix.org"


def text_event(body, sender="@alice:matrix.org", event_id="$evt1"):
    return Mock(body=body, sender=sender, event_id=event_id)


# ---- Message operations ----

@pytest.mark.asyncio
async def test_send_message_success(mock_client):
    mock_client.room_send.return_value = RoomSendResponse("$reply", ROOM_ID)
    ops = MatrixMessageOperations(mock_client)

    result = await ops.send_message(ROOM_ID, "https://neovim.io/doc/user/editing.html#:wq")

    assert result == {"success": True, "event_id": "$reply", "room_id": ROOM_ID}
    mock_client.room_send.assert_awaited_once_with(
        room_id=ROOM_ID,
        message_type="m.room.message",
        content={"msgtype": "m.text", "body": "https://neovim.io/doc/user/editing.html#:wq"},
    )


@pytest.mark.asyncio
async def test_send_message_error_response(mock_client):
    mock_client.room_send.return_value = RoomSendError(message="M_FORBIDDEN")
    ops = MatrixMessageOperations(mock_client)

    result = await ops.send_message(ROOM_ID, "hello")

    assert result["success"] is False
    assert "M_FORBIDDEN" in result["error"]


@pytest.mark.asyncio
async def test_send_message_exception(mock_client):
    mock_client.room_send.side_effect = ConnectionError("network down")
    ops = MatrixMessageOperations(mock_client)

    result = await ops.send_message(ROOM_ID, "hello")

    assert result["success"] is False
    assert "network down" in result["error"]


@pytest.mark.asyncio
async def test_send_message_timeout(mock_client):
    async def slow_send(**kwargs):
        await asyncio.sleep(1)

    mock_client.room_send.side_effect = slow_send
    ops = MatrixMessageOperations(mock_client, send_timeout=0.01)

    result = await ops.send_message(ROOM_ID, "hello")

    assert result["success"] is False
    assert result["timeout"] is True


@pytest.mark.asyncio
async def test_send_message_without_client():
    ops = MatrixMessageOperations(None)
    result = await ops.send_message(ROOM_ID, "hello")
    assert result == {"success": False, "error": "Matrix client not available"}


# ---- Event handler ----

@pytest.fixture
def message_ops():
    ops = Mock()
    ops.send_message = AsyncMock(return_value={"success": True, "event_id": "$reply", "room_id": ROOM_ID})
    return ops


@pytest.fixture
def room():
    return MatrixRoom(ROOM_ID, BOT_USER_ID)


@pytest.mark.asyncio
async def test_trigger_message_sends_reply(bot_handler, message_ops, room):
    handler = MatrixEventHandler(BOT_USER_ID, bot_handler, message_ops)

    result = await handler.handle_message(room, text_event("!h :wq"))

    assert result["success"] is True
    message_ops.send_message.assert_awaited_once_with(ROOM_ID, "https://neovim.io/doc/user/editing.html#:wq")


@pytest.mark.asyncio
async def test_non_trigger_message_is_ignored(bot_handler, message_ops, room):
    handler = MatrixEventHandler(BOT_USER_ID, bot_handler, message_ops)

    assert await handler.handle_message(room, text_event("!hello there")) is None
    message_ops.send_message.assert_not_awaited()


@pytest.mark.asyncio
async def test_own_messages_are_ignored(bot_handler, message_ops, room):
    handler = MatrixEventHandler(BOT_USER_ID, bot_handler, message_ops)

    await handler.handle_message(room, text_event("!h :wq", sender=BOT_USER_ID))

    message_ops.send_message.assert_not_awaited()


@pytest.mark.asyncio
async def test_failed_send_does_not_raise(bot_handler, message_ops, room):
    message_ops.send_message.return_value = {"success": False, "error": "boom"}
    handler = MatrixEventHandler(BOT_USER_ID, bot_handler, message_ops)

    result = await handler.handle_message(room, text_event("!h :wq"))

    assert result == {"success": False, "error": "boom"}


@pytest.mark.asyncio
async def test_handler_error_is_logged_not_raised(message_ops, room):
    broken = Mock()
    broken.dispatch.side_effect = RuntimeError("resolver exploded")
    handler = MatrixEventHandler(BOT_USER_ID, broken, message_ops)

    assert await handler.handle_message(room, text_event("!h :wq")) is None
    message_ops.send_message.assert_not_awaited()


@pytest.mark.asyncio
async def test_room_alias_reaches_gate(exact_resolver, message_ops, room):
    room.canonical_alias = "#neovim:matrix.org"
    gated = BotEventHandler(exact_resolver, gate=RoomGate("#neovim:matrix.org"))
    handler = MatrixEventHandler(BOT_USER_ID, gated, message_ops)

    await handler.handle_message(room, text_event("!h :wq"))

    message_ops.send_message.assert_awaited_once_with(ROOM_ID, "https://neovim.io/doc/user/editing.html#:wq")


@pytest.mark.asyncio
async def test_gate_rejects_other_room(exact_resolver, message_ops):
    gated = BotEventHandler(exact_resolver, gate=RoomGate("!elsewhere:matrix.org", "Wrong room!"))
    handler = MatrixEventHandler(BOT_USER_ID, gated, message_ops)

    await handler.handle_message(MatrixRoom(ROOM_ID, BOT_USER_ID), text_event("!h :wq"))

    message_ops.send_message.assert_awaited_once_with(ROOM_ID, "Wrong room!")


@pytest.mark.asyncio
async def test_invite_is_accepted(bot_handler, message_ops, room, mock_client):
    mock_client.join.return_value = Mock(room_id=ROOM_ID)
    handler = MatrixEventHandler(BOT_USER_ID, bot_handler, message_ops, client=mock_client)
    invite = Mock(state_key=BOT_USER_ID, membership="invite", sender="@alice:matrix.org")

    assert await handler.handle_invite(room, invite) is True
    mock_client.join.assert_awaited_once_with(ROOM_ID)


@pytest.mark.asyncio
async def test_invite_for_someone_else_is_ignored(bot_handler, message_ops, room, mock_client):
    handler = MatrixEventHandler(BOT_USER_ID, bot_handler, message_ops, client=mock_client)
    invite = Mock(state_key="@bob:matrix.org", membership="invite", sender="@alice:matrix.org")

    assert await handler.handle_invite(room, invite) is False
    mock_client.join.assert_not_awaited()


@pytest.mark.asyncio
async def test_invite_not_joined_when_disabled(bot_handler, message_ops, room, mock_client):
    handler = MatrixEventHandler(
        BOT_USER_ID, bot_handler, message_ops, client=mock_client, auto_join_invites=False
    )
    invite = Mock(state_key=BOT_USER_ID, membership="invite", sender="@alice:matrix.org")

    assert await handler.handle_invite(room, invite) is False
    mock_client.join.assert_not_awaited()


@pytest.mark.asyncio
async def test_invite_join_error(bot_handler, message_ops, room, mock_client):
    mock_client.join.return_value = JoinError(message="M_FORBIDDEN")
    handler = MatrixEventHandler(BOT_USER_ID, bot_handler, message_ops, client=mock_client)
    invite = Mock(state_key=BOT_USER_ID, membership="invite", sender="@alice:matrix.org")

    assert await handler.handle_invite(room, invite) is False


# ---- Auth handler ----

@pytest.fixture
def auth_handler(tmp_path):
    return MatrixAuthHandler("https://matrix.org", BOT_USER_ID, "secret", tmp_path / "store")


def test_save_and_load_session(auth_handler):
    auth_handler.save_token("tok123", "DEVICE")

    session = auth_handler.load_session()

    assert session["access_token"] == "tok123"
    assert session["device_id"] == "DEVICE"
    assert stat.S_IMODE(os.stat(auth_handler.token_file).st_mode) == 0o600


def test_load_session_missing_or_invalid(auth_handler):
    assert auth_handler.load_session() is None

    auth_handler.token_file.parent.mkdir(parents=True)
    auth_handler.token_file.write_text("not json")
    assert auth_handler.load_session() is None


def test_load_session_for_other_user(auth_handler):
    auth_handler.token_file.parent.mkdir(parents=True)
    auth_handler.token_file.write_text(json.dumps({"access_token": "tok", "user_id": "@other:matrix.org"}))

    assert auth_handler.load_session() is None


def test_clear_token(auth_handler):
    auth_handler.save_token("tok123", "DEVICE")
    auth_handler.clear_token()
    assert not auth_handler.token_file.exists()


@pytest.mark.asyncio
async def test_login_success_saves_token(auth_handler, mock_client):
    mock_client.login.return_value = LoginResponse(BOT_USER_ID, "DEVICE", "tok123")

    token = await auth_handler.login_with_retry(mock_client)

    assert token == "tok123"
    assert auth_handler.load_session()["access_token"] == "tok123"
    mock_client.login.assert_awaited_once_with("secret", device_name="nvim_help_bot")


@pytest.mark.asyncio
async def test_login_rejected(auth_handler, mock_client):
    mock_client.login.return_value = LoginError(message="Invalid password", status_code="M_FORBIDDEN")

    assert await auth_handler.login_with_retry(mock_client) is None
    assert mock_client.login.await_count == 1


@pytest.mark.asyncio
async def test_login_retries_when_rate_limited(auth_handler, mock_client):
    mock_client.login.side_effect = [
        LoginError(message="Too many requests", status_code="M_LIMIT_EXCEEDED", retry_after_ms=1),
        LoginResponse(BOT_USER_ID, "DEVICE", "tok123"),
    ]

    assert await auth_handler.login_with_retry(mock_client) == "tok123"
    assert mock_client.login.await_count == 2


@pytest.mark.asyncio
async def test_login_exception_on_last_attempt_raises(auth_handler, mock_client):
    mock_client.login.side_effect = ConnectionError("unreachable")

    with pytest.raises(ConnectionError):
        await auth_handler.login_with_retry(mock_client, max_attempts=1)


@pytest.mark.asyncio
async def test_restore_session_with_valid_token(auth_handler, mock_client):
    auth_handler.save_token("tok123", "DEVICE")
    mock_client.whoami.return_value = Mock(spec=WhoamiResponse, user_id=BOT_USER_ID)

    assert await auth_handler.restore_session(mock_client) is True
    mock_client.restore_login.assert_called_once_with(
        user_id=BOT_USER_ID, device_id="DEVICE", access_token="tok123"
    )


@pytest.mark.asyncio
async def test_restore_session_with_invalid_token(auth_handler, mock_client):
    auth_handler.save_token("stale", "DEVICE")
    mock_client.whoami.return_value = Mock(message="M_UNKNOWN_TOKEN")

    assert await auth_handler.restore_session(mock_client) is False
    assert not auth_handler.token_file.exists()


@pytest.mark.asyncio
async def test_restore_session_without_saved_token(auth_handler, mock_client):
    assert await auth_handler.restore_session(mock_client) is False
    mock_client.whoami.assert_not_awaited()
