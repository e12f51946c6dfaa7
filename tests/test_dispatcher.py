"""Tests for wa_agent/dispatcher.py — filter chain, command table, reply sending."""
from datetime import datetime

import pytest

from conftest import OWNER_JID, FakeSession, make_message
from wa_agent.dispatcher import REPLY_MARKER, CommandDispatcher, extract_command
from wa_agent.session import InboundMessage, MessageContent

FIXED_NOW = datetime(2026, 3, 14, 9, 26, 53)


def _dispatcher() -> CommandDispatcher:
    return CommandDispatcher(OWNER_JID, owner_name="Alishan", clock=lambda: FIXED_NOW)


# ---------------------------------------------------------------------------
# accept — filter chain
# ---------------------------------------------------------------------------

class TestAccept:
    def test_owner_self_chat_command_accepted(self):
        assert _dispatcher().accept(make_message("/ping")) == "/ping"

    def test_returns_trimmed_text(self):
        assert _dispatcher().accept(make_message("   /ping  \n")) == "/ping"

    def test_no_payload_rejected(self):
        assert _dispatcher().accept(make_message(None)) is None

    def test_empty_payload_rejected(self):
        msg = InboundMessage(chat_id=OWNER_JID, from_me=True, content=MessageContent())
        assert _dispatcher().accept(msg) is None

    def test_missing_chat_id_rejected(self):
        assert _dispatcher().accept(make_message("/ping", chat_id=None)) is None

    def test_empty_chat_id_rejected(self):
        assert _dispatcher().accept(make_message("/ping", chat_id="")) is None

    def test_group_rejected(self):
        msg = make_message("/ping", chat_id="120363012345678901@g.us")
        assert _dispatcher().accept(msg) is None

    def test_group_rejected_even_if_owner_prefix(self):
        msg = make_message("/ping", chat_id="923001234567-1600000000@g.us")
        assert _dispatcher().accept(msg) is None

    def test_lid_chat_rejected(self):
        msg = make_message("/ping", chat_id="123456789012345@lid")
        assert _dispatcher().accept(msg) is None

    def test_not_from_me_rejected(self):
        assert _dispatcher().accept(make_message("/ping", from_me=False)) is None

    def test_other_contact_rejected(self):
        msg = make_message("/ping", chat_id="441234567890@s.whatsapp.net")
        assert _dispatcher().accept(msg) is None

    def test_number_sharing_owner_prefix_rejected(self):
        # Prefix match would let 9230012345670 through; exact match must not.
        msg = make_message("/ping", chat_id="9230012345670@s.whatsapp.net")
        assert _dispatcher().accept(msg) is None

    def test_device_suffixed_jid_rejected(self):
        msg = make_message("/ping", chat_id="923001234567:12@s.whatsapp.net")
        assert _dispatcher().accept(msg) is None

    def test_whitespace_only_text_rejected(self):
        assert _dispatcher().accept(make_message("   \t ")) is None

    def test_extended_text_used_when_no_plain_text(self):
        assert _dispatcher().accept(make_message("/hi", extended=True)) == "/hi"

    def test_plain_text_preferred_over_extended(self):
        msg = InboundMessage(
            chat_id=OWNER_JID,
            from_me=True,
            content=MessageContent(conversation="/ping", extended_text="/hi"),
        )
        assert _dispatcher().accept(msg) == "/ping"

    def test_bot_reply_rejected(self):
        assert _dispatcher().accept(make_message(f"{REPLY_MARKER} pong")) is None

    def test_nested_bot_reply_rejected(self):
        text = f"  {REPLY_MARKER} Command received: {REPLY_MARKER} Command received: x"
        assert _dispatcher().accept(make_message(text)) is None

    def test_marker_then_command_rejected(self):
        assert _dispatcher().accept(make_message(f"{REPLY_MARKER}/ping")) is None

    def test_plain_text_without_prefix_rejected(self):
        assert _dispatcher().accept(make_message("ping")) is None

    def test_prefix_not_at_start_rejected(self):
        assert _dispatcher().accept(make_message("please /ping")) is None


# ---------------------------------------------------------------------------
# extract_command / resolve
# ---------------------------------------------------------------------------

class TestResolve:
    def test_extract_strips_prefix_and_lowers(self):
        assert extract_command("/ PING ") == "ping"

    def test_extract_keeps_arguments(self):
        assert extract_command("/Echo Hello") == "echo hello"

    def test_ping(self):
        assert _dispatcher().resolve("ping") == "🤖 pong"

    def test_hi_uses_owner_name(self):
        assert _dispatcher().resolve("hi") == "🤖 Hello Alishan 🚀"

    def test_time_formats_clock(self):
        assert _dispatcher().resolve("time") == "🤖 14/03/2026, 09:26:53"

    def test_unknown_echoes_keyword(self):
        reply = _dispatcher().resolve("unknown123")
        assert reply == "🤖 Command received: unknown123"
        assert "unknown123" in reply

    def test_empty_keyword_falls_back(self):
        assert _dispatcher().resolve("") == "🤖 Command received: "

    def test_every_reply_starts_with_marker(self):
        d = _dispatcher()
        for keyword in ("ping", "hi", "time", "whatever"):
            assert d.resolve(keyword).startswith(REPLY_MARKER)


# ---------------------------------------------------------------------------
# handle — end to end through a session
# ---------------------------------------------------------------------------

class TestHandle:
    @pytest.mark.asyncio
    async def test_ping_sends_one_pong(self):
        session = FakeSession()
        sent = await _dispatcher().handle(make_message("/ping"), session)
        assert sent is True
        assert session.sent == [(OWNER_JID, "🤖 pong")]

    @pytest.mark.asyncio
    async def test_time_is_case_insensitive(self):
        session = FakeSession()
        await _dispatcher().handle(make_message("/TIME"), session)
        assert session.sent == [(OWNER_JID, "🤖 14/03/2026, 09:26:53")]

    @pytest.mark.asyncio
    async def test_unknown_command_fallback(self):
        session = FakeSession()
        await _dispatcher().handle(make_message("/unknown123"), session)
        assert session.sent == [(OWNER_JID, "🤖 Command received: unknown123")]

    @pytest.mark.asyncio
    async def test_same_command_twice_gives_two_identical_replies(self):
        session = FakeSession()
        d = _dispatcher()
        await d.handle(make_message("/hi"), session)
        await d.handle(make_message("/hi"), session)
        assert len(session.sent) == 2
        assert session.sent[0] == session.sent[1]

    @pytest.mark.asyncio
    async def test_filtered_message_sends_nothing(self):
        session = FakeSession()
        sent = await _dispatcher().handle(make_message("/ping", from_me=False), session)
        assert sent is False
        assert session.sent == []

    @pytest.mark.asyncio
    async def test_own_reply_does_not_loop(self):
        session = FakeSession()
        d = _dispatcher()
        await d.handle(make_message("/ping"), session)
        chat_id, reply = session.sent[0]
        await d.handle(make_message(reply, chat_id=chat_id), session)
        assert len(session.sent) == 1

    @pytest.mark.asyncio
    async def test_no_session_drops_command(self):
        assert await _dispatcher().handle(make_message("/ping"), None) is False

    @pytest.mark.asyncio
    async def test_send_failure_is_contained(self):
        class BrokenSession(FakeSession):
            async def send_text(self, chat_id, text):
                raise ConnectionError("socket closed")

        sent = await _dispatcher().handle(make_message("/ping"), BrokenSession())
        assert sent is False

    @pytest.mark.asyncio
    async def test_malformed_event_is_contained(self):
        class Weird:
            content = MessageContent(conversation="/ping")
            chat_id = 12345  # not a string
            from_me = True
            message_id = "X"

            @property
            def text(self):
                raise ValueError("bad payload")

        session = FakeSession()
        assert await _dispatcher().handle(Weird(), session) is False
        assert session.sent == []
