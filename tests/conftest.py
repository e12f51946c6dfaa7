"""Pytest configuration — adds project root to sys.path and provides a fake session."""
import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).parent.parent

# Make wa_agent importable without installing the project
sys.path.insert(0, str(PROJECT_ROOT))

from wa_agent.config import AgentConfig  # noqa: E402
from wa_agent.session import (  # noqa: E402
    ConnectionPhase,
    ConnectionUpdate,
    DisconnectReason,
    InboundMessage,
    MessageContent,
    Session,
    SessionEvent,
)

OWNER = "923001234567"
OWNER_JID = f"{OWNER}@s.whatsapp.net"


class FakeSession(Session):
    """In-memory Session: records sends, lets tests push connection/message events."""

    def __init__(self, connect_error=None):
        super().__init__()
        self.connect_error = connect_error
        self.connected = False
        self.closed = False
        self.sent: list[tuple[str, str]] = []

    async def connect(self):
        if self.connect_error is not None:
            raise self.connect_error
        self.connected = True

    async def send_text(self, chat_id, text):
        self.sent.append((chat_id, text))

    async def close(self):
        self.closed = True

    # -- helpers for tests ------------------------------------------------

    async def push_qr(self, payload="2@fake-qr-payload"):
        await self.emit(SessionEvent.CONNECTION_UPDATE, ConnectionUpdate(qr=payload))

    async def push_open(self):
        await self.emit(
            SessionEvent.CONNECTION_UPDATE,
            ConnectionUpdate(connection=ConnectionPhase.OPEN),
        )

    async def push_close(self, status_code=DisconnectReason.CONNECTION_CLOSED):
        await self.emit(
            SessionEvent.CONNECTION_UPDATE,
            ConnectionUpdate(connection=ConnectionPhase.CLOSE, status_code=status_code),
        )

    async def push_messages(self, *messages):
        await self.emit(SessionEvent.MESSAGES_UPSERT, list(messages))


class FakeFactory:
    """SessionFactory that hands out FakeSessions and remembers them."""

    def __init__(self, *errors):
        self._errors = list(errors)
        self.sessions: list[FakeSession] = []

    def __call__(self, config):
        error = self._errors.pop(0) if self._errors else None
        session = FakeSession(connect_error=error)
        self.sessions.append(session)
        return session

    @property
    def calls(self) -> int:
        return len(self.sessions)

    @property
    def last(self) -> FakeSession:
        return self.sessions[-1]


def make_message(text="/ping", chat_id=OWNER_JID, from_me=True, extended=False):
    if text is None:
        content = None
    elif extended:
        content = MessageContent(extended_text=text)
    else:
        content = MessageContent(conversation=text)
    return InboundMessage(chat_id=chat_id, from_me=from_me, content=content, message_id="ABC123")


@pytest.fixture
def config(tmp_path):
    return AgentConfig(
        owner_number=OWNER,
        owner_name="Alishan",
        auth_dir=tmp_path / "auth",
        reconnect_delay_ms=20,
        log_dir=tmp_path / "logs",
        log_level="INFO",
    )


@pytest.fixture
def factory():
    return FakeFactory()
