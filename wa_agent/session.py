"""Session abstraction over the WhatsApp protocol client.

The protocol work (handshake, keys, multi-device sync, credential storage) is
done by a third-party client library. This module describes the small surface
the agent consumes from it:

  - an event stream (credentials, connection state, inbound messages)
  - connect / send_text / close

Concrete adapters subclass ``Session`` and translate the library's own events
into the types below.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Awaitable, Callable, Optional

# ---------------------------------------------------------------------------
# JID domains
# ---------------------------------------------------------------------------

USER_SERVER = "s.whatsapp.net"
GROUP_SUFFIX = "@g.us"
LID_SUFFIX = "@lid"


def user_jid(number: str) -> str:
    """Return the personal chat id for a digits-only phone number."""
    return f"{number}@{USER_SERVER}"


# ---------------------------------------------------------------------------
# Event types
# ---------------------------------------------------------------------------


class SessionEvent(str, Enum):
    CREDENTIALS_UPDATE = "credentials.update"
    CONNECTION_UPDATE = "connection.update"
    MESSAGES_UPSERT = "messages.upsert"


class ConnectionPhase(str, Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSE = "close"


class DisconnectReason(IntEnum):
    """Close status codes reported by WhatsApp Web clients."""

    LOGGED_OUT = 401
    FORBIDDEN = 403
    CONNECTION_LOST = 408
    MULTIDEVICE_MISMATCH = 411
    CONNECTION_CLOSED = 428
    CONNECTION_REPLACED = 440
    BAD_SESSION = 500
    UNAVAILABLE_SERVICE = 503
    RESTART_REQUIRED = 515


@dataclass
class ConnectionUpdate:
    connection: Optional[ConnectionPhase] = None
    qr: Optional[str] = None
    status_code: Optional[int] = None
    error: Optional[BaseException] = None

    @property
    def is_logged_out(self) -> bool:
        return self.status_code == DisconnectReason.LOGGED_OUT


@dataclass
class MessageContent:
    conversation: Optional[str] = None
    extended_text: Optional[str] = None

    def is_empty(self) -> bool:
        return not (self.conversation or self.extended_text)


@dataclass
class InboundMessage:
    """One inbound message as delivered in a ``messages.upsert`` batch."""

    chat_id: Optional[str]
    from_me: bool
    content: Optional[MessageContent] = None
    message_id: str = ""
    raw: Any = field(default=None, repr=False)

    @property
    def text(self) -> Optional[str]:
        if self.content is None:
            return None
        return self.content.conversation or self.content.extended_text


Handler = Callable[[Any], Awaitable[None]]


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


class Session(ABC):
    """One connection to WhatsApp, created fresh on every (re)start.

    Subclasses must implement:
        connect()                 — begin connecting; events follow asynchronously
        send_text(chat_id, text)  — send a plain text message
        close()                   — tear the connection down
    """

    def __init__(self) -> None:
        self._handlers: dict[SessionEvent, list[Handler]] = defaultdict(list)
        self.logger = logging.getLogger(self.__class__.__name__)

    def on(self, event: SessionEvent, handler: Handler) -> None:
        """Subscribe ``handler`` to ``event``. Handlers are awaited in order."""
        self._handlers[SessionEvent(event)].append(handler)

    async def emit(self, event: SessionEvent, payload: Any = None) -> None:
        for handler in list(self._handlers.get(SessionEvent(event), ())):
            try:
                await handler(payload)
            except Exception as exc:
                self.logger.error(
                    f"Handler {getattr(handler, '__qualname__', handler)!s} "
                    f"failed on {SessionEvent(event).value}: {exc}",
                    exc_info=True,
                )

    @abstractmethod
    async def connect(self) -> None:
        """Start connecting. Returns once the attempt is under way."""

    @abstractmethod
    async def send_text(self, chat_id: str, text: str) -> None:
        """Send ``text`` to the conversation ``chat_id``."""

    @abstractmethod
    async def close(self) -> None:
        """Gracefully close the connection."""


SessionFactory = Callable[[Any], Session]
