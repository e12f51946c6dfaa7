"""Translation of neonize client events into Session events.

Kept free of neonize imports so the mapping can be exercised without the
``whatsapp`` extra installed; the adapter in ``neonize_session`` passes the
library's own JID formatter in.
"""

from __future__ import annotations

from typing import Any, Callable

from wa_agent.session import (
    USER_SERVER,
    ConnectionPhase,
    ConnectionUpdate,
    DisconnectReason,
    InboundMessage,
    MessageContent,
)

JidFormatter = Callable[[Any], str]


def split_jid(chat_id: str) -> tuple[str, str]:
    """``"123@s.whatsapp.net"`` -> ``("123", "s.whatsapp.net")``; bare numbers get the user server."""
    user, _, server = chat_id.partition("@")
    return user, server or USER_SERVER


def to_inbound(ev: Any, jid_to_str: JidFormatter) -> InboundMessage:
    """Convert a neonize MessageEv into an InboundMessage."""
    source = ev.Info.MessageSource
    message = ev.Message
    content = None
    if message is not None and message.ByteSize() > 0:
        content = MessageContent(
            conversation=message.conversation or None,
            extended_text=message.extendedTextMessage.text or None,
        )
    return InboundMessage(
        chat_id=jid_to_str(source.Chat) or None,
        from_me=bool(source.IsFromMe),
        content=content,
        message_id=ev.Info.ID,
        raw=ev,
    )


def connected_update() -> ConnectionUpdate:
    return ConnectionUpdate(connection=ConnectionPhase.OPEN)


def disconnected_update() -> ConnectionUpdate:
    return ConnectionUpdate(
        connection=ConnectionPhase.CLOSE,
        status_code=DisconnectReason.CONNECTION_CLOSED,
    )


def logged_out_update(ev: Any) -> ConnectionUpdate:
    return ConnectionUpdate(
        connection=ConnectionPhase.CLOSE,
        status_code=DisconnectReason.LOGGED_OUT,
        error=RuntimeError(f"logged out (reason={getattr(ev, 'Reason', '?')})"),
    )


def connect_failed_update(exc: BaseException) -> ConnectionUpdate:
    return ConnectionUpdate(
        connection=ConnectionPhase.CLOSE,
        status_code=DisconnectReason.CONNECTION_LOST,
        error=exc,
    )


def qr_update(data_qr: Any) -> ConnectionUpdate:
    payload = data_qr.decode() if isinstance(data_qr, bytes) else str(data_qr)
    return ConnectionUpdate(qr=payload)
