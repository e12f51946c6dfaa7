"""neonize-backed Session — WhatsApp multi-device client via whatsmeow.

Setup (one-time):
    1. pip install "wa-self-agent[whatsapp]"
    2. Set WA_OWNER_NUMBER (and optionally WA_AUTH_DIR) in your .env file.
    3. First run prints a QR code — scan it from
       WhatsApp > Settings > Linked Devices > Link a Device.
    4. Subsequent runs reuse <auth_dir>/session.sqlite3 without a QR code.

If WhatsApp reports the device as logged out, delete the auth directory and
pair again.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

from neonize.aioze.client import NewAClient
from neonize.aioze.events import (
    ConnectedEv,
    DisconnectedEv,
    LoggedOutEv,
    MessageEv,
    PairStatusEv,
)
from neonize.utils import build_jid
from neonize.utils.jid import Jid2String

from wa_agent.config import AgentConfig
from wa_agent.neonize_events import (
    connect_failed_update,
    connected_update,
    disconnected_update,
    logged_out_update,
    qr_update,
    split_jid,
    to_inbound,
)
from wa_agent.session import Session, SessionEvent

_STORE_NAME = "session.sqlite3"


class NeonizeSession(Session):
    """Session adapter over neonize's asyncio client."""

    def __init__(self, auth_dir: Path):
        super().__init__()
        self.auth_dir = Path(auth_dir).expanduser().resolve()
        self.auth_dir.mkdir(parents=True, exist_ok=True)
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._connect_task: Optional[asyncio.Task] = None

        self._client = NewAClient(str(self.auth_dir / _STORE_NAME))
        self._client.event(ConnectedEv)(self._on_connected)
        self._client.event(DisconnectedEv)(self._on_disconnected)
        self._client.event(LoggedOutEv)(self._on_logged_out)
        self._client.event(PairStatusEv)(self._on_pair_status)
        self._client.event(MessageEv)(self._on_message)
        self._client.qr(self._on_qr)
        self.logger.info(f"WhatsApp session store : {self.auth_dir / _STORE_NAME}")

    # ------------------------------------------------------------------
    # neonize callbacks
    # ------------------------------------------------------------------

    async def _on_connected(self, _client: NewAClient, _ev: ConnectedEv) -> None:
        await self.emit(SessionEvent.CONNECTION_UPDATE, connected_update())

    async def _on_disconnected(self, _client: NewAClient, _ev: DisconnectedEv) -> None:
        await self.emit(SessionEvent.CONNECTION_UPDATE, disconnected_update())

    async def _on_logged_out(self, _client: NewAClient, ev: LoggedOutEv) -> None:
        await self.emit(SessionEvent.CONNECTION_UPDATE, logged_out_update(ev))

    async def _on_pair_status(self, _client: NewAClient, ev: PairStatusEv) -> None:
        self.logger.info(f"Paired as +{ev.ID.User}")
        await self.emit(SessionEvent.CREDENTIALS_UPDATE, ev)

    async def _on_message(self, _client: NewAClient, ev: MessageEv) -> None:
        await self.emit(SessionEvent.MESSAGES_UPSERT, [to_inbound(ev, Jid2String)])

    def _on_qr(self, _client: NewAClient, data_qr: bytes) -> None:
        # May be invoked from the client's worker thread.
        update = qr_update(data_qr)
        loop = self._loop
        if loop is None:
            self.logger.warning("QR code received before connect() — dropping it.")
            return
        loop.call_soon_threadsafe(
            lambda: loop.create_task(self.emit(SessionEvent.CONNECTION_UPDATE, update))
        )

    # ------------------------------------------------------------------
    # Session interface
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        self._loop = asyncio.get_running_loop()
        self._connect_task = self._loop.create_task(self._client.connect())
        self._connect_task.add_done_callback(self._on_connect_done)

    def _on_connect_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is None:
            return
        self.logger.error(f"neonize connect failed: {exc}")
        self._loop.create_task(
            self.emit(SessionEvent.CONNECTION_UPDATE, connect_failed_update(exc))
        )

    async def send_text(self, chat_id: str, text: str) -> None:
        user, server = split_jid(chat_id)
        await self._client.send_message(build_jid(user, server), text)

    async def close(self) -> None:
        try:
            await self._client.disconnect()
        finally:
            if self._connect_task is not None and not self._connect_task.done():
                self._connect_task.cancel()


def create_session(config: AgentConfig) -> NeonizeSession:
    """SessionFactory used by the CLI."""
    return NeonizeSession(config.auth_dir)
