"""Connection lifecycle — owns the session handle and decides when to reconnect.

States:
    DISCONNECTED -> CONNECTING -> CONNECTED -> DISCONNECTED (on close)
    any -> STOPPED (logged out, or shutdown signal)

A recoverable close schedules exactly one delayed restart; the reconnect
guard drops any further trigger until that restart begins. A logged-out close
stops the manager with exit code 1, since the stored credentials are no
longer valid.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Callable, Iterable, Optional

from wa_agent.config import AgentConfig
from wa_agent.dispatcher import CommandDispatcher
from wa_agent.qr import render_qr
from wa_agent.session import (
    ConnectionPhase,
    ConnectionUpdate,
    InboundMessage,
    Session,
    SessionEvent,
    SessionFactory,
)

EXIT_OK = 0
EXIT_LOGGED_OUT = 1


class LifecycleState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    STOPPED = "stopped"


class LifecycleManager:
    """Creates, watches and replaces the single WhatsApp session."""

    def __init__(
        self,
        config: AgentConfig,
        session_factory: SessionFactory,
        dispatcher: CommandDispatcher,
        qr_renderer: Callable[[str], None] = render_qr,
    ):
        self.config = config
        self._session_factory = session_factory
        self._dispatcher = dispatcher
        self._qr_renderer = qr_renderer
        self.logger = logging.getLogger(self.__class__.__name__)

        self.state = LifecycleState.DISCONNECTED
        self.session: Optional[Session] = None
        self.exit_code: Optional[int] = None

        self._starting = False
        self._reconnect_pending = False
        self._restart_task: Optional[asyncio.Task] = None
        self._stopped: Optional[asyncio.Event] = None

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_pending

    @property
    def stopped(self) -> bool:
        return self.state is LifecycleState.STOPPED

    def _stopped_event(self) -> asyncio.Event:
        # Bound to the running loop on first use.
        if self._stopped is None:
            self._stopped = asyncio.Event()
        return self._stopped

    # ------------------------------------------------------------------
    # Start / restart
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Create a fresh session, subscribe to it and begin connecting."""
        if self.stopped:
            self.logger.warning("Start requested after stop — ignoring.")
            return
        if self._starting:
            self.logger.warning("Start already in progress — dropping duplicate request.")
            return

        self._starting = True
        self.state = LifecycleState.CONNECTING
        self.logger.info("Starting WhatsApp session…")
        session = None
        try:
            session = self._session_factory(self.config)
            self._subscribe(session)
            self.session = session
            await session.connect()
        except Exception as exc:
            self.logger.error(f"Session startup failed: {exc}", exc_info=True)
            self.session = None
            self.state = LifecycleState.DISCONNECTED
            if session is not None:
                await self._close_session(session)
            self.schedule_restart()
        finally:
            self._starting = False

    def schedule_restart(self) -> bool:
        """Schedule one delayed start. Returns False if a restart is already pending."""
        if self.stopped:
            return False
        if self._reconnect_pending:
            self.logger.warning("Restart already pending — not scheduling another.")
            return False

        self._reconnect_pending = True
        delay = self.config.reconnect_delay
        self.logger.info(f"Reconnecting in {delay:.1f}s…")
        self._restart_task = asyncio.get_running_loop().create_task(
            self._delayed_start(delay)
        )
        return True

    async def _delayed_start(self, delay: float) -> None:
        await asyncio.sleep(delay)
        self._reconnect_pending = False
        self._restart_task = None
        await self.start()

    def cancel_restart(self) -> bool:
        """Cancel a pending delayed restart. Returns True if one was cancelled."""
        task = self._restart_task
        self._restart_task = None
        self._reconnect_pending = False
        if task is None or task.done():
            return False
        task.cancel()
        return True

    # ------------------------------------------------------------------
    # Session event handlers
    # ------------------------------------------------------------------

    def _subscribe(self, session: Session) -> None:
        async def on_connection(update: ConnectionUpdate) -> None:
            await self.handle_connection_update(session, update)

        async def on_messages(messages: Iterable[InboundMessage]) -> None:
            await self.handle_messages(session, messages)

        async def on_credentials(_payload) -> None:
            self.logger.debug("Credentials updated.")

        session.on(SessionEvent.CONNECTION_UPDATE, on_connection)
        session.on(SessionEvent.MESSAGES_UPSERT, on_messages)
        session.on(SessionEvent.CREDENTIALS_UPDATE, on_credentials)

    async def handle_connection_update(
        self, source: Session, update: ConnectionUpdate
    ) -> None:
        if source is not self.session:
            self.logger.debug("Ignoring connection update from a stale session.")
            return

        if update.qr:
            self.logger.info("QR code received — scan it with WhatsApp to pair.")
            self._qr_renderer(update.qr)

        if update.connection is ConnectionPhase.OPEN:
            self.state = LifecycleState.CONNECTED
            self.cancel_restart()
            self.logger.info("✅ Private WhatsApp Agent Ready")

        elif update.connection is ConnectionPhase.CLOSE:
            await self._on_close(source, update)

    async def _on_close(self, source: Session, update: ConnectionUpdate) -> None:
        self.session = None
        await self._close_session(source)
        if update.is_logged_out:
            self.logger.error(
                "Logged out of WhatsApp — not reconnecting. "
                f"Delete {self.config.auth_dir} and restart to pair again."
            )
            self._stop(EXIT_LOGGED_OUT)
            return

        self.state = LifecycleState.DISCONNECTED
        self.logger.warning(
            f"Connection closed (status={update.status_code}, error={update.error}). "
            "Reconnecting: True"
        )
        self.schedule_restart()

    async def handle_messages(
        self, source: Session, messages: Iterable[InboundMessage]
    ) -> None:
        if source is not self.session:
            self.logger.debug("Ignoring messages from a stale session.")
            return
        for msg in messages or ():
            await self._dispatcher.handle(msg, self.session)

    async def _close_session(self, session: Session) -> None:
        try:
            await session.close()
        except Exception as exc:
            self.logger.error(f"Error while closing session: {exc}", exc_info=True)

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    def _stop(self, exit_code: int) -> None:
        self.cancel_restart()
        self.state = LifecycleState.STOPPED
        if self.exit_code is None:
            self.exit_code = exit_code
        self._stopped_event().set()

    async def shutdown(self) -> None:
        """Close the active session (if any) and stop with exit code 0."""
        if self.stopped:
            return
        self.logger.info("Shutdown requested — closing session.")
        self.cancel_restart()
        session, self.session = self.session, None
        if session is not None:
            await self._close_session(session)
        self._stop(EXIT_OK)

    async def run(self) -> int:
        """Start the first session and wait until the manager stops. Returns the exit code."""
        stopped = self._stopped_event()
        await self.start()
        await stopped.wait()
        return self.exit_code if self.exit_code is not None else EXIT_OK
