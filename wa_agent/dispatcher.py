"""Command dispatcher — answers slash-commands the owner sends to their own chat.

Only messages that pass every filter below produce a reply:

  1. the event carries a message payload
  2. the conversation id is present
  3. the conversation is a personal chat (not a group, not LID-addressed)
  4. the message was sent by the account itself
  5. the conversation is exactly the owner's self-chat
  6. the text is non-empty after trimming
  7. the text is not one of our own replies (reply marker)
  8. the text starts with the command prefix

Every reply starts with REPLY_MARKER, so step 7 keeps the agent from
answering itself.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional

from wa_agent.session import GROUP_SUFFIX, LID_SUFFIX, InboundMessage, Session

REPLY_MARKER = "🤖"
COMMAND_PREFIX = "/"

_TIME_FORMAT = "%d/%m/%Y, %H:%M:%S"


def extract_command(text: str) -> str:
    """'/ PING ' -> 'ping'."""
    return text.strip()[len(COMMAND_PREFIX):].strip().lower()


class CommandDispatcher:
    """Filters inbound messages and sends one reply per accepted command."""

    def __init__(
        self,
        owner_jid: str,
        owner_name: str = "there",
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.owner_jid = owner_jid
        self.owner_name = owner_name
        self._clock = clock
        self.logger = logging.getLogger(self.__class__.__name__)

    # ------------------------------------------------------------------
    # Filter chain
    # ------------------------------------------------------------------

    def accept(self, msg: InboundMessage) -> Optional[str]:
        """Return the trimmed command text if ``msg`` should be answered, else None."""
        if msg.content is None or msg.content.is_empty():
            return None

        jid = msg.chat_id
        if not jid:
            return None

        if jid.endswith(GROUP_SUFFIX) or jid.endswith(LID_SUFFIX):
            return None

        if not msg.from_me:
            return None

        if jid != self.owner_jid:
            return None

        text = (msg.text or "").strip()
        if not text:
            return None

        if text.startswith(REPLY_MARKER):
            return None

        if not text.startswith(COMMAND_PREFIX):
            return None

        return text

    # ------------------------------------------------------------------
    # Command table
    # ------------------------------------------------------------------

    def resolve(self, command: str) -> str:
        """Map a lower-cased command keyword to its reply."""
        if command == "ping":
            return f"{REPLY_MARKER} pong"
        if command == "hi":
            return f"{REPLY_MARKER} Hello {self.owner_name} 🚀"
        if command == "time":
            return f"{REPLY_MARKER} {self._clock().strftime(_TIME_FORMAT)}"
        return f"{REPLY_MARKER} Command received: {command}"

    # ------------------------------------------------------------------
    # Event handling
    # ------------------------------------------------------------------

    async def handle(self, msg: InboundMessage, session: Optional[Session]) -> bool:
        """Reply to ``msg`` through ``session`` if it is an owner command.

        Returns True when a reply was sent. Never raises.
        """
        try:
            text = self.accept(msg)
            if text is None:
                return False

            self.logger.info(f"Private command: {text}")
            if session is None:
                self.logger.warning(f"No active session — dropping command {text!r}")
                return False

            reply = self.resolve(extract_command(text))
            await session.send_text(msg.chat_id, reply)
            return True
        except Exception as exc:
            self.logger.error(
                f"Error handling message {msg.message_id or '?'}: {exc}", exc_info=True
            )
            return False
