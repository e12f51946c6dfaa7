"""Agent configuration, read from the environment (and .env) once per process."""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

from wa_agent.session import user_jid

_DEFAULT_RECONNECT_DELAY_MS = 3000


class ConfigError(ValueError):
    """Raised when the environment does not describe a usable agent."""


@dataclass(frozen=True)
class AgentConfig:
    owner_number: str          # digits only, e.g. "923001234567"
    owner_name: str
    auth_dir: Path             # protocol client credential store lives here
    reconnect_delay_ms: int
    log_dir: Path
    log_level: str

    @property
    def owner_jid(self) -> str:
        return user_jid(self.owner_number)

    @property
    def reconnect_delay(self) -> float:
        """Reconnect delay in seconds."""
        return self.reconnect_delay_ms / 1000

    def with_overrides(self, **changes) -> "AgentConfig":
        """Return a copy with every non-None keyword applied."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})


def _validate_number(raw: str) -> str:
    number = raw.strip()
    if not number:
        raise ConfigError(
            "WA_OWNER_NUMBER is not set.\n"
            "Add it to your .env file: WA_OWNER_NUMBER=923001234567 (no +, no spaces)"
        )
    if not number.isdigit():
        raise ConfigError(
            f"WA_OWNER_NUMBER must contain digits only (no +, spaces or dashes): {raw!r}"
        )
    return number


def _parse_delay(raw: str) -> int:
    try:
        delay = int(raw)
    except ValueError:
        raise ConfigError(f"WA_RECONNECT_DELAY_MS must be an integer: {raw!r}") from None
    if delay < 0:
        raise ConfigError(f"WA_RECONNECT_DELAY_MS must not be negative: {delay}")
    return delay


def load_config(env: Optional[Mapping[str, str]] = None) -> AgentConfig:
    """Build an AgentConfig from ``env`` (defaults to os.environ after load_dotenv)."""
    if env is None:
        load_dotenv()
        env = os.environ

    return AgentConfig(
        owner_number=_validate_number(env.get("WA_OWNER_NUMBER", "")),
        owner_name=env.get("WA_OWNER_NAME", "").strip() or "there",
        auth_dir=Path(env.get("WA_AUTH_DIR", "auth")).expanduser(),
        reconnect_delay_ms=_parse_delay(
            env.get("WA_RECONNECT_DELAY_MS", str(_DEFAULT_RECONNECT_DELAY_MS))
        ),
        log_dir=Path(env.get("WA_LOG_DIR", "logs")).expanduser(),
        log_level=env.get("WA_LOG_LEVEL", "INFO").upper(),
    )
