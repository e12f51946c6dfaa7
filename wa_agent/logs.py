"""Logging setup — console + rotating file (10 MB × 5 backups)."""

import logging
import logging.handlers
from pathlib import Path

_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Protocol client internals (reconnect chatter, websocket teardown, app state)
_NOISY_LOGGERS = ("whatsmeow", "Whatsmeow")


def setup_logging(log_dir: Path, level: str = "INFO") -> None:
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    if not root.handlers:
        formatter = logging.Formatter(_FORMAT)

        console = logging.StreamHandler()
        console.setFormatter(formatter)
        root.addHandler(console)

        rotating = logging.handlers.RotatingFileHandler(
            log_dir / "agent.log",
            maxBytes=10 * 1024 * 1024,  # 10 MB
            backupCount=5,
            encoding="utf-8",
        )
        rotating.setFormatter(formatter)
        root.addHandler(rotating)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.ERROR)
