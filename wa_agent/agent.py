"""
Private WhatsApp Agent — answers slash-commands you send to yourself.

Send "/ping", "/hi" or "/time" to your own chat ("Message yourself") from any
linked device; the agent replies in the same chat. Replies start with 🤖 so
the agent never answers its own messages.

Usage
-----
    python -m wa_agent.agent
    python -m wa_agent.agent --auth-dir ~/.wa-agent --reconnect-delay 5000

Configuration (.env)
--------------------
    WA_OWNER_NUMBER=923001234567   # required, digits only
    WA_OWNER_NAME=Alishan
    WA_AUTH_DIR=./auth
    WA_RECONNECT_DELAY_MS=3000

Exit status
-----------
    0  shutdown via Ctrl+C / SIGTERM
    1  logged out (delete the auth dir and pair again) or bad configuration
"""

import argparse
import asyncio
import logging
import signal
import sys
import textwrap
from pathlib import Path
from typing import Optional, Sequence

from wa_agent.config import AgentConfig, ConfigError, load_config
from wa_agent.dispatcher import CommandDispatcher
from wa_agent.lifecycle import EXIT_OK, LifecycleManager
from wa_agent.logs import setup_logging
from wa_agent.session import SessionFactory

log = logging.getLogger("wa_agent")


def _default_factory() -> SessionFactory:
    try:
        from wa_agent.neonize_session import create_session
    except ImportError as exc:
        sys.exit(
            f"Missing dependency: {exc}\n"
            'Run: pip install "wa-self-agent[whatsapp]"'
        )
    return create_session


def build_manager(
    config: AgentConfig, session_factory: SessionFactory
) -> LifecycleManager:
    dispatcher = CommandDispatcher(config.owner_jid, owner_name=config.owner_name)
    return LifecycleManager(config, session_factory, dispatcher)


def _install_signal_handlers(manager: LifecycleManager) -> bool:
    loop = asyncio.get_running_loop()
    # The loop only holds weak references to tasks.
    pending: set[asyncio.Task] = set()

    def on_signal(sig: signal.Signals) -> None:
        task = loop.create_task(_on_signal(manager, sig))
        pending.add(task)
        task.add_done_callback(pending.discard)

    try:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, on_signal, sig)
    except (NotImplementedError, RuntimeError):
        # Windows event loops: rely on KeyboardInterrupt instead.
        return False
    return True


async def _on_signal(manager: LifecycleManager, sig: signal.Signals) -> None:
    log.info(f"Received {signal.Signals(sig).name}.")
    await manager.shutdown()


async def run_agent(config: AgentConfig, session_factory: SessionFactory) -> int:
    manager = build_manager(config, session_factory)
    _install_signal_handlers(manager)
    log.info(f"Owner chat : {config.owner_jid}")
    log.info(f"Auth dir   : {config.auth_dir}")
    try:
        return await manager.run()
    except asyncio.CancelledError:
        await manager.shutdown()
        return EXIT_OK


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Private WhatsApp agent — replies to your own slash-commands.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""\
            Commands (send to your own chat):
              /ping   -> pong
              /hi     -> greeting
              /time   -> current local time
        """),
    )
    parser.add_argument(
        "--auth-dir",
        type=Path,
        metavar="PATH",
        help="Credential directory (default: $WA_AUTH_DIR or ./auth)",
    )
    parser.add_argument(
        "--reconnect-delay",
        type=int,
        metavar="MS",
        help="Delay before reconnecting after a dropped connection (default: 3000).",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        type=str.upper,
        help="Log level (default: $WA_LOG_LEVEL or INFO).",
    )
    return parser.parse_args(argv)


def main(
    argv: Optional[Sequence[str]] = None,
    session_factory: Optional[SessionFactory] = None,
) -> None:
    args = parse_args(argv)

    try:
        config = load_config().with_overrides(
            auth_dir=args.auth_dir,
            reconnect_delay_ms=args.reconnect_delay,
            log_level=args.log_level,
        )
    except ConfigError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        sys.exit(1)

    if config.reconnect_delay_ms < 0:
        print("ERROR: --reconnect-delay must not be negative", file=sys.stderr)
        sys.exit(1)

    setup_logging(config.log_dir, config.log_level)
    factory = session_factory or _default_factory()

    try:
        code = asyncio.run(run_agent(config, factory))
    except KeyboardInterrupt:
        log.info("Shutdown requested — exiting cleanly.")
        code = EXIT_OK
    sys.exit(code)


if __name__ == "__main__":
    main()
