"""Command-line monitor for an OpenClaw gateway.

Connects to the gateway, prints every observable event and optionally sends
one chat message once the handshake completes.

Usage:
    python -m openclaw_sdk --url ws://localhost:18789 --token $TOKEN
    python -m openclaw_sdk --message "What's on my calendar today?"
    python -m openclaw_sdk --example-config > ~/.openclaw/client.json
"""

import argparse
import asyncio
import logging
import signal
import sys
from dataclasses import replace
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from openclaw_sdk.bus import (
    ActivityChanged,
    ChannelHealthChanged,
    ConnectionStateChanged,
    NotificationReceived,
    SessionsChanged,
    UsageChanged,
)
from openclaw_sdk.client.config import (
    ClientConfig,
    generate_example_config,
    get_config_paths,
    load_client_config,
)
from openclaw_sdk.client.connection import ConnectionManager
from openclaw_sdk.errors import GatewayError
from openclaw_sdk.models import ConnectionState

logger = logging.getLogger(__name__)


# ANSI color codes
class Colors:
    RESET = "\033[0m"
    DIM = "\033[2m"
    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    CYAN = "\033[36m"
    MAGENTA = "\033[35m"


def colorize(text: str, color: str) -> str:
    """Apply ANSI color to text."""
    return f"{color}{text}{Colors.RESET}"


_STATE_COLORS = {
    ConnectionState.CONNECTED: Colors.GREEN,
    ConnectionState.CONNECTING: Colors.YELLOW,
    ConnectionState.DISCONNECTED: Colors.DIM,
    ConnectionState.ERROR: Colors.RED,
}


def attach_printers(manager: ConnectionManager) -> None:
    """Print observable events as they are published."""
    bus = manager.bus

    def on_state(e: ConnectionStateChanged) -> None:
        print(colorize(f"[state] {e.previous.value} -> {e.state.value}", _STATE_COLORS[e.state]))

    def on_notification(e: NotificationReceived) -> None:
        n = e.notification
        print(colorize(f"[{n.category}] {n.title}: ", Colors.MAGENTA) + n.message)

    def on_activity(e: ActivityChanged) -> None:
        if e.activity is None:
            print(colorize("[activity] idle", Colors.DIM))
        else:
            print(colorize(f"[activity] {e.activity.session_key}: ", Colors.CYAN) + e.activity.display_text)

    def on_channels(e: ChannelHealthChanged) -> None:
        for channel in e.channels:
            print(colorize("[channel] ", Colors.CYAN) + channel.display_text)

    def on_sessions(e: SessionsChanged) -> None:
        print(colorize(f"[sessions] {len(e.sessions)} session(s)", Colors.CYAN))
        for session in e.sessions:
            marker = "*" if session.is_main else " "
            detail = session.current_activity or session.status
            print(f"  {marker} {session.key}  {detail}")

    def on_usage(e: UsageChanged) -> None:
        print(colorize("[usage] ", Colors.CYAN) + e.usage.display_text)

    bus.subscribe(ConnectionStateChanged, on_state)
    bus.subscribe(NotificationReceived, on_notification)
    bus.subscribe(ActivityChanged, on_activity)
    bus.subscribe(ChannelHealthChanged, on_channels)
    bus.subscribe(SessionsChanged, on_sessions)
    bus.subscribe(UsageChanged, on_usage)


async def run_monitor(
    config: ClientConfig,
    message: Optional[str] = None,
    manager: Optional[ConnectionManager] = None,
    stop: Optional[asyncio.Event] = None,
) -> None:
    """Connect and print events until ``stop`` is set or a signal arrives."""
    manager = manager or ConnectionManager(config)
    attach_printers(manager)

    stop = stop or asyncio.Event()
    send_tasks = []

    async def send_once(text: str) -> None:
        try:
            await manager.send_chat_message(text)
        except GatewayError as e:
            print(colorize(f"Error: {e}", Colors.RED))

    def on_state(e: ConnectionStateChanged) -> None:
        # Only the first successful handshake sends the message
        if e.state == ConnectionState.CONNECTED and message and not send_tasks:
            send_tasks.append(asyncio.create_task(send_once(message)))

    manager.bus.subscribe(ConnectionStateChanged, on_state)

    loop = asyncio.get_running_loop()
    handled_signals = []
    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, stop.set)
            handled_signals.append(sig)
        except NotImplementedError:
            # Windows event loops do not support signal handlers
            pass

    print(colorize(f"Connecting to {config.gateway.url}...", Colors.DIM))
    try:
        await manager.connect()
        await stop.wait()
    finally:
        for task in send_tasks:
            task.cancel()
        await asyncio.gather(*send_tasks, return_exceptions=True)
        await manager.close()
        for sig in handled_signals:
            loop.remove_signal_handler(sig)


def main():
    parser = argparse.ArgumentParser(
        description="Monitor an OpenClaw gateway",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="\n".join(
            ["Config files (lowest precedence first):"]
            + [f"  {path}" for path in get_config_paths(Path.cwd()).values()]
        ),
    )
    parser.add_argument(
        "--url",
        help="Gateway WebSocket URL (overrides config)",
    )
    parser.add_argument(
        "--token",
        help="Gateway token (overrides config)",
    )
    parser.add_argument(
        "--env-file",
        default=".env",
        help="Path to .env file (default: .env)",
    )
    parser.add_argument(
        "--message", "-m",
        help="Send a chat message once connected",
    )
    parser.add_argument(
        "--no-poll",
        action="store_true",
        help="Disable periodic health and session polling",
    )
    parser.add_argument(
        "--example-config",
        action="store_true",
        help="Print an example client.json and exit",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Verbose logging",
    )
    args = parser.parse_args()

    if args.example_config:
        print(generate_example_config())
        return

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    load_dotenv(args.env_file)
    config = load_client_config(Path.cwd())

    gateway_overrides = {}
    if args.url:
        gateway_overrides["url"] = args.url
    if args.token:
        gateway_overrides["token"] = args.token
    try:
        if gateway_overrides:
            config.gateway = replace(config.gateway, **gateway_overrides)
    except ValueError as e:
        print(colorize(f"Error: {e}", Colors.RED))
        sys.exit(2)
    if args.no_poll:
        config.polling = replace(config.polling, enabled=False)

    try:
        asyncio.run(run_monitor(config, message=args.message))
    except KeyboardInterrupt:
        print(colorize("\nGoodbye!", Colors.DIM))


if __name__ == "__main__":
    main()
