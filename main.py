"""
Presence Bot Farm - Main Entry Point

Keeps a fixed pool of bot accounts connected to a game server.  Starts the
HTTP health endpoint, boots every bot with a stagger, and hands control to
the rotation scheduler until SIGINT/SIGTERM.

Usage:
    python main.py                  # Run with settings from .env / config
    python main.py --status-table   # Also print a per-bot table each heartbeat
    python main.py --single BOT3    # Run one account only
    python main.py --no-rotation    # Reconnect on failure, never rotate
"""
from dotenv import load_dotenv

# Load environment variables from .env file into os.environ
load_dotenv()

import asyncio
import argparse
import logging
import signal
import sys

from pydantic import ValidationError
from rich.console import Console

from core.config import BotSettings
from core.errors import install_exception_handler
from core.health_endpoint import HealthServer
from core.logging_setup import setup_logging
from core.orchestrator import PresenceFarm

logger = logging.getLogger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Presence Bot Farm - connection keeper")
    parser.add_argument("--status-table", action="store_true", help="Print a per-bot status table on every heartbeat")
    parser.add_argument("--single", type=str, help="Run only the named account (e.g. 'BOT1')")
    parser.add_argument("--no-rotation", action="store_true", help="Disable periodic rotation")
    parser.add_argument("--no-health", action="store_true", help="Do not start the HTTP health endpoint")
    return parser.parse_args(argv)


async def main(argv=None) -> int:
    """
    Main execution loop.

    1. Parses command line arguments and loads settings.
    2. Sets up logging and the loop-level error filter.
    3. Starts the health endpoint (before any bot connects).
    4. Bootstraps the farm and waits for SIGINT/SIGTERM.
    5. Shuts the farm down and exits after a short grace delay.
    """
    args = parse_args(argv)

    try:
        settings = BotSettings()
    except ValidationError as e:
        setup_logging()
        logger.error(f"Invalid configuration: {e}")
        return 2
    if args.no_rotation:
        settings.rotation_enabled = False

    setup_logging(settings.log_level)
    logger.info("🎮 Presence Bot Farm - FULL ROTATION EVERY %g MIN", settings.rotation_interval / 60)

    identities = settings.enabled_identities()
    if args.single:
        identities = [i for i in identities if i.name.lower() == args.single.lower()]
        if not identities:
            logger.warning(f"No accounts found matching '{args.single}'")
            return 1

    console = Console() if args.status_table else None
    try:
        farm = PresenceFarm.from_settings(settings, identities=identities, console=console)
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        return 2

    loop = asyncio.get_running_loop()
    install_exception_handler(loop, farm.error_filter)

    stop_signal = asyncio.Event()

    def handle_shutdown(received: signal.Signals) -> None:
        logger.info(f"🛑 Received {received.name}. Initiating graceful shutdown...")
        farm.shutdown()
        stop_signal.set()

    if sys.platform != "win32":
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, handle_shutdown, sig)

    health = None
    if settings.health_enabled and not args.no_health:
        health = HealthServer(farm.pool, settings.health_host, settings.port)
        try:
            await health.start()
        except OSError as e:
            logger.error(f"Could not start health endpoint on port {settings.port}: {e}")
            return 3

    try:
        farm.bootstrap()
        await stop_signal.wait()
    except KeyboardInterrupt:
        logger.info("👋 Stopping farm (interrupted)...")
    finally:
        farm.shutdown()
        await asyncio.sleep(settings.shutdown_grace)
        if health is not None:
            await health.stop()
        logger.info("✅ All bots stopped. Goodbye!")
    return 0


def run() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
