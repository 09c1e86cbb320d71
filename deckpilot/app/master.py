import argparse
import asyncio
import signal
import sys
from pathlib import Path
from typing import Optional

from deckpilot.core import DeckPilotSystem, __version__, get_shutdown_coordinator
from deckpilot.core.api import APIController, APIServer
from deckpilot.core.api.server import DEFAULT_API_HOST, DEFAULT_API_PORT
from deckpilot.core.config_manager import get_config_manager
from deckpilot.core.devices.status_reconciler import DEFAULT_STATUS_INTERVAL
from deckpilot.core.logging_config import configure_logging
from deckpilot.core.logging_utils import get_module_logger
from deckpilot.core.paths import CONFIG_PATH, MASTER_LOG_FILE, STATE_FILE, ensure_directories


logger = get_module_logger(__name__)


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments with config file defaults."""
    config_manager = get_config_manager()
    config = config_manager.read_config(CONFIG_PATH)

    default_log_level = config_manager.get_str(config, 'log_level', default='info')
    default_console_output = config_manager.get_bool(config, 'console_output', default=True)
    default_state_file = Path(config_manager.get_str(config, 'state_file', default=str(STATE_FILE))).expanduser()
    default_status_interval = config_manager.get_float(config, 'status_interval', default=DEFAULT_STATUS_INTERVAL)
    default_api_enabled = config_manager.get_bool(config, 'api_enabled', default=True)
    default_api_host = config_manager.get_str(config, 'api_host', default=DEFAULT_API_HOST)
    default_api_port = config_manager.get_int(config, 'api_port', default=DEFAULT_API_PORT)

    parser = argparse.ArgumentParser(
        description="DeckPilot - take naming and transport control for networked disk recorders"
    )

    parser.add_argument(
        "--state-file",
        type=Path,
        default=default_state_file,
        help=f"Persisted show state (default: {STATE_FILE})"
    )

    parser.add_argument(
        "--status-interval",
        type=float,
        default=default_status_interval,
        help="Seconds between recorder status polls (default: 5)"
    )

    parser.add_argument(
        "--api",
        dest="api_enabled",
        action="store_true",
        default=default_api_enabled,
        help="Serve the local REST API"
    )

    parser.add_argument(
        "--no-api",
        dest="api_enabled",
        action="store_false",
        help="Run without the local REST API"
    )

    parser.add_argument(
        "--api-host",
        default=default_api_host,
        help="API bind address (default: 127.0.0.1)"
    )

    parser.add_argument(
        "--api-port",
        type=int,
        default=default_api_port,
        help="API port (default: 8090)"
    )

    parser.add_argument(
        "--api-debug",
        action="store_true",
        help="Verbose API error responses and request logging"
    )

    parser.add_argument(
        "--log-level",
        choices=['debug', 'info', 'warning', 'error', 'critical'],
        default=default_log_level,
        help="Logging level (default: info)"
    )

    parser.add_argument(
        "--console",
        dest="console_output",
        action="store_true",
        default=default_console_output,
        help="Also log to console"
    )

    parser.add_argument(
        "--no-console",
        dest="console_output",
        action="store_false",
        help="Log to file only"
    )

    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    return parser.parse_args(argv)


async def main(argv: Optional[list[str]] = None) -> None:
    """
    Main entry point for the DeckPilot service.

    Shutdown Sequence:
    1. A signal (Ctrl+C / SIGTERM), ``POST /api/v1/shutdown`` or an exception
       calls ShutdownCoordinator.initiate_shutdown()
    2. The API server stops accepting requests
    3. The system stops the hub link, the gateway and the status poller and
       writes the final state
    """
    args = parse_args(argv)

    ensure_directories()

    configure_logging(
        args.log_level,
        force=True,
        console=args.console_output,
        log_file=MASTER_LOG_FILE,
    )

    logger.info("=" * 60)
    logger.info("DeckPilot %s starting", __version__)
    logger.info("State file: %s", args.state_file)
    logger.info("Log file: %s", MASTER_LOG_FILE)
    logger.info("=" * 60)

    system = DeckPilotSystem(args.state_file, status_interval=args.status_interval)
    await system.async_init()

    api_server: Optional[APIServer] = None
    if args.api_enabled:
        api_server = APIServer(
            APIController(system),
            host=args.api_host,
            port=args.api_port,
            debug=args.api_debug,
        )

    shutdown_coordinator = get_shutdown_coordinator()
    shutdown_task: Optional[asyncio.Task] = None

    async def stop_api() -> None:
        if api_server is not None:
            await api_server.stop()

    async def stop_system() -> None:
        await system.stop()

    shutdown_coordinator.register_cleanup(stop_api)
    shutdown_coordinator.register_cleanup(stop_system)

    loop = asyncio.get_running_loop()

    def signal_handler():
        nonlocal shutdown_task
        if shutdown_task is None or shutdown_task.done():
            shutdown_task = asyncio.create_task(
                shutdown_coordinator.initiate_shutdown("signal")
            )

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, signal_handler)
        except NotImplementedError:
            pass  # Windows doesn't support add_signal_handler

    try:
        await system.start()
        if api_server is not None:
            await api_server.start()
        await shutdown_coordinator.wait_for_shutdown()
    except Exception as e:
        logger.error("Unexpected error: %s", e, exc_info=True)
        await shutdown_coordinator.initiate_shutdown("exception")
    finally:
        if not shutdown_coordinator.is_complete:
            await shutdown_coordinator.initiate_shutdown("finally block")

    logger.info("=" * 60)
    logger.info("DeckPilot stopped")
    logger.info("=" * 60)


def run(argv: Optional[list[str]] = None) -> int:
    try:
        asyncio.run(main(argv))
        return 0
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return 130
    except Exception as exc:  # pragma: no cover - fatal guard
        print(f"Fatal error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(run())
