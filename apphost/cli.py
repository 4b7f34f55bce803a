# =============================================================================
# apphost/cli.py - Command Line Entry Point
# =============================================================================
# Starts an application directory as a process.
#
# Usage:
#   apphost /srv/shop                       # web mode (default)
#   apphost /srv/shop --mode cron           # scheduled tasks
#   apphost /srv/shop --mode internal       # bootstrap, apply patches, exit
#   apphost /srv/shop --port 8080 --host 127.0.0.1
#   python -m apphost /srv/shop
#
# Exit codes:
#   0 - internal mode finished, or shutdown after SIGINT / SIGTERM
#   1 - bootstrap failed, a data patch failed, or shutdown failed
# =============================================================================

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from apphost.core.application import Application, AppMode, AppStatus

logger = logging.getLogger("apphost")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="apphost",
        description="Run an application directory as a web server, a task scheduler or a one-shot job.",
    )
    parser.add_argument("app_dir", type=Path, help="Application root directory")
    parser.add_argument(
        "--mode",
        choices=[mode.value for mode in AppMode],
        help="Run profile (overrides the configured mode)",
    )
    parser.add_argument("--host", help="Host to bind the web server to")
    parser.add_argument("--port", type=int, help="Port for the web server")
    parser.add_argument("--environment", help="Selects config/env/<environment>.json")
    return parser


def runtime_config_from_args(args: argparse.Namespace) -> dict[str, Any]:
    """Options given on the command line; they override every other source."""
    options = {
        "mode": args.mode,
        "host": args.host,
        "port": args.port,
        "environment": args.environment,
    }
    return {key: value for key, value in options.items() if value is not None}


async def run(app: Application) -> int:
    """
    Bootstrap the application and keep it running.

    Returns:
        Process exit code
    """
    try:
        await app.init()
    except Exception:
        logger.exception(f"Failed to start {app.name}")
        await app.destroy()
        return 1

    if app.status != AppStatus.ACTIVE:
        # A data patch failed; the application already shut itself down
        return 1

    if app.config.mode == AppMode.INTERNAL.value:
        await app.destroy()
        return 0

    # Runs until SIGINT / SIGTERM has destroyed the app
    return await app.wait_for_shutdown()


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)

    app_dir = args.app_dir.resolve()
    if not app_dir.is_dir():
        print(f"ERROR: {app_dir} is not a directory", file=sys.stderr)
        sys.exit(2)

    # Makes ENVIRONMENT, HOST and PORT from the app's .env visible as well
    load_dotenv(app_dir / ".env")

    app = Application(app_dir, runtime_config_from_args(args))
    sys.exit(asyncio.run(run(app)))


if __name__ == "__main__":
    main()
