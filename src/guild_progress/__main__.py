"""Entry point for the guild progress gRPC service.

Usage:
    python -m guild_progress [--port N] [--log-level LEVEL]

Configuration is read from the environment (see ``guild_progress.config``).
Invalid configuration exits with status 1 before any socket is opened.
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import logging
import sys
from datetime import UTC, datetime

# uvloop integration for a faster event loop on Linux/macOS
# Windows is not supported by uvloop, so the default loop is kept there
if sys.platform != "win32":
    try:
        import uvloop

        uvloop.install()
    except ImportError:
        # Install with: pip install guild-progress-service[performance]
        pass

from guild_progress.config import ConfigError, load_config, parse_log_level
from guild_progress.server import serve
from guild_progress.storage.base import StorageError

logger = logging.getLogger("guild_progress")


def _fatal(message: str) -> int:
    logger.error(
        json.dumps(
            {"event": "startup_failed", "error": message, "timestamp": datetime.now(UTC).isoformat()}
        )
    )
    return 1


def main(argv: list[str] | None = None) -> int:
    """Main entry point.

    Returns:
        Exit code (0 for clean shutdown, 1 for startup failure).
    """
    parser = argparse.ArgumentParser(description="Guild progress gRPC service")
    parser.add_argument("--port", type=int, help="Override GRPC_PORT")
    parser.add_argument("--log-level", type=str, help="Override LOG_LEVEL")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    try:
        log_level = None
        if args.log_level is not None:
            log_level = parse_log_level(args.log_level, source="--log-level")
        config = load_config()
    except ConfigError as exc:
        return _fatal(str(exc))

    if args.port is not None:
        config = dataclasses.replace(config, grpc_port=args.port)
    logging.getLogger().setLevel(log_level or config.log_level)

    try:
        asyncio.run(serve(config))
    except (StorageError, RuntimeError) as exc:
        return _fatal(str(exc))

    return 0


if __name__ == "__main__":
    sys.exit(main())
