"""CLI entry point for PicShare."""

import argparse
import logging
import os
import sys
from pathlib import Path

import uvicorn

from picshare.config import PicShareConfig, apply_env_overrides, load_config
from picshare.logging_config import configure_logging
from picshare.server import create_app

# Flags that override a ``server`` config field: (flag, field, argparse kwargs)
_SERVER_FLAGS = (
    ("--host", "host", {"type": str, "help": "Host address to bind to"}),
    ("--port", "port", {"type": int, "help": "Port to listen on"}),
    (
        "--log-level",
        "log_level",
        {"type": str, "choices": ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
         "help": "Log level (default: INFO)"},
    ),
    (
        "--log-format",
        "log_format",
        {"type": str, "choices": ["text", "json"],
         "help": "Log format: 'text' (human-readable) or 'json' (structured)"},
    ),
    (
        "--shutdown-timeout",
        "shutdown_timeout",
        {"type": int, "help": "Graceful shutdown timeout in seconds (default: 30)"},
    ),
)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Args:
        argv: Argument list to parse. Defaults to sys.argv[1:].

    Returns:
        Parsed argument namespace.
    """
    parser = argparse.ArgumentParser(
        prog="picshare",
        description="PicShare - image sharing service",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to YAML configuration file (default: built-in defaults)",
    )
    for flag, field, kwargs in _SERVER_FLAGS:
        parser.add_argument(flag, dest=field, default=None, **kwargs)
    return parser.parse_args(argv)


def apply_cli_overrides(config: PicShareConfig, args: argparse.Namespace) -> PicShareConfig:
    """Return a copy of ``config`` with the server flags given on the command line."""
    update = {
        field: getattr(args, field)
        for _, field, _ in _SERVER_FLAGS
        if getattr(args, field) is not None
    }
    if not update:
        return config
    return config.model_copy(update={"server": config.server.model_copy(update=update)})


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the PicShare CLI.

    Loads configuration, applies environment and CLI overrides, and starts
    the server using uvicorn. SIGTERM handling is provided by uvicorn's
    built-in graceful shutdown.

    Args:
        argv: Argument list to parse. Defaults to sys.argv[1:].
    """
    args = parse_args(argv)

    # Use a basic stderr logger for config-loading errors
    logging.basicConfig(level=logging.INFO, stream=sys.stderr)
    logger = logging.getLogger("picshare")

    try:
        config = load_config(args.config) if args.config is not None else PicShareConfig()
    except FileNotFoundError:
        logger.error("Config file not found: %s", args.config)
        sys.exit(1)
    except Exception as exc:
        logger.error("Failed to load config: %s", exc)
        sys.exit(1)

    config = apply_cli_overrides(apply_env_overrides(config, os.environ), args)

    configure_logging(
        level=config.server.log_level,
        fmt=config.server.log_format,
    )

    logger.info(
        "Starting PicShare on %s:%d (references at %s)",
        config.server.host,
        config.server.port,
        config.storage.public_base_url,
    )

    app = create_app(config)

    uvicorn.run(
        app,
        host=config.server.host,
        port=config.server.port,
        log_level=config.server.log_level.lower(),
        timeout_graceful_shutdown=config.server.shutdown_timeout,
        timeout_keep_alive=5,
    )


if __name__ == "__main__":
    main()
