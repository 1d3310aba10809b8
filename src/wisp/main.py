#!/usr/bin/env python3
"""
Wisp - Main entry point
"""

import argparse
import logging
import os
import signal
import sys
from typing import List, Optional

from .backends import BACKENDS, ImageBackend
from .config.loader import LOG_LEVELS, load_settings
from .controller import WispDaemon
from .utils.errors import ConfigurationError

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: str, log_file: Optional[str] = None) -> None:
    """Configure root logging, optionally also writing to a file."""
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        log_path = os.path.expanduser(log_file)
        log_dir = os.path.dirname(log_path)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))

    logging.basicConfig(level=getattr(logging, level), format=LOG_FORMAT, handlers=handlers, force=True)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Wisp - reactive widget daemon")
    parser.add_argument("config", help="Path to the widget configuration file")
    parser.add_argument("--settings", help="Path to YAML daemon settings")
    parser.add_argument(
        "--log-level",
        choices=LOG_LEVELS,
        help="Logging level (overrides settings)",
    )
    parser.add_argument(
        "--open",
        action="append",
        default=[],
        metavar="WINDOW",
        help="Window to open at start-up (repeatable)",
    )
    parser.add_argument(
        "--backend",
        choices=sorted(BACKENDS),
        default="headless",
        help="Render backend",
    )
    parser.add_argument("--output-dir", help="Directory for rendered PNGs (image backend)")
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point"""
    args = build_parser().parse_args(argv)

    try:
        settings = load_settings(args.settings)
    except ConfigurationError as e:
        setup_logging("INFO")
        logging.getLogger(__name__).error(f"Invalid settings: {e}")
        sys.exit(1)

    setup_logging(args.log_level or settings["logging"]["level"], settings["logging"]["file"])
    logger = logging.getLogger(__name__)

    config_path = os.path.expanduser(args.config)
    if not os.path.exists(config_path):
        logger.error(f"Configuration file not found: {config_path}")
        sys.exit(1)

    if args.backend == ImageBackend.name:
        backend = ImageBackend(output_dir=args.output_dir)
    else:
        backend = BACKENDS[args.backend]()

    daemon = WispDaemon(config_path, settings=settings, backend=backend)

    def signal_handler(signum, frame):
        """Handle shutdown signals gracefully"""
        logger.info(f"Received signal {signum}, shutting down gracefully...")
        daemon.running = False
        # Raise KeyboardInterrupt to trigger the normal shutdown flow
        raise KeyboardInterrupt()

    signal.signal(signal.SIGTERM, signal_handler)  # systemd stop
    signal.signal(signal.SIGINT, signal_handler)  # Ctrl+C

    try:
        daemon.run(windows=args.open)
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
