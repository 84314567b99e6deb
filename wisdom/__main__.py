#!/usr/bin/env python3
"""
Wisdom main entry point.

Allows Wisdom to be run as a module: python3 -m wisdom [PORT]
"""

import argparse
import logging
import sys

from wisdom.config import load_config
from wisdom.http.server import BindError
from wisdom.log import configure_logging
from wisdom.service import WisdomService


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="wisdom",
        description="Serve a fresh fortune over HTTP on every connection.",
    )
    parser.add_argument(
        "port",
        nargs="?",
        type=int,
        help="TCP port to listen on (overrides WISDOM_PORT, default 4499)",
    )
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)

    try:
        config = load_config()
        if args.port is not None:
            config.port = args.port
            config.validate()
    except ValueError as e:
        configure_logging()
        logging.error(f"Wisdom failed to start: {e}")
        return 1

    configure_logging(config.log_level, config.log_file)

    wisdom = None
    try:
        wisdom = WisdomService(config)
        wisdom.start()
        wisdom.install_signal_handlers()
    except BindError as e:
        logging.error(f"Wisdom failed to start: {e}")
        return 1
    except KeyboardInterrupt:
        # Ctrl-C before the handlers were in place
        logging.info("Wisdom shutdown requested")
        if wisdom is not None:
            wisdom.stop()
        return 0

    wisdom.run_forever()
    logging.info("Wisdom shutdown complete")
    return 0


if __name__ == "__main__":
    sys.exit(main())
