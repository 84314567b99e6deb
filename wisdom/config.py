"""
Configuration management for Wisdom.

Reads configuration from an optional .env file and environment variables with
sensible defaults. Real environment variables always win over the .env file.
"""

import logging
import os
import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv


# Default .env file location
DEFAULT_ENV_FILE = Path("/etc/wisdom/wisdom.env")

DEFAULT_PORT = 4499

VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

logger = logging.getLogger(__name__)


def _load_env_file() -> None:
    """Load environment variables from .env file if it exists."""
    env_file = os.getenv("WISDOM_ENV_FILE", str(DEFAULT_ENV_FILE))
    env_path = Path(env_file)

    if env_path.exists():
        load_dotenv(env_path, override=False)  # Don't override existing env vars


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def _parse_int(name: str, default: str) -> int:
    value = os.getenv(name, default)
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"Invalid {name}: {value} (must be an integer)")


def _parse_float(name: str, default: str) -> float:
    value = os.getenv(name, default)
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"Invalid {name}: {value} (must be a number)")


def split_command(command: str) -> List[str]:
    """
    Split a command line into an argv list.

    Args:
        command: Command line as configured (e.g. "cowsay -f tux")

    Returns:
        argv list suitable for subprocess.Popen

    Raises:
        ValueError: If the command is empty or cannot be tokenized
    """
    try:
        argv = shlex.split(command)
    except ValueError as e:
        raise ValueError(f"Invalid command line {command!r}: {e}")
    if not argv:
        raise ValueError("Command line cannot be empty")
    return argv


@dataclass
class WisdomConfig:
    """Wisdom configuration loaded from .env file and environment variables."""

    # Server settings
    host: str = "0.0.0.0"
    port: int = DEFAULT_PORT
    backlog: int = 16
    concurrent: bool = False

    # External pipeline
    quote_cmd: str = "fortune"
    formatter_cmd: str = "cowsay"

    # Bounds on blocking operations
    generate_timeout_sec: float = 5.0
    write_timeout_sec: float = 5.0
    linger_sec: float = 0.2

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @property
    def quote_argv(self) -> List[str]:
        return split_command(self.quote_cmd)

    @property
    def formatter_argv(self) -> List[str]:
        return split_command(self.formatter_cmd)

    @classmethod
    def load_config(cls) -> "WisdomConfig":
        """
        Load configuration from environment variables.

        Returns:
            WisdomConfig instance with loaded values

        Raises:
            ValueError: If configuration is invalid
        """
        # Load .env file first (if it exists)
        _load_env_file()

        log_file = os.getenv("WISDOM_LOG_FILE")
        if log_file == "":
            log_file = None

        config = cls(
            host=os.getenv("WISDOM_HOST", "0.0.0.0"),
            port=_parse_int("WISDOM_PORT", str(DEFAULT_PORT)),
            backlog=_parse_int("WISDOM_BACKLOG", "16"),
            concurrent=_parse_bool(os.getenv("WISDOM_CONCURRENT", "")),
            quote_cmd=os.getenv("WISDOM_QUOTE_CMD", "fortune"),
            formatter_cmd=os.getenv("WISDOM_FORMATTER_CMD", "cowsay"),
            generate_timeout_sec=_parse_float("WISDOM_GENERATE_TIMEOUT_SEC", "5"),
            write_timeout_sec=_parse_float("WISDOM_WRITE_TIMEOUT_SEC", "5"),
            linger_sec=_parse_float("WISDOM_LINGER_SEC", "0.2"),
            log_level=os.getenv("WISDOM_LOG_LEVEL", "INFO"),
            log_file=log_file,
        )

        config.validate()

        return config

    def validate(self) -> None:
        """
        Validate configuration values.

        Raises:
            ValueError: If configuration is invalid
        """
        if self.port < 1 or self.port > 65535:
            raise ValueError(f"Invalid port: {self.port} (must be 1-65535)")

        if self.backlog <= 0:
            raise ValueError(f"Invalid backlog: {self.backlog} (must be > 0)")

        # Both command lines must tokenize to a non-empty argv
        split_command(self.quote_cmd)
        split_command(self.formatter_cmd)

        if self.generate_timeout_sec <= 0:
            raise ValueError(
                f"Invalid generate timeout: {self.generate_timeout_sec} (must be > 0)"
            )

        if self.write_timeout_sec <= 0:
            raise ValueError(
                f"Invalid write timeout: {self.write_timeout_sec} (must be > 0)"
            )

        if self.linger_sec < 0:
            raise ValueError(f"Invalid linger: {self.linger_sec} (must be >= 0)")

        if self.log_level.upper() not in VALID_LOG_LEVELS:
            raise ValueError(
                f"Invalid log level: {self.log_level} "
                f"(must be one of: {', '.join(VALID_LOG_LEVELS)})"
            )


def load_config() -> WisdomConfig:
    """
    Load and validate Wisdom configuration from environment variables.

    Returns:
        WisdomConfig instance with loaded and validated values

    Raises:
        ValueError: If configuration is invalid
    """
    try:
        return WisdomConfig.load_config()
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        raise
