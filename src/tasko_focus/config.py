"""Configuration for the focus service and CLI.

Values come from the environment, optionally seeded from a .env file in the
working directory.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .timer import DEFAULT_DURATION_SECONDS

logger = logging.getLogger("tasko_focus.config")

DEFAULT_DB_PATH = Path.home() / ".tasko" / "focus.db"
DEFAULT_PORT = 7788
DEFAULT_HOST = "127.0.0.1"


@dataclass
class FocusConfig:
    db_path: Path = DEFAULT_DB_PATH
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    api_url: str = f"http://localhost:{DEFAULT_PORT}"
    default_duration_seconds: int = DEFAULT_DURATION_SECONDS
    tick_seconds: int = 1
    rewards_file: Optional[Path] = None
    log_level: str = "INFO"
    log_buffer_size: int = 100


def _env_int(name: str, default: int, minimum: int = 1) -> int:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning(f"Config: {name}={raw!r} is not an integer, using {default}")
        return default
    if value < minimum:
        logger.warning(f"Config: {name}={value} is below {minimum}, using {default}")
        return default
    return value


def load_config(env_file: Optional[Path] = None) -> FocusConfig:
    """Build a FocusConfig from environment variables."""
    load_dotenv(env_file)

    port = _env_int("TASKO_FOCUS_PORT", DEFAULT_PORT)
    rewards_file = os.environ.get("TASKO_FOCUS_REWARDS_FILE")
    return FocusConfig(
        db_path=Path(os.environ.get("TASKO_FOCUS_DB", str(DEFAULT_DB_PATH))).expanduser(),
        host=os.environ.get("TASKO_FOCUS_HOST", DEFAULT_HOST),
        port=port,
        api_url=os.environ.get("TASKO_FOCUS_URL", f"http://localhost:{port}").rstrip("/"),
        default_duration_seconds=_env_int("TASKO_FOCUS_DEFAULT_DURATION", DEFAULT_DURATION_SECONDS),
        tick_seconds=_env_int("TASKO_FOCUS_TICK_SECONDS", 1),
        rewards_file=Path(rewards_file).expanduser() if rewards_file else None,
        log_level=os.environ.get("TASKO_FOCUS_LOG_LEVEL", "INFO").upper(),
        log_buffer_size=_env_int("TASKO_FOCUS_LOG_BUFFER", 100),
    )
