"""
Tray Client Configuration

Timing, limits and locations for the tray client.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .paths import get_data_dir

logger = logging.getLogger(__name__)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid {name}={raw!r}; using {default}")
        return default
    if value <= 0:
        logger.warning(f"Ignoring non-positive {name}={raw!r}; using {default}")
        return default
    return value


@dataclass
class ClientConfig:
    """Configuration for the tray client."""

    # Locations
    data_dir: Path = field(default_factory=get_data_dir)
    agent_executable: Optional[Path] = None  # None means discover
    service_name: Optional[str] = None  # None means ProductIdentity.service_name

    # Periodic refresh
    refresh_interval_seconds: float = 4.0
    status_text_limit: int = 60

    # Agent invocation
    command_timeout_seconds: float = 10.0
    version_timeout_seconds: float = 5.0

    # Effect confirmation polling
    confirm_interval_seconds: float = 0.1
    confirm_window_seconds: float = 2.0

    @classmethod
    def from_env(cls) -> "ClientConfig":
        """Create configuration from environment variables."""
        exe = os.getenv("AI_DEFENDER_AGENT_EXE")
        return cls(
            data_dir=get_data_dir(),
            agent_executable=Path(exe) if exe else None,
            service_name=os.getenv("AI_DEFENDER_SERVICE_NAME") or None,
            refresh_interval_seconds=_env_float("AI_DEFENDER_REFRESH_INTERVAL", 4.0),
            command_timeout_seconds=_env_float("AI_DEFENDER_COMMAND_TIMEOUT", 10.0),
            version_timeout_seconds=_env_float("AI_DEFENDER_VERSION_TIMEOUT", 5.0),
        )


# Global configuration instance
_config: Optional[ClientConfig] = None


def get_config() -> ClientConfig:
    """Get the global client configuration."""
    global _config
    if _config is None:
        _config = ClientConfig.from_env()
    return _config


def set_config(config: Optional[ClientConfig]) -> None:
    """Set the global client configuration."""
    global _config
    _config = config
