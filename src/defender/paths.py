"""
Configurable paths for the AI Defender tray client.

The agent's data directory is resolved in this order:

  1. AI_DEFENDER_DATA_DIR        (explicit override)
  2. %ProgramData%\\AI Defender  (Windows)
  3. /var/lib/ai-defender        (other platforms)

The client directory (where the agent executable and PRODUCT.toml are
expected to sit) is the frozen executable's folder, or the source checkout
root when running from source.
"""

import os
import platform
import sys
from dataclasses import dataclass
from pathlib import Path

DATA_DIR_ENV = "AI_DEFENDER_DATA_DIR"
CLIENT_DIR_ENV = "AI_DEFENDER_CLIENT_DIR"
PRODUCT_DIR_NAME = "AI Defender"


def get_data_dir() -> Path:
    """Return the agent data directory, configurable via env var."""
    data_dir = os.environ.get(DATA_DIR_ENV)
    if data_dir:
        return Path(data_dir)
    if platform.system() == "Windows":
        program_data = os.environ.get("ProgramData", "C:\\ProgramData")
        return Path(program_data) / PRODUCT_DIR_NAME
    return Path("/var/lib/ai-defender")


def get_client_dir() -> Path:
    """Return the directory the client runs from."""
    client_dir = os.environ.get(CLIENT_DIR_ENV)
    if client_dir:
        return Path(client_dir)
    if getattr(sys, "frozen", False):
        return Path(sys.executable).resolve().parent
    return Path(__file__).resolve().parents[2]


@dataclass(frozen=True)
class AgentPaths:
    """File locations inside one agent data directory."""

    base_dir: Path

    @classmethod
    def default(cls) -> "AgentPaths":
        return cls(get_data_dir())

    @property
    def config_path(self) -> Path:
        return self.base_dir / "config.toml"

    @property
    def killswitch_state_path(self) -> Path:
        return self.base_dir / "killswitch-state.toml"

    @property
    def license_state_path(self) -> Path:
        return self.base_dir / "license-state.toml"

    @property
    def threat_feed_state_path(self) -> Path:
        return self.base_dir / "threat-feed-state.toml"

    @property
    def logs_dir(self) -> Path:
        return self.base_dir / "logs"

    @property
    def incidents_dir(self) -> Path:
        return self.base_dir / "incidents"
