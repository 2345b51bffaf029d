"""Tests for the single-instance guard, product identity and configuration."""

import os

import pytest

from src.defender.config import ClientConfig, get_config, set_config
from src.defender.exceptions import InstanceAlreadyRunningError
from src.defender.instance import SingleInstanceLock, default_lock_path
from src.defender.models import ProductIdentity
from src.defender.paths import AgentPaths, get_data_dir
from src.defender.product import (
    DEFAULT_IDENTITY,
    get_product_identity,
    load_product_identity,
    parse_product_descriptor,
    set_product_identity,
)


class TestSingleInstanceLock:
    """Tests for the per-session lock."""

    def test_acquire_and_release(self, temp_dir):
        """Test the lock records the owner pid."""
        lock = SingleInstanceLock(temp_dir / "tray.lock")

        assert lock.acquire()
        assert lock.held
        assert (temp_dir / "tray.lock").read_text() == str(os.getpid())

        lock.release()
        assert not lock.held

    def test_second_instance_refused(self, temp_dir):
        """Test a second holder is refused while the first is alive."""
        path = temp_dir / "tray.lock"

        with SingleInstanceLock(path):
            other = SingleInstanceLock(path)
            assert not other.acquire()
            with pytest.raises(InstanceAlreadyRunningError) as exc:
                other.__enter__()
            assert exc.value.lock_path == path

        with SingleInstanceLock(path) as again:
            assert again.held

    def test_default_path_uses_runtime_dir(self, temp_dir):
        """Test XDG_RUNTIME_DIR is preferred when it exists."""
        os.environ["XDG_RUNTIME_DIR"] = str(temp_dir)

        assert default_lock_path() == temp_dir / "ai-defender-tray.lock"


class TestProductIdentity:
    """Tests for product descriptor resolution."""

    def test_parse_descriptor(self):
        """Test keys are case-insensitive and blanks fall back."""
        identity = parse_product_descriptor('Name = "Acme Guard"\nSERVICE_NAME = ""\nversion = "2.0"\n')

        assert identity == ProductIdentity("Acme Guard", DEFAULT_IDENTITY.service_name, "2.0")

    def test_load_from_descriptor(self, temp_dir):
        """Test PRODUCT.toml next to the client is used."""
        (temp_dir / "PRODUCT.toml").write_text('name = "Acme Guard"\n', encoding="utf-8")

        assert load_product_identity(temp_dir).name == "Acme Guard"

    def test_load_from_version_file(self, temp_dir):
        """Test a bare VERSION file overrides only the version."""
        (temp_dir / "VERSION").write_text("3.1.4\n", encoding="utf-8")

        identity = load_product_identity(temp_dir)

        assert identity.version == "3.1.4"
        assert identity.name == DEFAULT_IDENTITY.name

    def test_defaults(self, temp_dir):
        """Test an empty client directory yields the defaults."""
        assert load_product_identity(temp_dir) == DEFAULT_IDENTITY

    def test_process_wide_identity(self, temp_dir):
        """Test the cached identity is resolved once and can be reset."""
        os.environ["AI_DEFENDER_CLIENT_DIR"] = str(temp_dir)
        (temp_dir / "VERSION").write_text("9.9.9", encoding="utf-8")
        set_product_identity(None)

        assert get_product_identity().version == "9.9.9"
        (temp_dir / "VERSION").write_text("1.0.0", encoding="utf-8")
        assert get_product_identity().version == "9.9.9"


class TestClientConfig:
    """Tests for environment-driven configuration."""

    def test_defaults(self):
        """Test default timings."""
        config = ClientConfig()

        assert config.refresh_interval_seconds == 4.0
        assert config.status_text_limit == 60
        assert config.command_timeout_seconds == 10.0
        assert config.version_timeout_seconds == 5.0
        assert config.confirm_interval_seconds == 0.1
        assert config.confirm_window_seconds == 2.0

    def test_from_env(self, temp_dir):
        """Test overrides from the environment."""
        os.environ["AI_DEFENDER_DATA_DIR"] = str(temp_dir)
        os.environ["AI_DEFENDER_REFRESH_INTERVAL"] = "1.5"
        os.environ["AI_DEFENDER_AGENT_EXE"] = str(temp_dir / "agent")
        os.environ["AI_DEFENDER_SERVICE_NAME"] = "custom-unit"

        config = ClientConfig.from_env()

        assert config.data_dir == temp_dir
        assert config.refresh_interval_seconds == 1.5
        assert config.agent_executable == temp_dir / "agent"
        assert config.service_name == "custom-unit"

    def test_invalid_env_falls_back(self):
        """Test invalid numbers are ignored."""
        os.environ["AI_DEFENDER_COMMAND_TIMEOUT"] = "soon"
        os.environ["AI_DEFENDER_VERSION_TIMEOUT"] = "-3"

        config = ClientConfig.from_env()

        assert config.command_timeout_seconds == 10.0
        assert config.version_timeout_seconds == 5.0

    def test_global_config(self, temp_dir):
        """Test the global config can be replaced."""
        custom = ClientConfig(data_dir=temp_dir)
        set_config(custom)

        assert get_config() is custom

    def test_agent_paths(self, temp_dir):
        """Test state file locations inside the data directory."""
        os.environ["AI_DEFENDER_DATA_DIR"] = str(temp_dir)
        paths = AgentPaths.default()

        assert get_data_dir() == temp_dir
        assert paths.config_path == temp_dir / "config.toml"
        assert paths.killswitch_state_path == temp_dir / "killswitch-state.toml"
        assert paths.incidents_dir == temp_dir / "incidents"
        assert paths.logs_dir == temp_dir / "logs"
