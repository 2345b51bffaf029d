"""
Pytest Configuration and Shared Fixtures

This module provides centralized fixtures for testing the tray client.
Every test gets its own agent data directory and a clean process-wide
configuration and product identity.
"""

import os
import stat
import sys
import tempfile
from pathlib import Path
from typing import Callable, Generator, List, Optional, Sequence

import pytest

from src.defender.config import set_config
from src.defender.invoker import InvokeResult, InvokeStatus
from src.defender.models import ProductIdentity, ServiceState
from src.defender.paths import AgentPaths
from src.defender.product import set_product_identity
from src.defender.service import RestartResult, ServiceStatus
from src.defender.state_reader import StateReader

TEST_IDENTITY = ProductIdentity(name="AI Defender", service_name="AI_DEFENDER_AGENT", version="0.1.1-alpha")


# =============================================================================
# Environment Setup
# =============================================================================


@pytest.fixture(autouse=True)
def clean_environment():
    """Ensure clean environment for each test."""
    original_env = os.environ.copy()

    yield

    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture(autouse=True)
def reset_globals():
    """Reset process-wide configuration and product identity between tests."""
    set_config(None)
    set_product_identity(TEST_IDENTITY)

    yield

    set_config(None)
    set_product_identity(None)


# =============================================================================
# Temporary Directory Fixtures
# =============================================================================


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory that's cleaned up after the test."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def data_dir(temp_dir: Path) -> Path:
    """Provide an empty agent data directory."""
    path = temp_dir / "data"
    path.mkdir()
    return path


@pytest.fixture
def agent_paths(data_dir: Path) -> AgentPaths:
    return AgentPaths(data_dir)


@pytest.fixture
def reader(agent_paths: AgentPaths) -> StateReader:
    return StateReader(agent_paths)


# =============================================================================
# State File Helpers
# =============================================================================


def write_killswitch(paths: AgentPaths, enabled: bool) -> None:
    paths.killswitch_state_path.write_text(
        f"enabled = {'true' if enabled else 'false'}\nkeep_locked = false\n",
        encoding="utf-8",
    )


def write_mode(paths: AgentPaths, mode: str) -> None:
    paths.config_path.write_text(f'mode = "{mode}"\n', encoding="utf-8")


def write_incident(paths: AgentPaths, name: str, text: str, mtime: Optional[float] = None) -> Path:
    paths.incidents_dir.mkdir(parents=True, exist_ok=True)
    path = paths.incidents_dir / name
    path.write_text(text, encoding="utf-8")
    if mtime is not None:
        os.utime(path, (mtime, mtime))
    return path


# =============================================================================
# Fakes
# =============================================================================


class FakeInvoker:
    """Stands in for AgentInvoker; records calls and runs an optional side effect."""

    def __init__(
        self,
        status: InvokeStatus = InvokeStatus.SUCCESS,
        user_message: str = "",
        available: bool = True,
        on_run: Optional[Callable[[Sequence[str]], None]] = None,
        version: Optional[str] = None,
    ):
        self.status = status
        self.user_message = user_message
        self.available = available
        self.on_run = on_run
        self.version = version
        self.calls: List[tuple] = []

    def is_available(self) -> bool:
        return self.available

    def run(self, args: Sequence[str], timeout: Optional[float] = None) -> InvokeResult:
        self.calls.append(tuple(args))
        if self.on_run is not None:
            self.on_run(args)
        return InvokeResult(
            self.status,
            args=tuple(args),
            user_message=self.user_message,
            exit_code=0 if self.status == InvokeStatus.SUCCESS else 1,
        )

    def get_version(self) -> Optional[str]:
        return self.version


class FakeProbe:
    """Stands in for ServiceProbe."""

    def __init__(
        self,
        state: Optional[ServiceState] = ServiceState.RUNNING,
        detail: Optional[str] = None,
        restart_result: Optional[RestartResult] = None,
    ):
        self.state = state
        self.detail = detail
        self.restart_result = restart_result or RestartResult(True)
        self.restarts = 0

    def query(self) -> ServiceStatus:
        return ServiceStatus(self.state, self.detail)

    def restart(self) -> RestartResult:
        self.restarts += 1
        return self.restart_result


@pytest.fixture
def fake_invoker() -> FakeInvoker:
    return FakeInvoker()


@pytest.fixture
def fake_probe() -> FakeProbe:
    return FakeProbe()


# =============================================================================
# Fake Agent Executable
# =============================================================================


@pytest.fixture
def make_agent_script(temp_dir: Path) -> Callable[[str], Path]:
    """
    Write an executable shell script standing in for the agent.

    Usage:
        def test_example(make_agent_script):
            exe = make_agent_script('echo "1.0"')
    """
    if sys.platform == "win32":
        pytest.skip("Shell script agents require a POSIX host")

    def make(body: str, name: str = "agent-core") -> Path:
        path = temp_dir / name
        path.write_text(f"#!/bin/sh\n{body}\n", encoding="utf-8")
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return path

    return make
