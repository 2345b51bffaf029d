"""Tests for the service manager probe."""

import subprocess
from unittest.mock import MagicMock, patch

import psutil

from src.defender.models import ServiceState
from src.defender.service import NO_MANAGER_DETAIL, NOT_INSTALLED_DETAIL, ServiceProbe


def completed(stdout: str = "", returncode: int = 0, stderr: str = ""):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


class TestSystemdProbe:
    """Tests for systemd hosts."""

    def test_running(self):
        """Test an active unit is RUNNING."""
        runner = MagicMock(return_value=completed("LoadState=loaded\nActiveState=active\n"))
        probe = ServiceProbe("ai-defender", runner=runner, system="Linux")

        status = probe.query()

        assert status.state == ServiceState.RUNNING
        assert status.running
        command = runner.call_args[0][0]
        assert command[:3] == ["systemctl", "show", "ai-defender"]

    def test_transitional_states(self):
        """Test activating/deactivating map to pending states."""
        for active, expected in (
            ("activating", ServiceState.START_PENDING),
            ("deactivating", ServiceState.STOP_PENDING),
            ("inactive", ServiceState.STOPPED),
            ("failed", ServiceState.STOPPED),
        ):
            runner = MagicMock(return_value=completed(f"LoadState=loaded\nActiveState={active}\n"))
            status = ServiceProbe("ai-defender", runner=runner, system="Linux").query()
            assert status.state == expected
            assert not status.running

    def test_not_installed(self):
        """Test an unknown unit reports the not-installed detail."""
        runner = MagicMock(return_value=completed("LoadState=not-found\nActiveState=inactive\n"))

        status = ServiceProbe("ai-defender", runner=runner, system="Linux").query()

        assert status.state is None
        assert status.detail == NOT_INSTALLED_DETAIL

    def test_no_systemctl(self):
        """Test a host without systemctl never raises."""
        runner = MagicMock(side_effect=FileNotFoundError("systemctl"))

        status = ServiceProbe("ai-defender", runner=runner, system="Linux").query()

        assert status.state is None
        assert status.detail == NO_MANAGER_DETAIL

    def test_restart_success(self):
        """Test a successful restart."""
        runner = MagicMock(return_value=completed())

        result = ServiceProbe("ai-defender", runner=runner, system="Linux").restart()

        assert result.success
        assert runner.call_args[0][0] == ["systemctl", "restart", "ai-defender"]

    def test_restart_failure(self):
        """Test a refused restart is reported with its message."""
        runner = MagicMock(return_value=completed(returncode=1, stderr="Access denied\n"))

        result = ServiceProbe("ai-defender", runner=runner, system="Linux").restart()

        assert not result.success
        assert result.message == "Access denied"

    def test_restart_timeout(self):
        """Test a hung restart is reported, not raised."""
        runner = MagicMock(side_effect=subprocess.TimeoutExpired(cmd="systemctl", timeout=20))

        result = ServiceProbe("ai-defender", runner=runner, system="Linux").restart()

        assert not result.success


class TestWindowsProbe:
    """Tests for the Windows service manager path."""

    def test_pending_state(self):
        """Test psutil service states are mapped."""
        service = MagicMock()
        service.status.return_value = "start_pending"

        with patch("src.defender.service.psutil.win_service_get", create=True, return_value=service):
            status = ServiceProbe("AI_DEFENDER_AGENT", system="Windows").query()

        assert status.state == ServiceState.START_PENDING

    def test_missing_service(self):
        """Test a missing service yields the not-installed detail."""
        with patch(
            "src.defender.service.psutil.win_service_get",
            create=True,
            side_effect=psutil.NoSuchProcess(0, "AI_DEFENDER_AGENT"),
        ):
            status = ServiceProbe("AI_DEFENDER_AGENT", system="Windows").query()

        assert status.state is None
        assert status.detail == NOT_INSTALLED_DETAIL

    def test_restart_uses_powershell(self):
        """Test the restart command on Windows."""
        runner = MagicMock(return_value=completed())

        ServiceProbe("AI_DEFENDER_AGENT", runner=runner, system="Windows").restart()

        command = runner.call_args[0][0]
        assert command[0] == "powershell"
        assert "Restart-Service -Name 'AI_DEFENDER_AGENT'" in command[-1]
