"""
Agent Service Probe

Queries the host service manager for the agent's state and performs the
best-effort restart offered after a mode change.

- Windows: psutil's service API for state, PowerShell Restart-Service to restart
- systemd hosts: ``systemctl show`` for state, ``systemctl restart`` to restart

A service that is not installed, or a host without a supported service
manager, yields no state plus a human-readable detail line.
"""

import logging
import platform
import subprocess
from dataclasses import dataclass
from typing import Callable, Dict, Optional

import psutil

from . import config_store
from .models import ServiceState

logger = logging.getLogger(__name__)

QUERY_TIMEOUT_SECONDS = 5.0
RESTART_TIMEOUT_SECONDS = 20.0

NOT_INSTALLED_DETAIL = "Service not found or not installed."
NO_MANAGER_DETAIL = "Service manager unavailable."

# psutil WindowsService.status() values
WINDOWS_STATES: Dict[str, ServiceState] = {
    "running": ServiceState.RUNNING,
    "stopped": ServiceState.STOPPED,
    "paused": ServiceState.PAUSED,
    "start_pending": ServiceState.START_PENDING,
    "stop_pending": ServiceState.STOP_PENDING,
    "continue_pending": ServiceState.CONTINUE_PENDING,
    "pause_pending": ServiceState.PAUSE_PENDING,
}

# systemd ActiveState values
SYSTEMD_STATES: Dict[str, ServiceState] = {
    "active": ServiceState.RUNNING,
    "reloading": ServiceState.START_PENDING,
    "activating": ServiceState.START_PENDING,
    "deactivating": ServiceState.STOP_PENDING,
    "inactive": ServiceState.STOPPED,
    "failed": ServiceState.STOPPED,
}


@dataclass(frozen=True)
class ServiceStatus:
    """Result of one service manager query."""

    state: Optional[ServiceState]
    detail: Optional[str] = None

    @property
    def running(self) -> bool:
        return self.state == ServiceState.RUNNING


@dataclass(frozen=True)
class RestartResult:
    """Result of a best-effort service restart."""

    success: bool
    message: str = ""


class ServiceProbe:
    """Service manager access for one named service."""

    def __init__(
        self,
        service_name: str,
        runner: Callable[..., "subprocess.CompletedProcess[str]"] = subprocess.run,
        system: Optional[str] = None,
    ):
        """
        Initialize the probe.

        Args:
            service_name: Service (or systemd unit) name of the agent
            runner: subprocess.run-compatible callable
            system: Override for platform.system(), used by tests
        """
        self.service_name = service_name
        self._run = runner
        self._system = system or platform.system()

    def query(self) -> ServiceStatus:
        """Return the agent service state. Never raises."""
        if self._system == "Windows":
            return self._query_windows()
        return self._query_systemd()

    def restart(self) -> RestartResult:
        """
        Restart the agent service.

        Usually requires administrator rights; a failure here is reported,
        not raised.
        """
        if self._system == "Windows":
            command = [
                "powershell",
                "-NoProfile",
                "-Command",
                f"Restart-Service -Name '{self.service_name}' -ErrorAction Stop",
            ]
        else:
            command = ["systemctl", "restart", self.service_name]

        try:
            completed = self._run(
                command,
                capture_output=True,
                text=True,
                timeout=RESTART_TIMEOUT_SECONDS,
            )
        except (OSError, subprocess.SubprocessError) as e:
            logger.warning(f"Service restart failed to run: {e}")
            return RestartResult(False, str(e))

        if completed.returncode != 0:
            message = (completed.stderr or completed.stdout or "").strip()
            logger.warning(f"Service restart exited {completed.returncode}: {message}")
            return RestartResult(False, message or f"exit code {completed.returncode}")

        logger.info(f"Service {self.service_name} restarted")
        return RestartResult(True)

    def _query_windows(self) -> ServiceStatus:
        try:
            status = psutil.win_service_get(self.service_name).status()
        except (psutil.Error, AttributeError, OSError) as e:
            # AttributeError: win_service_get only exists on Windows builds
            logger.debug(f"Service query failed for {self.service_name}: {e}")
            return ServiceStatus(None, NOT_INSTALLED_DETAIL)

        state = WINDOWS_STATES.get(str(status).lower())
        if state is None:
            return ServiceStatus(None, f"Unrecognized service state: {status}")
        return ServiceStatus(state)

    def _query_systemd(self) -> ServiceStatus:
        try:
            completed = self._run(
                [
                    "systemctl",
                    "show",
                    self.service_name,
                    "--property=LoadState",
                    "--property=ActiveState",
                ],
                capture_output=True,
                text=True,
                timeout=QUERY_TIMEOUT_SECONDS,
            )
        except (OSError, subprocess.SubprocessError) as e:
            logger.debug(f"systemctl unavailable: {e}")
            return ServiceStatus(None, NO_MANAGER_DETAIL)

        if completed.returncode != 0:
            return ServiceStatus(None, NO_MANAGER_DETAIL)

        props = config_store.parse(completed.stdout or "")
        if props.get("LoadState") == "not-found":
            return ServiceStatus(None, NOT_INSTALLED_DETAIL)

        state = SYSTEMD_STATES.get(props.get("ActiveState", ""))
        if state is None:
            return ServiceStatus(None, f"Unrecognized service state: {props.get('ActiveState')}")
        return ServiceStatus(state)
