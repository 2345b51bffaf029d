"""
Tray Client

Wires the state readers, agent invoker, service probe, status monitor and
action controller together for one client process. Front ends (the console
CLI, a tray icon) build one TrayClient and talk only to it.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from .actions import ActionController, ActionKind, ActionResult, ConfirmationPrompt, decline_all
from .config import ClientConfig, get_config
from .invoker import AgentInvoker
from .models import IncidentSummary, ProductIdentity, Snapshot
from .monitor import SnapshotCollector, StatusMonitor
from .paths import AgentPaths
from .product import get_product_identity
from .report import format_incident_report, format_status_report
from .service import ServiceProbe
from .state_reader import StateReader
from .status import ActionAvailability, PresentedStatus, action_availability

logger = logging.getLogger(__name__)


@dataclass
class TrayClient:
    """All client components for one agent data directory."""

    config: ClientConfig
    identity: ProductIdentity
    reader: StateReader
    invoker: AgentInvoker
    probe: ServiceProbe
    monitor: StatusMonitor
    controller: ActionController

    @property
    def paths(self) -> AgentPaths:
        return self.reader.paths

    def refresh(self) -> Snapshot:
        return self.monitor.refresh()

    def status(self) -> PresentedStatus:
        return self.monitor.status

    def availability(self) -> ActionAvailability:
        return action_availability(self.monitor.snapshot, self.invoker.is_available())

    def run_action(self, action: ActionKind) -> ActionResult:
        return self.controller.dispatch(action)

    def last_incident(self) -> Optional[IncidentSummary]:
        result = self.reader.read_last_incident()
        return result.value if result.ok else None

    def status_report(self) -> str:
        """Refresh, then describe the current state in full."""
        snapshot = self.refresh()
        return format_status_report(snapshot, self.identity.version, self.invoker.get_version())

    def incident_report(self) -> str:
        return format_incident_report(self.last_incident())


def create_tray_client(
    config: Optional[ClientConfig] = None,
    confirm: Callable[[ConfirmationPrompt], bool] = decline_all,
    identity: Optional[ProductIdentity] = None,
) -> TrayClient:
    """
    Factory function to create a tray client.

    Args:
        config: Client configuration (defaults to the global one)
        confirm: Confirmation handler for privileged actions
        identity: Product identity (defaults to the process-wide one)

    Returns:
        Configured TrayClient instance
    """
    config = config or get_config()
    identity = identity or get_product_identity()

    reader = StateReader(AgentPaths(config.data_dir))
    invoker = AgentInvoker(
        executable=config.agent_executable,
        timeout_seconds=config.command_timeout_seconds,
        version_timeout_seconds=config.version_timeout_seconds,
    )
    probe = ServiceProbe(config.service_name or identity.service_name)
    monitor = StatusMonitor(
        SnapshotCollector(reader, probe),
        refresh_interval=config.refresh_interval_seconds,
        text_limit=config.status_text_limit,
    )
    controller = ActionController(
        reader=reader,
        invoker=invoker,
        confirm=confirm,
        probe=probe,
        monitor=monitor,
        confirm_interval=config.confirm_interval_seconds,
        confirm_window=config.confirm_window_seconds,
        product_name=identity.name,
    )

    logger.debug(f"Tray client created for {config.data_dir}")
    return TrayClient(
        config=config,
        identity=identity,
        reader=reader,
        invoker=invoker,
        probe=probe,
        monitor=monitor,
        controller=controller,
    )
