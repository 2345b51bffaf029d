"""AI Defender Tray Client.

User-session control client for the AI Defender endpoint agent. The client
never talks to the agent over IPC: it reads the agent's state files, runs the
agent executable for privileged actions, and confirms every effect by
re-reading state.

Components:
- State file readers and the mode writer
- Agent executable invoker with bounded timeouts
- Service manager probe
- Status reduction and periodic monitor
- Action controller (kill switch, mode toggle)
- Console front end
"""

from .actions import (
    ActionController,
    ActionKind,
    ActionOutcome,
    ActionPhase,
    ActionResult,
    ConfirmationPrompt,
    MessageLevel,
    PromptKind,
    decline_all,
)
from .client import TrayClient, create_tray_client
from .config import ClientConfig, get_config, set_config
from .exceptions import (
    ActionInProgressError,
    AgentCommandError,
    DefenderError,
    ExecutableNotFoundError,
    InstanceAlreadyRunningError,
    MalformedStateError,
    ProcessExitError,
    ProcessLaunchError,
    ProcessTimeoutError,
)
from .instance import SingleInstanceLock
from .invoker import AgentInvoker, InvokeResult, InvokeStatus
from .models import (
    AgentConfig,
    ContainmentState,
    IncidentSummary,
    LicenseState,
    OperatingMode,
    ProductIdentity,
    ServiceState,
    Snapshot,
    ThreatFeedState,
)
from .monitor import SnapshotCollector, StatusMonitor
from .paths import AgentPaths, get_data_dir
from .product import get_product_identity, set_product_identity
from .service import RestartResult, ServiceProbe, ServiceStatus
from .state_reader import ReadResult, ReadStatus, StateReader, WriteResult
from .status import ActionAvailability, Badge, PresentedStatus, action_availability, reduce

__all__ = [
    # Actions
    "ActionController",
    "ActionKind",
    "ActionOutcome",
    "ActionPhase",
    "ActionResult",
    "ConfirmationPrompt",
    "MessageLevel",
    "PromptKind",
    "decline_all",
    # Client
    "TrayClient",
    "create_tray_client",
    # Config
    "ClientConfig",
    "get_config",
    "set_config",
    # Exceptions
    "ActionInProgressError",
    "AgentCommandError",
    "DefenderError",
    "ExecutableNotFoundError",
    "InstanceAlreadyRunningError",
    "MalformedStateError",
    "ProcessExitError",
    "ProcessLaunchError",
    "ProcessTimeoutError",
    # Instance
    "SingleInstanceLock",
    # Invoker
    "AgentInvoker",
    "InvokeResult",
    "InvokeStatus",
    # Models
    "AgentConfig",
    "ContainmentState",
    "IncidentSummary",
    "LicenseState",
    "OperatingMode",
    "ProductIdentity",
    "ServiceState",
    "Snapshot",
    "ThreatFeedState",
    # Monitor
    "SnapshotCollector",
    "StatusMonitor",
    # Paths / product
    "AgentPaths",
    "get_data_dir",
    "get_product_identity",
    "set_product_identity",
    # Service
    "RestartResult",
    "ServiceProbe",
    "ServiceStatus",
    # State
    "ReadResult",
    "ReadStatus",
    "StateReader",
    "WriteResult",
    # Status
    "ActionAvailability",
    "Badge",
    "PresentedStatus",
    "action_availability",
    "reduce",
]
