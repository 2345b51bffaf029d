"""
Status Reduction

Maps one Snapshot to the single status shown to the user. Rules are
evaluated in a fixed order and the first match wins:

  1. service start/stop in progress  -> "Agent Service Restarting"     (neutral)
  2. agent not running               -> "Agent Not Running"            (neutral)
  3. containment enabled             -> "Network Locked ..."           (critical)
  4. Strict mode                     -> "Strict Mode ..."              (info)
     Learning or Unknown mode        -> "Learning Mode ..."            (safe)

Unknown mode is shown as Learning here only. Action gating uses the
observed mode as-is (see actions.py).
"""

from dataclasses import dataclass
from enum import Enum

from .models import OperatingMode, Snapshot

DEFAULT_TEXT_LIMIT = 60

LABEL_RESTARTING = "Agent Service Restarting"
LABEL_NOT_RUNNING = "Agent Not Running"
LABEL_LOCKED = "Network Locked — Kill Switch Active"
LABEL_STRICT = "Strict Mode — Auto Response Enabled"
LABEL_LEARNING = "Learning Mode — Monitoring Only"


class Badge(str, Enum):
    """Severity indicator drawn on the tray icon."""

    NEUTRAL = "gray"
    CRITICAL = "red"
    INFO = "blue"
    SAFE = "green"


@dataclass(frozen=True)
class PresentedStatus:
    """The label and badge for one snapshot."""

    label: str
    badge: Badge

    def display_text(self, limit: int = DEFAULT_TEXT_LIMIT) -> str:
        return truncate(self.label, limit)


@dataclass(frozen=True)
class ActionAvailability:
    """Which privileged actions may be offered for a snapshot."""

    enable_containment: bool
    disable_containment: bool
    toggle_mode: bool
    view_incident: bool = True


def truncate(text: str, limit: int = DEFAULT_TEXT_LIMIT) -> str:
    """Cap text to the host UI's character limit."""
    if limit <= 0:
        return ""
    return text if len(text) <= limit else text[:limit]


def display_mode(mode: OperatingMode) -> OperatingMode:
    """Mode used for display; Unknown is shown as Learning."""
    return OperatingMode.LEARNING if mode == OperatingMode.UNKNOWN else mode


def reduce(snapshot: Snapshot) -> PresentedStatus:
    """Reduce a snapshot to its presented status."""
    if snapshot.service_transitioning:
        return PresentedStatus(LABEL_RESTARTING, Badge.NEUTRAL)

    if not snapshot.agent_running:
        return PresentedStatus(LABEL_NOT_RUNNING, Badge.NEUTRAL)

    if snapshot.containment_enabled:
        return PresentedStatus(LABEL_LOCKED, Badge.CRITICAL)

    if display_mode(snapshot.mode) == OperatingMode.STRICT:
        return PresentedStatus(LABEL_STRICT, Badge.INFO)
    return PresentedStatus(LABEL_LEARNING, Badge.SAFE)


def action_availability(snapshot: Snapshot, executable_available: bool) -> ActionAvailability:
    """
    Decide which actions a UI should enable.

    Restore stays available while the agent is down so a user is never left
    without a way to unlock the network.
    """
    transitioning = snapshot.service_transitioning
    return ActionAvailability(
        enable_containment=snapshot.agent_running and executable_available and not transitioning,
        disable_containment=(
            executable_available
            and not transitioning
            and (not snapshot.agent_running or snapshot.containment_enabled)
        ),
        toggle_mode=snapshot.agent_running and not transitioning,
    )
