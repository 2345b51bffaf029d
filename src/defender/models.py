"""
AI Defender Client Data Model

Immutable records for everything the tray client observes about the agent.
Every polling cycle builds fresh values; nothing here is mutated after
construction.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class OperatingMode(str, Enum):
    """Agent operating mode as persisted in config.toml."""

    UNKNOWN = "unknown"
    LEARNING = "learning"
    STRICT = "strict"

    @classmethod
    def from_value(cls, value: Optional[str]) -> "OperatingMode":
        """Map a raw config value to a mode, UNKNOWN when unrecognized."""
        if not value:
            return cls.UNKNOWN
        normalized = value.strip().strip('"').lower()
        if normalized == "learning":
            return cls.LEARNING
        if normalized == "strict":
            return cls.STRICT
        return cls.UNKNOWN

    @property
    def display_name(self) -> str:
        return self.value.capitalize()


class ServiceState(str, Enum):
    """Host service manager state of the agent."""

    RUNNING = "running"
    STOPPED = "stopped"
    PAUSED = "paused"
    START_PENDING = "start_pending"
    STOP_PENDING = "stop_pending"
    CONTINUE_PENDING = "continue_pending"
    PAUSE_PENDING = "pause_pending"

    @property
    def is_transitional(self) -> bool:
        """Whether the service is between stable states."""
        return self in (
            ServiceState.START_PENDING,
            ServiceState.STOP_PENDING,
            ServiceState.CONTINUE_PENDING,
            ServiceState.PAUSE_PENDING,
        )


@dataclass(frozen=True)
class AgentConfig:
    """Operating configuration read from config.toml."""

    mode: OperatingMode = OperatingMode.UNKNOWN


@dataclass(frozen=True)
class ContainmentState:
    """
    Kill switch state written by the agent.

    When ``enabled`` is False the remaining fields are informational only.
    """

    enabled: bool = False
    keep_locked: bool = False
    enabled_mode: Optional[str] = None
    enabled_at_ms: Optional[int] = None
    failsafe_deadline_ms: Optional[int] = None
    last_incident_id: Optional[str] = None


@dataclass(frozen=True)
class LicenseState:
    """Licence status written by the agent."""

    pro: bool = False
    license_id: Optional[str] = None
    plan: Optional[str] = None
    expires_at_ms: Optional[int] = None
    checked_at_ms: int = 0
    reason: Optional[str] = None


@dataclass(frozen=True)
class ThreatFeedState:
    """Threat feed bundle status written by the agent."""

    installed: bool = False
    verified: bool = False
    version: Optional[int] = None
    installed_at_ms: Optional[int] = None
    checked_at_ms: int = 0
    reason: Optional[str] = None
    last_verified_at_ms: Optional[int] = None
    last_refresh_attempt_at_ms: Optional[int] = None
    last_refresh_result: Optional[str] = None


@dataclass(frozen=True)
class IncidentSummary:
    """The most recent incident recorded by the agent."""

    incident_id: str
    severity: str = "unknown"
    created_at_ms: int = 0
    rule_ids: Tuple[str, ...] = ()
    actions_taken: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "incident_id": self.incident_id,
            "severity": self.severity,
            "created_at_ms": self.created_at_ms,
            "rule_ids": list(self.rule_ids),
            "actions_taken": list(self.actions_taken),
        }


@dataclass(frozen=True)
class ProductIdentity:
    """Product naming and version for this client build."""

    name: str
    service_name: str
    version: str


@dataclass(frozen=True)
class Snapshot:
    """
    Every fact observed at one polling instant.

    A snapshot is replaced wholesale by the next poll. ``mode`` keeps
    UNKNOWN as observed; display code decides how to present it.
    """

    agent_running: bool = False
    service_state: Optional[ServiceState] = None
    mode: OperatingMode = OperatingMode.UNKNOWN
    containment: Optional[ContainmentState] = None
    license: Optional[LicenseState] = None
    threat_feed: Optional[ThreatFeedState] = None
    last_incident: Optional[IncidentSummary] = None
    service_detail: Optional[str] = None
    captured_at: datetime = field(default_factory=datetime.now)

    @property
    def containment_enabled(self) -> bool:
        return self.containment is not None and self.containment.enabled

    @property
    def service_transitioning(self) -> bool:
        return self.service_state is not None and self.service_state.is_transitional

    @classmethod
    def empty(cls, service_detail: Optional[str] = None) -> "Snapshot":
        """Snapshot for total state absence."""
        return cls(service_detail=service_detail)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "agent_running": self.agent_running,
            "service_state": self.service_state.value if self.service_state else None,
            "mode": self.mode.value,
            "containment_enabled": self.containment_enabled,
            "license_available": self.license is not None,
            "threat_feed_available": self.threat_feed is not None,
            "last_incident": self.last_incident.to_dict() if self.last_incident else None,
            "service_detail": self.service_detail,
            "captured_at": self.captured_at.isoformat(),
        }
