"""
Agent State Readers

Typed, best-effort readers for each state file the agent owns:

- config.toml              operating mode
- killswitch-state.toml    containment state
- license-state.toml       licence status
- threat-feed-state.toml   threat feed status
- incidents/*.toml         most recent incident only

Readers never raise. Each returns a ReadResult tagged OK, UNAVAILABLE
(file or directory missing / unreadable) or MALFORMED (present but not
trustworthy). A MALFORMED record is discarded whole, never partially used.

The only write this module performs is the operating mode update, which is a
full-file rewrite of config.toml.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Generic, List, Optional, Set, Tuple, TypeVar

from . import config_store
from .exceptions import MalformedStateError
from .models import (
    AgentConfig,
    ContainmentState,
    IncidentSummary,
    LicenseState,
    OperatingMode,
    ThreatFeedState,
)
from .paths import AgentPaths

logger = logging.getLogger(__name__)

T = TypeVar("T")

INCIDENT_GLOB = "*.toml"
FINDINGS_TABLE = "findings"


class ReadStatus(str, Enum):
    """Outcome tag for a state read."""

    OK = "ok"
    UNAVAILABLE = "unavailable"
    MALFORMED = "malformed"


@dataclass(frozen=True)
class ReadResult(Generic[T]):
    """Tagged result of reading one state file."""

    status: ReadStatus
    value: Optional[T] = None
    path: Optional[Path] = None
    detail: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == ReadStatus.OK

    @classmethod
    def success(cls, value: T, path: Optional[Path] = None) -> "ReadResult[T]":
        return cls(ReadStatus.OK, value=value, path=path)

    @classmethod
    def unavailable(cls, path: Optional[Path] = None, detail: Optional[str] = None) -> "ReadResult[T]":
        return cls(ReadStatus.UNAVAILABLE, path=path, detail=detail)

    @classmethod
    def malformed(cls, path: Optional[Path] = None, detail: Optional[str] = None) -> "ReadResult[T]":
        return cls(ReadStatus.MALFORMED, path=path, detail=detail)

    def value_or(self, default: T) -> T:
        return self.value if self.ok and self.value is not None else default


@dataclass(frozen=True)
class WriteResult:
    """Outcome of the operating mode write."""

    success: bool
    error: Optional[str] = None
    path: Optional[Path] = None


# =============================================================================
# Record Parsers
# =============================================================================


def parse_agent_config(text: str) -> AgentConfig:
    """Parse config.toml. A missing or unrecognized mode is UNKNOWN."""
    fields = config_store.parse(text)
    return AgentConfig(mode=OperatingMode.from_value(config_store.parse_string(fields.get("mode"))))


def parse_containment_state(text: str) -> ContainmentState:
    fields = config_store.parse(text)
    return ContainmentState(
        enabled=config_store.parse_bool(fields.get("enabled")),
        keep_locked=config_store.parse_bool(fields.get("keep_locked")),
        enabled_mode=config_store.parse_string(fields.get("enabled_mode")),
        enabled_at_ms=config_store.parse_optional_int(fields.get("enabled_at_unix_ms")),
        failsafe_deadline_ms=config_store.parse_optional_int(fields.get("failsafe_deadline_unix_ms")),
        last_incident_id=config_store.parse_string(fields.get("last_incident_id")),
    )


def parse_license_state(text: str) -> LicenseState:
    fields = config_store.parse(text)
    return LicenseState(
        pro=config_store.parse_bool(fields.get("pro")),
        license_id=config_store.parse_string(fields.get("license_id")),
        plan=config_store.parse_string(fields.get("plan")),
        expires_at_ms=config_store.parse_optional_int(fields.get("expires_at_unix_ms")),
        checked_at_ms=config_store.parse_counter(fields.get("checked_at_unix_ms")),
        reason=config_store.parse_string(fields.get("reason")),
    )


def _seconds_to_ms(value: Optional[str]) -> Optional[int]:
    seconds = config_store.parse_optional_int(value)
    return seconds * 1000 if seconds is not None else None


def parse_threat_feed_state(text: str) -> ThreatFeedState:
    """Parse threat-feed-state.toml. Bundle timestamps are stored in seconds."""
    fields = config_store.parse(text)
    return ThreatFeedState(
        installed=config_store.parse_bool(fields.get("installed")),
        verified=config_store.parse_bool(fields.get("verified")),
        version=config_store.parse_optional_int(fields.get("version")),
        installed_at_ms=config_store.parse_optional_int(fields.get("installed_at_unix_ms")),
        checked_at_ms=config_store.parse_counter(fields.get("checked_at_unix_ms")),
        reason=config_store.parse_string(fields.get("reason")),
        last_verified_at_ms=_seconds_to_ms(fields.get("last_verified_at_unix_seconds")),
        last_refresh_attempt_at_ms=_seconds_to_ms(fields.get("last_refresh_attempt_at_unix_seconds")),
        last_refresh_result=config_store.parse_string(fields.get("last_refresh_result")),
    )


def parse_incident_summary(text: str) -> IncidentSummary:
    """
    Parse an incident record.

    Top-level keys carry the id, severity, timestamp and actions; every
    ``[[findings]]`` table contributes its ``rule_id``. Rule ids are unique
    case-insensitively and returned sorted.

    Raises:
        MalformedStateError: If the incident id is missing or blank
    """
    fields = config_store.parse(text)
    incident_id = config_store.parse_string(fields.get("incident_id"))
    if not incident_id or not incident_id.strip():
        raise MalformedStateError("Incident record has no incident_id", missing_fields=["incident_id"])

    severity = config_store.parse_string(fields.get("severity"))

    seen: Set[str] = set()
    rule_ids: List[str] = []
    for finding in config_store.tables(text, FINDINGS_TABLE):
        rule_id = config_store.parse_string(finding.get("rule_id"))
        if not rule_id or not rule_id.strip():
            continue
        if rule_id.lower() in seen:
            continue
        seen.add(rule_id.lower())
        rule_ids.append(rule_id)

    return IncidentSummary(
        incident_id=incident_id.strip(),
        severity=severity.strip() if severity and severity.strip() else "unknown",
        created_at_ms=config_store.parse_counter(fields.get("created_at_unix_ms")),
        rule_ids=tuple(sorted(rule_ids, key=str.lower)),
        actions_taken=config_store.parse_string_array(fields.get("actions_taken")),
    )


# =============================================================================
# State Reader
# =============================================================================


class StateReader:
    """
    Reads the agent's state files from one data directory.

    Every read is independent; a failure in one never affects another.
    """

    def __init__(self, paths: Optional[AgentPaths] = None):
        self.paths = paths or AgentPaths.default()

    def read_config(self) -> ReadResult[AgentConfig]:
        """Read the operating configuration."""
        return self._read(self.paths.config_path, parse_agent_config)

    def read_containment(self) -> ReadResult[ContainmentState]:
        """Read the kill switch state."""
        return self._read(self.paths.killswitch_state_path, parse_containment_state)

    def read_license(self) -> ReadResult[LicenseState]:
        return self._read(self.paths.license_state_path, parse_license_state)

    def read_threat_feed(self) -> ReadResult[ThreatFeedState]:
        return self._read(self.paths.threat_feed_state_path, parse_threat_feed_state)

    def read_last_incident(self) -> ReadResult[IncidentSummary]:
        """
        Read the most recently modified incident file.

        Only that one file is parsed. If it is malformed the result is
        MALFORMED; older incidents are not consulted.
        """
        candidate = self.latest_incident_path()
        if candidate is None:
            return ReadResult.unavailable(self.paths.incidents_dir, "No incident files")
        return self._read(candidate, parse_incident_summary)

    def latest_incident_path(self) -> Optional[Path]:
        """Return the newest incident file by modification time, if any."""
        incidents_dir = self.paths.incidents_dir
        try:
            if not incidents_dir.is_dir():
                return None
            candidates = sorted(p for p in incidents_dir.glob(INCIDENT_GLOB) if p.is_file())
        except OSError as e:
            logger.debug(f"Cannot list incidents in {incidents_dir}: {e}")
            return None

        stamped: List[Tuple[float, Path]] = []
        for path in candidates:
            try:
                stamped.append((path.stat().st_mtime, path))
            except OSError:
                # Removed between listing and stat
                continue

        if not stamped:
            return None

        # Stable sort keeps name order among equal timestamps
        stamped.sort(key=lambda item: item[0], reverse=True)
        return stamped[0][1]

    def write_mode(self, mode: OperatingMode) -> WriteResult:
        """
        Persist a new operating mode into config.toml.

        Only LEARNING and STRICT can be written. The rest of the document is
        preserved; the file is rewritten whole.
        """
        path = self.paths.config_path
        if mode == OperatingMode.UNKNOWN:
            return WriteResult(False, "Cannot write an unknown mode", path)

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            current = path.read_text(encoding="utf-8-sig") if path.exists() else ""
            updated = config_store.set_top_level_string(current, "mode", mode.value)
            path.write_text(updated, encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.error(f"Failed to write mode to {path}: {e}")
            return WriteResult(False, str(e), path)

        logger.info(f"Operating mode set to {mode.value} in {path}")
        return WriteResult(True, None, path)

    def _read(self, path: Path, parser: Callable[[str], T]) -> ReadResult[T]:
        try:
            if not path.is_file():
                logger.debug(f"State file not present: {path}")
                return ReadResult.unavailable(path, "File not found")
            text = path.read_text(encoding="utf-8-sig")
        except UnicodeDecodeError as e:
            logger.warning(f"State file is not valid UTF-8: {path}")
            return ReadResult.malformed(path, str(e))
        except OSError as e:
            logger.debug(f"State file unreadable: {path}: {e}")
            return ReadResult.unavailable(path, str(e))

        try:
            return ReadResult.success(parser(text), path)
        except MalformedStateError as e:
            logger.warning(f"Discarding malformed state file {path}: {e}")
            return ReadResult.malformed(path, str(e))
        except (ValueError, TypeError) as e:
            logger.warning(f"Discarding unparsable state file {path}: {e}")
            return ReadResult.malformed(path, str(e))
