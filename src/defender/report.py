"""
Plain-text reports for the status and last-incident views.

Reports only ever show identifiers, flags and timestamps; no incident
content, file contents or logs are rendered.
"""

from datetime import datetime
from typing import List, Optional

from .models import IncidentSummary, LicenseState, OperatingMode, Snapshot, ThreatFeedState
from .status import reduce

PRIVACY_NOTE = "Note: The client never shows raw logs or sensitive data."
INCIDENT_PRIVACY_NOTE = (
    "Note: AI Defender never displays file contents, clipboard contents, or secrets."
)
NO_INCIDENTS = "No incidents found."

# Upper bound accepted by datetime.fromtimestamp on all platforms
_MAX_TIMESTAMP_MS = 253402300799999


def format_local_time(unix_ms: Optional[int]) -> Optional[str]:
    """Format epoch milliseconds as local time; None for zero or out-of-range."""
    if not unix_ms or unix_ms > _MAX_TIMESTAMP_MS:
        return None
    try:
        stamp = datetime.fromtimestamp(unix_ms / 1000).astimezone()
    except (OverflowError, OSError, ValueError):
        return None
    return stamp.strftime("%Y-%m-%d %H:%M:%S %z")


def _time_or_raw(unix_ms: int) -> str:
    return format_local_time(unix_ms) or f"unix_ms={unix_ms}"


def format_incident_one_line(incident: IncidentSummary) -> str:
    return f"{incident.incident_id} severity={incident.severity} time={_time_or_raw(incident.created_at_ms)}"


def format_incident_report(incident: Optional[IncidentSummary]) -> str:
    """Multi-line description of the last incident."""
    if incident is None:
        return NO_INCIDENTS

    rules = ", ".join(incident.rule_ids) if incident.rule_ids else "(none)"
    actions = ", ".join(incident.actions_taken) if incident.actions_taken else "(none)"
    return "\n".join(
        [
            f"Incident ID: {incident.incident_id}",
            f"Severity: {incident.severity}",
            f"Created (unix ms): {incident.created_at_ms}",
            f"Rules triggered: {rules}",
            f"Actions taken: {actions}",
            "",
            INCIDENT_PRIVACY_NOTE,
        ]
    )


def license_line(license_state: Optional[LicenseState]) -> str:
    if license_state is None:
        return "License: (unknown)"
    if license_state.pro:
        return f"License: Pro  (plan={license_state.plan or 'unknown'})"
    return "License: Community"


def threat_feed_line(feed: Optional[ThreatFeedState]) -> str:
    if feed is None:
        return "Threat feed: (unknown)"
    if not feed.installed:
        return "Threat feed: not installed"
    version = feed.version if feed.version is not None else "unknown"
    return f"Threat feed: v{version}  (verified={'yes' if feed.verified else 'no'})"


def version_line(client_version: str, agent_version: Optional[str]) -> str:
    if agent_version is None:
        return f"Versions: Client {client_version} / Agent (unknown)"
    line = f"Versions: Client {client_version} / Agent {agent_version}"
    if agent_version.lower() != client_version.lower():
        line += " (mismatch)"
    return line


def format_status_report(
    snapshot: Snapshot,
    client_version: str,
    agent_version: Optional[str] = None,
) -> str:
    """
    Multi-line status description for one snapshot.

    Args:
        snapshot: Snapshot to describe
        client_version: This client's version
        agent_version: Output of the agent's ``--version``, if it answered

    Returns:
        Report text, lines separated by newlines
    """
    mode = "(unknown)" if snapshot.mode == OperatingMode.UNKNOWN else snapshot.mode.display_name
    kill = "Enabled (network locked)" if snapshot.containment_enabled else "Disabled"
    last = format_incident_one_line(snapshot.last_incident) if snapshot.last_incident else "None"

    lines: List[str] = [
        f"State: {reduce(snapshot).label}",
        f"Agent running: {'Yes' if snapshot.agent_running else 'No'}",
        f"Mode: {mode}",
        f"Kill switch: {kill}",
        license_line(snapshot.license),
        threat_feed_line(snapshot.threat_feed),
        f"Last incident: {last}",
        version_line(client_version, agent_version),
    ]

    lic = snapshot.license
    if lic is not None and lic.expires_at_ms is not None:
        lines.append(f"License expiry: {_time_or_raw(lic.expires_at_ms)}")

    feed = snapshot.threat_feed
    if feed is not None:
        if feed.installed_at_ms is not None:
            lines.append(f"Threat feed updated: {_time_or_raw(feed.installed_at_ms)}")
        if feed.last_verified_at_ms is not None:
            lines.append(f"Threat feed last verified: {_time_or_raw(feed.last_verified_at_ms)}")
        if feed.last_refresh_attempt_at_ms is not None:
            lines.append(
                f"Threat feed last refresh attempt: {_time_or_raw(feed.last_refresh_attempt_at_ms)}"
            )
        if feed.last_refresh_result and feed.last_refresh_result.strip():
            lines.append(f"Threat feed last refresh result: {feed.last_refresh_result}")

    if snapshot.service_detail and snapshot.service_detail.strip():
        lines.append(f"Service: {snapshot.service_detail}")

    lines.append("")
    lines.append(PRIVACY_NOTE)
    return "\n".join(lines)
