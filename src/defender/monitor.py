"""
Status Monitor

Periodic read-reduce-present cycle for the tray client. Every tick collects a
fresh Snapshot from the service probe and the state files, reduces it to a
PresentedStatus, and notifies subscribers.

Refreshes and privileged actions share one cycle lock so they never overlap.
A tick that finds the lock held (an action is running) is skipped rather than
queued; the next tick picks up the settled state.
"""

import logging
import threading
from typing import Callable, List, Optional

from .models import OperatingMode, Snapshot
from .service import ServiceProbe
from .state_reader import StateReader
from .status import DEFAULT_TEXT_LIMIT, PresentedStatus, reduce

logger = logging.getLogger(__name__)

REFRESH_FAILED_DETAIL = "Status refresh failed unexpectedly."

StatusCallback = Callable[[Snapshot, PresentedStatus], None]


class SnapshotCollector:
    """Builds one Snapshot from every state source."""

    def __init__(self, reader: StateReader, probe: ServiceProbe):
        self.reader = reader
        self.probe = probe

    def collect(self) -> Snapshot:
        service = self.probe.query()
        config = self.reader.read_config()
        containment = self.reader.read_containment()
        license_state = self.reader.read_license()
        feed = self.reader.read_threat_feed()
        incident = self.reader.read_last_incident()

        return Snapshot(
            agent_running=service.running,
            service_state=service.state,
            mode=config.value.mode if config.ok and config.value else OperatingMode.UNKNOWN,
            containment=containment.value if containment.ok else None,
            license=license_state.value if license_state.ok else None,
            threat_feed=feed.value if feed.ok else None,
            last_incident=incident.value if incident.ok else None,
            service_detail=service.detail,
        )


class StatusMonitor:
    """
    Drives the periodic status refresh.

    Can be ticked manually via refresh() / try_refresh(), or run on its own
    thread with start() / stop().
    """

    DEFAULT_REFRESH_INTERVAL = 4.0

    def __init__(
        self,
        collector: SnapshotCollector,
        refresh_interval: float = DEFAULT_REFRESH_INTERVAL,
        text_limit: int = DEFAULT_TEXT_LIMIT,
        cycle_lock: Optional[threading.Lock] = None,
    ):
        """
        Initialize the monitor.

        Args:
            collector: Source of snapshots
            refresh_interval: Seconds between periodic refreshes
            text_limit: Maximum length of the status text
            cycle_lock: Lock shared with the ActionController
        """
        self.collector = collector
        self.refresh_interval = refresh_interval
        self.text_limit = text_limit
        self.cycle_lock = cycle_lock or threading.Lock()

        self._snapshot = Snapshot.empty()
        self._status = reduce(self._snapshot)
        self._callbacks: List[StatusCallback] = []
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._refresh_count = 0
        self._skipped_count = 0

    @property
    def snapshot(self) -> Snapshot:
        return self._snapshot

    @property
    def status(self) -> PresentedStatus:
        return self._status

    @property
    def status_text(self) -> str:
        return self._status.display_text(self.text_limit)

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def register_callback(self, callback: StatusCallback) -> None:
        """Register a subscriber for every completed refresh."""
        self._callbacks.append(callback)

    def refresh(self) -> Snapshot:
        """Refresh now, waiting for any running action to settle first."""
        with self.cycle_lock:
            return self.refresh_locked()

    def try_refresh(self) -> Optional[Snapshot]:
        """Refresh unless an action holds the cycle lock; None when skipped."""
        if not self.cycle_lock.acquire(blocking=False):
            self._skipped_count += 1
            logger.debug("Refresh skipped: action in progress")
            return None
        try:
            return self.refresh_locked()
        finally:
            self.cycle_lock.release()

    def refresh_locked(self) -> Snapshot:
        """Refresh while the caller already holds the cycle lock."""
        try:
            snapshot = self.collector.collect()
        except Exception as e:
            logger.error(f"Status refresh failed: {e}", exc_info=True)
            snapshot = Snapshot.empty(REFRESH_FAILED_DETAIL)

        logger.debug(f"Snapshot: {snapshot.to_dict()}")
        status = reduce(snapshot)
        if status != self._status:
            logger.info(f"Status changed: {status.label} ({status.badge.value})")

        self._snapshot = snapshot
        self._status = status
        self._refresh_count += 1
        self._notify(snapshot, status)
        return snapshot

    def start(self) -> None:
        """Start periodic refreshing on a background thread."""
        if self.is_running:
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self.run,
            args=(self._stop_event,),
            daemon=True,
            name="StatusMonitor",
        )
        self._thread.start()
        logger.info("Status monitor started")

    def stop(self) -> None:
        """Stop periodic refreshing."""
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=self.refresh_interval + 1.0)
            self._thread = None
        logger.info("Status monitor stopped")

    def run(self, stop_event: threading.Event) -> None:
        """Refresh immediately, then every refresh_interval until stopped."""
        while not stop_event.is_set():
            self.try_refresh()
            stop_event.wait(self.refresh_interval)

    def get_stats(self) -> dict:
        return {
            "refresh_count": self._refresh_count,
            "skipped_count": self._skipped_count,
            "status": self._status.label,
            "badge": self._status.badge.value,
        }

    def _notify(self, snapshot: Snapshot, status: PresentedStatus) -> None:
        for callback in self._callbacks:
            try:
                callback(snapshot, status)
            except Exception as e:
                logger.error(f"Status callback error: {e}")
