"""Tests for the snapshot collector and status monitor."""

import logging
import threading
import time

from conftest import FakeProbe, write_incident, write_killswitch, write_mode

from src.defender.models import OperatingMode, ServiceState
from src.defender.monitor import REFRESH_FAILED_DETAIL, SnapshotCollector, StatusMonitor
from src.defender.status import LABEL_LEARNING, LABEL_LOCKED, LABEL_NOT_RUNNING, Badge


class ExplodingCollector:
    def collect(self):
        raise RuntimeError("boom")


class TestSnapshotCollector:
    """Tests for snapshot assembly."""

    def test_collects_every_source(self, reader, agent_paths):
        """Test all readers feed the snapshot."""
        write_mode(agent_paths, "strict")
        write_killswitch(agent_paths, True)
        write_incident(agent_paths, "inc.toml", 'incident_id = "inc-9"\n')

        snapshot = SnapshotCollector(reader, FakeProbe()).collect()

        assert snapshot.agent_running
        assert snapshot.service_state == ServiceState.RUNNING
        assert snapshot.mode == OperatingMode.STRICT
        assert snapshot.containment_enabled
        assert snapshot.last_incident.incident_id == "inc-9"
        assert snapshot.license is None

    def test_service_detail_carried(self, reader):
        """Test the probe's detail line reaches the snapshot."""
        probe = FakeProbe(state=None, detail="Service not found or not installed.")

        snapshot = SnapshotCollector(reader, probe).collect()

        assert not snapshot.agent_running
        assert snapshot.service_detail == "Service not found or not installed."

    def test_malformed_file_discarded(self, reader, agent_paths):
        """Test a malformed record is absent rather than partial."""
        agent_paths.killswitch_state_path.write_bytes(b"enabled = true\n\xff\n")

        snapshot = SnapshotCollector(reader, FakeProbe()).collect()

        assert snapshot.containment is None


class TestStatusMonitor:
    """Tests for the periodic refresh cycle."""

    def test_initial_status(self, reader):
        """Test the monitor starts from an empty snapshot."""
        monitor = StatusMonitor(SnapshotCollector(reader, FakeProbe()))

        assert monitor.status.label == LABEL_NOT_RUNNING

    def test_refresh_notifies(self, reader, agent_paths):
        """Test subscribers receive every refresh."""
        write_mode(agent_paths, "learning")
        monitor = StatusMonitor(SnapshotCollector(reader, FakeProbe()))
        seen = []
        monitor.register_callback(lambda snapshot, status: seen.append(status.label))

        monitor.refresh()
        write_killswitch(agent_paths, True)
        monitor.refresh()

        assert seen == [LABEL_LEARNING, LABEL_LOCKED]
        assert monitor.status.badge == Badge.CRITICAL
        assert monitor.get_stats()["refresh_count"] == 2

    def test_refresh_failure_is_not_running(self):
        """Test a collector crash degrades to a not-running status."""
        monitor = StatusMonitor(ExplodingCollector())

        snapshot = monitor.refresh()

        assert monitor.status.label == LABEL_NOT_RUNNING
        assert snapshot.service_detail == REFRESH_FAILED_DETAIL

    def test_callback_errors_isolated(self, reader):
        """Test a failing subscriber does not stop others."""
        monitor = StatusMonitor(SnapshotCollector(reader, FakeProbe()))
        seen = []

        def bad(snapshot, status):
            raise ValueError("subscriber bug")

        monitor.register_callback(bad)
        monitor.register_callback(lambda snapshot, status: seen.append(status))

        monitor.refresh()

        assert len(seen) == 1

    def test_tick_skipped_while_locked(self, reader):
        """Test a tick is skipped when an action holds the cycle lock."""
        monitor = StatusMonitor(SnapshotCollector(reader, FakeProbe()))

        with monitor.cycle_lock:
            assert monitor.try_refresh() is None

        assert monitor.try_refresh() is not None
        stats = monitor.get_stats()
        assert stats["skipped_count"] == 1
        assert stats["refresh_count"] == 1

    def test_status_text_capped(self, reader):
        """Test the status text respects the configured limit."""
        monitor = StatusMonitor(SnapshotCollector(reader, FakeProbe()), text_limit=10)

        assert monitor.status_text == LABEL_NOT_RUNNING[:10]

    def test_background_thread(self, reader):
        """Test start/stop drive periodic refreshes."""
        monitor = StatusMonitor(SnapshotCollector(reader, FakeProbe()), refresh_interval=0.05)
        ticked = threading.Event()
        monitor.register_callback(lambda snapshot, status: ticked.set())

        monitor.start()
        try:
            assert ticked.wait(timeout=2.0)
            assert monitor.is_running
        finally:
            monitor.stop()

        assert not monitor.is_running

    def test_run_until_stopped(self, reader):
        """Test run() refreshes immediately and exits on the stop event."""
        monitor = StatusMonitor(SnapshotCollector(reader, FakeProbe()), refresh_interval=10.0)
        stop = threading.Event()
        monitor.register_callback(lambda snapshot, status: stop.set())

        started = time.monotonic()
        monitor.run(stop)

        assert time.monotonic() - started < 5.0
        assert monitor.get_stats()["refresh_count"] == 1

    def test_snapshot_logged_at_debug(self, reader, agent_paths, caplog):
        """Test each refresh logs the snapshot as a dictionary."""
        write_mode(agent_paths, "strict")
        write_incident(agent_paths, "inc.toml", 'incident_id = "inc-5"\nseverity = "red"\n')
        monitor = StatusMonitor(SnapshotCollector(reader, FakeProbe()))

        with caplog.at_level(logging.DEBUG, logger="src.defender.monitor"):
            snapshot = monitor.refresh()

        assert f"Snapshot: {snapshot.to_dict()}" in caplog.text
        data = snapshot.to_dict()
        assert data["mode"] == "strict"
        assert data["service_state"] == "running"
        assert data["last_incident"]["incident_id"] == "inc-5"
        assert data["last_incident"]["severity"] == "red"
