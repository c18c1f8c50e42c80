"""Tests for watch mode."""

import os
import threading

from conftest import write_files
from vlayer_scanner.config import ScanConfig
from vlayer_scanner.errors import ConfigError
from vlayer_scanner.models import ScanResult
from vlayer_scanner.scan import scan
from vlayer_scanner.watch import PollingWatcher, ScanGate


class TestScanGate:
    """Test single-flight scan triggering."""

    def test_trigger_runs_scan_and_reports(self):
        seen = []
        gate = ScanGate(lambda: ScanResult(scanned_files=2), on_result=seen.append)

        assert gate.trigger() is True
        assert gate.runs == 1
        assert gate.last_result.scanned_files == 2
        assert seen == [gate.last_result]
        assert not gate.in_flight

    def test_triggers_during_scan_are_coalesced(self):
        started = threading.Event()
        release = threading.Event()

        def slow_scan():
            started.set()
            release.wait(5)
            return ScanResult()

        gate = ScanGate(slow_scan)
        thread = gate.trigger_async()
        assert started.wait(5)

        assert gate.in_flight
        assert gate.trigger() is False
        assert gate.trigger_async() is None

        release.set()
        thread.join(5)

        assert gate.runs == 1
        assert gate.coalesced == 2
        assert not gate.in_flight
        assert gate.trigger() is True
        assert gate.runs == 2

    def test_failed_scan_does_not_wedge_gate(self):
        calls = []

        def flaky_scan():
            calls.append(1)
            if len(calls) == 1:
                raise ConfigError("bad config")
            return ScanResult()

        gate = ScanGate(flaky_scan)

        gate.trigger()
        assert isinstance(gate.last_error, ConfigError)
        assert gate.last_result is None

        gate.trigger()
        assert gate.last_error is None
        assert gate.last_result is not None
        assert gate.runs == 2


class TestPollingWatcher:
    """Test change detection by modification time."""

    def test_change_triggers_scan(self, temp_dir):
        write_files(temp_dir, {"src/hash.ts": "const hash = md5(password);\n"})
        config = ScanConfig()
        done = threading.Event()
        gate = ScanGate(lambda: scan(temp_dir, config), on_result=lambda result: done.set())
        watcher = PollingWatcher(temp_dir, gate, config, interval=0.01)

        assert watcher.poll_once() is False

        path = temp_dir / "src/hash.ts"
        stat = path.stat()
        os.utime(path, ns=(stat.st_atime_ns, stat.st_mtime_ns + 1_000_000_000))

        assert watcher.poll_once() is True
        assert done.wait(5)
        assert gate.last_result.compliance_score.score == 95
        assert watcher.poll_once() is False

    def test_new_file_detected(self, temp_dir):
        write_files(temp_dir, {"src/a.ts": "export const a = 1;\n"})
        gate = ScanGate(ScanResult)
        watcher = PollingWatcher(temp_dir, gate)

        write_files(temp_dir, {"src/b.ts": "export const b = 2;\n"})
        assert watcher.poll_once() is True

    def test_state_directory_ignored(self, temp_dir):
        write_files(temp_dir, {"src/a.ts": "export const a = 1;\n"})
        gate = ScanGate(ScanResult)
        watcher = PollingWatcher(temp_dir, gate)

        write_files(temp_dir, {".vlayer/history/scans.jsonl": "{}\n", "node_modules/x/index.js": "x\n"})
        assert watcher.poll_once() is False
        assert gate.runs == 0

    def test_start_and_stop(self, temp_dir):
        gate = ScanGate(ScanResult)
        watcher = PollingWatcher(temp_dir, gate, interval=0.01)

        watcher.start()
        watcher.stop(timeout=5)

        assert watcher._thread is None
