#!/usr/bin/env python3
"""
Unit tests for the combat log tailer.
Most tests drive read passes directly through poll(); one test runs a
real polling observer end to end.
"""

import sys
import shutil
import time
import tempfile
import threading
from pathlib import Path
from unittest import mock

# Add project root to path
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

import unittest

from parsepal.core.constants import WatcherStatus
from parsepal.core.tailer import LogTailer


class UnwatchedTailer(LogTailer):
    """LogTailer without a filesystem subscription; passes run on poll()."""

    def _subscribe(self):
        pass


class BrokenWatchTailer(LogTailer):
    def _subscribe(self):
        raise OSError("inotify watch limit reached")


class FakeThread:
    def __init__(self):
        self.alive = True

    def is_alive(self):
        return self.alive


class FakeObserver(FakeThread):
    def __init__(self):
        super().__init__()
        self.emitters = [FakeThread()]
        self.stopped = False

    def stop(self):
        self.stopped = True
        self.alive = False

    def join(self, timeout=None):
        pass


class FakeWatchTailer(LogTailer):
    """LogTailer whose subscription is a FakeObserver the test can kill."""

    def __init__(self, *args, **kw):
        super().__init__(*args, **kw)
        self.observers = []

    def _subscribe(self):
        self._observer = FakeObserver()
        self.observers.append(self._observer)


class TailerTestCase(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.path = Path(self.tmpdir.name) / "WoWCombatLog.txt"
        self.lines = []

    def tearDown(self):
        self.tmpdir.cleanup()

    def append(self, text: str):
        with self.path.open("ab") as f:
            f.write(text.encode("utf-8"))

    def make_tailer(self, cls=UnwatchedTailer, **kw):
        tailer = cls(on_line=self.lines.append, **kw)
        self.addCleanup(tailer.stop)
        return tailer


class TestOffsets(TailerTestCase):
    """Test offset tracking and line delivery."""

    def test_existing_content_is_not_replayed(self):
        self.append("old line 1\nold line 2\n")
        tailer = self.make_tailer()
        tailer.start(self.path)
        self.assertEqual(tailer.offset, self.path.stat().st_size)

        self.append("new line\n")
        tailer.poll()
        self.assertEqual(self.lines, ["new line"])
        self.assertEqual(tailer.offset, self.path.stat().st_size)

    def test_missing_file_captured_from_start(self):
        tailer = self.make_tailer()
        tailer.start(self.path)
        self.assertEqual(tailer.offset, 0)
        tailer.poll()   # still missing: no-op
        self.assertEqual(self.lines, [])

        self.append("first\nsecond\n")
        tailer.poll()
        self.assertEqual(self.lines, ["first", "second"])

    def test_no_change_is_noop(self):
        self.append("a\n")
        tailer = self.make_tailer()
        tailer.start(self.path)
        tailer.poll()
        tailer.poll()
        self.assertEqual(self.lines, [])

    def test_truncation_rereads_from_start(self):
        tailer = self.make_tailer()
        tailer.start(self.path)
        self.append("one\ntwo\nthree\n")
        tailer.poll()
        self.path.write_bytes(b"fresh\n")
        tailer.poll()
        self.assertEqual(self.lines, ["one", "two", "three", "fresh"])
        self.assertEqual(tailer.offset, 6)

    def test_partial_line_held_until_complete(self):
        tailer = self.make_tailer()
        tailer.start(self.path)
        self.append("complete\nhalf")
        tailer.poll()
        self.assertEqual(self.lines, ["complete"])
        self.append(" done\n")
        tailer.poll()
        self.assertEqual(self.lines, ["complete", "half done"])

    def test_crlf_line_endings(self):
        tailer = self.make_tailer()
        tailer.start(self.path)
        self.append("x\r\ny\r\n")
        tailer.poll()
        self.assertEqual(self.lines, ["x", "y"])

    def test_multibyte_character_split_across_reads(self):
        tailer = self.make_tailer()
        tailer.start(self.path)
        data = "Ölrun\n".encode("utf-8")
        with self.path.open("ab") as f:
            f.write(data[:1])
        tailer.poll()
        with self.path.open("ab") as f:
            f.write(data[1:])
        tailer.poll()
        self.assertEqual(self.lines, ["Ölrun"])

    def test_file_deleted_keeps_offset(self):
        tailer = self.make_tailer()
        tailer.start(self.path)
        self.append("a\n")
        tailer.poll()
        offset = tailer.offset
        self.path.unlink()
        tailer.poll()
        self.assertEqual(tailer.offset, offset)

    def test_read_error_keeps_offset(self):
        tailer = self.make_tailer()
        tailer.start(self.path)
        self.append("a\n")
        with mock.patch.object(Path, "open", side_effect=PermissionError("locked")):
            tailer.poll()
        self.assertEqual(tailer.offset, 0)
        self.assertEqual(self.lines, [])
        tailer.poll()
        self.assertEqual(self.lines, ["a"])

    def test_created_event_resets_offset(self):
        self.append("before\n")
        tailer = self.make_tailer(stability_window=0.01)
        tailer.start(self.path)
        with mock.patch.object(tailer, "poll"):
            tailer.notify_created()
            self.assertEqual(tailer.offset, 0)


class TestReentrancy(TailerTestCase):
    """Test the single-flight rule for read passes."""

    def test_notification_during_pass_triggers_one_more_pass(self):
        tailer = None
        passes = []

        def on_line(line):
            self.lines.append(line)
            if line == "l1":
                # appended while the pass is still running
                self.append("l3\n")
                tailer.poll()

        tailer = UnwatchedTailer(on_line=on_line)
        self.addCleanup(tailer.stop)
        tailer.start(self.path)
        original = tailer._read_pass

        def counting_pass():
            passes.append(1)
            original()

        tailer._read_pass = counting_pass
        self.append("l1\nl2\n")
        tailer.poll()
        self.assertEqual(self.lines, ["l1", "l2", "l3"])
        self.assertEqual(len(passes), 2)

    def test_concurrent_polls_deliver_each_line_once(self):
        tailer = self.make_tailer()
        tailer.start(self.path)
        expected = []
        for i in range(200):
            self.append(f"line {i}\n")
            expected.append(f"line {i}")

        threads = [threading.Thread(target=tailer.poll) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        tailer.poll()
        self.assertEqual(self.lines, expected)

    def test_burst_of_events_is_debounced(self):
        tailer = self.make_tailer(stability_window=0.05)
        tailer.start(self.path)
        with mock.patch.object(tailer, "poll") as poll:
            for _ in range(5):
                tailer.notify_change()
            time.sleep(0.3)
            self.assertEqual(poll.call_count, 1)


class TestStatus(TailerTestCase):
    """Test watcher status transitions."""

    def test_start_and_stop(self):
        tailer = self.make_tailer()
        statuses = []
        tailer.status_changed.subscribe(statuses.append)
        tailer.start(self.path)
        self.assertEqual(tailer.status, WatcherStatus.WATCHING)
        tailer.stop()
        self.assertEqual(statuses, [WatcherStatus.WATCHING, WatcherStatus.IDLE])

    def test_subscription_failure_is_error(self):
        tailer = self.make_tailer(cls=BrokenWatchTailer)
        tailer.start(self.path)
        self.assertEqual(tailer.status, WatcherStatus.ERROR)

    def test_missing_directory_is_error(self):
        tailer = self.make_tailer(cls=LogTailer, use_polling=True)
        tailer.start(Path(self.tmpdir.name) / "no" / "such" / "WoWCombatLog.txt")
        self.assertEqual(tailer.status, WatcherStatus.ERROR)

    def test_dead_emitter_is_error_until_restart(self):
        tailer = self.make_tailer(cls=FakeWatchTailer, health_interval=60)
        statuses = []
        tailer.status_changed.subscribe(statuses.append)
        tailer.start(self.path)
        self.assertTrue(tailer.check_watch())

        observer = tailer.observers[0]
        observer.emitters[0].alive = False
        self.assertFalse(tailer.check_watch())
        self.assertEqual(tailer.status, WatcherStatus.ERROR)
        self.assertTrue(observer.stopped)

        # no automatic recovery
        self.assertFalse(tailer.check_watch())
        self.assertEqual(statuses, [WatcherStatus.WATCHING, WatcherStatus.ERROR])

        tailer.start(self.path)
        self.assertEqual(tailer.status, WatcherStatus.WATCHING)
        self.assertTrue(tailer.check_watch())

    def test_dead_observer_is_error(self):
        tailer = self.make_tailer(cls=FakeWatchTailer, health_interval=60)
        tailer.start(self.path)
        tailer.observers[0].alive = False
        self.assertFalse(tailer.check_watch())
        self.assertEqual(tailer.status, WatcherStatus.ERROR)

    def test_health_check_runs_on_its_own(self):
        tailer = self.make_tailer(cls=FakeWatchTailer, health_interval=0.02)
        tailer.start(self.path)
        tailer.observers[0].emitters[0].alive = False
        deadline = time.monotonic() + 5
        while tailer.status != WatcherStatus.ERROR and time.monotonic() < deadline:
            time.sleep(0.02)
        self.assertEqual(tailer.status, WatcherStatus.ERROR)

    def test_stop_does_not_report_error(self):
        tailer = self.make_tailer(cls=FakeWatchTailer, health_interval=0.02)
        tailer.start(self.path)
        tailer.stop()
        time.sleep(0.1)
        self.assertEqual(tailer.status, WatcherStatus.IDLE)


class TestWatchdogIntegration(TailerTestCase):
    """End to end with a real polling observer."""

    def test_appended_lines_arrive(self):
        self.append("existing\n")
        tailer = self.make_tailer(cls=LogTailer, use_polling=True, stability_window=0.05)
        tailer.start(self.path)
        self.assertEqual(tailer.status, WatcherStatus.WATCHING)

        self.append("fresh 1\nfresh 2\n")
        deadline = time.monotonic() + 10
        while len(self.lines) < 2 and time.monotonic() < deadline:
            time.sleep(0.05)
        self.assertEqual(self.lines, ["fresh 1", "fresh 2"])

    def test_removed_log_folder_is_error(self):
        logs = Path(self.tmpdir.name) / "Logs"
        logs.mkdir()
        path = logs / "WoWCombatLog.txt"
        tailer = self.make_tailer(cls=LogTailer, use_polling=True, health_interval=0.1)
        tailer.start(path)
        self.assertEqual(tailer.status, WatcherStatus.WATCHING)

        shutil.rmtree(logs)
        deadline = time.monotonic() + 10
        while tailer.status != WatcherStatus.ERROR and time.monotonic() < deadline:
            time.sleep(0.05)
        self.assertEqual(tailer.status, WatcherStatus.ERROR)

        logs.mkdir()
        tailer.start(path)
        self.assertEqual(tailer.status, WatcherStatus.WATCHING)


if __name__ == "__main__":
    unittest.main()
