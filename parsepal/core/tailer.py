"""
Combat log tailer.

Watches WoWCombatLog.txt with watchdog and hands every newly appended,
complete line to a line sink (normally a LogParser), in file order.

Only the unread byte range [offset, size) is ever read. History is not
replayed on start. A file that shrinks (truncation, new session) is read
again from byte 0. Bursts of write events are folded into one read pass
once the file has been quiet for a short stability window. A watch that
dies later (folder removed or unmounted) is noticed by a periodic health
check and reported as ERROR.
"""

import logging
import threading
from pathlib import Path
from typing import Callable, Optional

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.polling import PollingObserver

from parsepal.core.constants import (
    WatcherStatus, ErrorCode, STABILITY_WINDOW_SEC, POLL_INTERVAL_SEC,
    WATCH_HEALTH_INTERVAL_SEC,
)
from parsepal.core.error_codes import RelayError
from parsepal.core.events import Channel

logger = logging.getLogger(__name__)


class _LogEventHandler(FileSystemEventHandler):
    """Forwards watchdog events that concern the tailed file."""

    def __init__(self, tailer: "LogTailer"):
        super().__init__()
        self.tailer = tailer

    def _concerns(self, path) -> bool:
        if isinstance(path, bytes):
            path = path.decode(errors="replace")
        return bool(path) and Path(path) == self.tailer.path

    def on_modified(self, event):
        if not event.is_directory and self._concerns(event.src_path):
            self.tailer.notify_change()

    def on_created(self, event):
        if not event.is_directory and self._concerns(event.src_path):
            self.tailer.notify_created()

    def on_moved(self, event):
        if not event.is_directory and self._concerns(event.dest_path):
            self.tailer.notify_created()


class LogTailer:
    """
    Tails one log file by byte offset.

    Attributes:
        path: The file being tailed.
        offset: Bytes already consumed. Only the read pass moves it.
        status: Current WatcherStatus value.
    """

    def __init__(self, on_line: Callable[[str], None],
                 stability_window: float = STABILITY_WINDOW_SEC,
                 use_polling: bool = False,
                 health_interval: float = WATCH_HEALTH_INTERVAL_SEC):
        self.on_line = on_line
        self.stability_window = stability_window
        self.use_polling = use_polling
        self.health_interval = health_interval
        self.path: Optional[Path] = None
        self.offset = 0
        self.status = WatcherStatus.IDLE
        self.status_changed: Channel[str] = Channel("watcher-status")

        self._partial = b""
        self._observer = None
        self._health_stop: Optional[threading.Event] = None
        self._timer: Optional[threading.Timer] = None
        self._timer_lock = threading.Lock()
        # Single-flight guard for read passes
        self._pass_lock = threading.Lock()
        self._reading = False
        self._pending = False

    # ── Lifecycle ─────────────────────────────────────────────────────

    def start(self, path: str | Path):
        """Begin watching path. Existing content is skipped."""
        self.stop_observer()
        self.path = Path(path)
        self._partial = b""
        try:
            self.offset = self.path.stat().st_size if self.path.exists() else 0
        except OSError as e:
            logger.warning("Could not stat %s: %s", self.path, e)
            self.offset = 0

        try:
            self._subscribe()
        except Exception as e:
            err = RelayError(ErrorCode.WATCH_SUBSCRIPTION,
                             f"Cannot watch {self.path.parent}: {e}")
            logger.error("%s", err)
            self._observer = None
            self._set_status(WatcherStatus.ERROR)
            return

        logger.info("Watching %s from offset %d", self.path, self.offset)
        self._set_status(WatcherStatus.WATCHING)
        if self._observer is not None:
            self._start_health_check()

    def _subscribe(self):
        if not self.path.parent.is_dir():
            raise FileNotFoundError(f"No such directory: {self.path.parent}")
        if self.use_polling:
            observer = PollingObserver(timeout=POLL_INTERVAL_SEC)
        else:
            observer = Observer()
        observer.schedule(_LogEventHandler(self), str(self.path.parent), recursive=False)
        observer.daemon = True
        observer.start()
        self._observer = observer

    def stop(self):
        """Release the watch subscription and go idle."""
        self.stop_observer()
        self._set_status(WatcherStatus.IDLE)

    def stop_observer(self):
        if self._health_stop is not None:
            self._health_stop.set()
            self._health_stop = None
        with self._timer_lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
        observer, self._observer = self._observer, None
        if observer is not None:
            try:
                observer.stop()
                observer.join(timeout=5)
            except Exception as e:
                logger.warning("Error stopping observer: %s", e)

    def _set_status(self, status: str):
        self.status = status
        self.status_changed.emit(status)

    # ── Watch health ──────────────────────────────────────────────────

    def _start_health_check(self):
        stop_event = threading.Event()
        self._health_stop = stop_event
        thread = threading.Thread(target=self._health_loop, args=(stop_event,),
                                  name="watch-health", daemon=True)
        thread.start()

    def _health_loop(self, stop_event: threading.Event):
        while not stop_event.wait(self.health_interval):
            if not self.check_watch():
                return

    def check_watch(self) -> bool:
        """
        True while the watch subscription is alive.

        watchdog ends an emitter thread when its directory goes away (deleted,
        unmounted) and nothing else reports it. A dead observer or emitter
        moves the tailer to ERROR; only start() brings it back.
        """
        observer = self._observer
        if observer is None:
            return False
        emitters = list(observer.emitters)
        if observer.is_alive() and emitters and all(e.is_alive() for e in emitters):
            return True
        if observer is not self._observer:
            # stopped or restarted meanwhile
            return False

        err = RelayError(ErrorCode.WATCH_SUBSCRIPTION,
                         f"Watch on {self.path.parent} stopped delivering events")
        logger.error("%s", err)
        self._observer = None
        try:
            observer.stop()
        except Exception as e:
            logger.warning("Error stopping observer: %s", e)
        self._set_status(WatcherStatus.ERROR)
        return False

    # ── Change notifications ──────────────────────────────────────────

    def notify_change(self):
        """Called for every write event; (re)arms the stability timer."""
        with self._timer_lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self.stability_window, self._on_stable)
            self._timer.daemon = True
            self._timer.start()

    def notify_created(self):
        """The file appeared (or was replaced): its whole content is new."""
        logger.info("Log file created: %s", self.path)
        self.offset = 0
        self._partial = b""
        self.notify_change()

    def _on_stable(self):
        with self._timer_lock:
            self._timer = None
        self.poll()

    # ── Read passes ───────────────────────────────────────────────────

    def poll(self):
        """
        Run a read pass now. If one is already running, schedule exactly
        one more pass after it instead of running concurrently.
        """
        with self._pass_lock:
            if self._reading:
                self._pending = True
                return
            self._reading = True

        while True:
            try:
                self._read_pass()
            except Exception as e:
                logger.error("Read pass failed: %s", e, exc_info=True)
            with self._pass_lock:
                if not self._pending:
                    self._reading = False
                    return
                self._pending = False

    def _read_pass(self):
        if self.path is None:
            return
        try:
            if not self.path.exists():
                return
            size = self.path.stat().st_size
        except OSError as e:
            logger.warning("Could not stat %s: %s", self.path, e)
            return

        if size < self.offset:
            logger.info("Log shrank (%d < %d), rereading from start", size, self.offset)
            self.offset = 0
            self._partial = b""
        if size == self.offset:
            return

        try:
            with self.path.open("rb") as f:
                f.seek(self.offset)
                data = f.read(size - self.offset)
        except OSError as e:
            logger.warning("Could not read %s: %s", self.path, e)
            return

        self.offset += len(data)
        for line in self._split_lines(data):
            self.on_line(line)

    def _split_lines(self, data: bytes) -> list[str]:
        """Complete lines from data; a trailing fragment is kept for next pass."""
        chunks = (self._partial + data).split(b"\n")
        self._partial = chunks.pop()
        return [c.rstrip(b"\r").decode("utf-8", errors="replace") for c in chunks]
