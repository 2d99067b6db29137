"""
Relay service: wires the combat log tailer, the fight segmenter and the
upload pipeline together, and republishes their events on three channels:

    status           WatcherStatus values
    fight_detected   UploadEntry created for each detected fight
    upload_progress  UploadEntry snapshot on every status/progress change
"""

import logging
import threading
from dataclasses import replace
from typing import Optional

from parsepal.core.config import AppConfig
from parsepal.core.constants import WatcherStatus
from parsepal.core.events import Channel
from parsepal.core.history_sqlite import HistoryStore
from parsepal.core.models import Fight, UploadEntry, HistoryEntry
from parsepal.core.segmenter import LogParser
from parsepal.core.tailer import LogTailer
from parsepal.core.upload_queue import UploadPipeline, PipelineClosedError, make_entry

logger = logging.getLogger(__name__)


class RelayService:
    """Owns one tailer and one upload pipeline at a time."""

    def __init__(self, config: AppConfig, history: HistoryStore | None = None,
                 pipeline_factory=UploadPipeline, tailer_factory=LogTailer):
        self.config = config
        self.history = history
        self._pipeline_factory = pipeline_factory
        self._tailer_factory = tailer_factory

        self.status: Channel[str] = Channel("status")
        self.fight_detected: Channel[UploadEntry] = Channel("fight-detected")
        self.upload_progress: Channel[UploadEntry] = Channel("upload-progress")

        self.tailer: Optional[LogTailer] = None
        self.pipeline: Optional[UploadPipeline] = None
        self.parser: Optional[LogParser] = None
        self._lock = threading.RLock()
        self._running = False

        config.add_listener(self._on_config_changed)

    # ── Lifecycle ─────────────────────────────────────────────────────

    def start(self) -> bool:
        """(Re)start tailing with the current settings. Returns True if watching."""
        with self._lock:
            self._teardown()

            log_path = self.config.log_path
            if log_path is None or not self.config.auth_token:
                logger.warning("Relay not started: game folder or auth token missing")
                self.status.emit(WatcherStatus.IDLE)
                return False

            pipeline = self._pipeline_factory(
                get_token=lambda: self.config.auth_token,
                api_base=self.config.api_base,
            )
            pipeline.progress.subscribe(self._on_progress)

            # The parser stays bound to this pipeline even after a restart replaces it
            self.parser = LogParser(on_fight=lambda fight: self._on_fight(fight, pipeline))
            tailer = self._tailer_factory(on_line=self.parser.process_line,
                                          use_polling=self.config.use_polling)
            tailer.status_changed.subscribe(self.status.emit)

            self.pipeline = pipeline
            self.tailer = tailer
            self._running = True
            tailer.start(log_path)
            return tailer.status == WatcherStatus.WATCHING

    def stop(self):
        """Stop tailing. Uploads already queued still run to completion."""
        with self._lock:
            self._running = False
            tailer = self.tailer
            self._teardown()
            if tailer is None:
                self.status.emit(WatcherStatus.IDLE)

    def _teardown(self):
        if self.tailer is not None:
            self.tailer.stop()
            self.tailer = None
        if self.pipeline is not None:
            # Old pipeline drains on its own worker; its events still reach us.
            self.pipeline.close()
            self.pipeline = None
        self.parser = None

    @property
    def watcher_status(self) -> str:
        return self.tailer.status if self.tailer is not None else WatcherStatus.IDLE

    @property
    def is_running(self) -> bool:
        return self._running

    # ── Event wiring ──────────────────────────────────────────────────

    def _on_fight(self, fight: Fight, pipeline: UploadPipeline):
        if pipeline.closed:
            logger.warning("Relay stopped before %r could be queued; not uploaded",
                           fight.encounter_name)
            return
        if not self.config.auto_upload:
            logger.info("Auto-upload disabled; %r not uploaded", fight.encounter_name)
            self.fight_detected.emit(make_entry(fight))
            return
        try:
            entry = pipeline.enqueue(fight)
        except PipelineClosedError:
            logger.warning("Relay stopped before %r could be queued; not uploaded",
                           fight.encounter_name)
            return
        self.fight_detected.emit(replace(entry))

    def _on_progress(self, entry: UploadEntry):
        # History is written before listeners hear about the final state
        if entry.is_terminal and self.history is not None:
            try:
                self.history.add(HistoryEntry.from_upload(entry))
            except Exception as e:
                logger.error("Failed to record history for %s: %s", entry.id, e)
        self.upload_progress.emit(entry)

    def _on_config_changed(self, key: str, value):
        if not self._running:
            return
        logger.info("Setting %s changed — restarting relay", key)
        self.start()
