"""
Upload pipeline: one FIFO queue, one worker thread.
Uploads fights one at a time with retries, reporting progress on a channel.
"""

import logging
import queue
import threading
import time
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Optional

from parsepal.core.constants import (
    UploadStatus, ErrorCode, MAX_UPLOAD_ATTEMPTS, RETRY_DELAYS_SEC,
    PROGRESS_QUEUED, PROGRESS_UPLOAD_START, PROGRESS_ATTEMPT_BASE,
    PROGRESS_ATTEMPT_STEP, PROGRESS_DONE, PROGRESS_FAILED,
)
from parsepal.core.error_codes import RelayError
from parsepal.core.events import Channel
from parsepal.core.models import Fight, UploadEntry
from parsepal.core.uploader import build_payload, build_metadata, post_fight

logger = logging.getLogger(__name__)

_STOP = object()


class PipelineClosedError(RuntimeError):
    """enqueue() on a pipeline that has been closed."""


def make_entry(fight: Fight) -> UploadEntry:
    """Fresh QUEUED entry for a detected fight."""
    return UploadEntry(
        id=str(uuid.uuid4()),
        fight=fight.summary(),
        timestamp=datetime.now(timezone.utc).isoformat(),
        status=UploadStatus.QUEUED,
        progress=PROGRESS_QUEUED,
    )


class UploadPipeline:
    """
    Queues detected fights and uploads them sequentially.

    enqueue() never blocks on the network. A single worker thread, started
    on first use, drains the queue in submission order. close() lets the
    worker finish what is already queued and then exit; a replacement
    pipeline gets its own queue and worker.
    """

    def __init__(self, get_token: Callable[[], str], api_base: str | None = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.get_token = get_token
        self.api_base = api_base
        self.sleep = sleep
        self.progress: Channel[UploadEntry] = Channel("upload-progress")

        self._queue: queue.Queue = queue.Queue()
        self._worker: Optional[threading.Thread] = None
        # Guards _closed, the queue tail and worker start as one unit
        self._worker_lock = threading.RLock()
        self._closed = False
        self._active_id: Optional[str] = None

    # ── Queue management ──────────────────────────────────────────────

    def enqueue(self, fight: Fight) -> UploadEntry:
        """Queue a fight for upload. Returns its entry immediately."""
        with self._worker_lock:
            if self._closed:
                raise PipelineClosedError("UploadPipeline is closed")
            entry = make_entry(fight)
            self._emit(entry)
            self._queue.put((fight, entry))
            self._ensure_worker()
        return entry

    def _ensure_worker(self):
        with self._worker_lock:
            if self._worker is None:
                self._worker = threading.Thread(
                    target=self._worker_loop, name="upload-worker", daemon=True,
                )
                self._worker.start()

    def close(self):
        """Stop accepting fights; queued ones are still uploaded."""
        with self._worker_lock:
            if self._closed:
                return
            self._closed = True
            self._queue.put(_STOP)

    def join(self, timeout: float | None = None) -> bool:
        """Wait for the worker to exit after close(). Returns True if it did."""
        worker = self._worker
        if worker is None:
            return True
        worker.join(timeout)
        return not worker.is_alive()

    @property
    def closed(self) -> bool:
        return self._closed

    def pending(self) -> int:
        return self._queue.qsize()

    @property
    def active_id(self) -> Optional[str]:
        """Id of the entry currently being uploaded, if any."""
        return self._active_id

    # ── Worker loop ───────────────────────────────────────────────────

    def _worker_loop(self):
        """Main worker loop — uploads one fight at a time."""
        while True:
            item = self._queue.get()
            if item is _STOP:
                break
            fight, entry = item
            self._active_id = entry.id
            try:
                self._process(fight, entry)
            except Exception as e:
                logger.error("Unexpected error uploading %s: %s", entry.id, e, exc_info=True)
                self._fail(entry, str(e) or "Upload failed")
            finally:
                self._active_id = None

    def _emit(self, entry: UploadEntry):
        self.progress.emit(replace(entry))

    def _fail(self, entry: UploadEntry, message: str):
        entry.status = UploadStatus.ERROR
        entry.progress = PROGRESS_FAILED
        entry.error = message
        self._emit(entry)

    # ── Per-fight delivery ────────────────────────────────────────────

    def _process(self, fight: Fight, entry: UploadEntry):
        entry.status = UploadStatus.UPLOADING
        entry.progress = PROGRESS_UPLOAD_START
        self._emit(entry)

        payload, filename = build_payload(fight)
        metadata = build_metadata(fight)

        last_error: RelayError | None = None
        for attempt in range(MAX_UPLOAD_ATTEMPTS):
            entry.progress = PROGRESS_ATTEMPT_BASE + attempt * PROGRESS_ATTEMPT_STEP
            self._emit(entry)

            try:
                # Token fetched per attempt so a refreshed login is picked up
                result = post_fight(payload, filename, metadata,
                                    self.get_token(), self.api_base)
            except RelayError as e:
                last_error = e
                # All failures use the full retry schedule, transient or not
                logger.warning("Upload of %r failed (attempt %d/%d, %s%s): %s",
                               fight.encounter_name, attempt + 1, MAX_UPLOAD_ATTEMPTS, e.code,
                               "" if e.retryable else ", not transient", e.message)
                if attempt < MAX_UPLOAD_ATTEMPTS - 1:
                    self.sleep(RETRY_DELAYS_SEC[attempt])
                continue

            entry.status = UploadStatus.DONE
            entry.progress = PROGRESS_DONE
            analysis_url = result.get("analysis_url")
            if analysis_url:
                entry.analysis_url = analysis_url
            logger.info("Uploaded %r (%s)", fight.encounter_name, entry.id)
            self._emit(entry)
            return

        final = RelayError(ErrorCode.UPLOAD_FAILED,
                           (last_error.message if last_error else "") or "Upload failed")
        logger.error("Giving up on %r: %s", fight.encounter_name, final)
        self._fail(entry, final.message)
