"""Deferred upload queue for finalized records."""

import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from shared.enums import FormEvent, RecordStatus
from shared.models import now
from ..errors import AuthRequired, TransportError, StorageUnavailable


logger = logging.getLogger(__name__)


@dataclass
class UploadReport:
    """Consolidated result of one queue flush."""
    succeeded: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)
    failed_files: Dict[str, List[str]] = field(default_factory=dict)
    auth_required: bool = False
    skipped: bool = False

    @property
    def count(self):
        return len(self.succeeded)


class UploadQueue:
    """Transmits queued final records through the submission transport.

    Records leave the store only after the server accepted them, so repeated
    flushes never re-send an uploaded record. Failed records are retried with
    exponential backoff and marked permanently failed after max_retries.
    """

    def __init__(self, store, transport, notifier=None, max_retries=5, base_backoff_seconds=60.0):
        self.store = store
        self.transport = transport
        self.notifier = notifier
        self.max_retries = max_retries
        self.base_backoff_seconds = base_backoff_seconds

        self._flush_lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None
        self._timer_lock = threading.Lock()

    @property
    def is_uploading(self):
        return self._flush_lock.locked()

    def schedule_flush(self, delay):
        """Run enqueue_and_flush after delay seconds, replacing a pending schedule."""
        with self._timer_lock:
            if self._timer:
                self._timer.cancel()
            self._timer = threading.Timer(delay, self._run_scheduled)
            self._timer.daemon = True
            self._timer.start()
            logger.debug(f"Upload queue flush scheduled in {delay}s")
            return self._timer

    def cancel_scheduled(self):
        with self._timer_lock:
            if self._timer:
                self._timer.cancel()
                self._timer = None

    def _run_scheduled(self):
        try:
            self.enqueue_and_flush()
        except StorageUnavailable as e:
            logger.error(f"Scheduled upload failed: {e}")

    def _discard_uploaded(self, instance_id):
        """Remove an accepted record, or flag it uploaded when removal fails."""
        try:
            self.store.remove(instance_id)
            return
        except StorageUnavailable as e:
            logger.error(f"Uploaded record {instance_id} could not be removed: {e}")
        try:
            self.store.mark_uploaded(instance_id)
        except StorageUnavailable as e:
            logger.error(f"Uploaded record {instance_id} could not be flagged, it may be sent again: {e}")

    def _purge_uploaded(self):
        try:
            self.store.purge_uploaded()
        except StorageUnavailable as e:
            logger.warning(f"Uploaded records could not be purged: {e}")

    def _is_due(self, record, current_time):
        """Failed records wait base * 2^(retry_count - 1) seconds between attempts."""
        if record.status != RecordStatus.FAILED or not record.last_retry_at:
            return True
        backoff_seconds = self.base_backoff_seconds * (2 ** max(0, record.retry_count - 1))
        return (current_time - record.last_retry_at).total_seconds() >= backoff_seconds

    def enqueue_and_flush(self, force=False):
        """Attempt to transmit all queued final records.

        Args:
            force: ignore retry backoff (manual upload request)

        Returns:
            UploadReport: names that succeeded and reasons for those that failed.
            A flush already in progress yields a skipped, empty report.
        """
        if not self._flush_lock.acquire(blocking=False):
            logger.info("Upload already in progress, skipping flush")
            return UploadReport(skipped=True)

        report = UploadReport()
        try:
            current_time = now()
            self._purge_uploaded()
            records = [r for r in self.store.get_uploadable() if force or self._is_due(r, current_time)]
            if not records:
                logger.debug("No records due for upload")
                return report

            logger.info(f"Uploading {len(records)} queued record(s)")
            for record in records:
                name = record.name or record.instance_id
                try:
                    result = self.transport.upload_record({
                        'xml': record.xml,
                        'files': record.files,
                        'instance_id': record.instance_id,
                        'deprecated_id': record.deprecated_id
                    })
                except AuthRequired:
                    # Every other record would be rejected too
                    logger.warning("Upload queue stopped: authentication required")
                    report.auth_required = True
                    report.failed[name] = 'authentication required'
                    break
                except TransportError as e:
                    try:
                        status = self.store.record_upload_failure(record.instance_id, e, self.max_retries)
                    except StorageUnavailable as store_error:
                        logger.error(f"Upload failure of {record.instance_id} not tracked: {store_error}")
                        status = None
                    report.failed[name] = str(e) or 'transport error'
                    logger.warning(f"Record {record.instance_id} upload failed ({status}): {e}")
                    continue

                report.succeeded.append(name)
                self._discard_uploaded(record.instance_id)
                if result.failed_files:
                    report.failed_files[name] = list(result.failed_files)
                logger.info(f"Record {record.instance_id} uploaded")
        finally:
            self._flush_lock.release()

        if report.succeeded and self.notifier:
            self.notifier.emit(FormEvent.QUEUE_SUBMISSION_SUCCESS, *report.succeeded)
        return report
