"""
Import Job Store

Process-local record of vendor import jobs, read by the status endpoint.

Lifecycle: queued -> processing -> completed | failed
- completed and failed are terminal; later transitions are ignored
- a failed delivery that the queue will retry goes back to queued
- terminal records expire after the retention TTL; records that never
  finish (delivered to another process, abandoned) expire once idle for the
  stale TTL
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)

JOB_ID_PREFIX = "vendor-"


class JobStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = {JobStatus.COMPLETED, JobStatus.FAILED}

UNKNOWN_JOB_RESPONSE = {"status": JobStatus.PROCESSING.value, "message": "Job is being processed..."}


class JobIdMinter:
    """
    Mints "vendor-<epoch millis>" ids, strictly increasing within the process.

    Two submissions in the same millisecond get consecutive values.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._last = 0
        self._lock = threading.Lock()

    def next_id(self) -> str:
        with self._lock:
            millis = int(self._clock() * 1000)
            if millis <= self._last:
                millis = self._last + 1
            self._last = millis
            return f"{JOB_ID_PREFIX}{millis}"


@dataclass
class ImportJobRecord:
    """Stored state of one import job."""
    job_id: str
    org_id: str
    user_id: str
    statement_id: str
    status: JobStatus = JobStatus.QUEUED
    message: str = ""
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    attempts: int = 0
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[float] = None
    last_seen: Optional[float] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "jobId": self.job_id,
            "status": self.status.value,
            "message": self.message,
            "attempts": self.attempts,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }
        if self.result is not None:
            data["result"] = self.result
        if self.error is not None:
            data["error"] = self.error
        return data


class JobStore:
    """
    In-memory job records keyed by job id.

    All methods are synchronous and never await, so they are atomic with
    respect to other coroutines on the event loop.
    """

    def __init__(
        self,
        ttl_seconds: int = 3600,
        stale_seconds: int = 6 * 3600,
        clock: Callable[[], float] = time.monotonic
    ):
        self.ttl_seconds = ttl_seconds
        self.stale_seconds = stale_seconds
        self._clock = clock
        self._jobs: Dict[str, ImportJobRecord] = {}

    def _purge_expired(self):
        now = self._clock()
        expired = [job_id for job_id, record in self._jobs.items() if self._is_expired(record, now)]
        for job_id in expired:
            del self._jobs[job_id]
        if expired:
            logger.debug(f"Purged {len(expired)} expired job record(s)")

    def _is_expired(self, record: ImportJobRecord, now: float) -> bool:
        if record.finished_at is not None:
            return now - record.finished_at > self.ttl_seconds
        return record.last_seen is not None and now - record.last_seen > self.stale_seconds

    def _touch(self, record: ImportJobRecord):
        record.updated_at = datetime.now(timezone.utc)
        record.last_seen = self._clock()

    def create(self, job_id: str, org_id: str, user_id: str, statement_id: str, message: str = "") -> ImportJobRecord:
        self._purge_expired()
        record = ImportJobRecord(
            job_id=job_id,
            org_id=org_id,
            user_id=user_id,
            statement_id=statement_id,
            message=message,
        )
        self._touch(record)
        self._jobs[job_id] = record
        return record

    def get(self, job_id: str) -> Optional[ImportJobRecord]:
        self._purge_expired()
        return self._jobs.get(job_id)

    def get_for_org(self, job_id: str, org_id: str) -> Optional[ImportJobRecord]:
        """Record visible to an organization; other organizations' jobs read as unknown."""
        record = self.get(job_id)
        if record is None or record.org_id != org_id:
            return None
        return record

    def _ensure(self, job_id: str, org_id: str, user_id: str, statement_id: str) -> ImportJobRecord:
        # Deliveries to a process that never saw the submission
        record = self.get(job_id)
        if record is None:
            record = self.create(job_id, org_id, user_id, statement_id)
        return record

    def mark_processing(self, job_id: str, org_id: str, user_id: str, statement_id: str) -> ImportJobRecord:
        record = self._ensure(job_id, org_id, user_id, statement_id)
        if record.is_terminal:
            return record
        record.status = JobStatus.PROCESSING
        record.message = "Job is being processed..."
        record.attempts += 1
        self._touch(record)
        return record

    def mark_completed(self, job_id: str, message: str, result: Dict[str, Any]) -> Optional[ImportJobRecord]:
        record = self._jobs.get(job_id)
        if record is None or record.is_terminal:
            return record
        record.status = JobStatus.COMPLETED
        record.message = message
        record.result = result
        record.error = None
        record.finished_at = self._clock()
        self._touch(record)
        return record

    def mark_failed(self, job_id: str, error: str) -> Optional[ImportJobRecord]:
        record = self._jobs.get(job_id)
        if record is None or record.is_terminal:
            return record
        record.status = JobStatus.FAILED
        record.message = "Vendor import failed"
        record.error = error
        record.finished_at = self._clock()
        self._touch(record)
        return record

    def mark_retrying(self, job_id: str, error: str) -> Optional[ImportJobRecord]:
        """A failed attempt the queue will redeliver."""
        record = self._jobs.get(job_id)
        if record is None or record.is_terminal:
            return record
        record.status = JobStatus.QUEUED
        record.message = "Retrying after error"
        record.error = error
        self._touch(record)
        return record

    def __len__(self) -> int:
        return len(self._jobs)
