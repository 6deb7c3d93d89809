"""Process-wide job/progress store for scrape runs.

Records are replaced whole on every update (copy, merge patch, stamp
``updated_at``), so a reader never observes a half-applied patch. Status only
moves forward: once a record reaches a terminal status, later patches cannot
change it.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field, fields, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional
from uuid import uuid4

from catalog_harvester import metrics
from catalog_harvester.config import settings

logger = logging.getLogger(__name__)


class JobStatus(str, Enum):
    """Lifecycle status of a scrape job."""
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.ERROR, JobStatus.CANCELLED})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class JobRecord:
    """Progress record for one scrape job."""

    id: str
    started_at: datetime
    updated_at: datetime
    status: JobStatus = JobStatus.RUNNING
    stage: str = "init"
    message: Optional[str] = None
    processed: int = 0
    success: int = 0
    fail: int = 0
    total: Optional[int] = None
    sections_processed: int = 0
    sections_total: Optional[int] = None
    items_discovered: int = 0
    retry_round: Optional[int] = None
    retry_pending: Optional[int] = None
    failed_items: List[Dict[str, Any]] = field(default_factory=list)
    meta: Dict[str, Any] = field(default_factory=dict)
    cancel_requested: bool = False

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        data["started_at"] = self.started_at.isoformat()
        data["updated_at"] = self.updated_at.isoformat()
        return data


_PATCHABLE_FIELDS = {f.name for f in fields(JobRecord)} - {"id", "started_at", "updated_at"}


class JobStore(ABC):
    """Storage interface for job records.

    All operations are synchronous. ``update`` on an unknown id is a no-op.
    """

    @abstractmethod
    def create(self, job_id: Optional[str] = None) -> str:
        """Create a running record and return its id."""

    @abstractmethod
    def get(self, job_id: str) -> Optional[JobRecord]:
        """Return the record, or None if it never existed or was lost."""

    @abstractmethod
    def update(self, job_id: str, **patch) -> Optional[JobRecord]:
        """Merge ``patch`` into the record and stamp ``updated_at``."""

    @abstractmethod
    def delete(self, job_id: str) -> bool:
        """Remove the record."""

    def mark_completed(self, job_id: str, **patch) -> Optional[JobRecord]:
        return self.update(job_id, status=JobStatus.COMPLETED, **patch)

    def mark_error(self, job_id: str, message: str, **patch) -> Optional[JobRecord]:
        return self.update(job_id, status=JobStatus.ERROR, message=message, **patch)

    def mark_cancelled(self, job_id: str, **patch) -> Optional[JobRecord]:
        return self.update(job_id, status=JobStatus.CANCELLED, **patch)

    def request_cancel(self, job_id: str) -> Optional[JobRecord]:
        """Set the cooperative cancellation flag. Idempotent; finished jobs are left as they are."""
        record = self.get(job_id)
        if record is None or record.is_terminal:
            return record
        return self.update(job_id, cancel_requested=True, message="cancelled")

    def is_cancel_requested(self, job_id: Optional[str]) -> bool:
        if not job_id:
            return False
        record = self.get(job_id)
        return bool(record and record.cancel_requested)

    def cleanup(self, job_id: str) -> bool:
        """Remove a record once it reached a terminal status."""
        record = self.get(job_id)
        if record is None or not record.is_terminal:
            return False
        return self.delete(job_id)


class InMemoryJobStore(JobStore):
    """
    Dict-backed job store.

    Terminal records expire ``ttl_seconds`` after their last update. Expired
    records are removed by ``sweep_expired``, which runs lazily on ``create``
    and periodically from the scheduler. Running records never expire.
    """

    def __init__(
        self,
        ttl_seconds: Optional[int] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.ttl_seconds = settings.job_ttl_seconds if ttl_seconds is None else ttl_seconds
        self._clock = clock
        self._records: Dict[str, JobRecord] = {}

    def __len__(self) -> int:
        return len(self._records)

    def _new_id(self) -> str:
        job_id = uuid4().hex
        while job_id in self._records:
            job_id = uuid4().hex
        return job_id

    def create(self, job_id: Optional[str] = None) -> str:
        self.sweep_expired()

        final_id = job_id if job_id and isinstance(job_id, str) else self._new_id()
        previous = self._records.get(final_id)
        if previous is not None:
            logger.info(f"Job {final_id} re-submitted, replacing previous record")
            if not previous.is_terminal:
                metrics.active_jobs.dec()

        now = self._clock()
        self._records[final_id] = JobRecord(id=final_id, started_at=now, updated_at=now)
        metrics.active_jobs.inc()
        return final_id

    def get(self, job_id: str) -> Optional[JobRecord]:
        return self._records.get(job_id)

    def update(self, job_id: str, **patch) -> Optional[JobRecord]:
        current = self._records.get(job_id)
        if current is None:
            return None

        unknown = set(patch) - _PATCHABLE_FIELDS
        if unknown:
            logger.warning(f"Ignoring unknown job fields for {job_id}: {sorted(unknown)}")
            patch = {k: v for k, v in patch.items() if k in _PATCHABLE_FIELDS}

        if "status" in patch:
            new_status = JobStatus(patch["status"])
            if current.is_terminal and new_status != current.status:
                logger.debug(
                    f"Job {job_id} is {current.status.value}; ignoring transition to {new_status.value}"
                )
                patch.pop("status")
            else:
                patch["status"] = new_status
                if new_status in TERMINAL_STATUSES and not current.is_terminal:
                    metrics.active_jobs.dec()
                    metrics.scrape_jobs_total.labels(status=new_status.value).inc()

        updated = replace(current, updated_at=self._clock(), **patch)
        self._records[job_id] = updated
        return updated

    def delete(self, job_id: str) -> bool:
        record = self._records.pop(job_id, None)
        if record is not None and not record.is_terminal:
            metrics.active_jobs.dec()
        return record is not None

    def sweep_expired(self) -> int:
        """Remove terminal records older than the TTL. Returns the count removed."""
        if self.ttl_seconds <= 0:
            return 0

        cutoff = self._clock() - timedelta(seconds=self.ttl_seconds)
        expired = [
            job_id
            for job_id, record in self._records.items()
            if record.is_terminal and record.updated_at < cutoff
        ]
        for job_id in expired:
            del self._records[job_id]

        if expired:
            metrics.jobs_expired_total.inc(len(expired))
            logger.info(f"Expired {len(expired)} finished job records")
        return len(expired)


# Global job store instance
job_store = InMemoryJobStore()
