"""Cooperative cancellation token passed into every scrape stage."""

from typing import Optional

from catalog_harvester.worker.job_store import JobStore


class CancellationToken:
    """
    Read-only view of a job's cancellation flag.

    Stages poll ``cancelled`` at loop boundaries; nothing in flight is
    interrupted.
    """

    def __init__(self, store: Optional[JobStore] = None, job_id: Optional[str] = None):
        self._store = store
        self.job_id = job_id

    @classmethod
    def never(cls) -> "CancellationToken":
        """Token that is never cancelled."""
        return cls()

    @property
    def cancelled(self) -> bool:
        if self._store is None:
            return False
        return self._store.is_cancel_requested(self.job_id)

    def __repr__(self) -> str:
        return f"CancellationToken(job_id={self.job_id!r}, cancelled={self.cancelled})"
