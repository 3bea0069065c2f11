"""
Dashboard counters derived from the catalog snapshot.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Optional, Sequence

from .backend import BackendClient
from .catalog import parse_timestamp
from .models import CatalogEntry, JobStatus, Stats

logger = logging.getLogger(__name__)

GENERATION_RUNNING = "running"
GENERATION_READY = "ready"


def is_same_utc_day(created_at: str, now: datetime) -> bool:
    parsed = parse_timestamp(created_at)
    if parsed is None:
        return False
    return parsed.astimezone(timezone.utc).date() == now.astimezone(timezone.utc).date()


def compute_stats(
    entries: Sequence[CatalogEntry],
    job_status: JobStatus,
    storage_label: str,
    now: Optional[datetime] = None,
) -> Stats:
    """
    Derive the dashboard counters.

    "Today" is the current calendar day in UTC; entries whose `createdAt` is
    not a parseable timestamp never count as created today.
    """
    now = now or datetime.now(timezone.utc)
    return Stats(
        total=len(entries),
        today=sum(1 for entry in entries if is_same_utc_day(entry.created_at, now)),
        storage_label=storage_label,
        generation_label=GENERATION_RUNNING if job_status == JobStatus.RUNNING else GENERATION_READY,
    )


class StatsAggregator:
    """
    Keeps the latest Stats in step with the catalog and the job.

    Register `on_snapshot` as a CatalogStore listener; the job status is read
    through `job_status` each time the stats are recomputed.
    """

    def __init__(
        self,
        job_status: Callable[[], JobStatus],
        storage_label: str,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._job_status = job_status
        self._clock = clock
        self.storage_label = storage_label
        self._entries: Sequence[CatalogEntry] = ()
        self.current = compute_stats((), JobStatus.IDLE, storage_label, clock())

    def on_snapshot(self, entries: Sequence[CatalogEntry]) -> None:
        self._entries = entries
        self.recompute()

    def recompute(self) -> Stats:
        self.current = compute_stats(self._entries, self._job_status(), self.storage_label, self._clock())
        return self.current

    async def load_storage_label(self, client: BackendClient) -> str:
        info = await client.get_storage_info()
        label = info.get("activeStorageType")
        if isinstance(label, str) and label.strip():
            self.storage_label = label
            self.recompute()
        else:
            logger.info(f"Keeping default storage label {self.storage_label!r}")
        return self.storage_label
