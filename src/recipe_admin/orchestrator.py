"""
Generation job orchestration for the recipe backend.

This module owns the lifecycle of the single generation job the dashboard may
run at a time:
- Request validation and dispatch to the matching backend endpoint
- Progress tracking by polling the batch status endpoint (backend returned a job id)
- Progress simulation on a fixed tick (backend returned no job id)
- Settle delay, reset to idle and catalog refresh once generation completes

The GenerationOrchestrator is the only writer of the job state. Other
components observe it through snapshots and listeners.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional
from uuid import uuid4

from .backend import BackendClient
from .catalog import CatalogStore
from .configuration import GenerationSettings
from .errors import JobAlreadyRunningError, JobError, RefreshError, SubmissionError, TransientPollError
from .models import GenerationKind, GenerationRequest, JobSnapshot, JobStatus, JobStatusReport
from .notices import NoticeBoard
from .progress import next_progress
from .ticker import JobTicker
from .validation import expected_recipe_count, resolve_route, validate_request

logger = logging.getLogger(__name__)

JobListener = Callable[[JobSnapshot], None]
Sleep = Callable[[float], Awaitable[None]]

ACTIVE_STATUSES = (JobStatus.RUNNING, JobStatus.COMPLETED)


@dataclass
class JobRecord:
    """
    Internal, mutable state of the current generation job.

    Attributes:
        token: Local identity of this job; background loops carry it so results
            belonging to a superseded job can be recognised and dropped
        kind: Kind of the submitted request (None while idle)
        id: Backend job id, when the backend returned one
        status: Current lifecycle status
        progress: Completion percentage in [0, 100]
        error_message: Failure description when status is ERROR
        expected_recipes: Number of PDFs the request should produce
    """

    token: str
    kind: Optional[GenerationKind] = None
    id: Optional[str] = None
    status: JobStatus = JobStatus.IDLE
    progress: float = 0.0
    error_message: Optional[str] = None
    expected_recipes: int = 0

    @classmethod
    def idle(cls) -> "JobRecord":
        return cls(token=uuid4().hex)

    def to_snapshot(self) -> JobSnapshot:
        return JobSnapshot(
            id=self.id,
            kind=self.kind,
            status=self.status,
            progress=self.progress,
            error_message=self.error_message,
            expected_recipes=self.expected_recipes,
        )


class GenerationOrchestrator:
    """
    Coordinator for generation requests.

    Concurrency:
        Runs on a single asyncio event loop. At most one background loop
        (poll or simulation, including its settle delay) exists at a time and
        it is owned by a JobTicker. Every state change checks the job token
        first, so a loop that outlived its job cannot modify its successor.

    Attributes:
        settings: Poll interval, settle delay, simulation tick and batch sizes
    """

    def __init__(
        self,
        client: BackendClient,
        catalog: CatalogStore,
        settings: GenerationSettings,
        notices: Optional[NoticeBoard] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        """
        Initialize the orchestrator.

        Args:
            client: Backend client used for submission and status checks
            catalog: Store refreshed after every completed generation
            settings: Generation timing and validation settings
            notices: Board receiving user-facing failures (optional)
            sleep: Coroutine used for every wait; tests pass a fake clock
        """
        self.settings = settings
        self._client = client
        self._catalog = catalog
        self._notices = notices
        self._sleep = sleep
        self._job = JobRecord.idle()
        self._ticker = JobTicker()
        self._refresh_task: Optional[asyncio.Task] = None
        self._listeners: List[JobListener] = []

    @property
    def status(self) -> JobStatus:
        return self._job.status

    @property
    def is_active(self) -> bool:
        return self._job.status in ACTIVE_STATUSES

    def snapshot(self) -> JobSnapshot:
        return self._job.to_snapshot()

    def add_listener(self, listener: JobListener) -> None:
        self._listeners.append(listener)

    def _notify(self) -> None:
        snapshot = self._job.to_snapshot()
        for listener in list(self._listeners):
            listener(snapshot)

    def _is_current(self, token: str) -> bool:
        return self._job.token == token

    def _reset(self) -> None:
        self._job = JobRecord.idle()
        self._notify()

    async def submit(self, request: GenerationRequest) -> JobSnapshot:
        """
        Validate and dispatch a generation request.

        Args:
            request: Any of the four generation request kinds

        Returns:
            Snapshot of the job right after dispatch (status RUNNING)

        Raises:
            JobAlreadyRunningError: If a job is running or settling
            RequestValidationError: If the request is incomplete; no call is made
            SubmissionError: If the backend rejected the request; the job is
                left in ERROR and a new submission is allowed
        """
        if self.is_active:
            raise JobAlreadyRunningError("A generation is already in progress.")

        validate_request(request, self.settings.theme_counts)
        path, payload = resolve_route(request)

        if self._job.status == JobStatus.ERROR:
            # error -> idle before the next run starts
            self._reset()

        token = uuid4().hex
        self._ticker.cancel()
        self._job = JobRecord(
            token=token,
            kind=GenerationKind(request.kind),
            status=JobStatus.RUNNING,
            expected_recipes=expected_recipe_count(request, self.settings.menu_recipe_count),
        )
        self._notify()
        logger.info(f"Submitting {request.kind} generation to {path}")

        try:
            body = await self._client.submit_generation(path, payload)
        except SubmissionError as exc:
            if self._is_current(token):
                self._fail(token, str(exc), source="submission")
            raise

        if not self._is_current(token):
            # Cancelled while the submission was in flight.
            return self.snapshot()

        job_id = body.get("jobId")
        if job_id:
            self._job.id = str(job_id)
            self._notify()
            logger.info(f"Backend accepted job {job_id}; polling every {self.settings.poll_interval}s")
            self._ticker.start(token, self._poll(token, str(job_id)))
        else:
            logger.info("Backend returned no job id; simulating progress")
            self._ticker.start(token, self._simulate(token))
        return self.snapshot()

    def _advance(self, token: str, progress: float) -> None:
        if not self._is_current(token) or self._job.status != JobStatus.RUNNING:
            return
        progress = min(100.0, max(0.0, progress))
        if progress > self._job.progress:
            self._job.progress = progress
            self._notify()

    def _fail(self, token: str, message: str, source: str) -> None:
        if not self._is_current(token):
            return
        self._job.status = JobStatus.ERROR
        self._job.error_message = message
        self._notify()
        if self._notices is not None:
            self._notices.report(source, message)
        else:
            logger.error(f"Generation failed ({source}): {message}")

    async def _check_status(self, job_id: str) -> JobStatusReport:
        report = await self._client.get_job_status(job_id)
        if report.status == JobStatus.ERROR:
            raise JobError(report.error or f"Generation job {job_id} failed.")
        return report

    async def _poll(self, token: str, job_id: str) -> None:
        while self._is_current(token):
            await self._sleep(self.settings.poll_interval)
            if not self._is_current(token):
                return

            try:
                report = await self._check_status(job_id)
            except TransientPollError as exc:
                logger.warning(f"Status check for job {job_id} failed, retrying: {exc}")
                continue
            except JobError as exc:
                self._fail(token, str(exc), source="job")
                return

            if not self._is_current(token):
                logger.warning(f"Discarding status of superseded job {job_id}")
                return

            self._advance(token, report.progress)
            if report.status == JobStatus.COMPLETED:
                await self._complete(token)
                return

    async def _simulate(self, token: str) -> None:
        ticks = 0
        while self._is_current(token) and self._job.progress < 100:
            await self._sleep(self.settings.simulation_tick)
            if not self._is_current(token):
                return
            self._advance(token, next_progress(self._job.progress, ticks))
            ticks += 1

        if self._is_current(token):
            await self._complete(token)

    async def _complete(self, token: str) -> None:
        self._advance(token, 100.0)
        self._job.status = JobStatus.COMPLETED
        self._notify()
        logger.info(f"Generation {self._job.id or token} completed; settling for {self.settings.settle_delay}s")

        await self._sleep(self.settings.settle_delay)
        if not self._is_current(token):
            return

        self._reset()
        # The refresh outlives the ticker so a new submission cannot cancel it.
        self._refresh_task = asyncio.get_running_loop().create_task(self._refresh_catalog(), name="catalog-refresh")

    async def _refresh_catalog(self) -> None:
        try:
            await self._catalog.refresh()
        except RefreshError as exc:
            if self._notices is not None:
                self._notices.report("refresh", str(exc))
            else:
                logger.error(f"Catalog refresh after generation failed: {exc}")

    def cancel_active_job(self) -> None:
        """
        Stop the poll or simulation loop of the active job.

        Client side only: the backend is not told. The catalog is not touched.
        An active job returns to idle; a failed job keeps its error.
        """
        self._ticker.cancel()
        if self.is_active:
            logger.info(f"Cancelled generation {self._job.id or self._job.token}")
            self._reset()

    def acknowledge_error(self) -> JobSnapshot:
        if self._job.status == JobStatus.ERROR:
            self._reset()
        return self.snapshot()

    async def wait_until_settled(self) -> None:
        """Wait for the background loop and any follow-up catalog refresh."""
        await self._ticker.join()
        if self._refresh_task is not None:
            await self._refresh_task

    async def close(self) -> None:
        self.cancel_active_job()
        task, self._refresh_task = self._refresh_task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
