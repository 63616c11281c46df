"""Background polling of the remote tracker"""

import logging
from datetime import datetime, timezone
from typing import Callable, Dict, Optional, Set

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from tracker_sync.errors import TrackerError
from tracker_sync.models.issue import DomainIssue
from tracker_sync.services.issue_service import IssueService
from tracker_sync.services.leases import CompoundMutationGuard
from tracker_sync.observable import ObservableValue

logger = logging.getLogger(__name__)

BULK_JOB_ID = "poll_all_issues"


def issue_job_id(issue_id: int) -> str:
    return f"poll_issue_{issue_id}"


class IssuePoller:
    """Periodic full refresh plus optional per-issue refresh.

    At most one cycle of each loop is in flight: a tick that fires while the
    previous one is still running is dropped, not queued. Stopping a loop
    removes its job and bumps its generation, so a cycle still in flight
    finishes once but cannot clear the guard of a later restart.
    """

    def __init__(
        self,
        service: IssueService,
        scheduler: AsyncIOScheduler,
        *,
        interval_ms: int = 5000,
        guard: Optional[CompoundMutationGuard] = None,
    ):
        self.service = service
        self.scheduler = scheduler
        self.interval_ms = interval_ms
        self.guard = guard or service.guard
        self.loading: ObservableValue[bool] = ObservableValue(False)

        self._bulk_in_flight = False
        self._bulk_generation = 0
        self._bulk_ticked = False

        self._issue_in_flight: Set[int] = set()
        self._issue_generations: Dict[int, int] = {}

    def _add_interval_job(self, func, job_id: str, args=None):
        self.scheduler.add_job(
            func=func,
            trigger=IntervalTrigger(seconds=self.interval_ms / 1000),
            id=job_id,
            args=args or [],
            next_run_time=datetime.now(timezone.utc),
            coalesce=True,
            # Overlap is dropped by the in-flight guards; the spare slot lets a
            # restarted loop tick while a stopped cycle is still draining.
            max_instances=2,
            replace_existing=True,
        )

    @property
    def is_polling(self) -> bool:
        return self.scheduler.get_job(BULK_JOB_ID) is not None

    def start(self):
        """Start polling all issues (no-op if already polling)"""
        if self.is_polling:
            return
        self._bulk_ticked = False
        self._add_interval_job(self.poll_all_issues_once, BULK_JOB_ID)
        logger.info(f"Polling all issues every {self.interval_ms} ms")

    def stop(self):
        """Stop polling all issues"""
        if self.scheduler.get_job(BULK_JOB_ID) is not None:
            self.scheduler.remove_job(BULK_JOB_ID)
            logger.info("Stopped polling all issues")
        self._bulk_generation += 1
        self._bulk_in_flight = False

    async def poll_all_issues_once(self) -> bool:
        """Run one full fetch-and-reconcile cycle. Returns False if the tick was dropped."""
        if self._bulk_in_flight:
            logger.debug("Skipping issue poll: previous cycle still in flight")
            return False

        generation = self._bulk_generation
        self._bulk_in_flight = True
        first = not self._bulk_ticked
        self._bulk_ticked = True
        if first and len(self.service.store) == 0:
            self.loading.set(True)

        try:
            await self.service.reload_all_issues()
        except Exception as e:
            logger.error(f"Issue poll failed: {e}")
        finally:
            if generation == self._bulk_generation:
                self._bulk_in_flight = False
            if first and self.loading.value:
                self.loading.set(False)
        return True

    def start_issue_poll(self, issue_id: int, on_issue: Optional[Callable[[DomainIssue], None]] = None):
        """Start polling a single issue, passing each result to `on_issue`"""
        job_id = issue_job_id(issue_id)
        if self.scheduler.get_job(job_id) is not None:
            return
        self._add_interval_job(self.poll_issue_once, job_id, args=[issue_id, on_issue])
        logger.info(f"Polling issue {issue_id} every {self.interval_ms} ms")

    def stop_issue_poll(self, issue_id: int):
        job_id = issue_job_id(issue_id)
        if self.scheduler.get_job(job_id) is not None:
            self.scheduler.remove_job(job_id)
            logger.info(f"Stopped polling issue {issue_id}")
        self._issue_generations[issue_id] = self._issue_generations.get(issue_id, 0) + 1
        self._issue_in_flight.discard(issue_id)

    async def poll_issue_once(
        self, issue_id: int, on_issue: Optional[Callable[[DomainIssue], None]] = None
    ) -> Optional[DomainIssue]:
        """Refresh one issue; falls back to the cached copy when the remote fails.

        Does nothing while a compound mutation holds the guard or while the
        previous refresh of this issue is still in flight.
        """
        if self.guard.active:
            return None
        if issue_id in self._issue_in_flight:
            return None

        generation = self._issue_generations.get(issue_id, 0)
        self._issue_in_flight.add(issue_id)
        try:
            try:
                issue = await self.service.fetch_latest_issue(issue_id)
            except TrackerError as e:
                logger.warning(f"Failed to refresh issue {issue_id}, using cached copy: {e}")
                issue = None
            if issue is None:
                issue = self.service.store.get(issue_id)
        finally:
            if self._issue_generations.get(issue_id, 0) == generation:
                self._issue_in_flight.discard(issue_id)

        if issue is not None and on_issue is not None:
            on_issue(issue)
        return issue

    def stop_all(self):
        """Stop the bulk poll and every single-issue poll"""
        self.stop()
        for job in list(self.scheduler.get_jobs()):
            if not job.id.startswith("poll_issue_"):
                continue
            try:
                issue_id = int(job.id.split("poll_issue_", 1)[1])
            except ValueError:
                continue
            self.stop_issue_poll(issue_id)
