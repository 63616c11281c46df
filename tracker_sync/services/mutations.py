"""Optimistic mutations: delete with undo, bulk eliminate, status changes.

Each issue id moves through its own small state machine:

    IDLE -> PENDING_DELETE -> DELETED        (close succeeded)
                           -> IDLE           (close failed)
    DELETED -> PENDING_UNDO -> IDLE          (reopen settled)

DELETED lasts while the undo window of the delete is open; once the window
elapses the id is forgotten (IDLE again). Failures are reported once to the
error channel and never retried.
"""

import asyncio
import enum
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Dict, Iterable, List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger

from tracker_sync.errors import ErrorChannel, IllegalTransition
from tracker_sync.models.issue import DomainIssue, RemoteComment, Status
from tracker_sync.services.issue_service import IssueService
from tracker_sync.observable import ObservableValue

logger = logging.getLogger(__name__)


class IssueState(str, enum.Enum):
    """Per-issue mutation state"""
    IDLE = "idle"
    PENDING_DELETE = "pending_delete"
    DELETED = "deleted"
    PENDING_UNDO = "pending_undo"


class WindowStatus(str, enum.Enum):
    OPEN = "open"
    UNDONE = "undone"
    ELAPSED = "elapsed"


class UndoWindow:
    """Confirmation window opened by a delete or bulk eliminate"""

    def __init__(
        self,
        orchestrator: "MutationOrchestrator",
        token: str,
        issue_ids: List[int],
        tasks: List[asyncio.Task],
        expires_at: datetime,
        on_elapsed: Optional[Callable[[], None]] = None,
    ):
        self.orchestrator = orchestrator
        self.token = token
        self.issue_ids = list(issue_ids)
        self.expires_at = expires_at
        self.status = WindowStatus.OPEN
        self._tasks = tasks
        self.on_elapsed = on_elapsed

    @property
    def is_open(self) -> bool:
        return self.status == WindowStatus.OPEN

    async def settled(self) -> List[bool]:
        """Wait for the remote close calls; True per id that was closed."""
        return list(await asyncio.gather(*self._tasks))

    async def undo(self) -> List[DomainIssue]:
        """Reopen every issue of this window."""
        return await self.orchestrator.undo_window(self)


class MutationOrchestrator:
    """Applies mutations through the issue service and folds results into the store"""

    def __init__(
        self,
        service: IssueService,
        scheduler: AsyncIOScheduler,
        errors: ErrorChannel,
        *,
        undo_window_ms: int = 3000,
    ):
        self.service = service
        self.scheduler = scheduler
        self.errors = errors
        self.undo_window_ms = undo_window_ms
        self.pending_deletion: ObservableValue[Dict[int, bool]] = ObservableValue({})

        self._states: Dict[int, IssueState] = {}
        self._delete_tasks: Dict[int, asyncio.Task] = {}
        self._windows: Dict[str, UndoWindow] = {}
        self._window_of: Dict[int, str] = {}

    @property
    def store(self):
        return self.service.store

    def state_of(self, issue_id: int) -> IssueState:
        return self._states.get(issue_id, IssueState.IDLE)

    def is_pending_deletion(self, issue_id: int) -> bool:
        return self.pending_deletion.value.get(issue_id, False)

    def get_window(self, token: str) -> Optional[UndoWindow]:
        return self._windows.get(token)

    def _set_state(self, issue_id: int, state: IssueState) -> None:
        if state == IssueState.IDLE:
            self._states.pop(issue_id, None)
        else:
            self._states[issue_id] = state

    def _set_pending(self, issue_id: int, pending: bool) -> None:
        current = dict(self.pending_deletion.value)
        if pending:
            current[issue_id] = True
        else:
            current.pop(issue_id, None)
        self.pending_deletion.set(current)

    # Delete / undo

    def delete_issue(self, issue_id: int) -> UndoWindow:
        """Start closing `issue_id` remotely and open its undo window.

        Must be called from the event loop. Raises IllegalTransition if the
        issue already has a delete or undo in progress (including as part of
        a bulk eliminate).
        """
        self._check_deletable([issue_id])
        logger.info(f"Deleting issue {issue_id}")
        task = self._begin_delete(issue_id)
        return self._open_window([issue_id], [task])

    def eliminate_issues(
        self, issue_ids: Iterable[int], on_elapsed: Optional[Callable[[], None]] = None
    ) -> UndoWindow:
        """Delete several issues under one shared undo window.

        `on_elapsed` runs when the window closes without an undo; callers use
        it to clear their own eliminated-issue set.
        """
        ids = list(dict.fromkeys(issue_ids))
        self._check_deletable(ids)
        logger.info(f"Eliminating issues {ids}")
        tasks = [self._begin_delete(issue_id) for issue_id in ids]
        return self._open_window(ids, tasks, on_elapsed)

    def _check_deletable(self, issue_ids: List[int]) -> None:
        busy = [i for i in issue_ids if self.state_of(i) != IssueState.IDLE]
        if busy:
            states = ", ".join(f"{i}={self.state_of(i).value}" for i in busy)
            raise IllegalTransition(f"Cannot delete issues that are not idle: {states}")

    def _begin_delete(self, issue_id: int) -> asyncio.Task:
        self._set_state(issue_id, IssueState.PENDING_DELETE)
        self._set_pending(issue_id, True)
        task = asyncio.get_running_loop().create_task(self._run_delete(issue_id))
        self._delete_tasks[issue_id] = task
        return task

    async def _run_delete(self, issue_id: int) -> bool:
        try:
            await self.service.close_issue(issue_id)
        except Exception as e:
            self._set_state(issue_id, IssueState.IDLE)
            self.errors.report(e)
            return False
        finally:
            self._set_pending(issue_id, False)
            self._delete_tasks.pop(issue_id, None)

        window = self._windows.get(self._window_of.get(issue_id, ""))
        self._set_state(issue_id, IssueState.DELETED if window is not None else IssueState.IDLE)
        self.store.evict_one(issue_id)
        logger.info(f"Deleted issue {issue_id}")
        return True

    def _open_window(
        self, issue_ids: List[int], tasks: List[asyncio.Task], on_elapsed: Optional[Callable[[], None]] = None
    ) -> UndoWindow:
        token = uuid.uuid4().hex
        expires_at = datetime.now(timezone.utc) + timedelta(milliseconds=self.undo_window_ms)
        window = UndoWindow(self, token, issue_ids, tasks, expires_at, on_elapsed)
        self._windows[token] = window
        for issue_id in issue_ids:
            self._window_of[issue_id] = token
        self.scheduler.add_job(
            func=self._expire_window,
            trigger=DateTrigger(run_date=expires_at),
            id=f"undo_window_{token}",
            args=[token],
            misfire_grace_time=None,
        )
        return window

    def _close_window(self, window: UndoWindow, status: WindowStatus) -> None:
        window.status = status
        self._windows.pop(window.token, None)
        for issue_id in window.issue_ids:
            if self._window_of.get(issue_id) == window.token:
                del self._window_of[issue_id]

    async def _expire_window(self, token: str) -> None:
        window = self._windows.get(token)
        if window is None or not window.is_open:
            return
        self._close_window(window, WindowStatus.ELAPSED)
        for issue_id in window.issue_ids:
            if self.state_of(issue_id) == IssueState.DELETED:
                self._set_state(issue_id, IssueState.IDLE)
        logger.info(f"Undo window for issues {window.issue_ids} elapsed")
        if window.on_elapsed is not None:
            window.on_elapsed()

    async def undo_window(self, window: UndoWindow) -> List[DomainIssue]:
        """Cancel the window's expiry and reopen all of its issues."""
        if window.is_open:
            job_id = f"undo_window_{window.token}"
            if self.scheduler.get_job(job_id) is not None:
                self.scheduler.remove_job(job_id)
            self._close_window(window, WindowStatus.UNDONE)
        restored = await asyncio.gather(*(self.undelete_issue(i) for i in window.issue_ids))
        return [issue for issue in restored if issue is not None]

    async def undelete_issue(self, issue_id: int) -> Optional[DomainIssue]:
        """Reopen `issue_id` and put it back into the store.

        A delete of the same id that is still in flight is awaited first.
        Window expiry is not enforced here.
        """
        task = self._delete_tasks.get(issue_id)
        if task is not None:
            await task

        previous = self.state_of(issue_id)
        if previous in (IssueState.PENDING_UNDO, IssueState.PENDING_DELETE):
            raise IllegalTransition(f"Cannot undo issue {issue_id} while it is {previous.value}")

        logger.info(f"Undeleting issue {issue_id}")
        self._set_state(issue_id, IssueState.PENDING_UNDO)
        try:
            issue = await self.service.reopen_issue(issue_id)
        except Exception as e:
            self._set_state(issue_id, previous)
            self.errors.report(e)
            return None

        self._set_state(issue_id, IssueState.IDLE)
        return self.store.upsert_one(issue)

    # Updates that replace the cache entry on success

    async def _commit(self, call: Awaitable[DomainIssue]) -> Optional[DomainIssue]:
        try:
            issue = await call
        except Exception as e:
            self.errors.report(e)
            return None
        return self.store.upsert_one(issue)

    async def _set_status(self, issue: DomainIssue, status: Status) -> Optional[DomainIssue]:
        clone = issue.clone(self.service.phase)
        clone.status = status
        return await self._commit(self.service.update_issue(clone))

    async def mark_as_responded(self, issue: DomainIssue) -> Optional[DomainIssue]:
        logger.info(f"Marking issue {issue.id} as responded")
        return await self._set_status(issue, Status.DONE)

    async def mark_as_pending(self, issue: DomainIssue) -> Optional[DomainIssue]:
        logger.info(f"Marking issue {issue.id} as pending")
        return await self._set_status(issue, Status.INCOMPLETE)

    async def update_issue(self, issue: DomainIssue) -> Optional[DomainIssue]:
        return await self._commit(self.service.update_issue(issue))

    async def create_issue(
        self, title: str, description: str, severity: str, issue_type: str
    ) -> Optional[DomainIssue]:
        return await self._commit(self.service.create_issue(title, description, severity, issue_type))

    async def submit_team_response(self, issue: DomainIssue) -> Optional[DomainIssue]:
        return await self._commit(self.service.create_team_response(issue))

    async def submit_tester_response(self, issue: DomainIssue, response: str) -> Optional[DomainIssue]:
        return await self._commit(self.service.update_tester_response(issue, response))

    async def submit_tutor_response(self, issue: DomainIssue, response: str) -> Optional[DomainIssue]:
        return await self._commit(self.service.create_tutor_response(issue, response))

    async def update_tutor_response(self, issue: DomainIssue, comment: RemoteComment) -> Optional[DomainIssue]:
        return await self._commit(self.service.update_tutor_response(issue, comment))
