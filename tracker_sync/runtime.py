"""Wiring of the sync core from settings"""

import logging
from dataclasses import dataclass
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from tracker_sync.config import Settings
from tracker_sync.errors import ErrorChannel
from tracker_sync.models.phase import Phase, Role
from tracker_sync.models.team import TeamDirectory
from tracker_sync.scheduler import IssuePoller
from tracker_sync.services.gitlab_client import GitLabClient, GitLabTracker
from tracker_sync.services.issue_service import CurrentUser, IssueService
from tracker_sync.services.issue_store import IssueStore
from tracker_sync.services.leases import CompoundMutationGuard
from tracker_sync.services.mutations import MutationOrchestrator
from tracker_sync.services.tracker import IssueTracker

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    """Everything a running service needs, built once per process"""

    scheduler: AsyncIOScheduler
    store: IssueStore
    service: IssueService
    poller: IssuePoller
    mutations: MutationOrchestrator
    errors: ErrorChannel

    def start(self):
        """Start the scheduler and the bulk poll (call from the event loop)"""
        if not self.scheduler.running:
            self.scheduler.start()
        self.poller.start()
        logger.info("Issue sync runtime started")

    def stop(self):
        self.poller.stop_all()
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("Issue sync runtime stopped")


def _split_ids(value: Optional[str]):
    return [part.strip() for part in (value or "").split(",") if part.strip()]


def build_runtime(settings: Settings, tracker: Optional[IssueTracker] = None) -> Runtime:
    """Build the runtime; a GitLab tracker is created from settings unless given."""
    teams = TeamDirectory.from_file(settings.teams_file)
    user_team = None
    if settings.user_team:
        user_team = teams.resolve_team(settings.user_team) or teams.teams([settings.user_team])[0]
    user = CurrentUser(
        login_id=settings.user_login,
        role=Role(settings.user_role),
        team=user_team,
        allocated_teams=teams.teams(_split_ids(settings.allocated_teams)),
    )

    if tracker is None:
        client = GitLabClient(settings.gitlab_url, settings.gitlab_token, settings.project_id)
        tracker = GitLabTracker(client)

    scheduler = AsyncIOScheduler()
    store = IssueStore()
    guard = CompoundMutationGuard()
    errors = ErrorChannel()
    service = IssueService(
        tracker,
        store,
        teams,
        phase=Phase(settings.phase),
        user=user,
        guard=guard,
        session_id=settings.session_id,
        client_type=settings.client_type,
        app_version=settings.app_version,
    )
    poller = IssuePoller(service, scheduler, interval_ms=settings.poll_interval_ms, guard=guard)
    mutations = MutationOrchestrator(service, scheduler, errors, undo_window_ms=settings.undo_window_ms)
    return Runtime(
        scheduler=scheduler,
        store=store,
        service=service,
        poller=poller,
        mutations=mutations,
        errors=errors,
    )
