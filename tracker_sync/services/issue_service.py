"""Issue service: remote fetches and mutations expressed in domain issues"""

import asyncio
import dataclasses
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from tracker_sync.errors import TrackerError
from tracker_sync.models.issue import DomainIssue, IssueFilter, RemoteComment, RemoteIssue, Status
from tracker_sync.models.phase import FilterKind, Phase, Role, filter_kind_for, requires_closed_issues
from tracker_sync.models.team import Team, TeamDirectory
from tracker_sync.services import markdown
from tracker_sync.services.issue_factory import build_issue
from tracker_sync.services.issue_store import IssueStore
from tracker_sync.services.labels import TEAM, TUTORIAL, embed_hidden, encode_labels, make_label
from tracker_sync.services.leases import CompoundMutationGuard
from tracker_sync.services.tracker import IssueTracker

logger = logging.getLogger(__name__)


@dataclass
class CurrentUser:
    """The signed-in user, as far as issue filtering is concerned"""

    login_id: str
    role: Role
    team: Optional[Team] = None
    allocated_teams: List[Team] = field(default_factory=list)


def team_labels(team: Team) -> List[str]:
    return [make_label(TUTORIAL, team.tutorial_class_id), make_label(TEAM, team.team_id)]


class IssueService:
    """Creates, updates and fetches issues through the remote tracker.

    Fetch paths write into the store; mutation methods return the resulting
    domain issue and leave the cache write to the caller.
    """

    def __init__(
        self,
        tracker: IssueTracker,
        store: IssueStore,
        teams: TeamDirectory,
        *,
        phase: Phase,
        user: CurrentUser,
        guard: Optional[CompoundMutationGuard] = None,
        session_id: Optional[str] = None,
        client_type: str = "Desktop",
        app_version: str = "1.0.0",
    ):
        self.tracker = tracker
        self.store = store
        self.teams = teams
        self.phase = Phase(phase)
        self.user = user
        self.guard = guard or CompoundMutationGuard()
        self.session_id = session_id
        self.client_type = client_type
        self.app_version = app_version

    def build(self, remote: RemoteIssue) -> DomainIssue:
        issue = build_issue(remote, self.phase, self.teams.resolve_team)
        if issue.parse_error:
            logger.error(f"IssueService: {issue.parse_error}")
        return issue

    def issue_filters(self) -> List[IssueFilter]:
        """Remote queries for the current phase and user role (empty: no access)."""
        state = "all" if requires_closed_issues(self.phase) else "opened"
        kind = filter_kind_for(self.phase, self.user.role)

        if kind == FilterKind.BY_CREATOR:
            return [IssueFilter(creator=self.user.login_id, state=state)]
        if kind == FilterKind.BY_TEAM:
            if self.user.team is None:
                logger.warning(f"User {self.user.login_id} has no team; nothing to load")
                return []
            return [IssueFilter(labels=team_labels(self.user.team), state=state)]
        if kind == FilterKind.BY_TEAM_ASSIGNED:
            return [IssueFilter(labels=team_labels(t), state=state) for t in self.user.allocated_teams]
        if kind == FilterKind.NO_FILTER:
            return [IssueFilter(state=state)]
        return []

    async def reload_all_issues(self) -> List[DomainIssue]:
        """Fetch every issue visible to the user and reconcile the store."""
        filters = self.issue_filters()
        if not filters:
            return self.store.snapshot()

        results = await asyncio.gather(*(self.tracker.fetch_by_filter(f) for f in filters))
        fresh = [self.build(remote) for remotes in results for remote in remotes]
        return self.store.reconcile(fresh)

    async def fetch_latest_issue(self, issue_id: int) -> Optional[DomainIssue]:
        """Fetch one issue, save it in the store and return it (None if the remote has no such issue)."""
        remote = await self.tracker.fetch_by_id(issue_id)
        if remote is None:
            return None
        return self.store.upsert_one(self.build(remote))

    async def get_issue(self, issue_id: int) -> Optional[DomainIssue]:
        cached = self.store.get(issue_id)
        if cached is not None:
            return cached
        try:
            return await self.fetch_latest_issue(issue_id)
        except TrackerError as e:
            logger.warning(f"Failed to fetch issue {issue_id}: {e}")
            return self.store.get(issue_id)

    def hidden_data(self) -> dict:
        data = {"Version": f"{self.client_type} v{self.app_version}"}
        if self.session_id:
            data["session"] = self.session_id
        return data

    async def create_issue(self, title: str, description: str, severity: str, issue_type: str) -> DomainIssue:
        labels = [make_label("severity", severity), make_label("type", issue_type)]
        body = embed_hidden(description, self.hidden_data())
        remote = await self.tracker.create(title, body, labels)
        logger.info(f"Created issue {remote.id}")
        return self.build(remote)

    async def update_remote_issue(self, issue: DomainIssue) -> RemoteIssue:
        """Write `issue` to the remote without building a domain issue from the answer."""
        assignees = [] if self.phase == Phase.MODERATION else list(issue.assignees)
        try:
            return await self.tracker.update(
                issue.id,
                issue.title,
                markdown.render_issue_body(issue, self.phase),
                encode_labels(issue, self.phase),
                assignees,
            )
        except TrackerError as e:
            logger.error(f"IssueService: failed to update issue {issue.id}: {e!r}")
            raise

    async def update_issue(self, issue: DomainIssue) -> DomainIssue:
        remote = await self.update_remote_issue(issue)
        remote.comments = list(issue.comments)
        return self.build(remote)

    async def update_issue_with_comment(self, issue: DomainIssue, comment: RemoteComment) -> DomainIssue:
        updated_comment = await self.tracker.update_comment(comment)
        issue.comments = issue.with_comment(updated_comment)
        return await self.update_issue(issue)

    async def create_team_response(self, issue: DomainIssue) -> DomainIssue:
        """Update the issue, then post the team response comment.

        The issue goes first so that fields like assignees are validated
        before a comment exists. Single-issue polling is paused meanwhile.
        """
        with self.guard.hold():
            remote = await self.update_remote_issue(issue)
            comment = await self.tracker.create_comment(issue.id, markdown.render_team_response(issue))
        remote.comments = issue.with_comment(comment)
        return self.build(remote)

    async def update_tester_response(self, issue: DomainIssue, response: str) -> DomainIssue:
        """Save the tester's response and mark the issue Done, jointly."""
        clone = issue.clone(self.phase)
        clone.status = Status.DONE
        clone.tester_response = response
        body = markdown.render_tester_response(clone)

        cached = self.store.get(issue.id) or issue
        existing = cached.tester_response_comment
        if existing is not None:
            comment_call = self.tracker.update_comment(dataclasses.replace(existing, body=body))
        else:
            comment_call = self.tracker.create_comment(issue.id, body)

        comment, updated = await asyncio.gather(comment_call, self.update_issue(clone))
        updated.comments = updated.with_comment(comment)
        updated.tester_response_comment = comment
        updated.tester_response = response
        return updated

    def _fold_tutor_comment(self, updated: DomainIssue, comment: RemoteComment) -> DomainIssue:
        updated.comments = updated.with_comment(comment)
        updated.tutor_comment = comment
        markdown.apply_tutor_moderation(updated.disputes, comment)
        return updated

    async def create_tutor_response(self, issue: DomainIssue, response: str) -> DomainIssue:
        comment, updated = await asyncio.gather(
            self.tracker.create_comment(issue.id, response), self.update_issue(issue)
        )
        return self._fold_tutor_comment(updated, comment)

    async def update_tutor_response(self, issue: DomainIssue, comment: RemoteComment) -> DomainIssue:
        updated_comment, updated = await asyncio.gather(
            self.tracker.update_comment(comment), self.update_issue(issue)
        )
        return self._fold_tutor_comment(updated, updated_comment)

    async def close_issue(self, issue_id: int) -> DomainIssue:
        return self.build(await self.tracker.close(issue_id))

    async def reopen_issue(self, issue_id: int) -> DomainIssue:
        return self.build(await self.tracker.reopen(issue_id))

    def has_team_response(self, issue_id: int) -> bool:
        issue = self.store.get(issue_id)
        return bool(issue and issue.team_response)

    def get_duplicate_issues_for(self, parent: DomainIssue) -> List[DomainIssue]:
        return [i for i in self.store.snapshot() if i.duplicate_of == parent.id]

    def reset(self, reset_session_id: bool = False) -> None:
        if reset_session_id:
            self.session_id = None
        self.store.reset()
