"""GitLab-backed remote tracker"""
import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import gitlab
import requests

from tracker_sync.errors import (
    VALIDATION_FAILED_PREFIX,
    RemoteUnavailable,
    TrackerError,
    ValidationError,
)
from tracker_sync.models.issue import IssueFilter, RemoteComment, RemoteIssue
from tracker_sync.services.tracker import IssueTracker

logger = logging.getLogger(__name__)


class GitLabClient:
    """Blocking wrapper for the GitLab API operations the tracker needs"""

    def __init__(self, url: str, access_token: Optional[str], project_id: str):
        """Initialize GitLab client"""
        self.url = url
        self.project_id = project_id
        self.gl = gitlab.Gitlab(url, private_token=access_token)
        if access_token:
            self.gl.auth()
        self._project = None

    @staticmethod
    def _normalize_issue_payload(issue_data: Dict[str, Any], *, for_update: bool) -> Dict[str, Any]:
        """Normalize payload fields for GitLab API quirks."""
        data = dict(issue_data)

        # GitLab API expects comma-separated string for `labels`. Some servers ignore empty lists.
        if "labels" in data:
            labels = data.get("labels")
            if not labels:
                if for_update:
                    data["labels"] = ""
                else:
                    data.pop("labels", None)
            elif isinstance(labels, list):
                data["labels"] = ",".join(labels)

        return data

    def get_project(self):
        """Get the configured project (cached after the first lookup)"""
        if self._project is None:
            self._project = self.gl.projects.get(self.project_id, lazy=True)
        return self._project

    def get_issues(self, *, state: str = "opened", labels: Optional[List[str]] = None,
                   author_username: Optional[str] = None) -> List[Any]:
        """Get all issues matching the given filters"""
        params: Dict[str, Any] = {
            "order_by": "created_at",
            "sort": "asc",
            "state": state,
            "per_page": 100,
        }
        if labels:
            params["labels"] = ",".join(labels)
        if author_username:
            params["author_username"] = author_username
        try:
            return self.get_project().issues.list(get_all=True, **params)
        except Exception as e:
            logger.error(f"Failed to get issues for project {self.project_id}: {e}")
            raise

    def get_issue(self, issue_iid: int) -> Any:
        """Get a specific issue by IID"""
        return self.get_project().issues.get(issue_iid)

    def get_issue_or_none(self, issue_iid: int) -> Optional[Any]:
        """Get a specific issue by IID, returning None on 404."""
        try:
            return self.get_issue(issue_iid)
        except gitlab.exceptions.GitlabGetError as e:
            if getattr(e, "response_code", None) == 404:
                return None
            raise

    def create_issue(self, issue_data: Dict[str, Any]) -> Any:
        """Create a new issue"""
        payload = self._normalize_issue_payload(issue_data, for_update=False)
        issue = self.get_project().issues.create(payload)
        logger.info(f"Created issue #{issue.iid} in project {self.project_id}")
        return issue

    def update_issue(self, issue_iid: int, issue_data: Dict[str, Any]) -> Any:
        """Update an existing issue"""
        issue = self.get_issue(issue_iid)
        payload = self._normalize_issue_payload(issue_data, for_update=True)
        for key, value in payload.items():
            setattr(issue, key, value)
        issue.save()
        logger.info(f"Updated issue #{issue_iid} in project {self.project_id}")
        return issue

    def set_issue_state(self, issue_iid: int, state_event: str) -> Any:
        """Close or reopen an issue (`state_event` is "close" or "reopen")"""
        issue = self.get_issue(issue_iid)
        issue.state_event = state_event
        issue.save()
        logger.info(f"Applied '{state_event}' to issue #{issue_iid}")
        return issue

    def get_issue_notes(self, issue: Any) -> List[Any]:
        """Get all user notes (comments) of an issue, oldest first"""
        if not getattr(issue, "user_notes_count", 1):
            return []
        notes = issue.notes.list(get_all=True, per_page=100, order_by="created_at", sort="asc")
        return [n for n in notes if not getattr(n, "system", False)]

    def create_issue_note(self, issue_iid: int, note_body: str) -> Any:
        """Create a note (comment) on an issue"""
        issue = self.get_issue(issue_iid)
        note = issue.notes.create({"body": note_body})
        logger.info(f"Created note on issue #{issue_iid}")
        return note

    def update_issue_note(self, issue_iid: int, note_id: int, note_body: str) -> Any:
        """Replace the body of an existing note"""
        issue = self.get_issue(issue_iid)
        note = issue.notes.get(note_id)
        note.body = note_body
        note.save()
        logger.info(f"Updated note {note_id} on issue #{issue_iid}")
        return note

    def get_user_by_username(self, username: str) -> Optional[Any]:
        """Get user by username"""
        users = self.gl.users.list(username=username)
        return users[0] if users else None


def _safe_attr(obj: Any, name: str, default: Any = None) -> Any:
    """Get attribute or dict key safely."""
    if obj is None:
        return default
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def _parse_gitlab_datetime(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return dt.astimezone(timezone.utc)


def note_to_comment(note: Any, issue_iid: int) -> RemoteComment:
    return RemoteComment(
        id=int(note.id),
        issue_id=int(issue_iid),
        body=getattr(note, "body", "") or "",
        author=_safe_attr(getattr(note, "author", None), "username"),
        created_at=_parse_gitlab_datetime(getattr(note, "created_at", None)),
    )


def issue_to_remote(issue: Any, notes: List[Any]) -> RemoteIssue:
    iid = int(issue.iid)
    return RemoteIssue(
        id=iid,
        title=getattr(issue, "title", "") or "",
        body=getattr(issue, "description", None) or "",
        labels=list(getattr(issue, "labels", None) or []),
        comments=[note_to_comment(n, iid) for n in notes],
        assignees=[
            u for u in (_safe_attr(a, "username") for a in getattr(issue, "assignees", None) or []) if u
        ],
        state=getattr(issue, "state", "opened") or "opened",
    )


def translate_error(exc: Exception) -> TrackerError:
    """Map python-gitlab / requests failures onto the tracker error taxonomy."""
    if isinstance(exc, TrackerError):
        return exc
    if isinstance(exc, (requests.exceptions.RequestException, gitlab.exceptions.GitlabConnectionError)):
        return RemoteUnavailable(str(exc))
    rc = getattr(exc, "response_code", None)
    message = getattr(exc, "error_message", None) or str(exc)
    if not isinstance(message, str):
        message = json.dumps(message)
    if rc in (400, 422):
        return ValidationError.from_message(message, status_code=rc)
    if rc is None or rc == 429 or rc >= 500:
        return RemoteUnavailable(message, status_code=rc)
    return TrackerError(message, status_code=rc)


class GitLabTracker(IssueTracker):
    """`IssueTracker` backed by a GitLab project.

    The issue IID is used as the issue id and user notes are the comments.
    Blocking python-gitlab calls run in worker threads; no call is retried.
    """

    def __init__(self, client: GitLabClient):
        self.client = client

    async def _call(self, fn, *args, **kwargs):
        try:
            return await asyncio.to_thread(fn, *args, **kwargs)
        except (gitlab.exceptions.GitlabError, requests.exceptions.RequestException) as e:
            raise translate_error(e) from e

    def _load(self, issue: Any) -> RemoteIssue:
        return issue_to_remote(issue, self.client.get_issue_notes(issue))

    def _fetch_by_id(self, issue_id: int) -> Optional[RemoteIssue]:
        issue = self.client.get_issue_or_none(issue_id)
        return self._load(issue) if issue is not None else None

    def _fetch_by_filter(self, issue_filter: IssueFilter) -> List[RemoteIssue]:
        issues = self.client.get_issues(
            state=issue_filter.state,
            labels=issue_filter.labels,
            author_username=issue_filter.creator,
        )
        return [self._load(issue) for issue in issues]

    def _resolve_assignee_ids(self, assignees: List[str]) -> List[int]:
        ids = []
        for username in assignees:
            user = self.client.get_user_by_username(username)
            if user is None:
                payload = {"field": "assignees", "code": "invalid", "value": username}
                raise ValidationError.from_message(VALIDATION_FAILED_PREFIX + json.dumps(payload))
            ids.append(int(user.id))
        return ids

    def _update(self, issue_id, title, body, labels, assignees) -> RemoteIssue:
        data = {
            "title": title,
            "description": body,
            "labels": list(labels),
            "assignee_ids": self._resolve_assignee_ids(assignees),
        }
        return self._load(self.client.update_issue(issue_id, data))

    async def fetch_by_id(self, issue_id: int) -> Optional[RemoteIssue]:
        return await self._call(self._fetch_by_id, issue_id)

    async def fetch_by_filter(self, issue_filter: IssueFilter) -> List[RemoteIssue]:
        return await self._call(self._fetch_by_filter, issue_filter)

    async def create(self, title: str, body: str, labels: List[str]) -> RemoteIssue:
        issue = await self._call(
            self.client.create_issue, {"title": title, "description": body, "labels": list(labels)}
        )
        return issue_to_remote(issue, [])

    async def update(self, issue_id, title, body, labels, assignees) -> RemoteIssue:
        return await self._call(self._update, issue_id, title, body, labels, assignees)

    async def close(self, issue_id: int) -> RemoteIssue:
        return await self._call(lambda: self._load(self.client.set_issue_state(issue_id, "close")))

    async def reopen(self, issue_id: int) -> RemoteIssue:
        return await self._call(lambda: self._load(self.client.set_issue_state(issue_id, "reopen")))

    async def create_comment(self, issue_id: int, body: str) -> RemoteComment:
        note = await self._call(self.client.create_issue_note, issue_id, body)
        return note_to_comment(note, issue_id)

    async def update_comment(self, comment: RemoteComment) -> RemoteComment:
        note = await self._call(self.client.update_issue_note, comment.issue_id, comment.id, comment.body)
        return note_to_comment(note, comment.issue_id)
