"""Contract of the remote issue tracker used by the sync core"""

from abc import ABC, abstractmethod
from typing import List, Optional

from tracker_sync.models.issue import IssueFilter, RemoteComment, RemoteIssue


class IssueTracker(ABC):
    """Asynchronous remote tracker operations.

    Implementations raise `tracker_sync.errors.TrackerError` subclasses:
    `RemoteUnavailable` for transport failures and `ValidationError` when the
    remote rejects a mutation's content.
    """

    @abstractmethod
    async def fetch_by_id(self, issue_id: int) -> Optional[RemoteIssue]:
        """Issue with comments, or None if it does not exist."""

    @abstractmethod
    async def fetch_by_filter(self, issue_filter: IssueFilter) -> List[RemoteIssue]:
        """All issues matching `issue_filter`, with comments."""

    @abstractmethod
    async def create(self, title: str, body: str, labels: List[str]) -> RemoteIssue:
        ...

    @abstractmethod
    async def update(
        self, issue_id: int, title: str, body: str, labels: List[str], assignees: List[str]
    ) -> RemoteIssue:
        ...

    @abstractmethod
    async def close(self, issue_id: int) -> RemoteIssue:
        ...

    @abstractmethod
    async def reopen(self, issue_id: int) -> RemoteIssue:
        ...

    @abstractmethod
    async def create_comment(self, issue_id: int, body: str) -> RemoteComment:
        ...

    @abstractmethod
    async def update_comment(self, comment: RemoteComment) -> RemoteComment:
        ...
