"""Local issue cache and fetch reconciliation"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from tracker_sync.models.issue import DomainIssue
from tracker_sync.observable import EventStream, ObservableValue

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoreChange:
    """One notification per reconcile cycle or single-entry write"""

    upserted: List[int] = field(default_factory=list)
    evicted: List[int] = field(default_factory=list)


class IssueStore:
    """Authoritative in-memory mapping of issue id -> DomainIssue.

    Writers replace whole entries (no field merging). Observers read
    `issues` (a snapshot ordered by id) and `changes`.
    """

    def __init__(self):
        self._issues: Dict[int, DomainIssue] = {}
        self.issues: ObservableValue[List[DomainIssue]] = ObservableValue([])
        self.changes: EventStream[StoreChange] = EventStream()

    def __len__(self) -> int:
        return len(self._issues)

    def __contains__(self, issue_id: int) -> bool:
        return issue_id in self._issues

    def get(self, issue_id: int) -> Optional[DomainIssue]:
        return self._issues.get(issue_id)

    def snapshot(self) -> List[DomainIssue]:
        return [self._issues[k] for k in sorted(self._issues)]

    def _publish(self, change: StoreChange) -> None:
        self.issues.set(self.snapshot())
        self.changes.emit(change)

    def reconcile(self, fresh: Iterable[DomainIssue]) -> List[DomainIssue]:
        """Merge a freshly fetched issue set and evict ids it no longer contains.

        An empty fetch evicts nothing: the remote may answer "not modified"
        with no content, which must not read as "everything was deleted".
        """
        fresh = list(fresh)
        fetched_ids = set()
        for issue in fresh:
            self._issues[issue.id] = issue
            fetched_ids.add(issue.id)

        evicted: List[int] = []
        if fresh:
            evicted = sorted(k for k in self._issues if k not in fetched_ids)
            for issue_id in evicted:
                del self._issues[issue_id]
            if evicted:
                logger.info(f"Evicted outdated issues: {evicted}")

        self._publish(StoreChange(upserted=sorted(fetched_ids), evicted=evicted))
        return self.snapshot()

    def upsert_one(self, issue: DomainIssue) -> DomainIssue:
        self._issues[issue.id] = issue
        self._publish(StoreChange(upserted=[issue.id]))
        return issue

    def evict_one(self, issue_id: int) -> Optional[DomainIssue]:
        removed = self._issues.pop(issue_id, None)
        if removed is not None:
            self._publish(StoreChange(evicted=[issue_id]))
        return removed

    def reset(self) -> None:
        self._issues = {}
        self.issues.set([])
