"""Remote and domain issue models"""

from __future__ import annotations

import copy
import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from tracker_sync.models.phase import Phase
from tracker_sync.models.team import Team


class Status(str, enum.Enum):
    """Response status of an issue"""
    DONE = "Done"
    INCOMPLETE = "Incomplete"


@dataclass
class RemoteComment:
    """A comment as stored by the remote tracker"""

    id: int
    issue_id: int
    body: str = ""
    author: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class RemoteIssue:
    """An issue as stored by the remote tracker"""

    id: int
    title: str = ""
    body: str = ""
    labels: List[str] = field(default_factory=list)
    comments: List[RemoteComment] = field(default_factory=list)
    assignees: List[str] = field(default_factory=list)
    state: str = "opened"

    def find_label(self, category: str) -> Optional[str]:
        """Value of the first `category.value` label, if any."""
        prefix = f"{category}."
        for label in self.labels:
            if label.startswith(prefix):
                return label[len(prefix):]
        return None


@dataclass
class IssueFilter:
    """Query sent to the remote tracker"""

    creator: Optional[str] = None
    # Labels an issue must carry (e.g. tutorial + team).
    labels: List[str] = field(default_factory=list)
    # "opened" or "all"
    state: str = "opened"


@dataclass
class Dispute:
    """A tester's dispute of a team response, moderated by a tutor"""

    title: str
    description: str = ""
    tutor_response: str = ""
    resolved: bool = False
    comment_id: Optional[int] = None


@dataclass
class DomainIssue:
    """Phase-shaped issue held in the local cache.

    Which fields are meaningful depends on `phase`; the others keep their
    empty defaults.
    """

    id: int
    phase: Phase
    title: str = ""
    description: str = ""
    type: Optional[str] = None
    severity: Optional[str] = None
    status: Optional[Status] = None
    team_assigned: Optional[Team] = None
    # Composite id read from the tutorial/team labels, kept even when unresolved.
    team_id: Optional[str] = None
    response: Optional[str] = None
    duplicated: bool = False
    duplicate_of: Optional[int] = None
    pending: int = 0
    unsure: bool = False
    team_response: Optional[str] = None
    tester_response: Optional[str] = None
    tester_response_comment: Optional[RemoteComment] = None
    disputes: List[Dispute] = field(default_factory=list)
    tutor_comment: Optional[RemoteComment] = None
    comments: List[RemoteComment] = field(default_factory=list)
    assignees: List[str] = field(default_factory=list)
    hidden_data: Dict[str, str] = field(default_factory=dict)
    state: str = "opened"
    parse_error: Optional[str] = None

    def clone(self, phase: Phase) -> "DomainIssue":
        """Deep copy stamped with `phase`."""
        cloned = copy.deepcopy(self)
        cloned.phase = phase
        return cloned

    def unresolved_dispute_count(self) -> int:
        return sum(1 for d in self.disputes if not d.resolved)

    def with_comment(self, comment: RemoteComment) -> List[RemoteComment]:
        """Comment list with `comment` first, replacing any older copy."""
        return [comment] + [c for c in self.comments if c.id != comment.id]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "phase": self.phase.value,
            "title": self.title,
            "description": self.description,
            "type": self.type,
            "severity": self.severity,
            "status": self.status.value if self.status else None,
            "team": self.team_assigned.id if self.team_assigned else self.team_id,
            "response": self.response,
            "duplicated": self.duplicated,
            "duplicate_of": self.duplicate_of,
            "pending": self.pending,
            "unsure": self.unsure,
            "team_response": self.team_response,
            "tester_response": self.tester_response,
            "disputes": [
                {"title": d.title, "resolved": d.resolved, "tutor_response": d.tutor_response}
                for d in self.disputes
            ],
            "assignees": list(self.assignees),
            "state": self.state,
            "parse_error": self.parse_error,
        }
