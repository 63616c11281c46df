"""Domain models"""

from tracker_sync.models.issue import (
    Dispute,
    DomainIssue,
    IssueFilter,
    RemoteComment,
    RemoteIssue,
    Status,
)
from tracker_sync.models.phase import FilterKind, Phase, Role
from tracker_sync.models.team import Team, TeamDirectory

__all__ = [
    "Dispute",
    "DomainIssue",
    "FilterKind",
    "IssueFilter",
    "Phase",
    "RemoteComment",
    "RemoteIssue",
    "Role",
    "Status",
    "Team",
    "TeamDirectory",
]
