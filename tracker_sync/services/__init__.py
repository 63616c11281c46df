"""Services"""

from tracker_sync.services.issue_service import IssueService
from tracker_sync.services.issue_store import IssueStore
from tracker_sync.services.mutations import MutationOrchestrator

__all__ = ["IssueService", "IssueStore", "MutationOrchestrator"]
