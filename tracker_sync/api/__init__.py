"""API endpoints"""

from tracker_sync.api import issues

__all__ = ["issues"]
