"""Error taxonomy and the error reporting channel"""

import json
import logging
from collections import deque
from typing import Any, Callable, Deque, List, Optional

from tracker_sync.observable import EventStream

logger = logging.getLogger(__name__)

VALIDATION_FAILED_PREFIX = "Validation Failed:"


class TrackerError(Exception):
    """Base class for failures talking to the remote tracker"""

    def __init__(self, message: str, *, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class RemoteUnavailable(TrackerError):
    """Network or transport failure"""


class ValidationError(TrackerError):
    """The remote rejected a mutation's content (HTTP 422 style)"""

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        code: Optional[str] = None,
        value: Any = None,
        status_code: Optional[int] = 422,
    ):
        super().__init__(message, status_code=status_code)
        self.field = field
        self.code = code
        self.value = value

    @classmethod
    def from_message(cls, message: str, *, status_code: Optional[int] = 422) -> "ValidationError":
        """Parse `Validation Failed: {"field": ..., "code": ..., "value": ...}` messages.

        Messages without a readable payload keep the raw message and no field.
        """
        text = message or ""
        if text.startswith(VALIDATION_FAILED_PREFIX):
            try:
                payload = json.loads(text[len(VALIDATION_FAILED_PREFIX):])
            except ValueError:
                payload = None
            if isinstance(payload, dict) and all(k in payload for k in ("field", "code", "value")):
                return cls(
                    text,
                    field=str(payload["field"]),
                    code=str(payload["code"]),
                    value=payload["value"],
                    status_code=status_code,
                )
        return cls(text, status_code=status_code)


class IllegalTransition(Exception):
    """A mutation was requested for an issue in a state that does not allow it"""


def user_message(err: BaseException) -> str:
    """Readable message for an error surfaced to the user."""
    if isinstance(err, ValidationError) and err.field == "assignees" and err.code == "invalid":
        return (
            f"Assignee {err.value} has not joined your organization yet. "
            "Please remove them from the assignees list."
        )
    if isinstance(err, TrackerError):
        return err.message
    return str(err)


class ErrorChannel:
    """Collects mutation failures for the caller to render.

    Each error is logged once, kept in a bounded list of recent messages and
    pushed to subscribers. Nothing here retries.
    """

    def __init__(self, max_messages: int = 50):
        self._messages: Deque[str] = deque(maxlen=max_messages)
        self.reported: EventStream[str] = EventStream()

    @property
    def messages(self) -> List[str]:
        return list(self._messages)

    def subscribe(self, callback: Callable[[str], None]) -> Callable[[], None]:
        return self.reported.subscribe(callback)

    def report(self, err: BaseException) -> str:
        message = user_message(err)
        logger.error(f"Mutation failed: {err!r}")
        self._messages.append(message)
        self.reported.emit(message)
        return message

    def clear(self) -> None:
        self._messages.clear()
