"""Leases held for the duration of multi-call mutations"""

from contextlib import contextmanager


class CompoundMutationGuard:
    """Counts in-progress compound mutations.

    Single-issue polling checks `active` and skips its tick while any lease
    is held, so a stale read never interleaves with a multi-call write.
    """

    def __init__(self):
        self._holders = 0

    @property
    def active(self) -> bool:
        return self._holders > 0

    @contextmanager
    def hold(self):
        self._holders += 1
        try:
            yield self
        finally:
            self._holders -= 1
