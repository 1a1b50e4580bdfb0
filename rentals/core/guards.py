import logging
import time
from contextlib import contextmanager
from typing import Callable, Dict, Hashable, Iterator, Optional, Set, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class InFlightGuard:
    """
    Allows at most one mutation per entity key at a time.

    A second claim on a busy key is refused, not queued; the caller is
    expected to drop the request and keep its control disabled until the
    first one resolves.
    """

    def __init__(self, name: str):
        self.name = name
        self._busy: Set[Hashable] = set()

    def is_busy(self, key: Hashable) -> bool:
        return key in self._busy

    @contextmanager
    def claim(self, key: Hashable) -> Iterator[bool]:
        if key in self._busy:
            logger.info("%s: %s already in flight, request ignored", self.name, key)
            yield False
            return

        self._busy.add(key)
        try:
            yield True
        finally:
            self._busy.discard(key)


class GracePeriod:
    """Suppresses a repeated action on the same key for a short window."""

    def __init__(self, seconds: float, clock: Callable[[], float] = time.monotonic):
        self.seconds = seconds
        self._clock = clock
        self._marked: Dict[Hashable, float] = {}

    def mark(self, key: Hashable) -> None:
        self._marked[key] = self._clock()

    def is_active(self, key: Hashable) -> bool:
        marked_at = self._marked.get(key)
        if marked_at is None:
            return False
        if self._clock() - marked_at >= self.seconds:
            del self._marked[key]
            return False
        return True


def apply_with_compensation(
    apply: Callable[[], None],
    remote: Callable[[], T],
    compensate: Callable[[], None],
) -> Optional[T]:
    """
    Optimistic update for purely local, reversible affordances.

    ``apply`` flips the local state, ``remote`` performs the call and
    ``compensate`` is the precomputed inverse run when the call fails.
    The failure is re-raised after compensation.
    """
    apply()
    try:
        return remote()
    except Exception:
        logger.warning("Optimistic update failed, applying compensation", exc_info=True)
        compensate()
        raise
