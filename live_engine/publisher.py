import logging
import threading
from typing import Callable, List, Optional

from .models import Leaderboard, PublishedResults, StatsSummary, now_ms
from .store import EntityStore, STATS

logger = logging.getLogger(__name__)

SCHEDULED_TRIGGER = "scheduled-trigger"
MANUAL_TRIGGER = "manual-trigger"


def _stored_stamp(stored: Optional[dict]) -> int:
    if not isinstance(stored, dict):
        return 0
    return (stored.get("summary") or {}).get("lastCalculated") or 0


class ResultPublisher:
    """
    Holds the current derived artifacts and replaces them wholesale.

    ``publish`` stamps both artifacts, writes them to the store as one value,
    then swaps the in-memory reference. Readers calling ``current()`` get
    either the previous pair or the new one, never a mix. If the store write
    raises, nothing is swapped and the previous pair stays visible.

    The stamp is taken inside the store's compare-and-set and is never lower
    than the one already stored, so ``lastCalculated`` only moves forward
    even when several processes publish into the same store.
    """

    def __init__(self, store: Optional[EntityStore] = None):
        self.store = store
        self._current: Optional[PublishedResults] = None
        self._lock = threading.Lock()
        self._listeners: List[Callable[[PublishedResults], None]] = []

    def current(self) -> Optional[PublishedResults]:
        return self._current

    def add_listener(self, listener: Callable[[PublishedResults], None]):
        self._listeners.append(listener)

    def publish(self, stats: StatsSummary, leaderboard: Leaderboard,
                provenance: str = SCHEDULED_TRIGGER, version: int = 0) -> PublishedResults:
        with self._lock:
            previous = self._current
            floor = previous.calculated_at if previous is not None else None
            stamped = {}

            def stamp(stored: Optional[dict] = None) -> dict:
                calculated_at = max(now_ms(), floor or 0, _stored_stamp(stored))
                stamped["results"] = PublishedResults(
                    stats=stats.stamped(calculated_at, provenance),
                    leaderboard=leaderboard.stamped(calculated_at),
                    version=version,
                )
                return stamped["results"].to_dict()

            if self.store is not None:
                self.store.modify(STATS, stamp)
            else:
                stamp()

            results = stamped["results"]
            self._current = results

        logger.info(
            f"Published v{version} ({provenance}): "
            f"{results.stats.competing_universities} universities, "
            f"{len(results.leaderboard)} leaderboard entries"
        )

        for listener in list(self._listeners):
            try:
                listener(results)
            except Exception:
                logger.exception("Publication listener failed")

        return results
