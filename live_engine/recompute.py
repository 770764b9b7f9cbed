import logging
import threading
from typing import Callable, List, Optional

from .aggregator import calculate_stats
from .errors import RecomputeFailure
from .models import EntitySnapshot, PublishedResults
from .publisher import ResultPublisher, SCHEDULED_TRIGGER, MANUAL_TRIGGER
from .ranker import rank_universities
from .store import EntityStore, ENTITY_PATHS, UNIVERSITIES, MATCHES, PLAYERS

logger = logging.getLogger(__name__)

RECOMPUTE_LOCK = "recompute"


def read_snapshot(store: EntityStore) -> EntitySnapshot:
    return EntitySnapshot.from_raw(
        universities=store.get(UNIVERSITIES),
        matches=store.get(MATCHES),
        players=store.get(PLAYERS),
    )


class RecomputeScheduler:
    """
    Coalesces entity-store writes into serialized recomputation passes.

    Each observed write bumps ``version`` and marks the scheduler dirty. The
    first write of a burst arms a timer for ``debounce_seconds``; writes that
    land before it fires ride along in the same pass. Passes hold
    ``_pass_lock`` so two never overlap in this process, and the store-wide
    ``recompute`` lock so two never overlap across processes sharing the
    store. When a pass ends and more writes have arrived, a follow-up pass is
    armed; when a pass fails the dirty flag is restored and a retry is armed
    after ``retry_seconds``.

    With ``background=False`` no timers are started and ``run_pending()``
    drives passes from the caller's thread.
    """

    def __init__(
        self,
        store: EntityStore,
        publisher: ResultPublisher,
        debounce_seconds: float = 0.5,
        retry_seconds: float = 2.0,
        background: bool = True,
        lock_timeout: float = 30.0,
        lock_wait: float = 10.0,
    ):
        self.store = store
        self.publisher = publisher
        self.debounce_seconds = debounce_seconds
        self.retry_seconds = retry_seconds
        self.background = background
        self.lock_timeout = lock_timeout
        self.lock_wait = lock_wait

        self._cond = threading.Condition()
        self._pass_lock = threading.Lock()
        self._version = 0
        self._processed_version = 0
        self._dirty = False
        self._running = False
        self._closed = False
        self._timer: Optional[threading.Timer] = None
        self._unsubscribers: List[Callable[[], None]] = []
        self._failure_hooks: List[Callable[[RecomputeFailure], None]] = []

        self.pass_count = 0
        self.failure_count = 0
        self.last_failure: Optional[RecomputeFailure] = None

    @property
    def version(self) -> int:
        return self._version

    @property
    def processed_version(self) -> int:
        return self._processed_version

    @property
    def dirty(self) -> bool:
        return self._dirty

    @property
    def running(self) -> bool:
        return self._running

    def attach(self, paths=ENTITY_PATHS):
        """Subscribe to the entity subtrees; every write funnels into ``notify``."""
        for path in paths:
            self._unsubscribers.append(self.store.subscribe(path, self.notify))
        logger.info(f"Recompute scheduler watching {', '.join(paths)}")

    def on_failure(self, hook: Callable[[RecomputeFailure], None]):
        self._failure_hooks.append(hook)

    def notify(self, path: str = None, value=None):
        with self._cond:
            self._version += 1
            self._dirty = True
            logger.debug(f"Change at {path} (v{self._version})")
            if self.background:
                self._arm(self.debounce_seconds)

    def _arm(self, delay: float):
        # Caller holds _cond
        if self._closed or self._timer is not None or self._running:
            return
        timer = threading.Timer(delay, self._on_timer)
        timer.daemon = True
        self._timer = timer
        timer.start()

    def _on_timer(self):
        with self._cond:
            self._timer = None
            self._cond.notify_all()
        try:
            self._run_pass(SCHEDULED_TRIGGER)
        except RecomputeFailure:
            # Already logged; the retry timer is armed
            pass

    def run_pending(self) -> Optional[PublishedResults]:
        """Run one scheduled pass now if anything changed since the last one."""
        return self._run_pass(SCHEDULED_TRIGGER)

    def trigger_manual(self) -> PublishedResults:
        """Force one pass outside the debounce window, tagged as manual."""
        logger.info("Manual recomputation triggered")
        return self._run_pass(MANUAL_TRIGGER, force=True)

    def _run_pass(self, provenance: str, force: bool = False) -> Optional[PublishedResults]:
        with self._pass_lock:
            with self._cond:
                if not force and not self._dirty:
                    return None
                version = self._version
                self._dirty = False
                self._running = True

            try:
                # Held from snapshot read to publication so passes from other
                # processes cannot interleave; failing to acquire it is a failed pass
                with self.store.lock(RECOMPUTE_LOCK, timeout=self.lock_timeout,
                                     blocking_timeout=self.lock_wait):
                    results = self._compute_and_publish(provenance, version)
            except Exception as e:
                failure = RecomputeFailure(provenance, version, e)
                with self._cond:
                    self._dirty = True
                    self._running = False
                    self.failure_count += 1
                    self.last_failure = failure
                    if self.background:
                        self._arm(self.retry_seconds)
                    self._cond.notify_all()

                logger.exception(f"Recomputation pass v{version} ({provenance}) failed")
                for hook in list(self._failure_hooks):
                    try:
                        hook(failure)
                    except Exception:
                        logger.exception("Recompute failure hook failed")
                raise failure from e

            with self._cond:
                self._running = False
                self.pass_count += 1
                self._processed_version = max(self._processed_version, version)
                if self._dirty and self.background:
                    self._arm(self.debounce_seconds)
                self._cond.notify_all()

            return results

    def _compute_and_publish(self, provenance: str, version: int) -> PublishedResults:
        snapshot = read_snapshot(self.store)
        stats = calculate_stats(snapshot)
        leaderboard = rank_universities(snapshot.competing_universities())
        return self.publisher.publish(stats, leaderboard, provenance=provenance, version=version)

    def wait_idle(self, timeout: float = None) -> bool:
        """Block until no pass is running or pending. Returns False on timeout."""
        with self._cond:
            return self._cond.wait_for(
                lambda: not self._dirty and not self._running and self._timer is None,
                timeout=timeout,
            )

    def shutdown(self):
        with self._cond:
            self._closed = True
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._cond.notify_all()

        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []
