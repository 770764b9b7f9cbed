"""
Client sync and notification dispatch.

The hub fans immutable snapshots out to every registered subscriber. Each
subscriber owns its inbox, its last-seen match map and its stale guard, and
derives its own notifications by diffing; nothing here is shared between
subscribers, so any number of them can consume the same change at once.
"""
import json
import queue
import logging
import threading
from collections import deque
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from .events import (
    Event, EventType, match_start_event, score_update_event, match_end_event,
    results_published_event
)
from .models import Match, MatchStatus, PublishedResults
from .store import EntityStore, MATCHES

logger = logging.getLogger(__name__)

MATCHES_MESSAGE = "matches"
RESULTS_MESSAGE = "results"
_CLOSE = object()


def diff_matches(previous: Dict[str, Match], current: Dict[str, Match]) -> List[Event]:
    """Notifications implied by moving from ``previous`` to ``current``."""
    events = []
    for match_id in sorted(current):
        match = current[match_id]
        before = previous.get(match_id)

        if match.status == MatchStatus.LIVE:
            if before is None or before.status != MatchStatus.LIVE:
                events.append(match_start_event(match))
            elif before.score != match.score:
                events.append(score_update_event(before, match))
        elif (match.status == MatchStatus.COMPLETED and before is not None
                and before.status == MatchStatus.LIVE):
            events.append(match_end_event(match))
    return events


@dataclass
class Notification:
    event: Event
    alert: bool
    read: bool = False

    def to_dict(self) -> dict:
        data = self.event.to_dict()
        data["alert"] = self.alert
        data["read"] = self.read
        return data


class SubscriberSession:
    def __init__(self, subscriber_id: str, favourites: Iterable[str] = None,
                 history_size: int = 50):
        self.subscriber_id = subscriber_id
        self.favourites = set(favourites or ())
        self.inbox: "queue.Queue" = queue.Queue()
        self.notifications: deque = deque(maxlen=history_size)
        self.results: Optional[PublishedResults] = None
        self._previous: Dict[str, Match] = {}
        self._last_calculated_at: Optional[int] = None
        self._last_version: Optional[int] = None
        self.closed = False

    def offer(self, kind: str, payload):
        if not self.closed:
            self.inbox.put((kind, payload))

    def close(self):
        self.closed = True
        self.inbox.put(_CLOSE)

    def should_alert(self, event: Event) -> bool:
        if event.type in (EventType.MATCH_START, EventType.MATCH_END):
            return True
        teams = {event.data.get("team_a"), event.data.get("team_b")}
        return bool(teams & self.favourites)

    def receive_matches(self, matches: Dict[str, Match]) -> List[Event]:
        events = diff_matches(self._previous, matches)
        self._previous = dict(matches)
        for event in events:
            self.notifications.appendleft(Notification(event, self.should_alert(event)))
        return events

    def receive_results(self, results: PublishedResults) -> bool:
        """Accept ``results`` unless it is older than, or the same as, what we hold."""
        stamp = results.calculated_at
        if stamp is not None and self._last_calculated_at is not None:
            if stamp < self._last_calculated_at:
                logger.debug(
                    f"[{self.subscriber_id}] Discarding stale results "
                    f"{stamp} < {self._last_calculated_at}"
                )
                return False
            if stamp == self._last_calculated_at and results.version == self._last_version:
                return False

        if stamp is not None:
            self._last_calculated_at = stamp
        self._last_version = results.version
        self.results = results
        return True

    def _handle(self, kind: str, payload) -> List[Tuple[str, object]]:
        if kind == MATCHES_MESSAGE:
            return [("notification", e) for e in self.receive_matches(payload)]
        if kind == RESULTS_MESSAGE and self.receive_results(payload):
            return [("results", payload)]
        return []

    def process_pending(self) -> List[Tuple[str, object]]:
        """Drain the inbox without blocking."""
        outputs = []
        while True:
            try:
                item = self.inbox.get_nowait()
            except queue.Empty:
                return outputs
            if item is _CLOSE:
                return outputs
            outputs.extend(self._handle(*item))

    def stream(self, keepalive: float = 30.0) -> Iterator[str]:
        """Server-sent event lines until the session is closed."""
        yield f"data: {json.dumps({'type': 'connected', 'subscriber_id': self.subscriber_id})}\n\n"

        while True:
            try:
                item = self.inbox.get(timeout=keepalive)
            except queue.Empty:
                yield ": keepalive\n\n"
                continue
            if item is _CLOSE:
                break

            for kind, value in self._handle(*item):
                if kind == "notification":
                    yield f"data: {value.to_json()}\n\n"
                else:
                    yield f"data: {results_published_event(value).to_json()}\n\n"

    @property
    def unread_count(self) -> int:
        return sum(1 for n in self.notifications if not n.read)

    def mark_all_read(self):
        for n in self.notifications:
            n.read = True


class ClientSyncHub:
    """Registry of live subscribers and the fan-out point for pushed data."""

    def __init__(self):
        self._sessions: Dict[str, SubscriberSession] = {}
        self._lock = threading.Lock()
        self._latest_matches: Optional[Dict[str, Match]] = None
        self._latest_results: Optional[PublishedResults] = None
        self._store: Optional[EntityStore] = None

    @property
    def subscriber_count(self) -> int:
        return len(self._sessions)

    def attach(self, store: EntityStore):
        """Push the full match map to subscribers after every match write."""
        self._store = store
        store.subscribe(MATCHES, self._on_matches_changed)

    def _on_matches_changed(self, path: str, value):
        records = self._store.get(MATCHES) or {}
        self.broadcast_matches({
            key: Match.from_dict(data, key)
            for key, data in records.items() if isinstance(data, dict)
        })

    def register(self, subscriber_id: str, favourites: Iterable[str] = None) -> SubscriberSession:
        session = SubscriberSession(subscriber_id, favourites)
        with self._lock:
            old = self._sessions.get(subscriber_id)
            self._sessions[subscriber_id] = session
            if self._latest_matches is not None:
                session.offer(MATCHES_MESSAGE, self._latest_matches)
            if self._latest_results is not None:
                session.offer(RESULTS_MESSAGE, self._latest_results)
        if old is not None:
            old.close()
        logger.info(f"Subscriber {subscriber_id} connected ({self.subscriber_count} total)")
        return session

    def unregister(self, subscriber_id: str, session: SubscriberSession = None):
        """Drop a subscriber; with ``session`` given, only if it is still the registered one."""
        with self._lock:
            current = self._sessions.get(subscriber_id)
            if current is None or (session is not None and current is not session):
                session = None
            else:
                session = self._sessions.pop(subscriber_id)
        if session is not None:
            session.close()
            logger.info(f"Subscriber {subscriber_id} disconnected")

    def get(self, subscriber_id: str) -> Optional[SubscriberSession]:
        return self._sessions.get(subscriber_id)

    def broadcast_matches(self, matches: Dict[str, Match]):
        snapshot = dict(matches)
        with self._lock:
            self._latest_matches = snapshot
            sessions = list(self._sessions.values())
        for session in sessions:
            session.offer(MATCHES_MESSAGE, snapshot)

    def broadcast_results(self, results: PublishedResults):
        with self._lock:
            latest = self._latest_results
            if latest is None or (results.calculated_at or 0) >= (latest.calculated_at or 0):
                self._latest_results = results
            sessions = list(self._sessions.values())
        for session in sessions:
            session.offer(RESULTS_MESSAGE, results)
