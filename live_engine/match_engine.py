import uuid
import logging
from dataclasses import replace
from typing import Callable, List, Optional, Tuple

from .errors import ValidationError, NotFoundError, InvalidStateError
from .models import Match, MatchStatus, Zone, now_ms
from .state_machine import MatchStateMachine
from .store import EntityStore, MATCHES

logger = logging.getLogger(__name__)


class MatchEngine:
    """
    The only write path for Match records.

    Every mutation checks the match against the state machine inside
    ``store.modify``, so the check always sees the record as stored at the
    moment of the write, even when other processes share the store. A
    rejected call raises before anything is written, and callers never wait
    on recomputation: the store write is the whole of their work.
    """

    def __init__(self, store: EntityStore):
        self.store = store

    def _path(self, match_id: str) -> str:
        return f"{MATCHES}/{match_id}"

    def _load(self, match_id: str) -> Match:
        data = self.store.get(self._path(match_id)) if match_id else None
        if not data:
            raise NotFoundError("Match", match_id)
        return Match.from_dict(data, match_id)

    def _mutate(self, match_id: str, change: Callable[[Match], Match]) -> Tuple[Match, Match]:
        """Apply ``change`` to the stored match atomically. Returns (before, after)."""
        if not match_id:
            raise NotFoundError("Match", match_id)
        outcome = {}

        def apply(data):
            if not data:
                raise NotFoundError("Match", match_id)
            before = Match.from_dict(data, match_id)
            after = change(before)
            outcome["before"], outcome["after"] = before, after
            return after.to_dict()

        self.store.modify(self._path(match_id), apply)
        return outcome["before"], outcome["after"]

    def get_match(self, match_id: str) -> Match:
        return self._load(match_id)

    def list_matches(self, status: Optional[str] = None) -> List[Match]:
        records = self.store.get(MATCHES) or {}
        matches = [Match.from_dict(data, key) for key, data in records.items() if isinstance(data, dict)]
        if status:
            matches = [m for m in matches if m.status.value == status]
        matches.sort(key=lambda m: (m.start_time or 0, m.id))
        return matches

    def create_match(self, team_a: str, team_b: str, sport: str, zone: str) -> Match:
        team_a = (team_a or "").strip()
        team_b = (team_b or "").strip()
        sport = (sport or "").strip()

        if not team_a or not team_b:
            raise ValidationError("Both teams are required")
        if team_a == team_b:
            raise ValidationError("A match needs two different teams")
        if not sport:
            raise ValidationError("Sport is required")

        parsed_zone = Zone.parse(zone)
        if parsed_zone is None:
            raise ValidationError(f"Unknown zone: {zone!r}")

        match = Match(
            id=f"m_{uuid.uuid4().hex[:12]}",
            team_a=team_a,
            team_b=team_b,
            sport=sport,
            zone=parsed_zone.value,
            status=MatchStatus.SCHEDULED,
            last_updated=now_ms(),
        )
        self.store.set(self._path(match.id), match.to_dict())

        logger.info(f"Created match {match.id}: {team_a} vs {team_b} ({sport}, {parsed_zone.value})")
        return match

    def update_score(self, match_id: str, score_a, score_b) -> Match:
        score_a = self._validate_score(score_a, "score_a")
        score_b = self._validate_score(score_b, "score_b")

        def change(match: Match) -> Match:
            if match.status == MatchStatus.COMPLETED:
                raise InvalidStateError(
                    match.status.value, "update score",
                    f"Match {match_id} is completed; scores are frozen"
                )
            if not MatchStateMachine(match.status).accepts_scores:
                raise InvalidStateError(match.status.value, "update score")
            return replace(match, score_a=score_a, score_b=score_b, last_updated=now_ms())

        _, updated = self._mutate(match_id, change)

        logger.debug(f"Score {match_id}: {score_a}-{score_b}")
        return updated

    def transition(self, match_id: str, new_status, admin_override: bool = False) -> Match:
        try:
            target = MatchStatus(new_status)
        except ValueError:
            raise ValidationError(f"Unknown match status: {new_status!r}")

        def change(match: Match) -> Match:
            state = MatchStateMachine(match.status).transition(target, admin_override=admin_override)

            now = now_ms()
            changes = {"status": state, "last_updated": now}
            if state == MatchStatus.LIVE and match.start_time is None:
                changes["start_time"] = now
            if state == MatchStatus.COMPLETED:
                changes["end_time"] = now
            if match.status == MatchStatus.COMPLETED:
                # Reopened by an admin
                changes["end_time"] = None
            return replace(match, **changes)

        previous, updated = self._mutate(match_id, change)

        logger.info(f"Match {match_id}: {previous.status.value} -> {updated.status.value}")
        return updated

    @staticmethod
    def _validate_score(value, name: str) -> int:
        if isinstance(value, str) and value.strip().isdigit():
            return int(value.strip())
        if isinstance(value, int) and not isinstance(value, bool) and value >= 0:
            return value
        raise ValidationError(f"{name} must be a non-negative integer")
