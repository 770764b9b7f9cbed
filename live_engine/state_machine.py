from dataclasses import dataclass

from .errors import InvalidTransitionError
from .models import MatchStatus


@dataclass(frozen=True)
class Transition:
    from_state: MatchStatus
    to_state: MatchStatus
    requires_override: bool = False


class MatchStateMachine:
    TRANSITIONS = [
        Transition(MatchStatus.SCHEDULED, MatchStatus.LIVE),
        Transition(MatchStatus.LIVE, MatchStatus.PAUSED),
        Transition(MatchStatus.PAUSED, MatchStatus.LIVE),
        Transition(MatchStatus.LIVE, MatchStatus.COMPLETED),
        # Admin reopen of a finished match
        Transition(MatchStatus.COMPLETED, MatchStatus.LIVE, requires_override=True),
    ]

    SCORING_STATES = (MatchStatus.LIVE, MatchStatus.PAUSED)

    def __init__(self, initial_state: MatchStatus = MatchStatus.SCHEDULED):
        self._state = initial_state

    @property
    def state(self) -> MatchStatus:
        return self._state

    @property
    def accepts_scores(self) -> bool:
        return self._state in self.SCORING_STATES

    def _find(self, to_state: MatchStatus) -> Transition:
        for t in self.TRANSITIONS:
            if t.from_state == self._state and t.to_state == to_state:
                return t
        return None

    def transition(self, to_state: MatchStatus, admin_override: bool = False) -> MatchStatus:
        t = self._find(to_state)
        if t is None:
            raise InvalidTransitionError(
                self._state.value,
                to_state.value,
                f"No valid transition from '{self._state.value}' to '{to_state.value}'"
            )

        if t.requires_override and not admin_override:
            raise InvalidTransitionError(
                self._state.value,
                to_state.value,
                f"Reopening a {self._state.value} match requires an admin override"
            )

        self._state = t.to_state
        return self._state
