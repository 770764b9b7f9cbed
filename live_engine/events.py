from enum import Enum
from dataclasses import dataclass
import json

from .models import Match, PublishedResults, now_ms


class EventType(str, Enum):
    # Viewer notifications derived by diffing
    MATCH_START = "match_start"
    SCORE_UPDATE = "score_update"
    MATCH_END = "match_end"

    # Engine output
    RESULTS_PUBLISHED = "results.published"


@dataclass
class Event:
    type: EventType
    subject_id: str
    timestamp: int = None
    data: dict = None

    def __post_init__(self):
        if self.timestamp is None:
            self.timestamp = now_ms()
        if self.data is None:
            self.data = {}

    def to_dict(self) -> dict:
        return {
            "type": self.type.value if isinstance(self.type, EventType) else self.type,
            "subject_id": self.subject_id,
            "timestamp": self.timestamp,
            "data": self.data
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: dict) -> "Event":
        return cls(
            type=EventType(data["type"]) if data["type"] in [e.value for e in EventType] else data["type"],
            subject_id=data["subject_id"],
            timestamp=data.get("timestamp"),
            data=data.get("data", {})
        )

    @classmethod
    def from_json(cls, json_str: str) -> "Event":
        return cls.from_dict(json.loads(json_str))


def _match_data(match: Match) -> dict:
    return {
        "team_a": match.team_a,
        "team_b": match.team_b,
        "sport": match.sport,
        "zone": match.zone,
        "score_a": match.score_a,
        "score_b": match.score_b,
    }


def match_start_event(match: Match) -> Event:
    data = _match_data(match)
    data["message"] = f"{match.team_a} vs {match.team_b} - {match.sport}"
    return Event(type=EventType.MATCH_START, subject_id=match.id, data=data)


def score_update_event(previous: Match, match: Match) -> Event:
    data = _match_data(match)
    data["previous_score"] = [previous.score_a, previous.score_b]
    data["message"] = f"{match.team_a} {match.score_a}-{match.score_b} {match.team_b}"
    return Event(type=EventType.SCORE_UPDATE, subject_id=match.id, data=data)


def match_end_event(match: Match) -> Event:
    data = _match_data(match)
    data["final_score"] = [match.score_a, match.score_b]
    data["message"] = (
        f"{match.team_a} vs {match.team_b} - Final Score: {match.score_a}-{match.score_b}"
    )
    return Event(type=EventType.MATCH_END, subject_id=match.id, data=data)


def results_published_event(results: PublishedResults) -> Event:
    return Event(
        type=EventType.RESULTS_PUBLISHED,
        subject_id="stats",
        timestamp=results.calculated_at,
        data=results.to_dict()
    )

