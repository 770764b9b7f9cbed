import time
from enum import Enum
from dataclasses import dataclass, replace
from typing import Optional, List, Tuple, FrozenSet


def now_ms() -> int:
    return int(time.time() * 1000)


class Zone(str, Enum):
    LONDON = "LZ"
    SOUTH = "SZ"
    CENTRAL = "CZ"
    NORTH = "NZ"
    LONDON_SOUTH = "LZ+SZ"
    NORTH_CENTRAL = "NZ+CZ"

    @property
    def members(self) -> FrozenSet["Zone"]:
        """Base zones covered by this zone (itself for a base zone)."""
        if self in COMBINED_ZONES:
            return COMBINED_ZONES[self]
        return frozenset({self})

    def contains(self, other) -> bool:
        other_zone = Zone.parse(other)
        if other_zone is None:
            return False
        return other_zone == self or other_zone.members <= self.members

    @classmethod
    def parse(cls, value) -> Optional["Zone"]:
        if isinstance(value, Zone):
            return value
        if not value:
            return None
        try:
            # "+" arrives as a space when a query string is not encoded
            return cls(str(value).strip().upper().replace(" ", "+"))
        except ValueError:
            return None


COMBINED_ZONES = {
    Zone.LONDON_SOUTH: frozenset({Zone.LONDON, Zone.SOUTH}),
    Zone.NORTH_CENTRAL: frozenset({Zone.NORTH, Zone.CENTRAL}),
}


class CompetingStatus(str, Enum):
    COMPETING = "competing"
    AFFILIATED = "affiliated"
    NOT_COMPETING = "not-competing"

    @property
    def is_competing(self) -> bool:
        return self is CompetingStatus.COMPETING

    @classmethod
    def from_record(cls, record: dict) -> "CompetingStatus":
        """
        Map a raw university record onto one status.

        Older records only carry an ``isCompeting`` flag and some carry
        neither field; those have always been counted as competing.
        """
        status = record.get("status")
        if status is not None:
            try:
                return cls(str(status).strip().lower())
            except ValueError:
                pass
        flag = record.get("isCompeting")
        if flag is True:
            return cls.COMPETING
        if flag is False:
            return cls.NOT_COMPETING
        return cls.COMPETING


class MatchStatus(str, Enum):
    SCHEDULED = "scheduled"
    LIVE = "live"
    PAUSED = "paused"
    COMPLETED = "completed"


class PlayerStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


def _int(value, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class University:
    id: str
    name: str
    zone: str = ""
    sports: Tuple[str, ...] = ()
    wins: int = 0
    losses: int = 0
    draws: int = 0
    points: int = 0
    status: CompetingStatus = CompetingStatus.COMPETING
    last_updated: Optional[int] = None

    @property
    def is_competing(self) -> bool:
        return self.status.is_competing

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "zone": self.zone,
            "sports": list(self.sports),
            "wins": self.wins,
            "losses": self.losses,
            "draws": self.draws,
            "points": self.points,
            "status": self.status.value,
            "lastUpdated": self.last_updated,
        }

    @classmethod
    def from_dict(cls, data: dict, key: str = None) -> "University":
        return cls(
            id=str(data.get("id") or key),
            name=data.get("name") or data.get("universityName") or "",
            zone=data.get("zone") or data.get("region") or "",
            sports=tuple(data.get("sports") or ()),
            wins=_int(data.get("wins")),
            losses=_int(data.get("losses")),
            draws=_int(data.get("draws")),
            points=_int(data.get("points")),
            status=CompetingStatus.from_record(data),
            last_updated=data.get("lastUpdated"),
        )


@dataclass(frozen=True)
class Match:
    id: str
    team_a: str
    team_b: str
    sport: str
    zone: str
    score_a: int = 0
    score_b: int = 0
    status: MatchStatus = MatchStatus.SCHEDULED
    start_time: Optional[int] = None
    end_time: Optional[int] = None
    last_updated: Optional[int] = None

    @property
    def score(self) -> Tuple[int, int]:
        return (self.score_a, self.score_b)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "teamA": self.team_a,
            "teamB": self.team_b,
            "scoreA": self.score_a,
            "scoreB": self.score_b,
            "sport": self.sport,
            "zone": self.zone,
            "status": self.status.value,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "lastUpdated": self.last_updated,
        }

    @classmethod
    def from_dict(cls, data: dict, key: str = None) -> "Match":
        try:
            status = MatchStatus(data.get("status"))
        except ValueError:
            status = MatchStatus.SCHEDULED
        return cls(
            id=str(data.get("id") or key),
            team_a=data.get("teamA") or "",
            team_b=data.get("teamB") or "",
            sport=data.get("sport") or "",
            zone=data.get("zone") or "",
            score_a=_int(data.get("scoreA")),
            score_b=_int(data.get("scoreB")),
            status=status,
            start_time=data.get("startTime"),
            end_time=data.get("endTime"),
            last_updated=data.get("lastUpdated"),
        )


@dataclass(frozen=True)
class Player:
    id: str
    university_id: str
    status: PlayerStatus = PlayerStatus.ACTIVE
    sports: Tuple[str, ...] = ()

    @property
    def is_active(self) -> bool:
        return self.status is PlayerStatus.ACTIVE

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "universityId": self.university_id,
            "status": self.status.value,
            "sports": list(self.sports),
        }

    @classmethod
    def from_dict(cls, data: dict, key: str = None) -> "Player":
        try:
            status = PlayerStatus(str(data.get("status", "active")).lower())
        except ValueError:
            status = PlayerStatus.INACTIVE
        return cls(
            id=str(data.get("id") or key),
            university_id=data.get("universityId") or "",
            status=status,
            sports=tuple(data.get("sports") or ()),
        )


@dataclass(frozen=True)
class EntitySnapshot:
    """Full read of the three entity subtrees taken for one recomputation pass."""
    universities: Tuple[University, ...] = ()
    matches: Tuple[Match, ...] = ()
    players: Tuple[Player, ...] = ()

    @classmethod
    def from_raw(cls, universities: dict = None, matches: dict = None,
                 players: dict = None) -> "EntitySnapshot":
        # Sorted by key so every read of the same data yields the same tuples
        def build(model, records):
            return tuple(
                model.from_dict(record, key)
                for key, record in sorted((records or {}).items())
                if isinstance(record, dict)
            )

        return cls(
            universities=build(University, universities),
            matches=build(Match, matches),
            players=build(Player, players),
        )

    def competing_universities(self) -> Tuple[University, ...]:
        return tuple(u for u in self.universities if u.is_competing)


STATS_KEYS = {
    "total_universities": "totalUniversities",
    "competing_universities": "competingUniversities",
    "total_points": "totalPoints",
    "total_wins": "totalWins",
    "total_losses": "totalLosses",
    "total_draws": "totalDraws",
    "total_matches": "totalMatches",
    "live_matches": "liveMatches",
    "upcoming_matches": "upcomingMatches",
    "total_players": "totalPlayers",
    "active_players": "activePlayers",
    "inactive_players": "inactivePlayers",
    "calculated_at": "lastCalculated",
    "calculated_by": "calculatedBy",
}


@dataclass(frozen=True)
class StatsSummary:
    total_universities: int = 0
    competing_universities: int = 0
    total_points: int = 0
    total_wins: int = 0
    total_losses: int = 0
    total_draws: int = 0
    total_matches: int = 0
    live_matches: int = 0
    upcoming_matches: int = 0
    total_players: int = 0
    active_players: int = 0
    inactive_players: int = 0
    calculated_at: Optional[int] = None
    calculated_by: Optional[str] = None

    def stamped(self, calculated_at: int, calculated_by: str) -> "StatsSummary":
        return replace(self, calculated_at=calculated_at, calculated_by=calculated_by)

    def to_dict(self) -> dict:
        return {key: getattr(self, attr) for attr, key in STATS_KEYS.items()}

    @classmethod
    def from_dict(cls, data: dict) -> "StatsSummary":
        return cls(**{attr: data.get(key) for attr, key in STATS_KEYS.items() if key in data})


@dataclass(frozen=True)
class LeaderboardEntry:
    id: str
    name: str
    zone: str
    wins: int
    losses: int
    draws: int
    points: int
    total_matches: int
    position: int

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "zone": self.zone,
            "wins": self.wins,
            "losses": self.losses,
            "draws": self.draws,
            "points": self.points,
            "totalMatches": self.total_matches,
            "position": self.position,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "LeaderboardEntry":
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            zone=data.get("zone", ""),
            wins=_int(data.get("wins")),
            losses=_int(data.get("losses")),
            draws=_int(data.get("draws")),
            points=_int(data.get("points")),
            total_matches=_int(data.get("totalMatches")),
            position=_int(data.get("position")),
        )


@dataclass(frozen=True)
class Leaderboard:
    entries: Tuple[LeaderboardEntry, ...] = ()
    last_updated: Optional[int] = None
    is_live: bool = True

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def positions(self) -> List[int]:
        return [e.position for e in self.entries]

    def stamped(self, last_updated: int) -> "Leaderboard":
        return replace(self, last_updated=last_updated)

    def for_zone(self, zone) -> "Leaderboard":
        """Entries within ``zone``, re-ranked from 1."""
        wanted = Zone.parse(zone)
        if wanted is None:
            return replace(self, entries=())
        kept = [e for e in self.entries if wanted.contains(e.zone)]
        return replace(self, entries=tuple(
            replace(e, position=i + 1) for i, e in enumerate(kept)
        ))

    def to_dict(self) -> dict:
        return {
            "entries": [e.to_dict() for e in self.entries],
            "lastUpdated": self.last_updated,
            "isLive": self.is_live,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Leaderboard":
        return cls(
            entries=tuple(LeaderboardEntry.from_dict(e) for e in data.get("entries") or ()),
            last_updated=data.get("lastUpdated"),
            is_live=data.get("isLive", True),
        )


@dataclass(frozen=True)
class PublishedResults:
    """One atomically published pair of derived artifacts."""
    stats: StatsSummary
    leaderboard: Leaderboard
    version: int = 0

    @property
    def calculated_at(self) -> Optional[int]:
        return self.stats.calculated_at

    @property
    def calculated_by(self) -> Optional[str]:
        return self.stats.calculated_by

    def to_dict(self) -> dict:
        return {
            "summary": self.stats.to_dict(),
            "leaderboard": self.leaderboard.to_dict(),
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PublishedResults":
        return cls(
            stats=StatsSummary.from_dict(data.get("summary") or {}),
            leaderboard=Leaderboard.from_dict(data.get("leaderboard") or {}),
            version=_int(data.get("version")),
        )
