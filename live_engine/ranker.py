from typing import Iterable, List, Optional

from .models import Leaderboard, LeaderboardEntry, University


def ranking_key(university: University):
    # Points desc, then name case-insensitively, then id so equal names still order stably
    return (-university.points, university.name.casefold(), university.id)


def rank_universities(universities: Iterable[University], zone: Optional[str] = None) -> Leaderboard:
    """
    Build the leaderboard for the competing universities in ``universities``.

    Non-competing universities are dropped here as well as by the caller, so a
    full university list can be passed straight in. Positions are assigned
    after sorting and always run 1..N.
    """
    competing: List[University] = [u for u in universities if u.is_competing]
    competing.sort(key=ranking_key)

    entries = tuple(
        LeaderboardEntry(
            id=u.id,
            name=u.name,
            zone=u.zone,
            wins=u.wins,
            losses=u.losses,
            draws=u.draws,
            points=u.points,
            total_matches=u.wins + u.losses + u.draws,
            position=index + 1,
        )
        for index, u in enumerate(competing)
    )

    leaderboard = Leaderboard(entries=entries, is_live=True)
    if zone:
        return leaderboard.for_zone(zone)
    return leaderboard
