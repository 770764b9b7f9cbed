from typing import Iterable

from .models import EntitySnapshot, Match, MatchStatus, StatsSummary


def _between(match: Match, competing_ids: set) -> bool:
    return match.team_a in competing_ids and match.team_b in competing_ids


def count_matches(matches: Iterable[Match], competing_ids: set, *statuses: MatchStatus) -> int:
    return sum(1 for m in matches if m.status in statuses and _between(m, competing_ids))


def calculate_stats(snapshot: EntitySnapshot) -> StatsSummary:
    """
    Summary counters for one snapshot.

    Only competing universities count. A match counts when both of its teams
    are competing, and a player counts when their university is. The result
    carries no publication stamp; the publisher adds one.
    """
    competing = snapshot.competing_universities()
    competing_ids = {u.id for u in competing}

    players = [p for p in snapshot.players if p.university_id in competing_ids]
    active = sum(1 for p in players if p.is_active)

    return StatsSummary(
        total_universities=len(competing),
        competing_universities=len(competing),
        total_points=sum(u.points for u in competing),
        total_wins=sum(u.wins for u in competing),
        total_losses=sum(u.losses for u in competing),
        total_draws=sum(u.draws for u in competing),
        total_matches=count_matches(snapshot.matches, competing_ids, MatchStatus.COMPLETED),
        live_matches=count_matches(
            snapshot.matches, competing_ids, MatchStatus.LIVE, MatchStatus.PAUSED
        ),
        upcoming_matches=count_matches(snapshot.matches, competing_ids, MatchStatus.SCHEDULED),
        total_players=len(players),
        active_players=active,
        inactive_players=len(players) - active,
    )
