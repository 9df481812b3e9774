"""Leaderboard ordering and prize lookup for a quiz's results."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence

from quizzardo.constants.quiz_constants import PRIZE_POSITIONS, UNKNOWN_PLAYER_NAME
from quizzardo.core.models import LeaderboardEntry, Result


def prize_for_rank(prize_money: Sequence[float], rank: int) -> float:
    """Return the prize for a 1-based rank: ``prize_money[rank - 1]`` for the top places."""
    if rank < 1 or rank > PRIZE_POSITIONS or rank > len(prize_money):
        return 0.0
    return float(prize_money[rank - 1])


def rank_results(
    results: Iterable[Result],
    names: Mapping[str, str] | None = None,
    prize_money: Sequence[float] = (),
) -> list[LeaderboardEntry]:
    """Sort results by score (desc) and time spent (asc) and assign ranks.

    Ranks are sequential even for exact ties. Disqualified players keep their
    place in the order but never receive a prize.
    """
    names = names or {}
    ordered = sorted(results, key=lambda r: (-r.score, r.time_spent, r.user_id))
    entries: list[LeaderboardEntry] = []
    for index, result in enumerate(ordered):
        rank = index + 1
        prize = 0.0 if result.disqualified else prize_for_rank(prize_money, rank)
        entries.append(
            LeaderboardEntry(
                user_id=result.user_id,
                user_name=names.get(result.user_id) or UNKNOWN_PLAYER_NAME,
                score=result.score,
                time_spent=result.time_spent,
                rank=rank,
                prize=prize,
                disqualified=result.disqualified,
            )
        )
    return entries

