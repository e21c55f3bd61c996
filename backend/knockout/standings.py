from collections.abc import Iterable
from typing import Protocol, TypeVar


class TeamRecord(Protocol):
    id: int
    name: str
    wins: int
    ties: int
    goals_for: int
    goals_against: int
    pins: int


T = TypeVar("T", bound=TeamRecord)


def points(team: TeamRecord) -> int:
    return team.wins * 3 + team.ties


def goal_difference(team: TeamRecord) -> int:
    return team.goals_for - team.goals_against


def standing_sort_key(team: TeamRecord) -> tuple[int, int, int, int, str, str, int]:
    # Names compare case-insensitively first; the raw name and id keep the
    # order total for names that differ only in case.
    return (
        -points(team),
        -goal_difference(team),
        -team.goals_for,
        -team.pins,
        team.name.casefold(),
        team.name,
        team.id,
    )


def rank_teams(teams: Iterable[T]) -> list[T]:
    """Rank round-robin records: points, goal difference, goals for, pins, name."""
    return sorted(teams, key=standing_sort_key)
