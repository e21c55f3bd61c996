from itertools import permutations
from types import SimpleNamespace

from knockout.standings import goal_difference, points, rank_teams


def team(team_id, name, wins=0, ties=0, goals_for=0, goals_against=0, pins=0):
    return SimpleNamespace(
        id=team_id,
        name=name,
        wins=wins,
        ties=ties,
        goals_for=goals_for,
        goals_against=goals_against,
        pins=pins,
    )


LEAGUE = [
    # Points, goal difference, goals for, pins and name each split one pair.
    team(1, "Anchors", wins=4, ties=1, goals_for=12, goals_against=4),
    team(2, "Bisons", wins=4, ties=0, goals_for=12, goals_against=4),
    team(3, "Cougars", wins=4, ties=0, goals_for=11, goals_against=4),
    team(4, "Dingos", wins=4, ties=0, goals_for=12, goals_against=5),
    team(5, "Eagles", wins=4, ties=0, goals_for=10, goals_against=4, pins=7),
    team(6, "Falcons", wins=4, ties=0, goals_for=10, goals_against=4, pins=2),
    team(7, "Geckos", wins=4, ties=0, goals_for=10, goals_against=4, pins=2),
]


def test_points_and_goal_difference():
    record = team(1, "Anchors", wins=3, ties=2, goals_for=9, goals_against=11)

    assert points(record) == 11
    assert goal_difference(record) == -2


def test_tiebreak_levels_apply_in_order():
    ranked = [record.name for record in rank_teams(LEAGUE)]

    assert ranked == ["Anchors", "Bisons", "Dingos", "Cougars", "Eagles", "Falcons", "Geckos"]


def test_ranking_ignores_input_order():
    expected = [record.id for record in rank_teams(LEAGUE)]

    for ordering in permutations(LEAGUE[1:]):
        assert [record.id for record in rank_teams([LEAGUE[0], *ordering])] == expected


def test_name_tiebreak_ignores_case():
    level = dict(wins=2, ties=1, goals_for=6, goals_against=3, pins=1)
    lower = team(1, "bravo", **level)
    upper = team(2, "Charlie", **level)

    assert [record.name for record in rank_teams([upper, lower])] == ["bravo", "Charlie"]
    assert [record.name for record in rank_teams([lower, upper])] == ["bravo", "Charlie"]
