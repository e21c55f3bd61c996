from types import SimpleNamespace

import pytest

from knockout import errors
from knockout.bracket import (
    EntryStatus,
    Fixture,
    Stage,
    bracket_size,
    next_match_label,
    plan_seeding,
    replay_bracket,
    resolve_outcome,
    _advance,
)

from factories import entries, play, state_of


def fixture_pairs(replay, stage):
    return [{fixture.home.id, fixture.away.id} for fixture in replay.fixtures_in(stage)]


@pytest.mark.parametrize(
    ("team_count", "expected"),
    [(2, 2), (3, 2), (4, 4), (7, 4), (8, 8), (12, 8)],
)
def test_bracket_size_caps_field(team_count, expected):
    assert bracket_size(team_count) == expected


def test_bracket_size_rejects_single_team():
    with pytest.raises(errors.InsufficientTeamsError):
        bracket_size(1)


def test_next_match_labels():
    assert next_match_label(Stage.QUARTER_FINAL, 3) is None
    assert next_match_label(Stage.SEMI_FINAL, 2) == "R2M2"
    assert next_match_label(Stage.FINAL, 1) == "R3M1"
    with pytest.raises(ValueError):
        next_match_label(Stage.FINAL, 3)


def test_seeding_pairs_top_eight():
    ranked = [SimpleNamespace(id=team_id, name=f"Team {team_id}") for team_id in range(11, 21)]

    plan = plan_seeding(ranked)

    assert plan.size == 8
    assert plan.stage is Stage.QUARTER_FINAL
    assert [seed.team_id for seed in plan.seeds] == list(range(11, 19))
    assert [(home, away) for _, home, away in plan.pairs] == [(1, 8), (4, 5), (3, 6), (2, 7)]
    positions = [position for _, home, away in plan.pairs for position in (home, away)]
    assert sorted(positions) == list(range(1, 9))
    assert plan.initial_state(5).next_match_id is None
    assert plan.initial_state(5).status is EntryStatus.INCOMPLETE


def test_seeding_four_team_field():
    plan = plan_seeding([SimpleNamespace(id=team_id, name=str(team_id)) for team_id in range(1, 7)])

    assert plan.stage is Stage.SEMI_FINAL
    assert [(home, away) for _, home, away in plan.pairs] == [(1, 4), (2, 3)]
    assert plan.initial_state(3).next_match_id == "R2M2"
    assert plan.initial_state(3).round == 2


def test_resolve_outcome_uses_pins_only_on_level_score():
    home, away = entries(2)

    by_score = resolve_outcome(home, away, Stage.FINAL, 1, 3, 9, 0)
    assert by_score.winner is away
    assert by_score.decided_by == "score"

    by_pins = resolve_outcome(home, away, Stage.FINAL, 2, 2, 4, 1)
    assert by_pins.winner is home
    assert by_pins.decided_by == "pins"
    assert by_pins.loser_outcome.opponent_id == home.id
    assert by_pins.loser_outcome.pins == 1


@pytest.mark.parametrize(("score", "pins"), [(0, 0), (3, 0), (3, 5)])
def test_level_score_and_pins_is_never_a_result(score, pins):
    home, away = entries(2)

    with pytest.raises(errors.UnresolvedTieError):
        resolve_outcome(home, away, Stage.FINAL, score, score, pins, pins)


def test_replay_of_fresh_bracket():
    replay = replay_bracket(entries())

    assert fixture_pairs(replay, Stage.QUARTER_FINAL) == [{1, 8}, {4, 5}, {3, 6}, {2, 7}]
    assert not replay.fixtures_in(Stage.SEMI_FINAL)
    assert all(state.status is EntryStatus.INCOMPLETE for state in replay.states.values())
    assert replay.champion is None


def test_replay_rejects_unplayable_sizes():
    with pytest.raises(errors.BracketInconsistentError):
        replay_bracket(entries(6))
    with pytest.raises(errors.NoBracketFoundError):
        replay_bracket([])


def test_semifinals_follow_the_quarterfinal_won():
    bracket = entries()
    # Upsets in QF1 and QF4, favourites elsewhere.
    for home, away, home_score, away_score in ((1, 8, 0, 2), (4, 5, 3, 1), (3, 6, 2, 0), (2, 7, 1, 4)):
        plan, bracket = play(bracket, home, away, home_score, away_score)

    assert plan.completed_stage is Stage.QUARTER_FINAL
    assert [(fixture.label, {fixture.home.id, fixture.away.id}) for fixture in plan.new_fixtures] == [
        ("R2M1", {8, 4}),
        ("R2M2", {3, 7}),
    ]
    states = {change.entry_id: change.state for change in plan.entry_changes}
    assert states[7].next_match_id == "R2M2"
    assert states[7].stage is Stage.SEMI_FINAL
    assert states[7].score == 0


def test_progression_writes_only_what_changed():
    bracket = entries()

    plan, bracket = play(bracket, 1, 8, 3, 1)

    assert {change.entry_id for change in plan.entry_changes} == {1, 8}
    assert plan.new_fixtures == []
    assert plan.completed_stage is None
    assert state_of(plan, 1).status is EntryStatus.COMPLETED
    assert state_of(plan, 8).is_eliminated is True


def test_eliminated_entry_never_returns():
    bracket = entries()
    for home, away in ((1, 8), (4, 5), (3, 6), (2, 7)):
        _, bracket = play(bracket, home, away, 3, 1)

    with pytest.raises(errors.FixtureNotOpenError):
        play(bracket, 1, 8, 3, 1)
    with pytest.raises(errors.BracketInconsistentError):
        play(bracket, 1, 5, 3, 1)

    for home, away in ((1, 4), (3, 2)):
        _, bracket = play(bracket, home, away, 1, 0)
    plan, bracket = play(bracket, 1, 3, 2, 1, 5, 3)

    replay = replay_bracket(bracket)
    for loser in (2, 4, 5, 6, 7, 8):
        assert replay.states[loser].is_eliminated is True
        assert replay.states[loser].round < 3
    assert replay.states[3].is_eliminated is True
    assert replay.states[3].round == 3
    assert plan.champion.team_id == 101
    assert replay.states[1].next_match_id is None
    assert replay.champion.id == 1


def test_final_fixture_only_after_both_semifinals():
    bracket = entries(4)

    plan, bracket = play(bracket, 1, 4, 2, 0)
    assert plan.new_fixtures == []
    assert state_of(plan, 1).next_match_id == "R2M1"

    plan, bracket = play(bracket, 2, 3, 0, 2)
    assert plan.completed_stage is Stage.SEMI_FINAL
    assert [fixture.label for fixture in plan.new_fixtures] == ["R3M1"]
    assert plan.new_fixtures[0].team_ids == frozenset({101, 103})
    assert state_of(plan, 3).next_match_id == "R3M1"


def test_advancing_an_undecided_fixture_is_inconsistent():
    seeds = entries()
    decided = Fixture(Stage.QUARTER_FINAL, 1, seeds[0], seeds[7], winner=seeds[0])
    open_fixture = Fixture(Stage.QUARTER_FINAL, 2, seeds[3], seeds[4])

    with pytest.raises(errors.BracketInconsistentError) as excinfo:
        _advance(Stage.QUARTER_FINAL, [decided, open_fixture])

    assert excinfo.value.details["match"] == "R1M2"
