from dataclasses import replace

from knockout.bracket import Stage, replay_bracket
from knockout.repair import StoredEntry, StoredFixture, StoredSlot, plan_repair

from factories import entries, play


def played_bracket(results):
    bracket = entries()
    for home, away, home_score, away_score in results:
        _, bracket = play(bracket, home, away, home_score, away_score)
    return bracket


QUARTER_FINALS = ((1, 8, 3, 1), (4, 5, 3, 1), (3, 6, 3, 1), (2, 7, 3, 1))


def consistent_store(bracket):
    replay = replay_bracket(bracket)
    stored_entries = [StoredEntry(snapshot=entry, state=replay.states[entry.id]) for entry in bracket]
    fixtures = [
        StoredFixture(id=index, round=fixture.round, home_team_id=fixture.home.team_id, away_team_id=fixture.away.team_id)
        for index, fixture in enumerate(replay.fixtures, start=1)
    ]
    return stored_entries, fixtures


def corrective(plan):
    return [action.action for action in plan.actions if action.corrective]


def test_consistent_bracket_needs_no_repair():
    bracket = played_bracket(QUARTER_FINALS)
    stored_entries, fixtures = consistent_store(bracket)

    plan = plan_repair(stored_entries, fixtures, [], tournament_completed=False)

    assert plan.corrective_count == 0
    assert plan.delete_fixture_ids == []
    assert plan.create_fixtures == []
    assert plan.entry_changes == []
    winners = next(action for action in plan.actions if action.action == "Identified quarterfinal winners")
    assert [winner["position"] for winner in winners.details["winners"]] == [1, 4, 3, 2]


def test_position_paired_semifinals_are_rebuilt():
    bracket = played_bracket(QUARTER_FINALS)
    stored_entries, fixtures = consistent_store(bracket)
    quarter_finals = [fixture for fixture in fixtures if fixture.round == 1]
    corrupted = quarter_finals + [
        StoredFixture(id=21, round=2, home_team_id=101, away_team_id=102),
        StoredFixture(id=22, round=2, home_team_id=103, away_team_id=104),
    ]

    plan = plan_repair(stored_entries, corrupted, [], tournament_completed=False)

    assert corrective(plan) == ["Deleted existing semifinal/final matches", "Created semifinal/final matches"]
    assert plan.delete_fixture_ids == [21, 22]
    assert [(fixture.label, fixture.team_ids) for fixture in plan.create_fixtures] == [
        ("R2M1", frozenset({101, 104})),
        ("R2M2", frozenset({102, 103})),
    ]


def test_missing_final_is_created_and_tournament_completed():
    bracket = played_bracket(QUARTER_FINALS + ((1, 4, 2, 0), (3, 2, 0, 2), (1, 2, 2, 1)))
    stored_entries, fixtures = consistent_store(bracket)
    without_final = [fixture for fixture in fixtures if fixture.round < 3]

    plan = plan_repair(stored_entries, without_final, [], tournament_completed=False)

    assert corrective(plan) == [
        "Deleted existing semifinal/final matches",
        "Created semifinal/final matches",
        "Completed tournament",
    ]
    assert [fixture.stage for fixture in plan.create_fixtures] == [Stage.SEMI_FINAL, Stage.SEMI_FINAL, Stage.FINAL]
    assert plan.create_fixtures[-1].winner.id == 1
    assert plan.champion.team_id == 101
    assert any(action.action == "Found semifinal winners" for action in plan.actions)


def test_partial_semifinals_leave_final_for_later():
    bracket = played_bracket(QUARTER_FINALS + ((1, 4, 2, 0),))
    stored_entries, fixtures = consistent_store(bracket)

    plan = plan_repair(stored_entries, fixtures, [], tournament_completed=False)

    assert plan.corrective_count == 0
    assert any(action.action == "Partial semifinal completion detected" for action in plan.actions)


def test_duplicate_slots_are_removed_and_survivors_relinked():
    bracket = played_bracket(QUARTER_FINALS)
    stored_entries, fixtures = consistent_store(bracket)
    corrupted = [fixture for fixture in fixtures if fixture.round == 1] + [
        StoredFixture(id=21, round=2, home_team_id=101, away_team_id=102),
        StoredFixture(id=22, round=2, home_team_id=103, away_team_id=104),
    ]
    slots = [
        StoredSlot(id=1, round=2, home_team_id=101, away_team_id=104),
        StoredSlot(id=2, round=2, home_team_id=104, away_team_id=101),
        StoredSlot(id=3, round=1, home_team_id=101, away_team_id=108),
    ]

    plan = plan_repair(stored_entries, corrupted, slots, tournament_completed=False)

    assert plan.delete_slot_ids == [2]
    assert plan.relink_slots == {1: (Stage.SEMI_FINAL, 1)}
    assert corrective(plan)[0] == "Removed duplicate scheduled matches"


def test_entries_are_corrected_but_never_reinstated():
    bracket = played_bracket(QUARTER_FINALS)
    stored_entries, fixtures = consistent_store(bracket)
    by_id = {stored.snapshot.id: stored for stored in stored_entries}

    # Seed 2 routed to the wrong semifinal, seed 3 wrongly knocked out.
    by_id[2] = replace(by_id[2], state=replace(by_id[2].state, next_match_id="R2M1"))
    by_id[3] = replace(by_id[3], state=replace(by_id[3].state, is_eliminated=True, next_match_id=None))

    plan = plan_repair(list(by_id.values()), fixtures, [], tournament_completed=False)

    assert [change.entry_id for change in plan.entry_changes] == [2]
    assert plan.entry_changes[0].state.next_match_id == "R2M2"
    warnings = [action for action in plan.actions if action.action == "Consistency warning"]
    assert len(warnings) == 1
    assert warnings[0].details["position"] == 3


def test_completed_tournament_is_not_completed_twice():
    bracket = played_bracket(QUARTER_FINALS + ((1, 4, 2, 0), (3, 2, 0, 2), (1, 2, 2, 1)))
    stored_entries, fixtures = consistent_store(bracket)

    plan = plan_repair(stored_entries, fixtures, [], tournament_completed=True)

    assert plan.corrective_count == 0
    assert plan.champion is None
