"""Bracket consistency repair.

Rebuilds round 2-3 fixtures and entry dispositions from match history and
drops duplicate calendar slots. Stored fixtures are never trusted: they are
compared with the replayed bracket and, when they differ in any way, all of
them are deleted and recreated.
"""

import logging
from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from .bracket import (
    BracketReplay,
    EntryChange,
    EntrySnapshot,
    EntryState,
    Fixture,
    Stage,
    quarter_final_slot,
    replay_bracket,
)

logger = logging.getLogger(__name__)

REBUILT_ROUNDS = (2, 3)


@dataclass(frozen=True)
class StoredEntry:
    snapshot: EntrySnapshot
    state: EntryState


@dataclass(frozen=True)
class StoredFixture:
    id: int
    round: int
    home_team_id: int
    away_team_id: int

    @property
    def key(self) -> tuple[int, frozenset[int]]:
        return self.round, frozenset((self.home_team_id, self.away_team_id))


@dataclass(frozen=True)
class StoredSlot:
    id: int
    round: int
    home_team_id: int
    away_team_id: int

    @property
    def key(self) -> tuple[int, frozenset[int]]:
        return self.round, frozenset((self.home_team_id, self.away_team_id))


@dataclass(frozen=True)
class RepairAction:
    action: str
    details: dict[str, Any]
    corrective: bool = False


@dataclass
class RepairPlan:
    replay: BracketReplay
    actions: list[RepairAction] = field(default_factory=list)
    delete_fixture_ids: list[int] = field(default_factory=list)
    create_fixtures: list[Fixture] = field(default_factory=list)
    entry_changes: list[EntryChange] = field(default_factory=list)
    relink_slots: dict[int, tuple[Stage, int]] = field(default_factory=dict)
    delete_slot_ids: list[int] = field(default_factory=list)
    champion: EntrySnapshot | None = None

    @property
    def corrective_count(self) -> int:
        return sum(1 for action in self.actions if action.corrective)

    def log(self, action: str, corrective: bool = False, **details: Any) -> None:
        self.actions.append(RepairAction(action=action, details=details, corrective=corrective))
        if corrective:
            logger.info("Bracket repair: %s %s", action, details)
        else:
            logger.debug("Bracket repair: %s %s", action, details)


def _describe(entry: EntrySnapshot) -> dict[str, Any]:
    return {"name": entry.team_name, "position": entry.position}


def _plan_fixtures(plan: RepairPlan, fixtures: Sequence[StoredFixture], slots: Sequence[StoredSlot]) -> None:
    expected = [fixture for fixture in plan.replay.fixtures if fixture.round in REBUILT_ROUNDS]
    stored = [fixture for fixture in fixtures if fixture.round in REBUILT_ROUNDS]

    expected_keys = Counter((fixture.round, fixture.team_ids) for fixture in expected)
    stored_keys = Counter(fixture.key for fixture in stored)
    if expected_keys == stored_keys:
        return

    if stored:
        plan.delete_fixture_ids.extend(fixture.id for fixture in stored)
        plan.log(
            "Deleted existing semifinal/final matches",
            corrective=True,
            deleted_count=len(stored),
        )

    if expected:
        plan.create_fixtures.extend(expected)
        plan.log(
            "Created semifinal/final matches",
            corrective=True,
            matches=[
                {"match": fixture.label, "stage": fixture.stage.value, "teams": fixture.describe()}
                for fixture in expected
            ],
        )

    by_key = {(fixture.round, fixture.team_ids): fixture for fixture in expected}
    for slot in slots:
        if slot.id in plan.delete_slot_ids or slot.round not in REBUILT_ROUNDS:
            continue
        target = by_key.get(slot.key)
        if target is not None:
            plan.relink_slots[slot.id] = (target.stage, target.slot)

    if plan.relink_slots:
        plan.log(
            "Relinked scheduled matches to rebuilt fixtures",
            corrective=True,
            relinked_count=len(plan.relink_slots),
        )


def _plan_entries(plan: RepairPlan, entries: Sequence[StoredEntry]) -> None:
    for stored in entries:
        derived = plan.replay.states[stored.snapshot.id]
        if derived == stored.state:
            continue

        if stored.state.is_eliminated and not derived.is_eliminated:
            plan.log(
                "Consistency warning",
                message="Entry is stored as eliminated but history records no loss; left eliminated.",
                team=stored.snapshot.team_name,
                position=stored.snapshot.position,
            )
            logger.warning("Refusing to reinstate eliminated entry %s", stored.snapshot.team_name)
            continue
        if derived.round < stored.state.round:
            plan.log(
                "Consistency warning",
                message="Entry is stored in a later round than its history supports; round left unchanged.",
                team=stored.snapshot.team_name,
                position=stored.snapshot.position,
                stored_round=stored.state.round,
                derived_round=derived.round,
            )
            logger.warning("Refusing to move %s back to round %s", stored.snapshot.team_name, derived.round)
            continue

        plan.entry_changes.append(EntryChange(entry_id=stored.snapshot.id, state=derived))
        plan.log(
            "Updated bracket entry",
            corrective=True,
            team=stored.snapshot.team_name,
            position=stored.snapshot.position,
            before=stored.state.as_dict(),
            after=derived.as_dict(),
        )


def _plan_duplicate_slots(plan: RepairPlan, slots: Sequence[StoredSlot]) -> None:
    late_slots = sorted((slot for slot in slots if slot.round in REBUILT_ROUNDS), key=lambda slot: slot.id)
    plan.log("Found scheduled matches for rounds 2-3", count=len(late_slots))

    seen: set[tuple[int, frozenset[int]]] = set()
    for slot in late_slots:
        if slot.key in seen:
            plan.delete_slot_ids.append(slot.id)
        else:
            seen.add(slot.key)

    if plan.delete_slot_ids:
        plan.log(
            "Removed duplicate scheduled matches",
            corrective=True,
            deleted_count=len(plan.delete_slot_ids),
        )
        logger.warning("Found %s duplicate scheduled matches", len(plan.delete_slot_ids))


def plan_repair(
    entries: Sequence[StoredEntry],
    fixtures: Sequence[StoredFixture],
    slots: Sequence[StoredSlot],
    tournament_completed: bool,
) -> RepairPlan:
    replay = replay_bracket([stored.snapshot for stored in entries])
    plan = RepairPlan(replay=replay)
    plan.log("Found bracket teams", count=len(entries))

    for anomaly in replay.anomalies:
        plan.log("Consistency warning", message=anomaly)
        logger.warning("Bracket anomaly: %s", anomaly)

    snapshots = [stored.snapshot for stored in entries]
    if replay.size == 8:
        quarter_final_winners = sorted(
            (entry for entry in snapshots if entry.won_round(1)),
            key=lambda entry: quarter_final_slot(entry.position),
        )
        plan.log(
            "Identified quarterfinal winners",
            winners=[
                {**_describe(entry), "quarter_final": quarter_final_slot(entry.position)}
                for entry in quarter_final_winners
            ],
        )

    # Duplicates first so relinking skips slots about to be deleted.
    _plan_duplicate_slots(plan, slots)
    _plan_fixtures(plan, fixtures, slots)

    if replay.size >= 4:
        semi_final_winners = [entry for entry in snapshots if entry.won_round(2)]
        if len(semi_final_winners) == 2:
            plan.log("Found semifinal winners", winners=[_describe(entry) for entry in semi_final_winners])
        elif semi_final_winners:
            plan.log(
                "Partial semifinal completion detected",
                message="Only one semifinal completed. Final will be created after the second semifinal.",
                completed_count=len(semi_final_winners),
            )

    _plan_entries(plan, entries)

    if replay.champion is not None and not tournament_completed:
        plan.champion = replay.champion
        plan.log(
            "Completed tournament",
            corrective=True,
            winner=_describe(replay.champion),
        )

    return plan
