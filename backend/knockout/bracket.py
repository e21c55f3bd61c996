"""Single-elimination bracket engine.

Everything here is pure: callers hand in snapshots of bracket entries with
their match history and get back plans describing what to write. Match
history is the only durable fact; round, stage, status, score, elimination
and next-match slot of every entry are re-derived by :func:`replay_bracket`.

Bracket topology:

    QF1 (1v8) --+
                +-- SF1 (R2M1) --+
    QF2 (4v5) --+                |
                                 +-- FINAL (R3M1)
    QF3 (3v6) --+                |
                +-- SF2 (R2M2) --+
    QF4 (2v7) --+

Winners advance by which fixture they won, never by their seed number.
"""

import logging
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Protocol

from . import errors

logger = logging.getLogger(__name__)


class Stage(str, Enum):
    QUARTER_FINAL = "quarter_final"
    SEMI_FINAL = "semi_final"
    FINAL = "final"

    @property
    def round(self) -> int:
        return STAGE_ROUNDS[self]

    @property
    def next(self) -> "Stage | None":
        return NEXT_STAGE[self]

    @property
    def match_type(self) -> str:
        return MATCH_TYPES[self]


class EntryStatus(str, Enum):
    INCOMPLETE = "incomplete"
    COMPLETED = "completed"


class MatchStatus(str, Enum):
    UNSCHEDULED = "unscheduled"
    SCHEDULED = "scheduled"
    COMPLETED = "completed"


class Progress(str, Enum):
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"


STAGE_ROUNDS = {
    Stage.QUARTER_FINAL: 1,
    Stage.SEMI_FINAL: 2,
    Stage.FINAL: 3,
}

NEXT_STAGE = {
    Stage.QUARTER_FINAL: Stage.SEMI_FINAL,
    Stage.SEMI_FINAL: Stage.FINAL,
    Stage.FINAL: None,
}

MATCH_TYPES = {
    Stage.QUARTER_FINAL: "quarterfinal",
    Stage.SEMI_FINAL: "semifinal",
    Stage.FINAL: "final",
}

OPENING_STAGE = {
    8: Stage.QUARTER_FINAL,
    4: Stage.SEMI_FINAL,
    2: Stage.FINAL,
}

# Seed positions meeting in the first stage a bracket of that size plays.
# Fixture slot numbers follow tuple order.
OPENING_PAIRS = {
    Stage.QUARTER_FINAL: ((1, 8), (4, 5), (3, 6), (2, 7)),
    Stage.SEMI_FINAL: ((1, 4), (2, 3)),
    Stage.FINAL: ((1, 2),),
}

# Fixture slot a winner is routed into, keyed by the slot they won.
ADVANCEMENT_SLOTS = {
    Stage.QUARTER_FINAL: {1: 1, 2: 1, 3: 2, 4: 2},
    Stage.SEMI_FINAL: {1: 1, 2: 1},
}

NEXT_MATCH_PATTERN = re.compile(r"^R[2-3]M[1-2]$")


def bracket_size(team_count: int) -> int:
    if team_count >= 8:
        return 8
    if team_count >= 4:
        return 4
    if team_count >= 2:
        return 2
    raise errors.InsufficientTeamsError()


def quarter_final_slot(position: int) -> int:
    for slot, pair in enumerate(OPENING_PAIRS[Stage.QUARTER_FINAL], start=1):
        if position in pair:
            return slot
    raise ValueError(f"Position {position} does not play a quarterfinal.")


def next_match_label(stage: Stage, slot: int) -> str | None:
    """Wire label of a round 2-3 fixture slot; quarterfinals have none."""
    if stage is Stage.QUARTER_FINAL:
        return None

    label = f"R{stage.round}M{slot}"
    if not NEXT_MATCH_PATTERN.match(label):
        raise ValueError(f"Invalid next match label {label!r}.")
    return label


# ---------------------------------------------------------------------------
# Snapshots
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Outcome:
    round: int
    stage: Stage
    opponent_id: int
    opponent_position: int
    position: int
    score: int
    opponent_score: int
    won: bool
    pins: int = 0
    opponent_pins: int = 0


@dataclass(frozen=True)
class EntrySnapshot:
    id: int
    team_id: int
    team_name: str
    position: int
    history: tuple[Outcome, ...] = ()

    def outcome_for(self, round_no: int) -> Outcome | None:
        found = None
        for outcome in self.history:
            if outcome.round == round_no:
                found = outcome
        return found

    def won_round(self, round_no: int) -> bool:
        outcome = self.outcome_for(round_no)
        return outcome is not None and outcome.won

    @property
    def eliminated(self) -> bool:
        return any(not outcome.won for outcome in self.history)


@dataclass(frozen=True)
class EntryState:
    round: int
    stage: Stage
    status: EntryStatus
    score: int
    is_eliminated: bool
    next_match_id: str | None

    def as_dict(self) -> dict[str, object]:
        return {
            "round": self.round,
            "stage": self.stage.value,
            "status": self.status.value,
            "score": self.score,
            "is_eliminated": self.is_eliminated,
            "next_match_id": self.next_match_id,
        }


@dataclass(frozen=True)
class Fixture:
    stage: Stage
    slot: int
    home: EntrySnapshot
    away: EntrySnapshot
    winner: EntrySnapshot | None = None

    @property
    def round(self) -> int:
        return self.stage.round

    @property
    def label(self) -> str:
        return f"R{self.round}M{self.slot}"

    @property
    def team_ids(self) -> frozenset[int]:
        return frozenset((self.home.team_id, self.away.team_id))

    def involves(self, entry_id: int, other_entry_id: int) -> bool:
        return {self.home.id, self.away.id} == {entry_id, other_entry_id}

    def describe(self) -> str:
        return f"{self.home.team_name} vs {self.away.team_name}"


@dataclass
class BracketReplay:
    size: int
    states: dict[int, EntryState]
    fixtures: list[Fixture]
    champion: EntrySnapshot | None = None
    anomalies: list[str] = field(default_factory=list)

    def fixtures_in(self, stage: Stage) -> list[Fixture]:
        return [fixture for fixture in self.fixtures if fixture.stage is stage]

    def fixture_between(self, entry_id: int, other_entry_id: int) -> Fixture | None:
        # Latest stage first: two entries meet at most once.
        for fixture in reversed(self.fixtures):
            if fixture.involves(entry_id, other_entry_id):
                return fixture
        return None

    def stage_complete(self, stage: Stage) -> bool:
        fixtures = self.fixtures_in(stage)
        return bool(fixtures) and all(fixture.winner is not None for fixture in fixtures)


# ---------------------------------------------------------------------------
# Replay
# ---------------------------------------------------------------------------


def _entry_state(entry: EntrySnapshot, stage: Stage, slot: int) -> EntryState:
    label = next_match_label(stage, slot)
    outcome = entry.outcome_for(stage.round)

    if outcome is None:
        return EntryState(stage.round, stage, EntryStatus.INCOMPLETE, 0, False, label)
    if outcome.won:
        next_match_id = None if stage is Stage.FINAL else label
        return EntryState(stage.round, stage, EntryStatus.COMPLETED, outcome.score, False, next_match_id)
    return EntryState(stage.round, stage, EntryStatus.COMPLETED, outcome.score, True, None)


def _fixture_winner(
    stage: Stage,
    home: EntrySnapshot,
    away: EntrySnapshot,
    anomalies: list[str],
) -> EntrySnapshot | None:
    winners = [entry for entry in (home, away) if entry.won_round(stage.round)]

    if len(winners) == 2:
        anomalies.append(
            f"Both {home.team_name} and {away.team_name} hold a round {stage.round} win; "
            "fixture left unresolved."
        )
        return None
    if not winners:
        return None

    winner = winners[0]
    outcome = winner.outcome_for(stage.round)
    if outcome is not None and outcome.opponent_id not in (home.id, away.id):
        anomalies.append(
            f"{winner.team_name} won round {stage.round} against entry {outcome.opponent_id}, "
            f"outside its canonical fixture {home.team_name} vs {away.team_name}."
        )
    return winner


def _advance(stage: Stage, fixtures: Sequence[Fixture]) -> list[tuple[int, EntrySnapshot, EntrySnapshot]]:
    routing = ADVANCEMENT_SLOTS[stage]
    grouped: dict[int, list[EntrySnapshot]] = {}
    for fixture in sorted(fixtures, key=lambda item: item.slot):
        if fixture.winner is None:
            raise errors.BracketInconsistentError(details={"match": fixture.label, "reason": "fixture has no winner"})
        grouped.setdefault(routing[fixture.slot], []).append(fixture.winner)

    return [(slot, winners[0], winners[1]) for slot, winners in sorted(grouped.items())]


def replay_bracket(entries: Sequence[EntrySnapshot]) -> BracketReplay:
    """Derive the whole bracket from seed positions and match history."""
    if not entries:
        raise errors.NoBracketFoundError()

    size = len(entries)
    if size not in OPENING_STAGE:
        raise errors.BracketInconsistentError(
            f"Bracket holds {size} entries; only 2, 4 or 8 are playable.",
            details={"entry_count": size},
        )

    by_position = {entry.position: entry for entry in entries}
    stage = OPENING_STAGE[size]
    try:
        pairs = [
            (slot, by_position[home], by_position[away])
            for slot, (home, away) in enumerate(OPENING_PAIRS[stage], start=1)
        ]
    except KeyError as exc:
        raise errors.BracketInconsistentError(
            f"Bracket has no entry at seed position {exc.args[0]}.",
            details={"positions": sorted(by_position)},
        ) from exc

    states: dict[int, EntryState] = {}
    fixtures: list[Fixture] = []
    anomalies: list[str] = []
    champion = None

    while True:
        played: list[Fixture] = []
        for slot, home, away in pairs:
            winner = _fixture_winner(stage, home, away, anomalies)
            fixture = Fixture(stage=stage, slot=slot, home=home, away=away, winner=winner)
            played.append(fixture)
            states[home.id] = _entry_state(home, stage, slot)
            states[away.id] = _entry_state(away, stage, slot)

        fixtures.extend(played)
        if any(fixture.winner is None for fixture in played):
            break

        next_stage = stage.next
        if next_stage is None:
            champion = played[0].winner
            break

        pairs = _advance(stage, played)
        stage = next_stage

    return BracketReplay(
        size=size,
        states=states,
        fixtures=fixtures,
        champion=champion,
        anomalies=anomalies,
    )


# ---------------------------------------------------------------------------
# Seeding
# ---------------------------------------------------------------------------


class RankedTeam(Protocol):
    id: int
    name: str


@dataclass(frozen=True)
class Seed:
    position: int
    team_id: int
    team_name: str


@dataclass
class SeedPlan:
    size: int
    stage: Stage
    seeds: list[Seed]
    pairs: list[tuple[int, int, int]]

    def initial_state(self, position: int) -> EntryState:
        for slot, home, away in self.pairs:
            if position in (home, away):
                return EntryState(
                    self.stage.round,
                    self.stage,
                    EntryStatus.INCOMPLETE,
                    0,
                    False,
                    next_match_label(self.stage, slot),
                )
        raise ValueError(f"Position {position} is not seeded.")


def plan_seeding(ranked_teams: Sequence[RankedTeam]) -> SeedPlan:
    size = bracket_size(len(ranked_teams))
    stage = OPENING_STAGE[size]
    seeds = [
        Seed(position=position, team_id=team.id, team_name=team.name)
        for position, team in enumerate(ranked_teams[:size], start=1)
    ]
    pairs = [(slot, home, away) for slot, (home, away) in enumerate(OPENING_PAIRS[stage], start=1)]
    return SeedPlan(size=size, stage=stage, seeds=seeds, pairs=pairs)


# ---------------------------------------------------------------------------
# Outcome resolution and progression
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Resolution:
    winner: EntrySnapshot
    loser: EntrySnapshot
    decided_by: str
    winner_outcome: Outcome
    loser_outcome: Outcome


def resolve_outcome(
    home: EntrySnapshot,
    away: EntrySnapshot,
    stage: Stage,
    home_score: int,
    away_score: int,
    home_pins: int,
    away_pins: int,
) -> Resolution:
    """Higher score wins; equal scores fall to pins; a full tie is rejected."""
    if home_score != away_score:
        home_wins = home_score > away_score
        decided_by = "score"
    elif home_pins != away_pins:
        home_wins = home_pins > away_pins
        decided_by = "pins"
    else:
        raise errors.UnresolvedTieError(
            details={"score": [home_score, away_score], "pins": [home_pins, away_pins]},
        )

    winner, loser = (home, away) if home_wins else (away, home)
    winner_score, loser_score = (home_score, away_score) if home_wins else (away_score, home_score)
    winner_pins, loser_pins = (home_pins, away_pins) if home_wins else (away_pins, home_pins)

    def outcome(entry: EntrySnapshot, opponent: EntrySnapshot, own: int, other: int, pins: int, other_pins: int, won: bool) -> Outcome:
        return Outcome(
            round=stage.round,
            stage=stage,
            opponent_id=opponent.id,
            opponent_position=opponent.position,
            position=entry.position,
            score=own,
            opponent_score=other,
            won=won,
            pins=pins,
            opponent_pins=other_pins,
        )

    return Resolution(
        winner=winner,
        loser=loser,
        decided_by=decided_by,
        winner_outcome=outcome(winner, loser, winner_score, loser_score, winner_pins, loser_pins, True),
        loser_outcome=outcome(loser, winner, loser_score, winner_score, loser_pins, winner_pins, False),
    )


@dataclass(frozen=True)
class EntryChange:
    entry_id: int
    state: EntryState


@dataclass
class ProgressionPlan:
    fixture: Fixture
    resolution: Resolution
    entry_changes: list[EntryChange]
    new_fixtures: list[Fixture]
    completed_stage: Stage | None = None
    champion: EntrySnapshot | None = None
    anomalies: list[str] = field(default_factory=list)


def _with_outcomes(entries: Iterable[EntrySnapshot], resolution: Resolution) -> list[EntrySnapshot]:
    appended = {
        resolution.winner.id: resolution.winner_outcome,
        resolution.loser.id: resolution.loser_outcome,
    }
    return [
        replace(entry, history=entry.history + (appended[entry.id],)) if entry.id in appended else entry
        for entry in entries
    ]


def plan_progression(
    entries: Sequence[EntrySnapshot],
    home_entry_id: int,
    away_entry_id: int,
    home_score: int,
    away_score: int,
    home_pins: int,
    away_pins: int,
) -> ProgressionPlan:
    """Resolve one fixture and work out everything that follows from it.

    The returned plan is the full write set: two history appends, the entry
    states that differ between the bracket before and after the result, any
    next-stage fixtures the result unlocks, and the champion if the final was
    decided.
    """
    before = replay_bracket(entries)
    fixture = before.fixture_between(home_entry_id, away_entry_id)
    if fixture is None:
        raise errors.BracketInconsistentError(
            "These entries do not meet anywhere in the replayed bracket.",
            details={"entries": [home_entry_id, away_entry_id]},
        )
    if fixture.winner is not None:
        raise errors.FixtureNotOpenError(
            f"{fixture.describe()} ({fixture.label}) already has a result.",
        )
    if any(
        before.states[entry.id].is_eliminated or entry.outcome_for(fixture.round) is not None
        for entry in (fixture.home, fixture.away)
    ):
        raise errors.FixtureNotOpenError(
            f"{fixture.describe()} ({fixture.label}) already has a recorded outcome for one side.",
        )

    by_id = {entry.id: entry for entry in entries}
    resolution = resolve_outcome(
        by_id[home_entry_id],
        by_id[away_entry_id],
        fixture.stage,
        home_score,
        away_score,
        home_pins,
        away_pins,
    )

    after = replay_bracket(_with_outcomes(entries, resolution))

    entry_changes = [
        EntryChange(entry_id=entry_id, state=state)
        for entry_id, state in after.states.items()
        if before.states.get(entry_id) != state
    ]
    known = {(item.stage, item.slot) for item in before.fixtures}
    new_fixtures = [item for item in after.fixtures if (item.stage, item.slot) not in known]

    completed_stage = fixture.stage if after.stage_complete(fixture.stage) else None
    champion = after.champion if before.champion is None else None

    return ProgressionPlan(
        fixture=fixture,
        resolution=resolution,
        entry_changes=entry_changes,
        new_fixtures=new_fixtures,
        completed_stage=completed_stage,
        champion=champion,
        anomalies=after.anomalies,
    )
