import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import and_, or_, update
from sqlalchemy.orm import Session, selectinload
from sqlalchemy.orm.attributes import set_committed_value

from . import bracket, errors, models, schemas, serializers
from .bracket import EntryState, EntryStatus, MatchStatus, Progress, Stage
from .repair import StoredEntry, StoredFixture, StoredSlot, plan_repair
from .standings import goal_difference, points, rank_teams

logger = logging.getLogger(__name__)

SCHEDULE_SLOT_LENGTH = timedelta(minutes=60)


# ---------------------------------------------------------------------------
# Tournaments and teams
# ---------------------------------------------------------------------------


def get_tournament_or_raise(db: Session, tournament_id: int) -> models.Tournament:
    tournament = db.get(models.Tournament, tournament_id)
    if not tournament:
        raise errors.TournamentNotFoundError(details={"tournament_id": tournament_id})
    return tournament


def get_tournament_read(db: Session, tournament_id: int) -> schemas.TournamentRead:
    tournament = get_tournament_or_raise(db, tournament_id)
    winner = db.get(models.Team, tournament.winner_team_id) if tournament.winner_team_id else None
    return serializers.tournament_to_read(tournament, winner)


def get_teams(db: Session, tournament_id: int) -> list[models.Team]:
    return (
        db.query(models.Team)
        .filter(models.Team.tournament_id == tournament_id)
        .order_by(models.Team.name.asc())
        .all()
    )


def build_standings(db: Session, tournament_id: int) -> list[schemas.StandingRow]:
    get_tournament_or_raise(db, tournament_id)
    ranked = rank_teams(get_teams(db, tournament_id))
    cut = bracket.bracket_size(len(ranked)) if len(ranked) >= 2 else 0

    return [
        schemas.StandingRow(
            rank=rank,
            team_id=team.id,
            team=team.name,
            wins=team.wins,
            losses=team.losses,
            ties=team.ties,
            points=points(team),
            goals_for=team.goals_for,
            goals_against=team.goals_against,
            goal_difference=goal_difference(team),
            pins=team.pins,
            qualified=rank <= cut,
        )
        for rank, team in enumerate(ranked, start=1)
    ]


# ---------------------------------------------------------------------------
# Round-robin fixtures
# ---------------------------------------------------------------------------


def get_match_or_raise(db: Session, match_id: int) -> models.Match:
    match = db.get(models.Match, match_id)
    if not match:
        raise errors.MatchNotFoundError(details={"match_id": match_id})
    return match


def _has_bracket(db: Session, tournament_id: int) -> bool:
    return (
        db.query(models.BracketEntry.id)
        .filter(models.BracketEntry.tournament_id == tournament_id)
        .first()
        is not None
    )


def apply_round_robin_stats(team: models.Team, own: int, other: int, pins: int) -> None:
    team.goals_for += own
    team.goals_against += other
    team.pins += pins
    if own > other:
        team.wins += 1
    elif own < other:
        team.losses += 1
    else:
        team.ties += 1


def record_round_robin_result(
    db: Session,
    match_id: int,
    payload: schemas.ScoreSubmission,
) -> schemas.RoundRobinResult:
    match = get_match_or_raise(db, match_id)
    if match.stage is not None:
        raise errors.InvalidMatchKindError(
            "Bracket matches are scored through /bracket/matches/{match_id}/score."
        )
    if match.status == MatchStatus.COMPLETED.value:
        raise errors.MatchAlreadyCompletedError()
    if _has_bracket(db, match.tournament_id):
        raise errors.AlreadySeededError("Round-robin results are closed once the bracket is seeded.")

    tournament = get_tournament_or_raise(db, match.tournament_id)
    home = db.get(models.Team, match.home_team_id)
    away = db.get(models.Team, match.away_team_id)

    try:
        apply_round_robin_stats(home, payload.home_score, payload.away_score, payload.home_pins)
        apply_round_robin_stats(away, payload.away_score, payload.home_score, payload.away_pins)

        match.home_score = payload.home_score
        match.away_score = payload.away_score
        match.home_pins = payload.home_pins
        match.away_pins = payload.away_pins
        match.status = MatchStatus.COMPLETED.value

        for slot in match.schedule_slots:
            if slot.status != "completed":
                slot.status = "completed"

        # Identity-mapped rows carry the in-memory status set above.
        fixtures = (
            db.query(models.Match)
            .filter(models.Match.tournament_id == match.tournament_id, models.Match.stage.is_(None))
            .all()
        )
        round_complete = all(
            item.status == MatchStatus.COMPLETED.value for item in fixtures if item.round == match.round
        )
        round_robin_complete = all(item.status == MatchStatus.COMPLETED.value for item in fixtures)

        statuses = list(tournament.round_statuses or [])
        statuses.extend([False] * (tournament.number_of_rounds - len(statuses)))
        if round_complete and 1 <= match.round <= len(statuses):
            statuses[match.round - 1] = True
        tournament.round_statuses = statuses

        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(
        "Recorded round-robin result %s %s-%s %s (round %s)",
        match.home_team,
        payload.home_score,
        payload.away_score,
        match.away_team,
        match.round,
    )
    return schemas.RoundRobinResult(
        match=serializers.match_to_read(match),
        round_complete=round_complete,
        round_robin_complete=round_robin_complete,
    )


# ---------------------------------------------------------------------------
# Scheduling projection
# ---------------------------------------------------------------------------


def _scheduled_query(db: Session):
    return db.query(models.ScheduledMatch).options(
        selectinload(models.ScheduledMatch.home),
        selectinload(models.ScheduledMatch.away),
    )


def list_scheduled_matches(db: Session, tournament_id: int) -> list[models.ScheduledMatch]:
    get_tournament_or_raise(db, tournament_id)
    return (
        _scheduled_query(db)
        .filter(models.ScheduledMatch.tournament_id == tournament_id)
        .order_by(models.ScheduledMatch.scheduled_date.asc(), models.ScheduledMatch.id.asc())
        .all()
    )


def schedule_match(db: Session, match_id: int, scheduled_date: datetime) -> models.ScheduledMatch:
    match = get_match_or_raise(db, match_id)
    if match.status == MatchStatus.COMPLETED.value:
        raise errors.MatchAlreadyCompletedError("Completed matches cannot be scheduled.")

    if scheduled_date.tzinfo is None:
        scheduled_date = scheduled_date.replace(tzinfo=timezone.utc)
    end_date = scheduled_date + SCHEDULE_SLOT_LENGTH

    slot = (
        db.query(models.ScheduledMatch)
        .filter(
            models.ScheduledMatch.match_id == match.id,
            models.ScheduledMatch.status == "scheduled",
        )
        .order_by(models.ScheduledMatch.id.asc())
        .first()
    )

    try:
        if slot is None:
            slot = models.ScheduledMatch(
                tournament_id=match.tournament_id,
                match_id=match.id,
                home_team_id=match.home_team_id,
                away_team_id=match.away_team_id,
                round=match.round,
                match_type=Stage(match.stage).match_type if match.stage else None,
                scheduled_date=scheduled_date,
                end_date=end_date,
                status="scheduled",
            )
            db.add(slot)
        else:
            slot.scheduled_date = scheduled_date
            slot.end_date = end_date

        match.status = MatchStatus.SCHEDULED.value
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("Scheduled %s vs %s at %s", match.home_team, match.away_team, scheduled_date.isoformat())
    return _scheduled_query(db).filter(models.ScheduledMatch.id == slot.id).one()


# ---------------------------------------------------------------------------
# Bracket state
# ---------------------------------------------------------------------------


def _entries_query(db: Session):
    return db.query(models.BracketEntry).options(
        selectinload(models.BracketEntry.history).selectinload(models.MatchHistory.opponent),
        selectinload(models.BracketEntry.team),
    )


def get_bracket_entries(db: Session, tournament_id: int) -> list[models.BracketEntry]:
    return (
        _entries_query(db)
        .filter(models.BracketEntry.tournament_id == tournament_id)
        .order_by(models.BracketEntry.position.asc())
        .all()
    )


def list_bracket_matches(db: Session, tournament_id: int, round_no: int | None = None) -> list[models.Match]:
    get_tournament_or_raise(db, tournament_id)
    query = db.query(models.Match).filter(
        models.Match.tournament_id == tournament_id,
        models.Match.stage.isnot(None),
    )
    if round_no is not None:
        query = query.filter(models.Match.round == round_no)
    return query.order_by(models.Match.round.asc(), models.Match.slot.asc(), models.Match.id.asc()).all()


def _snapshot(entry: models.BracketEntry) -> bracket.EntrySnapshot:
    return bracket.EntrySnapshot(
        id=entry.id,
        team_id=entry.team_id,
        team_name=entry.team_name,
        position=entry.position,
        history=tuple(
            bracket.Outcome(
                round=record.round,
                stage=Stage(record.stage),
                opponent_id=record.opponent_entry_id,
                opponent_position=record.opponent_position,
                position=record.position,
                score=record.score,
                opponent_score=record.opponent_score,
                won=record.won,
                pins=record.pins,
                opponent_pins=record.opponent_pins,
            )
            for record in entry.history
        ),
    )


def _stored_state(entry: models.BracketEntry) -> EntryState:
    return EntryState(
        round=entry.round,
        stage=Stage(entry.stage),
        status=EntryStatus(entry.status),
        score=entry.score,
        is_eliminated=entry.is_eliminated,
        next_match_id=entry.next_match_id,
    )


def _apply_state(entry: models.BracketEntry, state: EntryState) -> None:
    entry.round = state.round
    entry.stage = state.stage.value
    entry.status = state.status.value
    entry.score = state.score
    entry.next_match_id = state.next_match_id
    # Elimination is set once and never cleared.
    entry.is_eliminated = entry.is_eliminated or state.is_eliminated


def _append_history(entry: models.BracketEntry, outcome: bracket.Outcome) -> None:
    entry.history.append(
        models.MatchHistory(
            sequence=len(entry.history) + 1,
            round=outcome.round,
            stage=outcome.stage.value,
            opponent_entry_id=outcome.opponent_id,
            opponent_position=outcome.opponent_position,
            position=outcome.position,
            score=outcome.score,
            opponent_score=outcome.opponent_score,
            pins=outcome.pins,
            opponent_pins=outcome.opponent_pins,
            won=outcome.won,
        )
    )


def _new_bracket_match(
    tournament_id: int,
    stage: Stage,
    slot: int,
    home,
    away,
    status: MatchStatus = MatchStatus.UNSCHEDULED,
) -> models.Match:
    return models.Match(
        tournament_id=tournament_id,
        round=stage.round,
        stage=stage.value,
        slot=slot,
        status=status.value,
        home_team_id=home.team_id,
        home_team=home.team_name,
        away_team_id=away.team_id,
        away_team=away.team_name,
    )


def _claim_bracket_version(db: Session, tournament: models.Tournament, expected_version: int) -> None:
    """Compare-and-swap the tournament's bracket version inside the open transaction."""
    result = db.execute(
        update(models.Tournament)
        .where(
            models.Tournament.id == tournament.id,
            models.Tournament.bracket_version == expected_version,
        )
        .values(bracket_version=expected_version + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        logger.warning(
            "Lost bracket write race on tournament %s at version %s",
            tournament.id,
            expected_version,
        )
        raise errors.StaleBracketStateError(
            details={"tournament_id": tournament.id, "expected_version": expected_version},
        )
    set_committed_value(tournament, "bracket_version", expected_version + 1)


def complete_tournament(db: Session, tournament: models.Tournament, winner_team_id: int) -> bool:
    """Mark the tournament finished. Returns False when it already was."""
    if tournament.progress == Progress.COMPLETED.value:
        logger.info("Tournament %s already completed; winner left as team %s", tournament.id, tournament.winner_team_id)
        return False

    tournament.progress = Progress.COMPLETED.value
    tournament.winner_team_id = winner_team_id
    logger.info("Tournament %s completed; winner team %s", tournament.id, winner_team_id)
    return True


# ---------------------------------------------------------------------------
# Seeding
# ---------------------------------------------------------------------------


def seed_bracket(db: Session, tournament_id: int) -> schemas.SeedResult:
    tournament = get_tournament_or_raise(db, tournament_id)
    expected_version = tournament.bracket_version

    if _has_bracket(db, tournament_id):
        raise errors.AlreadySeededError(details={"tournament_id": tournament_id})

    teams = get_teams(db, tournament_id)
    if len(teams) < 2:
        raise errors.InsufficientTeamsError(details={"team_count": len(teams)})

    pending = (
        db.query(models.Match)
        .filter(
            models.Match.tournament_id == tournament_id,
            models.Match.stage.is_(None),
            models.Match.status == MatchStatus.SCHEDULED.value,
        )
        .count()
    )
    if pending:
        raise errors.RoundRobinIncompleteError(details={"scheduled_matches": pending})

    plan = bracket.plan_seeding(rank_teams(teams))

    try:
        _claim_bracket_version(db, tournament, expected_version)

        removed = (
            db.query(models.Match)
            .filter(
                models.Match.tournament_id == tournament_id,
                models.Match.stage.is_(None),
                models.Match.status == MatchStatus.UNSCHEDULED.value,
            )
            .delete(synchronize_session=False)
        )

        by_position: dict[int, models.BracketEntry] = {}
        for seed in plan.seeds:
            entry = models.BracketEntry(
                tournament_id=tournament_id,
                team_id=seed.team_id,
                team_name=seed.team_name,
                position=seed.position,
            )
            _apply_state(entry, plan.initial_state(seed.position))
            db.add(entry)
            by_position[seed.position] = entry

        matches = [
            _new_bracket_match(tournament_id, plan.stage, slot, by_position[home], by_position[away])
            for slot, home, away in plan.pairs
        ]
        db.add_all(matches)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(
        "Seeded %s-team bracket for tournament %s starting at %s; removed %s unscheduled fixtures",
        plan.size,
        tournament_id,
        plan.stage.value,
        removed,
    )

    standings = build_standings(db, tournament_id)
    return schemas.SeedResult(
        tournament_id=tournament_id,
        bracket_size=plan.size,
        stage=plan.stage.value,
        entries=[serializers.entry_to_read(entry) for entry in get_bracket_entries(db, tournament_id)],
        matches=[serializers.match_to_read(match) for match in matches],
        top_teams=standings[: plan.size],
        removed_fixtures=removed,
    )


# ---------------------------------------------------------------------------
# Outcome submission and stage progression
# ---------------------------------------------------------------------------


def submit_bracket_result(
    db: Session,
    match_id: int,
    payload: schemas.OutcomeSubmission,
) -> schemas.OutcomeResult:
    match = get_match_or_raise(db, match_id)
    if match.stage is None:
        raise errors.InvalidMatchKindError("Round-robin matches are scored through /matches/{match_id}/score.")
    if match.status == MatchStatus.COMPLETED.value:
        raise errors.MatchAlreadyCompletedError()

    tournament = get_tournament_or_raise(db, match.tournament_id)
    expected_version = tournament.bracket_version

    entries = get_bracket_entries(db, tournament.id)
    by_team = {entry.team_id: entry for entry in entries}
    home = by_team.get(payload.home_team.id)
    away = by_team.get(payload.away_team.id)
    if home is None or away is None:
        missing = [ref.id for ref in (payload.home_team, payload.away_team) if ref.id not in by_team]
        raise errors.TeamsNotInBracketError(details={"team_ids": missing})
    if {home.team_id, away.team_id} != {match.home_team_id, match.away_team_id}:
        raise errors.MatchTeamsMismatchError(
            details={"match_id": match.id, "expected": [match.home_team, match.away_team]},
        )

    plan = bracket.plan_progression(
        [_snapshot(entry) for entry in entries],
        home.id,
        away.id,
        payload.home_score,
        payload.away_score,
        payload.home_pins,
        payload.away_pins,
    )
    if plan.fixture.stage.value != match.stage:
        raise errors.BracketInconsistentError(
            f"Match {match.id} is stored as {match.stage} but the bracket plays it as {plan.fixture.stage.value}.",
        )
    for anomaly in plan.anomalies:
        logger.warning("Bracket anomaly in tournament %s: %s", tournament.id, anomaly)

    if plan.new_fixtures:
        stored_next = list_bracket_matches(db, tournament.id)
        for fixture in plan.new_fixtures:
            clash = [
                item.id
                for item in stored_next
                if item.round == fixture.round and {item.home_team_id, item.away_team_id} & fixture.team_ids
            ]
            if clash:
                logger.warning(
                    "Tournament %s already stores round %s matches %s for %s",
                    tournament.id,
                    fixture.round,
                    clash,
                    fixture.describe(),
                )
                raise errors.BracketInconsistentError(details={"match": fixture.label, "existing_match_ids": clash})

    by_id = {entry.id: entry for entry in entries}
    resolution = plan.resolution

    try:
        _claim_bracket_version(db, tournament, expected_version)

        _append_history(by_id[resolution.winner.id], resolution.winner_outcome)
        _append_history(by_id[resolution.loser.id], resolution.loser_outcome)
        for change in plan.entry_changes:
            _apply_state(by_id[change.entry_id], change.state)

        home_is_match_home = match.home_team_id == payload.home_team.id
        match.home_score = payload.home_score if home_is_match_home else payload.away_score
        match.away_score = payload.away_score if home_is_match_home else payload.home_score
        match.home_pins = payload.home_pins if home_is_match_home else payload.away_pins
        match.away_pins = payload.away_pins if home_is_match_home else payload.home_pins
        match.status = MatchStatus.COMPLETED.value

        slots = (
            db.query(models.ScheduledMatch)
            .filter(
                models.ScheduledMatch.tournament_id == tournament.id,
                models.ScheduledMatch.round == match.round,
                models.ScheduledMatch.status == "scheduled",
                or_(
                    and_(
                        models.ScheduledMatch.home_team_id == home.team_id,
                        models.ScheduledMatch.away_team_id == away.team_id,
                    ),
                    and_(
                        models.ScheduledMatch.home_team_id == away.team_id,
                        models.ScheduledMatch.away_team_id == home.team_id,
                    ),
                ),
            )
            .all()
        )
        for slot in slots:
            slot.status = "completed"

        new_matches = [
            _new_bracket_match(tournament.id, fixture.stage, fixture.slot, fixture.home, fixture.away)
            for fixture in plan.new_fixtures
        ]
        db.add_all(new_matches)

        tournament_completed = False
        if plan.champion is not None:
            tournament_completed = complete_tournament(db, tournament, plan.champion.team_id)

        db.commit()
    except Exception:
        db.rollback()
        raise

    winner = by_id[resolution.winner.id]
    loser = by_id[resolution.loser.id]
    logger.info(
        "%s beat %s in %s (decided by %s)",
        winner.team_name,
        loser.team_name,
        plan.fixture.label,
        resolution.decided_by,
    )
    if plan.completed_stage is not None:
        logger.info(
            "Tournament %s completed stage %s; created %s next-stage matches",
            tournament.id,
            plan.completed_stage.value,
            len(new_matches),
        )

    return schemas.OutcomeResult(
        winner=serializers.winner_to_read(winner),
        loser=serializers.loser_to_read(loser),
        decided_by=resolution.decided_by,
        stage_completed=plan.completed_stage.value if plan.completed_stage else None,
        new_matches=[serializers.match_to_read(item) for item in new_matches],
        tournament_completed=tournament_completed,
    )


# ---------------------------------------------------------------------------
# Repair
# ---------------------------------------------------------------------------


def _fixture_scores(fixture: bracket.Fixture) -> dict[str, int | None]:
    home_outcome = fixture.home.outcome_for(fixture.round)
    away_outcome = fixture.away.outcome_for(fixture.round)
    return {
        "home_score": home_outcome.score if home_outcome else None,
        "away_score": away_outcome.score if away_outcome else None,
        "home_pins": home_outcome.pins if home_outcome else None,
        "away_pins": away_outcome.pins if away_outcome else None,
    }


def repair_bracket(db: Session, tournament_id: int) -> schemas.RepairReport:
    tournament = get_tournament_or_raise(db, tournament_id)
    expected_version = tournament.bracket_version

    entries = get_bracket_entries(db, tournament_id)
    if not entries:
        raise errors.NoBracketFoundError(details={"tournament_id": tournament_id})

    fixtures = list_bracket_matches(db, tournament_id)
    slots = (
        db.query(models.ScheduledMatch)
        .filter(models.ScheduledMatch.tournament_id == tournament_id)
        .order_by(models.ScheduledMatch.id.asc())
        .all()
    )

    plan = plan_repair(
        [StoredEntry(snapshot=_snapshot(entry), state=_stored_state(entry)) for entry in entries],
        [StoredFixture(item.id, item.round, item.home_team_id, item.away_team_id) for item in fixtures],
        [StoredSlot(item.id, item.round, item.home_team_id, item.away_team_id) for item in slots],
        tournament_completed=tournament.progress == Progress.COMPLETED.value,
    )

    if plan.corrective_count:
        by_id = {entry.id: entry for entry in entries}
        slots_by_id = {slot.id: slot for slot in slots}
        relinked_targets = set(plan.relink_slots.values())

        try:
            _claim_bracket_version(db, tournament, expected_version)

            for slot_id in plan.delete_slot_ids:
                db.delete(slots_by_id[slot_id])
            db.flush()

            doomed = set(plan.delete_fixture_ids)
            for item in fixtures:
                if item.id in doomed:
                    db.delete(item)
            db.flush()

            created: dict[tuple[Stage, int], models.Match] = {}
            for fixture in plan.create_fixtures:
                if fixture.winner is not None:
                    status = MatchStatus.COMPLETED
                elif (fixture.stage, fixture.slot) in relinked_targets:
                    status = MatchStatus.SCHEDULED
                else:
                    status = MatchStatus.UNSCHEDULED
                rebuilt = _new_bracket_match(tournament_id, fixture.stage, fixture.slot, fixture.home, fixture.away, status)
                if fixture.winner is not None:
                    for column, value in _fixture_scores(fixture).items():
                        setattr(rebuilt, column, value)
                db.add(rebuilt)
                created[(fixture.stage, fixture.slot)] = rebuilt
            db.flush()

            for slot_id, target in plan.relink_slots.items():
                slots_by_id[slot_id].match_id = created[target].id

            for change in plan.entry_changes:
                _apply_state(by_id[change.entry_id], change.state)

            if plan.champion is not None:
                complete_tournament(db, tournament, plan.champion.team_id)

            db.commit()
        except Exception:
            db.rollback()
            raise

        message = "Bracket repair completed successfully"
    else:
        message = "Bracket is consistent; no repair needed"

    logger.info("%s for tournament %s (%s corrective actions)", message, tournament_id, plan.corrective_count)
    return schemas.RepairReport(
        tournament_id=tournament_id,
        message=message,
        corrective_count=plan.corrective_count,
        logs=[
            schemas.RepairActionRead(action=action.action, details=action.details, corrective=action.corrective)
            for action in plan.actions
        ],
    )
