from . import models, schemas
from .bracket import Stage


def tournament_to_read(tournament: models.Tournament, winner: models.Team | None = None) -> schemas.TournamentRead:
    return schemas.TournamentRead(
        id=tournament.id,
        name=tournament.name,
        number_of_rounds=tournament.number_of_rounds,
        progress=tournament.progress,
        round_statuses=list(tournament.round_statuses or []),
        winner_team_id=tournament.winner_team_id,
        winner_team=winner.name if winner else None,
    )


def history_to_read(record: models.MatchHistory) -> schemas.MatchHistoryRead:
    return schemas.MatchHistoryRead(
        round=record.round,
        stage=record.stage,
        opponent_id=record.opponent_entry_id,
        opponent=record.opponent.team_name if record.opponent else None,
        opponent_position=record.opponent_position,
        position=record.position,
        score=record.score,
        opponent_score=record.opponent_score,
        pins=record.pins,
        opponent_pins=record.opponent_pins,
        won=record.won,
        timestamp=record.timestamp,
    )


def entry_to_read(entry: models.BracketEntry) -> schemas.BracketEntryRead:
    return schemas.BracketEntryRead(
        id=entry.id,
        team_id=entry.team_id,
        team_name=entry.team_name,
        tournament_id=entry.tournament_id,
        position=entry.position,
        round=entry.round,
        stage=entry.stage,
        status=entry.status,
        is_eliminated=entry.is_eliminated,
        score=entry.score,
        next_match_id=entry.next_match_id,
        match_history=[history_to_read(record) for record in entry.history],
        stats=schemas.TeamStats.model_validate(entry.team) if entry.team else None,
    )


def _match_label(match: models.Match) -> str | None:
    if match.stage is None or match.slot is None:
        return None
    return f"R{Stage(match.stage).round}M{match.slot}"


def match_to_read(match: models.Match) -> schemas.MatchRead:
    return schemas.MatchRead(
        id=match.id,
        tournament_id=match.tournament_id,
        round=match.round,
        stage=match.stage,
        label=_match_label(match),
        status=match.status,
        home_team_id=match.home_team_id,
        home_team=match.home_team,
        away_team_id=match.away_team_id,
        away_team=match.away_team,
        home_score=match.home_score,
        away_score=match.away_score,
        home_pins=match.home_pins,
        away_pins=match.away_pins,
    )


def scheduled_match_to_read(slot: models.ScheduledMatch) -> schemas.ScheduledMatchRead:
    return schemas.ScheduledMatchRead(
        id=slot.id,
        tournament_id=slot.tournament_id,
        match_id=slot.match_id,
        home_team_id=slot.home_team_id,
        home_team=slot.home.name if slot.home else "TBD",
        away_team_id=slot.away_team_id,
        away_team=slot.away.name if slot.away else "TBD",
        round=slot.round,
        match_type=slot.match_type,
        scheduled_date=slot.scheduled_date,
        end_date=slot.end_date,
        status=slot.status,
    )


def winner_to_read(entry: models.BracketEntry) -> schemas.OutcomeWinner:
    return schemas.OutcomeWinner(
        id=entry.id,
        team_id=entry.team_id,
        name=entry.team_name,
        round=entry.round,
        stage=entry.stage,
        position=entry.position,
        next_match_id=entry.next_match_id,
    )


def loser_to_read(entry: models.BracketEntry) -> schemas.OutcomeLoser:
    return schemas.OutcomeLoser(
        id=entry.id,
        team_id=entry.team_id,
        name=entry.team_name,
        position=entry.position,
        stage=entry.stage,
    )
