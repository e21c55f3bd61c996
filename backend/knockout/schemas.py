from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ORMBaseModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class RequestModel(BaseModel):
    # Accept both `home_score` and `homeScore` on the way in.
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


StageName = Literal["quarter_final", "semi_final", "final"]
EntryStatusName = Literal["incomplete", "completed"]
MatchStatusName = Literal["unscheduled", "scheduled", "completed"]
SlotStatusName = Literal["scheduled", "in_progress", "completed"]
ProgressName = Literal["In Progress", "Completed"]
NextMatchId = Literal["R2M1", "R2M2", "R3M1", "R3M2"]


class TournamentRef(RequestModel):
    tournament_id: int = Field(gt=0)


class TeamRef(RequestModel):
    id: int = Field(gt=0)
    name: str = Field(min_length=1, max_length=100)


class ScoreSubmission(RequestModel):
    home_score: int = Field(ge=0, le=999)
    away_score: int = Field(ge=0, le=999)
    home_pins: int = Field(default=0, ge=0, le=999)
    away_pins: int = Field(default=0, ge=0, le=999)


class OutcomeSubmission(ScoreSubmission):
    home_team: TeamRef
    away_team: TeamRef


class ScheduleRequest(RequestModel):
    match_id: int = Field(gt=0)
    scheduled_date: datetime


class TournamentRead(BaseModel):
    id: int
    name: str
    number_of_rounds: int
    progress: ProgressName
    round_statuses: list[bool] = Field(default_factory=list)
    winner_team_id: int | None = None
    winner_team: str | None = None


class TeamStats(ORMBaseModel):
    wins: int
    losses: int
    ties: int
    goals_for: int
    goals_against: int
    pins: int


class StandingRow(BaseModel):
    rank: int
    team_id: int
    team: str

    wins: int
    losses: int
    ties: int
    points: int
    goals_for: int
    goals_against: int
    goal_difference: int
    pins: int
    qualified: bool = False


class MatchHistoryRead(BaseModel):
    round: int
    stage: StageName
    opponent_id: int
    opponent: str | None = None
    opponent_position: int
    position: int
    score: int
    opponent_score: int
    pins: int
    opponent_pins: int
    won: bool
    timestamp: datetime | None = None


class BracketEntryRead(BaseModel):
    id: int
    team_id: int
    team_name: str
    tournament_id: int

    position: int
    round: int
    stage: StageName
    status: EntryStatusName
    is_eliminated: bool
    score: int
    next_match_id: NextMatchId | None = None

    match_history: list[MatchHistoryRead] = Field(default_factory=list)
    stats: TeamStats | None = None


class MatchRead(BaseModel):
    id: int
    tournament_id: int
    round: int
    stage: StageName | None = None
    label: str | None = None
    status: MatchStatusName

    home_team_id: int
    home_team: str
    away_team_id: int
    away_team: str

    home_score: int | None = None
    away_score: int | None = None
    home_pins: int | None = None
    away_pins: int | None = None


class ScheduledMatchRead(BaseModel):
    id: int
    tournament_id: int
    match_id: int | None = None

    home_team_id: int
    home_team: str
    away_team_id: int
    away_team: str

    round: int
    match_type: str | None = None
    scheduled_date: datetime
    end_date: datetime
    status: SlotStatusName


class RoundRobinResult(BaseModel):
    match: MatchRead
    round_complete: bool
    round_robin_complete: bool


class SeedResult(BaseModel):
    tournament_id: int
    bracket_size: int
    stage: StageName
    entries: list[BracketEntryRead]
    matches: list[MatchRead]
    top_teams: list[StandingRow]
    removed_fixtures: int = 0


class OutcomeWinner(BaseModel):
    id: int
    team_id: int
    name: str
    round: int
    stage: StageName
    position: int
    next_match_id: NextMatchId | None = None


class OutcomeLoser(BaseModel):
    id: int
    team_id: int
    name: str
    position: int
    stage: StageName
    is_eliminated: Literal[True] = True


class OutcomeResult(BaseModel):
    winner: OutcomeWinner
    loser: OutcomeLoser
    decided_by: Literal["score", "pins"]
    stage_completed: StageName | None = None
    new_matches: list[MatchRead] = Field(default_factory=list)
    tournament_completed: bool = False


class RepairActionRead(BaseModel):
    action: str
    details: dict[str, Any] = Field(default_factory=dict)
    corrective: bool = False


class RepairReport(BaseModel):
    tournament_id: int
    message: str
    corrective_count: int
    logs: list[RepairActionRead] = Field(default_factory=list)
