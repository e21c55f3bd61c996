from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Tournament(Base):
    __tablename__ = "tournaments"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    number_of_rounds = Column(Integer, default=1, nullable=False)

    progress = Column(String(16), default="In Progress", nullable=False)
    round_statuses = Column(JSON, default=list, nullable=False)
    winner_team_id = Column(Integer, nullable=True)

    # Compare-and-swap counter claimed by every bracket mutation.
    bracket_version = Column(Integer, default=0, nullable=False)

    teams = relationship(
        "Team",
        foreign_keys="Team.tournament_id",
        back_populates="tournament",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        CheckConstraint("number_of_rounds >= 1", name="ck_tournament_rounds_positive"),
        CheckConstraint(
            "progress in ('In Progress', 'Completed')",
            name="ck_tournament_progress_valid",
        ),
        CheckConstraint("bracket_version >= 0", name="ck_tournament_bracket_version_nonnegative"),
    )


class Team(Base):
    __tablename__ = "teams"

    id = Column(Integer, primary_key=True, index=True)
    tournament_id = Column(Integer, ForeignKey("tournaments.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False, index=True)

    wins = Column(Integer, default=0, nullable=False)
    losses = Column(Integer, default=0, nullable=False)
    ties = Column(Integer, default=0, nullable=False)
    goals_for = Column(Integer, default=0, nullable=False)
    goals_against = Column(Integer, default=0, nullable=False)
    pins = Column(Integer, default=0, nullable=False)

    tournament = relationship("Tournament", foreign_keys=[tournament_id], back_populates="teams")

    __table_args__ = (
        UniqueConstraint("tournament_id", "name", name="uq_team_name_tournament"),
        CheckConstraint("wins >= 0", name="ck_team_wins_nonnegative"),
        CheckConstraint("losses >= 0", name="ck_team_losses_nonnegative"),
        CheckConstraint("ties >= 0", name="ck_team_ties_nonnegative"),
        CheckConstraint("goals_for >= 0", name="ck_team_goals_for_nonnegative"),
        CheckConstraint("goals_against >= 0", name="ck_team_goals_against_nonnegative"),
        CheckConstraint("pins >= 0", name="ck_team_pins_nonnegative"),
    )


class Match(Base):
    """A fixture. Round-robin fixtures carry no stage; bracket fixtures do."""

    __tablename__ = "matches"

    id = Column(Integer, primary_key=True, index=True)
    tournament_id = Column(Integer, ForeignKey("tournaments.id"), nullable=False, index=True)
    round = Column(Integer, nullable=False, index=True)
    stage = Column(String(16), nullable=True, index=True)
    slot = Column(Integer, nullable=True)
    status = Column(String(16), default="unscheduled", nullable=False, index=True)

    home_team_id = Column(Integer, ForeignKey("teams.id"), nullable=False, index=True)
    away_team_id = Column(Integer, ForeignKey("teams.id"), nullable=False, index=True)
    home_team = Column(String(100), nullable=False)
    away_team = Column(String(100), nullable=False)

    home_score = Column(Integer, nullable=True)
    away_score = Column(Integer, nullable=True)
    home_pins = Column(Integer, nullable=True)
    away_pins = Column(Integer, nullable=True)

    home = relationship("Team", foreign_keys=[home_team_id])
    away = relationship("Team", foreign_keys=[away_team_id])
    schedule_slots = relationship("ScheduledMatch", back_populates="match")

    __table_args__ = (
        CheckConstraint("home_team_id <> away_team_id", name="ck_match_distinct_teams"),
        CheckConstraint(
            "status in ('unscheduled', 'scheduled', 'completed')",
            name="ck_match_status_valid",
        ),
        CheckConstraint(
            "stage is null or stage in ('quarter_final', 'semi_final', 'final')",
            name="ck_match_stage_valid",
        ),
        CheckConstraint(
            "stage is null"
            " or (stage = 'quarter_final' and round = 1)"
            " or (stage = 'semi_final' and round = 2)"
            " or (stage = 'final' and round = 3)",
            name="ck_match_stage_round_agree",
        ),
    )


class ScheduledMatch(Base):
    """Calendar projection of a fixture; the fixture itself stays authoritative."""

    __tablename__ = "scheduled_matches"

    id = Column(Integer, primary_key=True, index=True)
    tournament_id = Column(Integer, ForeignKey("tournaments.id"), nullable=False, index=True)
    match_id = Column(Integer, ForeignKey("matches.id", ondelete="SET NULL"), nullable=True, index=True)

    home_team_id = Column(Integer, ForeignKey("teams.id"), nullable=False)
    away_team_id = Column(Integer, ForeignKey("teams.id"), nullable=False)
    round = Column(Integer, nullable=False, index=True)
    match_type = Column(String(16), nullable=True)

    scheduled_date = Column(DateTime(timezone=True), nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=False)
    status = Column(String(16), default="scheduled", nullable=False, index=True)

    match = relationship("Match", back_populates="schedule_slots")
    home = relationship("Team", foreign_keys=[home_team_id])
    away = relationship("Team", foreign_keys=[away_team_id])

    __table_args__ = (
        CheckConstraint("home_team_id <> away_team_id", name="ck_scheduled_distinct_teams"),
        CheckConstraint(
            "status in ('scheduled', 'in_progress', 'completed')",
            name="ck_scheduled_status_valid",
        ),
        CheckConstraint(
            "match_type is null or match_type in ('quarterfinal', 'semifinal', 'final')",
            name="ck_scheduled_match_type_valid",
        ),
    )


class BracketEntry(Base):
    __tablename__ = "bracket_entries"

    id = Column(Integer, primary_key=True, index=True)
    tournament_id = Column(Integer, ForeignKey("tournaments.id"), nullable=False, index=True)
    team_id = Column(Integer, ForeignKey("teams.id"), nullable=False, index=True)
    team_name = Column(String(100), nullable=False)

    position = Column(Integer, nullable=False)
    round = Column(Integer, default=1, nullable=False)
    stage = Column(String(16), default="quarter_final", nullable=False, index=True)
    status = Column(String(16), default="incomplete", nullable=False)
    is_eliminated = Column(Boolean, default=False, nullable=False)
    score = Column(Integer, default=0, nullable=False)
    next_match_id = Column(String(4), nullable=True)

    team = relationship("Team")
    history = relationship(
        "MatchHistory",
        foreign_keys="MatchHistory.entry_id",
        back_populates="entry",
        order_by="MatchHistory.sequence",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        UniqueConstraint("tournament_id", "position", name="uq_bracket_position"),
        UniqueConstraint("tournament_id", "team_id", name="uq_bracket_team"),
        CheckConstraint("position >= 1 and position <= 8", name="ck_bracket_position_range"),
        CheckConstraint(
            "(stage = 'quarter_final' and round = 1)"
            " or (stage = 'semi_final' and round = 2)"
            " or (stage = 'final' and round = 3)",
            name="ck_bracket_stage_round_agree",
        ),
        CheckConstraint("status in ('incomplete', 'completed')", name="ck_bracket_status_valid"),
        CheckConstraint(
            "next_match_id is null or next_match_id in ('R2M1', 'R2M2', 'R3M1', 'R3M2')",
            name="ck_bracket_next_match_format",
        ),
    )


class MatchHistory(Base):
    """Append-only outcome record; the durable fact bracket state is replayed from."""

    __tablename__ = "bracket_match_history"

    id = Column(Integer, primary_key=True, index=True)
    entry_id = Column(Integer, ForeignKey("bracket_entries.id"), nullable=False, index=True)
    sequence = Column(Integer, nullable=False)

    round = Column(Integer, nullable=False)
    stage = Column(String(16), nullable=False)
    opponent_entry_id = Column(Integer, ForeignKey("bracket_entries.id"), nullable=False)
    opponent_position = Column(Integer, nullable=False)
    position = Column(Integer, nullable=False)

    score = Column(Integer, nullable=False)
    opponent_score = Column(Integer, nullable=False)
    pins = Column(Integer, default=0, nullable=False)
    opponent_pins = Column(Integer, default=0, nullable=False)
    won = Column(Boolean, nullable=False)
    timestamp = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    entry = relationship("BracketEntry", foreign_keys=[entry_id], back_populates="history")
    opponent = relationship("BracketEntry", foreign_keys=[opponent_entry_id])

    __table_args__ = (
        UniqueConstraint("entry_id", "sequence", name="uq_history_sequence"),
        CheckConstraint("score >= 0", name="ck_history_score_nonnegative"),
        CheckConstraint("opponent_score >= 0", name="ck_history_opponent_score_nonnegative"),
    )
