from __future__ import annotations

import argparse
from datetime import datetime, timedelta, timezone

from knockout import models
from knockout.crud import apply_round_robin_stats
from knockout.database import Base, SessionLocal, engine

TOURNAMENT_NAME = "Spring Floor Hockey League"

# Relative strength drives the demo scores; equal ratings produce draws.
TEAM_RATINGS = {
    "Ice Breakers": 9,
    "Northside Blades": 8,
    "Harbour Hawks": 8,
    "Granite Giants": 7,
    "Riverside Rockets": 6,
    "Maple Mavericks": 5,
    "Cedar Comets": 4,
    "Summit Storm": 4,
    "Lakeshore Lynx": 3,
    "Valley Vipers": 1,
}

FIRST_MATCH_DAY = datetime(2026, 3, 7, 9, 0, tzinfo=timezone.utc)
MATCH_LENGTH = timedelta(minutes=60)


def reset_database() -> None:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)


def round_robin_rounds(names: list[str]) -> list[list[tuple[str, str]]]:
    """Circle-method pairings: every team meets every other team once."""
    rotation = list(names)
    if len(rotation) % 2:
        rotation.append(None)

    rounds: list[list[tuple[str, str]]] = []
    half = len(rotation) // 2
    for round_index in range(len(rotation) - 1):
        pairs = []
        for slot in range(half):
            home, away = rotation[slot], rotation[-slot - 1]
            if home is None or away is None:
                continue
            pairs.append((home, away) if round_index % 2 == 0 else (away, home))
        rounds.append(pairs)
        rotation = [rotation[0], rotation[-1], *rotation[1:-1]]
    return rounds


def demo_score(home: str, away: str) -> tuple[int, int, int, int]:
    diff = TEAM_RATINGS[home] - TEAM_RATINGS[away]
    home_goals = 2 + max(diff, 0)
    away_goals = 2 + max(-diff, 0)
    return home_goals, away_goals, TEAM_RATINGS[home] % 4, TEAM_RATINGS[away] % 4


def seed(*, reset: bool = False) -> int:
    if reset:
        reset_database()
    else:
        Base.metadata.create_all(bind=engine)

    rounds = round_robin_rounds(list(TEAM_RATINGS))

    db = SessionLocal()
    try:
        tournament = models.Tournament(
            name=TOURNAMENT_NAME,
            number_of_rounds=len(rounds),
            progress="In Progress",
            round_statuses=[True] * len(rounds),
        )
        db.add(tournament)
        db.flush()

        teams: dict[str, models.Team] = {}
        for name in TEAM_RATINGS:
            team = models.Team(
                tournament_id=tournament.id,
                name=name,
                wins=0,
                losses=0,
                ties=0,
                goals_for=0,
                goals_against=0,
                pins=0,
            )
            db.add(team)
            teams[name] = team
        db.flush()

        for round_no, pairs in enumerate(rounds, start=1):
            day = FIRST_MATCH_DAY + timedelta(days=round_no - 1)
            for index, (home_name, away_name) in enumerate(pairs):
                home, away = teams[home_name], teams[away_name]
                home_goals, away_goals, home_pins, away_pins = demo_score(home_name, away_name)
                apply_round_robin_stats(home, home_goals, away_goals, home_pins)
                apply_round_robin_stats(away, away_goals, home_goals, away_pins)

                match = models.Match(
                    tournament_id=tournament.id,
                    round=round_no,
                    status="completed",
                    home_team_id=home.id,
                    home_team=home.name,
                    away_team_id=away.id,
                    away_team=away.name,
                    home_score=home_goals,
                    away_score=away_goals,
                    home_pins=home_pins,
                    away_pins=away_pins,
                )
                db.add(match)
                db.flush()

                start = day + index * MATCH_LENGTH
                db.add(
                    models.ScheduledMatch(
                        tournament_id=tournament.id,
                        match_id=match.id,
                        home_team_id=home.id,
                        away_team_id=away.id,
                        round=round_no,
                        scheduled_date=start,
                        end_date=start + MATCH_LENGTH,
                        status="completed",
                    )
                )

        db.commit()
        return tournament.id
    finally:
        db.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Load a demo tournament with a finished round robin.")
    parser.add_argument(
        "--reset",
        action="store_true",
        help="Drop and recreate all tables before loading the demo tournament.",
    )
    args = parser.parse_args()

    tournament_id = seed(reset=args.reset)
    print(f"Seed completed (tournament {tournament_id})")
