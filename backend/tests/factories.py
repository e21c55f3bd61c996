from dataclasses import replace

from knockout.bracket import EntrySnapshot, plan_progression


def entries(size=8):
    # Entry ids equal seed positions; team ids are offset to keep them apart.
    return [
        EntrySnapshot(id=position, team_id=100 + position, team_name=f"Seed {position}", position=position)
        for position in range(1, size + 1)
    ]


def play(bracket, home, away, home_score, away_score, home_pins=0, away_pins=0):
    """Run one submission through the engine and return the plan with the updated snapshots."""
    plan = plan_progression(bracket, home, away, home_score, away_score, home_pins, away_pins)
    appended = {
        plan.resolution.winner.id: plan.resolution.winner_outcome,
        plan.resolution.loser.id: plan.resolution.loser_outcome,
    }
    updated = [
        replace(entry, history=entry.history + (appended[entry.id],)) if entry.id in appended else entry
        for entry in bracket
    ]
    return plan, updated


def state_of(plan, entry_id):
    return next((change.state for change in plan.entry_changes if change.entry_id == entry_id), None)
