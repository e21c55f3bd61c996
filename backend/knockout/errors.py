"""Bracket error taxonomy.

Every failure the engine reports carries a stable machine-readable ``code``
next to a human-readable message, so clients can branch on the code while
storage errors never reach them verbatim.

- validation errors (400) reject input with no state change;
- lookup errors (404) report a missing tournament, fixture or bracket;
- conflict errors (409) report a lost write race or a bracket whose stored
  state disagrees with its match history.
"""

from typing import Any

from fastapi import status


class BracketError(Exception):
    code = "BRACKET_ERROR"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Bracket operation failed."

    def __init__(self, message: str | None = None, details: dict[str, Any] | None = None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_detail(self) -> dict[str, Any]:
        detail: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            detail["details"] = self.details
        return detail


class BracketValidationError(BracketError, ValueError):
    code = "INVALID_INPUT"
    status_code = status.HTTP_400_BAD_REQUEST


class BracketLookupError(BracketError, LookupError):
    code = "NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND


class BracketConflictError(BracketError):
    code = "CONFLICT"
    status_code = status.HTTP_409_CONFLICT


# Validation


class AlreadySeededError(BracketValidationError):
    code = "ALREADY_SEEDED"
    default_message = "Bracket already exists for this tournament."


class InsufficientTeamsError(BracketValidationError):
    code = "INSUFFICIENT_TEAMS"
    default_message = "Not enough teams to create a bracket (minimum 2 teams required)."


class RoundRobinIncompleteError(BracketValidationError):
    code = "ROUND_ROBIN_INCOMPLETE"
    default_message = "All scheduled round-robin matches must be completed before seeding."


class UnresolvedTieError(BracketValidationError):
    code = "UNRESOLVED_TIE"
    default_message = (
        "Match cannot end in a tie. If scores are equal, play overtime until a pin is scored."
    )


class MatchTeamsMismatchError(BracketValidationError):
    code = "MATCH_TEAMS_MISMATCH"
    default_message = "Submitted teams do not play in this match."


class FixtureNotOpenError(BracketValidationError):
    code = "FIXTURE_NOT_OPEN"
    default_message = "This fixture is not open for a result."


class MatchAlreadyCompletedError(BracketValidationError):
    code = "MATCH_ALREADY_COMPLETED"
    default_message = "Match is already completed."


class InvalidMatchKindError(BracketValidationError):
    code = "INVALID_MATCH_KIND"
    default_message = "Operation is not valid for this kind of match."


# Lookup


class TournamentNotFoundError(BracketLookupError):
    code = "TOURNAMENT_NOT_FOUND"
    default_message = "Tournament not found."


class MatchNotFoundError(BracketLookupError):
    code = "MATCH_NOT_FOUND"
    default_message = "Match not found."


class TeamsNotInBracketError(BracketLookupError):
    code = "TEAMS_NOT_IN_BRACKET"
    default_message = "Teams not found in bracket."


class NoBracketFoundError(BracketLookupError):
    code = "NO_BRACKET_FOUND"
    default_message = "No bracket teams found for this tournament."


# Conflict


class StaleBracketStateError(BracketConflictError):
    code = "STALE_BRACKET_STATE"
    default_message = "Bracket changed while this request was processed. Retry the request."


class BracketInconsistentError(BracketConflictError):
    code = "BRACKET_INCONSISTENT"
    default_message = "Bracket state is inconsistent with match history. Run a bracket repair."
