from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from .. import crud, schemas, serializers
from ..database import get_db
from ..errors import BracketError

router = APIRouter(tags=["bracket"])


@router.get("/", response_model=list[schemas.BracketEntryRead])
def list_entries(
    tournament_id: int = Query(ge=1),
    db: Session = Depends(get_db),
) -> list[schemas.BracketEntryRead]:
    entries = crud.get_bracket_entries(db, tournament_id)
    return [serializers.entry_to_read(entry) for entry in entries]


@router.get("/matches", response_model=list[schemas.MatchRead])
def list_matches(
    tournament_id: int = Query(ge=1),
    round_no: int | None = Query(default=None, ge=1, le=3, alias="round"),
    db: Session = Depends(get_db),
) -> list[schemas.MatchRead]:
    try:
        matches = crud.list_bracket_matches(db, tournament_id, round_no)
    except BracketError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.to_detail()) from exc

    return [serializers.match_to_read(match) for match in matches]


@router.post("/seed", response_model=schemas.SeedResult, status_code=status.HTTP_201_CREATED)
def seed_bracket(payload: schemas.TournamentRef, db: Session = Depends(get_db)) -> schemas.SeedResult:
    try:
        return crud.seed_bracket(db, payload.tournament_id)
    except BracketError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.to_detail()) from exc


@router.post("/matches/{match_id}/score", response_model=schemas.OutcomeResult)
def submit_score(
    match_id: int,
    payload: schemas.OutcomeSubmission,
    db: Session = Depends(get_db),
) -> schemas.OutcomeResult:
    try:
        return crud.submit_bracket_result(db, match_id, payload)
    except BracketError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.to_detail()) from exc


@router.post("/repair", response_model=schemas.RepairReport)
def repair_bracket(payload: schemas.TournamentRef, db: Session = Depends(get_db)) -> schemas.RepairReport:
    try:
        return crud.repair_bracket(db, payload.tournament_id)
    except BracketError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.to_detail()) from exc
