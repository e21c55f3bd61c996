from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from .. import crud, schemas
from ..database import get_db
from ..errors import BracketError

router = APIRouter(tags=["tournaments"])


@router.get("/{tournament_id}", response_model=schemas.TournamentRead)
def get_tournament(tournament_id: int, db: Session = Depends(get_db)) -> schemas.TournamentRead:
    try:
        return crud.get_tournament_read(db, tournament_id)
    except BracketError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.to_detail()) from exc


@router.get("/{tournament_id}/standings", response_model=list[schemas.StandingRow])
def get_standings(tournament_id: int, db: Session = Depends(get_db)) -> list[schemas.StandingRow]:
    try:
        return crud.build_standings(db, tournament_id)
    except BracketError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.to_detail()) from exc
