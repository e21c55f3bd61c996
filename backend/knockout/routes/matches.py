from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from .. import crud, schemas
from ..database import get_db
from ..errors import BracketError

router = APIRouter(tags=["matches"])


@router.put("/{match_id}/score", response_model=schemas.RoundRobinResult)
def record_score(
    match_id: int,
    payload: schemas.ScoreSubmission,
    db: Session = Depends(get_db),
) -> schemas.RoundRobinResult:
    try:
        return crud.record_round_robin_result(db, match_id, payload)
    except BracketError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.to_detail()) from exc
