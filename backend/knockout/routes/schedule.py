from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from .. import crud, schemas, serializers
from ..database import get_db
from ..errors import BracketError

router = APIRouter(tags=["schedule"])


@router.get("/", response_model=list[schemas.ScheduledMatchRead])
def list_schedule(
    tournament_id: int = Query(ge=1),
    db: Session = Depends(get_db),
) -> list[schemas.ScheduledMatchRead]:
    try:
        slots = crud.list_scheduled_matches(db, tournament_id)
    except BracketError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.to_detail()) from exc

    return [serializers.scheduled_match_to_read(slot) for slot in slots]


@router.post("/", response_model=schemas.ScheduledMatchRead, status_code=status.HTTP_201_CREATED)
def schedule_match(payload: schemas.ScheduleRequest, db: Session = Depends(get_db)) -> schemas.ScheduledMatchRead:
    try:
        slot = crud.schedule_match(db, payload.match_id, payload.scheduled_date)
    except BracketError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.to_detail()) from exc

    return serializers.scheduled_match_to_read(slot)
