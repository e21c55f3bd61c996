import logging
import os
import uuid

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from .database import Base, SessionLocal, engine
from .models import Tournament
from .routes import bracket, matches, schedule, tournaments

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Knockout Bracket API",
    version="1.0.0",
    description=(
        "Seeds single-elimination brackets from round-robin standings, "
        "advances winners by the fixture they won and repairs brackets from match history."
    ),
)

cors_origins = os.getenv(
    "CORS_ORIGINS",
    "http://localhost:5173,http://127.0.0.1:5173",
)
allow_origins = [origin.strip() for origin in cors_origins.split(",") if origin.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

Base.metadata.create_all(bind=engine)


def should_auto_seed() -> bool:
    value = os.getenv("AUTO_SEED_ON_EMPTY", "false").strip().lower()
    return value in {"1", "true", "yes", "on"}


def seed_if_empty() -> None:
    if not should_auto_seed():
        return

    db = SessionLocal()
    try:
        has_tournament = db.query(Tournament.id).first() is not None
    finally:
        db.close()

    if has_tournament:
        return

    from seed import seed

    logger.info("Database is empty; loading demo tournament")
    seed()


seed_if_empty()


@app.exception_handler(SQLAlchemyError)
async def storage_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    correlation_id = uuid.uuid4().hex[:8]
    logger.error("Storage failure [%s] on %s %s", correlation_id, request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": {
                "code": "STORAGE_ERROR",
                "message": "The bracket store could not complete the request.",
                "correlation_id": correlation_id,
            }
        },
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = [
        {"field": ".".join(str(part) for part in error["loc"]), "message": error["msg"]}
        for error in exc.errors()
    ]
    logger.info("Rejected request body on %s %s: %s", request.method, request.url.path, problems)
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "detail": {
                "code": "INVALID_INPUT",
                "message": "Request failed validation.",
                "errors": problems,
            }
        },
    )


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


app.include_router(tournaments.router, prefix="/tournaments")
app.include_router(bracket.router, prefix="/bracket")
app.include_router(matches.router, prefix="/matches")
app.include_router(schedule.router, prefix="/schedule")


def run() -> None:
    uvicorn.run(
        "knockout.main:app",
        host=os.getenv("HOST", "127.0.0.1"),
        port=int(os.getenv("PORT", "8000")),
    )


if __name__ == "__main__":
    run()
