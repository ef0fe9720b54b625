# app/routers/rounds.py
from dataclasses import asdict

from fastapi import APIRouter, BackgroundTasks, Body, Depends, Query
from sqlalchemy.orm import Session, sessionmaker

from app.deps import get_db, get_session_factory, require_operator
from app.errors import NotFoundError
from app.schemas.game import (
    FinalizeRoundRequest,
    FinalizeRoundResponse,
    LeaderboardEntry,
    LeaderboardResponse,
    PayoutOut,
    RoundSummary,
)
from app.services import outbox, round_finalizer, round_store

router = APIRouter(prefix="/api", tags=["rounds"])


def _summary(rnd) -> RoundSummary:
    return RoundSummary(
        round_id=rnd.id,
        date=rnd.date.isoformat(),
        round_number=rnd.round_number,
        starts_at=rnd.starts_at,
        ends_at=rnd.ends_at,
        status=rnd.status,
        pot_lamports=rnd.pot_lamports,
        player_count=rnd.player_count,
    )


@router.post("/finalize-round", response_model=FinalizeRoundResponse)
def finalize_round(
    background_tasks: BackgroundTasks,
    body: FinalizeRoundRequest | None = Body(None),
    db: Session = Depends(get_db),
    session_factory: sessionmaker = Depends(get_session_factory),
    operator: dict = Depends(require_operator),
):
    """
    운영자(스케줄러) 전용.
    - roundId 없으면 종료 시각이 지난 active 라운드 하나를 정산
    - 이미 정산된 라운드는 no-op
    """
    result = round_finalizer.finalize_round(db, body.round_id if body else None)
    if result.status == "ended":
        db.commit()
        background_tasks.add_task(outbox.dispatch_pending, session_factory)
    return FinalizeRoundResponse(
        status=result.status,
        round_id=result.round_id,
        payouts=[PayoutOut(**asdict(p)) for p in result.payouts],
    )


@router.get("/rounds/current", response_model=RoundSummary)
def current_round(db: Session = Depends(get_db)):
    rnd = round_store.get_current_round(db)
    if rnd is None:
        raise NotFoundError("No round in progress", code="ROUND_NOT_FOUND")
    return _summary(rnd)


@router.get("/rounds/{round_id}/leaderboard", response_model=LeaderboardResponse)
def round_leaderboard(
    round_id: str,
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
):
    entries = round_finalizer.leaderboard(db, round_id, limit=limit)
    return LeaderboardResponse(
        round_id=round_id,
        entries=[
            LeaderboardEntry(
                rank=e.rank,
                wallet_address=e.wallet_address,
                score=e.score,
                elapsed_ms=e.elapsed_ms,
                finished_at=e.finished_at,
            )
            for e in entries
        ],
    )
