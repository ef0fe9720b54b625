# app/routers/payouts.py
# 운영자 전용: 정산 완료 기록, outbox 수동 처리
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session, sessionmaker

from app.deps import get_db, get_session_factory, require_operator
from app.schemas.game import OutboxDrainResponse, PayoutClaimedRequest, PayoutClaimedResponse
from app.services import outbox, rate_limit, round_finalizer

router = APIRouter(prefix="/api", tags=["operator"])


@router.post("/payouts/claimed", response_model=PayoutClaimedResponse)
def payout_claimed(
    body: PayoutClaimedRequest,
    db: Session = Depends(get_db),
    operator: dict = Depends(require_operator),
):
    result = round_finalizer.mark_payout_claimed(
        db,
        round_id=body.round_id,
        wallet=body.wallet_address,
        signature=body.signature,
        rank=body.rank,
    )
    return PayoutClaimedResponse(
        payout_id=result.payout_id,
        status=result.status,
        already_claimed=result.already_claimed,
        code="PAYOUT_ALREADY_CLAIMED" if result.already_claimed else None,
        settlement_signature=result.settlement_signature,
    )


@router.post("/outbox/drain", response_model=OutboxDrainResponse)
def drain_outbox(
    db: Session = Depends(get_db),
    session_factory: sessionmaker = Depends(get_session_factory),
    operator: dict = Depends(require_operator),
):
    purged = rate_limit.purge_expired(db)
    db.commit()
    counts = outbox.dispatch_pending(session_factory)
    return OutboxDrainResponse(purged_rate_buckets=purged, **counts)
