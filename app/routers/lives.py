# app/routers/lives.py
# 라이프(추가 입장권) 조회 / 구매
import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.config import settings
from app.deps import get_chain_verifier, get_db
from app.errors import ValidationError
from app.schemas.game import LivesResponse, PurchaseLivesRequest
from app.services import lives_service, rate_limit
from app.services.chain_verifier import is_valid_wallet_address
from app.services.payment import check_lives_payment

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["lives"])


def _require_wallet(wallet: str) -> str:
    wallet = (wallet or "").strip()
    if not is_valid_wallet_address(wallet):
        raise ValidationError("Invalid wallet address format", code="INVALID_ADDRESS")
    return wallet


@router.get("/lives", response_model=LivesResponse)
def get_lives(wallet: str = Query(...), db: Session = Depends(get_db)):
    wallet = _require_wallet(wallet)
    return LivesResponse(wallet_address=wallet, **lives_service.get_lives(db, wallet))


@router.post("/purchase-lives", response_model=LivesResponse)
def purchase_lives(
    body: PurchaseLivesRequest,
    db: Session = Depends(get_db),
    verifier=Depends(get_chain_verifier),
):
    """
    수익 지갑으로 정확히 라이프 가격만큼 송금한 트랜잭션을 확인하고 라이프 지급.
    같은 서명은 한 번만 사용할 수 있다.
    """
    wallet = _require_wallet(body.wallet_address)
    rate_limit.enforce(db, "purchase-lives", wallet, settings.purchase_rate_limit)
    db.commit()

    proof = verifier.verify(body.tx_signature)
    check_lives_payment(proof, wallet)
    balance = lives_service.record_purchase(db, wallet, proof.signature)
    return LivesResponse(wallet_address=wallet, **balance)
