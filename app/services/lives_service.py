# app/services/lives_service.py
# 구매한 라이프(추가 입장권) 잔액 관리. 모든 증감은 조건부 단일 UPDATE.
import logging
from typing import Dict, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.config import settings
from app.db.base import utcnow
from app.db.upsert import dialect_insert
from app.errors import StateConflictError
from app.models.lives import PlayerLives, LivesPurchase

logger = logging.getLogger(__name__)


def get_lives(db: Session, wallet: str) -> Dict[str, int]:
    row = db.execute(
        select(PlayerLives.lives_count, PlayerLives.total_purchased, PlayerLives.total_used)
        .where(PlayerLives.wallet_address == wallet)
    ).first()
    return {
        "lives_count": row.lives_count if row else 0,
        "total_purchased": row.total_purchased if row else 0,
        "total_used": row.total_used if row else 0,
    }


def consume_life(db: Session, wallet: str) -> Optional[int]:
    """잔액 > 0 일 때만 1 차감. 성공 시 남은 잔액, 실패 시 None."""
    res = db.execute(
        update(PlayerLives)
        .where(PlayerLives.wallet_address == wallet, PlayerLives.lives_count > 0)
        .values(
            lives_count=PlayerLives.lives_count - 1,
            total_used=PlayerLives.total_used + 1,
            updated_at=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        return None
    return db.scalar(select(PlayerLives.lives_count).where(PlayerLives.wallet_address == wallet))


def restore_life(db: Session, wallet: str) -> None:
    # 세션 생성 실패 시 보상 쓰기
    db.execute(
        update(PlayerLives)
        .where(PlayerLives.wallet_address == wallet)
        .values(
            lives_count=PlayerLives.lives_count + 1,
            total_used=PlayerLives.total_used - 1,
            updated_at=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    logger.warning("[LIVES] restored one life wallet=%s", wallet)


def credit_lives(db: Session, wallet: str, count: int) -> None:
    now = utcnow()
    stmt = dialect_insert(db, PlayerLives).values(
        wallet_address=wallet,
        lives_count=count,
        total_purchased=count,
        total_used=0,
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["wallet_address"],
        set_={
            "lives_count": PlayerLives.lives_count + count,
            "total_purchased": PlayerLives.total_purchased + count,
            "updated_at": now,
        },
    )
    db.execute(stmt)


def record_purchase(db: Session, wallet: str, tx_signature: str) -> Dict[str, int]:
    used = db.scalar(select(LivesPurchase.id).where(LivesPurchase.tx_signature == tx_signature))
    if used is not None:
        raise StateConflictError("Transaction already used", code="TX_ALREADY_USED")

    db.add(LivesPurchase(
        wallet_address=wallet,
        lives_purchased=settings.lives_per_purchase,
        amount_lamports=settings.lives_price_lamports,
        tx_signature=tx_signature,
    ))
    db.flush()
    credit_lives(db, wallet, settings.lives_per_purchase)
    logger.info("[LIVES] purchase wallet=%s +%d", wallet, settings.lives_per_purchase)
    return get_lives(db, wallet)
