# app/services/entry_gate.py
# 라운드 입장: 결제 검증 -> 라운드 확보 -> 재개/한도/라이프 -> 세션 생성
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import settings
from app.db.base import utcnow
from app.errors import (
    AllowanceExhaustedError,
    InternalError,
    StateConflictError,
    ValidationError,
)
from app.models.game_session import GameSession
from app.models.round import Round
from app.services import lives_service, rate_limit, round_store
from app.services.chain_verifier import is_valid_wallet_address
from app.services.payment import check_entry_payment, entry_signatures
from app.services.session_state import AwaitingEntry, state_of

logger = logging.getLogger(__name__)


@dataclass
class EntryResult:
    session_id: str
    round_id: str
    total_questions: int
    resumed: bool
    free_entry: bool = False
    life_used: bool = False
    free_entries_remaining: int = 0
    lives_remaining: Optional[int] = None


def _signature_used(db: Session, signatures: List[str]) -> bool:
    hit = db.scalar(
        select(GameSession.id).where(
            or_(
                GameSession.entry_tx_signature.in_(signatures),
                GameSession.fee_tx_signature.in_(signatures),
            )
        ).limit(1)
    )
    return hit is not None


def _finished_last_24h(db: Session, wallet: str, now: datetime) -> int:
    since = now - timedelta(hours=24)
    return db.scalar(
        select(func.count(GameSession.id)).where(
            GameSession.wallet_address == wallet,
            GameSession.created_at >= since,
            GameSession.finished_at.isnot(None),
        )
    ) or 0


def draw_questions(db: Session, wallet: str, pool: List[str], now: datetime) -> List[str]:
    """최근 24시간 안에 본 문제를 피해서 추첨. 남은 문제가 부족하면 전체 풀 사용."""
    since = now - timedelta(hours=24)
    seen = set()
    for order in db.scalars(
        select(GameSession.question_order).where(
            GameSession.wallet_address == wallet,
            GameSession.created_at >= since,
        )
    ):
        if isinstance(order, list):
            seen.update(order)

    candidates = pool
    if seen:
        unseen = [qid for qid in pool if qid not in seen]
        if len(unseen) >= settings.questions_per_session:
            candidates = unseen
            logger.debug("[ENTRY] 24h dedup: %d seen, %d unseen", len(seen), len(unseen))
        else:
            logger.debug("[ENTRY] 24h dedup: only %d unseen, using full pool", len(unseen))
    return round_store.select_random_questions(candidates)


def _insert_session(
    db: Session,
    rnd: Round,
    wallet: str,
    signatures: List[str],
    question_order: List[str],
    life_used: bool,
    now: datetime,
) -> GameSession:
    session = GameSession(
        round_id=rnd.id,
        wallet_address=wallet,
        entry_tx_signature=signatures[0],
        fee_tx_signature=signatures[1] if len(signatures) > 1 else None,
        life_used=life_used,
        question_order=question_order,
        current_question_index=0,
        score=0,
        correct_count=0,
        elapsed_ms=0,
        created_at=now,
    )
    db.add(session)
    round_store.add_entry(db, rnd.id, settings.entry_fee_lamports)
    db.flush()
    return session


def enter_round(
    db: Session,
    verifier,
    wallet: str,
    entry_tx_signature: str,
    fee_tx_signature: Optional[str] = None,
    now: Optional[datetime] = None,
) -> EntryResult:
    now = now or utcnow()
    wallet = (wallet or "").strip()

    if not wallet or not entry_tx_signature:
        raise ValidationError("walletAddress and entryTxSignature are required")
    if not is_valid_wallet_address(wallet):
        raise ValidationError("Invalid wallet address format", code="INVALID_ADDRESS")

    # 요청 수 제한: 실패한 요청도 카운트되도록 바로 커밋
    rate_limit.enforce(db, "enter-round", wallet, settings.entry_rate_limit, now=now)
    db.commit()

    # 1) 결제 증빙 (실패 시 세션 생성 없음)
    signatures = entry_signatures(entry_tx_signature, fee_tx_signature)
    proofs = [verifier.verify(sig) for sig in signatures]
    check_entry_payment(proofs, wallet)
    logger.info("[ENTRY] payment verified wallet=%s sigs=%d", wallet, len(signatures))

    # 2) 라운드 확보 + 문제 풀 갱신
    pool = round_store.require_pool(db)
    rnd = round_store.get_or_create_current_round(db, pool, now)
    round_store.refresh_pool_if_stale(db, rnd, pool, now)
    if rnd.status != "active":
        raise StateConflictError("Round is not active", code="ROUND_INACTIVE")

    # 3) 미완료 세션이 있으면 재개
    existing = list(db.scalars(
        select(GameSession).where(
            GameSession.round_id == rnd.id,
            GameSession.wallet_address == wallet,
        )
    ))
    unfinished = next((s for s in existing if s.finished_at is None), None)
    state = state_of(unfinished)
    if not isinstance(state, AwaitingEntry):
        logger.info("[ENTRY] resume session=%s wallet=%s index=%d", unfinished.id, wallet, state.index)
        return EntryResult(
            session_id=unfinished.id,
            round_id=rnd.id,
            total_questions=len(unfinished.question_order or []),
            resumed=True,
        )

    if _signature_used(db, signatures):
        raise StateConflictError("Transaction already used", code="TX_ALREADY_USED")

    # 4) 입장 한도 (라운드 / 24시간)
    entries_this_round = len(existing)
    if entries_this_round >= settings.max_entries_per_round:
        raise AllowanceExhaustedError(
            f"Maximum {settings.max_entries_per_round} entries per round reached. Try again next round!",
            code="ROUND_CAP_REACHED",
            entriesThisRound=entries_this_round,
            maxPerRound=settings.max_entries_per_round,
        )
    entries_24h = _finished_last_24h(db, wallet, now)
    if entries_24h >= settings.max_entries_per_24h:
        raise AllowanceExhaustedError(
            f"Maximum {settings.max_entries_per_24h} entries per 24 hours reached. Please try again later!",
            code="DAILY_CAP_REACHED",
            entriesLast24h=entries_24h,
            maxPer24h=settings.max_entries_per_24h,
        )

    # 5) 무료 입장 / 라이프 차감
    free_entry = entries_this_round < settings.free_entries_per_round
    lives_remaining = None
    if not free_entry:
        lives_remaining = lives_service.consume_life(db, wallet)
        if lives_remaining is None:
            raise AllowanceExhaustedError(
                "Free entries used! Purchase lives for more plays this round.",
                code="NO_LIVES",
                canBuyLives=True,
                livesCount=0,
                freeEntriesUsed=entries_this_round,
                freeEntriesPerRound=settings.free_entries_per_round,
            )
        # 차감은 먼저 확정, 세션 생성 실패 시 보상 쓰기로 복구
        db.commit()
        logger.info("[ENTRY] life used wallet=%s remaining=%s", wallet, lives_remaining)

    # 6) 문제 추첨 + 세션 생성 (여기서 실패하면 차감한 라이프 복구)
    try:
        question_order = draw_questions(db, wallet, pool, now)
        session = _insert_session(db, rnd, wallet, signatures, question_order, not free_entry, now)
    except SQLAlchemyError:
        db.rollback()
        logger.exception("[ENTRY] session create failed wallet=%s", wallet)
        if not free_entry:
            lives_service.restore_life(db, wallet)
            db.commit()
        raise InternalError("Failed to create session", code="SESSION_CREATE_FAILED")

    logger.info(
        "[ENTRY] session=%s round=%s wallet=%s free=%s",
        session.id, rnd.id, wallet, free_entry,
    )
    return EntryResult(
        session_id=session.id,
        round_id=rnd.id,
        total_questions=len(question_order),
        resumed=False,
        free_entry=free_entry,
        life_used=not free_entry,
        free_entries_remaining=max(0, settings.free_entries_per_round - entries_this_round - 1),
        lives_remaining=lives_remaining,
    )
