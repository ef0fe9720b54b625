# app/services/round_finalizer.py
# 라운드 정산: 순위 산정 + 상금 분배(지급 의도 기록) 또는 인원 미달 시 환불
import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.config import settings
from app.db.base import utcnow
from app.errors import NotFoundError
from app.models.game_session import GameSession
from app.models.payout import Payout
from app.models.round import Round
from app.services import outbox, round_store

logger = logging.getLogger(__name__)

BPS_DENOMINATOR = 10_000


@dataclass(frozen=True)
class RankedEntry:
    session_id: str
    wallet_address: str
    score: int
    elapsed_ms: int
    finished_at: Optional[datetime]
    rank: int = 0


@dataclass
class PayoutLine:
    wallet_address: str
    amount_lamports: int
    kind: str = "prize"
    rank: Optional[int] = None
    percentage_bps: Optional[int] = None


@dataclass
class FinalizeResult:
    status: str  # ended|refunded|no-op
    round_id: Optional[str] = None
    payouts: List[PayoutLine] = field(default_factory=list)


def rank_finishers(sessions: Iterable[GameSession]) -> List[RankedEntry]:
    """점수 내림차순, 소요시간 오름차순. 동점은 종료 시각, id 순으로 고정."""
    finished = [s for s in sessions if s.finished_at is not None]
    finished.sort(key=lambda s: (-(s.score or 0), s.elapsed_ms or 0, s.finished_at, s.id))
    return [
        RankedEntry(
            session_id=s.id,
            wallet_address=s.wallet_address,
            score=s.score or 0,
            elapsed_ms=s.elapsed_ms or 0,
            finished_at=s.finished_at,
            rank=i,
        )
        for i, s in enumerate(finished, start=1)
    ]


def best_per_wallet(ranked: Sequence[RankedEntry]) -> List[RankedEntry]:
    # 지갑별 라운드 결과는 한 번만 (가장 높은 순위의 세션)
    seen = set()
    best = []
    for entry in ranked:
        if entry.wallet_address in seen:
            continue
        seen.add(entry.wallet_address)
        best.append(entry)
    return best


def compute_payouts(
    pot_lamports: int,
    ranked: Sequence[RankedEntry],
    splits_bps: Optional[Sequence[int]] = None,
    platform_fee_bps: Optional[int] = None,
) -> List[PayoutLine]:
    splits_bps = settings.payout_splits_bps if splits_bps is None else splits_bps
    platform_fee_bps = settings.platform_fee_bps if platform_fee_bps is None else platform_fee_bps

    fee = pot_lamports * platform_fee_bps // BPS_DENOMINATOR
    net = pot_lamports - fee
    lines = []
    # 순위가 비어 있으면 해당 지급 행은 만들지 않는다
    for entry, bps in zip(ranked, splits_bps):
        lines.append(PayoutLine(
            wallet_address=entry.wallet_address,
            amount_lamports=net * bps // BPS_DENOMINATOR,
            kind="prize",
            rank=entry.rank,
            percentage_bps=bps,
        ))
    return lines


def compute_refunds(sessions: Iterable[GameSession], entry_fee_lamports: Optional[int] = None) -> List[PayoutLine]:
    fee = settings.entry_fee_lamports if entry_fee_lamports is None else entry_fee_lamports
    counts = Counter(s.wallet_address for s in sessions)
    return [
        PayoutLine(wallet_address=wallet, amount_lamports=fee * n, kind="refund")
        for wallet, n in sorted(counts.items())
    ]


def _claim_round(db: Session, round_id: str, status: str, now: datetime) -> bool:
    res = db.execute(
        update(Round)
        .where(Round.id == round_id, Round.status == "active")
        .values(status=status, finalized_at=now)
        .execution_options(synchronize_session=False)
    )
    return res.rowcount == 1


def _store_payouts(db: Session, round_id: str, lines: List[PayoutLine], now: datetime) -> None:
    for line in lines:
        db.add(Payout(
            round_id=round_id,
            kind=line.kind,
            wallet_address=line.wallet_address,
            rank=line.rank,
            amount_lamports=line.amount_lamports,
            percentage_bps=line.percentage_bps,
            status="pending",
            created_at=now,
        ))


def finalize_round(db: Session, round_id: Optional[str] = None, now: Optional[datetime] = None) -> FinalizeResult:
    now = now or utcnow()

    if round_id:
        rnd = round_store.get_round(db, round_id)
    else:
        rnd = round_store.due_round(db, now)
        if rnd is None:
            logger.info("[FINALIZE] no round due")
            return FinalizeResult(status="no-op")

    if rnd.status != "active":
        logger.info("[FINALIZE] round=%s already %s", rnd.id, rnd.status)
        return FinalizeResult(status="no-op", round_id=rnd.id)

    sessions = list(db.scalars(select(GameSession).where(GameSession.round_id == rnd.id)))
    ranked = rank_finishers(sessions)

    if len(ranked) < settings.min_players:
        if not _claim_round(db, rnd.id, "refunded", now):
            return FinalizeResult(status="no-op", round_id=rnd.id)
        refunds = compute_refunds(sessions)
        _store_payouts(db, rnd.id, refunds, now)
        db.flush()
        logger.info(
            "[FINALIZE] round=%s refunded finishers=%d wallets=%d",
            rnd.id, len(ranked), len(refunds),
        )
        return FinalizeResult(status="refunded", round_id=rnd.id, payouts=refunds)

    if not _claim_round(db, rnd.id, "ended", now):
        return FinalizeResult(status="no-op", round_id=rnd.id)

    # 팟은 상태 전환 이후 값을 다시 읽는다
    pot = db.scalar(select(Round.pot_lamports).where(Round.id == rnd.id)) or 0
    for entry in ranked:
        db.execute(
            update(GameSession)
            .where(GameSession.id == entry.session_id)
            .values(rank=entry.rank)
            .execution_options(synchronize_session=False)
        )
    for entry in best_per_wallet(ranked):
        outbox.enqueue(db, "round_result", {
            "round_id": rnd.id,
            "wallet": entry.wallet_address,
            "score": entry.score,
            "rank": entry.rank,
        }, now=now)

    prizes = compute_payouts(pot, ranked)
    _store_payouts(db, rnd.id, prizes, now)
    db.flush()
    logger.info(
        "[FINALIZE] round=%s ended pot=%d finishers=%d payouts=%d",
        rnd.id, pot, len(ranked), len(prizes),
    )
    return FinalizeResult(status="ended", round_id=rnd.id, payouts=prizes)


def leaderboard(db: Session, round_id: str, limit: int = 100) -> List[RankedEntry]:
    round_store.get_round(db, round_id)
    sessions = db.scalars(
        select(GameSession).where(
            GameSession.round_id == round_id,
            GameSession.finished_at.isnot(None),
        )
    )
    return rank_finishers(sessions)[:limit]


@dataclass
class ClaimResult:
    payout_id: int
    status: str
    already_claimed: bool
    settlement_signature: Optional[str]


def mark_payout_claimed(
    db: Session,
    round_id: str,
    wallet: str,
    signature: str,
    rank: Optional[int] = None,
    now: Optional[datetime] = None,
) -> ClaimResult:
    """외부 정산 확인 후 pending -> claimed. 두 번째 호출은 현재 상태만 알려준다."""
    now = now or utcnow()
    stmt = select(Payout).where(Payout.round_id == round_id, Payout.wallet_address == wallet)
    if rank is not None:
        stmt = stmt.where(Payout.rank == rank)
    payout = db.scalars(stmt.order_by(Payout.id)).first()
    if payout is None:
        raise NotFoundError("Payout not found", code="PAYOUT_NOT_FOUND")

    res = db.execute(
        update(Payout)
        .where(Payout.id == payout.id, Payout.status == "pending")
        .values(status="claimed", settlement_signature=signature, claimed_at=now)
        .execution_options(synchronize_session=False)
    )
    db.refresh(payout)
    if res.rowcount != 1:
        logger.info("[FINALIZE] payout=%s already claimed", payout.id)
        return ClaimResult(payout.id, payout.status, True, payout.settlement_signature)

    logger.info("[FINALIZE] payout=%s claimed wallet=%s", payout.id, wallet)
    return ClaimResult(payout.id, payout.status, False, payout.settlement_signature)
