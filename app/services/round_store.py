# app/services/round_store.py
# 라운드: 하루 4회(6시간 단위) 타임 슬롯. 첫 입장 시 lazy 생성.
import logging
import random
from datetime import date, datetime, timedelta
from typing import List, Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.config import settings
from app.db.base import utcnow, new_id
from app.db.upsert import dialect_insert
from app.errors import InternalError, NotFoundError
from app.models.question import Question
from app.models.round import Round

logger = logging.getLogger(__name__)

_rng = random.SystemRandom()


def slice_for(now: datetime) -> Tuple[date, int, datetime, datetime]:
    """now가 속한 (날짜, 라운드 번호, 시작, 종료)."""
    hours = settings.round_hours
    round_number = now.hour // hours
    day_start = datetime(now.year, now.month, now.day)
    starts_at = day_start + timedelta(hours=round_number * hours)
    ends_at = starts_at + timedelta(hours=hours)
    return now.date(), round_number, starts_at, ends_at


def select_random_questions(pool: List[str], count: Optional[int] = None) -> List[str]:
    count = settings.questions_per_session if count is None else count
    if not pool:
        return []
    if len(pool) <= count:
        out = list(pool)
        _rng.shuffle(out)
        return out
    return _rng.sample(list(pool), count)


def active_question_ids(db: Session) -> List[str]:
    return list(db.scalars(select(Question.id).where(Question.active.is_(True))))


def require_pool(db: Session) -> List[str]:
    pool = active_question_ids(db)
    if len(pool) < settings.questions_per_session:
        logger.error("[ROUND] active pool too small: %d", len(pool))
        raise InternalError("Not enough questions available", code="INSUFFICIENT_QUESTIONS")
    return pool


def get_round(db: Session, round_id: str) -> Round:
    r = db.get(Round, round_id)
    if r is None:
        raise NotFoundError("Round not found", code="ROUND_NOT_FOUND")
    return r


def get_current_round(db: Session, now: Optional[datetime] = None) -> Optional[Round]:
    now = now or utcnow()
    day, number, _, _ = slice_for(now)
    return db.scalars(
        select(Round).where(Round.date == day, Round.round_number == number)
    ).first()


def get_or_create_current_round(db: Session, pool: List[str], now: Optional[datetime] = None) -> Round:
    """
    현재 슬롯 라운드 조회, 없으면 생성.
    동시 생성 경합은 (date, round_number) unique + ON CONFLICT DO NOTHING 으로 흡수.
    """
    now = now or utcnow()
    day, number, starts_at, ends_at = slice_for(now)

    existing = get_current_round(db, now)
    if existing is not None:
        return existing

    stmt = dialect_insert(db, Round).values(
        id=new_id(),
        date=day,
        round_number=number,
        starts_at=starts_at,
        ends_at=ends_at,
        question_ids=select_random_questions(pool),
        question_ids_updated_at=now,
        pot_lamports=0,
        player_count=0,
        status="active",
        created_at=now,
    ).on_conflict_do_nothing(index_elements=["date", "round_number"])
    db.execute(stmt)
    logger.info("[ROUND] ensured round date=%s number=%d", day, number)

    created = get_current_round(db, now)
    if created is None:
        raise InternalError("Failed to create round", code="ROUND_CREATE_FAILED")
    return created


def refresh_pool_if_stale(db: Session, rnd: Round, pool: List[str], now: Optional[datetime] = None) -> bool:
    """라운드 기본 문제 풀을 일정 시간마다 다시 섞는다."""
    now = now or utcnow()
    updated_at = rnd.question_ids_updated_at
    if updated_at is not None and (now - updated_at).total_seconds() <= settings.pool_refresh_seconds:
        return False

    rnd.question_ids = select_random_questions(pool)
    rnd.question_ids_updated_at = now
    db.flush()
    logger.debug("[ROUND] pool refreshed round=%s", rnd.id)
    return True


def add_entry(db: Session, round_id: str, fee_lamports: int) -> None:
    # read-modify-write 금지: 원자적 증가
    db.execute(
        update(Round)
        .where(Round.id == round_id)
        .values(
            pot_lamports=Round.pot_lamports + fee_lamports,
            player_count=Round.player_count + 1,
        )
    )


def due_round(db: Session, now: Optional[datetime] = None) -> Optional[Round]:
    now = now or utcnow()
    return db.scalars(
        select(Round)
        .where(Round.status == "active", Round.ends_at <= now)
        .order_by(Round.ends_at)
        .limit(1)
    ).first()
