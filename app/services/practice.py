# app/services/practice.py
# 연습 모드: 결제/지갑/입장 한도/상금 없이 같은 문제 발급 -> 답안 제출 흐름을 쓴다.
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from app.config import settings
from app.db.base import utcnow
from app.models.game_session import GameSession
from app.services import rate_limit, round_store

logger = logging.getLogger(__name__)


@dataclass
class PracticeResult:
    session_id: str
    total_questions: int
    mode: str = "practice"


def start_practice(db: Session, client_key: str, now: Optional[datetime] = None) -> PracticeResult:
    now = now or utcnow()

    rate_limit.enforce(db, "practice", client_key or "unknown", settings.practice_rate_limit, now=now)
    db.commit()

    pool = round_store.require_pool(db)
    question_order = round_store.select_random_questions(pool)
    session = GameSession(
        round_id=None,
        wallet_address=None,
        is_practice=True,
        question_order=question_order,
        current_question_index=0,
        score=0,
        correct_count=0,
        elapsed_ms=0,
        created_at=now,
    )
    db.add(session)
    db.flush()

    logger.info("[PRACTICE] session=%s questions=%d", session.id, len(question_order))
    return PracticeResult(session_id=session.id, total_questions=len(question_order))
