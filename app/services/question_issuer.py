# app/services/question_issuer.py
# 문제 1개 + 1회용 토큰 발급. 정답(correct_index)은 절대 응답에 포함하지 않는다.
import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.db.base import utcnow
from app.errors import NotFoundError, StateConflictError
from app.models.game_session import GameSession
from app.models.question import Question
from app.models.round import Round
from app.services.session_state import Finished, question_ids_for, state_of

logger = logging.getLogger(__name__)

TOKEN_BYTES = 32


def generate_token() -> str:
    return secrets.token_hex(TOKEN_BYTES)


@dataclass
class IssuedQuestion:
    question_index: int
    total_questions: int
    question_id: str
    category: str
    text: str
    options: List[str] = field(default_factory=list)
    token: str = ""


def load_session(db: Session, session_id: str) -> GameSession:
    # 조건부 UPDATE 이후에도 최신 값을 보도록 항상 다시 읽는다
    session = db.get(GameSession, session_id, populate_existing=True) if session_id else None
    if session is None:
        raise NotFoundError("Session not found", code="SESSION_NOT_FOUND")
    return session


def issue_question(db: Session, session_id: str, now: Optional[datetime] = None) -> IssuedQuestion:
    now = now or utcnow()
    session = load_session(db, session_id)

    if isinstance(state_of(session), Finished):
        raise StateConflictError("Game already finished", code="GAME_FINISHED")

    round_question_ids = None
    if not session.is_practice:
        rnd = db.get(Round, session.round_id)
        if rnd is None:
            raise NotFoundError("Round not found", code="ROUND_NOT_FOUND")
        if rnd.status != "active":
            raise StateConflictError("Round is not active", code="ROUND_INACTIVE")
        round_question_ids = rnd.question_ids

    index = session.current_question_index
    question_ids = question_ids_for(session, round_question_ids)
    if index >= len(question_ids):
        raise StateConflictError("No more questions", code="GAME_COMPLETE")

    # 공개 컬럼만 조회
    row = db.execute(
        select(Question.id, Question.category, Question.text, Question.options)
        .where(Question.id == question_ids[index])
    ).first()
    if row is None:
        raise NotFoundError("Question not found", code="QUESTION_NOT_FOUND")

    token = generate_token()
    # 재발급 시 이전 토큰은 덮어써져 무효. 그 사이 인덱스가 바뀌었으면 실패.
    res = db.execute(
        update(GameSession)
        .where(
            GameSession.id == session.id,
            GameSession.finished_at.is_(None),
            GameSession.current_question_index == index,
        )
        .values(current_question_token=token, current_question_issued_at=now)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        raise StateConflictError("Session advanced, fetch the next question", code="SESSION_ADVANCED")

    logger.debug("[ISSUE] session=%s index=%d", session.id, index)
    return IssuedQuestion(
        question_index=index,
        total_questions=len(question_ids),
        question_id=row.id,
        category=row.category,
        text=row.text,
        options=list(row.options or []),
        token=token,
    )
