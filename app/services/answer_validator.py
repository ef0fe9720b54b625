# app/services/answer_validator.py
# 답안 제출: 토큰 1회 소비 + 서버 시간 기준 제한시간 + 속도 가중 점수
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.config import settings
from app.db.base import utcnow
from app.errors import InternalError, StateConflictError, ValidationError
from app.models.answer import Answer
from app.models.game_session import GameSession
from app.models.question import QuestionAnswerKey
from app.models.round import Round
from app.services import outbox
from app.services.question_issuer import load_session
from app.services.scoring import calculate_points, elapsed_ms, is_timed_out
from app.services.session_state import Finished, QuestionIssued, question_ids_for, state_of

logger = logging.getLogger(__name__)

HIDDEN_CORRECT_INDEX = -1


@dataclass
class AnswerResult:
    correct: bool
    correct_index: int
    points_earned: int
    time_ms: int
    timed_out: bool
    is_last_question: bool
    total_score: int
    correct_count: int


def _correct_index(db: Session, question_id: str) -> int:
    value = db.scalar(
        select(QuestionAnswerKey.correct_index).where(QuestionAnswerKey.question_id == question_id)
    )
    if value is None:
        raise InternalError("Question answer not found", code="ANSWER_KEY_MISSING")
    return int(value)


def submit_answer(
    db: Session,
    session_id: str,
    token: str,
    selected_index: Optional[int],
    now: Optional[datetime] = None,
    time_expired: bool = False,
) -> AnswerResult:
    """
    time_expired=True: 클라이언트 타이머 만료. 선택 없이 오답 처리 후 다음 문제로.
    소요 시간은 항상 서버 발급 시각 기준.
    """
    now = now or utcnow()

    if time_expired:
        selected_index = None
    elif selected_index is None or not 0 <= int(selected_index) <= 3:
        raise ValidationError("Invalid selectedIndex (must be 0-3)")
    if not token:
        raise StateConflictError("Invalid token", code="INVALID_TOKEN")

    session = load_session(db, session_id)
    state = state_of(session)
    if isinstance(state, Finished):
        raise StateConflictError("Game already finished", code="GAME_FINISHED")
    if not isinstance(state, QuestionIssued) or state.token != token:
        raise StateConflictError("Invalid token", code="INVALID_TOKEN")

    rnd = db.get(Round, session.round_id) if session.round_id else None
    question_ids = question_ids_for(session, rnd.question_ids if rnd else None)
    if state.index >= len(question_ids):
        raise InternalError("Session has no question for this index", code="NO_QUESTION_FOR_INDEX")
    question_id = question_ids[state.index]

    time_ms = max(0, elapsed_ms(state.issued_at, now))
    timed_out = time_expired or is_timed_out(time_ms)
    if timed_out:
        # 시간 초과: 자동 오답, 정답은 공개하지 않는다
        correct = False
        correct_index = HIDDEN_CORRECT_INDEX
    else:
        correct_index = _correct_index(db, question_id)
        correct = int(selected_index) == correct_index
    points = calculate_points(correct, time_ms)

    next_index = state.index + 1
    is_last = next_index >= len(question_ids)
    values = dict(
        current_question_index=next_index,
        current_question_token=None,
        current_question_issued_at=None,
        score=GameSession.score + points,
        correct_count=GameSession.correct_count + (1 if correct else 0),
        elapsed_ms=GameSession.elapsed_ms + min(time_ms, settings.max_answer_time_ms),
    )
    if is_last:
        values["finished_at"] = now

    # 토큰이 일치하는 행만 갱신 (동시 제출 중 하나만 성공)
    res = db.execute(
        update(GameSession)
        .where(
            GameSession.id == session.id,
            GameSession.current_question_token == token,
            GameSession.current_question_index == state.index,
            GameSession.finished_at.is_(None),
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        raise StateConflictError("Invalid token", code="INVALID_TOKEN")

    db.add(Answer(
        session_id=session.id,
        question_index=state.index,
        question_id=question_id,
        selected_index=None if selected_index is None else int(selected_index),
        is_correct=correct,
        points_earned=points,
        time_taken_ms=time_ms,
        timed_out=timed_out,
        token=token,
        issued_at=state.issued_at,
        created_at=now,
    ))
    db.flush()

    session = load_session(db, session.id)
    if is_last:
        # 연습 세션은 통계/퀘스트에 반영하지 않는다
        if not session.is_practice:
            outbox.enqueue(db, "session_finished", {
                "session_id": session.id,
                "round_id": session.round_id,
                "wallet": session.wallet_address,
                "score": session.score,
                "correct": session.correct_count,
                "total": len(question_ids),
            }, now=now)
        logger.info(
            "[ANSWER] session finished=%s score=%d correct=%d",
            session.id, session.score, session.correct_count,
        )

    logger.debug(
        "[ANSWER] session=%s index=%d correct=%s timed_out=%s points=%d",
        session.id, state.index, correct, timed_out, points,
    )
    return AnswerResult(
        correct=correct,
        correct_index=correct_index,
        points_earned=points,
        time_ms=time_ms,
        timed_out=timed_out,
        is_last_question=is_last,
        total_score=session.score,
        correct_count=session.correct_count,
    )
