# app/services/session_state.py
# 세션 상태를 nullable 컬럼 조합이 아니라 명시적인 상태 값으로 다룬다.
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union

from app.models.game_session import GameSession


@dataclass(frozen=True)
class AwaitingEntry:
    """열린 세션이 없음. 입장 게이트를 통과해야 문제를 받을 수 있다."""


@dataclass(frozen=True)
class AwaitingNext:
    index: int


@dataclass(frozen=True)
class QuestionIssued:
    index: int
    token: str
    issued_at: datetime


@dataclass(frozen=True)
class Finished:
    finished_at: datetime
    index: int


SessionState = Union[AwaitingEntry, AwaitingNext, QuestionIssued, Finished]


def state_of(session: Optional[GameSession]) -> SessionState:
    if session is None:
        return AwaitingEntry()
    if session.finished_at is not None:
        return Finished(finished_at=session.finished_at, index=session.current_question_index)
    if session.current_question_token and session.current_question_issued_at is not None:
        return QuestionIssued(
            index=session.current_question_index,
            token=session.current_question_token,
            issued_at=session.current_question_issued_at,
        )
    return AwaitingNext(index=session.current_question_index)


def question_ids_for(session: GameSession, round_question_ids) -> list:
    # 세션별 추첨 목록이 우선, 없으면 라운드 기본 풀
    if isinstance(session.question_order, list) and session.question_order:
        return list(session.question_order)
    return list(round_question_ids or [])
