# app/routers/game.py
# 플레이 흐름: 입장 -> 문제 발급 -> 답안 제출 (반복)
from dataclasses import asdict

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from sqlalchemy.orm import Session, sessionmaker

from app.deps import get_chain_verifier, get_db, get_session_factory
from app.schemas.game import (
    AnswerResponse,
    EnterRoundRequest,
    EnterRoundResponse,
    IssueQuestionRequest,
    PracticeStartResponse,
    QuestionOut,
    QuestionResponse,
    SubmitAnswerRequest,
)
from app.services import answer_validator, entry_gate, outbox, practice, question_issuer

router = APIRouter(prefix="/api", tags=["game"])


@router.post("/enter-round", response_model=EnterRoundResponse)
def enter_round(
    body: EnterRoundRequest,
    db: Session = Depends(get_db),
    verifier=Depends(get_chain_verifier),
):
    """
    입장료 결제를 온체인으로 확인하고 세션을 만든다.
    - 같은 라운드에 미완료 세션이 있으면 그 세션을 재개 (resumed=true)
    - 라운드당 2회 무료, 이후는 라이프 1개 차감
    """
    result = entry_gate.enter_round(
        db,
        verifier,
        wallet=body.wallet_address,
        entry_tx_signature=body.entry_tx_signature,
        fee_tx_signature=body.fee_tx_signature,
    )
    return EnterRoundResponse(**asdict(result))


@router.post("/practice/start", response_model=PracticeStartResponse)
def start_practice(request: Request, db: Session = Depends(get_db)):
    """
    연습 세션 생성. 결제, 지갑, 입장 한도, 상금, 통계 모두 없음.
    이후 issue-question / submit-answer 를 그대로 사용한다.
    """
    client_key = request.client.host if request.client else "unknown"
    result = practice.start_practice(db, client_key)
    return PracticeStartResponse(**asdict(result))


@router.post("/issue-question", response_model=QuestionResponse)
def issue_question(body: IssueQuestionRequest, db: Session = Depends(get_db)):
    issued = question_issuer.issue_question(db, body.session_id)
    return QuestionResponse(
        question_index=issued.question_index,
        total_questions=issued.total_questions,
        question=QuestionOut(
            id=issued.question_id,
            category=issued.category,
            text=issued.text,
            options=issued.options,
            token=issued.token,
        ),
    )


@router.post("/submit-answer", response_model=AnswerResponse)
def submit_answer(
    body: SubmitAnswerRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    session_factory: sessionmaker = Depends(get_session_factory),
):
    result = answer_validator.submit_answer(
        db, body.session_id, body.token, body.selected_index, time_expired=body.time_expired
    )
    if result.is_last_question:
        # outbox 이벤트가 보이도록 먼저 커밋한 뒤 응답 이후에 처리
        db.commit()
        background_tasks.add_task(outbox.dispatch_pending, session_factory)
    return AnswerResponse(**asdict(result))
