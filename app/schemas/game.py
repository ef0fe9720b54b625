from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    # JSON은 camelCase, 파이썬 쪽은 snake_case
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# -- Request --

class EnterRoundRequest(CamelModel):
    wallet_address: str = Field(..., min_length=1, description="플레이어 지갑 주소")
    entry_tx_signature: str = Field(..., min_length=1, description="입장료 트랜잭션 서명")
    fee_tx_signature: Optional[str] = Field(None, description="수수료를 별도 트랜잭션으로 보낸 경우")


class IssueQuestionRequest(CamelModel):
    session_id: str = Field(..., min_length=1)


class SubmitAnswerRequest(CamelModel):
    session_id: str = Field(..., min_length=1)
    token: str = Field(..., min_length=1)
    selected_index: Optional[int] = Field(None, ge=0, le=3)
    time_expired: bool = Field(False, description="클라이언트 타이머 만료 시 선택 없이 제출")

    @model_validator(mode="after")
    def _selection_required(self):
        if not self.time_expired and self.selected_index is None:
            raise ValueError("selectedIndex is required unless timeExpired is true")
        return self


class FinalizeRoundRequest(CamelModel):
    round_id: Optional[str] = None


class PurchaseLivesRequest(CamelModel):
    wallet_address: str = Field(..., min_length=1)
    tx_signature: str = Field(..., min_length=1)


class PayoutClaimedRequest(CamelModel):
    round_id: str = Field(..., min_length=1)
    wallet_address: str = Field(..., min_length=1)
    rank: Optional[int] = Field(None, ge=1)
    signature: str = Field(..., min_length=1, description="정산 트랜잭션 서명")


# -- Response --

class EnterRoundResponse(CamelModel):
    session_id: str
    round_id: str
    total_questions: int
    resumed: bool
    free_entry: bool
    life_used: bool
    free_entries_remaining: int
    lives_remaining: Optional[int] = None


class PracticeStartResponse(CamelModel):
    session_id: str
    total_questions: int
    mode: str = "practice"


# 정답 인덱스는 포함하지 않는다
class QuestionOut(CamelModel):
    id: str
    category: str
    text: str
    options: List[str]
    token: str


class QuestionResponse(CamelModel):
    question_index: int
    total_questions: int
    question: QuestionOut


class AnswerResponse(CamelModel):
    correct: bool
    correct_index: int
    points_earned: int
    time_ms: int
    timed_out: bool
    is_last_question: bool
    total_score: int
    correct_count: int


class PayoutOut(CamelModel):
    wallet_address: str
    amount_lamports: int
    kind: str
    rank: Optional[int] = None
    percentage_bps: Optional[int] = None


class FinalizeRoundResponse(CamelModel):
    status: str
    round_id: Optional[str] = None
    payouts: List[PayoutOut] = []


class RoundSummary(CamelModel):
    round_id: str
    date: str
    round_number: int
    starts_at: datetime
    ends_at: datetime
    status: str
    pot_lamports: int
    player_count: int


class LeaderboardEntry(CamelModel):
    rank: int
    wallet_address: str
    score: int
    elapsed_ms: int
    finished_at: Optional[datetime] = None


class LeaderboardResponse(CamelModel):
    round_id: str
    entries: List[LeaderboardEntry]


class LivesResponse(CamelModel):
    wallet_address: str
    lives_count: int
    total_purchased: int
    total_used: int


class PayoutClaimedResponse(CamelModel):
    payout_id: int
    status: str
    already_claimed: bool
    code: Optional[str] = None
    settlement_signature: Optional[str] = None


class OutboxDrainResponse(CamelModel):
    dispatched: int
    failed: int
    purged_rate_buckets: int = 0
