# app/models/registry.py
# create_all / 테스트용: 모든 모델을 한 번에 import 해서 Base.metadata에 등록
from app.models.question import Question, QuestionAnswerKey
from app.models.round import Round
from app.models.game_session import GameSession
from app.models.answer import Answer
from app.models.payout import Payout
from app.models.lives import PlayerLives, LivesPurchase
from app.models.rate_limit import RateLimitBucket
from app.models.outbox import OutboxEvent
from app.models.player_stats import PlayerStats, QuestProgress

__all__ = [
    "Question", "QuestionAnswerKey", "Round", "GameSession", "Answer", "Payout",
    "PlayerLives", "LivesPurchase", "RateLimitBucket", "OutboxEvent",
    "PlayerStats", "QuestProgress",
]
