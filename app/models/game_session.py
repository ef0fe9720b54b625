# app/models/game_session.py
from sqlalchemy import Column, String, Integer, BigInteger, Boolean, DateTime, JSON, ForeignKey, Index
from app.db.base import Base, utcnow, new_id

class GameSession(Base):
    __tablename__ = "game_sessions"

    id = Column(String(36), primary_key=True, default=new_id)
    # 연습 세션은 라운드/지갑/결제 없음
    round_id = Column(String(36), ForeignKey("rounds.id"), nullable=True, index=True)
    wallet_address = Column(String(64), nullable=True, index=True)
    is_practice = Column(Boolean, nullable=False, default=False)

    entry_tx_signature = Column(String(128), nullable=True, unique=True)
    fee_tx_signature = Column(String(128), nullable=True, unique=True)
    life_used = Column(Boolean, nullable=False, default=False)

    question_order = Column(JSON, nullable=False)  # 세션별 10문제
    current_question_index = Column(Integer, nullable=False, default=0)
    current_question_token = Column(String(64), nullable=True)
    current_question_issued_at = Column(DateTime, nullable=True)

    score = Column(Integer, nullable=False, default=0)
    correct_count = Column(Integer, nullable=False, default=0)
    elapsed_ms = Column(BigInteger, nullable=False, default=0)
    rank = Column(Integer, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    finished_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_game_sessions_round_wallet", "round_id", "wallet_address"),
        Index("ix_game_sessions_wallet_created_at", "wallet_address", "created_at"),
    )
