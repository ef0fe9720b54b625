# app/models/answer.py
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, UniqueConstraint
from app.db.base import Base, utcnow

class Answer(Base):
    __tablename__ = "answers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(String(36), ForeignKey("game_sessions.id"), nullable=False, index=True)
    question_index = Column(Integer, nullable=False)
    question_id = Column(String(36), nullable=False)

    selected_index = Column(Integer, nullable=True)
    is_correct = Column(Boolean, nullable=False)
    points_earned = Column(Integer, nullable=False, default=0)
    time_taken_ms = Column(Integer, nullable=False)
    timed_out = Column(Boolean, nullable=False, default=False)

    token = Column(String(64), nullable=False)
    issued_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("session_id", "question_index", name="uq_answers_session_question_index"),
    )
