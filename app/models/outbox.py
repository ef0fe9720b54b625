# app/models/outbox.py
from sqlalchemy import Column, Integer, String, Text, DateTime, JSON, Index
from app.db.base import Base, utcnow

class OutboxEvent(Base):
    __tablename__ = "outbox_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    kind = Column(String(50), nullable=False)  # session_finished|round_result
    payload = Column(JSON, nullable=False)
    status = Column(String(20), nullable=False, default="pending")  # pending|done|failed
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    available_at = Column(DateTime, nullable=False, default=utcnow)
    dispatched_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_outbox_events_status_available_at", "status", "available_at"),
    )
