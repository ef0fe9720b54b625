# app/models/round.py
from sqlalchemy import Column, String, Integer, BigInteger, Date, DateTime, JSON, UniqueConstraint, Index
from app.db.base import Base, utcnow, new_id

class Round(Base):
    __tablename__ = "rounds"

    id = Column(String(36), primary_key=True, default=new_id)
    date = Column(Date, nullable=False)
    round_number = Column(Integer, nullable=False)  # 0..3 (6시간 단위)
    starts_at = Column(DateTime, nullable=False)
    ends_at = Column(DateTime, nullable=False)

    question_ids = Column(JSON, nullable=False)
    question_ids_updated_at = Column(DateTime, nullable=False, default=utcnow)

    pot_lamports = Column(BigInteger, nullable=False, default=0)
    player_count = Column(Integer, nullable=False, default=0)
    status = Column(String(20), nullable=False, default="active")  # active|ended|refunded
    finalized_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("date", "round_number", name="uq_rounds_date_round_number"),
        Index("ix_rounds_status_ends_at", "status", "ends_at"),
    )
