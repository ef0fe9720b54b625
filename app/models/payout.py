# app/models/payout.py
from sqlalchemy import Column, Integer, String, BigInteger, DateTime, ForeignKey, Index
from app.db.base import Base, utcnow

class Payout(Base):
    __tablename__ = "payouts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    round_id = Column(String(36), ForeignKey("rounds.id"), nullable=False, index=True)
    kind = Column(String(20), nullable=False, default="prize")  # prize|refund
    wallet_address = Column(String(64), nullable=False)
    rank = Column(Integer, nullable=True)  # refund은 NULL
    amount_lamports = Column(BigInteger, nullable=False)
    percentage_bps = Column(Integer, nullable=True)

    status = Column(String(20), nullable=False, default="pending")  # pending|claimed
    settlement_signature = Column(String(128), nullable=True)
    claimed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_payouts_round_wallet", "round_id", "wallet_address"),
    )
