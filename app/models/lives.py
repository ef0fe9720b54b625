# app/models/lives.py
from sqlalchemy import Column, Integer, String, BigInteger, DateTime, CheckConstraint
from app.db.base import Base, utcnow

class PlayerLives(Base):
    __tablename__ = "player_lives"

    wallet_address = Column(String(64), primary_key=True)
    lives_count = Column(Integer, nullable=False, default=0)
    total_purchased = Column(Integer, nullable=False, default=0)
    total_used = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint("lives_count >= 0", name="ck_player_lives_non_negative"),
    )


class LivesPurchase(Base):
    __tablename__ = "lives_purchases"

    id = Column(Integer, primary_key=True, autoincrement=True)
    wallet_address = Column(String(64), nullable=False, index=True)
    lives_purchased = Column(Integer, nullable=False)
    amount_lamports = Column(BigInteger, nullable=False)
    tx_signature = Column(String(128), nullable=False, unique=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
