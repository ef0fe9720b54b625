# app/models/player_stats.py
from sqlalchemy import Column, Integer, BigInteger, String, Date, DateTime, PrimaryKeyConstraint
from app.db.base import Base, utcnow

class PlayerStats(Base):
    __tablename__ = "player_stats"

    wallet_address = Column(String(64), primary_key=True)

    # 세션 종료 시 갱신
    sessions_completed = Column(Integer, nullable=False, default=0)
    best_score = Column(Integer, nullable=False, default=0)
    total_correct = Column(Integer, nullable=False, default=0)
    current_streak = Column(Integer, nullable=False, default=0)
    longest_streak = Column(Integer, nullable=False, default=0)
    last_played_date = Column(Date, nullable=True)

    # 라운드 정산 시 갱신
    rounds_played = Column(Integer, nullable=False, default=0)
    lifetime_points = Column(BigInteger, nullable=False, default=0)
    total_wins = Column(Integer, nullable=False, default=0)

    updated_at = Column(DateTime, nullable=False, default=utcnow)


class QuestProgress(Base):
    __tablename__ = "user_quest_progress"

    wallet_address = Column(String(64), nullable=False)
    quest_slug = Column(String(50), nullable=False)
    progress = Column(Integer, nullable=False, default=0)
    completed_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        PrimaryKeyConstraint("wallet_address", "quest_slug", name="pk_user_quest_progress"),
    )
