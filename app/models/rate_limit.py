# app/models/rate_limit.py
from sqlalchemy import Column, Integer, String, DateTime
from app.db.base import Base

class RateLimitBucket(Base):
    __tablename__ = "rate_limit_buckets"

    # "{scope}:{wallet}:{window_start_epoch}"
    bucket_key = Column(String(160), primary_key=True)
    hits = Column(Integer, nullable=False, default=0)
    expires_at = Column(DateTime, nullable=False, index=True)
