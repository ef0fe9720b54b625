# app/services/rate_limit.py
# DB 기반 고정 윈도우 카운터. 프로세스 재시작/다중 인스턴스에서도 유지된다.
import calendar
import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from app.config import settings
from app.db.base import utcnow
from app.db.upsert import dialect_insert
from app.errors import RateLimitedError
from app.models.rate_limit import RateLimitBucket

logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1)


def _bucket_key(scope: str, subject: str, window_seconds: int, now: datetime) -> tuple:
    epoch = calendar.timegm(now.utctimetuple())
    window_start = epoch - (epoch % window_seconds)
    expires_at = _EPOCH + timedelta(seconds=window_start + window_seconds)
    return f"{scope}:{subject}:{window_start}", expires_at


def hit(
    db: Session,
    scope: str,
    subject: str,
    max_requests: int,
    window_seconds: Optional[int] = None,
    now: Optional[datetime] = None,
) -> bool:
    """카운터를 원자적으로 +1 하고 한도 이내인지 반환."""
    now = now or utcnow()
    window_seconds = window_seconds or settings.rate_limit_window_seconds
    key, expires_at = _bucket_key(scope, subject, window_seconds, now)

    stmt = dialect_insert(db, RateLimitBucket).values(bucket_key=key, hits=1, expires_at=expires_at)
    stmt = stmt.on_conflict_do_update(
        index_elements=["bucket_key"],
        set_={"hits": RateLimitBucket.hits + 1},
    )
    db.execute(stmt)
    hits = db.scalar(select(RateLimitBucket.hits).where(RateLimitBucket.bucket_key == key))
    return hits <= max_requests


def enforce(db: Session, scope: str, subject: str, max_requests: int, now: Optional[datetime] = None) -> None:
    if not hit(db, scope, subject, max_requests, now=now):
        logger.info("[RATE] limited scope=%s subject=%s", scope, subject)
        raise RateLimitedError(
            "Too many requests, slow down",
            retryAfterSeconds=settings.rate_limit_window_seconds,
        )


def purge_expired(db: Session, now: Optional[datetime] = None) -> int:
    now = now or utcnow()
    res = db.execute(
        delete(RateLimitBucket)
        .where(RateLimitBucket.expires_at < now - timedelta(seconds=settings.rate_limit_window_seconds))
        .execution_options(synchronize_session=False)
    )
    return res.rowcount or 0
