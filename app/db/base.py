"""
공용 DB 베이스/세션 팩토리.
SessionLocal, engine, Base 정의는 app.db.session 한 곳에서 관리한다.
"""
import uuid
from datetime import datetime, timezone

from app.db.session import engine, SessionLocal, Base

__all__ = ["engine", "SessionLocal", "Base", "utcnow", "new_id"]


def utcnow() -> datetime:
    # DB에는 naive UTC로 저장 (postgres timestamp / sqlite 공통)
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid.uuid4())
