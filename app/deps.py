# app/deps.py
from fastapi import Header
from sqlalchemy.orm import sessionmaker

from app.config import settings
from app.db.base import SessionLocal
from app.services.chain_verifier import SolanaRpcVerifier
from app.services.operator_auth import verify_operator

# ----------------------------
# DB 세션
# ----------------------------
def get_db():
    db = SessionLocal()
    try:
        yield db
        db.commit()  # commit 포함
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


# ----------------------------
# 백그라운드 작업(outbox)용 세션 팩토리
# ----------------------------
def get_session_factory() -> sessionmaker:
    return SessionLocal


# ----------------------------
# 온체인 결제 검증기
# ----------------------------
_verifier = None

def get_chain_verifier() -> SolanaRpcVerifier:
    global _verifier
    if _verifier is None:
        _verifier = SolanaRpcVerifier(
            rpc_url=settings.solana_rpc_url,
            timeout=settings.solana_rpc_timeout,
            max_retries=settings.solana_rpc_max_retries,
            retry_delay=settings.solana_rpc_retry_delay,
        )
    return _verifier


# ----------------------------
# 운영자 인증 (finalize / payouts / outbox)
# ----------------------------
def require_operator(authorization: str | None = Header(None)) -> dict:
    return verify_operator(authorization)
