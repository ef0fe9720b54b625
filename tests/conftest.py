import os

# 앱 import 전에 설정 (Settings()는 import 시점에 생성된다)
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ["OPERATOR_JWT_SECRET"] = "test-operator-secret"

from datetime import datetime, timedelta

import base58
import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import app.models.registry  # noqa: F401
from app.config import settings
from app.db.base import Base, new_id
from app.deps import get_chain_verifier, get_db, get_session_factory
from app.errors import UpstreamVerificationError
from app.main import app as fastapi_app
from app.models.game_session import GameSession
from app.models.question import Question, QuestionAnswerKey
from app.models.round import Round
from app.services.chain_verifier import TransactionProof
from app.services.round_store import slice_for

OPERATOR_SECRET = "test-operator-secret"

# 라운드 슬롯 2 (12:00~18:00) 안쪽 고정 시각
NOW = datetime(2026, 3, 10, 13, 0, 0)


def wallet(i: int) -> str:
    return base58.b58encode(bytes([i]) * 32).decode("ascii")


def operator_headers(role: str = "operator") -> dict:
    token = jwt.encode({"sub": "scheduler", "role": role}, OPERATOR_SECRET, algorithm="HS256")
    return {"Authorization": f"Bearer {token}"}


class FakeVerifier:
    """온체인 조회 대신 등록된 증빙만 돌려준다."""

    def __init__(self):
        self.proofs = {}
        self.calls = []

    def verify(self, signature):
        self.calls.append(signature)
        proof = self.proofs.get(signature)
        if proof is None:
            raise UpstreamVerificationError("Transaction not found on-chain", code="TX_NOT_FOUND")
        return proof

    def add(self, signature, payer, deltas, success=True):
        keys = [payer] + [k for k in deltas if k != payer]
        total = sum(deltas.values())
        self.proofs[signature] = TransactionProof(
            signature=signature,
            success=success,
            account_keys=keys,
            balance_deltas={payer: -total, **deltas},
        )
        return signature

    def pay_entry(self, signature, payer, prize=None, revenue=None):
        prize = settings.entry_fee_lamports if prize is None else prize
        revenue = settings.txn_fee_lamports if revenue is None else revenue
        return self.add(signature, payer, {
            settings.prize_pool_wallet: prize,
            settings.revenue_wallet: revenue,
        })

    def pay_lives(self, signature, payer, amount=None):
        amount = settings.lives_price_lamports if amount is None else amount
        return self.add(signature, payer, {settings.revenue_wallet: amount})


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def verifier():
    return FakeVerifier()


@pytest.fixture
def questions(db):
    ids = []
    for i in range(20):
        q = Question(
            id=new_id(),
            category="crypto" if i % 2 else "general",
            text=f"Question {i}?",
            options=["A", "B", "C", "D"],
            active=True,
        )
        db.add(q)
        db.add(QuestionAnswerKey(question_id=q.id, correct_index=i % 4))
        ids.append(q.id)
    db.commit()
    return ids


@pytest.fixture
def make_round(db, questions):
    def _make(now=NOW, status="active", pot=0, players=0, question_ids=None):
        day, number, starts_at, ends_at = slice_for(now)
        rnd = Round(
            date=day,
            round_number=number,
            starts_at=starts_at,
            ends_at=ends_at,
            question_ids=question_ids or questions[:10],
            question_ids_updated_at=now,
            pot_lamports=pot,
            player_count=players,
            status=status,
        )
        db.add(rnd)
        db.commit()
        return rnd
    return _make


@pytest.fixture
def make_session(db, questions):
    def _make(rnd, wallet_address, score=0, elapsed_ms=0, finished_at=None, question_order=None, created_at=None):
        session = GameSession(
            round_id=rnd.id,
            wallet_address=wallet_address,
            entry_tx_signature=new_id(),
            question_order=question_order or questions[:10],
            current_question_index=10 if finished_at else 0,
            score=score,
            correct_count=0,
            elapsed_ms=elapsed_ms,
            created_at=created_at or rnd.starts_at + timedelta(minutes=1),
            finished_at=finished_at,
        )
        db.add(session)
        db.commit()
        return session
    return _make


@pytest.fixture
def client(session_factory, verifier):
    def override_get_db():
        session = session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    fastapi_app.dependency_overrides[get_db] = override_get_db
    fastapi_app.dependency_overrides[get_session_factory] = lambda: session_factory
    fastapi_app.dependency_overrides[get_chain_verifier] = lambda: verifier
    with TestClient(fastapi_app) as c:
        yield c
    fastapi_app.dependency_overrides.clear()
