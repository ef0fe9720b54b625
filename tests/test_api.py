import pytest
from sqlalchemy import select

from app.config import settings
from app.models.player_stats import PlayerStats
from app.models.question import QuestionAnswerKey
from conftest import operator_headers, wallet

W1 = wallet(1)


def _correct_index(session_factory, question_id):
    with session_factory() as s:
        return s.scalar(select(QuestionAnswerKey.correct_index).where(QuestionAnswerKey.question_id == question_id))


def _enter(client, verifier, sig="entry-api-1", who=W1):
    verifier.pay_entry(sig, who)
    r = client.post("/api/enter-round", json={"walletAddress": who, "entryTxSignature": sig})
    assert r.status_code == 200, r.json()
    return r.json()


def test_health(client):
    assert client.get("/").json() == {"ok": True}


def test_cors_preflight(client):
    r = client.options(
        "/api/enter-round",
        headers={"Origin": "http://localhost:3000", "Access-Control-Request-Method": "POST"},
    )
    assert r.status_code == 200
    assert r.headers["access-control-allow-origin"] == "http://localhost:3000"


def test_validation_error_envelope(client):
    r = client.post("/api/submit-answer", json={"sessionId": "s", "token": "t", "selectedIndex": 7})
    assert r.status_code == 400
    assert r.json()["code"] == "VALIDATION_ERROR"

    r = client.post("/api/enter-round", json={})
    assert r.status_code == 400
    assert r.json()["code"] == "VALIDATION_ERROR"


def test_not_found_envelope(client):
    r = client.post("/api/issue-question", json={"sessionId": "missing"})
    assert r.status_code == 404
    assert r.json() == {"error": "Session not found", "code": "SESSION_NOT_FOUND"}


def test_invalid_address(client):
    r = client.post("/api/enter-round", json={"walletAddress": "nope", "entryTxSignature": "entry-x"})
    assert r.status_code == 400
    assert r.json()["code"] == "INVALID_ADDRESS"


def test_operator_endpoints_require_token(client):
    assert client.post("/api/finalize-round", json={}).status_code == 401
    r = client.post("/api/finalize-round", json={}, headers=operator_headers(role="player"))
    assert r.status_code == 401
    assert r.json()["code"] == "UNAUTHORIZED"
    r = client.post("/api/outbox/drain", headers={"Authorization": "Bearer garbage"})
    assert r.status_code == 401


def test_finalize_with_nothing_due(client):
    r = client.post("/api/finalize-round", json={}, headers=operator_headers())
    assert r.status_code == 200
    assert r.json() == {"status": "no-op", "roundId": None, "payouts": []}


def test_failed_verification_still_rate_limited(client, questions, monkeypatch):
    monkeypatch.setattr(settings, "rate_limit_window_seconds", 3600)
    for i in range(settings.entry_rate_limit):
        r = client.post("/api/enter-round", json={"walletAddress": W1, "entryTxSignature": f"unknown-{i}"})
        assert r.json()["code"] == "TX_NOT_FOUND"

    r = client.post("/api/enter-round", json={"walletAddress": W1, "entryTxSignature": "unknown-x"})
    assert r.status_code == 429
    assert r.json()["code"] == "RATE_LIMITED"


def test_full_game_round_trip(client, verifier, questions, session_factory):
    entry = _enter(client, verifier)
    assert entry["freeEntry"] is True
    assert entry["totalQuestions"] == 10
    session_id = entry["sessionId"]

    last = None
    for i in range(10):
        q = client.post("/api/issue-question", json={"sessionId": session_id}).json()
        assert q["questionIndex"] == i
        assert "correctIndex" not in q
        assert "correctIndex" not in q["question"]
        answer = _correct_index(session_factory, q["question"]["id"])
        r = client.post("/api/submit-answer", json={
            "sessionId": session_id, "token": q["question"]["token"], "selectedIndex": answer,
        })
        assert r.status_code == 200, r.json()
        last = r.json()
        assert last["correct"] is True

    assert last["isLastQuestion"] is True
    assert last["correctCount"] == 10

    r = client.post("/api/issue-question", json={"sessionId": session_id})
    assert r.status_code == 400
    assert r.json()["code"] == "GAME_FINISHED"

    # 응답 이후 outbox 처리 결과
    with session_factory() as s:
        stats = s.get(PlayerStats, W1)
        assert stats.sessions_completed == 1
        assert stats.best_score == last["totalScore"]

    current = client.get("/api/rounds/current").json()
    assert current["roundId"] == entry["roundId"]
    assert current["playerCount"] == 1
    assert current["potLamports"] == settings.entry_fee_lamports

    board = client.get(f"/api/rounds/{entry['roundId']}/leaderboard").json()
    assert [e["walletAddress"] for e in board["entries"]] == [W1]
    assert board["entries"][0]["rank"] == 1

    r = client.post("/api/finalize-round", json={"roundId": entry["roundId"]}, headers=operator_headers())
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "refunded"
    assert body["payouts"] == [{
        "walletAddress": W1,
        "amountLamports": settings.entry_fee_lamports,
        "kind": "refund",
        "rank": None,
        "percentageBps": None,
    }]

    claim = {"roundId": entry["roundId"], "walletAddress": W1, "signature": "settle-1"}
    first = client.post("/api/payouts/claimed", json=claim, headers=operator_headers()).json()
    assert first["status"] == "claimed"
    assert first["alreadyClaimed"] is False
    second = client.post("/api/payouts/claimed", json=claim, headers=operator_headers()).json()
    assert second["alreadyClaimed"] is True
    assert second["code"] == "PAYOUT_ALREADY_CLAIMED"

    again = client.post("/api/finalize-round", json={"roundId": entry["roundId"]}, headers=operator_headers())
    assert again.json()["status"] == "no-op"


def test_stale_token_rejected(client, verifier, questions):
    session_id = _enter(client, verifier)["sessionId"]
    first = client.post("/api/issue-question", json={"sessionId": session_id}).json()
    second = client.post("/api/issue-question", json={"sessionId": session_id}).json()

    r = client.post("/api/submit-answer", json={"sessionId": session_id, "token": first["question"]["token"], "selectedIndex": 0})
    assert r.status_code == 400
    assert r.json()["code"] == "INVALID_TOKEN"
    r = client.post("/api/submit-answer", json={"sessionId": session_id, "token": second["question"]["token"], "selectedIndex": 0})
    assert r.status_code == 200


def test_lives_purchase(client, verifier):
    r = client.get("/api/lives", params={"wallet": W1})
    assert r.json()["livesCount"] == 0

    verifier.pay_lives("lives-1", W1)
    r = client.post("/api/purchase-lives", json={"walletAddress": W1, "txSignature": "lives-1"})
    assert r.status_code == 200
    assert r.json() == {"walletAddress": W1, "livesCount": 3, "totalPurchased": 3, "totalUsed": 0}

    r = client.post("/api/purchase-lives", json={"walletAddress": W1, "txSignature": "lives-1"})
    assert r.status_code == 400
    assert r.json()["code"] == "TX_ALREADY_USED"
    assert client.get("/api/lives", params={"wallet": W1}).json()["livesCount"] == 3


def test_lives_purchase_wrong_amount(client, verifier):
    verifier.pay_lives("lives-cheap", W1, amount=1)
    r = client.post("/api/purchase-lives", json={"walletAddress": W1, "txSignature": "lives-cheap"})
    assert r.status_code == 400
    assert r.json()["code"] == "PAYMENT_MISMATCH"


def test_outbox_drain(client):
    r = client.post("/api/outbox/drain", headers=operator_headers())
    assert r.status_code == 200
    assert r.json() == {"dispatched": 0, "failed": 0, "purgedRateBuckets": 0}


@pytest.mark.parametrize("path", ["/api/rounds/current", "/api/rounds/missing/leaderboard"])
def test_missing_round(client, path):
    r = client.get(path)
    assert r.status_code == 404
    assert r.json()["code"] == "ROUND_NOT_FOUND"


def test_time_expired_submit_without_selection(client, verifier, questions):
    session_id = _enter(client, verifier)["sessionId"]
    q = client.post("/api/issue-question", json={"sessionId": session_id}).json()

    r = client.post("/api/submit-answer", json={
        "sessionId": session_id, "token": q["question"]["token"], "timeExpired": True,
    })
    assert r.status_code == 200, r.json()
    body = r.json()
    assert body["timedOut"] is True
    assert body["correctIndex"] == -1
    assert body["pointsEarned"] == 0

    nxt = client.post("/api/issue-question", json={"sessionId": session_id}).json()
    assert nxt["questionIndex"] == 1


def test_selection_required_without_time_expired(client):
    r = client.post("/api/submit-answer", json={"sessionId": "s", "token": "t"})
    assert r.status_code == 400
    assert r.json()["code"] == "VALIDATION_ERROR"


def test_practice_game_round_trip(client, questions, session_factory):
    r = client.post("/api/practice/start")
    assert r.status_code == 200, r.json()
    started = r.json()
    assert started["mode"] == "practice"
    assert started["totalQuestions"] == 10
    session_id = started["sessionId"]

    last = None
    for _ in range(10):
        q = client.post("/api/issue-question", json={"sessionId": session_id}).json()
        answer = _correct_index(session_factory, q["question"]["id"])
        last = client.post("/api/submit-answer", json={
            "sessionId": session_id, "token": q["question"]["token"], "selectedIndex": answer,
        }).json()

    assert last["isLastQuestion"] is True
    assert last["correctCount"] == 10

    # 연습 결과는 라운드/통계에 남지 않는다
    assert client.get("/api/rounds/current").status_code == 404
    with session_factory() as s:
        assert s.scalar(select(PlayerStats.wallet_address)) is None


def test_practice_start_is_rate_limited(client, questions, monkeypatch):
    monkeypatch.setattr(settings, "practice_rate_limit", 2)
    monkeypatch.setattr(settings, "rate_limit_window_seconds", 3600)
    for _ in range(2):
        assert client.post("/api/practice/start").status_code == 200

    r = client.post("/api/practice/start")
    assert r.status_code == 429
    assert r.json()["code"] == "RATE_LIMITED"
