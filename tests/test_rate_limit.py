from datetime import timedelta

import pytest

from app.errors import RateLimitedError
from app.models.rate_limit import RateLimitBucket
from app.services import rate_limit
from conftest import NOW, wallet

W1 = wallet(1)


def test_allows_up_to_limit_in_window(db):
    results = [rate_limit.hit(db, "enter-round", W1, 10, window_seconds=60, now=NOW) for _ in range(11)]
    assert results == [True] * 10 + [False]


def test_counters_are_per_wallet_and_scope(db):
    for _ in range(3):
        rate_limit.hit(db, "enter-round", W1, 3, window_seconds=60, now=NOW)

    assert not rate_limit.hit(db, "enter-round", W1, 3, window_seconds=60, now=NOW)
    assert rate_limit.hit(db, "enter-round", wallet(2), 3, window_seconds=60, now=NOW)
    assert rate_limit.hit(db, "purchase-lives", W1, 3, window_seconds=60, now=NOW)


def test_next_window_resets(db):
    for _ in range(2):
        rate_limit.hit(db, "enter-round", W1, 2, window_seconds=60, now=NOW)

    assert not rate_limit.hit(db, "enter-round", W1, 2, window_seconds=60, now=NOW + timedelta(seconds=30))
    assert rate_limit.hit(db, "enter-round", W1, 2, window_seconds=60, now=NOW + timedelta(seconds=60))


def test_enforce_raises_429(db):
    rate_limit.enforce(db, "purchase-lives", W1, 1, now=NOW)

    with pytest.raises(RateLimitedError) as e:
        rate_limit.enforce(db, "purchase-lives", W1, 1, now=NOW)
    assert e.value.status_code == 429
    assert e.value.code == "RATE_LIMITED"


def test_purge_expired_buckets(db):
    rate_limit.hit(db, "enter-round", W1, 10, window_seconds=60, now=NOW)
    rate_limit.hit(db, "enter-round", wallet(2), 10, window_seconds=60, now=NOW + timedelta(minutes=10))
    db.commit()

    removed = rate_limit.purge_expired(db, now=NOW + timedelta(minutes=10))
    db.commit()

    assert removed == 1
    assert db.query(RateLimitBucket).count() == 1
