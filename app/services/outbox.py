# app/services/outbox.py
# 본 트랜잭션과 함께 커밋되는 부수효과 큐.
# 응답 이후(BackgroundTasks) 또는 운영자 drain 으로 처리, 실패 시 독립적으로 재시도.
import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session, sessionmaker

from app.config import settings
from app.db.base import utcnow
from app.models.outbox import OutboxEvent
from app.services import player_stats

logger = logging.getLogger(__name__)

Handler = Callable[[Session, dict], None]


def _on_session_finished(db: Session, payload: dict) -> None:
    player_stats.apply_finish(db, payload["wallet"], payload["score"], payload["correct"])
    player_stats.evaluate_session_quests(
        db, payload["wallet"], payload["round_id"], payload["correct"], payload["total"]
    )


def _on_round_result(db: Session, payload: dict) -> None:
    won = payload.get("rank") == 1
    player_stats.apply_round_result(db, payload["wallet"], payload["score"], won)
    if won:
        player_stats.evaluate_win_quest(db, payload["wallet"])


HANDLERS: Dict[str, Handler] = {
    "session_finished": _on_session_finished,
    "round_result": _on_round_result,
}


def enqueue(db: Session, kind: str, payload: dict, now: Optional[datetime] = None) -> OutboxEvent:
    if kind not in HANDLERS:
        raise KeyError(f"unknown outbox event kind {kind!r}")
    now = now or utcnow()
    event = OutboxEvent(kind=kind, payload=payload, status="pending", attempts=0, available_at=now, created_at=now)
    db.add(event)
    return event


def _run_one(session_factory: sessionmaker, event_id: int, now: datetime) -> bool:
    with session_factory() as db:
        event = db.get(OutboxEvent, event_id)
        if event is None or event.status != "pending":
            return False
        attempts = event.attempts or 0
        # 다른 dispatcher와의 중복 실행 방지 (attempts 값 기준 CAS)
        claimed = db.execute(
            update(OutboxEvent)
            .where(
                OutboxEvent.id == event_id,
                OutboxEvent.status == "pending",
                OutboxEvent.attempts == attempts,
            )
            .values(attempts=attempts + 1)
            .execution_options(synchronize_session=False)
        ).rowcount
        if claimed != 1:
            return False

        handler = HANDLERS.get(event.kind)
        try:
            if handler is None:
                raise KeyError(f"no handler for {event.kind!r}")
            handler(db, dict(event.payload or {}))
            event.status = "done"
            event.dispatched_at = now
            event.last_error = None
            db.commit()
            return True
        except Exception as e:
            # 부수효과 실패는 본 응답에 영향 없음: 기록 후 재시도 예약
            db.rollback()
            logger.exception("[OUTBOX] handler failed id=%s kind=%s", event_id, event.kind)
            event = db.get(OutboxEvent, event_id)
            event.attempts = attempts + 1
            event.last_error = repr(e)[:1000]
            if event.attempts >= settings.outbox_max_attempts:
                event.status = "failed"
            else:
                event.available_at = now + timedelta(seconds=settings.outbox_retry_seconds * event.attempts)
            db.commit()
            return False


def dispatch_pending(session_factory: sessionmaker, limit: Optional[int] = None, now: Optional[datetime] = None) -> Dict[str, int]:
    """처리 가능한 pending 이벤트를 한 건씩 독립 트랜잭션으로 실행."""
    now = now or utcnow()
    limit = limit or settings.outbox_batch_size

    with session_factory() as db:
        ids = list(db.scalars(
            select(OutboxEvent.id)
            .where(OutboxEvent.status == "pending", OutboxEvent.available_at <= now)
            .order_by(OutboxEvent.id)
            .limit(limit)
        ))

    done = failed = 0
    for event_id in ids:
        if _run_one(session_factory, event_id, now):
            done += 1
        else:
            failed += 1
    if ids:
        logger.info("[OUTBOX] dispatched=%d failed=%d", done, failed)
    return {"dispatched": done, "failed": failed}
