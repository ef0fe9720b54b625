# app/services/player_stats.py
# 프로필 집계 / 퀘스트 진행도. outbox 핸들러에서만 호출된다 (best-effort).
import logging
from datetime import date, timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.db.base import utcnow
from app.models.game_session import GameSession
from app.models.player_stats import PlayerStats, QuestProgress
from app.models.round import Round

logger = logging.getLogger(__name__)

# slug -> 완료 기준 progress
QUESTS = {
    "trivia_nerd": 1,      # 한 게임 10/10
    "daily_quizzer": 4,    # 같은 날 4게임
    "trivia_genius": 1,    # 같은 날 만점 4회
    "knowledge_bowl": 3,   # 라운드 3회 우승
}


def _get_or_create_stats(db: Session, wallet: str) -> PlayerStats:
    stats = db.get(PlayerStats, wallet)
    if stats is None:
        stats = PlayerStats(
            wallet_address=wallet,
            sessions_completed=0, best_score=0, total_correct=0,
            current_streak=0, longest_streak=0,
            rounds_played=0, lifetime_points=0, total_wins=0,
        )
        db.add(stats)
    return stats


def apply_finish(db: Session, wallet: str, score: int, correct: int, today: Optional[date] = None) -> PlayerStats:
    """세션 1회 종료 반영: 완료 수, 최고 점수, 연속 플레이 일수."""
    today = today or utcnow().date()
    stats = _get_or_create_stats(db, wallet)

    if stats.last_played_date == today:
        streak = stats.current_streak or 1
    elif stats.last_played_date == today - timedelta(days=1):
        streak = (stats.current_streak or 0) + 1
    else:
        streak = 1

    stats.sessions_completed = (stats.sessions_completed or 0) + 1
    stats.best_score = max(stats.best_score or 0, score)
    stats.total_correct = (stats.total_correct or 0) + correct
    stats.current_streak = streak
    stats.longest_streak = max(stats.longest_streak or 0, streak)
    stats.last_played_date = today
    stats.updated_at = utcnow()
    db.flush()
    return stats


def apply_round_result(db: Session, wallet: str, points: int, won: bool) -> PlayerStats:
    stats = _get_or_create_stats(db, wallet)
    stats.rounds_played = (stats.rounds_played or 0) + 1
    stats.lifetime_points = (stats.lifetime_points or 0) + points
    if won:
        stats.total_wins = (stats.total_wins or 0) + 1
    stats.updated_at = utcnow()
    db.flush()
    return stats


def bump(db: Session, wallet: str, quest_slug: str, delta: int = 1, absolute: Optional[int] = None) -> QuestProgress:
    """퀘스트 진행도 증가 (absolute 지정 시 그 값으로 맞춤). 완료 기준을 넘지 않는다."""
    if quest_slug not in QUESTS:
        raise KeyError(f"unknown quest {quest_slug!r}")
    target = QUESTS[quest_slug]

    row = db.get(QuestProgress, {"wallet_address": wallet, "quest_slug": quest_slug})
    if row is None:
        row = QuestProgress(wallet_address=wallet, quest_slug=quest_slug, progress=0)
        db.add(row)

    value = absolute if absolute is not None else (row.progress or 0) + delta
    row.progress = max(0, min(target, value))
    now = utcnow()
    if row.progress >= target and row.completed_at is None:
        row.completed_at = now
        logger.info("[QUEST] completed wallet=%s quest=%s", wallet, quest_slug)
    row.updated_at = now
    db.flush()
    return row


def evaluate_session_quests(db: Session, wallet: str, round_id: str, correct: int, total: int) -> None:
    rnd = db.get(Round, round_id)
    if rnd is None:
        return

    if total > 0 and correct >= total:
        bump(db, wallet, "trivia_nerd", absolute=1)

    finished_today = db.execute(
        select(GameSession.correct_count)
        .join(Round, Round.id == GameSession.round_id)
        .where(
            Round.date == rnd.date,
            GameSession.wallet_address == wallet,
            GameSession.finished_at.isnot(None),
        )
    ).scalars().all()

    bump(db, wallet, "daily_quizzer", absolute=len(finished_today))
    perfect = sum(1 for c in finished_today if total > 0 and c >= total)
    if perfect >= 4:
        bump(db, wallet, "trivia_genius", absolute=1)


def evaluate_win_quest(db: Session, wallet: str) -> None:
    stats = db.get(PlayerStats, wallet)
    wins = stats.total_wins if stats else 0
    bump(db, wallet, "knowledge_bowl", absolute=wins)

