# app/services/scoring.py
import math
from datetime import datetime, timedelta

from app.config import settings


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def elapsed_ms(issued_at: datetime, now: datetime) -> int:
    return (now - issued_at) // timedelta(milliseconds=1)


def is_timed_out(elapsed: int, max_answer_ms: int | None = None) -> bool:
    limit = settings.max_answer_time_ms if max_answer_ms is None else max_answer_ms
    return elapsed > limit


def calculate_points(
    correct: bool,
    elapsed: int,
    window_ms: int | None = None,
    base: int | None = None,
    bonus_cap: int | None = None,
) -> int:
    """
    정답 점수 = 기본점수 + 속도 보너스(선형 감소).
    - 즉시 정답: base + bonus_cap
    - window_ms 경과: base
    - 오답: 0
    """
    if not correct:
        return 0
    window_ms = settings.scoring_window_ms if window_ms is None else window_ms
    base = settings.base_points if base is None else base
    bonus_cap = settings.max_time_bonus if bonus_cap is None else bonus_cap

    bonus = max(0.0, bonus_cap * (1 - elapsed / window_ms))
    return round_half_up(base + bonus)
