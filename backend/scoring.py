"""Latency-based scoring for correct answers."""
import math

import config


def compute_points(correct: bool, elapsed_ms: float) -> int:
    """Points for one answer.

    Wrong answers earn nothing. Correct answers earn MAX_POINTS when instant,
    falling linearly to 0 at ANSWER_TIME_CAP_MS and staying there.
    Halves round up.
    """
    if not correct:
        return 0
    cap = config.ANSWER_TIME_CAP_MS
    elapsed = min(max(elapsed_ms, 0), cap)
    return int(math.floor(config.MAX_POINTS * (cap - elapsed) / cap + 0.5))
