"""
Progress toward the target mood

Converts the sparse history of mood-regulation attempts into a 0-100 score:
an exponential moving average of feedback weights, rescaled and damped by a
confidence factor so that a handful of sessions cannot claim full progress.
"""
import logging
import math
from collections import Counter
from datetime import datetime
from typing import List, Dict, Any, Optional, Sequence

from models import SessionRecord, to_utc
from moods import Mode, FeedbackLabel

logger = logging.getLogger(__name__)

# Attempt feedback weights (a different scale from AGGREGATOR_FEEDBACK_WEIGHTS)
TREND_FEEDBACK_WEIGHTS: Dict[FeedbackLabel, int] = {
    FeedbackLabel.VERY_POSITIVE: 3,
    FeedbackLabel.POSITIVE: 2,
    FeedbackLabel.NEUTRAL: 1,
    FeedbackLabel.NEGATIVE: -2,
    FeedbackLabel.VERY_NEGATIVE: -3,
}
TREND_WEIGHT_BOUND = 3

MAX_TREND_ATTEMPTS = 12
FULL_CONFIDENCE_ATTEMPTS = 6


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def is_attempt(session: SessionRecord, target_mood: str,
               target_mood_changed_at: Optional[datetime] = None) -> bool:
    """True if the session counts as evidence for the current target mood

    Regulation sessions count regardless of starting mood; current-mode
    sessions count only when they were spent in the target mood. Sessions
    before the target was last changed are ignored.
    """
    if session.feedback is None:
        return False
    if target_mood_changed_at is not None:
        created_at = to_utc(session.created_at)
        if created_at is None or created_at < to_utc(target_mood_changed_at):
            return False
    if session.mode == Mode.REGULATION:
        return True
    if session.mode == Mode.CURRENT:
        return session.mood == target_mood
    return False


def select_attempts(sessions: Sequence[SessionRecord], target_mood: str,
                    target_mood_changed_at: Any = None) -> List[SessionRecord]:
    fence = to_utc(target_mood_changed_at)
    return [s for s in sessions if is_attempt(s, target_mood, fence)]


def exponential_moving_average(values: Sequence[float], alpha: float) -> float:
    """EMA over values in the given order, seeded with the first value"""
    if not values:
        raise ValueError("EMA needs at least one value")
    ema = float(values[0])
    for value in values[1:]:
        ema = alpha * value + (1 - alpha) * ema
    return ema


def score_progress(sessions: Sequence[SessionRecord], target_mood: Optional[str],
                   target_mood_changed_at: Any = None) -> Optional[int]:
    """Confidence-weighted progress toward the target mood, 0-100

    Sessions must be ordered newest-first. Returns None when no target mood is
    set or when there are no attempts since the target was chosen.
    """
    if not target_mood:
        return None

    attempts = select_attempts(sessions, target_mood, target_mood_changed_at)
    if not attempts:
        logger.info("No attempts toward '%s' yet - progress unavailable", target_mood)
        return None

    recent = attempts[:MAX_TREND_ATTEMPTS]
    weights = [TREND_FEEDBACK_WEIGHTS[s.feedback] for s in recent]
    alpha = 2 / (len(weights) + 1)
    ema = exponential_moving_average(weights, alpha)

    normalized = _round_half_up((ema + TREND_WEIGHT_BOUND) / (2 * TREND_WEIGHT_BOUND) * 100)
    confidence = min(1.0, len(recent) / FULL_CONFIDENCE_ATTEMPTS)
    final = max(0, min(100, _round_half_up(normalized * confidence)))

    logger.info("Progress toward '%s': %d attempts, ema=%.2f, normalized=%d, confidence=%.2f -> %d",
                target_mood, len(recent), ema, normalized, confidence, final)
    return final


def summarize_mood_history(sessions: Sequence[SessionRecord]) -> Dict[str, Any]:
    """Per-mood session counts and the most frequent (dominant) mood"""
    counts = Counter(s.mood for s in sessions if s.mood)
    dominant = counts.most_common(1)[0][0] if counts else None
    return {
        'session_count': len(sessions),
        'mood_counts': dict(counts),
        'dominant_mood': dominant,
    }
