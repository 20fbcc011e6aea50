"""
Feedback aggregation
Turns recent listening sessions into per-track like/dislike tallies and a
normalized per-mood sentiment score used to bias playlist ranking.
"""
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Iterable, Dict, Optional

from models import SessionRecord, normalize_track_key
from moods import Mode, FeedbackLabel

logger = logging.getLogger(__name__)

# Session feedback weights used for recommendation scoring
AGGREGATOR_FEEDBACK_WEIGHTS: Dict[FeedbackLabel, int] = {
    FeedbackLabel.VERY_POSITIVE: 2,
    FeedbackLabel.POSITIVE: 1,
    FeedbackLabel.NEUTRAL: 0,
    FeedbackLabel.NEGATIVE: -1,
    FeedbackLabel.VERY_NEGATIVE: -2,
}

# Share of a regulation session's feedback credited to its starting and target mood
REGULATION_START_SHARE = 0.4
REGULATION_TARGET_SHARE = 0.6


@dataclass
class TrackStats:
    likes: int = 0
    dislikes: int = 0


@dataclass
class FeedbackTally:
    track_stats: Dict[str, TrackStats] = field(default_factory=dict)
    raw_mood_scores: Dict[str, float] = field(default_factory=dict)
    mood_scores: Dict[str, float] = field(default_factory=dict)

    def stats_for(self, key: str) -> TrackStats:
        return self.track_stats.get(key) or TrackStats()

    def mood_sentiment(self, mood: Optional[str]) -> float:
        """Normalized sentiment in [-1, 1] for a mood; 0 when unknown"""
        if not mood:
            return 0.0
        return self.mood_scores.get(mood, 0.0)


class FeedbackAggregator:
    """Aggregates session history into a FeedbackTally

    The caller decides the history window. With split_regulation enabled
    (the scoring variant), a regulation session's feedback is credited 40% to
    the mood it started in and 60% to its target mood snapshot.
    """

    def __init__(self, split_regulation: bool = True):
        self.split_regulation = split_regulation

    def aggregate(self, sessions: Iterable[SessionRecord]) -> FeedbackTally:
        track_stats: Dict[str, TrackStats] = defaultdict(TrackStats)
        raw_scores: Dict[str, float] = defaultdict(float)
        session_count = 0

        for session in sessions:
            session_count += 1
            # A key present in both lists counts as a like and a dislike
            for key in session.liked_track_keys:
                track_stats[normalize_track_key(key)].likes += 1
            for key in session.disliked_track_keys:
                track_stats[normalize_track_key(key)].dislikes += 1

            if session.feedback is None or not session.mood:
                continue
            base_score = AGGREGATOR_FEEDBACK_WEIGHTS.get(session.feedback, 0)
            if base_score == 0:
                continue

            if self.split_regulation and session.mode == Mode.REGULATION and session.target_mood:
                raw_scores[session.mood] += base_score * REGULATION_START_SHARE
                raw_scores[session.target_mood] += base_score * REGULATION_TARGET_SHARE
            else:
                raw_scores[session.mood] += base_score

        tally = FeedbackTally(
            track_stats=dict(track_stats),
            raw_mood_scores=dict(raw_scores),
            mood_scores=normalize_mood_scores(raw_scores),
        )
        logger.info("Aggregated %d sessions: %d track keys, %d moods with sentiment",
                    session_count, len(tally.track_stats), len(tally.mood_scores))
        logger.debug("Raw mood feedback scores: %s", tally.raw_mood_scores)
        logger.debug("Normalized mood feedback scores: %s", tally.mood_scores)
        return tally


def normalize_mood_scores(raw_scores: Dict[str, float]) -> Dict[str, float]:
    """Scale raw mood scores by the largest magnitude so they land in [-1, 1]"""
    max_abs = max((abs(v) for v in raw_scores.values()), default=0) or 1
    return {mood: value / max_abs for mood, value in raw_scores.items()}
