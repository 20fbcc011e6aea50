import pytest

from feedback import FeedbackAggregator, FeedbackTally, AGGREGATOR_FEEDBACK_WEIGHTS, normalize_mood_scores
from moods import Mode, FeedbackLabel
from fakes import session

CALM = "Calm & Reflective"
ROMANTIC = "Romantic & Sensual"
DARK = "Melancholic & Dark"


def test_aggregator_weights():
    assert AGGREGATOR_FEEDBACK_WEIGHTS == {
        FeedbackLabel.VERY_POSITIVE: 2,
        FeedbackLabel.POSITIVE: 1,
        FeedbackLabel.NEUTRAL: 0,
        FeedbackLabel.NEGATIVE: -1,
        FeedbackLabel.VERY_NEGATIVE: -2,
    }


def test_empty_history_gives_empty_tally():
    tally = FeedbackAggregator().aggregate([])
    assert tally.track_stats == {}
    assert tally.mood_scores == {}
    assert tally.mood_sentiment(CALM) == 0.0
    assert tally.stats_for("x__y").likes == 0


def test_two_dislikes_across_sessions():
    tally = FeedbackAggregator().aggregate([
        session(disliked=["Song A__Artist X"]),
        session(disliked=["Song A__Artist X"]),
    ])
    assert tally.stats_for("Song A__Artist X").dislikes == 2


def test_like_and_dislike_in_same_session_both_count():
    tally = FeedbackAggregator().aggregate([
        session(liked=["Song A__Artist X"], disliked=["Song A__Artist X"]),
    ])
    stats = tally.stats_for("Song A__Artist X")
    assert (stats.likes, stats.dislikes) == (1, 1)


def test_legacy_keys_with_image_are_folded():
    tally = FeedbackAggregator().aggregate([
        session(liked=["Song A__Artist X__noimg"]),
        session(liked=["Song A__Artist X__https://i.scdn.co/image/1"]),
        session(liked=["Song A__Artist X"]),
    ])
    assert tally.stats_for("Song A__Artist X").likes == 3


def test_regulation_feedback_is_split_between_moods():
    tally = FeedbackAggregator().aggregate([
        session(mood=DARK, mode=Mode.REGULATION, target_mood=CALM, feedback="Very Positive"),
    ])
    assert tally.raw_mood_scores[DARK] == pytest.approx(0.8)
    assert tally.raw_mood_scores[CALM] == pytest.approx(1.2)
    assert tally.mood_sentiment(CALM) == pytest.approx(1.0)
    assert tally.mood_sentiment(DARK) == pytest.approx(0.8 / 1.2)


def test_unsplit_variant_credits_own_mood():
    tally = FeedbackAggregator(split_regulation=False).aggregate([
        session(mood=DARK, mode=Mode.REGULATION, target_mood=CALM, feedback="Very Positive"),
    ])
    assert tally.raw_mood_scores == {DARK: 2}


def test_regulation_without_target_snapshot_credits_own_mood():
    tally = FeedbackAggregator().aggregate([
        session(mood=DARK, mode=Mode.REGULATION, target_mood=None, feedback="Negative"),
    ])
    assert tally.raw_mood_scores == {DARK: -1}
    assert tally.mood_sentiment(DARK) == -1.0


def test_sessions_without_feedback_or_mood_only_count_tracks():
    tally = FeedbackAggregator().aggregate([
        session(mood=None, feedback="Positive", liked=["a__b"]),
        session(mood=CALM, feedback=None),
        session(mood=CALM, feedback="Neutral"),
    ])
    assert tally.raw_mood_scores == {}
    assert tally.stats_for("a__b").likes == 1


def test_normalization_keeps_scores_within_unit_range():
    tally = FeedbackAggregator().aggregate([
        session(mood=CALM, feedback="Very Positive"),
        session(mood=CALM, feedback="Very Positive"),
        session(mood=ROMANTIC, feedback="Negative"),
    ])
    assert tally.mood_sentiment(CALM) == 1.0
    assert tally.mood_sentiment(ROMANTIC) == pytest.approx(-0.25)
    assert all(-1.0 <= v <= 1.0 for v in tally.mood_scores.values())


def test_normalize_all_zero():
    assert normalize_mood_scores({CALM: 0.0}) == {CALM: 0.0}


def test_tally_mood_sentiment_for_missing_mood():
    assert FeedbackTally().mood_sentiment(None) == 0.0
