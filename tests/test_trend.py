import pytest

from moods import Mode
from trend import (score_progress, select_attempts, exponential_moving_average, summarize_mood_history,
                   TREND_FEEDBACK_WEIGHTS)
from fakes import session, T0, days

CALM = "Calm & Reflective"
ROMANTIC = "Romantic & Sensual"
DARK = "Melancholic & Dark"


def regulation(feedback, created_at=T0, mood=DARK):
    return session(mood=mood, mode=Mode.REGULATION, target_mood=ROMANTIC, feedback=feedback, created_at=created_at)


def test_trend_weights_are_asymmetric():
    assert [TREND_FEEDBACK_WEIGHTS[k] for k in TREND_FEEDBACK_WEIGHTS] == [3, 2, 1, -2, -3]


def test_no_target_mood_returns_none():
    assert score_progress([regulation("Very Positive")], None) is None


def test_no_sessions_returns_none():
    assert score_progress([], CALM, None) is None


def test_no_matching_attempts_returns_none():
    sessions = [
        session(mood=DARK, mode=Mode.CURRENT, feedback="Positive"),
        regulation(None),
    ]
    assert score_progress(sessions, CALM, None) is None


def test_current_mode_counts_only_in_target_mood():
    sessions = [
        session(mood=CALM, mode=Mode.CURRENT, feedback="Positive"),
        session(mood=DARK, mode=Mode.CURRENT, feedback="Positive"),
    ]
    assert len(select_attempts(sessions, CALM)) == 1


def test_sessions_before_fence_are_ignored():
    fence = T0
    sessions = [
        regulation("Negative", created_at=fence + days(1)),
        regulation("Very Positive", created_at=fence - days(1)),
    ]
    attempts = select_attempts(sessions, ROMANTIC, fence)
    assert len(attempts) == 1
    assert attempts[0].created_at == fence + days(1)
    # ema=-2 -> normalized 17 -> 17 * 1/6 -> 3
    assert score_progress(sessions, ROMANTIC, fence) == 3


def test_session_exactly_at_fence_counts():
    assert len(select_attempts([regulation("Positive", created_at=T0)], ROMANTIC, T0)) == 1


def test_confidence_damping():
    one = score_progress([regulation("Very Positive")], ROMANTIC)
    six = score_progress([regulation("Very Positive") for _ in range(6)], ROMANTIC)
    assert one == 17
    assert six == 100
    assert one < six


def test_only_twelve_most_recent_attempts_are_used():
    newest = [regulation("Very Positive") for _ in range(12)]
    older = [regulation("Very Negative") for _ in range(10)]
    assert score_progress(newest + older, ROMANTIC) == 100


def test_ema_runs_in_array_order():
    assert exponential_moving_average([3, -3], alpha=2 / 3) == pytest.approx(-1.0)
    assert exponential_moving_average([5], alpha=1.0) == 5
    with pytest.raises(ValueError):
        exponential_moving_average([], alpha=0.5)


@pytest.mark.parametrize("labels", [
    ["Very Negative"] * 12,
    ["Very Positive"] * 12,
    ["Neutral", "Negative", "Very Positive"],
    ["Very Negative"],
])
def test_output_is_bounded(labels):
    result = score_progress([regulation(label) for label in labels], ROMANTIC)
    assert 0 <= result <= 100


def test_all_very_negative_is_zero():
    assert score_progress([regulation("Very Negative") for _ in range(8)], ROMANTIC) == 0


def test_naive_fence_is_treated_as_utc():
    fence = T0.replace(tzinfo=None)
    assert len(select_attempts([regulation("Positive", created_at=T0 + days(1))], ROMANTIC, fence)) == 1


def test_summarize_mood_history():
    sessions = [session(mood=CALM), session(mood=CALM), session(mood=DARK), session(mood=None)]
    summary = summarize_mood_history(sessions)
    assert summary['dominant_mood'] == CALM
    assert summary['mood_counts'] == {CALM: 2, DARK: 1}
    assert summary['session_count'] == 4
    assert summarize_mood_history([])['dominant_mood'] is None
