from moods import Mood, Mode, FeedbackLabel, BRIDGE_MOODS, bridge_mood_for, parse_mood, parse_mode, parse_feedback


def test_every_mood_has_a_bridge():
    assert set(BRIDGE_MOODS) == set(Mood)
    assert len(Mood) == 6


def test_bridge_lookup():
    assert bridge_mood_for(Mood.POSITIVE_UPLIFTING) == Mood.ROMANTIC_SENSUAL
    assert bridge_mood_for(Mood.MELANCHOLIC_DARK) == Mood.CALM_REFLECTIVE
    assert bridge_mood_for(Mood.ENERGETIC_INTENSE) == Mood.UNCONVENTIONAL_PLAYFUL
    assert bridge_mood_for(None) is None


def test_parse_mood():
    assert parse_mood("Calm & Reflective") is Mood.CALM_REFLECTIVE
    assert parse_mood(Mood.CALM_REFLECTIVE) is Mood.CALM_REFLECTIVE
    assert parse_mood("Sleepy") is None
    assert parse_mood(None) is None
    assert parse_mood("") is None


def test_parse_mode_is_case_insensitive():
    assert parse_mode("Regulation") is Mode.REGULATION
    assert parse_mode("current") is Mode.CURRENT
    assert parse_mode("sideways") is None
    assert parse_mode(None) is None


def test_parse_feedback():
    assert parse_feedback("Very Negative") is FeedbackLabel.VERY_NEGATIVE
    assert parse_feedback("meh") is None
