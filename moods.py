"""
Mood vocabulary for Moodfade
Closed set of mood labels, listening modes and feedback labels, plus the
static bridge-mood table used when regulating from one mood toward another.
"""
import logging
from enum import Enum
from typing import Dict, Optional

logger = logging.getLogger(__name__)


class Mood(str, Enum):
    POSITIVE_UPLIFTING = "Positive & Uplifting"
    ROMANTIC_SENSUAL = "Romantic & Sensual"
    ENERGETIC_INTENSE = "Energetic & Intense"
    CALM_REFLECTIVE = "Calm & Reflective"
    MELANCHOLIC_DARK = "Melancholic & Dark"
    UNCONVENTIONAL_PLAYFUL = "Unconventional & Playful"


class Mode(str, Enum):
    CURRENT = "current"
    REGULATION = "regulation"


class FeedbackLabel(str, Enum):
    VERY_POSITIVE = "Very Positive"
    POSITIVE = "Positive"
    NEUTRAL = "Neutral"
    NEGATIVE = "Negative"
    VERY_NEGATIVE = "Very Negative"


# Intermediate mood played between current and target in regulation mode
BRIDGE_MOODS: Dict[Mood, Mood] = {
    Mood.POSITIVE_UPLIFTING: Mood.ROMANTIC_SENSUAL,
    Mood.ROMANTIC_SENSUAL: Mood.CALM_REFLECTIVE,
    Mood.ENERGETIC_INTENSE: Mood.UNCONVENTIONAL_PLAYFUL,
    Mood.CALM_REFLECTIVE: Mood.ROMANTIC_SENSUAL,
    Mood.MELANCHOLIC_DARK: Mood.CALM_REFLECTIVE,
    Mood.UNCONVENTIONAL_PLAYFUL: Mood.ENERGETIC_INTENSE,
}

_missing_bridges = set(Mood) - set(BRIDGE_MOODS)
if _missing_bridges:
    raise RuntimeError(f"Bridge mood table is missing entries for: {sorted(m.value for m in _missing_bridges)}")


def bridge_mood_for(mood: Optional[Mood]) -> Optional[Mood]:
    """Return the bridge mood for a current mood (None when there is no mood)"""
    if mood is None:
        return None
    return BRIDGE_MOODS.get(mood)


def parse_mood(value: Optional[str]) -> Optional[Mood]:
    """Parse a mood label, returning None for empty or unknown values"""
    if value is None or value == "":
        return None
    if isinstance(value, Mood):
        return value
    try:
        return Mood(value)
    except ValueError:
        logger.warning("Unknown mood label: %r", value)
        return None


def parse_mode(value: Optional[str]) -> Optional[Mode]:
    """Parse a listening mode ('current' / 'regulation'), case-insensitive"""
    if value is None or value == "":
        return None
    if isinstance(value, Mode):
        return value
    try:
        return Mode(str(value).lower())
    except ValueError:
        logger.warning("Unknown listening mode: %r", value)
        return None


def parse_feedback(value: Optional[str]) -> Optional[FeedbackLabel]:
    """Parse a session feedback label such as 'Very Positive'"""
    if value is None or value == "":
        return None
    if isinstance(value, FeedbackLabel):
        return value
    try:
        return FeedbackLabel(value)
    except ValueError:
        logger.warning("Unknown feedback label: %r", value)
        return None
