"""
Data model shared by the feedback, playlist and trend pipelines
"""
import logging
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import List, Dict, Any, Optional

from moods import Mode, FeedbackLabel, parse_mode, parse_feedback

logger = logging.getLogger(__name__)

KEY_SEPARATOR = "__"
# Image discriminator written by older clients when no cover was known
LEGACY_NO_IMAGE = "noimg"


def track_key(title: str, author: str) -> str:
    """Composite key used to correlate session feedback with catalog tracks

    Catalog ids are not stored in feedback records, so likes and dislikes are
    keyed by title and author. The same function must be used when feedback is
    written and when it is read back for scoring.
    """
    return f"{title or ''}{KEY_SEPARATOR}{author or ''}"


def normalize_track_key(raw_key: str) -> str:
    """Fold a legacy 'title__author__<image>' key onto 'title__author'"""
    if not raw_key:
        return ""
    parts = raw_key.split(KEY_SEPARATOR)
    if len(parts) >= 3:
        image = parts[-1]
        if image == LEGACY_NO_IMAGE or image.startswith(("http://", "https://")):
            return KEY_SEPARATOR.join(parts[:-1])
    return raw_key


def to_utc(value: Any) -> Optional[datetime]:
    """Coerce an epoch number, ISO string or datetime into an aware UTC datetime"""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    if isinstance(value, str):
        try:
            return to_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
        except ValueError:
            logger.warning("Unparseable timestamp: %r", value)
            return None
    logger.warning("Unsupported timestamp type %s: %r", type(value).__name__, value)
    return None


def _string_list(value: Any, field_name: str) -> List[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple, set)):
        return [str(v) for v in value if v]
    logger.warning("Expected a list for %s, got %s - ignoring", field_name, type(value).__name__)
    return []


class Provenance(str, Enum):
    CURRENT_POOL = "current"
    BRIDGE_POOL = "bridge"
    TARGET_POOL = "target"
    FAVORITE_ARTIST = "favoriteArtist"


@dataclass
class Track:
    id: str
    title: str
    author: str
    mood_category: Optional[str] = None
    genre: Optional[str] = None
    cover_url: Optional[str] = None
    canonical_url: Optional[str] = None
    external_id: Optional[str] = None
    provenance: Optional[Provenance] = None
    provenance_mood: Optional[str] = None
    score: float = 0.0

    @property
    def key(self) -> str:
        return track_key(self.title, self.author)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['provenance'] = self.provenance.value if self.provenance else None
        data['key'] = self.key
        return data


@dataclass(frozen=True)
class SessionRecord:
    """One finished listening session. Immutable once written."""

    user_id: str
    mood: Optional[str] = None
    mode: Optional[Mode] = None
    target_mood: Optional[str] = None
    feedback: Optional[FeedbackLabel] = None
    liked_track_keys: List[str] = field(default_factory=list)
    disliked_track_keys: List[str] = field(default_factory=list)
    created_at: Optional[datetime] = None
    id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any], session_id: Optional[str] = None) -> "SessionRecord":
        """Build a record from a loosely-typed document; bad fields become empty"""
        return cls(
            id=session_id or data.get('id'),
            user_id=data.get('userId') or data.get('user_id') or '',
            mood=data.get('mood') or None,
            mode=parse_mode(data.get('mode')),
            target_mood=data.get('targetMood') or data.get('target_mood') or None,
            feedback=parse_feedback(data.get('feedback')),
            liked_track_keys=_string_list(data.get('likedTracks', data.get('liked_track_keys')), 'likedTracks'),
            disliked_track_keys=_string_list(data.get('dislikedTracks', data.get('disliked_track_keys')), 'dislikedTracks'),
            created_at=to_utc(data.get('createdAt', data.get('created_at'))),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'userId': self.user_id,
            'mood': self.mood,
            'mode': self.mode.value if self.mode else None,
            'targetMood': self.target_mood,
            'feedback': self.feedback.value if self.feedback else None,
            'likedTracks': list(self.liked_track_keys),
            'dislikedTracks': list(self.disliked_track_keys),
            'createdAt': self.created_at.isoformat() if self.created_at else None,
        }


@dataclass
class UserProfile:
    name: str = ''
    favorite_artists: List[str] = field(default_factory=list)
    target_mood: Optional[str] = None
    target_mood_changed_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'favoriteArtists': list(self.favorite_artists),
            'targetMood': self.target_mood,
            'targetMoodChangedAt': self.target_mood_changed_at.isoformat() if self.target_mood_changed_at else None,
        }
