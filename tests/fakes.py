"""In-memory stand-ins for the catalog and the Spotify lookups"""
from datetime import datetime, timedelta, timezone
from typing import List, Dict, Optional

from models import Track, SessionRecord, Provenance
from moods import Mode, FeedbackLabel


def make_tracks(mood: str, count: int, prefix: str = None) -> List[Track]:
    prefix = prefix or mood.split()[0].lower()
    return [
        Track(id=f"{prefix}-{i}", title=f"{prefix.title()} Song {i}", author=f"Artist {i}", mood_category=mood)
        for i in range(count)
    ]


class FakeCatalog:
    def __init__(self, tracks_by_mood: Dict[str, List[Track]] = None, fail_moods=()):
        self.tracks_by_mood = tracks_by_mood or {}
        self.fail_moods = set(fail_moods)
        self.queries = []

    def query_tracks_by_mood(self, mood: str) -> List[Track]:
        self.queries.append(mood)
        if mood in self.fail_moods:
            raise ConnectionError(f"catalog unavailable for {mood}")
        return list(self.tracks_by_mood.get(mood, []))


class FakeEnrichment:
    def __init__(self, covers: Dict[str, str] = None, artists: Dict[str, List[Track]] = None,
                 failing_artists=(), on_search=None):
        self.covers = covers or {}
        self.artists = artists or {}
        self.failing_artists = set(failing_artists)
        self.on_search = on_search
        self.track_searches = []
        self.artist_searches = []

    def search_track(self, title: str, author: str) -> Optional[Dict]:
        self.track_searches.append((title, author))
        if self.on_search:
            self.on_search(title, author)
        key = f"{title}__{author}"
        if key not in self.covers:
            return None
        return {'cover_url': self.covers[key], 'canonical_url': f"https://open.spotify.com/track/{key}",
                'external_id': f"sp-{key}"}

    def search_artist(self, name: str) -> Optional[str]:
        self.artist_searches.append(name)
        if name in self.failing_artists:
            raise ConnectionError(f"lookup failed for {name}")
        return f"artist-{name}" if name in self.artists else None

    def top_tracks(self, artist_id: str) -> List[Track]:
        name = artist_id[len("artist-"):]
        return [
            Track(id=t.id, title=t.title, author=t.author, external_id=t.id,
                  provenance=Provenance.FAVORITE_ARTIST)
            for t in self.artists.get(name, [])
        ]


T0 = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)


def session(mood=None, mode=Mode.CURRENT, feedback=None, liked=(), disliked=(), target_mood=None,
            created_at=None, user_id="user-1") -> SessionRecord:
    return SessionRecord(
        user_id=user_id,
        mood=mood,
        mode=mode,
        target_mood=target_mood,
        feedback=FeedbackLabel(feedback) if isinstance(feedback, str) else feedback,
        liked_track_keys=list(liked),
        disliked_track_keys=list(disliked),
        created_at=created_at or T0,
    )


def days(n: float) -> timedelta:
    return timedelta(days=n)
