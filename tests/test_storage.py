from datetime import datetime, timezone

from models import SessionRecord, UserProfile
from moods import Mode, FeedbackLabel
from storage import CatalogStore, HistoryStore
from fakes import T0, days


def test_catalog_query_by_mood(db_path):
    catalog = CatalogStore(db_path)
    count = catalog.upsert_tracks([
        {'id': 't1', 'title': 'Song A', 'author': 'Artist X', 'mood_category': 'Calm & Reflective'},
        {'id': 't2', 'title': 'Song B', 'author': 'Artist Y', 'mood_category': 'Melancholic & Dark',
         'spotify_url': 'https://open.spotify.com/track/2'},
        {'id': 't3', 'title': '', 'author': 'Nobody', 'mood_category': 'Calm & Reflective'},
    ])
    assert count == 2

    calm = catalog.query_tracks_by_mood('Calm & Reflective')
    assert [t.id for t in calm] == ['t1']
    assert calm[0].key == 'Song A__Artist X'
    assert catalog.query_tracks_by_mood('Melancholic & Dark')[0].canonical_url.endswith('/2')
    assert catalog.query_tracks_by_mood('Romantic & Sensual') == []


def test_sessions_round_trip_newest_first(db_path):
    history = HistoryStore(db_path)
    for i in range(3):
        history.append_session(SessionRecord(
            user_id='u1',
            mood='Calm & Reflective',
            mode=Mode.REGULATION,
            target_mood='Romantic & Sensual',
            feedback=FeedbackLabel.POSITIVE,
            liked_track_keys=[f'Song {i}__A'],
            disliked_track_keys=[],
            created_at=T0 + days(i),
        ))
    history.append_session(SessionRecord(user_id='someone-else', created_at=T0))

    sessions = history.query_recent_sessions('u1')
    assert [s.liked_track_keys for s in sessions] == [['Song 2__A'], ['Song 1__A'], ['Song 0__A']]
    assert sessions[0].mode is Mode.REGULATION
    assert sessions[0].feedback is FeedbackLabel.POSITIVE
    assert sessions[0].created_at == T0 + days(2)

    assert len(history.query_recent_sessions('u1', since=T0 + days(1))) == 2
    assert len(history.query_recent_sessions('u1', limit=1)) == 1


def test_profile_save_and_target_mood_stamp(db_path):
    history = HistoryStore(db_path)
    assert history.get_profile('u1') is None

    history.save_profile('u1', UserProfile(name='Ola', favorite_artists=['Artist X', 'Artist Y']))
    stamp = datetime(2026, 6, 1, tzinfo=timezone.utc)
    history.update_target_mood('u1', 'Romantic & Sensual', now=stamp)

    profile = history.get_profile('u1')
    assert profile.name == 'Ola'
    assert profile.favorite_artists == ['Artist X', 'Artist Y']
    assert profile.target_mood == 'Romantic & Sensual'
    assert profile.target_mood_changed_at == stamp


def test_update_target_mood_creates_profile(db_path):
    history = HistoryStore(db_path)
    profile = history.update_target_mood('new-user', 'Calm & Reflective')
    assert profile.target_mood_changed_at is not None
    assert history.get_profile('new-user').target_mood == 'Calm & Reflective'
