"""
SQLite persistence for the mood catalog, listening sessions and user profiles

Each operation opens its own connection, so the stores are safe to share
between the request threads and the background build jobs.
"""
import json
import logging
import sqlite3
import time
import uuid
from datetime import datetime
from typing import List, Dict, Any, Optional, Iterable

from models import Track, SessionRecord, UserProfile, to_utc

logger = logging.getLogger(__name__)


def _epoch(value: Optional[datetime]) -> Optional[float]:
    value = to_utc(value)
    return value.timestamp() if value else None


def _json_list(text: Optional[str]) -> List[str]:
    if not text:
        return []
    try:
        value = json.loads(text)
    except ValueError:
        logger.warning("Corrupt JSON list in database: %r", text[:80])
        return []
    return value if isinstance(value, list) else []


class CatalogStore:
    """Mood-tagged track catalog"""

    def __init__(self, db_path: str = 'moodfade.db'):
        self.db_path = db_path
        self.init_db()

    def init_db(self):
        conn = sqlite3.connect(self.db_path)
        c = conn.cursor()
        c.execute('''
            CREATE TABLE IF NOT EXISTS tracks (
                id TEXT PRIMARY KEY,
                title TEXT NOT NULL,
                author TEXT NOT NULL,
                genre TEXT,
                mood_category TEXT,
                spotify_url TEXT
            )
        ''')
        c.execute('CREATE INDEX IF NOT EXISTS idx_tracks_mood ON tracks (mood_category)')
        conn.commit()
        conn.close()

    def query_tracks_by_mood(self, mood: str) -> List[Track]:
        conn = sqlite3.connect(self.db_path)
        c = conn.cursor()
        c.execute('''
            SELECT id, title, author, genre, mood_category, spotify_url
            FROM tracks WHERE mood_category = ?
        ''', (mood,))
        rows = c.fetchall()
        conn.close()

        return [
            Track(id=row[0], title=row[1], author=row[2], genre=row[3],
                  mood_category=row[4], canonical_url=row[5])
            for row in rows
        ]

    def upsert_tracks(self, rows: Iterable[Dict[str, Any]]) -> int:
        """Insert or replace catalog rows; rows without title/author are skipped"""
        conn = sqlite3.connect(self.db_path)
        c = conn.cursor()
        count = 0
        for row in rows:
            if not row.get('title') or not row.get('author'):
                logger.warning("Skipping catalog row without title/author: %s", row)
                continue
            c.execute('''
                INSERT OR REPLACE INTO tracks (id, title, author, genre, mood_category, spotify_url)
                VALUES (?, ?, ?, ?, ?, ?)
            ''', (str(row.get('id') or uuid.uuid4().hex), row['title'], row['author'],
                  row.get('genre'), row.get('mood_category'), row.get('spotify_url')))
            count += 1
        conn.commit()
        conn.close()
        logger.info("Upserted %d catalog tracks", count)
        return count


class HistoryStore:
    """Append-only session history plus the mutable user profile"""

    def __init__(self, db_path: str = 'moodfade.db'):
        self.db_path = db_path
        self.init_db()

    def init_db(self):
        conn = sqlite3.connect(self.db_path)
        c = conn.cursor()
        c.execute('''
            CREATE TABLE IF NOT EXISTS sessions (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                mood TEXT,
                mode TEXT,
                target_mood TEXT,
                feedback TEXT,
                liked_tracks TEXT,
                disliked_tracks TEXT,
                created_at REAL NOT NULL
            )
        ''')
        c.execute('CREATE INDEX IF NOT EXISTS idx_sessions_user ON sessions (user_id, created_at)')
        c.execute('''
            CREATE TABLE IF NOT EXISTS users (
                user_id TEXT PRIMARY KEY,
                name TEXT,
                favorite_artists TEXT,
                target_mood TEXT,
                target_mood_changed_at REAL,
                updated_at INTEGER
            )
        ''')
        conn.commit()
        conn.close()

    def append_session(self, record: SessionRecord) -> str:
        session_id = record.id or uuid.uuid4().hex
        created_at = _epoch(record.created_at) or time.time()

        conn = sqlite3.connect(self.db_path)
        c = conn.cursor()
        c.execute('''
            INSERT INTO sessions
            (id, user_id, mood, mode, target_mood, feedback, liked_tracks, disliked_tracks, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        ''', (session_id, record.user_id, record.mood,
              record.mode.value if record.mode else None,
              record.target_mood,
              record.feedback.value if record.feedback else None,
              json.dumps(list(record.liked_track_keys)),
              json.dumps(list(record.disliked_track_keys)),
              created_at))
        conn.commit()
        conn.close()
        logger.info("Saved session %s for user %s (mood=%s, mode=%s)",
                    session_id, record.user_id, record.mood, record.mode)
        return session_id

    def query_recent_sessions(self, user_id: str, since: Optional[datetime] = None,
                              limit: Optional[int] = None) -> List[SessionRecord]:
        """Sessions for a user, newest first"""
        sql = '''
            SELECT id, user_id, mood, mode, target_mood, feedback, liked_tracks, disliked_tracks, created_at
            FROM sessions WHERE user_id = ?
        '''
        params: List[Any] = [user_id]
        if since is not None:
            sql += ' AND created_at >= ?'
            params.append(_epoch(since))
        sql += ' ORDER BY created_at DESC'
        if limit is not None:
            sql += ' LIMIT ?'
            params.append(int(limit))

        conn = sqlite3.connect(self.db_path)
        c = conn.cursor()
        c.execute(sql, params)
        rows = c.fetchall()
        conn.close()

        return [
            SessionRecord.from_dict({
                'userId': row[1],
                'mood': row[2],
                'mode': row[3],
                'targetMood': row[4],
                'feedback': row[5],
                'likedTracks': _json_list(row[6]),
                'dislikedTracks': _json_list(row[7]),
                'createdAt': row[8],
            }, session_id=row[0])
            for row in rows
        ]

    def get_profile(self, user_id: str) -> Optional[UserProfile]:
        conn = sqlite3.connect(self.db_path)
        c = conn.cursor()
        c.execute('''
            SELECT name, favorite_artists, target_mood, target_mood_changed_at
            FROM users WHERE user_id = ?
        ''', (user_id,))
        row = c.fetchone()
        conn.close()

        if not row:
            return None
        name, artists, target_mood, changed_at = row
        return UserProfile(
            name=name or '',
            favorite_artists=_json_list(artists),
            target_mood=target_mood,
            target_mood_changed_at=to_utc(changed_at),
        )

    def save_profile(self, user_id: str, profile: UserProfile) -> None:
        conn = sqlite3.connect(self.db_path)
        c = conn.cursor()
        c.execute('''
            INSERT INTO users (user_id, name, favorite_artists, target_mood, target_mood_changed_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(user_id) DO UPDATE SET
                name = excluded.name,
                favorite_artists = excluded.favorite_artists,
                target_mood = excluded.target_mood,
                target_mood_changed_at = excluded.target_mood_changed_at,
                updated_at = excluded.updated_at
        ''', (user_id, profile.name, json.dumps(list(profile.favorite_artists)),
              profile.target_mood, _epoch(profile.target_mood_changed_at), int(time.time())))
        conn.commit()
        conn.close()

    def update_target_mood(self, user_id: str, mood: Optional[str],
                           now: Optional[datetime] = None) -> UserProfile:
        """Set the target mood and stamp when it changed"""
        profile = self.get_profile(user_id) or UserProfile()
        profile.target_mood = mood
        profile.target_mood_changed_at = to_utc(now) if now else to_utc(time.time())
        self.save_profile(user_id, profile)
        logger.info("Target mood for %s set to %s", user_id, mood)
        return profile
