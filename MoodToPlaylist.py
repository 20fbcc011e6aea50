import time
import os
import json
import threading
import uuid
import logging
from datetime import datetime, timedelta, timezone
import click
from spotipy.oauth2 import SpotifyOAuth
from spotipy.cache_handler import MemoryCacheHandler
from spotipy.exceptions import SpotifyOauthError
from flask import Flask, request, jsonify
from dotenv import load_dotenv
from feedback import FeedbackAggregator
from models import SessionRecord, UserProfile, track_key
from moods import Mood, Mode, BRIDGE_MOODS, parse_mood, parse_mode, parse_feedback
from recommendations import MoodPlaylistBuilder, CancelToken, BuildCancelled
from spotify_integration import SpotifyEnrichmentClient, PlaylistSynchronizer, create_spotify_client
from storage import CatalogStore, HistoryStore
from trend import score_progress, summarize_mood_history

load_dotenv()

# Read Spotify app credentials from environment (support multiple common names)
CLIENT_ID = os.getenv('SPOTIFY_CLIENT_ID') or os.getenv('SPOTIPY_CLIENT_ID') or os.getenv('CLIENT_ID')
CLIENT_SECRET = os.getenv('SPOTIFY_CLIENT_SECRET') or os.getenv('SPOTIPY_CLIENT_SECRET') or os.getenv('CLIENT_SECRET')
if not CLIENT_ID or not CLIENT_SECRET:
    raise RuntimeError('SPOTIFY_CLIENT_ID and SPOTIFY_CLIENT_SECRET must be set as environment variables.')

REDIRECT_URI = os.getenv('SPOTIFY_REDIRECT_URI', 'http://127.0.0.1:5000/redirect')
SPOTIFY_SCOPE = 'user-read-email playlist-read-private playlist-modify-public playlist-modify-private'
DB_PATH = os.getenv('MOODFADE_DB', 'moodfade.db')
PLAYLIST_NAME = os.getenv('MOODFADE_PLAYLIST_NAME', 'Moodfade')
SPOTIFY_MARKET = os.getenv('SPOTIFY_MARKET', 'PL')
SPOTIFY_TIMEOUT = int(os.getenv('SPOTIFY_TIMEOUT', '8'))
FEEDBACK_WINDOW_DAYS = int(os.getenv('FEEDBACK_WINDOW_DAYS', '30'))
ENRICH_WORKERS = int(os.getenv('ENRICH_WORKERS', '4'))
JOB_MAX_AGE_SECONDS = 3600

app = Flask(__name__)
app.secret_key = os.getenv('SECRET_KEY') or os.urandom(24)
logger = logging.getLogger(__name__)

CATALOG = CatalogStore(DB_PATH)
HISTORY = HistoryStore(DB_PATH)

# In-memory job store; one active build per user, newer builds cancel older ones
JOBS = {}
ACTIVE_BUILDS = {}
JOBS_LOCK = threading.Lock()


def get_bearer_token():
    """Spotify access token sent by the client, if any"""
    header = request.headers.get('Authorization', '')
    if header.lower().startswith('bearer '):
        return header[7:].strip() or None
    return None


def _key_list(values, field_name):
    """Accept composite keys or {title, author} objects and return composite keys"""
    if values is None:
        return []
    if isinstance(values, str):
        values = [values]
    elif not isinstance(values, (list, tuple)):
        logger.warning('Expected a list for %s, got %s - ignoring', field_name, type(values).__name__)
        return []
    keys = []
    for value in values:
        if isinstance(value, dict):
            if value.get('title') and value.get('author'):
                keys.append(track_key(value['title'], value['author']))
        elif value:
            keys.append(str(value))
    return keys


def run_build_job(job_id, user_id, current_mood, target_mood, mode, favorite_artists,
                  access_token, sync, cancel_token):
    """
    Build a playlist for a mood selection and optionally push it to Spotify.

    Args:
        job_id: Unique job identifier
        user_id: The user whose feedback history biases the playlist
        current_mood, target_mood, mode: The mood selection
        favorite_artists: Artist names from the user's profile
        access_token: Spotify access token (None skips Spotify entirely)
        sync: Whether to replace the user's Moodfade playlist with the result
        cancel_token: Cancelled when the user starts another build
    """
    try:
        JOBS[job_id]['status'] = 'working'

        since = datetime.now(timezone.utc) - timedelta(days=FEEDBACK_WINDOW_DAYS)
        sessions = HISTORY.query_recent_sessions(user_id, since=since)
        logger.info("Sessions found for %s in the last %d days: %d", user_id, FEEDBACK_WINDOW_DAYS, len(sessions))
        tally = FeedbackAggregator().aggregate(sessions)

        sp = create_spotify_client(access_token, timeout=SPOTIFY_TIMEOUT) if access_token else None
        enrichment = SpotifyEnrichmentClient(sp, market=SPOTIFY_MARKET) if sp else None

        builder = MoodPlaylistBuilder(CATALOG, enrichment, max_workers=ENRICH_WORKERS)
        tracks = builder.build(current_mood, target_mood, mode, favorite_artists, tally, cancel_token)

        sync_result = {}
        if sync and sp is not None and tracks:
            synchronizer = PlaylistSynchronizer(sp, enrichment, playlist_name=PLAYLIST_NAME)
            sync_result = synchronizer.sync(tracks, cancel_token)
        cancel_token.raise_if_cancelled()

        JOBS[job_id]['tracks'] = [t.to_dict() for t in tracks]
        JOBS[job_id]['playlist_url'] = sync_result.get('playlist_url')
        JOBS[job_id]['sync_error'] = sync_result.get('error')
        JOBS[job_id]['status'] = 'done'

    except BuildCancelled:
        JOBS[job_id]['status'] = 'cancelled'
        JOBS[job_id]['tracks'] = []
        logger.info('Build job %s superseded and dropped', job_id)
    except Exception:
        JOBS[job_id]['status'] = 'error'
        JOBS[job_id]['tracks'] = []
        JOBS[job_id]['message'] = 'An unexpected error occurred. Please try again.'
        logger.exception('Unexpected error in run_build_job')
    finally:
        JOBS[job_id]['loading'] = False
        with JOBS_LOCK:
            active = ACTIVE_BUILDS.get(user_id)
            if active and active[0] == job_id:
                del ACTIVE_BUILDS[user_id]


def cleanup_old_jobs(max_age_seconds: int = JOB_MAX_AGE_SECONDS) -> None:
    """Remove finished jobs older than max_age_seconds"""
    current_time = time.time()
    with JOBS_LOCK:
        expired = [
            job_id for job_id, job in JOBS.items()
            if not job.get('loading') and current_time - job.get('created_at', current_time) > max_age_seconds
        ]
        for job_id in expired:
            del JOBS[job_id]
    if expired:
        logger.info('Removed %d finished jobs', len(expired))


def start_build_job(user_id, current_mood, target_mood, mode, favorite_artists, access_token, sync):
    job_id = str(uuid.uuid4())
    cleanup_old_jobs()
    cancel_token = CancelToken()
    JOBS[job_id] = {
        'status': 'pending',
        'loading': True,
        'tracks': [],
        'playlist_url': None,
        'user_id': user_id,
        'mood': current_mood.value,
        'mode': mode.value,
        'target_mood': target_mood.value if target_mood else None,
        'created_at': int(time.time())
    }

    with JOBS_LOCK:
        previous = ACTIVE_BUILDS.get(user_id)
        if previous:
            logger.info('Cancelling superseded build %s for user %s', previous[0], user_id)
            previous[1].cancel()
        ACTIVE_BUILDS[user_id] = (job_id, cancel_token)

    thread = threading.Thread(
        target=run_build_job,
        args=(job_id, user_id, current_mood, target_mood, mode, favorite_artists,
              access_token, sync, cancel_token),
        daemon=True
    )
    thread.start()
    return job_id


@app.route('/api/moods')
def list_moods():
    return jsonify({
        'moods': [m.value for m in Mood],
        'bridges': {m.value: b.value for m, b in BRIDGE_MOODS.items()},
        'modes': [m.value for m in Mode],
    })


@app.route('/api/playlist/build', methods=['POST'])
def build_playlist():
    """Start a background playlist build and return its job id"""
    data = request.get_json(silent=True) or {}
    user_id = data.get('user_id')
    if not user_id:
        return jsonify({'error': 'user_id is required'}), 400

    current_mood = parse_mood(data.get('mood'))
    if current_mood is None:
        return jsonify({'error': f"Unknown mood: {data.get('mood')!r}"}), 400
    mode = parse_mode(data.get('mode'))
    if mode is None:
        return jsonify({'error': "mode must be 'current' or 'regulation'"}), 400

    profile = HISTORY.get_profile(user_id) or UserProfile()
    target_mood = parse_mood(data.get('target_mood') or profile.target_mood)
    if mode == Mode.REGULATION and target_mood is None:
        logger.info('Regulation requested without a target mood; building from current mood only')

    job_id = start_build_job(user_id, current_mood, target_mood, mode, profile.favorite_artists,
                             get_bearer_token(), bool(data.get('sync', True)))
    return jsonify({'job_id': job_id})


@app.route('/api/job_status')
def job_status():
    job_id = request.args.get('job_id')
    if not job_id or job_id not in JOBS:
        return jsonify({'error': 'job_not_found'}), 404
    return jsonify(JOBS[job_id])


@app.route('/api/sessions', methods=['POST'])
def save_session():
    data = request.get_json(silent=True) or {}
    user_id = data.get('user_id')
    if not user_id:
        return jsonify({'error': 'User not authenticated.'}), 401

    record = SessionRecord(
        user_id=user_id,
        mood=data.get('mood'),
        mode=parse_mode(data.get('mode')),
        target_mood=data.get('target_mood'),
        feedback=parse_feedback(data.get('feedback')),
        liked_track_keys=_key_list(data.get('liked_tracks'), 'liked_tracks'),
        disliked_track_keys=_key_list(data.get('disliked_tracks'), 'disliked_tracks'),
        created_at=datetime.now(timezone.utc),
    )
    try:
        session_id = HISTORY.append_session(record)
    except Exception:
        logger.exception('Failed to save session for %s', user_id)
        return jsonify({'error': 'Could not save session.'}), 500
    return jsonify({'id': session_id}), 201


@app.route('/api/users/<user_id>/profile', methods=['GET', 'PUT'])
def user_profile(user_id):
    if request.method == 'GET':
        profile = HISTORY.get_profile(user_id)
        if profile is None:
            return jsonify({'error': 'profile_not_found'}), 404
        return jsonify(profile.to_dict())

    data = request.get_json(silent=True) or {}
    profile = HISTORY.get_profile(user_id) or UserProfile()
    if 'name' in data:
        profile.name = data.get('name') or ''
    if 'favorite_artists' in data:
        artists = data.get('favorite_artists')
        if isinstance(artists, str):
            artists = [artists]
        profile.favorite_artists = [a for a in (artists or []) if a]
    try:
        HISTORY.save_profile(user_id, profile)
    except Exception:
        logger.exception('Failed to save profile for %s', user_id)
        return jsonify({'error': 'Could not save profile.'}), 500
    return jsonify(profile.to_dict())


@app.route('/api/users/<user_id>/target-mood', methods=['PUT'])
def set_target_mood(user_id):
    data = request.get_json(silent=True) or {}
    raw = data.get('target_mood')
    mood = parse_mood(raw)
    if raw and mood is None:
        return jsonify({'error': f'Unknown mood: {raw!r}'}), 400
    try:
        profile = HISTORY.update_target_mood(user_id, mood.value if mood else None)
    except Exception:
        logger.exception('Failed to update target mood for %s', user_id)
        return jsonify({'error': 'Could not save target mood.'}), 500
    return jsonify(profile.to_dict())


@app.route('/api/users/<user_id>/report')
def user_report(user_id):
    """Progress toward the target mood plus mood history"""
    profile = HISTORY.get_profile(user_id) or UserProfile()
    sessions = HISTORY.query_recent_sessions(user_id)
    report = summarize_mood_history(sessions)
    report['target_mood'] = profile.target_mood
    report['progress'] = score_progress(sessions, profile.target_mood, profile.target_mood_changed_at)
    return jsonify(report)


def create_spotify_oauth():
    # Use an in-memory cache so tokens do not leak across different users
    return SpotifyOAuth(
        client_id=CLIENT_ID,
        client_secret=CLIENT_SECRET,
        redirect_uri=REDIRECT_URI,
        scope=SPOTIFY_SCOPE,
        cache_handler=MemoryCacheHandler()
    )


@app.route('/api/spotify/refresh', methods=['POST'])
def refresh_spotify_token():
    data = request.get_json(silent=True) or {}
    refresh_token = data.get('refresh_token')
    if not refresh_token:
        return jsonify({'error': 'refresh_token is required'}), 400
    try:
        token_info = create_spotify_oauth().refresh_access_token(refresh_token)
    except SpotifyOauthError as exc:
        logger.warning('Spotify rejected the refresh token: %s', exc)
        return jsonify({'error': 'Spotify rejected the refresh token. Please reconnect Spotify.'}), 400
    except (ConnectionError, TimeoutError, OSError):
        logger.exception('Network error refreshing Spotify token')
        return jsonify({'error': 'Network error. Please check your connection and try again.'}), 500
    return jsonify({
        'access_token': token_info.get('access_token'),
        'expires_at': token_info.get('expires_at'),
        'refresh_token': token_info.get('refresh_token', refresh_token),
    })


@app.cli.command('seed-catalog')
@click.argument('path', type=click.Path(exists=True, dir_okay=False))
def seed_catalog(path):
    """Load mood-tagged catalog tracks from a JSON list"""
    with open(path, 'r') as f:
        rows = json.load(f)
    if not isinstance(rows, list):
        raise click.ClickException('Catalog file must contain a JSON list of tracks')
    unknown = {r.get('mood_category') for r in rows if parse_mood(r.get('mood_category')) is None}
    if unknown:
        logger.warning('Catalog contains tracks with unknown moods: %s', sorted(str(m) for m in unknown))
    count = CATALOG.upsert_tracks(rows)
    click.echo(f'Loaded {count} tracks into {DB_PATH}')


if __name__ == '__main__':
    logging.basicConfig(level=os.getenv('LOG_LEVEL', 'INFO'),
                        format='%(asctime)s %(levelname)s %(name)s: %(message)s')
    debug_mode = os.getenv('FLASK_ENV') != 'production'
    app.run(debug=debug_mode)
