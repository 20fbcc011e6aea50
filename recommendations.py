"""
Mood playlist builder

Builds a personalized playlist for a mood selection:
1. Pick tracks from the mood catalog (current mood only, or current -> bridge -> target
   when regulating toward a target mood)
2. Enrich them with Spotify covers and links
3. Add top tracks from the user's favorite artists
4. Merge and de-duplicate
5. Score against the user's feedback history (tracks disliked twice are banned)
6. Rank with a little random jitter and cut to the playlist size

External lookups run on a small thread pool and can be abandoned at any point
through a CancelToken when the user picks a different mood mid-build.
"""
import functools
import logging
import random
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import replace
from typing import List, Any, Optional, Sequence, Iterable, Callable

from feedback import FeedbackTally
from models import Track, Provenance
from moods import Mood, Mode, bridge_mood_for

logger = logging.getLogger(__name__)

CURRENT_POOL_SIZE = 30
# 40/20/40 split by count
REGULATION_CURRENT_QUOTA = 12
REGULATION_BRIDGE_QUOTA = 6
REGULATION_TARGET_QUOTA = 12

MAX_FAVORITE_ARTISTS = 5
TRACKS_PER_FAVORITE_ARTIST = 3

MAX_PLAYLIST_LENGTH = 45

BAN_DISLIKE_THRESHOLD = 2
BASE_SCORE = 1.0
SINGLE_DISLIKE_PENALTY = 0.4
LIKE_BONUS_THRESHOLD = 3
LIKE_BONUS = 0.3
MOOD_SENTIMENT_WEIGHT = 0.3
RANK_JITTER = 0.1


class BuildCancelled(Exception):
    """Raised when a build is superseded before it finishes"""
    pass


class CancelToken:
    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise BuildCancelled()


def merge_and_dedup(*groups: Iterable[Track]) -> List[Track]:
    """Concatenate groups and keep the first track seen for each id"""
    seen = set()
    merged = []
    for group in groups:
        for track in group:
            if track.id in seen:
                continue
            seen.add(track.id)
            merged.append(track)
    return merged


def _fmt(track: Track) -> str:
    source = ""
    if track.provenance:
        mood = f":{track.provenance_mood}" if track.provenance_mood else ""
        source = f" [{track.provenance.value}{mood}]"
    return f"{track.title} - {track.author}{source}"


class MoodPlaylistBuilder:
    """Assembles a feedback-biased playlist for a mood selection

    `catalog` needs `query_tracks_by_mood(mood)`. `enrichment` needs
    `search_track`, `search_artist` and `top_tracks`; without it the
    enrichment and favorite-artist steps are skipped.

    Ranking adds a random jitter in [0, 0.1) to each score. By default one
    jitter value is drawn per track before sorting; with per_comparison_jitter
    a fresh value is drawn for each side of every comparison instead.
    """

    def __init__(self, catalog, enrichment=None, max_workers: int = 4,
                 rng: Optional[random.Random] = None, per_comparison_jitter: bool = False):
        self.catalog = catalog
        self.enrichment = enrichment
        self.max_workers = max(1, max_workers)
        self.rng = rng or random.Random()
        self.per_comparison_jitter = per_comparison_jitter

    def _sample(self, pool: List[Track], size: int) -> List[Track]:
        pool = list(pool)
        self.rng.shuffle(pool)
        return pool[:size]

    def _fetch_pool(self, mood: Mood, provenance: Provenance) -> List[Track]:
        try:
            tracks = self.catalog.query_tracks_by_mood(mood.value)
        except Exception as e:
            logger.warning("Catalog query failed for '%s': %s", mood.value, e)
            return []
        return [replace(track, provenance=provenance, provenance_mood=mood.value) for track in tracks]

    def select_pools(self, current_mood: Mood, target_mood: Optional[Mood], mode: Mode) -> List[Track]:
        """Sample the mood catalog according to the listening mode"""
        if mode == Mode.REGULATION and target_mood is not None:
            bridge_mood = bridge_mood_for(current_mood)
            logger.info("Regulation path: %s -> %s -> %s", current_mood.value,
                        bridge_mood.value if bridge_mood else "(no bridge)", target_mood.value)

            current_pool = self._fetch_pool(current_mood, Provenance.CURRENT_POOL)
            bridge_pool = self._fetch_pool(bridge_mood, Provenance.BRIDGE_POOL) if bridge_mood else []
            target_pool = self._fetch_pool(target_mood, Provenance.TARGET_POOL)
            logger.info("Pools: current=%d, bridge=%d, target=%d",
                        len(current_pool), len(bridge_pool), len(target_pool))

            picks = (self._sample(current_pool, REGULATION_CURRENT_QUOTA)
                     + self._sample(bridge_pool, REGULATION_BRIDGE_QUOTA)
                     + self._sample(target_pool, REGULATION_TARGET_QUOTA))
            logger.info("Picked %d tracks (40/20/40 split)", len(picks))
            return picks

        current_pool = self._fetch_pool(current_mood, Provenance.CURRENT_POOL)
        picks = self._sample(current_pool, CURRENT_POOL_SIZE)
        logger.info("Current pool (%s): %d, picked %d", current_mood.value, len(current_pool), len(picks))
        return picks

    def _run_bounded(self, func: Callable, items: Sequence, cancel_token: CancelToken) -> List[Any]:
        """Apply func to every item on the thread pool; results keep input order"""
        results: List[Any] = [None] * len(items)
        if not items:
            return results
        executor = ThreadPoolExecutor(max_workers=self.max_workers)
        try:
            futures = {executor.submit(func, item): i for i, item in enumerate(items)}
            for future in as_completed(futures):
                cancel_token.raise_if_cancelled()
                try:
                    results[futures[future]] = future.result()
                except Exception as e:
                    logger.warning("Lookup failed for %r: %s", items[futures[future]], e)
            cancel_token.raise_if_cancelled()
        finally:
            executor.shutdown(wait=False, cancel_futures=True)
        return results

    def enrich_tracks(self, tracks: List[Track], cancel_token: CancelToken) -> List[Track]:
        """Attach cover art, canonical URL and Spotify id where a search matches"""
        if self.enrichment is None:
            logger.warning("No Spotify access - skipping cover enrichment")
            return tracks

        found = self._run_bounded(lambda t: self.enrichment.search_track(t.title, t.author), tracks, cancel_token)
        hits = 0
        for track, match in zip(tracks, found):
            if not match:
                continue
            hits += 1
            track.cover_url = match.get('cover_url') or track.cover_url
            track.canonical_url = match.get('canonical_url') or track.canonical_url
            track.external_id = match.get('external_id') or track.external_id
        logger.info("Enriched %d/%d tracks via Spotify search", hits, len(tracks))
        return tracks

    def _artist_tracks(self, artist: str) -> List[Track]:
        artist_id = self.enrichment.search_artist(artist)
        if not artist_id:
            return []
        selected = [
            replace(track, provenance=Provenance.FAVORITE_ARTIST, provenance_mood=None)
            for track in self._sample(self.enrichment.top_tracks(artist_id), TRACKS_PER_FAVORITE_ARTIST)
        ]
        logger.info("Added %d tracks from favorite artist '%s'", len(selected), artist)
        return selected

    def collect_favorite_artist_tracks(self, favorite_artists: Sequence[str],
                                       cancel_token: CancelToken) -> List[Track]:
        artists = [a for a in favorite_artists if a][:MAX_FAVORITE_ARTISTS]
        if self.enrichment is None or not artists:
            logger.info("No favorite artists or no Spotify access - skipping favorites step")
            return []

        per_artist = self._run_bounded(self._artist_tracks, artists, cancel_token)
        collected = [track for tracks in per_artist if tracks for track in tracks]
        logger.info("Collected %d favorite-artist tracks from %d artists", len(collected), len(artists))
        return collected

    def score_tracks(self, tracks: List[Track], tally: FeedbackTally) -> List[Track]:
        """Apply feedback scores; tracks with too many dislikes are dropped"""
        scored = []
        for track in tracks:
            stats = tally.stats_for(track.key)
            if stats.dislikes >= BAN_DISLIKE_THRESHOLD:
                logger.info("BANNED (>=%d dislikes): %s", BAN_DISLIKE_THRESHOLD, track.key)
                continue

            score = BASE_SCORE
            if stats.dislikes == 1:
                score -= SINGLE_DISLIKE_PENALTY
            if stats.likes >= LIKE_BONUS_THRESHOLD:
                score += LIKE_BONUS
            score += MOOD_SENTIMENT_WEIGHT * tally.mood_sentiment(track.mood_category)
            track.score = score
            scored.append(track)
        return scored

    def rank(self, tracks: List[Track]) -> List[Track]:
        """Sort by score plus jitter (highest first) and cut to the playlist size"""
        if self.per_comparison_jitter:
            def compare(a: Track, b: Track) -> int:
                diff = (b.score + self.rng.uniform(0, RANK_JITTER)) - (a.score + self.rng.uniform(0, RANK_JITTER))
                return (diff > 0) - (diff < 0)
            ranked = sorted(tracks, key=functools.cmp_to_key(compare))
        else:
            jitter = {id(t): self.rng.uniform(0, RANK_JITTER) for t in tracks}
            ranked = sorted(tracks, key=lambda t: t.score + jitter[id(t)], reverse=True)
        return ranked[:MAX_PLAYLIST_LENGTH]

    def build(self, current_mood: Mood, target_mood: Optional[Mood] = None, mode: Mode = Mode.CURRENT,
              favorite_artists: Optional[Sequence[str]] = None, tally: Optional[FeedbackTally] = None,
              cancel_token: Optional[CancelToken] = None) -> List[Track]:
        """Build the final playlist (at most MAX_PLAYLIST_LENGTH tracks)

        Raises BuildCancelled if the token is cancelled; any other failure is
        logged and yields an empty playlist.
        """
        cancel_token = cancel_token or CancelToken()
        tally = tally or FeedbackTally()
        favorite_artists = favorite_artists or []

        logger.info("=" * 60)
        logger.info("PLAYLIST BUILD START")
        logger.info("=" * 60)
        logger.info("Mode: %s, current mood: %s, target mood: %s, favorite artists: %s",
                    mode.value, current_mood.value, target_mood.value if target_mood else "(none)",
                    list(favorite_artists))
        try:
            mood_tracks = self.select_pools(current_mood, target_mood, mode)
            cancel_token.raise_if_cancelled()

            mood_tracks = self.enrich_tracks(mood_tracks, cancel_token)
            favorite_tracks = self.collect_favorite_artist_tracks(favorite_artists, cancel_token)

            combined = merge_and_dedup(mood_tracks, favorite_tracks)
            logger.info("Combined total (pre-feedback scoring): %d", len(combined))

            scored = self.score_tracks(combined, tally)
            final = self.rank(scored)
            cancel_token.raise_if_cancelled()
        except BuildCancelled:
            logger.info("Playlist build cancelled")
            raise
        except Exception:
            logger.exception("Error building playlist")
            return []

        logger.info("Final list size: %d", len(final))
        for i, track in enumerate(final, 1):
            logger.debug("  %02d. %s [score=%.2f]", i, _fmt(track), track.score)
        logger.info("=" * 60)
        logger.info("PLAYLIST BUILD END")
        logger.info("=" * 60)
        return final
