"""
Spotify integration
- Enrichment: cover art, canonical URLs and external ids for catalog tracks
- Favorite artists: artist search and top tracks
- Playlist sync: find-or-create the Moodfade playlist and replace its tracks

Every lookup fails independently: network and API errors are logged and
reported as "no data" (None / empty list), never raised to the caller.
"""
import logging
from typing import List, Dict, Any, Optional, Tuple

import requests
import spotipy
from spotipy.exceptions import SpotifyException

from models import Track, Provenance
from recommendations import CancelToken

logger = logging.getLogger(__name__)

# Failures treated as "no data from this source"
TRANSIENT_ERRORS = (SpotifyException, requests.exceptions.RequestException, ConnectionError, TimeoutError, OSError)

DEFAULT_PLAYLIST_NAME = "Moodfade"
PLAYLIST_DESCRIPTION = "Your Moodfade playlist"
PLAYLIST_PAGE_SIZE = 50
PLAYLIST_WRITE_BATCH = 100


def create_spotify_client(access_token: str, timeout: int = 8) -> spotipy.Spotify:
    """Create a Spotify client with proper timeout configuration"""
    sp = spotipy.Spotify(auth=access_token, requests_timeout=timeout, retries=0)
    if hasattr(sp, '_session'):
        sp._session.timeout = timeout
    return sp


def _first_image(album: Optional[Dict[str, Any]]) -> Optional[str]:
    images = (album or {}).get('images') or []
    return images[0].get('url') if images else None


class SpotifyEnrichmentClient:
    """Search-based lookups against the Spotify catalog"""

    def __init__(self, sp: spotipy.Spotify, market: str = 'PL'):
        self.sp = sp
        self.market = market

    def search_track(self, title: str, author: str) -> Optional[Dict[str, Any]]:
        """Best match for a title/author pair as {cover_url, canonical_url, external_id}"""
        query = f"track:{title} artist:{author}"
        try:
            result = self.sp.search(q=query, type='track', limit=1)
        except TRANSIENT_ERRORS as e:
            logger.warning("Spotify search failed for %r: %s", query, e)
            return None

        items = (result or {}).get('tracks', {}).get('items') or []
        if not items:
            logger.debug("No Spotify match for %r", query)
            return None

        found = items[0]
        return {
            'cover_url': _first_image(found.get('album')),
            'canonical_url': (found.get('external_urls') or {}).get('spotify'),
            'external_id': found.get('id'),
        }

    def search_artist(self, name: str) -> Optional[str]:
        try:
            result = self.sp.search(q=name, type='artist', limit=1)
        except TRANSIENT_ERRORS as e:
            logger.warning("Spotify artist search failed for %r: %s", name, e)
            return None

        items = (result or {}).get('artists', {}).get('items') or []
        if not items or not items[0].get('id'):
            logger.warning("Artist not found: %s", name)
            return None
        return items[0]['id']

    def top_tracks(self, artist_id: str) -> List[Track]:
        try:
            result = self.sp.artist_top_tracks(artist_id, country=self.market)
        except TRANSIENT_ERRORS as e:
            logger.warning("Failed to get top tracks for artist %s: %s", artist_id, e)
            return []

        tracks = []
        for item in (result or {}).get('tracks') or []:
            if not item or not item.get('id'):
                continue
            tracks.append(Track(
                id=item['id'],
                title=item.get('name') or '',
                author=", ".join(a.get('name', '') for a in item.get('artists') or []),
                cover_url=_first_image(item.get('album')),
                canonical_url=(item.get('external_urls') or {}).get('spotify'),
                external_id=item['id'],
                provenance=Provenance.FAVORITE_ARTIST,
            ))
        logger.info("Got %d top tracks for artist %s", len(tracks), artist_id)
        return tracks


class PlaylistSynchronizer:
    """Pushes a built playlist into the user's Spotify playlist"""

    def __init__(self, sp: spotipy.Spotify, enrichment: Optional[SpotifyEnrichmentClient] = None,
                 playlist_name: str = DEFAULT_PLAYLIST_NAME, max_retries: int = 2):
        self.sp = sp
        self.enrichment = enrichment
        self.playlist_name = playlist_name
        self.max_retries = max_retries

    def find_playlist(self, name: str) -> Optional[Dict[str, Any]]:
        """Page through the user's playlists and return the first one named `name`"""
        playlists = []
        offset = 0
        while True:
            response = self.sp.current_user_playlists(limit=PLAYLIST_PAGE_SIZE, offset=offset)
            items = response.get('items') or []
            playlists.extend(items)
            offset += len(items)
            if not items or not response.get('next'):
                break

        logger.info("Fetched %d playlists", len(playlists))
        matches = [p for p in playlists if p and (p.get('name') or '').lower() == name.lower()]
        if len(matches) > 1:
            logger.warning("Duplicate '%s' playlists detected: %s", name, [p.get('id') for p in matches])

        playlist = next((p for p in matches if p.get('id')), None)
        if matches and playlist is None:
            logger.error("'%s' playlist exists but every entry has an invalid id", name)
        return playlist

    def ensure_playlist(self, name: Optional[str] = None) -> Tuple[str, Optional[str]]:
        """Return (playlist_id, url), creating a private playlist when absent"""
        name = name or self.playlist_name
        playlist = self.find_playlist(name)
        if playlist is None:
            user_id = self.sp.current_user()['id']
            playlist = self.sp.user_playlist_create(user_id, name, public=False, description=PLAYLIST_DESCRIPTION)
            logger.info("Created new '%s' playlist: %s", name, playlist.get('id'))
        return playlist['id'], (playlist.get('external_urls') or {}).get('spotify')

    def replace_tracks(self, playlist_id: str, external_track_ids: List[str],
                       cancel_token: Optional[CancelToken] = None) -> None:
        """Replace the playlist contents; safe to retry since the result is the same"""
        uris = [f"spotify:track:{track_id}" for track_id in external_track_ids]
        for retry in range(self.max_retries):
            try:
                if cancel_token is not None:
                    cancel_token.raise_if_cancelled()
                self.sp.playlist_replace_items(playlist_id, uris[:PLAYLIST_WRITE_BATCH])
                for i in range(PLAYLIST_WRITE_BATCH, len(uris), PLAYLIST_WRITE_BATCH):
                    if cancel_token is not None:
                        cancel_token.raise_if_cancelled()
                    self.sp.playlist_add_items(playlist_id, uris[i:i + PLAYLIST_WRITE_BATCH])
                logger.info("Updated playlist %s with %d tracks", playlist_id, len(uris))
                return
            except TRANSIENT_ERRORS as e:
                logger.warning("Error replacing playlist tracks (attempt %d/%d): %s",
                               retry + 1, self.max_retries, e)
                if retry == self.max_retries - 1:
                    raise

    def resolve_external_ids(self, tracks: List[Track], cancel_token: Optional[CancelToken] = None) -> List[str]:
        """External ids in playlist order; unenriched tracks get one more search"""
        ids = []
        for track in tracks:
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()
            external_id = track.external_id
            if not external_id and self.enrichment is not None:
                found = self.enrichment.search_track(track.title, track.author)
                external_id = found.get('external_id') if found else None
            if external_id:
                ids.append(external_id)
            else:
                logger.debug("Skipping unresolved track: %s - %s", track.title, track.author)
        return ids

    def sync(self, tracks: List[Track], cancel_token: Optional[CancelToken] = None) -> Dict[str, Any]:
        if not tracks:
            return {'error': 'No tracks to add to playlist'}

        try:
            external_ids = self.resolve_external_ids(tracks, cancel_token)
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()
            playlist_id, playlist_url = self.ensure_playlist()
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()
            if external_ids:
                self.replace_tracks(playlist_id, external_ids, cancel_token)
            return {
                'success': True,
                'playlist_id': playlist_id,
                'playlist_url': playlist_url,
                'playlist_name': self.playlist_name,
                'track_count': len(external_ids),
            }
        except SpotifyException as e:
            logger.error("Error syncing playlist: %s", e)
            error_msg = str(e)
            if getattr(e, 'http_status', None) == 403:
                error_msg = "Permission denied. Ensure your app has playlist-modify permissions."
            return {'error': error_msg}
        except (requests.exceptions.RequestException, ConnectionError, TimeoutError, OSError) as e:
            logger.error("Network error syncing playlist: %s", e)
            return {'error': 'Network error while updating the playlist'}
