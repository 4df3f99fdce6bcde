import asyncio
import logging
from collections import OrderedDict
from typing import Any, Callable, Dict, List, Optional

import spotipy
from spotipy.exceptions import SpotifyException
from urllib3.exceptions import ReadTimeoutError

from trackparty.crosscutting.config import SpotifyClientConfig
from trackparty.domain.entities import Album, AlbumImage, Track
from trackparty.domain.errors import NotFound, PermanentFailure, RateLimited, TemporaryFailure
from trackparty.domain.ports import PlaylistMeta, SavedTracksPage, TrackSource

logger = logging.getLogger(__name__)

PLAYLIST_TRACK_FIELDS = 'items(track(id,name,artists(name),album(name,release_date,images),duration_ms,preview_url,is_local))'


def spotify_track_to_domain(spotify_track: Optional[Dict[str, Any]]) -> Optional[Track]:
    """Convert a Spotify track object to a domain Track.

    Returns None for removed entries and local files, which have no catalog id.
    """
    if not spotify_track or not spotify_track.get('id') or spotify_track.get('is_local'):
        return None

    album = spotify_track.get('album') or {}
    images = [
        AlbumImage(url=image.get('url', ''), width=image.get('width'), height=image.get('height'))
        for image in album.get('images') or []
        if image.get('url')
    ]

    return Track(
        id=spotify_track['id'],
        title=spotify_track.get('name', ''),
        artists=[a.get('name', '') for a in spotify_track.get('artists') or [] if a.get('name')],
        album=Album(
            name=album.get('name', '') or '',
            release_date=album.get('release_date', '') or '',
            images=images,
        ),
        duration_ms=spotify_track.get('duration_ms', 0) or 0,
        preview_url=spotify_track.get('preview_url'),
    )


class SpotifyTrackSource(TrackSource):
    """Spotify Web API adapter built on spotipy.

    spotipy is synchronous, so each call runs in a worker thread to keep the
    aggregator's event loop free.
    """

    def __init__(self,
                 config: Optional[SpotifyClientConfig] = None,
                 client_factory: Optional[Callable[..., Any]] = None,
                 top_tracks_limit: int = 50,
                 max_clients: int = 32):
        """Initialize Spotify track source.

        Args:
            config: Timeout and retry settings for the spotipy client
            client_factory: Builds a client for an access token; defaults to spotipy.Spotify
            top_tracks_limit: Tracks requested per top-tracks time range
            max_clients: Most recently used clients kept; older tokens are evicted
        """
        self.config = config or SpotifyClientConfig()
        self._client_factory = client_factory or spotipy.Spotify
        self.top_tracks_limit = top_tracks_limit
        self.max_clients = max_clients
        self._clients: "OrderedDict[str, Any]" = OrderedDict()

    def _client(self, access_token: str) -> Any:
        client = self._clients.get(access_token)
        if client is not None:
            self._clients.move_to_end(access_token)
            return client

        client = self._client_factory(
            auth=access_token,
            requests_timeout=self.config.requests_timeout,
            retries=self.config.retries,
        )
        self._clients[access_token] = client
        while len(self._clients) > self.max_clients:
            self._clients.popitem(last=False)
        return client

    async def _call(self, operation: str, access_token: str, method: str, *args, **kwargs) -> Any:
        client = self._client(access_token)
        try:
            return await asyncio.to_thread(getattr(client, method), *args, **kwargs)
        except ReadTimeoutError as e:
            logger.warning(f"Read timeout during {operation}")
            raise TemporaryFailure(f"Timeout during {operation}: {e}")
        except SpotifyException as e:
            raise self._map_error(e, operation)

    def _map_error(self, error: SpotifyException, operation: str) -> Exception:
        status = getattr(error, 'http_status', None)
        if status == 429:
            retry_after = 1
            headers = getattr(error, 'headers', None) or {}
            try:
                retry_after = int(headers.get('Retry-After', 1))
            except (TypeError, ValueError):
                pass
            logger.warning(f"Rate limited during {operation}, retry after {retry_after}s")
            return RateLimited(retry_after_ms=retry_after * 1000)
        if status == 404:
            return NotFound(f"{operation}: {error.msg}")
        if status in (401, 403):
            logger.error(f"Spotify rejected the access token during {operation}: {error.msg}")
            return PermanentFailure(f"{operation}: {error.msg}")
        logger.error(f"Spotify API error during {operation}: {error}")
        return TemporaryFailure(f"{operation}: {error}")

    async def fetch_saved_tracks_page(self, access_token: str, limit: int, offset: int) -> SavedTracksPage:
        data = await self._call('fetch saved tracks', access_token,
                                'current_user_saved_tracks', limit=limit, offset=offset) or {}
        items = [spotify_track_to_domain(item.get('track')) for item in data.get('items') or []]
        return SavedTracksPage(items=[t for t in items if t], total=data.get('total', 0) or 0)

    async def fetch_recently_played(self, access_token: str, limit: int) -> List[Track]:
        data = await self._call('fetch recently played', access_token,
                                'current_user_recently_played', limit=limit) or {}
        items = [spotify_track_to_domain(item.get('track')) for item in data.get('items') or []]
        return [t for t in items if t]

    async def fetch_playlist_meta(self, access_token: str, playlist_id: str) -> PlaylistMeta:
        data = await self._call('fetch playlist', access_token,
                                'playlist', playlist_id, fields='name') or {}
        return PlaylistMeta(name=data.get('name') or '')

    async def fetch_playlist_tracks_page(self, access_token: str, playlist_id: str,
                                         limit: int, offset: int) -> List[Optional[Track]]:
        data = await self._call('fetch playlist tracks', access_token, 'playlist_items',
                                playlist_id, limit=limit, offset=offset,
                                fields=PLAYLIST_TRACK_FIELDS,
                                additional_types=('track',)) or {}
        return [spotify_track_to_domain(item.get('track')) for item in data.get('items') or []]

    async def fetch_top_tracks(self, access_token: str, time_range: str) -> List[Track]:
        data = await self._call(f'fetch top tracks ({time_range})', access_token,
                                'current_user_top_tracks',
                                limit=self.top_tracks_limit, time_range=time_range) or {}
        items = [spotify_track_to_domain(item) for item in data.get('items') or []]
        return [t for t in items if t]
