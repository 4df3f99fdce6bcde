from __future__ import annotations

import asyncio
import logging
import math
import random
from typing import Dict, List, Optional

from trackparty.crosscutting.config import AggregationConfig
from trackparty.domain.entities import (
    Contribution,
    ExplicitPreference,
    SourcePreference,
    SourceType,
    Track,
    normalize_preference,
)
from trackparty.domain.ports import TrackSource


logger = logging.getLogger(__name__)

TOP_TRACK_TIME_RANGES = ("short_term", "medium_term", "long_term")


def dedupe_tracks(tracks: List[Track]) -> List[Track]:
    """Drop repeated track ids, keeping first occurrence order."""
    seen: Dict[str, Track] = {}
    for track in tracks:
        if track.id not in seen:
            seen[track.id] = track
    return list(seen.values())


def liked_sample_offsets(total: int, sample_size: int, page_size: int,
                         rng: random.Random) -> List[int]:
    """Offsets of the saved-track pages to read for a bounded sample.

    Libraries no larger than the sample are read sequentially; larger ones are
    sampled at random offsets so repeated games see different subsets.
    """
    if total <= 0:
        return []
    max_tracks = min(sample_size, total)
    batches = math.ceil(max_tracks / page_size)
    offsets = []
    for i in range(batches):
        if total <= max_tracks:
            offsets.append(i * page_size)
        else:
            offsets.append(rng.randint(0, max(total - page_size, 0)))
    return sorted(set(offsets))


class MemberCollector:
    """Fetches one member's candidate tracks according to their preference."""

    def __init__(self, track_source: TrackSource,
                 config: Optional[AggregationConfig] = None,
                 offset_rng: Optional[random.Random] = None):
        self.track_source = track_source
        self.config = config or AggregationConfig()
        # Not tied to the aggregation seed: liked sampling varies between runs.
        self.offset_rng = offset_rng or random.Random()

    def _log_call(self, message: str, *args) -> None:
        level = logging.INFO if self.config.log_api_calls else logging.DEBUG
        logger.log(level, message, *args)

    async def collect(self, member_id: str, access_token: str,
                      preference: Optional[SourcePreference]) -> List[Contribution]:
        """Return the member's contributions. Upstream errors propagate."""
        preference = normalize_preference(preference)
        if not isinstance(preference, ExplicitPreference):
            return await self.collect_top_tracks(member_id, access_token)

        contributions: List[Contribution] = []
        if preference.include_liked:
            contributions.extend(await self.collect_liked(member_id, access_token))
        if preference.include_recent:
            contributions.extend(await self.collect_recent(member_id, access_token))
        if preference.include_playlist and preference.playlist_id:
            contributions.extend(
                await self.collect_playlist(member_id, access_token, preference.playlist_id)
            )
        return contributions

    async def collect_liked(self, member_id: str, access_token: str) -> List[Contribution]:
        self._log_call("Fetching liked songs for member %s", member_id)
        size_page = await self.track_source.fetch_saved_tracks_page(access_token, 1, 0)
        total = size_page.total
        if total <= 0:
            return []

        page_size = self.config.page_size
        offsets = liked_sample_offsets(total, self.config.liked_sample_size, page_size, self.offset_rng)
        liked: List[Track] = []
        for offset in offsets:
            try:
                page = await self.track_source.fetch_saved_tracks_page(access_token, page_size, offset)
            except Exception as e:
                logger.warning(f"Failed to fetch liked songs at offset {offset} for member {member_id}: {e}")
                continue
            liked.extend(page.items)

        unique = dedupe_tracks(liked)
        logger.info(f"Member {member_id} contributed {len(unique)} liked songs from {total} total")
        return [Contribution(member_id, track, SourceType.LIKED) for track in unique]

    async def collect_recent(self, member_id: str, access_token: str) -> List[Contribution]:
        self._log_call("Fetching recently played tracks for member %s", member_id)
        recent = await self.track_source.fetch_recently_played(access_token, self.config.recent_limit)
        return [Contribution(member_id, track, SourceType.RECENT) for track in recent]

    async def collect_playlist(self, member_id: str, access_token: str,
                               playlist_id: str) -> List[Contribution]:
        self._log_call("Fetching playlist %s for member %s", playlist_id, member_id)
        meta = await self.track_source.fetch_playlist_meta(access_token, playlist_id)
        name = (meta.name if meta else "") or f"Playlist {playlist_id}"

        page_size = self.config.page_size
        entries: List[Optional[Track]] = []
        for page in range(self.config.playlist_pages):
            entries.extend(await self.track_source.fetch_playlist_tracks_page(
                access_token, playlist_id, page_size, page * page_size
            ))

        return [
            Contribution(member_id, track, SourceType.PLAYLIST, name)
            for track in entries
            if track is not None
        ]

    async def collect_top_tracks(self, member_id: str, access_token: str) -> List[Contribution]:
        self._log_call("Using top tracks fallback for member %s", member_id)
        # every range settles before the first failure is raised
        ranges = await asyncio.gather(*(
            self.track_source.fetch_top_tracks(access_token, time_range)
            for time_range in TOP_TRACK_TIME_RANGES
        ), return_exceptions=True)
        for outcome in ranges:
            if isinstance(outcome, BaseException):
                raise outcome
        return [
            Contribution(member_id, track, SourceType.TOP_TRACKS)
            for tracks in ranges
            for track in tracks
        ]
