from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union


_YEAR_RE = re.compile(r'^(\d{4})')


class SourceType(str, Enum):
    """Category a contributed track was pulled from."""

    LIKED = "liked"
    RECENT = "recent"
    PLAYLIST = "playlist"
    TOP_TRACKS = "top_tracks"


@dataclass(frozen=True)
class AlbumImage:
    url: str
    width: Optional[int] = None
    height: Optional[int] = None


@dataclass(frozen=True)
class Album:
    """Album metadata carried by a track."""

    name: str = ""
    release_date: str = ""
    images: List[AlbumImage] = field(default_factory=list)


@dataclass(frozen=True)
class Track:
    """Catalog track as returned by the track source. Immutable once fetched."""

    id: str
    title: str = ""
    artists: List[str] = field(default_factory=list)
    album: Album = field(default_factory=Album)
    duration_ms: int = 0
    preview_url: Optional[str] = None

    @property
    def release_year(self) -> Optional[int]:
        """Four-digit year parsed from the album release date, if any."""
        match = _YEAR_RE.match(self.album.release_date or "")
        return int(match.group(1)) if match else None

    def to_json(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.title,
            "artists": [{"name": name} for name in self.artists],
            "album": {
                "name": self.album.name,
                "release_date": self.album.release_date,
                "images": [
                    {"url": image.url, "width": image.width, "height": image.height}
                    for image in self.album.images
                ],
            },
            "duration_ms": self.duration_ms,
            "preview_url": self.preview_url,
        }


@dataclass(frozen=True)
class NoPreference:
    """Member has not chosen any source; top tracks are used instead."""


@dataclass(frozen=True)
class ExplicitPreference:
    """Member's chosen sources for a group."""

    include_liked: bool = False
    include_recent: bool = False
    include_playlist: bool = False
    playlist_id: Optional[str] = None

    @property
    def has_any_source(self) -> bool:
        return self.include_liked or self.include_recent or self.include_playlist


SourcePreference = Union[NoPreference, ExplicitPreference]


def normalize_preference(preference: Optional[SourcePreference]) -> SourcePreference:
    """Collapse absent or all-false preferences into NoPreference."""
    if isinstance(preference, ExplicitPreference) and preference.has_any_source:
        return preference
    return NoPreference()


@dataclass(frozen=True)
class Contribution:
    """One (member, track, category) fact discovered while fetching."""

    member_id: str
    track: Track
    source_type: SourceType
    source_detail: Optional[str] = None


@dataclass(frozen=True)
class AttributionSource:
    user_id: str
    user_name: str
    source_type: SourceType
    source_detail: Optional[str] = None

    def to_json(self) -> Dict[str, Any]:
        data = {
            "userId": self.user_id,
            "userName": self.user_name,
            "sourceType": self.source_type.value,
        }
        if self.source_detail is not None:
            data["sourceDetail"] = self.source_detail
        return data


@dataclass(frozen=True)
class Attribution:
    """Every contribution explaining why a track is in the final list."""

    track_id: str
    sources: List[AttributionSource] = field(default_factory=list)

    @property
    def member_ids(self) -> List[str]:
        return [source.user_id for source in self.sources]

    def to_json(self) -> Dict[str, Any]:
        return {
            "trackId": self.track_id,
            "sources": [source.to_json() for source in self.sources],
        }


@dataclass
class AggregationResult:
    """Outcome of one aggregation run."""

    tracks: List[Track] = field(default_factory=list)
    by_member: Dict[str, List[str]] = field(default_factory=dict)
    attributions: Dict[str, Attribution] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.tracks

    @property
    def track_ids(self) -> List[str]:
        return [track.id for track in self.tracks]

    def primary_contributions(self) -> Dict[str, int]:
        """Count selected tracks per member using each track's first source."""
        counts: Dict[str, int] = {}
        for track in self.tracks:
            attribution = self.attributions.get(track.id)
            if not attribution or not attribution.sources:
                continue
            primary = attribution.sources[0].user_id
            counts[primary] = counts.get(primary, 0) + 1
        return counts

    def to_json(self) -> Dict[str, Any]:
        return {
            "tracks": [track.to_json() for track in self.tracks],
            "byUser": {member_id: list(ids) for member_id, ids in self.by_member.items()},
            "attributions": {
                track_id: attribution.to_json()
                for track_id, attribution in self.attributions.items()
            },
        }


@dataclass(frozen=True)
class Member:
    """Lobby member with its role in the group."""

    id: str
    role: str = "player"

    @property
    def base_id(self) -> str:
        return base_member_id(self.id)


PARTICIPANT_SEPARATOR = "#"


def base_member_id(member_id: str) -> str:
    """Strip a secondary-identity suffix such as '#participant'."""
    return member_id.split(PARTICIPANT_SEPARATOR, 1)[0]
