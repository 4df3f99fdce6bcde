from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Protocol

from .entities import SourcePreference, Track


@dataclass(frozen=True)
class SavedTracksPage:
    items: List[Track] = field(default_factory=list)
    total: int = 0


@dataclass(frozen=True)
class PlaylistMeta:
    name: str = ""


class TrackSource(Protocol):
    """Port for the streaming service that supplies candidate tracks.

    Implementations map provider payloads into domain tracks and raise the errors
    from ``trackparty.domain.errors`` on upstream failure.
    """

    async def fetch_saved_tracks_page(self, access_token: str, limit: int, offset: int) -> SavedTracksPage:
        """Return one page of the user's saved tracks plus the library total."""

    async def fetch_recently_played(self, access_token: str, limit: int) -> List[Track]:
        """Return up to ``limit`` most recently played tracks."""

    async def fetch_playlist_meta(self, access_token: str, playlist_id: str) -> PlaylistMeta:
        """Return display metadata for a playlist."""

    async def fetch_playlist_tracks_page(self, access_token: str, playlist_id: str,
                                         limit: int, offset: int) -> List[Optional[Track]]:
        """Return one page of playlist entries; removed entries come back as None."""

    async def fetch_top_tracks(self, access_token: str, time_range: str) -> List[Track]:
        """Return the user's top tracks for a time range."""


class MembershipStore(Protocol):
    """Port resolving who is in a group and what they want to contribute."""

    async def resolve_members(self, group_id: str) -> List[str]:
        """Return member ids, possibly suffixed with a participant marker."""

    async def resolve_preference(self, group_id: str, base_member_id: str) -> Optional[SourcePreference]:
        """Return the member's source preference for the group, if any."""


class CredentialStore(Protocol):
    """Port resolving stored access tokens and display names."""

    async def resolve_credential(self, base_member_id: str) -> Optional[str]:
        """Return the member's access token, or None when not connected."""

    async def resolve_display_name(self, base_member_id: str) -> Optional[str]:
        """Return the member's display name, if known."""
