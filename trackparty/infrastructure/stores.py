import json
import logging
from typing import Any, Dict, List, Optional, Tuple

from trackparty.crosscutting.config import ConfigError
from trackparty.domain.entities import ExplicitPreference, Member, SourcePreference
from trackparty.domain.ports import CredentialStore, MembershipStore

logger = logging.getLogger(__name__)


class InMemoryLobby(MembershipStore):
    """Group membership, hosts and per-member source preferences.

    Owned by the host application; create one at startup and share it between
    the lobby endpoints and the aggregator.
    """

    def __init__(self):
        self._groups: Dict[str, Dict[str, None]] = {}
        self._hosts: Dict[str, str] = {}
        self._preferences: Dict[Tuple[str, str], SourcePreference] = {}

    def join(self, group_id: str, member_id: str) -> None:
        self._groups.setdefault(group_id, {})[member_id] = None

    def leave(self, group_id: str, member_id: str) -> None:
        self._groups.get(group_id, {}).pop(member_id, None)

    def set_host(self, group_id: str, member_id: str) -> None:
        """Record the group's host. The first host set wins."""
        self._hosts.setdefault(group_id, member_id)

    def get_host(self, group_id: str) -> Optional[str]:
        return self._hosts.get(group_id)

    def members(self, group_id: str) -> List[str]:
        return list(self._groups.get(group_id, {}))

    def members_detailed(self, group_id: str) -> List[Member]:
        host = self._hosts.get(group_id)
        return [
            Member(id=member_id, role='host' if member_id == host else 'player')
            for member_id in self.members(group_id)
        ]

    def set_preference(self, group_id: str, member_id: str, preference: SourcePreference) -> None:
        self._preferences[(group_id, member_id)] = preference

    def get_preference(self, group_id: str, member_id: str) -> Optional[SourcePreference]:
        return self._preferences.get((group_id, member_id))

    async def resolve_members(self, group_id: str) -> List[str]:
        return self.members(group_id)

    async def resolve_preference(self, group_id: str, base_member_id: str) -> Optional[SourcePreference]:
        return self.get_preference(group_id, base_member_id)


class InMemoryCredentialStore(CredentialStore):
    """Access tokens, display names and avatars keyed by account id."""

    def __init__(self):
        self._tokens: Dict[str, Dict[str, Any]] = {}
        self._names: Dict[str, str] = {}
        self._avatars: Dict[str, str] = {}

    def save_user(self, user_id: str, name: str, tokens: Dict[str, Any],
                  avatar_url: Optional[str] = None) -> None:
        logger.debug(f"Saving user {user_id} ({name})")
        self._names[user_id] = name
        self._tokens[user_id] = dict(tokens)
        if avatar_url:
            self._avatars[user_id] = avatar_url

    def get_tokens(self, user_id: str) -> Optional[Dict[str, Any]]:
        return self._tokens.get(user_id)

    def get_name(self, user_id: str) -> Optional[str]:
        return self._names.get(user_id)

    def get_avatar(self, user_id: str) -> Optional[str]:
        return self._avatars.get(user_id)

    def stored_users(self) -> List[str]:
        return list(self._tokens)

    async def resolve_credential(self, base_member_id: str) -> Optional[str]:
        tokens = self._tokens.get(base_member_id)
        if not tokens:
            return None
        return tokens.get('access_token')

    async def resolve_display_name(self, base_member_id: str) -> Optional[str]:
        return self._names.get(base_member_id)


def _parse_preference(data: Any, where: str) -> SourcePreference:
    if not isinstance(data, dict):
        raise ConfigError(f"Preference for {where} must be an object")
    return ExplicitPreference(
        include_liked=bool(data.get('includeLiked', False)),
        include_recent=bool(data.get('includeRecent', False)),
        include_playlist=bool(data.get('includePlaylist', False)),
        playlist_id=data.get('playlistId') or None,
    )


def load_lobby_snapshot(path: str) -> Tuple[InMemoryLobby, InMemoryCredentialStore]:
    """Build stores from a JSON snapshot.

    Expected layout::

        {
          "users": {"<id>": {"name": "...", "access_token": "...", "avatar_url": "..."}},
          "groups": {"<code>": {"host": "<id>", "members": ["<id>", "<id>#participant"],
                                "preferences": {"<id>": {"includeLiked": true, ...}}}}
        }
    """
    try:
        with open(path, 'r') as f:
            data = json.load(f)
    except (json.JSONDecodeError, IOError) as e:
        raise ConfigError(f"Failed to load lobby snapshot from {path}: {e}")

    if not isinstance(data, dict):
        raise ConfigError(f"Lobby snapshot {path} must contain a JSON object")

    lobby = InMemoryLobby()
    credentials = InMemoryCredentialStore()

    for user_id, user in (data.get('users') or {}).items():
        if not isinstance(user, dict):
            raise ConfigError(f"User entry {user_id!r} must be an object")
        tokens = {k: v for k, v in user.items() if k in ('access_token', 'refresh_token', 'expires_at')}
        credentials.save_user(user_id, user.get('name') or user_id, tokens, user.get('avatar_url'))

    for group_id, group in (data.get('groups') or {}).items():
        if not isinstance(group, dict):
            raise ConfigError(f"Group entry {group_id!r} must be an object")
        for member_id in group.get('members') or []:
            lobby.join(group_id, member_id)
        if group.get('host'):
            lobby.set_host(group_id, group['host'])
        for member_id, preference in (group.get('preferences') or {}).items():
            lobby.set_preference(group_id, member_id, _parse_preference(preference, f"{group_id}/{member_id}"))

    return lobby, credentials
