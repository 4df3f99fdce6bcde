import os
from dataclasses import dataclass
from typing import Dict, Mapping, Optional

from dotenv import dotenv_values


class ConfigError(Exception):
    """Configuration error."""
    pass


def _truthy(value: Optional[str]) -> bool:
    return (value or '').strip().lower() in ('1', 'true', 'yes', 'on')


def _read_int(env: Mapping[str, Optional[str]], key: str, default: int, minimum: int = 1) -> int:
    raw = env.get(key)
    if raw is None or not str(raw).strip():
        return default
    try:
        value = int(str(raw).strip())
    except ValueError:
        raise ConfigError(f"{key} must be an integer, got {raw!r}")
    if value < minimum:
        raise ConfigError(f"{key} must be >= {minimum}, got {value}")
    return value


def _merged_env(env_file: Optional[str]) -> Dict[str, Optional[str]]:
    """Values from an optional .env file, overridden by the process environment."""
    env: Dict[str, Optional[str]] = {}
    if env_file:
        if not os.path.exists(env_file):
            raise ConfigError(f"Env file not found: {env_file}")
        env.update(dotenv_values(env_file))
    env.update(os.environ)
    return env


@dataclass(frozen=True)
class AggregationConfig:
    """Fetch limits and switches used while collecting member tracks."""

    liked_sample_size: int = 200
    page_size: int = 50
    recent_limit: int = 50
    playlist_pages: int = 2
    top_tracks_limit: int = 50
    default_target_count: int = 100
    log_api_calls: bool = False


@dataclass(frozen=True)
class SpotifyClientConfig:
    """Options passed to the spotipy client."""

    requests_timeout: int = 10
    retries: int = 3

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "SpotifyClientConfig":
        env = _merged_env(env_file)
        return cls(
            requests_timeout=_read_int(env, 'TRACKPARTY_SPOTIFY_TIMEOUT', cls.requests_timeout),
            retries=_read_int(env, 'TRACKPARTY_SPOTIFY_RETRIES', cls.retries, minimum=0),
        )


def load_config(env_file: Optional[str] = None) -> AggregationConfig:
    """Build the aggregation config from the environment and an optional .env file."""
    env = _merged_env(env_file)
    defaults = AggregationConfig()
    return AggregationConfig(
        liked_sample_size=_read_int(env, 'TRACKPARTY_LIKED_SAMPLE_SIZE', defaults.liked_sample_size),
        page_size=_read_int(env, 'TRACKPARTY_PAGE_SIZE', defaults.page_size),
        recent_limit=_read_int(env, 'TRACKPARTY_RECENT_LIMIT', defaults.recent_limit),
        playlist_pages=_read_int(env, 'TRACKPARTY_PLAYLIST_PAGES', defaults.playlist_pages),
        top_tracks_limit=_read_int(env, 'TRACKPARTY_TOP_TRACKS_LIMIT', defaults.top_tracks_limit),
        default_target_count=_read_int(env, 'TRACKPARTY_TARGET_COUNT', defaults.default_target_count),
        log_api_calls=_truthy(env.get('LOG_SPOTIFY_API_CALLS')),
    )
