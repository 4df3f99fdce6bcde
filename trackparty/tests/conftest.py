import os
import sys

import pytest


def _ensure_project_root_on_sys_path() -> None:
    here = os.path.dirname(__file__)
    project_root = os.path.abspath(os.path.join(here, "..", ".."))
    if project_root not in sys.path:
        sys.path.insert(0, project_root)


_ensure_project_root_on_sys_path()

from trackparty.tests.fakes import ScriptedTrackSource  # noqa: E402


@pytest.fixture(autouse=True)
def _clear_trackparty_env():
    """Keep TRACKPARTY_* and LOG_SPOTIFY_API_CALLS from leaking into tests."""
    keys = [k for k in os.environ if k.startswith('TRACKPARTY_')] + ['LOG_SPOTIFY_API_CALLS']
    backup = {k: os.environ.get(k) for k in keys}
    for k in keys:
        os.environ.pop(k, None)
    try:
        yield
    finally:
        for k, v in backup.items():
            if v is None:
                os.environ.pop(k, None)
            else:
                os.environ[k] = v


@pytest.fixture
def track_source():
    return ScriptedTrackSource()
