from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Set

from trackparty.domain.entities import Attribution, AttributionSource, Track


@dataclass
class PoolEntry:
    """A distinct track together with every source that contributed it."""

    track: Track
    sources: List[AttributionSource]

    @property
    def member_ids(self) -> List[str]:
        return [source.user_id for source in self.sources]


@dataclass
class Selection:
    tracks: List[Track] = field(default_factory=list)
    attributions: Dict[str, Attribution] = field(default_factory=dict)
    member_counts: Dict[str, int] = field(default_factory=dict)
    first_pass_count: int = 0
    fill_pass_count: int = 0


def quota_per_member(target_count: int, member_count: int) -> int:
    """Ceiling share of the target for each contributing member."""
    if member_count <= 0:
        return 0
    return math.ceil(target_count / member_count)


def select_balanced(pool: List[PoolEntry], members: Iterable[str], target_count: int) -> Selection:
    """Pick up to ``target_count`` tracks from an already shuffled pool.

    The first pass takes a track while any of its contributors is below their
    quota, crediting every contributor of the track. The second pass fills the
    remaining slots in pool order with no balance constraint.
    """
    selection = Selection(member_counts={member_id: 0 for member_id in members})
    quota = quota_per_member(target_count, len(selection.member_counts))
    selected: Set[str] = set()

    def take(entry: PoolEntry) -> None:
        selection.tracks.append(entry.track)
        selection.attributions[entry.track.id] = Attribution(
            track_id=entry.track.id,
            sources=list(entry.sources),
        )
        selected.add(entry.track.id)

    for entry in pool:
        if len(selection.tracks) >= target_count:
            break
        if not any(selection.member_counts.get(m, 0) < quota for m in entry.member_ids):
            continue
        take(entry)
        for member_id in entry.member_ids:
            selection.member_counts[member_id] = selection.member_counts.get(member_id, 0) + 1
    selection.first_pass_count = len(selection.tracks)

    if len(selection.tracks) < target_count:
        for entry in pool:
            if len(selection.tracks) >= target_count:
                break
            if entry.track.id in selected:
                continue
            take(entry)
    selection.fill_pass_count = len(selection.tracks) - selection.first_pass_count

    return selection
