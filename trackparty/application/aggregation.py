from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from trackparty.application.collection import MemberCollector
from trackparty.application.selection import PoolEntry, select_balanced
from trackparty.application.shuffle import RandomShuffle, SeededLcgShuffle, ShuffleStrategy, shuffle_pool
from trackparty.crosscutting.config import AggregationConfig
from trackparty.crosscutting.logging import (
    CorrelationContext,
    log_aggregation_complete,
    log_aggregation_start,
    log_error,
    log_member_contributed,
    log_member_skipped,
)
from trackparty.crosscutting.metrics import (
    MEMBER_CONTRIBUTED,
    MEMBER_FAILED,
    MEMBER_NO_CREDENTIAL,
    AggregationMetrics,
)
from trackparty.domain.entities import (
    AggregationResult,
    AttributionSource,
    Contribution,
    ExplicitPreference,
    base_member_id,
    normalize_preference,
)
from trackparty.domain.ports import CredentialStore, MembershipStore, TrackSource


logger = logging.getLogger(__name__)


@dataclass
class MemberContributions:
    """Everything one member contributed during a run."""

    member_id: str
    user_name: str
    contributions: List[Contribution] = field(default_factory=list)

    @property
    def unique_track_ids(self) -> List[str]:
        return list(dict.fromkeys(c.track.id for c in self.contributions))


def build_pool(collections: List[MemberContributions]) -> List[PoolEntry]:
    """Merge member contributions into one entry per distinct track.

    Sources keep member-processing order; the first copy of a track seen is the
    representative one.
    """
    pool: Dict[str, PoolEntry] = {}
    for collection in collections:
        for contribution in collection.contributions:
            entry = pool.get(contribution.track.id)
            if entry is None:
                entry = pool[contribution.track.id] = PoolEntry(track=contribution.track, sources=[])
            entry.sources.append(AttributionSource(
                user_id=collection.member_id,
                user_name=collection.user_name,
                source_type=contribution.source_type,
                source_detail=contribution.source_detail,
            ))
    return list(pool.values())


class Aggregator:
    """Builds a balanced, attributed quiz track list from a group's listening history."""

    def __init__(self,
                 membership: MembershipStore,
                 credentials: CredentialStore,
                 track_source: TrackSource,
                 config: Optional[AggregationConfig] = None,
                 shuffle_strategy: Optional[ShuffleStrategy] = None,
                 metrics: Optional[AggregationMetrics] = None,
                 offset_rng: Optional[random.Random] = None,
                 shuffle_rng: Optional[random.Random] = None):
        """Initialize aggregator.

        Args:
            membership: Resolves group members and their source preferences
            credentials: Resolves access tokens and display names
            track_source: Streaming API adapter
            config: Fetch limits; defaults to AggregationConfig()
            shuffle_strategy: Seeded shuffle used when a seed is supplied
            metrics: Optional collector filled in on every run
            offset_rng: Random source for liked-track sampling offsets
            shuffle_rng: Random source for unseeded shuffles
        """
        self.membership = membership
        self.credentials = credentials
        self.config = config or AggregationConfig()
        self.collector = MemberCollector(track_source, self.config, offset_rng)
        self.seeded_shuffle = shuffle_strategy or SeededLcgShuffle()
        self.unseeded_shuffle = RandomShuffle(shuffle_rng)
        self.metrics = metrics

    async def aggregate(self, group_id: str, target_count: int = 100,
                        seed: Optional[int] = None) -> AggregationResult:
        """Aggregate the group's tracks into at most ``target_count`` quiz tracks.

        Per-member failures are logged and skipped. Errors resolving the member
        list propagate to the caller unchanged.
        """
        if isinstance(target_count, bool) or not isinstance(target_count, int) or target_count <= 0:
            raise ValueError(f"target_count must be a positive integer, got {target_count!r}")
        if seed is not None and (isinstance(seed, bool) or not isinstance(seed, int) or seed < 0):
            raise ValueError(f"seed must be a non-negative integer, got {seed!r}")

        members = await self.membership.resolve_members(group_id)

        with CorrelationContext(group_id=group_id):
            if self.metrics:
                self.metrics.start_run(group_id, target_count, seed)
            log_aggregation_start(logger, group_id, len(members), target_count, seed)

            collections: List[MemberContributions] = []
            by_member: Dict[str, List[str]] = {}
            for member_id in members:
                collection = await self._collect_member(group_id, member_id)
                if collection is None:
                    continue
                collections.append(collection)
                by_member[member_id] = collection.unique_track_ids

            contributing = [c for c in collections if c.contributions]
            if not contributing:
                logger.info(f"No member of group {group_id} contributed any tracks")
                self._finish_metrics(0, 0, 0)
                return AggregationResult()

            pool = build_pool(contributing)
            logger.info(f"Found {len(pool)} unique tracks from {len(contributing)} members")

            shuffled = shuffle_pool(pool, seed, self.seeded_shuffle, self.unseeded_shuffle)
            selection = select_balanced(
                shuffled, [c.member_id for c in contributing], target_count
            )

            self._finish_metrics(len(pool), selection.first_pass_count, selection.fill_pass_count)
            log_aggregation_complete(
                logger, group_id, len(selection.tracks), len(contributing),
                pool_size=len(pool),
                fill_pass_selected=selection.fill_pass_count,
                member_counts=selection.member_counts,
            )

            return AggregationResult(
                tracks=selection.tracks,
                by_member=by_member,
                attributions=selection.attributions,
            )

    async def _collect_member(self, group_id: str, member_id: str) -> Optional[MemberContributions]:
        base_id = base_member_id(member_id)
        if self.metrics:
            self.metrics.start_member(member_id)

        try:
            access_token = await self.credentials.resolve_credential(base_id)
            if not access_token:
                log_member_skipped(logger, member_id, 'no_credential')
                if self.metrics:
                    self.metrics.record_member(member_id, MEMBER_NO_CREDENTIAL)
                return None

            user_name = await self.credentials.resolve_display_name(base_id) or base_id
            preference = normalize_preference(
                await self.membership.resolve_preference(group_id, base_id)
            )
            source = 'preferences' if isinstance(preference, ExplicitPreference) else 'top_tracks'
            contributions = await self.collector.collect(member_id, access_token, preference)
        except Exception as e:
            log_error(logger, f"Error fetching tracks for member {member_id}", e, member_id=member_id)
            if self.metrics:
                self.metrics.record_member(member_id, MEMBER_FAILED, error=e)
            return None

        collection = MemberContributions(member_id, user_name, contributions)
        unique_count = len(collection.unique_track_ids)
        log_member_contributed(logger, member_id, unique_count, source)
        if self.metrics:
            self.metrics.record_member(
                member_id, MEMBER_CONTRIBUTED, source=source,
                fetched_count=len(contributions), unique_count=unique_count,
            )
        return collection

    def _finish_metrics(self, pool_size: int, first_pass: int, fill_pass: int) -> None:
        if not self.metrics:
            return
        self.metrics.record_pool(pool_size)
        self.metrics.record_selection(first_pass, fill_pass)
        self.metrics.end_run()
