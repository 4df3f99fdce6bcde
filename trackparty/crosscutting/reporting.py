import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from trackparty.crosscutting.metrics import AggregationMetrics
from trackparty.domain.entities import AggregationResult


@dataclass
class ReportHeader:
    """Header information for an aggregation report."""

    group_id: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    target_count: int = 0
    seed: Optional[int] = None

    def to_json(self) -> Dict[str, Any]:
        """Serialize header to JSON."""
        return {
            "groupId": self.group_id,
            "startedAt": self.started_at.isoformat(),
            "finishedAt": self.finished_at.isoformat() if self.finished_at else None,
            "targetCount": self.target_count,
            "seed": self.seed,
        }

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "ReportHeader":
        """Deserialize header from JSON."""
        return cls(
            group_id=data["groupId"],
            started_at=datetime.fromisoformat(data["startedAt"]),
            finished_at=datetime.fromisoformat(data["finishedAt"]) if data.get("finishedAt") else None,
            target_count=data.get("targetCount", 0),
            seed=data.get("seed"),
        )


@dataclass
class MemberSummary:
    """What a single member brought to the final list."""

    member_id: str
    user_name: str = ""
    status: str = "contributed"
    contributed: int = 0
    selected: int = 0
    primary: int = 0
    sources: Dict[str, int] = field(default_factory=dict)

    def to_json(self) -> Dict[str, Any]:
        return {
            "memberId": self.member_id,
            "userName": self.user_name,
            "status": self.status,
            "contributed": self.contributed,
            "selected": self.selected,
            "primary": self.primary,
            "sources": dict(self.sources),
        }

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "MemberSummary":
        return cls(
            member_id=data["memberId"],
            user_name=data.get("userName", ""),
            status=data.get("status", "contributed"),
            contributed=data.get("contributed", 0),
            selected=data.get("selected", 0),
            primary=data.get("primary", 0),
            sources=data.get("sources", {}),
        )


@dataclass
class Report:
    """Aggregation report: header, per-member summaries and the ordered track ids."""

    header: ReportHeader
    members: List[MemberSummary]
    track_ids: List[str]

    def to_json(self) -> Dict[str, Any]:
        """Serialize report to JSON."""
        return {
            "header": self.header.to_json(),
            "members": [m.to_json() for m in self.members],
            "trackIds": list(self.track_ids),
        }

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "Report":
        """Deserialize report from JSON."""
        return cls(
            header=ReportHeader.from_json(data["header"]),
            members=[MemberSummary.from_json(m) for m in data.get("members", [])],
            track_ids=list(data.get("trackIds", [])),
        )

    def save(self, path: str) -> None:
        with open(path, 'w') as f:
            json.dump(self.to_json(), f, indent=2, ensure_ascii=False)


def create_report_header(group_id: str, target_count: int, seed: Optional[int] = None) -> ReportHeader:
    """Create a new report header."""
    return ReportHeader(
        group_id=group_id,
        started_at=datetime.now(timezone.utc),
        target_count=target_count,
        seed=seed,
    )


def summarize_members(result: AggregationResult,
                      metrics: Optional[AggregationMetrics] = None) -> List[MemberSummary]:
    """Per-member summaries in member-processing order.

    Members that were skipped or failed only appear when metrics were collected.
    """
    summaries: Dict[str, MemberSummary] = {}
    for member_id, track_ids in result.by_member.items():
        summaries[member_id] = MemberSummary(member_id=member_id, contributed=len(track_ids))

    if metrics and metrics.run:
        for entry in metrics.run.members:
            summary = summaries.setdefault(entry.member_id, MemberSummary(member_id=entry.member_id))
            summary.status = entry.status

    for member_id, count in result.primary_contributions().items():
        summaries.setdefault(member_id, MemberSummary(member_id=member_id)).primary = count

    for attribution in result.attributions.values():
        counted = set()
        for source in attribution.sources:
            summary = summaries.setdefault(source.user_id, MemberSummary(member_id=source.user_id))
            summary.user_name = summary.user_name or source.user_name
            key = source.source_type.value
            summary.sources[key] = summary.sources.get(key, 0) + 1
            if source.user_id not in counted:
                summary.selected += 1
                counted.add(source.user_id)

    return list(summaries.values())


def create_report(header: ReportHeader, result: AggregationResult,
                  metrics: Optional[AggregationMetrics] = None) -> Report:
    """Create a finished report for an aggregation result."""
    header.finished_at = datetime.now(timezone.utc)
    return Report(
        header=header,
        members=summarize_members(result, metrics),
        track_ids=result.track_ids,
    )
