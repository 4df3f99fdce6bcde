import json
import time
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Any, Dict, List, Optional


MEMBER_CONTRIBUTED = "contributed"
MEMBER_NO_CREDENTIAL = "no_credential"
MEMBER_FAILED = "failed"


@dataclass
class MemberMetrics:
    """Outcome of collecting tracks for a single member."""
    member_id: str
    status: str
    source: str = ""
    fetched_count: int = 0
    unique_count: int = 0
    duration_ms: int = 0
    error: Optional[str] = None


@dataclass
class RunMetrics:
    """Totals for one aggregation run."""
    group_id: str
    target_count: int
    seed: Optional[int] = None
    pool_size: int = 0
    first_pass_selected: int = 0
    fill_pass_selected: int = 0
    duration_ms: int = 0
    start_time: datetime = field(default_factory=datetime.now)
    end_time: Optional[datetime] = None
    members: List[MemberMetrics] = field(default_factory=list)

    @property
    def selected_count(self) -> int:
        return self.first_pass_selected + self.fill_pass_selected

    @property
    def contributing_members(self) -> int:
        return sum(1 for m in self.members if m.status == MEMBER_CONTRIBUTED)

    @property
    def skipped_members(self) -> int:
        return sum(1 for m in self.members if m.status == MEMBER_NO_CREDENTIAL)

    @property
    def failed_members(self) -> int:
        return sum(1 for m in self.members if m.status == MEMBER_FAILED)

    @property
    def fill_ratio(self) -> float:
        """Share of the target that was filled."""
        if self.target_count == 0:
            return 0.0
        return self.selected_count / self.target_count


class AggregationMetrics:
    """Collects metrics while the aggregator runs.

    One collector covers one run; ``start_run`` resets it so the aggregator can
    reuse the same instance across calls.
    """

    def __init__(self):
        self.run: Optional[RunMetrics] = None
        self._member_started: Dict[str, float] = {}
        self._run_started: Optional[float] = None

    def start_run(self, group_id: str, target_count: int, seed: Optional[int] = None) -> None:
        """Mark run start."""
        self.run = RunMetrics(group_id=group_id, target_count=target_count, seed=seed)
        self._member_started = {}
        self._run_started = time.monotonic()

    def end_run(self) -> None:
        """Mark run end."""
        if not self.run:
            return
        self.run.end_time = datetime.now()
        if self._run_started is not None:
            self.run.duration_ms = int((time.monotonic() - self._run_started) * 1000)

    def start_member(self, member_id: str) -> None:
        self._member_started[member_id] = time.monotonic()

    def _elapsed_ms(self, member_id: str) -> int:
        started = self._member_started.pop(member_id, None)
        if started is None:
            return 0
        return int((time.monotonic() - started) * 1000)

    def record_member(self, member_id: str, status: str, source: str = "",
                      fetched_count: int = 0, unique_count: int = 0,
                      error: Optional[Exception] = None) -> None:
        """Record how a member's collection ended."""
        if not self.run:
            return
        self.run.members.append(MemberMetrics(
            member_id=member_id,
            status=status,
            source=source,
            fetched_count=fetched_count,
            unique_count=unique_count,
            duration_ms=self._elapsed_ms(member_id),
            error=f"{type(error).__name__}: {error}" if error else None,
        ))

    def record_pool(self, pool_size: int) -> None:
        if self.run:
            self.run.pool_size = pool_size

    def record_selection(self, first_pass: int, fill_pass: int) -> None:
        if self.run:
            self.run.first_pass_selected = first_pass
            self.run.fill_pass_selected = fill_pass

    def member(self, member_id: str) -> Optional[MemberMetrics]:
        if not self.run:
            return None
        for entry in self.run.members:
            if entry.member_id == member_id:
                return entry
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Convert metrics to dictionary for JSON serialization."""
        if not self.run:
            return {}
        data = asdict(self.run)
        data['start_time'] = self.run.start_time.isoformat()
        data['end_time'] = self.run.end_time.isoformat() if self.run.end_time else None
        data['selected_count'] = self.run.selected_count
        data['contributing_members'] = self.run.contributing_members
        data['skipped_members'] = self.run.skipped_members
        data['failed_members'] = self.run.failed_members
        return data

    def save_to_file(self, file_path: str) -> None:
        """Save metrics to JSON file."""
        with open(file_path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2, ensure_ascii=False)
