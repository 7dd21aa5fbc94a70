from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from models.base import UnitState
from schemas.metadata import OrgUnit
from schemas.results import Conflict, ImportReport


@dataclass
class WorkUnit:
    """
    Tracks one (org unit x dataset scope) transfer while it runs.

    Purpose:
    - Lifecycle state of the unit (PENDING ... DONE | FAILED)
    - Running import counters, summed batch by batch
    - Timing and error tracking
    """

    org_unit: OrgUnit
    data_sets: Tuple[str, ...]
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    period: Optional[str] = None

    state: UnitState = UnitState.PENDING
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    report: ImportReport = field(default_factory=ImportReport)
    records_read: int = 0
    records_dropped: int = 0
    batches: int = 0
    batch_errors: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def label(self) -> str:
        scope = self.period or f"{self.start_date}..{self.end_date}"
        return f"{self.org_unit.name} [{','.join(self.data_sets)}] {scope}"

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.started_at is None or self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds()

    def transition(self, state: UnitState):
        if state == UnitState.FETCHING and self.started_at is None:
            self.started_at = datetime.now(timezone.utc)
        if state in (UnitState.DONE, UnitState.FAILED):
            self.completed_at = datetime.now(timezone.utc)
        self.state = state

    def record_batch(self, report: ImportReport):
        self.report = self.report + report
        self.batches += 1

    def fail(self, message: str):
        self.error = message
        self.transition(UnitState.FAILED)

    @property
    def conflicts(self) -> List[Conflict]:
        return self.report.conflicts
