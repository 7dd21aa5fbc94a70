"""
Pydantic schemas for import reports and transfer results
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List, Dict, Any
from models.base import UnitState


COUNT_FIELDS = ("imported", "updated", "ignored", "deleted")


class Conflict(BaseModel):
    """Per-record rejection detail returned by the destination"""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    object: Optional[str] = None
    value: Optional[str] = None
    error_code: Optional[str] = Field(None, alias="errorCode")


class ImportReport(BaseModel):
    """
    Destination's response to one submitted batch.

    Reports are additive so that batch results can be folded into unit
    totals and unit totals into run totals.
    """

    status: Optional[str] = None
    imported: int = 0
    updated: int = 0
    ignored: int = 0
    deleted: int = 0
    conflicts: List[Conflict] = Field(default_factory=list)
    description: Optional[str] = None
    job_id: Optional[str] = None

    def __add__(self, other: "ImportReport") -> "ImportReport":
        return ImportReport(
            status=other.status or self.status,
            imported=self.imported + other.imported,
            updated=self.updated + other.updated,
            ignored=self.ignored + other.ignored,
            deleted=self.deleted + other.deleted,
            conflicts=self.conflicts + other.conflicts,
            description=other.description or self.description,
            job_id=other.job_id or self.job_id,
        )

    @property
    def total(self) -> int:
        return self.imported + self.updated + self.ignored + self.deleted

    @classmethod
    def from_response(cls, body: Any) -> Optional["ImportReport"]:
        """
        Extract an import report from a dataValueSets response body.

        Accepts the wrapped shape ({"response": {"importCount": {...}}}),
        the flat legacy shape ({"importCount": {...}}), counts placed
        directly under "response", and the job reference returned by
        asynchronous imports.

        Returns:
            ImportReport, or None when the body carries no report
        """
        if not isinstance(body, dict):
            return None

        inner = body.get("response")
        if not isinstance(inner, dict):
            inner = body

        if "jobType" in inner or str(inner.get("responseType", "")).startswith("JobConfiguration"):
            return cls(
                status="SCHEDULED",
                job_id=inner.get("id"),
                description=body.get("message"),
            )

        counts = inner.get("importCount") or inner.get("importCounts")
        if not isinstance(counts, dict):
            counts = inner if any(k in inner for k in COUNT_FIELDS) else None

        conflicts = inner.get("conflicts") or []
        if counts is None and not conflicts:
            return None

        counts = counts or {}
        return cls(
            status=inner.get("status") or body.get("status"),
            imported=int(counts.get("imported") or 0),
            updated=int(counts.get("updated") or 0),
            ignored=int(counts.get("ignored") or 0),
            deleted=int(counts.get("deleted") or 0),
            conflicts=[Conflict.model_validate(c) for c in conflicts if isinstance(c, dict)],
            description=inner.get("description") or body.get("message"),
        )


class TransferOutcome(BaseModel):
    """Result of one unit of work"""

    org_unit_id: str
    org_unit_name: str
    data_sets: List[str] = Field(default_factory=list)
    period: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    state: UnitState = UnitState.DONE

    imported: int = 0
    updated: int = 0
    ignored: int = 0
    deleted: int = 0
    conflicts: List[Conflict] = Field(default_factory=list)

    records_read: int = 0
    records_dropped: int = 0
    batches: int = 0
    batch_errors: List[str] = Field(default_factory=list)
    error: Optional[str] = None
    duration_seconds: Optional[float] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None

    @classmethod
    def from_unit(cls, unit) -> "TransferOutcome":
        """Snapshot a finished WorkUnit"""
        return cls(
            org_unit_id=unit.org_unit.id,
            org_unit_name=unit.org_unit.display_name,
            data_sets=list(unit.data_sets),
            period=unit.period,
            start_date=unit.start_date,
            end_date=unit.end_date,
            state=unit.state,
            imported=unit.report.imported,
            updated=unit.report.updated,
            ignored=unit.report.ignored,
            deleted=unit.report.deleted,
            conflicts=list(unit.report.conflicts),
            records_read=unit.records_read,
            records_dropped=unit.records_dropped,
            batches=unit.batches,
            batch_errors=list(unit.batch_errors),
            error=unit.error,
            duration_seconds=unit.duration_seconds,
        )


class UnitError(BaseModel):
    """Failed unit entry of the summary"""

    org_unit: str
    org_unit_id: str
    period: Optional[str] = None
    data_sets: List[str] = Field(default_factory=list)
    error: str


class TransferSummary(BaseModel):
    """
    Aggregate of all unit outcomes of a run.

    Totals are summed over every unit, failed units included, so that
    counts for batches submitted before a unit failed are not lost.
    """

    total_imported: int = 0
    total_updated: int = 0
    total_ignored: int = 0
    total_deleted: int = 0
    total_conflicts: int = 0
    total_records: int = 0
    total_dropped: int = 0

    total_units: int = 0
    total_org_units: int = 0
    successful_units: int = 0
    failed_units: int = 0
    errors: List[UnitError] = Field(default_factory=list)
    outcomes: List[TransferOutcome] = Field(default_factory=list)

    duration_seconds: float = 0.0
    interrupted: bool = False

    def add(self, outcome: TransferOutcome):
        """Fold one finished unit into the totals"""
        self.outcomes.append(outcome)
        self.total_units += 1
        self.total_imported += outcome.imported
        self.total_updated += outcome.updated
        self.total_ignored += outcome.ignored
        self.total_deleted += outcome.deleted
        self.total_conflicts += len(outcome.conflicts)
        self.total_records += outcome.records_read
        self.total_dropped += outcome.records_dropped
        self.total_org_units = len({o.org_unit_id for o in self.outcomes})

        if outcome.succeeded:
            self.successful_units += 1
        else:
            self.failed_units += 1
            self.errors.append(
                UnitError(
                    org_unit=outcome.org_unit_name,
                    org_unit_id=outcome.org_unit_id,
                    period=outcome.period,
                    data_sets=outcome.data_sets,
                    error=outcome.error,
                )
            )

    def outcome_for(self, org_unit_id: str) -> List[TransferOutcome]:
        return [o for o in self.outcomes if o.org_unit_id == org_unit_id]

    def to_log_dict(self) -> Dict[str, Any]:
        return self.model_dump(exclude={"outcomes"})
