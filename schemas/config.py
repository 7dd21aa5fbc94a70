"""
Pydantic schema for the transfer run configuration
"""

from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Dict
from models.base import (
    TransferMode,
    ExtractionMode,
    OrgUnitSource,
    PeriodType,
    ValuePolicy,
    ImportStrategy,
    PayloadFormat,
)


class TransferConfig(BaseModel):
    """
    Configuration of one transfer run.

    Date fields are kept as strings; the runner checks their format and
    ordering before issuing any network call.
    """

    data_sets: List[str] = Field(default_factory=list)
    start_date: str = ""
    end_date: str = ""

    # Org unit scope
    org_unit_levels: List[int] = Field(default_factory=list)
    org_unit_names: List[str] = Field(default_factory=list)
    org_units_from: OrgUnitSource = OrgUnitSource.SOURCE
    leaf_org_units_only: bool = False

    # Dataset id -> reporting frequency, used in dataset mode
    period_types: Dict[str, PeriodType] = Field(default_factory=dict)

    transfer_mode: TransferMode = TransferMode.ORG_UNIT
    extraction_mode: ExtractionMode = ExtractionMode.CSV
    sql_view_id: Optional[str] = None
    include_children: bool = False
    restrict_to_dataset_elements: bool = False
    value_policy: ValuePolicy = ValuePolicy.PRESERVE

    batch_size: int = 1000
    concurrency: int = 3
    unit_timeout: Optional[float] = None
    staging_dir: Optional[str] = None

    # Import options
    strategy: ImportStrategy = ImportStrategy.NEW_AND_UPDATES
    async_import: bool = False
    dry_run: bool = False
    skip_audit: bool = False
    id_scheme: str = "UID"
    payload_format: PayloadFormat = PayloadFormat.JSON

    @field_validator("period_types", mode="before")
    @classmethod
    def lower_period_types(cls, v):
        """Accept DHIS2 spellings such as "Monthly" """
        if isinstance(v, dict):
            return {k: str(p).lower() for k, p in v.items()}
        return v

    @field_validator("data_sets", "org_unit_names", mode="before")
    @classmethod
    def split_csv(cls, v):
        """Accept comma-separated strings as lists"""
        if isinstance(v, str):
            return [item.strip() for item in v.split(",") if item.strip()]
        return v
