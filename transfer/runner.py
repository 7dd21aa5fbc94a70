# ============================================================================
# File: transfer/runner.py
# Description: Transfer orchestrator with bounded concurrency and per-unit
#              failure isolation
# ============================================================================
"""
Transfer Runner - Orchestrates discovery, extraction and load across units.

This module provides the run-level orchestration with:
- Configuration validation before any network call
- Org unit and dataset membership discovery, cached for the run
- Work unit construction (per org unit, or per dataset and period)
- Bounded-concurrency execution with graceful stop
- Order-independent aggregation into a TransferSummary
"""

import asyncio
import time
from typing import Dict, List, Optional, FrozenSet
from transfer.client import DHIS2Client
from transfer.extractors import (
    RecordExtractor,
    CSVExtractor,
    JSONExtractor,
    StagedCSVExtractor,
    SQLViewExtractor,
)
from transfer.loaders.dhis2_loader import DataValueLoader, ImportOptions
from transfer.processor import UnitProcessor
from transfer.periods import parse_date, periods_between
from models.base import TransferMode, ExtractionMode, OrgUnitSource
from models.work_unit import WorkUnit
from schemas.config import TransferConfig
from schemas.metadata import OrgUnit, DatasetMembership
from schemas.results import TransferOutcome, TransferSummary
from core.exceptions import ConfigError, UpstreamError
import logging

logger = logging.getLogger(__name__)


def build_extractor(config: TransferConfig, source: DHIS2Client) -> RecordExtractor:
    """Create the extraction strategy selected by the configuration"""
    mode = ExtractionMode(config.extraction_mode)

    if mode == ExtractionMode.JSON:
        return JSONExtractor(source, include_children=config.include_children)
    if mode == ExtractionMode.STAGED_CSV:
        return StagedCSVExtractor(
            source,
            include_children=config.include_children,
            staging_dir=config.staging_dir,
        )
    if mode == ExtractionMode.SQL_VIEW:
        return SQLViewExtractor(
            source,
            sql_view_id=config.sql_view_id,
            include_children=config.include_children,
        )
    return CSVExtractor(source, include_children=config.include_children)


def build_loader(config: TransferConfig, destination: DHIS2Client) -> DataValueLoader:
    return DataValueLoader(
        destination,
        ImportOptions(
            async_import=config.async_import,
            dry_run=config.dry_run,
            strategy=config.strategy,
            id_scheme=config.id_scheme,
            skip_audit=config.skip_audit,
            payload_format=config.payload_format,
        ),
    )


class TransferRunner:
    """
    Transfer Orchestrator

    Responsibilities:
    - Validate the run configuration (fail fast with ConfigError)
    - Discover org units and dataset membership once per run
    - Cut the run into work units
    - Execute units under a bounded worker pool
    - Aggregate unit outcomes into a TransferSummary

    Errors local to one unit never abort the run. Only ConfigError, and an
    UpstreamError during discovery, stop it.
    """

    def __init__(
        self,
        source: DHIS2Client,
        destination: DHIS2Client,
        config: TransferConfig,
        extractor: Optional[RecordExtractor] = None,
        loader: Optional[DataValueLoader] = None
    ):
        self.source = source
        self.destination = destination
        self.config = config
        self.extractor = extractor
        self.loader = loader

        self._org_units: Optional[List[OrgUnit]] = None
        self._membership: Optional[DatasetMembership] = None
        self._stop = asyncio.Event()

    # --------------------------------------------------
    # Control
    # --------------------------------------------------

    def request_stop(self):
        """Stop issuing new units; units in flight are allowed to finish"""
        if not self._stop.is_set():
            logger.warning("Stop requested. Finishing units in flight, no new units will start")
            self._stop.set()

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    # --------------------------------------------------
    # Validation
    # --------------------------------------------------

    def validate(self):
        """
        Check the configuration before any network call.

        Raises:
            ConfigError: On malformed or inconsistent settings
        """
        config = self.config

        dates = {}
        for field in ("start_date", "end_date"):
            value = getattr(config, field)
            try:
                dates[field] = parse_date(value)
            except ValueError as e:
                raise ConfigError(
                    "Invalid date format. Please use YYYY-MM-DD format",
                    context={"field_name": field, "field_value": value},
                    original_exception=e,
                )

        if dates["start_date"] > dates["end_date"]:
            raise ConfigError(
                "Start date must be before or equal to end date",
                context={"start_date": config.start_date, "end_date": config.end_date},
            )

        if not config.data_sets:
            raise ConfigError("At least one dataset is required", context={"field_name": "data_sets"})

        if config.batch_size <= 0:
            raise ConfigError(
                "Batch size must be positive",
                context={"field_name": "batch_size", "field_value": config.batch_size},
            )

        if config.concurrency <= 0:
            raise ConfigError(
                "Concurrency must be positive",
                context={"field_name": "concurrency", "field_value": config.concurrency},
            )

        if config.unit_timeout is not None and config.unit_timeout <= 0:
            raise ConfigError(
                "Unit timeout must be positive",
                context={"field_name": "unit_timeout", "field_value": config.unit_timeout},
            )

        if config.extraction_mode == ExtractionMode.SQL_VIEW and not config.sql_view_id:
            raise ConfigError(
                "SQL view extraction requires a SQL view id",
                context={"field_name": "sql_view_id"},
            )

    # --------------------------------------------------
    # Discovery
    # --------------------------------------------------

    @property
    def needs_membership(self) -> bool:
        config = self.config
        return (
            config.restrict_to_dataset_elements
            or config.extraction_mode == ExtractionMode.SQL_VIEW
            or config.org_units_from == OrgUnitSource.DATASET
        )

    async def resolve_membership(self) -> DatasetMembership:
        if self._membership is None:
            self._membership = await self.source.list_dataset_elements(self.config.data_sets)
        return self._membership

    async def discover_org_units(self) -> List[OrgUnit]:
        """
        Resolve the org unit scope of the run.

        Raises:
            UpstreamError: If the catalog call fails
        """
        if self._org_units is not None:
            return self._org_units

        config = self.config
        origin = OrgUnitSource(config.org_units_from)
        logger.info(f"Fetching organisation units from {origin.value} catalog")

        if origin == OrgUnitSource.DATASET:
            membership = await self.resolve_membership()
            names = set(config.org_unit_names)
            org_units = [
                ou for ou in membership.organisation_units
                if (not config.org_unit_levels or ou.level in config.org_unit_levels)
                and (not names or ou.name in names)
            ]
        else:
            client = self.source if origin == OrgUnitSource.SOURCE else self.destination
            org_units = await client.list_org_units(
                levels=config.org_unit_levels,
                names=config.org_unit_names,
                leaf_only=config.leaf_org_units_only,
            )

        logger.info(f"Found total {len(org_units)} organisation units")
        self._org_units = org_units
        return org_units

    def build_work_units(self, org_units: List[OrgUnit]) -> List[WorkUnit]:
        """
        Cut the run into units of work.

        org_unit mode: one unit per org unit covering every dataset.
        dataset mode: one unit per dataset and org unit; datasets with a
        configured period type get one unit per period instead of one per
        date range.
        """
        config = self.config

        if TransferMode(config.transfer_mode) == TransferMode.ORG_UNIT:
            return [
                WorkUnit(
                    org_unit=org_unit,
                    data_sets=tuple(config.data_sets),
                    start_date=config.start_date,
                    end_date=config.end_date,
                )
                for org_unit in org_units
            ]

        start = parse_date(config.start_date)
        end = parse_date(config.end_date)
        units = []
        for data_set in config.data_sets:
            period_type = config.period_types.get(data_set)
            periods = periods_between(start, end, period_type) if period_type else [None]

            for period in periods:
                for org_unit in org_units:
                    units.append(
                        WorkUnit(
                            org_unit=org_unit,
                            data_sets=(data_set,),
                            start_date=None if period else config.start_date,
                            end_date=None if period else config.end_date,
                            period=period,
                        )
                    )
        return units

    def _elements_for(self, unit: WorkUnit) -> Optional[FrozenSet[str]]:
        if self._membership is None:
            return None
        return frozenset(self._membership.elements_for(unit.data_sets))

    # --------------------------------------------------
    # Execution
    # --------------------------------------------------

    async def run(self) -> TransferSummary:
        """
        Run the full transfer.

        Returns:
            TransferSummary with run totals, per-unit outcomes and the list
            of failed units

        Raises:
            ConfigError: If the configuration is invalid (no network call made)
            UpstreamError: If org unit or dataset discovery fails
        """
        self.validate()

        if self.extractor is None:
            self.extractor = build_extractor(self.config, self.source)
        if self.loader is None:
            self.loader = build_loader(self.config, self.destination)

        logger.info(
            f"Starting transfer of {len(self.config.data_sets)} datasets, "
            f"date range: {self.config.start_date} to {self.config.end_date}"
        )

        try:
            if self.needs_membership:
                await self.resolve_membership()
            org_units = await self.discover_org_units()
        except UpstreamError as e:
            logger.error(
                f"Discovery failed: {e.message}",
                extra={"error_context": e.to_dict()}
            )
            raise

        units = self.build_work_units(org_units)
        summary = await self.execute(units)
        self.log_summary(summary)
        return summary

    async def execute(self, units: List[WorkUnit]) -> TransferSummary:
        """
        Run units with at most `concurrency` in flight.

        Each worker takes the next unit only after finishing its current
        one. Outcomes are folded into the summary as units complete.
        """
        summary = TransferSummary()
        total = len(units)
        concurrency = max(1, min(self.config.concurrency, total or 1))
        queue: asyncio.Queue = asyncio.Queue()
        for unit in units:
            queue.put_nowait(unit)

        processor = UnitProcessor(
            extractor=self.extractor,
            loader=self.loader,
            batch_size=self.config.batch_size,
            value_policy=self.config.value_policy,
            timeout=self.config.unit_timeout,
        )

        started = time.monotonic()
        logger.info(f"Starting transfer of {total} units with concurrency of {concurrency}")

        async def worker():
            while not self._stop.is_set():
                try:
                    unit = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return

                data_elements = self._elements_for(unit)
                outcome = await processor.process(
                    unit,
                    allowed_elements=data_elements if self.config.restrict_to_dataset_elements else None,
                    data_elements=data_elements,
                )
                self._record(summary, outcome, total, started)

        await asyncio.gather(*(worker() for _ in range(concurrency)))

        summary.interrupted = self._stop.is_set() and not queue.empty()
        summary.duration_seconds = round(time.monotonic() - started, 2)
        return summary

    def _record(self, summary: TransferSummary, outcome: TransferOutcome, total: int, started: float):
        summary.add(outcome)

        completed = summary.total_units
        progress = completed / total * 100 if total else 100.0
        elapsed_minutes = (time.monotonic() - started) / 60
        logger.info(
            f"Progress: {completed}/{total} ({progress:.1f}%) - "
            f"{elapsed_minutes:.1f} minutes elapsed"
        )

    def log_summary(self, summary: TransferSummary):
        logger.info("=== Transfer Summary ===")
        logger.info(f"Date Range: {self.config.start_date} to {self.config.end_date}")
        logger.info(f"Total time: {summary.duration_seconds} seconds")
        logger.info(f"Successfully processed: {summary.successful_units} units")
        logger.info(f"Failed: {summary.failed_units} units")
        logger.info(
            f"Imported {summary.total_imported} Updated {summary.total_updated} "
            f"Ignored {summary.total_ignored} Deleted {summary.total_deleted} "
            f"({summary.total_dropped} rows dropped, {summary.total_conflicts} conflicts)"
        )
        if summary.interrupted:
            logger.warning(f"Run interrupted after {summary.total_units} units")

        for error in summary.errors:
            logger.warning(f"- {error.org_unit}: {error.error}")
