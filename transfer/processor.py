"""
Unit-of-work processor: fetch → parse → normalize → batch → submit for one
(org unit x dataset scope) pair.
"""

import asyncio
import time
from typing import AsyncIterator, Dict, Any, Optional, AbstractSet
from transfer.extractors.base import RecordExtractor, ExtractionScope
from transfer.loaders.dhis2_loader import DataValueLoader
from transfer.transformers.normalizer import RecordNormalizer
from transfer.transformers.batcher import abatched
from models.base import UnitState, ValuePolicy
from models.work_unit import WorkUnit
from schemas.data_values import DataValue
from schemas.results import ImportReport, TransferOutcome
from core.exceptions import TransferException, SubmitError
import logging

logger = logging.getLogger(__name__)


class UnitProcessor:
    """
    Drive one unit of work through its states.

    PENDING → FETCHING → PARSING → (BATCHING ⇄ SUBMITTING)* → DONE | FAILED

    Guarantees:
    - Each batch is submitted before more input is parsed
    - Batches of a unit are submitted sequentially, in extraction order
    - A rejected batch does not stop the remaining batches
    - Any other failure ends the unit as FAILED; counts of batches already
      submitted are kept
    - Extractor resources are released on every exit path
    """

    def __init__(
        self,
        extractor: RecordExtractor,
        loader: DataValueLoader,
        batch_size: int = 1000,
        value_policy: ValuePolicy = ValuePolicy.PRESERVE,
        timeout: Optional[float] = None
    ):
        self.extractor = extractor
        self.loader = loader
        self.batch_size = batch_size
        self.value_policy = value_policy
        self.timeout = timeout

    async def process(
        self,
        unit: WorkUnit,
        allowed_elements: Optional[AbstractSet[str]] = None,
        data_elements: Optional[AbstractSet[str]] = None
    ) -> TransferOutcome:
        """
        Process one unit of work.

        Args:
            unit: Work unit to run (mutated in place)
            allowed_elements: Drop records outside this element set
            data_elements: Element set handed to element-keyed extractors

        Returns:
            TransferOutcome snapshot of the finished unit
        """
        normalizer = RecordNormalizer(
            value_policy=self.value_policy,
            allowed_elements=allowed_elements,
        )

        try:
            if self.timeout:
                await asyncio.wait_for(self._run(unit, normalizer, data_elements), self.timeout)
            else:
                await self._run(unit, normalizer, data_elements)

        except asyncio.TimeoutError:
            unit.fail(f"Timed out after {self.timeout} seconds")
            logger.error(f"Unit {unit.label} timed out after {self.timeout} seconds")

        except TransferException as e:
            unit.fail(f"{type(e).__name__}: {e.message}")
            logger.error(
                f"Error processing {unit.org_unit.display_name}: {e.message}",
                extra={"error_context": e.to_dict()}
            )

        except Exception as e:
            unit.fail(f"{type(e).__name__}: {e}")
            logger.exception(f"Unexpected error processing {unit.org_unit.display_name}")

        finally:
            unit.records_dropped = normalizer.rejected

        return TransferOutcome.from_unit(unit)

    async def _normalized(
        self,
        records: AsyncIterator[Dict[str, Any]],
        normalizer: RecordNormalizer,
        unit: WorkUnit
    ) -> AsyncIterator[DataValue]:
        async for raw in records:
            unit.records_read += 1
            value = normalizer.normalize(raw)
            if value is not None:
                yield value

    async def _run(
        self,
        unit: WorkUnit,
        normalizer: RecordNormalizer,
        data_elements: Optional[AbstractSet[str]]
    ):
        scope = ExtractionScope(
            org_unit=unit.org_unit,
            data_sets=tuple(unit.data_sets),
            start_date=unit.start_date,
            end_date=unit.end_date,
            period=unit.period,
            data_elements=frozenset(data_elements) if data_elements is not None else None,
        )

        logger.info(f"Processing {unit.label}")
        unit.transition(UnitState.FETCHING)
        started = time.monotonic()
        submitted = 0

        async with self.extractor.open(scope) as records:
            unit.transition(UnitState.PARSING)

            values = self._normalized(records, normalizer, unit)
            batches = abatched(values, self.batch_size)
            try:
                async for batch in batches:
                    unit.transition(UnitState.SUBMITTING)
                    report = await self._submit(unit, batch)
                    unit.record_batch(report)
                    submitted += len(batch)

                    elapsed = max(time.monotonic() - started, 1e-6)
                    logger.info(
                        f"[{unit.org_unit.display_name}] Batch {unit.batches}: "
                        f"submitted {submitted} records ({submitted / elapsed:.2f} records/sec)"
                    )
                    unit.transition(UnitState.BATCHING)
            finally:
                await batches.aclose()
                await values.aclose()

        unit.records_dropped = normalizer.rejected
        unit.transition(UnitState.DONE)

        logger.info(
            f"Imported {unit.report.imported} Ignored {unit.report.ignored} "
            f"Deleted {unit.report.deleted} Updated {unit.report.updated} values "
            f"for {unit.org_unit.display_name} ({unit.records_dropped} rows dropped)"
        )

    async def _submit(self, unit: WorkUnit, batch) -> ImportReport:
        try:
            return await self.loader.submit(batch)
        except SubmitError as e:
            message = f"Batch {unit.batches + 1}: {e.message}"
            unit.batch_errors.append(message)
            logger.error(
                f"[{unit.org_unit.display_name}] Error importing batch: {e.message}",
                extra={"error_context": e.to_dict()}
            )
            if e.report is not None:
                return e.report
            return ImportReport(status="ERROR", ignored=len(batch))
