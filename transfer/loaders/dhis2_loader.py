"""
Load data value batches into the destination instance
"""

from typing import List, Tuple, Any, Union, Dict
import pandas as pd
from pydantic import BaseModel
from transfer.client import DHIS2Client
from schemas.data_values import DataValue, CSV_COLUMNS
from schemas.results import ImportReport
from models.base import ImportStrategy, PayloadFormat
from core.exceptions import SubmitError, UpstreamError
import logging

logger = logging.getLogger(__name__)


class ImportOptions(BaseModel):
    """dataValueSets import parameters"""

    async_import: bool = False
    dry_run: bool = False
    strategy: ImportStrategy = ImportStrategy.NEW_AND_UPDATES
    id_scheme: str = "UID"
    skip_audit: bool = False
    payload_format: PayloadFormat = PayloadFormat.JSON

    def to_params(self) -> List[Tuple[str, Any]]:
        return [
            ("async", str(self.async_import).lower()),
            ("dryRun", str(self.dry_run).lower()),
            ("strategy", ImportStrategy(self.strategy).value),
            ("dataElementIdScheme", self.id_scheme),
            ("orgUnitIdScheme", self.id_scheme),
            ("skipAudit", str(self.skip_audit).lower()),
        ]


class DataValueLoader:
    """
    Submit batches to POST /api/dataValueSets.

    Ensures:
    - Repeated submissions merge instead of duplicating (strategy
      NEW_AND_UPDATES by default)
    - Import reports are extracted from error bodies too, so that
      partial results of a rejected batch are not lost
    """

    def __init__(self, client: DHIS2Client, options: ImportOptions = None):
        self.client = client
        self.options = options or ImportOptions()

    def _render(self, batch: List[DataValue]) -> Tuple[Union[Dict[str, Any], str], str]:
        if self.options.payload_format == PayloadFormat.CSV:
            frame = pd.DataFrame([value.to_csv_row() for value in batch], columns=list(CSV_COLUMNS))
            return frame.to_csv(index=False), "text/csv"
        return {"dataValues": [value.to_payload() for value in batch]}, "application/json"

    async def submit(self, batch: List[DataValue]) -> ImportReport:
        """
        Submit one batch.

        Args:
            batch: Canonical data values, in extraction order

        Returns:
            ImportReport of the batch

        Raises:
            SubmitError: If the destination rejects the batch; carries the
                salvaged report when the error body contains one
        """
        if not batch:
            return ImportReport()

        body, content_type = self._render(batch)

        try:
            response = await self.client.submit_data_values(
                body,
                params=self.options.to_params(),
                content_type=content_type,
            )
        except UpstreamError as e:
            report = ImportReport.from_response(e.payload)
            raise SubmitError(
                f"Destination rejected batch of {len(batch)} data values",
                context={
                    "batch_size": len(batch),
                    "status_code": e.status_code,
                    "conflicts": len(report.conflicts) if report else 0,
                },
                original_exception=e,
                report=report,
            )

        report = ImportReport.from_response(response)
        if report is None:
            logger.warning(f"No import report in response for batch of {len(batch)} data values")
            report = ImportReport()

        if report.conflicts:
            logger.warning(
                f"Batch of {len(batch)} data values imported with {len(report.conflicts)} conflicts"
            )
        return report
