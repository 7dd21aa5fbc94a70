"""
CSV dataValueSets extractor
"""

import io
from typing import AsyncIterator
from transfer.extractors.base import RecordExtractor, ExtractionScope, RawRecord
import logging

logger = logging.getLogger(__name__)


class CSVExtractor(RecordExtractor):
    """
    Extract data values from dataValueSets.csv.

    The export is read into memory and decoded in chunks.
    """

    payload_format = "csv"

    async def _fetch(self, scope: ExtractionScope) -> str:
        logger.info(
            f"Downloading data for {scope.org_unit.display_name} "
            f"(datasets: {','.join(scope.data_sets)})"
        )
        return await self.client.get_text(
            "dataValueSets.csv", self.data_value_set_params(scope)
        )

    async def _iter_records(self, payload: str, scope: ExtractionScope) -> AsyncIterator[RawRecord]:
        for row in self._read_csv(io.StringIO(payload), scope):
            yield row
