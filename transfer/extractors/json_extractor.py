"""
JSON dataValueSets extractor
"""

import json
from typing import AsyncIterator
from transfer.extractors.base import RecordExtractor, ExtractionScope, RawRecord
from core.exceptions import ParseError
import logging

logger = logging.getLogger(__name__)


class JSONExtractor(RecordExtractor):
    """Extract data values from dataValueSets.json"""

    payload_format = "json"

    async def _fetch(self, scope: ExtractionScope) -> str:
        logger.info(
            f"Downloading data for {scope.org_unit.display_name} "
            f"(datasets: {','.join(scope.data_sets)})"
        )
        return await self.client.get_text(
            "dataValueSets.json", self.data_value_set_params(scope)
        )

    async def _iter_records(self, payload: str, scope: ExtractionScope) -> AsyncIterator[RawRecord]:
        context = {**scope.describe(), "payload_format": "json"}

        try:
            data = json.loads(payload) if payload.strip() else {}
        except ValueError as e:
            raise ParseError("Unreadable JSON payload", context=context, original_exception=e)

        if not isinstance(data, dict):
            raise ParseError("Expected a JSON object with dataValues", context=context)

        data_values = data.get("dataValues") or []
        if not isinstance(data_values, list):
            raise ParseError("dataValues is not a list", context=context)

        for record in data_values:
            if isinstance(record, dict):
                yield record
