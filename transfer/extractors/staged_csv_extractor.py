"""
CSV extractor that stages the export on disk before parsing
"""

import os
import tempfile
from pathlib import Path
from typing import AsyncIterator, Optional
from transfer.client import DHIS2Client
from transfer.extractors.base import RecordExtractor, ExtractionScope, RawRecord
import logging

logger = logging.getLogger(__name__)


class StagedCSVExtractor(RecordExtractor):
    """
    Stream dataValueSets.csv to a temporary file, then parse it in chunks.

    Keeps memory bounded for very large exports. The staging file has a
    collision-resistant name and is removed on every exit path, including
    download failure and cancellation.
    """

    payload_format = "csv"

    def __init__(
        self,
        client: DHIS2Client,
        include_children: bool = False,
        chunk_size: int = 10000,
        staging_dir: Optional[str] = None
    ):
        super().__init__(client, include_children=include_children, chunk_size=chunk_size)
        self.staging_dir = staging_dir

    def _staging_path(self, scope: ExtractionScope) -> Path:
        fd, name = tempfile.mkstemp(
            prefix=f"datavalues_{scope.org_unit.id}_",
            suffix=".csv",
            dir=self.staging_dir,
        )
        os.close(fd)
        return Path(name)

    async def _fetch(self, scope: ExtractionScope) -> Path:
        path = self._staging_path(scope)
        try:
            written = await self.client.download(
                "dataValueSets.csv", self.data_value_set_params(scope), path
            )
        except BaseException:
            self._remove(path)
            raise

        logger.info(f"CSV file downloaded for {scope.org_unit.display_name}: {path} ({written} bytes)")
        return path

    async def _iter_records(self, payload: Path, scope: ExtractionScope) -> AsyncIterator[RawRecord]:
        for row in self._read_csv(payload, scope):
            yield row

    async def _release(self, payload: Path):
        self._remove(payload)

    @staticmethod
    def _remove(path: Path):
        try:
            path.unlink()
            logger.debug(f"Deleted temporary file: {path}")
        except FileNotFoundError:
            pass
