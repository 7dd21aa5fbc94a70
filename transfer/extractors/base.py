"""
Abstract base class for data value extraction strategies
"""

from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, FrozenSet, IO, Iterator, List, Optional, Tuple, Union
from pathlib import Path
import pandas as pd
from transfer.client import DHIS2Client
from schemas.metadata import OrgUnit
from core.exceptions import FetchError, ParseError, UpstreamError
import logging

logger = logging.getLogger(__name__)

RawRecord = Dict[str, Any]


@dataclass(frozen=True)
class ExtractionScope:
    """What one unit of work asks the source for"""

    org_unit: OrgUnit
    data_sets: Tuple[str, ...]
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    period: Optional[str] = None
    data_elements: Optional[FrozenSet[str]] = None

    def describe(self) -> Dict[str, Any]:
        return {
            "org_unit": self.org_unit.id,
            "data_sets": ",".join(self.data_sets),
            "period": self.period or f"{self.start_date}..{self.end_date}",
        }


class RecordExtractor(ABC):
    """
    Abstract base class for all extraction strategies.

    Responsibilities:
    - Fetch the raw payload for a scope (FETCHING)
    - Decode it lazily into raw records (PARSING)
    - Release any resources the payload holds, on every exit path

    Subclasses implement _fetch and _iter_records, and _release when the
    payload owns a resource.
    """

    payload_format = "csv"

    def __init__(
        self,
        client: DHIS2Client,
        include_children: bool = False,
        chunk_size: int = 10000
    ):
        self.client = client
        self.include_children = include_children
        self.chunk_size = chunk_size

    @abstractmethod
    async def _fetch(self, scope: ExtractionScope) -> Any:
        """
        Fetch the raw payload for a scope.

        Returns:
            Payload handed to _iter_records
        """
        pass

    @abstractmethod
    def _iter_records(self, payload: Any, scope: ExtractionScope) -> AsyncIterator[RawRecord]:
        """Decode a fetched payload into raw records"""
        pass

    async def _release(self, payload: Any):
        """Release resources held by a payload"""
        pass

    @asynccontextmanager
    async def open(self, scope: ExtractionScope):
        """
        Fetch a scope and yield an async iterator over its raw records.

        Raises:
            FetchError: If the extraction call fails
            ParseError: While iterating, if the payload is unreadable
        """
        try:
            payload = await self._fetch(scope)
        except (FetchError, ParseError):
            raise
        except UpstreamError as e:
            raise FetchError(
                f"Failed to fetch data values for {scope.org_unit.display_name}: {e.message}",
                context=scope.describe(),
                original_exception=e,
                status_code=e.status_code,
            )

        records = self._iter_records(payload, scope)
        try:
            yield records
        finally:
            await records.aclose()
            await self._release(payload)

    def data_value_set_params(self, scope: ExtractionScope) -> List[Tuple[str, Any]]:
        """Query parameters for the dataValueSets export"""
        params: List[Tuple[str, Any]] = [("dataSet", ds) for ds in scope.data_sets]
        params.append(("orgUnit", scope.org_unit.id))

        if scope.period:
            params.append(("period", scope.period))
        else:
            params.append(("startDate", scope.start_date))
            params.append(("endDate", scope.end_date))

        if self.include_children:
            params.append(("children", "true"))
        return params

    def _read_csv(
        self,
        source: Union[str, Path, IO[str]],
        scope: ExtractionScope
    ) -> Iterator[RawRecord]:
        """
        Read CSV rows in chunks, all cells as strings.

        Header names are stripped and lower-cased. An empty payload
        yields nothing.
        """
        try:
            with pd.read_csv(
                source,
                dtype=str,
                keep_default_na=False,
                chunksize=self.chunk_size,
            ) as reader:
                for chunk in reader:
                    chunk.columns = chunk.columns.str.strip().str.lower()
                    for row in chunk.to_dict(orient="records"):
                        yield row
        except pd.errors.EmptyDataError:
            return
        except (pd.errors.ParserError, UnicodeDecodeError) as e:
            raise ParseError(
                "Unreadable CSV payload",
                context={**scope.describe(), "payload_format": "csv"},
                original_exception=e,
            )
