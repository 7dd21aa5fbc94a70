"""
Extraction strategies for the source instance.

All strategies share one capability, RecordExtractor.open(scope), and
differ only in how the payload is fetched and decoded.
"""

from transfer.extractors.base import RecordExtractor, ExtractionScope
from transfer.extractors.csv_extractor import CSVExtractor
from transfer.extractors.json_extractor import JSONExtractor
from transfer.extractors.staged_csv_extractor import StagedCSVExtractor
from transfer.extractors.sql_view_extractor import SQLViewExtractor

__all__ = [
    "RecordExtractor",
    "ExtractionScope",
    "CSVExtractor",
    "JSONExtractor",
    "StagedCSVExtractor",
    "SQLViewExtractor",
]
