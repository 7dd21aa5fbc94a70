import enum


# ============================================================================
# ENUMS
# ============================================================================

class UnitState(str, enum.Enum):
    """Unit-of-work lifecycle state"""
    PENDING = "pending"
    FETCHING = "fetching"
    PARSING = "parsing"
    BATCHING = "batching"
    SUBMITTING = "submitting"
    DONE = "done"
    FAILED = "failed"


class TransferMode(str, enum.Enum):
    """How work units are cut from org units and datasets"""
    ORG_UNIT = "org_unit"
    DATASET = "dataset"


class ExtractionMode(str, enum.Enum):
    """Extraction strategy used against the source instance"""
    CSV = "csv"
    JSON = "json"
    STAGED_CSV = "staged_csv"
    SQL_VIEW = "sql_view"


class OrgUnitSource(str, enum.Enum):
    """Catalog that the org unit scope is read from"""
    SOURCE = "source"
    DESTINATION = "destination"
    DATASET = "dataset"


class PeriodType(str, enum.Enum):
    """Reporting frequency of a dataset"""
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"


class ValuePolicy(str, enum.Enum):
    """Treatment of numeric values during normalization"""
    PRESERVE = "preserve"
    TRUNCATE = "truncate"


class ImportStrategy(str, enum.Enum):
    """Destination merge strategy for dataValueSets imports"""
    NEW_AND_UPDATES = "NEW_AND_UPDATES"
    NEW = "NEW"
    UPDATES = "UPDATES"
    DELETE = "DELETE"


class PayloadFormat(str, enum.Enum):
    """Body format of a submitted batch"""
    JSON = "json"
    CSV = "csv"
