"""
Normalize raw data value rows into canonical DataValue records
"""

import re
from typing import Dict, Any, Optional, Iterable, Iterator, AbstractSet
from pydantic import ValidationError
from schemas.data_values import DataValue, MANDATORY_FIELDS
from models.base import ValuePolicy
import logging

logger = logging.getLogger(__name__)


# Canonical field -> accepted raw header names (compared lower-cased).
# Covers the dataValueSets CSV/JSON headers and the SQL view short codes.
FIELD_ALIASES: Dict[str, tuple] = {
    "data_element": ("dataelement", "dx"),
    "period": ("period", "pe"),
    "org_unit": ("orgunit", "ou"),
    "category_option_combo": ("categoryoptioncombo", "catoptcombo", "co"),
    "attribute_option_combo": ("attributeoptioncombo", "attroptcombo", "ao"),
    "value": ("value",),
    "stored_by": ("storedby",),
    "last_updated": ("lastupdated",),
    "comment": ("comment",),
    "followup": ("followup",),
}

FLOAT_LIKE = re.compile(r"^([+-]?\d+)\.\d*$")


class RecordNormalizer:
    """
    Normalize raw rows from any extraction strategy into DataValue.

    Handles:
    - Header mapping for both header schemes
    - Validity filtering (six mandatory fields, non-blank after trimming)
    - Optional restriction to a permitted set of data elements
    - Numeric value policy

    Rows that fail are dropped and counted, never raised.
    """

    def __init__(
        self,
        value_policy: ValuePolicy = ValuePolicy.PRESERVE,
        allowed_elements: Optional[AbstractSet[str]] = None
    ):
        self.value_policy = ValuePolicy(value_policy)
        self.allowed_elements = allowed_elements
        self.dropped = 0
        self.filtered = 0

    @property
    def rejected(self) -> int:
        return self.dropped + self.filtered

    @staticmethod
    def _map_fields(raw: Dict[str, Any]) -> Dict[str, Any]:
        lowered = {str(k).strip().lower(): v for k, v in raw.items()}
        mapped = {}
        for field, aliases in FIELD_ALIASES.items():
            for alias in aliases:
                if alias in lowered:
                    mapped[field] = lowered[alias]
                    break
        return mapped

    @staticmethod
    def _text(value: Any) -> str:
        if value is None:
            return ""
        if isinstance(value, float) and value != value:  # NaN
            return ""
        return str(value).strip()

    def _apply_value_policy(self, value: str) -> str:
        if self.value_policy == ValuePolicy.TRUNCATE:
            match = FLOAT_LIKE.match(value)
            if match:
                return match.group(1)
        return value

    def is_valid(self, mapped: Dict[str, Any]) -> bool:
        """All mandatory fields present and non-blank after trimming"""
        return all(self._text(mapped.get(field)) for field in MANDATORY_FIELDS)

    def normalize(self, raw: Dict[str, Any]) -> Optional[DataValue]:
        """
        Normalize one raw record.

        Returns:
            DataValue, or None when the record is dropped
        """
        mapped = self._map_fields(raw)

        if not self.is_valid(mapped):
            self.dropped += 1
            return None

        fields = {field: self._text(mapped.get(field)) for field in MANDATORY_FIELDS}
        fields["value"] = self._apply_value_policy(fields["value"])

        if self.allowed_elements is not None and fields["data_element"] not in self.allowed_elements:
            self.filtered += 1
            return None

        for field in ("stored_by", "last_updated", "comment"):
            value = self._text(mapped.get(field))
            if value:
                fields[field] = value

        followup = mapped.get("followup")
        if isinstance(followup, bool):
            fields["followup"] = followup
        elif self._text(followup).lower() in ("true", "false"):
            fields["followup"] = self._text(followup).lower() == "true"

        try:
            return DataValue(**fields)
        except ValidationError as e:
            self.dropped += 1
            logger.debug(f"Dropped data value {fields.get('data_element')}: {e.error_count()} errors")
            return None

    def normalize_stream(self, rows: Iterable[Dict[str, Any]]) -> Iterator[DataValue]:
        """Lazily normalize rows, skipping dropped ones"""
        for raw in rows:
            value = self.normalize(raw)
            if value is not None:
                yield value
