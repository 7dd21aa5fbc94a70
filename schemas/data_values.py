"""
Pydantic schema for the canonical data value record
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional, Dict, Any


MANDATORY_FIELDS = (
    "data_element",
    "period",
    "org_unit",
    "category_option_combo",
    "attribute_option_combo",
    "value",
)

OPTIONAL_FIELDS = (
    "stored_by",
    "last_updated",
    "comment",
    "followup",
)

# Column order of the dataValueSets CSV format
CSV_COLUMNS = (
    "dataelement",
    "period",
    "orgunit",
    "categoryoptioncombo",
    "attributeoptioncombo",
    "value",
    "storedby",
    "lastupdated",
    "comment",
    "followup",
)


class DataValue(BaseModel):
    """
    Canonical data value ready for submission.

    Ensures:
    - The six mandatory fields are present and non-blank
    - Values are whitespace-trimmed
    - Serialization uses the DHIS2 camelCase field names
    """
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    data_element: str = Field(..., min_length=1, alias="dataElement")
    period: str = Field(..., min_length=1)
    org_unit: str = Field(..., min_length=1, alias="orgUnit")
    category_option_combo: str = Field(..., min_length=1, alias="categoryOptionCombo")
    attribute_option_combo: str = Field(..., min_length=1, alias="attributeOptionCombo")
    value: str = Field(..., min_length=1)

    stored_by: Optional[str] = Field(None, alias="storedBy")
    last_updated: Optional[str] = Field(None, alias="lastUpdated")
    comment: Optional[str] = None
    followup: Optional[bool] = None

    @field_validator(*MANDATORY_FIELDS, mode="before")
    @classmethod
    def strip_mandatory(cls, v):
        """Trim mandatory fields, rejecting blank ones"""
        if v is None:
            return v
        v = str(v).strip()
        if not v:
            raise ValueError("Field cannot be empty after stripping")
        return v

    @field_validator("stored_by", "last_updated", "comment", "followup", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        """Blank optional metadata is treated as absent"""
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v

    def to_payload(self) -> Dict[str, Any]:
        """Serialize to the dataValues entry shape"""
        return self.model_dump(by_alias=True, exclude_none=True)

    def to_csv_row(self) -> Dict[str, Any]:
        """Serialize to a dataValueSets CSV row"""
        followup = "" if self.followup is None else str(self.followup).lower()
        return {
            "dataelement": self.data_element,
            "period": self.period,
            "orgunit": self.org_unit,
            "categoryoptioncombo": self.category_option_combo,
            "attributeoptioncombo": self.attribute_option_combo,
            "value": self.value,
            "storedby": self.stored_by or "",
            "lastupdated": self.last_updated or "",
            "comment": self.comment or "",
            "followup": followup,
        }
