"""
Pydantic schemas for DHIS2 catalog metadata (org units, datasets)
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional, List, Dict, Set, Any
from models.base import PeriodType


class OrgUnitRef(BaseModel):
    """Reference to a parent or child org unit"""
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    name: Optional[str] = None


class OrgUnit(BaseModel):
    """
    Organisation unit as returned by the organisationUnits endpoint.

    Immutable once fetched.
    """
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str = Field(..., min_length=1)
    name: str = ""
    level: Optional[int] = None
    parent: Optional[OrgUnitRef] = None
    children: List[OrgUnitRef] = Field(default_factory=list)

    @field_validator("name", mode="before")
    @classmethod
    def default_name(cls, v):
        return v or ""

    @property
    def is_leaf(self) -> bool:
        return not self.children

    @property
    def display_name(self) -> str:
        return self.name or self.id


class DatasetRef(BaseModel):
    """Dataset identifier with its reporting frequency"""
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str = Field(..., min_length=1)
    name: Optional[str] = None
    period_type: Optional[PeriodType] = None


class DatasetMembership(BaseModel):
    """
    Resolved membership of a group of datasets.

    Used to restrict extracted records to the data elements that actually
    belong to the requested datasets, and optionally to source the org
    unit scope from dataset assignments.
    """

    data_elements: Set[str] = Field(default_factory=set)
    organisation_units: List[OrgUnit] = Field(default_factory=list)
    elements_by_dataset: Dict[str, Set[str]] = Field(default_factory=dict)

    def elements_for(self, dataset_ids) -> Set[str]:
        """Union of permitted data elements for the given datasets"""
        elements: Set[str] = set()
        for dataset_id in dataset_ids:
            elements |= self.elements_by_dataset.get(dataset_id, set())
        return elements

    @classmethod
    def from_data_sets(cls, data_sets: List[Dict[str, Any]]) -> "DatasetMembership":
        """Build membership from raw dataSets payload entries"""
        elements_by_dataset: Dict[str, Set[str]] = {}
        org_units: Dict[str, OrgUnit] = {}

        for data_set in data_sets:
            elements = set()
            for dse in data_set.get("dataSetElements", []):
                element = dse.get("dataElement") or {}
                if element.get("id"):
                    elements.add(element["id"])
            elements_by_dataset[data_set["id"]] = elements

            for ou in data_set.get("organisationUnits", []):
                if ou.get("id") and ou["id"] not in org_units:
                    org_units[ou["id"]] = OrgUnit.model_validate(ou)

        all_elements: Set[str] = set()
        for elements in elements_by_dataset.values():
            all_elements |= elements

        return cls(
            data_elements=all_elements,
            organisation_units=list(org_units.values()),
            elements_by_dataset=elements_by_dataset,
        )
