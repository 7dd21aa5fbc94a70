"""
Pydantic schemas for data validation and serialization.

This package defines the Pydantic models exchanged between pipeline stages:

Schemas:
    metadata: Org units, dataset references and dataset membership
    data_values: Canonical data value record
    results: Import reports, per-unit outcomes and the run summary
    config: Transfer run configuration

Usage:
    from schemas.data_values import DataValue
    from schemas.results import ImportReport, TransferSummary

Example:
    value = DataValue(
        data_element="fbfJHSPpUQD",
        period="202401",
        org_unit="DiszpKrYNg8",
        category_option_combo="HllvX50cXC0",
        attribute_option_combo="HllvX50cXC0",
        value=" 12 ",
    )

    # Values are trimmed and serialized with DHIS2 field names
    assert value.to_payload()["dataElement"] == "fbfJHSPpUQD"
    assert value.value == "12"
"""

__all__ = [
    "OrgUnit",
    "DatasetRef",
    "DatasetMembership",
    "DataValue",
    "Conflict",
    "ImportReport",
    "TransferOutcome",
    "TransferSummary",
    "TransferConfig",
]
