"""
Runtime models for the transfer pipeline.

Models:
    base: Shared enums (UnitState, TransferMode, ExtractionMode, PeriodType, ...)
    work_unit: Mutable tracking object for one unit of work

Usage:
    from models.base import UnitState, TransferMode
    from models.work_unit import WorkUnit

Example:
    unit = WorkUnit(org_unit=org_unit, data_sets=("BfMAe6Itzgt",), period="202401")
    unit.transition(UnitState.FETCHING)
"""

__all__ = [
    "UnitState",
    "TransferMode",
    "ExtractionMode",
    "OrgUnitSource",
    "PeriodType",
    "ValuePolicy",
    "ImportStrategy",
    "PayloadFormat",
    "WorkUnit",
]
