"""
Pytest configuration and fixtures
"""

import pytest
from unittest.mock import AsyncMock, Mock
from schemas.metadata import OrgUnit
from tests.factories import CSV_HEADER, FakeDestination


@pytest.fixture
def org_units():
    """Three leaf org units at level 5"""
    return [
        OrgUnit(id="OuA00000001", name="Facility A", level=5),
        OrgUnit(id="OuB00000002", name="Facility B", level=5),
        OrgUnit(id="OuC00000003", name="Facility C", level=5),
    ]


@pytest.fixture
def fake_destination():
    return FakeDestination()


@pytest.fixture
def mock_source(org_units):
    """Source client mock serving the three org units"""
    source = Mock()
    source.list_org_units = AsyncMock(return_value=org_units)
    source.list_dataset_elements = AsyncMock()
    source.get_text = AsyncMock(return_value=CSV_HEADER + "\n")
    return source
