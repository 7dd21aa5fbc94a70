"""
Unit tests for the unit-of-work processor
"""

import pytest
from unittest.mock import AsyncMock, Mock
from transfer.processor import UnitProcessor
from transfer.loaders import DataValueLoader
from models.base import UnitState, ValuePolicy
from models.work_unit import WorkUnit
from schemas.metadata import OrgUnit
from schemas.results import ImportReport
from core.exceptions import ParseError, SubmitError
from tests.factories import FakeDestination, StubExtractor, make_row

FACILITY = OrgUnit(id="OuA00000001", name="Facility A", level=5)


def make_unit(**kwargs) -> WorkUnit:
    kwargs.setdefault("start_date", "2024-01-01")
    kwargs.setdefault("end_date", "2024-12-31")
    return WorkUnit(org_unit=FACILITY, data_sets=("DsA",), **kwargs)


def rows(count: int, **overrides):
    return [make_row("OuA00000001", i, **overrides) for i in range(1, count + 1)]


class FailingExtractor(StubExtractor):
    """Raises ParseError part-way through iteration"""

    async def _iter_records(self, payload, scope):
        for row in payload:
            yield row
        raise ParseError("Unreadable CSV payload", context=scope.describe())


class TestUnitProcessor:
    """Test the PENDING → DONE | FAILED lifecycle"""

    @pytest.mark.asyncio
    async def test_batches_in_order(self, fake_destination):
        extractor = StubExtractor({"OuA00000001": rows(5)})
        processor = UnitProcessor(extractor, DataValueLoader(fake_destination), batch_size=2)
        unit = make_unit()

        outcome = await processor.process(unit)

        assert [len(batch) for batch in fake_destination.submissions] == [2, 2, 1]
        assert [dv["dataElement"] for batch in fake_destination.submissions for dv in batch] == [
            f"DE{i:09d}" for i in range(1, 6)
        ]
        assert outcome.state == UnitState.DONE
        assert outcome.imported == 5
        assert outcome.batches == 3
        assert outcome.records_read == 5
        assert outcome.succeeded
        assert unit.started_at is not None and unit.completed_at is not None
        assert extractor.released == 1

    @pytest.mark.asyncio
    async def test_invalid_rows_are_dropped(self, fake_destination):
        extractor = StubExtractor({"OuA00000001": rows(3) + [make_row("OuA00000001", 9, value="")]})
        processor = UnitProcessor(extractor, DataValueLoader(fake_destination), batch_size=10)

        outcome = await processor.process(make_unit())

        assert outcome.imported == 3
        assert outcome.records_read == 4
        assert outcome.records_dropped == 1

    @pytest.mark.asyncio
    async def test_empty_unit_submits_nothing(self, fake_destination):
        processor = UnitProcessor(StubExtractor(), DataValueLoader(fake_destination))

        outcome = await processor.process(make_unit())

        assert fake_destination.submissions == []
        assert outcome.state == UnitState.DONE
        assert outcome.batches == 0
        assert outcome.imported == 0

    @pytest.mark.asyncio
    async def test_value_policy_and_element_filter(self, fake_destination):
        extractor = StubExtractor({"OuA00000001": rows(3, value="4.75")})
        processor = UnitProcessor(
            extractor, DataValueLoader(fake_destination), value_policy=ValuePolicy.TRUNCATE
        )

        outcome = await processor.process(make_unit(), allowed_elements={"DE000000001", "DE000000003"})

        submitted = fake_destination.submissions[0]
        assert [dv["dataElement"] for dv in submitted] == ["DE000000001", "DE000000003"]
        assert {dv["value"] for dv in submitted} == {"4"}
        assert outcome.records_dropped == 1

    @pytest.mark.asyncio
    async def test_data_elements_reach_the_extractor(self, fake_destination):
        extractor = StubExtractor()
        processor = UnitProcessor(extractor, DataValueLoader(fake_destination))

        await processor.process(make_unit(period="202403"), data_elements={"DE1", "DE2"})

        scope = extractor.scopes[0]
        assert scope.data_elements == frozenset({"DE1", "DE2"})
        assert scope.period == "202403"

    @pytest.mark.asyncio
    async def test_rejected_batch_does_not_stop_the_unit(self):
        loader = Mock()
        loader.submit = AsyncMock(side_effect=[
            ImportReport(imported=2),
            SubmitError("Destination rejected batch of 2 data values",
                        report=ImportReport(status="WARNING", imported=1, ignored=1)),
            SubmitError("Destination rejected batch of 1 data values"),
        ])
        processor = UnitProcessor(StubExtractor({"OuA00000001": rows(5)}), loader, batch_size=2)

        outcome = await processor.process(make_unit())

        assert loader.submit.await_count == 3
        assert outcome.state == UnitState.DONE
        assert outcome.imported == 3
        assert outcome.ignored == 2
        assert outcome.batches == 3
        assert outcome.batch_errors == [
            "Batch 2: Destination rejected batch of 2 data values",
            "Batch 3: Destination rejected batch of 1 data values",
        ]

    @pytest.mark.asyncio
    async def test_fetch_failure_fails_the_unit(self, fake_destination):
        extractor = StubExtractor(failures={"OuA00000001"})
        processor = UnitProcessor(extractor, DataValueLoader(fake_destination))

        outcome = await processor.process(make_unit())

        assert outcome.state == UnitState.FAILED
        assert outcome.error.startswith("FetchError: Failed to fetch data values for Facility A")
        assert fake_destination.submissions == []

    @pytest.mark.asyncio
    async def test_parse_failure_keeps_submitted_counts(self, fake_destination):
        extractor = FailingExtractor({"OuA00000001": rows(3)})
        processor = UnitProcessor(extractor, DataValueLoader(fake_destination), batch_size=2)

        outcome = await processor.process(make_unit())

        assert outcome.state == UnitState.FAILED
        assert outcome.error == "ParseError: Unreadable CSV payload"
        assert outcome.imported == 2
        assert outcome.batches == 1
        assert extractor.released == 1

    @pytest.mark.asyncio
    async def test_timeout_fails_the_unit(self, fake_destination):
        extractor = StubExtractor({"OuA00000001": rows(1)}, delay=5)
        processor = UnitProcessor(extractor, DataValueLoader(fake_destination), timeout=0.05)

        outcome = await processor.process(make_unit())

        assert outcome.state == UnitState.FAILED
        assert "Timed out" in outcome.error
        assert extractor.in_flight == 0
