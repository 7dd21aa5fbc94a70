"""
Unit tests for the destination loader
"""

import pytest
from unittest.mock import AsyncMock, Mock
from transfer.loaders import DataValueLoader, ImportOptions
from schemas.data_values import DataValue
from models.base import ImportStrategy, PayloadFormat
from core.exceptions import SubmitError, UpstreamError
from tests.factories import FakeDestination, import_response


def make_values(count: int, org_unit: str = "OuA00000001"):
    return [
        DataValue(
            data_element=f"DE{i:09d}",
            period="202401",
            org_unit=org_unit,
            category_option_combo="HllvX50cXC0",
            attribute_option_combo="HllvX50cXC0",
            value=str(i),
        )
        for i in range(count)
    ]


class TestImportOptions:
    """Test import query parameters"""

    def test_default_params(self):
        assert ImportOptions().to_params() == [
            ("async", "false"),
            ("dryRun", "false"),
            ("strategy", "NEW_AND_UPDATES"),
            ("dataElementIdScheme", "UID"),
            ("orgUnitIdScheme", "UID"),
            ("skipAudit", "false"),
        ]

    def test_custom_params(self):
        options = ImportOptions(
            async_import=True,
            dry_run=True,
            strategy=ImportStrategy.UPDATES,
            id_scheme="CODE",
            skip_audit=True,
        )

        params = dict(options.to_params())

        assert params["async"] == "true"
        assert params["dryRun"] == "true"
        assert params["strategy"] == "UPDATES"
        assert params["dataElementIdScheme"] == "CODE"
        assert params["skipAudit"] == "true"


class TestDataValueLoader:
    """Test batch submission"""

    @pytest.mark.asyncio
    async def test_submit_json_batch(self):
        client = Mock()
        client.submit_data_values = AsyncMock(return_value=import_response(imported=2))
        loader = DataValueLoader(client)

        report = await loader.submit(make_values(2))

        assert report.imported == 2
        assert report.status == "SUCCESS"
        body = client.submit_data_values.call_args.args[0]
        kwargs = client.submit_data_values.call_args.kwargs
        assert [dv["dataElement"] for dv in body["dataValues"]] == ["DE000000000", "DE000000001"]
        assert kwargs["content_type"] == "application/json"
        assert ("strategy", "NEW_AND_UPDATES") in kwargs["params"]

    @pytest.mark.asyncio
    async def test_submit_csv_batch(self):
        client = Mock()
        client.submit_data_values = AsyncMock(return_value=import_response(imported=2))
        loader = DataValueLoader(client, ImportOptions(payload_format=PayloadFormat.CSV))

        await loader.submit(make_values(2))

        body = client.submit_data_values.call_args.args[0]
        lines = body.strip().splitlines()
        assert client.submit_data_values.call_args.kwargs["content_type"] == "text/csv"
        assert lines[0].startswith("dataelement,period,orgunit")
        assert lines[1].startswith("DE000000000,202401,OuA00000001,HllvX50cXC0,HllvX50cXC0,0")
        assert len(lines) == 3

    @pytest.mark.asyncio
    async def test_empty_batch_is_not_sent(self):
        client = Mock()
        client.submit_data_values = AsyncMock()

        report = await DataValueLoader(client).submit([])

        assert report.total == 0
        client.submit_data_values.assert_not_called()

    @pytest.mark.asyncio
    async def test_rejection_salvages_report(self):
        body = import_response(
            imported=1,
            ignored=2,
            status="WARNING",
            conflicts=[
                {"object": "DE000000001", "value": "Value must be numeric", "errorCode": "E7619"},
                {"object": "DE000000002", "value": "Value must be numeric", "errorCode": "E7619"},
            ],
        )
        client = Mock()
        client.submit_data_values = AsyncMock(
            side_effect=UpstreamError("Request rejected with HTTP 409", status_code=409, payload=body)
        )

        with pytest.raises(SubmitError) as exc_info:
            await DataValueLoader(client).submit(make_values(3))

        report = exc_info.value.report
        assert report.imported == 1
        assert report.ignored == 2
        assert [c.error_code for c in report.conflicts] == ["E7619", "E7619"]
        assert exc_info.value.context["status_code"] == 409

    @pytest.mark.asyncio
    async def test_rejection_without_report(self):
        client = Mock()
        client.submit_data_values = AsyncMock(
            side_effect=UpstreamError("Request rejected with HTTP 400", status_code=400, payload=None)
        )

        with pytest.raises(SubmitError) as exc_info:
            await DataValueLoader(client).submit(make_values(1))

        assert exc_info.value.report is None

    @pytest.mark.asyncio
    async def test_async_import_returns_job_reference(self):
        client = Mock()
        client.submit_data_values = AsyncMock(return_value={
            "httpStatus": "OK",
            "httpStatusCode": 200,
            "status": "OK",
            "message": "Initiated dataValueImport",
            "response": {
                "name": "dataValueImport",
                "id": "YR1UxOUXmzT",
                "jobType": "DATAVALUE_IMPORT",
                "responseType": "JobConfigurationWebMessageResponse",
            },
        })

        report = await DataValueLoader(client, ImportOptions(async_import=True)).submit(make_values(1))

        assert report.status == "SCHEDULED"
        assert report.job_id == "YR1UxOUXmzT"
        assert report.total == 0

    @pytest.mark.asyncio
    async def test_resubmission_updates_instead_of_duplicating(self):
        destination = FakeDestination()
        loader = DataValueLoader(destination)
        batch = make_values(4)

        first = await loader.submit(batch)
        second = await loader.submit(batch)

        assert (first.imported, first.updated) == (4, 0)
        assert (second.imported, second.updated) == (0, 4)
        assert len(destination.store) == 4
