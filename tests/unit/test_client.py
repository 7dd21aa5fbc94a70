"""
Unit tests for the DHIS2 API client
"""

import httpx
import pytest
from transfer.client import DHIS2Client
from core.exceptions import (
    AuthenticationError,
    NetworkError,
    ResourceNotFoundError,
    UpstreamError,
)
from tests.factories import import_response


def make_client(handler, **kwargs) -> DHIS2Client:
    kwargs.setdefault("retry_delay", 0)
    return DHIS2Client(
        "https://play.dhis2.example/",
        "admin",
        "district",
        transport=httpx.MockTransport(handler),
        **kwargs
    )


class TestCatalog:
    """Test org unit and dataset discovery"""

    @pytest.mark.asyncio
    async def test_list_org_units_builds_filters(self):
        seen = {}

        def handler(request: httpx.Request):
            seen["path"] = request.url.path
            seen["filters"] = request.url.params.get_list("filter")
            seen["paging"] = request.url.params.get("paging")
            seen["auth"] = request.headers.get("Authorization")
            return httpx.Response(200, json={"organisationUnits": [
                {"id": "OuA00000001", "name": "Facility A", "level": 5, "children": []},
                {"id": "OuB00000002", "name": "District B", "level": 4, "children": [{"id": "OuA00000001"}]},
            ]})

        async with make_client(handler) as client:
            org_units = await client.list_org_units(levels=[4, 5], names=["Facility A", "District B"])

        assert seen["path"] == "/api/organisationUnits.json"
        assert seen["filters"] == ["level:in:[4,5]", "name:in:[Facility A,District B]"]
        assert seen["paging"] == "false"
        assert seen["auth"].startswith("Basic ")
        assert [ou.id for ou in org_units] == ["OuA00000001", "OuB00000002"]

    @pytest.mark.asyncio
    async def test_list_org_units_leaf_only(self):
        def handler(request):
            return httpx.Response(200, json={"organisationUnits": [
                {"id": "OuA00000001", "name": "Facility A", "children": []},
                {"id": "OuB00000002", "name": "District B", "children": [{"id": "OuA00000001"}]},
            ]})

        async with make_client(handler) as client:
            org_units = await client.list_org_units(leaf_only=True)

        assert [ou.id for ou in org_units] == ["OuA00000001"]

    @pytest.mark.asyncio
    async def test_list_dataset_elements(self):
        def handler(request):
            assert request.url.params.get("filter") == "id:in:[DsA,DsB]"
            return httpx.Response(200, json={"dataSets": [
                {
                    "id": "DsA",
                    "periodType": "Monthly",
                    "dataSetElements": [{"dataElement": {"id": "DE1"}}, {"dataElement": {"id": "DE2"}}],
                    "organisationUnits": [{"id": "OuA00000001", "name": "Facility A", "level": 5}],
                },
                {
                    "id": "DsB",
                    "periodType": "Quarterly",
                    "dataSetElements": [{"dataElement": {"id": "DE3"}}],
                    "organisationUnits": [{"id": "OuA00000001", "name": "Facility A", "level": 5}],
                },
            ]})

        async with make_client(handler) as client:
            membership = await client.list_dataset_elements(["DsA", "DsB"])

        assert membership.data_elements == {"DE1", "DE2", "DE3"}
        assert membership.elements_for(["DsB"]) == {"DE3"}
        assert [ou.id for ou in membership.organisation_units] == ["OuA00000001"]

    @pytest.mark.asyncio
    async def test_list_data_sets_maps_period_type(self):
        def handler(request):
            return httpx.Response(200, json={"dataSets": [
                {"id": "DsA", "name": "Monthly form", "periodType": "Monthly"},
                {"id": "DsB", "name": "Weekly form", "periodType": "Weekly"},
            ]})

        async with make_client(handler) as client:
            refs = await client.list_data_sets(["DsA", "DsB"])

        assert refs[0].period_type.value == "monthly"
        assert refs[1].period_type is None

    @pytest.mark.asyncio
    async def test_catalog_failure_raises_upstream_error(self):
        def handler(request):
            raise httpx.ConnectError("Connection refused")

        async with make_client(handler, max_retries=2) as client:
            with pytest.raises(NetworkError) as exc_info:
                await client.list_org_units(levels=[3])

        assert isinstance(exc_info.value, UpstreamError)


class TestResilience:
    """Test retry logic and status mapping"""

    @pytest.mark.asyncio
    async def test_retries_server_errors(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) < 3:
                return httpx.Response(503, text="unavailable")
            return httpx.Response(200, text="ok")

        async with make_client(handler, max_retries=3) as client:
            assert await client.get_text("dataValueSets.csv") == "ok"

        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_server_error_after_max_retries(self):
        def handler(request):
            return httpx.Response(500, text="boom")

        async with make_client(handler, max_retries=2) as client:
            with pytest.raises(NetworkError) as exc_info:
                await client.get_text("dataValueSets.csv")

        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_rate_limit_honours_retry_after(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) == 1:
                return httpx.Response(429, headers={"Retry-After": "0"})
            return httpx.Response(200, text="ok")

        async with make_client(handler) as client:
            assert await client.get_text("dataValueSets.csv") == "ok"

        assert len(calls) == 2

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [401, 403])
    async def test_authentication_failure_is_not_retried(self, status):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(status)

        async with make_client(handler) as client:
            with pytest.raises(AuthenticationError):
                await client.get_json("organisationUnits.json")

        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_not_found(self):
        async with make_client(lambda request: httpx.Response(404)) as client:
            with pytest.raises(ResourceNotFoundError):
                await client.get_text("sqlViews/missing/data.csv")

    @pytest.mark.asyncio
    async def test_conflict_keeps_error_payload(self):
        body = import_response(imported=1, ignored=1, status="WARNING",
                               conflicts=[{"object": "DE1", "value": "Value must be numeric"}])

        async with make_client(lambda request: httpx.Response(409, json=body)) as client:
            with pytest.raises(UpstreamError) as exc_info:
                await client.submit_data_values({"dataValues": []})

        assert exc_info.value.status_code == 409
        assert exc_info.value.payload == body

    @pytest.mark.asyncio
    async def test_circuit_breaker_opens_after_repeated_failures(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(500)

        async with make_client(handler, max_retries=1, circuit_breaker_threshold=2) as client:
            for _ in range(2):
                with pytest.raises(NetworkError):
                    await client.get_text("dataValueSets.csv")
            with pytest.raises(UpstreamError, match="Circuit breaker"):
                await client.get_text("dataValueSets.csv")

        assert len(calls) == 2


class TestTransfer:
    """Test export download and import submission"""

    @pytest.mark.asyncio
    async def test_download_streams_to_file(self, tmp_path):
        body = b"dataelement,period\n" + b"DE1,202401\n" * 500

        async with make_client(lambda request: httpx.Response(200, content=body)) as client:
            target = tmp_path / "export.csv"
            written = await client.download("dataValueSets.csv", [("orgUnit", "OuA")], target)

        assert written == len(body)
        assert target.read_bytes() == body

    @pytest.mark.asyncio
    async def test_submit_json(self):
        seen = {}

        def handler(request):
            seen["content_type"] = request.headers["Content-Type"]
            seen["params"] = dict(request.url.params)
            seen["body"] = request.content
            return httpx.Response(200, json=import_response(imported=1))

        async with make_client(handler) as client:
            response = await client.submit_data_values(
                {"dataValues": [{"dataElement": "DE1"}]},
                params=[("strategy", "NEW_AND_UPDATES"), ("async", "false")],
            )

        assert seen["content_type"] == "application/json"
        assert seen["params"] == {"strategy": "NEW_AND_UPDATES", "async": "false"}
        assert b'"dataElement"' in seen["body"]
        assert response["response"]["importCount"]["imported"] == 1

    @pytest.mark.asyncio
    async def test_submit_csv(self):
        seen = {}

        def handler(request):
            seen["content_type"] = request.headers["Content-Type"]
            seen["body"] = request.content.decode()
            return httpx.Response(200, json=import_response(imported=1))

        async with make_client(handler) as client:
            await client.submit_data_values("dataelement,period\nDE1,202401\n", content_type="text/csv")

        assert seen["content_type"] == "text/csv"
        assert seen["body"].startswith("dataelement,period")
