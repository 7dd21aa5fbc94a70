"""
DHIS2 Web API client with authentication, retry logic and circuit breaker.

This module provides the single HTTP accessor used for both the source and
the destination instance:
- HTTP basic authentication against <base_url>/api
- Exponential backoff retry logic for transient failures
- Circuit breaker pattern to prevent hammering a failing instance
- Rate limiting protection (HTTP 429, Retry-After)
- Streaming downloads for large dataValueSets exports
"""

import httpx
import asyncio
from pathlib import Path
from typing import List, Dict, Any, Optional, Sequence, Tuple, Union
from datetime import datetime, timedelta, timezone
from transfer.periods import to_period_type
from schemas.metadata import OrgUnit, DatasetRef, DatasetMembership
from core.exceptions import (
    UpstreamError,
    NetworkError,
    RateLimitError,
    AuthenticationError,
    ResourceNotFoundError,
)
import logging

logger = logging.getLogger(__name__)

Params = Union[Dict[str, Any], Sequence[Tuple[str, Any]], None]

ORG_UNIT_FIELDS = "id,name,level,parent[id,name],children[id]"
DATA_SET_FIELDS = (
    "id,name,periodType,"
    "dataSetElements[dataElement[id]],"
    "organisationUnits[id,name,level]"
)


class DHIS2Client:
    """
    Async client for one DHIS2 instance.

    Features:
    - Basic authentication
    - Retry logic with exponential backoff
    - Circuit breaker pattern
    - Rate limiting protection
    - Streaming downloads to disk

    Attributes:
        max_retries: Maximum number of attempts per request (default: 3)
        retry_delay: Initial retry delay in seconds (default: 1.0)
        timeout: Transport timeout in seconds (default: 120.0)
        circuit_breaker_threshold: Failures before circuit opens (default: 5)
        circuit_breaker_timeout: Seconds before circuit reset (default: 60)
    """

    def __init__(
        self,
        base_url: str,
        username: str,
        password: str,
        name: Optional[str] = None,
        timeout: float = 120.0,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        circuit_breaker_threshold: int = 5,
        circuit_breaker_timeout: int = 60,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.base_url = base_url.rstrip("/")
        self.name = name or self.base_url
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay

        self._client = httpx.AsyncClient(
            base_url=f"{self.base_url}/api",
            auth=(username, password),
            timeout=timeout,
            headers={"X-Requested-With": "XMLHttpRequest"},
            transport=transport,
        )

        # Circuit breaker state
        self._circuit_breaker_failures = 0
        self._circuit_breaker_threshold = circuit_breaker_threshold
        self._circuit_breaker_open_until: Optional[datetime] = None
        self._circuit_breaker_timeout = circuit_breaker_timeout

    async def __aenter__(self) -> "DHIS2Client":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()

    async def aclose(self):
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Resilience
    # ------------------------------------------------------------------

    def _is_circuit_open(self) -> bool:
        """Check if circuit breaker is open."""
        if self._circuit_breaker_open_until is None:
            return False

        if datetime.now(timezone.utc) >= self._circuit_breaker_open_until:
            logger.info(f"Circuit breaker reset for {self.name}")
            self._circuit_breaker_failures = 0
            self._circuit_breaker_open_until = None
            return False

        return True

    def _record_failure(self):
        """Record a failure and potentially open circuit breaker."""
        self._circuit_breaker_failures += 1

        if self._circuit_breaker_failures >= self._circuit_breaker_threshold:
            self._circuit_breaker_open_until = datetime.now(timezone.utc) + timedelta(
                seconds=self._circuit_breaker_timeout
            )
            logger.warning(
                f"Circuit breaker opened for {self.name}. "
                f"Will retry after {self._circuit_breaker_timeout} seconds."
            )

    def _record_success(self):
        """Record a successful request."""
        self._circuit_breaker_failures = 0
        self._circuit_breaker_open_until = None

    @staticmethod
    def _json_or_none(response: httpx.Response) -> Optional[Any]:
        try:
            return response.json()
        except ValueError:
            return None

    @staticmethod
    def _retry_after(response: httpx.Response, default: float) -> float:
        try:
            return float(response.headers.get("Retry-After", default))
        except ValueError:
            return default

    async def _request(
        self,
        method: str,
        path: str,
        stream: bool = False,
        **kwargs
    ) -> httpx.Response:
        """
        Send a request with retry logic and exponential backoff.

        Args:
            method: HTTP method
            path: Path relative to <base_url>/api
            stream: Return the response unread (caller must close it)
            **kwargs: Passed to httpx.AsyncClient.build_request

        Returns:
            HTTP response with a 2xx status

        Raises:
            AuthenticationError: On 401/403
            ResourceNotFoundError: On 404
            RateLimitError: When still rate limited after max retries
            NetworkError: For server or transport errors after max retries
            UpstreamError: For other 4xx responses or when the circuit is open
        """
        url = f"{self.base_url}/api/{path.lstrip('/')}"

        if self._is_circuit_open():
            raise UpstreamError(
                f"Circuit breaker is open for {self.name}",
                context={
                    "instance": self.name,
                    "url": url,
                    "open_until": self._circuit_breaker_open_until.isoformat()
                }
            )

        for attempt in range(self.max_retries):
            last_attempt = attempt == self.max_retries - 1
            delay = self.retry_delay * (2 ** attempt)

            try:
                logger.debug(f"{method} attempt {attempt + 1}/{self.max_retries} to {url}")

                request = self._client.build_request(method, path.lstrip("/"), **kwargs)
                response = await self._client.send(request, stream=stream)
            except httpx.TimeoutException as e:
                if not last_attempt:
                    logger.warning(f"Request timeout. Retrying in {delay} seconds")
                    await asyncio.sleep(delay)
                    continue
                self._record_failure()
                raise NetworkError(
                    f"Request timeout after {self.max_retries} attempts",
                    context={
                        "url": url,
                        "timeout": self.timeout,
                        "retry_count": attempt + 1
                    },
                    original_exception=e
                )
            except httpx.TransportError as e:
                if not last_attempt:
                    logger.warning(f"Network error. Retrying in {delay} seconds: {e}")
                    await asyncio.sleep(delay)
                    continue
                self._record_failure()
                raise NetworkError(
                    f"Network error after {self.max_retries} attempts",
                    context={
                        "url": url,
                        "retry_count": attempt + 1
                    },
                    original_exception=e
                )

            if response.is_success:
                self._record_success()
                return response

            if stream:
                await response.aread()
                await response.aclose()

            status = response.status_code
            context = {"url": url, "retry_count": attempt + 1}

            if status in (401, 403):
                self._record_failure()
                raise AuthenticationError(
                    f"Authentication failed for {url}",
                    context=context,
                    status_code=status
                )

            if status == 404:
                raise ResourceNotFoundError(
                    f"Resource not found: {url}",
                    context=context,
                    status_code=status
                )

            if status == 429:
                retry_after = self._retry_after(response, delay)
                if not last_attempt:
                    logger.warning(f"Rate limited. Retrying after {retry_after} seconds")
                    await asyncio.sleep(retry_after)
                    continue
                self._record_failure()
                raise RateLimitError(
                    f"Rate limit exceeded for {url}",
                    context=context,
                    retry_after=retry_after
                )

            if status >= 500:
                if not last_attempt:
                    logger.warning(
                        f"Server error {status}. "
                        f"Retrying in {delay} seconds (attempt {attempt + 1}/{self.max_retries})"
                    )
                    await asyncio.sleep(delay)
                    continue
                self._record_failure()
                raise NetworkError(
                    f"Server error after {self.max_retries} attempts",
                    context={**context, "response_body": response.text[:500]},
                    status_code=status,
                    payload=self._json_or_none(response)
                )

            # Remaining 4xx: the body may still carry an import report
            raise UpstreamError(
                f"Request rejected with HTTP {status}",
                context={**context, "response_body": response.text[:500]},
                status_code=status,
                payload=self._json_or_none(response)
            )

        raise UpstreamError("Max retries exceeded", context={"url": url})

    # ------------------------------------------------------------------
    # Generic accessors
    # ------------------------------------------------------------------

    async def get_json(self, path: str, params: Params = None) -> Any:
        response = await self._request("GET", path, params=params)
        try:
            return response.json()
        except ValueError as e:
            raise UpstreamError(
                "Failed to parse JSON response",
                context={
                    "url": str(response.url),
                    "response_body": response.text[:500]
                },
                original_exception=e
            )

    async def get_text(self, path: str, params: Params = None) -> str:
        response = await self._request("GET", path, params=params)
        return response.text

    async def download(self, path: str, params: Params, destination: Path) -> int:
        """
        Stream a response body to a file.

        Returns:
            Number of bytes written
        """
        written = 0
        response = await self._request("GET", path, stream=True, params=params)
        try:
            with open(destination, "wb") as handle:
                async for chunk in response.aiter_bytes():
                    handle.write(chunk)
                    written += len(chunk)
        except httpx.TransportError as e:
            raise NetworkError(
                "Connection lost while downloading",
                context={"url": str(response.url), "bytes_written": written},
                original_exception=e
            )
        finally:
            await response.aclose()

        logger.debug(f"Downloaded {written} bytes from {response.url} to {destination}")
        return written

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    async def list_org_units(
        self,
        levels: Optional[Sequence[int]] = None,
        names: Optional[Sequence[str]] = None,
        leaf_only: bool = False
    ) -> List[OrgUnit]:
        """
        Fetch organisation units filtered by level and name.

        Args:
            levels: Hierarchy levels to include (all when empty)
            names: Name allow-list (all when empty)
            leaf_only: Keep only org units without children

        Returns:
            List of OrgUnit
        """
        params: List[Tuple[str, Any]] = [
            ("fields", ORG_UNIT_FIELDS),
            ("paging", "false"),
        ]
        if levels:
            params.append(("filter", f"level:in:[{','.join(str(l) for l in levels)}]"))
        if names:
            params.append(("filter", f"name:in:[{','.join(names)}]"))

        data = await self.get_json("organisationUnits.json", params)
        org_units = [OrgUnit.model_validate(ou) for ou in data.get("organisationUnits", [])]

        if leaf_only:
            org_units = [ou for ou in org_units if ou.is_leaf]

        by_level: Dict[Any, int] = {}
        for ou in org_units:
            by_level[ou.level] = by_level.get(ou.level, 0) + 1
        for level, count in sorted(by_level.items(), key=lambda item: str(item[0])):
            logger.info(f"Found {count} organisation units at level {level} on {self.name}")

        return org_units

    async def _fetch_data_sets(self, dataset_ids: Sequence[str]) -> List[Dict[str, Any]]:
        params = [
            ("fields", DATA_SET_FIELDS),
            ("paging", "false"),
            ("filter", f"id:in:[{','.join(dataset_ids)}]"),
        ]
        data = await self.get_json("dataSets.json", params)
        return data.get("dataSets", [])

    async def list_data_sets(self, dataset_ids: Sequence[str]) -> List[DatasetRef]:
        """Resolve dataset ids to references with their period type"""
        refs = []
        for data_set in await self._fetch_data_sets(dataset_ids):
            refs.append(
                DatasetRef(
                    id=data_set["id"],
                    name=data_set.get("name"),
                    period_type=to_period_type(data_set.get("periodType")),
                )
            )
        return refs

    async def list_dataset_elements(self, dataset_ids: Sequence[str]) -> DatasetMembership:
        """
        Resolve datasets to their permitted data elements and org units.

        Returns:
            DatasetMembership
        """
        membership = DatasetMembership.from_data_sets(await self._fetch_data_sets(dataset_ids))
        logger.info(
            f"Resolved {len(dataset_ids)} datasets to {len(membership.data_elements)} data elements "
            f"and {len(membership.organisation_units)} org units"
        )
        return membership

    # ------------------------------------------------------------------
    # Import
    # ------------------------------------------------------------------

    async def submit_data_values(
        self,
        body: Union[Dict[str, Any], str],
        params: Params = None,
        content_type: str = "application/json"
    ) -> Any:
        """
        POST a dataValueSets payload.

        Args:
            body: {"dataValues": [...]} or CSV text
            params: Import query parameters
            content_type: application/json or text/csv

        Returns:
            Parsed JSON response body (None when not JSON)
        """
        if isinstance(body, str):
            response = await self._request(
                "POST",
                "dataValueSets",
                params=params,
                content=body.encode("utf-8"),
                headers={"Content-Type": content_type, "Accept": "application/json"},
            )
        else:
            response = await self._request(
                "POST",
                "dataValueSets",
                params=params,
                json=body,
                headers={"Accept": "application/json"},
            )
        return self._json_or_none(response)
