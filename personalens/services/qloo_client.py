"""Qloo taste-graph API client.

Thin async HTTP wrapper around the Insights API. Every call is a GET with
the key in the ``X-Api-Key`` header; list parameters are comma-joined.
"""

import logging
import os
from typing import Any

import httpx

from personalens.api.exceptions import ExternalServiceError

logger = logging.getLogger(__name__)


class QlooAPIError(ExternalServiceError):
    """Non-2xx response or transport failure from Qloo.

    ``status_code`` is 0 for network errors.
    """

    def __init__(self, message: str, status_code: int | None = None, raw_body: Any = None):
        super().__init__("qloo", message, status_code=status_code, raw_body=raw_body)


class QlooClient:
    """Async client for the Qloo Insights API.

    Configuration (env vars):
    - QLOO_API_KEY: API key
    - QLOO_API_URL: Base URL (default: hackathon endpoint)
    """

    DEFAULT_BASE_URL = "https://hackathon.api.qloo.com"
    DEFAULT_TIMEOUT = 10.0

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._api_key = api_key or os.environ.get("QLOO_API_KEY")
        self._base_url = (base_url or os.environ.get("QLOO_API_URL") or self.DEFAULT_BASE_URL).rstrip("/")
        self._timeout = timeout
        self._transport = transport

    def __repr__(self) -> str:
        return f"QlooClient(base_url={self._base_url!r}, configured={self.is_configured})"

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key)

    @staticmethod
    def _build_params(params: dict[str, Any]) -> dict[str, str]:
        """Drop empty values and comma-join lists."""
        query = {}
        for key, value in params.items():
            if value is None:
                continue
            if isinstance(value, (list, tuple)):
                if not value:
                    continue
                query[key] = ",".join(str(v) for v in value)
            else:
                query[key] = str(value)
        return query

    async def _get(self, endpoint: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        if not self._api_key:
            raise QlooAPIError("Qloo API key not configured. Set QLOO_API_KEY environment variable.")

        url = f"{self._base_url}{endpoint}"
        headers = {"Content-Type": "application/json", "X-Api-Key": self._api_key}

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                res = await client.get(url, params=self._build_params(params or {}), headers=headers)
        except httpx.HTTPError as e:
            logger.warning(
                "Qloo request error: %s",
                type(e).__name__,
                extra={"endpoint": endpoint, "error_type": type(e).__name__},
            )
            raise QlooAPIError(f"Network error: {type(e).__name__}", status_code=0) from e

        try:
            data = res.json()
        except ValueError:
            data = res.text

        if res.status_code >= 400:
            message = None
            if isinstance(data, dict):
                error = data.get("error")
                message = error.get("message") if isinstance(error, dict) else error
            message = message or f"Request failed with status {res.status_code}"
            logger.warning(
                "Qloo request failed: %s",
                message,
                extra={"endpoint": endpoint, "status_code": res.status_code},
            )
            raise QlooAPIError(str(message), status_code=res.status_code, raw_body=data)

        if not isinstance(data, dict):
            raise QlooAPIError("Qloo returned a non-JSON body", status_code=res.status_code, raw_body=data)

        return data

    async def search_entities(
        self,
        query: str,
        types: list[str] | None = None,
        limit: int = 10,
    ) -> dict[str, Any]:
        """Search entities by name (GET /search)."""
        return await self._get("/search", {"query": query, "types": types, "limit": limit})

    async def search_tags(self, query: str, types: list[str] | None = None) -> dict[str, Any]:
        """Search tags (GET /v2/tags)."""
        return await self._get("/v2/tags", {"query": query, "types": types})

    async def get_insights(
        self,
        filter_type: str,
        *,
        tags: list[str] | None = None,
        entities: list[str] | None = None,
        audiences: list[str] | None = None,
        demographics: dict[str, str] | None = None,
        location_query: str | None = None,
        limit: int | None = None,
    ) -> dict[str, Any]:
        """Recommendations or analysis for a filter type (GET /v2/insights).

        Args:
            filter_type: Entity URN, e.g. ``urn:entity:brand`` or ``urn:demographics``.
            tags: Tag IDs used as interest signals.
            entities: Entity IDs used as interest signals.
            audiences: Audience IDs used as demographic signals.
            demographics: ``{"age": ..., "gender": ...}`` demographic signals.
            location_query: Free-text location signal.
            limit: Maximum number of results.
        """
        params: dict[str, Any] = {
            "filter.type": filter_type,
            "signal.interests.tags": tags,
            "signal.interests.entities": entities,
            "signal.demographics.audiences": audiences,
            "signal.location.query": location_query,
            "limit": limit,
        }
        for key, value in (demographics or {}).items():
            params[f"signal.demographics.{key}"] = value
        return await self._get("/v2/insights", params)

    async def get_demographics(
        self,
        *,
        tags: list[str] | None = None,
        entities: list[str] | None = None,
    ) -> dict[str, Any]:
        """Demographic breakdown for interest signals."""
        return await self.get_insights("urn:demographics", tags=tags, entities=entities)

    async def get_audiences(self) -> dict[str, Any]:
        """Available audience definitions (GET /v2/audiences)."""
        return await self._get("/v2/audiences")

    async def test_connection(self) -> bool:
        """Run a one-result search and report whether it succeeded."""
        if not self.is_configured:
            return False
        try:
            await self.search_entities("test", limit=1)
        except QlooAPIError as e:
            logger.info("Qloo connection test failed: %s", e.message, extra={"status_code": e.status_code})
            return False
        return True
