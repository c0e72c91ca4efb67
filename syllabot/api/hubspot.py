"""Async HTTP client for the HubSpot CRM v3 REST API.

WHY: The v2 note form lets users pick a ticket or deal by walking
Record Type → Pipeline → Stage → Record. Pipelines (with their nested
stages) and record searches both come from HubSpot, and both must be
fast enough to answer a Slack options request.

HOW: Wraps httpx.AsyncClient with Bearer token auth. Use as an async
context manager. Pipelines are read through an injected OptionCache;
record searches are never cached because search terms are
high-cardinality.

RULES:
- Always use the async context manager (async with HubSpotClient(...) as hs:)
- token defaults to load_hubspot_token() (raises ConfigError when unset)
- Non-2xx responses raise UpstreamError("hubspot", ...)
- Pipelines and stages keep the API's order
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx

from syllabot.api.cache import OptionCache, make_key
from syllabot.api.models import Pipeline, Record, UpstreamError
from syllabot.config import (
    HS_DEAL_STAGE_PROP,
    HS_PIPELINE_PROP,
    HS_TICKET_STAGE_PROP,
    HTTP_TIMEOUT_S,
    HUBSPOT_BASE_URL,
    RECORD_SEARCH_LIMIT,
    load_hubspot_token,
)

RECORD_TYPES = ("ticket", "deal")


def object_type_for(record_type: str) -> str:
    """Map "ticket"/"deal" to HubSpot's plural object names."""
    return "deals" if record_type == "deal" else "tickets"


def stage_property_for(record_type: str) -> str:
    return HS_DEAL_STAGE_PROP if record_type == "deal" else HS_TICKET_STAGE_PROP


class HubSpotClient:
    """Async client for HubSpot pipelines and object search.

    RULES:
    - cache is optional; without one every get_pipelines() hits the API
    - transport is for tests (httpx.MockTransport)
    """

    def __init__(
        self,
        token: Optional[str] = None,
        base_url: Optional[str] = None,
        cache: Optional[OptionCache] = None,
        timeout: float = HTTP_TIMEOUT_S,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._token = token or load_hubspot_token()
        self._base_url = (base_url or HUBSPOT_BASE_URL).rstrip("/")
        self._cache = cache
        self._timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> HubSpotClient:
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers={
                "Authorization": "Bearer {}".format(self._token),
                "Content-Type": "application/json",
            },
            timeout=self._timeout,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        if self._client:
            await self._client.aclose()
            self._client = None

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError(
                "HubSpotClient must be used as an async context manager: "
                "async with HubSpotClient() as hs: ..."
            )
        return self._client

    async def request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Send one request and return the decoded JSON body."""
        client = self._ensure_client()
        resp = await client.request(method, path, json=json)
        if resp.status_code < 200 or resp.status_code >= 300:
            raise UpstreamError("hubspot", resp.status_code, resp.text)
        return resp.json()

    # ------------------------------------------------------------------
    # Pipelines
    # ------------------------------------------------------------------

    async def get_pipelines(self, record_type: str) -> List[Pipeline]:
        """Return the pipelines (with stages) for "ticket" or "deal".

        WHY: Both the pipeline and stage dropdowns are served from this
        one list, so caching it makes the stage dropdown free.

        RULES:
        - Cached per record type for the cache's TTL
        - Never filtered here (the selection service filters by search)
        """
        if self._cache is None:
            return await self._fetch_pipelines(record_type)

        key = make_key("pipelines", record_type)
        return await self._cache.get_or_fetch(
            key, lambda: self._fetch_pipelines(record_type)
        )

    async def _fetch_pipelines(self, record_type: str) -> List[Pipeline]:
        data = await self.request(
            "GET", "/crm/v3/pipelines/{}".format(object_type_for(record_type))
        )
        return [Pipeline.from_dict(p) for p in data.get("results") or []]

    # ------------------------------------------------------------------
    # Record search
    # ------------------------------------------------------------------

    async def search_records(
        self,
        record_type: str,
        pipeline_id: str,
        stage_id: str,
        query: str = "",
    ) -> List[Record]:
        """Search tickets or deals inside one pipeline stage.

        HOW: POST /crm/v3/objects/{type}/search with two EQ filters
        (pipeline and the type's stage property) and HubSpot's free-text
        query when one was typed.

        RULES:
        - Tickets are labelled by subject, deals by dealname
        - At most RECORD_SEARCH_LIMIT results
        """
        stage_prop = stage_property_for(record_type)
        label_prop = "dealname" if record_type == "deal" else "subject"

        body: Dict[str, Any] = {
            "filterGroups": [
                {
                    "filters": [
                        {"propertyName": HS_PIPELINE_PROP, "operator": "EQ", "value": str(pipeline_id)},
                        {"propertyName": stage_prop, "operator": "EQ", "value": str(stage_id)},
                    ]
                }
            ],
            "properties": [label_prop, HS_PIPELINE_PROP, stage_prop],
            "limit": RECORD_SEARCH_LIMIT,
        }

        q = (query or "").strip()
        if q:
            body["query"] = q

        data = await self.request(
            "POST",
            "/crm/v3/objects/{}/search".format(object_type_for(record_type)),
            json=body,
        )
        return [
            Record.from_search_result(record_type, r)
            for r in data.get("results") or []
        ]
