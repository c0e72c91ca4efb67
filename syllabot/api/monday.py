"""Async client for the Monday.com GraphQL API (boards and groups).

WHY: /cstask routes a task to a Monday board and group chosen from two
dependent dropdowns. Both lists come from Monday's GraphQL endpoint.

HOW: One POST per query with the API token in the Authorization header
(Monday does not use the Bearer prefix). GraphQL errors arrive inside a
200 response and are raised as UpstreamError. Empty-search lists are
read through the injected OptionCache, keyed per board for groups.

RULES:
- token defaults to load_monday_token() (raises ConfigError when unset)
- Lists are returned unfiltered; the selection service filters and caps
- Searches with a term bypass the cache
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

import httpx

from syllabot.api.cache import OptionCache, make_key
from syllabot.api.models import Option, UpstreamError
from syllabot.config import HTTP_TIMEOUT_S, MAX_OPTIONS, MONDAY_API_URL, load_monday_token

_BOARDS_QUERY = """
query ($limit:Int!) {
  boards(limit: $limit) { id name }
}
"""

_GROUPS_QUERY = """
query ($ids:[ID!]!) {
  boards(ids: $ids) {
    id
    groups { id title }
  }
}
"""


class MondayClient:
    """Async client for the two Monday lookups /cstask needs."""

    def __init__(
        self,
        token: Optional[str] = None,
        api_url: Optional[str] = None,
        cache: Optional[OptionCache] = None,
        timeout: float = HTTP_TIMEOUT_S,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._token = token or load_monday_token()
        self._api_url = api_url or MONDAY_API_URL
        self._cache = cache
        self._timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> MondayClient:
        self._client = httpx.AsyncClient(
            headers={
                "Authorization": self._token,
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
                "MondayClient must be used as an async context manager: "
                "async with MondayClient() as monday: ..."
            )
        return self._client

    async def graphql(self, query: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Run a GraphQL query and return its data object.

        RULES:
        - Non-2xx raises UpstreamError with the HTTP status
        - A non-empty "errors" array raises UpstreamError with status 0
        """
        client = self._ensure_client()
        resp = await client.post(
            self._api_url, json={"query": query, "variables": variables or {}}
        )
        if resp.status_code < 200 or resp.status_code >= 300:
            raise UpstreamError("monday", resp.status_code, resp.text)

        payload = resp.json()
        errors = payload.get("errors")
        if errors:
            raise UpstreamError("monday", 0, json.dumps(errors))
        return payload.get("data") or {}

    async def list_boards(self, search: str = "") -> List[Option]:
        if self._cache is None or search.strip():
            return await self._fetch_boards()
        return await self._cache.get_or_fetch(make_key("boards"), self._fetch_boards)

    async def list_groups(self, board_id: str, search: str = "") -> List[Option]:
        if self._cache is None or search.strip():
            return await self._fetch_groups(board_id)
        return await self._cache.get_or_fetch(
            make_key("groups", board_id), lambda: self._fetch_groups(board_id)
        )

    async def _fetch_boards(self) -> List[Option]:
        data = await self.graphql(_BOARDS_QUERY, {"limit": MAX_OPTIONS})
        return [
            Option(label=b.get("name") or str(b["id"]), value=str(b["id"]))
            for b in data.get("boards") or []
        ]

    async def _fetch_groups(self, board_id: str) -> List[Option]:
        data = await self.graphql(_GROUPS_QUERY, {"ids": [board_id]})
        boards = data.get("boards") or []
        groups = (boards[0].get("groups") or []) if boards else []
        return [
            Option(label=g.get("title") or str(g["id"]), value=str(g["id"]))
            for g in groups
        ]
