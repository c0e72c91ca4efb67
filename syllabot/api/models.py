"""Normalized records returned by the HubSpot and Monday adapters.

WHY: Each upstream API has its own JSON shape (HubSpot pipelines nest
stages, Monday wraps everything in GraphQL data envelopes). The rest of
the bot only needs label/id pairs, so adapters normalize into these small
dataclasses before anything else sees the data.

HOW: Plain dataclasses with from_dict() factories. Ids are always
coerced to str because Slack option values are strings.

RULES:
- id is a stable external id (never a label)
- label falls back to the id when the API returns none
- Stage order is the API's order; nothing here sorts
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List


class UpstreamError(Exception):
    """Raised when HubSpot, Monday, or Zapier returns an error.

    WHY: The router needs one exception type to turn into a user-facing
    "couldn't reach X" message, regardless of which service failed.

    RULES:
    - service is "hubspot", "monday", or "zapier"
    - status_code is 0 for errors reported inside a 200 body (GraphQL)
    """

    def __init__(self, service: str, status_code: int, message: str) -> None:
        self.service = service
        self.status_code = status_code
        self.message = message
        super().__init__("{} error {}: {}".format(service, status_code, message))


@dataclass(frozen=True)
class Option:
    """A single (label, value) pair offered by a dynamic dropdown."""

    label: str
    value: str


@dataclass(frozen=True)
class Stage:
    id: str
    label: str


@dataclass(frozen=True)
class Pipeline:
    """A HubSpot pipeline and its stages, in API order."""

    id: str
    label: str
    stages: List[Stage] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Pipeline:
        pipeline_id = str(data["id"])
        stages = [
            Stage(id=str(s["id"]), label=s.get("label") or str(s["id"]))
            for s in data.get("stages") or []
        ]
        return cls(
            id=pipeline_id,
            label=data.get("label") or pipeline_id,
            stages=stages,
        )


@dataclass(frozen=True)
class Record:
    """A ticket or deal found by a record search."""

    id: str
    label: str

    @classmethod
    def from_search_result(cls, record_type: str, data: Dict[str, Any]) -> Record:
        record_id = str(data["id"])
        props = data.get("properties") or {}
        if record_type == "deal":
            label = props.get("dealname") or "Deal {}".format(record_id)
        else:
            label = props.get("subject") or "Ticket {}".format(record_id)
        return cls(id=record_id, label=label)
