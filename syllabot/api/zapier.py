"""Zapier webhook relay and submission payload builders.

WHY: Task creation on Monday and note creation on HubSpot happen inside
Zaps. SyllaBot's job is to hand Zapier a fully resolved payload (ids, not
labels) and get out of the way; Zapier calls back when the note exists.

HOW: Payload builders are pure functions returning dicts in the wire
format the Zaps were built against. ZapierRelay posts one of them to a
webhook URL with httpx.

RULES:
- Timestamps are ISO-8601 UTC
- Non-2xx responses raise UpstreamError("zapier", ...)
- No automatic retry; the user re-runs the command
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from syllabot.api.models import UpstreamError
from syllabot.config import HTTP_TIMEOUT_S

logger = logging.getLogger(__name__)


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class ZapierRelay:
    """Posts JSON submissions to Zapier catch hooks."""

    def __init__(
        self,
        timeout: float = HTTP_TIMEOUT_S,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._timeout = timeout
        self._transport = transport

    async def post(self, webhook_url: str, payload: Dict[str, Any]) -> None:
        async with httpx.AsyncClient(
            timeout=self._timeout, transport=self._transport
        ) as client:
            resp = await client.post(
                webhook_url,
                json=payload,
                headers={"Content-Type": "application/json"},
            )

        if resp.status_code < 200 or resp.status_code >= 300:
            raise UpstreamError("zapier", resp.status_code, resp.text)

        logger.info(
            "Relayed %s/%s to Zapier",
            payload.get("command_name"),
            payload.get("version"),
        )


# ---------------------------------------------------------------------------
# Payload builders
# ---------------------------------------------------------------------------


def build_task_payload(
    task_name: str,
    description: str,
    owner_user_id: str,
    owner_email: str,
    board_id: str,
    group_id: str,
    status_label: str,
    priority_label: str,
    submitted_by: str,
) -> Dict[str, Any]:
    return {
        "source": "slack",
        "command_name": "cstask",
        "version": "v3.2",
        "task_name": task_name,
        "description": description,
        "task_owner_slack_user_id": owner_user_id,
        "task_owner_email": owner_email,
        "monday_board_id": board_id,
        "monday_group_id": group_id,
        "status_label": status_label,
        "priority_label": priority_label,
        "submitted_by_slack_user_id": submitted_by,
        "submitted_at": _utc_now_iso(),
    }


def build_note_payload_v1(
    correlation_id: str,
    record_type: str,
    record_identifier: str,
    note_title: str,
    note_body: str,
    submitted_by: str,
    origin_channel_id: str,
    origin_user_id: str,
) -> Dict[str, Any]:
    return {
        "source": "slack",
        "command_name": "hubnote",
        "version": "v1",
        "correlation_id": correlation_id,
        "hubspot_object_type": record_type,
        "hubspot_record_identifier": record_identifier,
        "note_title": note_title,
        "note_body": note_body,
        "submitted_by_slack_user_id": submitted_by,
        "submitted_at": _utc_now_iso(),
        "origin_channel_id": origin_channel_id,
        "origin_user_id": origin_user_id,
    }


def build_note_payload_v2(
    correlation_id: str,
    record_type: str,
    record_id: str,
    pipeline_id: str,
    stage_id: str,
    note_title: str,
    note_body: str,
    submitted_by: str,
    origin_channel_id: str,
    origin_user_id: str,
) -> Dict[str, Any]:
    """Build the v2 note payload; every HubSpot reference is a resolved id."""
    return {
        "source": "slack",
        "command_name": "hubnote",
        "version": "v2",
        "correlation_id": correlation_id,
        "hubspot_object_type": record_type,
        "hubspot_object_id": record_id,
        "hubspot_pipeline_id": pipeline_id,
        "hubspot_stage_id": stage_id,
        "note_title": note_title,
        "note_body": note_body,
        "submitted_by_slack_user_id": submitted_by,
        "submitted_at": _utc_now_iso(),
        "origin_channel_id": origin_channel_id,
        "origin_user_id": origin_user_id,
    }


def build_attach_payload(
    note_id: str,
    object_type: str,
    object_id: str,
    slack_file_ids: List[str],
    attach_note: str,
    requested_by: str,
) -> Dict[str, Any]:
    return {
        "source": "slack",
        "command_name": "hubnote",
        "version": "v1-attach",
        "hubspot_note_id": note_id,
        "hubspot_object_type": object_type,
        "hubspot_object_id": object_id,
        "slack_file_ids": slack_file_ids,
        "attach_note": attach_note,
        "requested_by_slack_user_id": requested_by,
        "requested_at": _utc_now_iso(),
    }
