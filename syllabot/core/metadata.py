"""Modal state and the codec that stores it in Slack's private_metadata.

WHY: A Slack modal's only memory between two interactions is one opaque
string slot, private_metadata. Everything the dependent dropdowns need
(record type, pipeline, stage, nonces, origin channel) must survive the
round trip through that slot, and a malformed or foreign blob must never
take a handler down.

HOW: ModalState is a frozen, versioned dataclass. encode() serializes it
to compact JSON. decode() parses, validates the shape against a JSON
Schema with jsonschema, and falls back to the default state on anything
unexpected.

RULES:
- encode() always succeeds; oversize output is logged, not raised
- decode(None), decode(""), decode("{not json") return ModalState()
- A blob with another schema_version or unknown keys decodes to default
- decode(encode(state)) == state for every valid state
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Optional

import jsonschema

from syllabot.config import METADATA_MAX_CHARS

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

# Workflow kinds sharing the metadata slot
KIND_CSTASK = "cstask"
KIND_HUBNOTE_V1 = "hubnote_v1"
KIND_HUBNOTE_V2 = "hubnote_v2"
KIND_ATTACH = "attach"

# Dependent fields that carry a nonce
FIELD_PIPELINE = "pipeline"
FIELD_STAGE = "stage"
FIELD_RECORD = "record"
FIELD_GROUP = "group"

_ID = {"type": "string", "maxLength": 200}

STATE_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["schema_version"],
    "additionalProperties": False,
    "properties": {
        "schema_version": {"const": SCHEMA_VERSION},
        "kind": {
            "enum": ["", KIND_CSTASK, KIND_HUBNOTE_V1, KIND_HUBNOTE_V2, KIND_ATTACH],
        },
        "correlation_id": _ID,
        "origin_channel_id": _ID,
        "origin_user_id": _ID,
        "record_type": {"enum": ["", "ticket", "deal"]},
        "pipeline_id": _ID,
        "stage_id": _ID,
        "record_id": _ID,
        "board_id": _ID,
        "session_id": _ID,
        "nonces": {
            "type": "object",
            "additionalProperties": {"type": "integer", "minimum": 0},
        },
    },
}


@dataclass(frozen=True)
class ModalState:
    """Everything a modal must remember between two interactions.

    RULES:
    - correlation_id and origin ids are fixed when the modal opens
    - (record_type, pipeline_id, stage_id, record_id) is prefix-valid:
      a field is only non-empty when every field before it is
    - nonces map a dependent field name to its current generation
    """

    schema_version: int = SCHEMA_VERSION
    kind: str = ""
    correlation_id: str = ""
    origin_channel_id: str = ""
    origin_user_id: str = ""
    record_type: str = ""
    pipeline_id: str = ""
    stage_id: str = ""
    record_id: str = ""
    board_id: str = ""
    session_id: str = ""
    nonces: Dict[str, int] = field(default_factory=dict)

    def nonce(self, field_name: str) -> int:
        return self.nonces.get(field_name, 0)


def encode(state: ModalState) -> str:
    """Serialize a ModalState for the private_metadata slot."""
    raw = json.dumps(asdict(state), separators=(",", ":"), sort_keys=True)
    if len(raw) > METADATA_MAX_CHARS:
        logger.warning(
            "Modal metadata is %d chars (limit %d); Slack may reject the view",
            len(raw),
            METADATA_MAX_CHARS,
        )
    return raw


def decode(raw: Optional[str]) -> ModalState:
    """Parse private_metadata back into a ModalState.

    WHY: The very first render of a modal carries no metadata, and a view
    opened by an older deploy carries a different shape. Both are "no
    prior state", not errors.
    """
    if not raw:
        return ModalState()

    try:
        data = json.loads(raw)
    except ValueError:
        logger.warning("Ignoring malformed modal metadata")
        return ModalState()

    try:
        jsonschema.validate(instance=data, schema=STATE_SCHEMA)
    except jsonschema.ValidationError as exc:
        logger.warning("Ignoring modal metadata with unexpected shape: %s", exc.message)
        return ModalState()

    return ModalState(**data)
