"""Block Kit builders for SyllaBot's modals, prompts, and confirmations.

WHY: Every modal is rebuilt from scratch whenever a dependent dropdown
changes, so the builders must be pure functions of ModalState. Keeping
them here leaves bot.py focused on routing and side effects.

HOW: Modal builders return a complete view dict with the encoded state
in private_metadata. Dependent dropdowns get a block_id that embeds the
field's nonce (e.g. "pipeline_block_v2_n3"). When a parent changes, the
nonce moves, the block_id changes, and Slack renders the child empty.
Blocks whose id does not change keep whatever the user entered.

RULES:
- Rendering the same state twice yields the same view
- Rendering never changes a nonce
- action_id and callback_id values must match the registrations in bot.py
- Free-text values passed in text_values become initial_value
"""

from __future__ import annotations

import re
from typing import Any, Dict, Iterable, List, Optional

from syllabot.api.models import Option
from syllabot.config import PRIORITY_LABELS, STATUS_LABELS
from syllabot.core.metadata import (
    FIELD_GROUP,
    FIELD_PIPELINE,
    FIELD_RECORD,
    FIELD_STAGE,
    KIND_ATTACH,
    ModalState,
    encode,
)
from syllabot.core.selection import RECORD_TYPE_OPTIONS

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# Callback IDs, must match @app.view() registrations in bot.py
CALLBACK_CSTASK = "cstask_modal_submit"
CALLBACK_HUBNOTE_V1 = "hubnote_modal_submit_v1"
CALLBACK_HUBNOTE_V2 = "hubnote_modal_submit_v2"
CALLBACK_ATTACH = "hubnote_attach_modal_submit"

# /cstask
BLOCK_TASK_NAME = "task_name_block"
ACTION_TASK_NAME = "task_name_input"
BLOCK_DESCRIPTION = "description_block"
ACTION_DESCRIPTION = "description_input"
BLOCK_OWNER = "owner_block"
ACTION_OWNER = "owner_user_select"
BLOCK_BOARD = "board_block"
ACTION_BOARD = "board_select"
BLOCK_GROUP = "group_block"
ACTION_GROUP = "group_select"
BLOCK_STATUS = "status_block"
ACTION_STATUS = "status_select"
BLOCK_PRIORITY = "priority_block"
ACTION_PRIORITY = "priority_select"

# /hubnote v1
BLOCK_V1_RECORD_TYPE = "record_type_block"
ACTION_V1_RECORD_TYPE = "record_type_select"
BLOCK_V1_TITLE = "note_title_block"
ACTION_V1_TITLE = "note_title_input"
BLOCK_V1_BODY = "note_body_block"
ACTION_V1_BODY = "note_body_input"
BLOCK_V1_IDENTIFIER = "record_identifier_block"
ACTION_V1_IDENTIFIER = "record_identifier_input"

# /hubnote v2
BLOCK_RECORD_TYPE = "record_type_block_v2"
ACTION_RECORD_TYPE = "hubnote_v2_record_type_select"
BLOCK_PIPELINE = "pipeline_block_v2"
ACTION_PIPELINE = "hubnote_v2_pipeline_select"
BLOCK_STAGE = "stage_block_v2"
ACTION_STAGE = "hubnote_v2_stage_select"
BLOCK_RECORD = "record_block_v2"
ACTION_RECORD = "hubnote_v2_record_select"
BLOCK_TITLE = "note_title_block_v2"
ACTION_TITLE = "hubnote_v2_note_title_input"
BLOCK_BODY = "note_body_block_v2"
ACTION_BODY = "hubnote_v2_note_body_input"

# Attachment flow
ACTION_ADD_FILES_YES = "hubnote_add_files_yes"
ACTION_ADD_FILES_NO = "hubnote_add_files_no"
ACTION_OPEN_ATTACH = "hubnote_open_attach_modal"
BLOCK_FILES = "files_select_block"
ACTION_FILES = "hubnote_files_select"
BLOCK_ATTACH_NOTE = "attach_note_block"
ACTION_ATTACH_NOTE = "attach_note_input"

TEXT_TITLE = "note_title"
TEXT_BODY = "note_body"

_NONCE_SUFFIX = re.compile(r"_n\d+$")


# ---------------------------------------------------------------------------
# Small helpers
# ---------------------------------------------------------------------------


def _text(text: str) -> Dict[str, Any]:
    return {"type": "plain_text", "text": text}


def block_id_for(base: str, nonce: int) -> str:
    """Block id for a dependent field at the given generation."""
    return "{}_n{}".format(base, nonce)


def to_slack_options(options: Iterable[Option]) -> List[Dict[str, Any]]:
    return [{"text": _text(o.label), "value": o.value} for o in options]


def _static_options(labels: Iterable[str]) -> List[Dict[str, Any]]:
    return [{"text": _text(label), "value": label} for label in labels]


def _external_select(action_id: str, placeholder: str) -> Dict[str, Any]:
    return {
        "type": "external_select",
        "action_id": action_id,
        "placeholder": _text(placeholder),
        "min_query_length": 0,
    }


def _text_input(
    action_id: str,
    placeholder: str = "",
    multiline: bool = False,
    initial_value: str = "",
) -> Dict[str, Any]:
    element: Dict[str, Any] = {"type": "plain_text_input", "action_id": action_id}
    if multiline:
        element["multiline"] = True
    if placeholder:
        element["placeholder"] = _text(placeholder)
    if initial_value:
        element["initial_value"] = initial_value
    return element


def _input_block(
    block_id: str,
    label: str,
    element: Dict[str, Any],
    optional: bool = False,
    dispatch_action: bool = False,
    hint: str = "",
) -> Dict[str, Any]:
    block: Dict[str, Any] = {
        "type": "input",
        "block_id": block_id,
        "label": _text(label),
        "element": element,
    }
    if optional:
        block["optional"] = True
    if dispatch_action:
        block["dispatch_action"] = True
    if hint:
        block["hint"] = _text(hint)
    return block


def _modal(
    callback_id: str,
    title: str,
    submit: str,
    state: ModalState,
    blocks: List[Dict[str, Any]],
) -> Dict[str, Any]:
    return {
        "type": "modal",
        "callback_id": callback_id,
        "title": _text(title),
        "submit": _text(submit),
        "close": _text("Cancel"),
        "private_metadata": encode(state),
        "blocks": blocks,
    }


def _record_type_select(action_id: str, placeholder: str, selected: str = "") -> Dict[str, Any]:
    element: Dict[str, Any] = {
        "type": "static_select",
        "action_id": action_id,
        "placeholder": _text(placeholder),
        "options": to_slack_options(RECORD_TYPE_OPTIONS),
    }
    for opt in RECORD_TYPE_OPTIONS:
        if opt.value == selected:
            element["initial_option"] = {"text": _text(opt.label), "value": opt.value}
    return element


# ---------------------------------------------------------------------------
# Reading view state back
# ---------------------------------------------------------------------------


def find_block_value(
    values: Dict[str, Any],
    block_prefix: str,
    action_id: str,
) -> Optional[Dict[str, Any]]:
    """Return the element state for block_prefix, whatever its nonce.

    WHY: Dependent blocks are named "<base>_n<nonce>", and a submission
    must find them without knowing the nonce the view was last rendered
    with. When several generations are present the highest nonce wins.

    RULES:
    - Matches block_prefix exactly or block_prefix + "_n<digits>"
    - Returns None when no block (or no action inside it) matches
    """
    best_nonce = -1
    best: Optional[Dict[str, Any]] = None
    for block_id, actions in (values or {}).items():
        if block_id == block_prefix:
            nonce = 0
        elif block_id.startswith(block_prefix) and _NONCE_SUFFIX.fullmatch(
            block_id[len(block_prefix):]
        ):
            nonce = int(block_id.rsplit("_n", 1)[1])
        else:
            continue
        element = (actions or {}).get(action_id)
        if element is not None and nonce > best_nonce:
            best_nonce = nonce
            best = element
    return best


def selected_value(element: Optional[Dict[str, Any]]) -> str:
    if not element:
        return ""
    option = element.get("selected_option") or {}
    return option.get("value") or ""


def input_value(element: Optional[Dict[str, Any]]) -> str:
    if not element:
        return ""
    return (element.get("value") or "").strip()


def extract_text_values(view: Dict[str, Any]) -> Dict[str, str]:
    """Read the v2 note title and body out of a live view's state."""
    values = ((view or {}).get("state") or {}).get("values") or {}
    out = {}
    for key, block, action in (
        (TEXT_TITLE, BLOCK_TITLE, ACTION_TITLE),
        (TEXT_BODY, BLOCK_BODY, ACTION_BODY),
    ):
        element = find_block_value(values, block, action)
        if element and element.get("value"):
            out[key] = element["value"]
    return out


# ---------------------------------------------------------------------------
# Modals
# ---------------------------------------------------------------------------


def build_cstask_modal(state: ModalState) -> Dict[str, Any]:
    """Build the /cstask modal (Monday task).

    RULES:
    - board_block dispatches its selection so the group list can follow
    - group_block carries the group nonce; a new board empties it
    """
    blocks = [
        _input_block(BLOCK_TASK_NAME, "Task Name", _text_input(ACTION_TASK_NAME)),
        _input_block(
            BLOCK_DESCRIPTION,
            "Description",
            _text_input(ACTION_DESCRIPTION, multiline=True),
            optional=True,
        ),
        _input_block(
            BLOCK_OWNER,
            "Task Owner",
            {"type": "users_select", "action_id": ACTION_OWNER},
        ),
        _input_block(
            BLOCK_BOARD,
            "Monday Board",
            _external_select(ACTION_BOARD, "Search/select a board"),
            dispatch_action=True,
        ),
        _input_block(
            block_id_for(BLOCK_GROUP, state.nonce(FIELD_GROUP)),
            "Monday Group",
            _external_select(ACTION_GROUP, "Search/select a group"),
        ),
        _input_block(
            BLOCK_STATUS,
            "Status",
            {
                "type": "static_select",
                "action_id": ACTION_STATUS,
                "placeholder": _text("Select a status"),
                "options": _static_options(STATUS_LABELS),
            },
        ),
        _input_block(
            BLOCK_PRIORITY,
            "Priority",
            {
                "type": "static_select",
                "action_id": ACTION_PRIORITY,
                "placeholder": _text("Select a priority"),
                "options": _static_options(PRIORITY_LABELS),
            },
        ),
    ]
    return _modal(CALLBACK_CSTASK, "Create CS Task", "Create", state, blocks)


def build_hubnote_v1_modal(state: ModalState) -> Dict[str, Any]:
    """Free-text fallback form: the record is identified by typed text."""
    blocks = [
        _input_block(
            BLOCK_V1_RECORD_TYPE,
            "Record Type",
            _record_type_select(ACTION_V1_RECORD_TYPE, "Select record type"),
        ),
        _input_block(
            BLOCK_V1_TITLE,
            "Note Title / Subject",
            _text_input(ACTION_V1_TITLE, "e.g., Call recap"),
        ),
        _input_block(
            BLOCK_V1_BODY,
            "Note Body",
            _text_input(ACTION_V1_BODY, "Write your note...", multiline=True),
        ),
        _input_block(
            BLOCK_V1_IDENTIFIER,
            "Record Identifier",
            _text_input(ACTION_V1_IDENTIFIER, "Paste identifier..."),
            hint="v1: Ticket ID/Number OR Deal ID/Name. "
            "Use /hubnote v1 to access this form anytime.",
        ),
    ]
    return _modal(CALLBACK_HUBNOTE_V1, "HubSpot Note", "Create", state, blocks)


def build_hubnote_v2_modal(
    state: ModalState,
    text_values: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    """Build the dynamic-lookup note form from the current state.

    WHY: Called on open and again after every record type, pipeline, or
    stage selection. The rebuilt view must drop stale children while
    keeping the title and body the user already typed.

    HOW: Pipeline, stage, and record blocks use block_id_for() with the
    state's nonces. text_values (from extract_text_values) are written
    back as initial_value.
    """
    text_values = text_values or {}
    blocks = [
        _input_block(
            BLOCK_RECORD_TYPE,
            "Record Type",
            _record_type_select(ACTION_RECORD_TYPE, "Ticket or Deal", state.record_type),
            dispatch_action=True,
        ),
        _input_block(
            block_id_for(BLOCK_PIPELINE, state.nonce(FIELD_PIPELINE)),
            "Pipeline",
            _external_select(ACTION_PIPELINE, "Select a pipeline"),
            dispatch_action=True,
        ),
        _input_block(
            block_id_for(BLOCK_STAGE, state.nonce(FIELD_STAGE)),
            "Pipeline Stage",
            _external_select(ACTION_STAGE, "Select a stage"),
            dispatch_action=True,
        ),
        _input_block(
            block_id_for(BLOCK_RECORD, state.nonce(FIELD_RECORD)),
            "Record",
            _external_select(ACTION_RECORD, "Search/select a record"),
        ),
        _input_block(
            BLOCK_TITLE,
            "Note Title / Subject",
            _text_input(
                ACTION_TITLE,
                "e.g., Call recap",
                initial_value=text_values.get(TEXT_TITLE, ""),
            ),
        ),
        _input_block(
            BLOCK_BODY,
            "Note Body",
            _text_input(
                ACTION_BODY,
                "Write your note...",
                multiline=True,
                initial_value=text_values.get(TEXT_BODY, ""),
            ),
        ),
    ]
    return _modal(CALLBACK_HUBNOTE_V2, "HubSpot Note", "Create", state, blocks)


def build_attach_modal(session_id: str) -> Dict[str, Any]:
    state = ModalState(kind=KIND_ATTACH, session_id=session_id)
    blocks = [
        {
            "type": "section",
            "text": {
                "type": "mrkdwn",
                "text": "Select file(s) you've uploaded to Slack.\n\n"
                "_Tip: upload the files in the DM first, then open this selector._",
            },
        },
        _input_block(
            BLOCK_FILES,
            "Files to attach",
            {
                "type": "multi_external_select",
                "action_id": ACTION_FILES,
                "placeholder": _text("Search your recent Slack files"),
                "min_query_length": 0,
            },
        ),
        _input_block(
            BLOCK_ATTACH_NOTE,
            "Optional message",
            _text_input(
                ACTION_ATTACH_NOTE,
                "Anything to add about these attachments?",
                multiline=True,
            ),
            optional=True,
        ),
    ]
    return _modal(CALLBACK_ATTACH, "Attach Files", "Attach", state, blocks)


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


def build_add_files_prompt(session_id: str) -> Dict[str, Any]:
    """Ephemeral "Note created. Add files?" with Yes/No buttons.

    Returns text plus blocks, ready to splat into chat_postEphemeral.
    """
    return {
        "text": "Note created. Add files to the note?",
        "blocks": [
            {
                "type": "section",
                "text": {"type": "mrkdwn", "text": ":white_check_mark: *Note created.* Add files to the note?"},
            },
            {
                "type": "actions",
                "block_id": "hubnote_add_files_actions",
                "elements": [
                    {
                        "type": "button",
                        "action_id": ACTION_ADD_FILES_YES,
                        "style": "primary",
                        "text": _text(":meow_nod: Yes"),
                        "value": session_id,
                    },
                    {
                        "type": "button",
                        "action_id": ACTION_ADD_FILES_NO,
                        "style": "danger",
                        "text": _text(":bear-headshake: No"),
                        "value": session_id,
                    },
                ],
            },
        ],
    }


def build_dm_prompt(session_id: str) -> Dict[str, Any]:
    return {
        "text": "Upload files here to attach to your HubSpot note.",
        "blocks": [
            {
                "type": "section",
                "text": {
                    "type": "mrkdwn",
                    "text": "Upload the file(s) *in this DM*.\n\n"
                    "When you're ready, click *Attach files* below to select what to attach.",
                },
            },
            {
                "type": "actions",
                "block_id": "hubnote_dm_actions",
                "elements": [
                    {
                        "type": "button",
                        "action_id": ACTION_OPEN_ATTACH,
                        "style": "primary",
                        "text": _text("Attach files"),
                        "value": session_id,
                    },
                ],
            },
        ],
    }


def build_task_confirmation(
    task_name: str,
    board_id: str,
    group_id: str,
    status_label: str,
    priority_label: str,
    owner_email: str,
) -> str:
    lines = [
        ":white_check_mark: Task sent to Zapier!",
        "• *Task:* {}".format(task_name),
        "• *Board ID:* {}".format(board_id),
        "• *Group ID:* {}".format(group_id),
        "• *Status:* {}".format(status_label),
        "• *Priority:* {}".format(priority_label),
        "• *Owner:* {}".format(owner_email),
    ]
    return "\n".join(lines)


def build_attach_confirmation(file_count: int) -> str:
    return ":white_check_mark: Attachment request sent! ({} file{})".format(
        file_count, "" if file_count == 1 else "s"
    )
