"""Dependent-selection state machine for the note and task forms.

WHY: The v2 note form is a chain of dependent dropdowns (Record Type →
Pipeline → Stage → Record), and the task form has a shorter one (Board →
Group). Every selection invalidates everything after it, and every
"load options" request must be answered from whatever the chain holds
right now, within Slack's 3 second budget.

HOW: Transitions are pure functions from (ModalState, new value) to a
new ModalState: they set the field, clear every dependent field, and
bump the dependent fields' nonces so the view builder rebuilds those
widgets empty. SelectionService answers options requests by reading the
persisted state, calling the adapters, filtering by the typed search,
and returning placeholder options for "pick X first" and "nothing found".

RULES:
- Transitions never mutate their input
- A change to a field whose prerequisite is empty is ignored
- Placeholder (sentinel) values are never accepted as selections
- Search filtering is case-insensitive substring, order preserved, capped
  at MAX_OPTIONS, labels truncated to OPTION_LABEL_MAX
- Record search is raced against a timeout below Slack's deadline
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Any, Callable, Dict, Iterable, List, Optional

from syllabot.api.hubspot import RECORD_TYPES
from syllabot.api.models import Option
from syllabot.config import (
    FILES_LIST_LIMIT,
    MAX_OPTIONS,
    OPTION_LABEL_MAX,
    RECORD_SEARCH_TIMEOUT_S,
)
from syllabot.core.metadata import (
    FIELD_GROUP,
    FIELD_PIPELINE,
    FIELD_RECORD,
    FIELD_STAGE,
    ModalState,
)

logger = logging.getLogger(__name__)

FIELD_RECORD_TYPE = "record_type"
FIELD_BOARD = "board"

RECORD_TYPE_OPTIONS = [Option("Ticket", "ticket"), Option("Deal", "deal")]

# ---------------------------------------------------------------------------
# Sentinels
# ---------------------------------------------------------------------------

SELECT_RECORD_TYPE_FIRST = "SELECT_RECORD_TYPE_FIRST"
SELECT_PIPELINE_FIRST = "SELECT_PIPELINE_FIRST"
SELECT_STAGE_FIRST = "SELECT_STAGE_FIRST"
SELECT_BOARD_FIRST = "SELECT_BOARD_FIRST"
NO_PIPELINES = "NO_PIPELINES"
NO_STAGES = "NO_STAGES"
NO_RECORDS = "NO_RECORDS"
NO_BOARDS_FOUND = "NO_BOARDS_FOUND"
NO_GROUPS_FOUND = "NO_GROUPS_FOUND"
NO_FILES_FOUND = "NO_FILES_FOUND"
SEARCH_TIMED_OUT = "SEARCH_TIMED_OUT"
SESSION_EXPIRED = "SESSION_EXPIRED"

_SENTINELS = frozenset({
    SELECT_RECORD_TYPE_FIRST,
    SELECT_PIPELINE_FIRST,
    SELECT_STAGE_FIRST,
    SELECT_BOARD_FIRST,
    NO_PIPELINES,
    NO_STAGES,
    NO_RECORDS,
    NO_BOARDS_FOUND,
    NO_GROUPS_FOUND,
    NO_FILES_FOUND,
    SEARCH_TIMED_OUT,
    SESSION_EXPIRED,
})

_SENTINEL_LABELS = {
    SELECT_RECORD_TYPE_FIRST: "Select Record Type first",
    SELECT_PIPELINE_FIRST: "Select a Pipeline first",
    SELECT_STAGE_FIRST: "Select a Stage first",
    SELECT_BOARD_FIRST: "Select a board first",
    NO_PIPELINES: "No pipelines found",
    NO_STAGES: "No stages found",
    NO_RECORDS: "No records found",
    NO_BOARDS_FOUND: "No boards found",
    NO_GROUPS_FOUND: "No groups found for this board",
    NO_FILES_FOUND: "No matching files found",
    SEARCH_TIMED_OUT: "Search timed out, type again to retry",
    SESSION_EXPIRED: "Session expired, run /hubnote again",
}


def is_sentinel(value: Optional[str]) -> bool:
    """True for placeholder option values (including ERR_* values)."""
    if not value:
        return False
    return value in _SENTINELS or value.startswith("ERR_")


def sentinel_option(value: str) -> List[Option]:
    return [Option(_SENTINEL_LABELS[value], value)]


def error_option(field_name: str) -> List[Option]:
    """Single placeholder shown when loading a field's options failed."""
    return [Option(
        "ERROR loading {}s (check logs)".format(field_name.replace("_", " ")),
        "ERR_{}".format(field_name.upper()),
    )]


def filter_options(options: Iterable[Option], search: str = "") -> List[Option]:
    """Case-insensitive substring filter, capped and label-truncated."""
    q = (search or "").strip().lower()
    out = []
    for opt in options:
        if q and q not in opt.label.lower():
            continue
        out.append(Option(opt.label[:OPTION_LABEL_MAX], opt.value))
        if len(out) >= MAX_OPTIONS:
            break
    return out


def file_options(files: Iterable[Dict[str, Any]], search: str = "") -> List[Option]:
    """Turn a files.list page into options, matching on name or title."""
    q = (search or "").strip().lower()
    out = []
    for f in files:
        name = f.get("name") or ""
        title = f.get("title") or ""
        if q and q not in name.lower() and q not in title.lower():
            continue
        label = title or name or "File {}".format(f.get("id"))
        out.append(Option(label[:OPTION_LABEL_MAX], str(f.get("id"))))
        if len(out) >= FILES_LIST_LIMIT:
            break
    return out or sentinel_option(NO_FILES_FOUND)


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


def _bump(state: ModalState, *fields: str) -> Dict[str, int]:
    nonces = dict(state.nonces)
    for name in fields:
        nonces[name] = nonces.get(name, 0) + 1
    return nonces


def _usable(value: Optional[str]) -> bool:
    return bool(value) and not is_sentinel(value)


def on_root_field_changed(state: ModalState, record_type: str) -> ModalState:
    """Record type changed: clear pipeline, stage, and record."""
    if record_type not in RECORD_TYPES or record_type == state.record_type:
        return state
    return replace(
        state,
        record_type=record_type,
        pipeline_id="",
        stage_id="",
        record_id="",
        nonces=_bump(state, FIELD_PIPELINE, FIELD_STAGE, FIELD_RECORD),
    )


def on_parent_field_changed(state: ModalState, pipeline_id: str) -> ModalState:
    """Pipeline changed: requires a record type; clears stage and record."""
    if not state.record_type or not _usable(pipeline_id):
        return state
    if pipeline_id == state.pipeline_id:
        return state
    return replace(
        state,
        pipeline_id=pipeline_id,
        stage_id="",
        record_id="",
        nonces=_bump(state, FIELD_STAGE, FIELD_RECORD),
    )


def on_mid_field_changed(state: ModalState, stage_id: str) -> ModalState:
    """Stage changed: requires a pipeline; clears record."""
    if not state.pipeline_id or not _usable(stage_id):
        return state
    if stage_id == state.stage_id:
        return state
    return replace(
        state,
        stage_id=stage_id,
        record_id="",
        nonces=_bump(state, FIELD_RECORD),
    )


def on_leaf_field_changed(state: ModalState, record_id: str) -> ModalState:
    if not (state.pipeline_id and state.stage_id) or not _usable(record_id):
        return state
    return replace(state, record_id=record_id)


def on_board_changed(state: ModalState, board_id: str) -> ModalState:
    """Monday board changed: the group dropdown is rebuilt empty."""
    if not _usable(board_id) or board_id == state.board_id:
        return state
    return replace(state, board_id=board_id, nonces=_bump(state, FIELD_GROUP))


def is_prefix_valid(state: ModalState) -> bool:
    if state.pipeline_id and not state.record_type:
        return False
    if state.stage_id and not state.pipeline_id:
        return False
    if state.record_id and not (state.stage_id and state.pipeline_id):
        return False
    return True


# ---------------------------------------------------------------------------
# Option lists
# ---------------------------------------------------------------------------


class SelectionService:
    """Serves "list options for this field" requests.

    WHY: Option responses must come from the persisted metadata of the
    view, never from the request's own snapshot, so a stale request that
    raced behind a newer selection still gets the right list.

    HOW: hubspot and monday are zero-argument factories returning the
    async-context-manager clients, so each request opens its own HTTP
    connection pool while sharing the injected cache.

    RULES:
    - Missing prerequisites return a single "select X first" sentinel
    - Empty results return a single "no X found" sentinel
    - An unknown pipeline id is a no-match, not an error
    - Adapter exceptions propagate to the router
    """

    def __init__(
        self,
        hubspot: Optional[Callable[[], Any]] = None,
        monday: Optional[Callable[[], Any]] = None,
        search_timeout: float = RECORD_SEARCH_TIMEOUT_S,
    ) -> None:
        self._hubspot = hubspot
        self._monday = monday
        self._search_timeout = search_timeout

    async def list_options_for(
        self,
        field_name: str,
        state: ModalState,
        search_term: str = "",
    ) -> List[Option]:
        if field_name == FIELD_RECORD_TYPE:
            return filter_options(RECORD_TYPE_OPTIONS, search_term)
        if field_name == FIELD_PIPELINE:
            return await self._pipeline_options(state, search_term)
        if field_name == FIELD_STAGE:
            return await self._stage_options(state, search_term)
        if field_name == FIELD_RECORD:
            return await self._record_options(state, search_term)
        if field_name == FIELD_BOARD:
            return await self._board_options(search_term)
        if field_name == FIELD_GROUP:
            return await self._group_options(state, search_term)
        raise ValueError("Unknown selection field: {}".format(field_name))

    async def _pipeline_options(self, state: ModalState, search: str) -> List[Option]:
        if not state.record_type:
            return sentinel_option(SELECT_RECORD_TYPE_FIRST)

        async with self._hubspot() as hs:
            pipelines = await hs.get_pipelines(state.record_type)

        out = filter_options((Option(p.label, p.id) for p in pipelines), search)
        return out or sentinel_option(NO_PIPELINES)

    async def _stage_options(self, state: ModalState, search: str) -> List[Option]:
        if not state.record_type:
            return sentinel_option(SELECT_RECORD_TYPE_FIRST)
        if not state.pipeline_id:
            return sentinel_option(SELECT_PIPELINE_FIRST)

        async with self._hubspot() as hs:
            pipelines = await hs.get_pipelines(state.record_type)

        pipeline = next((p for p in pipelines if p.id == state.pipeline_id), None)
        if pipeline is None:
            logger.info(
                "Pipeline %s no longer exists for %s",
                state.pipeline_id,
                state.record_type,
            )
            return sentinel_option(NO_STAGES)

        out = filter_options((Option(s.label, s.id) for s in pipeline.stages), search)
        return out or sentinel_option(NO_STAGES)

    async def _record_options(self, state: ModalState, search: str) -> List[Option]:
        if not state.record_type:
            return sentinel_option(SELECT_RECORD_TYPE_FIRST)
        if not state.pipeline_id:
            return sentinel_option(SELECT_PIPELINE_FIRST)
        if not state.stage_id:
            return sentinel_option(SELECT_STAGE_FIRST)

        try:
            records = await asyncio.wait_for(
                self._search_records(state, search),
                timeout=self._search_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Record search timed out after %.1fs (pipeline=%s stage=%s)",
                self._search_timeout,
                state.pipeline_id,
                state.stage_id,
            )
            return sentinel_option(SEARCH_TIMED_OUT)

        out = filter_options((Option(r.label, r.id) for r in records), search)
        return out or sentinel_option(NO_RECORDS)

    async def _search_records(self, state: ModalState, search: str) -> List[Any]:
        async with self._hubspot() as hs:
            return await hs.search_records(
                state.record_type, state.pipeline_id, state.stage_id, search
            )

    async def _board_options(self, search: str) -> List[Option]:
        async with self._monday() as monday:
            boards = await monday.list_boards(search)
        return filter_options(boards, search) or sentinel_option(NO_BOARDS_FOUND)

    async def _group_options(self, state: ModalState, search: str) -> List[Option]:
        if not state.board_id:
            return sentinel_option(SELECT_BOARD_FIRST)

        async with self._monday() as monday:
            groups = await monday.list_groups(state.board_id, search)
        return filter_options(groups, search) or sentinel_option(NO_GROUPS_FOUND)
