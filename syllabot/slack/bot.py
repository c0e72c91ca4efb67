"""Slack interaction router: slash commands, dropdowns, submissions, buttons.

WHY: Every Slack interaction (command, block action, options request,
view submission) must be acknowledged within 3 seconds, while the work
behind it (HubSpot lookups, Monday lookups, Zapier relays) is network
bound. This module is the glue between Slack's payloads and the
selection, session, and relay components.

HOW: SyllaBot holds its collaborators (SelectionService, SessionStore,
ZapierRelay) so tests can inject fakes. create_app() registers its bound
methods on a slack_bolt App. Listeners ack first, except options and
validation errors where the ack payload is the answer. The async
adapters are driven from Bolt's sync listener threads with run_async().

RULES:
- ack() before any slow call; options requests ack with their options
- Option lists are computed from the view's private_metadata only
- Validation errors are keyed by the block id currently on screen
- Sentinel option values count as "nothing selected"
- Upstream failures after ack are reported with a best-effort message
- Slack Web API failures are logged, never raised out of a listener
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Coroutine, Dict, List, Optional, TypeVar

import httpx
from slack_bolt import App
from slack_sdk.errors import SlackApiError

from syllabot.api.cache import OptionCache
from syllabot.api.hubspot import HubSpotClient
from syllabot.api.models import UpstreamError
from syllabot.api.monday import MondayClient
from syllabot.api.zapier import (
    ZapierRelay,
    build_attach_payload,
    build_note_payload_v1,
    build_note_payload_v2,
    build_task_payload,
)
from syllabot.config import (
    FILES_LIST_LIMIT,
    HUBSPOT_CACHE_TTL_S,
    MONDAY_CACHE_TTL_S,
    ConfigError,
    hubspot_configured,
    load_attach_webhook_url,
    load_note_webhook_url,
    load_slack_bot_token,
    load_slack_signing_secret,
    load_task_webhook_url,
)
from syllabot.core.metadata import (
    FIELD_GROUP,
    FIELD_PIPELINE,
    FIELD_RECORD,
    FIELD_STAGE,
    KIND_CSTASK,
    KIND_HUBNOTE_V1,
    KIND_HUBNOTE_V2,
    ModalState,
    decode,
)
from syllabot.core.selection import (
    FIELD_BOARD,
    SESSION_EXPIRED,
    SelectionService,
    error_option,
    file_options,
    is_sentinel,
    on_board_changed,
    on_leaf_field_changed,
    on_mid_field_changed,
    on_parent_field_changed,
    on_root_field_changed,
    sentinel_option,
)
from syllabot.core.sessions import SessionStore, new_id
from syllabot.core.workflow import InvalidTransitionError, WorkflowStatus
from syllabot.slack.messages import (
    ACTION_ADD_FILES_NO,
    ACTION_ADD_FILES_YES,
    ACTION_ATTACH_NOTE,
    ACTION_BOARD,
    ACTION_BODY,
    ACTION_DESCRIPTION,
    ACTION_FILES,
    ACTION_GROUP,
    ACTION_OPEN_ATTACH,
    ACTION_OWNER,
    ACTION_PIPELINE,
    ACTION_PRIORITY,
    ACTION_RECORD,
    ACTION_RECORD_TYPE,
    ACTION_STAGE,
    ACTION_STATUS,
    ACTION_TASK_NAME,
    ACTION_TITLE,
    ACTION_V1_BODY,
    ACTION_V1_IDENTIFIER,
    ACTION_V1_RECORD_TYPE,
    ACTION_V1_TITLE,
    BLOCK_ATTACH_NOTE,
    BLOCK_BOARD,
    BLOCK_BODY,
    BLOCK_DESCRIPTION,
    BLOCK_FILES,
    BLOCK_GROUP,
    BLOCK_OWNER,
    BLOCK_PIPELINE,
    BLOCK_PRIORITY,
    BLOCK_RECORD,
    BLOCK_RECORD_TYPE,
    BLOCK_STAGE,
    BLOCK_STATUS,
    BLOCK_TASK_NAME,
    BLOCK_TITLE,
    BLOCK_V1_BODY,
    BLOCK_V1_IDENTIFIER,
    BLOCK_V1_RECORD_TYPE,
    BLOCK_V1_TITLE,
    CALLBACK_ATTACH,
    CALLBACK_CSTASK,
    CALLBACK_HUBNOTE_V1,
    CALLBACK_HUBNOTE_V2,
    block_id_for,
    build_attach_confirmation,
    build_attach_modal,
    build_cstask_modal,
    build_dm_prompt,
    build_hubnote_v1_modal,
    build_hubnote_v2_modal,
    build_task_confirmation,
    extract_text_values,
    find_block_value,
    input_value,
    selected_value,
    to_slack_options,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

FIELD_FILE = "file"

# Errors that mean "the relay did not get through"
_RELAY_ERRORS = (UpstreamError, httpx.HTTPError)


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Run an adapter coroutine to completion from a sync Bolt listener.

    WHY: Bolt's sync App calls listeners in worker threads that have no
    event loop of their own, while the HTTP adapters are async.

    HOW: asyncio.run() gives each call a fresh loop in the calling thread.
    """
    return asyncio.run(coro)


def _picked(value: str) -> bool:
    return bool(value) and not is_sentinel(value)


def _action_value(body: Dict[str, Any]) -> str:
    actions = body.get("actions") or [{}]
    action = actions[0]
    option = action.get("selected_option") or {}
    return option.get("value") or action.get("value") or ""


def _post_message(client: Any, channel: str, text: str, **kwargs: Any) -> None:
    try:
        client.chat_postMessage(channel=channel, text=text, **kwargs)
    except SlackApiError:
        logger.exception("Failed to post message to %s", channel)


def _post_ephemeral(client: Any, channel: str, user: str, text: str, **kwargs: Any) -> None:
    try:
        client.chat_postEphemeral(channel=channel, user=user, text=text, **kwargs)
    except SlackApiError:
        logger.exception("Failed to post ephemeral message to %s in %s", user, channel)


class SyllaBot:
    """Routes Slack interactions to the selection, session, and relay logic.

    WHY: Handlers share a session store, option caches, and a relay.
    Holding them on one object keeps them injectable and avoids module
    globals.

    RULES:
    - Handler methods take Bolt's keyword arguments (ack, body, client, view)
    - hubspot_enabled decides whether /hubnote can open the v2 form
    """

    def __init__(
        self,
        selection: Optional[SelectionService] = None,
        sessions: Optional[SessionStore] = None,
        relay: Optional[ZapierRelay] = None,
        hubspot_enabled: Callable[[], bool] = hubspot_configured,
    ) -> None:
        if selection is None:
            hubspot_cache = OptionCache(HUBSPOT_CACHE_TTL_S)
            monday_cache = OptionCache(MONDAY_CACHE_TTL_S)
            selection = SelectionService(
                hubspot=lambda: HubSpotClient(cache=hubspot_cache),
                monday=lambda: MondayClient(cache=monday_cache),
            )
        self.selection = selection
        self.sessions = sessions if sessions is not None else SessionStore()
        self.relay = relay if relay is not None else ZapierRelay()
        self._hubspot_enabled = hubspot_enabled

    def register(self, app: App) -> App:
        app.command("/cstask")(self.handle_cstask_command)
        app.command("/hubnote")(self.handle_hubnote_command)

        # Dependent dropdowns
        app.action(ACTION_BOARD)(self.handle_board_select)
        app.action(ACTION_GROUP)(self.handle_ack_only)
        app.action(ACTION_RECORD_TYPE)(self.handle_record_type_select)
        app.action(ACTION_PIPELINE)(self.handle_pipeline_select)
        app.action(ACTION_STAGE)(self.handle_stage_select)
        app.action(ACTION_RECORD)(self.handle_ack_only)

        # Options loaders
        app.options(ACTION_BOARD)(self.handle_board_options)
        app.options(ACTION_GROUP)(self.handle_group_options)
        app.options(ACTION_PIPELINE)(self.handle_pipeline_options)
        app.options(ACTION_STAGE)(self.handle_stage_options)
        app.options(ACTION_RECORD)(self.handle_record_options)
        app.options(ACTION_FILES)(self.handle_files_options)

        # Submissions
        app.view(CALLBACK_CSTASK)(self.handle_cstask_submit)
        app.view(CALLBACK_HUBNOTE_V1)(self.handle_hubnote_v1_submit)
        app.view(CALLBACK_HUBNOTE_V2)(self.handle_hubnote_v2_submit)
        app.view(CALLBACK_ATTACH)(self.handle_attach_submit)

        # Attachment flow buttons
        app.action(ACTION_ADD_FILES_YES)(self.handle_add_files_yes)
        app.action(ACTION_ADD_FILES_NO)(self.handle_add_files_no)
        app.action(ACTION_OPEN_ATTACH)(self.handle_open_attach_modal)
        return app

    # ------------------------------------------------------------------
    # Slash commands
    # ------------------------------------------------------------------

    def handle_cstask_command(self, ack: Any, body: Dict[str, Any], client: Any) -> None:
        ack()
        state = ModalState(
            kind=KIND_CSTASK,
            correlation_id=new_id("cstask"),
            origin_channel_id=body.get("channel_id", ""),
            origin_user_id=body.get("user_id", ""),
        )
        try:
            client.views_open(trigger_id=body["trigger_id"], view=build_cstask_modal(state))
        except SlackApiError:
            logger.exception("Failed to open /cstask modal")
            _post_message(
                client,
                body.get("user_id", ""),
                ":x: I couldn't open the task form. Please try again or contact an admin.",
            )

    def handle_hubnote_command(self, ack: Any, body: Dict[str, Any], client: Any) -> None:
        """Open the v2 note form, or v1 on request or without HubSpot access.

        RULES:
        - "/hubnote v1" always opens the free-text form
        - Without a HubSpot token the user is warned and gets v1
        """
        ack()
        channel_id = body.get("channel_id", "")
        user_id = body.get("user_id", "")
        force_v1 = (body.get("text") or "").strip().lower() == "v1"

        use_v2 = not force_v1 and self._hubspot_enabled()
        if not force_v1 and not use_v2:
            _post_ephemeral(
                client,
                channel_id,
                user_id,
                ":warning: HUBSPOT_PRIVATE_APP_TOKEN is not configured, so dynamic "
                "lookups (v2) can't load.\nOpening the v1 form instead. "
                "(You can also run `/hubnote v1`.)",
            )

        state = ModalState(
            kind=KIND_HUBNOTE_V2 if use_v2 else KIND_HUBNOTE_V1,
            correlation_id=new_id("hubnote"),
            origin_channel_id=channel_id,
            origin_user_id=user_id,
        )
        view = build_hubnote_v2_modal(state) if use_v2 else build_hubnote_v1_modal(state)
        try:
            client.views_open(trigger_id=body["trigger_id"], view=view)
        except SlackApiError:
            logger.exception("Failed to open /hubnote modal")
            _post_message(client, user_id, ":x: I couldn't open the HubSpot note form. Please try again.")

    # ------------------------------------------------------------------
    # Dependent dropdown selections
    # ------------------------------------------------------------------

    def handle_ack_only(self, ack: Any) -> None:
        """Selections read at submit time need no server-side state."""
        ack()

    def handle_board_select(self, ack: Any, body: Dict[str, Any], client: Any) -> None:
        ack()
        view = body.get("view") or {}
        state = decode(view.get("private_metadata"))
        new_state = on_board_changed(state, _action_value(body))
        if new_state is state:
            return
        self._update_view(client, view, build_cstask_modal(new_state))

    def handle_record_type_select(self, ack: Any, body: Dict[str, Any], client: Any) -> None:
        ack()
        self._apply_selection(body, client, on_root_field_changed)

    def handle_pipeline_select(self, ack: Any, body: Dict[str, Any], client: Any) -> None:
        ack()
        self._apply_selection(body, client, on_parent_field_changed)

    def handle_stage_select(self, ack: Any, body: Dict[str, Any], client: Any) -> None:
        ack()
        self._apply_selection(body, client, on_mid_field_changed)

    def _apply_selection(
        self,
        body: Dict[str, Any],
        client: Any,
        transition: Callable[[ModalState, str], ModalState],
    ) -> None:
        """Run one v2 transition and re-render the view if it changed.

        HOW: The typed title and body are read from the live view and
        written back, since the rebuilt view replaces every block.
        """
        view = body.get("view") or {}
        state = decode(view.get("private_metadata"))
        new_state = transition(state, _action_value(body))
        if new_state is state:
            return
        self._update_view(
            client, view, build_hubnote_v2_modal(new_state, extract_text_values(view))
        )

    @staticmethod
    def _update_view(client: Any, view: Dict[str, Any], new_view: Dict[str, Any]) -> None:
        try:
            client.views_update(view_id=view.get("id"), hash=view.get("hash"), view=new_view)
        except SlackApiError as exc:
            # hash_conflict: a newer update already landed
            logger.warning(
                "views.update rejected for %s: %s",
                view.get("id"),
                exc.response.get("error") if exc.response is not None else exc,
            )

    # ------------------------------------------------------------------
    # Options loaders
    # ------------------------------------------------------------------

    def _serve_options(self, ack: Any, body: Dict[str, Any], field_name: str) -> None:
        state = decode((body.get("view") or {}).get("private_metadata"))
        search = body.get("value") or ""
        try:
            options = run_async(self.selection.list_options_for(field_name, state, search))
        except Exception:
            logger.exception("Failed to load %s options", field_name)
            options = error_option(field_name)
        ack(options=to_slack_options(options))

    def handle_board_options(self, ack: Any, body: Dict[str, Any]) -> None:
        self._serve_options(ack, body, FIELD_BOARD)

    def handle_group_options(self, ack: Any, body: Dict[str, Any]) -> None:
        self._serve_options(ack, body, FIELD_GROUP)

    def handle_pipeline_options(self, ack: Any, body: Dict[str, Any]) -> None:
        self._serve_options(ack, body, FIELD_PIPELINE)

    def handle_stage_options(self, ack: Any, body: Dict[str, Any]) -> None:
        self._serve_options(ack, body, FIELD_STAGE)

    def handle_record_options(self, ack: Any, body: Dict[str, Any]) -> None:
        self._serve_options(ack, body, FIELD_RECORD)

    def handle_files_options(self, ack: Any, body: Dict[str, Any], client: Any) -> None:
        """List the session owner's recent Slack files for the attach modal."""
        state = decode((body.get("view") or {}).get("private_metadata"))
        session = self.sessions.get(state.session_id) if state.session_id else None
        if session is None:
            ack(options=to_slack_options(sentinel_option(SESSION_EXPIRED)))
            return

        try:
            resp = client.files_list(user=session.origin_user_id, count=FILES_LIST_LIMIT)
            options = file_options(resp.get("files") or [], body.get("value") or "")
        except SlackApiError:
            logger.exception("Failed to list files for %s", session.origin_user_id)
            options = error_option(FIELD_FILE)
        ack(options=to_slack_options(options))

    # ------------------------------------------------------------------
    # Submissions
    # ------------------------------------------------------------------

    def handle_cstask_submit(self, ack: Any, body: Dict[str, Any], client: Any, view: Dict[str, Any]) -> None:
        """Validate the task form, then relay it to the Monday Zap.

        RULES:
        - Board comes from metadata, group from the current group block
        - The owner's email is required by the Zap; no email, no relay
        """
        values = view.get("state", {}).get("values", {})
        state = decode(view.get("private_metadata"))
        group_block = block_id_for(BLOCK_GROUP, state.nonce(FIELD_GROUP))

        task_name = input_value(find_block_value(values, BLOCK_TASK_NAME, ACTION_TASK_NAME))
        description = input_value(find_block_value(values, BLOCK_DESCRIPTION, ACTION_DESCRIPTION))
        owner = (find_block_value(values, BLOCK_OWNER, ACTION_OWNER) or {}).get("selected_user") or ""
        group_id = selected_value(values.get(group_block, {}).get(ACTION_GROUP))
        status_label = selected_value(find_block_value(values, BLOCK_STATUS, ACTION_STATUS))
        priority_label = selected_value(find_block_value(values, BLOCK_PRIORITY, ACTION_PRIORITY))

        errors = {}
        if not task_name:
            errors[BLOCK_TASK_NAME] = "Task name is required."
        if not owner:
            errors[BLOCK_OWNER] = "Please select an owner."
        if not _picked(state.board_id):
            errors[BLOCK_BOARD] = "Please select a board."
        if not _picked(group_id):
            errors[group_block] = "Please select a group."
        if not status_label:
            errors[BLOCK_STATUS] = "Please select a status."
        if not priority_label:
            errors[BLOCK_PRIORITY] = "Please select a priority."

        if errors:
            ack(response_action="errors", errors=errors)
            return

        ack()

        submitter = body["user"]["id"]
        owner_email = self._lookup_email(client, owner)
        if not owner_email:
            _post_message(
                client,
                submitter,
                ":warning: I couldn't retrieve the selected owner's email from Slack.\n"
                "Make sure SyllaBot has `users:read.email` and you reinstalled the app.",
            )
            return

        try:
            webhook_url = load_task_webhook_url()
        except ConfigError as exc:
            _post_message(client, submitter, ":x: {}".format(exc))
            return

        payload = build_task_payload(
            task_name=task_name,
            description=description,
            owner_user_id=owner,
            owner_email=owner_email,
            board_id=state.board_id,
            group_id=group_id,
            status_label=status_label,
            priority_label=priority_label,
            submitted_by=submitter,
        )
        try:
            run_async(self.relay.post(webhook_url, payload))
        except _RELAY_ERRORS:
            logger.exception("Task relay failed (%s)", state.correlation_id)
            _post_message(
                client,
                submitter,
                ":x: I couldn't send that task to Zapier. Check the Zapier and server logs and try again.",
            )
            return

        _post_message(
            client,
            submitter,
            build_task_confirmation(
                task_name, state.board_id, group_id, status_label, priority_label, owner_email
            ),
        )

    @staticmethod
    def _lookup_email(client: Any, user_id: str) -> str:
        try:
            info = client.users_info(user=user_id)
        except SlackApiError:
            logger.exception("users.info failed for %s", user_id)
            return ""
        return ((info.get("user") or {}).get("profile") or {}).get("email") or ""

    def handle_hubnote_v1_submit(self, ack: Any, body: Dict[str, Any], client: Any, view: Dict[str, Any]) -> None:
        values = view.get("state", {}).get("values", {})
        state = decode(view.get("private_metadata"))

        record_type = selected_value(find_block_value(values, BLOCK_V1_RECORD_TYPE, ACTION_V1_RECORD_TYPE))
        title = input_value(find_block_value(values, BLOCK_V1_TITLE, ACTION_V1_TITLE))
        note = input_value(find_block_value(values, BLOCK_V1_BODY, ACTION_V1_BODY))
        identifier = input_value(find_block_value(values, BLOCK_V1_IDENTIFIER, ACTION_V1_IDENTIFIER))

        errors = {}
        if not record_type:
            errors[BLOCK_V1_RECORD_TYPE] = "Please choose Ticket or Deal."
        if not title:
            errors[BLOCK_V1_TITLE] = "Note title is required."
        if not note:
            errors[BLOCK_V1_BODY] = "Note body is required."
        if not identifier:
            errors[BLOCK_V1_IDENTIFIER] = "Record identifier is required."

        if errors:
            ack(response_action="errors", errors=errors)
            return

        ack()

        submitter = body["user"]["id"]
        correlation_id = state.correlation_id or new_id("hubnote")
        origin_channel = state.origin_channel_id or submitter
        origin_user = state.origin_user_id or submitter
        payload = build_note_payload_v1(
            correlation_id=correlation_id,
            record_type=record_type,
            record_identifier=identifier,
            note_title=title,
            note_body=note,
            submitted_by=submitter,
            origin_channel_id=origin_channel,
            origin_user_id=origin_user,
        )
        self._relay_note(client, payload, submitter, origin_channel, origin_user)

    def handle_hubnote_v2_submit(self, ack: Any, body: Dict[str, Any], client: Any, view: Dict[str, Any]) -> None:
        """Validate the dynamic form and relay fully resolved ids.

        WHY: Record type, pipeline, and stage are only trusted from the
        metadata the transitions wrote. The record is read from the block
        carrying the current record nonce, so a value picked under an
        older parent is never submitted.
        """
        values = view.get("state", {}).get("values", {})
        state = decode(view.get("private_metadata"))

        pipeline_block = block_id_for(BLOCK_PIPELINE, state.nonce(FIELD_PIPELINE))
        stage_block = block_id_for(BLOCK_STAGE, state.nonce(FIELD_STAGE))
        record_block = block_id_for(BLOCK_RECORD, state.nonce(FIELD_RECORD))

        state = on_leaf_field_changed(
            state, selected_value(values.get(record_block, {}).get(ACTION_RECORD))
        )
        title = input_value(find_block_value(values, BLOCK_TITLE, ACTION_TITLE))
        note = input_value(find_block_value(values, BLOCK_BODY, ACTION_BODY))

        errors = {}
        if not state.record_type:
            errors[BLOCK_RECORD_TYPE] = "Select Ticket or Deal."
        if not _picked(state.pipeline_id):
            errors[pipeline_block] = "Select a pipeline."
        if not _picked(state.stage_id):
            errors[stage_block] = "Select a stage."
        if not _picked(state.record_id):
            errors[record_block] = "Select a record."
        if not title:
            errors[BLOCK_TITLE] = "Note title is required."
        if not note:
            errors[BLOCK_BODY] = "Note body is required."

        if errors:
            ack(response_action="errors", errors=errors)
            return

        ack()

        submitter = body["user"]["id"]
        origin_channel = state.origin_channel_id or submitter
        origin_user = state.origin_user_id or submitter
        payload = build_note_payload_v2(
            correlation_id=state.correlation_id or new_id("hubnote"),
            record_type=state.record_type,
            record_id=state.record_id,
            pipeline_id=state.pipeline_id,
            stage_id=state.stage_id,
            note_title=title,
            note_body=note,
            submitted_by=submitter,
            origin_channel_id=origin_channel,
            origin_user_id=origin_user,
        )
        self._relay_note(client, payload, submitter, origin_channel, origin_user)

    def _relay_note(
        self,
        client: Any,
        payload: Dict[str, Any],
        submitter: str,
        origin_channel: str,
        origin_user: str,
    ) -> str:
        """Send a note payload to Zapier and tell the user where it stands.

        WHY: The note only exists once Zapier's callback says so. The
        submission is tracked from here, keyed by correlation_id, so the
        callback can pick it up and a repeated callback is refused.

        RULES:
        - The session starts SUBMITTED and ends this call RELAYED, or is
          marked FAILED and dropped
        - The CREATED step arrives later through the callback endpoint
        - Returns the session id
        """
        correlation_id = payload.get("correlation_id") or ""
        session_id = self.sessions.create(
            correlation_id=correlation_id,
            note_id="",
            object_type=payload.get("hubspot_object_type") or "",
            object_id=payload.get("hubspot_object_id") or "",
            origin_channel_id=origin_channel,
            origin_user_id=origin_user,
            status=WorkflowStatus.SUBMITTED,
        )

        try:
            webhook_url = load_note_webhook_url()
        except ConfigError as exc:
            _post_message(client, submitter, ":x: {}".format(exc))
            self._finish(session_id, WorkflowStatus.FAILED)
            return session_id

        try:
            run_async(self.relay.post(webhook_url, payload))
        except _RELAY_ERRORS:
            logger.exception("Note relay failed (%s)", correlation_id)
            _post_ephemeral(
                client,
                origin_channel,
                origin_user,
                ":x: I couldn't send the note to Zapier. Check the Zapier and server logs and try again.",
            )
            self._finish(session_id, WorkflowStatus.FAILED)
            return session_id

        try:
            self.sessions.transition(session_id, WorkflowStatus.RELAYED)
        except InvalidTransitionError:
            logger.info("Callback for %s arrived before the relay returned", correlation_id)
        else:
            _post_ephemeral(client, origin_channel, origin_user, ":hourglass_flowing_sand: Creating note in HubSpot...")
        return session_id

    def handle_attach_submit(self, ack: Any, body: Dict[str, Any], client: Any, view: Dict[str, Any]) -> None:
        values = view.get("state", {}).get("values", {})
        state = decode(view.get("private_metadata"))
        session_id = state.session_id
        session = self.sessions.get(session_id) if session_id else None
        if session is None:
            ack(
                response_action="errors",
                errors={BLOCK_FILES: "This attachment session expired. Run /hubnote again."},
            )
            return

        selected = (find_block_value(values, BLOCK_FILES, ACTION_FILES) or {}).get("selected_options") or []
        file_ids: List[str] = [o.get("value") for o in selected if _picked(o.get("value") or "")]
        if not file_ids:
            ack(response_action="errors", errors={BLOCK_FILES: "Select at least one file."})
            return

        ack()

        attach_note = input_value(find_block_value(values, BLOCK_ATTACH_NOTE, ACTION_ATTACH_NOTE))
        requester = body["user"]["id"]
        channel = session.dm_channel_id or requester

        try:
            webhook_url = load_attach_webhook_url()
        except ConfigError as exc:
            _post_message(client, channel, ":warning: Files selected, but {}".format(exc))
            self._finish(session_id, WorkflowStatus.FAILED)
            return

        payload = build_attach_payload(
            note_id=session.note_id,
            object_type=session.object_type,
            object_id=session.object_id,
            slack_file_ids=file_ids,
            attach_note=attach_note,
            requested_by=requester,
        )
        try:
            run_async(self.relay.post(webhook_url, payload))
        except _RELAY_ERRORS:
            logger.exception("Attach relay failed for session %s", session_id)
            _post_message(
                client,
                channel,
                ":x: I couldn't send attachments to Zapier. Check the Zapier and server logs and try again.",
            )
            self._finish(session_id, WorkflowStatus.FAILED)
            return

        _post_message(client, channel, build_attach_confirmation(len(file_ids)))
        self._finish(session_id, WorkflowStatus.ATTACHED)

    def _finish(self, session_id: str, status: WorkflowStatus) -> None:
        """Move a session to a terminal status and drop it."""
        try:
            self.sessions.transition(session_id, status)
        except InvalidTransitionError:
            logger.warning("Session %s could not move to %s", session_id, status.value)
        self.sessions.delete(session_id)

    # ------------------------------------------------------------------
    # Attachment flow buttons
    # ------------------------------------------------------------------

    def handle_add_files_no(self, ack: Any, body: Dict[str, Any], client: Any) -> None:
        ack()
        session_id = _action_value(body)
        if session_id:
            self._finish(session_id, WorkflowStatus.DECLINED)

        channel_id = (body.get("channel") or {}).get("id")
        user_id = (body.get("user") or {}).get("id")
        if channel_id and user_id:
            _post_ephemeral(client, channel_id, user_id, ":white_check_mark: All set, no files added.")

    def handle_add_files_yes(self, ack: Any, body: Dict[str, Any], client: Any) -> None:
        """Open a DM where the user uploads files, with an Attach button.

        RULES:
        - An expired session tells the user to run /hubnote again
        - A repeated click finds the session already ATTACHING and stops
        """
        ack()
        session_id = _action_value(body)
        session = self.sessions.get(session_id) if session_id else None

        if session is None:
            channel_id = (body.get("channel") or {}).get("id")
            user_id = (body.get("user") or {}).get("id")
            if channel_id and user_id:
                _post_ephemeral(
                    client,
                    channel_id,
                    user_id,
                    ":warning: That attachment session expired. Please run /hubnote again if needed.",
                )
            return

        try:
            self.sessions.transition(session_id, WorkflowStatus.ATTACHING)
        except InvalidTransitionError:
            logger.info("Ignoring repeated attach request for session %s", session_id)
            return

        dm_channel_id = ""
        try:
            dm = client.conversations_open(users=session.origin_user_id)
            dm_channel_id = (dm.get("channel") or {}).get("id") or ""
        except SlackApiError:
            logger.exception("conversations.open failed for %s", session.origin_user_id)

        if not dm_channel_id:
            _post_ephemeral(
                client,
                session.origin_channel_id,
                session.origin_user_id,
                ":x: I couldn't open a DM for file uploads. Please try again.",
            )
            self._finish(session_id, WorkflowStatus.FAILED)
            return

        self.sessions.update(session_id, dm_channel_id=dm_channel_id)
        _post_message(client, dm_channel_id, **build_dm_prompt(session_id))
        _post_ephemeral(
            client,
            session.origin_channel_id,
            session.origin_user_id,
            ":white_check_mark: DM sent. Upload files there, then click *Attach files*.",
        )

    def handle_open_attach_modal(self, ack: Any, body: Dict[str, Any], client: Any) -> None:
        ack()
        session_id = _action_value(body)
        if not session_id or self.sessions.get(session_id) is None:
            channel_id = (body.get("channel") or {}).get("id")
            if channel_id:
                _post_message(
                    client,
                    channel_id,
                    ":warning: That attachment session expired. Please run /hubnote again if needed.",
                )
            return

        try:
            client.views_open(trigger_id=body["trigger_id"], view=build_attach_modal(session_id))
        except SlackApiError:
            logger.exception("Failed to open attach modal for session %s", session_id)


# ---------------------------------------------------------------------------
# App setup
# ---------------------------------------------------------------------------


def create_app(
    bot: Optional[SyllaBot] = None,
    bot_token: Optional[str] = None,
    signing_secret: Optional[str] = None,
    **app_kwargs: Any,
) -> App:
    """Create the Bolt app and register every SyllaBot listener.

    WHY: Factory function so the server and tests can inject their own
    SyllaBot and credentials without module-level side effects.

    RULES:
    - Missing tokens raise ConfigError naming the env var
    - app_kwargs pass through to slack_bolt.App (e.g. token_verification_enabled)
    """
    app = App(
        token=bot_token or load_slack_bot_token(),
        signing_secret=signing_secret or load_slack_signing_secret(),
        **app_kwargs,
    )
    return (bot or SyllaBot()).register(app)
