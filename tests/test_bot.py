"""Tests for the Slack interaction router (SyllaBot handlers).

WHY: The handlers are where Slack's 3 second ack rule, the nonce
bookkeeping, and the relay/session side effects meet. Bolt itself is not
under test; each handler is called directly with the keyword arguments
Bolt would pass.

HOW: ack and client are MagicMocks. The bot gets the fake-backed
SelectionService from conftest, a SessionStore on the FakeClock, and a
relay whose post() is an AsyncMock. Webhook URLs are set per test with
monkeypatch.

RULES:
- No network and no Bolt App instance
- Assertions read the ack payload and the Web API calls, not log output
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from slack_sdk.errors import SlackApiError

from syllabot.api.models import UpstreamError
from syllabot.core.metadata import (
    FIELD_GROUP,
    FIELD_PIPELINE,
    FIELD_RECORD,
    FIELD_STAGE,
    KIND_CSTASK,
    ModalState,
    decode,
    encode,
)
from syllabot.core.selection import (
    SESSION_EXPIRED,
    on_board_changed,
    on_mid_field_changed,
    on_parent_field_changed,
    on_root_field_changed,
)
from syllabot.core.workflow import WorkflowStatus
from syllabot.slack.bot import SyllaBot
from syllabot.slack.messages import (
    ACTION_BODY,
    ACTION_FILES,
    ACTION_GROUP,
    ACTION_OWNER,
    ACTION_PRIORITY,
    ACTION_RECORD,
    ACTION_STATUS,
    ACTION_TASK_NAME,
    ACTION_TITLE,
    BLOCK_BODY,
    BLOCK_FILES,
    BLOCK_GROUP,
    BLOCK_OWNER,
    BLOCK_PIPELINE,
    BLOCK_PRIORITY,
    BLOCK_RECORD,
    BLOCK_STAGE,
    BLOCK_STATUS,
    BLOCK_TASK_NAME,
    BLOCK_TITLE,
    CALLBACK_CSTASK,
    CALLBACK_HUBNOTE_V1,
    CALLBACK_HUBNOTE_V2,
    block_id_for,
    build_attach_modal,
    build_cstask_modal,
    build_hubnote_v2_modal,
)


@pytest.fixture
def relay():
    relay = MagicMock()
    relay.post = AsyncMock()
    return relay


@pytest.fixture
def bot(selection, sessions, relay):
    return SyllaBot(
        selection=selection,
        sessions=sessions,
        relay=relay,
        hubspot_enabled=lambda: True,
    )


@pytest.fixture
def client():
    return MagicMock()


@pytest.fixture
def ready_state(v2_state):
    """Ticket / Support / In Progress, waiting for a record."""
    state = on_root_field_changed(v2_state, "ticket")
    state = on_parent_field_changed(state, "0")
    return on_mid_field_changed(state, "2")


def _live_view(view, values=None):
    view = dict(view)
    view["id"] = "V123"
    view["hash"] = "h-1"
    view["state"] = {"values": values or {}}
    return view


def _action_body(view, value):
    return {
        "user": {"id": "U100"},
        "view": view,
        "actions": [{"selected_option": {"value": value}}],
    }


def _button_body(session_id):
    return {
        "user": {"id": "U100"},
        "channel": {"id": "C100"},
        "actions": [{"value": session_id}],
        "trigger_id": "trig-1",
    }


def _slack_error(error="channel_not_found"):
    return SlackApiError("boom", {"ok": False, "error": error})


def _open_session(sessions):
    sid = sessions.create(
        correlation_id="hubnote_abc123",
        note_id="555",
        object_type="ticket",
        object_id="901",
        origin_channel_id="C100",
        origin_user_id="U100",
    )
    sessions.transition(sid, WorkflowStatus.AWAITING_ATTACH_DECISION)
    return sid


# ---------------------------------------------------------------------------
# Registration and slash commands
# ---------------------------------------------------------------------------


class TestRegister:
    def test_registers_commands_and_views(self, bot):
        app = MagicMock()
        assert bot.register(app) is app
        app.command.assert_any_call("/cstask")
        app.command.assert_any_call("/hubnote")
        app.view.assert_any_call(CALLBACK_HUBNOTE_V2)
        app.options.assert_any_call(ACTION_RECORD)


class TestCommands:
    def _body(self, text=""):
        return {"channel_id": "C100", "user_id": "U100", "trigger_id": "trig-1", "text": text}

    def test_hubnote_opens_v2(self, bot, client):
        ack = MagicMock()
        bot.handle_hubnote_command(ack=ack, body=self._body(), client=client)

        ack.assert_called_once_with()
        view = client.views_open.call_args.kwargs["view"]
        assert view["callback_id"] == CALLBACK_HUBNOTE_V2
        meta = decode(view["private_metadata"])
        assert meta.origin_channel_id == "C100"
        assert meta.correlation_id.startswith("hubnote_")

    def test_hubnote_v1_on_request(self, bot, client):
        bot.handle_hubnote_command(ack=MagicMock(), body=self._body(" V1 "), client=client)
        assert client.views_open.call_args.kwargs["view"]["callback_id"] == CALLBACK_HUBNOTE_V1
        client.chat_postEphemeral.assert_not_called()

    def test_hubnote_falls_back_without_hubspot(self, selection, sessions, relay, client):
        bot = SyllaBot(selection=selection, sessions=sessions, relay=relay, hubspot_enabled=lambda: False)
        bot.handle_hubnote_command(ack=MagicMock(), body=self._body(), client=client)

        assert client.views_open.call_args.kwargs["view"]["callback_id"] == CALLBACK_HUBNOTE_V1
        warning = client.chat_postEphemeral.call_args.kwargs["text"]
        assert "HUBSPOT_PRIVATE_APP_TOKEN" in warning

    def test_cstask_opens_modal(self, bot, client):
        bot.handle_cstask_command(ack=MagicMock(), body=self._body(), client=client)
        view = client.views_open.call_args.kwargs["view"]
        assert view["callback_id"] == CALLBACK_CSTASK
        assert decode(view["private_metadata"]).kind == KIND_CSTASK

    def test_open_failure_dms_user(self, bot, client):
        client.views_open.side_effect = _slack_error("expired_trigger_id")
        bot.handle_cstask_command(ack=MagicMock(), body=self._body(), client=client)
        assert client.chat_postMessage.call_args.kwargs["channel"] == "U100"


# ---------------------------------------------------------------------------
# Dependent dropdowns
# ---------------------------------------------------------------------------


class TestSelections:
    def test_record_type_rebuilds_view(self, bot, client, v2_state):
        view = _live_view(
            build_hubnote_v2_modal(v2_state),
            {BLOCK_TITLE: {ACTION_TITLE: {"type": "plain_text_input", "value": "Call recap"}}},
        )
        ack = MagicMock()

        bot.handle_record_type_select(ack=ack, body=_action_body(view, "deal"), client=client)

        ack.assert_called_once_with()
        kwargs = client.views_update.call_args.kwargs
        assert kwargs["view_id"] == "V123"
        assert kwargs["hash"] == "h-1"
        new_view = kwargs["view"]
        meta = decode(new_view["private_metadata"])
        assert meta.record_type == "deal"
        assert meta.nonce(FIELD_PIPELINE) == v2_state.nonce(FIELD_PIPELINE) + 1
        title = next(b for b in new_view["blocks"] if b["block_id"] == BLOCK_TITLE)
        assert title["element"]["initial_value"] == "Call recap"

    def test_same_value_does_not_update(self, bot, client, ready_state):
        view = _live_view(build_hubnote_v2_modal(ready_state))
        bot.handle_record_type_select(ack=MagicMock(), body=_action_body(view, "ticket"), client=client)
        client.views_update.assert_not_called()

    def test_pipeline_without_record_type_ignored(self, bot, client, v2_state):
        view = _live_view(build_hubnote_v2_modal(v2_state))
        bot.handle_pipeline_select(ack=MagicMock(), body=_action_body(view, "0"), client=client)
        client.views_update.assert_not_called()

    def test_sentinel_selection_ignored(self, bot, client, ready_state):
        view = _live_view(build_hubnote_v2_modal(ready_state))
        bot.handle_stage_select(ack=MagicMock(), body=_action_body(view, "NO_STAGES"), client=client)
        client.views_update.assert_not_called()

    def test_stage_change_moves_record_block(self, bot, client, ready_state):
        view = _live_view(build_hubnote_v2_modal(ready_state))
        bot.handle_stage_select(ack=MagicMock(), body=_action_body(view, "3"), client=client)

        new_view = client.views_update.call_args.kwargs["view"]
        meta = decode(new_view["private_metadata"])
        assert meta.stage_id == "3"
        assert block_id_for(BLOCK_RECORD, meta.nonce(FIELD_RECORD)) in [
            b["block_id"] for b in new_view["blocks"]
        ]
        assert meta.nonce(FIELD_STAGE) == ready_state.nonce(FIELD_STAGE)

    def test_hash_conflict_is_logged_not_raised(self, bot, client, v2_state):
        client.views_update.side_effect = _slack_error("hash_conflict")
        view = _live_view(build_hubnote_v2_modal(v2_state))
        bot.handle_record_type_select(ack=MagicMock(), body=_action_body(view, "deal"), client=client)

    def test_board_select_bumps_group(self, bot, client):
        state = ModalState(kind=KIND_CSTASK)
        view = _live_view(build_cstask_modal(state))
        bot.handle_board_select(ack=MagicMock(), body=_action_body(view, "111"), client=client)

        meta = decode(client.views_update.call_args.kwargs["view"]["private_metadata"])
        assert meta.board_id == "111"
        assert meta.nonce(FIELD_GROUP) == 1


# ---------------------------------------------------------------------------
# Options loaders
# ---------------------------------------------------------------------------


def _options_body(state, value=""):
    return {"view": {"private_metadata": encode(state)}, "value": value}


def _acked_values(ack):
    return [o["value"] for o in ack.call_args.kwargs["options"]]


class TestOptions:
    def test_pipelines(self, bot, v2_state):
        ack = MagicMock()
        bot.handle_pipeline_options(ack=ack, body=_options_body(on_root_field_changed(v2_state, "ticket")))
        assert _acked_values(ack) == ["0", "10", "20"]

    def test_pipelines_need_record_type(self, bot, v2_state):
        ack = MagicMock()
        bot.handle_pipeline_options(ack=ack, body=_options_body(v2_state))
        assert _acked_values(ack) == ["SELECT_RECORD_TYPE_FIRST"]

    def test_records_filtered_by_search(self, bot, ready_state):
        ack = MagicMock()
        bot.handle_record_options(ack=ack, body=_options_body(ready_state, "billing"))
        assert _acked_values(ack) == ["901", "903", "904"]

    def test_groups_for_board(self, bot):
        ack = MagicMock()
        state = on_board_changed(ModalState(kind=KIND_CSTASK), "111")
        bot.handle_group_options(ack=ack, body=_options_body(state))
        assert _acked_values(ack) == ["g1", "g2"]

    def test_boards(self, bot):
        ack = MagicMock()
        bot.handle_board_options(ack=ack, body=_options_body(ModalState(kind=KIND_CSTASK), "onb"))
        assert _acked_values(ack) == ["222"]

    def test_adapter_failure_returns_error_option(self, bot, v2_state):
        bot.selection = MagicMock()
        bot.selection.list_options_for = AsyncMock(side_effect=UpstreamError("hubspot", 503, "down"))
        ack = MagicMock()

        bot.handle_stage_options(ack=ack, body=_options_body(v2_state))

        options = ack.call_args.kwargs["options"]
        assert options[0]["value"] == "ERR_STAGE"
        assert options[0]["text"]["text"].startswith("ERROR loading")

    def test_files_for_session_owner(self, bot, sessions, client):
        sid = _open_session(sessions)
        client.files_list.return_value = {
            "files": [
                {"id": "F1", "name": "contract.pdf", "title": "Signed contract"},
                {"id": "F2", "name": "notes.txt", "title": ""},
            ]
        }
        ack = MagicMock()

        bot.handle_files_options(ack=ack, body={"view": build_attach_modal(sid), "value": ""}, client=client)

        client.files_list.assert_called_once_with(user="U100", count=50)
        assert _acked_values(ack) == ["F1", "F2"]

    def test_files_without_session(self, bot, client):
        ack = MagicMock()
        bot.handle_files_options(ack=ack, body={"view": build_attach_modal("hn_gone"), "value": ""}, client=client)
        assert _acked_values(ack) == [SESSION_EXPIRED]
        client.files_list.assert_not_called()


# ---------------------------------------------------------------------------
# Submissions
# ---------------------------------------------------------------------------


def _v2_values(state, record="901", title="Call recap", body="Spoke with the customer."):
    values = {
        BLOCK_TITLE: {ACTION_TITLE: {"value": title}},
        BLOCK_BODY: {ACTION_BODY: {"value": body}},
    }
    if record:
        values[block_id_for(BLOCK_RECORD, state.nonce(FIELD_RECORD))] = {
            ACTION_RECORD: {"selected_option": {"value": record}}
        }
    return values


class TestHubnoteV2Submit:
    """End-to-end: a resolved submission reaches Zapier with every id."""

    def test_relays_resolved_ids(self, bot, client, relay, ready_state, monkeypatch):
        monkeypatch.setenv("ZAPIER_HUBNOTE_WEBHOOK_URL", "https://hooks.zapier.test/note")
        order = []
        ack = MagicMock(side_effect=lambda **kw: order.append("ack"))
        relay.post.side_effect = lambda *a, **kw: order.append("post")
        view = _live_view(build_hubnote_v2_modal(ready_state), _v2_values(ready_state))

        bot.handle_hubnote_v2_submit(ack=ack, body={"user": {"id": "U100"}}, client=client, view=view)

        assert order == ["ack", "post"]
        url, payload = relay.post.call_args.args
        assert url == "https://hooks.zapier.test/note"
        assert payload["hubspot_object_id"] == "901"
        assert payload["hubspot_pipeline_id"] == "0"
        assert payload["hubspot_stage_id"] == "2"
        assert payload["correlation_id"] == "hubnote_abc123"
        assert client.chat_postEphemeral.call_args.kwargs["channel"] == "C100"

    def test_stale_record_block_ignored(self, bot, client, ready_state):
        values = _v2_values(ready_state, record="")
        values["record_block_v2_n0"] = {ACTION_RECORD: {"selected_option": {"value": "999"}}}
        view = _live_view(build_hubnote_v2_modal(ready_state), values)
        ack = MagicMock()

        bot.handle_hubnote_v2_submit(ack=ack, body={"user": {"id": "U100"}}, client=client, view=view)

        errors = ack.call_args.kwargs["errors"]
        assert block_id_for(BLOCK_RECORD, ready_state.nonce(FIELD_RECORD)) in errors

    def test_errors_keyed_by_current_blocks(self, bot, client, relay, v2_state):
        state = on_root_field_changed(v2_state, "deal")
        view = _live_view(build_hubnote_v2_modal(state), _v2_values(state, record="", title=""))
        ack = MagicMock()

        bot.handle_hubnote_v2_submit(ack=ack, body={"user": {"id": "U100"}}, client=client, view=view)

        assert ack.call_args.kwargs["response_action"] == "errors"
        errors = ack.call_args.kwargs["errors"]
        assert set(errors) == {
            block_id_for(BLOCK_PIPELINE, state.nonce(FIELD_PIPELINE)),
            block_id_for(BLOCK_STAGE, state.nonce(FIELD_STAGE)),
            block_id_for(BLOCK_RECORD, state.nonce(FIELD_RECORD)),
            BLOCK_TITLE,
        }
        relay.post.assert_not_called()

    def test_relay_failure_posts_error(self, bot, sessions, client, relay, ready_state, monkeypatch):
        monkeypatch.setenv("ZAPIER_HUBNOTE_WEBHOOK_URL", "https://hooks.zapier.test/note")
        relay.post.side_effect = UpstreamError("zapier", 500, "zap off")
        view = _live_view(build_hubnote_v2_modal(ready_state), _v2_values(ready_state))

        bot.handle_hubnote_v2_submit(ack=MagicMock(), body={"user": {"id": "U100"}}, client=client, view=view)

        assert client.chat_postEphemeral.call_args.kwargs["text"].startswith(":x:")
        assert len(sessions) == 0

    def test_missing_webhook_fails(self, bot, sessions, client, relay, monkeypatch):
        monkeypatch.delenv("ZAPIER_HUBNOTE_WEBHOOK_URL", raising=False)
        session_id = bot._relay_note(client, {"correlation_id": "hubnote_1"}, "U100", "C100", "U100")

        assert sessions.get(session_id) is None
        assert sessions.find_by_correlation("hubnote_1") is None
        assert "ZAPIER_HUBNOTE_WEBHOOK_URL" in client.chat_postMessage.call_args.kwargs["text"]
        relay.post.assert_not_called()

    def test_submission_tracked_by_correlation(self, bot, sessions, client, relay, ready_state, monkeypatch):
        monkeypatch.setenv("ZAPIER_HUBNOTE_WEBHOOK_URL", "https://hooks.zapier.test/note")
        view = _live_view(build_hubnote_v2_modal(ready_state), _v2_values(ready_state))

        bot.handle_hubnote_v2_submit(ack=MagicMock(), body={"user": {"id": "U100"}}, client=client, view=view)

        session = sessions.find_by_correlation("hubnote_abc123")
        assert session.status == WorkflowStatus.RELAYED
        assert session.object_type == "ticket"
        assert session.object_id == "901"
        assert session.note_id == ""
        assert len(sessions) == 1

    def test_callback_before_relay_returns(self, bot, sessions, client, relay, ready_state, monkeypatch):
        monkeypatch.setenv("ZAPIER_HUBNOTE_WEBHOOK_URL", "https://hooks.zapier.test/note")
        relay.post.side_effect = lambda *a, **kw: sessions.record_note(
            "hubnote_abc123", "555", "ticket", "901", "C100", "U100"
        )
        view = _live_view(build_hubnote_v2_modal(ready_state), _v2_values(ready_state))

        bot.handle_hubnote_v2_submit(ack=MagicMock(), body={"user": {"id": "U100"}}, client=client, view=view)

        session = sessions.find_by_correlation("hubnote_abc123")
        assert session.status == WorkflowStatus.CREATED
        assert session.note_id == "555"
        assert len(sessions) == 1
        texts = [c.kwargs.get("text", "") for c in client.chat_postEphemeral.call_args_list]
        assert not any("Creating note" in t for t in texts)


class TestCstaskSubmit:
    def _view(self, state, group="g1"):
        values = {
            BLOCK_TASK_NAME: {ACTION_TASK_NAME: {"value": " Call back "}},
            BLOCK_OWNER: {ACTION_OWNER: {"selected_user": "U2"}},
            BLOCK_STATUS: {ACTION_STATUS: {"selected_option": {"value": "Working on it"}}},
            BLOCK_PRIORITY: {ACTION_PRIORITY: {"selected_option": {"value": "High"}}},
        }
        if group:
            values[block_id_for(BLOCK_GROUP, state.nonce(FIELD_GROUP))] = {
                ACTION_GROUP: {"selected_option": {"value": group}}
            }
        return _live_view(build_cstask_modal(state), values)

    def test_relays_task(self, bot, client, relay, monkeypatch):
        monkeypatch.setenv("ZAPIER_WEBHOOK_URL", "https://hooks.zapier.test/task")
        client.users_info.return_value = {"user": {"profile": {"email": "owner@example.com"}}}
        state = on_board_changed(ModalState(kind=KIND_CSTASK), "111")

        bot.handle_cstask_submit(ack=MagicMock(), body={"user": {"id": "U1"}}, client=client, view=self._view(state))

        payload = relay.post.call_args.args[1]
        assert payload["task_name"] == "Call back"
        assert payload["monday_board_id"] == "111"
        text = client.chat_postMessage.call_args.kwargs["text"]
        assert text.startswith(":white_check_mark: Task sent to Zapier!")
        assert "owner@example.com" in text

    def test_missing_group_keyed_by_nonce(self, bot, client, relay):
        state = on_board_changed(ModalState(kind=KIND_CSTASK), "111")
        ack = MagicMock()

        bot.handle_cstask_submit(ack=ack, body={"user": {"id": "U1"}}, client=client, view=self._view(state, group=""))

        assert set(ack.call_args.kwargs["errors"]) == {"group_block_n1"}
        relay.post.assert_not_called()

    def test_missing_board(self, bot, client):
        ack = MagicMock()
        state = ModalState(kind=KIND_CSTASK)
        bot.handle_cstask_submit(ack=ack, body={"user": {"id": "U1"}}, client=client, view=self._view(state))
        assert "board_block" in ack.call_args.kwargs["errors"]

    def test_no_email_no_relay(self, bot, client, relay):
        client.users_info.return_value = {"user": {"profile": {}}}
        state = on_board_changed(ModalState(kind=KIND_CSTASK), "111")

        bot.handle_cstask_submit(ack=MagicMock(), body={"user": {"id": "U1"}}, client=client, view=self._view(state))

        relay.post.assert_not_called()
        assert "users:read.email" in client.chat_postMessage.call_args.kwargs["text"]


# ---------------------------------------------------------------------------
# Attachment flow
# ---------------------------------------------------------------------------


class TestAttachButtons:
    def test_yes_opens_dm(self, bot, sessions, client):
        sid = _open_session(sessions)
        client.conversations_open.return_value = {"channel": {"id": "D1"}}

        bot.handle_add_files_yes(ack=MagicMock(), body=_button_body(sid), client=client)

        session = sessions.get(sid)
        assert session.status == WorkflowStatus.ATTACHING
        assert session.dm_channel_id == "D1"
        dm = client.chat_postMessage.call_args.kwargs
        assert dm["channel"] == "D1"
        assert dm["blocks"][1]["elements"][0]["value"] == sid

    def test_repeated_yes_is_ignored(self, bot, sessions, client):
        sid = _open_session(sessions)
        client.conversations_open.return_value = {"channel": {"id": "D1"}}

        bot.handle_add_files_yes(ack=MagicMock(), body=_button_body(sid), client=client)
        bot.handle_add_files_yes(ack=MagicMock(), body=_button_body(sid), client=client)

        assert client.conversations_open.call_count == 1

    def test_yes_after_expiry(self, bot, sessions, client, clock):
        sid = _open_session(sessions)
        clock.advance(900)

        bot.handle_add_files_yes(ack=MagicMock(), body=_button_body(sid), client=client)

        client.conversations_open.assert_not_called()
        assert "expired" in client.chat_postEphemeral.call_args.kwargs["text"]

    def test_dm_failure_fails_session(self, bot, sessions, client):
        sid = _open_session(sessions)
        client.conversations_open.side_effect = _slack_error("user_not_found")

        bot.handle_add_files_yes(ack=MagicMock(), body=_button_body(sid), client=client)

        assert sessions.get(sid) is None
        assert client.chat_postEphemeral.call_args.kwargs["text"].startswith(":x:")

    def test_no_declines(self, bot, sessions, client):
        sid = _open_session(sessions)

        bot.handle_add_files_no(ack=MagicMock(), body=_button_body(sid), client=client)

        assert sessions.get(sid) is None
        assert "no files added" in client.chat_postEphemeral.call_args.kwargs["text"]

    def test_open_attach_modal(self, bot, sessions, client):
        sid = _open_session(sessions)
        bot.handle_open_attach_modal(ack=MagicMock(), body=_button_body(sid), client=client)

        view = client.views_open.call_args.kwargs["view"]
        assert decode(view["private_metadata"]).session_id == sid

    def test_open_attach_modal_expired(self, bot, client):
        bot.handle_open_attach_modal(ack=MagicMock(), body=_button_body("hn_gone"), client=client)
        client.views_open.assert_not_called()
        assert "expired" in client.chat_postMessage.call_args.kwargs["text"]


class TestAttachSubmit:
    def _attaching(self, sessions):
        sid = _open_session(sessions)
        sessions.transition(sid, WorkflowStatus.ATTACHING)
        sessions.update(sid, dm_channel_id="D1")
        return sid

    def _view(self, sid, file_ids):
        return _live_view(
            build_attach_modal(sid),
            {BLOCK_FILES: {ACTION_FILES: {"selected_options": [{"value": f} for f in file_ids]}}},
        )

    def test_relays_files(self, bot, sessions, client, relay, monkeypatch):
        monkeypatch.setenv("ZAPIER_HUBNOTE_ATTACH_WEBHOOK_URL", "https://hooks.zapier.test/attach")
        sid = self._attaching(sessions)

        bot.handle_attach_submit(
            ack=MagicMock(), body={"user": {"id": "U100"}}, client=client, view=self._view(sid, ["F1", "F2"])
        )

        payload = relay.post.call_args.args[1]
        assert payload["hubspot_note_id"] == "555"
        assert payload["slack_file_ids"] == ["F1", "F2"]
        assert sessions.get(sid) is None
        message = client.chat_postMessage.call_args.kwargs
        assert message["channel"] == "D1"
        assert "(2 files)" in message["text"]

    def test_requires_a_file(self, bot, sessions, client, relay):
        sid = self._attaching(sessions)
        ack = MagicMock()

        bot.handle_attach_submit(ack=ack, body={"user": {"id": "U100"}}, client=client, view=self._view(sid, []))

        assert ack.call_args.kwargs["errors"] == {BLOCK_FILES: "Select at least one file."}
        assert sessions.get(sid) is not None
        relay.post.assert_not_called()

    def test_expired_session(self, bot, sessions, client, clock):
        sid = self._attaching(sessions)
        clock.advance(900)
        ack = MagicMock()

        bot.handle_attach_submit(ack=ack, body={"user": {"id": "U100"}}, client=client, view=self._view(sid, ["F1"]))

        assert BLOCK_FILES in ack.call_args.kwargs["errors"]

    def test_missing_webhook_fails_session(self, bot, sessions, client, relay, monkeypatch):
        monkeypatch.delenv("ZAPIER_HUBNOTE_ATTACH_WEBHOOK_URL", raising=False)
        sid = self._attaching(sessions)

        bot.handle_attach_submit(
            ack=MagicMock(), body={"user": {"id": "U100"}}, client=client, view=self._view(sid, ["F1"])
        )

        relay.post.assert_not_called()
        assert sessions.get(sid) is None
        assert "ZAPIER_HUBNOTE_ATTACH_WEBHOOK_URL" in client.chat_postMessage.call_args.kwargs["text"]
