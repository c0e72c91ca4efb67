"""FastAPI application: Slack endpoints, the Zapier callback, and health.

WHY: SyllaBot needs one public HTTP surface. Slack posts slash commands,
interactions, and options requests to it; Zapier posts back when a
HubSpot note has been created so the bot can offer file attachment.

HOW: create_api() builds a FastAPI app around a SyllaBot and its Bolt
App. Slack routes hand the raw request to Bolt, which verifies the
signature, acks, and runs the listener. Bolt is synchronous and blocks
until the listener acks, so dispatch runs in the threadpool. The
callback route validates its body with a pydantic model and drives the
session store and workflow FSM. A lifespan task sweeps expired
sessions every SESSION_SWEEP_INTERVAL_S.

RULES:
- Nothing is built at import time; run_server() or tests call create_api()
- The callback checks x-zapier-secret only when ZAPIER_HUBNOTE_SECRET is set
- Slack dispatch never runs on the event loop; a slow options request
  must not stall health checks or other Slack requests
- Error responses use the ErrorResponse schema
- Unexpected callback failures answer 500 "server_error"
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Annotated, Any, Optional

from fastapi import FastAPI, Header, Request
from fastapi.responses import JSONResponse
from slack_bolt import App
from slack_bolt.adapter.starlette.handler import to_bolt_request, to_starlette_response
from slack_sdk.errors import SlackApiError
from starlette.concurrency import run_in_threadpool
from starlette.responses import Response

from syllabot import __version__
from syllabot.config import LOG_LEVEL, PORT, SESSION_SWEEP_INTERVAL_S, load_callback_secret
from syllabot.core.sessions import SessionStore
from syllabot.core.workflow import InvalidTransitionError, WorkflowStatus
from syllabot.server.models import (
    CallbackResponse,
    ErrorResponse,
    HealthResponse,
    HubnoteCallback,
)
from syllabot.slack.bot import SyllaBot, create_app
from syllabot.slack.messages import build_add_files_prompt

logger = logging.getLogger(__name__)


def _error(status_code: int, error: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=error).model_dump(),
    )


async def _periodic_cleanup(sessions: SessionStore, interval: float) -> None:
    """Sweep expired sessions every interval seconds."""
    while True:
        await asyncio.sleep(interval)
        sessions.cleanup_expired()


async def dispatch_to_bolt(bolt_app: App, req: Request) -> Response:
    """Hand a Slack request to Bolt without blocking the event loop."""
    body = await req.body()
    bolt_resp = await run_in_threadpool(bolt_app.dispatch, to_bolt_request(req, body))
    return to_starlette_response(bolt_resp)


def handle_note_callback(
    callback: HubnoteCallback,
    client: Any,
    sessions: SessionStore,
) -> CallbackResponse:
    """Turn a Zapier "note created" callback into the attach prompt.

    WHY: Zapier is the only party that knows when the note exists. The
    user sees either a failure notice or a Yes/No prompt in the channel
    where they ran /hubnote, exactly once per submission.

    HOW: The submission's session is found by correlation_id. A failed
    status moves it to FAILED and posts an ephemeral notice. Success
    records the note (RELAYED → CREATED), posts the prompt, then moves the
    session to AWAITING_ATTACH_DECISION.

    RULES:
    - Caller has already checked the origin ids
    - A callback for a submission that already moved past RELAYED is a
      repeat: answered with handled="duplicate", nothing posted
    - A prompt that cannot be posted marks the session FAILED and raises
    """
    channel = callback.origin_channel_id or ""
    user = callback.origin_user_id or ""
    correlation_id = callback.correlation_id or ""

    if callback.status != "success" or not callback.hubspot_note_id:
        logger.warning(
            "Zapier reported note failure (correlation %s, status %r)",
            correlation_id,
            callback.status,
        )
        existing = sessions.find_by_correlation(correlation_id)
        if existing is not None:
            try:
                sessions.transition(existing.session_id, WorkflowStatus.FAILED)
            except InvalidTransitionError:
                return CallbackResponse(ok=True, session_id=existing.session_id, handled="duplicate")
            sessions.delete(existing.session_id)

        client.chat_postEphemeral(
            channel=channel,
            user=user,
            text=":x: HubSpot note creation failed. Check Zapier logs for details.",
        )
        return CallbackResponse(ok=True, handled="failure")

    session_id = sessions.record_note(
        correlation_id=correlation_id,
        note_id=callback.hubspot_note_id,
        object_type=callback.hubspot_object_type or "",
        object_id=callback.hubspot_object_id or "",
        origin_channel_id=channel,
        origin_user_id=user,
    )
    if session_id is None:
        existing = sessions.find_by_correlation(correlation_id)
        return CallbackResponse(
            ok=True,
            session_id=existing.session_id if existing is not None else None,
            handled="duplicate",
        )

    try:
        client.chat_postEphemeral(channel=channel, user=user, **build_add_files_prompt(session_id))
    except SlackApiError:
        sessions.transition(session_id, WorkflowStatus.FAILED)
        sessions.delete(session_id)
        raise

    sessions.transition(session_id, WorkflowStatus.AWAITING_ATTACH_DECISION)
    return CallbackResponse(ok=True, session_id=session_id)


def create_api(
    bot: Optional[SyllaBot] = None,
    bolt_app: Optional[App] = None,
    sweep_interval: float = SESSION_SWEEP_INTERVAL_S,
) -> FastAPI:
    """Build the FastAPI app around a SyllaBot.

    RULES:
    - bot defaults to SyllaBot() with live adapters
    - bolt_app defaults to create_app(bot) (needs Slack credentials)
    """
    bot = bot or SyllaBot()
    bolt_app = bolt_app or create_app(bot)
    sessions = bot.sessions

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Start the session sweep on startup, cancel on shutdown."""
        task = asyncio.create_task(_periodic_cleanup(sessions, sweep_interval))
        yield
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    api = FastAPI(
        lifespan=lifespan,
        title="SyllaBot",
        description=(
            "Slack modals for Monday tasks and HubSpot notes. Slack posts "
            "commands and interactions here; Zapier posts note-created "
            "callbacks."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # ------------------------------------------------------------------
    # Slack
    # ------------------------------------------------------------------

    @api.post("/slack/commands", tags=["slack"], summary="Slash commands")
    async def slack_commands(req: Request):
        return await dispatch_to_bolt(bolt_app, req)

    @api.post(
        "/slack/interactions",
        tags=["slack"],
        summary="Interactions and options loads",
        description="Block actions, view submissions, and external_select options requests.",
    )
    async def slack_interactions(req: Request):
        return await dispatch_to_bolt(bolt_app, req)

    # ------------------------------------------------------------------
    # Zapier
    # ------------------------------------------------------------------

    @api.post(
        "/zapier/hubnote/callback",
        response_model=CallbackResponse,
        tags=["zapier"],
        summary="HubSpot note created (or failed)",
        responses={
            400: {"model": ErrorResponse, "description": "Origin ids missing"},
            401: {"model": ErrorResponse, "description": "Bad or missing x-zapier-secret"},
            500: {"model": ErrorResponse, "description": "Unexpected failure"},
        },
    )
    def zapier_hubnote_callback(
        callback: HubnoteCallback,
        x_zapier_secret: Annotated[Optional[str], Header()] = None,
    ):
        secret = load_callback_secret()
        if secret and x_zapier_secret != secret:
            return _error(401, "unauthorized")

        if not callback.origin_channel_id or not callback.origin_user_id:
            return _error(400, "missing origin_channel_id/origin_user_id")

        try:
            return handle_note_callback(callback, bolt_app.client, sessions)
        except Exception:
            logger.exception("Hubnote callback failed (correlation %s)", callback.correlation_id)
            return _error(500, "server_error")

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    @api.get("/", response_model=HealthResponse, tags=["health"], summary="Root health check")
    @api.get(
        "/health",
        response_model=HealthResponse,
        tags=["health"],
        summary="Health check",
        description="Liveness check for the hosting platform.",
    )
    async def health_check() -> HealthResponse:
        return HealthResponse(status="ok", version=__version__)

    return api


def run_server() -> None:
    """Entry point for the syllabot console script."""
    import uvicorn

    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )
    logger.info("Starting SyllaBot on port %d", PORT)
    uvicorn.run(create_api(), host="0.0.0.0", port=PORT)
