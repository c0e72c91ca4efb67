"""In-memory session store for note submissions and the attach flow.

WHY: A /hubnote submission is relayed to Zapier, and Zapier reports back
later through the callback endpoint. The Yes/No buttons and the attach
modal then need the note again, but a Slack button value is a poor place
for a pile of HubSpot ids. A short-lived server-side session carries that
context from the submit through the callback to the last button click.

HOW: Session is a dataclass keyed by an unguessable id, with a second
index by correlation_id so the callback can find the submission it
belongs to. SessionStore is a dict guarded by a threading.Lock, with
lazy expiry on read and an optional periodic sweep. The clock is
injectable so tests can age sessions without sleeping.

RULES:
- Sessions live SESSION_TTL_S (15 minutes) from creation; recording the
  created note restarts the clock
- get() never returns an expired session and evicts it on the spot
- transition() and record_note() enforce the workflow FSM
- One live session per correlation_id; a repeated callback is refused
- delete() is idempotent
- Nothing survives a restart; an expired or lost session tells the user
  to run /hubnote again
"""

from __future__ import annotations

import logging
import secrets
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from syllabot.config import SESSION_TTL_S
from syllabot.core.workflow import WorkflowStatus, advance

logger = logging.getLogger(__name__)


def new_id(prefix: str) -> str:
    """Return an unguessable id such as "hn_3f9a...".

    WHY: Session ids travel through Slack button values, so they must
    not be enumerable.
    """
    return "{}_{}".format(prefix, secrets.token_hex(12))


@dataclass
class Session:
    """Context for one note, from relay to the attach decision."""

    session_id: str
    correlation_id: str
    note_id: str
    object_type: str
    object_id: str
    origin_channel_id: str
    origin_user_id: str
    status: WorkflowStatus
    created_at: float
    expires_at: float
    dm_channel_id: str = ""


class SessionStore:
    """Thread-safe session map with TTL expiry.

    RULES:
    - All access to self._sessions and self._by_correlation holds self._lock
    - update() and transition() return None for missing or expired ids
    - transition() raises InvalidTransitionError for illegal moves
    """

    def __init__(
        self,
        ttl_seconds: float = SESSION_TTL_S,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._sessions: Dict[str, Session] = {}
        self._by_correlation: Dict[str, str] = {}
        self._lock = threading.Lock()
        self._ttl_seconds = ttl_seconds
        self._clock = clock

    def _new_session(
        self,
        correlation_id: str,
        note_id: str,
        object_type: str,
        object_id: str,
        origin_channel_id: str,
        origin_user_id: str,
        status: WorkflowStatus,
    ) -> Session:
        # Caller holds self._lock
        now = self._clock()
        session = Session(
            session_id=new_id("hn"),
            correlation_id=correlation_id,
            note_id=note_id,
            object_type=object_type,
            object_id=object_id,
            origin_channel_id=origin_channel_id,
            origin_user_id=origin_user_id,
            status=status,
            created_at=now,
            expires_at=now + self._ttl_seconds,
        )
        self._sessions[session.session_id] = session
        if correlation_id:
            self._by_correlation[correlation_id] = session.session_id
        return session

    def create(
        self,
        correlation_id: str,
        note_id: str,
        object_type: str,
        object_id: str,
        origin_channel_id: str,
        origin_user_id: str,
        status: WorkflowStatus = WorkflowStatus.CREATED,
    ) -> str:
        with self._lock:
            session = self._new_session(
                correlation_id,
                note_id,
                object_type,
                object_id,
                origin_channel_id,
                origin_user_id,
                status,
            )

        logger.info(
            "Created session %s (%s) for %s %s",
            session.session_id,
            status.value,
            object_type or "record",
            object_id or "?",
        )
        return session.session_id

    def _drop(self, session_id: str) -> Optional[Session]:
        # Caller holds self._lock
        session = self._sessions.pop(session_id, None)
        if session is not None and self._by_correlation.get(session.correlation_id) == session_id:
            del self._by_correlation[session.correlation_id]
        return session

    def _live(self, session_id: str) -> Optional[Session]:
        # Caller holds self._lock
        session = self._sessions.get(session_id)
        if session is None:
            return None
        if self._clock() >= session.expires_at:
            self._drop(session_id)
            logger.info("Session %s expired", session_id)
            return None
        return session

    def get(self, session_id: str) -> Optional[Session]:
        with self._lock:
            return self._live(session_id)

    def find_by_correlation(self, correlation_id: str) -> Optional[Session]:
        if not correlation_id:
            return None
        with self._lock:
            session_id = self._by_correlation.get(correlation_id)
            return self._live(session_id) if session_id else None

    def update(self, session_id: str, **fields: str) -> Optional[Session]:
        """Set plain fields (e.g. dm_channel_id) on a live session."""
        with self._lock:
            session = self._live(session_id)
            if session is None:
                return None
            for name, value in fields.items():
                if name in ("session_id", "correlation_id", "status", "created_at", "expires_at"):
                    raise ValueError("Session field {} is not updatable".format(name))
                if not hasattr(session, name):
                    raise ValueError("Unknown session field: {}".format(name))
                setattr(session, name, value)
            return session

    def transition(self, session_id: str, status: WorkflowStatus) -> Optional[Session]:
        """Move a live session to status, enforcing the workflow FSM.

        WHY: A double-clicked "Yes" arrives as two actions. The second one
        finds the session already ATTACHING and raises instead of opening
        a second modal.
        """
        with self._lock:
            session = self._live(session_id)
            if session is None:
                return None
            session.status = advance(session.status, status)
        logger.info("Session %s is now %s", session_id, status.value)
        return session

    def record_note(
        self,
        correlation_id: str,
        note_id: str,
        object_type: str,
        object_id: str,
        origin_channel_id: str,
        origin_user_id: str,
    ) -> Optional[str]:
        """Attach a created note to its submission and move it to CREATED.

        WHY: Zapier may deliver the same callback twice. Only the first one
        may prompt the user; the rest must find the note already recorded.

        HOW: Under one lock, the session for correlation_id is looked up.
        A SUBMITTED or RELAYED session takes the note ids and moves to
        CREATED with a fresh TTL. With no live session (unknown id,
        expired, or process restarted) a new one starts at CREATED.

        RULES:
        - Returns the session id, or None when the callback is a repeat
        - A session started here defaults object_type to "ticket"
        """
        with self._lock:
            session_id = self._by_correlation.get(correlation_id) if correlation_id else None
            session = self._live(session_id) if session_id else None

            if session is None:
                session = self._new_session(
                    correlation_id,
                    note_id,
                    object_type or "ticket",
                    object_id,
                    origin_channel_id,
                    origin_user_id,
                    WorkflowStatus.CREATED,
                )
            elif session.status in (WorkflowStatus.SUBMITTED, WorkflowStatus.RELAYED):
                # A callback can beat the relay response back
                if session.status == WorkflowStatus.SUBMITTED:
                    session.status = advance(session.status, WorkflowStatus.RELAYED)
                session.status = advance(session.status, WorkflowStatus.CREATED)
                session.note_id = note_id
                session.object_type = object_type or session.object_type
                session.object_id = object_id or session.object_id
                session.expires_at = self._clock() + self._ttl_seconds
            else:
                logger.info(
                    "Ignoring repeated callback for %s (session %s is %s)",
                    correlation_id,
                    session.session_id,
                    session.status.value,
                )
                return None

        logger.info("Session %s recorded note %s", session.session_id, note_id)
        return session.session_id

    def delete(self, session_id: str) -> bool:
        with self._lock:
            removed = self._drop(session_id)
        return removed is not None

    def cleanup_expired(self) -> int:
        """Remove every expired session; returns how many went."""
        now = self._clock()
        with self._lock:
            expired: List[str] = [
                sid for sid, s in self._sessions.items() if now >= s.expires_at
            ]
            for sid in expired:
                self._drop(sid)

        if expired:
            logger.info("Swept %d expired session(s)", len(expired))
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
