"""Shared test fixtures for the syllabot test suite.

WHY: The selection, router, and server tests all need the same small
HubSpot and Monday world (a few pipelines, stages, and records) without
touching the network.

HOW: FakeHubSpot and FakeMonday implement the adapter methods the
selection service calls, including the async context manager protocol,
and record every call so tests can assert on fetch counts.

RULES:
- Pipeline and stage order mirrors what HubSpot returns (API order)
- search_records ignores the query like a loose full-text match would;
  substring filtering is the selection service's job
"""

from __future__ import annotations

import asyncio
from typing import Dict, List, Optional, Tuple

import pytest

from syllabot.api.models import Option, Pipeline, Record, Stage
from syllabot.core.metadata import KIND_HUBNOTE_V2, ModalState
from syllabot.core.selection import SelectionService
from syllabot.core.sessions import SessionStore


class FakeHubSpot:
    def __init__(
        self,
        pipelines: Optional[Dict[str, List[Pipeline]]] = None,
        records: Optional[List[Tuple[str, str, Record]]] = None,
        delay: float = 0.0,
    ) -> None:
        self.pipelines = pipelines or {}
        self.records = records or []
        self.delay = delay
        self.calls: List[tuple] = []

    async def __aenter__(self) -> FakeHubSpot:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        return None

    async def get_pipelines(self, record_type: str) -> List[Pipeline]:
        self.calls.append(("pipelines", record_type))
        return list(self.pipelines.get(record_type, []))

    async def search_records(self, record_type, pipeline_id, stage_id, query=""):
        self.calls.append(("search", record_type, pipeline_id, stage_id, query))
        if self.delay:
            await asyncio.sleep(self.delay)
        return [r for p, s, r in self.records if p == pipeline_id and s == stage_id]


class FakeMonday:
    def __init__(self, boards=None, groups=None) -> None:
        self.boards: List[Option] = boards or []
        self.groups: Dict[str, List[Option]] = groups or {}
        self.calls: List[tuple] = []

    async def __aenter__(self) -> FakeMonday:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        return None

    async def list_boards(self, search: str = "") -> List[Option]:
        self.calls.append(("boards", search))
        return list(self.boards)

    async def list_groups(self, board_id: str, search: str = "") -> List[Option]:
        self.calls.append(("groups", board_id, search))
        return list(self.groups.get(board_id, []))


TICKET_PIPELINES = [
    Pipeline(
        id="0",
        label="Support",
        stages=[
            Stage(id="1", label="New"),
            Stage(id="2", label="In Progress"),
            Stage(id="3", label="Waiting on Customer"),
            Stage(id="4", label="Closed"),
        ],
    ),
    Pipeline(
        id="10",
        label="Onboarding",
        stages=[Stage(id="11", label="Kickoff"), Stage(id="12", label="Live")],
    ),
    Pipeline(id="20", label="Escalations", stages=[Stage(id="21", label="Open")]),
]

DEAL_PIPELINES = [
    Pipeline(
        id="default",
        label="Sales Pipeline",
        stages=[
            Stage(id="appointmentscheduled", label="Appointment Scheduled"),
            Stage(id="closedwon", label="Closed Won"),
        ],
    ),
]

TICKET_RECORDS = [
    ("0", "2", Record(id="901", label="Billing address wrong")),
    ("0", "2", Record(id="902", label="Login loop on mobile")),
    ("0", "2", Record(id="903", label="Refund for double BILLING")),
    ("0", "2", Record(id="904", label="Rebilling schedule question")),
    ("0", "1", Record(id="905", label="Billing portal access")),
    ("10", "11", Record(id="906", label="Billing setup call")),
]


@pytest.fixture
def fake_hubspot():
    return FakeHubSpot(
        pipelines={"ticket": TICKET_PIPELINES, "deal": DEAL_PIPELINES},
        records=list(TICKET_RECORDS),
    )


@pytest.fixture
def fake_monday():
    return FakeMonday(
        boards=[Option("CS Tasks", "111"), Option("Onboarding Board", "222")],
        groups={"111": [Option("This Week", "g1"), Option("Backlog", "g2")]},
    )


@pytest.fixture
def selection(fake_hubspot, fake_monday):
    return SelectionService(
        hubspot=lambda: fake_hubspot,
        monday=lambda: fake_monday,
        search_timeout=0.5,
    )


@pytest.fixture
def v2_state():
    """A freshly opened v2 note form."""
    return ModalState(
        kind=KIND_HUBNOTE_V2,
        correlation_id="hubnote_abc123",
        origin_channel_id="C100",
        origin_user_id="U100",
    )


class FakeClock:
    """Manually advanced clock for TTL tests."""

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sessions(clock):
    return SessionStore(ttl_seconds=900, clock=clock)
