"""
Test fixtures for AdaptRisk tests.

Provides:
- In-memory document store + audit sink
- Repositories and controllers bound to them
- A frozen clock for time-window tests
- Sample decision factories
"""

from datetime import datetime, timezone

import pytest
import pytest_asyncio

from adaptrisk.engine.distributions import NormalDistribution, UniformDistribution
from adaptrisk.engine.schemas import (
    DecisionOption,
    ScenarioVariable,
    UtilityParams,
)
from adaptrisk.guardrails.controller import GuardrailAutoAdjuster
from adaptrisk.guardrails.repository import GuardrailRepository
from adaptrisk.refresh.controller import SignalRefreshController
from adaptrisk.refresh.history import AntifragilityHistoryService
from adaptrisk.refresh.learning import LearningTraceService
from adaptrisk.services.audit import InMemoryAuditSink
from adaptrisk.services.decisions import Decision, DecisionRepository, LinkedSignal, SignalDirection
from adaptrisk.services.signal_feed import StaticSignalFeed
from adaptrisk.services.store import InMemoryDocumentStore

TENANT = "tenant-a"
OTHER_TENANT = "tenant-b"
NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Callable clock that tests can move forward."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


# ── Storage ──────────────────────────────────────────────────────────────


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def audit() -> InMemoryAuditSink:
    return InMemoryAuditSink()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def decisions(store) -> DecisionRepository:
    return DecisionRepository(store)


# ── Controllers ──────────────────────────────────────────────────────────


@pytest.fixture
def adjuster(store, audit, decisions, clock) -> GuardrailAutoAdjuster:
    return GuardrailAutoAdjuster(GuardrailRepository(store), audit, decisions=decisions, clock=clock)


@pytest.fixture
def antifragility_history(store, clock) -> AntifragilityHistoryService:
    return AntifragilityHistoryService(store, clock=clock)


@pytest.fixture
def learning(store, audit, antifragility_history, clock) -> LearningTraceService:
    return LearningTraceService(store, audit, history=antifragility_history, clock=clock)


@pytest.fixture
def feed() -> StaticSignalFeed:
    return StaticSignalFeed()


@pytest.fixture
def refresh_controller(store, audit, decisions, learning, feed, clock) -> SignalRefreshController:
    return SignalRefreshController(
        decisions=decisions, store=store, audit=audit, learning=learning, feed=feed, clock=clock,
    )


# ── Sample data ──────────────────────────────────────────────────────────


def make_decision(
    decision_id: str = "dec-1",
    signal_id: str = "fx",
    direction: SignalDirection = SignalDirection.POSITIVE,
    last_value: float | None = 100.0,
    runs: int = 200,
) -> Decision:
    """Two options driven by one linked demand variable plus a cost variable."""
    return Decision(
        id=decision_id,
        title=f"Decision {decision_id}",
        options=[
            DecisionOption(id="opt-a", label="Expand"),
            DecisionOption(id="opt-b", label="Hold"),
        ],
        scenario_vars=[
            ScenarioVariable(key="demand", distribution=NormalDistribution(mean=100.0, stdev=10.0)),
            ScenarioVariable(
                key="opex", channel="cost", applies_to="opt-a",
                distribution=UniformDistribution(low=10.0, high=20.0),
            ),
        ],
        seed=7,
        runs=runs,
        utility_params=[UtilityParams(mode="CARA", a=0.5, scale=100.0)],
        linked_signals=[
            LinkedSignal(
                signal_id=signal_id, variable_key="demand", direction=direction,
                signal_label="FX rate", last_value=last_value,
            ),
        ],
    )


@pytest_asyncio.fixture
async def stored_decision(decisions) -> Decision:
    decision = make_decision()
    await decisions.save(TENANT, decision)
    return decision
