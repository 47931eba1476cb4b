"""
Service Registry — centralized dependency injection for AdaptRisk.

All service instances are created once and shared across the application.
Every service is bound to the same DocumentStore and AuditSink.

Usage:
    from adaptrisk.services.registry import get_services
    services = get_services()
    results = services.simulation_engine.simulate(...)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

import structlog

from adaptrisk.config import settings

logger = structlog.get_logger(__name__)


@dataclass
class ServiceRegistry:
    """
    Central registry of service instances.

    Lazy-initializes services on first access to avoid import cycles.
    Pass `store` to bind everything to a specific backend (tests use
    InMemoryDocumentStore).
    """

    store: Optional[object] = None
    signal_feed: Optional[object] = None

    _audit: Optional[object] = field(default=None, repr=False)
    _simulation_engine: Optional[object] = field(default=None, repr=False)
    _decisions: Optional[object] = field(default=None, repr=False)
    _portfolios: Optional[object] = field(default=None, repr=False)
    _portfolio_aggregator: Optional[object] = field(default=None, repr=False)
    _guardrail_adjuster: Optional[object] = field(default=None, repr=False)
    _learning: Optional[object] = field(default=None, repr=False)
    _antifragility_history: Optional[object] = field(default=None, repr=False)
    _refresh_controller: Optional[object] = field(default=None, repr=False)
    _signal_monitor: Optional[object] = field(default=None, repr=False)

    def __post_init__(self):
        if self.store is None:
            from adaptrisk.services.store import InMemoryDocumentStore, SqlDocumentStore
            self.store = InMemoryDocumentStore() if settings.store_backend == "memory" else SqlDocumentStore()
            logger.debug("service_initialized", service=type(self.store).__name__)
        if self.signal_feed is None and settings.signal_feed_url:
            from adaptrisk.services.signal_feed import HttpSignalFeed
            self.signal_feed = HttpSignalFeed(
                base_url=settings.signal_feed_url,
                api_key=settings.signal_feed_api_key,
                timeout=settings.signal_feed_timeout_seconds,
                max_retries=settings.signal_feed_retry_attempts,
            )
            logger.debug("service_initialized", service="HttpSignalFeed")

    @property
    def audit(self):
        """Audit sink persisting events next to the other documents."""
        if self._audit is None:
            from adaptrisk.services.audit import StoreAuditSink
            self._audit = StoreAuditSink(self.store)
            logger.debug("service_initialized", service="StoreAuditSink")
        return self._audit

    @property
    def simulation_engine(self):
        if self._simulation_engine is None:
            from adaptrisk.engine.simulation import ScenarioSimulationEngine
            self._simulation_engine = ScenarioSimulationEngine()
            logger.debug("service_initialized", service="ScenarioSimulationEngine")
        return self._simulation_engine

    @property
    def decisions(self):
        if self._decisions is None:
            from adaptrisk.services.decisions import DecisionRepository
            self._decisions = DecisionRepository(self.store)
        return self._decisions

    @property
    def portfolios(self):
        if self._portfolios is None:
            from adaptrisk.portfolio.repository import PortfolioRepository
            self._portfolios = PortfolioRepository(self.store)
        return self._portfolios

    @property
    def portfolio_aggregator(self):
        if self._portfolio_aggregator is None:
            from adaptrisk.portfolio.aggregator import PortfolioRiskAggregator
            self._portfolio_aggregator = PortfolioRiskAggregator(
                self.portfolios, self.decisions, antifragility_history=self.antifragility_history,
            )
            logger.debug("service_initialized", service="PortfolioRiskAggregator")
        return self._portfolio_aggregator

    @property
    def guardrail_adjuster(self):
        if self._guardrail_adjuster is None:
            from adaptrisk.guardrails.controller import GuardrailAutoAdjuster
            from adaptrisk.guardrails.repository import GuardrailRepository
            self._guardrail_adjuster = GuardrailAutoAdjuster(
                GuardrailRepository(self.store), self.audit, decisions=self.decisions,
            )
            logger.debug("service_initialized", service="GuardrailAutoAdjuster")
        return self._guardrail_adjuster

    @property
    def antifragility_history(self):
        if self._antifragility_history is None:
            from adaptrisk.refresh.history import AntifragilityHistoryService
            self._antifragility_history = AntifragilityHistoryService(self.store)
        return self._antifragility_history

    @property
    def learning(self):
        if self._learning is None:
            from adaptrisk.refresh.learning import LearningTraceService
            self._learning = LearningTraceService(self.store, self.audit, history=self.antifragility_history)
            logger.debug("service_initialized", service="LearningTraceService")
        return self._learning

    @property
    def refresh_controller(self):
        if self._refresh_controller is None:
            from adaptrisk.refresh.controller import SignalRefreshController
            self._refresh_controller = SignalRefreshController(
                decisions=self.decisions,
                store=self.store,
                audit=self.audit,
                learning=self.learning,
                engine=self.simulation_engine,
                feed=self.signal_feed,
            )
            logger.debug("service_initialized", service="SignalRefreshController")
        return self._refresh_controller

    @property
    def signal_monitor(self):
        """Feed poller; None when no signal feed is configured."""
        if self._signal_monitor is None and self.signal_feed is not None:
            from adaptrisk.refresh.monitor import SignalMonitor
            self._signal_monitor = SignalMonitor(self.refresh_controller, self.signal_feed)
            logger.debug("service_initialized", service="SignalMonitor")
        return self._signal_monitor


# ── Singleton ─────────────────────────────────────────────────────────

_registry: Optional[ServiceRegistry] = None


def get_services() -> ServiceRegistry:
    """Get the global service registry (singleton)."""
    global _registry
    if _registry is None:
        _registry = ServiceRegistry()
        logger.info("service_registry_created")
    return _registry


def set_services(registry: ServiceRegistry) -> None:
    """Install a preconfigured registry (tests, embedding)."""
    global _registry
    _registry = registry


def reset_services() -> None:
    """Reset the registry (for testing)."""
    global _registry
    _registry = None
