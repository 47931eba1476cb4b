"""
Portfolio Risk Aggregator Tests.

Includes property-based tests via Hypothesis.
"""

import math

import pytest
import pytest_asyncio
from hypothesis import given, settings as hyp_settings
from hypothesis import strategies as st

from adaptrisk.errors import NotFound
from adaptrisk.portfolio.aggregator import PortfolioRiskAggregator, diversification_index, similarity_matrix
from adaptrisk.portfolio.repository import PortfolioRepository
from adaptrisk.portfolio.schemas import DecisionRisk
from adaptrisk.refresh.schemas import HistorySubject
from adaptrisk.services.decisions import Decision, OptionMetrics

from tests.conftest import TENANT


def _risk(decision_id: str, ev: float, var95: float, cvar95: float, weight: float | None = None) -> DecisionRisk:
    return DecisionRisk(decision_id=decision_id, ev=ev, var95=var95, cvar95=cvar95, weight=weight)


class TestComputeMetrics:
    """Pure metric computation."""

    def setup_method(self):
        self.aggregator = PortfolioRiskAggregator()

    def test_empty_portfolio(self):
        metrics = self.aggregator.compute_portfolio_metrics([])
        assert metrics.decision_count == 0
        assert metrics.aggregate_ev == 0.0
        assert metrics.diversification_index == 0.0
        assert metrics.antifragility_score == 0.0

    def test_single_decision_keeps_own_tail(self):
        metrics = self.aggregator.compute_portfolio_metrics([_risk("d1", 100.0, 40.0, 30.0)])
        assert metrics.decision_count == 1
        assert metrics.aggregate_var95 == 40.0
        assert metrics.aggregate_cvar95 == 30.0
        assert metrics.diversification_index == 1.0
        assert metrics.antifragility_score == 100.0

    def test_identical_decisions_have_no_diversification(self):
        metrics = self.aggregator.compute_portfolio_metrics([
            _risk("d1", 100.0, 40.0, 30.0),
            _risk("d2", 100.0, 40.0, 30.0),
        ])
        assert metrics.diversification_index == 0.0
        assert metrics.aggregate_var95 == pytest.approx(40.0)
        assert metrics.aggregate_cvar95 == pytest.approx(46.0)
        assert metrics.antifragility_score == pytest.approx(50.0)

    def test_dissimilar_decisions_diversify(self):
        metrics = self.aggregator.compute_portfolio_metrics([
            _risk("d1", 100.0, 40.0, 30.0),
            _risk("d2", -500.0, -900.0, -1200.0),
        ])
        assert metrics.diversification_index > 0.0

    def test_weights_normalised(self):
        metrics = self.aggregator.compute_portfolio_metrics([
            _risk("d1", 100.0, 10.0, 5.0, weight=3.0),
            _risk("d2", 0.0, 10.0, 5.0, weight=1.0),
        ])
        assert metrics.aggregate_ev == pytest.approx(75.0)

    def test_idempotent(self):
        decisions = [_risk("d1", 10.0, 2.0, 1.0), _risk("d2", 20.0, 5.0, 3.0)]
        a = self.aggregator.compute_portfolio_metrics(decisions)
        b = self.aggregator.compute_portfolio_metrics(decisions)
        assert a.model_dump(exclude={"computed_at"}) == b.model_dump(exclude={"computed_at"})

    def test_similarity_matrix_unit_diagonal(self):
        matrix = similarity_matrix([_risk("d1", 1.0, 2.0, 3.0), _risk("d2", 4.0, 5.0, 6.0)])
        assert matrix[0, 0] == matrix[1, 1] == 1.0
        assert matrix[0, 1] == matrix[1, 0]

    @given(st.lists(
        st.tuples(
            st.floats(min_value=-1e4, max_value=1e4),
            st.floats(min_value=-1e4, max_value=1e4),
            st.floats(min_value=-1e4, max_value=1e4),
        ),
        min_size=0, max_size=8,
    ))
    @hyp_settings(max_examples=100, deadline=None)
    def test_bounds(self, rows):
        decisions = [_risk(f"d{i}", ev, var, cvar) for i, (ev, var, cvar) in enumerate(rows)]
        metrics = self.aggregator.compute_portfolio_metrics(decisions)
        assert 0.0 <= metrics.diversification_index <= 1.0
        assert 0.0 <= metrics.antifragility_score <= 100.0
        assert math.isfinite(metrics.aggregate_var95)
        assert diversification_index(similarity_matrix(decisions)) == pytest.approx(
            metrics.diversification_index, abs=1e-6,
        )


class TestPortfolioUpdates:
    """Persisted metrics and history."""

    @pytest_asyncio.fixture
    async def seeded(self, store, decisions, antifragility_history):
        portfolios = PortfolioRepository(store)
        aggregator = PortfolioRiskAggregator(
            portfolios, decisions, history_size=3, antifragility_history=antifragility_history,
        )
        for i, ev in enumerate([100.0, 50.0]):
            await decisions.save(TENANT, Decision(
                id=f"d{i}",
                chosen_option_id="chosen",
                last_results=[
                    OptionMetrics(option_id="other", ev=ev * 10, var95=1.0, cvar95=0.5),
                    OptionMetrics(option_id="chosen", ev=ev, var95=ev / 2, cvar95=ev / 4),
                ],
            ))
        portfolio = await portfolios.create(TENANT, "Growth", decision_ids=["d0", "d1", "missing"])
        return portfolios, aggregator, portfolio

    @pytest.mark.asyncio
    async def test_uses_chosen_option(self, seeded):
        _, aggregator, portfolio = seeded
        risks = await aggregator.collect_decision_risks(TENANT, portfolio)
        assert [r.decision_id for r in risks] == ["d0", "d1"]
        assert [r.ev for r in risks] == [100.0, 50.0]

    @pytest.mark.asyncio
    async def test_update_persists_metrics(self, seeded):
        portfolios, aggregator, portfolio = seeded
        updated = await aggregator.update_portfolio_metrics(TENANT, portfolio.id)
        assert updated.metrics.decision_count == 2
        assert updated.metrics.aggregate_ev == pytest.approx(75.0)
        stored = await portfolios.get(TENANT, portfolio.id)
        assert stored.metrics is not None
        assert stored.metrics_history == []

    @pytest.mark.asyncio
    async def test_history_ring(self, seeded):
        portfolios, aggregator, portfolio = seeded
        for _ in range(5):
            await aggregator.update_portfolio_metrics(TENANT, portfolio.id)
        stored = await portfolios.get(TENANT, portfolio.id)
        assert len(stored.metrics_history) == 3

    @pytest.mark.asyncio
    async def test_antifragility_snapshot_per_update(self, seeded, antifragility_history):
        _, aggregator, portfolio = seeded
        first = await aggregator.update_portfolio_metrics(TENANT, portfolio.id)
        await aggregator.update_portfolio_metrics(TENANT, portfolio.id)

        history = await antifragility_history.get_history(TENANT, HistorySubject.PORTFOLIO, portfolio.id)
        assert history.title == "Growth"
        assert len(history.snapshots) == 2
        snapshot = history.snapshots[0]
        assert snapshot.value == first.metrics.antifragility_score
        assert snapshot.event == "portfolio_metrics_updated"
        assert snapshot.metadata["decision_count"] == 2.0

    @pytest.mark.asyncio
    async def test_unknown_portfolio(self, seeded):
        _, aggregator, _ = seeded
        with pytest.raises(NotFound):
            await aggregator.update_portfolio_metrics(TENANT, "nope")
