"""
Portfolio Risk Aggregator.

Combines the chosen options of several decisions into portfolio metrics.
These are documented approximations:

1. Weights: (weight or 1) / Σ(weight or 1)
2. Correlation proxy between decisions: mean similarity of EV, VaR95 and
   CVaR95, each 1 - |d1 - d2| / max(|d1|, |d2|, 1), clamped to [0, 1]
3. Diversification index: 1 - Σρ / n² over the full matrix (diagonal
   included), clamped to [0, 1]; n = 1 → 1, n = 0 → 0
4. Portfolio VaR95: quadratic form Σ(wᵢvᵢ)² + 2ΣΣ wᵢwⱼρᵢⱼvᵢvⱼ over the
   VaR95 values, square root with the sign of the form preserved;
   a single decision keeps its own VaR95 / CVaR95
5. Portfolio CVaR95: VaR95 × 1.15 (normal-tail rule of thumb)
6. Antifragility: 50·DI + 30·[EV > 0] + 20·[|VaR95| < |EV|], capped [0, 100]

compute_portfolio_metrics is pure and idempotent; only
update_portfolio_metrics appends the previous metrics to history (and, when
attached, an antifragility snapshot to the portfolio's history).
"""

import math
from typing import Optional, Sequence

import numpy as np
import structlog

from adaptrisk.config import settings
from adaptrisk.portfolio.repository import PortfolioRepository
from adaptrisk.portfolio.schemas import DecisionRisk, Portfolio, PortfolioMetrics
from adaptrisk.refresh.history import AntifragilityHistoryService
from adaptrisk.refresh.schemas import HistorySubject
from adaptrisk.services.decisions import DecisionRepository

logger = structlog.get_logger(__name__)

# ── Configuration ─────────────────────────────────────────────────────────

DIVERSIFICATION_POINTS: float = 50.0
POSITIVE_EV_POINTS: float = 30.0
RISK_BELOW_RETURN_POINTS: float = 20.0


def _similarity(x: float, y: float) -> float:
    return 1.0 - abs(x - y) / max(abs(x), abs(y), 1.0)


def similarity_matrix(decisions: Sequence[DecisionRisk]) -> np.ndarray:
    """Correlation proxy between decisions, diagonal 1, entries in [0, 1]."""
    n = len(decisions)
    matrix = np.eye(n)
    for i in range(n):
        for j in range(i + 1, n):
            a, b = decisions[i], decisions[j]
            rho = (
                _similarity(a.ev, b.ev)
                + _similarity(a.var95, b.var95)
                + _similarity(a.cvar95, b.cvar95)
            ) / 3.0
            matrix[i, j] = matrix[j, i] = min(1.0, max(0.0, rho))
    return matrix


def diversification_index(matrix: np.ndarray) -> float:
    n = len(matrix)
    if n == 0:
        return 0.0
    if n == 1:
        return 1.0
    return float(min(1.0, max(0.0, 1.0 - matrix.sum() / (n * n))))


class PortfolioRiskAggregator:
    """Portfolio metrics computation + history tracking."""

    def __init__(
        self,
        portfolios: Optional[PortfolioRepository] = None,
        decisions: Optional[DecisionRepository] = None,
        cvar_multiplier: Optional[float] = None,
        history_size: Optional[int] = None,
        antifragility_history: Optional[AntifragilityHistoryService] = None,
    ):
        self.portfolios = portfolios
        self.decisions = decisions
        self.antifragility_history = antifragility_history
        self.cvar_multiplier = (
            cvar_multiplier if cvar_multiplier is not None else settings.portfolio_cvar_multiplier
        )
        self.history_size = history_size if history_size is not None else settings.portfolio_history_size

    def compute_portfolio_metrics(self, decisions: Sequence[DecisionRisk]) -> PortfolioMetrics:
        n = len(decisions)
        if n == 0:
            return PortfolioMetrics()

        raw = [d.weight if d.weight else 1.0 for d in decisions]
        total = sum(raw)
        weights = np.array([w / total for w in raw])

        ev = float(sum(w * d.ev for w, d in zip(weights, decisions)))
        matrix = similarity_matrix(decisions)
        di = diversification_index(matrix)

        if n == 1:
            var95, cvar95 = decisions[0].var95, decisions[0].cvar95
        else:
            values = np.array([d.var95 for d in decisions])
            scaled = weights * values
            form = float(scaled @ matrix @ scaled)
            var95 = math.copysign(math.sqrt(abs(form)), form)
            cvar95 = var95 * self.cvar_multiplier

        score = (
            di * DIVERSIFICATION_POINTS
            + (POSITIVE_EV_POINTS if ev > 0 else 0.0)
            + (RISK_BELOW_RETURN_POINTS if abs(var95) < abs(ev) else 0.0)
        )

        return PortfolioMetrics(
            aggregate_ev=round(ev, 6),
            aggregate_var95=round(var95, 6),
            aggregate_cvar95=round(cvar95, 6),
            diversification_index=round(di, 6),
            antifragility_score=round(min(100.0, max(0.0, score)), 4),
            decision_count=n,
        )

    async def collect_decision_risks(self, tenant_id: str, portfolio: Portfolio) -> list[DecisionRisk]:
        """Chosen-option metrics for each decision of the portfolio that has results."""
        if self.decisions is None:
            return []
        risks: list[DecisionRisk] = []
        for decision_id in portfolio.decision_ids:
            decision = await self.decisions.get(tenant_id, decision_id)
            metrics = decision.chosen_metrics() if decision else None
            if metrics is None:
                logger.debug("portfolio_decision_skipped", decision_id=decision_id, reason="no_results")
                continue
            risks.append(DecisionRisk(
                decision_id=decision_id,
                option_id=metrics.option_id,
                ev=metrics.ev,
                var95=metrics.var95,
                cvar95=metrics.cvar95,
                weight=portfolio.weights.get(decision_id),
            ))
        return risks

    async def update_portfolio_metrics(
        self,
        tenant_id: str,
        portfolio_id: str,
        decisions: Optional[Sequence[DecisionRisk]] = None,
    ) -> Portfolio:
        """
        Recompute and persist metrics; the previous metrics move to history
        (last `history_size` entries kept).

        Raises:
            NotFound: unknown portfolio.
        """
        if self.portfolios is None:
            raise RuntimeError("PortfolioRiskAggregator has no portfolio repository")

        portfolio = await self.portfolios.require(tenant_id, portfolio_id)
        if decisions is None:
            decisions = await self.collect_decision_risks(tenant_id, portfolio)

        metrics = self.compute_portfolio_metrics(decisions)
        history = list(portfolio.metrics_history)
        if portfolio.metrics is not None:
            history.append(portfolio.metrics)

        portfolio.metrics = metrics
        portfolio.metrics_history = history[-self.history_size:]
        await self.portfolios.save(tenant_id, portfolio)

        if self.antifragility_history is not None:
            await self.antifragility_history.add_snapshot(
                tenant_id,
                HistorySubject.PORTFOLIO,
                portfolio_id,
                metrics.antifragility_score,
                title=portfolio.name,
                event="portfolio_metrics_updated",
                metadata={
                    "diversification_index": metrics.diversification_index,
                    "decision_count": float(metrics.decision_count),
                },
            )

        logger.info(
            "portfolio_metrics_updated",
            tenant_id=tenant_id,
            portfolio_id=portfolio_id,
            n=metrics.decision_count,
            diversification_index=metrics.diversification_index,
            antifragility_score=metrics.antifragility_score,
        )
        return portfolio
