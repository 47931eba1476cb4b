"""
Portfolio Schemas.

A portfolio groups decisions under one theme; its metrics summarise the
combined risk of the chosen options.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field

PLAIN_LANGUAGE_LABEL = "How sturdy or spread-out this group of choices is."


def _now() -> datetime:
    return datetime.now(timezone.utc)


class DecisionRisk(BaseModel):
    """Risk figures of one decision's chosen option, as fed to the aggregator."""
    decision_id: str
    option_id: str = ""
    ev: float
    var95: float
    cvar95: float
    weight: Optional[float] = Field(default=None, gt=0)


class PortfolioMetrics(BaseModel):
    aggregate_ev: float = 0.0
    aggregate_var95: float = 0.0
    aggregate_cvar95: float = 0.0
    diversification_index: float = Field(default=0.0, ge=0.0, le=1.0)
    antifragility_score: float = Field(default=0.0, ge=0.0, le=100.0)
    decision_count: int = 0
    plain_language_label: str = PLAIN_LANGUAGE_LABEL
    computed_at: datetime = Field(default_factory=_now)


class Portfolio(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str
    description: str = ""
    owner: str = ""
    time_horizon_months: int = 12
    goal_alignment: str = ""
    decision_ids: list[str] = Field(default_factory=list)
    weights: dict[str, float] = Field(default_factory=dict)
    metrics: Optional[PortfolioMetrics] = None
    metrics_history: list[PortfolioMetrics] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)


class PortfolioStats(BaseModel):
    total_portfolios: int
    total_decisions: int
    average_decisions_per_portfolio: float
    largest_portfolio_id: Optional[str] = None
    largest_portfolio_size: int = 0
