"""
AdaptRisk — Adaptive Decision Risk Engine.

Architecture:
    adaptrisk/
    ├── api/             # FastAPI routers (HTTP layer)
    ├── db/              # SQLAlchemy engine + document table
    ├── middleware/      # Error handling, request context
    ├── services/        # Document store, audit sink, signal feed, registry
    ├── engine/          # Monte Carlo engine (sampler, dependence, Bayesian, game, utility)
    ├── portfolio/       # Cross-decision risk aggregation
    ├── guardrails/      # Outcome-driven guardrail auto-adjustment
    └── refresh/         # Signal-triggered re-simulation + learning trace

Module Boundaries:
    - The engine is pure computation: no I/O, no store access
    - Controllers (guardrails, refresh, portfolio) own persistence via the document store
    - Every adaptive state transition emits an audit event
    - Every failure carries a typed kind + context

Data Flow:
    Signal feed / manual trigger → Refresh controller → Simulation engine
    → Per-option metrics → Portfolio aggregator / Guardrail controller
    → Learning trace (antifragility)

Version: 1.0.0
"""

__version__ = "1.0.0"
