"""
Signal-Triggered Refresh Controller.

When linked signals move, affected decisions are re-simulated with shifted
scenario variables:

1. Debounce bursts of updates per tenant (DebounceScheduler)
2. Select eligible decisions: a linked signal is in the batch and some
   relevant update, measured from the link's last known value, moved by at
   least the change threshold
3. Shift linked variables by the signal ratio
   (positive direction: new/old, negative direction: old/new), damped by
   the link's sensitivity
4. Re-simulate in batches; decisions of one batch run concurrently, each in
   a worker thread; a failing decision yields RefreshResult(success=False)
5. Commit: persist new variables and metrics, emit `decision.auto_refreshed`,
   and update the learning trace when utilities changed; a commit that
   raises marks that decision failed and the batch carries on

Results of a batch are collected before anything is committed. Concurrent
refreshes of the same decision are last-write-wins.
"""

import asyncio
from datetime import datetime, timezone
from typing import Callable, Optional, Sequence

import structlog

from adaptrisk.engine.schemas import ScenarioVariable
from adaptrisk.engine.simulation import ScenarioSimulationEngine
from adaptrisk.refresh.debounce import DebounceScheduler
from adaptrisk.refresh.learning import LearningTraceService
from adaptrisk.refresh.schemas import (
    MetricComparison,
    MetricDelta,
    RefreshConfig,
    RefreshResult,
    SignalUpdate,
    change_fraction,
    merge_updates,
)
from adaptrisk.services.audit import AuditEventType, AuditSink
from adaptrisk.services.decisions import (
    Decision,
    DecisionRepository,
    LinkedSignal,
    OptionMetrics,
    SignalDirection,
)
from adaptrisk.services.signal_feed import SignalFeed
from adaptrisk.services.store import DocumentStore

logger = structlog.get_logger(__name__)

REFRESH_CONFIG_SCOPE = "refresh_config"
REFRESH_CONFIG_KEY = "default"
SIGNIFICANT_CHANGE_PERCENT: float = 5.0


# ── Pure helpers ──────────────────────────────────────────────────────────


def should_trigger_refresh(updates: Sequence[SignalUpdate], threshold: float) -> bool:
    return any(abs(u.change_percent) >= threshold for u in updates)


def relevant_updates(decision: Decision, updates: Sequence[SignalUpdate]) -> list[SignalUpdate]:
    """
    Updates for signals linked to `decision`, measured from each link's own
    last known value when it has one.
    """
    links = {ls.signal_id: ls for ls in decision.linked_signals}
    relevant = []
    for update in updates:
        link = links.get(update.signal_id)
        if link is None:
            continue
        if link.last_value is not None and link.last_value != update.old_value:
            update = update.model_copy(update={
                "old_value": link.last_value,
                "change_percent": change_fraction(link.last_value, update.new_value),
            })
        relevant.append(update)
    return relevant


def apply_signal_shifts(
    variables: Sequence[ScenarioVariable],
    linked_signals: Sequence[LinkedSignal],
    updates: Sequence[SignalUpdate],
) -> list[ScenarioVariable]:
    """
    Ratio-scale the location (normal/lognormal) or bounds (uniform/triangular)
    of every variable driven by an updated signal. A link's sensitivity damps
    the ratio toward 1. Zero-valued updates carry no usable ratio and are
    skipped.
    """
    by_signal = {u.signal_id: u for u in updates}
    shifted = list(variables)

    for link in linked_signals:
        update = by_signal.get(link.signal_id)
        if update is None:
            continue
        index = next((i for i, v in enumerate(shifted) if v.key == link.variable_key), None)
        if index is None:
            continue
        if update.old_value == 0 or update.new_value == 0:
            logger.warning(
                "signal_shift_skipped",
                signal_id=link.signal_id,
                variable=link.variable_key,
                reason="zero_value",
            )
            continue

        if link.direction == SignalDirection.POSITIVE:
            ratio = update.new_value / update.old_value
        else:
            ratio = update.old_value / update.new_value
        ratio = 1.0 + link.sensitivity * (ratio - 1.0)

        variable = shifted[index]
        shifted[index] = variable.model_copy(update={"distribution": variable.distribution.scaled(ratio)})

    return shifted


def compare_metrics(previous: Sequence[OptionMetrics], new: Sequence[OptionMetrics]) -> list[MetricComparison]:
    """Per-option deltas for options present in both runs."""
    old_by_id = {m.option_id: m for m in previous}
    comparisons = []
    for current in new:
        old = old_by_id.get(current.option_id)
        if old is None:
            continue
        utility = None
        if old.expected_utility is not None and current.expected_utility is not None:
            utility = MetricDelta.between(old.expected_utility, current.expected_utility)
        comparisons.append(MetricComparison(
            option_id=current.option_id,
            option_label=current.option_label,
            ev=MetricDelta.between(old.ev, current.ev),
            var95=MetricDelta.between(old.var95, current.var95),
            cvar95=MetricDelta.between(old.cvar95, current.cvar95),
            utility=utility,
        ))
    return comparisons


# ── Controller ────────────────────────────────────────────────────────────


class SignalRefreshController:
    def __init__(
        self,
        decisions: DecisionRepository,
        store: DocumentStore,
        audit: AuditSink,
        learning: LearningTraceService,
        engine: Optional[ScenarioSimulationEngine] = None,
        feed: Optional[SignalFeed] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.decisions = decisions
        self.store = store
        self.audit = audit
        self.learning = learning
        self.engine = engine or ScenarioSimulationEngine()
        self.feed = feed
        self.clock = clock
        self._schedulers: dict[str, DebounceScheduler] = {}

    # ── Config ────────────────────────────────────────────────────────

    async def get_config(self, tenant_id: str) -> RefreshConfig:
        doc = await self.store.get(tenant_id, REFRESH_CONFIG_SCOPE, REFRESH_CONFIG_KEY)
        return RefreshConfig.model_validate(doc) if doc is not None else RefreshConfig()

    async def set_config(self, tenant_id: str, config: RefreshConfig) -> RefreshConfig:
        await self.store.set(tenant_id, REFRESH_CONFIG_SCOPE, REFRESH_CONFIG_KEY, config.model_dump(mode="json"))
        scheduler = self._schedulers.get(tenant_id)
        if scheduler is not None:
            scheduler.delay_seconds = config.debounce_seconds
        logger.info("refresh_config_updated", tenant_id=tenant_id, **config.model_dump())
        return config

    # ── Debounced entry point ─────────────────────────────────────────

    async def on_signal_update(self, tenant_id: str, updates: Sequence[SignalUpdate]) -> bool:
        """
        Queue updates for a debounced refresh.

        Returns False (and queues nothing) when auto-refresh is disabled.
        """
        config = await self.get_config(tenant_id)
        if not config.enabled:
            logger.info("auto_refresh_disabled", tenant_id=tenant_id)
            return False
        self.scheduler_for(tenant_id, config).submit(list(updates))
        return True

    def scheduler_for(self, tenant_id: str, config: Optional[RefreshConfig] = None) -> DebounceScheduler:
        scheduler = self._schedulers.get(tenant_id)
        if scheduler is None:
            delay = config.debounce_seconds if config else RefreshConfig().debounce_seconds

            async def _flush(updates: list[SignalUpdate]) -> list[RefreshResult]:
                return await self.refresh_now(tenant_id, updates)

            scheduler = DebounceScheduler(delay, _flush, name=f"refresh:{tenant_id}")
            self._schedulers[tenant_id] = scheduler
        return scheduler

    async def shutdown(self) -> None:
        """Cancel pending timers and wait for in-flight refreshes."""
        for scheduler in self._schedulers.values():
            scheduler.cancel()
            await scheduler.drain()

    # ── Refresh pipeline ──────────────────────────────────────────────

    async def refresh_now(self, tenant_id: str, updates: Sequence[SignalUpdate]) -> list[RefreshResult]:
        config = await self.get_config(tenant_id)
        if not config.enabled:
            return []

        updates = merge_updates(list(updates))
        targets = await self.decisions_to_refresh(tenant_id, updates, config.change_threshold)
        if not targets:
            logger.info("no_decisions_to_refresh", tenant_id=tenant_id, updates=len(updates))
            return []

        logger.info("auto_refresh_started", tenant_id=tenant_id, decisions=len(targets), updates=len(updates))
        results = await self.batch_recompute(tenant_id, targets, updates, config.batch_size)
        logger.info(
            "auto_refresh_completed",
            tenant_id=tenant_id,
            succeeded=sum(1 for r in results if r.success),
            failed=sum(1 for r in results if not r.success),
        )
        return results

    async def decisions_to_refresh(
        self, tenant_id: str, updates: Sequence[SignalUpdate], threshold: float
    ) -> list[Decision]:
        eligible = []
        for decision in await self.decisions.with_linked_signals(tenant_id):
            relevant = relevant_updates(decision, updates)
            if relevant and should_trigger_refresh(relevant, threshold):
                eligible.append(decision)
        return eligible

    async def batch_recompute(
        self,
        tenant_id: str,
        decisions: Sequence[Decision],
        updates: Sequence[SignalUpdate],
        batch_size: int,
    ) -> list[RefreshResult]:
        results: list[RefreshResult] = []
        for start in range(0, len(decisions), batch_size):
            batch = decisions[start:start + batch_size]
            computed = await asyncio.gather(*(
                self.recompute_decision(d, relevant_updates(d, updates)) for d in batch
            ))
            for result, updated in computed:
                if updated is not None:
                    try:
                        await self._commit(tenant_id, updated, result)
                    except Exception as e:
                        logger.error("decision_refresh_commit_failed", decision_id=result.decision_id, error=str(e))
                        result = result.model_copy(update={"success": False, "error": str(e)})
                results.append(result)
            logger.debug(
                "refresh_batch_done",
                tenant_id=tenant_id,
                completed=min(start + batch_size, len(decisions)),
                total=len(decisions),
            )
        return results

    async def recompute_decision(
        self, decision: Decision, updates: Sequence[SignalUpdate]
    ) -> tuple[RefreshResult, Optional[Decision]]:
        """
        Re-simulate one decision off the event loop.

        Returns the result and the updated decision to commit (None on failure).
        """
        previous = list(decision.last_results)
        try:
            shifted = apply_signal_shifts(decision.scenario_vars, decision.linked_signals, updates)
            kwargs = decision.simulation_kwargs()
            kwargs["scenario_vars"] = shifted
            sim_results = await asyncio.to_thread(self.engine.simulate, **kwargs)
        except Exception as e:
            logger.error("decision_refresh_failed", decision_id=decision.id, error=str(e))
            return RefreshResult(
                decision_id=decision.id,
                decision_title=decision.title,
                success=False,
                previous_results=previous,
                error=str(e),
                refreshed_at=self.clock(),
                triggered_by=list(updates),
            ), None

        new_metrics = [OptionMetrics.from_result(r) for r in sim_results]
        refreshed_at = self.clock()
        by_signal = {u.signal_id: u for u in updates}
        updated = decision.model_copy(update={
            "scenario_vars": shifted,
            "last_results": new_metrics,
            "last_refreshed_at": refreshed_at,
            "linked_signals": [
                link.model_copy(update={"last_value": by_signal[link.signal_id].new_value, "last_updated": refreshed_at})
                if link.signal_id in by_signal else link
                for link in decision.linked_signals
            ],
        })
        return RefreshResult(
            decision_id=decision.id,
            decision_title=decision.title,
            success=True,
            previous_results=previous,
            new_results=new_metrics,
            comparisons=compare_metrics(previous, new_metrics),
            refreshed_at=refreshed_at,
            triggered_by=list(updates),
        ), updated

    async def _commit(self, tenant_id: str, decision: Decision, result: RefreshResult) -> None:
        await self.decisions.save(tenant_id, decision)

        significant = [c for c in result.comparisons if c.is_significant(SIGNIFICANT_CHANGE_PERCENT)]
        await self.audit.emit(tenant_id, AuditEventType.DECISION_AUTO_REFRESHED, {
            "decision_id": result.decision_id,
            "decision_title": result.decision_title,
            "triggered_by": [
                {"signal_id": u.signal_id, "signal_label": u.signal_label, "change_percent": u.change_percent}
                for u in result.triggered_by
            ],
            "refreshed_at": result.refreshed_at.isoformat(),
            "success": result.success,
            "significant_changes": [
                {
                    "option_id": c.option_id,
                    "option_label": c.option_label,
                    "ev_change": f"{c.ev.delta_percent:.2f}%",
                    "var95_change": f"{c.var95.delta_percent:.2f}%",
                    "cvar95_change": f"{c.cvar95.delta_percent:.2f}%",
                    "utility_change": f"{c.utility.delta_percent:.2f}%" if c.utility else "N/A",
                }
                for c in significant
            ],
            "message": "Decision auto-updated due to signal change.",
        })

        if any(c.utility is not None for c in result.comparisons):
            await self.learning.update_trace(
                tenant_id, decision.id, result.comparisons, result.triggered_by, decision.title,
            )

    # ── Manual refresh ────────────────────────────────────────────────

    async def manual_refresh(self, tenant_id: str, decision_ids: Sequence[str]) -> list[RefreshResult]:
        """
        Recompute the given decisions now, using current feed values against
        each linked signal's last known value. No eligibility threshold applies.
        """
        decisions = [d for d in [await self.decisions.get(tenant_id, i) for i in decision_ids] if d is not None]
        if not decisions:
            return []

        signal_ids = {link.signal_id for d in decisions for link in d.linked_signals}
        current = await self.feed.fetch_values(signal_ids) if (self.feed and signal_ids) else {}

        updates: list[SignalUpdate] = []
        for decision in decisions:
            for link in decision.linked_signals:
                value = current.get(link.signal_id)
                if value is None:
                    continue
                old = link.last_value if link.last_value is not None else value
                updates.append(SignalUpdate.from_values(link.signal_id, old, value, link.signal_label))

        config = await self.get_config(tenant_id)
        results = await self.batch_recompute(tenant_id, decisions, merge_updates(updates), config.batch_size)
        logger.info("manual_refresh_completed", tenant_id=tenant_id, decisions=len(results))
        return results
