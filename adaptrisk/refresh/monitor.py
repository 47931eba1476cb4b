"""
Signal Monitor — periodic poll of the signal feed.

Every `signal_poll_interval_seconds` (APScheduler IntervalTrigger):
1. For each tenant with decisions, collect the linked signal ids
2. Fetch current values from the SignalFeed
3. Turn moves against each link's last known value into SignalUpdates
4. Hand them to SignalRefreshController.on_signal_update (debounced)

Links without a last known value get one recorded as their baseline.
One failing tenant does not stop the others.
"""

from typing import Optional

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from adaptrisk.config import settings
from adaptrisk.refresh.controller import SignalRefreshController
from adaptrisk.refresh.schemas import SignalUpdate
from adaptrisk.services.decisions import DECISION_SCOPE, Decision
from adaptrisk.services.signal_feed import SignalFeed

logger = structlog.get_logger(__name__)


class SignalMonitor:
    def __init__(
        self,
        controller: SignalRefreshController,
        feed: SignalFeed,
        interval_seconds: Optional[float] = None,
    ):
        self.controller = controller
        self.feed = feed
        self.interval_seconds = interval_seconds or settings.signal_poll_interval_seconds
        self.scheduler = AsyncIOScheduler()

    def start(self):
        """Register the poll job and start the scheduler. Needs a running event loop."""
        self.scheduler.add_job(
            self.poll_all,
            IntervalTrigger(seconds=self.interval_seconds),
            id="signal_poll",
            max_instances=1,
            replace_existing=True,
        )
        self.scheduler.start()
        logger.info("signal_monitor_started", interval_seconds=self.interval_seconds)

    def stop(self):
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("signal_monitor_stopped")

    async def poll_all(self) -> int:
        """Poll every tenant; returns the number of updates submitted."""
        tenants = await self.controller.decisions.store.list_tenants(DECISION_SCOPE)
        submitted = 0
        for tenant_id in tenants:
            try:
                submitted += len(await self.poll_once(tenant_id))
            except Exception as e:
                logger.error("signal_poll_failed", tenant_id=tenant_id, error=str(e))
        logger.debug("signal_poll_completed", tenants=len(tenants), updates=submitted)
        return submitted

    async def poll_once(self, tenant_id: str) -> list[SignalUpdate]:
        decisions = await self.controller.decisions.with_linked_signals(tenant_id)
        signal_ids = {link.signal_id for d in decisions for link in d.linked_signals}
        if not signal_ids:
            return []

        current = await self.feed.fetch_values(signal_ids)
        if not current:
            return []

        updates: dict[str, SignalUpdate] = {}
        for decision in decisions:
            if await self._record_baselines(tenant_id, decision, current):
                continue
            for link in decision.linked_signals:
                value = current.get(link.signal_id)
                if value is None or value == link.last_value or link.signal_id in updates:
                    continue
                updates[link.signal_id] = SignalUpdate.from_values(
                    link.signal_id, link.last_value, value, link.signal_label,
                )

        if updates:
            await self.controller.on_signal_update(tenant_id, list(updates.values()))
        return list(updates.values())

    async def _record_baselines(self, tenant_id: str, decision: Decision, current: dict[str, float]) -> bool:
        """Store first-seen values for links that have none. True when the decision was updated."""
        missing = [l for l in decision.linked_signals if l.last_value is None and l.signal_id in current]
        if not missing:
            return False
        decision.linked_signals = [
            link.model_copy(update={"last_value": current[link.signal_id]})
            if link.last_value is None and link.signal_id in current else link
            for link in decision.linked_signals
        ]
        await self.controller.decisions.save(tenant_id, decision)
        logger.info("signal_baselines_recorded", tenant_id=tenant_id, decision_id=decision.id, count=len(missing))
        return True
