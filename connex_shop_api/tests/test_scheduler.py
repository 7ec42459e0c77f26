from __future__ import annotations

import asyncio

from connex.services.order_types import OrderStatus
from connex.services.scheduler import PickupSweepScheduler


def test_run_once_promotes(engine, store, notifier, clock):
    oid = store.seed(status=OrderStatus.PROCESSING, paid_at=clock.now.replace(day=1))
    result = asyncio.run(PickupSweepScheduler(engine, 60).run_once())
    assert result.promoted == [oid]
    assert store.orders[oid].status == OrderStatus.READY


def test_run_once_survives_store_errors(engine, store):
    async def _boom(cutoff):
        raise ConnectionError("db down")
    store.list_ready_candidates = _boom
    assert asyncio.run(PickupSweepScheduler(engine, 60).run_once()) is None


def test_start_runs_first_tick_and_stop_cancels(engine, store, notifier, clock):
    store.seed(status=OrderStatus.PROCESSING, paid_at=clock.now.replace(day=1))

    async def _scenario():
        sched = PickupSweepScheduler(engine, interval_seconds=3600)
        sched.start()
        assert sched.running
        for _ in range(20):
            if notifier.sent:
                break
            await asyncio.sleep(0)
        await sched.stop()
        return sched

    sched = asyncio.run(_scenario())
    assert not sched.running
    assert len(notifier.sent) == 1
