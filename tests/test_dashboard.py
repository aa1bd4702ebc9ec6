"""Tests for the admin dashboard: counters, optimistic updates, realtime and reset."""

import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from oona.models import ORDERS_TABLE, OrderStatus
from oona.pages.dashboard import DashboardPage, StatusUpdateOutcome
from oona.services.backend import BackendResult, Filter


@pytest.fixture
def dashboard(backend):
    return DashboardPage(backend, settle_seconds=0)


async def test_refresh_loads_active_orders_newest_first(dashboard, make_order):
    first = await make_order(table_number=1)
    await asyncio.sleep(0.001)
    second = await make_order(table_number=2)
    await make_order(table_number=3, status="completed")

    await dashboard.refresh()

    assert not dashboard.loading
    assert [o.id for o in dashboard.orders] == [second["id"], first["id"]]


async def test_stats_exclude_cancelled_orders_from_earnings(dashboard, make_order):
    await make_order(table_number=1, total=100)
    await make_order(table_number=1, total=50, status="accepted")
    await make_order(table_number=2, total=200, status="completed")
    await make_order(table_number=4, total=999, status="cancelled")

    await dashboard.refresh()
    stats = dashboard.stats

    assert stats.today_earnings == Decimal("350.00")
    assert stats.monthly_earnings == Decimal("350.00")
    assert stats.total_orders == 3
    assert stats.active_tables == 2
    assert stats.pending_orders == 1
    assert stats.in_progress_orders == 1
    assert stats.completed_orders == 1


async def test_today_earnings_start_at_local_midnight(backend, make_order):
    now = datetime.now().astimezone()
    yesterday = (now - timedelta(days=1)).astimezone(timezone.utc).isoformat()
    await make_order(total=100)
    await make_order(total=40, created_at=yesterday)

    dashboard = DashboardPage(backend, settle_seconds=0, clock=lambda: now)
    await dashboard.refresh()

    assert dashboard.stats.today_earnings == Decimal("100.00")
    assert dashboard.stats.total_orders == 2


async def test_accept_moves_counters_immediately(dashboard, make_order):
    order = await make_order(table_number=5, total=300)
    await make_order(table_number=6)
    await dashboard.refresh()
    assert dashboard.stats.pending_orders == 2

    result = await dashboard.update_order_status(order["id"], OrderStatus.ACCEPTED)

    assert result.outcome == StatusUpdateOutcome.APPLIED
    assert dashboard.stats.pending_orders == 1
    assert dashboard.stats.in_progress_orders == 1
    assert [o.id for o in dashboard.accepted] == [order["id"]]

    await dashboard.drain()
    assert dashboard.stats.pending_orders == 1
    assert dashboard.stats.in_progress_orders == 1


async def test_completed_order_leaves_the_list(dashboard, make_order):
    order = await make_order(status="accepted")
    await dashboard.refresh()

    result = await dashboard.update_order_status(order["id"], OrderStatus.COMPLETED)

    assert result.success
    assert dashboard.orders == []
    assert dashboard.stats.in_progress_orders == 0
    assert dashboard.stats.completed_orders == 1
    await dashboard.drain()
    assert dashboard.stats.completed_orders == 1


async def test_cancel_pending_order(dashboard, make_order, backend):
    order = await make_order()
    await dashboard.refresh()

    result = await dashboard.update_order_status(order["id"], OrderStatus.CANCELLED)

    assert result.success
    assert dashboard.stats.pending_orders == 0
    stored = await backend.select(ORDERS_TABLE, filters=[Filter("id", "eq", order["id"])])
    assert stored.data[0]["status"] == "cancelled"


async def test_invalid_transition_is_rejected_without_backend_call(dashboard, make_order, backend, monkeypatch):
    order = await make_order()
    await dashboard.refresh()
    calls = []

    async def recording_update(*args, **kwargs):
        calls.append(args)
        return BackendResult(success=True)

    monkeypatch.setattr(backend, "update", recording_update)
    result = await dashboard.update_order_status(order["id"], OrderStatus.COMPLETED)

    assert result.outcome == StatusUpdateOutcome.REJECTED
    assert calls == []
    assert dashboard.orders[0].status == OrderStatus.PENDING


async def test_unknown_order_is_rejected(dashboard):
    await dashboard.refresh()
    result = await dashboard.update_order_status("missing", OrderStatus.ACCEPTED)
    assert result.outcome == StatusUpdateOutcome.REJECTED


async def test_failed_update_rolls_back(dashboard, make_order, backend, monkeypatch):
    order = await make_order()
    await dashboard.refresh()

    async def failing_update(*args, **kwargs):
        return BackendResult.failure("network unreachable")

    monkeypatch.setattr(backend, "update", failing_update)
    result = await dashboard.update_order_status(order["id"], OrderStatus.ACCEPTED)

    assert result.outcome == StatusUpdateOutcome.ROLLED_BACK
    assert result.error_message == "network unreachable"
    assert dashboard.last_error == "network unreachable"
    assert dashboard.orders[0].status == OrderStatus.PENDING
    assert dashboard.stats.pending_orders == 1
    assert dashboard.stats.in_progress_orders == 0


async def test_stale_update_matches_nothing_and_refetches(dashboard, make_order, backend):
    order = await make_order()
    await dashboard.refresh()

    # Another device cancels the order first
    await backend.update(ORDERS_TABLE, {"status": "cancelled"}, [Filter("id", "eq", order["id"])])
    result = await dashboard.update_order_status(order["id"], OrderStatus.ACCEPTED)

    assert result.outcome == StatusUpdateOutcome.ROLLED_BACK
    assert dashboard.orders[0].status == OrderStatus.CANCELLED
    stored = await backend.select(ORDERS_TABLE)
    assert stored.data[0]["status"] == "cancelled"


async def test_realtime_insert_triggers_refresh(dashboard, backend, make_order):
    await dashboard.mount()
    assert dashboard.orders == []

    await make_order(table_number=9)
    await backend.wait_for_deliveries()
    await dashboard.drain()

    assert [o.table_number for o in dashboard.orders] == [9]
    assert dashboard.stats.pending_orders == 1
    await dashboard.unmount()


async def test_mounts_share_one_subscription(dashboard, backend):
    await dashboard.mount()
    await dashboard.mount()
    assert backend.subscriber_count(ORDERS_TABLE) == 1

    await dashboard.unmount()
    assert dashboard.mounted
    await dashboard.unmount()
    assert not dashboard.mounted
    assert backend.subscriber_count(ORDERS_TABLE) == 0

    await dashboard.unmount()
    assert backend.subscriber_count(ORDERS_TABLE) == 0


async def test_close_releases_subscription(dashboard, backend):
    await dashboard.mount()
    await dashboard.close()
    assert backend.subscriber_count(ORDERS_TABLE) == 0


async def test_overlapping_refreshes_coalesce(dashboard, backend, make_order, monkeypatch):
    await make_order()
    calls = 0
    original = backend.select

    async def counting_select(table, *args, **kwargs):
        nonlocal calls
        if kwargs.get("order_by") == "created_at":
            calls += 1
        await asyncio.sleep(0.01)
        return await original(table, *args, **kwargs)

    monkeypatch.setattr(backend, "select", counting_select)
    first = asyncio.create_task(dashboard.refresh())
    await asyncio.sleep(0.005)

    # Four more callers arrive while the first pass is in flight
    await asyncio.gather(*(dashboard.refresh() for _ in range(4)))
    await first

    assert calls == 2
    assert len(dashboard.orders) == 1


async def test_listeners_receive_latest_snapshot(dashboard, make_order):
    queue = dashboard.add_listener()
    order = await make_order()
    await dashboard.refresh()
    await dashboard.update_order_status(order["id"], OrderStatus.ACCEPTED)

    snapshot = queue.get_nowait()
    assert snapshot.stats.in_progress_orders == 1
    assert queue.empty()
    dashboard.remove_listener(queue)


async def test_reset_requires_confirmation(dashboard, make_order, backend):
    await make_order()
    result = await dashboard.reset_all_data(confirmed=False)

    assert not result.success
    assert (await backend.count(ORDERS_TABLE)).count == 1


async def test_reset_deletes_everything(dashboard, make_order, backend):
    await make_order(total=100)
    await make_order(total=200, status="completed")
    await dashboard.refresh()

    result = await dashboard.reset_all_data(confirmed=True)

    assert result.success
    assert result.deleted == 2
    assert dashboard.orders == []
    assert dashboard.stats.today_earnings == Decimal("0.00")
    assert dashboard.stats.total_orders == 0
    assert (await backend.count(ORDERS_TABLE)).count == 0
