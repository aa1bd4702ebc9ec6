"""
Admin Dashboard Reconciliation

Keeps a live view of every order that is not completed plus the
aggregate counters, for one staff browsing session.

Status changes follow a two-phase protocol:
    1. Local apply: the order's status (and the counters) change
       immediately; a completed order leaves the active list.
    2. Remote submit: a conditional update that only matches while the
       order still has the status we saw.
    3a. Success: after a short settling delay, refresh from the store.
    3b. Failure: refresh from the store at once (rollback) and report.

Realtime notifications on the orders table and explicit mutations both
feed the same refresh() operation, which coalesces overlapping calls, so
whichever path fires last still ends on authoritative data.

Author: Khalil Bannouri
Version: 1.0.0
"""

import asyncio
import enum
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional

from oona.core.config import get_settings
from oona.models import ORDERS_TABLE, OrderStatus, can_transition
from oona.schemas import DashboardSnapshot, DashboardStats, Order, quantize_money
from oona.services.backend import BaseBackendService, ChangeEvent, Filter, Subscription

logger = logging.getLogger(__name__)

REALTIME_CHANNEL = "dashboard-orders"

# PostgREST refuses an unfiltered delete; no real order has this id.
NIL_UUID = "00000000-0000-0000-0000-000000000000"


class StatusUpdateOutcome(str, enum.Enum):
    APPLIED = "applied"          # stored; reconciling refresh scheduled
    ROLLED_BACK = "rolled_back"  # store rejected it; local view refetched
    REJECTED = "rejected"        # invalid transition; store never contacted


@dataclass
class StatusUpdateResult:
    outcome: StatusUpdateOutcome
    order_id: str
    status: OrderStatus
    error_message: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.outcome == StatusUpdateOutcome.APPLIED


@dataclass
class ResetResult:
    success: bool
    deleted: int = 0
    error_message: Optional[str] = None


def _local_now() -> datetime:
    return datetime.now().astimezone()


class DashboardPage:
    """
    Orders and counters behind the admin dashboard.

    Attributes:
        orders: Active (non-completed) orders, newest first
        stats: Aggregate counters
        loading: True until the first refresh finished
        last_error: Most recent backend error surfaced to staff
    """

    def __init__(
        self,
        backend: BaseBackendService,
        settle_seconds: Optional[float] = None,
        clock: Callable[[], datetime] = _local_now,
    ):
        self._backend = backend
        self.settle_seconds = (
            get_settings().refresh_settle_seconds if settle_seconds is None else settle_seconds
        )
        self._clock = clock

        self.orders: list[Order] = []
        self.stats = DashboardStats()
        self.loading = True
        self.last_error: Optional[str] = None

        self._subscription: Optional[Subscription] = None
        self._mounts = 0
        self._mount_lock = asyncio.Lock()
        self._refresh_task: Optional[asyncio.Task] = None
        self._refresh_again = False
        self._background: set[asyncio.Task] = set()
        self._listeners: set[asyncio.Queue] = set()

    # =========================================================================
    # SNAPSHOTS & LISTENERS
    # =========================================================================

    def snapshot(self) -> DashboardSnapshot:
        return DashboardSnapshot(orders=list(self.orders), stats=self.stats.model_copy())

    @property
    def pending(self) -> list[Order]:
        return [o for o in self.orders if o.status == OrderStatus.PENDING]

    @property
    def accepted(self) -> list[Order]:
        return [o for o in self.orders if o.status == OrderStatus.ACCEPTED]

    def add_listener(self) -> asyncio.Queue:
        """Register a queue that receives a snapshot after every change."""
        queue: asyncio.Queue = asyncio.Queue(maxsize=1)
        self._listeners.add(queue)
        return queue

    def remove_listener(self, queue: asyncio.Queue) -> None:
        self._listeners.discard(queue)

    def _publish(self) -> None:
        if not self._listeners:
            return
        snapshot = self.snapshot()
        for queue in self._listeners:
            # Slow consumers only ever need the latest view
            if queue.full():
                queue.get_nowait()
            queue.put_nowait(snapshot)

    # =========================================================================
    # FETCHING
    # =========================================================================

    async def fetch_orders(self) -> bool:
        result = await self._backend.select(
            ORDERS_TABLE,
            filters=[Filter("status", "neq", OrderStatus.COMPLETED.value)],
            order_by="created_at",
            ascending=False,
        )
        if not result.success:
            logger.error(f"Error fetching orders: {result.error_message}")
            return False
        self.orders = [Order.model_validate(row) for row in result.data]
        return True

    async def fetch_stats(self) -> bool:
        now = self._clock()
        start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)
        start_of_month = start_of_day.replace(day=1)
        not_cancelled = Filter("status", "neq", OrderStatus.CANCELLED.value)

        today, month, total, tables, pending, accepted, completed = await asyncio.gather(
            self._backend.select(ORDERS_TABLE, columns="total", filters=[Filter("created_at", "gte", start_of_day), not_cancelled]),
            self._backend.select(ORDERS_TABLE, columns="total", filters=[Filter("created_at", "gte", start_of_month), not_cancelled]),
            self._backend.count(ORDERS_TABLE, [not_cancelled]),
            self._backend.select(ORDERS_TABLE, columns="table_number", filters=[Filter("created_at", "gte", start_of_day), not_cancelled]),
            self._backend.count(ORDERS_TABLE, [Filter("status", "eq", OrderStatus.PENDING.value)]),
            self._backend.count(ORDERS_TABLE, [Filter("status", "eq", OrderStatus.ACCEPTED.value)]),
            self._backend.count(ORDERS_TABLE, [Filter("status", "eq", OrderStatus.COMPLETED.value)]),
        )

        failed = [r for r in (today, month, total, tables, pending, accepted, completed) if not r.success]
        if failed:
            logger.error(f"Error fetching stats: {failed[0].error_message}")
            return False

        def earnings(rows: list[dict]) -> Decimal:
            return quantize_money(sum((Decimal(str(row.get("total") or 0)) for row in rows), Decimal("0")))

        self.stats = DashboardStats(
            today_earnings=earnings(today.data),
            monthly_earnings=earnings(month.data),
            total_orders=total.count or 0,
            active_tables=len({row.get("table_number") for row in tables.data}),
            pending_orders=pending.count or 0,
            in_progress_orders=accepted.count or 0,
            completed_orders=completed.count or 0,
        )
        return True

    async def refresh(self) -> None:
        """
        Refetch orders and stats.

        Calls that arrive while a refresh is running join it and trigger
        exactly one more pass, so every caller returns with data read
        after its call began.
        """
        if self._refresh_task is None or self._refresh_task.done():
            self._refresh_task = asyncio.create_task(self._run_refresh())
        else:
            self._refresh_again = True
        await asyncio.shield(self._refresh_task)

    async def _run_refresh(self) -> None:
        while True:
            self._refresh_again = False
            await asyncio.gather(self.fetch_orders(), self.fetch_stats())
            self.loading = False
            self._publish()
            if not self._refresh_again:
                return

    def _schedule_refresh(self, delay: float) -> None:
        async def delayed_refresh() -> None:
            if delay > 0:
                await asyncio.sleep(delay)
            await self.refresh()

        task = asyncio.create_task(delayed_refresh())
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def drain(self) -> None:
        """Wait for scheduled and running refreshes to finish."""
        while True:
            pending = list(self._background)
            if self._refresh_task is not None and not self._refresh_task.done():
                pending.append(self._refresh_task)
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    # =========================================================================
    # REALTIME
    # =========================================================================

    @property
    def mounted(self) -> bool:
        return self._subscription is not None

    async def _on_change(self, event: ChangeEvent) -> None:
        logger.debug(f"Realtime {event.event_type.value} on {event.table}")
        await self.refresh()

    async def mount(self) -> None:
        """Open the dashboard: subscribe once, then load."""
        async with self._mount_lock:
            self._mounts += 1
            if self._subscription is None:
                self._subscription = await self._backend.subscribe(
                    ORDERS_TABLE, self._on_change, channel_name=REALTIME_CHANNEL
                )
                logger.info("Dashboard subscribed to order changes")
        await self.refresh()

    async def unmount(self) -> None:
        """Close one dashboard view; the channel is released with the last one."""
        async with self._mount_lock:
            if self._mounts == 0:
                return
            self._mounts -= 1
            if self._mounts == 0 and self._subscription is not None:
                subscription, self._subscription = self._subscription, None
                await subscription.unsubscribe()
                logger.info("Dashboard unsubscribed from order changes")

    async def close(self) -> None:
        """Release the channel regardless of open views and stop timers."""
        async with self._mount_lock:
            self._mounts = 0
            if self._subscription is not None:
                subscription, self._subscription = self._subscription, None
                await subscription.unsubscribe()
        for task in list(self._background):
            task.cancel()
        self._listeners.clear()

    # =========================================================================
    # STATUS CHANGES
    # =========================================================================

    def _find(self, order_id: str) -> Optional[Order]:
        for order in self.orders:
            if order.id == order_id:
                return order
        return None

    def _apply_locally(self, order_id: str, status: OrderStatus) -> None:
        if status == OrderStatus.COMPLETED:
            self.orders = [o for o in self.orders if o.id != order_id]
        else:
            self.orders = [
                o.model_copy(update={"status": status}) if o.id == order_id else o
                for o in self.orders
            ]

    def _adjust_counters(self, previous: OrderStatus, status: OrderStatus) -> None:
        stats = self.stats.model_copy()
        if previous == OrderStatus.PENDING and status == OrderStatus.ACCEPTED:
            stats.pending_orders = max(0, stats.pending_orders - 1)
            stats.in_progress_orders += 1
        elif previous == OrderStatus.ACCEPTED and status == OrderStatus.COMPLETED:
            stats.in_progress_orders = max(0, stats.in_progress_orders - 1)
            stats.completed_orders += 1
        elif previous == OrderStatus.PENDING and status == OrderStatus.CANCELLED:
            stats.pending_orders = max(0, stats.pending_orders - 1)
        self.stats = stats

    async def update_order_status(self, order_id: str, status: OrderStatus) -> StatusUpdateResult:
        order = self._find(order_id)
        if order is None:
            return StatusUpdateResult(
                StatusUpdateOutcome.REJECTED, order_id, status,
                error_message=f"Order {order_id} is not on the dashboard",
            )
        previous = order.status
        if not can_transition(previous, status):
            return StatusUpdateResult(
                StatusUpdateOutcome.REJECTED, order_id, status,
                error_message=f"Cannot move an order from {previous.value} to {status.value}",
            )

        self._apply_locally(order_id, status)
        self._adjust_counters(previous, status)
        self._publish()

        result = await self._backend.update(
            ORDERS_TABLE,
            {"status": status.value},
            [Filter("id", "eq", order_id), Filter("status", "eq", previous.value)],
        )

        if not result.success or not result.data:
            error = result.error_message or "The order was changed by someone else"
            logger.error(f"Error updating order {order_id} to {status.value}: {error}")
            self.last_error = error
            await self.refresh()
            return StatusUpdateResult(StatusUpdateOutcome.ROLLED_BACK, order_id, status, error_message=error)

        logger.info(f"Order {order_id}: {previous.value} -> {status.value}")
        self.last_error = None
        self._schedule_refresh(self.settle_seconds)
        return StatusUpdateResult(StatusUpdateOutcome.APPLIED, order_id, status)

    # =========================================================================
    # RESET
    # =========================================================================

    async def reset_all_data(self, confirmed: bool) -> ResetResult:
        """Delete every order. Irreversible; requires ``confirmed``."""
        if not confirmed:
            return ResetResult(success=False, error_message="Reset must be explicitly confirmed")

        result = await self._backend.delete(ORDERS_TABLE, [Filter("id", "neq", NIL_UUID)])
        if not result.success:
            logger.error(f"Error resetting data: {result.error_message}")
            self.last_error = result.error_message
            return ResetResult(success=False, error_message="Failed to reset data. Please try again.")

        logger.warning(f"All order data reset ({len(result.data)} orders deleted)")
        self.orders = []
        self.stats = DashboardStats()
        self.last_error = None
        self._publish()

        await self.refresh()
        return ResetResult(success=True, deleted=len(result.data))
