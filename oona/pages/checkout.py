"""
Checkout Submission

Turns the cart into a pending table order. The order stores a snapshot of
each line (name, unit price, quantity) so later menu edits never change
what was ordered.
"""

import enum
import logging
from dataclasses import dataclass
from typing import Optional, Union

from oona.models import ORDERS_TABLE, OrderStatus
from oona.schemas import Order, OrderLineItem, quantize_money
from oona.services.backend import BaseBackendService
from oona.state.cart import Cart

logger = logging.getLogger(__name__)

# table_number is an int4 column
MAX_TABLE_DIGITS = 9
MAX_TABLE_NUMBER = 10 ** MAX_TABLE_DIGITS - 1


class CheckoutStatus(str, enum.Enum):
    PLACED = "placed"
    INVALID = "invalid"
    FAILED = "failed"


@dataclass
class CheckoutResult:
    """Outcome of a checkout attempt."""
    status: CheckoutStatus
    order: Optional[Order] = None
    error_message: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status == CheckoutStatus.PLACED


def parse_table_number(raw: Union[str, int, None]) -> Optional[int]:
    """Return the table number as a positive int, or None if it isn't one."""
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw if 0 < raw <= MAX_TABLE_NUMBER else None
    text = str(raw).strip()
    if not (text.isascii() and text.isdigit()) or len(text) > MAX_TABLE_DIGITS:
        return None
    value = int(text)
    return value if 0 < value <= MAX_TABLE_NUMBER else None


def snapshot_lines(cart: Cart) -> list[OrderLineItem]:
    return [
        OrderLineItem(id=entry.id, name=entry.name, price=entry.price, quantity=entry.quantity)
        for entry in cart
    ]


def build_order_payload(cart: Cart, table_number: int, customer_notes: Optional[str] = None) -> dict:
    """
    Build the row to insert.

    The total is recomputed from the same snapshot lines that are stored.
    """
    lines = snapshot_lines(cart)
    total = quantize_money(sum((line.line_total for line in lines), quantize_money(0)))
    notes = (customer_notes or "").strip() or None

    return {
        "table_number": table_number,
        "items": [line.model_dump(mode="json") for line in lines],
        "total": float(total),
        "status": OrderStatus.PENDING.value,
        "customer_notes": notes,
    }


async def place_order(
    backend: BaseBackendService,
    cart: Cart,
    table_number: Union[str, int, None],
    customer_notes: Optional[str] = None,
) -> CheckoutResult:
    """
    Submit the cart as a pending order.

    Invalid input and empty carts are rejected before any backend call.
    On failure the cart is left as it was and nothing is retried.
    """
    if cart.is_empty:
        return CheckoutResult(CheckoutStatus.INVALID, error_message="Your cart is empty.")

    parsed = parse_table_number(table_number)
    if parsed is None:
        return CheckoutResult(CheckoutStatus.INVALID, error_message="Please enter a valid table number.")

    payload = build_order_payload(cart, parsed, customer_notes)
    result = await backend.insert(ORDERS_TABLE, [payload])

    if not result.success:
        logger.error(f"Error placing order for table {parsed}: {result.error_message}")
        return CheckoutResult(CheckoutStatus.FAILED, error_message="Failed to place order. Please try again.")

    order = Order.model_validate(result.data[0]) if result.data else None
    cart.clear()
    logger.info(f"Order placed for table {parsed}: total {payload['total']:.2f}")
    return CheckoutResult(CheckoutStatus.PLACED, order=order)
