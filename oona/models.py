"""
Domain Models

Table names and the order status workflow shared by every layer.
Rows themselves live in the hosted store; their validated shapes are
in oona.schemas.

Author: Khalil Bannouri
Version: 1.0.0
"""

import enum


MENU_ITEMS_TABLE = "menu_items"
ORDERS_TABLE = "orders"


class OrderStatus(str, enum.Enum):
    """Order status workflow."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def label(self) -> str:
        return self.value.capitalize()

    @property
    def is_terminal(self) -> bool:
        return not ALLOWED_TRANSITIONS[self]


# Forward-only: an order never moves back to an earlier status.
ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.ACCEPTED, OrderStatus.CANCELLED}),
    OrderStatus.ACCEPTED: frozenset({OrderStatus.COMPLETED}),
    OrderStatus.COMPLETED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}


def can_transition(current: OrderStatus, new: OrderStatus) -> bool:
    """Return True if an order in ``current`` may move to ``new``."""
    return new in ALLOWED_TRANSITIONS[current]


class ChangeEventType(str, enum.Enum):
    """Realtime notification kinds delivered for a table."""
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
