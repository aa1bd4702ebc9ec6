"""
Cart State Container

Process-local list of selected menu items for one browsing session.
Nothing here touches the backend; checkout reads the entries and
clears the cart once the order is stored.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from oona.schemas import MenuItem, quantize_money

logger = logging.getLogger(__name__)


@dataclass
class CartItem:
    """A menu item plus the quantity chosen."""
    id: str
    name: str
    price: Decimal
    quantity: int = 1
    image_url: Optional[str] = None

    @classmethod
    def from_menu_item(cls, item: MenuItem) -> "CartItem":
        return cls(
            id=item.id,
            name=item.name,
            price=item.price,
            quantity=1,
            image_url=item.image_url,
        )

    @property
    def line_total(self) -> Decimal:
        return quantize_money(self.price * self.quantity)


class Cart:
    """
    Ordered collection of cart entries.

    Invariant: every entry has quantity >= 1. Setting a quantity of zero
    or less removes the entry.
    """

    def __init__(self):
        self._items: list[CartItem] = []

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self):
        return iter(list(self._items))

    @property
    def items(self) -> list[CartItem]:
        return list(self._items)

    @property
    def is_empty(self) -> bool:
        return not self._items

    def _find(self, item_id: str) -> Optional[CartItem]:
        for entry in self._items:
            if entry.id == item_id:
                return entry
        return None

    def get_quantity(self, item_id: str) -> int:
        entry = self._find(item_id)
        return entry.quantity if entry else 0

    def add_item(self, item: MenuItem) -> bool:
        """
        Insert ``item`` with quantity 1.

        Returns False without changing anything if the item is already in
        the cart (callers increment with ``update_quantity``) or is not
        available.
        """
        if not item.available or self._find(item.id) is not None:
            return False
        self._items.append(CartItem.from_menu_item(item))
        logger.debug(f"Cart: added {item.name}")
        return True

    def update_quantity(self, item_id: str, quantity: int) -> None:
        """Set an absolute quantity. A value <= 0 removes the entry."""
        if quantity <= 0:
            self.remove_item(item_id)
            return
        entry = self._find(item_id)
        if entry is not None:
            entry.quantity = quantity

    def remove_item(self, item_id: str) -> None:
        self._items = [entry for entry in self._items if entry.id != item_id]

    def clear(self) -> None:
        self._items = []

    @property
    def item_count(self) -> int:
        """Sum of quantities."""
        return sum(entry.quantity for entry in self._items)

    @property
    def total(self) -> Decimal:
        """Sum of price x quantity across entries."""
        return quantize_money(sum((entry.line_total for entry in self._items), Decimal("0")))
