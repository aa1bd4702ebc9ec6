"""
Menu Browsing

Loads the whole menu once per page view and filters it client-side by
search text and category. Cart changes are delegated to the cart
container.
"""

import logging
from typing import Iterable, Optional

from oona.models import MENU_ITEMS_TABLE
from oona.schemas import MenuItem
from oona.services.backend import BackendResult, BaseBackendService
from oona.state.cart import Cart

logger = logging.getLogger(__name__)

ALL_CATEGORIES = "All"


def distinct_categories(items: Iterable[MenuItem]) -> list[str]:
    """Categories present in ``items``, in first-seen order."""
    seen: list[str] = []
    for item in items:
        if item.category not in seen:
            seen.append(item.category)
    return seen


def filter_menu_items(
    items: Iterable[MenuItem],
    search_term: str = "",
    category: Optional[str] = ALL_CATEGORIES,
) -> list[MenuItem]:
    """
    Apply the search and category filters.

    Search is a case-insensitive substring match on name or description;
    category must match exactly unless it is "All" or empty. Both
    filters must pass.
    """
    term = (search_term or "").strip().lower()
    wanted = category if category and category != ALL_CATEGORIES else None

    matched = []
    for item in items:
        if term and term not in item.name.lower() and term not in item.description.lower():
            continue
        if wanted is not None and item.category != wanted:
            continue
        matched.append(item)
    return matched


class MenuBrowser:
    """State behind the customer menu page."""

    def __init__(self, backend: BaseBackendService):
        self._backend = backend
        self.items: list[MenuItem] = []
        self.error: Optional[str] = None

    async def load(self) -> BackendResult:
        result = await self._backend.select(MENU_ITEMS_TABLE, order_by="category", ascending=True)
        if result.success:
            self.items = [MenuItem.model_validate(row) for row in result.data]
            self.error = None
        else:
            logger.error(f"Error fetching menu items: {result.error_message}")
            self.error = "We couldn't load the menu. Please refresh the page."
        return result

    @property
    def categories(self) -> list[str]:
        return distinct_categories(self.items)

    def filtered_items(self, search_term: str = "", category: Optional[str] = ALL_CATEGORIES) -> list[MenuItem]:
        return filter_menu_items(self.items, search_term, category)

    def get_item(self, item_id: str) -> Optional[MenuItem]:
        for item in self.items:
            if item.id == item_id:
                return item
        return None

    def add_to_cart(self, cart: Cart, item_id: str) -> bool:
        """Add one unit: insert a new entry or bump the existing quantity."""
        item = self.get_item(item_id)
        if item is None or not item.available:
            return False
        quantity = cart.get_quantity(item.id)
        if quantity == 0:
            return cart.add_item(item)
        cart.update_quantity(item.id, quantity + 1)
        return True

    def remove_from_cart(self, cart: Cart, item_id: str) -> None:
        """Take one unit away; the entry disappears at zero."""
        quantity = cart.get_quantity(item_id)
        if quantity > 0:
            cart.update_quantity(item_id, quantity - 1)
