"""
Cart service: a user's pending reservation intents.
"""

import logging
from datetime import date
from typing import Any, Dict, List, Optional, Union

from django.utils import timezone

from . import errors
from .documents import CartItem, format_timestamp, parse_rows
from .store import CART, DocumentStore
from .types import CART_PENDING, UNKNOWN_CLASS_TYPE, CartSummary


logger = logging.getLogger(__name__)


def summarize_cart(items: List[CartItem], today: date) -> CartSummary:
    """
    Aggregate cart rows into totals.

    ``upcoming_classes_count`` counts rows dated today or later, which is
    inclusive, unlike schedule bookability.
    """
    summary = CartSummary(total_items=len(items))
    for item in items:
        summary.total_quantity += item.quantity
        summary.total_amount += item.line_total

        class_type = item.class_type or UNKNOWN_CLASS_TYPE
        summary.items_by_type[class_type] = summary.items_by_type.get(class_type, 0) + item.quantity

        if item.date and item.date >= today:
            summary.upcoming_classes_count += 1
    return summary


class CartService:
    """
    CRUD over cart rows.

    Args:
        store: DocumentStore used for every read and write
    """

    def __init__(self, store: DocumentStore):
        self.store = store

    def add_to_cart(self, user_id: str, item: Union[CartItem, Dict[str, Any]]) -> CartItem:
        """
        Persist a new pending cart row for a user.

        Args:
            user_id: Owner of the row
            item: CartItem, or a cart document dict (camelCase keys)

        Returns:
            The saved CartItem with its generated id

        Raises:
            ValidationError: If user_id is missing or the item is malformed
        """
        if not user_id:
            raise errors.ValidationError("User ID is required")

        data = item.to_store() if isinstance(item, CartItem) else dict(item)
        data.update(
            userId=user_id,
            status=CART_PENDING,
            addedAt=format_timestamp(timezone.now()),
            bookingId=None,
            bookedAt=None,
        )
        data.setdefault('quantity', 1)

        cart_item = CartItem.from_store(None, data)
        cart_item.id = self.store.add(CART, cart_item.to_store())

        logger.info("Added %s to cart of user %s as %s", cart_item.instance_id, user_id, cart_item.id)
        return cart_item

    def get_cart(self, user_id: str) -> List[CartItem]:
        """Get a user's pending cart rows, most recently added first."""
        rows = self.store.query(
            CART,
            where=[('userId', '==', user_id), ('status', '==', CART_PENDING)],
            order_by=[('addedAt', 'desc')]
        )
        return parse_rows(rows, CartItem.from_store, 'cart item')

    def get_cart_item(self, cart_item_id: str, user_id: Optional[str] = None) -> CartItem:
        """
        Get a single cart row.

        Raises:
            NotFound: If the row does not exist
            Unauthorized: If user_id is given and does not own the row
        """
        data = self.store.get(CART, cart_item_id)
        if data is None:
            raise errors.NotFound(f"Cart item {cart_item_id} not found")

        cart_item = CartItem.from_store(cart_item_id, data)
        if user_id is not None and cart_item.user_id != user_id:
            raise errors.Unauthorized("Unauthorized to access this cart item")
        return cart_item

    def _get_pending_item(self, cart_item_id: str, user_id: Optional[str]) -> CartItem:
        cart_item = self.get_cart_item(cart_item_id, user_id=user_id)
        if cart_item.status != CART_PENDING:
            raise errors.InvalidState(f"Cart item {cart_item_id} is already {cart_item.status}")
        return cart_item

    def update_quantity(
        self,
        cart_item_id: str,
        quantity: int,
        user_id: Optional[str] = None
    ) -> Optional[CartItem]:
        """
        Change the quantity of a cart row.

        A quantity of zero or less removes the row.

        Returns:
            The updated CartItem, or None when the row was removed

        Raises:
            InvalidState: If the row is no longer pending
        """
        if quantity <= 0:
            self.remove_from_cart(cart_item_id, user_id=user_id)
            return None

        cart_item = self._get_pending_item(cart_item_id, user_id)
        self.store.update(CART, cart_item_id, {
            'quantity': quantity,
            'updatedAt': format_timestamp(timezone.now()),
        })
        cart_item.quantity = quantity

        logger.info("Updated quantity of cart item %s to %d", cart_item_id, quantity)
        return cart_item

    def remove_from_cart(self, cart_item_id: str, user_id: Optional[str] = None) -> None:
        """
        Delete a cart row.

        Raises:
            NotFound: If the row does not exist
            Unauthorized: If user_id is given and does not own the row
            InvalidState: If the row is no longer pending
        """
        self._get_pending_item(cart_item_id, user_id)
        self.store.delete(CART, cart_item_id)
        logger.info("Removed cart item %s", cart_item_id)

    def clear_cart(self, user_id: str) -> int:
        """
        Delete every pending row of a user.

        Returns:
            Number of rows deleted; zero for an empty cart
        """
        rows = self.store.query(
            CART,
            where=[('userId', '==', user_id), ('status', '==', CART_PENDING)]
        )
        for doc_id, _ in rows:
            self.store.delete(CART, doc_id)

        logger.info("Cleared %d item(s) from cart of user %s", len(rows), user_id)
        return len(rows)

    def get_cart_summary(self, user_id: str, today: Optional[date] = None) -> CartSummary:
        """Aggregate a user's pending cart."""
        return summarize_cart(self.get_cart(user_id), today or timezone.localdate())
