# storefront/cart/store.py
import json
import logging
import re
from decimal import Decimal
from typing import Callable, List, Optional, Tuple

from pydantic import ValidationError

from storefront.backend.schemas import Product
from storefront.cart.schemas import LineItem
from storefront.cart.storage import Storage

logger = logging.getLogger(__name__)

Listener = Callable[["CartStore"], None]

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


def clamp_quantity(quantity: int, stock: int) -> int:
    return max(1, min(int(quantity), stock))


def coerce_quantity(raw, maximum: int) -> int:
    """Turn a form value into a usable quantity instead of rejecting it.

    Only the leading integer counts, so "2.5" and "2 pcs" both give 2.
    """
    match = _LEADING_INT.match(str(raw)) if raw is not None else None
    if match is None:
        return 1
    value = int(match.group(1))
    if value < 1:
        return 1
    if value > maximum:
        return max(1, maximum)
    return value


class CartStore:
    """The shopper's line items, persisted to a single storage entry.

    Every mutation is written back to storage before it returns and then
    announced to subscribers. When storage refuses the write (``StorageFull``)
    the mutation is dropped and the error propagates.
    """

    def __init__(self, storage: Storage, key: str = "eshop_cart"):
        self.storage = storage
        self.key = key
        self._listeners: List[Listener] = []
        self._items: List[LineItem] = self._load()

    def _load(self) -> List[LineItem]:
        raw = self.storage.get(self.key)
        if not raw:
            return []
        try:
            data = json.loads(raw)
            items = [LineItem.model_validate(entry) for entry in data]
        except (ValueError, TypeError, ValidationError) as e:
            logger.warning("Discarding unreadable cart entry %r: %s", self.key, e)
            return []

        seen = set()
        unique = []
        for item in items:
            if item.product_id not in seen:
                seen.add(item.product_id)
                unique.append(item)
        return unique

    def _commit(self, items: List[LineItem]) -> None:
        payload = [item.model_dump(mode="json") for item in items]
        self.storage.set(self.key, json.dumps(payload, separators=(",", ":")))
        self._items = items
        for listener in list(self._listeners):
            listener(self)

    def _find(self, product_id: str) -> Optional[LineItem]:
        for item in self._items:
            if item.product_id == str(product_id):
                return item
        return None

    def _replace(self, updated: LineItem) -> List[LineItem]:
        return [updated if item.product_id == updated.product_id else item for item in self._items]

    @property
    def items(self) -> Tuple[LineItem, ...]:
        return tuple(item.model_copy() for item in self._items)

    def is_empty(self) -> bool:
        return not self._items

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def add_product(self, product: Product, quantity: int = 1) -> LineItem:
        item = self._find(product.id)
        if item:
            # Clamped against the snapshot taken when the line was created
            item = item.model_copy(
                update={"quantity": clamp_quantity(item.quantity + int(quantity), item.stock_at_add_time)}
            )
            items = self._replace(item)
        else:
            stock = max(0, product.stock)
            item = LineItem(
                product_id=product.id,
                name=product.name,
                unit_price=product.price,
                image_url=product.image_url,
                quantity=clamp_quantity(quantity, stock),
                stock_at_add_time=stock,
            )
            items = self._items + [item]
        self._commit(items)
        logger.debug("Cart %s: product %s quantity=%d", self.key, item.product_id, item.quantity)
        return item.model_copy()

    def remove_product(self, product_id: str) -> None:
        item = self._find(product_id)
        if item is None:
            return
        self._commit([i for i in self._items if i is not item])
        logger.debug("Cart %s: removed product %s", self.key, product_id)

    def update_quantity(self, product_id: str, quantity: int) -> None:
        item = self._find(product_id)
        if item is None:
            return
        quantity = clamp_quantity(quantity, item.stock_at_add_time)
        self._commit(self._replace(item.model_copy(update={"quantity": quantity})))

    def get_total(self) -> Decimal:
        return sum((item.line_total for item in self._items), Decimal(0))

    def get_items_count(self) -> int:
        return sum(item.quantity for item in self._items)

    def clear(self) -> None:
        self._commit([])
