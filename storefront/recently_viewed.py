# storefront/recently_viewed.py
import json
import logging
from typing import List

from storefront.cart.storage import Storage

logger = logging.getLogger(__name__)

MAX_REMEMBERED = 8


class RecentlyViewed:
    """Product ids the shopper opened, newest first."""

    def __init__(self, storage: Storage, key: str = "eshop_recently_viewed"):
        self.storage = storage
        self.key = key

    def ids(self) -> List[str]:
        raw = self.storage.get(self.key)
        if not raw:
            return []
        try:
            data = json.loads(raw)
        except ValueError:
            logger.warning("Discarding unreadable entry %r", self.key)
            return []
        if not isinstance(data, list):
            return []
        return [str(product_id) for product_id in data if product_id]

    def remember(self, product_id: str) -> None:
        product_id = str(product_id)
        ids = [product_id] + [i for i in self.ids() if i != product_id]
        self.storage.set(self.key, json.dumps(ids[:MAX_REMEMBERED]))
