# storefront/backend/orders.py
import logging
from typing import Optional

from storefront.backend.client import BackendClient
from storefront.backend.schemas import OrderRequest
from storefront.errors import BackendError

logger = logging.getLogger(__name__)


async def create_order(backend: BackendClient, order: OrderRequest, token: Optional[str] = None) -> str:
    """Create the order and its items in one call; returns the new order id."""
    result = await backend.rpc("create_order", {"order": order.model_dump(mode="json")}, token=token)

    # The function may return the bare id, the row, or a one-row list
    if isinstance(result, list):
        result = result[0] if result else None
    if isinstance(result, dict):
        result = result.get("id") or result.get("order_id")
    if not result:
        raise BackendError("Order was not created")

    logger.info("Order %s created with %d item(s)", result, len(order.items))
    return str(result)
