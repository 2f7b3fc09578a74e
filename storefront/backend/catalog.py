# storefront/backend/catalog.py
import logging
from typing import Dict, Iterable, List, Optional

from storefront.backend.client import BackendClient
from storefront.backend.schemas import Category, Product

logger = logging.getLogger(__name__)


# All products, optionally filtered by category and name, ordered by name
async def get_all_products(
    backend: BackendClient,
    category: Optional[str] = None,
    search: str = "",
    skip: int = 0,
    limit: int = 100,
) -> List[Product]:
    params = {"select": "*", "order": "name.asc", "offset": skip, "limit": limit}
    if category:
        params["category_id"] = f"eq.{category}"
    if search:
        params["name"] = f"ilike.*{search}*"
    rows = await backend.select("products", params)
    products = [Product.model_validate(row) for row in rows]
    logger.debug("Loaded %d products (category=%s, search=%r)", len(products), category, search)
    return products


async def get_product_by_id(backend: BackendClient, product_id: str) -> Optional[Product]:
    rows = await backend.select("products", {"select": "*", "id": f"eq.{product_id}"})
    if not rows:
        return None
    return Product.model_validate(rows[0])


async def get_products_by_ids(backend: BackendClient, product_ids: Iterable[str]) -> Dict[str, Product]:
    """Current records for the given ids, keyed by id; unknown ids are left out."""
    ids = list(dict.fromkeys(str(product_id) for product_id in product_ids))
    if not ids:
        return {}
    quoted = ",".join(f'"{product_id}"' for product_id in ids)
    rows = await backend.select("products", {"select": "*", "id": f"in.({quoted})"})
    products = [Product.model_validate(row) for row in rows]
    return {product.id: product for product in products}


async def get_all_categories(backend: BackendClient) -> List[Category]:
    rows = await backend.select("categories", {"select": "id,name", "order": "name.asc"})
    return [Category.model_validate(row) for row in rows]


async def get_category(backend: BackendClient, category_id: str) -> Optional[Category]:
    rows = await backend.select("categories", {"select": "id,name", "id": f"eq.{category_id}"})
    if not rows:
        return None
    return Category.model_validate(rows[0])


async def get_related_products(backend: BackendClient, product: Product, limit: int = 4) -> List[Product]:
    """Products of the same category, the product itself excluded."""
    if not product.category_id:
        return []
    products = await get_all_products(backend, category=product.category_id)
    return [p for p in products if p.id != product.id][:limit]
