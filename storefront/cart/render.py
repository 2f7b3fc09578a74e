# storefront/cart/render.py
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Tuple

from jinja2 import Environment, PackageLoader, select_autoescape

from storefront.cart.schemas import LineItem
from storefront.cart.store import CartStore

_env = Environment(loader=PackageLoader("storefront", "templates"), autoescape=select_autoescape())

CENT = Decimal("0.01")


def format_price(amount, currency_sign: str = "€") -> str:
    value = Decimal(str(amount)).quantize(CENT, rounding=ROUND_HALF_UP)
    return f"{value} {currency_sign}"


@dataclass(frozen=True)
class CartRow:
    product_id: str
    name: str
    image_url: str
    unit_price: Decimal
    quantity: int
    max_quantity: int
    line_total: Decimal

    @property
    def can_decrease(self) -> bool:
        return self.quantity > 1

    @property
    def can_increase(self) -> bool:
        return self.quantity < self.max_quantity


@dataclass(frozen=True)
class CartSummary:
    subtotal: Decimal
    shipping: Decimal
    total: Decimal


@dataclass(frozen=True)
class CartView:
    rows: Tuple[CartRow, ...]
    summary: CartSummary
    badge: int

    @property
    def is_empty(self) -> bool:
        return not self.rows


def project_cart(items: Iterable[LineItem], shipping_fee: Decimal = Decimal("5.99")) -> CartView:
    rows = tuple(
        CartRow(
            product_id=item.product_id,
            name=item.name,
            image_url=item.image_url,
            unit_price=item.unit_price,
            quantity=item.quantity,
            max_quantity=item.stock_at_add_time,
            line_total=item.line_total,
        )
        for item in items
    )
    subtotal = sum((row.line_total for row in rows), Decimal(0))
    shipping = shipping_fee if rows else Decimal(0)
    return CartView(
        rows=rows,
        summary=CartSummary(subtotal=subtotal, shipping=shipping, total=subtotal + shipping),
        badge=sum(row.quantity for row in rows),
    )


class CartRenderer:
    """Keeps a full projection of the store, rebuilt on every change."""

    def __init__(self, store: CartStore, shipping_fee: Decimal = Decimal("5.99"), currency_sign: str = "€"):
        self.shipping_fee = shipping_fee
        self.currency_sign = currency_sign
        self.view = project_cart(store.items, shipping_fee)
        self._unsubscribe = store.subscribe(self._refresh)

    def _refresh(self, store: CartStore) -> None:
        self.view = project_cart(store.items, self.shipping_fee)

    @property
    def badge(self) -> int:
        return self.view.badge

    def rows_html(self) -> str:
        template = _env.get_template("_cart_rows.html")
        return template.render(rows=self.view.rows, price=self.price)

    def price(self, amount) -> str:
        return format_price(amount, self.currency_sign)

    def close(self) -> None:
        self._unsubscribe()
