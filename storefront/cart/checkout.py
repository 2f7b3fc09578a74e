# storefront/cart/checkout.py
import enum
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Mapping, Optional

from storefront.backend import catalog, orders
from storefront.backend.client import BackendClient
from storefront.backend.schemas import OrderLine, OrderRequest, Product, ShippingDetails, User
from storefront.cart.store import CartStore
from storefront.errors import BackendError, CheckoutInProgress

logger = logging.getLogger(__name__)

EMPTY_CART_MESSAGE = "Your cart is empty"


class CheckoutState(str, enum.Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass(frozen=True)
class CheckoutResult:
    state: CheckoutState
    order_id: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.state == CheckoutState.SUCCESS

class CheckoutSubmitter:
    """Turns the cart plus the shipping form into one order-creation request.

    Prices are read from the catalog at submit time; the amounts kept in the
    cart are only what the shopper was shown. The cart is cleared only after
    the backend confirmed the order; a failed attempt leaves it untouched.
    Nothing is retried.

    The in-flight guard is per instance: it only rejects a second ``submit``
    on a submitter that is kept and reused while the first one is pending.
    """

    def __init__(
        self,
        store: CartStore,
        backend: BackendClient,
        shipping_fee: Decimal = Decimal("5.99"),
        revalidate_stock: bool = False,
    ):
        self.store = store
        self.backend = backend
        self.shipping_fee = shipping_fee
        self.revalidate_stock = revalidate_stock
        self.state = CheckoutState.IDLE

    def build_order(
        self, form: ShippingDetails, user: Optional[User] = None, products: Optional[Mapping[str, Product]] = None
    ) -> OrderRequest:
        """Order for the current cart, priced from ``products`` when given."""
        lines = []
        for item in self.store.items:
            unit_price = products[item.product_id].price if products else item.unit_price
            if unit_price != item.unit_price:
                logger.info("Price of %s changed from %s to %s", item.product_id, item.unit_price, unit_price)
            lines.append(OrderLine(product_id=item.product_id, quantity=item.quantity, unit_price=unit_price))

        subtotal = sum((line.unit_price * line.quantity for line in lines), Decimal(0))
        shipping = self.shipping_fee if lines else Decimal(0)
        return OrderRequest(
            user_id=user.id if user else None,
            customer_name=form.full_name,
            email=form.email,
            phone=form.phone,
            payment_method=form.payment_method,
            shipping_address={"street": form.street, "postal_code": form.postal_code, "city": form.city},
            items=lines,
            subtotal=subtotal,
            shipping_cost=shipping,
            total_amount=subtotal + shipping,
        )

    def _check_lines(self, products: Mapping[str, Product]) -> Optional[str]:
        for item in self.store.items:
            product = products.get(item.product_id)
            if product is None:
                return f"{item.name} is no longer available"
            if self.revalidate_stock and product.stock < item.quantity:
                return f"Only {product.stock} left in stock for {item.name}"
        return None

    def _finish(self, state: CheckoutState, order_id: Optional[str] = None, error: Optional[str] = None):
        self.state = CheckoutState.IDLE
        return CheckoutResult(state=state, order_id=order_id, error=error)

    async def submit(
        self, form: ShippingDetails, user: Optional[User] = None, token: Optional[str] = None
    ) -> CheckoutResult:
        if self.state == CheckoutState.SUBMITTING:
            raise CheckoutInProgress("Order is already being submitted")

        if self.store.is_empty():
            return self._finish(CheckoutState.FAILED, error=EMPTY_CART_MESSAGE)

        self.state = CheckoutState.SUBMITTING
        try:
            products = await catalog.get_products_by_ids(
                self.backend, [item.product_id for item in self.store.items]
            )
            problem = self._check_lines(products)
            if problem:
                logger.info("Checkout refused: %s", problem)
                return self._finish(CheckoutState.FAILED, error=problem)

            order = self.build_order(form, user, products)
            order_id = await orders.create_order(self.backend, order, token=token)
        except BackendError as e:
            logger.warning("Checkout failed, cart kept: %s", e)
            return self._finish(CheckoutState.FAILED, error=e.message)
        except BaseException:
            self.state = CheckoutState.IDLE
            raise

        self.store.clear()
        logger.info("Checkout succeeded, order %s", order_id)
        return self._finish(CheckoutState.SUCCESS, order_id=order_id)
