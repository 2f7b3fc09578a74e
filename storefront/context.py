# storefront/context.py
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Request
from starlette.responses import Response

from storefront.backend.auth import get_session
from storefront.backend.client import BackendClient
from storefront.backend.schemas import User
from storefront.cart.checkout import CheckoutSubmitter
from storefront.cart.render import CartRenderer
from storefront.cart.storage import CookieStorage
from storefront.cart.store import CartStore
from storefront.config import Settings, settings as default_settings
from storefront.notifications import Notifier
from storefront.recently_viewed import RecentlyViewed

TOKEN_COOKIE = "access_token"


@dataclass
class ShopContext:
    """Per-request shop state handed to the page handlers."""

    settings: Settings
    backend: BackendClient
    storage: CookieStorage
    cart: CartStore
    renderer: CartRenderer
    recently_viewed: RecentlyViewed
    notifier: Notifier
    token: Optional[str]
    user: Optional[User]

    def checkout(self) -> CheckoutSubmitter:
        # A fresh submitter per request, so its in-flight guard never spans two requests
        return CheckoutSubmitter(
            self.cart,
            self.backend,
            shipping_fee=self.settings.shipping_fee,
            revalidate_stock=self.settings.checkout_revalidate_stock,
        )

    def finish(self, response: Response) -> Response:
        """Write pending storage changes onto the outgoing response."""
        self.renderer.close()
        return self.storage.apply(response)


def get_settings() -> Settings:
    return default_settings


def get_backend(request: Request) -> BackendClient:
    return request.app.state.backend


def get_shop(
    request: Request,
    backend: BackendClient = Depends(get_backend),
    settings: Settings = Depends(get_settings),
) -> ShopContext:
    storage = CookieStorage(request.cookies)
    cart = CartStore(storage, key=settings.cart_storage_key)
    token = request.cookies.get(TOKEN_COOKIE)
    return ShopContext(
        settings=settings,
        backend=backend,
        storage=storage,
        cart=cart,
        renderer=CartRenderer(cart, settings.shipping_fee, settings.currency_sign),
        recently_viewed=RecentlyViewed(storage, key=settings.recently_viewed_key),
        notifier=Notifier(storage),
        token=token,
        user=get_session(token, settings.backend_jwt_secret),
    )
