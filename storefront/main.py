# storefront/main.py
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator, Optional

from fastapi import Depends, FastAPI, Form, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from pydantic import ValidationError

from storefront.backend import auth, catalog
from storefront.backend.client import BackendClient
from storefront.backend.schemas import ShippingDetails
from storefront.cart.checkout import EMPTY_CART_MESSAGE
from storefront.cart.render import format_price
from storefront.cart.store import coerce_quantity
from storefront.config import settings
from storefront.context import TOKEN_COOKIE, ShopContext, get_shop
from storefront.errors import BackendError, StorageFull

logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent
templates = Jinja2Templates(directory=str(BASE_DIR / "templates"))

RECENTLY_VIEWED_SHOWN = 4


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    setup_logging(settings.log_level)
    app.state.backend = BackendClient(
        settings.backend_url, settings.backend_anon_key, timeout=settings.backend_timeout
    )
    logger.info("Storefront started against %s", settings.backend_url)
    yield
    await app.state.backend.aclose()


app = FastAPI(lifespan=lifespan)


def _local_path(url: Optional[str], default: str) -> str:
    if url and url.startswith("/") and not url.startswith("//"):
        return url
    return default


def _redirect(shop: ShopContext, url: str) -> RedirectResponse:
    return shop.finish(RedirectResponse(url=url, status_code=303))


async def _render(shop: ShopContext, request: Request, name: str, ctx: dict, status_code: int = 200):
    try:
        categories = await catalog.get_all_categories(shop.backend)
    except BackendError:
        categories = []
    base = {
        "user": shop.user,
        "initials": auth.user_initials(shop.user),
        "badge": shop.renderer.badge,
        "notification": shop.notifier.pop(),
        "footer_categories": categories,
        "price": lambda amount: format_price(amount, shop.settings.currency_sign),
    }
    base.update(ctx)
    return shop.finish(templates.TemplateResponse(request, name, base, status_code=status_code))


@app.get("/", response_class=HTMLResponse)
async def index(
    request: Request,
    category: Optional[str] = None,
    search: str = "",
    shop: ShopContext = Depends(get_shop),
):
    try:
        products = await catalog.get_all_products(shop.backend, category=category, search=search)
    except BackendError as e:
        shop.notifier.error(f"Could not load products: {e}")
        products = []
    return await _render(
        shop, request, "index.html", {"products": products, "category": category, "search": search}
    )


@app.get("/product", response_class=HTMLResponse)
async def product_detail(request: Request, id: Optional[str] = None, shop: ShopContext = Depends(get_shop)):
    if not id:
        return await _render(shop, request, "product.html", {"error": "No product specified"}, 404)
    try:
        product = await catalog.get_product_by_id(shop.backend, id)
        if product is None:
            return await _render(shop, request, "product.html", {"error": "Product not found"}, 404)

        category_name = "Uncategorized"
        if product.category_id:
            category = await catalog.get_category(shop.backend, product.category_id)
            if category:
                category_name = category.name
        related = await catalog.get_related_products(shop.backend, product)
    except BackendError as e:
        logger.warning("Product page %s failed: %s", id, e)
        return await _render(shop, request, "product.html", {"error": "Error while loading the product"}, 502)

    shop.recently_viewed.remember(product.id)
    return await _render(
        shop,
        request,
        "product.html",
        {"product": product, "category_name": category_name, "related": related},
    )


@app.get("/cart", response_class=HTMLResponse)
async def cart_page(request: Request, shop: ShopContext = Depends(get_shop)):
    recent = []
    if not shop.cart.is_empty():
        for product_id in shop.recently_viewed.ids()[:RECENTLY_VIEWED_SHOWN]:
            try:
                product = await catalog.get_product_by_id(shop.backend, product_id)
            except BackendError as e:
                logger.warning("Recently viewed products unavailable: %s", e)
                break
            if product:
                recent.append(product)
    return await _render(
        shop,
        request,
        "cart.html",
        {"view": shop.renderer.view, "rows_html": shop.renderer.rows_html(), "recent": recent},
    )


@app.get("/api/cart")
async def cart_json(shop: ShopContext = Depends(get_shop)):
    view = shop.renderer.view
    payload = {
        "items": [item.model_dump(mode="json") for item in shop.cart.items],
        "count": view.badge,
        "subtotal": str(view.summary.subtotal),
        "shipping": str(view.summary.shipping),
        "total": str(view.summary.total),
    }
    return shop.finish(JSONResponse(jsonable_encoder(payload)))


@app.post("/cart/add")
async def cart_add(
    product_id: str = Form(...),
    quantity: str = Form("1"),
    next: Optional[str] = Form(None),
    shop: ShopContext = Depends(get_shop),
):
    target = _local_path(next, "/cart")
    try:
        product = await catalog.get_product_by_id(shop.backend, product_id)
    except BackendError as e:
        shop.notifier.error(e.message)
        return _redirect(shop, target)

    if product is None:
        shop.notifier.error("Product not found")
    elif product.stock <= 0:
        shop.notifier.error("Out of stock")
    else:
        try:
            shop.cart.add_product(product, coerce_quantity(quantity, product.stock))
        except StorageFull as e:
            shop.notifier.error(e.message)
        else:
            shop.notifier.push("Product added to cart!")
    return _redirect(shop, target)


@app.post("/cart/update")
async def cart_update(
    product_id: str = Form(...),
    quantity: str = Form(""),
    action: str = Form(""),
    shop: ShopContext = Depends(get_shop),
):
    item = next((i for i in shop.cart.items if i.product_id == product_id), None)
    if item is None:
        return _redirect(shop, "/cart")

    if action == "increase":
        new_quantity = item.quantity + 1
    elif action == "decrease":
        new_quantity = item.quantity - 1
    else:
        new_quantity = coerce_quantity(quantity, item.stock_at_add_time)
    try:
        shop.cart.update_quantity(product_id, new_quantity)
    except StorageFull as e:
        shop.notifier.error(e.message)
    return _redirect(shop, "/cart")


@app.post("/cart/remove")
async def cart_remove(product_id: str = Form(...), shop: ShopContext = Depends(get_shop)):
    shop.cart.remove_product(product_id)
    return _redirect(shop, "/cart")


@app.post("/cart/clear")
async def cart_clear(shop: ShopContext = Depends(get_shop)):
    shop.cart.clear()
    return _redirect(shop, "/cart")


@app.get("/checkout", response_class=HTMLResponse)
async def checkout_page(request: Request, shop: ShopContext = Depends(get_shop)):
    if shop.cart.is_empty():
        shop.notifier.error(EMPTY_CART_MESSAGE)
        return _redirect(shop, "/cart")
    return await _render(
        shop,
        request,
        "checkout.html",
        {"view": shop.renderer.view, "prefill": auth.checkout_prefill(shop.user)},
    )


@app.post("/checkout")
async def checkout_submit(
    email: str = Form(""),
    first_name: str = Form(""),
    last_name: str = Form(""),
    phone: str = Form(""),
    street: str = Form(""),
    postal_code: str = Form(""),
    city: str = Form(""),
    payment_method: str = Form("card"),
    shop: ShopContext = Depends(get_shop),
):
    fields = {
        "email": email,
        "first_name": first_name,
        "last_name": last_name,
        "street": street,
        "postal_code": postal_code,
        "city": city,
    }
    missing = [name for name, value in fields.items() if not value.strip()]
    if missing:
        shop.notifier.error("Please fill in: " + ", ".join(missing))
        return _redirect(shop, "/checkout")
    try:
        form = ShippingDetails(phone=phone, payment_method=payment_method, **fields)
    except ValidationError:
        shop.notifier.error("Invalid shipping details")
        return _redirect(shop, "/checkout")

    result = await shop.checkout().submit(form, user=shop.user, token=shop.token)
    if result.ok:
        shop.notifier.push(f"Order placed! Order number: {result.order_id}")
        return _redirect(shop, "/")
    shop.notifier.error(f"Order failed: {result.error}")
    return _redirect(shop, "/cart" if shop.cart.is_empty() else "/checkout")


@app.get("/login", response_class=HTMLResponse)
async def login_page(request: Request, redirect: Optional[str] = None, shop: ShopContext = Depends(get_shop)):
    return await _render(shop, request, "login.html", {"redirect": redirect or ""})


@app.post("/login")
async def login_action(
    request: Request,
    email: str = Form(...),
    password: str = Form(...),
    redirect: Optional[str] = Form(None),
    shop: ShopContext = Depends(get_shop),
):
    try:
        session = await auth.sign_in(shop.backend, email, password)
    except BackendError as e:
        shop.notifier.error(e.message)
        return _redirect(shop, "/login")

    shop.notifier.push("Signed in successfully!")
    response = RedirectResponse(url=auth.redirect_target(redirect, request.headers.get("referer")), status_code=303)
    response.set_cookie(
        key=TOKEN_COOKIE, value=session.access_token, max_age=session.expires_in, httponly=True, samesite="lax"
    )
    return shop.finish(response)


@app.get("/signup", response_class=HTMLResponse)
async def signup_page(request: Request, shop: ShopContext = Depends(get_shop)):
    return await _render(shop, request, "signup.html", {})


@app.post("/signup")
async def signup_action(
    email: str = Form(...),
    password: str = Form(...),
    confirm_password: str = Form(...),
    first_name: str = Form(""),
    last_name: str = Form(""),
    terms: Optional[str] = Form(None),
    newsletter: Optional[str] = Form(None),
    shop: ShopContext = Depends(get_shop),
):
    problem = auth.validate_registration(password, confirm_password, bool(terms))
    if problem:
        shop.notifier.error(problem)
        return _redirect(shop, "/signup")

    metadata = {"first_name": first_name, "last_name": last_name, "newsletter_subscribed": bool(newsletter)}
    try:
        await auth.sign_up(shop.backend, email, password, metadata)
    except BackendError as e:
        shop.notifier.error(e.message)
        return _redirect(shop, "/signup")

    shop.notifier.push("Registration successful! Check your email to confirm your account.")
    return _redirect(shop, "/login")


@app.post("/api/password-strength")
async def password_strength(password: str = Form("")):
    return {"strength": auth.password_strength(password)}


@app.post("/password-reset")
async def password_reset(request: Request, email: str = Form(...), shop: ShopContext = Depends(get_shop)):
    try:
        await auth.request_password_reset(shop.backend, email, str(request.url_for("login_page")))
    except BackendError as e:
        shop.notifier.error(e.message)
        return _redirect(shop, "/login")
    shop.notifier.push("Reset instructions sent to your email")
    return _redirect(shop, "/login")


@app.get("/logout")
async def logout(shop: ShopContext = Depends(get_shop)):
    if shop.token:
        try:
            await auth.sign_out(shop.backend, shop.token)
        except BackendError as e:
            # The local session is dropped either way
            logger.warning("Sign-out call failed: %s", e)
    shop.notifier.push("Signed out")
    response = RedirectResponse(url="/", status_code=303)
    response.delete_cookie(TOKEN_COOKIE)
    return shop.finish(response)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "storefront running"}
