from __future__ import annotations

import hashlib
import json

import pytest
from starlette.responses import Response

from storefront.backend.schemas import Product
from storefront.cart.storage import CookieStorage, MemoryStorage, decode_value, encode_value
from storefront.cart.store import CartStore
from storefront.errors import StorageFull
from storefront.notifications import Notifier
from storefront.recently_viewed import MAX_REMEMBERED, RecentlyViewed

BROWSER_COOKIE_LIMIT = 4096


def bulky_product(n: int) -> Product:
    """A product with realistic, poorly compressible id and image url."""
    return Product(
        id=hashlib.sha256(f"id-{n}".encode()).hexdigest(),
        name=f"Handmade ceramic mug no. {n}",
        price="19.99",
        stock=10,
        image_url="https://cdn.example.com/products/" + hashlib.sha256(f"img-{n}".encode()).hexdigest() + ".jpg",
    )


def set_cookie_headers(response: Response) -> list:
    return [value for name, value in response.raw_headers if name == b"set-cookie"]


def test_cookie_storage_round_trip(make_product, response_cookies) -> None:
    storage = CookieStorage({})
    CartStore(storage).add_product(make_product("p1", stock=5), 2)

    cookies = response_cookies(storage.apply(Response()))
    reloaded = CartStore(CookieStorage(cookies))

    assert "eshop_cart" in cookies
    assert [(i.product_id, i.quantity) for i in reloaded.items] == [("p1", 2)]


def test_cookie_storage_accepts_quoted_values(response_cookies) -> None:
    storage = CookieStorage({})
    storage.set("k", '[{"a": 1}]')
    value = response_cookies(storage.apply(Response()))["k"]

    assert CookieStorage({"k": f'"{value}"'}).get("k") == '[{"a": 1}]'


def test_cookie_storage_ignores_undecodable_cookies() -> None:
    storage = CookieStorage({"eshop_cart": "__4", "session": "x"})

    assert storage.get("eshop_cart") is None
    assert CartStore(storage).items == ()


def test_cookie_storage_removal_deletes_cookie(response_cookies) -> None:
    storage = CookieStorage({"k": encode_value("value")})
    assert storage.get("k") == "value"

    storage.remove("k")
    cookies = response_cookies(storage.apply(Response()))

    assert storage.get("k") is None
    assert cookies["k"] in ("", '""')


def test_untouched_entries_are_not_rewritten(response_cookies) -> None:
    storage = CookieStorage({"k": encode_value("value")})
    storage.get("k")

    assert response_cookies(storage.apply(Response())) == {}


def test_encoding_round_trip() -> None:
    assert decode_value(encode_value("[]")) == "[]"
    assert decode_value("not a cookie") is None


def test_large_cart_is_split_over_cookies_within_browser_limit(response_cookies) -> None:
    storage = CookieStorage({})
    store = CartStore(storage)
    for n in range(60):
        store.add_product(bulky_product(n))

    response = storage.apply(Response())
    headers = set_cookie_headers(response)
    cookies = response_cookies(response)

    assert len(headers) > 1
    assert all(len(header) <= BROWSER_COOKIE_LIMIT for header in headers)
    assert "eshop_cart.1" in cookies
    assert CartStore(CookieStorage(cookies)).items == store.items


def test_shrinking_cart_drops_extra_cookies(response_cookies) -> None:
    storage = CookieStorage({})
    store = CartStore(storage)
    for n in range(60):
        store.add_product(bulky_product(n))
    cookies = response_cookies(storage.apply(Response()))

    storage = CookieStorage(cookies)
    CartStore(storage).clear()
    rewritten = response_cookies(storage.apply(Response()))

    assert rewritten["eshop_cart.1"] in ("", '""')
    assert decode_value(rewritten["eshop_cart"]) == "[]"


def test_full_storage_rejects_mutation_and_keeps_persisted_cart(response_cookies) -> None:
    storage = CookieStorage({}, max_chunks=1)
    store = CartStore(storage)
    seen = []
    store.subscribe(lambda s: seen.append(s.get_items_count()))

    with pytest.raises(StorageFull):
        for n in range(200):
            store.add_product(bulky_product(n))

    accepted = len(store.items)
    assert 0 < accepted < 200
    assert seen[-1] == accepted

    response = storage.apply(Response())
    headers = set_cookie_headers(response)
    reloaded = CartStore(CookieStorage(response_cookies(response)))
    assert len(headers) == 1 and len(headers[0]) <= BROWSER_COOKIE_LIMIT
    assert reloaded.items == store.items


def test_recently_viewed_keeps_newest_first() -> None:
    recent = RecentlyViewed(MemoryStorage())

    for product_id in ["a", "b", "a", "c"]:
        recent.remember(product_id)

    assert recent.ids() == ["c", "a", "b"]


def test_recently_viewed_is_capped() -> None:
    recent = RecentlyViewed(MemoryStorage())

    for n in range(MAX_REMEMBERED + 3):
        recent.remember(str(n))

    assert len(recent.ids()) == MAX_REMEMBERED
    assert recent.ids()[0] == str(MAX_REMEMBERED + 2)


def test_recently_viewed_tolerates_garbage() -> None:
    storage = MemoryStorage({"eshop_recently_viewed": "{broken"})

    assert RecentlyViewed(storage).ids() == []


def test_notification_is_shown_once() -> None:
    storage = MemoryStorage()
    notifier = Notifier(storage)

    notifier.error("Out of stock")
    shown = notifier.pop()

    assert shown.message == "Out of stock"
    assert shown.kind == "error"
    assert notifier.pop() is None


def test_later_notification_replaces_earlier() -> None:
    storage = MemoryStorage()
    notifier = Notifier(storage)

    notifier.push("first")
    notifier.push("second")

    assert json.loads(storage.entries["eshop_notification"])["message"] == "second"
