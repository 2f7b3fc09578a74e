from __future__ import annotations

import json
import time
from dataclasses import replace
from typing import Any, Iterator

import httpx
import jwt
import pytest
from fastapi.testclient import TestClient

from storefront.backend.client import BackendClient
from storefront.backend.schemas import Product
from storefront.cart.storage import MemoryStorage
from storefront.cart.store import CartStore
from storefront.config import settings
from storefront.context import get_backend, get_settings
from storefront.main import app

JWT_SECRET = "storefront-test-secret-0123456789abcdef"


def make_token(sub: str = "user-1", email: str = "ada@example.com", expires_in: int = 3600, **metadata) -> str:
    claims = {
        "sub": sub,
        "email": email,
        "aud": "authenticated",
        "exp": int(time.time()) + expires_in,
        "user_metadata": metadata,
    }
    return jwt.encode(claims, JWT_SECRET, algorithm="HS256")


def _matches(row: dict, params: httpx.QueryParams) -> bool:
    for field, condition in params.multi_items():
        if field in ("select", "order", "offset", "limit"):
            continue
        op, _, value = condition.partition(".")
        if op == "eq" and str(row.get(field)) != value:
            return False
        if op == "ilike" and value.strip("*").lower() not in str(row.get(field, "")).lower():
            return False
        if op == "in" and str(row.get(field)) not in [v.strip('"') for v in value.strip("()").split(",")]:
            return False
    return True


class FakeBackend:
    """In-memory stand-in for the hosted REST and auth endpoints."""

    def __init__(self) -> None:
        self.products: list[dict[str, Any]] = [
            {"id": "p1", "name": "Desk Lamp", "price": 10.0, "image_url": "/img/lamp.jpg",
             "stock": 5, "description": "Warm light", "category_id": "c1"},
            {"id": "p2", "name": "Notebook", "price": 5.0, "image_url": "/img/notebook.jpg",
             "stock": 3, "description": None, "category_id": "c2"},
            {"id": "p3", "name": "Floor Lamp", "price": 42.5, "image_url": "/img/floor.jpg",
             "stock": 0, "description": None, "category_id": "c1"},
        ]
        self.categories = [{"id": "c1", "name": "Lighting"}, {"id": "c2", "name": "Stationery"}]
        self.orders: list[dict[str, Any]] = []
        self.fail_orders = False
        self.calls: list[tuple[str, str]] = []

    def _json(self, request: httpx.Request) -> dict:
        return json.loads(request.content or b"{}")

    def handle(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.calls.append((request.method, path))

        if path == "/rest/v1/products":
            rows = [p for p in self.products if _matches(p, request.url.params)]
            return httpx.Response(200, json=sorted(rows, key=lambda p: p["name"]))
        if path == "/rest/v1/categories":
            return httpx.Response(200, json=[c for c in self.categories if _matches(c, request.url.params)])
        if path == "/rest/v1/rpc/create_order":
            if self.fail_orders:
                return httpx.Response(400, json={"message": "insert violates constraint"})
            self.orders.append(self._json(request)["order"])
            return httpx.Response(200, json=f"order-{len(self.orders)}")

        if path == "/auth/v1/token":
            body = self._json(request)
            if body.get("password") != "correct-horse":
                return httpx.Response(400, json={"error_description": "Invalid login credentials"})
            return httpx.Response(200, json={
                "access_token": make_token(email=body["email"], first_name="Ada", last_name="Lovelace"),
                "refresh_token": "refresh",
                "expires_in": 3600,
                "user": {"id": "user-1", "email": body["email"]},
            })
        if path == "/auth/v1/signup":
            body = self._json(request)
            return httpx.Response(200, json={"id": "user-2", "email": body["email"], "user_metadata": body["data"]})
        if path == "/auth/v1/logout":
            return httpx.Response(204)
        if path == "/auth/v1/recover":
            return httpx.Response(200, json={})
        return httpx.Response(404, json={"message": f"no route {path}"})


@pytest.fixture()
def fake_backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture()
def backend(fake_backend: FakeBackend) -> BackendClient:
    return BackendClient("http://backend.test", "anon-key", transport=httpx.MockTransport(fake_backend.handle))


@pytest.fixture()
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture()
def store(storage: MemoryStorage) -> CartStore:
    return CartStore(storage)


def _product(id: str = "p1", price: float = 10.0, stock: int = 5, name: str = "Desk Lamp") -> Product:
    return Product(id=id, name=name, price=price, stock=stock, image_url=f"/img/{id}.jpg")


@pytest.fixture()
def make_product():
    return _product


@pytest.fixture()
def token_factory():
    return make_token


@pytest.fixture()
def jwt_secret() -> str:
    return JWT_SECRET


@pytest.fixture()
def client(backend: BackendClient) -> Iterator[TestClient]:
    app.dependency_overrides[get_backend] = lambda: backend
    app.dependency_overrides[get_settings] = lambda: replace(settings, backend_jwt_secret=JWT_SECRET)
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def _response_cookies(response) -> dict:
    """Cookie name -> value for every Set-Cookie header on a response."""
    cookies = {}
    for name, value in response.raw_headers:
        if name == b"set-cookie":
            key, _, rest = value.decode().partition("=")
            cookies[key] = rest.split(";", 1)[0]
    return cookies


@pytest.fixture()
def response_cookies():
    return _response_cookies
