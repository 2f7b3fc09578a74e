# storefront/backend/auth.py
import logging
import re
from typing import Optional
from urllib.parse import urlparse

import jwt

from storefront.backend.client import BackendClient
from storefront.backend.schemas import Session, User
from storefront.errors import BackendError

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
AUDIENCE = "authenticated"


def decode_access_token(token: str, secret: str = "") -> dict:
    """Decode a session token; the signature is checked only when the project secret is known."""
    try:
        if secret:
            return jwt.decode(token, secret, algorithms=[ALGORITHM], audience=AUDIENCE)
        return jwt.decode(token, options={"verify_signature": False, "verify_exp": True})
    except jwt.ExpiredSignatureError:
        raise BackendError("Session has expired", status_code=401)
    except jwt.InvalidTokenError:
        raise BackendError("Invalid session token", status_code=401)


def get_session(token: Optional[str], secret: str = "") -> Optional[User]:
    """Current user from the stored access token, or None when signed out."""
    if not token:
        return None
    try:
        claims = decode_access_token(token, secret)
    except BackendError as e:
        logger.debug("Ignoring stored session: %s", e)
        return None
    if not claims.get("sub"):
        return None
    return User(
        id=claims["sub"],
        email=claims.get("email"),
        user_metadata=claims.get("user_metadata") or {},
    )


async def sign_in(backend: BackendClient, email: str, password: str) -> Session:
    payload = await backend.request(
        "POST",
        "/auth/v1/token",
        params={"grant_type": "password"},
        json={"email": email, "password": password},
    )
    session = Session.model_validate(payload)
    logger.info("User %s signed in", session.user.id)
    return session


async def sign_up(backend: BackendClient, email: str, password: str, metadata: Optional[dict] = None) -> User:
    payload = await backend.request(
        "POST",
        "/auth/v1/signup",
        json={"email": email, "password": password, "data": metadata or {}},
    )
    # With email confirmation enabled the service answers with the bare user
    user = User.model_validate(payload.get("user") or payload)
    logger.info("User %s signed up", user.id)
    return user


async def sign_out(backend: BackendClient, token: str) -> None:
    await backend.request("POST", "/auth/v1/logout", token=token)


async def request_password_reset(backend: BackendClient, email: str, redirect_to: str) -> None:
    await backend.request(
        "POST",
        "/auth/v1/recover",
        params={"redirect_to": redirect_to},
        json={"email": email},
    )


def validate_registration(password: str, confirm_password: str, terms_accepted: bool) -> Optional[str]:
    if password != confirm_password:
        return "Passwords do not match"
    if not terms_accepted:
        return "Please accept the terms of use"
    return None


def password_strength(password: str) -> str:
    score = 0
    if len(password) >= 8:
        score += 1
    if re.search(r"[a-z]", password):
        score += 1
    if re.search(r"[A-Z]", password):
        score += 1
    if re.search(r"[0-9]", password):
        score += 1
    if re.search(r"[^a-zA-Z0-9]", password):
        score += 1

    if score <= 2:
        return "weak"
    if score <= 4:
        return "medium"
    return "strong"


def user_initials(user: Optional[User]) -> str:
    if user is None:
        return "U"
    first = user.user_metadata.get("first_name")
    last = user.user_metadata.get("last_name")
    if first and last:
        return f"{first[0]}{last[0]}".upper()
    if user.email:
        return user.email[0].upper()
    return "U"


def checkout_prefill(user: Optional[User]) -> dict:
    if user is None:
        return {}
    return {
        "email": user.email or "",
        "first_name": user.user_metadata.get("first_name", ""),
        "last_name": user.user_metadata.get("last_name", ""),
    }


def _is_local_path(url: str) -> bool:
    parsed = urlparse(url)
    return not parsed.scheme and not parsed.netloc and url.startswith("/")


def redirect_target(redirect: Optional[str], referrer: Optional[str]) -> str:
    """Where to send the user after signing in."""
    if redirect and _is_local_path(redirect):
        return redirect
    if referrer and "login" not in referrer and "signup" not in referrer:
        parsed = urlparse(referrer)
        if parsed.path.startswith("/"):
            return parsed.path + (f"?{parsed.query}" if parsed.query else "")
    return "/"
