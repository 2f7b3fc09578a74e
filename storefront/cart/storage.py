# storefront/cart/storage.py
import base64
import binascii
import zlib
from typing import Dict, List, Mapping, Optional, Protocol, Set

from starlette.responses import Response

from storefront.errors import StorageFull

COOKIE_MAX_AGE = 60 * 60 * 24 * 365
# Browsers drop any cookie over 4096 bytes; the rest is left for name and attributes
CHUNK_SIZE = 3800
MAX_CHUNKS = 3


class Storage(Protocol):
    """String-keyed entries kept on the shopper's device.

    ``set`` raises ``StorageFull`` when the value cannot be kept.
    """

    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


class MemoryStorage:
    def __init__(self, entries: Optional[Dict[str, str]] = None):
        self.entries: Dict[str, str] = dict(entries or {})

    def get(self, key: str) -> Optional[str]:
        return self.entries.get(key)

    def set(self, key: str, value: str) -> None:
        self.entries[key] = value

    def remove(self, key: str) -> None:
        self.entries.pop(key, None)


# Compressed, then base64 without padding so the value stays a plain cookie token
def encode_value(value: str) -> str:
    return base64.urlsafe_b64encode(zlib.compress(value.encode())).decode().rstrip("=")


def decode_value(value: str) -> Optional[str]:
    value = value.strip('"')
    try:
        raw = base64.urlsafe_b64decode((value + "=" * (-len(value) % 4)).encode())
        return zlib.decompress(raw).decode()
    except (binascii.Error, zlib.error, UnicodeDecodeError, ValueError):
        return None


def chunk_name(key: str, index: int) -> str:
    return key if index == 0 else f"{key}.{index}"


class CookieStorage:
    """Storage view over the request cookies.

    Reads come from the incoming cookies, writes are buffered and land on
    the response in ``apply``. A value longer than one cookie is split over
    ``key``, ``key.1``, ``key.2``... up to ``max_chunks`` cookies.
    """

    def __init__(self, cookies: Mapping[str, str], max_chunks: int = MAX_CHUNKS):
        self._cookies = cookies
        self.max_chunks = max_chunks
        self._values: Dict[str, str] = {}
        self._encoded: Dict[str, str] = {}
        self._written: Set[str] = set()
        self._removed: Set[str] = set()

    def _read_cookie(self, key: str) -> Optional[str]:
        parts = []
        for index in range(self.max_chunks):
            part = self._cookies.get(chunk_name(key, index))
            if part is None:
                break
            parts.append(part.strip('"'))
        if not parts:
            return None
        return decode_value("".join(parts))

    def get(self, key: str) -> Optional[str]:
        if key in self._removed:
            return None
        if key not in self._values:
            decoded = self._read_cookie(key)
            if decoded is None:
                return None
            self._values[key] = decoded
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        encoded = encode_value(value)
        if len(encoded) > CHUNK_SIZE * self.max_chunks:
            raise StorageFull()
        self._values[key] = value
        self._encoded[key] = encoded
        self._written.add(key)
        self._removed.discard(key)

    def remove(self, key: str) -> None:
        self._values.pop(key, None)
        self._encoded.pop(key, None)
        self._removed.add(key)
        self._written.discard(key)

    def _stale_chunks(self, key: str, keep: int) -> List[str]:
        names = [chunk_name(key, index) for index in range(keep, self.max_chunks)]
        return [name for name in names if name in self._cookies]

    def apply(self, response: Response) -> Response:
        for key in self._written:
            encoded = self._encoded[key]
            chunks = [encoded[i:i + CHUNK_SIZE] for i in range(0, len(encoded), CHUNK_SIZE)]
            for index, chunk in enumerate(chunks):
                response.set_cookie(
                    chunk_name(key, index), chunk, max_age=COOKIE_MAX_AGE, httponly=True, samesite="lax"
                )
            for name in self._stale_chunks(key, len(chunks)):
                response.delete_cookie(name)
        for key in self._removed:
            response.delete_cookie(key)
            for name in self._stale_chunks(key, 1):
                response.delete_cookie(name)
        return response
