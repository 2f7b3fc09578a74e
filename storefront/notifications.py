# storefront/notifications.py
import json
from dataclasses import dataclass
from typing import Optional

from storefront.cart.storage import Storage

NOTIFICATION_KEY = "eshop_notification"


@dataclass(frozen=True)
class Notification:
    message: str
    kind: str = "success"


class Notifier:
    """One transient message, carried over a redirect and shown once."""

    def __init__(self, storage: Storage, key: str = NOTIFICATION_KEY):
        self.storage = storage
        self.key = key

    def push(self, message: str, kind: str = "success") -> None:
        self.storage.set(self.key, json.dumps({"message": message, "kind": kind}))

    def error(self, message: str) -> None:
        self.push(message, "error")

    def pop(self) -> Optional[Notification]:
        raw = self.storage.get(self.key)
        if raw is None:
            return None
        self.storage.remove(self.key)
        try:
            data = json.loads(raw)
            return Notification(message=str(data["message"]), kind=str(data.get("kind", "success")))
        except (ValueError, KeyError, TypeError):
            return None
