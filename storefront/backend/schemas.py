# storefront/backend/schemas.py
from decimal import Decimal
from typing import Annotated, List, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field

# Backend ids are uuids or integers depending on the table; the client treats them as opaque strings
RecordId = Annotated[str, BeforeValidator(str)]


# Product record as stored in the "products" table
class Product(BaseModel):
    id: RecordId
    name: str
    price: Decimal
    image_url: str = ""
    stock: int = 0
    description: Optional[str] = None
    category_id: Optional[RecordId] = None

    model_config = ConfigDict(extra="ignore")


class Category(BaseModel):
    id: RecordId
    name: str

    model_config = ConfigDict(extra="ignore")


class User(BaseModel):
    id: RecordId
    email: Optional[str] = None
    user_metadata: dict = Field(default_factory=dict)

    model_config = ConfigDict(extra="ignore")


class Session(BaseModel):
    access_token: str
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None
    user: User


# Checkout form as entered by the buyer
class ShippingDetails(BaseModel):
    email: str
    first_name: str
    last_name: str
    phone: str = ""
    street: str
    postal_code: str
    city: str
    payment_method: str = "card"

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class OrderLine(BaseModel):
    product_id: RecordId
    quantity: int
    unit_price: Decimal


class OrderRequest(BaseModel):
    user_id: Optional[RecordId] = None
    customer_name: str
    email: str
    phone: str = ""
    payment_method: str
    shipping_address: dict
    items: List[OrderLine]
    subtotal: Decimal
    shipping_cost: Decimal
    total_amount: Decimal
