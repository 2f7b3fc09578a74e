# storefront/cart/schemas.py
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from storefront.backend.schemas import RecordId


class LineItem(BaseModel):
    product_id: RecordId
    name: str
    unit_price: Decimal
    image_url: str = ""
    quantity: int = Field(ge=1)
    stock_at_add_time: int = Field(ge=0)

    model_config = ConfigDict(validate_assignment=True)

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity
