"""
Storefront cart store

The cart lives in an explicit CartStore object owned by the client session.
It is serialized to JSON only at its edges (to_json / from_json), e.g. when
saved to or restored from the browser's storage.
"""
from typing import List, Optional

from pydantic import BaseModel, Field

from catalog import parse_price
from orders import delivery_fee


class CartLine(BaseModel):
    product_id: str
    name: str
    price: float
    quantity: int = Field(1, ge=1)
    image: Optional[str] = None


class CartStore(BaseModel):
    items: List[CartLine] = []

    def _find(self, product_id: str) -> Optional[CartLine]:
        for line in self.items:
            if line.product_id == product_id:
                return line
        return None

    def add(self, product: dict, quantity: int = 1) -> CartLine:
        if quantity < 1:
            raise ValueError(f"quantity must be at least 1, got {quantity}")
        product_id = product.get("id") or str(product.get("_id"))
        line = self._find(product_id)
        if line:
            line.quantity += quantity
            return line
        line = CartLine(
            product_id=product_id,
            name=product.get("name", ""),
            price=parse_price(product.get("price")),
            quantity=quantity,
            image=product.get("image"),
        )
        self.items.append(line)
        return line

    def update_quantity(self, product_id: str, quantity: int) -> None:
        """Set a line's quantity; zero or less removes it."""
        if quantity <= 0:
            self.remove(product_id)
            return
        line = self._find(product_id)
        if line is None:
            raise KeyError(product_id)
        line.quantity = quantity

    def remove(self, product_id: str) -> None:
        self.items = [line for line in self.items if line.product_id != product_id]

    def clear(self) -> None:
        self.items = []

    @property
    def count(self) -> int:
        return sum(line.quantity for line in self.items)

    @property
    def subtotal(self) -> float:
        return round(sum(line.price * line.quantity for line in self.items), 3)

    @property
    def delivery_fee(self) -> float:
        return delivery_fee(self.subtotal)

    @property
    def final_total(self) -> float:
        return round(self.subtotal + self.delivery_fee, 3)

    def to_order_payload(self, customer_info: dict, payment_method: str = "COD") -> dict:
        return {
            "items": [{"product_id": line.product_id, "quantity": line.quantity} for line in self.items],
            "customer_info": customer_info,
            "payment_method": payment_method,
        }

    def to_json(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_json(cls, raw: Optional[str]) -> "CartStore":
        if not raw:
            return cls()
        return cls.model_validate_json(raw)
