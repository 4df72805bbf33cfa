"""
Draft transaction: the cart, the selected clients and the payment method
as one explicit value, built by the caller and handed to the ledger.

WHY: The POS screen used to keep these as loose UI state. Passing a single
serializable object makes the write path callable (and testable) from the
API, the CLI or a test without any UI around it.

SELECTION RULES:
- At most one primary (payer) client. Selecting a new primary replaces the
  previous one; it never produces two primaries.
- Selecting a client that is already selected is a no-op, except that
  selecting an included client as primary promotes it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from ..models.transactions import ITEM_TYPES, ITEM_TYPE_PRODUCT, PAYMENT_METHODS, PAYMENT_CASH
from ..validation import ValidationError, amount_from_payload, require_text


@dataclass
class CartItem:
    name: str
    price_cents: int
    quantity: int = 1
    type: str = ITEM_TYPE_PRODUCT
    reference_id: int | None = None  # product or service id, carried verbatim

    @property
    def line_total_cents(self) -> int:
        return self.price_cents * self.quantity

    def validate(self, position: int) -> None:
        if not self.name or not self.name.strip():
            raise ValidationError(f"items[{position}].name is required")
        if self.type not in ITEM_TYPES:
            raise ValidationError(f"items[{position}].type must be one of {list(ITEM_TYPES)}")
        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int) or self.quantity <= 0:
            raise ValidationError(f"items[{position}].quantity must be a positive integer")
        if self.price_cents <= 0:
            raise ValidationError(f"items[{position}].price must be positive")

    def to_dict(self) -> dict:
        data = {
            "name": self.name,
            "price_cents": self.price_cents,
            "quantity": self.quantity,
            "type": self.type,
        }
        if self.reference_id is not None:
            data["reference_id"] = self.reference_id
        return data

    @classmethod
    def from_dict(cls, data: Any, position: int = 0) -> "CartItem":
        if not isinstance(data, dict):
            raise ValidationError(f"items[{position}] must be an object")
        quantity = data.get("quantity", 1)
        if isinstance(quantity, str) and quantity.strip().isdigit():
            quantity = int(quantity.strip())
        return cls(
            name=require_text(data.get("name"), f"items[{position}].name", max_length=255),
            price_cents=amount_from_payload(data, "price", required=True),
            quantity=quantity,
            type=data.get("type") or ITEM_TYPE_PRODUCT,
            reference_id=data.get("reference_id") or data.get("product_id") or data.get("service_id"),
        )


@dataclass
class SelectedClient:
    client_id: int
    is_primary: bool = False


@dataclass
class DraftTransaction:
    items: list[CartItem] = field(default_factory=list)
    payment_method: str = PAYMENT_CASH
    clients: list[SelectedClient] = field(default_factory=list)
    include_vat: bool = False
    notes: str | None = None

    # ------------------------------------------------------------------
    # Cart
    # ------------------------------------------------------------------

    def add_item(
        self,
        name: str,
        price_cents: int,
        quantity: int = 1,
        type: str = ITEM_TYPE_PRODUCT,
        reference_id: int | None = None,
    ) -> CartItem:
        """Add to the cart, merging with an identical line (same name, price, type, reference)."""
        for item in self.items:
            if (item.name, item.price_cents, item.type, item.reference_id) == (name, price_cents, type, reference_id):
                item.quantity += quantity
                return item
        item = CartItem(name=name, price_cents=price_cents, quantity=quantity, type=type, reference_id=reference_id)
        self.items.append(item)
        return item

    def change_quantity(self, index: int, change: int) -> None:
        """Adjust a line's quantity; a line reaching zero leaves the cart."""
        item = self.items[index]
        item.quantity = max(0, item.quantity + change)
        if item.quantity == 0:
            del self.items[index]

    def remove_item(self, index: int) -> None:
        del self.items[index]

    @property
    def total_cents(self) -> int:
        return sum(item.line_total_cents for item in self.items)

    # ------------------------------------------------------------------
    # Clients
    # ------------------------------------------------------------------

    def select_client(self, client_id: int, primary: bool = True) -> None:
        existing = self._find(client_id)
        if primary:
            for selected in list(self.clients):
                if selected.is_primary and selected.client_id != client_id:
                    self.clients.remove(selected)
            if existing:
                existing.is_primary = True
            else:
                self.clients.append(SelectedClient(client_id=client_id, is_primary=True))
            return

        if existing:
            return
        self.clients.append(SelectedClient(client_id=client_id, is_primary=False))

    def unselect_client(self, client_id: int) -> None:
        self.clients = [c for c in self.clients if c.client_id != client_id]

    def toggle_included(self, client_id: int) -> None:
        if self._find(client_id):
            self.unselect_client(client_id)
        else:
            self.select_client(client_id, primary=False)

    def clear_clients(self) -> None:
        self.clients = []

    @property
    def primary_client_id(self) -> int | None:
        for selected in self.clients:
            if selected.is_primary:
                return selected.client_id
        return None

    @property
    def included_client_ids(self) -> list[int]:
        return [c.client_id for c in self.clients if not c.is_primary]

    def _find(self, client_id: int) -> SelectedClient | None:
        for selected in self.clients:
            if selected.client_id == client_id:
                return selected
        return None

    # ------------------------------------------------------------------
    # Validation / serialization
    # ------------------------------------------------------------------

    def validate(self) -> None:
        if not self.items:
            raise ValidationError("Cart is empty")
        for position, item in enumerate(self.items):
            item.validate(position)
        if self.payment_method not in PAYMENT_METHODS:
            raise ValidationError(f"payment_method must be one of {list(PAYMENT_METHODS)}")
        if sum(1 for c in self.clients if c.is_primary) > 1:
            raise ValidationError("Only one primary client can be selected")
        if self.clients and self.primary_client_id is None:
            raise ValidationError("Included clients require a primary (paying) client")

    def to_dict(self) -> dict:
        return {
            "items": [item.to_dict() for item in self.items],
            "payment_method": self.payment_method,
            "primary_client_id": self.primary_client_id,
            "included_client_ids": self.included_client_ids,
            "include_vat": self.include_vat,
            "notes": self.notes,
            "total_cents": self.total_cents,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "DraftTransaction":
        """Build a draft from an API payload. Shape errors raise ValidationError."""
        if not isinstance(data, dict):
            raise ValidationError("Request body must be a JSON object")

        raw_items = data.get("items")
        if raw_items is None:
            raw_items = []
        if not isinstance(raw_items, list):
            raise ValidationError("items must be a list")

        include_vat = data.get("include_vat", False)
        if include_vat is None:
            include_vat = False
        if not isinstance(include_vat, bool):
            raise ValidationError("include_vat must be true or false")

        draft = cls(
            items=[CartItem.from_dict(raw, position) for position, raw in enumerate(raw_items)],
            payment_method=data.get("payment_method") or PAYMENT_CASH,
            include_vat=include_vat,
            notes=data.get("notes"),
        )

        primary_id = data.get("primary_client_id")
        if primary_id is not None:
            draft.select_client(_client_id(primary_id, "primary_client_id"), primary=True)

        included = data.get("included_client_ids") or []
        if not isinstance(included, list):
            raise ValidationError("included_client_ids must be a list")
        for raw_id in included:
            draft.select_client(_client_id(raw_id, "included_client_ids"), primary=False)

        return draft


def _client_id(value: Any, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must contain integer client ids")
    return value
