"""Record types for the inventory ledger.

Pure data model: no I/O. Each record serializes to the same JSON shape
the stored collections and backup snapshots use (camelCase timestamps,
``buy``/``ship``/``sell`` money fields). ``from_dict()`` is lenient:
missing or garbage numbers read as 0 so one bad row never blocks a load.
"""

from __future__ import annotations

import math
import secrets
import time
from collections.abc import Container
from dataclasses import dataclass, field
from typing import Any

from twicks.constants import DEFAULT_ITEM_NAME, SoldStatus, UNKNOWN_BUYER
from twicks.errors import ValidationError

_ID_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def now_ms() -> int:
    """Current time as integer milliseconds since the epoch."""
    return int(time.time() * 1000)


def _base36(n: int) -> str:
    if n == 0:
        return "0"
    digits = []
    while n:
        n, rem = divmod(n, 36)
        digits.append(_ID_ALPHABET[rem])
    return "".join(reversed(digits))


def new_id(taken: Container[str] = ()) -> str:
    """Return a fresh record id: base-36 timestamp plus 5 random chars."""
    while True:
        candidate = _base36(now_ms()) + "".join(
            secrets.choice(_ID_ALPHABET) for _ in range(5)
        )
        if candidate not in taken:
            return candidate


def to_number(value: Any, field_name: str) -> float:
    """Coerce ``value`` to a finite float or raise ValidationError.

    Accepts ints, floats and numeric strings (commas are ignored).
    """
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field_name} must be a number.")
    if isinstance(value, str):
        value = value.replace(",", "").strip()
        if not value:
            raise ValidationError(f"{field_name} must be a number.")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field_name} must be a number.") from None
    if not math.isfinite(number):
        raise ValidationError(f"{field_name} must be a finite number.")
    return number


def safe_number(value: Any) -> float:
    """Lenient coercion used when reading stored rows: invalid -> 0."""
    try:
        return to_number(value, "value")
    except ValidationError:
        return 0.0


def _str(value: Any, default: str = "") -> str:
    return default if value is None else str(value)


def _timestamp(value: Any) -> int:
    return int(safe_number(value))


# ---------------------------------------------------------------------------
# InventoryItem
# ---------------------------------------------------------------------------


@dataclass
class InventoryItem:
    """A card bought from a seller and not yet listed."""

    id: str
    seller: str = ""
    name: str = DEFAULT_ITEM_NAME
    buy: float = 0.0
    ship: float = 0.0  # ship-in cost paid to get the item
    sell: float | None = None  # configured sell price, if any
    image: str = ""
    created_at: int = 0

    @property
    def cost(self) -> float:
        return self.buy + self.ship

    @property
    def list_price(self) -> float:
        """Price a listing created from this item starts at."""
        return self.sell if self.sell is not None else self.cost

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "seller": self.seller,
            "name": self.name,
            "buy": self.buy,
            "ship": self.ship,
            "sell": self.sell,
            "image": self.image,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> InventoryItem:
        sell = data.get("sell")
        return cls(
            id=_str(data.get("id")),
            seller=_str(data.get("seller")),
            name=_str(data.get("name"), DEFAULT_ITEM_NAME) or DEFAULT_ITEM_NAME,
            buy=safe_number(data.get("buy", 0)),
            ship=safe_number(data.get("ship", 0)),
            sell=None if sell is None else safe_number(sell),
            image=_str(data.get("image")),
            created_at=_timestamp(data.get("createdAt", 0)),
        )


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------


@dataclass
class Listing:
    """An item offered for sale, carrying its acquisition cost forward."""

    id: str
    name: str = DEFAULT_ITEM_NAME
    price: float = 0.0
    buy: float = 0.0  # buy + ship-in, carried from the inventory item
    ship_in: float = 0.0
    seller: str = ""
    image: str = ""
    created_at: int = 0
    buyer: str = ""

    @classmethod
    def from_item(cls, item: InventoryItem, listing_id: str, created_at: int) -> Listing:
        return cls(
            id=listing_id,
            name=item.name or DEFAULT_ITEM_NAME,
            price=item.list_price,
            buy=item.cost,
            ship_in=item.ship,
            seller=item.seller,
            image=item.image,
            created_at=created_at,
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "price": self.price,
            "buy": self.buy,
            "ship_in": self.ship_in,
            "seller": self.seller,
            "image": self.image,
            "createdAt": self.created_at,
        }
        if self.buyer:
            data["buyer"] = self.buyer
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Listing:
        return cls(
            id=_str(data.get("id")),
            name=_str(data.get("name"), DEFAULT_ITEM_NAME) or DEFAULT_ITEM_NAME,
            price=safe_number(data.get("price", 0)),
            buy=safe_number(data.get("buy", 0)),
            ship_in=safe_number(data.get("ship_in", 0)),
            seller=_str(data.get("seller")),
            image=_str(data.get("image")),
            created_at=_timestamp(data.get("createdAt", 0)),
            buyer=_str(data.get("buyer")),
        )


# ---------------------------------------------------------------------------
# SoldRecord
# ---------------------------------------------------------------------------


@dataclass
class SoldRecord:
    """A listing assigned to a buyer. Status only ever moves Pending -> Paid."""

    id: str
    name: str = DEFAULT_ITEM_NAME
    price: float = 0.0
    buyer: str = UNKNOWN_BUYER
    buy: float = 0.0
    ship_in: float = 0.0
    seller: str = ""
    image: str = ""
    created_at: int = 0
    sold_at: int = 0
    status: str = SoldStatus.PENDING.value

    @property
    def is_paid(self) -> bool:
        return self.status == SoldStatus.PAID.value

    @property
    def buyer_key(self) -> str:
        """Name the record is grouped under."""
        return self.buyer or UNKNOWN_BUYER

    @classmethod
    def from_listing(
        cls, listing: Listing, record_id: str, buyer: str, sold_at: int,
    ) -> SoldRecord:
        return cls(
            id=record_id,
            name=listing.name,
            price=listing.price,
            buyer=buyer,
            buy=listing.buy,
            ship_in=listing.ship_in,
            seller=listing.seller,
            image=listing.image,
            created_at=listing.created_at,
            sold_at=sold_at,
            status=SoldStatus.PENDING.value,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "price": self.price,
            "buy": self.buy,
            "ship_in": self.ship_in,
            "seller": self.seller,
            "image": self.image,
            "createdAt": self.created_at,
            "buyer": self.buyer,
            "soldAt": self.sold_at,
            "status": self.status,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SoldRecord:
        status = _str(data.get("status"), SoldStatus.PENDING.value)
        if status != SoldStatus.PAID.value:
            status = SoldStatus.PENDING.value
        return cls(
            id=_str(data.get("id")),
            name=_str(data.get("name"), DEFAULT_ITEM_NAME) or DEFAULT_ITEM_NAME,
            price=safe_number(data.get("price", 0)),
            buyer=_str(data.get("buyer")),
            buy=safe_number(data.get("buy", 0)),
            ship_in=safe_number(data.get("ship_in", 0)),
            seller=_str(data.get("seller")),
            image=_str(data.get("image")),
            created_at=_timestamp(data.get("createdAt", 0)),
            sold_at=_timestamp(data.get("soldAt", 0)),
            status=status,
        )


# ---------------------------------------------------------------------------
# CashEntry
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CashEntry:
    """Immutable cash-on-hand movement. Negative amounts are deductions."""

    id: str
    source: str
    amount: float
    note: str = ""
    created_at: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "source": self.source,
            "amount": self.amount,
            "note": self.note,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CashEntry:
        return cls(
            id=_str(data.get("id")),
            source=_str(data.get("source")),
            amount=safe_number(data.get("amount", 0)),
            note=_str(data.get("note")),
            created_at=_timestamp(data.get("createdAt", 0)),
        )


# ---------------------------------------------------------------------------
# LedgerState
# ---------------------------------------------------------------------------


@dataclass
class LedgerState:
    """Value snapshot of every collection; mutating it persists nothing."""

    bought: list[InventoryItem] = field(default_factory=list)
    forsale: list[Listing] = field(default_factory=list)
    sold: list[SoldRecord] = field(default_factory=list)
    cash: list[CashEntry] = field(default_factory=list)
    sellers: list[str] = field(default_factory=list)
    buyers: list[str] = field(default_factory=list)
    shipping: dict[str, float] = field(default_factory=dict)
