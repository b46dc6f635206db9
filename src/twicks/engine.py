"""Ledger state engine: every state transition of the inventory ledger.

Each operation loads the collections it touches from the store, applies
its change to those value snapshots and saves them back. Callers never
get a live reference: editing a returned record persists nothing.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, TypeVar

from twicks.constants import (
    CashSource,
    DEFAULT_DEDUCTION_NOTE,
    DEFAULT_ITEM_NAME,
    GREETING_KEYS,
    NO_SELLER,
    PartyKind,
    SoldStatus,
    StorageKey,
    UNKNOWN_BUYER,
)
from twicks.errors import NotFoundError, ValidationError
from twicks.ledger import (
    CashEntry,
    InventoryItem,
    LedgerState,
    Listing,
    SoldRecord,
    new_id,
    now_ms,
    safe_number,
    to_number,
)
from twicks.storage import KeyValueStore
from twicks.totals import buyer_group

logger = logging.getLogger(__name__)

T = TypeVar("T")

_REGISTRY_KEY = {
    PartyKind.SELLER: StorageKey.SELLERS,
    PartyKind.BUYER: StorageKey.BUYERS,
}
_LAST_KEY = {
    PartyKind.SELLER: StorageKey.SELLER_LAST,
    PartyKind.BUYER: StorageKey.BUYER_LAST,
}


def _party_kind(kind: PartyKind | str) -> PartyKind:
    try:
        return PartyKind(kind)
    except ValueError:
        raise ValidationError(f"Unknown party kind: {kind!r}") from None


def _cash_source(source: CashSource | str) -> str:
    try:
        return CashSource(source).value
    except ValueError:
        allowed = ", ".join(s.value for s in CashSource)
        raise ValidationError(f"Cash source must be one of {allowed}.") from None


class LedgerEngine:
    """Typed operations over the bought / for-sale / sold / cash collections.

    - Moving a record between stages removes the source row and inserts
      a new row with a fresh id, carrying buy + ship-in cost forward.
    - Sold status only moves Pending -> Paid.
    - Cash entries are never edited, only added or deleted.
    - Concurrent operations on the same collection are last-write-wins.
    """

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    @property
    def store(self) -> KeyValueStore:
        return self._store

    # -- loading --------------------------------------------------------------

    async def _load_rows(
        self, key: StorageKey, factory: Callable[[dict[str, Any]], T],
    ) -> list[T]:
        value = await self._store.load(key, [])
        if not isinstance(value, list):
            logger.warning("%s does not hold a list; treating as empty.", key.value)
            return []
        return [factory(row) for row in value if isinstance(row, dict)]

    async def _load_names(self, key: StorageKey) -> list[str]:
        value = await self._store.load(key, [])
        if not isinstance(value, list):
            return []
        names: list[str] = []
        for name in value:
            if isinstance(name, str) and name and name not in names:
                names.append(name)
        return names

    async def load_bought(self) -> list[InventoryItem]:
        return await self._load_rows(StorageKey.BOUGHT, InventoryItem.from_dict)

    async def load_listings(self) -> list[Listing]:
        return await self._load_rows(StorageKey.FORSALE, Listing.from_dict)

    async def load_sold(self) -> list[SoldRecord]:
        return await self._load_rows(StorageKey.SOLD, SoldRecord.from_dict)

    async def load_cash(self) -> list[CashEntry]:
        return await self._load_rows(StorageKey.CASH, CashEntry.from_dict)

    async def load_shipping(self) -> dict[str, float]:
        value = await self._store.load(StorageKey.SHIPPING, {})
        if not isinstance(value, dict):
            return {}
        return {str(k): safe_number(v) for k, v in value.items()}

    async def load_state(self) -> LedgerState:
        return LedgerState(
            bought=await self.load_bought(),
            forsale=await self.load_listings(),
            sold=await self.load_sold(),
            cash=await self.load_cash(),
            sellers=await self._load_names(StorageKey.SELLERS),
            buyers=await self._load_names(StorageKey.BUYERS),
            shipping=await self.load_shipping(),
        )

    async def _save_rows(self, key: StorageKey, rows: list[Any]) -> None:
        await self._store.save(key, [row.to_dict() for row in rows])

    # -- name registries ------------------------------------------------------

    async def sellers(self) -> list[str]:
        """Registered sellers plus any seller named on an inventory item."""
        names = set(await self._load_names(StorageKey.SELLERS))
        names.update(i.seller for i in await self.load_bought() if i.seller)
        return sorted(names, key=str.casefold)

    async def buyers(self) -> list[str]:
        """Registered buyers plus any buyer named on a sold record or listing."""
        names = set(await self._load_names(StorageKey.BUYERS))
        names.update(r.buyer for r in await self.load_sold() if r.buyer)
        names.update(l.buyer for l in await self.load_listings() if l.buyer)
        return sorted(names, key=str.casefold)

    async def _register(self, kind: PartyKind, name: str) -> None:
        key = _REGISTRY_KEY[kind]
        names = await self._load_names(key)
        if name not in names:
            names.append(name)
            await self._store.save(key, names)

    async def add_seller(self, name: str) -> str:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Seller name is required.")
        await self._register(PartyKind.SELLER, name)
        return name

    async def add_buyer(self, name: str) -> str:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Buyer name is required.")
        await self._register(PartyKind.BUYER, name)
        return name

    # -- inventory (bought) ---------------------------------------------------

    async def add_item(
        self,
        seller: str,
        buy_cost: Any,
        ship_in_cost: Any = 0,
        sell_price: Any = None,
        name: str = DEFAULT_ITEM_NAME,
        image_ref: str = "",
    ) -> InventoryItem:
        """Record a newly bought item at the top of the inventory."""
        seller = (seller or "").strip()
        if not seller:
            raise ValidationError("Please select a seller.")
        buy = to_number(buy_cost, "Buy price")
        ship = 0.0 if ship_in_cost in (None, "") else to_number(ship_in_cost, "Ship-in cost")
        sell = None if sell_price in (None, "") else to_number(sell_price, "Sell price")

        items = await self.load_bought()
        item = InventoryItem(
            id=new_id({i.id for i in items}),
            seller=seller,
            name=(name or "").strip() or DEFAULT_ITEM_NAME,
            buy=buy,
            ship=ship,
            sell=sell,
            image=image_ref or "",
            created_at=now_ms(),
        )
        items.insert(0, item)
        await self._save_rows(StorageKey.BOUGHT, items)
        await self._register(PartyKind.SELLER, seller)
        await self.set_last_party(PartyKind.SELLER, seller)
        return item

    async def delete_item(self, item_id: str) -> None:
        items = await self.load_bought()
        remaining = [i for i in items if i.id != item_id]
        if len(remaining) == len(items):
            raise NotFoundError(f"Item {item_id} not found.")
        await self._save_rows(StorageKey.BOUGHT, remaining)

    async def move_to_listing(self, item_id: str) -> None:
        """Move one inventory item into the for-sale collection."""
        items = await self.load_bought()
        item = next((i for i in items if i.id == item_id), None)
        if item is None:
            raise NotFoundError(f"Item {item_id} not found.")
        listings = await self.load_listings()
        listing = Listing.from_item(item, new_id({l.id for l in listings}), now_ms())
        listings.insert(0, listing)
        items.remove(item)
        await self._save_rows(StorageKey.BOUGHT, items)
        await self._save_rows(StorageKey.FORSALE, listings)

    async def bulk_move_seller_to_listing(self, seller: str) -> int:
        """Move every item of ``seller`` (``(No seller)`` included) to for-sale.

        Returns how many items moved. Both collections are computed in full
        before either is saved.
        """
        items = await self.load_bought()
        to_move = [i for i in items if (i.seller or NO_SELLER) == seller]
        if not to_move:
            return 0
        remaining = [i for i in items if (i.seller or NO_SELLER) != seller]
        listings = await self.load_listings()
        taken = {l.id for l in listings}
        created_at = now_ms()
        for item in to_move:
            listing = Listing.from_item(item, new_id(taken), created_at)
            taken.add(listing.id)
            listings.insert(0, listing)
        await self._save_rows(StorageKey.BOUGHT, remaining)
        await self._save_rows(StorageKey.FORSALE, listings)
        return len(to_move)

    async def reset_all(self) -> None:
        """Empty inventory, listings and sold records. Cash is kept."""
        for key in (StorageKey.BOUGHT, StorageKey.FORSALE, StorageKey.SOLD):
            await self._store.save(key, [])

    # -- listings (for sale) --------------------------------------------------

    async def add_listing(
        self, list_price: Any, name: str = DEFAULT_ITEM_NAME, image_ref: str = "",
    ) -> Listing:
        """Create a standalone listing with no acquisition cost."""
        price = to_number(list_price, "Price")
        listings = await self.load_listings()
        listing = Listing(
            id=new_id({l.id for l in listings}),
            name=(name or "").strip() or DEFAULT_ITEM_NAME,
            price=price,
            buy=0.0,
            seller="",
            image=image_ref or "",
            created_at=now_ms(),
        )
        listings.insert(0, listing)
        await self._save_rows(StorageKey.FORSALE, listings)
        return listing

    async def delete_listing(self, listing_id: str) -> bool:
        listings = await self.load_listings()
        remaining = [l for l in listings if l.id != listing_id]
        if len(remaining) == len(listings):
            return False
        await self._save_rows(StorageKey.FORSALE, remaining)
        return True

    async def mark_sold(self, listing_id: str, buyer: str | None = None) -> SoldRecord | None:
        """Assign a listing to ``buyer`` (default ``Unknown``) as a Pending sale.

        Returns None and changes nothing when the listing is gone.
        """
        buyer = (buyer or "").strip() or UNKNOWN_BUYER
        listings = await self.load_listings()
        listing = next((l for l in listings if l.id == listing_id), None)
        if listing is None:
            return None
        sold = await self.load_sold()
        record = SoldRecord.from_listing(listing, new_id({r.id for r in sold}), buyer, now_ms())
        listings.remove(listing)
        sold.insert(0, record)
        await self._save_rows(StorageKey.FORSALE, listings)
        await self._save_rows(StorageKey.SOLD, sold)
        if buyer != UNKNOWN_BUYER:
            await self._register(PartyKind.BUYER, buyer)
            await self.set_last_party(PartyKind.BUYER, buyer)
        return record

    # -- sold -----------------------------------------------------------------

    async def mark_paid(self, sold_id: str) -> SoldRecord:
        sold = await self.load_sold()
        record = next((r for r in sold if r.id == sold_id), None)
        if record is None:
            raise NotFoundError(f"Sold item {sold_id} not found.")
        if not record.is_paid:
            record.status = SoldStatus.PAID.value
            await self._save_rows(StorageKey.SOLD, sold)
        return record

    async def mark_all_paid_for_buyer(self, buyer: str) -> int:
        """Mark every Pending record of ``buyer`` Paid. Returns how many changed."""
        sold = await self.load_sold()
        changed = 0
        for record in sold:
            if record.buyer_key == buyer and not record.is_paid:
                record.status = SoldStatus.PAID.value
                changed += 1
        if changed:
            await self._save_rows(StorageKey.SOLD, sold)
        return changed

    async def delete_sold(self, sold_id: str) -> None:
        sold = await self.load_sold()
        remaining = [r for r in sold if r.id != sold_id]
        if len(remaining) == len(sold):
            raise NotFoundError(f"Sold item {sold_id} not found.")
        await self._save_rows(StorageKey.SOLD, remaining)

    async def set_shipping_fee(self, buyer: str, amount: Any) -> float:
        """Upsert the seller-paid shipping fee for ``buyer``."""
        fee = to_number(amount, "Shipping fee")
        shipping = await self.load_shipping()
        shipping[buyer or UNKNOWN_BUYER] = fee
        await self._store.save(StorageKey.SHIPPING, shipping)
        return fee

    # -- cash on hand ---------------------------------------------------------

    async def add_cash_entry(
        self, source: CashSource | str, amount: Any, note: str = "",
    ) -> CashEntry:
        """Append a signed cash movement. The sign is the caller's choice."""
        source_name = _cash_source(source)
        value = to_number(amount, "Amount")
        cash = await self.load_cash()
        entry = CashEntry(
            id=new_id({c.id for c in cash}),
            source=source_name,
            amount=value,
            note=(note or "").strip(),
            created_at=now_ms(),
        )
        cash.insert(0, entry)
        await self._save_rows(StorageKey.CASH, cash)
        return entry

    async def add_cash(self, source: CashSource | str, amount: Any, note: str = "") -> CashEntry:
        value = to_number(amount, "Amount")
        if value <= 0:
            raise ValidationError("Please enter a valid amount.")
        return await self.add_cash_entry(source, value, note)

    async def deduct_cash(self, source: CashSource | str, amount: Any, note: str = "") -> CashEntry:
        value = to_number(amount, "Amount")
        if value <= 0:
            raise ValidationError("Please enter a valid amount to deduct.")
        return await self.add_cash_entry(
            source, -abs(value), (note or "").strip() or DEFAULT_DEDUCTION_NOTE,
        )

    async def add_buyer_total_to_cash(
        self,
        buyer: str,
        source: CashSource | str,
        amount: Any = None,
        note: str | None = None,
    ) -> CashEntry:
        """Book a fully-paid buyer's total as cash on hand."""
        group = buyer_group(await self.load_sold(), buyer, await self.load_shipping())
        if group is None:
            raise NotFoundError(f"No sold items for buyer {buyer}.")
        if not group.all_paid:
            raise ValidationError("This buyer is not fully paid yet.")
        value = group.paid_total if amount in (None, "") else to_number(amount, "Amount")
        if value <= 0:
            raise ValidationError("Please set a valid source/amount.")
        return await self.add_cash_entry(
            source, value, note if note is not None else f"Paid by {buyer}",
        )

    async def delete_cash_entry(self, entry_id: str) -> bool:
        cash = await self.load_cash()
        remaining = [c for c in cash if c.id != entry_id]
        if len(remaining) == len(cash):
            return False
        await self._save_rows(StorageKey.CASH, remaining)
        return True

    # -- rename / delete parties ----------------------------------------------

    async def _retag(
        self, kind: PartyKind, old: str, new: str,
    ) -> int:
        """Replace ``old`` with ``new`` on every record naming that party."""
        changed = 0
        attr = kind.value
        if kind is PartyKind.SELLER:
            collections = (
                (StorageKey.BOUGHT, await self.load_bought()),
                (StorageKey.FORSALE, await self.load_listings()),
                (StorageKey.SOLD, await self.load_sold()),
            )
        else:
            collections = (
                (StorageKey.SOLD, await self.load_sold()),
                (StorageKey.FORSALE, await self.load_listings()),
            )
        def named(row: Any) -> str:
            # Sold records with a blank buyer are grouped as "Unknown".
            if attr == "buyer" and isinstance(row, SoldRecord):
                return row.buyer_key
            return getattr(row, attr) or ""

        for key, rows in collections:
            hits = [row for row in rows if named(row) == old and getattr(row, attr) != new]
            for row in hits:
                setattr(row, attr, new)
            if hits:
                await self._save_rows(key, rows)
                changed += len(hits)
        return changed

    async def rename_party(self, kind: PartyKind | str, old_name: str, new_name: str) -> int:
        """Rename a seller or buyer everywhere. Returns how many records changed.

        No-op when the new name is empty or equals the old one.
        """
        kind = _party_kind(kind)
        new_name = (new_name or "").strip()
        if not new_name or new_name == old_name:
            return 0

        registry = _REGISTRY_KEY[kind]
        names = await self._load_names(registry)
        if old_name in names:
            names[names.index(old_name)] = new_name
        elif new_name not in names:
            names.append(new_name)
        await self._store.save(registry, list(dict.fromkeys(names)))

        changed = await self._retag(kind, old_name, new_name)

        if kind is PartyKind.BUYER:
            shipping = await self.load_shipping()
            if old_name in shipping:
                fee = shipping.pop(old_name)
                shipping.setdefault(new_name, fee)
                await self._store.save(StorageKey.SHIPPING, shipping)

        if await self.last_party(kind) == old_name:
            await self.set_last_party(kind, new_name)
        logger.info("Renamed %s %r to %r (%d records).", kind.value, old_name, new_name, changed)
        return changed

    async def delete_party(
        self, kind: PartyKind | str, name: str, reassign_to: str | None = None,
    ) -> int:
        """Drop a seller or buyer from the registry.

        Records naming them are moved to ``reassign_to`` when given, or have
        the name cleared. Returns how many records changed.
        """
        kind = _party_kind(kind)
        reassign = (reassign_to or "").strip()
        registry = _REGISTRY_KEY[kind]
        names = [n for n in await self._load_names(registry) if n != name]
        if reassign and reassign not in names:
            names.append(reassign)
        await self._store.save(registry, names)

        changed = await self._retag(kind, name, reassign)

        if await self.last_party(kind) == name:
            await self._store.delete_raw(_LAST_KEY[kind])
        return changed

    # -- preferences ----------------------------------------------------------

    async def last_party(self, kind: PartyKind | str) -> str | None:
        return await self._store.get_raw(_LAST_KEY[_party_kind(kind)]) or None

    async def set_last_party(self, kind: PartyKind | str, name: str) -> None:
        await self._store.set_raw(_LAST_KEY[_party_kind(kind)], name or "")

    async def greeting(self) -> str | None:
        value = await self._store.get_raw(StorageKey.GREET)
        return value if value in GREETING_KEYS else None

    async def set_greeting(self, key: str) -> None:
        if key not in GREETING_KEYS:
            raise ValidationError(f"Greeting must be one of {', '.join(GREETING_KEYS)}.")
        await self._store.set_raw(StorageKey.GREET, key)

    async def paid_bottom(self) -> bool:
        """Whether fully-paid buyers sort to the bottom (default on)."""
        return (await self._store.get_raw(StorageKey.PAID_BOTTOM) or "1") == "1"

    async def set_paid_bottom(self, enabled: bool) -> None:
        await self._store.set_raw(StorageKey.PAID_BOTTOM, "1" if enabled else "0")
