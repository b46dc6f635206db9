"""Pure aggregations over a ledger snapshot. No I/O, no persistence."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from twicks.constants import CashSource, NO_SELLER
from twicks.ledger import CashEntry, InventoryItem, Listing, SoldRecord, safe_number


# ---------------------------------------------------------------------------
# Inventory (bought) totals
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SellerTotals:
    """Spend and expected worth of the items bought from one seller."""

    seller: str
    count: int
    spent: float  # sum of buy + ship-in
    worth: float  # sum of sell prices; unpriced items add 0
    items: tuple[InventoryItem, ...] = ()

    @property
    def profit(self) -> float:
        return self.worth - self.spent


def seller_totals(items: Iterable[InventoryItem]) -> list[SellerTotals]:
    """Group inventory items by seller in first-seen order.

    Items with no seller land in the ``(No seller)`` bucket.
    """
    grouped: dict[str, list[InventoryItem]] = {}
    for item in items:
        grouped.setdefault(item.seller or NO_SELLER, []).append(item)
    return [
        SellerTotals(
            seller=seller,
            count=len(group),
            spent=sum(i.cost for i in group),
            worth=sum(i.sell or 0 for i in group),
            items=tuple(group),
        )
        for seller, group in grouped.items()
    ]


def inventory_summary(items: Iterable[InventoryItem]) -> SellerTotals:
    """Totals across every seller, reported under the empty seller name."""
    items = list(items)
    return SellerTotals(
        seller="",
        count=len(items),
        spent=sum(i.cost for i in items),
        worth=sum(i.sell or 0 for i in items),
    )


# ---------------------------------------------------------------------------
# Listings
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ListingSummary:
    count: int
    value: float


def listing_summary(listings: Iterable[Listing], seller: str | None = None) -> ListingSummary:
    """Count and asking value of listings, optionally for one seller only."""
    chosen = [
        l for l in listings
        if seller is None or (l.seller or NO_SELLER) == seller
    ]
    return ListingSummary(count=len(chosen), value=sum(l.price for l in chosen))


# ---------------------------------------------------------------------------
# Sold records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SoldSummary:
    count: int
    paid_count: int
    pending_count: int
    paid_revenue: float
    pending_revenue: float


def sold_summary(sold: Iterable[SoldRecord]) -> SoldSummary:
    sold = list(sold)
    paid = [r for r in sold if r.is_paid]
    pending = [r for r in sold if not r.is_paid]
    return SoldSummary(
        count=len(sold),
        paid_count=len(paid),
        pending_count=len(pending),
        paid_revenue=sum(r.price for r in paid),
        pending_revenue=sum(r.price for r in pending),
    )


@dataclass(frozen=True)
class BuyerGroup:
    """Every sold record of one buyer with gross/net revenue."""

    buyer: str
    records: tuple[SoldRecord, ...]
    gross: float
    shipping_fee: float
    latest: int  # most recent soldAt (ms)

    @property
    def net(self) -> float:
        return self.gross - self.shipping_fee

    @property
    def pending_count(self) -> int:
        return sum(1 for r in self.records if not r.is_paid)

    @property
    def all_paid(self) -> bool:
        return all(r.is_paid for r in self.records)

    @property
    def paid_total(self) -> float:
        return sum(r.price for r in self.records if r.is_paid)


def buyer_groups(
    sold: Iterable[SoldRecord],
    shipping: Mapping[str, float] | None = None,
    paid_bottom: bool = True,
) -> list[BuyerGroup]:
    """Group sold records by buyer and sort for display.

    Fully-paid groups go last when ``paid_bottom`` is set; otherwise (and
    within each half) the group with the most recent sale comes first.
    """
    shipping = shipping or {}
    grouped: dict[str, list[SoldRecord]] = {}
    for record in sold:
        grouped.setdefault(record.buyer_key, []).append(record)

    groups = [
        BuyerGroup(
            buyer=buyer,
            records=tuple(records),
            gross=sum(r.price for r in records),
            shipping_fee=safe_number(shipping.get(buyer, 0)),
            latest=max(r.sold_at or r.created_at or 0 for r in records),
        )
        for buyer, records in grouped.items()
    ]
    groups.sort(key=lambda g: (paid_bottom and g.all_paid, -g.latest))
    return groups


def buyer_group(
    sold: Iterable[SoldRecord],
    buyer: str,
    shipping: Mapping[str, float] | None = None,
) -> BuyerGroup | None:
    """Return the group for one buyer, or None if they have no records."""
    for group in buyer_groups(sold, shipping, paid_bottom=False):
        if group.buyer == buyer:
            return group
    return None


# ---------------------------------------------------------------------------
# Cash on hand
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CashTotals:
    """Per-source balances plus the grand total.

    ``grand_total`` = on-hand + paid revenue; pending revenue is reported
    separately and never included.
    """

    by_source: dict[str, float] = field(default_factory=dict)
    on_hand: float = 0.0
    paid_revenue: float = 0.0
    pending_revenue: float = 0.0

    @property
    def grand_total(self) -> float:
        return self.on_hand + self.paid_revenue


def cash_totals(cash: Iterable[CashEntry], sold: Iterable[SoldRecord]) -> CashTotals:
    by_source = {source.value: 0.0 for source in CashSource}
    for entry in cash:
        by_source[entry.source] = by_source.get(entry.source, 0.0) + entry.amount
    revenue = sold_summary(sold)
    return CashTotals(
        by_source=by_source,
        on_hand=sum(by_source.values()),
        paid_revenue=revenue.paid_revenue,
        pending_revenue=revenue.pending_revenue,
    )
