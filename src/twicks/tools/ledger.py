"""Ledger action tools: inventory, for-sale, sold, cash and party management.

Every tool returns a result dict instead of raising: ``{"success": True,
"message": ...}`` on success, ``{"success": False, "error": ...}`` when the
engine rejects the action or storage fails. Callers show ``message`` or
``error`` to the user and keep their form state on failure.
"""

from __future__ import annotations

from typing import Any

from twicks.config import TwicksConfig
from twicks.constants import CashSource, PartyKind
from twicks.engine import LedgerEngine
from twicks.errors import TwicksError
from twicks.messages import (
    follow_up,
    format_signed,
    greeting_word,
    non_image_follow_up,
    shipping_notice,
    thanks,
    total_invoice,
)
from twicks.totals import (
    buyer_group,
    buyer_groups,
    cash_totals,
    inventory_summary,
    listing_summary,
    seller_totals,
    sold_summary,
)


def _failure(exc: Exception) -> dict[str, Any]:
    return {"success": False, "error": str(exc)}


# ---------------------------------------------------------------------------
# Inventory
# ---------------------------------------------------------------------------


async def add_item_tool(
    engine: LedgerEngine,
    seller: str,
    buy_cost: Any,
    ship_in_cost: Any = 0,
    sell_price: Any = None,
    name: str = "",
    image_ref: str = "",
) -> dict[str, Any]:
    """Add a bought item to the inventory."""
    try:
        item = await engine.add_item(
            seller, buy_cost, ship_in_cost, sell_price, name=name, image_ref=image_ref,
        )
    except TwicksError as e:
        return _failure(e)
    return {"success": True, "item": item.to_dict(), "message": "Added new item to Inventory"}


async def delete_item_tool(engine: LedgerEngine, item_id: str) -> dict[str, Any]:
    try:
        await engine.delete_item(item_id)
    except TwicksError as e:
        return _failure(e)
    return {"success": True, "message": "Item deleted."}


async def list_for_sale_tool(engine: LedgerEngine, item_id: str) -> dict[str, Any]:
    """Move one inventory item to For Sale."""
    try:
        await engine.move_to_listing(item_id)
    except TwicksError as e:
        return _failure(e)
    return {"success": True, "message": "Moved to For Sale."}


async def list_seller_for_sale_tool(engine: LedgerEngine, seller: str) -> dict[str, Any]:
    """Move every inventory item of one seller to For Sale."""
    try:
        moved = await engine.bulk_move_seller_to_listing(seller)
    except TwicksError as e:
        return _failure(e)
    return {"success": True, "moved": moved, "message": f"Moved {moved} items to For Sale."}


async def reset_all_tool(engine: LedgerEngine) -> dict[str, Any]:
    try:
        await engine.reset_all()
    except TwicksError as e:
        return _failure(e)
    return {"success": True, "message": "All data cleared."}


# ---------------------------------------------------------------------------
# For sale / sold
# ---------------------------------------------------------------------------


async def add_listing_tool(
    engine: LedgerEngine, list_price: Any, name: str = "", image_ref: str = "",
) -> dict[str, Any]:
    try:
        listing = await engine.add_listing(list_price, name=name, image_ref=image_ref)
    except TwicksError as e:
        return _failure(e)
    return {"success": True, "listing": listing.to_dict(), "message": "Listing added."}


async def mark_sold_tool(
    engine: LedgerEngine, listing_id: str, buyer: str | None = None,
) -> dict[str, Any]:
    """Sell a listing to ``buyer``. A vanished listing is reported, not raised."""
    try:
        record = await engine.mark_sold(listing_id, buyer)
    except TwicksError as e:
        return _failure(e)
    if record is None:
        return {"success": False, "error": "Listing not found."}
    return {
        "success": True,
        "sold": record.to_dict(),
        "message": f"Sold to {record.buyer}.",
    }


async def mark_paid_tool(engine: LedgerEngine, sold_id: str) -> dict[str, Any]:
    try:
        await engine.mark_paid(sold_id)
    except TwicksError as e:
        return _failure(e)
    return {"success": True, "message": "Marked as paid."}


async def mark_all_paid_tool(engine: LedgerEngine, buyer: str) -> dict[str, Any]:
    """Mark every pending sale of ``buyer`` paid. Reports when nothing changed."""
    try:
        changed = await engine.mark_all_paid_for_buyer(buyer)
    except TwicksError as e:
        return _failure(e)
    if not changed:
        return {"success": True, "changed": 0, "message": "Nothing to mark as paid."}
    return {"success": True, "changed": changed, "message": f"Marked {changed} item(s) as paid."}


async def delete_sold_tool(engine: LedgerEngine, sold_id: str) -> dict[str, Any]:
    try:
        await engine.delete_sold(sold_id)
    except TwicksError as e:
        return _failure(e)
    return {"success": True, "message": "Sold item deleted."}


async def set_shipping_fee_tool(engine: LedgerEngine, buyer: str, amount: Any) -> dict[str, Any]:
    try:
        fee = await engine.set_shipping_fee(buyer, amount)
    except TwicksError as e:
        return _failure(e)
    return {"success": True, "shipping_fee": fee, "message": f"Shipping fee for {buyer} saved."}


# ---------------------------------------------------------------------------
# Cash on hand
# ---------------------------------------------------------------------------


async def add_cash_tool(
    engine: LedgerEngine, source: CashSource | str, amount: Any, note: str = "",
) -> dict[str, Any]:
    try:
        entry = await engine.add_cash(source, amount, note)
    except TwicksError as e:
        return _failure(e)
    return {"success": True, "entry": entry.to_dict(), "message": "Added to Cash On Hand."}


async def deduct_cash_tool(
    engine: LedgerEngine, source: CashSource | str, amount: Any, note: str = "",
) -> dict[str, Any]:
    try:
        entry = await engine.deduct_cash(source, amount, note)
    except TwicksError as e:
        return _failure(e)
    return {"success": True, "entry": entry.to_dict(), "message": "Deducted from Cash On Hand."}


async def add_buyer_to_cash_tool(
    engine: LedgerEngine,
    buyer: str,
    source: CashSource | str,
    amount: Any = None,
    note: str | None = None,
) -> dict[str, Any]:
    """Book a fully-paid buyer's total into cash on hand."""
    try:
        entry = await engine.add_buyer_total_to_cash(buyer, source, amount, note)
    except TwicksError as e:
        return _failure(e)
    return {"success": True, "entry": entry.to_dict(), "message": "Added to Cash On Hand."}


async def delete_cash_tool(engine: LedgerEngine, entry_id: str) -> dict[str, Any]:
    try:
        deleted = await engine.delete_cash_entry(entry_id)
    except TwicksError as e:
        return _failure(e)
    return {"success": True, "deleted": deleted}


# ---------------------------------------------------------------------------
# Sellers / buyers
# ---------------------------------------------------------------------------


async def rename_party_tool(
    engine: LedgerEngine, kind: PartyKind | str, old_name: str, new_name: str,
) -> dict[str, Any]:
    try:
        changed = await engine.rename_party(kind, old_name, new_name)
    except TwicksError as e:
        return _failure(e)
    label = PartyKind(kind).value.capitalize()
    return {"success": True, "changed": changed, "message": f"{label} renamed."}


async def delete_party_tool(
    engine: LedgerEngine,
    kind: PartyKind | str,
    name: str,
    reassign_to: str | None = None,
) -> dict[str, Any]:
    try:
        changed = await engine.delete_party(kind, name, reassign_to)
    except TwicksError as e:
        return _failure(e)
    label = PartyKind(kind).value.capitalize()
    return {"success": True, "changed": changed, "message": f"{label} removed."}


# ---------------------------------------------------------------------------
# Summaries (read-only)
# ---------------------------------------------------------------------------


async def inventory_summary_tool(engine: LedgerEngine) -> dict[str, Any]:
    """Per-seller spend/worth/profit of the inventory, plus overall totals."""
    items = await engine.load_bought()
    overall = inventory_summary(items)
    listings = listing_summary(await engine.load_listings())
    return {
        "success": True,
        "count": overall.count,
        "spent": overall.spent,
        "worth": overall.worth,
        "profit": overall.profit,
        "for_sale_count": listings.count,
        "for_sale_value": listings.value,
        "sellers": [
            {
                "seller": t.seller,
                "count": t.count,
                "spent": t.spent,
                "worth": t.worth,
                "profit": t.profit,
            }
            for t in seller_totals(items)
        ],
    }


async def sold_summary_tool(engine: LedgerEngine, paid_bottom: bool | None = None) -> dict[str, Any]:
    """Paid/pending revenue and per-buyer groups in display order."""
    sold = await engine.load_sold()
    if paid_bottom is None:
        paid_bottom = await engine.paid_bottom()
    summary = sold_summary(sold)
    groups = buyer_groups(sold, await engine.load_shipping(), paid_bottom=paid_bottom)
    return {
        "success": True,
        "count": summary.count,
        "paid_count": summary.paid_count,
        "pending_count": summary.pending_count,
        "paid_revenue": summary.paid_revenue,
        "pending_revenue": summary.pending_revenue,
        "buyers": [
            {
                "buyer": g.buyer,
                "items": len(g.records),
                "gross": g.gross,
                "shipping_fee": g.shipping_fee,
                "net": g.net,
                "pending": g.pending_count,
                "all_paid": g.all_paid,
                "sold_ids": [r.id for r in g.records],
            }
            for g in groups
        ],
    }


async def cash_summary_tool(engine: LedgerEngine) -> dict[str, Any]:
    cash = await engine.load_cash()
    totals = cash_totals(cash, await engine.load_sold())
    return {
        "success": True,
        "by_source": totals.by_source,
        "on_hand": totals.on_hand,
        "paid_revenue": totals.paid_revenue,
        "pending_revenue": totals.pending_revenue,
        "grand_total": totals.grand_total,
        "entries": [
            {**entry.to_dict(), "display": format_signed(entry.amount)} for entry in cash
        ],
    }


# ---------------------------------------------------------------------------
# Buyer messages
# ---------------------------------------------------------------------------

_MESSAGE_KINDS = ("total_invoice", "follow_up", "thanks", "non_image_follow_up", "shipping")


async def buyer_message_tool(
    engine: LedgerEngine,
    buyer: str,
    kind: str,
    config: TwicksConfig | None = None,
    tracking_number: str = "",
) -> dict[str, Any]:
    """Compose a copy-ready message for ``buyer``.

    ``kind`` is one of total_invoice, follow_up, thanks,
    non_image_follow_up or shipping (needs ``tracking_number``).
    """
    if kind not in _MESSAGE_KINDS:
        return {"success": False, "error": f"Unknown message kind: {kind}"}
    config = config or TwicksConfig()
    greeting = greeting_word(await engine.greeting())

    if kind == "total_invoice":
        group = buyer_group(await engine.load_sold(), buyer)
        if group is None:
            return {"success": False, "error": f"No sold items for buyer {buyer}."}
        text = total_invoice(group.gross, greeting, config.payment_number, config.payee_name)
    elif kind == "follow_up":
        text = follow_up(greeting)
    elif kind == "thanks":
        text = thanks()
    elif kind == "non_image_follow_up":
        text = non_image_follow_up()
    else:
        if not tracking_number.strip():
            return {"success": False, "error": "Tracking number is required."}
        text = shipping_notice(tracking_number, greeting)
    return {"success": True, "buyer": buyer, "kind": kind, "text": text}
