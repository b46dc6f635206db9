"""Buyer-facing message templates: invoices, reminders, shipping notices."""

from __future__ import annotations

from datetime import datetime

from twicks.constants import GREETING_KEYS


def greeting_key(hour: int | None = None) -> str:
    """``morning`` before noon, ``afternoon`` before 18:00, else ``evening``."""
    if hour is None:
        hour = datetime.now().hour
    if hour < 12:
        return "morning"
    if hour < 18:
        return "afternoon"
    return "evening"


def greeting_word(preference: str | None = None, hour: int | None = None) -> str:
    """``Good Morning`` style greeting from a saved preference or the clock."""
    key = preference if preference in GREETING_KEYS else greeting_key(hour)
    return f"Good {key.capitalize()}"


def format_money(amount: float) -> str:
    return f"₱{amount:,.2f}"


def format_signed(amount: float) -> str:
    return ("-" if amount < 0 else "") + format_money(abs(amount))


def total_invoice(
    total: float,
    greeting: str,
    payment_number: str | None = None,
    payee_name: str | None = None,
) -> str:
    lines = [f"{greeting} brother, here's your tab:", "", f"Total: {format_money(total)}"]
    if payment_number:
        lines.append(f"GCash: {payment_number}")
    if payee_name:
        lines.append(payee_name)
    lines += [
        "",
        "Can safekeep once paid, thank you!",
        "",
        "Scheduled Shipping is via JNT only.",
        "",
        "Thanks for your support. God bless!",
    ]
    return "\n".join(lines)


def follow_up(greeting: str) -> str:
    return f"{greeting} brother, soft reminder lang po sa payment. Thanks!"


def thanks() -> str:
    return "Received brother, Thanks!"


def non_image_follow_up() -> str:
    return "Will send pictures brother after ko masort. Thanks!"


def shipping_notice(tracking_number: str, greeting: str) -> str:
    return (
        f"{greeting} brother! Napaship ko na po.\n\n"
        f"TN mo brother: {tracking_number.strip()}\n\n"
        "Salamat brother! God bless!"
    )
