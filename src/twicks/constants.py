"""Constants for the Twicks inventory ledger."""

from enum import Enum


SNAPSHOT_VERSION = 3

NO_SELLER = "(No seller)"  # synthetic bucket for items with no seller set
UNKNOWN_BUYER = "Unknown"

DEFAULT_ITEM_NAME = "Card"
DEFAULT_DEDUCTION_NOTE = "Purchase deduction"

AUTO_BACKUP_FILENAME = "twicks_autobackup.json"
AUTO_BACKUP_INTERVAL_SECS = 5 * 60
AUTO_BACKUP_DEBOUNCE_SECS = 30
MANUAL_BACKUP_PREFIX = "twicks_backup_"

TOKEN_WAIT_CEILING_SECS = 8.0


class StorageKey(str, Enum):
    """Namespaced keys of every persisted document."""

    BOUGHT = "twicks_bought_v1"
    FORSALE = "twicks_forsale_v1"
    SOLD = "twicks_sold_v1"
    CASH = "twicks_cash_v1"
    SELLERS = "twicks_sellers_v1"
    BUYERS = "twicks_buyers_v1"
    SHIPPING = "twicks_shipping_v1"  # {buyer name: fee}
    GREET = "twicks_greet_pref"
    PAID_BOTTOM = "twicks_paid_bottom_pref"
    SELLER_LAST = "twicks_last_seller"
    BUYER_LAST = "twicks_last_buyer"


class CashSource(str, Enum):
    """Where cash on hand is held."""

    GCASH = "GCash"
    SEABANK = "SeaBank"
    CASH = "Cash"


class SoldStatus(str, Enum):
    PENDING = "Pending"
    PAID = "Paid"


class PartyKind(str, Enum):
    SELLER = "seller"
    BUYER = "buyer"


GREETING_KEYS = ("morning", "afternoon", "evening")
