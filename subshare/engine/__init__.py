"""Ledger engine: pure payment lifecycle, expense and service operations."""

from subshare.engine.expenses import add_expense, delete_expense
from subshare.engine.payments import (
    Provenance,
    claim_slot,
    confirm_payment,
    downgrade,
    get_member,
    manual_confirm,
    method_for,
    replace_member,
)
from subshare.engine.services import (
    OWNER_NAME,
    add_service,
    create_service,
    find_service,
    remove_service,
    replace_service,
    set_payment_instructions,
)

__all__ = [
    "OWNER_NAME",
    "Provenance",
    "add_expense",
    "add_service",
    "claim_slot",
    "confirm_payment",
    "create_service",
    "delete_expense",
    "downgrade",
    "find_service",
    "get_member",
    "manual_confirm",
    "method_for",
    "remove_service",
    "replace_member",
    "replace_service",
    "set_payment_instructions",
]
