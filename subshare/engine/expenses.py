"""
Expense Ledger

Per-member log of incidental charges (upgrades, add-ons, late fees...).
It is a parallel bookkeeping ledger: nothing here reads or changes a
member's status or payment history.
"""

from subshare.engine.payments import get_member, replace_member
from subshare.models.ledger import Expense, Service, evolve


def add_expense(service: Service, member_id: str, expense: Expense) -> Service:
    """Prepend an expense to the member's ledger (newest first)."""
    member = get_member(service, member_id)
    return replace_member(
        service,
        evolve(member, expenses=(expense,) + member.expenses),
    )


def delete_expense(service: Service, member_id: str, expense_id: str) -> Service:
    """
    Remove an expense by id.

    Deleting an id that is not present (e.g. already removed) is a
    no-op and returns the same snapshot.
    """
    member = get_member(service, member_id)
    remaining = tuple(e for e in member.expenses if e.id != expense_id)
    if len(remaining) == len(member.expenses):
        return service
    return replace_member(service, evolve(member, expenses=remaining))
