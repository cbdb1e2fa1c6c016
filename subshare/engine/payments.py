"""
Payment Lifecycle Engine

The state machine governing a slot:

    empty --claim--> pending --confirm--> paid
      ^                 ^                   |
      +-----------------+----downgrade------+   (admin correction only)

Every function here is pure: it takes a Service snapshot and returns a new
one, or raises TransitionRejectedError and changes nothing.

IMPORTANT: Confirmation amounts are trusted as given. Comparing them to
the per-slot fee is the verification workflow's job; here a mismatch is
only recorded (PaymentRecord.expected_amount) so it can be flagged.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from subshare.errors import MemberNotFoundError, TransitionRejectedError
from subshare.models.ledger import (
    Member,
    MemberStatus,
    PaymentMethod,
    PaymentRecord,
    PaymentRecordStatus,
    Service,
    evolve,
    transaction_ref,
    utcnow,
)


class Provenance(str, Enum):
    """Who or what issued a confirmation."""
    VERIFIER = "verifier"        # Accepted result of the AI receipt check
    OWNER_SETUP = "owner_setup"  # Admin action while creating/importing a service
    MANUAL = "manual"            # Admin confirming by hand


def method_for(provenance: Provenance, transaction_id: Optional[str]) -> str:
    """
    Provenance label for a new payment record.

    verifier + transaction id      -> "AI Verified"
    owner setup, no transaction id -> "Owner"
    anything else                  -> "Manual"
    """
    if provenance == Provenance.VERIFIER and transaction_id:
        return PaymentMethod.AI_VERIFIED.value
    if provenance == Provenance.OWNER_SETUP and not transaction_id:
        return PaymentMethod.OWNER.value
    return PaymentMethod.MANUAL.value


def get_member(service: Service, member_id: str) -> Member:
    member = service.find_member(member_id)
    if member is None:
        raise MemberNotFoundError(service.id, member_id)
    return member


def replace_member(service: Service, member: Member) -> Service:
    """Return a new Service with one member swapped in by id."""
    members = tuple(member if m.id == member.id else m for m in service.members)
    return evolve(service, members=members)


def claim_slot(service: Service, member_id: str, name: str) -> Service:
    """
    Claim an empty slot.

    Raises:
        TransitionRejectedError: name is blank or the slot is not empty
        MemberNotFoundError: unknown member id
    """
    member = get_member(service, member_id)
    clean_name = (name or "").strip()

    if not clean_name:
        raise TransitionRejectedError("Name cannot be blank")
    if member.status != MemberStatus.EMPTY:
        raise TransitionRejectedError(
            f"Slot is already {member.status.value}, it cannot be claimed"
        )

    return replace_member(
        service,
        evolve(member, name=clean_name, status=MemberStatus.PENDING),
    )


def confirm_payment(
    service: Service,
    member_id: str,
    amount: Decimal,
    sender: Optional[str] = None,
    transaction_id: Optional[str] = None,
    provenance: Provenance = Provenance.MANUAL,
    confirmed_at: Optional[datetime] = None,
) -> Service:
    """
    Record a payment and mark the slot paid.

    Valid from pending. From paid the call is an idempotent no-op (the same
    snapshot is returned) unless it carries a transaction id not yet in the
    member's history; that is a genuinely new payment and is prepended.

    Raises:
        TransitionRejectedError: slot is empty or amount is negative
        MemberNotFoundError: unknown member id
    """
    member = get_member(service, member_id)
    amount = Decimal(str(amount))

    if amount < 0:
        raise TransitionRejectedError("Payment amount cannot be negative")
    if member.status == MemberStatus.EMPTY:
        raise TransitionRejectedError("Slot has not been claimed yet")

    if member.status == MemberStatus.PAID:
        known = {r.transaction_id for r in member.payment_history}
        if not transaction_id or transaction_id in known:
            return service

    record = PaymentRecord(
        date=confirmed_at or utcnow(),
        amount=amount,
        status=PaymentRecordStatus.PAID,
        method=method_for(provenance, transaction_id),
        sender=(sender or "").strip() or member.name,
        transaction_id=transaction_id or transaction_ref("TX-M", 10),
        expected_amount=service.per_slot_fee,
    )

    return replace_member(
        service,
        evolve(
            member,
            status=MemberStatus.PAID,
            payment_history=(record,) + member.payment_history,
        ),
    )


def manual_confirm(
    service: Service,
    member_id: str,
    transaction_id: Optional[str] = None,
) -> Service:
    """Admin confirmation for the computed per-slot fee."""
    member = get_member(service, member_id)
    return confirm_payment(
        service,
        member_id,
        amount=service.per_slot_fee,
        sender=member.name,
        transaction_id=transaction_id,
        provenance=Provenance.MANUAL,
    )


def downgrade(service: Service, member_id: str, to_status: MemberStatus) -> Service:
    """
    Admin correction: move a slot back to a lower status.

    paid -> pending keeps the payment history as an audit trail.
    Anything -> empty vacates the slot (name, history and expenses cleared).

    Raises:
        TransitionRejectedError: target status is not lower than the current one
    """
    member = get_member(service, member_id)
    to_status = MemberStatus(to_status)

    if to_status.rank >= member.status.rank:
        raise TransitionRejectedError(
            f"Cannot downgrade from {member.status.value} to {to_status.value}"
        )

    if to_status == MemberStatus.EMPTY:
        updated = Member(id=member.id)
    else:
        updated = evolve(member, status=to_status)

    return replace_member(service, updated)
