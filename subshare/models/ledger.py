"""
Core Ledger Models for SubShare

These models define the strict schemas for the shared-subscription ledger:
services split into slots, the members holding those slots, the payments
they prove and the incidental expenses attributed to them.

DESIGN DECISION: Every model is frozen and every collection is a tuple.
A mutation never edits an aggregate in place; it builds a new snapshot
with model_copy(update=...). The engine functions in subshare.engine
rely on this to stay pure.
"""

from datetime import date, datetime, timezone
from decimal import ROUND_CEILING, Decimal
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)


MASKED_SECRET = "••••••••••••"


def new_id(prefix: str = "") -> str:
    """Generate a short unique identifier, optionally prefixed."""
    token = uuid4().hex[:12]
    return f"{prefix}-{token}" if prefix else token


def transaction_ref(prefix: str = "TX", length: int = 8) -> str:
    """Generate an uppercase transaction reference such as TX-3F9A0C1B."""
    return f"{prefix}-{uuid4().hex[:length].upper()}"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def evolve(model: BaseModel, **changes) -> BaseModel:
    """
    Build a changed copy of a frozen model, re-running its validators.

    model_copy(update=...) skips validation; snapshots built here must
    still satisfy every model invariant.
    """
    return type(model).model_validate({**dict(model), **changes})


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class MemberStatus(str, Enum):
    """
    Slot status.

    Status only moves forward (empty -> pending -> paid) except through
    the explicit admin downgrade in subshare.engine.payments.
    """
    EMPTY = "empty"      # Slot not claimed by anyone
    PENDING = "pending"  # Claimed, payment not yet confirmed
    PAID = "paid"        # Payment confirmed

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]


_STATUS_RANK = {
    MemberStatus.EMPTY: 0,
    MemberStatus.PENDING: 1,
    MemberStatus.PAID: 2,
}


class PaymentRecordStatus(str, Enum):
    """Status of a single payment record."""
    PAID = "paid"
    VERIFIED = "verified"


class PaymentMethod(str, Enum):
    """
    Provenance labels written to PaymentRecord.method.

    Purely informational (audit trail); nothing branches on them.
    """
    AI_VERIFIED = "AI Verified"
    MANUAL = "Manual"
    OWNER = "Owner"
    SYSTEM = "System"


class ExpenseCategory(str, Enum):
    """
    Supported expense categories.

    DESIGN DECISION: Using explicit categories rather than free text ensures
    consistent bookkeeping of incidental charges.
    """
    UPGRADE = "Upgrade"
    ADD_ON = "Add-on"
    LATE_FEE = "Late Fee"
    GIFT = "Gift"
    OTHER = "Other"


# =============================================================================
# LEDGER ENTRIES
# =============================================================================

class PaymentRecord(BaseModel):
    """
    One confirmed payment for a slot.

    Immutable once created. A new confirmation prepends a new record
    instead of editing history.
    """
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    id: str = Field(default_factory=lambda: new_id("p"))
    date: datetime = Field(
        default_factory=utcnow,
        description="When the payment was confirmed (UTC)"
    )
    amount: Decimal = Field(
        ...,
        ge=0,
        description="Amount confirmed, exactly as supplied by the caller"
    )
    status: PaymentRecordStatus = PaymentRecordStatus.PAID
    method: str = Field(
        default=PaymentMethod.MANUAL.value,
        description="Free-text provenance label"
    )
    transaction_id: Optional[str] = Field(
        default=None,
        max_length=100,
        description="Bank reference / transaction number"
    )
    sender: Optional[str] = Field(
        default=None,
        max_length=200,
        description="Name of the payer as recorded"
    )
    expected_amount: Optional[Decimal] = Field(
        default=None,
        ge=0,
        description="Per-slot fee at confirmation time, for discrepancy checks"
    )

    @property
    def discrepancy(self) -> Decimal:
        """Confirmed amount minus expected fee (zero when nothing was expected)."""
        if self.expected_amount is None:
            return Decimal(0)
        return self.amount - self.expected_amount

    @property
    def has_discrepancy(self) -> bool:
        """Non-blocking flag: the confirmed amount differs from the fee."""
        return self.discrepancy != 0


class Expense(BaseModel):
    """An incidental charge attributed to one member."""
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    id: str = Field(default_factory=lambda: new_id("exp"))
    date: date
    amount: Decimal = Field(
        ...,
        gt=0,
        description="Charge amount (must be positive)"
    )
    category: ExpenseCategory
    description: str = Field(
        default="",
        max_length=200,
    )


# =============================================================================
# AGGREGATE
# =============================================================================

class Member(BaseModel):
    """
    The holder of one slot.

    Invariants:
    - empty  <=> name is ""
    - empty   => no payment history
    - paid    => newest payment record exists and has status "paid"
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: new_id("m"))
    name: str = Field(default="", max_length=100)
    status: MemberStatus = MemberStatus.EMPTY
    payment_history: tuple[PaymentRecord, ...] = ()
    expenses: tuple[Expense, ...] = ()

    @model_validator(mode='after')
    def validate_status(self) -> 'Member':
        """Keep name and history consistent with status."""
        if self.status == MemberStatus.EMPTY:
            if self.name:
                raise ValueError("Empty slot cannot have a name")
            if self.payment_history:
                raise ValueError("Empty slot cannot have payment history")
        elif not self.name.strip():
            raise ValueError("Claimed slot must have a name")

        if self.status == MemberStatus.PAID:
            if not self.payment_history:
                raise ValueError("Paid member must have payment history")
            if self.payment_history[0].status != PaymentRecordStatus.PAID:
                raise ValueError("Newest payment record of a paid member must be 'paid'")

        return self

    @property
    def latest_payment(self) -> Optional[PaymentRecord]:
        return self.payment_history[0] if self.payment_history else None

    @property
    def total_expenses(self) -> Decimal:
        return sum((e.amount for e in self.expenses), Decimal(0))


class Service(BaseModel):
    """
    A shared subscription divided into a fixed number of slots.

    CRITICAL: len(members) == max_slots at all times. The count is
    fixed at creation and checked on every snapshot.
    """
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    id: str = Field(default_factory=new_id)
    name: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Service name, e.g. 'Netflix Premium'"
    )
    price: Decimal = Field(
        ...,
        gt=0,
        description="Total price of the subscription per period"
    )
    currency: str = Field(
        default="IDR",
        min_length=3,
        max_length=3,
    )
    max_slots: int = Field(
        ...,
        gt=0,
        description="Number of slots, fixed at creation"
    )
    renewal_date: date
    credentials: str = Field(
        default="",
        description="Obfuscated shared secret (see subshare.credentials)"
    )
    payment_instructions: Optional[str] = Field(
        default=None,
        max_length=500,
    )
    members: tuple[Member, ...]

    @model_validator(mode='after')
    def validate_slots(self) -> 'Service':
        """Enforce the slot count and unique member ids."""
        if len(self.members) != self.max_slots:
            raise ValueError(
                f"Service must have exactly {self.max_slots} members, "
                f"got {len(self.members)}"
            )
        ids = [m.id for m in self.members]
        if len(set(ids)) != len(ids):
            raise ValueError("Member ids must be unique within a service")
        return self

    @property
    def per_slot_fee(self) -> Decimal:
        """Ceiling-rounded share used for display and manual confirmation."""
        return (self.price / self.max_slots).to_integral_value(rounding=ROUND_CEILING)

    @property
    def slot_share(self) -> Decimal:
        """Unrounded share of the price. Statistics use this, not the fee."""
        return self.price / self.max_slots

    def members_with_status(self, status: MemberStatus) -> list[Member]:
        return [m for m in self.members if m.status == status]

    @property
    def paid_count(self) -> int:
        return len(self.members_with_status(MemberStatus.PAID))

    def find_member(self, member_id: str) -> Optional[Member]:
        for member in self.members:
            if member.id == member_id:
                return member
        return None

    def days_until_renewal(self, today: Optional[date] = None) -> int:
        """Days left before renewal; negative once expired."""
        today = today or date.today()
        return (self.renewal_date - today).days

    def is_expired(self, today: Optional[date] = None) -> bool:
        return self.days_until_renewal(today) < 0

    def is_renewal_due(self, today: Optional[date] = None) -> bool:
        """Renewal is close enough to chase payments (fewer than 5 days)."""
        return self.days_until_renewal(today) < 5


# =============================================================================
# COMMAND RESULTS
# =============================================================================

class NoticeLevel(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    INFO = "info"


class Notice(BaseModel):
    """User-visible outcome of a command."""
    model_config = ConfigDict(frozen=True)

    message: str
    level: NoticeLevel = NoticeLevel.INFO

    @classmethod
    def success(cls, message: str) -> 'Notice':
        return cls(message=message, level=NoticeLevel.SUCCESS)

    @classmethod
    def error(cls, message: str) -> 'Notice':
        return cls(message=message, level=NoticeLevel.ERROR)

    @classmethod
    def info(cls, message: str) -> 'Notice':
        return cls(message=message, level=NoticeLevel.INFO)

    @property
    def ok(self) -> bool:
        return self.level != NoticeLevel.ERROR
