"""
Aggregate Statistics

DESIGN DECISION: Statistics are DERIVED, never stored.
They are recomputed from the current service snapshots on every read,
so a deleted service or a downgraded member drops out immediately.

NOTE: total_collected uses the unrounded slot share (price / max_slots),
while members are asked to pay the ceiling-rounded per-slot fee. The two
deliberately differ; collection_rate reflects the share, not the fee.
"""

from decimal import Decimal
from typing import Iterable

from pydantic import BaseModel, ConfigDict, Field

from subshare.models.ledger import MemberStatus, Service


# Fixed history points of the dashboard sparkline; the last two are live.
TREND_BASELINE = (Decimal(30), Decimal(45), Decimal(40), Decimal(60))


class LedgerStats(BaseModel):
    """Totals across every service in the ledger."""
    model_config = ConfigDict(frozen=True)

    total_cost: Decimal = Decimal(0)
    total_collected: Decimal = Decimal(0)
    collection_rate: Decimal = Field(
        default=Decimal(0),
        description="Collected as a percentage of cost (0 when there is no cost)"
    )
    active_seats: int = 0
    total_slots: int = 0
    service_count: int = 0
    trend: tuple[Decimal, ...] = ()

    @property
    def open_seats(self) -> int:
        return self.total_slots - self.active_seats

    @property
    def outstanding(self) -> Decimal:
        return self.total_cost - self.total_collected


def collection_trend(rate: Decimal) -> tuple[Decimal, ...]:
    previous = rate - 5 if rate > 5 else Decimal(0)
    return TREND_BASELINE + (previous, rate)


def compute_stats(services: Iterable[Service]) -> LedgerStats:
    """Compute ledger totals from the current snapshots."""
    services = list(services)

    total_cost = sum((s.price for s in services), Decimal(0))
    total_collected = sum((s.paid_count * s.slot_share for s in services), Decimal(0))
    active_seats = sum(
        1 for s in services for m in s.members if m.status != MemberStatus.EMPTY
    )
    total_slots = sum(s.max_slots for s in services)

    rate = (total_collected / total_cost * 100) if total_cost > 0 else Decimal(0)

    return LedgerStats(
        total_cost=total_cost,
        total_collected=total_collected,
        collection_rate=rate,
        active_seats=active_seats,
        total_slots=total_slots,
        service_count=len(services),
        trend=collection_trend(rate),
    )
