"""Demo ledger written on first start, when the store has never been saved."""

from datetime import date, timedelta
from decimal import Decimal
from typing import Optional

from subshare.credentials.obfuscation import obfuscate
from subshare.models.ledger import (
    Member,
    MemberStatus,
    PaymentMethod,
    PaymentRecord,
    Service,
)


def demo_services(today: Optional[date] = None) -> list[Service]:
    """One Netflix group: owner paid, one member pending, three open slots."""
    today = today or date.today()
    price = Decimal(186000)

    owner = Member(
        id="m1",
        name="Admin",
        status=MemberStatus.PAID,
        payment_history=(
            PaymentRecord(
                id="init-1",
                amount=price / 5,
                method=PaymentMethod.SYSTEM.value,
                sender="Admin",
                transaction_id="TX-ADMIN-INIT",
            ),
        ),
    )

    return [
        Service(
            id="1",
            name="Netflix Premium",
            price=price,
            currency="IDR",
            max_slots=5,
            renewal_date=today + timedelta(days=10),
            credentials=obfuscate("user@netflix.com | Pass: H3lloWorld"),
            payment_instructions="Transfer ke BCA 8821992121 a/n Admin SubShare",
            members=(
                owner,
                Member(id="m2", name="Budi Santoso", status=MemberStatus.PENDING),
                Member(id="m3"),
                Member(id="m4"),
                Member(id="m5"),
            ),
        )
    ]
