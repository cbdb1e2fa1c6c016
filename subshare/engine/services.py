"""
Service creation and collection operations.

A service is created with every slot in place: slot 0 belongs to the
owner and starts out paid, the rest start empty. The collection itself
is a tuple of Service snapshots; these helpers return new tuples.
"""

from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from subshare.engine.payments import Provenance, method_for
from subshare.errors import ServiceNotFoundError
from subshare.models.ledger import (
    Member,
    MemberStatus,
    PaymentRecord,
    Service,
    evolve,
    new_id,
    transaction_ref,
)


OWNER_NAME = "Admin"


def create_service(
    name: str,
    price: Decimal,
    max_slots: int,
    renewal_date: date,
    credentials: str,
    currency: str = "IDR",
    payment_instructions: Optional[str] = None,
    owner_name: str = OWNER_NAME,
) -> Service:
    """
    Build a new Service with its owner slot already paid.

    Args:
        credentials: the already obfuscated secret
    """
    service_id = new_id()
    price = Decimal(str(price))
    share = (price / max_slots).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

    owner_record = PaymentRecord(
        amount=share,
        method=method_for(Provenance.OWNER_SETUP, None),
        sender=owner_name,
        transaction_id=transaction_ref("TX-OWNER", 10),
    )
    members = [
        Member(
            id=new_id("m"),
            name=owner_name,
            status=MemberStatus.PAID,
            payment_history=(owner_record,),
        )
    ]
    members.extend(Member(id=new_id("m")) for _ in range(max_slots - 1))

    return Service(
        id=service_id,
        name=name,
        price=price,
        currency=currency,
        max_slots=max_slots,
        renewal_date=renewal_date,
        credentials=credentials,
        payment_instructions=payment_instructions or None,
        members=tuple(members),
    )


def find_service(services: tuple[Service, ...], service_id: str) -> Service:
    for service in services:
        if service.id == service_id:
            return service
    raise ServiceNotFoundError(service_id)


def add_service(services: tuple[Service, ...], service: Service) -> tuple[Service, ...]:
    return services + (service,)


def replace_service(services: tuple[Service, ...], service: Service) -> tuple[Service, ...]:
    find_service(services, service.id)
    return tuple(service if s.id == service.id else s for s in services)


def remove_service(services: tuple[Service, ...], service_id: str) -> tuple[Service, ...]:
    """Drop a service and, with it, every member, record and expense."""
    find_service(services, service_id)
    return tuple(s for s in services if s.id != service_id)


def set_payment_instructions(service: Service, instructions: Optional[str]) -> Service:
    text = (instructions or "").strip()
    return evolve(service, payment_instructions=text or None)
