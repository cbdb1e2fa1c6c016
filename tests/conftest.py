"""Shared fixtures. No real API calls: the AI assistant is always an AsyncMock."""

import json
from datetime import date
from unittest.mock import AsyncMock

import pytest

from subshare.agents import AIAssistantInterface
from subshare.audit import AuditLogger
from subshare.config import LedgerSettings
from subshare.models.verification import ReceiptImage
from subshare.services import InMemoryAuditStorage, InMemoryLedgerStore, demo_services


TODAY = date(2025, 1, 1)


def verdict_json(**overrides) -> str:
    """A verifier response for the demo service's 37200 fee."""
    payload = {
        "valid": True,
        "detectedAmount": 37200,
        "detectedSender": "Budi Santoso",
        "transactionId": "TX1",
        "reason": "Amount and sender match",
    }
    payload.update(overrides)
    return json.dumps(payload)


@pytest.fixture
def ledger_settings():
    return LedgerSettings(
        store_path="unused.json",
        audit_log_path="",
        seed_demo_data=True,
        success_display_seconds=0.01,
        verifier_timeout_seconds=1.0,
        reveal_duration=10,
        reveal_tick_seconds=0.01,
    )


@pytest.fixture
def netflix():
    """Demo service: 186000 IDR, 5 slots; m1 owner paid, m2 Budi pending, m3-m5 empty."""
    return demo_services(TODAY)[0]


@pytest.fixture
def receipt():
    return ReceiptImage(data=b"\x89PNG fake receipt", mime_type="image/png", filename="receipt.png")


@pytest.fixture
def assistant():
    mock = AsyncMock(spec=AIAssistantInterface)
    mock.verify_payment.return_value = verdict_json()
    mock.scan_bill.return_value = json.dumps({
        "serviceName": "Spotify Family",
        "totalPrice": 90000,
        "renewalDate": "2025-02-01",
        "maxSlots": 6,
    })
    mock.draft_reminder.return_value = "Hi Budi, please pay IDR 37,200 for Netflix Premium."
    return mock


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage):
    return AuditLogger(audit_storage)


@pytest.fixture
def empty_store():
    return InMemoryLedgerStore()


@pytest.fixture
def seeded_store(netflix):
    return InMemoryLedgerStore([netflix])
