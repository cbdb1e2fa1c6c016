"""
Data Models Package

This package contains all Pydantic models used in the SubShare ledger.
All data flowing through the system must conform to these schemas.
"""

from subshare.models.ledger import (
    MASKED_SECRET,
    Expense,
    ExpenseCategory,
    Member,
    MemberStatus,
    Notice,
    NoticeLevel,
    PaymentMethod,
    PaymentRecord,
    PaymentRecordStatus,
    Service,
    new_id,
)
from subshare.models.verification import (
    BillScan,
    ConfirmationRequest,
    ReceiptImage,
    VerificationSnapshot,
    VerificationVerdict,
    VerifyState,
)
from subshare.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "MASKED_SECRET",
    "Expense",
    "ExpenseCategory",
    "Member",
    "MemberStatus",
    "Notice",
    "NoticeLevel",
    "PaymentMethod",
    "PaymentRecord",
    "PaymentRecordStatus",
    "Service",
    "new_id",
    # Verification models
    "BillScan",
    "ConfirmationRequest",
    "ReceiptImage",
    "VerificationSnapshot",
    "VerificationVerdict",
    "VerifyState",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
