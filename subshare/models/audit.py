"""
Audit Models for SubShare

Every significant action on the ledger is logged for audit purposes.
This provides:
1. Complete traceability of who claimed, paid and was corrected
2. Debugging information when verification goes wrong
3. Ability to reconstruct history

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from subshare.models.ledger import utcnow


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Every command and every step of the verification flow has its own type.
    """
    # Service lifecycle
    SERVICE_CREATED = "service_created"
    SERVICE_IMPORT_FAILED = "service_import_failed"
    SERVICE_DELETED = "service_deleted"
    INSTRUCTIONS_UPDATED = "instructions_updated"

    # Payment lifecycle
    SLOT_CLAIMED = "slot_claimed"
    PAYMENT_CONFIRMED = "payment_confirmed"
    PAYMENT_DOWNGRADED = "payment_downgraded"

    # Verification workflow
    VERIFICATION_SUBMITTED = "verification_submitted"
    VERIFICATION_PASSED = "verification_passed"
    VERIFICATION_FAILED = "verification_failed"
    VERIFICATION_ACCEPTED = "verification_accepted"

    # Expense ledger
    EXPENSE_ADDED = "expense_added"
    EXPENSE_DELETED = "expense_deleted"

    # Credential guard
    CREDENTIALS_REVEALED = "credentials_revealed"
    CREDENTIALS_CONCEALED = "credentials_concealed"

    # Messaging
    REMINDER_GENERATED = "reminder_generated"

    # Rejections and failures
    COMMAND_REJECTED = "command_rejected"
    SYSTEM_ERROR = "system_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'service', 'member', 'expense')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )
    service_id: Optional[str] = Field(
        default=None,
        description="Service the entity belongs to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., one receipt verification)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )

    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "service_id": self.service_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_json_line(self) -> str:
        """Serialize as one line of a JSON-lines audit file."""
        return json.dumps(self.to_log_dict(), default=str)


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.slot_claimed(service_id, member_id, name)
        event = AuditEventBuilder.verification_failed(..., correlation_id)
    """

    @staticmethod
    def service_created(
        service_id: str,
        name: str,
        price: str,
        max_slots: int,
        source: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SERVICE_CREATED,
            entity_type="service",
            entity_id=service_id,
            service_id=service_id,
            description=f"Service created: {name} ({source})",
            details={
                "name": name,
                "price": price,
                "max_slots": max_slots,
                "source": source,
            },
            is_user_action=True,
        )

    @staticmethod
    def service_import_failed(reason: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SERVICE_IMPORT_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="service",
            description="Bill scan import aborted",
            error_message=reason,
            is_user_action=True,
        )

    @staticmethod
    def service_deleted(service_id: str, name: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SERVICE_DELETED,
            severity=AuditSeverity.WARNING,
            entity_type="service",
            entity_id=service_id,
            service_id=service_id,
            description=f"Service deleted: {name}",
            is_user_action=True,
        )

    @staticmethod
    def instructions_updated(service_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INSTRUCTIONS_UPDATED,
            entity_type="service",
            entity_id=service_id,
            service_id=service_id,
            description="Payment instructions updated",
            is_user_action=True,
        )

    @staticmethod
    def slot_claimed(
        service_id: str,
        member_id: str,
        name: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SLOT_CLAIMED,
            entity_type="member",
            entity_id=member_id,
            service_id=service_id,
            description=f"Slot claimed by {name}",
            details={"name": name},
            is_user_action=True,
        )

    @staticmethod
    def payment_confirmed(
        service_id: str,
        member_id: str,
        record_id: str,
        amount: str,
        method: str,
        transaction_id: Optional[str],
        discrepancy: str,
        has_discrepancy: bool = False,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PAYMENT_CONFIRMED,
            severity=AuditSeverity.WARNING if has_discrepancy else AuditSeverity.INFO,
            entity_type="member",
            entity_id=member_id,
            service_id=service_id,
            correlation_id=correlation_id,
            description=f"Payment confirmed ({method}): {amount}",
            details={
                "record_id": record_id,
                "amount": amount,
                "method": method,
                "transaction_id": transaction_id,
                "discrepancy": discrepancy,
            },
            is_user_action=True,
        )

    @staticmethod
    def payment_downgraded(
        service_id: str,
        member_id: str,
        from_status: str,
        to_status: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PAYMENT_DOWNGRADED,
            severity=AuditSeverity.WARNING,
            entity_type="member",
            entity_id=member_id,
            service_id=service_id,
            description=f"Slot corrected from {from_status} to {to_status}",
            details={"from_status": from_status, "to_status": to_status},
            is_user_action=True,
        )

    @staticmethod
    def verification_submitted(
        service_id: str,
        member_id: str,
        expected_amount: str,
        file_size: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VERIFICATION_SUBMITTED,
            entity_type="member",
            entity_id=member_id,
            service_id=service_id,
            correlation_id=correlation_id,
            description="Receipt submitted for verification",
            details={
                "expected_amount": expected_amount,
                "file_size_bytes": file_size,
            },
            is_user_action=True,
        )

    @staticmethod
    def verification_passed(
        service_id: str,
        member_id: str,
        detected_amount: str,
        detected_sender: str,
        transaction_id: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VERIFICATION_PASSED,
            entity_type="member",
            entity_id=member_id,
            service_id=service_id,
            correlation_id=correlation_id,
            description="Verifier accepted receipt, awaiting human review",
            details={
                "detected_amount": detected_amount,
                "detected_sender": detected_sender,
                "transaction_id": transaction_id,
            },
        )

    @staticmethod
    def verification_failed(
        service_id: str,
        member_id: str,
        reason: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VERIFICATION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="member",
            entity_id=member_id,
            service_id=service_id,
            correlation_id=correlation_id,
            description="Receipt verification failed",
            error_message=reason,
        )

    @staticmethod
    def verification_accepted(
        service_id: str,
        member_id: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VERIFICATION_ACCEPTED,
            entity_type="member",
            entity_id=member_id,
            service_id=service_id,
            correlation_id=correlation_id,
            description="User accepted verifier result",
            is_user_action=True,
        )

    @staticmethod
    def expense_added(
        service_id: str,
        member_id: str,
        expense_id: str,
        category: str,
        amount: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_ADDED,
            entity_type="expense",
            entity_id=expense_id,
            service_id=service_id,
            description=f"Expense added: {category} {amount}",
            details={
                "member_id": member_id,
                "category": category,
                "amount": amount,
            },
            is_user_action=True,
        )

    @staticmethod
    def expense_deleted(
        service_id: str,
        member_id: str,
        expense_id: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_DELETED,
            entity_type="expense",
            entity_id=expense_id,
            service_id=service_id,
            description="Expense deleted",
            details={"member_id": member_id},
            is_user_action=True,
        )

    @staticmethod
    def credentials_revealed(service_id: str, duration: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CREDENTIALS_REVEALED,
            entity_type="service",
            entity_id=service_id,
            service_id=service_id,
            description=f"Credentials revealed for {duration} ticks",
            details={"duration": duration},
            is_user_action=True,
        )

    @staticmethod
    def credentials_concealed(service_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CREDENTIALS_CONCEALED,
            entity_type="service",
            entity_id=service_id,
            service_id=service_id,
            description="Credentials concealed",
        )

    @staticmethod
    def reminder_generated(service_id: str, recipients: list[str]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REMINDER_GENERATED,
            entity_type="service",
            entity_id=service_id,
            service_id=service_id,
            description=f"Reminder drafted for {len(recipients)} members",
            details={"recipients": recipients},
            is_user_action=True,
        )

    @staticmethod
    def command_rejected(
        command: str,
        reason: str,
        service_id: Optional[str] = None,
        entity_id: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.COMMAND_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_id=entity_id,
            service_id=service_id,
            description=f"Command rejected: {command}",
            error_message=reason,
            details={"command": command},
            is_user_action=True,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={
                "service": service,
            },
            correlation_id=correlation_id,
        )
