"""
Verification and Import Models

Schemas for what flows across the external AI boundary:
- ReceiptImage: bytes read from disk or an upload, before any AI call
- VerificationVerdict: the verifier's judgment of a payment receipt
- BillScan: the fields extracted from a subscription bill
- VerificationSnapshot: the observable state of one verification flow

CRITICAL: Verdicts and scans are PROPOSED data. A verdict only gates entry
to human review; nothing here alters financial state by itself.
"""

import mimetypes
from datetime import date
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Optional
from uuid import UUID

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)


ALLOWED_IMAGE_TYPES = {'image/jpeg', 'image/png', 'image/webp'}


class VerifyState(str, Enum):
    """States of the receipt verification flow."""
    IDLE = "idle"
    SCANNING = "scanning"
    REVIEW = "review"
    SUCCESS = "success"
    ERROR = "error"


class ReceiptImage(BaseModel):
    """An image fully read into memory, ready for the verifier."""
    model_config = ConfigDict(frozen=True)

    data: bytes = Field(..., min_length=1, repr=False)
    mime_type: str
    filename: Optional[str] = None

    @field_validator('mime_type')
    @classmethod
    def validate_mime_type(cls, v: str) -> str:
        """Only allow image types."""
        if v.lower() not in ALLOWED_IMAGE_TYPES:
            raise ValueError(f"Unsupported image type: {v}. Allowed: {ALLOWED_IMAGE_TYPES}")
        return v.lower()

    @property
    def size_bytes(self) -> int:
        return len(self.data)

    @classmethod
    def from_path(cls, path: Path) -> 'ReceiptImage':
        """Read an image file; the mime type is guessed from the extension."""
        mime_type, _ = mimetypes.guess_type(path.name)
        return cls(
            data=path.read_bytes(),
            mime_type=mime_type or "application/octet-stream",
            filename=path.name,
        )


class VerificationVerdict(BaseModel):
    """
    The verifier's structured judgment of a payment receipt.

    Field names accept both the wire format (camelCase) and Python names.
    Any response that fails to validate against this model is treated
    as valid=False by the caller.
    """
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    valid: bool
    detected_amount: Decimal = Field(
        ...,
        ge=0,
        validation_alias=AliasChoices("detectedAmount", "detected_amount"),
    )
    detected_sender: str = Field(
        ...,
        validation_alias=AliasChoices("detectedSender", "detected_sender"),
    )
    transaction_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("transactionId", "transaction_id"),
    )
    reason: str = ""

    @field_validator('transaction_id')
    @classmethod
    def blank_transaction_id_is_missing(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        return v.strip()

    @classmethod
    def rejected(cls, reason: str) -> 'VerificationVerdict':
        """A negative verdict built locally (malformed response, failed call)."""
        return cls(
            valid=False,
            detected_amount=Decimal(0),
            detected_sender="",
            reason=reason,
        )


class BillScan(BaseModel):
    """
    Fields extracted from a subscription bill by the AI scanner.

    All four fields are required; a scan missing any of them aborts
    the import.
    """
    model_config = ConfigDict(populate_by_name=True, frozen=True, str_strip_whitespace=True)

    service_name: str = Field(
        ...,
        min_length=1,
        max_length=200,
        validation_alias=AliasChoices("serviceName", "service_name"),
    )
    total_price: Decimal = Field(
        ...,
        gt=0,
        validation_alias=AliasChoices("totalPrice", "total_price"),
    )
    renewal_date: date = Field(
        ...,
        validation_alias=AliasChoices("renewalDate", "renewal_date"),
    )
    max_slots: int = Field(
        ...,
        gt=0,
        le=50,
        validation_alias=AliasChoices("maxSlots", "max_slots"),
    )


class ConfirmationRequest(BaseModel):
    """The confirm_payment command produced by accepting a verdict."""
    model_config = ConfigDict(frozen=True)

    service_id: str
    member_id: str
    amount: Decimal
    sender: str
    transaction_id: str
    correlation_id: UUID


class VerificationSnapshot(BaseModel):
    """Observable state of one (service, member) verification flow."""
    model_config = ConfigDict(frozen=True)

    service_id: str
    member_id: str
    state: VerifyState = VerifyState.IDLE
    expected_amount: Optional[Decimal] = None
    expected_sender: Optional[str] = None
    detected_amount: Optional[Decimal] = None
    detected_sender: Optional[str] = None
    transaction_id: Optional[str] = None
    message: Optional[str] = None
    correlation_id: Optional[UUID] = None
