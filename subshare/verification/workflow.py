"""
Receipt Verification Workflow

Orchestrates one receipt check per (service, member) slot:

    idle --submit--> scanning --valid--> review --accept--> success --delay--> idle
                        |
                        +--invalid / malformed / failed--> error --retry--> idle

DESIGN DECISION: The verifier's "valid" only opens review. The payment is
recorded when a human accepts the detected amount and sender. Amount and
sender extraction is heuristic and must not alter financial state by itself.

Submission is one sequential pipeline with a single suspension point:
image bytes are already in memory -> verifier call -> state transition.

Concurrency:
- a slot that is scanning rejects a second submission
- every submission carries an attempt token; a response that arrives
  after its attempt was cancelled or superseded is dropped
- flows for other slots, and every other command, are never blocked
"""

import asyncio
from decimal import Decimal
from typing import Awaitable, Callable, Optional

import structlog

from subshare.agents import AIAssistantInterface, parse_verdict
from subshare.audit import AuditLogger, create_correlation_id
from subshare.engine.payments import get_member
from subshare.errors import (
    InputValidationError,
    InvalidVerificationStateError,
    TransitionRejectedError,
    VerificationInProgressError,
)
from subshare.models.audit import AuditEventBuilder
from subshare.models.ledger import MemberStatus, Service, transaction_ref
from subshare.models.verification import (
    ConfirmationRequest,
    ReceiptImage,
    VerificationSnapshot,
    VerifyState,
)


AI_CALL_FAILED = "AI processing failed. Check your network or API key."

FlowKey = tuple[str, str]
CommitCallback = Callable[[ConfirmationRequest], Awaitable[None]]

logger = structlog.get_logger(__name__)


class VerificationWorkflow:
    """
    State machines for all in-flight receipt verifications.

    The workflow never writes to the ledger. Accepting a result hands a
    ConfirmationRequest to the caller's commit callback, which applies it
    through the payment lifecycle engine.
    """

    def __init__(
        self,
        assistant: AIAssistantInterface,
        audit_logger: Optional[AuditLogger] = None,
        timeout_seconds: float = 30.0,
        success_display_seconds: float = 1.5,
        max_image_bytes: Optional[int] = None,
    ):
        self._assistant = assistant
        self._audit_logger = audit_logger
        self._timeout = timeout_seconds
        self._success_delay = success_display_seconds
        self._max_image_bytes = max_image_bytes
        self._flows: dict[FlowKey, VerificationSnapshot] = {}
        self._attempts: dict[FlowKey, int] = {}
        self._reset_tasks: dict[FlowKey, asyncio.Task] = {}

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def state(self, service_id: str, member_id: str) -> VerificationSnapshot:
        return self._flows.get(
            (service_id, member_id),
            VerificationSnapshot(service_id=service_id, member_id=member_id),
        )

    def active_flows(self) -> list[VerificationSnapshot]:
        return [s for s in self._flows.values() if s.state != VerifyState.IDLE]

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def submit(
        self,
        service: Service,
        member_id: str,
        image: ReceiptImage,
    ) -> VerificationSnapshot:
        """
        Send a receipt to the verifier: idle -> scanning -> review | error.

        Verifier failures never raise; they end in the error state.

        Raises:
            VerificationInProgressError: this slot is already scanning
            InvalidVerificationStateError: flow is in review/success/error
            TransitionRejectedError: the slot has not been claimed
            InputValidationError: image too large
        """
        key = (service.id, member_id)
        current = self.state(*key)
        if current.state == VerifyState.SCANNING:
            raise VerificationInProgressError(
                "A receipt for this slot is already being verified"
            )
        if current.state != VerifyState.IDLE:
            raise InvalidVerificationStateError(
                f"Cannot submit a receipt while verification is {current.state.value}"
            )

        member = get_member(service, member_id)
        if member.status == MemberStatus.EMPTY:
            raise TransitionRejectedError("Claim the slot before submitting a receipt")
        if self._max_image_bytes and image.size_bytes > self._max_image_bytes:
            raise InputValidationError(
                f"Receipt image is too large ({image.size_bytes} bytes)"
            )

        # Transient working copy of what the receipt should show
        expected_amount = service.per_slot_fee
        expected_sender = member.name

        attempt = self._next_attempt(key)
        correlation_id = create_correlation_id()
        self._flows[key] = VerificationSnapshot(
            service_id=service.id,
            member_id=member_id,
            state=VerifyState.SCANNING,
            expected_amount=expected_amount,
            expected_sender=expected_sender,
            correlation_id=correlation_id,
        )
        await self._audit(AuditEventBuilder.verification_submitted(
            service_id=service.id,
            member_id=member_id,
            expected_amount=str(expected_amount),
            file_size=image.size_bytes,
            correlation_id=correlation_id,
        ))

        try:
            raw = await asyncio.wait_for(
                self._assistant.verify_payment(image, expected_amount, expected_sender),
                timeout=self._timeout,
            )
        except asyncio.CancelledError:
            if self._is_current(key, attempt):
                self._to_idle(key)
            raise
        except Exception as e:
            if not self._is_current(key, attempt):
                logger.info("stale_verification_failure_dropped", service_id=service.id, member_id=member_id)
                return self.state(*key)
            if self._audit_logger:
                await self._audit_logger.log_external_service_error(
                    service="verifier",
                    error_message=str(e) or type(e).__name__,
                    correlation_id=correlation_id,
                )
            return await self._fail(key, AI_CALL_FAILED)

        if not self._is_current(key, attempt):
            logger.info("stale_verification_result_dropped", service_id=service.id, member_id=member_id)
            return self.state(*key)

        verdict = parse_verdict(raw)
        if not verdict.valid:
            return await self._fail(key, verdict.reason)

        transaction_id = verdict.transaction_id or transaction_ref("TX")
        snapshot = self._flows[key].model_copy(update={
            "state": VerifyState.REVIEW,
            "detected_amount": verdict.detected_amount,
            "detected_sender": verdict.detected_sender,
            "transaction_id": transaction_id,
            "message": verdict.reason,
        })
        self._flows[key] = snapshot
        await self._audit(AuditEventBuilder.verification_passed(
            service_id=service.id,
            member_id=member_id,
            detected_amount=str(verdict.detected_amount),
            detected_sender=verdict.detected_sender,
            transaction_id=transaction_id,
            correlation_id=correlation_id,
        ))
        return snapshot

    async def accept(
        self,
        service_id: str,
        member_id: str,
        commit: CommitCallback,
    ) -> ConfirmationRequest:
        """
        The human checkpoint ("Confirm AI Result"): review -> success.

        commit receives the confirmation command and must apply it to the
        ledger. If it raises, the flow moves to error and the exception
        propagates.
        """
        key = (service_id, member_id)
        snapshot = self._require(key, VerifyState.REVIEW, "accept")

        request = ConfirmationRequest(
            service_id=service_id,
            member_id=member_id,
            amount=snapshot.detected_amount or Decimal(0),
            sender=snapshot.detected_sender or snapshot.expected_sender or "",
            transaction_id=snapshot.transaction_id,
            correlation_id=snapshot.correlation_id,
        )

        try:
            await commit(request)
        except Exception as e:
            await self._fail(key, f"Could not record payment: {e}")
            raise

        self._flows[key] = snapshot.model_copy(update={"state": VerifyState.SUCCESS})
        await self._audit(AuditEventBuilder.verification_accepted(
            service_id=service_id,
            member_id=member_id,
            correlation_id=snapshot.correlation_id,
        ))
        self._schedule_reset(key, self._attempts[key])
        return request

    def retry(self, service_id: str, member_id: str) -> VerificationSnapshot:
        """error -> idle, ready for a new submission."""
        key = (service_id, member_id)
        self._require(key, VerifyState.ERROR, "retry")
        return self._to_idle(key)

    def reset(self, service_id: str, member_id: str) -> VerificationSnapshot:
        """success -> idle without waiting for the display delay."""
        key = (service_id, member_id)
        self._require(key, VerifyState.SUCCESS, "reset")
        return self._to_idle(key)

    def cancel(self, service_id: str, member_id: str) -> VerificationSnapshot:
        """
        Abandon the flow from any state.

        An in-flight verifier call is not interrupted, but its response
        will be dropped when it arrives.
        """
        key = (service_id, member_id)
        self._next_attempt(key)
        return self._to_idle(key)

    def cancel_service(self, service_id: str) -> None:
        """Cancel every flow belonging to a service (e.g. it was deleted)."""
        for key in [k for k in self._flows if k[0] == service_id]:
            self.cancel(*key)

    def close(self) -> None:
        """Stop pending success->idle timers."""
        for task in self._reset_tasks.values():
            task.cancel()
        self._reset_tasks.clear()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _next_attempt(self, key: FlowKey) -> int:
        self._attempts[key] = self._attempts.get(key, 0) + 1
        return self._attempts[key]

    def _is_current(self, key: FlowKey, attempt: int) -> bool:
        return (
            self._attempts.get(key) == attempt
            and self.state(*key).state == VerifyState.SCANNING
        )

    def _require(self, key: FlowKey, expected: VerifyState, action: str) -> VerificationSnapshot:
        snapshot = self.state(*key)
        if snapshot.state != expected:
            raise InvalidVerificationStateError(
                f"Cannot {action} while verification is {snapshot.state.value}"
            )
        return snapshot

    def _to_idle(self, key: FlowKey) -> VerificationSnapshot:
        task = self._reset_tasks.pop(key, None)
        if task is not None and task is not _current_task():
            task.cancel()
        self._flows.pop(key, None)
        return self.state(*key)

    async def _fail(self, key: FlowKey, reason: str) -> VerificationSnapshot:
        snapshot = self.state(*key).model_copy(update={
            "state": VerifyState.ERROR,
            "message": reason,
        })
        self._flows[key] = snapshot
        await self._audit(AuditEventBuilder.verification_failed(
            service_id=key[0],
            member_id=key[1],
            reason=reason,
            correlation_id=snapshot.correlation_id,
        ))
        return snapshot

    def _schedule_reset(self, key: FlowKey, attempt: int) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._reset_tasks[key] = loop.create_task(self._reset_after_delay(key, attempt))

    async def _reset_after_delay(self, key: FlowKey, attempt: int) -> None:
        await asyncio.sleep(self._success_delay)
        if self._attempts.get(key) == attempt and self.state(*key).state == VerifyState.SUCCESS:
            self._to_idle(key)

    async def _audit(self, event) -> None:
        if self._audit_logger:
            await self._audit_logger.log(event)


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None
