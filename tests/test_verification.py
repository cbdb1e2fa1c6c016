"""Tests for the receipt verification workflow (mocked verifier)."""

import asyncio

import pytest
from decimal import Decimal

from subshare import engine
from subshare.agents import UNREADABLE_RECEIPT
from subshare.errors import (
    AIServiceError,
    InputValidationError,
    InvalidVerificationStateError,
    TransitionRejectedError,
    VerificationInProgressError,
)
from subshare.models import AuditEventType, VerifyState
from subshare.verification import AI_CALL_FAILED, VerificationWorkflow

from tests.conftest import verdict_json


def _workflow(assistant, audit_logger=None, **kwargs) -> VerificationWorkflow:
    kwargs.setdefault("success_display_seconds", 0.01)
    return VerificationWorkflow(assistant, audit_logger=audit_logger, **kwargs)


class TestSubmit:

    @pytest.mark.asyncio
    async def test_valid_verdict_opens_review(self, netflix, receipt, assistant):
        workflow = _workflow(assistant)
        snapshot = await workflow.submit(netflix, "m2", receipt)

        assert snapshot.state == VerifyState.REVIEW
        assert snapshot.detected_amount == Decimal("37200")
        assert snapshot.detected_sender == "Budi Santoso"
        assert snapshot.transaction_id == "TX1"
        assistant.verify_payment.assert_awaited_once_with(receipt, Decimal("37200"), "Budi Santoso")

    @pytest.mark.asyncio
    async def test_invalid_verdict_goes_to_error(self, netflix, receipt, assistant):
        assistant.verify_payment.return_value = verdict_json(valid=False, reason="Amount mismatch")
        workflow = _workflow(assistant)

        snapshot = await workflow.submit(netflix, "m2", receipt)

        assert snapshot.state == VerifyState.ERROR
        assert snapshot.message == "Amount mismatch"

    @pytest.mark.asyncio
    async def test_malformed_response_is_invalid(self, netflix, receipt, assistant):
        assistant.verify_payment.return_value = "I think this looks fine!"
        snapshot = await _workflow(assistant).submit(netflix, "m2", receipt)

        assert snapshot.state == VerifyState.ERROR
        assert snapshot.message == UNREADABLE_RECEIPT

    @pytest.mark.asyncio
    async def test_schema_violation_is_invalid(self, netflix, receipt, assistant):
        assistant.verify_payment.return_value = '{"valid": true}'
        snapshot = await _workflow(assistant).submit(netflix, "m2", receipt)
        assert snapshot.state == VerifyState.ERROR

    @pytest.mark.asyncio
    async def test_verifier_failure_goes_to_error(self, netflix, receipt, assistant, audit_logger, audit_storage):
        assistant.verify_payment.side_effect = AIServiceError("quota exceeded")
        snapshot = await _workflow(assistant, audit_logger).submit(netflix, "m2", receipt)

        assert snapshot.state == VerifyState.ERROR
        assert snapshot.message == AI_CALL_FAILED
        types = [e.event_type for e in audit_storage.events]
        assert AuditEventType.EXTERNAL_SERVICE_ERROR in types
        assert AuditEventType.VERIFICATION_FAILED in types

    @pytest.mark.asyncio
    async def test_timeout_goes_to_error(self, netflix, receipt, assistant):
        async def slow(*args):
            await asyncio.sleep(1)
            return verdict_json()

        assistant.verify_payment.side_effect = slow
        snapshot = await _workflow(assistant, timeout_seconds=0.01).submit(netflix, "m2", receipt)
        assert snapshot.state == VerifyState.ERROR

    @pytest.mark.asyncio
    async def test_missing_transaction_id_synthesized(self, netflix, receipt, assistant):
        assistant.verify_payment.return_value = verdict_json(transactionId=None)
        snapshot = await _workflow(assistant).submit(netflix, "m2", receipt)

        assert snapshot.state == VerifyState.REVIEW
        assert snapshot.transaction_id.startswith("TX-")
        assert len(snapshot.transaction_id) == 11

    @pytest.mark.asyncio
    async def test_empty_slot_rejected(self, netflix, receipt, assistant):
        with pytest.raises(TransitionRejectedError):
            await _workflow(assistant).submit(netflix, "m3", receipt)
        assistant.verify_payment.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_oversized_image_rejected(self, netflix, receipt, assistant):
        workflow = _workflow(assistant, max_image_bytes=4)
        with pytest.raises(InputValidationError):
            await workflow.submit(netflix, "m2", receipt)
        assert workflow.state("1", "m2").state == VerifyState.IDLE

    @pytest.mark.asyncio
    async def test_submit_outside_idle_rejected(self, netflix, receipt, assistant):
        workflow = _workflow(assistant)
        await workflow.submit(netflix, "m2", receipt)
        with pytest.raises(InvalidVerificationStateError):
            await workflow.submit(netflix, "m2", receipt)


class TestConcurrency:

    @pytest.mark.asyncio
    async def test_second_submit_while_scanning_rejected(self, netflix, receipt, assistant):
        release = asyncio.Event()

        async def held(*args):
            await release.wait()
            return verdict_json()

        assistant.verify_payment.side_effect = held
        workflow = _workflow(assistant)

        first = asyncio.create_task(workflow.submit(netflix, "m2", receipt))
        await asyncio.sleep(0)
        assert workflow.state("1", "m2").state == VerifyState.SCANNING

        with pytest.raises(VerificationInProgressError):
            await workflow.submit(netflix, "m2", receipt)

        release.set()
        snapshot = await first
        assert snapshot.state == VerifyState.REVIEW

    @pytest.mark.asyncio
    async def test_other_pairs_unaffected(self, netflix, receipt, assistant):
        release = asyncio.Event()

        async def held(*args):
            await release.wait()
            return verdict_json()

        assistant.verify_payment.side_effect = held
        workflow = _workflow(assistant)
        service = engine.claim_slot(netflix, "m3", "Citra")

        first = asyncio.create_task(workflow.submit(service, "m2", receipt))
        second = asyncio.create_task(workflow.submit(service, "m3", receipt))
        await asyncio.sleep(0)
        assert workflow.state("1", "m2").state == VerifyState.SCANNING
        assert workflow.state("1", "m3").state == VerifyState.SCANNING

        release.set()
        await asyncio.gather(first, second)
        assert len(workflow.active_flows()) == 2

    @pytest.mark.asyncio
    async def test_stale_result_discarded_after_cancel(self, netflix, receipt, assistant):
        release = asyncio.Event()

        async def held(*args):
            await release.wait()
            return verdict_json()

        assistant.verify_payment.side_effect = held
        workflow = _workflow(assistant)

        first = asyncio.create_task(workflow.submit(netflix, "m2", receipt))
        await asyncio.sleep(0)
        workflow.cancel("1", "m2")

        release.set()
        snapshot = await first
        assert snapshot.state == VerifyState.IDLE
        assert workflow.state("1", "m2").state == VerifyState.IDLE

    @pytest.mark.asyncio
    async def test_stale_result_does_not_overwrite_newer_attempt(self, netflix, receipt, assistant):
        old_release = asyncio.Event()
        responses = iter([
            (old_release, verdict_json(transactionId="OLD")),
            (None, verdict_json(transactionId="NEW")),
        ])

        async def respond(*args):
            gate, payload = next(responses)
            if gate is not None:
                await gate.wait()
            return payload

        assistant.verify_payment.side_effect = respond
        workflow = _workflow(assistant)

        old = asyncio.create_task(workflow.submit(netflix, "m2", receipt))
        await asyncio.sleep(0)
        workflow.cancel("1", "m2")

        newer = await workflow.submit(netflix, "m2", receipt)
        assert newer.transaction_id == "NEW"

        old_release.set()
        await old
        assert workflow.state("1", "m2").transaction_id == "NEW"


class TestAcceptAndReset:

    @pytest.mark.asyncio
    async def test_accept_commits_confirmation(self, netflix, receipt, assistant, audit_logger, audit_storage):
        workflow = _workflow(assistant, audit_logger)
        await workflow.submit(netflix, "m2", receipt)

        committed = []

        async def commit(request):
            committed.append(request)

        request = await workflow.accept("1", "m2", commit)

        assert committed == [request]
        assert request.amount == Decimal("37200")
        assert request.sender == "Budi Santoso"
        assert request.transaction_id == "TX1"
        assert workflow.state("1", "m2").state == VerifyState.SUCCESS

        correlation_ids = {e.correlation_id for e in audit_storage.events}
        assert correlation_ids == {request.correlation_id}

    @pytest.mark.asyncio
    async def test_success_returns_to_idle(self, netflix, receipt, assistant):
        workflow = _workflow(assistant, success_display_seconds=0.01)
        await workflow.submit(netflix, "m2", receipt)

        async def commit(request):
            return None

        await workflow.accept("1", "m2", commit)
        await asyncio.sleep(0.05)
        assert workflow.state("1", "m2").state == VerifyState.IDLE

    @pytest.mark.asyncio
    async def test_reset_success_immediately(self, netflix, receipt, assistant):
        workflow = _workflow(assistant, success_display_seconds=60)
        await workflow.submit(netflix, "m2", receipt)

        async def commit(request):
            return None

        await workflow.accept("1", "m2", commit)
        workflow.reset("1", "m2")
        assert workflow.state("1", "m2").state == VerifyState.IDLE
        workflow.close()

    @pytest.mark.asyncio
    async def test_commit_failure_goes_to_error(self, netflix, receipt, assistant):
        workflow = _workflow(assistant)
        await workflow.submit(netflix, "m2", receipt)

        async def commit(request):
            raise TransitionRejectedError("Slot has not been claimed yet")

        with pytest.raises(TransitionRejectedError):
            await workflow.accept("1", "m2", commit)
        assert workflow.state("1", "m2").state == VerifyState.ERROR

    @pytest.mark.asyncio
    async def test_accept_outside_review_rejected(self, assistant):
        workflow = _workflow(assistant)

        async def commit(request):
            return None

        with pytest.raises(InvalidVerificationStateError):
            await workflow.accept("1", "m2", commit)

    @pytest.mark.asyncio
    async def test_retry_from_error(self, netflix, receipt, assistant):
        assistant.verify_payment.return_value = verdict_json(valid=False, reason="Blurry")
        workflow = _workflow(assistant)
        await workflow.submit(netflix, "m2", receipt)

        assert workflow.retry("1", "m2").state == VerifyState.IDLE

        assistant.verify_payment.return_value = verdict_json()
        snapshot = await workflow.submit(netflix, "m2", receipt)
        assert snapshot.state == VerifyState.REVIEW

    def test_retry_outside_error_rejected(self, assistant):
        with pytest.raises(InvalidVerificationStateError):
            _workflow(assistant).retry("1", "m2")

    @pytest.mark.asyncio
    async def test_cancel_service_clears_flows(self, netflix, receipt, assistant):
        workflow = _workflow(assistant)
        await workflow.submit(netflix, "m2", receipt)
        workflow.cancel_service("1")
        assert workflow.active_flows() == []


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
