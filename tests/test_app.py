"""Integration tests for the SubShare command surface (mocked AI, in-memory store)."""

import asyncio
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from subshare.credentials import reveal_secret
from subshare.errors import AIServiceError
from subshare.models import AuditEventType, MASKED_SECRET, MemberStatus, NoticeLevel, VerifyState
from subshare.orchestrator import SubShareApp
from subshare.services import LedgerStoreInterface, StorageError

from tests.conftest import verdict_json


@pytest.fixture
def make_app(ledger_settings, assistant, audit_logger):
    """Build and load an app wired to the mocked assistant and in-memory audit."""

    async def factory(store, **kwargs):
        kwargs.setdefault("assistant", assistant)
        kwargs.setdefault("audit_logger", audit_logger)
        app = SubShareApp(store=store, settings=ledger_settings, **kwargs)
        await app.load()
        return app

    return factory


def _audit_types(audit_storage):
    return [e.event_type for e in audit_storage.events]


class TestLoad:

    @pytest.mark.asyncio
    async def test_seeds_demo_data_once(self, make_app, empty_store):
        app = await make_app(empty_store)
        assert [s.name for s in app.services] == ["Netflix Premium"]
        assert empty_store.save_count == 1

        again = await make_app(empty_store)
        assert again.services == app.services
        assert empty_store.save_count == 1

    @pytest.mark.asyncio
    async def test_seed_disabled(self, ledger_settings, empty_store, assistant):
        settings = ledger_settings.model_copy(update={"seed_demo_data": False})
        app = SubShareApp(store=empty_store, assistant=assistant, settings=settings)
        await app.load()
        assert app.services == ()
        assert await empty_store.load_all() == []

    @pytest.mark.asyncio
    async def test_load_failure_is_a_notice(self, ledger_settings):
        store = AsyncMock(spec=LedgerStoreInterface)
        store.load_all.side_effect = StorageError("corrupt")
        app = SubShareApp(store=store, settings=ledger_settings)
        notice = await app.load()
        assert notice.level == NoticeLevel.ERROR
        assert app.services == ()


class TestServiceCommands:

    @pytest.mark.asyncio
    async def test_create_service(self, make_app, empty_store, audit_storage):
        app = await make_app(empty_store)
        notice = await app.create_service("Spotify Family", "90000", "6", "2099-02-01", "fam@spotify | pw")

        assert notice.ok
        spotify = app.services[-1]
        assert spotify.per_slot_fee == Decimal("15000")
        assert spotify.members[0].status == MemberStatus.PAID
        assert reveal_secret(spotify.credentials) == "fam@spotify | pw"
        assert AuditEventType.SERVICE_CREATED in _audit_types(audit_storage)

    @pytest.mark.asyncio
    async def test_invalid_form_changes_nothing(self, make_app, seeded_store):
        app = await make_app(seeded_store)
        before = app.services

        notice = await app.create_service("", "abc", 5, "2099-01-01")

        assert notice.level == NoticeLevel.ERROR
        assert app.services is before
        assert seeded_store.save_count == 0

    @pytest.mark.asyncio
    async def test_import_from_bill(self, make_app, seeded_store, receipt):
        app = await make_app(seeded_store)
        notice = await app.import_service_from_bill(receipt)

        assert notice.ok
        spotify = app.services[-1]
        assert spotify.name == "Spotify Family"
        assert spotify.max_slots == 6
        assert spotify.currency == "IDR"
        assert reveal_secret(spotify.credentials) == "Not set"

    @pytest.mark.asyncio
    async def test_import_missing_field_aborts(self, make_app, seeded_store, receipt, assistant, audit_storage):
        assistant.scan_bill.return_value = '{"serviceName": "Spotify", "totalPrice": 90000}'
        app = await make_app(seeded_store)

        notice = await app.import_service_from_bill(receipt)

        assert notice.level == NoticeLevel.ERROR
        assert len(app.services) == 1
        assert AuditEventType.SERVICE_IMPORT_FAILED in _audit_types(audit_storage)

    @pytest.mark.asyncio
    async def test_import_call_failure_aborts(self, make_app, seeded_store, receipt, assistant):
        assistant.scan_bill.side_effect = AIServiceError("network down")
        app = await make_app(seeded_store)
        notice = await app.import_service_from_bill(receipt)
        assert notice.level == NoticeLevel.ERROR
        assert len(app.services) == 1

    @pytest.mark.asyncio
    async def test_delete_service_cascades(self, make_app, seeded_store):
        app = await make_app(seeded_store)
        await app.reveal_credentials("1")

        notice = await app.delete_service("1")

        assert notice.ok
        assert app.services == ()
        assert app.guard.active_service_id is None
        assert app.stats().total_cost == 0
        assert await seeded_store.load_all() == []

    @pytest.mark.asyncio
    async def test_delete_unknown_service(self, make_app, seeded_store):
        app = await make_app(seeded_store)
        notice = await app.delete_service("404")
        assert notice.level == NoticeLevel.ERROR
        assert len(app.services) == 1

    @pytest.mark.asyncio
    async def test_payment_instructions(self, make_app, seeded_store):
        app = await make_app(seeded_store)
        assert (await app.set_payment_instructions("1", "Transfer to BNI 123")).ok
        assert app.copy_payment_instructions("1").ok
        assert app.clipboard.text == "Transfer to BNI 123"

        await app.set_payment_instructions("1", "")
        assert app.copy_payment_instructions("1").level == NoticeLevel.INFO


class TestAdminMode:

    @pytest.mark.asyncio
    async def test_member_mode_blocks_admin_commands(self, make_app, seeded_store, audit_storage):
        app = await make_app(seeded_store)
        assert app.is_admin
        app.toggle_admin_mode()
        assert not app.is_admin

        results = [
            await app.create_service("Spotify", "90000", 6, "2099-02-01"),
            await app.delete_service("1"),
            await app.manual_confirm("1", "m2"),
            await app.downgrade("1", "m1", "pending"),
            await app.set_payment_instructions("1", "x"),
        ]

        assert all(n.level == NoticeLevel.ERROR for n in results)
        assert all("admin mode" in n.message for n in results)
        assert seeded_store.save_count == 0
        assert _audit_types(audit_storage).count(AuditEventType.COMMAND_REJECTED) == 5

    @pytest.mark.asyncio
    async def test_member_commands_still_work(self, make_app, seeded_store):
        app = await make_app(seeded_store)
        app.toggle_admin_mode()
        assert (await app.claim_slot("1", "m3", "Citra")).ok
        assert (await app.add_expense("1", "m3", "5000", "Gift")).ok


class TestLifecycleCommands:

    @pytest.mark.asyncio
    async def test_claim_slot(self, make_app, seeded_store):
        app = await make_app(seeded_store)
        notice = await app.claim_slot("1", "m3", "  Citra  ")
        assert notice.ok
        member = app.get_service("1").find_member("m3")
        assert member.name == "Citra"
        assert member.status == MemberStatus.PENDING
        assert seeded_store.save_count == 1

    @pytest.mark.asyncio
    async def test_claim_blank_name(self, make_app, seeded_store):
        app = await make_app(seeded_store)
        notice = await app.claim_slot("1", "m3", "   ")
        assert notice.level == NoticeLevel.ERROR
        assert app.get_service("1").find_member("m3").status == MemberStatus.EMPTY

    @pytest.mark.asyncio
    async def test_claim_taken_slot(self, make_app, seeded_store):
        app = await make_app(seeded_store)
        notice = await app.claim_slot("1", "m2", "Citra")
        assert notice.level == NoticeLevel.ERROR
        assert app.get_service("1").find_member("m2").name == "Budi Santoso"

    @pytest.mark.asyncio
    async def test_manual_confirm_and_repeat(self, make_app, seeded_store, audit_storage):
        app = await make_app(seeded_store)
        assert (await app.manual_confirm("1", "m2")).ok
        record = app.get_service("1").find_member("m2").latest_payment
        assert record.method == "Manual"
        assert record.amount == Decimal("37200")

        again = await app.manual_confirm("1", "m2")
        assert again.level == NoticeLevel.INFO
        assert len(app.get_service("1").find_member("m2").payment_history) == 1
        assert _audit_types(audit_storage).count(AuditEventType.PAYMENT_CONFIRMED) == 1

    @pytest.mark.asyncio
    async def test_downgrade(self, make_app, seeded_store):
        app = await make_app(seeded_store)
        assert (await app.downgrade("1", "m2", "empty")).ok
        assert app.get_service("1").find_member("m2").status == MemberStatus.EMPTY

        bad = await app.downgrade("1", "m3", "paid")
        assert bad.level == NoticeLevel.ERROR

        unknown = await app.downgrade("1", "m1", "refunded")
        assert unknown.level == NoticeLevel.ERROR

    @pytest.mark.asyncio
    async def test_save_failure_keeps_state(self, make_app, netflix):
        store = AsyncMock(spec=LedgerStoreInterface)
        store.load_all.return_value = [netflix]
        store.save_all.side_effect = StorageError("disk full")
        app = await make_app(store)

        notice = await app.claim_slot("1", "m3", "Citra")

        assert notice.level == NoticeLevel.ERROR
        assert "Could not save" in notice.message
        assert app.get_service("1").find_member("m3").status == MemberStatus.EMPTY


class TestVerificationCommands:

    @pytest.mark.asyncio
    async def test_verify_and_accept(self, make_app, seeded_store, receipt, audit_storage):
        app = await make_app(seeded_store)

        submitted = await app.submit_receipt("1", "m2", receipt)
        assert submitted.level == NoticeLevel.INFO
        assert app.verification_state("1", "m2").state == VerifyState.REVIEW
        assert app.get_service("1").find_member("m2").status == MemberStatus.PENDING

        accepted = await app.accept_verification("1", "m2")
        assert accepted.ok

        member = app.get_service("1").find_member("m2")
        assert member.status == MemberStatus.PAID
        record = member.latest_payment
        assert record.transaction_id == "TX1"
        assert record.method == "AI Verified"
        assert record.amount == Decimal("37200")
        assert app.verification_state("1", "m2").state == VerifyState.SUCCESS

        confirmed = [e for e in audit_storage.events if e.event_type == AuditEventType.PAYMENT_CONFIRMED]
        assert confirmed[0].correlation_id is not None

    @pytest.mark.asyncio
    async def test_invalid_receipt_records_nothing(self, make_app, seeded_store, receipt, assistant):
        assistant.verify_payment.return_value = verdict_json(valid=False, reason="Wrong amount")
        app = await make_app(seeded_store)

        notice = await app.submit_receipt("1", "m2", receipt)

        assert notice.level == NoticeLevel.ERROR
        assert notice.message == "Wrong amount"
        member = app.get_service("1").find_member("m2")
        assert member.status == MemberStatus.PENDING
        assert member.payment_history == ()
        assert seeded_store.save_count == 0

        retried = await app.retry_verification("1", "m2")
        assert retried.ok
        assert app.verification_state("1", "m2").state == VerifyState.IDLE

    @pytest.mark.asyncio
    async def test_discrepancy_is_flagged_not_blocked(self, make_app, seeded_store, receipt, assistant, audit_storage):
        assistant.verify_payment.return_value = verdict_json(detectedAmount=37000)
        app = await make_app(seeded_store)

        await app.submit_receipt("1", "m2", receipt)
        await app.accept_verification("1", "m2")

        record = app.get_service("1").find_member("m2").latest_payment
        assert record.amount == Decimal("37000")
        assert record.has_discrepancy
        confirmed = [e for e in audit_storage.events if e.event_type == AuditEventType.PAYMENT_CONFIRMED]
        assert confirmed[0].severity.value == "warning"

    @pytest.mark.asyncio
    async def test_accept_without_review(self, make_app, seeded_store):
        app = await make_app(seeded_store)
        notice = await app.accept_verification("1", "m2")
        assert notice.level == NoticeLevel.ERROR

    @pytest.mark.asyncio
    async def test_accept_after_slot_vacated(self, make_app, seeded_store, receipt):
        app = await make_app(seeded_store)
        await app.submit_receipt("1", "m2", receipt)
        await app.downgrade("1", "m2", "empty")

        notice = await app.accept_verification("1", "m2")

        assert notice.level == NoticeLevel.ERROR
        assert app.get_service("1").find_member("m2").status == MemberStatus.EMPTY
        assert app.verification_state("1", "m2").state == VerifyState.ERROR

    @pytest.mark.asyncio
    async def test_cancel_verification(self, make_app, seeded_store, receipt):
        app = await make_app(seeded_store)
        await app.submit_receipt("1", "m2", receipt)
        assert (await app.cancel_verification("1", "m2")).ok
        assert app.verification_state("1", "m2").state == VerifyState.IDLE

    @pytest.mark.asyncio
    async def test_other_commands_run_while_scanning(self, make_app, seeded_store, receipt, assistant):
        release = asyncio.Event()

        async def held(*args):
            await release.wait()
            return verdict_json()

        assistant.verify_payment.side_effect = held
        app = await make_app(seeded_store)

        pending = asyncio.create_task(app.submit_receipt("1", "m2", receipt))
        await asyncio.sleep(0)

        assert (await app.claim_slot("1", "m3", "Citra")).ok
        again = await app.submit_receipt("1", "m2", receipt)
        assert again.level == NoticeLevel.ERROR

        release.set()
        assert (await pending).level == NoticeLevel.INFO

    @pytest.mark.asyncio
    async def test_without_assistant(self, ledger_settings, seeded_store, receipt):
        app = SubShareApp(store=seeded_store, settings=ledger_settings)
        await app.load()
        notice = await app.submit_receipt("1", "m2", receipt)
        assert notice.level == NoticeLevel.ERROR
        assert "not configured" in notice.message


class TestExpenseCommands:

    @pytest.mark.asyncio
    async def test_add_and_delete(self, make_app, seeded_store):
        app = await make_app(seeded_store)
        assert (await app.add_expense("1", "m2", "15000", "Upgrade", "4K")).ok
        expense = app.get_service("1").find_member("m2").expenses[0]
        assert expense.category.value == "Upgrade"

        assert (await app.delete_expense("1", "m2", expense.id)).ok
        assert app.get_service("1").find_member("m2").expenses == ()

    @pytest.mark.asyncio
    async def test_delete_unknown_expense_is_tolerated(self, make_app, seeded_store):
        app = await make_app(seeded_store)
        notice = await app.delete_expense("1", "m2", "missing")
        assert notice.level == NoticeLevel.INFO
        assert seeded_store.save_count == 0

    @pytest.mark.asyncio
    async def test_bad_expense_input(self, make_app, seeded_store):
        app = await make_app(seeded_store)
        bad_amount = await app.add_expense("1", "m2", "ten", "Upgrade")
        bad_category = await app.add_expense("1", "m2", "10", "Snacks")
        assert bad_amount.level == bad_category.level == NoticeLevel.ERROR
        assert app.get_service("1").find_member("m2").expenses == ()


class TestCredentialCommands:

    @pytest.mark.asyncio
    async def test_reveal_copy_conceal(self, make_app, seeded_store, audit_storage):
        app = await make_app(seeded_store)
        assert app.display_credentials("1") == MASKED_SECRET

        copied_early = await app.copy_secret("1")
        assert copied_early.level == NoticeLevel.ERROR

        await app.reveal_credentials("1")
        assert app.display_credentials("1") == "user@netflix.com | Pass: H3lloWorld"
        assert (await app.copy_secret("1")).ok
        assert app.clipboard.text == "user@netflix.com | Pass: H3lloWorld"

        await app.conceal_credentials()
        assert app.display_credentials("1") == MASKED_SECRET
        app.close()
        types = _audit_types(audit_storage)
        assert AuditEventType.CREDENTIALS_REVEALED in types
        assert AuditEventType.CREDENTIALS_CONCEALED in types

    @pytest.mark.asyncio
    async def test_reveal_unknown_service(self, make_app, seeded_store):
        app = await make_app(seeded_store)
        assert (await app.reveal_credentials("404")).level == NoticeLevel.ERROR


class TestReminderAndStats:

    @pytest.mark.asyncio
    async def test_reminder_copied(self, make_app, seeded_store, assistant):
        app = await make_app(seeded_store)
        notice = await app.generate_reminder("1")
        assert notice.ok
        assert app.clipboard.text == "Hi Budi, please pay IDR 37,200 for Netflix Premium."
        prompt = assistant.draft_reminder.await_args.args[0]
        assert "Budi Santoso" in prompt

    @pytest.mark.asyncio
    async def test_no_pending_members_no_ai_call(self, make_app, seeded_store, assistant):
        app = await make_app(seeded_store)
        await app.manual_confirm("1", "m2")

        notice = await app.generate_reminder("1")

        assert notice.level == NoticeLevel.INFO
        assistant.draft_reminder.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_reminder_failure(self, make_app, seeded_store, assistant):
        assistant.draft_reminder.side_effect = AIServiceError("quota")
        app = await make_app(seeded_store)
        notice = await app.generate_reminder("1")
        assert notice.level == NoticeLevel.ERROR
        assert app.clipboard.text is None

    @pytest.mark.asyncio
    async def test_stats_follow_commands(self, make_app, seeded_store):
        app = await make_app(seeded_store)
        assert app.stats().collection_rate == Decimal("20")

        await app.manual_confirm("1", "m2")
        assert app.stats().collection_rate == Decimal("40")

        await app.delete_service("1")
        assert app.stats().total_cost == 0
        assert app.stats().collection_rate == 0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
