"""
Main Orchestrator for SubShare

This module ties together all the components and owns the application
state: the current tuple of Service snapshots and the admin-mode flag.

Every user command enters here and returns a Notice. A command:
1. validates raw input
2. applies one pure engine function to one Service aggregate
3. persists the whole collection, then swaps in the new snapshot
4. audits what happened

DESIGN DECISION: The orchestrator enforces the boundaries:
- No payment is recorded from a receipt without human acceptance
- A failed save leaves the in-memory state untouched
- External failures (AI, storage) become error notices, never crashes
- Every step is audited
"""

import asyncio
from datetime import date
from decimal import Decimal
from typing import Optional, Union

import structlog
from pydantic import ValidationError

from subshare import engine
from subshare.agents import (
    AIAssistantInterface,
    GeminiAssistant,
    build_reminder_prompt,
    parse_bill_scan,
)
from subshare.audit import AuditLogger, create_correlation_id
from subshare.config import LedgerSettings, get_settings
from subshare.credentials import CredentialRevealGuard, obfuscate
from subshare.errors import (
    AdminModeRequiredError,
    AIServiceError,
    SubShareError,
)
from subshare.models.audit import AuditEventBuilder
from subshare.models.ledger import (
    Expense,
    MemberStatus,
    Notice,
    Service,
)
from subshare.models.verification import (
    ConfirmationRequest,
    ReceiptImage,
    VerificationSnapshot,
    VerifyState,
)
from subshare.queries import LedgerStats, compute_stats
from subshare.services import (
    ClipboardInterface,
    InMemoryClipboard,
    InMemoryLedgerStore,
    JsonFileLedgerStore,
    JsonLinesAuditStorage,
    LedgerStoreInterface,
    StorageError,
    demo_services,
)
from subshare.validation import InputValidator
from subshare.verification import VerificationWorkflow


SCANNED_CREDENTIALS = "Not set"

# Failures a command turns into an error notice
COMMAND_ERRORS = (SubShareError, StorageError, ValidationError)

logger = structlog.get_logger(__name__)


class SubShareApp:
    """
    The single owner of ledger state and the command surface.

    Mutating commands are serialized by an asyncio lock. The verifier call
    inside submit_receipt runs outside the lock, so other commands keep
    working while a receipt is being checked.
    """

    def __init__(
        self,
        store: LedgerStoreInterface,
        assistant: Optional[AIAssistantInterface] = None,
        audit_logger: Optional[AuditLogger] = None,
        clipboard: Optional[ClipboardInterface] = None,
        guard: Optional[CredentialRevealGuard] = None,
        validator: Optional[InputValidator] = None,
        settings: Optional[LedgerSettings] = None,
    ):
        self._settings = settings or get_settings().ledger
        self._store = store
        self._assistant = assistant
        self._audit_logger = audit_logger or AuditLogger()
        self._clipboard = clipboard or InMemoryClipboard()
        self._guard = guard or CredentialRevealGuard(
            duration=self._settings.reveal_duration,
            tick_seconds=self._settings.reveal_tick_seconds,
        )
        self._validator = validator or InputValidator(self._settings)
        self._workflow = (
            VerificationWorkflow(
                assistant,
                audit_logger=self._audit_logger,
                timeout_seconds=self._settings.verifier_timeout_seconds,
                success_display_seconds=self._settings.success_display_seconds,
                max_image_bytes=self._settings.max_receipt_size_bytes,
            )
            if assistant is not None
            else None
        )
        self._services: tuple[Service, ...] = ()
        self._is_admin = True
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def services(self) -> tuple[Service, ...]:
        return self._services

    @property
    def is_admin(self) -> bool:
        return self._is_admin

    @property
    def guard(self) -> CredentialRevealGuard:
        return self._guard

    @property
    def clipboard(self) -> ClipboardInterface:
        return self._clipboard

    def get_service(self, service_id: str) -> Service:
        return engine.find_service(self._services, service_id)

    def stats(self) -> LedgerStats:
        return compute_stats(self._services)

    def verification_state(self, service_id: str, member_id: str) -> VerificationSnapshot:
        if self._workflow is None:
            return VerificationSnapshot(service_id=service_id, member_id=member_id)
        return self._workflow.state(service_id, member_id)

    async def load(self) -> Notice:
        """
        Load the ledger from the store.

        A namespace that was never written is seeded with the demo service
        (when enabled) and saved straight away.
        """
        try:
            loaded = await self._store.load_all()
            if loaded is None:
                loaded = demo_services() if self._settings.seed_demo_data else []
                await self._store.save_all(loaded)
                logger.info("ledger_seeded", services=len(loaded))
        except StorageError as e:
            await self._audit_logger.log_error("StorageError", str(e))
            return Notice.error(f"Could not load ledger: {e}")

        self._services = tuple(loaded)
        return Notice.info(f"Loaded {len(self._services)} service(s)")

    def close(self) -> None:
        """Cancel timers owned by the guard and the workflow."""
        self._guard.close()
        if self._workflow is not None:
            self._workflow.close()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require_admin(self, command: str) -> None:
        if not self._is_admin:
            raise AdminModeRequiredError(command)

    def _require_workflow(self) -> VerificationWorkflow:
        if self._workflow is None:
            raise AIServiceError("AI assistant is not configured")
        return self._workflow

    def _require_assistant(self) -> AIAssistantInterface:
        if self._assistant is None:
            raise AIServiceError("AI assistant is not configured")
        return self._assistant

    async def _persist(self, services: tuple[Service, ...]) -> None:
        """Save first; the in-memory snapshot only changes once the store has it."""
        await self._store.save_all(list(services))
        self._services = services

    async def _commit(self, service: Service) -> None:
        await self._persist(engine.replace_service(self._services, service))

    async def _reject(
        self,
        command: str,
        error: Exception,
        service_id: Optional[str] = None,
        entity_id: Optional[str] = None,
    ) -> Notice:
        if isinstance(error, StorageError):
            await self._audit_logger.log_error(
                error_type=type(error).__name__,
                error_message=str(error),
                details={"command": command, "service_id": service_id},
            )
            return Notice.error(f"Could not save changes: {error}")

        if isinstance(error, ValidationError):
            first = error.errors()[0]
            field = ".".join(str(part) for part in first["loc"])
            reason = f"{field}: {first['msg']}" if field else first["msg"]
        else:
            reason = str(error)

        await self._audit_logger.log_command_rejected(
            command=command,
            reason=reason,
            service_id=service_id,
            entity_id=entity_id,
        )
        return Notice.error(reason)

    async def _audit_payment(
        self,
        service: Service,
        member_id: str,
        correlation_id=None,
    ) -> None:
        record = service.find_member(member_id).latest_payment
        await self._audit_logger.log(AuditEventBuilder.payment_confirmed(
            service_id=service.id,
            member_id=member_id,
            record_id=record.id,
            amount=str(record.amount),
            method=record.method,
            transaction_id=record.transaction_id,
            discrepancy=str(record.discrepancy),
            has_discrepancy=record.has_discrepancy,
            correlation_id=correlation_id,
        ))

    # ------------------------------------------------------------------
    # Services
    # ------------------------------------------------------------------

    async def create_service(
        self,
        name: Optional[str],
        price: Union[str, int, Decimal, None],
        max_slots: Union[str, int, None],
        renewal_date: Union[str, date, None],
        credentials: Optional[str] = "",
        currency: Optional[str] = None,
        payment_instructions: Optional[str] = None,
    ) -> Notice:
        """Create a service from the manual form (admin only)."""
        try:
            self._require_admin("create_service")
            form, result = self._validator.validate_service_form(
                name=name,
                price=price,
                max_slots=max_slots,
                renewal_date=renewal_date,
                credentials=credentials,
                currency=currency,
                payment_instructions=payment_instructions,
            )
            service = engine.create_service(
                name=form.name,
                price=form.price,
                max_slots=form.max_slots,
                renewal_date=form.renewal_date,
                credentials=obfuscate(form.credentials),
                currency=form.currency,
                payment_instructions=form.payment_instructions,
            )
            async with self._lock:
                await self._persist(engine.add_service(self._services, service))
        except COMMAND_ERRORS as e:
            return await self._reject("create_service", e)

        await self._audit_logger.log(AuditEventBuilder.service_created(
            service_id=service.id,
            name=service.name,
            price=str(service.price),
            max_slots=service.max_slots,
            source="manual",
        ))
        message = f"{service.name} created"
        if result.warnings:
            message += " (" + "; ".join(result.warnings) + ")"
        return Notice.success(message)

    async def import_service_from_bill(self, image: ReceiptImage) -> Notice:
        """
        Create a service from a scanned bill (admin only).

        Any missing field or failing AI call aborts the import; nothing is
        created.
        """
        try:
            self._require_admin("import_service_from_bill")
            assistant = self._require_assistant()
        except SubShareError as e:
            return await self._reject("import_service_from_bill", e)

        correlation_id = create_correlation_id()
        try:
            raw = await assistant.scan_bill(image)
            scan = parse_bill_scan(raw)
        except AIServiceError as e:
            await self._audit_logger.log_external_service_error(
                service="bill_scanner",
                error_message=str(e),
                correlation_id=correlation_id,
            )
            await self._audit_logger.log(AuditEventBuilder.service_import_failed(str(e)))
            return Notice.error("Failed to scan bill. Please enter the details manually.")

        try:
            service = engine.create_service(
                name=scan.service_name,
                price=scan.total_price,
                max_slots=scan.max_slots,
                renewal_date=scan.renewal_date,
                credentials=obfuscate(SCANNED_CREDENTIALS),
                currency=self._settings.default_currency,
            )
            async with self._lock:
                await self._persist(engine.add_service(self._services, service))
        except COMMAND_ERRORS as e:
            return await self._reject("import_service_from_bill", e)

        await self._audit_logger.log(AuditEventBuilder.service_created(
            service_id=service.id,
            name=service.name,
            price=str(service.price),
            max_slots=service.max_slots,
            source="bill_scan",
        ))
        return Notice.success(f"Imported {service.name} from bill")

    async def delete_service(self, service_id: str) -> Notice:
        """Delete a service and everything in it (admin only, irreversible)."""
        try:
            self._require_admin("delete_service")
            async with self._lock:
                service = self.get_service(service_id)
                await self._persist(engine.remove_service(self._services, service_id))
        except COMMAND_ERRORS as e:
            return await self._reject("delete_service", e, service_id=service_id)

        if self._guard.active_service_id == service_id:
            self._guard.conceal()
        if self._workflow is not None:
            self._workflow.cancel_service(service_id)

        await self._audit_logger.log(AuditEventBuilder.service_deleted(service_id, service.name))
        return Notice.success(f"{service.name} deleted")

    async def set_payment_instructions(self, service_id: str, instructions: Optional[str]) -> Notice:
        try:
            self._require_admin("set_payment_instructions")
            async with self._lock:
                service = engine.set_payment_instructions(self.get_service(service_id), instructions)
                await self._commit(service)
        except COMMAND_ERRORS as e:
            return await self._reject("set_payment_instructions", e, service_id=service_id)

        await self._audit_logger.log(AuditEventBuilder.instructions_updated(service_id))
        return Notice.success("Payment instructions saved")

    def copy_payment_instructions(self, service_id: str) -> Notice:
        try:
            service = self.get_service(service_id)
        except SubShareError as e:
            return Notice.error(str(e))
        if not service.payment_instructions:
            return Notice.info("No payment instructions set for this service")
        self._clipboard.copy(service.payment_instructions)
        return Notice.success("Payment instructions copied")

    # ------------------------------------------------------------------
    # Payment lifecycle
    # ------------------------------------------------------------------

    async def claim_slot(self, service_id: str, member_id: str, name: Optional[str]) -> Notice:
        try:
            clean_name = self._validator.validate_claim_name(name)
            async with self._lock:
                service = engine.claim_slot(self.get_service(service_id), member_id, clean_name)
                await self._commit(service)
        except COMMAND_ERRORS as e:
            return await self._reject("claim_slot", e, service_id=service_id, entity_id=member_id)

        await self._audit_logger.log(AuditEventBuilder.slot_claimed(service_id, member_id, clean_name))
        return Notice.success(f"Slot claimed by {clean_name}")

    async def manual_confirm(
        self,
        service_id: str,
        member_id: str,
        transaction_id: Optional[str] = None,
    ) -> Notice:
        """Admin confirmation for the per-slot fee, without a receipt."""
        try:
            self._require_admin("manual_confirm")
            async with self._lock:
                before = self.get_service(service_id)
                service = engine.manual_confirm(before, member_id, transaction_id)
                if service is before:
                    return Notice.info("Payment already confirmed")
                await self._commit(service)
        except COMMAND_ERRORS as e:
            return await self._reject("manual_confirm", e, service_id=service_id, entity_id=member_id)

        await self._audit_payment(service, member_id)
        return Notice.success("Payment confirmed manually")

    async def downgrade(
        self,
        service_id: str,
        member_id: str,
        to_status: Union[str, MemberStatus],
    ) -> Notice:
        """Admin correction to a lower status (pending or empty)."""
        try:
            self._require_admin("downgrade")
            target = self._validator.parse_status(to_status)
            async with self._lock:
                before = self.get_service(service_id)
                from_status = engine.get_member(before, member_id).status
                service = engine.downgrade(before, member_id, target)
                await self._commit(service)
        except COMMAND_ERRORS as e:
            return await self._reject("downgrade", e, service_id=service_id, entity_id=member_id)

        await self._audit_logger.log(AuditEventBuilder.payment_downgraded(
            service_id=service_id,
            member_id=member_id,
            from_status=from_status.value,
            to_status=target.value,
        ))
        if target == MemberStatus.EMPTY:
            return Notice.success("Slot vacated")
        return Notice.success("Payment reset to pending")

    # ------------------------------------------------------------------
    # Receipt verification
    # ------------------------------------------------------------------

    async def submit_receipt(self, service_id: str, member_id: str, image: ReceiptImage) -> Notice:
        """Send a receipt to the verifier. A positive verdict opens review."""
        try:
            workflow = self._require_workflow()
            service = self.get_service(service_id)
            snapshot = await workflow.submit(service, member_id, image)
        except SubShareError as e:
            return await self._reject("submit_receipt", e, service_id=service_id, entity_id=member_id)

        if snapshot.state == VerifyState.REVIEW:
            return Notice.info(
                f"Receipt looks valid: {snapshot.detected_amount} from "
                f"{snapshot.detected_sender}. Confirm to record the payment."
            )
        if snapshot.state == VerifyState.ERROR:
            return Notice.error(snapshot.message or "Verification failed")
        return Notice.info("Verification was cancelled")

    async def accept_verification(self, service_id: str, member_id: str) -> Notice:
        """Human checkpoint: record the payment the verifier detected."""
        confirmed: list[Service] = []

        async def commit(request: ConfirmationRequest) -> None:
            async with self._lock:
                service = engine.confirm_payment(
                    self.get_service(request.service_id),
                    request.member_id,
                    amount=request.amount,
                    sender=request.sender,
                    transaction_id=request.transaction_id,
                    provenance=engine.Provenance.VERIFIER,
                )
                await self._commit(service)
                confirmed.append(service)

        try:
            workflow = self._require_workflow()
            request = await workflow.accept(service_id, member_id, commit)
        except COMMAND_ERRORS as e:
            return await self._reject("accept_verification", e, service_id=service_id, entity_id=member_id)

        await self._audit_payment(confirmed[0], member_id, request.correlation_id)
        return Notice.success("Payment verified and recorded")

    async def retry_verification(self, service_id: str, member_id: str) -> Notice:
        try:
            self._require_workflow().retry(service_id, member_id)
        except SubShareError as e:
            return await self._reject("retry_verification", e, service_id=service_id, entity_id=member_id)
        return Notice.info("Ready for a new receipt")

    async def cancel_verification(self, service_id: str, member_id: str) -> Notice:
        try:
            self._require_workflow().cancel(service_id, member_id)
        except SubShareError as e:
            return await self._reject("cancel_verification", e, service_id=service_id, entity_id=member_id)
        return Notice.info("Verification cancelled")

    # ------------------------------------------------------------------
    # Expenses
    # ------------------------------------------------------------------

    async def add_expense(
        self,
        service_id: str,
        member_id: str,
        amount: Union[str, int, Decimal, None],
        category: Optional[str],
        description: Optional[str] = "",
        spent_on: Union[str, date, None] = None,
    ) -> Notice:
        try:
            form = self._validator.validate_expense_form(amount, category, description, spent_on)
            expense = Expense(
                date=form.spent_on or date.today(),
                amount=form.amount,
                category=form.category,
                description=form.description,
            )
            async with self._lock:
                service = engine.add_expense(self.get_service(service_id), member_id, expense)
                await self._commit(service)
        except COMMAND_ERRORS as e:
            return await self._reject("add_expense", e, service_id=service_id, entity_id=member_id)

        await self._audit_logger.log(AuditEventBuilder.expense_added(
            service_id=service_id,
            member_id=member_id,
            expense_id=expense.id,
            category=expense.category.value,
            amount=str(expense.amount),
        ))
        return Notice.success(f"{expense.category.value} expense added")

    async def delete_expense(self, service_id: str, member_id: str, expense_id: str) -> Notice:
        """Delete an expense; an id that is already gone is not an error."""
        try:
            async with self._lock:
                before = self.get_service(service_id)
                service = engine.delete_expense(before, member_id, expense_id)
                if service is before:
                    return Notice.info("Expense already removed")
                await self._commit(service)
        except COMMAND_ERRORS as e:
            return await self._reject("delete_expense", e, service_id=service_id, entity_id=member_id)

        await self._audit_logger.log(AuditEventBuilder.expense_deleted(service_id, member_id, expense_id))
        return Notice.success("Expense deleted")

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    async def reveal_credentials(self, service_id: str) -> Notice:
        try:
            self.get_service(service_id)
        except SubShareError as e:
            return await self._reject("reveal_credentials", e, service_id=service_id)

        seconds = self._guard.reveal(service_id)
        await self._audit_logger.log(AuditEventBuilder.credentials_revealed(service_id, seconds))
        return Notice.info(f"Credentials visible for {seconds}s")

    async def conceal_credentials(self) -> Notice:
        service_id = self._guard.conceal()
        if service_id is not None:
            await self._audit_logger.log(AuditEventBuilder.credentials_concealed(service_id))
        return Notice.info("Credentials hidden")

    def display_credentials(self, service_id: str) -> str:
        return self._guard.display(self.get_service(service_id))

    async def copy_secret(self, service_id: str) -> Notice:
        try:
            self._guard.copy_secret(self.get_service(service_id), self._clipboard)
        except SubShareError as e:
            return await self._reject("copy_secret", e, service_id=service_id)
        return Notice.success("Credentials copied")

    # ------------------------------------------------------------------
    # Reminders and mode
    # ------------------------------------------------------------------

    async def generate_reminder(self, service_id: str) -> Notice:
        """Draft a reminder for pending members and copy it to the clipboard."""
        try:
            service = self.get_service(service_id)
        except SubShareError as e:
            return await self._reject("generate_reminder", e, service_id=service_id)

        pending = [m.name for m in service.members_with_status(MemberStatus.PENDING)]
        if not pending:
            return Notice.info("Everyone has paid. No reminder needed.")

        try:
            text = await self._require_assistant().draft_reminder(build_reminder_prompt(service))
        except AIServiceError as e:
            await self._audit_logger.log_external_service_error(
                service="reminder_writer",
                error_message=str(e),
            )
            return Notice.error("Failed to generate reminder")

        self._clipboard.copy(text)
        await self._audit_logger.log(AuditEventBuilder.reminder_generated(service_id, pending))
        return Notice.success("Reminder copied to clipboard")

    def toggle_admin_mode(self) -> Notice:
        self._is_admin = not self._is_admin
        logger.info("admin_mode_toggled", is_admin=self._is_admin)
        return Notice.info("Admin mode on" if self._is_admin else "Member mode on")


def create_app_components(use_storage: bool = True) -> SubShareApp:
    """
    Factory function to build the application.

    Args:
        use_storage: Whether to use the JSON file store.
                    Set to False for an in-memory ledger.

    Without a Gemini API key the app still runs; the AI commands then
    answer with an error notice.
    """
    settings = get_settings().ledger

    audit_storage = None
    if use_storage and settings.audit_log_path:
        audit_storage = JsonLinesAuditStorage(settings.audit_log_path)
    audit_logger = AuditLogger(audit_storage)

    store = JsonFileLedgerStore() if use_storage else InMemoryLedgerStore()

    try:
        assistant = GeminiAssistant()
    except ValidationError as e:
        # Gemini not configured - continue without AI features
        logger.warning("ai_assistant_unavailable", error=str(e))
        assistant = None

    return SubShareApp(
        store=store,
        assistant=assistant,
        audit_logger=audit_logger,
        settings=settings,
    )
