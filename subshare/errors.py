"""
Exception hierarchy for SubShare.

Every failure the command surface can report derives from SubShareError,
so the orchestrator can turn any of them into a user-visible notice.
Storage errors live with the storage interface.
"""

from typing import Optional


class SubShareError(Exception):
    """Base exception for ledger operations."""
    pass


class LedgerError(SubShareError):
    """A ledger command could not be applied."""
    pass


class ServiceNotFoundError(LedgerError):
    def __init__(self, service_id: str):
        super().__init__(f"Service not found: {service_id}")
        self.service_id = service_id


class MemberNotFoundError(LedgerError):
    def __init__(self, service_id: str, member_id: str):
        super().__init__(f"Member {member_id} not found in service {service_id}")
        self.service_id = service_id
        self.member_id = member_id


class TransitionRejectedError(LedgerError):
    """A lifecycle transition is not valid from the member's current state."""
    pass


class AdminModeRequiredError(LedgerError):
    def __init__(self, command: str):
        super().__init__(f"'{command}' is only available in admin mode")
        self.command = command


class InputValidationError(SubShareError):
    """Raw command input failed validation. Carries the issues found."""

    def __init__(self, message: str, issues: Optional[list] = None):
        super().__init__(message)
        self.issues = issues or []


class VerificationError(SubShareError):
    pass


class VerificationInProgressError(VerificationError):
    """A receipt for this slot is already being verified."""
    pass


class InvalidVerificationStateError(VerificationError):
    pass


class CredentialsConcealedError(SubShareError):
    """The secret can only be copied while it is revealed."""
    pass


class AIServiceError(SubShareError):
    """The external AI call failed or returned nothing usable."""
    pass
