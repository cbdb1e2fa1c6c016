"""Receipt verification workflow."""

from subshare.verification.workflow import AI_CALL_FAILED, VerificationWorkflow

__all__ = ["AI_CALL_FAILED", "VerificationWorkflow"]
