"""AI Agents package."""

from subshare.agents.ai_agents import (
    BILL_SCAN_PROMPT,
    AIAssistantInterface,
    GeminiAssistant,
    build_reminder_prompt,
    build_verification_prompt,
)
from subshare.agents.parsing import (
    UNREADABLE_RECEIPT,
    extract_json_object,
    parse_bill_scan,
    parse_verdict,
)

__all__ = [
    "BILL_SCAN_PROMPT",
    "AIAssistantInterface",
    "GeminiAssistant",
    "UNREADABLE_RECEIPT",
    "build_reminder_prompt",
    "build_verification_prompt",
    "extract_json_object",
    "parse_bill_scan",
    "parse_verdict",
]
