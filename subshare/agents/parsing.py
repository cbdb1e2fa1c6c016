"""
Parsing of AI responses.

LLM output is untrusted text. It may be wrapped in markdown fences, padded
with prose, truncated or plain wrong. Everything here is fail-safe:
- a verification response that cannot be read becomes a NEGATIVE verdict
- a bill scan that cannot be read aborts the import
Nothing unparsable is ever passed on as a positive result.
"""

import json
import re
from typing import Optional

from pydantic import ValidationError

from subshare.errors import AIServiceError
from subshare.models.verification import BillScan, VerificationVerdict


UNREADABLE_RECEIPT = "AI could not verify this receipt. Please check manually."

_FENCE = re.compile(r"```(?:json)?", re.IGNORECASE)
_OBJECT = re.compile(r"\{[\s\S]*\}")


def extract_json_object(text: Optional[str]) -> Optional[dict]:
    """
    Pull the first JSON object out of a model response.

    Returns None when no JSON object can be decoded.
    """
    if not text:
        return None
    cleaned = _FENCE.sub("", text).strip()
    match = _OBJECT.search(cleaned)
    candidate = match.group(0) if match else cleaned
    try:
        data = json.loads(candidate)
    except (json.JSONDecodeError, ValueError):
        return None
    return data if isinstance(data, dict) else None


def parse_verdict(text: Optional[str]) -> VerificationVerdict:
    """
    Turn a verifier response into a verdict.

    Non-JSON output and schema violations are treated exactly like an
    explicit valid=false.
    """
    data = extract_json_object(text)
    if data is None:
        return VerificationVerdict.rejected(UNREADABLE_RECEIPT)

    try:
        verdict = VerificationVerdict.model_validate(data)
    except ValidationError as e:
        fields = ", ".join(str(err["loc"][0]) for err in e.errors() if err["loc"])
        return VerificationVerdict.rejected(
            f"Verifier response was incomplete ({fields or 'invalid'}). Please check manually."
        )

    if not verdict.valid and not verdict.reason:
        return verdict.model_copy(update={"reason": UNREADABLE_RECEIPT})
    return verdict


def parse_bill_scan(text: Optional[str]) -> BillScan:
    """
    Turn a bill-scan response into the four service fields.

    Raises:
        AIServiceError: no JSON, or any required field missing or invalid
    """
    data = extract_json_object(text)
    if data is None:
        raise AIServiceError("Bill scan returned no readable data")
    try:
        return BillScan.model_validate(data)
    except ValidationError as e:
        fields = ", ".join(str(err["loc"][0]) for err in e.errors() if err["loc"])
        raise AIServiceError(f"Bill scan is missing or has invalid fields: {fields}") from e
