"""
AI Agents for SubShare

The generative model is an external collaborator with three jobs:

1. PAYMENT VERIFIER:
   - CAN: Read a transfer receipt and report amount, sender and reference
   - CAN: Judge whether it matches the expected fee and member
   - CANNOT: Confirm a payment. Its verdict only opens human review.

2. BILL SCANNER:
   - CAN: Extract service name, price, renewal date and slot count
   - CANNOT: Guess missing fields. An incomplete scan aborts the import.

3. REMINDER WRITER:
   - CAN: Draft a polite payment reminder from the facts we give it
   - Output is free text, copied as-is; never parsed.

The LLM is a READER and a WRITER, not a BOOKKEEPER.
Every agent method returns the raw response text; parsing (and failing
safe) is done in subshare.agents.parsing.
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Optional

import google.generativeai as genai

from subshare.config import GeminiSettings, get_settings
from subshare.errors import AIServiceError
from subshare.models.ledger import MemberStatus, Service
from subshare.models.verification import ReceiptImage


def build_verification_prompt(expected_amount: Decimal, expected_sender: str) -> str:
    return f"""Analyze this bank transfer receipt.
Expected Amount: {expected_amount}
Expected Sender Name (approximately): {expected_sender}

Verify if:
1. The amount matches (or is very close).
2. The sender name on the receipt matches the expected sender.

Also try to find a transaction ID or Ref Number.

Respond with ONLY a JSON object in this exact format:
{{"valid": true, "detectedAmount": 37200, "detectedSender": "name on receipt", "transactionId": "reference or null", "reason": "brief explanation"}}

"valid" must be true only if the amount matches and the sender is identifiable."""


BILL_SCAN_PROMPT = """Extract serviceName, totalPrice, renewalDate (YYYY-MM-DD), and maxSlots from this subscription bill.

Respond with ONLY a JSON object in this exact format:
{"serviceName": "Netflix Premium", "totalPrice": 186000, "renewalDate": "2025-01-31", "maxSlots": 5}

Do not guess. Leave out any field you cannot read."""


def build_reminder_prompt(service: Service) -> str:
    """Prompt for a short payment reminder to the members still pending."""
    names = ", ".join(m.name for m in service.members_with_status(MemberStatus.PENDING))
    instructions = service.payment_instructions or "Ask the admin for payment details"
    return (
        f"Write a short, polite WhatsApp message reminding {names} to pay their share "
        f"of {service.name}. Amount per person: {service.currency} {service.per_slot_fee:,}. "
        f"Payment instructions: {instructions}."
    )


class AIAssistantInterface(ABC):
    """
    Abstract boundary to the generative model.

    Implementations return raw response text and raise AIServiceError
    when the call itself fails.
    """

    @abstractmethod
    async def verify_payment(
        self,
        image: ReceiptImage,
        expected_amount: Decimal,
        expected_sender: str,
    ) -> str:
        pass

    @abstractmethod
    async def scan_bill(self, image: ReceiptImage) -> str:
        pass

    @abstractmethod
    async def draft_reminder(self, prompt: str) -> str:
        pass


class GeminiAssistant(AIAssistantInterface):
    """
    Gemini-backed implementation of the three AI jobs.

    BOUNDARIES:
    - NEVER touches the ledger
    - NEVER retries on its own; retrying is a user action
    """

    def __init__(self, settings: Optional[GeminiSettings] = None):
        self._settings = settings or get_settings().gemini
        self._configure_genai()

    def _configure_genai(self):
        """Configure Google Generative AI."""
        genai.configure(api_key=self._settings.api_key)
        self._model = genai.GenerativeModel(
            model_name=self._settings.model_name,
            generation_config={
                "temperature": self._settings.temperature,
                "max_output_tokens": self._settings.max_tokens,
            }
        )

    async def _generate(self, contents, json_output: bool) -> str:
        generation_config = {"response_mime_type": "application/json"} if json_output else None
        try:
            response = await self._model.generate_content_async(
                contents,
                generation_config=generation_config,
            )
            return (response.text or "").strip()
        except Exception as e:
            raise AIServiceError(f"Gemini request failed: {e}") from e

    async def verify_payment(
        self,
        image: ReceiptImage,
        expected_amount: Decimal,
        expected_sender: str,
    ) -> str:
        prompt = build_verification_prompt(expected_amount, expected_sender)
        return await self._generate(
            [{"mime_type": image.mime_type, "data": image.data}, prompt],
            json_output=True,
        )

    async def scan_bill(self, image: ReceiptImage) -> str:
        return await self._generate(
            [{"mime_type": image.mime_type, "data": image.data}, BILL_SCAN_PROMPT],
            json_output=True,
        )

    async def draft_reminder(self, prompt: str) -> str:
        return await self._generate(prompt, json_output=False)
