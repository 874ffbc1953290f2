"""Conversational endpoint: classify a chat request into a query or a proposed ledger mutation."""

import json
import logging

from statement_ledger.config import settings
from statement_ledger.models import AssistantReply, ChatMessage, ImagePart, Ledger
from statement_ledger.parsers.llm_client import llm_extract_json

logger = logging.getLogger(__name__)

CONFIRMATION_QUESTION = "Anh/chị có muốn em điều chỉnh trên báo cáo không?"


def build_chat_prompt(
    message: str,
    ledger: Ledger,
    history: list[ChatMessage],
    raw_statement: str,
    has_image: bool,
) -> str:
    """Build the assistant prompt with full ledger and conversation context."""
    history_json = json.dumps(
        [m.model_dump(by_alias=True, exclude={"image"}) for m in history], ensure_ascii=False, indent=2
    )
    ledger_json = json.dumps(ledger.model_dump(by_alias=True), ensure_ascii=False, indent=2)
    image_note = "\nThe user pasted the attached image with this request." if has_image else ""

    return f"""You are a friendly, precise accounting assistant. Always answer in Vietnamese, calling yourself "em" and the user "anh/chị".

You never change the ledger yourself. You classify the latest request and, for changes, propose an action:
- Edit one numeric cell -> action "update" with "update": {{"index": <0-based row>, "field": "debit"|"credit"|"fee"|"vat", "newValue": <number>}}
- Add a transaction (for example from a pasted image) -> action "add" with "add": {{"transactionCode", "date" (DD/MM/YYYY), "description", "debit", "credit", "fee", "vat"}}
- Revert the previous change -> action "undo"
For update, add and undo set "confirmationRequired": true and set "responseText" to a short confirmation question such as "{CONFIRMATION_QUESTION}"
- Any other question -> action "query", answer it in "responseText", "confirmationRequired": false.

Ledger conventions: "debit" is money into the account, "credit" is the principal that left it, fee and VAT are separate.
Check row numbers and amounts against the current ledger and the original statement before proposing anything.

CHAT HISTORY:
{history_json}

LATEST REQUEST:
"{message}"{image_note}

CURRENT LEDGER (JSON):
{ledger_json}

ORIGINAL STATEMENT (RAW TEXT):
{raw_statement}

Respond with ONE JSON object and nothing else:
{{"responseText": "...", "action": "update"|"add"|"undo"|"query", "update": null, "add": null, "confirmationRequired": false}}"""


async def chat_with_assistant(
    message: str,
    ledger: Ledger,
    history: list[ChatMessage],
    raw_statement: str,
    image: ImagePart | None = None,
) -> AssistantReply:
    """
    Ask the assistant about the ledger.

    Raises:
        ExtractionServiceError: If the call fails or the answer is malformed
    """
    prompt = build_chat_prompt(message, ledger, history, raw_statement, has_image=image is not None)
    reply = await llm_extract_json(
        prompt,
        AssistantReply,
        images=[image] if image else None,
        temperature=settings.chat_temperature,
        max_retries=2,
    )
    logger.info(f"Assistant classified request as {reply.action.value} (confirm={reply.confirmation_required})")
    return reply
