"""Turn raw statement text into a structured accounting ledger via the LLM."""

import logging

from statement_ledger.config import settings
from statement_ledger.models import Ledger
from statement_ledger.parsers.llm_client import ExtractionServiceError, llm_extract_json

logger = logging.getLogger(__name__)

PROCESS_FAILED_MESSAGE = "Không thể xử lý sao kê. Vui lòng kiểm tra lại nội dung và thử lại."


def build_statement_prompt(text: str) -> str:
    """Build the structuring prompt for a raw statement."""
    return f"""You are a meticulous chartered accountant. Convert the RAW Vietnamese bank statement below into an accounting ledger.

MANDATORY RULES:

1. Fees and VAT are separate columns.
   - Look for "Phí" (fee) and "Thuế GTGT" / "VAT" values for each transaction.
   - Never add fee or VAT into the transaction amount.
   - "credit" is the principal that left the account, BEFORE fee and VAT.
   - Example: money out 818,000,000 with fee 327,200 and VAT 32,720 becomes
     "credit": 818000000, "fee": 327200, "vat": 32720, "debit": 0.
   - Use 0 when a transaction has no fee or VAT.

2. Numbers must be exact.
   - "." and "," are thousands separators in these statements.
   - Never drop or add zeros: "3,000,000" is 3000000, not 30000000 or 300000.
   - Re-check every amount before answering.

3. Balances.
   - openingBalance: "Số dư đầu kỳ", "Số dư cuối kỳ trước", "Số dư đầu ngày" or the English equivalent. 0 if absent.
   - endingBalance: "Số dư cuối kỳ", "Số dư cuối ngày" or the English equivalent. 0 if absent.

4. Debit/credit are inverted relative to the bank's point of view.
   - Money INTO the account (bank credit / "Ghi có") goes to "debit" (Phát Sinh Nợ on the ledger).
   - Money OUT of the account (bank debit / "Ghi nợ") goes to "credit" (Phát Sinh Có on the ledger).
   - At most one of debit/credit is non-zero per transaction.

5. Account info: account holder name, account number, bank name and branch. Empty string if absent.

6. Keep transactions in statement order. Dates use DD/MM/YYYY.

Respond with ONE JSON object and nothing else:
{{
  "accountInfo": {{"accountName": "", "accountNumber": "", "bankName": "", "branch": ""}},
  "openingBalance": 0,
  "endingBalance": 0,
  "transactions": [
    {{"transactionCode": "", "date": "DD/MM/YYYY", "description": "", "debit": 0, "credit": 0, "fee": 0, "vat": 0}}
  ]
}}

Raw statement:
---
{text}
---"""


async def process_statement(text: str) -> Ledger:
    """
    Structure a raw statement into a Ledger.

    Raises:
        ExtractionServiceError: With a user-facing message if the call fails or
            the answer does not match the ledger schema
    """
    logger.info(f"Structuring statement ({len(text)} chars)")
    try:
        ledger = await llm_extract_json(
            build_statement_prompt(text),
            Ledger,
            temperature=settings.extraction_temperature,
        )
    except ExtractionServiceError as e:
        logger.error(f"Statement processing failed: {e}")
        raise ExtractionServiceError(PROCESS_FAILED_MESSAGE) from e

    logger.info(
        f"Extracted {len(ledger.transactions)} transactions "
        f"(opening={ledger.opening_balance}, ending={ledger.ending_balance})"
    )
    return ledger
