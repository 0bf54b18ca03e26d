"""
Gemini client
Text-understanding service used for page extraction, validation and categorization
"""

import json
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple, Type, TypeVar

from google import genai
from google.genai import types
from pydantic import BaseModel, ValidationError

from .errors import LLMServiceError, LLMResponseError, PageProcessingError
from ..models.extraction_result import BalanceSnapshot, PageResult
from ..models.llm_schemas import BalanceData, ExtractedTransaction, PageExtractionResponse
from ..models.transaction import Transaction
from ..utils.parsing import normalize_category, parse_date, parse_decimal
from ..utils.sanitization import DataSanitizer

logger = logging.getLogger(__name__)

SchemaT = TypeVar('SchemaT', bound=BaseModel)


@dataclass
class GeminiConfig:
    """Configuration for the Gemini API"""
    api_key: str
    model: str = "gemini-2.5-flash"
    temperature: float = 0.0

    @classmethod
    def from_env(cls) -> 'GeminiConfig':
        api_key = os.getenv("GEMINI_API_KEY")
        if not api_key:
            raise ValueError("GEMINI_API_KEY is not set")
        return cls(api_key=api_key, model=os.getenv("GEMINI_MODEL", cls.model))


class JsonGenerationService(ABC):
    """Prompt in, schema-validated JSON out"""

    @abstractmethod
    async def generate_json(self, prompt: str, schema: Type[SchemaT]) -> SchemaT:
        raise NotImplementedError


def parse_json_reply(text: Optional[str], schema: Type[SchemaT]) -> SchemaT:
    """Validate a model reply, tolerating markdown fences around the JSON"""
    content = (text or "").strip()
    start = content.find("{")
    end = content.rfind("}")
    if start == -1 or end == -1:
        raise LLMResponseError("Model did not return JSON")

    try:
        return schema.model_validate_json(content[start:end + 1])
    except (ValidationError, json.JSONDecodeError, ValueError) as e:
        raise LLMResponseError(f"Invalid JSON reply: {e}") from e


class GeminiService(JsonGenerationService):
    """
    Async Gemini client with structured (JSON) output
    """

    def __init__(self, config: GeminiConfig):
        if not config.api_key:
            raise ValueError("GeminiConfig requires api_key")
        self.config = config
        self.client = genai.Client(api_key=config.api_key)
        logger.info(f"Initialized Gemini client: {config.model}")

    async def generate_json(self, prompt: str, schema: Type[SchemaT]) -> SchemaT:
        try:
            response = await self.client.aio.models.generate_content(
                model=self.config.model,
                contents=prompt,
                config=types.GenerateContentConfig(
                    response_mime_type="application/json",
                    response_schema=schema,
                    temperature=self.config.temperature,
                ),
            )
        except Exception as e:
            raise LLMServiceError(f"Gemini request failed: {e}") from e

        return parse_json_reply(response.text, schema)


class PageExtractionClient(ABC):
    """Extracts the transactions visible on one page"""

    @abstractmethod
    async def process_page(self, page_text: str, page_number: int, total_pages: int,
                           previous_balance: Optional[Decimal],
                           categories: Sequence[str]) -> PageResult:
        raise NotImplementedError


PAGE_PROMPT = """Analyze the bank statement page below. Extract individual transactions AND balance information.

Return ONLY valid JSON with this structure:
{{
  "transactions": [
    {{
      "date": "YYYY-MM-DD",
      "description": "exact original description as it appears in the statement",
      "amount": number (positive for money IN/credits, negative for money OUT/debits),
      "suggested_category": "one of: {categories}",
      "balance": number or null (running balance after the transaction, if shown),
      "confidence": number (0-100)
    }}
  ],
  "balance_data": {{
    "opening_balance": number or null,
    "closing_balance": number or null,
    "available_balance": number or null,
    "current_balance": number or null,
    "balance_confidence": number (0-100),
    "balance_extraction_notes": "what balance information was found"
  }},
  "has_incomplete_transactions": boolean
}}

Guidelines:
1. "Dr"/"Debit" means a negative amount, "Cr"/"Credit" a positive one.
2. Keep descriptions exactly as printed. Merge multi-line descriptions into one entry.
3. Skip page headers, footers, summary rows and totals in the transactions list,
   but report opening/closing balances in balance_data.
4. Convert every date to YYYY-MM-DD.

PAGE CONTEXT:
- This is page {page_number} of {total_pages}
- Extract only transactions visible on this page
{balance_line}
- Set has_incomplete_transactions when a transaction continues from or onto another page

PAGE CONTENT:
{page_text}
"""


def _confidence(value: Optional[float]) -> Optional[float]:
    """0-100 service scale to 0..1"""
    if value is None:
        return None
    return min(max(float(value) / 100.0, 0.0), 1.0)


class GeminiPageExtractionClient(PageExtractionClient):
    """
    Page extraction through Gemini.

    Page text is sanitized before it is sent; the redaction counts travel
    back on the PageResult.
    """

    def __init__(self, service: JsonGenerationService, sanitizer: DataSanitizer = None):
        self.service = service
        self.sanitizer = sanitizer or DataSanitizer()

    def build_prompt(self, page_text: str, page_number: int, total_pages: int,
                     previous_balance: Optional[Decimal], categories: Sequence[str]) -> str:
        balance_line = (
            f"- Previous page ending balance: {previous_balance}"
            if previous_balance is not None else ""
        )
        return PAGE_PROMPT.format(
            categories=", ".join(categories) if categories else "Uncategorized",
            page_number=page_number,
            total_pages=total_pages,
            balance_line=balance_line,
            page_text=page_text,
        )

    async def process_page(self, page_text: str, page_number: int, total_pages: int,
                           previous_balance: Optional[Decimal],
                           categories: Sequence[str]) -> PageResult:
        sanitized = self.sanitizer.sanitize(page_text)
        prompt = self.build_prompt(sanitized.sanitized_text, page_number, total_pages,
                                   previous_balance, categories)

        try:
            reply = await self.service.generate_json(prompt, PageExtractionResponse)
        except LLMServiceError as e:
            raise PageProcessingError(f"Page {page_number}: {e}", page_number=page_number) from e

        transactions, notes = self._to_transactions(reply.transactions, page_number, categories)
        balance = self._to_balance(reply.balance_data)
        ending_balance = self._ending_balance(balance, transactions, previous_balance)

        summary = f"Processed {len(transactions)} transactions"
        if balance is not None:
            summary += f" and extracted balance data (confidence: {balance.confidence:.0%})"
        notes.insert(0, summary)

        return PageResult(
            page_number=page_number,
            total_pages=total_pages,
            transactions=transactions,
            balance_data=balance,
            page_ending_balance=ending_balance,
            processing_notes="; ".join(notes),
            has_incomplete_transactions=reply.has_incomplete_transactions,
            success=True,
            security_breakdown=sanitized.breakdown,
        )

    @staticmethod
    def _to_transactions(items: List[ExtractedTransaction], page_number: int,
                         categories: Sequence[str]) -> Tuple[List[Transaction], List[str]]:
        transactions: List[Transaction] = []
        notes: List[str] = []

        for index, item in enumerate(items):
            txn_date = parse_date(item.date)
            amount = parse_decimal(item.amount)
            if txn_date is None:
                notes.append(f"skipped entry {index + 1}: unreadable date '{item.date}'")
                continue
            if amount is None:
                notes.append(f"skipped entry {index + 1}: unreadable amount '{item.amount}'")
                continue
            if not amount:
                notes.append(f"skipped entry {index + 1}: zero amount")
                continue

            transactions.append(Transaction(
                id=f"page-{page_number}-{index}",
                transaction_date=txn_date,
                description=item.description.strip(),
                amount=amount,
                category=normalize_category(item.suggested_category, categories),
                balance=parse_decimal(item.balance),
                confidence=_confidence(item.confidence),
            ))

        return transactions, notes

    @staticmethod
    def _to_balance(data: Optional[BalanceData]) -> Optional[BalanceSnapshot]:
        if data is None:
            return None
        return BalanceSnapshot(
            opening_balance=parse_decimal(data.opening_balance),
            closing_balance=parse_decimal(data.closing_balance),
            available_balance=parse_decimal(data.available_balance),
            current_balance=parse_decimal(data.current_balance),
            confidence=_confidence(data.balance_confidence) or 0.0,
            notes=data.balance_extraction_notes,
        )

    @staticmethod
    def _ending_balance(balance: Optional[BalanceSnapshot], transactions: List[Transaction],
                        previous_balance: Optional[Decimal]) -> Optional[Decimal]:
        if balance is not None and balance.closing_balance is not None:
            return balance.closing_balance
        for txn in reversed(transactions):
            if txn.balance is not None:
                return txn.balance
        return previous_balance
