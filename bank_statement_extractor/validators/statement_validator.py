"""
Statement identity validation
Checks that an uploaded statement belongs to the expected bank and period
before any page is processed
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from ..core.errors import LLMResponseError, LLMServiceError, ValidationServiceError
from ..core.llm_client import JsonGenerationService
from ..models.extraction_result import ValidationResult
from ..models.llm_schemas import StatementValidationResponse
from ..utils.parsing import month_name, month_number
from ..utils.sanitization import DataSanitizer

logger = logging.getLogger(__name__)


class StatementValidator(ABC):
    """Bank / month / year check against the first pages of a statement"""

    @abstractmethod
    async def validate(self, expected_bank: str, expected_month: str, expected_year: str,
                       first_pages_text: str) -> ValidationResult:
        raise NotImplementedError


def _ok(flag: bool) -> str:
    return "OK" if flag else "FAIL"


class KeywordStatementValidator(StatementValidator):
    """
    Offline keyword check.

    Bank: full name, name without the word "bank", or its first word.
    Month: full name, three-letter abbreviation, or YYYY-MM.
    Year: plain substring.
    """

    VALID_CONFIDENCE = 0.85
    INVALID_CONFIDENCE = 0.30

    @staticmethod
    def bank_matches(text: str, bank: str) -> bool:
        lowered = text.lower()
        bank = bank.strip().lower()
        if not bank:
            return False

        candidates = {bank, bank.replace("bank", "").strip(), bank.split()[0]}
        return any(c and c in lowered for c in candidates)

    @staticmethod
    def month_matches(text: str, month: str, year: str) -> bool:
        lowered = text.lower()
        name = month_name(month)
        if name and (name in lowered or name[:3] in lowered):
            return True

        number = month_number(month)
        return bool(number and f"{year}-{number:02d}" in text)

    async def validate(self, expected_bank: str, expected_month: str, expected_year: str,
                       first_pages_text: str) -> ValidationResult:
        return self.check(expected_bank, expected_month, expected_year, first_pages_text)

    def check(self, expected_bank: str, expected_month: str, expected_year: str,
              text: str) -> ValidationResult:
        bank_ok = self.bank_matches(text, expected_bank)
        month_ok = self.month_matches(text, expected_month, str(expected_year))
        year_ok = bool(str(expected_year).strip()) and str(expected_year).strip() in text

        is_valid = bank_ok and month_ok and year_ok
        error = None
        if not is_valid:
            error = (f"Validation failed - Bank: {_ok(bank_ok)}, "
                     f"Month: {_ok(month_ok)}, Year: {_ok(year_ok)}")

        logger.info(f"Keyword validation: bank={bank_ok} month={month_ok} year={year_ok}")
        return ValidationResult(
            is_valid=is_valid,
            bank_matches=bank_ok,
            month_matches=month_ok,
            year_matches=year_ok,
            error_message=error,
            detected_bank=expected_bank if bank_ok else None,
            detected_month=expected_month if month_ok else None,
            detected_year=str(expected_year) if year_ok else None,
            confidence=self.VALID_CONFIDENCE if is_valid else self.INVALID_CONFIDENCE,
        )


VALIDATION_PROMPT = """You are validating a bank statement before processing.

EXPECTED:
- Bank: {bank}
- Month: {month}
- Year: {year}

Look at the statement text below and decide whether it was issued by the expected bank
and covers the expected month and year. Bank names may appear abbreviated or in a logo
caption; months may appear as names, abbreviations or numeric dates.

Return ONLY valid JSON:
{{
  "isValid": boolean,
  "bankMatches": boolean,
  "monthMatches": boolean,
  "yearMatches": boolean,
  "errorMessage": string or null,
  "detectedBank": string or null,
  "detectedMonth": string or null,
  "detectedYear": string or null,
  "confidence": number (0-100)
}}

STATEMENT TEXT:
{text}
"""


class GeminiStatementValidator(StatementValidator):
    """
    Validation through the LLM service.

    A reply that is not the JSON we asked for falls back to the keyword
    check on the original text. A service failure is raised as
    ValidationServiceError so callers can tell it apart from a mismatch.
    """

    def __init__(self, service: JsonGenerationService, sanitizer: Optional[DataSanitizer] = None,
                 fallback: Optional[KeywordStatementValidator] = None):
        self.service = service
        self.sanitizer = sanitizer or DataSanitizer()
        self.fallback = fallback or KeywordStatementValidator()

    async def validate(self, expected_bank: str, expected_month: str, expected_year: str,
                       first_pages_text: str) -> ValidationResult:
        sanitized = self.sanitizer.sanitize(first_pages_text)
        prompt = VALIDATION_PROMPT.format(
            bank=expected_bank,
            month=expected_month,
            year=expected_year,
            text=sanitized.sanitized_text,
        )

        try:
            reply = await self.service.generate_json(prompt, StatementValidationResponse)
        except LLMResponseError as e:
            logger.warning(f"Unusable validation reply ({e}), using keyword validation")
            result = self.fallback.check(expected_bank, expected_month, expected_year,
                                         first_pages_text)
            result.security_breakdown = sanitized.breakdown
            return result
        except LLMServiceError as e:
            raise ValidationServiceError(f"Validation service failed: {e}") from e

        confidence = min(max(float(reply.confidence or 0) / 100.0, 0.0), 1.0)
        is_valid = bool(reply.isValid)
        error = reply.errorMessage
        if not is_valid and not error:
            error = (f"Validation failed - Bank: {_ok(reply.bankMatches)}, "
                     f"Month: {_ok(reply.monthMatches)}, Year: {_ok(reply.yearMatches)}")

        return ValidationResult(
            is_valid=is_valid,
            bank_matches=bool(reply.bankMatches),
            month_matches=bool(reply.monthMatches),
            year_matches=bool(reply.yearMatches),
            error_message=error if not is_valid else None,
            detected_bank=reply.detectedBank,
            detected_month=reply.detectedMonth,
            detected_year=reply.detectedYear,
            confidence=confidence,
            security_breakdown=sanitized.breakdown,
        )
