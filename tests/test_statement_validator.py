import pytest

from bank_statement_extractor.core.errors import LLMServiceError, ValidationServiceError
from bank_statement_extractor.models.llm_schemas import StatementValidationResponse
from bank_statement_extractor.validators import GeminiStatementValidator, KeywordStatementValidator

from conftest import FakeJsonService

STATEMENT_TEXT = """DBS Bank Ltd
Consolidated Statement
Statement period: 01 March 2024 to 31 March 2024
Account 123456789012
"""


@pytest.mark.asyncio
async def test_keyword_validation_passes():
    result = await KeywordStatementValidator().validate("DBS Bank", "March", "2024", STATEMENT_TEXT)

    assert result.is_valid is True
    assert result.bank_matches and result.month_matches and result.year_matches
    assert result.confidence == pytest.approx(0.85)
    assert result.error_message is None


@pytest.mark.asyncio
async def test_keyword_validation_reports_failed_parts():
    result = await KeywordStatementValidator().validate("OCBC Bank", "March", "2023", STATEMENT_TEXT)

    assert result.is_valid is False
    assert result.confidence == pytest.approx(0.30)
    assert result.error_message == "Validation failed - Bank: FAIL, Month: OK, Year: FAIL"


def test_keyword_bank_variants():
    text = "standard chartered e-statement"
    assert KeywordStatementValidator.bank_matches(text, "Standard Chartered Bank")
    assert KeywordStatementValidator.bank_matches("HSBC statement", "HSBC Singapore")
    assert not KeywordStatementValidator.bank_matches("UOB statement", "DBS Bank")


def test_keyword_month_variants():
    assert KeywordStatementValidator.month_matches("Period: 01 Mar 2024", "March", "2024")
    assert KeywordStatementValidator.month_matches("2024-03-01 to 2024-03-31", "03", "2024")
    assert not KeywordStatementValidator.month_matches("2024-04-01", "March", "2024")


@pytest.mark.asyncio
async def test_llm_validation_normalizes_reply():
    service = FakeJsonService({StatementValidationResponse: StatementValidationResponse(
        isValid=True, bankMatches=True, monthMatches=True, yearMatches=True,
        detectedBank="DBS", detectedMonth="March", detectedYear="2024", confidence=140,
    )})
    result = await GeminiStatementValidator(service).validate("DBS Bank", "March", "2024", STATEMENT_TEXT)

    assert result.is_valid is True
    assert result.detected_bank == "DBS"
    assert result.confidence == 1.0
    assert result.security_breakdown.account_numbers == 1
    prompt, _ = service.calls[0]
    assert "123456789012" not in prompt


@pytest.mark.asyncio
async def test_llm_validation_mismatch_without_message_gets_one():
    service = FakeJsonService({StatementValidationResponse: '{"isValid": false, "bankMatches": false, '
                                                            '"monthMatches": true, "yearMatches": true, '
                                                            '"confidence": 70}'})
    result = await GeminiStatementValidator(service).validate("OCBC", "March", "2024", STATEMENT_TEXT)

    assert result.is_valid is False
    assert result.error_message == "Validation failed - Bank: FAIL, Month: OK, Year: OK"
    assert result.confidence == pytest.approx(0.7)


@pytest.mark.asyncio
async def test_unparseable_reply_falls_back_to_keywords():
    service = FakeJsonService({StatementValidationResponse: "I think it is a DBS statement"})
    result = await GeminiStatementValidator(service).validate("DBS Bank", "March", "2024", STATEMENT_TEXT)

    assert result.is_valid is True
    assert result.confidence == pytest.approx(0.85)


@pytest.mark.asyncio
async def test_service_failure_is_not_a_mismatch():
    service = FakeJsonService({StatementValidationResponse: LLMServiceError("connection reset")})

    with pytest.raises(ValidationServiceError):
        await GeminiStatementValidator(service).validate("DBS Bank", "March", "2024", STATEMENT_TEXT)
