"""
Error kinds raised by the extraction pipeline.

Document-access and validation errors abort a job. Page, categorization
and header-detection errors are recorded and the job carries on.
"""

from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from ..models.extraction_result import ValidationResult


class StatementExtractionError(Exception):
    """Base class for extraction errors"""
    code = "EXTRACTION_ERROR"


class PasswordProtectedError(StatementExtractionError):
    code = "PASSWORD_PROTECTED_PDF"

    def __init__(self, message: str = "The PDF is password protected"):
        super().__init__(message)


class DocumentExtractionError(StatementExtractionError):
    code = "EXTRACTION_FAILED"


class ValidationMismatchError(StatementExtractionError):
    """Statement does not match the expected bank, month or year"""
    code = "VALIDATION_MISMATCH"

    def __init__(self, message: str, validation_result: Optional['ValidationResult'] = None):
        super().__init__(message)
        self.validation_result = validation_result


class ValidationServiceError(StatementExtractionError):
    """The validation backend itself failed"""
    code = "VALIDATION_SERVICE_ERROR"


class PageProcessingError(StatementExtractionError):
    code = "PAGE_PROCESSING_ERROR"

    def __init__(self, message: str, page_number: Optional[int] = None):
        super().__init__(message)
        self.page_number = page_number


class CategorizationError(StatementExtractionError):
    code = "CATEGORIZATION_ERROR"


class HeaderDetectionError(StatementExtractionError):
    code = "HEADER_DETECTION_FAILED"

    def __init__(self, message: str, page_number: Optional[int] = None):
        super().__init__(message)
        self.page_number = page_number


class AlreadyProcessingError(StatementExtractionError):
    code = "ALREADY_PROCESSING"

    def __init__(self, message: str = "Another statement is currently being processed"):
        super().__init__(message)


class LLMServiceError(StatementExtractionError):
    """Raw failure talking to the text-understanding service"""
    code = "LLM_SERVICE_ERROR"


class LLMResponseError(LLMServiceError):
    """The service answered, but not with the JSON we asked for"""
    code = "LLM_RESPONSE_INVALID"
