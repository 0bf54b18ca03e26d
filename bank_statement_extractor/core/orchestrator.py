"""
Extraction orchestrator
Validates a statement, runs pages through the extraction client one at a time,
carries the running balance across pages and finalizes categories
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Callable, List, Optional, Sequence, Tuple, TYPE_CHECKING

from .category_finalizer import CategoryFinalizer
from .errors import (
    AlreadyProcessingError,
    DocumentExtractionError,
    PasswordProtectedError,
    ValidationMismatchError,
    ValidationServiceError,
)
from .llm_client import PageExtractionClient
from .page_extractor import PdfPageExtractor
from ..models.extraction_result import (
    ExtractionAnalytics,
    ExtractionJobResult,
    JobStatus,
    PageResult,
    QueueProgress,
    SecurityBreakdown,
    ValidationResult,
)
from ..models.transaction import Transaction
from ..utils.processing_log import ProcessingLog

if TYPE_CHECKING:
    from ..validators.statement_validator import StatementValidator

logger = logging.getLogger(__name__)

PageSource = Callable[[bytes], List[str]]
ProgressCallback = Callable[[QueueProgress], None]


@dataclass
class OrchestratorConfig:
    """Orchestrator configuration"""
    validation_page_count: int = 3
    page_delay_seconds: float = 0.5
    page_timeout_seconds: float = 120.0
    validation_timeout_seconds: float = 60.0
    finalization_timeout_seconds: float = 120.0
    estimated_ms_per_page: int = 3000


@dataclass(frozen=True)
class _FoldState:
    """Accumulated job state after each processed page"""
    transactions: Tuple[Transaction, ...] = ()
    page_results: Tuple[PageResult, ...] = ()
    previous_balance: Optional[Decimal] = None
    security_breakdown: SecurityBreakdown = field(default_factory=SecurityBreakdown)
    successful_pages: int = 0
    failed_pages: int = 0

    @property
    def completed_pages(self) -> int:
        return self.successful_pages + self.failed_pages

    def advance(self, result: PageResult) -> '_FoldState':
        breakdown = self.security_breakdown
        if result.security_breakdown is not None:
            breakdown = breakdown + result.security_breakdown

        if not result.success:
            return replace(
                self,
                page_results=self.page_results + (result,),
                security_breakdown=breakdown,
                failed_pages=self.failed_pages + 1,
            )

        carry = result.page_ending_balance
        if carry is None:
            carry = self.previous_balance

        return replace(
            self,
            transactions=self.transactions + tuple(result.transactions),
            page_results=self.page_results + (result,),
            previous_balance=carry,
            security_breakdown=breakdown,
            successful_pages=self.successful_pages + 1,
        )


def _failed_page(page_number: int, total_pages: int, error: str,
                 previous_balance: Optional[Decimal],
                 breakdown: Optional[SecurityBreakdown] = None) -> PageResult:
    return PageResult(
        page_number=page_number,
        total_pages=total_pages,
        transactions=[],
        page_ending_balance=previous_balance,
        processing_notes=f"Page processing failed: {error}",
        success=False,
        error=error,
        security_breakdown=breakdown,
    )


class ExtractionOrchestrator:
    """
    Page-sequenced extraction job runner

    Job flow:
    1. Split the document into page texts
    2. Validate bank / month / year against the first pages
    3. Process pages strictly in order, each with the previous ending balance
    4. Finalize categories once over the whole list

    Only one job runs at a time per orchestrator. Failed pages are recorded
    and skipped; the job still completes.
    """

    def __init__(self, page_client: PageExtractionClient, validator: 'StatementValidator',
                 finalizer: CategoryFinalizer, page_source: Optional[PageSource] = None,
                 config: Optional[OrchestratorConfig] = None, log: Optional[ProcessingLog] = None,
                 on_progress: Optional[ProgressCallback] = None):
        self.page_client = page_client
        self.validator = validator
        self.finalizer = finalizer
        self.page_source = page_source or PdfPageExtractor().extract_pages
        self.config = config or OrchestratorConfig()
        self.log = log if log is not None else ProcessingLog(logger)
        self.on_progress = on_progress

        self._processing = False
        self._status = JobStatus.IDLE
        self._progress = self._snapshot(JobStatus.IDLE, 0, 0, _FoldState(), "")
        self._state = _FoldState()
        self._current_task: Optional[asyncio.Task] = None
        self._cancel_requested = False

    @property
    def is_processing(self) -> bool:
        return self._processing

    @property
    def status(self) -> JobStatus:
        return self._status

    @property
    def progress(self) -> QueueProgress:
        return self._progress

    @property
    def live_security_breakdown(self) -> SecurityBreakdown:
        return self._state.security_breakdown

    def cancel_current_page(self) -> bool:
        """Abandon the in-flight page call; that page is recorded as failed"""
        task = self._current_task
        if task is None or task.done():
            return False
        self._cancel_requested = True
        task.cancel()
        return True

    def _snapshot(self, status: JobStatus, current_page: int, total_pages: int,
                  state: _FoldState, operation: str) -> QueueProgress:
        completed = state.completed_pages
        if total_pages:
            percent = round(completed / total_pages * 100, 1)
        else:
            percent = 100.0 if status == JobStatus.COMPLETED else 0.0
        remaining = max(total_pages - completed, 0) * self.config.estimated_ms_per_page
        if status in (JobStatus.COMPLETED, JobStatus.FAILED):
            remaining = 0

        return QueueProgress(
            current_page=current_page,
            total_pages=total_pages,
            completed_pages=completed,
            successful_pages=state.successful_pages,
            failed_pages=state.failed_pages,
            percent_complete=percent,
            estimated_time_remaining_ms=remaining,
            status=status,
            current_operation=operation,
        )

    def _publish(self, status: JobStatus, current_page: int, total_pages: int, operation: str):
        self._status = status
        self._progress = self._snapshot(status, current_page, total_pages, self._state, operation)
        if self.on_progress is not None:
            try:
                self.on_progress(self._progress)
            except Exception as e:
                logger.warning(f"Progress callback failed: {e}")

    async def process_statement(self, document: bytes, bank_name: str, month: str, year: str,
                                categories: Optional[Sequence[str]] = None) -> ExtractionJobResult:
        """
        Run one extraction job

        Raises:
            AlreadyProcessingError: another job is active on this orchestrator
            PasswordProtectedError / DocumentExtractionError: document unreadable
            ValidationMismatchError: statement is not for the expected bank/period
            ValidationServiceError: validation could not be performed
        """
        if self._processing:
            raise AlreadyProcessingError()

        self._processing = True
        self._state = _FoldState()
        self._cancel_requested = False
        log_start = len(self.log)
        categories = list(categories or [])
        start_time = time.monotonic()
        total_pages = 0

        try:
            self.log.append(f"Starting extraction for {bank_name} {month} {year}")
            self._publish(JobStatus.VALIDATING, 0, 0, "Extracting pages")

            pages = await self._extract_pages(document)
            total_pages = len(pages)
            self.log.append(f"Document has {total_pages} pages")

            self._publish(JobStatus.VALIDATING, 0, total_pages, "Validating statement")
            validation = await self._validate(pages, bank_name, month, year)

            for page_number, page_text in enumerate(pages, 1):
                self._publish(JobStatus.PROCESSING, page_number, total_pages,
                              f"Processing page {page_number} of {total_pages}")
                result = await self._process_page(page_text, page_number, total_pages, categories)
                self._state = self._state.advance(result)
                self._publish(JobStatus.PROCESSING, page_number, total_pages,
                              f"Finished page {page_number} of {total_pages}")

                if page_number < total_pages and self.config.page_delay_seconds > 0:
                    await asyncio.sleep(self.config.page_delay_seconds)

            state = self._state
            self.log.append(
                f"Pages done: {state.successful_pages} successful, {state.failed_pages} failed, "
                f"{len(state.transactions)} transactions"
            )

            self._publish(JobStatus.CATEGORIZING, total_pages, total_pages, "Finalizing categories")
            transactions = await self._finalize(list(state.transactions), categories)

            analytics = ExtractionAnalytics(
                total_pages=total_pages,
                successful_pages=state.successful_pages,
                failed_pages=state.failed_pages,
                total_transactions=len(transactions),
                processing_time_ms=int((time.monotonic() - start_time) * 1000),
            )
            self.log.append(f"Extraction complete: {len(transactions)} transactions "
                            f"in {analytics.processing_time_ms} ms")
            self._publish(JobStatus.COMPLETED, total_pages, total_pages, "Completed")

            return ExtractionJobResult(
                transactions=transactions,
                validation_result=validation,
                page_results=list(state.page_results),
                security_breakdown=state.security_breakdown,
                analytics=analytics,
                logs=self.log.entries()[log_start:],
            )

        except Exception as e:
            self.log.error(f"Extraction failed: {e}")
            self._publish(JobStatus.FAILED, self._progress.current_page, total_pages, str(e))
            raise
        finally:
            self._processing = False
            self._current_task = None

    async def _extract_pages(self, document: bytes) -> List[str]:
        loop = asyncio.get_running_loop()
        try:
            pages = await loop.run_in_executor(None, self.page_source, document)
        except (PasswordProtectedError, DocumentExtractionError):
            raise
        except Exception as e:
            raise DocumentExtractionError(f"Failed to extract pages: {e}") from e

        if not pages:
            raise DocumentExtractionError("No pages found in document")
        return list(pages)

    async def _validate(self, pages: Sequence[str], bank_name: str, month: str,
                        year: str) -> ValidationResult:
        text = "\n\n".join(pages[:self.config.validation_page_count])
        self.log.append(f"Validating against first {min(len(pages), self.config.validation_page_count)} pages")

        try:
            validation = await asyncio.wait_for(
                self.validator.validate(bank_name, month, year, text),
                timeout=self.config.validation_timeout_seconds
            )
        except ValidationServiceError:
            raise
        except asyncio.TimeoutError as e:
            raise ValidationServiceError("Statement validation timed out") from e
        except Exception as e:
            raise ValidationServiceError(f"Statement validation failed: {e}") from e

        if not validation.is_valid:
            message = validation.error_message or "Statement does not match the expected bank or period"
            self.log.error(f"Validation failed: {message}")
            raise ValidationMismatchError(message, validation_result=validation)

        self.log.append(f"Validation passed (confidence {validation.confidence:.0%})")
        return validation

    async def _process_page(self, page_text: str, page_number: int, total_pages: int,
                            categories: Sequence[str]) -> PageResult:
        previous_balance = self._state.previous_balance
        self._cancel_requested = False
        self._current_task = asyncio.ensure_future(
            self.page_client.process_page(page_text, page_number, total_pages,
                                          previous_balance, categories)
        )

        try:
            result = await asyncio.wait_for(self._current_task,
                                            timeout=self.config.page_timeout_seconds)
        except asyncio.CancelledError:
            if not self._cancel_requested:
                raise
            self.log.warning(f"Page {page_number} cancelled")
            return _failed_page(page_number, total_pages, "Cancelled", previous_balance)
        except asyncio.TimeoutError:
            self.log.warning(f"Page {page_number} timed out")
            return _failed_page(page_number, total_pages, "Timed out", previous_balance)
        except Exception as e:
            self.log.warning(f"Page {page_number} failed: {e}")
            return _failed_page(page_number, total_pages, str(e), previous_balance)
        finally:
            self._current_task = None

        if not result.success:
            error = result.error or "Page reported failure"
            self.log.warning(f"Page {page_number} failed: {error}")
            return _failed_page(page_number, total_pages, error, previous_balance,
                                result.security_breakdown)

        self.log.append(f"Page {page_number}: {len(result.transactions)} transactions")
        return result

    async def _finalize(self, transactions: List[Transaction],
                        categories: Sequence[str]) -> List[Transaction]:
        try:
            finalized = await asyncio.wait_for(
                self.finalizer.finalize_categories(transactions, categories),
                timeout=self.config.finalization_timeout_seconds
            )
        except asyncio.TimeoutError:
            self.log.warning("Category finalization timed out, keeping page categories")
            return transactions
        except Exception as e:
            self.log.warning(f"Category finalization failed ({e}), keeping page categories")
            return transactions

        if len(finalized) != len(transactions):
            self.log.warning(
                f"Category finalization returned {len(finalized)} of {len(transactions)} "
                f"transactions, keeping page categories"
            )
            return transactions

        return list(finalized)
