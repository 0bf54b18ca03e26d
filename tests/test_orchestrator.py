import asyncio
from decimal import Decimal

import pytest

from bank_statement_extractor.core.errors import (
    AlreadyProcessingError,
    CategorizationError,
    LLMServiceError,
    PageProcessingError,
    PasswordProtectedError,
    ValidationMismatchError,
    ValidationServiceError,
)
from bank_statement_extractor.core.orchestrator import ExtractionOrchestrator, OrchestratorConfig
from bank_statement_extractor.models import JobStatus, QueueProgress, SecurityBreakdown, ValidationResult
from bank_statement_extractor.utils.processing_log import ProcessingLog

from conftest import (
    FakeFinalizer,
    FakePageClient,
    FakeValidator,
    make_page_result,
    pages_of,
)

FAST = OrchestratorConfig(page_delay_seconds=0, page_timeout_seconds=1,
                          validation_timeout_seconds=1, finalization_timeout_seconds=1)


def _orchestrator(page_client=None, validator=None, finalizer=None, pages=("p1",), config=FAST,
                  on_progress=None):
    return ExtractionOrchestrator(
        page_client=page_client or FakePageClient(),
        validator=validator or FakeValidator(),
        finalizer=finalizer or FakeFinalizer(),
        page_source=pages_of(*pages),
        config=config,
        log=ProcessingLog(),
        on_progress=on_progress,
    )


async def _run(orchestrator, categories=("Food",)):
    return await orchestrator.process_statement(b"%PDF", "DBS Bank", "March", "2024", list(categories))


@pytest.mark.asyncio
async def test_two_pages_carry_balance():
    client = FakePageClient({
        1: make_page_result(1, 2, 5, ending_balance="1000.00"),
        2: make_page_result(2, 2, 3, ending_balance="1250.00"),
    })
    orchestrator = _orchestrator(client, pages=("page one", "page two"))

    result = await _run(orchestrator)

    assert len(result.transactions) == 8
    assert result.analytics.successful_pages == 2
    assert result.analytics.failed_pages == 0
    assert client.calls == [(1, None), (2, Decimal("1000.00"))]
    assert orchestrator.status == JobStatus.COMPLETED
    assert orchestrator.is_processing is False


@pytest.mark.asyncio
async def test_failed_page_is_recorded_and_skipped():
    client = FakePageClient({
        1: make_page_result(1, 4, 2, ending_balance="100"),
        2: make_page_result(2, 4, 3, ending_balance="200"),
        3: PageProcessingError("service unavailable", page_number=3),
        4: make_page_result(4, 4, 1, ending_balance="300"),
    })
    orchestrator = _orchestrator(client, pages=("a", "b", "c", "d"))

    result = await _run(orchestrator)

    assert result.analytics.failed_pages == 1
    assert result.analytics.successful_pages == 3
    assert [t.id for t in result.transactions] == ["p1-0", "p1-1", "p2-0", "p2-1", "p2-2", "p4-0"]
    assert client.calls[3] == (4, Decimal("200"))

    failed = result.page_results[2]
    assert failed.success is False
    assert failed.transactions == []
    assert "service unavailable" in failed.error
    assert failed.page_ending_balance == Decimal("200")


@pytest.mark.asyncio
async def test_page_reporting_failure_counts_as_failed():
    client = FakePageClient({1: make_page_result(1, 2, 4, ending_balance="50", success=False)})
    orchestrator = _orchestrator(client, pages=("a", "b"))

    result = await _run(orchestrator)

    assert result.analytics.failed_pages == 1
    assert len(result.transactions) == 1
    assert client.calls[1] == (2, None)


@pytest.mark.asyncio
async def test_successful_page_without_balance_keeps_carry():
    client = FakePageClient({
        1: make_page_result(1, 3, 1, ending_balance="75.25"),
        2: make_page_result(2, 3, 0),
    })
    orchestrator = _orchestrator(client, pages=("a", "b", "c"))

    result = await _run(orchestrator)

    assert result.analytics.successful_pages == 3
    assert client.calls[2] == (3, Decimal("75.25"))


@pytest.mark.asyncio
async def test_page_timeout_is_a_page_failure():
    async def slow():
        await asyncio.sleep(5)

    config = OrchestratorConfig(page_delay_seconds=0, page_timeout_seconds=0.05)
    orchestrator = _orchestrator(FakePageClient({1: slow}), pages=("a", "b"), config=config)

    result = await _run(orchestrator)

    assert result.analytics.failed_pages == 1
    assert result.page_results[0].error == "Timed out"
    assert len(result.transactions) == 1


@pytest.mark.asyncio
async def test_all_pages_failing_still_completes():
    client = FakePageClient({1: RuntimeError("boom"), 2: RuntimeError("boom")})
    orchestrator = _orchestrator(client, pages=("a", "b"))

    result = await _run(orchestrator)

    assert result.transactions == []
    assert result.analytics.successful_pages == 0
    assert result.analytics.failed_pages == 2
    assert orchestrator.status == JobStatus.COMPLETED


@pytest.mark.asyncio
async def test_bank_mismatch_makes_no_page_calls():
    mismatch = ValidationResult(is_valid=False, bank_matches=False, month_matches=True, year_matches=True,
                                error_message="Validation failed - Bank: FAIL, Month: OK, Year: OK")
    client = FakePageClient()
    orchestrator = _orchestrator(client, validator=FakeValidator(result=mismatch), pages=("a", "b"))

    with pytest.raises(ValidationMismatchError) as exc:
        await _run(orchestrator)

    assert client.calls == []
    assert exc.value.validation_result is mismatch
    assert orchestrator.status == JobStatus.FAILED
    assert orchestrator.is_processing is False


@pytest.mark.asyncio
async def test_validation_service_error_is_distinct():
    client = FakePageClient()
    orchestrator = _orchestrator(client, validator=FakeValidator(error=LLMServiceError("down")))

    with pytest.raises(ValidationServiceError):
        await _run(orchestrator)
    assert client.calls == []


@pytest.mark.asyncio
async def test_validation_timeout_is_a_service_error():
    config = OrchestratorConfig(page_delay_seconds=0, validation_timeout_seconds=0.05)
    orchestrator = _orchestrator(validator=FakeValidator(delay=5), config=config)

    with pytest.raises(ValidationServiceError):
        await _run(orchestrator)


@pytest.mark.asyncio
async def test_validation_uses_first_three_pages():
    validator = FakeValidator()
    orchestrator = _orchestrator(validator=validator, pages=("one", "two", "three", "four"))

    await _run(orchestrator)

    assert validator.calls[0] == ("DBS Bank", "March", "2024", "one\n\ntwo\n\nthree")


@pytest.mark.asyncio
async def test_password_protected_document_fails_job():
    def locked(document):
        raise PasswordProtectedError()

    validator = FakeValidator()
    orchestrator = ExtractionOrchestrator(
        page_client=FakePageClient(), validator=validator, finalizer=FakeFinalizer(),
        page_source=locked, config=FAST,
    )

    with pytest.raises(PasswordProtectedError):
        await _run(orchestrator)
    assert validator.calls == []
    assert orchestrator.status == JobStatus.FAILED


@pytest.mark.asyncio
async def test_categorization_failure_keeps_transactions():
    finalizer = FakeFinalizer(error=CategorizationError("model offline"))
    orchestrator = _orchestrator(FakePageClient(default_count=4), finalizer=finalizer, pages=("a", "b"))

    result = await _run(orchestrator)

    assert finalizer.calls == 1
    assert len(result.transactions) == 8


@pytest.mark.asyncio
async def test_finalizer_dropping_transactions_is_ignored():
    orchestrator = _orchestrator(FakePageClient(default_count=3), finalizer=FakeFinalizer(drop=1))

    result = await _run(orchestrator)

    assert len(result.transactions) == 3


@pytest.mark.asyncio
async def test_finalized_categories_are_returned():
    orchestrator = _orchestrator(FakePageClient(default_count=2), finalizer=FakeFinalizer(category="Food"))

    result = await _run(orchestrator)

    assert [t.category for t in result.transactions] == ["Food", "Food"]


@pytest.mark.asyncio
async def test_security_breakdown_is_summed_across_pages():
    client = FakePageClient({
        1: make_page_result(1, 3, 1, breakdown=SecurityBreakdown(emails=1, account_numbers=2)),
        2: RuntimeError("lost"),
        3: make_page_result(3, 3, 1, breakdown=SecurityBreakdown(emails=2)),
    })
    orchestrator = _orchestrator(client, pages=("a", "b", "c"))

    result = await _run(orchestrator)

    assert result.security_breakdown == SecurityBreakdown(emails=3, account_numbers=2)
    assert orchestrator.live_security_breakdown == result.security_breakdown


@pytest.mark.asyncio
async def test_progress_snapshots_are_published():
    snapshots = []
    orchestrator = _orchestrator(pages=("a", "b"), on_progress=snapshots.append)

    await _run(orchestrator)

    assert all(isinstance(s, QueueProgress) for s in snapshots)
    statuses = [s.status for s in snapshots]
    assert statuses[0] == JobStatus.VALIDATING
    assert JobStatus.PROCESSING in statuses
    assert JobStatus.CATEGORIZING in statuses
    assert statuses[-1] == JobStatus.COMPLETED

    final = orchestrator.progress
    assert final.completed_pages == 2
    assert final.percent_complete == 100.0
    assert final.estimated_time_remaining_ms == 0

    mid = next(s for s in snapshots if s.status == JobStatus.PROCESSING)
    assert mid.completed_pages == 0
    assert mid.estimated_time_remaining_ms == 2 * FAST.estimated_ms_per_page


@pytest.mark.asyncio
async def test_second_job_is_rejected_while_running():
    gate = asyncio.Event()
    orchestrator = _orchestrator(FakePageClient({1: gate}))

    job = asyncio.create_task(_run(orchestrator))
    while not orchestrator.is_processing:
        await asyncio.sleep(0)

    with pytest.raises(AlreadyProcessingError):
        await _run(orchestrator)

    gate.set()
    result = await job
    assert len(result.transactions) == 1


@pytest.mark.asyncio
async def test_cancel_current_page_records_failure():
    never = asyncio.Event()
    orchestrator = _orchestrator(FakePageClient({1: never}), pages=("a", "b"))

    assert orchestrator.cancel_current_page() is False

    job = asyncio.create_task(_run(orchestrator))
    for _ in range(200):
        await asyncio.sleep(0.01)
        if orchestrator.cancel_current_page():
            break

    result = await job
    assert result.analytics.failed_pages == 1
    assert result.page_results[0].error == "Cancelled"
    assert len(result.transactions) == 1


@pytest.mark.asyncio
async def test_logs_are_returned_with_result():
    orchestrator = _orchestrator()

    result = await _run(orchestrator)

    assert result.logs
    assert all(entry.startswith("[") for entry in result.logs)
    assert any("Validation passed" in entry for entry in result.logs)


@pytest.mark.asyncio
async def test_injected_log_sink_receives_entries():
    sink = ProcessingLog()
    orchestrator = ExtractionOrchestrator(
        page_client=FakePageClient(), validator=FakeValidator(), finalizer=FakeFinalizer(),
        page_source=pages_of("p1"), config=FAST, log=sink,
    )

    result = await _run(orchestrator)

    assert orchestrator.log is sink
    assert len(sink) > 0
    assert sink.entries() == result.logs


@pytest.mark.asyncio
async def test_logs_are_scoped_to_one_job():
    orchestrator = _orchestrator()

    first = await _run(orchestrator)
    second = await orchestrator.process_statement(b"%PDF", "DBS Bank", "April", "2024", ["Food"])

    assert any("March" in entry for entry in first.logs)
    assert any("April" in entry for entry in second.logs)
    assert not any("March" in entry for entry in second.logs)
    assert len(orchestrator.log) == len(first.logs) + len(second.logs)
