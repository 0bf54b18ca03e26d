import os
import sys


def pytest_sessionstart(session):
    # Ensure project root is on sys.path so `bank_statement_extractor` resolves
    project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
    if project_root not in sys.path:
        sys.path.insert(0, project_root)


# --- Test utilities: fragments and fake collaborators ---
import asyncio
from datetime import date
from decimal import Decimal

import pytest

from bank_statement_extractor.core.llm_client import (
    JsonGenerationService,
    PageExtractionClient,
    parse_json_reply,
)
from bank_statement_extractor.core.category_finalizer import CategoryFinalizer
from bank_statement_extractor.models import (
    PageResult,
    PositionedFragment,
    SecurityBreakdown,
    Transaction,
    ValidationResult,
)
from bank_statement_extractor.validators import StatementValidator

HEADER_Y = 700.0

# Column header x / width, spaced so widened spans never overlap
DBS_HEADER_LAYOUT = [
    ("Transaction Date", 50.0, 60.0),
    ("Value Date", 150.0, 50.0),
    ("Details of transaction", 240.0, 120.0),
    ("Debit", 400.0, 30.0),
    ("Credit", 470.0, 35.0),
    ("Balance", 540.0, 40.0),
]


def frag(text, x, y, width=20.0):
    return PositionedFragment(text=text, x=x, y=y, width=width, height=8.0)


def dbs_headers(skip=(), y=HEADER_Y):
    return [frag(name, x, y, width) for name, x, width in DBS_HEADER_LAYOUT if name not in skip]


def dbs_page():
    """Header plus three transactions, one continuation line and one noise row"""
    return dbs_headers() + [
        frag("01-Mar-2024", 50, 680),
        frag("01-Mar-2024", 150, 680),
        frag("Coffee shop", 240, 680),
        frag("4.50", 400, 680),
        frag("995.50", 540, 680),
        frag("ORCHARD RD", 240, 668),
        frag("02-Mar-2024", 50, 650),
        frag("Salary", 240, 650),
        frag("1,234.56", 470, 650),
        frag("2,230.06", 540, 650),
        frag("03-Mar-2024", 50, 630),
        frag("Balance B/F", 240, 630),
        frag("04-Mar-2024", 50, 610),
        frag("NETS Grocery", 240, 610),
        frag("20.00", 400, 610),
    ]


def icici_headers(y=HEADER_Y):
    # Labels sit away from the data columns, as on real ICICI statements
    return [frag(name, x, y) for name, x in [("Date", 95), ("Description", 210), ("Amount", 470), ("Type", 580)]]


def icici_row(y, date_text="", description="", amount="", kind=""):
    cells = [(date_text, 87.0), (description, 180.0), (amount, 368.08), (kind, 433.01)]
    return [frag(text, x, y) for text, x in cells if text]


def icici_page(with_headers=True):
    """Two single-row transactions, a two-row transaction and a footer"""
    rows = (
        icici_row(680, "12-06-2025", "UPI/tailoringjobs/Payment", "90000.00", "DR")
        + icici_row(660, "07-06-2025", "NEFT-ZERODHA BROKING", "52,683.63", "CR")
        + icici_row(640, "05-06-2025", "NEFT transfer from")
        + icici_row(628, description="ACME LTD", amount="1,500.00", kind="CR")
        + icici_row(600, description="This is a system-generated statement")
    )
    return (icici_headers() if with_headers else []) + rows


def make_transactions(page_number, count, start_id=0):
    return [
        Transaction(
            id=f"p{page_number}-{start_id + i}",
            transaction_date=date(2024, 3, 1 + i % 28),
            description=f"Page {page_number} item {i}",
            amount=Decimal("-10.00") if i % 2 else Decimal("25.00"),
        )
        for i in range(count)
    ]


def make_page_result(page_number, total_pages, count, ending_balance=None, breakdown=None,
                     success=True):
    return PageResult(
        page_number=page_number,
        total_pages=total_pages,
        transactions=make_transactions(page_number, count),
        page_ending_balance=Decimal(ending_balance) if ending_balance is not None else None,
        success=success,
        error=None if success else "service said no",
        security_breakdown=breakdown,
    )


def valid_result():
    return ValidationResult(
        is_valid=True,
        bank_matches=True,
        month_matches=True,
        year_matches=True,
        confidence=0.9,
    )


class FakeJsonService(JsonGenerationService):
    """
    Replies keyed by schema. A reply is a model instance, a raw string
    (parsed like a real reply), an exception to raise, or a list of those
    consumed in order.
    """

    def __init__(self, replies=None):
        self.replies = dict(replies or {})
        self.calls = []

    async def generate_json(self, prompt, schema):
        self.calls.append((prompt, schema))
        reply = self.replies[schema]
        if isinstance(reply, list):
            reply = reply.pop(0)
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, str):
            return parse_json_reply(reply, schema)
        return reply


class FakePageClient(PageExtractionClient):
    """Per-page outcomes: PageResult, exception, or an asyncio.Event to wait on first"""

    def __init__(self, outcomes=None, default_count=1):
        self.outcomes = dict(outcomes or {})
        self.default_count = default_count
        self.calls = []

    async def process_page(self, page_text, page_number, total_pages, previous_balance, categories):
        self.calls.append((page_number, previous_balance))
        outcome = self.outcomes.get(page_number)
        if isinstance(outcome, asyncio.Event):
            await outcome.wait()
            outcome = None
        if isinstance(outcome, Exception):
            raise outcome
        if callable(outcome):
            outcome = await outcome()
        if outcome is None:
            outcome = make_page_result(page_number, total_pages, self.default_count)
        return outcome


class FakeValidator(StatementValidator):
    def __init__(self, result=None, error=None, delay=0.0):
        self.result = result or valid_result()
        self.error = error
        self.delay = delay
        self.calls = []

    async def validate(self, expected_bank, expected_month, expected_year, first_pages_text):
        self.calls.append((expected_bank, expected_month, expected_year, first_pages_text))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.result


class FakeFinalizer(CategoryFinalizer):
    def __init__(self, error=None, drop=0, category=None):
        self.error = error
        self.drop = drop
        self.category = category
        self.calls = 0

    async def finalize_categories(self, transactions, categories):
        self.calls += 1
        if self.error is not None:
            raise self.error
        result = list(transactions)[self.drop:]
        if self.category:
            for txn in result:
                txn.category = self.category
        return result


def pages_of(*texts):
    def _source(document):
        return list(texts)
    return _source


@pytest.fixture
def breakdown_factory():
    def _make(**counts):
        return SecurityBreakdown(**counts)
    return _make
