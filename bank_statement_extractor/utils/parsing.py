"""
Shared parsing helpers: coordinate tolerances, dates and amounts from free text.
"""

from __future__ import annotations

from datetime import datetime, date
from decimal import Decimal, InvalidOperation
from typing import Optional, Sequence, Union
import re


DEFAULT_DATE_PATTERN = r"(\d{2}-[A-Za-z]{3}-\d{4})"
DEFAULT_AMOUNT_CLEAN_PATTERN = r"[^\d.-]"

_NUMERIC_DATE_FORMATS = (
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%d/%m/%Y",
    "%d-%m-%Y",
)

# Month names are matched against _MONTHS, never through strptime's %b/%B,
# which follow the process locale.
_DAY_MONTH_YEAR = re.compile(r"^(\d{1,2})[-\s]([A-Za-z]{3,9})\.?[-\s]\s*(\d{4})$")
_MONTH_DAY_YEAR = re.compile(r"^([A-Za-z]{3,9})\.?\s+(\d{1,2}),?\s+(\d{4})$")

_DIRECTION_MARKER = re.compile(r"(?<![A-Z])(CR|DR)\.?$")

_MONTHS = (
    "january", "february", "march", "april", "may", "june",
    "july", "august", "september", "october", "november", "december",
)


def within_tolerance(a: float, b: float, tolerance: float) -> bool:
    """True when two coordinates are closer than the tolerance."""
    return abs(a - b) < tolerance


def in_column_span(x: float, start: float, width: float, tolerance: float) -> bool:
    """True when x falls inside a column span widened by the tolerance on both sides."""
    return start - tolerance <= x < start + width + tolerance


def parse_date(value: Optional[str]) -> Optional[date]:
    """Parse a date string into a date object."""
    if not value:
        return None

    cleaned = value.strip()
    if not cleaned:
        return None

    for fmt in _NUMERIC_DATE_FORMATS:
        try:
            return datetime.strptime(cleaned, fmt).date()
        except ValueError:
            continue

    match = _DAY_MONTH_YEAR.match(cleaned)
    if match:
        day, month, year = match.groups()
        return _named_month_date(year, month, day)

    match = _MONTH_DAY_YEAR.match(cleaned)
    if match:
        month, day, year = match.groups()
        return _named_month_date(year, month, day)

    return None


def _named_month_date(year: str, month: str, day: str) -> Optional[date]:
    text = month.lower()
    number = next(
        (index for index, name in enumerate(_MONTHS, 1) if len(text) >= 3 and name.startswith(text)),
        None
    )
    if number is None:
        return None

    try:
        return date(int(year), number, int(day))
    except ValueError:
        return None


def extract_date(text: Optional[str], pattern: str = DEFAULT_DATE_PATTERN) -> Optional[date]:
    """
    Find the first date matching the pattern inside free text.

    Cells often repeat the date (e.g. "01-Mar-2024 01-Mar-2024"); only the
    first occurrence is used. A match that is not a real calendar date gives None.
    """
    if not text:
        return None

    match = re.search(pattern, text.strip())
    if not match:
        return None

    return parse_date(match.group(0))


def clean_amount(text: Optional[str], clean_pattern: str = DEFAULT_AMOUNT_CLEAN_PATTERN) -> Optional[Decimal]:
    """Strip everything but digits, dot and minus, then parse."""
    if not text:
        return None

    cleaned = re.sub(clean_pattern, "", text)
    if not cleaned:
        return None

    try:
        return Decimal(cleaned)
    except (InvalidOperation, ValueError):
        return None


def parse_amount(debit_text: Optional[str], credit_text: Optional[str],
                 clean_pattern: str = DEFAULT_AMOUNT_CLEAN_PATTERN) -> Decimal:
    """
    Signed amount from a debit/credit column pair.

    Credit wins when it is strictly positive, then the negated debit,
    otherwise zero.
    """
    credit = clean_amount(credit_text, clean_pattern)
    if credit is not None and credit > 0:
        return credit

    debit = clean_amount(debit_text, clean_pattern)
    if debit is not None and debit > 0:
        return -debit

    return Decimal("0")


def direction_marker(text: Optional[str]) -> int:
    """+1 for a trailing Cr, -1 for a trailing Dr, 0 when neither is present."""
    if not text:
        return 0

    match = _DIRECTION_MARKER.search(text.strip().upper())
    if not match:
        return 0
    return 1 if match.group(1) == "CR" else -1


def parse_amount_and_type(amount_text: Optional[str], type_text: Optional[str],
                          clean_pattern: str = DEFAULT_AMOUNT_CLEAN_PATTERN) -> Decimal:
    """
    Signed amount from a single amount column and a Cr/Dr type column.

    Cr keeps the amount positive and Dr negates it. With an empty type
    column a Cr/Dr suffix on the amount itself decides; failing both the
    amount stays positive. Unreadable or non-positive amounts give zero.
    """
    amount = clean_amount(amount_text, clean_pattern)
    if amount is None or amount <= 0:
        return Decimal("0")

    direction = direction_marker(type_text) or direction_marker(amount_text)
    return -amount if direction < 0 else amount


def parse_decimal(value: Union[str, int, float, Decimal, None]) -> Optional[Decimal]:
    """Parse a currency value (number or string) into a Decimal."""
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, Decimal):
        return value

    if isinstance(value, (int, float)):
        try:
            return Decimal(str(value))
        except InvalidOperation:
            return None

    cleaned = value.strip()
    if not cleaned:
        return None

    upper = cleaned.upper()
    suffix_sign = None
    for token in ("CR", "CREDIT"):
        if upper.endswith(token):
            suffix_sign = 1
            cleaned = cleaned[:-len(token)]
            break

    if suffix_sign is None:
        for token in ("DR", "DEBIT"):
            if upper.endswith(token):
                suffix_sign = -1
                cleaned = cleaned[:-len(token)]
                break

    cleaned = re.sub(r"[$₹€£\s]", "", cleaned)

    is_negative = False
    if cleaned.startswith("(") and cleaned.endswith(")"):
        is_negative = True
        cleaned = cleaned[1:-1]
    elif cleaned.startswith("-"):
        is_negative = True
        cleaned = cleaned[1:]
    elif cleaned.startswith("+"):
        cleaned = cleaned[1:]

    if suffix_sign == -1:
        is_negative = True

    cleaned = cleaned.replace(",", "")

    try:
        amount = Decimal(cleaned)
    except (InvalidOperation, ValueError):
        return None

    if not amount.is_finite():
        return None

    return -amount if is_negative else amount


def month_number(value: Union[str, int, None]) -> Optional[int]:
    """Month number (1-12) from a name, abbreviation or numeral."""
    if value is None:
        return None

    text = str(value).strip().lower()
    if not text:
        return None

    if text.isdigit():
        number = int(text)
        return number if 1 <= number <= 12 else None

    for index, name in enumerate(_MONTHS, 1):
        if text[:3] == name[:3]:
            return index

    return None


def month_name(value: Union[str, int, None]) -> Optional[str]:
    number = month_number(value)
    return _MONTHS[number - 1] if number else None


def normalize_category(name: Optional[str], vocabulary: Sequence[str],
                       default: str = "Uncategorized") -> str:
    """
    Canonical category name from the caller's vocabulary (case-insensitive).
    With an empty vocabulary any non-blank name is accepted.
    """
    if not name or not name.strip():
        return default

    wanted = name.strip().lower()
    if not vocabulary:
        return name.strip()

    for candidate in vocabulary:
        if candidate.strip().lower() == wanted:
            return candidate
    return default
