"""
Positional Table Parser
Rebuilds a transaction table from positioned text fragments (no markup)
"""

import logging
import math
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Union

from .errors import HeaderDetectionError
from .page_extractor import PdfPageExtractor
from .templates import StatementTemplate, DBS_PDF_V1
from ..models.transaction import (
    PositionedFragment,
    ColumnBoundary,
    ColumnBoundarySet,
    TableRow,
    Transaction,
    UNCATEGORIZED,
)
from ..utils.parsing import (
    within_tolerance,
    in_column_span,
    extract_date,
    parse_amount,
    parse_amount_and_type,
    direction_marker,
)

logger = logging.getLogger(__name__)

UNASSIGNED = 'Unassigned'


@dataclass(frozen=True)
class StartRow:
    """Row opening a new transaction; a zero amount means it is still pending"""
    transaction_date: date
    amount: Decimal
    description: str
    direction: int = 0


@dataclass(frozen=True)
class AmountRow:
    """Undated row supplying the amount of a pending transaction"""
    amount: Decimal
    text: str
    direction: int = 0


@dataclass(frozen=True)
class ContinuationRow:
    """Row carrying more description text for the pending transaction"""
    text: str


@dataclass(frozen=True)
class NoiseRow:
    """Spacer, footer or anything else"""


RowKind = Union[StartRow, AmountRow, ContinuationRow, NoiseRow]


def header_match_score(found: int, expected: int) -> float:
    return found / expected if expected else 0.0


class PositionalTableParser:
    """
    Table parser driven by header positions

    Steps per page:
    1. Locate the header labels and derive column boundaries
    2. Cluster fragments below the header into rows by y
    3. Assign each row's fragments to columns by x
    4. Classify rows as start / amount / continuation / noise and build transactions

    Templates with fixed column spans also parse pages that carry no header.
    """

    def __init__(self, template: StatementTemplate = DBS_PDF_V1):
        self.template = template

    def find_column_boundaries(self, fragments: Sequence[PositionedFragment]) -> Optional[ColumnBoundarySet]:
        """
        Find header labels by case-insensitive prefix match.

        Up to `max_missing_headers` labels may be absent. The header line is
        the y of the first label found, in template order.
        """
        positions: Dict[str, ColumnBoundary] = {}
        header_y: Optional[float] = None

        for header in self.template.headers:
            needle = header.lower()
            found = next(
                (f for f in fragments if f.text.strip().lower().startswith(needle)),
                None
            )
            if found is None:
                logger.debug(f"Header not found: '{header}'")
                continue

            if header_y is None:
                header_y = found.y
            positions[header] = ColumnBoundary(
                name=header,
                x=found.x,
                width=found.width,
                header_y=found.y
            )

        expected = len(self.template.headers)
        score = header_match_score(len(positions), expected)
        if len(positions) < self.template.min_headers_required or header_y is None:
            logger.info(f"Found {len(positions)}/{expected} headers, not enough to locate the table")
            return None

        if self.template.fixed_columns:
            return self.fixed_boundaries(header_y, score)

        logger.debug(f"Column boundaries: {sorted(positions)} (score={score:.2f})")
        return ColumnBoundarySet(positions=positions, header_y=header_y, score=score)

    def fixed_boundaries(self, header_y: float = math.inf, score: float = 0.0) -> ColumnBoundarySet:
        """Template-pinned column spans; the default header_y takes every fragment as content"""
        positions = {
            name: ColumnBoundary(name=name, x=x, width=width, header_y=header_y)
            for name, x, width in self.template.fixed_columns
        }
        return ColumnBoundarySet(positions=positions, header_y=header_y, score=score)

    def group_rows(self, fragments: Sequence[PositionedFragment], header_y: float) -> List[TableRow]:
        """
        Cluster content fragments into rows by y.

        Each fragment joins the first existing cluster whose anchor y is within
        the row tolerance, otherwise it anchors a new cluster. This is order
        dependent and not a stable clustering: two fragments just over the
        tolerance apart can land in different rows depending on input order.
        """
        tolerance = self.template.row_tolerance
        clusters: List[List[PositionedFragment]] = []
        anchors: List[float] = []

        for fragment in fragments:
            if fragment.y >= header_y or not fragment.text.strip():
                continue

            for index, anchor in enumerate(anchors):
                if within_tolerance(anchor, fragment.y, tolerance):
                    clusters[index].append(fragment)
                    break
            else:
                anchors.append(fragment.y)
                clusters.append([fragment])

        rows = [
            TableRow(y=anchor, fragments=tuple(sorted(items, key=lambda f: f.x)))
            for anchor, items in zip(anchors, clusters)
        ]
        rows.sort(key=lambda r: r.y, reverse=True)
        return rows

    def assign_columns(self, row: TableRow, boundaries: ColumnBoundarySet) -> Dict[str, str]:
        """Map a row's fragments onto columns; leftovers form the description"""
        tolerance = self.template.column_tolerance
        parts: Dict[str, List[str]] = {UNASSIGNED: []}

        for fragment in row.fragments:
            column = next(
                (name for name, b in boundaries.positions.items()
                 if in_column_span(fragment.x, b.x, b.width, tolerance)),
                UNASSIGNED
            )
            parts.setdefault(column, []).append(fragment.text)

        row_data = {name: " ".join(texts).strip() for name, texts in parts.items()}

        description_column = self.template.description_column
        if description_column and row_data.get(description_column):
            described = row_data.pop(description_column)
            row_data[UNASSIGNED] = f"{described} {row_data[UNASSIGNED]}".strip()
        elif description_column:
            row_data.pop(description_column, None)

        return row_data

    def extract_date(self, text: Optional[str]) -> Optional[date]:
        return extract_date(text, self.template.date_pattern)

    def parse_amount(self, debit_text: Optional[str], credit_text: Optional[str]) -> Decimal:
        return parse_amount(debit_text, credit_text, self.template.amount_clean_pattern)

    def row_direction(self, row_data: Dict[str, str]) -> int:
        """Cr/Dr marker of a row: type column, then amount text, then trailing description"""
        for column in (self.template.type_column, self.template.amount_column, UNASSIGNED):
            direction = direction_marker(row_data.get(column)) if column else 0
            if direction:
                return direction
        return 0

    def row_amount(self, row_data: Dict[str, str]) -> Decimal:
        template = self.template
        if not template.uses_type_column:
            return self.parse_amount(row_data.get(template.debit_column), row_data.get(template.credit_column))

        amount = parse_amount_and_type(
            row_data.get(template.amount_column),
            row_data.get(template.type_column),
            template.amount_clean_pattern
        )
        if amount > 0 and self.row_direction(row_data) < 0:
            return -amount
        return amount

    def is_skipped(self, row_data: Dict[str, str]) -> bool:
        text = " ".join(row_data.values()).lower()
        return any(marker in text for marker in self.template.skip_markers)

    def classify_row(self, row_data: Dict[str, str]) -> RowKind:
        """
        Classify a row. The date+amount test runs before the continuation test.

        With `pending_amounts`, a dated row without an amount still opens a
        transaction and an undated row with an amount completes it.
        """
        if self.is_skipped(row_data):
            return NoiseRow()

        txn_date = self.extract_date(row_data.get(self.template.date_column))
        amount = self.row_amount(row_data)
        details = row_data.get(UNASSIGNED, '').strip()

        if txn_date is not None and amount != 0:
            return StartRow(transaction_date=txn_date, amount=amount, description=details)
        if self.template.pending_amounts:
            if txn_date is not None and details:
                return StartRow(transaction_date=txn_date, amount=Decimal("0"), description=details,
                                direction=self.row_direction(row_data))
            if txn_date is None and amount != 0:
                return AmountRow(amount=amount, text=details, direction=self.row_direction(row_data))
        if txn_date is None and amount == 0 and details:
            return ContinuationRow(text=details)
        return NoiseRow()

    def build_transactions(self, rows: Sequence[TableRow], boundaries: ColumnBoundarySet,
                           page_number: int = 1) -> List[Transaction]:
        """
        Fold classified rows into transactions.

        A pending transaction (zero amount) takes its amount from the next
        amount row, signed by the direction its dated row carried, else by
        the amount row's own, else as a debit. Transactions still pending when
        the next one starts, or at the end of the page, are dropped.
        """
        transactions: List[Transaction] = []
        current: Optional[Transaction] = None
        pending_direction = 0

        def flush():
            if current is None:
                return
            if current.amount != 0:
                transactions.append(current)
            else:
                logger.debug(f"Dropping incomplete transaction without amount: '{current.description}'")

        for index, row in enumerate(rows):
            kind = self.classify_row(self.assign_columns(row, boundaries))

            if isinstance(kind, StartRow):
                flush()
                current = Transaction(
                    id=f"txn-{page_number}-{len(transactions) + 1}",
                    transaction_date=kind.transaction_date,
                    description=kind.description,
                    amount=kind.amount,
                    category=UNCATEGORIZED,
                )
                pending_direction = kind.direction
            elif isinstance(kind, AmountRow):
                if current is None or current.amount != 0:
                    logger.debug(f"Row {index}: amount {kind.amount} without a pending transaction, skipped")
                    continue
                direction = pending_direction or kind.direction or -1
                current.amount = abs(kind.amount) if direction > 0 else -abs(kind.amount)
                if kind.text:
                    current.description = f"{current.description} {kind.text}".strip()
            elif isinstance(kind, ContinuationRow):
                if current is not None and self.template.multi_line_description:
                    current.description = f"{current.description} {kind.text}".strip()
                else:
                    logger.debug(f"Row {index}: continuation without a pending transaction, skipped")
            else:
                logger.debug(f"Row {index}: not a transaction row, skipped: '{row.text}'")

        flush()
        return transactions

    def parse_page(self, fragments: Sequence[PositionedFragment], page_number: int = 1) -> List[Transaction]:
        boundaries = self.find_column_boundaries(fragments)
        if boundaries is None:
            if not self.template.fixed_columns:
                raise HeaderDetectionError(
                    f"Could not find table headers on page {page_number}",
                    page_number=page_number
                )
            logger.info(f"Page {page_number}: no table headers, using fixed column positions")
            boundaries = self.fixed_boundaries()

        rows = self.group_rows(fragments, boundaries.header_y)
        transactions = self.build_transactions(rows, boundaries, page_number)
        logger.info(f"Page {page_number}: {len(rows)} rows, {len(transactions)} transactions")
        return transactions

    def parse_document(self, pages: Sequence[Sequence[PositionedFragment]]) -> List[Transaction]:
        """
        Parse every page independently. Pages without a detectable header
        are skipped unless the template pins its column spans.
        """
        all_transactions: List[Transaction] = []

        for page_number, fragments in enumerate(pages, 1):
            try:
                all_transactions.extend(self.parse_page(fragments, page_number))
            except HeaderDetectionError as e:
                logger.info(f"{e}. Skipping.")

        logger.info(f"Parsed {len(pages)} pages, {len(all_transactions)} transactions "
                    f"({self.template.identifier})")
        return all_transactions

    def parse_pdf(self, document: bytes, extractor: Optional[PdfPageExtractor] = None) -> List[Transaction]:
        """Extract fragments from a PDF and parse them"""
        extractor = extractor or PdfPageExtractor()
        return self.parse_document(extractor.extract_fragments(document))
