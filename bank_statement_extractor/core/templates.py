"""
Statement layout templates for the positional table parser
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from ..utils.parsing import DEFAULT_DATE_PATTERN, DEFAULT_AMOUNT_CLEAN_PATTERN


@dataclass(frozen=True)
class StatementTemplate:
    """
    Column layout and tolerances for one statement format

    Amounts come either from a debit/credit column pair, or from a single
    amount column signed by a Cr/Dr type column (`amount_column` set).
    `fixed_columns` pins column spans as (name, x, width) instead of taking
    them from the header labels; pages without headers are then parsed with
    the same spans. `pending_amounts` lets a dated row open a transaction
    whose amount arrives on a later row.
    """
    identifier: str
    bank_name: str
    headers: List[str]
    date_column: str
    debit_column: Optional[str] = None
    credit_column: Optional[str] = None
    description_column: Optional[str] = None
    amount_column: Optional[str] = None
    type_column: Optional[str] = None
    date_pattern: str = DEFAULT_DATE_PATTERN
    amount_clean_pattern: str = DEFAULT_AMOUNT_CLEAN_PATTERN
    column_tolerance: float = 15.0  # x units
    row_tolerance: float = 5.0  # y units
    max_missing_headers: int = 2
    multi_line_description: bool = True
    fixed_columns: Tuple[Tuple[str, float, float], ...] = ()
    pending_amounts: bool = False
    skip_markers: Tuple[str, ...] = ()  # lowercase; rows containing one are ignored

    @property
    def min_headers_required(self) -> int:
        return max(len(self.headers) - self.max_missing_headers, 0)

    @property
    def uses_type_column(self) -> bool:
        return self.amount_column is not None

    def to_dict(self) -> Dict[str, object]:
        return {
            'identifier': self.identifier,
            'bank_name': self.bank_name,
            'headers': list(self.headers),
            'date_column': self.date_column,
            'debit_column': self.debit_column,
            'credit_column': self.credit_column,
            'description_column': self.description_column,
            'amount_column': self.amount_column,
            'type_column': self.type_column,
            'column_tolerance': self.column_tolerance,
            'row_tolerance': self.row_tolerance,
            'max_missing_headers': self.max_missing_headers,
            'fixed_columns': [list(column) for column in self.fixed_columns],
        }


DBS_PDF_V1 = StatementTemplate(
    identifier='dbs_pdf_v1',
    bank_name='DBS Bank',
    headers=[
        'Transaction Date',
        'Value Date',
        'Details of transaction',
        'Debit',
        'Credit',
        'Balance',
    ],
    date_column='Transaction Date',
    debit_column='Debit',
    credit_column='Credit',
    description_column='Details of transaction',
)

# ICICI header labels do not sit over their data, so spans are fixed
ICICI_PDF_V1 = StatementTemplate(
    identifier='icici_pdf_v1',
    bank_name='ICICI Bank',
    headers=['Date', 'Description', 'Amount', 'Type'],
    date_column='Date',
    description_column='Description',
    amount_column='Amount',
    type_column='Type',
    date_pattern=r"(\d{2}-\d{2}-\d{4})",
    fixed_columns=(
        ('Date', 87.0, 60.0),
        ('Description', 170.0, 180.0),
        ('Amount', 368.0, 50.0),
        ('Type', 433.0, 30.0),
    ),
    pending_amounts=True,
    skip_markers=('system-generated', 'signature'),
)


@dataclass
class TemplateRegistry:
    """Lookup of templates by identifier"""
    templates: Dict[str, StatementTemplate] = field(
        default_factory=lambda: {t.identifier: t for t in (DBS_PDF_V1, ICICI_PDF_V1)}
    )

    def register(self, template: StatementTemplate) -> None:
        self.templates[template.identifier] = template

    def get(self, identifier: str) -> StatementTemplate:
        try:
            return self.templates[identifier]
        except KeyError:
            available = ', '.join(sorted(self.templates))
            raise KeyError(f"Template not found: {identifier}. Available templates: {available}") from None

    def available(self) -> List[str]:
        return sorted(self.templates)
