"""
Data models for bank statement extraction
"""

from .transaction import (
    PositionedFragment,
    ColumnBoundary,
    ColumnBoundarySet,
    TableRow,
    Transaction,
    UNCATEGORIZED,
)
from .extraction_result import (
    SecurityBreakdown,
    BalanceSnapshot,
    PageResult,
    ValidationResult,
    JobStatus,
    QueueProgress,
    ExtractionAnalytics,
    ExtractionJobResult,
)

__all__ = [
    'PositionedFragment',
    'ColumnBoundary',
    'ColumnBoundarySet',
    'TableRow',
    'Transaction',
    'UNCATEGORIZED',
    'SecurityBreakdown',
    'BalanceSnapshot',
    'PageResult',
    'ValidationResult',
    'JobStatus',
    'QueueProgress',
    'ExtractionAnalytics',
    'ExtractionJobResult',
]
