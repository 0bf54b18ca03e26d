"""
Extraction result data models
Page results, validation outcome, queue progress and the final job result
"""

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import List, Optional, Dict, Any, Tuple
from decimal import Decimal

from .transaction import Transaction


def _money(value: Optional[Decimal]) -> Optional[str]:
    return str(value) if value is not None else None


@dataclass(frozen=True)
class SecurityBreakdown:
    """Count of redacted sensitive items, by kind"""
    account_numbers: int = 0
    mobile_numbers: int = 0
    emails: int = 0
    pan_ids: int = 0
    customer_ids: int = 0
    ifsc_codes: int = 0
    card_numbers: int = 0
    addresses: int = 0
    names: int = 0

    def __add__(self, other: 'SecurityBreakdown') -> 'SecurityBreakdown':
        if not isinstance(other, SecurityBreakdown):
            return NotImplemented
        return SecurityBreakdown(**{
            f.name: getattr(self, f.name) + getattr(other, f.name)
            for f in fields(self)
        })

    @property
    def total(self) -> int:
        return sum(getattr(self, f.name) for f in fields(self))

    def to_dict(self) -> Dict[str, int]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass
class BalanceSnapshot:
    """Balance figures read from a page"""
    opening_balance: Optional[Decimal] = None
    closing_balance: Optional[Decimal] = None
    available_balance: Optional[Decimal] = None
    current_balance: Optional[Decimal] = None
    confidence: float = 0.0  # 0..1
    notes: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            'opening_balance': _money(self.opening_balance),
            'closing_balance': _money(self.closing_balance),
            'available_balance': _money(self.available_balance),
            'current_balance': _money(self.current_balance),
            'confidence': self.confidence,
            'notes': self.notes,
        }


@dataclass
class PageResult:
    """Outcome of processing one page"""
    page_number: int
    total_pages: int
    transactions: List[Transaction] = field(default_factory=list)
    balance_data: Optional[BalanceSnapshot] = None
    page_ending_balance: Optional[Decimal] = None
    processing_notes: str = ""
    has_incomplete_transactions: bool = False
    success: bool = True
    error: Optional[str] = None
    security_breakdown: Optional[SecurityBreakdown] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'page_number': self.page_number,
            'total_pages': self.total_pages,
            'transactions': [t.to_dict() for t in self.transactions],
            'balance_data': self.balance_data.to_dict() if self.balance_data else None,
            'page_ending_balance': _money(self.page_ending_balance),
            'processing_notes': self.processing_notes,
            'has_incomplete_transactions': self.has_incomplete_transactions,
            'success': self.success,
            'error': self.error,
            'security_breakdown': (
                self.security_breakdown.to_dict() if self.security_breakdown else None
            ),
        }


@dataclass
class ValidationResult:
    """Identity check of a statement against the expected bank and period"""
    is_valid: bool
    bank_matches: bool = False
    month_matches: bool = False
    year_matches: bool = False
    error_message: Optional[str] = None
    detected_bank: Optional[str] = None
    detected_month: Optional[str] = None
    detected_year: Optional[str] = None
    confidence: float = 0.0  # 0..1
    security_breakdown: Optional[SecurityBreakdown] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'is_valid': self.is_valid,
            'bank_matches': self.bank_matches,
            'month_matches': self.month_matches,
            'year_matches': self.year_matches,
            'error_message': self.error_message,
            'detected_bank': self.detected_bank,
            'detected_month': self.detected_month,
            'detected_year': self.detected_year,
            'confidence': self.confidence,
            'security_breakdown': (
                self.security_breakdown.to_dict() if self.security_breakdown else None
            ),
        }


class JobStatus(str, Enum):
    IDLE = 'idle'
    VALIDATING = 'validating'
    PROCESSING = 'processing'
    CATEGORIZING = 'categorizing'
    COMPLETED = 'completed'
    FAILED = 'failed'


@dataclass(frozen=True)
class QueueProgress:
    """Snapshot of orchestration state"""
    current_page: int
    total_pages: int
    completed_pages: int
    successful_pages: int
    failed_pages: int
    percent_complete: float
    estimated_time_remaining_ms: int
    status: JobStatus
    current_operation: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            'current_page': self.current_page,
            'total_pages': self.total_pages,
            'completed_pages': self.completed_pages,
            'successful_pages': self.successful_pages,
            'failed_pages': self.failed_pages,
            'percent_complete': self.percent_complete,
            'estimated_time_remaining_ms': self.estimated_time_remaining_ms,
            'status': self.status.value,
            'current_operation': self.current_operation,
        }


@dataclass
class ExtractionAnalytics:
    total_pages: int = 0
    successful_pages: int = 0
    failed_pages: int = 0
    total_transactions: int = 0
    processing_time_ms: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            'total_pages': self.total_pages,
            'successful_pages': self.successful_pages,
            'failed_pages': self.failed_pages,
            'total_transactions': self.total_transactions,
            'processing_time_ms': self.processing_time_ms,
        }


@dataclass
class ExtractionJobResult:
    """Complete output of one extraction job"""
    transactions: List[Transaction]
    validation_result: ValidationResult
    page_results: List[PageResult]
    security_breakdown: SecurityBreakdown
    analytics: ExtractionAnalytics
    logs: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON export"""
        return {
            'transactions': [t.to_dict() for t in self.transactions],
            'validation_result': self.validation_result.to_dict(),
            'page_results': [p.to_dict() for p in self.page_results],
            'security_breakdown': self.security_breakdown.to_dict(),
            'analytics': self.analytics.to_dict(),
            'logs': list(self.logs),
        }
