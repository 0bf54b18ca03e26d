"""
Transaction and page-layout data models
"""

from dataclasses import dataclass
from typing import Dict, Optional, Tuple, Any
from datetime import date
from decimal import Decimal

UNCATEGORIZED = "Uncategorized"


@dataclass(frozen=True)
class PositionedFragment:
    """A run of text with its position on the page (PDF orientation, y grows upward)"""
    text: str
    x: float
    y: float
    width: float = 0.0
    height: float = 0.0


@dataclass(frozen=True)
class ColumnBoundary:
    """Horizontal span of one table column, anchored by its header"""
    name: str
    x: float
    width: float
    header_y: float


@dataclass(frozen=True)
class ColumnBoundarySet:
    """Column boundaries detected on one page"""
    positions: Dict[str, ColumnBoundary]
    header_y: float
    score: float = 1.0


@dataclass(frozen=True)
class TableRow:
    """Fragments sharing one reconstructed line, sorted left to right"""
    y: float
    fragments: Tuple[PositionedFragment, ...] = ()

    @property
    def text(self) -> str:
        return " ".join(f.text for f in self.fragments).strip()


@dataclass
class Transaction:
    """Single normalized transaction"""
    id: str
    transaction_date: date
    description: str
    amount: Decimal
    category: Optional[str] = UNCATEGORIZED
    is_transfer: bool = False

    # Optional extraction metadata
    balance: Optional[Decimal] = None
    confidence: Optional[float] = None

    @property
    def transaction_type(self) -> str:
        return 'income' if self.amount > 0 else 'expense'

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON export"""
        return {
            'id': self.id,
            'transaction_date': self.transaction_date.isoformat(),
            'description': self.description,
            'amount': str(self.amount),
            'transaction_type': self.transaction_type,
            'category': self.category,
            'is_transfer': self.is_transfer,
            'balance': str(self.balance) if self.balance is not None else None,
            'confidence': self.confidence,
        }
