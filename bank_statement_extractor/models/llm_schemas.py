"""
Response schemas for the text-understanding service.
Passed to the model as structured-output schemas and used to validate replies.
Money fields accept numbers or formatted strings ("1,234.50", "500.00 DR");
conversion to Decimal happens downstream.
"""

from __future__ import annotations

from typing import List, Optional, Union

from pydantic import BaseModel, Field


class ExtractedTransaction(BaseModel):
    date: str
    description: str = ""
    amount: Union[float, str, None] = None
    suggested_category: Optional[str] = None
    balance: Union[float, str, None] = None
    confidence: Optional[float] = None


class BalanceData(BaseModel):
    opening_balance: Union[float, str, None] = None
    closing_balance: Union[float, str, None] = None
    available_balance: Union[float, str, None] = None
    current_balance: Union[float, str, None] = None
    balance_confidence: float = 0.0
    balance_extraction_notes: str = ""


class PageExtractionResponse(BaseModel):
    transactions: List[ExtractedTransaction] = Field(default_factory=list)
    balance_data: Optional[BalanceData] = None
    has_incomplete_transactions: bool = False


class StatementValidationResponse(BaseModel):
    isValid: bool = False
    bankMatches: bool = False
    monthMatches: bool = False
    yearMatches: bool = False
    errorMessage: Optional[str] = None
    detectedBank: Optional[str] = None
    detectedMonth: Optional[str] = None
    detectedYear: Optional[str] = None
    confidence: float = 0.0


class CategoryAssignment(BaseModel):
    id: str
    category: str


class CategoryFinalizationResponse(BaseModel):
    assignments: List[CategoryAssignment] = Field(default_factory=list)
