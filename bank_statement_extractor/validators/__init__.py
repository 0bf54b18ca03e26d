"""
Validators package
"""

from .statement_validator import StatementValidator, KeywordStatementValidator, GeminiStatementValidator

__all__ = [
    'StatementValidator',
    'KeywordStatementValidator',
    'GeminiStatementValidator',
]
