"""
Category finalization
Assigns the caller's categories to the full transaction list after all pages are read
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Dict, List, Sequence, Tuple

from .errors import CategorizationError, LLMServiceError
from .llm_client import JsonGenerationService
from ..models.llm_schemas import CategoryFinalizationResponse
from ..models.transaction import Transaction, UNCATEGORIZED
from ..utils.parsing import normalize_category

logger = logging.getLogger(__name__)


class CategoryFinalizer(ABC):
    """Returns a new list with final categories, same length and order"""

    @abstractmethod
    async def finalize_categories(self, transactions: Sequence[Transaction],
                                  categories: Sequence[str]) -> List[Transaction]:
        raise NotImplementedError


class KeywordCategoryFinalizer(CategoryFinalizer):
    """Description keyword rules, mapped onto the caller's vocabulary"""

    RULES: Tuple[Tuple[Tuple[str, ...], str], ...] = (
        (("food", "restaurant"), "Food"),
        (("gas", "fuel"), "Transportation"),
        (("shop", "store"), "Shopping"),
    )

    def categorize(self, transaction: Transaction, categories: Sequence[str]) -> str:
        if categories and transaction.category != UNCATEGORIZED:
            kept = normalize_category(transaction.category, categories)
            if kept != UNCATEGORIZED:
                return kept

        description = transaction.description.lower()
        for keywords, category in self.RULES:
            if any(k in description for k in keywords):
                return normalize_category(category, categories)

        if not categories:
            return transaction.category or UNCATEGORIZED
        return UNCATEGORIZED

    async def finalize_categories(self, transactions: Sequence[Transaction],
                                  categories: Sequence[str]) -> List[Transaction]:
        return [replace(t, category=self.categorize(t, categories)) for t in transactions]


CATEGORY_PROMPT = """Assign one category to each bank transaction below.

Allowed categories: {categories}
Use exactly one of the allowed names. If none fits, use "Uncategorized".
Positive amounts are money in, negative amounts are money out.

Return ONLY valid JSON:
{{"assignments": [{{"id": "transaction id", "category": "category name"}}]}}

TRANSACTIONS:
{rows}
"""


class GeminiCategoryFinalizer(CategoryFinalizer):
    """
    Category assignment through the LLM service.

    Assignments are applied by id. Unknown categories become Uncategorized,
    transactions the reply skips keep their current category.
    """

    def __init__(self, service: JsonGenerationService):
        self.service = service

    @staticmethod
    def build_prompt(transactions: Sequence[Transaction], categories: Sequence[str]) -> str:
        rows = "\n".join(
            f"{t.id} | {t.description} | {t.amount} | {t.category}"
            for t in transactions
        )
        return CATEGORY_PROMPT.format(
            categories=", ".join(categories) if categories else "any short category name",
            rows=rows,
        )

    async def finalize_categories(self, transactions: Sequence[Transaction],
                                  categories: Sequence[str]) -> List[Transaction]:
        if not transactions:
            return []

        try:
            reply = await self.service.generate_json(
                self.build_prompt(transactions, categories),
                CategoryFinalizationResponse
            )
        except LLMServiceError as e:
            raise CategorizationError(f"Category finalization failed: {e}") from e

        assigned: Dict[str, str] = {a.id: a.category for a in reply.assignments}
        logger.info(f"Received {len(assigned)} category assignments for {len(transactions)} transactions")

        return [
            replace(t, category=normalize_category(assigned[t.id], categories))
            if t.id in assigned else t
            for t in transactions
        ]
