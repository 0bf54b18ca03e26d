"""
Core processing package
"""

from .templates import StatementTemplate, TemplateRegistry, DBS_PDF_V1, ICICI_PDF_V1
from .table_parser import PositionalTableParser
from .page_extractor import PdfPageExtractor
from .llm_client import GeminiConfig, GeminiService, PageExtractionClient, GeminiPageExtractionClient
from .category_finalizer import CategoryFinalizer, KeywordCategoryFinalizer, GeminiCategoryFinalizer
from .orchestrator import ExtractionOrchestrator, OrchestratorConfig

__all__ = [
    'StatementTemplate',
    'TemplateRegistry',
    'DBS_PDF_V1',
    'ICICI_PDF_V1',
    'PositionalTableParser',
    'PdfPageExtractor',
    'GeminiConfig',
    'GeminiService',
    'PageExtractionClient',
    'GeminiPageExtractionClient',
    'CategoryFinalizer',
    'KeywordCategoryFinalizer',
    'GeminiCategoryFinalizer',
    'ExtractionOrchestrator',
    'OrchestratorConfig',
]
