"""
PDF page extraction
Per-page text for the LLM path and positioned fragments for the table parser
"""

import logging
import os
from io import BytesIO
from typing import List

import pdfplumber
from pdfminer.pdfdocument import PDFPasswordIncorrect
from pypdf import PdfReader
from pypdf.errors import PyPdfError

from .errors import PasswordProtectedError, DocumentExtractionError
from ..models.transaction import PositionedFragment

logger = logging.getLogger(__name__)


def _is_password_error(exc: BaseException) -> bool:
    if isinstance(exc, PDFPasswordIncorrect):
        return True
    return any(isinstance(arg, PDFPasswordIncorrect) for arg in getattr(exc, 'args', ()))


class PdfPageExtractor:
    """
    Splits a PDF into pages.

    Encrypted documents that cannot be opened with an empty password raise
    PasswordProtectedError, including from the fallback path.
    """

    def __init__(self, max_pages: int = None):
        if max_pages is None:
            max_pages = int(os.getenv("BSE_MAX_PAGES", "200"))
        self.max_pages = max_pages

    def check_access(self, document: bytes) -> None:
        """Raise PasswordProtectedError if the document needs a password"""
        try:
            reader = PdfReader(BytesIO(document))
        except PyPdfError as e:
            raise DocumentExtractionError(f"Failed to load PDF: {e}") from e

        if not reader.is_encrypted:
            return

        try:
            opened = reader.decrypt("")
        except PyPdfError:
            opened = 0
        if opened == 0:
            raise PasswordProtectedError()

    def extract_pages(self, document: bytes) -> List[str]:
        """
        Text of each page, in order.

        Falls back to whole-document text as a single page when per-page
        extraction fails.
        """
        self.check_access(document)

        try:
            pages = self._extract_page_texts(document)
        except PasswordProtectedError:
            raise
        except Exception as e:
            if _is_password_error(e):
                raise PasswordProtectedError() from e
            logger.warning(f"Page extraction failed ({e}), using fallback method")
            return [self._extract_text_fallback(document)]

        logger.info(f"Extracted {len(pages)} pages")
        return pages

    def extract_fragments(self, document: bytes) -> List[List[PositionedFragment]]:
        """Positioned words per page, with y measured up from the page bottom"""
        self.check_access(document)

        pages: List[List[PositionedFragment]] = []
        try:
            with pdfplumber.open(BytesIO(document)) as pdf:
                for page in pdf.pages[:self.max_pages]:
                    height = float(page.height)
                    words = page.extract_words(
                        keep_blank_chars=True,
                        x_tolerance=2,
                        y_tolerance=2,
                    ) or []
                    pages.append([
                        PositionedFragment(
                            text=w["text"],
                            x=float(w["x0"]),
                            y=height - float(w["bottom"]),
                            width=float(w["x1"]) - float(w["x0"]),
                            height=float(w["bottom"]) - float(w["top"]),
                        )
                        for w in words
                    ])
        except Exception as e:
            if _is_password_error(e):
                raise PasswordProtectedError() from e
            raise DocumentExtractionError(f"Failed to read PDF layout: {e}") from e

        logger.info(f"Extracted positioned text from {len(pages)} pages")
        return pages

    def _extract_page_texts(self, document: bytes) -> List[str]:
        with pdfplumber.open(BytesIO(document)) as pdf:
            if len(pdf.pages) > self.max_pages:
                logger.warning(f"Document has {len(pdf.pages)} pages, only the first {self.max_pages} are used")
            return [(page.extract_text() or "") for page in pdf.pages[:self.max_pages]]

    def _extract_text_fallback(self, document: bytes) -> str:
        try:
            reader = PdfReader(BytesIO(document))
            if reader.is_encrypted and reader.decrypt("") == 0:
                raise PasswordProtectedError()
            texts = [(page.extract_text() or "") for page in reader.pages[:self.max_pages]]
        except PasswordProtectedError:
            raise
        except Exception as e:
            raise DocumentExtractionError(f"Failed to extract PDF text: {e}") from e

        if not texts:
            raise DocumentExtractionError("PDF has no pages")
        return "\n\n".join(texts)
