"""
PDF Text Extractor
==================

Text-based PDFs via pypdf. Scanned PDFs come back flagged so the factory can
hand them to remote OCR.
"""

import io
import logging
from typing import List

from pypdf import PdfReader

from ..errors import ExtractionError
from .base import DocumentExtractor, ExtractionResult, normalize_text

logger = logging.getLogger(__name__)

# Below this many characters of embedded text a PDF is treated as scanned
MIN_TEXT_CHARS = 100


class PDFTextExtractor(DocumentExtractor):
    """
    Extracts embedded text page by page.
    """

    @property
    def supported_mimes(self) -> List[str]:
        return [
            "application/pdf",
            "application/x-pdf"
        ]

    def extract(self, data: bytes, filename: str = None) -> ExtractionResult:
        try:
            reader = PdfReader(io.BytesIO(data))
            page_texts = []
            for page_no, page in enumerate(reader.pages, start=1):
                try:
                    page_texts.append(normalize_text(page.extract_text() or ""))
                except Exception as e:
                    logger.warning(f"PDF {filename}: page {page_no} unreadable: {e}")
                    page_texts.append("")
        except Exception as e:
            raise ExtractionError(f"Failed to parse PDF file: {e}") from e

        full_text = "\n\n".join(t for t in page_texts if t)
        is_scanned = len(full_text.strip()) < MIN_TEXT_CHARS and len(page_texts) > 0

        metadata = {"is_scanned": is_scanned}
        try:
            if reader.metadata and reader.metadata.title:
                metadata["title"] = reader.metadata.title
        except Exception as e:
            logger.debug(f"PDF {filename}: metadata unreadable: {e}")

        return ExtractionResult(
            text=full_text,
            page_count=len(page_texts),
            method="pdf",
            metadata=metadata,
        )
