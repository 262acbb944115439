"""
DOCX Extractor
==============

Microsoft Word document extractor using python-docx.
"""

import io
import logging
from typing import List

from docx import Document

from ..errors import ExtractionError
from .base import DocumentExtractor, ExtractionResult, normalize_text

logger = logging.getLogger(__name__)


class DOCXExtractor(DocumentExtractor):
    """
    Microsoft Word (.docx) extractor.

    Paragraph text first, then table rows as "cell | cell" lines.
    """

    @property
    def supported_mimes(self) -> List[str]:
        return [
            "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        ]

    def extract(self, data: bytes, filename: str = None) -> ExtractionResult:
        try:
            doc = Document(io.BytesIO(data))
        except Exception as e:
            raise ExtractionError(f"Failed to open DOCX file: {e}") from e

        parts: List[str] = []
        for para in doc.paragraphs:
            text = para.text.strip()
            if text:
                parts.append(text)

        table_rows = 0
        for table in doc.tables:
            for row in table.rows:
                row_texts = [cell.text.strip() for cell in row.cells if cell.text.strip()]
                if row_texts:
                    parts.append(" | ".join(row_texts))
                    table_rows += 1

        text = normalize_text("\n\n".join(parts))
        logger.debug(f"DOCX {filename}: {len(parts)} blocks, {table_rows} table rows")

        # DOCX has no native page breaks
        return ExtractionResult(
            text=text,
            page_count=1,
            method="docx",
            metadata={"block_count": len(parts), "table_rows": table_rows},
        )
