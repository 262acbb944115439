"""
TXT Extractor
=============

Plain text, Markdown and CSV files.
"""

from typing import List

import chardet

from ..errors import ExtractionError
from .base import DocumentExtractor, ExtractionResult, normalize_text


class TXTExtractor(DocumentExtractor):
    """
    Plain text extractor with encoding detection.
    """

    @property
    def supported_mimes(self) -> List[str]:
        return [
            "text/plain",
            "text/csv",
            "text/markdown",
            "text/x-markdown",
            "application/x-empty"
        ]

    def extract(self, data: bytes, filename: str = None) -> ExtractionResult:
        """Decode and normalize a text file"""
        try:
            detected = chardet.detect(data)
            encoding = detected.get('encoding', 'utf-8') or 'utf-8'

            try:
                text = data.decode(encoding)
            except (UnicodeDecodeError, LookupError):
                text = data.decode('utf-8', errors='replace')

            text = normalize_text(text)

            return ExtractionResult(
                text=text,
                page_count=1,
                method="txt",
                metadata={
                    "encoding": encoding,
                    "confidence": detected.get('confidence', 0),
                },
            )

        except Exception as e:
            raise ExtractionError(f"Failed to read text file: {e}") from e
