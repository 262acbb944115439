"""
Ingest Base Types
=================

Unified output type for all extractors.
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

EXTRACTION_FAILED_PLACEHOLDER = "[Text could not be extracted from this document. Paste the relevant text manually.]"


@dataclass
class ExtractionResult:
    """
    Plain text pulled out of one uploaded file.

    method is "txt", "docx", "pdf", "ocr" or "failed".
    """
    text: str
    page_count: int
    method: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failed(cls, error: str) -> "ExtractionResult":
        return cls(text=EXTRACTION_FAILED_PLACEHOLDER, page_count=0, method="failed", error=error)


class DocumentExtractor(ABC):
    """
    Abstract base class for local text extractors.
    """

    @property
    @abstractmethod
    def supported_mimes(self) -> List[str]:
        """List of supported MIME types"""
        pass

    @abstractmethod
    def extract(self, data: bytes, filename: str = None) -> ExtractionResult:
        """
        Extract text from document bytes.

        Raises:
            ExtractionError: If the file cannot be read
        """
        pass

    def can_extract(self, mime_type: str) -> bool:
        return mime_type.lower() in [m.lower() for m in self.supported_mimes]


_BLANK_RUNS = re.compile(r"\n\s*\n+")


def normalize_text(text: str) -> str:
    """
    Normalize text for prompts and storage.

    - Remove zero-width characters and BOM
    - Trim trailing whitespace on each line
    - Collapse runs of blank lines to a single blank line
    """
    if not text:
        return ""

    text = text.replace('\u200b', '')  # Zero-width space
    text = text.replace('\ufeff', '')  # BOM
    text = text.replace('\r\n', '\n').replace('\r', '\n')

    lines = [line.rstrip() for line in text.split('\n')]
    text = _BLANK_RUNS.sub("\n\n", "\n".join(lines))

    return text.strip()
