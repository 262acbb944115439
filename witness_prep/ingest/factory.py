"""
Extractor Factory
=================

Picks an extractor by MIME type. Images and scanned PDFs go to remote OCR
when OCR_URL is configured.

extract_document_text never raises: any failure yields the fixed placeholder
text with `error` set, and the caller marks the document as errored.
"""

import logging
import mimetypes
from typing import Dict, Optional

from ..errors import ExtractionError, UnsupportedFormatError
from .base import DocumentExtractor, ExtractionResult
from .docx import DOCXExtractor
from .ocr import RemoteOCRClient
from .pdf import PDFTextExtractor
from .txt import TXTExtractor

logger = logging.getLogger(__name__)

_txt_extractor = TXTExtractor()
_docx_extractor = DOCXExtractor()
_pdf_extractor = PDFTextExtractor()

_extractors: Dict[str, DocumentExtractor] = {
    mime: extractor
    for extractor in (_txt_extractor, _docx_extractor, _pdf_extractor)
    for mime in extractor.supported_mimes
}

# Image MIME types (require OCR)
_image_mimes = {
    "image/png",
    "image/jpeg",
    "image/jpg",
    "image/tiff",
    "image/bmp",
    "image/gif",
    "image/webp"
}

_ext_mapping = {
    'txt': 'text/plain',
    'csv': 'text/csv',
    'md': 'text/markdown',
    'docx': 'application/vnd.openxmlformats-officedocument.wordprocessingml.document',
    'pdf': 'application/pdf',
    'png': 'image/png',
    'jpg': 'image/jpeg',
    'jpeg': 'image/jpeg',
    'tiff': 'image/tiff',
    'tif': 'image/tiff',
    'bmp': 'image/bmp',
    'gif': 'image/gif',
    'webp': 'image/webp',
}


def detect_mime_type(filename: str, data: bytes = None) -> str:
    """
    Detect MIME type from filename, falling back to magic numbers.
    """
    ext = filename.lower().rsplit('.', 1)[-1] if '.' in filename else ''
    if ext in _ext_mapping:
        return _ext_mapping[ext]

    mime_type, _ = mimetypes.guess_type(filename)
    if mime_type:
        return mime_type

    if data:
        if data[:4] == b'%PDF':
            return 'application/pdf'
        if data[:8] == b'\x89PNG\r\n\x1a\n':
            return 'image/png'
        if data[:2] == b'\xff\xd8':
            return 'image/jpeg'
        if data[:4] == b'PK\x03\x04' and b'word/' in data[:2000]:
            return 'application/vnd.openxmlformats-officedocument.wordprocessingml.document'

    return 'application/octet-stream'


def is_supported(mime_type: str) -> bool:
    mime_type = mime_type.lower()
    return mime_type in _extractors or mime_type in _image_mimes


async def _extract(
    data: bytes,
    filename: str,
    mime_type: str,
    ocr: RemoteOCRClient,
) -> ExtractionResult:
    if mime_type in _image_mimes:
        return await ocr.extract(data, filename, mime_type)

    extractor = _extractors.get(mime_type)
    if extractor is None:
        raise UnsupportedFormatError(f"Unsupported file format: {mime_type}")

    result = extractor.extract(data, filename)

    if result.metadata.get("is_scanned"):
        if ocr.is_available:
            logger.info(f"{filename} looks scanned; sending to OCR")
            return await ocr.extract(data, filename, mime_type)
        if not result.text.strip():
            raise ExtractionError("PDF has no embedded text and OCR is not configured")

    return result


async def extract_document_text(
    data: bytes,
    filename: str,
    mime_type: Optional[str] = None,
    ocr: Optional[RemoteOCRClient] = None,
) -> ExtractionResult:
    """
    Extract plain text from an uploaded file.

    Args:
        data: File bytes
        filename: Original filename
        mime_type: Optional MIME type (detected when omitted)
        ocr: OCR client (default: configured from settings)

    Returns:
        ExtractionResult; on failure text is the placeholder and error is set
    """
    if not data:
        return ExtractionResult.failed("Empty file")

    mime_type = (mime_type or detect_mime_type(filename, data)).lower()
    ocr = ocr or RemoteOCRClient()

    try:
        result = await _extract(data, filename, mime_type, ocr)
    except ExtractionError as e:
        logger.warning(f"Extraction failed for {filename} ({mime_type}): {e}")
        return ExtractionResult.failed(str(e))
    except Exception as e:
        logger.error(f"Extractor crashed on {filename} ({mime_type}): {e}")
        return ExtractionResult.failed(f"Extraction failed: {e}")

    if not result.text.strip():
        logger.warning(f"No text extracted from {filename}")
        return ExtractionResult.failed("No text found in document")

    logger.info(f"Extracted {len(result.text)} chars from {filename} via {result.method}")
    return result
