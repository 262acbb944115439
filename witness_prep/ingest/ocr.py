"""
Remote OCR Client
=================

Sends images and scanned PDFs to the configured OCR endpoint (OCR_URL) as a
multipart upload.

Accepted response shapes:
    {"text": "...", "page_count": 3}
    {"pages": [{"text": "..."}, ...]}
"""

import logging
from typing import Any, Dict, Optional

import httpx

from ..config import Settings, get_settings
from ..errors import ExtractionError
from .base import ExtractionResult, normalize_text

logger = logging.getLogger(__name__)


def _page_count(value: Any) -> int:
    """Reported page count, or 1 when missing or not a positive number"""
    try:
        count = int(value)
    except (TypeError, ValueError):
        if value is not None:
            logger.warning(f"Ignoring malformed OCR page count: {value!r}")
        return 1
    return count if count > 0 else 1


def parse_ocr_payload(data: Any) -> ExtractionResult:
    """Normalize either OCR response shape into an ExtractionResult"""
    if not isinstance(data, dict):
        raise ExtractionError("OCR response is not a JSON object")

    if isinstance(data.get("text"), str):
        return ExtractionResult(
            text=normalize_text(data["text"]),
            page_count=_page_count(data.get("page_count") or data.get("pageCount")),
            method="ocr",
        )

    pages = data.get("pages")
    if isinstance(pages, list):
        texts = []
        for page in pages:
            if isinstance(page, dict) and isinstance(page.get("text"), str):
                texts.append(normalize_text(page["text"]))
        return ExtractionResult(
            text="\n\n".join(t for t in texts if t),
            page_count=len(pages),
            method="ocr",
        )

    raise ExtractionError("OCR response has neither 'text' nor 'pages'")


class RemoteOCRClient:
    """
    Usage:
        ocr = RemoteOCRClient()
        if ocr.is_available:
            result = await ocr.extract(data, "scan.pdf", "application/pdf")
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or get_settings()
        self._transport = transport

    @property
    def is_available(self) -> bool:
        return bool(self.settings.ocr_url)

    def _headers(self) -> Dict[str, str]:
        if self.settings.ocr_api_key:
            return {"Authorization": f"Bearer {self.settings.ocr_api_key}"}
        return {}

    async def extract(self, data: bytes, filename: str, mime_type: str) -> ExtractionResult:
        """
        Raises:
            ExtractionError: OCR not configured, transport failure or bad payload
        """
        if not self.is_available:
            raise ExtractionError("OCR_URL not configured")

        files = {"file": (filename, data, mime_type)}
        try:
            async with httpx.AsyncClient(timeout=self.settings.ocr_timeout, transport=self._transport) as client:
                response = await client.post(self.settings.ocr_url, files=files, headers=self._headers())
                response.raise_for_status()
                payload = response.json()
        except httpx.TimeoutException as e:
            logger.error(f"OCR timed out after {self.settings.ocr_timeout}s for {filename}")
            raise ExtractionError("OCR timed out") from e
        except httpx.HTTPStatusError as e:
            logger.error(f"OCR API error for {filename}: {e.response.status_code}")
            raise ExtractionError(f"OCR HTTP {e.response.status_code}") from e
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"OCR request failed for {filename}: {e}")
            raise ExtractionError(f"OCR request failed: {e}") from e

        result = parse_ocr_payload(payload)
        logger.info(f"OCR extracted {len(result.text)} chars from {result.page_count} pages of {filename}")
        return result
