"""Receipt extraction boundary and receipt-to-draft mapping."""

from finfree.services.receipt.interface import (
    ExtractionError,
    ExtractionFailedError,
    ReceiptExtractorInterface,
    UnsupportedImageError,
)
from finfree.services.receipt.gemini_service import (
    GeminiReceiptExtractor,
    build_prompt,
    parse_extraction,
)
from finfree.services.receipt.drafts import (
    ReceiptDraftSession,
    apply_extraction,
    draft_from_extraction,
)

__all__ = [
    "ExtractionError",
    "ExtractionFailedError",
    "ReceiptExtractorInterface",
    "UnsupportedImageError",
    "GeminiReceiptExtractor",
    "build_prompt",
    "parse_extraction",
    "ReceiptDraftSession",
    "apply_extraction",
    "draft_from_extraction",
]
