"""
Receipt Extraction using Gemini

DESIGN DECISION: One multimodal call returns structured JSON:
1. The image and a prompt go out together
2. The response is constrained to JSON (response_mime_type)
3. The JSON is validated into a ReceiptExtraction, leniently for the
   fields the model tends to get creative with (confidence, type)

CRITICAL: The extraction is a PROPOSAL. It never reaches the ledger
without the user confirming the resulting draft.

Images are checked for type and size BEFORE anything is sent.
"""

import json
from typing import Optional, Sequence

import google.generativeai as genai
import structlog
from pydantic import ValidationError
from tenacity import (
    retry,
    retry_if_exception_type,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from finfree.config import get_settings
from finfree.models.budget import CategoryDefinition
from finfree.models.receipt import ReceiptExtraction
from finfree.services.receipt.interface import (
    ExtractionFailedError,
    ReceiptExtractorInterface,
    UnsupportedImageError,
)


logger = structlog.get_logger(__name__)


# Short usage hints so the model can map a store to a category
CATEGORY_HINTS = {
    "RENT": "housing, apartment rent",
    "ELECTRIC": "electricity bills",
    "GAS": "gas bills, propane",
    "WATER": "water bills",
    "PHONE": "mobile phone, internet bills",
    "FOOD": "groceries, supermarkets, convenience store food",
    "TRANSPORT": "trains, buses, taxis, gas stations",
    "TOILETRIES": "drugstores, cosmetics, hygiene products",
    "EAT OUT": "restaurants, cafes, takeout, fast food",
    "WANT": "entertainment, hobbies, non-essential shopping",
    "SAVE": "savings, investments",
    "DEBT": "loan payments, credit card payments",
}

RECEIPT_PROMPT = """Extract from this receipt: store name, date (format YYYY-MM-DD), time (HH:MM) if printed, total amount (tax-inclusive total if shown), and list items with prices if legible.{category_context}

Respond with ONLY a JSON object with these keys:
store, date, time, total, items [{{name, price}}], confidence (high/medium/low),
suggestedCategory (category ID), suggestedType (NEED/WANT/SAVE/DEBT based on the purchase).

Category selection tips:
- Grocery stores and supermarkets -> FOOD
- Convenience stores buying food or drinks -> FOOD or EAT OUT
- Restaurants, cafes, fast food -> EAT OUT
- Drug stores -> TOILETRIES (cosmetics, toiletries) or FOOD (food)
- Train or bus charges -> TRANSPORT
- Online shops and electronics stores -> usually WANT
- Utility bills -> the matching utility category

If a value is not legible, leave it out rather than guessing."""


def build_prompt(categories: Sequence[CategoryDefinition] = ()) -> str:
    """The extraction prompt, listing the user's categories when given."""
    category_context = ""
    if categories:
        lines = "\n".join(
            f'- {c.id}: "{c.name}" ({c.default_type.value}) - use for '
            f"{CATEGORY_HINTS.get(c.id, c.name.lower())}"
            for c in categories
        )
        category_context = (
            f"\n\nAvailable expense categories:\n{lines}\n\n"
            "Based on the store name and items, suggest the most appropriate "
            "category ID from this list."
        )
    return RECEIPT_PROMPT.format(category_context=category_context)


def parse_extraction(text: str) -> ReceiptExtraction:
    """
    Parse the model's response text.

    Raises:
        ExtractionFailedError: If there is no JSON object or it is unusable.
    """
    text = (text or "").strip()
    start = text.find("{")
    end = text.rfind("}") + 1
    if start < 0 or end <= start:
        raise ExtractionFailedError("No JSON object in extraction response")
    try:
        data = json.loads(text[start:end])
        return ReceiptExtraction.model_validate(data)
    except json.JSONDecodeError as e:
        raise ExtractionFailedError(f"Extraction response is not valid JSON: {e}") from e
    except ValidationError as e:
        raise ExtractionFailedError(
            f"Extraction response is missing required fields ({e.error_count()} errors)"
        ) from e


class GeminiReceiptExtractor(ReceiptExtractorInterface):
    """
    Receipt extraction with Google Gemini.

    Args:
        api_key: The user's key (from the document). Falls back to GEMINI_API_KEY.
        categories: Categories to offer the model for suggestions.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        categories: Sequence[CategoryDefinition] = (),
    ):
        settings = get_settings()
        self._settings = settings.gemini
        self._app_settings = settings.app
        self._api_key = api_key or self._settings.api_key
        self._categories = list(categories)
        self._model: Optional[genai.GenerativeModel] = None

    def _get_model(self) -> genai.GenerativeModel:
        """Configure Google Generative AI and create the model once."""
        if self._model is None:
            if not self._api_key:
                raise ExtractionFailedError("No Gemini API key configured")
            genai.configure(api_key=self._api_key)
            self._model = genai.GenerativeModel(
                model_name=self._settings.model_name,
                generation_config={
                    "temperature": self._settings.temperature,
                    "max_output_tokens": self._settings.max_tokens,
                    "response_mime_type": "application/json",
                },
            )
        return self._model

    def check_image(self, image_bytes: bytes, mime_type: str) -> None:
        """
        Reject images we will not send.

        Raises:
            UnsupportedImageError: Empty, too large, or unsupported type.
        """
        mime_type = (mime_type or "").lower()
        if mime_type not in self._app_settings.supported_types_list:
            raise UnsupportedImageError(
                mime_type,
                f"Unsupported image type: {mime_type or 'unknown'}",
            )
        if not image_bytes:
            raise UnsupportedImageError(mime_type, "Image is empty")
        if len(image_bytes) > self._app_settings.max_receipt_size_bytes:
            raise UnsupportedImageError(
                mime_type,
                f"Image is larger than {self._app_settings.max_receipt_size_mb} MB",
            )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        # CancelledError is a BaseException: a closed form stops the call
        retry=retry_if_exception_type(Exception) & retry_if_not_exception_type(ExtractionFailedError),
        reraise=True,
    )
    async def _generate(self, image_bytes: bytes, mime_type: str) -> str:
        model = self._get_model()
        response = await model.generate_content_async([
            {"mime_type": mime_type, "data": image_bytes},
            build_prompt(self._categories),
        ])
        return response.text

    async def extract(self, image_bytes: bytes, mime_type: str) -> ReceiptExtraction:
        self.check_image(image_bytes, mime_type)
        try:
            text = await self._generate(image_bytes, mime_type.lower())
        except ExtractionFailedError:
            raise
        except Exception as e:
            logger.warning("receipt_extraction_call_failed", error=str(e))
            raise ExtractionFailedError(f"Receipt extraction failed: {e}") from e

        extraction = parse_extraction(text)
        logger.info(
            "receipt_extracted",
            confidence=extraction.confidence.value,
            items=len(extraction.items),
        )
        return extraction
