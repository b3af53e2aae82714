"""
Receipt Extraction Boundary

The ledger does not read receipts itself. It consumes the contract below:
image bytes and a MIME type in, a ReceiptExtraction (or ExtractionFailed)
out. How the collaborator reads the image is its own business.
"""

from abc import ABC, abstractmethod

from finfree.models.receipt import ReceiptExtraction


class ExtractionError(Exception):
    """Base exception for receipt extraction errors."""
    pass


class ExtractionFailedError(ExtractionError):
    """
    The collaborator could not produce a usable extraction.

    Surfaced to the user as a prompt to enter the expense manually.
    """
    pass


class UnsupportedImageError(ExtractionFailedError):
    """Image type or size is not accepted; nothing was sent out."""

    def __init__(self, mime_type: str, message: str):
        self.mime_type = mime_type
        super().__init__(message)


class ReceiptExtractorInterface(ABC):
    """Anything that can turn a receipt image into a ReceiptExtraction."""

    @abstractmethod
    async def extract(self, image_bytes: bytes, mime_type: str) -> ReceiptExtraction:
        """
        Read a receipt image.

        Raises:
            ExtractionFailedError: On any failure. No partial result is returned.
        """
        pass
