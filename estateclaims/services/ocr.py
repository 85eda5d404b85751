"""
OCR collaborator interface and stub.
Contract: extract() eventually returns {extracted_text, confidence, fields} or raises.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from estateclaims.errors import ExternalServiceError
from estateclaims.models import Document


class OcrService(ABC):
    @abstractmethod
    def extract(self, document: Document, content: bytes) -> dict[str, Any]:
        ...


class StubOcrService(OcrService):
    """Returns a fixed extraction payload; stands in for a real OCR provider."""

    def __init__(self, confidence: float = 0.95, fields: dict[str, Any] | None = None):
        self.confidence = confidence
        self.fields = fields

    def extract(self, document: Document, content: bytes) -> dict[str, Any]:
        fields = dict(self.fields) if self.fields is not None else {
            "name": "John Doe",
            "date": "2024-01-15",
            "document_number": "ABC123456",
        }
        return {
            "extracted_text": f"Sample extracted text from {document.file_name}",
            "confidence": self.confidence,
            "fields": fields,
        }


def normalize_ocr_payload(payload: Any) -> dict[str, Any]:
    """
    Validate an OCR payload and return it with defaults filled in.
    A payload without a numeric confidence in [0, 1] or with non-mapping fields is an
    ExternalServiceError, since it came from the collaborator and not from the user.
    """
    if not isinstance(payload, dict):
        raise ExternalServiceError("OCR returned a non-object payload")
    confidence = payload.get("confidence")
    if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
        raise ExternalServiceError("OCR payload is missing a numeric confidence")
    if not 0.0 <= float(confidence) <= 1.0:
        raise ExternalServiceError(
            "OCR confidence must be within [0, 1]", {"confidence": confidence}
        )
    fields = payload.get("fields") or {}
    if not isinstance(fields, dict):
        raise ExternalServiceError("OCR fields must be a key/value object")
    return {
        "extracted_text": str(payload.get("extracted_text") or ""),
        "confidence": float(confidence),
        "fields": fields,
    }
