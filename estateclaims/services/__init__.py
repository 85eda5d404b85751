# External collaborators: blob storage, OCR, asset discovery

from estateclaims.services.blobstore import BlobStore, LocalBlobStore
from estateclaims.services.discovery import AssetDiscovery, AssetSpec, StubAssetDiscovery
from estateclaims.services.ocr import OcrService, StubOcrService
from estateclaims.services.retry import call_with_retry, call_with_timeout

__all__ = [
    "AssetDiscovery",
    "AssetSpec",
    "BlobStore",
    "LocalBlobStore",
    "OcrService",
    "StubAssetDiscovery",
    "StubOcrService",
    "call_with_retry",
    "call_with_timeout",
]
