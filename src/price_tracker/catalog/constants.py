from __future__ import annotations

from enum import Enum
from typing import Dict, Tuple


class ErrorCode(str, Enum):
    INVALID_INPUT = "INVALID_INPUT"
    AI_ERROR = "AI_ERROR"
    STORAGE_ERROR = "STORAGE_ERROR"
    DATABASE_ERROR = "DATABASE_ERROR"
    PROCESSING_ERROR = "PROCESSING_ERROR"


DEFAULT_CURRENCY = "USD"

# Upload and compression bounds.
MAX_UPLOAD_MB = 10
MAX_UPLOAD_BYTES = MAX_UPLOAD_MB * 1024 * 1024
MAX_IMAGE_DIMENSION = 1920
MAX_COMPRESSED_BYTES = 1024 * 1024
JPEG_QUALITY_STEPS: Tuple[int, ...] = (85, 75, 65, 55, 45)

# Catalog queries.
QUERY_LIMIT = 20

IMAGE_PATH_PREFIX = "product-images"

MESSAGES: Dict[str, str] = {
    "no_image": "No image provided",
    "not_image": "Please upload an image file",
    "too_large": "Image is too large (max {mb} MB)",
    "ai_failed": "AI processing failed. Please try a clearer image.",
    "unparsable": "Could not read product details from the AI response",
    "processing": "An error occurred while processing the image",
    "no_products": "Add at least one product before saving",
    "empty_name": "Product name is required",
    "bad_price": "Invalid price format",
    "upload_failed": "Failed to upload image",
    "save_failed": "Failed to save product information",
    "empty_query": "Search query is required",
    "query_failed": "Failed to load products",
}

# Extension used in storage paths for each accepted MIME type.
MIME_EXTENSIONS: Dict[str, str] = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/gif": "gif",
    "image/heic": "heic",
    "image/bmp": "bmp",
    "image/tiff": "tiff",
}
