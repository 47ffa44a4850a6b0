from __future__ import annotations

import math
import sqlite3
from typing import Any, Dict, List, Optional, Sequence, Union

from ..config import Settings
from ..logging import get_logger
from ..paths import find_project_root
from .constants import MAX_UPLOAD_BYTES, MESSAGES, QUERY_LIMIT, ErrorCode
from .db import ProductDatabase
from .extraction import VisionClient, VisionConfig, VisionExtractionError
from .imaging import ImageUpload, compress_image
from .location import LocationHintExtractor, extract_location_hint
from .models import (
    ExtractionResult,
    Location,
    ProductRecord,
    QueryResult,
    SaveResult,
    StagedProduct,
    UploadOutcome,
)
from .parser import NormalizationError, model_error, normalize_currency, normalize_parsed, parse_model_output
from .staging import parse_price_text
from .storage import ImageStore, StorageError, build_image_path, create_image_store


LOG = get_logger("catalog-service")

RecordInput = Union[StagedProduct, Dict[str, Any]]


def _coerce_record(item: RecordInput) -> StagedProduct:
    """Accept staged products or JSON dicts (productName/title, price, currency, text)."""
    if isinstance(item, StagedProduct):
        return item
    if not isinstance(item, dict):
        raise ValueError("product must be an object")
    name = item.get("productName", item.get("title", item.get("name")))
    price = item.get("price")
    if isinstance(price, str):
        price = parse_price_text(price)
    elif price is not None and (isinstance(price, bool) or not isinstance(price, (int, float))):
        raise ValueError(f"invalid price: {price!r}")
    text = item.get("text")
    return StagedProduct(
        text=text if isinstance(text, str) else "",
        product_name=name if isinstance(name, str) else "",
        price=float(price) if price is not None else None,
        currency=normalize_currency(item.get("currency")),
    )


class CatalogService:
    """Extraction, upload, persistence and queries for the product catalog.

    Each public method returns a result object and never raises.
    """

    def __init__(
        self,
        db: ProductDatabase,
        store: ImageStore,
        vision: Optional[VisionClient] = None,
        *,
        location_extractor: LocationHintExtractor = extract_location_hint,
        max_upload_bytes: int = MAX_UPLOAD_BYTES,
    ) -> None:
        self.db = db
        self.store = store
        self.vision = vision
        self.location_extractor = location_extractor
        self.max_upload_bytes = max_upload_bytes

    @classmethod
    def from_settings(cls, settings: Settings, *, root_dir: Optional[str] = None) -> "CatalogService":
        root = find_project_root(root_dir)
        vision = None
        if settings.vision_api_key:
            vision = VisionClient(VisionConfig.from_settings(settings))
        else:
            LOG.warning("No vision API key configured; extraction requests will fail")
        return cls(
            ProductDatabase(root_dir=root),
            create_image_store(settings, root),
            vision,
            max_upload_bytes=settings.max_upload_bytes,
        )

    def close(self) -> None:
        if self.vision is not None:
            self.vision.close()

    def _check_image(self, upload: Optional[ImageUpload]) -> Optional[str]:
        if upload is None or not upload.data:
            return MESSAGES["no_image"]
        if not upload.mime_type.startswith("image/"):
            return MESSAGES["not_image"]
        if upload.byte_size > self.max_upload_bytes:
            return MESSAGES["too_large"].format(mb=self.max_upload_bytes // (1024 * 1024))
        return None

    def _location_hint(self, data: bytes) -> Optional[str]:
        try:
            return self.location_extractor(data)
        except Exception as e:
            LOG.warning("Location lookup failed; continuing without it: %s", e)
            return None

    # ---------------- extraction ----------------
    def extract(self, upload: Optional[ImageUpload]) -> ExtractionResult:
        """Compress, ask the vision model, normalize. Never writes anything."""
        problem = self._check_image(upload)
        if problem:
            return ExtractionResult(False, problem, ErrorCode.INVALID_INPUT)

        raw: Optional[str] = None
        try:
            hint = self._location_hint(upload.data)
            compressed = compress_image(upload)
            if self.vision is None:
                raise VisionExtractionError("vision client not configured")
            raw = self.vision.extract_text(compressed)
            parsed = parse_model_output(raw)
            reported = model_error(parsed)
            if reported:
                LOG.error("Vision model reported an error: %s", reported)
                raise VisionExtractionError(reported)
            records = normalize_parsed(parsed)
        except VisionExtractionError as e:
            return ExtractionResult(False, e.user_message, ErrorCode.AI_ERROR, raw_content=raw)
        except NormalizationError as e:
            return ExtractionResult(False, MESSAGES["unparsable"], ErrorCode.PROCESSING_ERROR, raw_content=e.raw_content)
        except Exception:
            LOG.exception("Unexpected failure while extracting products")
            return ExtractionResult(False, MESSAGES["processing"], ErrorCode.PROCESSING_ERROR, raw_content=raw)

        LOG.info("Extracted %d product(s)%s", len(records), f" near {hint}" if hint else "")
        return ExtractionResult(
            True,
            f"Found {len(records)} product(s)",
            records=records,
            raw_content=raw,
            location_hint=hint,
        )

    # ---------------- storage ----------------
    def upload(self, upload: Optional[ImageUpload]) -> UploadOutcome:
        """Store the image durably and return its public reference."""
        problem = self._check_image(upload)
        if problem:
            return UploadOutcome(False, problem, ErrorCode.INVALID_INPUT)
        try:
            compressed = compress_image(upload)
            path = build_image_path(compressed.extension)
            stored = self.store.upload(path, compressed.data, compressed.mime_type)
            url = self.store.public_url(stored)
        except StorageError:
            return UploadOutcome(False, MESSAGES["upload_failed"], ErrorCode.STORAGE_ERROR)
        except Exception:
            LOG.exception("Unexpected failure while uploading image")
            return UploadOutcome(False, MESSAGES["processing"], ErrorCode.PROCESSING_ERROR)
        LOG.info("Uploaded image to %s", url)
        return UploadOutcome(True, "Image uploaded", path=stored, url=url)

    # ---------------- persistence ----------------
    def save(
        self,
        records: Optional[Sequence[RecordInput]],
        image_ref: Optional[str],
        location: Optional[Location] = None,
    ) -> SaveResult:
        """Insert one row per record; all rows share image_ref and location."""
        try:
            staged = [_coerce_record(r) for r in (records or [])]
        except ValueError as e:
            LOG.info("Rejected save request: %s", e)
            return SaveResult(False, MESSAGES["bad_price"], ErrorCode.INVALID_INPUT)
        if not staged:
            return SaveResult(False, MESSAGES["no_products"], ErrorCode.INVALID_INPUT)
        for record in staged:
            if not (record.product_name or "").strip():
                return SaveResult(False, MESSAGES["empty_name"], ErrorCode.INVALID_INPUT)
            if record.price is not None and not math.isfinite(record.price):
                return SaveResult(False, MESSAGES["bad_price"], ErrorCode.INVALID_INPUT)

        location_dict = location.as_dict() if location else None
        payloads = [
            {
                "name": r.product_name.strip(),
                "price": r.price,
                "currency": normalize_currency(r.currency),
                "ocr_text": r.text or None,
                "image_url": image_ref,
                "location": location_dict,
            }
            for r in staged
        ]
        try:
            ids = self.db.insert_products(payloads)
        except sqlite3.Error:
            LOG.exception("Database insert failed")
            return SaveResult(False, MESSAGES["save_failed"], ErrorCode.DATABASE_ERROR)
        except Exception:
            LOG.exception("Unexpected failure while saving products")
            return SaveResult(False, MESSAGES["processing"], ErrorCode.PROCESSING_ERROR)

        LOG.info("Saved %d product(s) for image %s", len(ids), image_ref)
        return SaveResult(True, f"Saved {len(ids)} product(s)", count=len(ids))

    # ---------------- queries ----------------
    def search(self, query: Optional[str]) -> QueryResult:
        q = (query or "").strip()
        if not q:
            return QueryResult(False, MESSAGES["empty_query"], ErrorCode.INVALID_INPUT)
        return self._query(lambda: self.db.search_products(q, limit=QUERY_LIMIT))

    def recent(self, limit: int = QUERY_LIMIT) -> QueryResult:
        limit = max(1, min(int(limit), QUERY_LIMIT))
        return self._query(lambda: self.db.recent_products(limit=limit))

    def _query(self, fetch: Any) -> QueryResult:
        try:
            rows = fetch()
            products: List[ProductRecord] = [ProductRecord.from_row(row) for row in rows]
        except sqlite3.Error:
            LOG.exception("Catalog query failed")
            return QueryResult(False, MESSAGES["query_failed"], ErrorCode.DATABASE_ERROR)
        except Exception:
            LOG.exception("Unexpected failure while reading the catalog")
            return QueryResult(False, MESSAGES["query_failed"], ErrorCode.PROCESSING_ERROR)
        return QueryResult(True, f"{len(products)} product(s)", products=products)
