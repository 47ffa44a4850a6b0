from __future__ import annotations

import dataclasses
import math
from typing import Any, Iterable, List, Optional

from ..logging import get_logger
from .constants import MESSAGES
from .imaging import ImageUpload
from .models import Location, StagedProduct
from .parser import normalize_currency


LOG = get_logger("catalog-staging")

_EDITABLE_FIELDS = {"text", "product_name", "price", "currency"}


def parse_price_text(text: Optional[str]) -> Optional[float]:
    """Parse user-typed prices such as "2.50", "2,50" or " 3 ". Blank means unknown."""
    if text is None:
        return None
    s = str(text).strip().replace(" ", "")
    if not s:
        return None
    if "," in s and "." in s:
        # "1.234,50" vs "1,234.50": the right-most separator is the decimal one
        if s.rfind(",") > s.rfind("."):
            s = s.replace(".", "").replace(",", ".")
        else:
            s = s.replace(",", "")
    else:
        s = s.replace(",", ".")
    value = float(s)
    if not math.isfinite(value):
        raise ValueError(f"price must be finite: {text!r}")
    return value


class StagingEditor:
    """Mutable, in-memory list of products awaiting the user's approval."""

    def __init__(self, records: Optional[Iterable[StagedProduct]] = None) -> None:
        self._records: List[StagedProduct] = [dataclasses.replace(r) for r in (records or [])]

    def __len__(self) -> int:
        return len(self._records)

    @property
    def records(self) -> List[StagedProduct]:
        return [dataclasses.replace(r) for r in self._records]

    def replace(self, records: Iterable[StagedProduct]) -> None:
        self._records = [dataclasses.replace(r) for r in records]

    def clear(self) -> None:
        self._records = []

    def update(self, index: int, **fields: Any) -> StagedProduct:
        unknown = set(fields) - _EDITABLE_FIELDS
        if unknown:
            raise KeyError(f"Unknown product field(s): {sorted(unknown)}")
        current = self._records[index]
        if "currency" in fields:
            fields["currency"] = normalize_currency(fields["currency"])
        updated = dataclasses.replace(current, **fields)
        self._records[index] = updated
        return updated

    def set_price_text(self, index: int, text: Optional[str]) -> StagedProduct:
        return self.update(index, price=parse_price_text(text))

    def append_blank(self) -> int:
        self._records.append(StagedProduct())
        return len(self._records) - 1

    def remove(self, index: int) -> StagedProduct:
        return self._records.pop(index)

    def validate(self) -> List[str]:
        """Return user-facing problems blocking submission; empty means OK."""
        if not self._records:
            return [MESSAGES["no_products"]]
        errors: List[str] = []
        for idx, record in enumerate(self._records):
            if not (record.product_name or "").strip():
                errors.append(f"Row {idx + 1}: {MESSAGES['empty_name']}")
        return errors

    def is_valid(self) -> bool:
        return not self.validate()


class UploadSession:
    """Per-user state for one upload batch.

    Accepting a new image drops everything derived from the previous one.
    """

    def __init__(self) -> None:
        self.image: Optional[ImageUpload] = None
        self.preview: Optional[str] = None
        self.editor = StagingEditor()
        self.raw_content: Optional[str] = None
        self.error: Optional[str] = None
        self.location_hint: Optional[str] = None
        self.image_url: Optional[str] = None

    def accept(self, upload: ImageUpload) -> None:
        self.image = upload
        self.preview = upload.preview_data_uri()
        self.editor.clear()
        self.raw_content = None
        self.error = None
        self.location_hint = None
        self.image_url = None
        LOG.debug("Accepted new %s image; staged state reset", upload.source.value)

    @property
    def location(self) -> Optional[Location]:
        return Location.from_hint(self.location_hint)
