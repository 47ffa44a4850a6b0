from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from .constants import DEFAULT_CURRENCY, ErrorCode


@dataclass(frozen=True)
class Location:
    name: Optional[str] = None
    address: Optional[str] = None

    @classmethod
    def from_hint(cls, hint: Optional[str]) -> Optional["Location"]:
        """Wrap a "<lat>,<lon>" hint; coordinates go into the address slot."""
        if not hint:
            return None
        return cls(name=None, address=hint)

    @classmethod
    def from_dict(cls, data: Any) -> Optional["Location"]:
        if not isinstance(data, dict):
            return None
        name = data.get("name")
        address = data.get("address")
        name = name.strip() if isinstance(name, str) and name.strip() else None
        address = address.strip() if isinstance(address, str) and address.strip() else None
        if name is None and address is None:
            return None
        return cls(name=name, address=address)

    def as_dict(self) -> Dict[str, Optional[str]]:
        return {"name": self.name, "address": self.address}


@dataclass
class StagedProduct:
    """A product read from an image but not yet saved."""

    text: str = ""
    product_name: str = ""
    price: Optional[float] = None
    currency: str = DEFAULT_CURRENCY

    def to_payload(self) -> Dict[str, Any]:
        return {
            "title": self.product_name,
            "productName": self.product_name,
            "text": self.text,
            "price": self.price,
            "currency": self.currency,
        }


@dataclass
class ProductRecord:
    id: Optional[int]
    name: str
    price: Optional[float]
    currency: str
    source_text: Optional[str] = None
    image_url: Optional[str] = None
    location: Optional[Location] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "ProductRecord":
        """Build a record from a `products` row whose `data` column is JSON."""
        data = json.loads(row["data"]) if row.get("data") else {}
        price = data.get("price")
        return cls(
            id=row.get("id"),
            name=data.get("name") or "",
            price=float(price) if isinstance(price, (int, float)) and not isinstance(price, bool) else None,
            currency=data.get("currency") or DEFAULT_CURRENCY,
            source_text=data.get("ocr_text"),
            image_url=data.get("image_url"),
            location=Location.from_dict(data.get("location")),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )

    def as_dict(self) -> Dict[str, Any]:
        out = asdict(self)
        out["location"] = self.location.as_dict() if self.location else None
        return out


@dataclass
class OperationResult:
    success: bool
    message: str
    code: Optional[ErrorCode] = None

    def as_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"success": self.success, "message": self.message}
        if self.code is not None:
            out["code"] = self.code.value
        return out


@dataclass
class ExtractionResult(OperationResult):
    records: List[StagedProduct] = field(default_factory=list)
    raw_content: Optional[str] = None
    location_hint: Optional[str] = None


@dataclass
class UploadOutcome(OperationResult):
    path: Optional[str] = None
    url: Optional[str] = None


@dataclass
class SaveResult(OperationResult):
    count: int = 0


@dataclass
class QueryResult(OperationResult):
    products: List[ProductRecord] = field(default_factory=list)
