from __future__ import annotations

import json
import math
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Union

from ..logging import get_logger
from .constants import DEFAULT_CURRENCY, MESSAGES
from .models import StagedProduct


LOG = get_logger("catalog-parser")

_CURRENCY_SYMBOLS: Dict[str, str] = {
    "$": "USD",
    "€": "EUR",
    "£": "GBP",
    "₴": "UAH",
    "ZŁ": "PLN",
    "¥": "JPY",
}


class NormalizationError(ValueError):
    """Model output could not be turned into product records."""

    def __init__(self, message: str, *, raw_content: Optional[str]) -> None:
        super().__init__(message)
        self.raw_content = raw_content


@dataclass(frozen=True)
class SingleObject:
    payload: Dict[str, Any]


@dataclass(frozen=True)
class ObjectArray:
    payload: List[Dict[str, Any]]


@dataclass(frozen=True)
class EmbeddedJson:
    payload: Union[Dict[str, Any], List[Dict[str, Any]]]
    raw_text: str


@dataclass(frozen=True)
class Unparsable:
    raw_text: str


ParsedResponse = Union[SingleObject, ObjectArray, EmbeddedJson, Unparsable]


def _decode(text: str) -> Optional[Any]:
    try:
        return json.loads(text)
    except ValueError:
        return None


def _is_object_list(value: Any) -> bool:
    return isinstance(value, list) and bool(value) and all(isinstance(v, dict) for v in value)


def _array_slice(s: str) -> Iterator[str]:
    start_arr = s.find("[")
    end_arr = s.rfind("]")
    if start_arr != -1 and end_arr > start_arr:
        yield s[start_arr:end_arr + 1]


def _object_slices(s: str) -> Iterator[str]:
    # first "{" up to each "}" from the last one backwards
    start_obj = s.find("{")
    if start_obj != -1:
        end = s.rfind("}")
        while end > start_obj:
            yield s[start_obj:end + 1]
            end = s.rfind("}", start_obj, end)


def _candidates(s: str) -> Iterator[str]:
    fenced = re.search(r"```(?:json)?\s*(.*?)```", s, re.DOTALL)
    if fenced and fenced.group(1):
        yield fenced.group(1).strip()

    # An array opening before the first object encloses it; trying the
    # object first would keep only the first element.
    start_arr = s.find("[")
    start_obj = s.find("{")
    if start_arr != -1 and (start_obj == -1 or start_arr < start_obj):
        yield from _array_slice(s)
        yield from _object_slices(s)
    else:
        yield from _object_slices(s)
        yield from _array_slice(s)


def _scavenge_json_block(s: str) -> Optional[Any]:
    for candidate in _candidates(s):
        value = _decode(candidate)
        if isinstance(value, dict) or _is_object_list(value):
            return value
    return None


def parse_model_output(text: Optional[str]) -> ParsedResponse:
    """Classify raw model text into one of the four response shapes."""
    raw = text if isinstance(text, str) else ""
    stripped = raw.strip()
    if not stripped:
        return Unparsable(raw)

    direct = _decode(stripped)
    if isinstance(direct, dict):
        return SingleObject(direct)
    if _is_object_list(direct):
        return ObjectArray(direct)

    embedded = _scavenge_json_block(stripped)
    if embedded is not None:
        LOG.debug("Recovered JSON embedded in %d chars of model text", len(raw))
        return EmbeddedJson(embedded, raw)
    return Unparsable(raw)


def model_error(parsed: ParsedResponse) -> Optional[str]:
    """Return the error text when the model answered with {"error": ...} only."""
    payload = getattr(parsed, "payload", None)
    if not isinstance(payload, dict) or "error" not in payload:
        return None
    if any(k in payload for k in ("title", "productName", "name")):
        return None
    return str(payload.get("error") or "unknown model error")


def _title(item: Dict[str, Any]) -> str:
    for key in ("title", "productName", "name"):
        value = item.get(key)
        if isinstance(value, str):
            return value
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
    return ""


def _price(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value):
        return None
    return float(value)


def normalize_currency(value: Any) -> str:
    """Map a code or symbol to an upper-case ISO code; anything else is the default."""
    if not isinstance(value, str):
        return DEFAULT_CURRENCY
    code = value.strip().upper()
    if code in _CURRENCY_SYMBOLS:
        return _CURRENCY_SYMBOLS[code]
    if len(code) == 3 and code.isalpha():
        return code
    return DEFAULT_CURRENCY


def normalize_item(item: Dict[str, Any]) -> StagedProduct:
    title = _title(item)
    return StagedProduct(
        text=title,
        product_name=title,
        price=_price(item.get("price")),
        currency=normalize_currency(item.get("currency")),
    )


def normalize_payload(payload: Any) -> List[StagedProduct]:
    """Normalize a decoded object or list of objects into staged products.

    Accepts its own output (via StagedProduct.to_payload) unchanged.
    """
    items = payload if isinstance(payload, list) else [payload]
    if not items:
        raise NormalizationError("Model returned an empty list", raw_content=json.dumps(payload))
    records: List[StagedProduct] = []
    for idx, item in enumerate(items):
        if not isinstance(item, dict):
            raise NormalizationError(
                f"Item {idx} is not a JSON object",
                raw_content=json.dumps(payload, ensure_ascii=False, default=str),
            )
        records.append(normalize_item(item))
    LOG.debug("Normalized %d product record(s)", len(records))
    return records


def normalize_parsed(parsed: ParsedResponse) -> List[StagedProduct]:
    if isinstance(parsed, Unparsable):
        LOG.error("Model output is not valid JSON; first 500 chars: %r", parsed.raw_text[:500])
        raise NormalizationError(MESSAGES["unparsable"], raw_content=parsed.raw_text)
    return normalize_payload(parsed.payload)


def normalize_response(text: Optional[str]) -> List[StagedProduct]:
    return normalize_parsed(parse_model_output(text))
