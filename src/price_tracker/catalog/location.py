"""Best-effort GPS hint lookup in raw image bytes.

Only JPEG APP1/Exif segments are considered. Anything unexpected yields
``None``; callers treat that as "no location found".
"""

from __future__ import annotations

import math
from typing import Any, Optional, Protocol

from PIL import ExifTags, Image

from ..logging import get_logger


LOG = get_logger("catalog-location")

APP1_MARKER = b"\xff\xe1"
EXIF_SIGNATURE = b"Exif"

GPS_LATITUDE_REF = 1
GPS_LATITUDE = 2
GPS_LONGITUDE_REF = 3
GPS_LONGITUDE = 4


class LocationHintExtractor(Protocol):
    def __call__(self, data: bytes) -> Optional[str]:
        ...


def _find_exif_segment(data: bytes) -> Optional[bytes]:
    """Return the APP1 payload (starting at b"Exif") or None."""
    idx = data.find(APP1_MARKER)
    while idx != -1:
        # marker (2 bytes) + big-endian segment length (2 bytes) + signature
        sig_start = idx + 4
        if data[sig_start:sig_start + 4] == EXIF_SIGNATURE:
            length = int.from_bytes(data[idx + 2:idx + 4], "big")
            return data[sig_start:idx + 2 + length]
        idx = data.find(APP1_MARKER, idx + 2)
    return None


def _to_degrees(value: Any) -> float:
    if isinstance(value, (tuple, list)):
        parts = [float(v) for v in value] + [0.0, 0.0]
        degrees, minutes, seconds = parts[:3]
        return degrees + minutes / 60.0 + seconds / 3600.0
    return float(value)


def _ref(value: Any) -> str:
    if isinstance(value, bytes):
        value = value.decode("ascii", "ignore")
    return str(value or "").strip("\x00 ").upper()


def extract_location_hint(data: bytes) -> Optional[str]:
    """Return "<lat>,<lon>" (6 decimals) from embedded GPS tags, if any."""
    try:
        segment = _find_exif_segment(data or b"")
        if not segment:
            return None
        exif = Image.Exif()
        exif.load(segment)
        gps = exif.get_ifd(ExifTags.IFD.GPSInfo)
        if not gps or GPS_LATITUDE not in gps or GPS_LONGITUDE not in gps:
            return None
        lat = _to_degrees(gps[GPS_LATITUDE])
        lon = _to_degrees(gps[GPS_LONGITUDE])
        if _ref(gps.get(GPS_LATITUDE_REF)) == "S":
            lat = -lat
        if _ref(gps.get(GPS_LONGITUDE_REF)) == "W":
            lon = -lon
        if not (math.isfinite(lat) and math.isfinite(lon)):
            return None
        if abs(lat) > 90 or abs(lon) > 180:
            LOG.debug("Discarding out-of-range GPS pair %s,%s", lat, lon)
            return None
    except Exception as exc:
        LOG.debug("No usable GPS metadata: %s", exc)
        return None
    return f"{lat:.6f},{lon:.6f}"
