"""
OData response normalization.

MarketSharp's WCF data service wraps the same payload in several envelopes
and encodes dates as /Date(<ms>)/. Everything the client returns goes
through normalize_response first.
"""

import re
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

DEFERRED_MARKER = "__deferred"

_ODATA_DATE = re.compile(r"^/Date\((-?\d+)(?:[+-]\d{4})?\)/$")
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class EnvelopeShape(str, Enum):
    """Known response envelopes, in the order they are checked"""

    D_ARRAY = "d_array"  # {"d": [...]}
    D_RESULTS = "d_results"  # {"d": {"results": [...]}}
    D_SINGLE = "d_single"  # {"d": {...}}
    VALUE = "value"  # {"value": [...]}
    BARE = "bare"  # anything else, returned untouched


def detect_envelope(body: Any) -> EnvelopeShape:
    if isinstance(body, dict):
        d = body.get("d")
        if isinstance(d, list):
            return EnvelopeShape.D_ARRAY
        if isinstance(d, dict):
            if isinstance(d.get("results"), list):
                return EnvelopeShape.D_RESULTS
            return EnvelopeShape.D_SINGLE
        if isinstance(body.get("value"), list):
            return EnvelopeShape.VALUE
    return EnvelopeShape.BARE


def unwrap_envelope(body: Any) -> Any:
    """Return the payload inside whichever envelope the body uses"""
    shape = detect_envelope(body)

    if shape == EnvelopeShape.D_ARRAY:
        return body["d"]
    if shape == EnvelopeShape.D_RESULTS:
        return body["d"]["results"]
    if shape == EnvelopeShape.D_SINGLE:
        return body["d"]
    if shape == EnvelopeShape.VALUE:
        return body["value"]
    return body


def parse_odata_date(value: str) -> str:
    """
    Convert /Date(1700000000000)/ to 2023-11-14T22:13:20.000Z.

    Strings that are not OData dates are returned unchanged. A trailing
    offset (/Date(ms+0100)/) is ignored because the milliseconds are UTC.
    """
    match = _ODATA_DATE.match(value)
    if not match:
        return value

    dt = _EPOCH + timedelta(milliseconds=int(match.group(1)))
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _is_deferred(value: Any) -> bool:
    return isinstance(value, dict) and DEFERRED_MARKER in value


def normalize_dates(value: Any) -> Any:
    """Recursively rewrite OData dates and drop unexpanded navigation links"""
    if isinstance(value, str):
        return parse_odata_date(value)
    if isinstance(value, list):
        return [normalize_dates(item) for item in value if not _is_deferred(item)]
    if isinstance(value, dict):
        return {
            key: normalize_dates(item)
            for key, item in value.items()
            if not _is_deferred(item)
        }
    return value


def normalize_response(body: Any) -> Any:
    return normalize_dates(unwrap_envelope(body))
