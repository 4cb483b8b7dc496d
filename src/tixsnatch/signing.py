"""Request signing for the mtop gateway.

The gateway recomputes the signature server-side, so both the digest and the
payload serialization must be bit-exact:

    sign = md5("{token}&{t}&{appKey}&{data}")

``data`` is the compact JSON of the business payload. It is serialized once
and the same string is both signed and sent.
"""

from __future__ import annotations

import hashlib
import logging
from typing import Any

import orjson

from tixsnatch.errors import MalformedRequest
from tixsnatch.models import Endpoint, SignedRequest

logger = logging.getLogger(__name__)

APP_KEY = "12574478"
JSV = "2.7.2"
BASE_URL = "https://mtop.damai.cn"
SEPARATOR = "&"


def serialize_payload(payload: Any) -> str:
    """Compact JSON, keys in insertion order, no whitespace, UTF-8 kept as-is."""
    try:
        return orjson.dumps(payload).decode()
    except TypeError as e:
        raise MalformedRequest(f"Payload not serializable: {e}") from e


def compute_sign(token: str, timestamp_ms: int, data: str, app_key: str = APP_KEY) -> str:
    raw = SEPARATOR.join((token, str(timestamp_ms), app_key, data))
    return hashlib.md5(raw.encode()).hexdigest()


def endpoint_path(endpoint: Endpoint) -> str:
    return f"/h5/{endpoint.api}/{endpoint.version}/"


def build_signed_request(
    endpoint: Endpoint,
    token: str,
    timestamp_ms: int,
    payload: Any,
    base_url: str = BASE_URL,
) -> SignedRequest:
    """Build the full query parameter set for one gateway call. Pure."""
    data = serialize_payload(payload)
    sign = compute_sign(token, timestamp_ms, data)
    logger.debug("Signed %s t=%d sign=%s", endpoint.api, timestamp_ms, sign)
    return SignedRequest(
        url=base_url.rstrip("/") + endpoint_path(endpoint),
        params={
            "jsv": JSV,
            "appKey": APP_KEY,
            "t": str(timestamp_ms),
            "sign": sign,
            "api": endpoint.api,
            "v": endpoint.version,
            "type": "originaljson",
            "dataType": "json",
            "data": data,
        },
    )
