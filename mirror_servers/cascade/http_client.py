from __future__ import annotations

import json
import urllib.parse
from typing import Any
from urllib.error import URLError
from urllib.request import Request, urlopen

from .errors import TransportUnreachable


class HttpClientError(TransportUnreachable):
    pass


def _build_request(url: str) -> Request:
    return Request(url, headers={"User-Agent": "cascade-mirror/1.0"})


def http_get_json(url: str, *, timeout: float = 2.0, max_bytes: int = 4_000_000) -> Any:
    """Fetch JSON from a local DevTools endpoint.

    Raises HttpClientError for transport failures and undecodable bodies alike;
    callers decide whether that degrades to "no data".
    """
    parsed = urllib.parse.urlparse(url)
    if parsed.scheme not in ("http", "https"):
        raise HttpClientError("Only http/https are supported")
    try:
        with urlopen(_build_request(url), timeout=timeout) as resp:
            body = resp.read(max_bytes + 1)
    except (TimeoutError, URLError, OSError) as exc:
        raise HttpClientError(str(exc)) from exc
    if len(body) > max_bytes:
        raise HttpClientError(f"Response from {parsed.netloc} exceeds {max_bytes} bytes")
    try:
        return json.loads(body.decode(errors="replace"))
    except json.JSONDecodeError as exc:
        raise HttpClientError(f"Malformed JSON from {parsed.netloc}: {exc}") from exc
