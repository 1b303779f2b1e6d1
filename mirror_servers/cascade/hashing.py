from __future__ import annotations

import hashlib
import struct

_B36_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    sign = "-" if value < 0 else ""
    n = abs(value)
    out: list[str] = []
    while n:
        n, rem = divmod(n, 36)
        out.append(_B36_DIGITS[rem])
    return sign + "".join(reversed(out))


def rolling_hash(text: str) -> str:
    """Short non-cryptographic change hash (32-bit `h*31 + c` over UTF-16 units, base-36).

    Only used as a dirty flag for snapshots: a collision can at worst skip one
    UI refresh, it is not an integrity check.
    """
    data = (text or "").encode("utf-16-le", errors="surrogatepass")
    h = 0
    for unit in struct.unpack(f"<{len(data) // 2}H", data):
        h = (h * 31 + unit) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return _to_base36(h)


def session_identity(ws_url: str) -> str:
    """Stable registry key for a target, derived from its debugger websocket URL."""
    return hashlib.sha1(str(ws_url or "").encode("utf-8")).hexdigest()[:10]


__all__ = ["rolling_hash", "session_identity"]
