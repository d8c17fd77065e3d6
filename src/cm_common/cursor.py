"""Opaque cursor helpers for keyset pagination.

Ledger entries page on their BIGSERIAL id; trade offers page on their
snowflake string id. Both are encoded as Base64 JSON so clients cannot
depend on the shape.
"""

import base64
import json


def cursor_encode(last_id: int | str) -> str:
    """Encode the last seen primary key into an opaque Base64 cursor string."""
    payload = json.dumps({"id": last_id})
    return base64.b64encode(payload.encode()).decode()


def cursor_decode(cursor: str | None) -> int | str | None:
    """Decode a cursor string back to the last seen id. Returns None on error."""
    if cursor is None:
        return None
    try:
        payload = json.loads(base64.b64decode(cursor.encode()).decode())
        value = payload["id"]
    except (ValueError, KeyError, TypeError):
        return None
    if isinstance(value, (int, str)) and not isinstance(value, bool):
        return value
    return None
