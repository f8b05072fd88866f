"""
Request fingerprinting for the response cache.

A fingerprint is a SHA-256 digest over a canonical JSON serialization of an
already-normalized payload. Key order does not matter; any change in a
field value does.
"""

import json
import hashlib
from typing import Any, Optional


def canonicalize(payload: Any) -> str:
    """Serialize a JSON-native payload with sorted keys and no whitespace."""
    return json.dumps(
        payload,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
    )


def fingerprint(payload: Any, scope: Optional[str] = None) -> str:
    """Return the hex digest identifying ``payload``.

    Args:
        payload: Normalized request data. Only JSON-native types are
            accepted; anything else raises ``TypeError``.
        scope: Optional namespace (e.g. the analysis kind) folded into the
            digest so equal payloads sent to different endpoints differ.
    """
    raw = canonicalize(payload if scope is None else {"scope": scope, "payload": payload})
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()
