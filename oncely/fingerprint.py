"""
Fingerprints — detect idempotency-key reuse across different requests.

    fp = fingerprint({"amount": 1500, "currency": "usd", "owner": "u_1"})

The hash is a misuse detector, not a security boundary: it only has to
tell "same request again" apart from "same key, different request".
"""

from __future__ import annotations

import hashlib
import json
import uuid
from collections.abc import Mapping
from typing import Any

DEFAULT_CURRENCY = "usd"


def canonicalize(params: Mapping[str, Any] | None) -> str:
    """
    Render params as canonical JSON.

    Keys are sorted at every depth and separators are fixed, so encoding
    order never changes the output. Values JSON can't express are stringified.
    """
    return json.dumps(
        params if params is not None else {},
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )


def fingerprint(params: Mapping[str, Any] | None) -> str:
    """SHA-256 hex digest of the canonical form of params."""
    return hashlib.sha256(canonicalize(params).encode("utf-8")).hexdigest()


def normalize_idempotency_key(key: str | None, fallback: str | None = None) -> str:
    """Caller key, else fallback (an attempt id), else a fresh token."""
    for candidate in (key, fallback):
        if candidate is not None and candidate.strip():
            return candidate.strip()
    return uuid.uuid4().hex


def normalize_currency(currency: str | None) -> str:
    return (currency or DEFAULT_CURRENCY).strip().lower()


__all__ = (
    "DEFAULT_CURRENCY",
    "canonicalize",
    "fingerprint",
    "normalize_idempotency_key",
    "normalize_currency",
)
