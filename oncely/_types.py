"""
Shared type aliases.
"""

from __future__ import annotations

from typing import Any

from kungfu import LazyCoroResult

type Lazy[T, E] = LazyCoroResult[T, E]
"""Deferred async computation: nothing runs until it is awaited."""

type Metadata = dict[str, Any]
"""Opaque key/value bag stored alongside an attempt."""

__all__ = ("Lazy", "Metadata")
