"""Credential resolution for provider adapters."""

from __future__ import annotations

import os


def resolve_credential(reference: str) -> str | None:
    """Return the live secret named by ``reference``, or None when unset.

    The value is read on every call so rotated keys take effect without a
    restart. Callers must not log or persist the returned value.
    """
    value = os.getenv(reference)
    if value is None:
        return None
    value = value.strip()
    return value or None


def has_credential(reference: str) -> bool:
    return resolve_credential(reference) is not None


__all__ = ["has_credential", "resolve_credential"]
