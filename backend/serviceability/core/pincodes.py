"""Codec for the persisted pincode set and the set deltas applied to it.

The stored form is the pincodes joined with ``", "`` in insertion order. That
separator is the only accepted format: text that would split differently is
rejected instead of being mis-split.
"""

from __future__ import annotations

from typing import Iterable, NamedTuple

from serviceability.core.errors import NoOpChange, PincodeFormatError

SEPARATOR = ", "


class PincodeDelta(NamedTuple):
    pincodes: list[str]
    changed: list[str]


def _check(pincode: str) -> str:
    value = pincode.strip()
    if not value:
        raise PincodeFormatError("Pincode must not be empty")
    if "," in value:
        raise PincodeFormatError(f"Pincode {value!r} contains a separator")
    return value


def normalize(pincodes: Iterable[str]) -> list[str]:
    """Trim and validate candidate pincodes, keeping the first of any duplicates."""

    seen: dict[str, None] = {}
    for pincode in pincodes:
        seen.setdefault(_check(pincode), None)
    return list(seen)


def encode(pincodes: Iterable[str]) -> str:
    return SEPARATOR.join(pincodes)


def decode(text: str | None) -> list[str]:
    """Split stored text back into an ordered, duplicate-free pincode list."""

    if text is None or not text.strip():
        return []
    try:
        return normalize(text.split(SEPARATOR))
    except PincodeFormatError as exc:
        raise PincodeFormatError(f"Malformed pincode text {text!r}: {exc.message}") from exc


def add(current: Iterable[str], candidates: Iterable[str]) -> PincodeDelta:
    """Append the candidates not already present.

    Raises ``NoOpChange`` when every candidate is already serviced.
    """

    existing = list(current)
    known = set(existing)
    added = [p for p in normalize(candidates) if p not in known]
    if not added:
        raise NoOpChange("All pincodes are already serviced")
    return PincodeDelta(existing + added, added)


def remove(current: Iterable[str], deletions: Iterable[str]) -> PincodeDelta:
    """Drop the given pincodes, raising ``NoOpChange`` when none were serviced."""

    existing = list(current)
    doomed = set(normalize(deletions))
    kept = [p for p in existing if p not in doomed]
    if len(kept) == len(existing):
        raise NoOpChange("No pincodes were deleted")
    return PincodeDelta(kept, [p for p in existing if p in doomed])
