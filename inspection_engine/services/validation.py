"""
Validation helpers

VIN and media checks shared by the v1 form endpoint, the v2 JSON schema and
the state machine's first processing step.
"""

from __future__ import annotations

import re
from typing import Iterable

from inspection_engine.core.exceptions import ValidationError

VIN_PATTERN = re.compile(r"^[A-HJ-NPR-Z0-9]{17}$")
MEDIA_TYPES = ("image", "video")


def normalize_vin(vin: str) -> str:
    """Upper-case and drop whitespace."""

    return re.sub(r"\s+", "", vin or "").upper()


def is_valid_vin(vin: str) -> bool:
    """17 characters, letters I/O/Q excluded."""

    return bool(VIN_PATTERN.fullmatch(normalize_vin(vin)))


def validate_vin(vin: str) -> str:
    normalized = normalize_vin(vin)
    if not VIN_PATTERN.fullmatch(normalized):
        raise ValidationError(
            "VIN must be 17 characters (A-Z, 0-9, excluding I, O, Q)",
            details={"field": "vin", "value": vin},
        )
    return normalized


def validate_media_count(media: Iterable[object], *, minimum: int = 1, maximum: int | None = None) -> int:
    count = sum(1 for _ in media)
    if count < minimum:
        raise ValidationError(
            f"At least {minimum} media item(s) required",
            details={"field": "media", "count": count, "minimum": minimum},
        )
    if maximum is not None and count > maximum:
        raise ValidationError(
            f"At most {maximum} media items allowed",
            details={"field": "media", "count": count, "maximum": maximum},
        )
    return count
