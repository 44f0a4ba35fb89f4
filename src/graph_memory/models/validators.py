"""Shared Pydantic types and validators for reuse across models.

Centralises importance clamping, name normalisation, identifier checks and
Literal enums so every model speaks the same language.
"""

from __future__ import annotations

import math
import re
from typing import Annotated, Any, Literal

from pydantic import BeforeValidator, Field

# ---------------------------------------------------------------------------
# Identifiers
# ---------------------------------------------------------------------------

_UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)


def is_valid_memory_id(value: Any) -> bool:
    """True for canonical 8-4-4-4-12 hex UUID strings."""
    return isinstance(value, str) and bool(_UUID_RE.match(value))


# ---------------------------------------------------------------------------
# Numeric types
# ---------------------------------------------------------------------------


def clamp_unit(v: Any) -> float:
    """Coerce to float and clamp into [0.0, 1.0]; NaN becomes 0.0."""
    value = float(v)
    if math.isnan(value):
        return 0.0
    return max(0.0, min(1.0, value))


Importance = Annotated[float, BeforeValidator(clamp_unit)]
"""Importance score: any number in, always clamped to [0.0, 1.0]."""

NonNegativeInt = Annotated[int, Field(ge=0)]
"""Integer >= 0, for counts."""


# ---------------------------------------------------------------------------
# Name normalisation
# ---------------------------------------------------------------------------


def normalize_name(v: Any) -> str:
    """Case-fold, trim and collapse whitespace: the merge key for entities and tags.

    * ``"  Tarun "`` → ``"tarun"``
    * ``"New   York"`` → ``"new york"``
    """
    return " ".join(str(v).split()).casefold()


def normalize_aliases(v: Any) -> list[str]:
    """Accept ``str | list | None`` and return normalized, de-duplicated aliases."""
    if v is None:
        return []
    if isinstance(v, str):
        v = v.split(",")
    seen: list[str] = []
    for item in v:
        if item is None:
            continue
        name = normalize_name(item)
        if name and name not in seen:
            seen.append(name)
    return seen


NormalizedName = Annotated[str, BeforeValidator(normalize_name), Field(min_length=1)]
Aliases = Annotated[list[str], BeforeValidator(normalize_aliases)]


# ---------------------------------------------------------------------------
# Literal enums
# ---------------------------------------------------------------------------

MemoryCategory = Literal["fact", "other", "core"]
ExtractionStatus = Literal["pending", "complete", "failed", "skipped"]
MessageRole = Literal["user", "assistant"]

EXTRACTION_STATUSES: tuple[str, ...] = ("pending", "complete", "failed", "skipped")
