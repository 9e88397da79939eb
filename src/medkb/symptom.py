"""
Symptom domain model.

Defines the Symptom dataclass plus the name normalization shared by every
ingestion step that touches symptom text.
"""

import math
import re
import typing
from dataclasses import dataclass, field

DEFAULT_SEVERITY_WEIGHT = 1.0

_LEADING_NUMBER = re.compile(r"\s*[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


def normalize_symptom_name(raw: typing.Any) -> str:
    """
    Source tables spell symptoms as ``skin_rash`` or `` skin_rash``.
    Underscores become spaces, then surrounding whitespace is trimmed.
    Inner spacing is left as-is.
    """
    if raw is None:
        return ""
    return str(raw).replace("_", " ").strip()


def symptom_key(raw: typing.Any) -> str:
    """Case-insensitive lookup key for a symptom name."""
    return normalize_symptom_name(raw).lower()


def parse_severity_weight(raw: typing.Any) -> float:
    """
    Parse a raw severity weight from its leading number, so "5" and "5 pts"
    both give 5.0. No leading number, a non-finite value or zero falls back to
    ``DEFAULT_SEVERITY_WEIGHT``.
    """
    match = _LEADING_NUMBER.match("" if raw is None else str(raw))
    if match is None:
        return DEFAULT_SEVERITY_WEIGHT
    value = float(match.group(0))
    if not math.isfinite(value) or value == 0:
        return DEFAULT_SEVERITY_WEIGHT
    return value


@dataclass
class Symptom:
    """
    A symptom as stored in the knowledge base.

    Attributes:
        name: Normalized symptom name; unique across the store.
        description: Free text, e.g. "Severity weight: 5".
        category: Grouping label ("general" for ingested symptoms).
        localized_name: Display name in the user's language; defaults to name.
        id: Store-assigned identifier, None until persisted.
    """

    name: str
    description: str = ""
    category: str = "general"
    localized_name: str = ""
    id: typing.Optional[int] = field(default=None, compare=False)

    def __post_init__(self):
        if not isinstance(self.name, str) or not self.name.strip():
            raise ValueError(f"Symptom name must be a nonempty string, got {self.name!r}")
        if not self.localized_name:
            self.localized_name = self.name

    def to_record(self) -> dict[str, typing.Any]:
        return {
            "name": self.name,
            "name_id": self.localized_name,
            "category": self.category,
            "description": self.description,
        }

    @classmethod
    def from_record(cls, record: dict[str, typing.Any]) -> "Symptom":
        return cls(
            name=record["name"],
            description=record.get("description") or "",
            category=record.get("category") or "general",
            localized_name=record.get("name_id") or "",
            id=record.get("id"),
        )
