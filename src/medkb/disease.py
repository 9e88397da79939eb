"""
Disease domain model.

Defines the Severity tiers and the Disease dataclass.
"""

import typing
from dataclasses import dataclass, field
from enum import Enum


class Severity(Enum):
    """
    Severity tier of a disease. Ingestion assigns MODERATE to every disease;
    the other tiers are set by curators afterwards.
    """
    MILD = "mild"
    MODERATE = "moderate"
    SERIOUS = "serious"

    @classmethod
    def from_label(cls, label: str) -> "Severity":
        """
        Convert a stored or human-typed label into the corresponding enum.
        """
        key = str(label).strip().lower()
        for member in cls:
            if member.value == key:
                return member
        raise ValueError(f"Unknown severity label: {label!r}")


@dataclass
class Disease:
    """
    Represents a disease entry in the knowledge base.

    Attributes:
        name: Disease name; the dedup key.
        description: Free-text description.
        severity: One of the Severity tiers.
        recommendation: Comma-joined precautions derived at ingestion.
        localized_name: Display name in the user's language; defaults to name.
        id: Store-assigned identifier, None until persisted.
    """

    name: str
    description: str = ""
    severity: Severity = Severity.MODERATE
    recommendation: str = ""
    localized_name: str = ""
    id: typing.Optional[int] = field(default=None, compare=False)

    def __post_init__(self):
        if not isinstance(self.name, str) or not self.name.strip():
            raise ValueError(f"Disease name must be a nonempty string, got {self.name!r}")
        if not isinstance(self.severity, Severity):
            self.severity = Severity.from_label(self.severity)
        if not self.localized_name:
            self.localized_name = self.name

    def to_record(self) -> dict[str, typing.Any]:
        return {
            "name": self.name,
            "name_id": self.localized_name,
            "description": self.description,
            "severity": self.severity.value,
            "recommendation": self.recommendation,
        }

    @classmethod
    def from_record(cls, record: dict[str, typing.Any]) -> "Disease":
        return cls(
            name=record["name"],
            description=record.get("description") or "",
            severity=record.get("severity") or Severity.MODERATE,
            recommendation=record.get("recommendation") or "",
            localized_name=record.get("name_id") or "",
            id=record.get("id"),
        )
