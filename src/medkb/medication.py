"""
Medication domain model.

Dosage, frequency and the other prescription fields are fixed placeholders:
the drug catalog carries no structured dosage data.
"""

import typing
from dataclasses import dataclass, field

DEFAULT_CATEGORY = "General"
PLACEHOLDER_DOSAGE = "As prescribed"
PLACEHOLDER_FREQUENCY = "As directed by doctor"
PLACEHOLDER_INSTRUCTIONS = "Follow prescription instructions"
PLACEHOLDER_SIDE_EFFECTS = "Consult doctor for side effects"
PLACEHOLDER_PRICE_RANGE = "Varies"


@dataclass
class Medication:
    """
    Represents a drug in the catalog.

    Attributes:
        name: Drug name; the dedup key.
        category: The condition the drug was listed for, or "General".
        generic_name: Generic name; defaults to name.
        id: Store-assigned identifier, None until persisted.
    """

    name: str
    category: str = DEFAULT_CATEGORY
    generic_name: str = ""
    dosage: str = PLACEHOLDER_DOSAGE
    frequency: str = PLACEHOLDER_FREQUENCY
    instructions: str = PLACEHOLDER_INSTRUCTIONS
    side_effects: str = PLACEHOLDER_SIDE_EFFECTS
    price_range: str = PLACEHOLDER_PRICE_RANGE
    id: typing.Optional[int] = field(default=None, compare=False)

    def __post_init__(self):
        if not isinstance(self.name, str) or not self.name.strip():
            raise ValueError(f"Medication name must be a nonempty string, got {self.name!r}")
        if not self.generic_name:
            self.generic_name = self.name
        if not self.category:
            self.category = DEFAULT_CATEGORY

    def to_record(self) -> dict[str, typing.Any]:
        return {
            "name": self.name,
            "generic_name": self.generic_name,
            "category": self.category,
            "dosage": self.dosage,
            "frequency": self.frequency,
            "instructions": self.instructions,
            "side_effects": self.side_effects,
            "price_range": self.price_range,
        }

    @classmethod
    def from_record(cls, record: dict[str, typing.Any]) -> "Medication":
        return cls(
            name=record["name"],
            category=record.get("category") or DEFAULT_CATEGORY,
            generic_name=record.get("generic_name") or "",
            dosage=record.get("dosage") or PLACEHOLDER_DOSAGE,
            frequency=record.get("frequency") or PLACEHOLDER_FREQUENCY,
            instructions=record.get("instructions") or PLACEHOLDER_INSTRUCTIONS,
            side_effects=record.get("side_effects") or PLACEHOLDER_SIDE_EFFECTS,
            price_range=record.get("price_range") or PLACEHOLDER_PRICE_RANGE,
            id=record.get("id"),
        )
