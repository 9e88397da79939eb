"""
Typed rows for the five source tables.

The reader hands out column-keyed dicts; the mapper turns each into one of
these immediately so that downstream normalization works on attributes
rather than string keys.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class SeverityRow:
    """
    One line of the severity-weight table.

    Attributes:
        symptom: Raw symptom text (e.g. "skin_rash").
        weight: Raw weight text; parsed later so bad values can fall back.
    """

    symptom: str
    weight: str


@dataclass(frozen=True)
class DescriptionRow:
    disease: str
    description: str


@dataclass(frozen=True)
class PrecautionRow:
    """
    One line of the precaution table. ``precautions`` keeps column order and
    may hold empty strings.
    """

    disease: str
    precautions: tuple[str, ...]


@dataclass(frozen=True)
class IncidenceRow:
    """
    One disease occurrence from the symptom-incidence matrix.

    Attributes:
        disease: Raw disease name.
        slots: Symptom cells in column order; empty cells stay "" so that
               slot positions are preserved.
    """

    disease: str
    slots: tuple[str, ...]

    def filled_slots(self) -> list[tuple[int, str]]:
        """(1-based position, raw text) for every non-empty slot."""
        return [
            (position, text)
            for position, text in enumerate(self.slots, start=1)
            if text.strip()
        ]


@dataclass(frozen=True)
class DrugRow:
    drug: str
    condition: str
