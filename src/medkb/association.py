"""
Disease-symptom association model.
"""

import typing
from dataclasses import dataclass


@dataclass
class DiseaseSymptomLink:
    """
    A weighted edge between a disease and one of its symptoms.

    Attributes:
        disease_id: Store id of the disease.
        symptom_id: Store id of the symptom.
        weight: Normalized severity in [0, 1].
        is_primary: True for the first symptom slots of an incidence row.
    """

    disease_id: int
    symptom_id: int
    weight: float
    is_primary: bool

    def __post_init__(self):
        if not 0.0 <= self.weight <= 1.0:
            raise ValueError(f"Link weight must lie in [0, 1], got {self.weight!r}")
        if not isinstance(self.is_primary, bool):
            raise ValueError(
                f"is_primary must be a boolean, got {type(self.is_primary).__name__}"
            )

    @property
    def key(self) -> tuple[int, int]:
        return self.disease_id, self.symptom_id

    def to_record(self) -> dict[str, typing.Any]:
        return {
            "disease_id": self.disease_id,
            "symptom_id": self.symptom_id,
            "weight": self.weight,
            "is_primary": self.is_primary,
        }

    @classmethod
    def from_record(cls, record: dict[str, typing.Any]) -> "DiseaseSymptomLink":
        return cls(
            disease_id=record["disease_id"],
            symptom_id=record["symptom_id"],
            weight=float(record["weight"]),
            is_primary=bool(record["is_primary"]),
        )
