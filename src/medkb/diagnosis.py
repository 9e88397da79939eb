"""
Diagnosis domain model.

Defines the scored candidate (DiagnosisResult), the empty outcome (NoMatch),
the append-only DiagnosisEvent written after a successful inference, the
care Provider records returned alongside it, and the Diagnosis bundle that
ties them together.
"""

import datetime
import typing
from dataclasses import dataclass, field

from .disease import Disease
from .medication import Medication
from .settings import CONFIDENCE_CAP


def compute_confidence(matched_count: int, total_count: int, score: float) -> float:
    """
    Heuristic match strength in [0, 95]:
    ``min(95, matched / max(total, 1) * 100 + score * 10)``.
    """
    return min(CONFIDENCE_CAP, (matched_count / max(total_count, 1)) * 100 + score * 10)


@dataclass
class DiagnosisResult:
    """
    One scored candidate disease.

    Attributes:
        disease: The candidate disease (with its store id).
        score: Sum of matched link weights, primary links counted 1.5x.
        matched_count: Number of selected symptoms linked to the disease.
        total_count: Number of links counted for the disease.
    """

    disease: Disease
    score: float = 0.0
    matched_count: int = 0
    total_count: int = 0

    @property
    def confidence(self) -> float:
        return compute_confidence(self.matched_count, self.total_count, self.score)


@dataclass(frozen=True)
class NoMatch:
    """The selected symptoms matched no known disease. A valid outcome, not an error."""

    selected_symptom_ids: frozenset = frozenset()
    reason: str = "no linked disease"


@dataclass(frozen=True)
class DiagnosisEvent:
    """
    Immutable record of one diagnosis, scoped to the identity that asked for it.
    """

    user_id: str
    symptoms_selected: tuple[int, ...]
    disease_id: int
    confidence_score: float
    ai_recommendation: str
    created_at: str = field(
        default_factory=lambda: datetime.datetime.now(datetime.timezone.utc).isoformat()
    )

    def to_record(self) -> dict[str, typing.Any]:
        return {
            "user_id": self.user_id,
            "symptoms_selected": list(self.symptoms_selected),
            "disease_id": self.disease_id,
            "confidence_score": self.confidence_score,
            "ai_recommendation": self.ai_recommendation,
            "created_at": self.created_at,
        }

    @classmethod
    def from_record(cls, record: dict[str, typing.Any]) -> "DiagnosisEvent":
        return cls(
            user_id=str(record["user_id"]),
            symptoms_selected=tuple(record.get("symptoms_selected") or ()),
            disease_id=record["disease_id"],
            confidence_score=float(record["confidence_score"]),
            ai_recommendation=record.get("ai_recommendation") or "",
            created_at=record.get("created_at") or "",
        )


@dataclass
class Provider:
    """A care provider that can be suggested next to a diagnosis."""

    name: str
    specialization: str
    hospital: str = ""
    location: str = ""
    experience_years: int = 0
    rating: float = 0.0
    consultation_fee: int = 0
    availability: dict = field(default_factory=dict)
    phone: str = ""
    email: str = ""
    id: typing.Optional[int] = field(default=None, compare=False)

    def to_record(self) -> dict[str, typing.Any]:
        return {
            "name": self.name,
            "specialization": self.specialization,
            "hospital": self.hospital,
            "location": self.location,
            "experience_years": self.experience_years,
            "rating": self.rating,
            "consultation_fee": self.consultation_fee,
            "availability": self.availability,
            "phone": self.phone,
            "email": self.email,
        }

    @classmethod
    def from_record(cls, record: dict[str, typing.Any]) -> "Provider":
        return cls(
            name=record["name"],
            specialization=record.get("specialization") or "",
            hospital=record.get("hospital") or "",
            location=record.get("location") or "",
            experience_years=int(record.get("experience_years") or 0),
            rating=float(record.get("rating") or 0.0),
            consultation_fee=int(record.get("consultation_fee") or 0),
            availability=record.get("availability") or {},
            phone=record.get("phone") or "",
            email=record.get("email") or "",
            id=record.get("id"),
        )


@dataclass
class Diagnosis:
    """Top candidate plus the event recorded for it and the suggestions shown with it."""

    result: DiagnosisResult
    event: DiagnosisEvent
    ranking: list[DiagnosisResult] = field(default_factory=list)
    medications: list[Medication] = field(default_factory=list)
    providers: list[Provider] = field(default_factory=list)
