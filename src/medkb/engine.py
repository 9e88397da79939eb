"""
Diagnostic inference.

Ranks candidate diseases for a set of selected symptom ids using the weighted
disease-symptom links in the knowledge store.

For each disease that shares at least one link with the selection:

    score         = sum(weight * (1.5 if primary else 1.0))  over matched links
    matched_count = number of matched links
    total_count   = number of links the disease has in the link table
    confidence    = min(95, matched_count / max(total_count, 1) * 100 + score * 10)

Diseases with no matched link are not scored at all. Candidates are sorted by
confidence, highest first; the sort is stable, so equal confidences keep the
order in which each disease first matched while scanning links by id.
"""

import logging
import typing

from .association import DiseaseSymptomLink
from .diagnosis import Diagnosis, DiagnosisEvent, DiagnosisResult, NoMatch, Provider
from .disease import Disease
from .medication import Medication
from .settings import PRIMARY_MULTIPLIER, RECOMMENDATION_LIMIT
from .store import (
    DIAGNOSES,
    DISEASE_MEDICATIONS,
    DISEASE_SYMPTOMS,
    DISEASES,
    DOCTORS,
    MEDICATIONS,
    KnowledgeStore,
)

LOGGER = logging.getLogger(__name__)

LinkedDisease = tuple[DiseaseSymptomLink, Disease]


def score_links(
    linked: typing.Iterable[LinkedDisease],
    selected_symptom_ids: typing.Iterable[int],
) -> list[DiagnosisResult]:
    """Score and rank every disease that matches at least one selected symptom."""
    linked = list(linked)
    selected = set(selected_symptom_ids)
    scores: dict[int, DiagnosisResult] = {}

    for link, disease in linked:
        if link.symptom_id not in selected:
            continue
        result = scores.get(link.disease_id)
        if result is None:
            result = scores[link.disease_id] = DiagnosisResult(disease=disease)
        result.score += link.weight * (PRIMARY_MULTIPLIER if link.is_primary else 1.0)
        result.matched_count += 1

    # total_count only accrues for diseases that already matched
    for link, _ in linked:
        if link.disease_id in scores:
            scores[link.disease_id].total_count += 1

    return sorted(scores.values(), key=lambda r: r.confidence, reverse=True)


class DiagnosticEngine:
    """
    Reads links from a KnowledgeStore and turns a symptom selection into a
    Diagnosis.

    With ``cache_links=True`` the link table is read once and reused for later
    requests; call ``invalidate_cache()`` after re-ingesting.
    """

    def __init__(self, store: KnowledgeStore, cache_links: bool = False):
        self.store = store
        self.cache_links = cache_links
        self._linked: typing.Optional[list[LinkedDisease]] = None

    def invalidate_cache(self) -> None:
        self._linked = None

    def _load_linked(self) -> list[LinkedDisease]:
        if self._linked is not None:
            return self._linked
        link_records = self.store.select(DISEASE_SYMPTOMS, order_by="id")
        disease_ids = sorted({r["disease_id"] for r in link_records})
        diseases = {
            r["id"]: Disease.from_record(r)
            for r in (self.store.select(DISEASES, filters={"id": disease_ids}) if disease_ids else [])
        }
        linked: list[LinkedDisease] = []
        for record in link_records:
            disease = diseases.get(record["disease_id"])
            if disease is None:
                LOGGER.debug("Ignoring link to unknown disease id %r", record["disease_id"])
                continue
            linked.append((DiseaseSymptomLink.from_record(record), disease))
        if self.cache_links:
            self._linked = linked
        return linked

    def rank(self, selected_symptom_ids: typing.Iterable[int]) -> list[DiagnosisResult]:
        selected = set(selected_symptom_ids)
        if not selected:
            return []
        return score_links(self._load_linked(), selected)

    def infer(
        self,
        selected_symptom_ids: typing.Iterable[int],
        user_id: str,
    ) -> typing.Union[Diagnosis, NoMatch]:
        """
        Diagnose the selection for ``user_id``.

        On a match the diagnosis is recorded as a DiagnosisEvent and returned with
        up to three linked medications and up to three providers. An empty or
        unlinked selection yields NoMatch and records nothing. Store failures
        propagate as StoreUnavailable.
        """
        if not user_id:
            raise ValueError("A diagnosis needs the id of the requesting user")
        selected = frozenset(selected_symptom_ids)
        if not selected:
            return NoMatch(selected, "no symptoms selected")

        ranking = self.rank(selected)
        if not ranking:
            return NoMatch(selected, "selected symptoms are not linked to any disease")

        top = ranking[0]
        event = DiagnosisEvent(
            user_id=str(user_id),
            symptoms_selected=tuple(sorted(selected)),
            disease_id=top.disease.id,
            confidence_score=top.confidence,
            ai_recommendation=top.disease.recommendation,
        )
        self.store.insert(DIAGNOSES, [event.to_record()])
        LOGGER.info(
            "Diagnosed %r for user %s with confidence %.1f", top.disease.name, user_id, top.confidence
        )

        return Diagnosis(
            result=top,
            event=event,
            ranking=ranking,
            medications=self.medications_for(top.disease.id),
            providers=self.providers(),
        )

    def medications_for(self, disease_id: int, limit: int = RECOMMENDATION_LIMIT) -> list[Medication]:
        associations = self.store.select(DISEASE_MEDICATIONS, filters={"disease_id": disease_id}, limit=limit)
        medication_ids = [r["medication_id"] for r in associations]
        if not medication_ids:
            return []
        by_id = {r["id"]: Medication.from_record(r) for r in self.store.select(MEDICATIONS, filters={"id": medication_ids})}
        return [by_id[mid] for mid in medication_ids if mid in by_id]

    def providers(self, limit: int = RECOMMENDATION_LIMIT) -> list[Provider]:
        # not filtered by specialization
        return [Provider.from_record(r) for r in self.store.select(DOCTORS, limit=limit)]

    def recent_diagnoses(self, user_id: str, limit: int = 3) -> list[DiagnosisEvent]:
        records = self.store.select(DIAGNOSES, filters={"user_id": str(user_id)}, order_by="-created_at", limit=limit)
        return [DiagnosisEvent.from_record(r) for r in records]
