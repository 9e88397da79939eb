"""
Knowledge base construction.

Turns the five source tables into Symptoms, Diseases, weighted
Disease-Symptom links and Medications, and writes them to a KnowledgeStore.

The ``build_*`` functions are pure: typed rows in, entities out, no store
access. ``KnowledgeBaseBuilder`` wires them to the reader and the store and
runs the procedures in their fixed order:

    symptoms -> diseases -> links -> medications (-> providers)

Links need the ids the store assigned to symptoms and diseases, so the order
matters. Each procedure is best-effort: a failed read or write is logged and
recorded on that procedure's report, and the next procedure still runs.
"""

import contextlib
import logging
import os
import random
import typing
from dataclasses import dataclass, field

from stairval.notepad import Notepad, create_notepad

from .association import DiseaseSymptomLink
from .diagnosis import Provider
from .disease import Disease, Severity
from .mapper import RowMapper
from .medication import DEFAULT_CATEGORY, Medication
from .reader import SourceReadError, SourceTable
from .rows import DescriptionRow, DrugRow, IncidenceRow, PrecautionRow, SeverityRow
from .settings import (
    LINK_BATCH_SIZE,
    MAX_RAW_SEVERITY,
    MEDICATION_BATCH_SIZE,
    MEDICATION_CAP,
    PRIMARY_SLOT_COUNT,
    ColumnMapping,
    SourceLayout,
)
from .store import (
    DISEASE_SYMPTOMS,
    DISEASES,
    DOCTORS,
    MEDICATIONS,
    SYMPTOMS,
    KnowledgeStore,
    StoreUnavailable,
    StoreWriteError,
)
from .symptom import (
    DEFAULT_SEVERITY_WEIGHT,
    Symptom,
    normalize_symptom_name,
    parse_severity_weight,
    symptom_key,
)

LOGGER = logging.getLogger(__name__)

PROVIDER_COUNT = 30
PROVIDER_SEED = 2024

SPECIALIZATIONS = [
    "General Practitioner", "Cardiologist", "Dermatologist", "Neurologist",
    "Pediatrician", "Orthopedist", "Ophthalmologist", "Psychiatrist",
    "Dentist", "ENT Specialist", "Pulmonologist", "Gastroenterologist",
]
HOSPITALS = [
    "City General Hospital", "Metro Health Center", "Sunrise Medical",
    "Golden Heart Hospital", "Care Plus Clinic", "Wellness Hospital",
    "Prime Medical Center", "Hope Hospital", "Life Care Medical",
]
FIRST_NAMES = ["James", "Sarah", "Michael", "Emily", "David", "Lisa", "Robert", "Anna", "William", "Maria"]
LAST_NAMES = ["Smith", "Johnson", "Williams", "Brown", "Jones", "Garcia", "Miller", "Davis", "Wilson", "Lee"]
WEEKDAY_AVAILABILITY = {
    "monday": ["09:00-12:00", "14:00-17:00"],
    "tuesday": ["09:00-12:00", "14:00-17:00"],
    "wednesday": ["09:00-12:00"],
    "thursday": ["09:00-12:00", "14:00-17:00"],
    "friday": ["09:00-12:00", "14:00-17:00"],
}


# ------------------------------------------------------------------------------
# Pure construction steps
# ------------------------------------------------------------------------------


def build_symptoms(rows: typing.Iterable[SeverityRow]) -> list[Symptom]:
    """
    One Symptom per normalized name. When a name repeats, the later row
    replaces the earlier one (the earlier row's position is kept).
    """
    by_name: dict[str, Symptom] = {}
    for row in rows:
        name = normalize_symptom_name(row.symptom)
        if not name:
            continue
        by_name[name] = Symptom(
            name=name,
            description=f"Severity weight: {row.weight.strip()}",
            category="general",
        )
    return list(by_name.values())


def join_precautions(precautions: typing.Sequence[str], limit: int = 4) -> str:
    """First ``limit`` precaution cells, blanks dropped, joined with ", "."""
    return ", ".join(p.strip() for p in precautions[:limit] if p and p.strip())


def build_diseases(
    descriptions: typing.Iterable[DescriptionRow],
    precautions: typing.Iterable[PrecautionRow],
) -> list[Disease]:
    """
    Join descriptions with precautions on the exact disease text. The first
    precaution row for a disease wins; no match leaves the recommendation empty.
    Every disease starts out MODERATE.
    """
    first_precaution: dict[str, PrecautionRow] = {}
    for row in precautions:
        first_precaution.setdefault(row.disease, row)

    by_name: dict[str, Disease] = {}
    for row in descriptions:
        name = row.disease.strip()
        if not name:
            continue
        precaution = first_precaution.get(row.disease)
        by_name[name] = Disease(
            name=name,
            description=row.description.strip(),
            severity=Severity.MODERATE,
            recommendation=join_precautions(precaution.precautions) if precaution else "",
        )
    return list(by_name.values())


def severity_lookup(rows: typing.Iterable[SeverityRow]) -> dict[str, float]:
    """symptom key -> parsed weight; later rows overwrite earlier ones."""
    return {symptom_key(row.symptom): parse_severity_weight(row.weight) for row in rows}


def normalize_weight(raw_weight: float) -> float:
    """Scale a raw severity (1..7) onto [0, 1]."""
    return max(0.0, min(raw_weight / MAX_RAW_SEVERITY, 1.0))


def build_links(
    incidence: typing.Iterable[IncidenceRow],
    severity: typing.Mapping[str, float],
    symptom_ids: typing.Mapping[str, int],
    disease_ids: typing.Mapping[str, int],
) -> list[DiseaseSymptomLink]:
    """
    Candidate links from the incidence matrix.

    ``symptom_ids`` and ``disease_ids`` map names (any case) to store ids. Rows
    whose disease is unknown are skipped, as are slots whose symptom is unknown.
    The first PRIMARY_SLOT_COUNT slot positions are primary. A repeated
    (disease, symptom) pair keeps the last candidate.
    A missing or zero severity counts as DEFAULT_SEVERITY_WEIGHT.
    """
    symptoms = {symptom_key(name): sid for name, sid in symptom_ids.items()}
    diseases = {name.strip().lower(): did for name, did in disease_ids.items()}

    links: dict[tuple[int, int], DiseaseSymptomLink] = {}
    for row in incidence:
        disease_id = diseases.get(row.disease.strip().lower())
        if disease_id is None:
            continue
        for position, text in row.filled_slots():
            key = symptom_key(text)
            symptom_id = symptoms.get(key)
            if symptom_id is None:
                continue
            link = DiseaseSymptomLink(
                disease_id=disease_id,
                symptom_id=symptom_id,
                weight=normalize_weight(severity.get(key) or DEFAULT_SEVERITY_WEIGHT),
                is_primary=position <= PRIMARY_SLOT_COUNT,
            )
            links[link.key] = link
    return list(links.values())


def build_medications(rows: typing.Iterable[DrugRow], cap: int = MEDICATION_CAP) -> list[Medication]:
    """First row per drug name wins; at most ``cap`` medications are kept."""
    by_name: dict[str, Medication] = {}
    for row in rows:
        name = row.drug.strip()
        if not name or name in by_name:
            continue
        by_name[name] = Medication(name=name, category=row.condition.strip() or DEFAULT_CATEGORY)
    return list(by_name.values())[:cap]


def generate_providers(count: int = PROVIDER_COUNT, seed: int = PROVIDER_SEED) -> list[Provider]:
    """A reproducible roster of placeholder care providers."""
    rng = random.Random(seed)
    providers = []
    for i in range(count):
        first = rng.choice(FIRST_NAMES)
        last = rng.choice(LAST_NAMES)
        providers.append(
            Provider(
                name=f"Dr. {first} {last}",
                specialization=SPECIALIZATIONS[i % len(SPECIALIZATIONS)],
                hospital=rng.choice(HOSPITALS),
                location="Medical District",
                experience_years=rng.randint(5, 24),
                rating=round(rng.uniform(3.5, 5.0), 1),
                consultation_fee=rng.randint(50, 149) * 1000,
                availability={day: list(slots) for day, slots in WEEKDAY_AVAILABILITY.items()},
                phone=f"+62 812-{rng.randint(1000, 9999)}-{rng.randint(1000, 9999)}",
                email=f"{first.lower()}.{last.lower()}@hospital.com",
            )
        )
    return providers


def name_index(records: typing.Iterable[dict], key: typing.Callable[[str], str]) -> dict[str, int]:
    return {key(str(r["name"])): r["id"] for r in records if r.get("name")}


# ------------------------------------------------------------------------------
# Reports
# ------------------------------------------------------------------------------


@dataclass
class ProcedureReport:
    """
    What one ingestion procedure did.

    Attributes:
        name: Procedure name ("symptoms", "links", ...).
        notepad: Row-level and store-level issues.
        candidates: Entities built in memory after dedup.
        written: Records the store accepted.
        skipped: Records already present and left alone.
        failed_records: Records the store rejected.
        failed_batches: Insert batches that failed as a whole.
        aborted: True when a source or store failure stopped the procedure early.
    """

    name: str
    notepad: Notepad
    candidates: int = 0
    written: int = 0
    skipped: int = 0
    failed_records: int = 0
    failed_batches: int = 0
    aborted: bool = False

    @property
    def ok(self) -> bool:
        return (
            not self.aborted
            and self.failed_records == 0
            and self.failed_batches == 0
            and not self.notepad.has_errors(include_subsections=True)
        )


@dataclass
class IngestReport:
    procedures: list[ProcedureReport] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(p.ok for p in self.procedures)

    def __getitem__(self, name: str) -> ProcedureReport:
        for procedure in self.procedures:
            if procedure.name == name:
                return procedure
        raise KeyError(name)


# ------------------------------------------------------------------------------
# Builder
# ------------------------------------------------------------------------------


class KnowledgeBaseBuilder:
    def __init__(
        self,
        store: KnowledgeStore,
        source_dir: typing.Union[str, os.PathLike],
        layout: typing.Optional[SourceLayout] = None,
        columns: typing.Optional[ColumnMapping] = None,
    ):
        self.store = store
        self.source_dir = source_dir
        self.layout = layout or SourceLayout()
        self.mapper = RowMapper(columns)

    def _table(self, kind: str) -> SourceTable:
        return SourceTable(self.layout.path_for(self.source_dir, kind), delimiter=self.layout.delimiter)

    @contextlib.contextmanager
    def _procedure(self, name: str) -> typing.Iterator[ProcedureReport]:
        """Run one procedure; source and store failures end it but are not re-raised."""
        report = ProcedureReport(name=name, notepad=create_notepad(name))
        LOGGER.info("Importing %s", name)
        try:
            yield report
        except SourceReadError as e:
            report.aborted = True
            report.notepad.add_error(str(e))
            LOGGER.error("Import of %s stopped: %s", name, e)
        except StoreUnavailable as e:
            report.aborted = True
            report.notepad.add_error(str(e))
            LOGGER.error("Import of %s stopped, store failure: %s", name, e)
        else:
            LOGGER.info(
                "Imported %s: %d written, %d skipped, %d failed records, %d failed batches",
                name, report.written, report.skipped, report.failed_records, report.failed_batches,
            )

    def _upsert(self, collection: str, records: list[dict], conflict_key: str, report: ProcedureReport) -> None:
        result = self.store.upsert(collection, records, conflict_key)
        report.written += result.written
        report.failed_records += result.failed
        for error in result.errors:
            report.notepad.add_error(f"{collection}: {error}")
            LOGGER.warning("Upsert into %s rejected %s", collection, error)

    def _insert_batches(
        self, collection: str, records: list[dict], batch_size: int, report: ProcedureReport
    ) -> None:
        for index, start in enumerate(range(0, len(records), batch_size)):
            batch = records[start:start + batch_size]
            try:
                result = self.store.insert(collection, batch)
            except StoreWriteError as e:
                report.failed_batches += 1
                report.failed_records += len(batch)
                report.notepad.add_error(f"{collection}: batch {index} ({len(batch)} records) failed: {e}")
                LOGGER.error("Batch %d of %s (%d records) failed: %s", index, collection, len(batch), e)
                continue
            report.written += result.written
            report.failed_records += result.failed

    # ---- procedures ----------------------------------------------------------

    def import_symptoms(self) -> ProcedureReport:
        with self._procedure("symptoms") as report:
            rows = self.mapper.map_severity(self._table("severity"), report.notepad)
            symptoms = build_symptoms(rows)
            report.candidates = len(symptoms)
            self._upsert(SYMPTOMS, [s.to_record() for s in symptoms], "name", report)
        return report

    def import_diseases(self) -> ProcedureReport:
        with self._procedure("diseases") as report:
            descriptions = self.mapper.map_descriptions(self._table("description"), report.notepad)
            precautions = self.mapper.map_precautions(self._table("precaution"), report.notepad)
            diseases = build_diseases(descriptions, precautions)
            report.candidates = len(diseases)
            self._upsert(DISEASES, [d.to_record() for d in diseases], "name", report)
        return report

    def import_links(self) -> ProcedureReport:
        with self._procedure("links") as report:
            severity = severity_lookup(self.mapper.map_severity(self._table("severity"), report.notepad))
            incidence = self.mapper.map_incidence(self._table("incidence"), report.notepad)
            symptom_ids = name_index(self.store.select(SYMPTOMS), symptom_key)
            disease_ids = name_index(self.store.select(DISEASES), lambda n: n.strip().lower())

            links = build_links(incidence, severity, symptom_ids, disease_ids)
            report.candidates = len(links)

            existing = {(r["disease_id"], r["symptom_id"]) for r in self.store.select(DISEASE_SYMPTOMS)}
            fresh = [link for link in links if link.key not in existing]
            report.skipped = len(links) - len(fresh)
            self._insert_batches(DISEASE_SYMPTOMS, [link.to_record() for link in fresh], LINK_BATCH_SIZE, report)
        return report

    def import_medications(self) -> ProcedureReport:
        with self._procedure("medications") as report:
            medications = build_medications(self.mapper.map_drugs(self._table("drug"), report.notepad))
            report.candidates = len(medications)

            existing = {r["name"] for r in self.store.select(MEDICATIONS)}
            fresh = [m for m in medications if m.name not in existing]
            report.skipped = len(medications) - len(fresh)

            # the cap covers the whole collection, not one run
            room = max(0, MEDICATION_CAP - len(existing))
            if len(fresh) > room:
                report.notepad.add_warning(
                    f"{MEDICATIONS}: catalog is full ({MEDICATION_CAP}), {len(fresh) - room} new medications not added"
                )
                LOGGER.warning("Medication cap reached, dropping %d new medications", len(fresh) - room)
                fresh = fresh[:room]
            self._insert_batches(MEDICATIONS, [m.to_record() for m in fresh], MEDICATION_BATCH_SIZE, report)
        return report

    def seed_providers(self, count: int = PROVIDER_COUNT) -> ProcedureReport:
        with self._procedure("providers") as report:
            providers = generate_providers(count)
            report.candidates = len(providers)
            if self.store.select(DOCTORS, limit=1):
                report.skipped = len(providers)
            else:
                self._insert_batches(DOCTORS, [p.to_record() for p in providers], len(providers) or 1, report)
        return report

    def run(self, seed_providers: bool = True) -> IngestReport:
        report = IngestReport()
        report.procedures.append(self.import_symptoms())
        report.procedures.append(self.import_diseases())
        report.procedures.append(self.import_links())
        report.procedures.append(self.import_medications())
        if seed_providers:
            report.procedures.append(self.seed_providers())
        return report
