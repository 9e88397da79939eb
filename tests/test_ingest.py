"""
End-to-end ingestion of `tests/data/` into an in-memory SQLite store.
"""

import os

import pytest

from medkb.builder import KnowledgeBaseBuilder
from medkb.store import (
    DISEASE_SYMPTOMS,
    DISEASES,
    DOCTORS,
    MEDICATIONS,
    SYMPTOMS,
    SqliteKnowledgeStore,
    StoreWriteError,
)


class FailingLinkStore(SqliteKnowledgeStore):
    """Rejects every insert into the link table."""

    def insert(self, collection, records):
        if collection == DISEASE_SYMPTOMS:
            raise StoreWriteError("link table is read-only")
        return super().insert(collection, records)


class RecordingStore(SqliteKnowledgeStore):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.batches: list[tuple[str, int]] = []

    def insert(self, collection, records):
        self.batches.append((collection, len(records)))
        return super().insert(collection, records)


def _links_by_name(store):
    symptoms = {r["id"]: r["name"] for r in store.select(SYMPTOMS)}
    diseases = {r["id"]: r["name"] for r in store.select(DISEASES)}
    return {
        (diseases[r["disease_id"]], symptoms[r["symptom_id"]]): r
        for r in store.select(DISEASE_SYMPTOMS)
    }


def test_full_run_counts(store, fpath_test_dir):
    report = KnowledgeBaseBuilder(store, fpath_test_dir).run()

    assert report.ok
    assert [p.name for p in report.procedures] == ["symptoms", "diseases", "links", "medications", "providers"]
    assert report["symptoms"].written == 9
    assert report["diseases"].written == 3
    assert report["links"].written == 8
    assert report["medications"].written == 4
    assert report["providers"].written == 30

    assert len(store.select(SYMPTOMS)) == 9
    assert len(store.select(DOCTORS)) == 30


def test_symptoms_are_normalized_and_last_duplicate_wins(ingested_store):
    by_name = {r["name"]: r for r in ingested_store.select(SYMPTOMS)}
    assert "skin rash" in by_name
    assert "skin_rash" not in by_name
    assert by_name["chills"]["description"] == "Severity weight: 6"
    assert by_name["fatigue"]["description"] == "Severity weight: n/a"


def test_disease_recommendations(ingested_store):
    by_name = {r["name"]: r for r in ingested_store.select(DISEASES)}
    assert by_name["Fungal infection"]["recommendation"] == (
        "bath twice, use detol or neem in bathing water, keep infected area dry, use clean cloths"
    )
    assert by_name["Allergy"]["recommendation"] == "apply calamine, cover area with bandage, use ice to compress itching"
    assert by_name["GERD"]["recommendation"] == ""
    assert {r["severity"] for r in by_name.values()} == {"moderate"}


def test_link_weights_and_primary_flags(ingested_store):
    links = _links_by_name(ingested_store)
    assert set(links) == {
        ("Fungal infection", "itching"),
        ("Fungal infection", "skin rash"),
        ("Fungal infection", "nodal skin eruptions"),
        ("Allergy", "continuous sneezing"),
        ("Allergy", "shivering"),
        ("Allergy", "chills"),
        ("GERD", "stomach pain"),
        ("GERD", "chills"),
    }
    # the second Fungal infection row moves nodal skin eruptions to slot 4
    nodal = links[("Fungal infection", "nodal skin eruptions")]
    assert nodal["is_primary"] is False
    assert nodal["weight"] == pytest.approx(4 / 7)
    assert links[("GERD", "chills")]["weight"] == pytest.approx(6 / 7)
    assert links[("GERD", "chills")]["is_primary"] is False
    assert links[("Allergy", "chills")]["is_primary"] is True
    assert all(0.0 <= r["weight"] <= 1.0 for r in links.values())


def test_medications_first_occurrence_and_placeholders(ingested_store):
    by_name = {r["name"]: r for r in ingested_store.select(MEDICATIONS)}
    assert set(by_name) == {"Valsartan", "Guanfacine", "Lybrel", "Ortho Evra"}
    assert by_name["Valsartan"]["category"] == "Left Ventricular Dysfunction"
    assert by_name["Ortho Evra"]["category"] == "General"
    assert by_name["Lybrel"]["dosage"] == "As prescribed"


def test_rerun_is_idempotent(ingested_store, fpath_test_dir):
    before = {c: len(ingested_store.select(c)) for c in (SYMPTOMS, DISEASES, DISEASE_SYMPTOMS, MEDICATIONS, DOCTORS)}

    report = KnowledgeBaseBuilder(ingested_store, fpath_test_dir).run()

    assert report.ok
    after = {c: len(ingested_store.select(c)) for c in before}
    assert after == before
    assert report["links"].written == 0
    assert report["links"].skipped == 8
    assert report["medications"].skipped == 4
    assert report["providers"].skipped == 30


def test_symptom_ids_survive_a_rerun(ingested_store, fpath_test_dir):
    ids = {r["name"]: r["id"] for r in ingested_store.select(SYMPTOMS)}
    KnowledgeBaseBuilder(ingested_store, fpath_test_dir).import_symptoms()
    assert {r["name"]: r["id"] for r in ingested_store.select(SYMPTOMS)} == ids


def test_missing_source_aborts_only_its_procedure(store, source_dir):
    os.remove(os.path.join(source_dir, "dataset.csv"))

    report = KnowledgeBaseBuilder(store, source_dir).run(seed_providers=False)

    assert not report.ok
    assert report["links"].aborted
    assert report["links"].notepad.has_errors()
    assert report["symptoms"].ok
    assert report["diseases"].ok
    assert report["medications"].written == 4
    assert store.select(DISEASE_SYMPTOMS) == []


def test_missing_column_is_reported(store, source_dir):
    path = os.path.join(source_dir, "drugsComTrain_raw.csv")
    with open(path, "w", encoding="utf-8") as fh:
        fh.write("uniqueID,name,condition\n1,Valsartan,HBP\n")

    report = KnowledgeBaseBuilder(store, source_dir).run(seed_providers=False)

    assert report["medications"].notepad.has_errors()
    assert report["medications"].written == 0
    assert not report["medications"].aborted
    assert report["links"].ok


def test_failed_link_batch_does_not_stop_medications(fpath_test_dir):
    with FailingLinkStore(":memory:") as store:
        report = KnowledgeBaseBuilder(store, fpath_test_dir).run(seed_providers=False)

        assert report["links"].failed_batches == 1
        assert report["links"].failed_records == 8
        assert report["links"].written == 0
        assert not report["links"].ok
        assert report["medications"].written == 4
        assert len(store.select(MEDICATIONS)) == 4


def test_links_are_written_in_batches(fpath_test_dir, monkeypatch):
    monkeypatch.setattr("medkb.builder.LINK_BATCH_SIZE", 3)
    with RecordingStore(":memory:") as store:
        KnowledgeBaseBuilder(store, fpath_test_dir).run(seed_providers=False)
        link_batches = [size for collection, size in store.batches if collection == DISEASE_SYMPTOMS]

    assert link_batches == [3, 3, 2]


def _write_drugs(source_dir, names):
    with open(os.path.join(source_dir, "drugsComTrain_raw.csv"), "w", encoding="utf-8") as fh:
        fh.write("uniqueID,drugName,condition\n")
        for i, name in enumerate(names):
            fh.write(f"{i},{name},Pain\n")


def test_medications_are_inserted_in_batches_of_100(source_dir):
    _write_drugs(source_dir, [f"drug-{i}" for i in range(620)])
    with RecordingStore(":memory:") as store:
        report = KnowledgeBaseBuilder(store, source_dir).import_medications()
        medication_batches = [size for collection, size in store.batches if collection == MEDICATIONS]

        assert medication_batches == [100, 100, 100, 100, 100]
        assert report.written == 500
        assert len(store.select(MEDICATIONS)) == 500


def test_medication_cap_holds_across_runs(store, source_dir):
    _write_drugs(source_dir, [f"a{i}" for i in range(450)])
    first = KnowledgeBaseBuilder(store, source_dir).import_medications()
    assert first.written == 450

    _write_drugs(source_dir, [f"b{i}" for i in range(450)])
    second = KnowledgeBaseBuilder(store, source_dir).import_medications()

    assert second.written == 50
    assert second.notepad.has_warnings()
    assert len(store.select(MEDICATIONS)) == 500

    third = KnowledgeBaseBuilder(store, source_dir).import_medications()
    assert third.written == 0
    assert len(store.select(MEDICATIONS)) == 500


def test_seed_providers_can_be_disabled(store, fpath_test_dir):
    report = KnowledgeBaseBuilder(store, fpath_test_dir).run(seed_providers=False)
    assert [p.name for p in report.procedures][-1] == "medications"
    assert store.select(DOCTORS) == []
