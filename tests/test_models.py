"""
Tests for the domain dataclasses: validation in __post_init__ and the
record shapes written to the store.
"""

import pytest

from medkb.association import DiseaseSymptomLink
from medkb.diagnosis import DiagnosisEvent, DiagnosisResult, compute_confidence
from medkb.disease import Disease, Severity
from medkb.medication import Medication
from medkb.rows import IncidenceRow
from medkb.symptom import Symptom, normalize_symptom_name, parse_severity_weight, symptom_key


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("skin_rash", "skin rash"),
        (" skin_rash", "skin rash"),
        ("nodal_skin_eruptions ", "nodal skin eruptions"),
        ("Skin Rash", "Skin Rash"),
        (None, ""),
    ],
)
def test_normalize_symptom_name(raw, expected):
    assert normalize_symptom_name(raw) == expected


def test_symptom_key_is_case_insensitive():
    assert symptom_key(" Skin_Rash") == symptom_key("skin rash") == "skin rash"


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("4", 4.0),
        (" 3 ", 3.0),
        ("0", 1.0),
        ("5abc", 5.0),
        ("2.5e0 pts", 2.5),
        ("-3", -3.0),
        ("n/a", 1.0),
        ("", 1.0),
        ("nan", 1.0),
        ("inf", 1.0),
        ("1e999", 1.0),
    ],
)
def test_parse_severity_weight(raw, expected):
    assert parse_severity_weight(raw) == expected


def test_symptom_requires_a_name():
    with pytest.raises(ValueError):
        Symptom(name="  ")


def test_symptom_record_uses_name_as_localized_default():
    record = Symptom(name="itching", description="Severity weight: 1").to_record()
    assert record == {
        "name": "itching",
        "name_id": "itching",
        "category": "general",
        "description": "Severity weight: 1",
    }


@pytest.mark.parametrize(
    "label, expected",
    [
        ("mild", Severity.MILD),
        (" Moderate ", Severity.MODERATE),
        ("SERIOUS", Severity.SERIOUS),
    ],
)
def test_severity_from_label(label, expected):
    assert Severity.from_label(label) is expected


def test_severity_from_label_unknown():
    with pytest.raises(ValueError, match="Unknown severity label"):
        Severity.from_label("critical")


def test_disease_from_record_parses_severity():
    disease = Disease.from_record({"id": 7, "name": "GERD", "severity": "serious"})
    assert disease.severity is Severity.SERIOUS
    assert disease.id == 7
    assert disease.localized_name == "GERD"


def test_disease_requires_a_name():
    with pytest.raises(ValueError):
        Disease(name="")


@pytest.mark.parametrize("weight", [-0.1, 1.01])
def test_link_weight_must_be_normalized(weight):
    with pytest.raises(ValueError):
        DiseaseSymptomLink(disease_id=1, symptom_id=2, weight=weight, is_primary=True)


def test_link_primary_flag_must_be_bool():
    with pytest.raises(ValueError):
        DiseaseSymptomLink(disease_id=1, symptom_id=2, weight=0.5, is_primary=1)


def test_medication_defaults():
    medication = Medication(name="Valsartan", category="")
    assert medication.category == "General"
    assert medication.generic_name == "Valsartan"
    assert medication.dosage == "As prescribed"
    assert medication.frequency == "As directed by doctor"
    assert medication.price_range == "Varies"


@pytest.mark.parametrize(
    "matched, total, score, expected",
    [
        (2, 2, 0.65, 95.0),
        (1, 3, 0.0, 100 / 3),
        (1, 0, 0.0, 95.0),
        (0, 5, 0.0, 0.0),
    ],
)
def test_compute_confidence(matched, total, score, expected):
    assert compute_confidence(matched, total, score) == pytest.approx(expected)


def test_result_confidence_tracks_counts():
    result = DiagnosisResult(disease=Disease(name="Allergy"), score=0.5, matched_count=1, total_count=4)
    assert result.confidence == pytest.approx(30.0)


def test_diagnosis_event_record():
    event = DiagnosisEvent(
        user_id="u-1",
        symptoms_selected=(3, 1),
        disease_id=2,
        confidence_score=75.0,
        ai_recommendation="rest",
        created_at="2026-01-01T00:00:00+00:00",
    )
    record = event.to_record()
    assert record["symptoms_selected"] == [3, 1]
    assert DiagnosisEvent.from_record(record) == event


def test_incidence_row_filled_slots_keep_positions():
    row = IncidenceRow(disease="Flu", slots=("a", "", " b", "  "))
    assert row.filled_slots() == [(1, "a"), (3, " b")]
