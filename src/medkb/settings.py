"""
Configuration for MedKB.

Source column names and file names are a data contract owned by whoever
publishes the tables, so they live in small dataclasses with defaults that
match the public symptom/disease datasets. A YAML file can override any of
them. Store connection details come from the environment.

Environment
-----------
MEDKB_STORE_URL     : Base URL of a PostgREST-compatible store (optional).
MEDKB_STORE_KEY     : API key sent with every REST request.
MEDKB_DB_PATH       : SQLite file used when no URL is set (default "medkb.sqlite3").
MEDKB_STORE_TIMEOUT : Seconds before a store call is abandoned (default 10).
"""

from __future__ import annotations

import os
import pathlib
from dataclasses import dataclass, field, fields, replace
from typing import Any, Optional

import yaml

# ----------------------------
# Ingestion and scoring limits
# ----------------------------

LINK_BATCH_SIZE = 500
MEDICATION_BATCH_SIZE = 100
MEDICATION_CAP = 500
MAX_RAW_SEVERITY = 7.0
PRIMARY_SLOT_COUNT = 3
PRIMARY_MULTIPLIER = 1.5
CONFIDENCE_CAP = 95.0
RECOMMENDATION_LIMIT = 3


# --------------
# Column mapping
# --------------


@dataclass
class SeverityColumns:
    symptom: str = "Symptom"
    weight: str = "weight"


@dataclass
class DescriptionColumns:
    disease: str = "Disease"
    description: str = "Description"


@dataclass
class PrecautionColumns:
    disease: str = "Disease"
    precautions: tuple[str, ...] = (
        "Precaution_1",
        "Precaution_2",
        "Precaution_3",
        "Precaution_4",
    )


@dataclass
class IncidenceColumns:
    """
    The incidence matrix has one disease column followed by numbered symptom
    slots ("Symptom_1" … "Symptom_17" by default).
    """

    disease: str = "Disease"
    symptom_prefix: str = "Symptom_"
    slot_count: int = 17

    @property
    def symptoms(self) -> list[str]:
        return [f"{self.symptom_prefix}{i}" for i in range(1, self.slot_count + 1)]


@dataclass
class DrugColumns:
    drug: str = "drugName"
    condition: str = "condition"


@dataclass
class ColumnMapping:
    """Column names for all five source tables."""

    severity: SeverityColumns = field(default_factory=SeverityColumns)
    description: DescriptionColumns = field(default_factory=DescriptionColumns)
    precaution: PrecautionColumns = field(default_factory=PrecautionColumns)
    incidence: IncidenceColumns = field(default_factory=IncidenceColumns)
    drug: DrugColumns = field(default_factory=DrugColumns)


@dataclass
class SourceLayout:
    """File names of the five source tables inside a source directory."""

    severity: str = "Symptom-severity.csv"
    description: str = "symptom_Description.csv"
    precaution: str = "symptom_precaution.csv"
    incidence: str = "dataset.csv"
    drug: str = "drugsComTrain_raw.csv"
    delimiter: str = ","

    def path_for(self, source_dir: str | os.PathLike, kind: str) -> pathlib.Path:
        return pathlib.Path(source_dir) / getattr(self, kind)


SOURCE_KINDS = ("severity", "description", "precaution", "incidence", "drug")


def _apply_section(current: Any, overrides: Optional[dict]) -> Any:
    if not overrides:
        return current
    known = {f.name for f in fields(current)}
    unknown = sorted(set(overrides) - known)
    if unknown:
        raise ValueError(f"Unknown column keys for {type(current).__name__}: {unknown}")
    values = dict(overrides)
    if "precautions" in values:
        values["precautions"] = tuple(values["precautions"])
    if "slot_count" in values:
        values["slot_count"] = int(values["slot_count"])
    return replace(current, **values)


def column_mapping_from_dict(payload: Optional[dict]) -> ColumnMapping:
    """
    Build a ColumnMapping from a nested dict such as

        incidence:
          disease: Illness
          slot_count: 12
        drug:
          drug: name

    Sections and keys that are left out keep their defaults.
    """
    mapping = ColumnMapping()
    if not payload:
        return mapping
    unknown = sorted(set(payload) - set(SOURCE_KINDS))
    if unknown:
        raise ValueError(f"Unknown column mapping sections: {unknown}")
    return ColumnMapping(
        severity=_apply_section(mapping.severity, payload.get("severity")),
        description=_apply_section(mapping.description, payload.get("description")),
        precaution=_apply_section(mapping.precaution, payload.get("precaution")),
        incidence=_apply_section(mapping.incidence, payload.get("incidence")),
        drug=_apply_section(mapping.drug, payload.get("drug")),
    )


def load_column_mapping(path: Optional[str | os.PathLike]) -> ColumnMapping:
    if path is None:
        return ColumnMapping()
    with open(path, "r", encoding="utf-8") as f:
        payload = yaml.safe_load(f) or {}
    if not isinstance(payload, dict):
        raise ValueError(f"Column mapping file {str(path)!r} must hold a mapping")
    return column_mapping_from_dict(payload)


# --------------
# Store settings
# --------------


@dataclass
class StoreSettings:
    url: Optional[str] = None
    api_key: Optional[str] = None
    db_path: str = "medkb.sqlite3"
    timeout: float = 10.0

    @classmethod
    def from_env(cls) -> "StoreSettings":
        return cls(
            url=os.getenv("MEDKB_STORE_URL") or None,
            api_key=os.getenv("MEDKB_STORE_KEY") or None,
            db_path=os.getenv("MEDKB_DB_PATH", "medkb.sqlite3"),
            timeout=float(os.getenv("MEDKB_STORE_TIMEOUT", "10")),
        )
