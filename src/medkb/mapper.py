"""
Map raw source records into typed rows.

Each table-level method checks that the configured columns are present,
reports problems on a stairval Notepad and returns the typed rows. A missing
column is an error for the whole table (nothing is returned); a row that
cannot be used is a warning and is dropped.
"""

import typing

from stairval.notepad import Notepad

from .rows import DescriptionRow, DrugRow, IncidenceRow, PrecautionRow, SeverityRow
from .settings import ColumnMapping

Record = dict[str, str]


class RowMapper:
    def __init__(self, columns: typing.Optional[ColumnMapping] = None):
        self.columns = columns or ColumnMapping()

    @staticmethod
    def _cell(record: Record, column: str) -> str:
        value = record.get(column)
        return "" if value is None else str(value)

    @staticmethod
    def _check_columns(
        records: typing.Sequence[Record],
        required: typing.Iterable[str],
        table: str,
        notepad: Notepad,
    ) -> bool:
        """
        True when every required column is present. An empty table passes:
        there is nothing to map and nothing to complain about.
        """
        if not records:
            notepad.add_warning(f"Table {table!r}: no data rows")
            return True
        have = set(records[0].keys())
        missing = sorted(set(required) - have)
        if missing:
            notepad.add_error(f"Table {table!r}: missing required columns: {missing}")
            return False
        return True

    def required_columns(self, kind: str) -> list[str]:
        """Configured column names that a table of the given kind must carry."""
        c = self.columns
        if kind == "severity":
            return [c.severity.symptom, c.severity.weight]
        if kind == "description":
            return [c.description.disease, c.description.description]
        if kind == "precaution":
            return [c.precaution.disease, *c.precaution.precautions]
        if kind == "incidence":
            # trailing symptom slots may be absent from narrow exports
            return [c.incidence.disease, c.incidence.symptoms[0]]
        if kind == "drug":
            return [c.drug.drug, c.drug.condition]
        raise ValueError(f"Unknown source kind: {kind!r}")

    # Table-level mappers

    def map_severity(self, records: typing.Iterable[Record], notepad: Notepad) -> list[SeverityRow]:
        records = list(records)
        cols = self.columns.severity
        if not self._check_columns(records, self.required_columns("severity"), "severity", notepad):
            return []
        rows: list[SeverityRow] = []
        for index, record in enumerate(records):
            symptom = self._cell(record, cols.symptom)
            if not symptom.strip():
                notepad.add_warning(f"Table 'severity', row {index}: empty symptom name")
                continue
            rows.append(SeverityRow(symptom=symptom, weight=self._cell(record, cols.weight)))
        return rows

    def map_descriptions(self, records: typing.Iterable[Record], notepad: Notepad) -> list[DescriptionRow]:
        records = list(records)
        cols = self.columns.description
        if not self._check_columns(records, self.required_columns("description"), "description", notepad):
            return []
        rows: list[DescriptionRow] = []
        for index, record in enumerate(records):
            disease = self._cell(record, cols.disease)
            if not disease.strip():
                notepad.add_warning(f"Table 'description', row {index}: empty disease name")
                continue
            rows.append(DescriptionRow(disease=disease, description=self._cell(record, cols.description)))
        return rows

    def map_precautions(self, records: typing.Iterable[Record], notepad: Notepad) -> list[PrecautionRow]:
        records = list(records)
        cols = self.columns.precaution
        if not self._check_columns(records, self.required_columns("precaution"), "precaution", notepad):
            return []
        return [
            PrecautionRow(
                disease=self._cell(record, cols.disease),
                precautions=tuple(self._cell(record, column) for column in cols.precautions),
            )
            for record in records
        ]

    def map_incidence(self, records: typing.Iterable[Record], notepad: Notepad) -> list[IncidenceRow]:
        records = list(records)
        cols = self.columns.incidence
        if not self._check_columns(records, self.required_columns("incidence"), "incidence", notepad):
            return []
        rows: list[IncidenceRow] = []
        for index, record in enumerate(records):
            disease = self._cell(record, cols.disease)
            if not disease.strip():
                notepad.add_warning(f"Table 'incidence', row {index}: empty disease name")
                continue
            rows.append(
                IncidenceRow(
                    disease=disease,
                    slots=tuple(self._cell(record, column) for column in cols.symptoms),
                )
            )
        return rows

    def map_drugs(self, records: typing.Iterable[Record], notepad: Notepad) -> list[DrugRow]:
        records = list(records)
        cols = self.columns.drug
        if not self._check_columns(records, self.required_columns("drug"), "drug", notepad):
            return []
        return [
            DrugRow(drug=self._cell(record, cols.drug), condition=self._cell(record, cols.condition))
            for record in records
        ]
