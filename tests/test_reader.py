"""
Tests for SourceTable: lazy CSV rows with stripped headers and "" for empty cells.
"""

import os

import pytest

from medkb.reader import SourceReadError, SourceTable, read_rows


def test_rows_are_dicts_keyed_by_header(fpath_test_dir):
    table = SourceTable(os.path.join(fpath_test_dir, "Symptom-severity.csv"))
    rows = list(table)
    assert len(rows) == 10
    assert rows[0] == {"Symptom": "itching", "weight": "1"}
    assert rows[-1] == {"Symptom": "chills", "weight": "6"}


def test_empty_cells_come_back_as_empty_strings(fpath_test_dir):
    rows = list(read_rows(os.path.join(fpath_test_dir, "dataset.csv")))
    assert rows[0]["Symptom_4"] == ""
    # raw cell text is not stripped; normalization happens later
    assert rows[0]["Symptom_2"] == " skin_rash"


def test_quoted_cells_keep_their_commas(fpath_test_dir):
    rows = list(SourceTable(os.path.join(fpath_test_dir, "drugsComTrain_raw.csv")))
    assert rows[0]["date"] == "May 20, 2012"
    assert rows[3]["condition"] == ""


def test_headers_are_stripped(tmp_path):
    path = tmp_path / "t.csv"
    path.write_text(" Disease , Description \nFlu,A cold\n", encoding="utf-8")
    table = SourceTable(path)
    assert table.columns == ["Disease", "Description"]
    assert list(table) == [{"Disease": "Flu", "Description": "A cold"}]


def test_iteration_is_restartable_and_chunk_size_independent(fpath_test_dir):
    path = os.path.join(fpath_test_dir, "dataset.csv")
    table = SourceTable(path, chunk_size=2)
    first = list(table)
    second = list(table)
    assert first == second
    assert first == list(SourceTable(path))


def test_custom_delimiter(tmp_path):
    path = tmp_path / "t.tsv"
    path.write_text("Symptom\tweight\nitching\t1\n", encoding="utf-8")
    assert list(SourceTable(path, delimiter="\t")) == [{"Symptom": "itching", "weight": "1"}]


def test_missing_file_raises(tmp_path):
    with pytest.raises(SourceReadError, match="not found"):
        SourceTable(tmp_path / "nope.csv")


def test_empty_file_raises_on_read(tmp_path):
    path = tmp_path / "empty.csv"
    path.write_text("", encoding="utf-8")
    table = SourceTable(path)
    with pytest.raises(SourceReadError):
        list(table)
    with pytest.raises(SourceReadError):
        table.columns


def test_header_only_file_yields_nothing(tmp_path):
    path = tmp_path / "header.csv"
    path.write_text("Symptom,weight\n", encoding="utf-8")
    table = SourceTable(path)
    assert table.columns == ["Symptom", "weight"]
    assert list(table) == []
