"""
Command-line interface for MedKB.

    medkb ingest          build the knowledge base from a source directory
    medkb diagnose        rank diseases for a set of symptom names
    medkb reminders       list a user's active medication reminders
    medkb audit-sources   check source files before ingesting them
"""

import json
import logging
import sys
import typing
from collections import namedtuple

import click
import yaml

from .builder import IngestReport, KnowledgeBaseBuilder, name_index
from .diagnosis import NoMatch
from .engine import DiagnosticEngine
from .identity import FaceMatcher
from .mapper import RowMapper
from .reader import SourceReadError, SourceTable
from .reminders import ReminderBook
from .settings import SOURCE_KINDS, ColumnMapping, SourceLayout, StoreSettings, load_column_mapping
from .store import SYMPTOMS, KnowledgeStore, StoreUnavailable, open_store
from .symptom import symptom_key

AuditEntry = namedtuple("AuditEntry", ["step", "source", "message", "level"])


@click.group()
def main():
    """MedKB: symptom knowledge base ingestion and diagnostic inference."""
    pass


def _configure_logging(verbose_logging: bool, log_file_path: typing.Optional[str]) -> None:
    handlers: list[logging.Handler] = []
    if log_file_path:
        handlers.append(logging.FileHandler(log_file_path, mode="a", encoding="utf-8"))
    if verbose_logging:
        handlers.append(logging.StreamHandler(sys.stderr))
    if handlers:
        logging.basicConfig(
            level=logging.DEBUG if verbose_logging else logging.INFO,
            format="%(asctime)s %(levelname)s %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
            handlers=handlers,
            force=True,
        )


def _load_columns(column_map_path: typing.Optional[str]) -> ColumnMapping:
    try:
        return load_column_mapping(column_map_path)
    except (ValueError, yaml.YAMLError) as e:
        click.echo(f"Error: bad column mapping {column_map_path!r}: {e}", err=True)
        sys.exit(1)


def _open_store(db_path: typing.Optional[str]) -> KnowledgeStore:
    settings = StoreSettings.from_env()
    if db_path:
        # an explicit file always means the local store
        settings.url = None
        settings.db_path = db_path
    try:
        return open_store(settings)
    except StoreUnavailable as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


def _report_issues(report: IngestReport) -> None:
    for procedure in report.procedures:
        notepad = procedure.notepad
        if notepad.has_errors(include_subsections=True):
            click.echo(f"Errors found in {procedure.name}:")
            for err in notepad.errors():
                click.echo(f"- {err}")
        if notepad.has_warnings(include_subsections=True):
            click.echo(f"Warnings found in {procedure.name}:")
            for w in notepad.warnings():
                click.echo(f"- {w}")


@main.command(name="ingest")
@click.option(
    "-s",
    "--source-dir",
    "source_dir",
    default="data",
    type=click.Path(exists=True, file_okay=False),
    help="directory holding the five source tables (default: data)",
)
@click.option("--db-path", default=None, help="SQLite file to write (default: $MEDKB_DB_PATH or medkb.sqlite3)")
@click.option(
    "--column-map",
    "column_map_path",
    type=click.Path(exists=True, dir_okay=False),
    help="YAML file overriding source column names",
)
@click.option("--seed-providers/--no-seed-providers", default=True, help="Insert placeholder providers into an empty store")
@click.option("--strict", is_flag=True, help="Exit with status 1 if any procedure reported a failure")
@click.option("--verbose-logging", is_flag=True, help="Also emit debug logs to stderr")
@click.option(
    "--log-file-path",
    type=click.Path(dir_okay=False, writable=True),
    help="Append timestamped logs to this file",
)
def ingest(
    source_dir: str,
    db_path: typing.Optional[str],
    column_map_path: typing.Optional[str],
    seed_providers: bool,
    strict: bool,
    verbose_logging: bool,
    log_file_path: typing.Optional[str],
):
    """
    Build or refresh the knowledge base: symptoms, diseases, disease-symptom
    links and medications, in that order. Failures are reported per procedure
    and do not stop the remaining ones.
    """
    _configure_logging(verbose_logging, log_file_path)
    columns = _load_columns(column_map_path)
    store = _open_store(db_path)

    with store:
        report = KnowledgeBaseBuilder(store, source_dir, columns=columns).run(seed_providers=seed_providers)

    _report_issues(report)
    for procedure in report.procedures:
        click.echo(
            f"Imported {procedure.written} {procedure.name} "
            f"({procedure.skipped} already present, {procedure.failed_records} failed records, "
            f"{procedure.failed_batches} failed batches)"
        )

    if strict and not report.ok:
        sys.exit(1)


def _read_descriptor(path: str) -> list[float]:
    try:
        with open(path, encoding="utf-8") as fh:
            values = json.load(fh)
        return [float(v) for v in values]
    except (OSError, ValueError, TypeError) as e:
        click.echo(f"Error: bad face descriptor {path!r}: {e}", err=True)
        sys.exit(1)


@main.command(name="diagnose")
@click.option("-u", "--user-id", default=None, help="identity the diagnosis is recorded for")
@click.option(
    "--face-descriptor",
    "descriptor_path",
    type=click.Path(exists=True, dir_okay=False),
    help="JSON list of numbers; identifies the user against enrolled faces when -u is not given",
)
@click.option("-s", "--symptom", "symptoms", multiple=True, required=True, help="symptom name; repeat for more")
@click.option("--db-path", default=None, help="SQLite file to read (default: $MEDKB_DB_PATH or medkb.sqlite3)")
def diagnose(
    user_id: typing.Optional[str],
    descriptor_path: typing.Optional[str],
    symptoms: tuple[str, ...],
    db_path: typing.Optional[str],
):
    """
    Rank candidate diseases for the given symptoms and record the top match.
    """
    if not user_id and not descriptor_path:
        click.echo("Error: give --user-id or --face-descriptor", err=True)
        sys.exit(1)
    descriptor = _read_descriptor(descriptor_path) if not user_id else None

    store = _open_store(db_path)
    with store:
        try:
            if descriptor is not None:
                user_id = FaceMatcher().identify(descriptor, store)
                if user_id is None:
                    click.echo("Error: no enrolled face matches the descriptor", err=True)
                    sys.exit(1)
                click.echo(f"Identified user: {user_id}")
            known = name_index(store.select(SYMPTOMS), symptom_key)
            selected: set[int] = set()
            for name in symptoms:
                symptom_id = known.get(symptom_key(name))
                if symptom_id is None:
                    click.echo(f"Unknown symptom {name!r}, ignoring", err=True)
                else:
                    selected.add(symptom_id)
            outcome = DiagnosticEngine(store).infer(selected, user_id)
        except StoreUnavailable as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)

    if isinstance(outcome, NoMatch):
        click.echo(f"No matching disease: {outcome.reason}")
        return

    top = outcome.result
    click.echo(f"Diagnosis: {top.disease.name}")
    click.echo(f"Confidence: {top.confidence:.1f}% ({top.matched_count}/{top.total_count} symptoms matched)")
    click.echo(f"Severity: {top.disease.severity.value}")
    if top.disease.recommendation:
        click.echo(f"Recommendation: {top.disease.recommendation}")
    for medication in outcome.medications:
        click.echo(f"Medication: {medication.name} - {medication.dosage}, {medication.frequency}")
    for provider in outcome.providers:
        click.echo(f"Provider: {provider.name} ({provider.specialization}, {provider.hospital})")


@main.command(name="reminders")
@click.option("-u", "--user-id", required=True, help="identity whose reminders to list")
@click.option("--db-path", default=None, help="SQLite file to read (default: $MEDKB_DB_PATH or medkb.sqlite3)")
def reminders(user_id: str, db_path: typing.Optional[str]):
    """List a user's active medication reminders, earliest first."""
    store = _open_store(db_path)
    with store:
        try:
            book = ReminderBook(store)
            active = book.active(user_id)
            taken = book.taken_today(user_id)
        except StoreUnavailable as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)

    if not active:
        click.echo(f"No active reminders for {user_id}")
        return
    for reminder in active:
        name = reminder.medication.name if reminder.medication else f"medication #{reminder.medication_id}"
        status = "taken" if reminder.id in taken else "due"
        click.echo(f"{reminder.schedule_time}  {name}  {reminder.frequency}  {status}")


def audit_sources(
    source_dir: str,
    layout: typing.Optional[SourceLayout] = None,
    columns: typing.Optional[ColumnMapping] = None,
) -> list[AuditEntry]:
    """
    Light checks on each source table:
      - the file can be opened and parsed
      - row and header counts
      - configured columns that are missing
    """
    layout = layout or SourceLayout()
    mapper = RowMapper(columns)
    entries: list[AuditEntry] = []

    for kind in SOURCE_KINDS:
        path = layout.path_for(source_dir, kind)
        try:
            table = SourceTable(path, delimiter=layout.delimiter)
            header = table.columns
            row_count = sum(1 for _ in table)
        except SourceReadError as e:
            entries.append(AuditEntry(step="read-source", source=kind, message=str(e), level="error"))
            continue

        entries.append(AuditEntry(
            step="read-source",
            source=kind,
            message=f"{row_count} rows, {len(header)} cols",
            level="info",
        ))
        missing = sorted(set(mapper.required_columns(kind)) - set(header))
        entries.append(AuditEntry(
            step="required-columns",
            source=kind,
            message=f"missing {missing}" if missing else "ok",
            level="error" if missing else "info",
        ))
    return entries


@main.command(name="audit-sources")
@click.option(
    "-s",
    "--source-dir",
    "source_dir",
    default="data",
    type=click.Path(exists=True, file_okay=False),
    help="directory holding the five source tables (default: data)",
)
@click.option(
    "--column-map",
    "column_map_path",
    type=click.Path(exists=True, dir_okay=False),
    help="YAML file overriding source column names",
)
@click.option("-r", "--raw", is_flag=True, help="print JSON instead of a table")
def audit_sources_command(source_dir: str, column_map_path: typing.Optional[str], raw: bool):
    """Report what each source table looks like before ingesting it."""
    entries = audit_sources(source_dir, columns=_load_columns(column_map_path))
    if raw:
        click.echo(json.dumps([entry._asdict() for entry in entries], indent=2))
        return
    click.echo(f"{'SOURCE':12}  {'STEP':18}  {'LEVEL':6}  MESSAGE")
    for entry in entries:
        line = f"{entry.source:12}  {entry.step:18}  {entry.level:6}  {entry.message}"
        if entry.level == "error":
            line = click.style(line, fg="red")
        click.echo(line)


if __name__ == "__main__":
    main()
