"""
Knowledge store access.

Everything MedKB persists goes through three operations:

- ``upsert(collection, records, conflict_key)``: insert-or-update by natural key,
  with one success flag per record;
- ``insert(collection, records)``: append-only bulk insert, all-or-nothing per call;
- ``select(collection, filters, order_by, limit)``: read query.

Two backends implement them. ``SqliteKnowledgeStore`` keeps the whole knowledge
base in one local file and is the default. ``RestKnowledgeStore`` talks to a
PostgREST-compatible HTTP endpoint (the hosted deployment) with ``requests``.
The store owns entity identity: ids are assigned on first write and callers only
ever hold them as references.

Failures surface as ``StoreReadError`` / ``StoreWriteError``, both of which are
``StoreUnavailable``. Nothing here retries.
"""

import abc
import json
import logging
import sqlite3
import threading
import typing
from dataclasses import dataclass, field

import requests

from .settings import StoreSettings

LOGGER = logging.getLogger(__name__)

SYMPTOMS = "symptoms"
DISEASES = "diseases"
DISEASE_SYMPTOMS = "disease_symptoms"
MEDICATIONS = "medications"
DISEASE_MEDICATIONS = "disease_medications"
DOCTORS = "doctors"
DIAGNOSES = "diagnoses"
FACE_DATA = "face_data"
MEDICATION_REMINDERS = "medication_reminders"
MEDICATION_LOGS = "medication_logs"

Record = dict[str, typing.Any]
Filters = typing.Optional[typing.Mapping[str, typing.Any]]


class StoreUnavailable(RuntimeError):
    """The backing store could not complete a read or a write."""


class StoreReadError(StoreUnavailable):
    """A select against the store failed."""


class StoreWriteError(StoreUnavailable):
    """An upsert or insert batch failed."""


@dataclass
class WriteResult:
    """
    Outcome of one upsert/insert call.

    Attributes:
        outcomes: One flag per submitted record, in submission order.
        errors: Human-readable reasons for the failed records.
    """

    outcomes: list[bool] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def written(self) -> int:
        return sum(1 for ok in self.outcomes if ok)

    @property
    def failed(self) -> int:
        return sum(1 for ok in self.outcomes if not ok)

    @property
    def ok(self) -> bool:
        return self.failed == 0


class KnowledgeStore(metaclass=abc.ABCMeta):
    @abc.abstractmethod
    def upsert(self, collection: str, records: typing.Sequence[Record], conflict_key: str) -> WriteResult:
        raise NotImplementedError

    @abc.abstractmethod
    def insert(self, collection: str, records: typing.Sequence[Record]) -> WriteResult:
        raise NotImplementedError

    @abc.abstractmethod
    def select(
        self,
        collection: str,
        filters: Filters = None,
        order_by: typing.Optional[str] = None,
        limit: typing.Optional[int] = None,
    ) -> list[Record]:
        raise NotImplementedError

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()


def _split_order(order_by: typing.Optional[str]) -> tuple[typing.Optional[str], bool]:
    """'-created_at' -> ('created_at', True)."""
    if not order_by:
        return None, False
    if order_by.startswith("-"):
        return order_by[1:], True
    return order_by, False


# ------------------------------------------------------------------------------
# SQLite backend
# ------------------------------------------------------------------------------

_SCHEMA = {
    SYMPTOMS: """
        CREATE TABLE IF NOT EXISTS symptoms (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL UNIQUE,
            name_id TEXT,
            category TEXT,
            description TEXT
        )
    """,
    DISEASES: """
        CREATE TABLE IF NOT EXISTS diseases (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL UNIQUE,
            name_id TEXT,
            description TEXT,
            severity TEXT NOT NULL DEFAULT 'moderate'
                CHECK (severity IN ('mild', 'moderate', 'serious')),
            recommendation TEXT
        )
    """,
    DISEASE_SYMPTOMS: """
        CREATE TABLE IF NOT EXISTS disease_symptoms (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            disease_id INTEGER NOT NULL REFERENCES diseases (id),
            symptom_id INTEGER NOT NULL REFERENCES symptoms (id),
            weight REAL NOT NULL CHECK (weight >= 0 AND weight <= 1),
            is_primary INTEGER NOT NULL DEFAULT 0,
            UNIQUE (disease_id, symptom_id)
        )
    """,
    MEDICATIONS: """
        CREATE TABLE IF NOT EXISTS medications (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL UNIQUE,
            generic_name TEXT,
            category TEXT,
            dosage TEXT,
            frequency TEXT,
            instructions TEXT,
            side_effects TEXT,
            price_range TEXT
        )
    """,
    DISEASE_MEDICATIONS: """
        CREATE TABLE IF NOT EXISTS disease_medications (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            disease_id INTEGER NOT NULL REFERENCES diseases (id),
            medication_id INTEGER NOT NULL REFERENCES medications (id),
            UNIQUE (disease_id, medication_id)
        )
    """,
    DOCTORS: """
        CREATE TABLE IF NOT EXISTS doctors (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            specialization TEXT,
            hospital TEXT,
            location TEXT,
            experience_years INTEGER,
            rating REAL,
            consultation_fee INTEGER,
            availability TEXT,
            phone TEXT,
            email TEXT
        )
    """,
    DIAGNOSES: """
        CREATE TABLE IF NOT EXISTS diagnoses (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id TEXT NOT NULL,
            symptoms_selected TEXT NOT NULL,
            disease_id INTEGER NOT NULL REFERENCES diseases (id),
            confidence_score REAL NOT NULL,
            ai_recommendation TEXT,
            created_at TEXT
        )
    """,
    FACE_DATA: """
        CREATE TABLE IF NOT EXISTS face_data (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id TEXT NOT NULL,
            face_descriptor TEXT NOT NULL
        )
    """,
    MEDICATION_REMINDERS: """
        CREATE TABLE IF NOT EXISTS medication_reminders (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id TEXT NOT NULL,
            medication_id INTEGER NOT NULL REFERENCES medications (id),
            schedule_time TEXT NOT NULL,
            frequency TEXT,
            start_date TEXT,
            end_date TEXT,
            is_active INTEGER NOT NULL DEFAULT 1
        )
    """,
    MEDICATION_LOGS: """
        CREATE TABLE IF NOT EXISTS medication_logs (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            reminder_id INTEGER NOT NULL REFERENCES medication_reminders (id),
            user_id TEXT NOT NULL,
            scheduled_time TEXT,
            taken_time TEXT,
            status TEXT,
            verified_by_face INTEGER NOT NULL DEFAULT 0,
            created_at TEXT
        )
    """,
}

# stored as JSON text, decoded on read
_JSON_COLUMNS = {"symptoms_selected", "availability", "face_descriptor"}
# stored as 0/1, decoded on read
_BOOL_COLUMNS = {"is_primary", "is_active", "verified_by_face"}


class SqliteKnowledgeStore(KnowledgeStore):
    """
    Local knowledge store backed by a single SQLite file (":memory:" works too).
    The schema is created on open; reopening an existing file is harmless.

    One connection is shared by every thread that uses the store; statements
    are serialized by a lock.
    """

    def __init__(self, path: str = "medkb.sqlite3", timeout: float = 10.0):
        self.path = str(path)
        try:
            self._conn = sqlite3.connect(self.path, timeout=timeout, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            with self._conn:
                self._conn.execute("PRAGMA foreign_keys = ON")
                for ddl in _SCHEMA.values():
                    self._conn.execute(ddl)
        except sqlite3.Error as e:
            raise StoreUnavailable(f"Cannot open knowledge store at {self.path!r}: {e}") from e
        self._lock = threading.RLock()
        self._columns = {
            table: {row["name"] for row in self._conn.execute(f"PRAGMA table_info({table})")}
            for table in _SCHEMA
        }

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    # ---- helpers ---------------------------------------------------------------

    def _check_columns(self, collection: str, columns: typing.Iterable[str]) -> None:
        if collection not in self._columns:
            raise ValueError(f"Unknown collection: {collection!r}")
        unknown = sorted(set(columns) - self._columns[collection])
        if unknown:
            raise ValueError(f"Unknown columns for {collection!r}: {unknown}")

    @staticmethod
    def _encode(column: str, value: typing.Any) -> typing.Any:
        if column in _JSON_COLUMNS and value is not None:
            return json.dumps(value)
        if isinstance(value, bool):
            return int(value)
        return value

    @staticmethod
    def _decode(row: sqlite3.Row) -> Record:
        record = dict(row)
        for column, value in record.items():
            if value is None:
                continue
            if column in _JSON_COLUMNS:
                record[column] = json.loads(value)
            elif column in _BOOL_COLUMNS:
                record[column] = bool(value)
        return record

    # ---- operations ------------------------------------------------------------

    def upsert(self, collection: str, records: typing.Sequence[Record], conflict_key: str) -> WriteResult:
        result = WriteResult()
        for record in records:
            columns = list(record)
            self._check_columns(collection, columns + [conflict_key])
            updates = [c for c in columns if c != conflict_key]
            sql = (
                f"INSERT INTO {collection} ({', '.join(columns)}) "
                f"VALUES ({', '.join('?' for _ in columns)}) "
                f"ON CONFLICT ({conflict_key}) "
            )
            if updates:
                sql += "DO UPDATE SET " + ", ".join(f"{c} = excluded.{c}" for c in updates)
            else:
                sql += "DO NOTHING"
            try:
                with self._lock, self._conn:
                    self._conn.execute(sql, [self._encode(c, record[c]) for c in columns])
                result.outcomes.append(True)
            except sqlite3.Error as e:
                result.outcomes.append(False)
                result.errors.append(f"{record.get(conflict_key)!r}: {e}")
        return result

    def insert(self, collection: str, records: typing.Sequence[Record]) -> WriteResult:
        for record in records:
            self._check_columns(collection, record)
        try:
            with self._lock, self._conn:
                for record in records:
                    columns = list(record)
                    self._conn.execute(
                        f"INSERT INTO {collection} ({', '.join(columns)}) "
                        f"VALUES ({', '.join('?' for _ in columns)})",
                        [self._encode(c, record[c]) for c in columns],
                    )
        except sqlite3.Error as e:
            raise StoreWriteError(f"Insert into {collection!r} failed: {e}") from e
        return WriteResult(outcomes=[True] * len(records))

    def select(
        self,
        collection: str,
        filters: Filters = None,
        order_by: typing.Optional[str] = None,
        limit: typing.Optional[int] = None,
    ) -> list[Record]:
        filters = dict(filters or {})
        order_column, descending = _split_order(order_by)
        self._check_columns(collection, list(filters) + ([order_column] if order_column else []))

        clauses: list[str] = []
        params: list[typing.Any] = []
        for column, value in filters.items():
            if isinstance(value, (list, tuple, set, frozenset)):
                values = list(value)
                if not values:
                    return []
                clauses.append(f"{column} IN ({', '.join('?' for _ in values)})")
                params.extend(self._encode(column, v) for v in values)
            elif value is None:
                clauses.append(f"{column} IS NULL")
            else:
                clauses.append(f"{column} = ?")
                params.append(self._encode(column, value))

        sql = f"SELECT * FROM {collection}"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        if order_column:
            sql += f" ORDER BY {order_column} {'DESC' if descending else 'ASC'}, id ASC"
        else:
            sql += " ORDER BY id ASC"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(int(limit))
        try:
            with self._lock:
                rows = self._conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise StoreReadError(f"Select from {collection!r} failed: {e}") from e
        return [self._decode(row) for row in rows]


# ------------------------------------------------------------------------------
# PostgREST backend
# ------------------------------------------------------------------------------


class RestKnowledgeStore(KnowledgeStore):
    """
    Knowledge store reached over a PostgREST-style API
    (``<url>/rest/v1/<collection>``). Every request carries ``timeout``.
    """

    def __init__(self, url: str, api_key: typing.Optional[str] = None, timeout: float = 10.0):
        self.base_url = url.rstrip("/") + "/rest/v1"
        self.timeout = timeout
        self.headers = {"Content-Type": "application/json"}
        if api_key:
            self.headers["apikey"] = api_key
            self.headers["Authorization"] = f"Bearer {api_key}"

    @staticmethod
    def _literal(value: typing.Any) -> str:
        if isinstance(value, bool):
            return "true" if value else "false"
        return str(value)

    def _send(self, method: str, collection: str, *, params=None, payload=None, prefer=None) -> requests.Response:
        headers = dict(self.headers)
        if prefer:
            headers["Prefer"] = prefer
        resp = requests.request(
            method,
            f"{self.base_url}/{collection}",
            params=params,
            json=payload,
            headers=headers,
            timeout=self.timeout,
        )
        resp.raise_for_status()
        return resp

    def upsert(self, collection: str, records: typing.Sequence[Record], conflict_key: str) -> WriteResult:
        if not records:
            return WriteResult()
        try:
            self._send(
                "POST",
                collection,
                params={"on_conflict": conflict_key},
                payload=list(records),
                prefer="resolution=merge-duplicates,return=minimal",
            )
        except requests.RequestException as e:
            raise StoreWriteError(f"Upsert into {collection!r} failed: {e}") from e
        return WriteResult(outcomes=[True] * len(records))

    def insert(self, collection: str, records: typing.Sequence[Record]) -> WriteResult:
        if not records:
            return WriteResult()
        try:
            self._send("POST", collection, payload=list(records), prefer="return=minimal")
        except requests.RequestException as e:
            raise StoreWriteError(f"Insert into {collection!r} failed: {e}") from e
        return WriteResult(outcomes=[True] * len(records))

    def select(
        self,
        collection: str,
        filters: Filters = None,
        order_by: typing.Optional[str] = None,
        limit: typing.Optional[int] = None,
    ) -> list[Record]:
        params: dict[str, str] = {"select": "*"}
        for column, value in (filters or {}).items():
            if isinstance(value, (list, tuple, set, frozenset)):
                if not value:
                    return []
                params[column] = "in.(" + ",".join(self._literal(v) for v in value) + ")"
            elif value is None:
                params[column] = "is.null"
            else:
                params[column] = f"eq.{self._literal(value)}"
        order_column, descending = _split_order(order_by)
        params["order"] = f"{order_column or 'id'}.{'desc' if descending else 'asc'}"
        if limit is not None:
            params["limit"] = str(int(limit))
        try:
            resp = self._send("GET", collection, params=params)
            payload = resp.json()
        except (requests.RequestException, ValueError) as e:
            raise StoreReadError(f"Select from {collection!r} failed: {e}") from e
        if not isinstance(payload, list):
            raise StoreReadError(f"Select from {collection!r} returned {type(payload).__name__}, expected a list")
        return payload


def open_store(settings: typing.Optional[StoreSettings] = None) -> KnowledgeStore:
    """REST store when a URL is configured, local SQLite otherwise."""
    settings = settings or StoreSettings.from_env()
    if settings.url:
        LOGGER.info("Using REST knowledge store at %s", settings.url)
        return RestKnowledgeStore(settings.url, settings.api_key, timeout=settings.timeout)
    LOGGER.info("Using SQLite knowledge store at %s", settings.db_path)
    return SqliteKnowledgeStore(settings.db_path, timeout=settings.timeout)
