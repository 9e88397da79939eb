import logging
import os
import pathlib
import typing

import pandas as pd

LOGGER = logging.getLogger(__name__)

# rows pulled from pandas per chunk; keeps large drug catalogs out of memory
DEFAULT_CHUNK_SIZE = 2000

_PARSE_ERRORS = (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError)


class SourceReadError(RuntimeError):
    """Raised when a source table is missing or cannot be parsed."""


class SourceTable:
    """
    A delimited source file exposed as a lazy, restartable sequence of rows.

    Every iteration re-opens the file and yields one ``dict`` per data line,
    mapping the (whitespace-stripped) header to the raw cell text. Empty cells
    come back as ``""``. Lines with too many fields are dropped by the parser
    with a warning instead of ending the stream.
    """

    def __init__(
        self,
        path: typing.Union[str, os.PathLike],
        delimiter: str = ",",
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        self.path = pathlib.Path(path)
        self.delimiter = delimiter
        self.chunk_size = chunk_size
        if not self.path.is_file():
            raise SourceReadError(f"Source file not found: {str(self.path)!r}")

    def _read_options(self) -> dict:
        return dict(
            sep=self.delimiter,
            header=0,
            dtype=str,
            keep_default_na=False,
            on_bad_lines="warn",
            encoding="utf-8",
        )

    @property
    def columns(self) -> list[str]:
        """Stripped header names, in file order."""
        try:
            head = pd.read_csv(self.path, nrows=0, **self._read_options())
        except _PARSE_ERRORS as e:
            raise SourceReadError(f"Cannot read header of {str(self.path)!r}: {e}") from e
        return [str(c).strip() for c in head.columns]

    def __iter__(self) -> typing.Iterator[dict[str, str]]:
        try:
            with pd.read_csv(self.path, chunksize=self.chunk_size, **self._read_options()) as chunks:
                for chunk in chunks:
                    chunk.columns = [str(c).strip() for c in chunk.columns]
                    for record in chunk.to_dict(orient="records"):
                        yield {
                            column: "" if value is None or pd.isna(value) else str(value)
                            for column, value in record.items()
                        }
        except _PARSE_ERRORS as e:
            raise SourceReadError(f"Failed to parse {str(self.path)!r}: {e}") from e

    def __repr__(self) -> str:
        return f"SourceTable({str(self.path)!r})"


def read_rows(path: typing.Union[str, os.PathLike], delimiter: str = ",") -> SourceTable:
    """Open a delimited file for row-wise reading."""
    LOGGER.debug("Opening source table %s", path)
    return SourceTable(path, delimiter=delimiter)
