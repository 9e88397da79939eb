import os
import shutil

import pytest

from medkb.builder import KnowledgeBaseBuilder
from medkb.store import SqliteKnowledgeStore


@pytest.fixture(scope="session")
def fpath_test_dir() -> str:
    """
    Path to `tests/data/` folder with a small copy of the five source tables.
    """
    return os.path.join(os.path.dirname(__file__), "data")


@pytest.fixture
def source_dir(tmp_path, fpath_test_dir: str) -> str:
    """
    A writable copy of `tests/data/`, for tests that remove or rewrite a table.
    """
    target = tmp_path / "sources"
    shutil.copytree(fpath_test_dir, target)
    return str(target)


@pytest.fixture
def store():
    s = SqliteKnowledgeStore(":memory:")
    yield s
    s.close()


@pytest.fixture
def ingested_store(store, fpath_test_dir: str):
    """
    In-memory store after one full ingestion of `tests/data/`.
    """
    KnowledgeBaseBuilder(store, fpath_test_dir).run()
    return store
