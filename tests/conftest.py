"""Pytest configuration for repository test runs."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Iterator

import pytest


def pytest_sessionstart() -> None:
    """Add src directory to sys.path for test imports."""
    project_root = Path(__file__).resolve().parent.parent
    src_path = project_root / "src"
    if str(src_path) not in sys.path:
        sys.path.insert(0, str(src_path))


@pytest.fixture
def sqlite_store(tmp_path: Path) -> Iterator[object]:
    """Yield a file-backed SQLite store holding the full target schema."""
    from store.connection import StoreConnection
    from store.schema import metadata

    store = StoreConnection(f"sqlite:///{tmp_path / 'devmine.db'}")
    metadata.create_all(store.engine)
    yield store
    store.dispose()


@pytest.fixture(autouse=True)
def reset_structlog() -> Iterator[None]:
    """Drop logging configuration made by CLI runs so streams do not leak."""
    yield
    import structlog

    structlog.reset_defaults()
