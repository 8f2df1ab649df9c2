from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Ensure `backend/` is on sys.path so `import hotspot.*` works in tests.
BACKEND_DIR = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(BACKEND_DIR))


def memory_handle(name: str, hash_key: str, range_key: str | None):
    from hotspot.db.dynamodb.memory import MemoryTable

    indexes = {"Timestamp-Index": ("Year", "Timestamp")} if name.endswith("session-logs") else None
    return MemoryTable(name, hash_key=hash_key, range_key=range_key, indexes=indexes)


@pytest.fixture
def memory_tables(monkeypatch):
    """All four entity tables backed by MemoryTable, installed as the process tables."""
    from hotspot.db import tables

    t = tables.build_tables(memory_handle)
    monkeypatch.setattr(tables, "get_tables", lambda: t)
    return t
