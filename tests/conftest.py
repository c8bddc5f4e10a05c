from datetime import datetime, timedelta, timezone
from pathlib import Path
import sys

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import database


@pytest.fixture(autouse=True)
def temp_db(tmp_path, monkeypatch):
    """Point the store at a fresh SQLite file for every test."""
    db_path = tmp_path / "readings.db"
    monkeypatch.setattr(database, "DATABASE_PATH", str(db_path))
    monkeypatch.setattr(database, "_schema_ready", False)
    return db_path


@pytest.fixture
def hour():
    """Bucket factory relative to a fixed reference hour."""
    base = datetime(2026, 10, 17, 7, 0, tzinfo=timezone.utc)

    def _hour(offset: int = 0) -> datetime:
        return base + timedelta(hours=offset)

    return _hour
