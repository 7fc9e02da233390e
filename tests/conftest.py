from __future__ import annotations

import pytest

from booking_engine.utils.config import get_settings


@pytest.fixture(autouse=True)
def isolated_default_settings(tmp_path, monkeypatch):
    """Point env-derived settings at a per-test database so no test writes into data/."""
    monkeypatch.setenv("DATABASE_PATH", str(tmp_path / "default.db"))
    monkeypatch.setenv("SEED_DEMO_DATA", "false")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
