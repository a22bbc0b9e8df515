from __future__ import annotations

import pytest

from ironflow.config import get_config


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, tmp_path):
    for prefix in ("IRONFLOW_", "GYMBRO_"):
        for name in ("CONFIG", "DATA_DIR", "LOGS_FILE", "BODY_STATS_FILE", "PROFILE_FILE", "RECORDS_FILE", "HISTORY_FILE"):
            monkeypatch.delenv(f"{prefix}{name}", raising=False)
    monkeypatch.setenv("IRONFLOW_DATA_DIR", str(tmp_path / "data"))
    get_config.cache_clear()
    yield
    get_config.cache_clear()
