import pytest

from core.config import AnalysisPreferences


@pytest.fixture
def preferences() -> AnalysisPreferences:
    return AnalysisPreferences()


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch, tmp_path):
    """Keep tests away from any real .env or config.yaml."""
    monkeypatch.chdir(tmp_path)
    for name in ("MAPS_API_KEY", "APP_CONFIG_PATH", "TIMEZONE", "LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
