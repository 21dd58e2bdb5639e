import pytest

from chainrelay.config import reset_settings


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch: pytest.MonkeyPatch, tmp_path):
    """Keep tests independent of the developer's environment and .env file."""
    for name in ("ADMIN_TOKEN", "MCP_AUTH_TOKEN", "RPC_URLS", "TRANSPORT"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def tmp_data_dir(tmp_path):
    """Provide a temporary data directory for tests that touch the filesystem."""
    return tmp_path / "data"
