import sys
from pathlib import Path

import pytest

# Ensure src is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from stub_backend import StubBackend  # noqa: E402
from devai_client.services import BackendService  # noqa: E402


@pytest.fixture
def stub():
    return StubBackend()


@pytest.fixture
async def service(stub):
    async with BackendService(stub.transport_client()) as svc:
        yield svc


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path):
    """Keep DEVAI_* variables and a stray devai_client.yaml out of the tests."""
    for var in ("DEVAI_BACKEND_URL", "DEVAI_API_TIMEOUT", "DEVAI_RETRY_ATTEMPTS",
                "DEVAI_RETRY_DELAY", "DEVAI_BACKOFF_MULTIPLIER"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)
