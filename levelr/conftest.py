# levelr/conftest.py
import os

import pytest

# Keep the module-level app deterministic regardless of the developer's shell
os.environ.setdefault("ENV", "development")


@pytest.fixture(autouse=True)
def reset_metrics():
    from levelr.core.metrics import METRICS
    METRICS.reset()
    yield
    METRICS.reset()


@pytest.fixture
def make_settings():
    """Build an isolated Settings instance (no .env file)."""
    from levelr.core.config import Settings

    def _make(**overrides):
        values = {"ENV": "development"}
        values.update(overrides)
        return Settings(_env_file=None, **values)

    return _make


@pytest.fixture
def fake_kv():
    from levelr.tests.mocks import FakeRedis
    return FakeRedis()


@pytest.fixture
def directory():
    from levelr.tests.mocks import FakeDirectory
    return FakeDirectory()


@pytest.fixture
def fake_llm():
    from levelr.tests.mocks import FakeLLM
    return FakeLLM()


@pytest.fixture
def build_client(make_settings, fake_kv, directory, fake_llm):
    """TestClient factory over create_app() with fakes wired in."""
    from fastapi.testclient import TestClient
    from levelr.main import create_app

    def _build(settings_overrides=None, **services):
        cfg = make_settings(**(settings_overrides or {}))
        services.setdefault("kv_client", fake_kv)
        services.setdefault("directory", directory)
        services.setdefault("llm", fake_llm)
        app = create_app(cfg, **services)
        return TestClient(app, raise_server_exceptions=False)

    return _build


@pytest.fixture
def sample_analysis_payload():
    return {
        "contractor_name": "Apex Builders",
        "total_amount": 1250000,
        "project_name": "Riverside Clinic",
        "csi_divisions": {
            "03": {"cost": 310000, "items": [{"description": "Cast-in-place concrete", "cost": 310000}]},
            "05": {"cost": 180000, "items": []},
            "09": {"cost": 95000, "items": []},
        },
        "exclusions": ["Permits", "Testing"],
    }
