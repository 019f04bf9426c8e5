"""Pytest configuration and shared fixtures for jspin tests."""

import sys
from pathlib import Path
from typing import Callable

import httpx
import pytest

# Allow running the tests from a checkout without installing the package.
repo_root = Path(__file__).parent.parent
sys.path.insert(0, str(repo_root))

from jspin.core.dependencies import reset_dependencies  # noqa: E402
from jspin.services.provider_client import ProviderClient  # noqa: E402
from jspin.services.resolver import PackageResolver  # noqa: E402

Handler = Callable[[httpx.Request], httpx.Response]


def jspm_map(imports: dict) -> dict:
    """Minimal JSPM generator response body."""
    return {
        "staticDeps": list(imports.values()),
        "dynamicDeps": [],
        "map": {"imports": imports},
    }


def make_provider_client(handler: Handler, **kwargs) -> ProviderClient:
    """ProviderClient wired to an in-memory transport instead of the network."""
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    kwargs.setdefault("retry_delay", 0)
    return ProviderClient(http, **kwargs)


@pytest.fixture
def project_dir(tmp_path):
    """An empty project directory."""
    path = tmp_path / "project"
    path.mkdir()
    return path


@pytest.fixture
def config_path(project_dir):
    return project_dir / "jspin.jsonc"


@pytest.fixture
def import_map_path(project_dir):
    return project_dir / "public" / "importmap.json"


@pytest.fixture
def make_resolver(config_path, import_map_path):
    """Factory building a PackageResolver around a fake provider handler."""

    def _make(handler: Handler, **kwargs) -> PackageResolver:
        return PackageResolver(make_provider_client(handler), config_path, import_map_path, **kwargs)

    return _make


@pytest.fixture(autouse=True)
def _isolated_dependencies(monkeypatch):
    """Keep module-level singletons from leaking between tests."""
    for var in (
        "JSPIN_PROJECT_DIR",
        "JSPIN_CONFIG_PATH",
        "JSPIN_IMPORT_MAP_PATH",
        "JSPIN_PROVIDER",
        "JSPIN_HTTP_TIMEOUT",
        "JSPIN_HTTP_MAX_ATTEMPTS",
    ):
        monkeypatch.delenv(var, raising=False)
    reset_dependencies()
    yield
    reset_dependencies()
