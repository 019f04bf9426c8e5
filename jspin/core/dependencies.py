from pathlib import Path
from typing import Optional
import logging
import os

import httpx

from jspin.domain.models import ResolverSettings, Source
from jspin.services.provider_client import ProviderClient, create_http_client
from jspin.services.resolver import PackageResolver
from jspin.storage.import_map_store import ImportMapStore
from jspin.storage.lock_store import LockStore

logger = logging.getLogger(__name__)

PROJECT_DIR_ENV_VAR = "JSPIN_PROJECT_DIR"
CONFIG_PATH_ENV_VAR = "JSPIN_CONFIG_PATH"
IMPORT_MAP_PATH_ENV_VAR = "JSPIN_IMPORT_MAP_PATH"
PROVIDER_ENV_VAR = "JSPIN_PROVIDER"
HTTP_TIMEOUT_ENV_VAR = "JSPIN_HTTP_TIMEOUT"
HTTP_MAX_ATTEMPTS_ENV_VAR = "JSPIN_HTTP_MAX_ATTEMPTS"

_settings: Optional[ResolverSettings] = None
_http_client: Optional[httpx.AsyncClient] = None
_lock_store: Optional[LockStore] = None
_import_map_store: Optional[ImportMapStore] = None
_resolver: Optional[PackageResolver] = None


def _env_path(name: str) -> Optional[Path]:
    value = os.environ.get(name)
    return Path(value).expanduser() if value else None


def load_settings_from_env() -> ResolverSettings:
    """
    Build settings from environment variables. Unset variables keep the
    model defaults.
    """
    values = {}
    project_dir = _env_path(PROJECT_DIR_ENV_VAR)
    if project_dir:
        values["project_dir"] = project_dir
    config_path = _env_path(CONFIG_PATH_ENV_VAR)
    if config_path:
        values["config_path"] = config_path
    import_map_path = _env_path(IMPORT_MAP_PATH_ENV_VAR)
    if import_map_path:
        values["import_map_path"] = import_map_path

    provider = os.environ.get(PROVIDER_ENV_VAR)
    if provider:
        parsed = Source.parse(provider)
        if isinstance(parsed, Source):
            values["provider"] = parsed
        else:
            logger.warning(f"Ignoring unknown {PROVIDER_ENV_VAR}={provider!r}, using {Source.jspm.value}")

    timeout = os.environ.get(HTTP_TIMEOUT_ENV_VAR)
    if timeout:
        values["http_timeout_seconds"] = float(timeout)
    attempts = os.environ.get(HTTP_MAX_ATTEMPTS_ENV_VAR)
    if attempts:
        values["http_max_attempts"] = int(attempts)

    return ResolverSettings(**values)


def get_settings() -> ResolverSettings:
    global _settings
    if _settings is None:
        _settings = load_settings_from_env()
    return _settings


def get_http_client() -> httpx.AsyncClient:
    global _http_client
    if _http_client is None:
        _http_client = create_http_client(get_settings())
    return _http_client


def get_provider_client() -> ProviderClient:
    settings = get_settings()
    return ProviderClient(get_http_client(), max_attempts=settings.http_max_attempts)


def get_lock_store() -> LockStore:
    global _lock_store
    if _lock_store is None:
        _lock_store = LockStore()
    return _lock_store


def get_import_map_store() -> ImportMapStore:
    global _import_map_store
    if _import_map_store is None:
        _import_map_store = ImportMapStore(get_lock_store().fs)
    return _import_map_store


def get_resolver() -> PackageResolver:
    global _resolver
    if _resolver is None:
        settings = get_settings()
        _resolver = PackageResolver(
            get_provider_client(),
            settings.resolved_config_path(),
            settings.resolved_import_map_path(),
            lock_store=get_lock_store(),
            import_map_store=get_import_map_store(),
        )
    return _resolver


async def close_dependencies() -> None:
    """Close the shared HTTP client; called on application shutdown."""
    global _http_client
    if _http_client is not None:
        await _http_client.aclose()
    reset_dependencies()


def reset_dependencies() -> None:
    """Forget every cached instance so the next call re-reads the environment."""
    global _settings, _http_client, _lock_store, _import_map_store, _resolver
    _settings = None
    _http_client = None
    _lock_store = None
    _import_map_store = None
    _resolver = None
