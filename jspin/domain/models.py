"""
Pydantic models for package resolution.

This module defines the data models shared by the provider client, the
lock store and the import map store:
- Provider selection (``Source``)
- The canonical resolution record (``PackageUrlInfo``)
- The persisted documents (``PackagesLock`` and ``ImportMap``)
- Provider response schemas and runtime settings

All models use Pydantic for validation, serialization, and type safety.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from jspin.domain.json_utils import is_absolute_url


DEFAULT_CONFIG_NAME = "jspin.jsonc"
DEFAULT_IMPORT_MAP_NAME = "importmap.json"


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------


class Source(str, Enum):
    """
    CDN providers capable of resolving a bare package name.

    ``jsdelivr`` and ``unpkg`` are only forwarded to the JSPM generator as its
    ``provider`` query parameter; they are not separate backends.
    """

    skypack = "skypack"
    jspm = "jspm"
    jsdelivr = "jsdelivr"
    unpkg = "unpkg"

    @classmethod
    def parse(cls, value: "Source | str") -> "Source | str":
        """
        Case-insensitive lookup. Unknown values are returned unchanged so the
        provider client can decide how to handle them.
        """
        if isinstance(value, Source):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return value


# ---------------------------------------------------------------------------
# Resolution Records
# ---------------------------------------------------------------------------


class PackageUrlInfo(BaseModel):
    """
    Canonical result of resolving one package.

    Persisted in the lock file as ``{"lookUp": ..., "pin": ..., "import": ...}``.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    look_up: str = Field(
        alias="lookUp",
        description="The package name exactly as it was requested.",
    )
    pin: str = Field(
        description="Canonical, usually version-qualified URL of the package.",
    )
    import_url: str = Field(
        alias="import",
        description="URL placed in the import map for this package.",
    )

    @field_validator("pin", "import_url")
    @classmethod
    def _require_absolute_url(cls, value: str) -> str:
        if not is_absolute_url(value):
            raise ValueError(f"expected an absolute URL, got {value!r}")
        return value


# Mapping of bare package name -> last resolution.
PackagesLock = Dict[str, PackageUrlInfo]

packages_lock_adapter: TypeAdapter[PackagesLock] = TypeAdapter(PackagesLock)


class ImportMap(BaseModel):
    """
    Browser import map (https://github.com/WICG/import-maps).

    ``imports`` maps bare specifiers to URLs; ``scopes`` maps a scope path to
    its own specifier table that overrides ``imports`` for modules under it.
    """

    imports: Dict[str, str] = Field(default_factory=dict)
    scopes: Dict[str, Dict[str, str]] = Field(default_factory=dict)

    @field_validator("imports", "scopes", mode="before")
    @classmethod
    def _null_as_empty(cls, value):
        # Hand-edited files sometimes carry "scopes": null.
        return {} if value is None else value


# ---------------------------------------------------------------------------
# Provider Response Schemas
# ---------------------------------------------------------------------------


class JspmGeneratedMap(BaseModel):
    """The ``map`` object of a JSPM generator response."""

    model_config = ConfigDict(extra="ignore")

    imports: Dict[str, str] = Field(default_factory=dict)
    scopes: Dict[str, Dict[str, str]] = Field(default_factory=dict)


class JspmResponse(BaseModel):
    """
    Response body of ``GET https://api.jspm.io/generate``.

    Only ``map.imports`` is used. Unknown fields (``staticDeps``,
    ``dynamicDeps`` ...) are ignored and a missing ``map`` decodes as empty.
    """

    model_config = ConfigDict(extra="ignore")

    map: JspmGeneratedMap = Field(default_factory=JspmGeneratedMap)


# ---------------------------------------------------------------------------
# API Request Models
# ---------------------------------------------------------------------------


class ResolveRequest(BaseModel):
    """Body of ``POST /packages``."""

    name: str = Field(min_length=1, description="Bare package name, e.g. 'react'.")
    provider: Optional[Source] = Field(
        default=None,
        description="Provider to resolve against. Defaults to the configured provider.",
    )


class ScopeRequest(BaseModel):
    """Body of ``PUT /importmap/scopes``."""

    scope: str = Field(min_length=1, description="Scope path, e.g. '/vendor/'.")
    specifier: str = Field(min_length=1)
    url: str = Field(min_length=1)


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


class ResolverSettings(BaseModel):
    """
    Runtime configuration, populated from environment variables by
    ``jspin.core.dependencies.get_settings``.
    """

    project_dir: Path = Field(
        default_factory=Path.cwd,
        description="Directory holding the project configuration file.",
    )
    config_path: Optional[Path] = Field(
        default=None,
        description="Project configuration file. The lock file is written next to it as '<config>.lock'.",
    )
    import_map_path: Optional[Path] = Field(
        default=None,
        description="Where the browser import map is persisted.",
    )
    provider: Source = Field(
        default=Source.jspm,
        description="Provider used when a request does not name one.",
    )
    http_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Timeout applied to every outbound provider request.",
    )
    http_max_attempts: int = Field(
        default=3,
        ge=1,
        description="Attempts per request for transport-level failures. HTTP errors are never retried.",
    )

    def resolved_config_path(self) -> Path:
        return self.config_path or self.project_dir / DEFAULT_CONFIG_NAME

    def resolved_import_map_path(self) -> Path:
        return self.import_map_path or self.project_dir / DEFAULT_IMPORT_MAP_NAME
