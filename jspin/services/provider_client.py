"""
Client for the CDN providers that turn a bare package name into import URLs.

Two resolution strategies exist because the providers expose resolution
differently:
- Skypack answers ``GET /{name}`` and reports the URLs in response headers.
- The JSPM generator returns a generated import map in the response body.
  jsDelivr and unpkg are reached through the same generator via its
  ``provider`` query parameter.

Both strategies return the same ``PackageUrlInfo`` so nothing downstream
needs to know which provider was used.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Dict, Iterable, Optional, Union

import httpx
from pydantic import ValidationError

from jspin.domain.errors import (
    LookupKeyMissing,
    PackageNotFound,
    ResolutionError,
    TransportFailure,
)
from jspin.domain.models import JspmResponse, PackageUrlInfo, ResolverSettings, Source

logger = logging.getLogger(__name__)

SKYPACK_CDN = "https://cdn.skypack.dev"
JSPM_API = "https://api.jspm.io/generate"

PINNED_URL_HEADER = "x-pinned-url"
IMPORT_URL_HEADER = "x-import-url"

_JSPM_PROVIDERS: Dict[Source, str] = {
    Source.jspm: "jspm",
    Source.jsdelivr: "jsdelivr",
    Source.unpkg: "unpkg",
}


def jspm_provider_param(provider: Union[Source, str]) -> str:
    """
    Map a provider to the generator's ``provider`` query value.
    Unknown values fall back to ``jspm``.
    """
    parsed = Source.parse(provider)
    if isinstance(parsed, Source) and parsed in _JSPM_PROVIDERS:
        return _JSPM_PROVIDERS[parsed]
    logger.warning(f"An unknown provider has been specified: [{provider}] defaulting to jspm")
    return "jspm"


def create_http_client(settings: Optional[ResolverSettings] = None) -> httpx.AsyncClient:
    """
    Build the AsyncClient used for provider requests with an explicit timeout.
    """
    settings = settings or ResolverSettings()
    return httpx.AsyncClient(
        follow_redirects=True,
        timeout=settings.http_timeout_seconds,
        headers={"accept": "application/json, application/javascript;q=0.9, */*;q=0.8"},
    )


class ProviderClient:
    """
    Resolves package names against the CDN providers.

    The client owns no mutable state besides the injected ``httpx.AsyncClient``,
    so any number of resolutions may run concurrently.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        skypack_cdn: str = SKYPACK_CDN,
        jspm_api: str = JSPM_API,
        max_attempts: int = 3,
        retry_delay: float = 0.5,
    ):
        self.http = http
        self.skypack_cdn = skypack_cdn.rstrip("/")
        self.jspm_api = jspm_api
        self.max_attempts = max(1, max_attempts)
        self.retry_delay = retry_delay

    async def resolve(self, name: str, provider: Union[Source, str] = Source.jspm) -> PackageUrlInfo:
        """
        Resolve ``name`` using ``provider``.

        Raises:
            PackageNotFound: the provider answered with HTTP status >= 400.
            LookupKeyMissing: the JSPM generator answered without an entry for ``name``.
            TransportFailure: the request could not be completed.
        """
        if Source.parse(provider) == Source.skypack:
            info = await self._resolve_skypack(name)
        else:
            info = await self._resolve_jspm(name, provider)
        logger.info(f"Resolved {name} via {provider_label(provider)}: {info.import_url}")
        return info

    async def resolve_many(
        self,
        names: Iterable[str],
        provider: Union[Source, str] = Source.jspm,
    ) -> Dict[str, Union[PackageUrlInfo, ResolutionError]]:
        """
        Resolve several names concurrently.

        Each name maps to its ``PackageUrlInfo`` or the ``ResolutionError`` it
        raised; other exceptions propagate.
        """
        unique = list(dict.fromkeys(names))
        results = await asyncio.gather(
            *(self.resolve(name, provider) for name in unique),
            return_exceptions=True,
        )
        outcome: Dict[str, Union[PackageUrlInfo, ResolutionError]] = {}
        for name, result in zip(unique, results):
            if isinstance(result, BaseException) and not isinstance(result, ResolutionError):
                raise result
            outcome[name] = result
        return outcome

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------

    async def _resolve_skypack(self, name: str) -> PackageUrlInfo:
        url = f"{self.skypack_cdn}/{name}"
        response = await self._get(url, name, Source.skypack.value)

        if response.status_code >= 400:
            raise PackageNotFound(name, Source.skypack.value, response.status_code)

        # Header values are root-relative paths such as "/-/lodash@v4.17.21-.../mode=imports/optimized/lodash.js".
        pinned = response.headers.get(PINNED_URL_HEADER)
        imported = response.headers.get(IMPORT_URL_HEADER)

        try:
            return PackageUrlInfo(
                look_up=name,
                pin=self._skypack_url(pinned, name),
                import_url=self._skypack_url(imported, name),
            )
        except ValidationError as e:
            raise ResolutionError(f"Skypack returned unusable URLs for '{name}': {e}", name, "skypack") from e

    def _skypack_url(self, header_value: Optional[str], name: str) -> str:
        path = header_value or f"/{name}"
        if not path.startswith("/"):
            path = "/" + path
        return f"{self.skypack_cdn}{path}"

    async def _resolve_jspm(self, name: str, provider: Union[Source, str]) -> PackageUrlInfo:
        provider_value = jspm_provider_param(provider)
        params = {
            "install": [f"npm:{name}"],
            "env": "browser",
            "provider": provider_value,
        }
        response = await self._get(self.jspm_api, name, provider_value, params=params)

        if response.status_code >= 400:
            raise PackageNotFound(name, provider_value, response.status_code)

        try:
            payload = JspmResponse.model_validate(response.json())
        except ValueError as e:
            # json.JSONDecodeError and pydantic.ValidationError are both ValueErrors.
            raise ResolutionError(
                f"Unexpected response from {self.jspm_api} for '{name}': {e}",
                name,
                provider_value,
            ) from e

        imports = payload.map.imports
        if name not in imports:
            raise LookupKeyMissing(name, provider_value, imports.keys())

        resolved = imports[name]
        try:
            return PackageUrlInfo(look_up=name, pin=resolved, import_url=resolved)
        except ValidationError as e:
            raise ResolutionError(f"{provider_value} returned an unusable URL for '{name}': {e}", name, provider_value) from e

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _get(
        self,
        url: str,
        name: str,
        provider: str,
        params: Optional[dict] = None,
    ) -> httpx.Response:
        """
        GET with a small retry budget for transport failures. Responses with
        error statuses are returned as-is and never retried.
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                logger.debug(f"GET {url} params={params}")
                return await self.http.get(url, params=params)
            except httpx.TransportError as e:
                if attempt >= self.max_attempts:
                    raise TransportFailure(f"Request to {url} failed: {e!r}", name, provider) from e
                logger.warning(
                    f"Request to {url} failed (attempt {attempt}/{self.max_attempts}): {e!r}. Retrying..."
                )
                await asyncio.sleep(self.retry_delay * attempt)
            except httpx.HTTPError as e:
                raise TransportFailure(f"Request to {url} failed: {e!r}", name, provider) from e


def provider_label(provider: Union[Source, str]) -> str:
    parsed = Source.parse(provider)
    return parsed.value if isinstance(parsed, Source) else str(parsed)
