"""
Tests for ProviderClient.

The network is replaced with httpx.MockTransport; each test inspects the
outgoing request and controls the provider's answer.
"""

import logging

import httpx
import pytest

from conftest import jspm_map, make_provider_client
from jspin.domain.errors import (
    LookupKeyMissing,
    PackageNotFound,
    ResolutionError,
    TransportFailure,
)
from jspin.domain.models import PackageUrlInfo, Source
from jspin.services.provider_client import SKYPACK_CDN, jspm_provider_param


class TestSkypack:
    """Header-based resolution against cdn.skypack.dev."""

    @pytest.mark.asyncio
    async def test_pinned_header_without_import_header(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, headers={"x-pinned-url": "/pin/a"}, text="export * from '/pin/a';")

        client = make_provider_client(handler)
        info = await client.resolve("lodash", Source.skypack)

        assert str(seen[0].url) == f"{SKYPACK_CDN}/lodash"
        assert seen[0].method == "GET"
        assert info == PackageUrlInfo(
            look_up="lodash",
            pin=f"{SKYPACK_CDN}/pin/a",
            import_url=f"{SKYPACK_CDN}/lodash",
        )

    @pytest.mark.asyncio
    async def test_both_headers(self):
        def handler(request):
            return httpx.Response(
                200,
                headers={
                    "x-pinned-url": "/pin/react@v18.2.0-abc/mode=imports/optimized/react.js",
                    "x-import-url": "/-/react@v18.2.0-abc/dist=es2019,mode=imports/optimized/react.js",
                },
            )

        info = await make_provider_client(handler).resolve("react", Source.skypack)

        assert info.look_up == "react"
        assert info.pin == f"{SKYPACK_CDN}/pin/react@v18.2.0-abc/mode=imports/optimized/react.js"
        assert info.import_url == f"{SKYPACK_CDN}/-/react@v18.2.0-abc/dist=es2019,mode=imports/optimized/react.js"

    @pytest.mark.asyncio
    async def test_no_headers_falls_back_to_name(self):
        info = await make_provider_client(lambda r: httpx.Response(200)).resolve("preact", Source.skypack)
        assert info.pin == info.import_url == f"{SKYPACK_CDN}/preact"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [400, 404, 500, 503])
    async def test_error_status_is_package_not_found(self, status):
        client = make_provider_client(lambda r: httpx.Response(status))

        with pytest.raises(PackageNotFound) as exc_info:
            await client.resolve("does-not-exist", Source.skypack)

        assert exc_info.value.status_code == status
        assert exc_info.value.name == "does-not-exist"
        assert exc_info.value.provider == "skypack"

    @pytest.mark.asyncio
    async def test_provider_given_as_string(self):
        seen = []

        def handler(request):
            seen.append(request.url.host)
            return httpx.Response(200)

        await make_provider_client(handler).resolve("preact", "Skypack")
        assert seen == ["cdn.skypack.dev"]


class TestJspm:
    """Payload-based resolution against the JSPM generator."""

    @pytest.mark.asyncio
    async def test_jsdelivr_request_and_result(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json=jspm_map({"left-pad": "https://cdn.example/left-pad.js"}))

        info = await make_provider_client(handler).resolve("left-pad", Source.jsdelivr)

        request = seen[0]
        assert request.url.host == "api.jspm.io"
        assert request.url.path == "/generate"
        assert request.url.params.get_list("install") == ["npm:left-pad"]
        assert request.url.params["env"] == "browser"
        assert request.url.params["provider"] == "jsdelivr"
        assert info.look_up == "left-pad"
        assert info.pin == info.import_url == "https://cdn.example/left-pad.js"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "provider,expected",
        [(Source.jspm, "jspm"), (Source.jsdelivr, "jsdelivr"), (Source.unpkg, "unpkg"), ("UNPKG", "unpkg")],
    )
    async def test_provider_query_parameter(self, provider, expected):
        seen = []

        def handler(request):
            seen.append(request.url.params["provider"])
            return httpx.Response(200, json=jspm_map({"vue": "https://ga.jspm.io/npm:vue@3.3.4/index.js"}))

        await make_provider_client(handler).resolve("vue", provider)
        assert seen == [expected]

    @pytest.mark.asyncio
    async def test_unknown_provider_defaults_to_jspm_with_warning(self, caplog):
        seen = []

        def handler(request):
            seen.append(request.url.params["provider"])
            return httpx.Response(200, json=jspm_map({"vue": "https://ga.jspm.io/npm:vue@3.3.4/index.js"}))

        with caplog.at_level(logging.WARNING, logger="jspin.services.provider_client"):
            await make_provider_client(handler).resolve("vue", "esm.sh")

        assert seen == ["jspm"]
        assert "unknown provider" in caplog.text
        assert "esm.sh" in caplog.text

    @pytest.mark.asyncio
    async def test_missing_key_is_lookup_key_missing(self):
        client = make_provider_client(
            lambda r: httpx.Response(200, json=jspm_map({"other": "https://ga.jspm.io/npm:other@1.0.0/index.js"}))
        )

        with pytest.raises(LookupKeyMissing) as exc_info:
            await client.resolve("left-pad", Source.jspm)

        assert not isinstance(exc_info.value, PackageNotFound)
        assert exc_info.value.available == ["other"]

    @pytest.mark.asyncio
    async def test_missing_map_is_lookup_key_missing(self):
        client = make_provider_client(lambda r: httpx.Response(200, json={"staticDeps": []}))

        with pytest.raises(LookupKeyMissing):
            await client.resolve("left-pad", Source.jspm)

    @pytest.mark.asyncio
    async def test_unknown_fields_are_ignored(self):
        body = jspm_map({"react": "https://ga.jspm.io/npm:react@18.2.0/index.js"})
        body["map"]["scopes"] = {"https://ga.jspm.io/": {"scheduler": "https://ga.jspm.io/npm:scheduler@0.23.0/index.js"}}
        body["map"]["integrity"] = {"x": "sha384-..."}

        info = await make_provider_client(lambda r: httpx.Response(200, json=body)).resolve("react")
        assert info.import_url == "https://ga.jspm.io/npm:react@18.2.0/index.js"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [400, 404, 500])
    async def test_error_status_is_package_not_found(self, status):
        client = make_provider_client(lambda r: httpx.Response(status, json={"error": "Unable to resolve"}))

        with pytest.raises(PackageNotFound) as exc_info:
            await client.resolve("nope", Source.unpkg)

        assert exc_info.value.status_code == status
        assert exc_info.value.provider == "unpkg"

    @pytest.mark.asyncio
    async def test_non_json_body_is_resolution_error(self):
        client = make_provider_client(lambda r: httpx.Response(200, text="<html>gateway</html>"))

        with pytest.raises(ResolutionError) as exc_info:
            await client.resolve("react", Source.jspm)

        assert not isinstance(exc_info.value, (LookupKeyMissing, PackageNotFound))

    @pytest.mark.asyncio
    async def test_relative_url_in_response_is_rejected(self):
        client = make_provider_client(lambda r: httpx.Response(200, json=jspm_map({"react": "/react.js"})))

        with pytest.raises(ResolutionError):
            await client.resolve("react", Source.jspm)


class TestTransport:
    @pytest.mark.asyncio
    async def test_transport_errors_are_retried_then_surface(self):
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ConnectError("connection refused", request=request)

        client = make_provider_client(handler, max_attempts=3)

        with pytest.raises(TransportFailure) as exc_info:
            await client.resolve("react", Source.jspm)

        assert len(calls) == 3
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)

    @pytest.mark.asyncio
    async def test_transport_error_recovers_on_retry(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) == 1:
                raise httpx.ReadTimeout("timed out", request=request)
            return httpx.Response(200, headers={"x-import-url": "/react.js"})

        info = await make_provider_client(handler, max_attempts=2).resolve("react", Source.skypack)

        assert len(calls) == 2
        assert info.import_url == f"{SKYPACK_CDN}/react.js"

    @pytest.mark.asyncio
    async def test_http_errors_are_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(503)

        with pytest.raises(PackageNotFound):
            await make_provider_client(handler, max_attempts=5).resolve("react", Source.skypack)

        assert len(calls) == 1


class TestDeterminismAndBatch:
    @pytest.mark.asyncio
    async def test_same_answer_gives_same_info(self):
        client = make_provider_client(
            lambda r: httpx.Response(200, json=jspm_map({"react": "https://ga.jspm.io/npm:react@18.2.0/index.js"}))
        )

        first = await client.resolve("react", Source.jspm)
        second = await client.resolve("react", Source.jspm)

        assert first == second

    @pytest.mark.asyncio
    async def test_resolve_many_reports_each_name(self):
        def handler(request):
            name = request.url.params["install"].removeprefix("npm:")
            if name == "missing":
                return httpx.Response(404)
            return httpx.Response(200, json=jspm_map({name: f"https://ga.jspm.io/npm:{name}@1.0.0/index.js"}))

        outcome = await make_provider_client(handler).resolve_many(["a", "missing", "b", "a"], Source.jspm)

        assert list(outcome) == ["a", "missing", "b"]
        assert outcome["a"].import_url == "https://ga.jspm.io/npm:a@1.0.0/index.js"
        assert isinstance(outcome["missing"], PackageNotFound)


def test_jspm_provider_param_mapping():
    assert jspm_provider_param(Source.jsdelivr) == "jsdelivr"
    assert jspm_provider_param("jspm") == "jspm"
    assert jspm_provider_param("nonsense") == "jspm"
