from __future__ import annotations

from typing import Dict
import logging

from fastapi import APIRouter, Depends, HTTPException, Response, status
from fastapi.responses import JSONResponse

from jspin.core.dependencies import get_resolver, get_settings
from jspin.domain.errors import LookupKeyMissing, PackageNotFound, ResolutionError, StoreError
from jspin.domain.models import ResolveRequest, ResolverSettings, ScopeRequest
from jspin.services.resolver import PackageResolver

logger = logging.getLogger(__name__)
router = APIRouter()


def _store_failure(e: StoreError) -> HTTPException:
    logger.error(f"Store failure: {e}")
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))


# ---------------------------------------------------------------------------
# Import map (consumed by the browser)
# ---------------------------------------------------------------------------

@router.get("/importmap.json")
async def get_import_map(resolver: PackageResolver = Depends(get_resolver)) -> Response:
    """
    Serve the current import map with the media type browsers expect.
    """
    try:
        import_map = await resolver.get_import_map()
    except StoreError as e:
        raise _store_failure(e)
    return JSONResponse(
        content=import_map.model_dump(exclude_none=True),
        media_type="application/importmap+json",
    )


@router.put("/importmap/scopes")
async def put_scope(body: ScopeRequest, resolver: PackageResolver = Depends(get_resolver)) -> dict:
    try:
        import_map = await resolver.add_scope(body.scope, body.specifier, body.url)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except StoreError as e:
        raise _store_failure(e)
    return import_map.model_dump(exclude_none=True)


# ---------------------------------------------------------------------------
# Lock file
# ---------------------------------------------------------------------------

@router.get("/packages")
async def list_packages(resolver: PackageResolver = Depends(get_resolver)) -> Dict[str, dict]:
    try:
        lock = await resolver.get_lock()
    except StoreError as e:
        raise _store_failure(e)
    return {name: info.model_dump(by_alias=True) for name, info in sorted(lock.items())}


@router.post("/packages")
async def add_package(
    body: ResolveRequest,
    resolver: PackageResolver = Depends(get_resolver),
    settings: ResolverSettings = Depends(get_settings),
) -> dict:
    """
    Resolve a package and record it in the lock file and import map.

    404 when the provider does not know the package, 502 when the provider
    answered with something unusable or could not be reached.
    """
    provider = body.provider or settings.provider
    try:
        info = await resolver.resolve(body.name, provider)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except PackageNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except LookupKeyMissing as e:
        logger.error(str(e))
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))
    except ResolutionError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))
    except StoreError as e:
        raise _store_failure(e)
    return info.model_dump(by_alias=True)


@router.post("/packages/restore")
async def restore_packages(resolver: PackageResolver = Depends(get_resolver)) -> dict:
    """
    Rebuild the import map from the lock file without contacting any provider.
    """
    try:
        import_map = await resolver.restore()
    except StoreError as e:
        raise _store_failure(e)
    return import_map.model_dump(exclude_none=True)


@router.delete("/packages/{name:path}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_package(name: str, resolver: PackageResolver = Depends(get_resolver)) -> Response:
    # Removing a package that is not installed is a no-op, not an error.
    try:
        await resolver.remove(name)
    except StoreError as e:
        raise _store_failure(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
