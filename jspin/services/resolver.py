"""
Resolution workflow: provider lookup followed by lock and import map updates.

A successful resolution of ``name`` writes ``lock[name]`` and
``import_map.imports[name]`` together. A failed resolution writes nothing.
"""
from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Callable, Dict, Iterable, Optional, Union

from jspin.domain.errors import ResolutionError
from jspin.domain.json_utils import is_absolute_url, is_bare_name
from jspin.domain.models import ImportMap, PackagesLock, PackageUrlInfo, Source
from jspin.services.provider_client import ProviderClient
from jspin.storage.import_map_store import ImportMapStore
from jspin.storage.lock_store import LockStore

logger = logging.getLogger(__name__)


class PackageResolver:
    """
    Coordinates the provider client with the lock store and the import map
    store for one project.
    """

    def __init__(
        self,
        client: ProviderClient,
        config_path: Path,
        import_map_path: Path,
        lock_store: Optional[LockStore] = None,
        import_map_store: Optional[ImportMapStore] = None,
    ):
        self.client = client
        self.config_path = Path(config_path)
        self.import_map_path = Path(import_map_path)
        self.lock_store = lock_store or LockStore()
        self.import_map_store = import_map_store or ImportMapStore(self.lock_store.fs)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_lock(self) -> PackagesLock:
        return await self.lock_store.load(self.config_path)

    async def get_import_map(self) -> ImportMap:
        return await self.import_map_store.load(self.import_map_path)

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    async def resolve(self, name: str, provider: Union[Source, str] = Source.jspm) -> PackageUrlInfo:
        """
        Resolve ``name`` and record it in both the lock and the import map.

        Resolution errors propagate before either document is touched.
        """
        _require_bare_name(name)
        info = await self.client.resolve(name, provider)
        await self._commit({name: info})
        return info

    async def resolve_many(
        self,
        names: Iterable[str],
        provider: Union[Source, str] = Source.jspm,
    ) -> Dict[str, Union[PackageUrlInfo, ResolutionError]]:
        """
        Resolve several packages concurrently, then record every successful
        result in a single write of each document.
        """
        names = list(names)
        for name in names:
            _require_bare_name(name)

        outcome = await self.client.resolve_many(names, provider)
        resolved = {name: r for name, r in outcome.items() if isinstance(r, PackageUrlInfo)}
        for name, result in outcome.items():
            if isinstance(result, ResolutionError):
                logger.warning(f"Could not resolve {name}: {result}")

        if resolved:
            await self._commit(resolved)
        return outcome

    async def remove(self, name: str) -> bool:
        """
        Drop ``name`` from the lock and from the import map's ``imports``.
        Returns False when neither document knew the package.
        """
        removed = False

        def drop_from_lock(lock: PackagesLock) -> None:
            nonlocal removed
            removed = lock.pop(name, None) is not None or removed

        def drop_from_map(import_map: ImportMap) -> None:
            nonlocal removed
            removed = import_map.imports.pop(name, None) is not None or removed

        await self._transaction(drop_from_lock, drop_from_map)
        if removed:
            logger.info(f"Removed {name}")
        return removed

    async def restore(self) -> ImportMap:
        """
        Rewrite the import map's ``imports`` from the lock file without any
        network access. Specifiers that are not in the lock and all scopes
        are kept.
        """
        lock_path = self.lock_store.lock_path(self.config_path)
        async with self.lock_store.lock_for(lock_path), self.import_map_store.lock_for(self.import_map_path):
            lock = await self.lock_store.load(self.config_path)
            import_map = await self.import_map_store.load(self.import_map_path)
            for name, info in lock.items():
                import_map.imports[name] = info.import_url
            await self.import_map_store.save(self.import_map_path, import_map)
        logger.info(f"Restored {len(lock)} imports from {lock_path}")
        return import_map

    async def add_scope(self, scope: str, specifier: str, url: str) -> ImportMap:
        """Add or replace a scoped override in the import map."""
        if not is_absolute_url(url):
            raise ValueError(f"Scoped import for '{specifier}' must be an absolute URL, got {url!r}")

        def set_scope(import_map: ImportMap) -> None:
            import_map.scopes.setdefault(scope, {})[specifier] = url

        return await self.import_map_store.update(self.import_map_path, set_scope)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def _commit(self, resolved: Dict[str, PackageUrlInfo]) -> None:
        def upsert_lock(lock: PackagesLock) -> None:
            lock.update(resolved)

        def upsert_imports(import_map: ImportMap) -> None:
            for name, info in resolved.items():
                import_map.imports[name] = info.import_url

        await self._transaction(upsert_lock, upsert_imports)

    async def _transaction(
        self,
        mutate_lock: Callable[[PackagesLock], None],
        mutate_map: Callable[[ImportMap], None],
    ) -> None:
        """
        Apply one change to both documents as a unit.

        Both files are read before either is written, so a corrupt document
        aborts without writes. Nothing is written when the change is a no-op.
        If the import map write fails or is cancelled, the lock file is put
        back the way it was, including not existing at all.
        """
        lock_path = self.lock_store.lock_path(self.config_path)
        # Always acquire in the same order: lock file, then import map.
        async with self.lock_store.lock_for(lock_path), self.import_map_store.lock_for(self.import_map_path):
            lock_existed = await self.lock_store.exists(lock_path)
            lock = await self.lock_store.load(self.config_path)
            import_map = await self.import_map_store.load(self.import_map_path)
            previous = dict(lock)
            previous_map = import_map.model_copy(deep=True)

            mutate_lock(lock)
            mutate_map(import_map)
            if lock == previous and import_map == previous_map:
                return

            await self.lock_store.save(self.config_path, lock)
            try:
                await self.import_map_store.save(self.import_map_path, import_map)
            except BaseException:
                logger.error(f"Writing {self.import_map_path} did not complete, restoring {lock_path}")
                await self._rollback_lock(previous if lock_existed else None)
                raise

    async def _rollback_lock(self, previous: Optional[PackagesLock]) -> None:
        """
        Put the lock file back: rewrite ``previous``, or delete the file when
        there was none. Runs shielded so a cancelled caller still rolls back.
        Failures are logged; the caller re-raises the error that caused the
        rollback.
        """
        if previous is None:
            restore = self.lock_store.delete(self.config_path)
        else:
            restore = self.lock_store.save(self.config_path, previous)
        try:
            await asyncio.shield(restore)
        except asyncio.CancelledError:
            # Cancelled again; the shielded restore keeps running on its own.
            logger.warning(f"Still restoring {self.lock_store.lock_path(self.config_path)} in the background")
        except Exception as e:
            logger.error(f"Could not restore {self.lock_store.lock_path(self.config_path)}: {e}")


def _require_bare_name(name: str) -> None:
    if not is_bare_name(name):
        raise ValueError(f"'{name}' is not a bare package name")


if __name__ == "__main__":
    import argparse
    import sys

    from jspin.core.dependencies import get_settings
    from jspin.services.provider_client import create_http_client

    parser = argparse.ArgumentParser(description="Resolve packages into the project's lock file and import map.")
    parser.add_argument("names", nargs="+", help="Bare package names, e.g. react lodash")
    parser.add_argument("--provider", default=None, help="skypack, jspm, jsdelivr or unpkg")
    args = parser.parse_args()

    settings = get_settings()
    provider = args.provider or settings.provider

    async def _run() -> int:
        async with create_http_client(settings) as http:
            client = ProviderClient(http, max_attempts=settings.http_max_attempts)
            resolver = PackageResolver(
                client,
                settings.resolved_config_path(),
                settings.resolved_import_map_path(),
            )
            outcome = await resolver.resolve_many(args.names, provider)
        failed = 0
        for name, result in outcome.items():
            if isinstance(result, PackageUrlInfo):
                print(f"{name} -> {result.import_url}")
            else:
                print(f"{name}: {result}")
                failed += 1
        return 1 if failed else 0

    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    sys.exit(asyncio.run(_run()))
