"""
Persistence of the package lock file.

The lock lives next to the project configuration file as ``<config>.lock``
and maps each bare package name to its last resolution::

    {
      "react": {
        "lookUp": "react",
        "pin": "https://ga.jspm.io/npm:react@18.2.0/index.js",
        "import": "https://ga.jspm.io/npm:react@18.2.0/index.js"
      }
    }
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Dict

from pydantic import ValidationError

from jspin.domain.errors import StoreError
from jspin.domain.json_utils import is_bare_name
from jspin.domain.models import PackagesLock, packages_lock_adapter
from jspin.storage.document_store import MISSING, JsonDocumentStore

logger = logging.getLogger(__name__)

LOCK_SUFFIX = ".lock"


class LockStore(JsonDocumentStore):
    """Loads and saves ``PackagesLock`` documents."""

    def lock_path(self, config_path: Path | str) -> Path:
        config_path = self.absolute(config_path)
        return config_path.with_name(config_path.name + LOCK_SUFFIX)

    async def load(self, config_path: Path | str) -> PackagesLock:
        """
        Load the lock belonging to ``config_path``.

        A missing lock file yields an empty mapping.
        """
        path = self.lock_path(config_path)
        raw = await self._read_document(path)
        if raw is MISSING:
            return {}
        try:
            return packages_lock_adapter.validate_python(raw)
        except ValidationError as e:
            raise self._invalid(path, e) from e

    async def save(self, config_path: Path | str, lock: PackagesLock) -> None:
        """
        Overwrite the lock file with ``lock``. There is no merging; callers
        pass the complete mapping.
        """
        path = self.lock_path(config_path)
        for name in lock:
            if not is_bare_name(name):
                raise StoreError(path, ValueError(f"lock keys must be bare package names, got {name!r}"))
        document: Dict[str, dict] = {
            name: info.model_dump(by_alias=True, exclude_none=True) for name, info in lock.items()
        }
        await self._write_document(path, document)

    async def delete(self, config_path: Path | str) -> None:
        """Remove the lock file; a lock that does not exist is left alone."""
        await self._delete_document(self.lock_path(config_path))

    async def update(
        self,
        config_path: Path | str,
        mutate: Callable[[PackagesLock], None],
    ) -> PackagesLock:
        """
        Run one serialized load-modify-save cycle and return the saved lock.
        """
        async with self.lock_for(self.lock_path(config_path)):
            lock = await self.load(config_path)
            mutate(lock)
            await self.save(config_path, lock)
            return lock
