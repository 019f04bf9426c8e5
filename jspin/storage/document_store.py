"""
Shared plumbing for the JSON documents persisted next to a project.

Both the lock store and the import map store:
* Treat a missing file as an empty document.
* Surface every other read, write or decode failure as ``StoreError``.
* Serialize load-modify-save cycles per file with an ``asyncio.Lock``.
"""
from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import ValidationError

from jspin.domain import json_utils
from jspin.domain.errors import StoreError
from jspin.storage.file_system import FileSystem, LocalFileSystem

logger = logging.getLogger(__name__)

# Returned by _read_document for a file that does not exist. A document
# holding the JSON literal null decodes to None and still gets validated.
MISSING = object()


class JsonDocumentStore:
    def __init__(self, fs: Optional[FileSystem] = None):
        self.fs = fs or LocalFileSystem()
        self._locks: Dict[Path, asyncio.Lock] = {}

    @staticmethod
    def absolute(path: Path | str) -> Path:
        return Path(os.path.abspath(Path(path).expanduser()))

    def lock_for(self, path: Path) -> asyncio.Lock:
        """Return the lock guarding writes to ``path`` (created on first use)."""
        path = self.absolute(path)
        lock = self._locks.get(path)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[path] = lock
        return lock

    async def exists(self, path: Path) -> bool:
        return await self.fs.exists(self.absolute(path))

    async def _read_document(self, path: Path) -> Any:
        """
        Read and decode ``path``. Returns ``MISSING`` when the file does not exist.
        """
        try:
            await self.fs.ensure_directory(path.parent)
            data = await self.fs.read_bytes(path)
        except FileNotFoundError:
            logger.debug(f"{path} does not exist yet, using an empty document")
            return MISSING
        except OSError as e:
            raise StoreError(path, e) from e

        try:
            return json_utils.loads(data)
        except (UnicodeDecodeError, ValueError) as e:
            raise StoreError(path, e) from e

    async def _write_document(self, path: Path, document: Any) -> None:
        try:
            data = json_utils.dumps(document)
            await self.fs.ensure_directory(path.parent)
            await self.fs.write_bytes(path, data)
        except OSError as e:
            raise StoreError(path, e) from e
        logger.info(f"Saved {path}")

    async def _delete_document(self, path: Path) -> None:
        try:
            await self.fs.remove(path)
        except OSError as e:
            raise StoreError(path, e) from e
        logger.info(f"Deleted {path}")

    @staticmethod
    def _invalid(path: Path, error: ValidationError) -> StoreError:
        return StoreError(path, error)
