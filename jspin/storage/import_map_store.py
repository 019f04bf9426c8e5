from __future__ import annotations

from pathlib import Path
from typing import Callable

from pydantic import ValidationError

from jspin.domain.models import ImportMap
from jspin.storage.document_store import MISSING, JsonDocumentStore


class ImportMapStore(JsonDocumentStore):
    """Loads and saves the browser import map served to the application."""

    async def load(self, path: Path | str) -> ImportMap:
        """
        Load the import map at ``path``; a missing file yields an empty map.
        """
        path = self.absolute(path)
        raw = await self._read_document(path)
        if raw is MISSING:
            return ImportMap()
        try:
            return ImportMap.model_validate(raw)
        except ValidationError as e:
            raise self._invalid(path, e) from e

    async def save(self, path: Path | str, import_map: ImportMap) -> None:
        path = self.absolute(path)
        await self._write_document(path, import_map.model_dump(exclude_none=True))

    async def update(self, path: Path | str, mutate: Callable[[ImportMap], None]) -> ImportMap:
        """
        Run one serialized load-modify-save cycle and return the saved map.
        """
        async with self.lock_for(path):
            import_map = await self.load(path)
            mutate(import_map)
            await self.save(path, import_map)
            return import_map
