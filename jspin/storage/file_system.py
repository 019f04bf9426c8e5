from abc import ABC, abstractmethod
from pathlib import Path
import os
import uuid
import logging

import aiofiles
import aiofiles.os

logger = logging.getLogger(__name__)


class FileSystem(ABC):
    """
    Narrow file I/O interface used by the document stores.
    """

    @abstractmethod
    async def read_bytes(self, path: Path) -> bytes:
        """
        Return the file contents.
        Must raise FileNotFoundError when the file does not exist.
        """
        pass

    @abstractmethod
    async def write_bytes(self, path: Path, data: bytes) -> None:
        """Replace the file contents with data."""
        pass

    @abstractmethod
    async def ensure_directory(self, path: Path) -> None:
        """Create the directory (and parents) if it does not exist."""
        pass

    @abstractmethod
    async def exists(self, path: Path) -> bool:
        pass

    @abstractmethod
    async def remove(self, path: Path) -> None:
        """Delete the file. A file that is already gone is not an error."""
        pass


class LocalFileSystem(FileSystem):
    async def read_bytes(self, path: Path) -> bytes:
        async with aiofiles.open(path, "rb") as f:
            return await f.read()

    async def write_bytes(self, path: Path, data: bytes) -> None:
        # Write to a sibling temp file first so a crash never leaves a
        # truncated document behind, then swap it into place.
        tmp_path = path.with_name(f".{path.name}.{uuid.uuid4().hex}.tmp")
        try:
            async with aiofiles.open(tmp_path, "wb") as f:
                await f.write(data)
                await f.flush()
                os.fsync(f.fileno())
            await aiofiles.os.replace(tmp_path, path)
        except BaseException:
            if tmp_path.exists():
                tmp_path.unlink(missing_ok=True)
            raise
        logger.debug(f"Wrote {len(data)} bytes to {path}")

    async def ensure_directory(self, path: Path) -> None:
        await aiofiles.os.makedirs(path, exist_ok=True)

    async def exists(self, path: Path) -> bool:
        return await aiofiles.os.path.exists(path)

    async def remove(self, path: Path) -> None:
        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            return
        logger.debug(f"Removed {path}")
