import os
import re
import time
import uuid
from pathlib import Path, PurePath
from typing import Iterator, Optional

import aiofiles
import aiofiles.os

import errors
from logging_config import get_logger

logger = get_logger(__name__)

CHUNK_SIZE = 1024 * 1024
MAX_BASE_NAME_LENGTH = 50


def clean_original_name(filename: Optional[str]) -> str:
    name = (filename or "").replace("\\", "/").rsplit("/", 1)[-1].strip()
    return name or "unnamed"


def generate_stored_name(original_name: str) -> str:
    original = PurePath(clean_original_name(original_name))
    base_name = re.sub(r"[^a-zA-Z0-9]", "_", original.stem)[:MAX_BASE_NAME_LENGTH]
    return f"{int(time.time() * 1000)}_{base_name}_{uuid.uuid4()}{original.suffix}"


class BlobStorage:
    """Uploaded file bytes on local disk, addressed by generated stored names."""

    def __init__(self, base_path: Path):
        self.base_path = Path(base_path)
        if not self.base_path.exists():
            logger.info(f"Creating file storage directory at {self.base_path}")
            self.base_path.mkdir(parents=True, exist_ok=True)

    def path_for(self, storage_path: str) -> Path:
        resolved = (self.base_path / storage_path).resolve()
        if self.base_path.resolve() not in resolved.parents:
            raise errors.StorageError(f"Storage path '{storage_path}' escapes the storage root")
        return resolved

    def exists(self, storage_path: str) -> bool:
        path = self.path_for(storage_path)
        return path.exists() and path.is_file()

    async def save(self, upload, stored_name: str, max_bytes: Optional[int] = None) -> int:
        """Stream an upload to disk and return the number of bytes written.

        A partial file never survives a failed write.
        """
        target = self.path_for(stored_name)
        written = 0
        logger.info(f"Saving upload '{getattr(upload, 'filename', None)}' to {target}")
        try:
            async with aiofiles.open(target, 'wb') as out_file:
                while chunk := await upload.read(CHUNK_SIZE):
                    written += len(chunk)
                    if max_bytes is not None and written > max_bytes:
                        raise errors.PayloadTooLarge(
                            f"File size exceeds the maximum limit of {max_bytes // (1024 * 1024)}MB"
                        )
                    await out_file.write(chunk)
        except errors.PayloadTooLarge:
            logger.warning(f"Upload for {stored_name} exceeded {max_bytes} bytes, discarding partial file")
            await self._discard(target)
            raise
        except OSError as e:
            logger.exception(f"Error saving file to {target}")
            await self._discard(target)
            raise errors.StorageError(f"Error saving file: {e}") from e
        logger.debug(f"Wrote {written} bytes to {target}")
        return written

    async def delete(self, storage_path: str) -> bool:
        """Remove a blob. Returns False when there was nothing to remove."""
        target = self.path_for(storage_path)
        try:
            await aiofiles.os.remove(target)
        except FileNotFoundError:
            logger.warning(f"Blob {storage_path} already missing from {self.base_path}")
            return False
        except OSError as e:
            raise errors.StorageError(f"Error removing file {storage_path}: {e}") from e
        logger.info(f"Removed blob {storage_path}")
        return True

    def iter_stored_names(self) -> Iterator[str]:
        for entry in os.scandir(self.base_path):
            if entry.is_file():
                yield entry.name

    def age_seconds(self, storage_path: str) -> float:
        return time.time() - self.path_for(storage_path).stat().st_mtime

    async def _discard(self, target: Path):
        try:
            await aiofiles.os.remove(target)
        except FileNotFoundError:
            pass
        except OSError:
            logger.exception(f"Could not remove partial file {target}")
