"""Content-addressed local blob store."""

import asyncio
import logging
import uuid
from pathlib import Path
from typing import Union

import aiofiles
import aiofiles.os

from ..core.types import ByteStream
from ..exceptions import DigestMismatchError, LocalizationError, ValidationError
from ..utils.digest import new_hasher, split_digest

logger = logging.getLogger(__name__)

# Chunk size used when materializing content
CHUNK_SIZE = 1024 * 1024


class LocalStore:
    """Filesystem store addressing blobs by digest.

    Blobs live at ``<root>/blobs/<algorithm>/<hex>``. Content is written to a
    private file under ``<root>/ingest`` first and renamed into place once its
    digest has been verified, so a path returned by :meth:`localize` always
    holds complete content. Two concurrent writers of the same digest both
    succeed; the last rename wins with identical bytes.
    """

    def __init__(self, root: Union[str, Path]) -> None:
        self.root = Path(root)
        self.blobs_dir = self.root / "blobs"
        self.ingest_dir = self.root / "ingest"

    def path_for(self, digest: str) -> Path:
        """Return the path where the blob for ``digest`` is (or will be) stored.

        Raises:
            ValidationError: If the digest is malformed
        """
        algorithm, encoded = split_digest(digest)
        return self.blobs_dir / algorithm / encoded

    async def contains(self, digest: str) -> bool:
        """Check whether the blob for ``digest`` is already materialized."""
        return await aiofiles.os.path.isfile(self.path_for(digest))

    async def localize(self, digest: str, stream: ByteStream) -> Path:
        """Materialize a blob from ``stream`` and return its local path.

        Args:
            digest: Expected content digest
            stream: Byte stream positioned at the start of the content

        Returns:
            Path of the stored blob

        Raises:
            ValidationError: If the digest is malformed
            DigestMismatchError: If the content does not match ``digest``
            LocalizationError: If reading the stream or writing the store fails
        """
        target = self.path_for(digest)
        hasher = new_hasher(digest)
        temp_path = self.ingest_dir / f"{target.name}.{uuid.uuid4().hex}.tmp"
        size = 0

        try:
            await aiofiles.os.makedirs(self.ingest_dir, exist_ok=True)
            await aiofiles.os.makedirs(target.parent, exist_ok=True)

            async with aiofiles.open(temp_path, "wb") as out:
                while True:
                    chunk = await stream.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    hasher.update(chunk)
                    await out.write(chunk)
                    size += len(chunk)

            actual = f"{hasher.name}:{hasher.hexdigest()}"
            if actual != digest:
                raise DigestMismatchError(
                    f"Content digest mismatch: expected {digest}, got {actual}",
                    digest=digest,
                )

            await aiofiles.os.replace(temp_path, target)
        except (LocalizationError, ValidationError, asyncio.CancelledError):
            await self._discard(temp_path)
            raise
        except Exception as e:
            await self._discard(temp_path)
            raise LocalizationError(f"Failed to localize {digest}: {e}", digest=digest) from e

        logger.debug("Localized %s (%d bytes) at %s", digest, size, target)
        return target

    async def _discard(self, path: Path) -> None:
        if await aiofiles.os.path.exists(path):
            await aiofiles.os.remove(path)
