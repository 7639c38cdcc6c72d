"""
On-disk payload storage for cached resources.
"""

import asyncio
import hashlib
import os
import tempfile
from pathlib import Path
from typing import Optional, Union

from shared.logging import get_logger


def sha256_hex(data: Union[str, bytes]) -> str:
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()


class BlobStore:
    """Content-addressed blob files grouped by cache key.

    A blob lives at ``<root>/<key digest[:2]>/<key digest>/<content digest>``.
    Writes go to a temp file that is renamed into place, so a reader sees
    either the complete old blob or the complete new one.
    """

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)
        self.logger = get_logger("edge.blob_store")

    def blob_id(self, key_digest: str, data: bytes) -> str:
        return f"{key_digest[:2]}/{key_digest}/{sha256_hex(data)}"

    def _path(self, blob_id: str) -> Path:
        return self.root / blob_id

    async def write(self, blob_id: str, data: bytes) -> None:
        await asyncio.to_thread(self._write_sync, blob_id, data)

    def _write_sync(self, blob_id: str, data: bytes) -> None:
        path = self._path(blob_id)
        if path.exists():
            return
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".tmp-")
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
            os.replace(tmp_name, path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise

    async def read(self, blob_id: str) -> Optional[bytes]:
        """Return the blob bytes, or None if it is gone."""
        return await asyncio.to_thread(self._read_sync, blob_id)

    def _read_sync(self, blob_id: str) -> Optional[bytes]:
        try:
            return self._path(blob_id).read_bytes()
        except FileNotFoundError:
            return None

    async def delete(self, blob_id: str) -> None:
        await asyncio.to_thread(self._delete_sync, blob_id)

    def _delete_sync(self, blob_id: str) -> None:
        try:
            self._path(blob_id).unlink()
        except FileNotFoundError:
            self.logger.debug("Blob already removed", blob_id=blob_id)
