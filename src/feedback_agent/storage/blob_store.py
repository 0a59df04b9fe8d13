"""
Local filesystem storage for uploaded material files.

Layout::

    data/blobs/
    └── agents/{agent_id}/materials/{material_id}/{file_name}

Paths handed out are relative to the blob root and are what a material's
``storage_path`` records.
"""

import re
import shutil
from pathlib import Path

from loguru import logger

from feedback_agent.core.exceptions import BlobNotFoundError, InvalidInputError


_UNSAFE_CHARS = re.compile(r'[^A-Za-z0-9._-]+')


def safe_file_name(name: str) -> str:
    """Reduce an uploaded file name to a single safe path component."""
    base = Path(name or "").name
    cleaned = _UNSAFE_CHARS.sub("_", base).strip("._")
    return cleaned or "upload"


class BlobStore:
    """Byte storage rooted at one directory."""

    def __init__(self, root: str | Path):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def material_path(agent_id: str, material_id: str, file_name: str) -> str:
        return f"agents/{agent_id}/materials/{material_id}/{safe_file_name(file_name)}"

    def _resolve(self, path: str) -> Path:
        resolved = (self.root / path).resolve()
        if self.root.resolve() not in resolved.parents:
            raise InvalidInputError(f"Path escapes blob root: {path}")
        return resolved

    def save(self, path: str, data: bytes) -> str:
        target = self._resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        return path

    def load(self, path: str) -> bytes:
        target = self._resolve(path)
        if not target.is_file():
            raise BlobNotFoundError(f"Stored file not found: {path}")
        return target.read_bytes()

    def delete(self, path: str) -> bool:
        target = self._resolve(path)
        if target.is_file():
            target.unlink()
            return True
        return False

    def delete_prefix(self, prefix: str) -> None:
        """Remove a whole directory subtree, e.g. every file of one agent."""
        target = self._resolve(prefix)
        if target.is_dir():
            shutil.rmtree(target)
            logger.debug(f"Removed blob prefix {prefix}")
