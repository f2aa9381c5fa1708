"""Filesystem-backed storage for local runs."""

from pathlib import Path
from typing import BinaryIO

from import_handler.core import ObjectStorage, StorageError


class LocalStorage(ObjectStorage):
    """Read objects from ``<root>/<bucket>/<name>``."""

    def __init__(self, root: Path) -> None:
        self.root = root

    def path_for(self, bucket: str, name: str) -> Path:
        path = (self.root / bucket / name).resolve()
        if not path.is_relative_to(self.root.resolve()):
            raise StorageError(f"Object path escapes storage root: {bucket}/{name}")
        return path

    async def open(self, bucket: str, name: str) -> BinaryIO:
        path = self.path_for(bucket, name)
        try:
            return open(path, "rb")
        except OSError as e:
            raise StorageError(f"Could not read {path}: {e}") from e
