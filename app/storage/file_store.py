"""Two-phase derivative file writes.

Files are first written under hidden staging names inside the collection
directory, then renamed to their final names once every database statement of
the batch has succeeded. Staged and promoted files are removed again on any
rollback path, so no file outlives a failed transaction.
"""

import os
import uuid
from dataclasses import dataclass
from pathlib import Path

from app.imaging.models import Derivative
from app.logging.logger import Log
from app.storage.exceptions import FileStoreError


@dataclass
class StagedFile:
    """A derivative written under a temporary name, awaiting promotion."""

    staging_path: Path
    final_path: Path
    public_path: str
    promoted: bool = False


class DerivativeStore:
    """A storage collection: a directory on disk plus the URL prefix it is served under."""

    def __init__(self, root: Path, url_prefix: str) -> None:
        self._root = root
        self._url_prefix = url_prefix.rstrip("/")

    @property
    def root(self) -> Path:
        return self._root

    def public_path(self, filename: str) -> str:
        """Build the stored path for a file, e.g. /uploads/scan-normalized-7-....png"""
        return f"{self._url_prefix}/{filename}"

    def resolve(self, public_path: str) -> Path:
        """Map a stored public path back to its location on disk."""
        prefix = f"{self._url_prefix}/"
        if not public_path.startswith(prefix):
            raise FileStoreError(f"Path {public_path!r} is outside {self._url_prefix}")
        filename = public_path[len(prefix):]
        if not filename or "/" in filename or filename in {".", ".."}:
            raise FileStoreError(f"Invalid stored file name in {public_path!r}")
        return self._root / filename

    def begin(self) -> "StagedWrites":
        """Start a new set of staged writes in this collection."""
        try:
            self._root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise FileStoreError(f"Cannot create storage directory {self._root}: {exc}") from exc
        return StagedWrites(self)

    def remove(self, public_path: str) -> None:
        """Delete a stored file. A missing file is not an error."""
        path = self.resolve(public_path)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            raise FileStoreError(f"Cannot delete {path}: {exc}") from exc


class StagedWrites:
    """Files staged for one transaction, promoted or discarded together."""

    def __init__(self, store: DerivativeStore) -> None:
        self._store = store
        self._files: list[StagedFile] = []

    @property
    def files(self) -> list[StagedFile]:
        return list(self._files)

    def stage(self, derivative: Derivative) -> StagedFile:
        """Write a derivative under a hidden temporary name."""
        final_path = self._store.root / derivative.filename
        staging_path = self._store.root / f".{derivative.filename}.{uuid.uuid4().hex}.staging"
        staged = StagedFile(
            staging_path=staging_path,
            final_path=final_path,
            public_path=self._store.public_path(derivative.filename),
        )
        self._files.append(staged)
        try:
            staging_path.write_bytes(derivative.content)
        except OSError as exc:
            raise FileStoreError(f"Cannot write {staging_path}: {exc}") from exc
        return staged

    def promote(self) -> None:
        """Rename every staged file to its final name."""
        for staged in self._files:
            if staged.promoted:
                continue
            if staged.final_path.exists():
                raise FileStoreError(f"Refusing to overwrite existing file {staged.final_path}")
            try:
                os.replace(staged.staging_path, staged.final_path)
            except OSError as exc:
                raise FileStoreError(
                    f"Cannot promote {staged.staging_path} to {staged.final_path}: {exc}"
                ) from exc
            staged.promoted = True

    def discard(self) -> None:
        """Delete every staged or promoted file. Never raises; failures are logged."""
        for staged in self._files:
            path = staged.final_path if staged.promoted else staged.staging_path
            try:
                path.unlink(missing_ok=True)
            except OSError as exc:
                Log.error(f"Failed to remove orphan file {path}: {exc}")
        self._files.clear()
