"""Filesystem-backed blob storage for uploads and derived section text."""

from __future__ import annotations

import shutil
from pathlib import Path, PurePosixPath

from flask import current_app


class BlobNotFound(FileNotFoundError):
    pass


class BlobStore:
    def __init__(self, root: str | Path) -> None:
        self.root = Path(root).resolve()

    def _resolve(self, blob_path: str) -> Path:
        relative = PurePosixPath(blob_path)
        if relative.is_absolute() or ".." in relative.parts:
            raise ValueError(f"Invalid blob path: {blob_path}")
        target = (self.root / relative).resolve()
        if self.root not in target.parents:
            raise ValueError(f"Invalid blob path: {blob_path}")
        return target

    def save_bytes(self, blob_path: str, data: bytes) -> str:
        target = self._resolve(blob_path)
        target.parent.mkdir(parents=True, exist_ok=True)
        tmp = target.with_suffix(target.suffix + ".part")
        tmp.write_bytes(data)
        tmp.replace(target)
        return blob_path

    def save_text(self, blob_path: str, text: str) -> str:
        return self.save_bytes(blob_path, text.encode("utf-8"))

    def save_stream(self, blob_path: str, stream) -> int:
        target = self._resolve(blob_path)
        target.parent.mkdir(parents=True, exist_ok=True)
        with target.open("wb") as handle:
            shutil.copyfileobj(stream, handle)
        return target.stat().st_size

    def read_text(self, blob_path: str) -> str:
        target = self._resolve(blob_path)
        if not target.exists():
            raise BlobNotFound(blob_path)
        return target.read_text(encoding="utf-8")

    def download_to(self, blob_path: str, destination: str | Path) -> Path:
        source = self._resolve(blob_path)
        if not source.exists():
            raise BlobNotFound(blob_path)
        shutil.copyfile(source, destination)
        return Path(destination)

    def exists(self, blob_path: str) -> bool:
        return self._resolve(blob_path).exists()

    def delete(self, blob_path: str) -> None:
        self._resolve(blob_path).unlink(missing_ok=True)


def owner_scope(owner_id: str) -> str:
    return f"users/{owner_id}"


def upload_path(owner_id: str, file_id: str, extension: str) -> str:
    return f"{owner_scope(owner_id)}/uploads/{file_id}.{extension.lstrip('.')}"


def section_blob_path(owner_id: str, file_id: str, index: int) -> str:
    return f"{owner_scope(owner_id)}/derived/sections/{file_id}_s{index}.txt"


def get_blob_store() -> BlobStore:
    app = current_app
    store = app.extensions.get("blob_store")
    if store is None:
        root = app.config.get("BLOB_ROOT") or str(Path(app.instance_path) / "blobs")
        store = BlobStore(root)
        app.extensions["blob_store"] = store
    return store
