"""Local filesystem adapter."""

from __future__ import annotations

from pathlib import Path

from ..core.interfaces import FileSystem


class LocalFileSystem(FileSystem):
    """``pathlib`` backed directory creation and existence checks."""

    def ensure_directory(self, path: Path) -> None:
        Path(path).mkdir(parents=True, exist_ok=True)

    def file_exists(self, path: Path) -> bool:
        return Path(path).is_file()


__all__ = ["LocalFileSystem"]
