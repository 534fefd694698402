import os
from pathlib import Path

from .base import BaseStorage


class LocalStorage(BaseStorage):
    """Filesystem storage returning file:// URLs (development and tests)."""

    def __init__(self, base_dir: str = "data/chunks"):
        self.base_dir = Path(base_dir)

    def _get_absolute_filename(self, workspace: str, filename: str) -> str:
        path = self.base_dir / self._normalize_workspace(workspace) / filename
        return path.resolve().as_uri()

    def file_exist(self, workspace: str, filename: str) -> bool:
        return (self.base_dir / workspace / filename).is_file()

    def create_chunk_workspace(self, entry_id: str) -> str:
        workspace = f"{entry_id}/"
        try:
            os.makedirs(self.base_dir / workspace, exist_ok=True)
        except OSError as e:
            raise RuntimeError(f"Error creating local workspace directory: {e}")
        return workspace

    def save_file(self, workspace: str, filename: str, content: bytes) -> str:
        target = self.base_dir / workspace / filename
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with open(target, "wb") as file:
                file.write(content)
        except OSError as e:
            raise RuntimeError(f"Error saving file to local storage: {e}")
        return self._get_absolute_filename(workspace, filename)
