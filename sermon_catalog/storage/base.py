from abc import ABC, abstractmethod


class BaseStorage(ABC):
    """
    Abstract blob storage for audio chunks.

    Objects are never overwritten: every chunk upload uses a new unique name
    inside the entry's workspace.
    """

    @abstractmethod
    def create_chunk_workspace(self, entry_id: str) -> str:
        """Return the workspace (prefix) holding the chunks of an entry.

        Args:
            entry_id (str): Catalog entry id.

        Returns:
            str: Workspace prefix, always ending with "/".
        """

    @abstractmethod
    def save_file(self, workspace: str, filename: str, content: bytes) -> str:
        """Store ``content`` and return a publicly resolvable URL.

        Raises:
            RuntimeError: If the upload fails.
        """

    @abstractmethod
    def file_exist(self, workspace: str, filename: str) -> bool:
        """True if the object exists."""

    @abstractmethod
    def _get_absolute_filename(self, workspace: str, filename: str) -> str:
        """URL (or path) of an object in this storage."""

    @staticmethod
    def _normalize_workspace(workspace: str) -> str:
        return workspace if workspace.endswith("/") else workspace + "/"
