"""Storage backends for Sowflow project state.

A backend persists one project record as a plain mapping. Backends deal in
raw documents only and perform no domain validation; the loader layers
structural and metadata validation on top.

Backends are async so callers can bound I/O with asyncio.wait_for() or
cancel it like any other task. Blocking file I/O runs in a worker thread.

Two implementations are provided:

- MemoryBackend: dict-backed, for tests and ephemeral sessions.
- YAMLBackend: human-readable YAML file under the state root, written
  atomically (temp file + rename).
"""

from __future__ import annotations

import asyncio
import copy
import os
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import structlog
import yaml

from sowflow.errors import BackendError, InvalidStateError, ProjectNotFoundError

logger = structlog.get_logger(__name__)

DEFAULT_STATE_FILE = Path("project") / "state.yaml"


@runtime_checkable
class Backend(Protocol):
    """Protocol for project state storage."""

    async def load(self) -> dict[str, Any]:
        """Read the stored project document.

        Returns:
            The raw project mapping

        Raises:
            ProjectNotFoundError: If no project is stored
            InvalidStateError: If stored data cannot be decoded
        """
        ...

    async def save(self, document: dict[str, Any]) -> None:
        """Replace the stored project document.

        Args:
            document: JSON-compatible project mapping
        """
        ...

    async def exists(self) -> bool:
        """Return True if a project document is stored."""
        ...

    async def delete(self) -> None:
        """Remove the stored project document, if any."""
        ...


class MemoryBackend:
    """In-memory backend; nothing survives the process.

    Documents are deep-copied on the way in and out so callers never alias
    the stored mapping.

    Attributes:
        save_count: Number of successful save() calls
    """

    def __init__(self, document: dict[str, Any] | None = None) -> None:
        self._document = copy.deepcopy(document) if document is not None else None
        self.save_count = 0

    @property
    def document(self) -> dict[str, Any] | None:
        """Copy of the stored document, for inspection."""
        return copy.deepcopy(self._document)

    async def load(self) -> dict[str, Any]:
        if self._document is None:
            raise ProjectNotFoundError("memory")
        return copy.deepcopy(self._document)

    async def save(self, document: dict[str, Any]) -> None:
        self._document = copy.deepcopy(document)
        self.save_count += 1

    async def exists(self) -> bool:
        return self._document is not None

    async def delete(self) -> None:
        self._document = None


class YAMLBackend:
    """File backend storing the project as YAML under a state root.

    Args:
        root: State root directory (e.g. the repository's .sow directory)
        path: Location of the state file relative to root
    """

    def __init__(self, root: Path | str, path: Path | str = DEFAULT_STATE_FILE) -> None:
        self.root = Path(root)
        self.path = self.root / Path(path)

    def __repr__(self) -> str:
        return f"YAMLBackend(path={str(self.path)!r})"

    # ------------------------------------------------------------------
    # Blocking helpers, run in a worker thread
    # ------------------------------------------------------------------

    def _read(self) -> dict[str, Any]:
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            raise ProjectNotFoundError(str(self.path)) from None
        except OSError as exc:
            raise BackendError(f"failed to read state file {self.path}: {exc}") from exc

        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise InvalidStateError(f"failed to parse {self.path}: {exc}") from exc

        if not isinstance(data, dict):
            raise InvalidStateError(
                f"state file {self.path} must contain a mapping, got {type(data).__name__}"
            )
        return data

    def _write(self, document: dict[str, Any]) -> None:
        try:
            text = yaml.safe_dump(document, sort_keys=False, allow_unicode=True)
        except yaml.YAMLError as exc:
            raise InvalidStateError(f"failed to serialize project state: {exc}") from exc

        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(text, encoding="utf-8")
            os.replace(tmp_path, self.path)
        except OSError as exc:
            tmp_path.unlink(missing_ok=True)
            raise BackendError(f"failed to write state file {self.path}: {exc}") from exc

        logger.debug("state_file_written", path=str(self.path), size=len(text))

    def _delete(self) -> None:
        try:
            self.path.unlink(missing_ok=True)
        except OSError as exc:
            raise BackendError(f"failed to delete state file {self.path}: {exc}") from exc

    # ------------------------------------------------------------------
    # Backend protocol
    # ------------------------------------------------------------------

    async def load(self) -> dict[str, Any]:
        return await asyncio.to_thread(self._read)

    async def save(self, document: dict[str, Any]) -> None:
        await asyncio.to_thread(self._write, document)

    async def exists(self) -> bool:
        return await asyncio.to_thread(self.path.is_file)

    async def delete(self) -> None:
        await asyncio.to_thread(self._delete)
