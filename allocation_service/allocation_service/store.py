"""Persistence backends for the last applied snapshot (last write wins)."""

from pathlib import Path
from typing import Optional, Protocol

from pydantic import ValidationError

from .logger import logger
from .schemas import Snapshot


class Store(Protocol):
    """Protocol for anything that can hold the current snapshot."""

    def load(self) -> Optional[Snapshot]:
        """Return the saved snapshot, or None when nothing has been saved."""
        ...

    def save(self, snapshot: Snapshot) -> None:
        """Persist ``snapshot``, replacing whatever was saved before."""
        ...

    def clear(self) -> None:
        """Forget the saved snapshot."""
        ...


class MemoryStore:
    """Process-local store, used when no store path is configured."""

    def __init__(self) -> None:
        self._snapshot: Optional[Snapshot] = None

    def load(self) -> Optional[Snapshot]:
        return self._snapshot.model_copy(deep=True) if self._snapshot else None

    def save(self, snapshot: Snapshot) -> None:
        self._snapshot = snapshot.model_copy(deep=True)

    def clear(self) -> None:
        self._snapshot = None


class JsonFileStore:
    """Keeps the snapshot as one JSON document on disk."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self) -> Optional[Snapshot]:
        if not self.path.exists():
            return None
        try:
            return Snapshot.model_validate_json(self.path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            logger.error(f"Failed to load snapshot from {self.path}: {e}")
            return None

    def save(self, snapshot: Snapshot) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(snapshot.model_dump_json(indent=2), encoding="utf-8")
        tmp.replace(self.path)
        logger.debug(f"Snapshot saved to {self.path} | items={len(snapshot.items)} | orders={len(snapshot.orders)}")

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)
