"""IncidentStore — JSON snapshot of open incidents for restart recovery."""

from __future__ import annotations

import os
import tempfile
from collections.abc import Iterable
from pathlib import Path

import structlog
from pydantic import TypeAdapter, ValidationError

from netalert.core.exceptions import StoreError
from netalert.core.types import Incident

logger = structlog.get_logger(__name__)

_INCIDENTS = TypeAdapter(list[Incident])


class IncidentStore:
    """Persists incidents to a single JSON file.

    Writes go to a temporary file in the same directory and are moved
    into place with ``os.replace`` so a crash never leaves a torn file.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> list[Incident]:
        """Return persisted incidents, or an empty list if none were saved."""
        if not self._path.exists():
            return []
        try:
            data = self._path.read_bytes()
            incidents = _INCIDENTS.validate_json(data) if data.strip() else []
        except (OSError, ValidationError) as exc:
            raise StoreError(f"cannot load incidents from {self._path}: {exc}") from exc
        logger.info("incidents_loaded", path=str(self._path), count=len(incidents))
        return incidents

    def save(self, incidents: Iterable[Incident]) -> int:
        items = list(incidents)
        payload = _INCIDENTS.dump_json(items, indent=2)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(
            prefix=f".{self._path.name}.", dir=self._path.parent,
        )
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(payload)
            os.replace(tmp, self._path)
        except OSError as exc:
            Path(tmp).unlink(missing_ok=True)
            raise StoreError(f"cannot save incidents to {self._path}: {exc}") from exc
        return len(items)
