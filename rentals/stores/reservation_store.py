"""
Local persistence for the reservation line set.

The aggregator calls ``load()`` once on first access and ``save()`` after
every mutation; ``clear()`` erases whatever was persisted.
"""
import logging
from pathlib import Path
from typing import List, Optional, Protocol

from pydantic import TypeAdapter

from rentals.core.config import settings
from rentals.schemas.reservation import ReservationLine

logger = logging.getLogger(__name__)

_lines_adapter = TypeAdapter(List[ReservationLine])


class ReservationStore(Protocol):
    def load(self) -> List[ReservationLine]: ...

    def save(self, lines: List[ReservationLine]) -> None: ...

    def clear(self) -> None: ...


class JsonFileReservationStore:
    """Keeps the line set as a JSON array on disk."""

    def __init__(self, path: Optional[str] = None):
        self.path = Path(path or settings.reservation_store_path)

    def load(self) -> List[ReservationLine]:
        if not self.path.exists():
            return []
        raw = self.path.read_bytes()
        if not raw.strip():
            return []
        return _lines_adapter.validate_json(raw)

    def save(self, lines: List[ReservationLine]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_bytes(_lines_adapter.dump_json(lines))
        tmp_path.replace(self.path)

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)


class InMemoryReservationStore:
    def __init__(self, lines: Optional[List[ReservationLine]] = None):
        self.lines: List[ReservationLine] = [line.model_copy() for line in lines or []]
        self.save_count = 0

    def load(self) -> List[ReservationLine]:
        return [line.model_copy() for line in self.lines]

    def save(self, lines: List[ReservationLine]) -> None:
        self.lines = [line.model_copy() for line in lines]
        self.save_count += 1

    def clear(self) -> None:
        self.lines = []
