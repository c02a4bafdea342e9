"""
Record store contract.

Tracks and the anchor alarm are persisted by an external store; the core
only needs create/read/update/delete keyed by id. InMemoryRecordStore is a
thread-safe process-local implementation.
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, Generic, List, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RecordStore(ABC, Generic[T]):
    """CRUD by id."""

    @abstractmethod
    def create(self, record_id: str, record: T) -> T:
        """Store a new record. Raises KeyError if the id exists."""

    @abstractmethod
    def read(self, record_id: str) -> Optional[T]:
        """Return the record, or None if absent."""

    @abstractmethod
    def update(self, record_id: str, record: T) -> T:
        """Replace an existing record. Raises KeyError if absent."""

    @abstractmethod
    def delete(self, record_id: str) -> bool:
        """Remove a record; False if it was absent."""

    @abstractmethod
    def list(self) -> List[T]:
        """All records in insertion order."""

    def upsert(self, record_id: str, record: T) -> T:
        if self.read(record_id) is None:
            return self.create(record_id, record)
        return self.update(record_id, record)


class InMemoryRecordStore(RecordStore[T]):
    """Dictionary-backed store guarded by a lock."""

    def __init__(self, name: str = "records"):
        self.name = name
        self._lock = threading.Lock()
        self._records: Dict[str, Any] = {}

    def create(self, record_id: str, record: T) -> T:
        with self._lock:
            if record_id in self._records:
                raise KeyError(f"{self.name}: id '{record_id}' already exists")
            self._records[record_id] = record
        logger.debug(f"{self.name}: created {record_id}")
        return record

    def read(self, record_id: str) -> Optional[T]:
        with self._lock:
            return self._records.get(record_id)

    def update(self, record_id: str, record: T) -> T:
        with self._lock:
            if record_id not in self._records:
                raise KeyError(f"{self.name}: no record '{record_id}'")
            self._records[record_id] = record
        return record

    def delete(self, record_id: str) -> bool:
        with self._lock:
            removed = self._records.pop(record_id, None) is not None
        if removed:
            logger.debug(f"{self.name}: deleted {record_id}")
        return removed

    def list(self) -> List[T]:
        with self._lock:
            return list(self._records.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
