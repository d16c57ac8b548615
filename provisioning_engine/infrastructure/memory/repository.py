# provisioning_engine/infrastructure/memory/repository.py

import copy
from datetime import datetime, timezone
from threading import Lock
from typing import Iterable, Optional

from provisioning_engine.core.errors import (
    RecordAlreadyExists,
    RecordConcurrencyError,
    RecordNotFound,
)
from provisioning_engine.core.models import ResourceRecord
from provisioning_engine.core.repository import StateRepository


class InMemoryStateRepository(StateRepository):
    def __init__(self):
        self._store: dict[tuple[str, str], ResourceRecord] = {}
        self._lock = Lock()

    def create(self, record: ResourceRecord) -> None:
        key = (record.stack_name, record.logical_id)
        with self._lock:
            if key in self._store:
                raise RecordAlreadyExists(f"Record {key} already exists")
            self._store[key] = copy.deepcopy(record)

    def get(self, stack_name: str, logical_id: str) -> Optional[ResourceRecord]:
        with self._lock:
            record = self._store.get((stack_name, logical_id))
            return copy.deepcopy(record) if record else None

    def update(self, record: ResourceRecord) -> None:
        key = (record.stack_name, record.logical_id)
        with self._lock:
            current = self._store.get(key)
            if current is None:
                raise RecordNotFound(f"Record {key} not found")

            if current.version != record.version:
                raise RecordConcurrencyError(
                    f"Record {key} version mismatch "
                    f"(stored={current.version}, given={record.version})"
                )

            record.version += 1
            record.updated_at = datetime.now(timezone.utc)
            self._store[key] = copy.deepcopy(record)

    def delete(self, stack_name: str, logical_id: str) -> None:
        with self._lock:
            self._store.pop((stack_name, logical_id), None)

    def list_stack(self, stack_name: str) -> Iterable[ResourceRecord]:
        with self._lock:
            return [
                copy.deepcopy(r)
                for (stack, _), r in self._store.items()
                if stack == stack_name
            ]
