# provisioning_engine/core/repository.py

from abc import ABC, abstractmethod
from typing import Iterable, Optional

from provisioning_engine.core.models import ResourceRecord


class StateRepository(ABC):
    """
    Persistence contract for resource records.

    Records are keyed by (stack_name, logical_id).
    """

    @abstractmethod
    def create(self, record: ResourceRecord) -> None:
        """
        Persist a new record.
        Must fail if the key already exists.
        """
        raise NotImplementedError

    @abstractmethod
    def get(self, stack_name: str, logical_id: str) -> Optional[ResourceRecord]:
        """
        Fetch a record.
        Returns None if not found.
        """
        raise NotImplementedError

    @abstractmethod
    def update(self, record: ResourceRecord) -> None:
        """
        Persist an updated record.
        Must enforce optimistic concurrency on ``version`` and bump it.
        """
        raise NotImplementedError

    @abstractmethod
    def delete(self, stack_name: str, logical_id: str) -> None:
        """Forget a record. Deleting a missing record is a no-op."""
        raise NotImplementedError

    @abstractmethod
    def list_stack(self, stack_name: str) -> Iterable[ResourceRecord]:
        """All records of one stack."""
        raise NotImplementedError

    def save(self, record: ResourceRecord) -> None:
        """Create or update."""
        if self.get(record.stack_name, record.logical_id) is None:
            self.create(record)
        else:
            self.update(record)
