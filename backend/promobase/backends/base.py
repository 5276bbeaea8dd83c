"""
Storage backend interface.

The facade selects exactly one implementation at startup; nothing outside
the facade branches on which one is active.
"""

from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

from promobase.schemas.contact import Contact, Diagnostics
from promobase.utils.search_query import SearchTerm


class ContactBackend(ABC):
    """Operations every contact storage backend provides. Inputs are already validated."""

    name: str = "backend"

    @abstractmethod
    async def initialize(self) -> None:
        """Prepare the backend; raises BackendUnavailableError when it cannot run."""

    @abstractmethod
    async def get_all(self) -> List[Contact]:
        ...

    @abstractmethod
    async def get(self, contact_id: str) -> Optional[Contact]:
        ...

    @abstractmethod
    async def add(self, contact: Contact) -> None:
        ...

    @abstractmethod
    async def update(self, contact: Contact) -> None:
        """Overwrite a stored contact; raises ContactNotFoundError when absent."""

    @abstractmethod
    async def delete(self, contact_id: str) -> bool:
        ...

    @abstractmethod
    async def write_chunk(self, contacts: Sequence[Contact]) -> int:
        """Write one bulk chunk as a single unit; returns records written."""

    @abstractmethod
    async def search(
        self,
        terms: List[SearchTerm],
        country: Optional[str] = None,
        verification_status: Optional[str] = None,
    ) -> List[Contact]:
        ...

    @abstractmethod
    async def diagnostics(self) -> Diagnostics:
        ...

    @abstractmethod
    async def clear_all(self) -> None:
        ...

    @abstractmethod
    async def rebuild_search_index(self) -> int:
        """Rebuild derived search state; returns rows indexed."""

    @abstractmethod
    async def run_migrations(self) -> List[int]:
        """Apply pending schema steps; returns the versions applied."""

    async def close(self) -> None:
        """Release resources held by the backend."""
