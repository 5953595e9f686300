# =============================================================================
# File: mingleo/chat/ports/store_port.py
# Description: Port interfaces for the durable store and object storage
# Pattern: Hexagonal Architecture / Ports & Adapters
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence, runtime_checkable


Row = Dict[str, Any]


@dataclass(frozen=True)
class OrderBy:
    """Ordering clause for select()"""
    column: str
    ascending: bool = True


@runtime_checkable
class DurableStorePort(Protocol):
    """
    Port: Durable Store

    Implemented by: SupabaseRestStore (mingleo/infra/supabase/rest_store.py)

    Filters are column -> criteria mappings:
        {"chat_id": "c1"}                   equality
        {"id": {"$in": ["a", "b"]}}         membership
        {"left_at": None}                   IS NULL

    Every method raises the common error taxonomy on failure:
        NotFoundError       referenced row/parent does not exist
        AccessDeniedError   authorization policy rejected the caller
        ConflictError       uniqueness constraint violated
        TransientError      network or backend hiccup
    """

    async def select(
        self,
        table: str,
        filters: Optional[Mapping[str, Any]] = None,
        order: Optional[OrderBy] = None,
        columns: str = "*",
    ) -> List[Row]:
        """Return matching rows, ordered when ``order`` is given."""
        ...

    async def select_one(
        self,
        table: str,
        filters: Mapping[str, Any],
        columns: str = "*",
    ) -> Row:
        """Return exactly one row or raise NotFoundError."""
        ...

    async def insert(self, table: str, values: Mapping[str, Any]) -> Row:
        """Insert one row and return it as stored (server-assigned id included)."""
        ...

    async def insert_many(self, table: str, values: Sequence[Mapping[str, Any]]) -> List[Row]:
        """Insert several rows in one call."""
        ...

    async def upsert(self, table: str, values: Mapping[str, Any], on_conflict: str) -> Row:
        """Insert or merge on the given conflict columns."""
        ...

    async def update(self, table: str, filters: Mapping[str, Any], values: Mapping[str, Any]) -> List[Row]:
        """Update matching rows and return them."""
        ...

    async def delete(self, table: str, filters: Mapping[str, Any]) -> List[Row]:
        """Delete matching rows and return them."""
        ...


@runtime_checkable
class ObjectStoragePort(Protocol):
    """
    Port: Object Storage

    Implemented by: SupabaseStorageClient (mingleo/infra/supabase/storage_client.py)
    """

    async def upload(
        self,
        bucket: str,
        key: str,
        data: bytes,
        content_type: str,
        upsert: bool = False,
    ) -> str:
        """Store bytes under ``key`` and return the object path."""
        ...

    def public_url(self, bucket: str, path: str) -> str:
        """Public URL for an object path."""
        ...

    async def remove(self, bucket: str, keys: Sequence[str]) -> None:
        """Remove objects by key."""
        ...
