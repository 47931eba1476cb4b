"""
Document Store — tenant × scope × key → JSON document.

The adaptive controllers persist everything (guardrails, outcomes,
violations, adjustments, portfolios, learning traces, per-tenant configs)
through this interface, so the storage engine stays swappable:

- InMemoryDocumentStore: single process, tests
- SqlDocumentStore: SQLAlchemy async over the `documents` table
"""

import copy
from abc import ABC, abstractmethod
from typing import Any, Optional

import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from adaptrisk.db.engine import get_db_session
from adaptrisk.db.models import StoredDocument

logger = structlog.get_logger(__name__)

Document = dict[str, Any]


class DocumentStore(ABC):
    """Async key/value store for JSON documents, partitioned by tenant and scope."""

    @abstractmethod
    async def get(self, tenant_id: str, scope: str, key: str) -> Optional[Document]:
        ...

    @abstractmethod
    async def set(self, tenant_id: str, scope: str, key: str, document: Document) -> None:
        ...

    @abstractmethod
    async def delete(self, tenant_id: str, scope: str, key: str) -> bool:
        """Return True when a document was removed."""

    @abstractmethod
    async def list_documents(self, tenant_id: str, scope: str) -> dict[str, Document]:
        """All documents in a scope, keyed by document key."""

    @abstractmethod
    async def list_tenants(self, scope: str) -> list[str]:
        """Tenants holding at least one document in the scope."""


class InMemoryDocumentStore(DocumentStore):
    """Process-local store. Documents are deep-copied on the way in and out."""

    def __init__(self):
        self._data: dict[tuple[str, str], dict[str, Document]] = {}

    async def get(self, tenant_id: str, scope: str, key: str) -> Optional[Document]:
        doc = self._data.get((tenant_id, scope), {}).get(key)
        return copy.deepcopy(doc) if doc is not None else None

    async def set(self, tenant_id: str, scope: str, key: str, document: Document) -> None:
        self._data.setdefault((tenant_id, scope), {})[key] = copy.deepcopy(document)

    async def delete(self, tenant_id: str, scope: str, key: str) -> bool:
        return self._data.get((tenant_id, scope), {}).pop(key, None) is not None

    async def list_documents(self, tenant_id: str, scope: str) -> dict[str, Document]:
        return copy.deepcopy(self._data.get((tenant_id, scope), {}))

    async def list_tenants(self, scope: str) -> list[str]:
        return sorted(t for (t, s), docs in self._data.items() if s == scope and docs)


class SqlDocumentStore(DocumentStore):
    """Store backed by the `documents` table (SQLite via aiosqlite, or PostgreSQL)."""

    def __init__(self, session_factory: Optional[async_sessionmaker[AsyncSession]] = None):
        self._session_factory = session_factory

    async def get(self, tenant_id: str, scope: str, key: str) -> Optional[Document]:
        async with get_db_session(self._session_factory) as session:
            row = await self._find(session, tenant_id, scope, key)
            return copy.deepcopy(row.body) if row is not None else None

    async def set(self, tenant_id: str, scope: str, key: str, document: Document) -> None:
        async with get_db_session(self._session_factory) as session:
            row = await self._find(session, tenant_id, scope, key)
            if row is None:
                session.add(StoredDocument(tenant_id=tenant_id, scope=scope, key=key, body=document))
            else:
                row.body = document
        logger.debug("document_stored", tenant_id=tenant_id, scope=scope, key=key)

    async def delete(self, tenant_id: str, scope: str, key: str) -> bool:
        async with get_db_session(self._session_factory) as session:
            result = await session.execute(
                delete(StoredDocument).where(
                    StoredDocument.tenant_id == tenant_id,
                    StoredDocument.scope == scope,
                    StoredDocument.key == key,
                )
            )
            return result.rowcount > 0

    async def list_documents(self, tenant_id: str, scope: str) -> dict[str, Document]:
        async with get_db_session(self._session_factory) as session:
            result = await session.execute(
                select(StoredDocument)
                .where(StoredDocument.tenant_id == tenant_id, StoredDocument.scope == scope)
                .order_by(StoredDocument.id)
            )
            return {row.key: copy.deepcopy(row.body) for row in result.scalars()}

    async def list_tenants(self, scope: str) -> list[str]:
        async with get_db_session(self._session_factory) as session:
            result = await session.execute(
                select(StoredDocument.tenant_id)
                .where(StoredDocument.scope == scope)
                .distinct()
                .order_by(StoredDocument.tenant_id)
            )
            return list(result.scalars())

    @staticmethod
    async def _find(
        session: AsyncSession, tenant_id: str, scope: str, key: str
    ) -> Optional[StoredDocument]:
        result = await session.execute(
            select(StoredDocument).where(
                StoredDocument.tenant_id == tenant_id,
                StoredDocument.scope == scope,
                StoredDocument.key == key,
            )
        )
        return result.scalar_one_or_none()
