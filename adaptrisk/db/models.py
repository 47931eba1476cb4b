"""
AdaptRisk SQLAlchemy Models.

One generic document table backs every repository: documents are addressed
by (tenant, scope, key) and hold a JSON body.
"""

from datetime import datetime

from sqlalchemy import DateTime, Index, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from adaptrisk.db.compat import JSONType
from adaptrisk.db.engine import Base


class StoredDocument(Base):
    """A JSON document scoped to a tenant."""

    __tablename__ = "documents"
    __table_args__ = (
        UniqueConstraint("tenant_id", "scope", "key", name="uq_documents_tenant_scope_key"),
        Index("ix_documents_tenant_scope", "tenant_id", "scope"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    scope: Mapped[str] = mapped_column(String(64), nullable=False)
    key: Mapped[str] = mapped_column(String(255), nullable=False)
    body: Mapped[dict] = mapped_column(JSONType(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(),
    )
