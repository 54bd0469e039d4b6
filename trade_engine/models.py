"""
Trade Engine - ORM Models.

============================================================
PURPOSE
============================================================
SQLAlchemy ORM model for versioned trade documents.

TABLES:
- trade_documents: one row per store key (league settings,
  user trade state, user roster)

The payload is stored as JSON text; the version column backs
optimistic concurrency.

============================================================
"""

from datetime import datetime

from sqlalchemy import DateTime, Integer, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# ============================================================
# BASE
# ============================================================

class Base(DeclarativeBase):
    """Declarative base for trade engine models."""

    type_annotation_map = {
        datetime: DateTime(timezone=True),
    }


# ============================================================
# TRADE DOCUMENT MODEL
# ============================================================

class TradeDocumentModel(Base):
    """
    Persisted document.

    Rows are only ever inserted or updated; nothing in the trade
    engine deletes them.
    """

    __tablename__ = "trade_documents"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    payload: Mapped[str] = mapped_column(Text, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    def __repr__(self) -> str:
        return f"<TradeDocumentModel(key={self.key}, version={self.version})>"
