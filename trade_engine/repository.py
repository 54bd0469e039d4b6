"""
Trade Engine - SQL Document Store.

============================================================
PURPOSE
============================================================
PersistentStore backed by a relational database through
SQLAlchemy's async engine.

CRITICAL REQUIREMENTS:
- commit() runs in ONE database transaction
- Version checks are part of the UPDATE statement, so a
  concurrent writer can never be silently overwritten
- Any failure rolls the whole transaction back

DRIVERS:
- postgresql+asyncpg in production
- sqlite+aiosqlite in tests

============================================================
"""

import json
import logging
from typing import Any, Dict, Mapping, Optional

from sqlalchemy import insert, select, update
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from core.exceptions import StoreUnavailableError, WriteConflictError

from .config import StoreConfig
from .models import Base, TradeDocumentModel
from .store import PersistentStore, StoredDocument


logger = logging.getLogger(__name__)


class SqlDocumentStore(PersistentStore):
    """
    Versioned document store over an async SQLAlchemy engine.
    """

    def __init__(self, engine: AsyncEngine):
        """
        Initialize store.

        Args:
            engine: Async engine; lifecycle owned by the store once passed
        """
        self._engine = engine
        self._session_factory = async_sessionmaker(
            bind=engine,
            expire_on_commit=False,
            autoflush=False,
        )

    @classmethod
    def from_url(cls, url: str, echo: bool = False) -> "SqlDocumentStore":
        logger.info(f"Creating document store engine for: {url.split('@')[-1]}")
        return cls(create_async_engine(url, echo=echo))

    @classmethod
    def from_config(cls, config: StoreConfig) -> "SqlDocumentStore":
        return cls.from_url(config.database_url, echo=config.echo_sql)

    async def create_tables(self) -> None:
        """Create the documents table if it does not exist."""
        try:
            async with self._engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except (OperationalError, DBAPIError) as e:
            raise StoreUnavailableError("Could not create tables", cause=e) from e

    async def close(self) -> None:
        await self._engine.dispose()

    # --------------------------------------------------------
    # READS
    # --------------------------------------------------------

    async def get(self, key: str) -> Optional[StoredDocument]:
        try:
            async with self._session_factory() as session:
                model = await self._get_model(session, key)
        except (OperationalError, DBAPIError) as e:
            logger.error(f"Store read failed for {key}: {e}")
            raise StoreUnavailableError(f"Read failed for {key}", cause=e) from e

        if model is None:
            return None
        return self._model_to_document(model)

    @staticmethod
    async def _get_model(session: AsyncSession, key: str) -> Optional[TradeDocumentModel]:
        result = await session.execute(
            select(TradeDocumentModel).where(TradeDocumentModel.key == key)
        )
        return result.scalar_one_or_none()

    # --------------------------------------------------------
    # WRITES
    # --------------------------------------------------------

    async def set(self, key: str, data: Dict[str, Any]) -> StoredDocument:
        payload = self._encode(data)
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    model = await self._get_model(session, key)
                    if model is None:
                        model = TradeDocumentModel(key=key, payload=payload, version=1)
                        session.add(model)
                    else:
                        model.payload = payload
                        model.version = model.version + 1
                    version = model.version
        except IntegrityError as e:
            raise WriteConflictError(f"Concurrent create of {key}", key=key, cause=e) from e
        except (OperationalError, DBAPIError) as e:
            logger.error(f"Store write failed for {key}: {e}")
            raise StoreUnavailableError(f"Write failed for {key}", cause=e) from e

        logger.debug(f"Stored {key} at version {version}")
        return StoredDocument(key=key, data=json.loads(payload), version=version)

    async def commit(
        self,
        writes: Mapping[str, Dict[str, Any]],
        expected_versions: Mapping[str, int],
    ) -> Dict[str, StoredDocument]:
        written: Dict[str, StoredDocument] = {}

        try:
            async with self._session_factory() as session:
                async with session.begin():
                    # Keys that are read but not written still guard the commit
                    for key, expected in expected_versions.items():
                        if key in writes:
                            continue
                        model = await self._get_model(session, key)
                        actual = model.version if model else 0
                        if actual != expected:
                            raise WriteConflictError(
                                f"Version conflict on {key}",
                                key=key,
                                expected_version=expected,
                                actual_version=actual,
                            )

                    for key, data in writes.items():
                        payload = self._encode(data)
                        expected = expected_versions.get(key)
                        if expected is None:
                            model = await self._get_model(session, key)
                            expected = model.version if model else 0

                        if expected == 0:
                            await session.execute(
                                insert(TradeDocumentModel).values(
                                    key=key, payload=payload, version=1,
                                )
                            )
                            new_version = 1
                        else:
                            result = await session.execute(
                                update(TradeDocumentModel)
                                .where(TradeDocumentModel.key == key)
                                .where(TradeDocumentModel.version == expected)
                                .values(payload=payload, version=expected + 1)
                            )
                            if result.rowcount != 1:
                                raise WriteConflictError(
                                    f"Version conflict on {key}",
                                    key=key,
                                    expected_version=expected,
                                )
                            new_version = expected + 1

                        written[key] = StoredDocument(
                            key=key, data=json.loads(payload), version=new_version,
                        )
        except IntegrityError as e:
            raise WriteConflictError("Document created concurrently", cause=e) from e
        except (OperationalError, DBAPIError) as e:
            logger.error(f"Store commit failed: {e}")
            raise StoreUnavailableError("Commit failed", cause=e) from e

        logger.debug(f"Committed {len(written)} documents: {sorted(written)}")
        return written

    # --------------------------------------------------------
    # HELPERS
    # --------------------------------------------------------

    @staticmethod
    def _encode(data: Dict[str, Any]) -> str:
        return json.dumps(data, sort_keys=True)

    @staticmethod
    def _model_to_document(model: TradeDocumentModel) -> StoredDocument:
        return StoredDocument(
            key=model.key,
            data=json.loads(model.payload),
            version=model.version,
        )


__all__ = ["SqlDocumentStore"]
