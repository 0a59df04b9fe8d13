"""
Document store over SQLAlchemy.

Gives the rest of the system the small set of document-database primitives
it relies on: get/set/merge/delete by logical path, equality queries within a
collection, a compare-and-set status transition, and batched writes where
each batch commits on its own.
"""

import threading
from typing import Any, Dict, Iterable, List, NamedTuple, Optional, Sequence, Tuple

from loguru import logger
from sqlalchemy import select, delete, text
from sqlalchemy.orm import sessionmaker
from sqlalchemy.exc import SQLAlchemyError

from feedback_agent.config.constants import STORE_BATCH_SIZE
from feedback_agent.core.exceptions import NotFoundError, StorageError
from feedback_agent.core.models import generate_id
from feedback_agent.storage.database import create_db_engine, make_session_factory, init_db
from feedback_agent.storage.models import DocumentRecord


# Logical collections
AGENTS = "agents"
CHUNKS = "chunks"
ACCESS_SESSIONS = "accessSessions"
AGENT_ACCESS = "agentAccess"
SUBMISSIONS = "submissions"
CONFIG = "config"
MODEL_PROVIDERS = "modelProviders"


def materials_collection(agent_id: str) -> str:
    return f"{AGENTS}/{agent_id}/materials"


class Document(NamedTuple):
    id: str
    data: Dict[str, Any]


def _json_field(name: str, value_type: type):
    """Typed SQL expression for a top-level JSON field of a document."""
    element = DocumentRecord.data[name]
    if value_type is bool:
        return element.as_boolean()
    if value_type is int:
        return element.as_integer()
    if value_type is float:
        return element.as_float()
    return element.as_string()


def _chunked(items: Sequence, size: int) -> Iterable[Sequence]:
    for i in range(0, len(items), size):
        yield items[i:i + size]


class DocumentStore:
    """JSON documents keyed by (collection, id)."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory
        self._write_lock = threading.RLock()

    @classmethod
    def from_url(cls, database_url: str) -> "DocumentStore":
        engine = create_db_engine(database_url)
        init_db(engine)
        return cls(make_session_factory(engine))

    # ==================== READS ====================

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        with self._session_factory() as session:
            record = session.get(DocumentRecord, (collection, doc_id))
            return dict(record.data) if record else None

    def require(self, collection: str, doc_id: str) -> Dict[str, Any]:
        data = self.get(collection, doc_id)
        if data is None:
            raise NotFoundError(f"{collection}/{doc_id} not found")
        return data

    def get_many(self, collection: str, doc_ids: Sequence[str]) -> Dict[str, Dict[str, Any]]:
        if not doc_ids:
            return {}
        with self._session_factory() as session:
            rows = session.execute(
                select(DocumentRecord).where(
                    DocumentRecord.collection == collection,
                    DocumentRecord.doc_id.in_(list(doc_ids)),
                )
            ).scalars().all()
            return {row.doc_id: dict(row.data) for row in rows}

    def list(
        self,
        collection: str,
        where: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
        order_type: type = str
    ) -> List[Document]:
        """
        Documents of a collection matching every ``where`` equality.

        Filtering, ordering and limit run in the database on JSON fields.
        Ordering is by a top-level field compared as ``order_type`` (str, int
        or float); documents missing it sort first (last when descending).
        """
        query = select(DocumentRecord).where(DocumentRecord.collection == collection)
        for name, value in (where or {}).items():
            field = _json_field(name, type(value))
            query = query.where(field.is_(None) if value is None else field == value)
        if order_by:
            field = _json_field(order_by, order_type)
            if descending:
                query = query.order_by(field.is_not(None).desc(), field.desc())
            else:
                query = query.order_by(field.is_not(None), field)
        if limit is not None:
            query = query.limit(limit)

        with self._session_factory() as session:
            rows = session.execute(query).scalars().all()
            return [Document(row.doc_id, dict(row.data)) for row in rows]

    # ==================== WRITES ====================

    def set(self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = False) -> None:
        with self._write_lock, self._session_factory() as session, session.begin():
            self._put(session, collection, doc_id, data, merge)

    def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        """Merge fields into an existing document."""
        with self._write_lock, self._session_factory() as session, session.begin():
            record = session.get(DocumentRecord, (collection, doc_id))
            if record is None:
                raise NotFoundError(f"{collection}/{doc_id} not found")
            record.data = {**record.data, **fields}

    def add(self, collection: str, data: Dict[str, Any]) -> str:
        doc_id = generate_id()
        self.set(collection, doc_id, data)
        return doc_id

    def delete(self, collection: str, doc_id: str) -> bool:
        with self._write_lock, self._session_factory() as session, session.begin():
            result = session.execute(
                delete(DocumentRecord).where(
                    DocumentRecord.collection == collection,
                    DocumentRecord.doc_id == doc_id,
                )
            )
            return result.rowcount > 0

    def transition(
        self,
        collection: str,
        doc_id: str,
        field: str,
        expected: Any,
        updates: Dict[str, Any]
    ) -> bool:
        """
        Apply ``updates`` only if ``field`` currently equals ``expected``.

        Returns False (and writes nothing) when the document is missing or the
        field holds another value.
        """
        with self._write_lock, self._session_factory() as session, session.begin():
            record = session.get(DocumentRecord, (collection, doc_id))
            if record is None or record.data.get(field) != expected:
                return False
            record.data = {**record.data, **updates}
            return True

    def batch_set(
        self,
        collection: str,
        items: Sequence[Tuple[str, Dict[str, Any]]],
        merge: bool = False,
        batch_size: int = STORE_BATCH_SIZE
    ) -> int:
        """Write documents in independently committed batches."""
        written = 0
        for batch in _chunked(list(items), batch_size):
            try:
                with self._write_lock, self._session_factory() as session, session.begin():
                    for doc_id, data in batch:
                        self._put(session, collection, doc_id, data, merge)
            except Exception as e:
                raise StorageError(
                    f"Batch write to {collection} failed after {written} documents",
                    {"collection": collection, "written": written}
                ) from e
            written += len(batch)
        return written

    def batch_delete(
        self,
        collection: str,
        doc_ids: Sequence[str],
        batch_size: int = STORE_BATCH_SIZE
    ) -> int:
        """Delete documents in independently committed batches."""
        deleted = 0
        for batch in _chunked(list(doc_ids), batch_size):
            with self._write_lock, self._session_factory() as session, session.begin():
                session.execute(
                    delete(DocumentRecord).where(
                        DocumentRecord.collection == collection,
                        DocumentRecord.doc_id.in_(list(batch)),
                    )
                )
            deleted += len(batch)
            logger.debug(f"Deleted batch of {len(batch)} from {collection}")
        return deleted

    def ping(self) -> None:
        """Raise StorageError if the database cannot be reached."""
        try:
            with self._session_factory() as session:
                session.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            raise StorageError(f"Database unreachable: {e}") from e

    @staticmethod
    def _put(session, collection: str, doc_id: str, data: Dict[str, Any], merge: bool) -> None:
        record = session.get(DocumentRecord, (collection, doc_id))
        if record is None:
            session.add(DocumentRecord(collection=collection, doc_id=doc_id, data=dict(data)))
        elif merge:
            record.data = {**record.data, **data}
        else:
            record.data = dict(data)
