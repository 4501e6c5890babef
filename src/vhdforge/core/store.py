"""
VHDForge node store.

Durable CRUD for the node tree, the naming sequence counter and the
append-only operation log, backed by SQLite through SQLAlchemy.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text, create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from vhdforge.core.errors import StoreError
from vhdforge.core.logging import get_logger
from vhdforge.core.models import Node, NodeStatus, OperationRecord, utc_now

logger = get_logger(__name__)

Base = declarative_base()


class NodeRow(Base):
    __tablename__ = "nodes"

    id = Column(String, primary_key=True)
    parent_id = Column(String, ForeignKey("nodes.id"), nullable=True, index=True)
    name = Column(String, nullable=False)
    path = Column(String, nullable=False, unique=True)
    bcd_guid = Column(String, nullable=True)
    desc = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    status = Column(String, nullable=False, default=NodeStatus.NORMAL.value)
    boot_files_ready = Column(Boolean, nullable=False, default=False)


class OperationRow(Base):
    __tablename__ = "ops"

    id = Column(String, primary_key=True)
    node_id = Column(String, nullable=True, index=True)
    ts = Column(DateTime(timezone=True), nullable=False)
    action = Column(String, nullable=False)
    result = Column(String, nullable=False)
    detail = Column(Text, nullable=True)


class SettingsRow(Base):
    __tablename__ = "settings"

    id = Column(Integer, primary_key=True)
    seq_counter = Column(Integer, nullable=False, default=0)


def _as_utc(value: datetime) -> datetime:
    # SQLite drops tzinfo on the way back
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_node(row: NodeRow) -> Node:
    return Node(
        id=row.id,
        parent_id=row.parent_id,
        name=row.name,
        path=row.path,
        bcd_guid=row.bcd_guid,
        desc=row.desc,
        created_at=_as_utc(row.created_at),
        status=NodeStatus.from_string(row.status),
        boot_files_ready=bool(row.boot_files_ready),
    )


def _to_record(row: OperationRow) -> OperationRecord:
    return OperationRecord(
        id=row.id,
        node_id=row.node_id,
        timestamp=_as_utc(row.ts),
        action=row.action,
        result=row.result,
        detail=row.detail or "",
    )


class NodeStore(ABC):
    """Storage contract used by the workspace reconciler."""

    @abstractmethod
    def insert_node(self, node: Node) -> None:
        """Persist a new node."""

    @abstractmethod
    def fetch_node(self, node_id: str) -> Node | None:
        """Get one node, or None if absent."""

    @abstractmethod
    def fetch_nodes(self) -> list[Node]:
        """Get every persisted node."""

    @abstractmethod
    def update_node_status(self, node_id: str, status: NodeStatus) -> None:
        """Store a recomputed status."""

    @abstractmethod
    def update_node_bcd(self, node_id: str, bcd_guid: str) -> None:
        """Bind a boot entry and mark boot files ready."""

    @abstractmethod
    def update_node_parent(self, node_id: str, parent_id: str | None) -> None:
        """Relink a node to another parent (or make it a root)."""

    @abstractmethod
    def update_node_desc(self, node_id: str, desc: str | None) -> None:
        """Replace the user-facing description."""

    @abstractmethod
    def clear_node_bcd(self, node_id: str) -> None:
        """Unbind the boot entry."""

    @abstractmethod
    def delete_nodes(self, node_ids: list[str]) -> None:
        """Remove the given nodes in one batch."""

    @abstractmethod
    def next_seq(self) -> int:
        """Advance and return the naming sequence counter."""

    @abstractmethod
    def insert_op(
        self,
        op_id: str,
        node_id: str | None,
        action: str,
        result: str,
        detail: str,
    ) -> None:
        """Append an operation record."""

    @abstractmethod
    def fetch_ops(self, node_id: str | None = None) -> list[OperationRecord]:
        """Get operation records, newest first."""


class SqlNodeStore(NodeStore):
    """NodeStore on top of a SQLAlchemy engine."""

    def __init__(self, url: str) -> None:
        self.url = url
        self._lock = threading.Lock()
        engine_kwargs: dict = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            engine_kwargs["poolclass"] = StaticPool
        try:
            self.engine = create_engine(url, **engine_kwargs)
            Base.metadata.create_all(self.engine)
        except SQLAlchemyError as e:
            raise StoreError(f"cannot open store {url}: {e}") from e
        self._session_factory = sessionmaker(
            bind=self.engine, autocommit=False, autoflush=False, expire_on_commit=False
        )

    @classmethod
    def open(cls, db_path: Path) -> SqlNodeStore:
        """Open (creating if needed) the SQLite store at ``db_path``."""
        db_path.parent.mkdir(parents=True, exist_ok=True)
        return cls(f"sqlite:///{db_path}")

    @classmethod
    def in_memory(cls) -> SqlNodeStore:
        return cls("sqlite://")

    def close(self) -> None:
        self.engine.dispose()

    @contextmanager
    def _session(self) -> Iterator[Session]:
        with self._lock:
            session = self._session_factory()
            try:
                yield session
                session.commit()
            except SQLAlchemyError as e:
                session.rollback()
                logger.error("Store operation failed", error=str(e))
                raise StoreError(f"store error: {e}") from e
            finally:
                session.close()

    def _require(self, session: Session, node_id: str) -> NodeRow:
        row = session.get(NodeRow, node_id)
        if row is None:
            raise StoreError(f"no such node in store: {node_id}")
        return row

    def insert_node(self, node: Node) -> None:
        with self._session() as session:
            session.add(
                NodeRow(
                    id=node.id,
                    parent_id=node.parent_id,
                    name=node.name,
                    path=node.path,
                    bcd_guid=node.bcd_guid,
                    desc=node.desc,
                    created_at=node.created_at,
                    status=node.status.value,
                    boot_files_ready=node.boot_files_ready,
                )
            )

    def fetch_node(self, node_id: str) -> Node | None:
        with self._session() as session:
            row = session.get(NodeRow, node_id)
            return _to_node(row) if row is not None else None

    def fetch_nodes(self) -> list[Node]:
        with self._session() as session:
            rows = session.query(NodeRow).order_by(NodeRow.created_at, NodeRow.id).all()
            return [_to_node(row) for row in rows]

    def update_node_status(self, node_id: str, status: NodeStatus) -> None:
        with self._session() as session:
            self._require(session, node_id).status = status.value

    def update_node_bcd(self, node_id: str, bcd_guid: str) -> None:
        with self._session() as session:
            row = self._require(session, node_id)
            row.bcd_guid = bcd_guid
            row.boot_files_ready = True

    def update_node_parent(self, node_id: str, parent_id: str | None) -> None:
        with self._session() as session:
            self._require(session, node_id).parent_id = parent_id

    def update_node_desc(self, node_id: str, desc: str | None) -> None:
        with self._session() as session:
            self._require(session, node_id).desc = desc

    def clear_node_bcd(self, node_id: str) -> None:
        with self._session() as session:
            row = self._require(session, node_id)
            row.bcd_guid = None
            row.boot_files_ready = False

    def delete_nodes(self, node_ids: list[str]) -> None:
        if not node_ids:
            return
        with self._session() as session:
            # Callers pass descendants before their ancestors
            for node_id in node_ids:
                session.query(NodeRow).filter(NodeRow.id == node_id).delete()
                session.flush()

    def next_seq(self) -> int:
        with self._session() as session:
            settings = session.get(SettingsRow, 1)
            if settings is None:
                settings = SettingsRow(id=1, seq_counter=0)
                session.add(settings)
            settings.seq_counter = (settings.seq_counter or 0) + 1
            return settings.seq_counter

    def insert_op(
        self,
        op_id: str,
        node_id: str | None,
        action: str,
        result: str,
        detail: str,
    ) -> None:
        with self._session() as session:
            session.add(
                OperationRow(
                    id=op_id,
                    node_id=node_id,
                    ts=utc_now(),
                    action=action,
                    result=result,
                    detail=detail,
                )
            )

    def fetch_ops(self, node_id: str | None = None) -> list[OperationRecord]:
        with self._session() as session:
            query = session.query(OperationRow)
            if node_id is not None:
                query = query.filter(OperationRow.node_id == node_id)
            rows = query.order_by(OperationRow.ts.desc()).all()
            return [_to_record(row) for row in rows]
