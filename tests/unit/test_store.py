"""
Tests for vhdforge.core.store module.
"""

from datetime import timedelta
from pathlib import Path

import pytest

from vhdforge.core.errors import StoreError
from vhdforge.core.models import Node, NodeStatus, utc_now
from vhdforge.core.store import SqlNodeStore


def make_node(node_id: str, parent_id: str | None = None, **kwargs) -> Node:
    return Node(
        id=node_id,
        name=node_id,
        path=f"D:\\vhd\\{node_id}.vhdx",
        parent_id=parent_id,
        **kwargs,
    )


@pytest.fixture
def memory_store() -> SqlNodeStore:
    node_store = SqlNodeStore.in_memory()
    yield node_store
    node_store.close()


class TestNodes:
    """Tests for node CRUD."""

    def test_insert_and_fetch(self, memory_store: SqlNodeStore) -> None:
        node = make_node("a", desc="base", bcd_guid="{g}", boot_files_ready=True)
        memory_store.insert_node(node)

        fetched = memory_store.fetch_node("a")

        assert fetched is not None
        assert fetched.path == node.path
        assert fetched.desc == "base"
        assert fetched.bcd_guid == "{g}"
        assert fetched.boot_files_ready is True
        assert fetched.status == NodeStatus.NORMAL
        assert fetched.created_at.tzinfo is not None

    def test_fetch_missing(self, memory_store: SqlNodeStore) -> None:
        assert memory_store.fetch_node("nope") is None

    def test_fetch_nodes_ordered_by_creation(self, memory_store: SqlNodeStore) -> None:
        now = utc_now()
        memory_store.insert_node(make_node("late", created_at=now))
        memory_store.insert_node(make_node("early", created_at=now - timedelta(hours=1)))

        assert [n.id for n in memory_store.fetch_nodes()] == ["early", "late"]

    def test_duplicate_id_raises_store_error(self, memory_store: SqlNodeStore) -> None:
        memory_store.insert_node(make_node("a"))
        with pytest.raises(StoreError):
            memory_store.insert_node(make_node("a"))

    def test_duplicate_path_raises_store_error(self, memory_store: SqlNodeStore) -> None:
        memory_store.insert_node(make_node("a"))
        clash = Node(id="b", name="b", path=make_node("a").path)

        with pytest.raises(StoreError):
            memory_store.insert_node(clash)

        assert [n.id for n in memory_store.fetch_nodes()] == ["a"]

    def test_updates(self, memory_store: SqlNodeStore) -> None:
        memory_store.insert_node(make_node("a"))
        memory_store.insert_node(make_node("b"))

        memory_store.update_node_status("b", NodeStatus.MISSING_PARENT)
        memory_store.update_node_parent("b", "a")
        memory_store.update_node_desc("b", "dev box")
        memory_store.update_node_bcd("b", "{guid}")

        node = memory_store.fetch_node("b")
        assert node.status == NodeStatus.MISSING_PARENT
        assert node.parent_id == "a"
        assert node.desc == "dev box"
        assert node.bcd_guid == "{guid}"
        assert node.boot_files_ready is True

    def test_clear_bcd(self, memory_store: SqlNodeStore) -> None:
        memory_store.insert_node(make_node("a", bcd_guid="{g}", boot_files_ready=True))

        memory_store.clear_node_bcd("a")

        node = memory_store.fetch_node("a")
        assert node.bcd_guid is None
        assert node.boot_files_ready is False

    def test_update_unknown_node(self, memory_store: SqlNodeStore) -> None:
        with pytest.raises(StoreError):
            memory_store.update_node_status("ghost", NodeStatus.ERROR)

    def test_delete_nodes_children_first(self, memory_store: SqlNodeStore) -> None:
        memory_store.insert_node(make_node("a"))
        memory_store.insert_node(make_node("b", parent_id="a"))
        memory_store.insert_node(make_node("other"))

        memory_store.delete_nodes(["b", "a"])

        assert [n.id for n in memory_store.fetch_nodes()] == ["other"]

    def test_delete_nothing(self, memory_store: SqlNodeStore) -> None:
        memory_store.delete_nodes([])


class TestSequenceAndOps:
    """Tests for the sequence counter and the operation log."""

    def test_next_seq_starts_at_one(self, memory_store: SqlNodeStore) -> None:
        assert memory_store.next_seq() == 1
        assert memory_store.next_seq() == 2
        assert memory_store.next_seq() == 3

    def test_ops_newest_first(self, memory_store: SqlNodeStore) -> None:
        memory_store.insert_op("1", "a", "create_base", "ok", "")
        memory_store.insert_op("2", "b", "create_diff", "error", "diskpart failed")
        memory_store.insert_op("3", None, "import", "ok", "path=x")

        records = memory_store.fetch_ops()
        assert [r.id for r in records][0] == "3"
        assert {r.id for r in records} == {"1", "2", "3"}

        (record,) = memory_store.fetch_ops("b")
        assert record.action == "create_diff"
        assert record.success is False
        assert record.detail == "diskpart failed"


class TestPersistence:
    def test_reopen_file_store(self, temp_dir: Path) -> None:
        db_path = temp_dir / "meta" / "state.db"
        first = SqlNodeStore.open(db_path)
        first.insert_node(make_node("a"))
        first.next_seq()
        first.close()

        second = SqlNodeStore.open(db_path)
        try:
            assert second.fetch_node("a") is not None
            assert second.next_seq() == 2
        finally:
            second.close()
