from __future__ import annotations

import asyncio

from schemaflow.architecture.graph import Position
from schemaflow.architecture.table import Column
from schemaflow.canvas.builder import node_id_for
from schemaflow.canvas.drops import DropState, TableDrop, is_unsaved, new_table_node
from schemaflow.canvas.store import CanvasStateStore
from schemaflow.errors import BackendRejection
from schemaflow.notifications import NotificationCenter
from schemaflow.onto import Severity


class _FakeSource:
    def __init__(self, columns=None, fail_connect=False, fail_columns=False):
        self.columns = columns or []
        self.fail_connect = fail_connect
        self.fail_columns = fail_columns
        self.connected: list[str] = []
        self.on_fetch = None

    async def connect_database(self, database):
        if self.fail_connect:
            raise BackendRejection("database does not exist", status=404)
        self.connected.append(database)
        return {"database": database}

    async def fetch_columns(self, table_name):
        if self.on_fetch is not None:
            self.on_fetch()
        if self.fail_columns:
            raise BackendRejection("relation does not exist", status=404)
        return list(self.columns)


INVOICE_COLUMNS = [
    Column(name="id", type="integer", is_primary_key=True),
    Column(name="amount", type="numeric"),
]


def test_drop_becomes_ready():
    store = CanvasStateStore()
    source = _FakeSource(columns=INVOICE_COLUMNS)
    drop = TableDrop(store, source, "shop", "invoices", Position(x=40, y=60))
    node = asyncio.run(drop.run())

    assert drop.state == DropState.READY
    assert source.connected == ["shop"]
    assert node.id == node_id_for("invoices")
    assert node.data.db == "shop"
    assert node.data.loading is False
    assert [c.name for c in node.data.columns] == ["id", "amount"]
    assert node.data.primary_keys == ["id"]
    assert (node.position.x, node.position.y) == (40, 60)


def test_node_is_loading_while_columns_are_fetched():
    store = CanvasStateStore()
    source = _FakeSource(columns=INVOICE_COLUMNS)
    seen = []
    source.on_fetch = lambda: seen.append(store.get_node(node_id_for("invoices")).data.loading)
    asyncio.run(TableDrop(store, source, "shop", "invoices").run())
    assert seen == [True]


def test_stale_columns_are_discarded():
    store = CanvasStateStore()
    source = _FakeSource(columns=INVOICE_COLUMNS)
    source.on_fetch = lambda: store.remove_node(node_id_for("invoices"))
    drop = TableDrop(store, source, "shop", "invoices")
    assert asyncio.run(drop.run()) is None
    assert drop.state == DropState.DISCARDED
    assert store.nodes == []


def test_connection_failure():
    store = CanvasStateStore()
    drop = TableDrop(store, _FakeSource(fail_connect=True), "nope", "invoices", notifications=NotificationCenter())
    assert asyncio.run(drop.run()) is None
    assert drop.state == DropState.FAILED
    assert store.nodes == []
    assert "database does not exist" in drop.notifications.last.message


def test_column_failure_removes_placeholder():
    store = CanvasStateStore()
    drop = TableDrop(store, _FakeSource(fail_columns=True), "shop", "invoices")
    assert asyncio.run(drop.run()) is None
    assert drop.state == DropState.FAILED
    assert store.nodes == []


def test_duplicate_drop():
    store = CanvasStateStore()
    source = _FakeSource(columns=INVOICE_COLUMNS)
    asyncio.run(TableDrop(store, source, "shop", "invoices").run())
    again = TableDrop(store, source, "shop", "invoices")
    assert asyncio.run(again.run()) is None
    assert again.state == DropState.FAILED
    assert again.notifications.last.severity == Severity.WARNING
    assert len(store.nodes) == 1


def test_concurrent_drops_are_independent():
    store = CanvasStateStore()
    source = _FakeSource(columns=INVOICE_COLUMNS)
    drops = [TableDrop(store, source, "shop", name) for name in ("a", "b", "c")]

    async def run_all():
        return await asyncio.gather(*(d.run() for d in drops))

    nodes = asyncio.run(run_all())
    assert all(n is not None for n in nodes)
    assert {d.state for d in drops} == {DropState.READY}
    assert sorted(store.node_ids) == sorted(node_id_for(n) for n in ("a", "b", "c"))


def test_new_table_node():
    node = new_table_node(Position(x=5, y=5))
    assert node.data.label == "New Table"
    assert node.data.db is None
    (column,) = node.data.columns
    assert (column.name, column.type, column.is_primary_key) == ("id", "SERIAL", True)
    assert node.data.primary_keys == ["id"]
    assert is_unsaved(node)
    assert new_table_node().id != node.id
