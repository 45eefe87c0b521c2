"""Tests for schema graph construction."""

import logging

from schemaflow.architecture.table import SchemaPayload, Table
from schemaflow.canvas.builder import (
    GridConfig,
    SchemaGraphBuilder,
    build_edges,
    build_nodes,
    node_id_for,
)

logger = logging.getLogger(__name__)


def test_bulk_load_users_orders(shop_graph):
    assert len(shop_graph.nodes) == 2
    assert len(shop_graph.edges) == 1
    assert shop_graph.issues == []

    edge = shop_graph.edges[0]
    assert edge.id == "fk-fk_orders_user_id"
    assert edge.source == node_id_for("orders")
    assert edge.target == node_id_for("users")
    assert edge.source_handle == "col-1-right"
    assert edge.target_handle == "col-0-left"
    assert edge.data.on_delete == "CASCADE"
    assert edge.data.on_update == "RESTRICT"


def test_nodes_carry_keys(shop_graph):
    by_label = {n.data.label: n for n in shop_graph.nodes}
    assert by_label["users"].data.primary_keys == ["id"]
    fk = by_label["orders"].data.foreign_keys["user_id"]
    assert fk.referenced_table == "users"
    assert fk.referenced_column == "id"
    assert by_label["users"].data.foreign_keys == {}


def test_node_ids_do_not_depend_on_order(shop_payload):
    forward = build_nodes(shop_payload.tables)
    backward = build_nodes(list(reversed(shop_payload.tables)))
    assert {n.id for n in forward} == {n.id for n in backward}


def test_grid_positions():
    grid = GridConfig()
    nodes = SchemaGraphBuilder(grid).build_nodes([f"t{i}" for i in range(5)])
    assert [(n.position.x, n.position.y) for n in nodes] == [
        (100, 100),
        (480, 100),
        (860, 100),
        (100, 420),
        (480, 420),
    ]


def test_dangling_foreign_key_is_dropped():
    nodes = build_nodes(
        [
            Table(name="users", columns=[{"name": "id"}]),
            Table(name="orders", columns=[{"name": "user_id"}]),
        ]
    )
    issues = []
    edges = SchemaGraphBuilder().build_edges(
        [
            {
                "sourceTable": "orders",
                "sourceColumn": "user_id",
                "referencedTable": "users",
                "referencedColumn": "uuid",
            }
        ],
        nodes,
        issues=issues,
    )
    assert edges == []
    assert len(issues) == 1
    assert "users.uuid" in issues[0].message


def test_unknown_table_is_dropped(shop_graph):
    edges = build_edges(
        [
            {
                "sourceTable": "payments",
                "sourceColumn": "order_id",
                "referencedTable": "orders",
                "referencedColumn": "id",
            }
        ],
        shop_graph.nodes,
    )
    assert edges == []


def test_malformed_records_are_skipped(shop_raw):
    shop_raw["tables"].append({"columns": [{"name": "x"}]})
    shop_raw["foreignKeys"].append({"sourceTable": "orders"})
    result = SchemaGraphBuilder().build(shop_raw)
    assert len(result.nodes) == 2
    assert len(result.edges) == 1
    assert {i.kind for i in result.issues} == {"table", "foreign_key"}


def test_duplicate_foreign_keys_collapse(shop_raw):
    shop_raw["foreignKeys"].append(dict(shop_raw["foreignKeys"][0]))
    result = SchemaGraphBuilder().build(shop_raw)
    assert len(result.edges) == 1


def test_self_reference_is_kept_on_node_only():
    result = SchemaGraphBuilder().build(
        {
            "tables": [
                {"name": "employees", "columns": [{"name": "id"}, {"name": "manager_id"}]}
            ],
            "foreignKeys": [
                {
                    "sourceTable": "employees",
                    "sourceColumn": "manager_id",
                    "referencedTable": "employees",
                    "referencedColumn": "id",
                }
            ],
        }
    )
    assert result.edges == []
    assert [i.kind for i in result.issues] == ["self_reference"]
    target = result.nodes[0].data.foreign_keys["manager_id"]
    assert target.referenced_table == "employees"


def test_round_trip_reproduces_records(shop_payload):
    builder = SchemaGraphBuilder()
    nodes = builder.build_nodes(shop_payload.tables)
    edges = builder.build_edges(shop_payload.foreign_keys, nodes)
    extracted = builder.extract_foreign_keys(nodes, edges)
    assert {fk.key for fk in extracted} == {fk.key for fk in shop_payload.foreign_keys}
    assert extracted[0].on_delete == shop_payload.foreign_keys[0].on_delete


def test_build_does_not_mutate_input(shop_payload):
    before = shop_payload.model_dump()
    SchemaGraphBuilder().build(shop_payload)
    assert shop_payload.model_dump() == before


def test_payload_model_is_accepted_directly(shop_raw):
    assert len(SchemaGraphBuilder().build(SchemaPayload.from_backend(shop_raw)).edges) == 1
