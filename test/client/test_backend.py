"""Tests for the backend client against a mocked HTTP transport."""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from schemaflow.architecture.table import Column, ForeignKeyRecord
from schemaflow.client import BackendClient, BackendConfig
from schemaflow.errors import BackendRejection
from schemaflow.onto import ReferentialAction


def _client(routes, calls=None):
    def handler(request: httpx.Request) -> httpx.Response:
        if calls is not None:
            body = json.loads(request.content) if request.content else None
            calls.append((request.method, request.url.path, dict(request.url.params), body))
        route = routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404, json={"message": "not found"})
        if isinstance(route, Exception):
            raise route
        status, payload = route
        return httpx.Response(status, json=payload)

    return BackendClient(
        BackendConfig(url="http://backend.test"), transport=httpx.MockTransport(handler)
    )


def _run(client, coro_factory):
    async def main():
        async with client:
            return await coro_factory(client)

    return asyncio.run(main())


def test_fetch_schema_unwraps_data(shop_raw):
    client = _client({("GET", "/api/schema"): (200, {"success": True, "data": shop_raw})})
    payload = _run(client, lambda c: c.fetch_schema())
    assert [t.name for t in payload.tables] == ["users", "orders"]
    assert payload.foreign_keys[0].on_delete == ReferentialAction.CASCADE


def test_fetch_schema_without_envelope(shop_raw):
    client = _client({("GET", "/api/schema"): (200, shop_raw)})
    payload = _run(client, lambda c: c.fetch_schema())
    assert len(payload.foreign_keys) == 1


def test_fetch_columns_sends_table_name():
    calls = []
    client = _client(
        {
            ("GET", "/table/columns"): (
                200,
                {"columns": [{"name": "id", "data_type": "integer"}, {"type": "text"}]},
            )
        },
        calls,
    )
    columns = _run(client, lambda c: c.fetch_columns("users"))
    assert [c.name for c in columns] == ["id"]
    assert calls[0][2] == {"tableName": "users"}


def test_list_tables_and_foreign_keys():
    client = _client(
        {
            ("GET", "/table/list"): (200, {"tables": ["users", {"name": "orders"}]}),
            ("GET", "/foreignKey/listAll"): (
                200,
                {
                    "foreignKeys": [
                        {
                            "table_name": "orders",
                            "column_name": "user_id",
                            "foreign_table_name": "users",
                            "foreign_column_name": "id",
                        },
                        {"table_name": "broken"},
                    ]
                },
            ),
        }
    )

    async def both(c):
        return await c.list_tables(), await c.list_foreign_keys()

    tables, fks = _run(client, both)
    assert tables == ["users", {"name": "orders"}]
    assert [fk.key for fk in fks] == [("orders", "user_id", "users", "id")]


def test_create_foreign_key_payload():
    calls = []
    client = _client(
        {("POST", "/foreignKey/create"): (200, {"success": True, "message": "created"})},
        calls,
    )
    record = ForeignKeyRecord(
        source_table="orders",
        source_column="user_id",
        referenced_table="users",
        referenced_column="id",
        constraint_name="fk_orders_user_id",
        on_delete=ReferentialAction.SET_NULL,
    )
    reply = _run(client, lambda c: c.create_foreign_key(record))
    assert reply.message == "created"
    assert reply.constraint_name is None
    assert calls[0][3] == {
        "sourceTable": "orders",
        "sourceColumn": "user_id",
        "referencedTable": "users",
        "referencedColumn": "id",
        "constraintName": "fk_orders_user_id",
        "onDelete": "SET NULL",
        "onUpdate": "RESTRICT",
    }


def test_create_foreign_key_canonical_name():
    client = _client(
        {("POST", "/foreignKey/create"): (200, {"constraintName": "orders_user_id_fkey"})}
    )
    record = ForeignKeyRecord(
        source_table="orders",
        source_column="user_id",
        referenced_table="users",
        referenced_column="id",
    )
    reply = _run(client, lambda c: c.create_foreign_key(record))
    assert reply.constraint_name == "orders_user_id_fkey"


def test_success_false_is_rejection():
    client = _client(
        {
            ("POST", "/foreignKey/delete"): (
                200,
                {"success": False, "message": "constraint does not exist"},
            )
        }
    )
    with pytest.raises(BackendRejection) as excinfo:
        _run(client, lambda c: c.delete_foreign_key("orders", "fk_x"))
    assert excinfo.value.message == "constraint does not exist"
    assert excinfo.value.status == 200


def test_http_error_is_rejection():
    client = _client({("POST", "/db/connect"): (500, {"error": "connection refused"})})
    with pytest.raises(BackendRejection) as excinfo:
        _run(client, lambda c: c.connect_database("shop"))
    assert excinfo.value.message == "connection refused"
    assert excinfo.value.status == 500
    assert not excinfo.value.is_network_error


def test_network_error_is_rejection():
    client = _client({("GET", "/table/list"): httpx.ConnectError("unreachable")})
    with pytest.raises(BackendRejection) as excinfo:
        _run(client, lambda c: c.list_tables())
    assert excinfo.value.is_network_error


def test_connect_and_create_table_payloads():
    calls = []
    client = _client(
        {
            ("POST", "/db/connect"): (200, {"database": "shop"}),
            ("POST", "/table/create"): (200, {"success": True, "message": "Table created"}),
        },
        calls,
    )

    async def both(c):
        await c.connect_database("shop")
        return await c.create_table("invoices", [Column(name="id", type="SERIAL", is_primary_key=True)])

    reply = _run(client, both)
    assert reply.message == "Table created"
    assert calls[0][3] == {"dbName": "shop"}
    assert calls[1][3] == {
        "tableName": "invoices",
        "columns": [
            {
                "name": "id",
                "type": "SERIAL",
                "nullable": False,
                "isPrimaryKey": True,
                "isUnique": False,
            }
        ],
    }
