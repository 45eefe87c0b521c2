import logging

import pytest
import yaml

from schemaflow.architecture.table import SchemaPayload
from schemaflow.canvas.builder import SchemaGraphBuilder
from schemaflow.canvas.store import CanvasStateStore

logger = logging.getLogger(__name__)


@pytest.fixture()
def shop_raw():
    return yaml.safe_load(
        """
        tables:
        -   name: users
            columns:
            -   name: id
                data_type: integer
                is_primary_key: true
            -   name: email
                data_type: varchar(255)
                is_nullable: "NO"
                is_unique: true
        -   name: orders
            columns:
            -   name: id
                type: integer
                isPrimaryKey: true
            -   name: user_id
                type: integer
            -   name: total
                type: numeric(10,2)
                nullable: "YES"
        foreignKeys:
        -   sourceTable: orders
            sourceColumn: user_id
            referencedTable: users
            referencedColumn: id
            constraintName: fk_orders_user_id
            onDelete: CASCADE
        """
    )


@pytest.fixture()
def shop_payload(shop_raw):
    return SchemaPayload.from_backend(shop_raw)


@pytest.fixture()
def shop_graph(shop_payload):
    return SchemaGraphBuilder().build(shop_payload)


@pytest.fixture()
def shop_store(shop_graph):
    return CanvasStateStore(nodes=shop_graph.nodes, edges=shop_graph.edges)
