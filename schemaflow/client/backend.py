"""Async HTTP client for the schema backend.

Every method is a single awaited round-trip. Failures of any kind (network,
HTTP error status, or a ``{"success": false}`` body) are raised as
:class:`~schemaflow.errors.BackendRejection` carrying the backend's message
verbatim; callers decide how to surface them.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import Field as PydanticField

from schemaflow.architecture.base import ConfigBaseModel
from schemaflow.architecture.table import (
    Column,
    ForeignKeyRecord,
    SchemaPayload,
    Table,
    normalize_foreign_keys,
)
from schemaflow.client.config import BackendConfig
from schemaflow.errors import BackendRejection

logger = logging.getLogger(__name__)


class BackendReply(ConfigBaseModel):
    """Outcome of a mutating call."""

    message: str | None = None
    constraint_name: str | None = PydanticField(default=None)


def _message_of(body: Any, default: str) -> str:
    if isinstance(body, dict):
        for key in ("message", "error", "detail"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
    return default


class BackendClient:
    """Thin async wrapper over the backend's JSON API.

    Args:
        config: Backend settings; read from the environment when omitted
        transport: Optional httpx transport (tests pass a ``MockTransport``)
    """

    def __init__(
        self,
        config: BackendConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config or BackendConfig()
        self._client = httpx.AsyncClient(
            base_url=self.config.url,
            timeout=self.config.timeout,
            headers={"Content-Type": "application/json"},
            transport=transport,
        )

    async def __aenter__(self) -> BackendClient:
        return self

    async def __aexit__(self, exc_type, exc_value, exc_traceback):
        await self.aclose()
        return False

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        logger.debug(f"{method} {path}")
        try:
            response = await self._client.request(method, path, json=json, params=params)
        except httpx.HTTPError as e:
            logger.error(f"{method} {path} failed: {e}", exc_info=True)
            raise BackendRejection(str(e) or "Network error") from e

        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.is_error:
            message = _message_of(body, response.reason_phrase or "Request failed")
            logger.error(f"{method} {path} -> {response.status_code}: {message}")
            raise BackendRejection(message, status=response.status_code)
        if isinstance(body, dict) and body.get("success") is False:
            message = _message_of(body, "Request failed")
            logger.error(f"{method} {path} rejected: {message}")
            raise BackendRejection(message, status=response.status_code)
        return body if isinstance(body, dict) else {"data": body}

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def fetch_schema(self) -> SchemaPayload:
        """Full schema of the active connection (tables and foreign keys)."""
        body = await self._request("GET", "/api/schema")
        data = body.get("data") if isinstance(body.get("data"), dict) else body
        return SchemaPayload.from_backend(data)

    async def list_tables(self) -> list[str | dict[str, Any]]:
        body = await self._request("GET", "/table/list")
        return list(body.get("tables") or [])

    async def fetch_columns(self, table_name: str) -> list[Column]:
        """Ordered columns of one table; malformed column records are skipped."""
        body = await self._request(
            "GET", "/table/columns", params={"tableName": table_name}
        )
        table = Table.model_validate(
            {"name": table_name, "columns": body.get("columns") or []}
        )
        return table.columns

    async def list_foreign_keys(self) -> list[ForeignKeyRecord]:
        body = await self._request("GET", "/foreignKey/listAll")
        records, _ = normalize_foreign_keys(
            list(body.get("foreignKeys") or body.get("foreign_keys") or [])
        )
        return records

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def connect_database(self, database: str) -> dict[str, Any]:
        body = await self._request("POST", "/db/connect", json={"dbName": database})
        logger.info(f"Connected to database '{body.get('database') or database}'")
        return body

    async def create_foreign_key(self, record: ForeignKeyRecord) -> BackendReply:
        """Create a foreign-key constraint.

        Returns:
            BackendReply: The backend's message and, when it reports one, the
            canonical constraint name
        """
        body = await self._request("POST", "/foreignKey/create", json=record.to_dict())
        constraint_name = body.get("constraintName") or body.get("constraint_name")
        logger.info(
            f"Created foreign key {record.source_table}.{record.source_column} -> "
            f"{record.referenced_table}.{record.referenced_column}"
        )
        return BackendReply(message=body.get("message"), constraint_name=constraint_name)

    async def delete_foreign_key(
        self, table_name: str, constraint_name: str
    ) -> BackendReply:
        body = await self._request(
            "POST",
            "/foreignKey/delete",
            json={"tableName": table_name, "constraintName": constraint_name},
        )
        logger.info(f"Deleted foreign key '{constraint_name}' on '{table_name}'")
        return BackendReply(message=body.get("message"))

    async def create_table(
        self, table_name: str, columns: list[Column]
    ) -> BackendReply:
        body = await self._request(
            "POST",
            "/table/create",
            json={"tableName": table_name, "columns": [c.to_dict() for c in columns]},
        )
        logger.info(f"Created table '{table_name}'")
        return BackendReply(message=body.get("message"))
