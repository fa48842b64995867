"""Connection -> database -> table tree for schema browsing."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from sqls_next_models import ConnectionConfig, DatabaseDriver

from sqls_next.client import SqlsClient
from sqls_next.connections import ConnectionConfigStore


class NodeType(str, Enum):
    CONNECTION = "conn"
    DATABASE = "database"
    TABLE = "table"


@dataclass
class TreeNode:
    """One node of the schema tree."""

    key: str
    node_type: NodeType
    config: ConnectionConfig
    children_type: NodeType | None = None
    database: str | None = None
    selected: bool = False

    @property
    def expandable(self) -> bool:
        return self.children_type is not None


class DatabaseTree:
    """Lazily expands connections into databases and tables.

    SQLite connections have no database level, so they expand straight to
    tables.
    """

    def __init__(self, store: ConnectionConfigStore, client: SqlsClient):
        self._store = store
        self._client = client

    async def get_children(self, node: TreeNode | None = None) -> list[TreeNode]:
        if node is None:
            return self._connection_nodes()
        if node.children_type == NodeType.DATABASE:
            return await self._database_nodes(node.config)
        if node.children_type == NodeType.TABLE:
            database = node.key if node.node_type == NodeType.DATABASE else None
            return await self._table_nodes(node.config, database)
        return []

    def _connection_nodes(self) -> list[TreeNode]:
        nodes = []
        for entry in self._store.list_all():
            config = entry.config
            children_type = (
                NodeType.TABLE if config.driver == DatabaseDriver.SQLITE else NodeType.DATABASE
            )
            nodes.append(
                TreeNode(
                    key=config.alias,
                    node_type=NodeType.CONNECTION,
                    config=config,
                    children_type=children_type,
                    selected=entry.selected,
                )
            )
        return nodes

    async def _database_nodes(self, config: ConnectionConfig) -> list[TreeNode]:
        databases = await self._client.get_databases(config.alias)
        return [
            TreeNode(
                key=database,
                node_type=NodeType.DATABASE,
                config=config,
                children_type=NodeType.TABLE,
                database=database,
            )
            for database in databases
        ]

    async def _table_nodes(self, config: ConnectionConfig, database: str | None) -> list[TreeNode]:
        tables = await self._client.get_tables(config.alias, database)
        return [
            TreeNode(key=table, node_type=NodeType.TABLE, config=config, database=database)
            for table in tables
        ]
