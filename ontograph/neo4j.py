"""
Neo4j graph storage implementation.
"""
import json
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from neo4j import AsyncGraphDatabase
from neo4j.exceptions import DriverError, Neo4jError, ServiceUnavailable

from .base import GraphStore
from .errors import ConnectionError, NotFoundError, QueryError
from .models import Edge, Node
from .ontology import OntologyStore
from .query import PROPERTY_PREFIX, NodeQuery

_JSON_FIELDS = ('properties', 'metadata')


def _is_scalar(value: Any) -> bool:
    return value is None or isinstance(value, (str, int, float, bool))


def _to_row(record: Any) -> Dict[str, Any]:
    """Flatten a node or edge into Neo4j-storable properties.

    Properties and metadata are kept whole as JSON. Scalar properties and
    lists of scalars are also copied under a prefix so queries can filter on
    them.
    """
    row = {}
    for name, value in record.to_dict().items():
        if name == 'relationships':
            continue
        if name in _JSON_FIELDS:
            row[f"{name}_json"] = json.dumps(value or {})
        elif value is not None:
            row[name] = value
    for name, value in (record.properties or {}).items():
        if _is_scalar(value) or (isinstance(value, list) and all(_is_scalar(v) for v in value)):
            row[PROPERTY_PREFIX + name] = value
    return row


def _from_row(cls, row: Dict[str, Any]):
    data = {k: v for k, v in row.items() if not k.startswith(PROPERTY_PREFIX)}
    for name in _JSON_FIELDS:
        raw = data.pop(f"{name}_json", None)
        data[name] = json.loads(raw) if raw else {}
    return cls.from_dict(data)


class Neo4jGraphStore(GraphStore):
    """Graph storage on Neo4j through the async driver."""

    def __init__(self, ontology: OntologyStore, uri: str, username: str, password: Optional[str],
                 database: Optional[str] = None):
        super().__init__(ontology)
        self.uri = uri
        self.auth = (username, password)
        self.database = database
        self.driver = None

    async def connect(self) -> bool:
        try:
            self.driver = AsyncGraphDatabase.driver(self.uri, auth=self.auth)
            await self.driver.verify_connectivity()
            self.connected = True
            return True
        except (ServiceUnavailable, Neo4jError, OSError) as e:
            self.driver = None
            raise ConnectionError(f"Failed to connect to Neo4j: {str(e)}")

    async def disconnect(self) -> bool:
        if self.driver:
            await self.driver.close()
            self.driver = None
        self.connected = False
        return True

    async def _run(self, cypher: str, **params) -> List[Dict[str, Any]]:
        try:
            async with self.driver.session(database=self.database) as session:
                result = await session.run(cypher, params)
                return [record.data() async for record in result]
        except (Neo4jError, DriverError) as e:
            raise QueryError(f"Neo4j query failed: {str(e)}")

    #
    # NODE OPERATIONS
    #
    async def _existing_node(self, node: Node) -> Optional[Node]:
        if node.original_data_id is not None and node.data_source_id is not None:
            rows = await self._run(
                "MATCH (n:Node {original_data_id: $original_data_id, data_source_id: $data_source_id}) "
                "WHERE coalesce(n.archived, false) = false RETURN n LIMIT 1",
                original_data_id=node.original_data_id, data_source_id=node.data_source_id)
            if rows:
                return _from_row(Node, rows[0]['n'])
        if node.id:
            rows = await self._run("MATCH (n:Node {id: $id}) RETURN n", id=node.id)
            if rows:
                return _from_row(Node, rows[0]['n'])
        return None

    async def _create_or_update_nodes_impl(self, nodes: List[Node], user_id: str) -> List[Node]:
        now = datetime.now()
        saved = []
        for node in nodes:
            existing = await self._existing_node(node)
            if existing is not None:
                node.id = existing.id
                node.created_at, node.created_by = existing.created_at, existing.created_by
            else:
                node.id = node.id or str(uuid.uuid4())
                node.created_at, node.created_by = now, user_id
            node.modified_at, node.modified_by = now, user_id
            rows = await self._run("MERGE (n:Node {id: $id}) SET n = $row RETURN n",
                                   id=node.id, row=_to_row(node))
            saved.append(_from_row(Node, rows[0]['n']))
        return saved

    async def _retrieve_node_impl(self, node_id: str) -> Node:
        rows = await self._run(
            "MATCH (n:Node {id: $id}) WHERE coalesce(n.archived, false) = false RETURN n", id=node_id)
        if not rows:
            raise NotFoundError(f"node {node_id} not found")
        return _from_row(Node, rows[0]['n'])

    async def _retrieve_node_by_original_id_impl(self, original_data_id: str, data_source_id: str) -> Node:
        rows = await self._run(
            "MATCH (n:Node {original_data_id: $original_data_id, data_source_id: $data_source_id}) "
            "WHERE coalesce(n.archived, false) = false RETURN n LIMIT 1",
            original_data_id=original_data_id, data_source_id=data_source_id)
        if not rows:
            raise NotFoundError(f"node with original id {original_data_id} not found in data source {data_source_id}")
        return _from_row(Node, rows[0]['n'])

    async def _archive_node_impl(self, node_id: str, user_id: str) -> bool:
        rows = await self._run(
            "MATCH (n:Node {id: $id}) WHERE coalesce(n.archived, false) = false "
            "SET n.archived = true, n.deleted_at = $now, n.modified_by = $user_id "
            "WITH n OPTIONAL MATCH (n)-[r:EDGE]-() SET r.archived = true "
            "RETURN count(DISTINCT n) AS count",
            id=node_id, now=datetime.now().isoformat(), user_id=user_id)
        return bool(rows and rows[0]['count'])

    async def _permanently_delete_node_impl(self, node_id: str) -> bool:
        rows = await self._run(
            "MATCH (n:Node {id: $id}) WITH n, n.id AS id DETACH DELETE n RETURN count(id) AS count", id=node_id)
        return bool(rows and rows[0]['count'])

    async def _list_nodes_impl(self, query: NodeQuery) -> List[Node]:
        where, params = query.to_cypher('n')
        cypher = f"MATCH (n:Node) WHERE {where} RETURN n ORDER BY n.created_at, n.id"
        if query.offset:
            cypher += " SKIP $skip"
            params['skip'] = query.offset
        if query.limit is not None:
            cypher += " LIMIT $limit"
            params['limit'] = query.limit
        rows = await self._run(cypher, **params)
        return [_from_row(Node, row['n']) for row in rows]

    async def _count_nodes_impl(self, query: NodeQuery) -> int:
        where, params = query.to_cypher('n')
        rows = await self._run(f"MATCH (n:Node) WHERE {where} RETURN count(n) AS count", **params)
        return rows[0]['count'] if rows else 0

    #
    # EDGE OPERATIONS
    #
    async def _create_or_update_edges_impl(self, edges: List[Edge], user_id: str) -> List[Edge]:
        now = datetime.now()
        saved = []
        for edge in edges:
            existing = []
            if edge.original_data_id is not None and edge.data_source_id is not None:
                existing = await self._run(
                    "MATCH ()-[r:EDGE {original_data_id: $original_data_id, data_source_id: $data_source_id}]->() "
                    "WHERE coalesce(r.archived, false) = false RETURN r LIMIT 1",
                    original_data_id=edge.original_data_id, data_source_id=edge.data_source_id)
            if existing:
                found = _from_row(Edge, existing[0]['r'])
                edge.id = found.id
                edge.created_at, edge.created_by = found.created_at, found.created_by
            else:
                edge.id = edge.id or str(uuid.uuid4())
                edge.created_at, edge.created_by = now, user_id
            edge.modified_at, edge.modified_by = now, user_id
            rows = await self._run(
                "MATCH (o:Node {id: $origin_id}), (d:Node {id: $destination_id}) "
                "OPTIONAL MATCH ()-[old:EDGE {id: $id}]->() DELETE old "
                "CREATE (o)-[r:EDGE]->(d) SET r = $row RETURN r",
                origin_id=edge.origin_id, destination_id=edge.destination_id, id=edge.id, row=_to_row(edge))
            saved.append(_from_row(Edge, rows[0]['r']))
        return saved

    async def _archive_edge_impl(self, edge_id: str, user_id: str) -> bool:
        rows = await self._run(
            "MATCH ()-[r:EDGE {id: $id}]->() WHERE coalesce(r.archived, false) = false "
            "SET r.archived = true, r.modified_at = $now, r.modified_by = $user_id RETURN count(r) AS count",
            id=edge_id, now=datetime.now().isoformat(), user_id=user_id)
        return bool(rows and rows[0]['count'])

    async def _find_edges_by_relationship_impl(self, origin: str, relationship: str, destination: str,
                                               container_id: Optional[str]) -> List[Edge]:
        cypher = ("MATCH ()-[r:EDGE]->() WHERE coalesce(r.archived, false) = false "
                  "AND r.origin_metatype_name = $origin AND r.relationship_name = $relationship "
                  "AND r.destination_metatype_name = $destination")
        params = {'origin': origin, 'relationship': relationship, 'destination': destination}
        if container_id is not None:
            cypher += " AND r.container_id = $container_id"
            params['container_id'] = container_id
        rows = await self._run(cypher + " RETURN r ORDER BY r.id", **params)
        return [_from_row(Edge, row['r']) for row in rows]

    async def _edges_for_nodes_impl(self, node_ids: List[str]) -> List[Edge]:
        rows = await self._run(
            "MATCH ()-[r:EDGE]->() WHERE coalesce(r.archived, false) = false "
            "AND (r.origin_id IN $ids OR r.destination_id IN $ids) RETURN r",
            ids=node_ids)
        return [_from_row(Edge, row['r']) for row in rows]
