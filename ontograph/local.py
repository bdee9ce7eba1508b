"""
Local JSON-based graph storage implementation.
"""
import copy
import json
import os
import uuid
from datetime import datetime
from typing import Dict, List, Optional

from .base import GraphStore
from .errors import ConnectionError, NotFoundError
from .models import Edge, Node
from .ontology import OntologyStore
from .query import NodeQuery


class LocalGraphStore(GraphStore):
    """In-memory graph storage, optionally persisted to a JSON file."""

    def __init__(self, ontology: OntologyStore, db_path: Optional[str] = None):
        super().__init__(ontology)
        self.nodes: Dict[str, Node] = {}
        self.edges: Dict[str, Edge] = {}
        self.db_path = db_path

    #
    # CONNECT/DISCONNECT
    #
    def load(self, db_path: str) -> None:
        """Load nodes and edges from a JSON file if it exists."""
        self.db_path = db_path
        if not os.path.exists(db_path):
            return
        try:
            with open(db_path, 'r') as f:
                data = json.load(f)
        except json.JSONDecodeError:
            raise ConnectionError(f"Invalid JSON in {db_path}")
        self.nodes = {n['id']: Node.from_dict(n) for n in data.get('nodes', [])}
        self.edges = {e['id']: Edge.from_dict(e) for e in data.get('edges', [])}

    async def connect(self) -> bool:
        if self.db_path:
            self.load(self.db_path)
        self.connected = True
        return True

    async def disconnect(self) -> bool:
        self._save()
        self.connected = False
        return True

    def _save(self):
        if not self.db_path:
            return
        with open(self.db_path, 'w') as f:
            json.dump({
                'nodes': [n.to_dict() for n in self.nodes.values()],
                'edges': [e.to_dict() for e in self.edges.values()],
            }, f, indent=2)

    #
    # NODE OPERATIONS
    #
    def _find_by_original_id(self, records: Dict, original_data_id: Optional[str],
                             data_source_id: Optional[str]):
        if original_data_id is None or data_source_id is None:
            return None
        for record in records.values():
            if not record.archived and record.original_data_id == original_data_id \
                    and record.data_source_id == data_source_id:
                return record
        return None

    async def _create_or_update_nodes_impl(self, nodes: List[Node], user_id: str) -> List[Node]:
        now = datetime.now()
        saved = []
        for node in nodes:
            existing = self._find_by_original_id(self.nodes, node.original_data_id, node.data_source_id)
            if existing is None and node.id in self.nodes:
                existing = self.nodes[node.id]
            node = copy.deepcopy(node)
            if existing is not None:
                node.id = existing.id
                node.created_at, node.created_by = existing.created_at, existing.created_by
                node.modified_at, node.modified_by = now, user_id
            else:
                node.id = node.id or str(uuid.uuid4())
                node.created_at, node.created_by = now, user_id
                node.modified_at, node.modified_by = now, user_id
            node.relationships = None
            self.nodes[node.id] = node
            saved.append(copy.deepcopy(node))
        self._save()
        return saved

    async def _retrieve_node_impl(self, node_id: str) -> Node:
        node = self.nodes.get(node_id)
        if node is None or node.archived:
            raise NotFoundError(f"node {node_id} not found")
        return copy.deepcopy(node)

    async def _retrieve_node_by_original_id_impl(self, original_data_id: str, data_source_id: str) -> Node:
        node = self._find_by_original_id(self.nodes, original_data_id, data_source_id)
        if node is None:
            raise NotFoundError(f"node with original id {original_data_id} not found in data source {data_source_id}")
        return copy.deepcopy(node)

    async def _archive_node_impl(self, node_id: str, user_id: str) -> bool:
        node = self.nodes.get(node_id)
        if node is None or node.archived:
            return False
        node.archived = True
        node.deleted_at = datetime.now()
        node.modified_by = user_id
        for edge in self.edges.values():
            if node_id in (edge.origin_id, edge.destination_id):
                edge.archived = True
        self._save()
        return True

    async def _permanently_delete_node_impl(self, node_id: str) -> bool:
        if node_id not in self.nodes:
            return False
        del self.nodes[node_id]
        self.edges = {edge_id: edge for edge_id, edge in self.edges.items()
                      if node_id not in (edge.origin_id, edge.destination_id)}
        self._save()
        return True

    def _live_nodes(self) -> List[Node]:
        return [n for n in self.nodes.values() if not n.archived]

    async def _list_nodes_impl(self, query: NodeQuery) -> List[Node]:
        return [copy.deepcopy(n) for n in query.apply(self._live_nodes())]

    async def _count_nodes_impl(self, query: NodeQuery) -> int:
        return sum(1 for n in self._live_nodes() if query.matches(n))

    #
    # EDGE OPERATIONS
    #
    async def _create_or_update_edges_impl(self, edges: List[Edge], user_id: str) -> List[Edge]:
        now = datetime.now()
        saved = []
        for edge in edges:
            existing = self._find_by_original_id(self.edges, edge.original_data_id, edge.data_source_id)
            if existing is None and edge.id in self.edges:
                existing = self.edges[edge.id]
            edge = copy.deepcopy(edge)
            if existing is not None:
                edge.id = existing.id
                edge.created_at, edge.created_by = existing.created_at, existing.created_by
            else:
                edge.id = edge.id or str(uuid.uuid4())
                edge.created_at, edge.created_by = now, user_id
            edge.modified_at, edge.modified_by = now, user_id
            self.edges[edge.id] = edge
            saved.append(copy.deepcopy(edge))
        self._save()
        return saved

    async def _archive_edge_impl(self, edge_id: str, user_id: str) -> bool:
        edge = self.edges.get(edge_id)
        if edge is None or edge.archived:
            return False
        edge.archived = True
        edge.modified_at, edge.modified_by = datetime.now(), user_id
        self._save()
        return True

    async def _find_edges_by_relationship_impl(self, origin: str, relationship: str, destination: str,
                                               container_id: Optional[str]) -> List[Edge]:
        return [copy.deepcopy(e) for e in self.edges.values()
                if not e.archived
                and e.origin_metatype_name == origin
                and e.relationship_name == relationship
                and e.destination_metatype_name == destination
                and (container_id is None or e.container_id == container_id)]

    async def _edges_for_nodes_impl(self, node_ids: List[str]) -> List[Edge]:
        wanted = set(node_ids)
        return [copy.deepcopy(e) for e in self.edges.values()
                if not e.archived and (e.origin_id in wanted or e.destination_id in wanted)]
