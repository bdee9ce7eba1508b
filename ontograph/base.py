"""
Base abstract class for graph storage implementations.
"""
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from .errors import ConnectionError, ValidationError
from .models import Edge, Node
from .monitoring import PerformanceMonitor
from .ontology import OntologyStore, map_properties, validate_properties
from .query import NodeQuery


class GraphStore(ABC):
    """Abstract base class for graph storage.

    Public methods check the connection, validate against the ontology and
    record timings. Backends implement the ``_..._impl`` methods.
    """

    def __init__(self, ontology: OntologyStore):
        self.ontology = ontology
        self.connected: bool = False
        self._monitor = PerformanceMonitor()

    #
    # Connection
    #
    @abstractmethod
    async def connect(self) -> bool:
        """Connect to the storage backend."""
        pass

    @abstractmethod
    async def disconnect(self) -> bool:
        """Disconnect from the storage backend."""
        pass

    def _check_connected(self):
        if not self.connected:
            raise ConnectionError("Graph store not connected")

    #
    # NODE OPERATIONS
    #
    async def _prepare_node(self, node: Node) -> Node:
        if not node.container_id or not node.metatype_id:
            raise ValidationError("node container_id and metatype_id are required")
        metatype = await self.ontology.retrieve_metatype(node.metatype_id)
        if metatype.container_id != node.container_id:
            raise ValidationError(
                f"metatype {node.metatype_id} does not belong to container {node.container_id}")
        node.metatype_name = metatype.name
        node.properties = map_properties(metatype, node.properties or {})
        validate_properties(metatype, node.properties)
        return node

    async def create_or_update_nodes(self, nodes: List[Node], user_id: str) -> List[Node]:
        """Validate and upsert nodes by their ``(original_data_id, data_source_id)`` key."""
        self._check_connected()
        prepared = [await self._prepare_node(node) for node in nodes]
        with self._monitor.track("create_or_update_nodes"):
            return await self._create_or_update_nodes_impl(prepared, user_id)

    @abstractmethod
    async def _create_or_update_nodes_impl(self, nodes: List[Node], user_id: str) -> List[Node]:
        pass

    async def retrieve_node(self, node_id: str) -> Node:
        self._check_connected()
        with self._monitor.track("retrieve_node"):
            return await self._retrieve_node_impl(node_id)

    @abstractmethod
    async def _retrieve_node_impl(self, node_id: str) -> Node:
        pass

    async def retrieve_node_by_original_id(self, original_data_id: str, data_source_id: str) -> Node:
        self._check_connected()
        with self._monitor.track("retrieve_node_by_original_id"):
            return await self._retrieve_node_by_original_id_impl(original_data_id, data_source_id)

    @abstractmethod
    async def _retrieve_node_by_original_id_impl(self, original_data_id: str, data_source_id: str) -> Node:
        pass

    async def archive_node(self, node_id: str, user_id: str) -> bool:
        self._check_connected()
        with self._monitor.track("archive_node"):
            return await self._archive_node_impl(node_id, user_id)

    @abstractmethod
    async def _archive_node_impl(self, node_id: str, user_id: str) -> bool:
        pass

    async def permanently_delete_node(self, node_id: str) -> bool:
        """Remove a node and every edge touching it."""
        self._check_connected()
        with self._monitor.track("permanently_delete_node"):
            return await self._permanently_delete_node_impl(node_id)

    @abstractmethod
    async def _permanently_delete_node_impl(self, node_id: str) -> bool:
        pass

    async def list_nodes(self, query: NodeQuery) -> List[Node]:
        self._check_connected()
        with self._monitor.track("list_nodes"):
            nodes = await self._list_nodes_impl(query)
            if query.load_relationships and nodes:
                await self._attach_relationships(nodes)
        return nodes

    @abstractmethod
    async def _list_nodes_impl(self, query: NodeQuery) -> List[Node]:
        pass

    async def count_nodes(self, query: NodeQuery) -> int:
        self._check_connected()
        with self._monitor.track("count_nodes"):
            return await self._count_nodes_impl(query)

    @abstractmethod
    async def _count_nodes_impl(self, query: NodeQuery) -> int:
        pass

    async def _attach_relationships(self, nodes: List[Node]):
        edges = await self._edges_for_nodes_impl([n.id for n in nodes])
        by_node: Dict[str, List[str]] = {n.id: [] for n in nodes}
        for edge in edges:
            name = f"{edge.origin_metatype_name} : {edge.relationship_name} : {edge.destination_metatype_name}"
            for node_id in (edge.origin_id, edge.destination_id):
                if node_id in by_node and name not in by_node[node_id]:
                    by_node[node_id].append(name)
        for node in nodes:
            node.relationships = by_node[node.id]

    #
    # EDGE OPERATIONS
    #
    async def _prepare_edge(self, edge: Edge) -> Edge:
        if not edge.container_id or not edge.relationship_pair_id:
            raise ValidationError("edge container_id and relationship_pair_id are required")
        pair = await self.ontology.retrieve_relationship_pair(edge.relationship_pair_id)
        if pair.container_id != edge.container_id:
            raise ValidationError(
                f"relationship pair {edge.relationship_pair_id} does not belong to container {edge.container_id}")

        origin = await self._retrieve_node_impl(edge.origin_id)
        destination = await self._retrieve_node_impl(edge.destination_id)
        if origin.metatype_id != pair.origin_metatype_id or \
                destination.metatype_id != pair.destination_metatype_id:
            raise ValidationError(f"edge endpoints do not match relationship pair '{pair.name}'")

        edge.origin_metatype_name = pair.origin_metatype_name
        edge.relationship_name = pair.relationship_name
        edge.destination_metatype_name = pair.destination_metatype_name

        relationship = await self.ontology.retrieve_relationship(pair.relationship_id)
        edge.properties = map_properties(relationship, edge.properties or {})
        validate_properties(relationship, edge.properties)
        return edge

    async def create_or_update_edges(self, edges: List[Edge], user_id: str) -> List[Edge]:
        self._check_connected()
        prepared = [await self._prepare_edge(edge) for edge in edges]
        with self._monitor.track("create_or_update_edges"):
            return await self._create_or_update_edges_impl(prepared, user_id)

    @abstractmethod
    async def _create_or_update_edges_impl(self, edges: List[Edge], user_id: str) -> List[Edge]:
        pass

    async def archive_edge(self, edge_id: str, user_id: str) -> bool:
        self._check_connected()
        with self._monitor.track("archive_edge"):
            return await self._archive_edge_impl(edge_id, user_id)

    @abstractmethod
    async def _archive_edge_impl(self, edge_id: str, user_id: str) -> bool:
        pass

    async def find_edges_by_relationship(self, origin: str, relationship: str, destination: str,
                                         container_id: Optional[str] = None) -> List[Edge]:
        """List live edges whose denormalized pair names match exactly."""
        self._check_connected()
        with self._monitor.track("find_edges_by_relationship"):
            return await self._find_edges_by_relationship_impl(origin, relationship, destination, container_id)

    @abstractmethod
    async def _find_edges_by_relationship_impl(self, origin: str, relationship: str, destination: str,
                                               container_id: Optional[str]) -> List[Edge]:
        pass

    @abstractmethod
    async def _edges_for_nodes_impl(self, node_ids: List[str]) -> List[Edge]:
        pass

    #
    # MONITORING
    #
    def get_performance_metrics(self) -> Dict[str, float]:
        """Get average execution time of each operation."""
        return self._monitor.get_average_times()

    def get_detailed_metrics(self) -> Dict[str, Dict[str, float]]:
        return self._monitor.get_detailed_metrics()
