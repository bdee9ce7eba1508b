"""
Fluent query builders over graph storage.

    repo = NodeRepository(store).where().container_id('eq', container_id) \\
        .and_().metatype_id('eq', metatype_id)
    nodes = await repo.list(limit=100)
"""
from typing import Any, List, Optional

from .base import GraphStore
from .models import Edge, Node
from .query import NodeQuery, Predicate


class NodeRepository:
    def __init__(self, store: GraphStore):
        self.store = store
        self._query = NodeQuery()

    def where(self) -> 'NodeRepository':
        return self

    def and_(self) -> 'NodeRepository':
        return self

    def _record_filter(self, field: str, operator: str, value: Any) -> 'NodeRepository':
        self._query.add(Predicate(field, operator, value))
        return self

    def id(self, operator: str, value: Any) -> 'NodeRepository':
        return self._record_filter('id', operator, value)

    def container_id(self, operator: str, value: Any) -> 'NodeRepository':
        return self._record_filter('container_id', operator, value)

    def metatype_id(self, operator: str, value: Any) -> 'NodeRepository':
        return self._record_filter('metatype_id', operator, value)

    def data_source_id(self, operator: str, value: Any) -> 'NodeRepository':
        return self._record_filter('data_source_id', operator, value)

    def original_data_id(self, operator: str, value: Any) -> 'NodeRepository':
        return self._record_filter('original_data_id', operator, value)

    def import_data_id(self, operator: str, value: Any) -> 'NodeRepository':
        return self._record_filter('import_data_id', operator, value)

    def property(self, name: str, operator: str, value: Any, data_type: Optional[str] = None) -> 'NodeRepository':
        """Filter on a node property. Number keys compare numerically, all others as strings."""
        self._query.add(Predicate(name, operator, value, data_type=data_type, is_property=True))
        return self

    async def list(self, load_relationships: bool = False, limit: Optional[int] = None,
                   offset: Optional[int] = None) -> List[Node]:
        self._query.load_relationships = load_relationships
        self._query.paginate(limit, offset)
        return await self.store.list_nodes(self._query)

    async def count(self) -> int:
        return await self.store.count_nodes(self._query)


class EdgeRepository:
    def __init__(self, store: GraphStore):
        self.store = store

    async def find_by_relationship(self, origin: str, relationship: str, destination: str,
                                   container_id: Optional[str] = None) -> List[Edge]:
        return await self.store.find_edges_by_relationship(origin, relationship, destination, container_id)
