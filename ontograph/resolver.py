"""
Resolvers for the generated metatype query fields.
"""
import json
import logging
from typing import Any, Callable, Dict, List, Optional

from .base import GraphStore
from .errors import OntographError
from .models import Node
from .naming import string_to_valid_property_name
from .query import break_query
from .repository import EdgeRepository, NodeRepository
from .schema import RESULT_LIMIT, MetatypeBinding

RESERVED_ARGUMENTS = ('_record', '_relationship')


def _isoformat(value: Any) -> Optional[str]:
    return value.isoformat() if value is not None else None


class QueryResolver:
    """Translates GraphQL arguments into node repository queries."""

    def __init__(self, store: GraphStore, result_limit: int = RESULT_LIMIT):
        self.store = store
        self.result_limit = min(result_limit, RESULT_LIMIT)
        self.logger = logging.getLogger("QueryResolver")

    def resolver_for_metatype(self, container_id: str, binding: MetatypeBinding) -> Callable:
        """Return the field resolver for one metatype.

        A storage failure is logged and resolves the field to an empty list,
        leaving sibling fields untouched.
        """
        async def resolve(_source, _info, **args):
            try:
                return await self.resolve(container_id, binding, args)
            except OntographError as e:
                self.logger.error(f"unable to list nodes of metatype {binding.metatype.name}: {str(e)}")
                return []
            except Exception as e:
                self.logger.error(f"unexpected error listing nodes of metatype {binding.metatype.name}: {str(e)}")
                return []
        return resolve

    async def resolve(self, container_id: str, binding: MetatypeBinding, args: Dict[str, Any]) -> List[Dict[str, Any]]:
        metatype = binding.metatype
        repo = NodeRepository(self.store).where().container_id('eq', container_id) \
            .and_().metatype_id('eq', metatype.id)

        # metatype id and name are fixed by the field itself, so they are not record filters
        record = args.get('_record') or {}
        if record.get('data_source_id'):
            repo = repo.and_().data_source_id(*break_query(str(record['data_source_id'])))
        if record.get('original_id') is not None:
            original_id = record['original_id']
            if not isinstance(original_id, str):
                original_id = json.dumps(original_id)
            repo = repo.and_().original_data_id(*break_query(original_id))
        if record.get('import_id'):
            repo = repo.and_().import_data_id(*break_query(str(record['import_id'])))

        if args.get('_relationship'):
            node_ids = await self._related_node_ids(container_id, binding, args['_relationship'])
            repo = repo.and_().id('in', node_ids)

        for name, value in args.items():
            if name in RESERVED_ARGUMENTS or value is None:
                continue
            key = binding.properties.get(name)
            if key is None:
                continue
            operator, query_value = break_query(str(value))
            repo = repo.and_().property(key.property_name, operator, query_value, key.data_type)

        limit = max(min(record.get('limit') or self.result_limit, self.result_limit), 1)
        page = max(record.get('page') or 1, 1)
        nodes = await repo.list(load_relationships=False, limit=limit, offset=(page - 1) * limit)
        return [self.reshape(node, binding) for node in nodes]

    async def _related_node_ids(self, container_id: str, binding: MetatypeBinding,
                                relationship_input: Dict[str, Any]) -> List[str]:
        """Ids of this metatype's nodes connected through the first requested relationship."""
        relationship = next(iter(relationship_input))
        flagged: List[str] = []
        for destinations in relationship_input[relationship] or []:
            for destination, wanted in (destinations or {}).items():
                if wanted and destination not in flagged:
                    flagged.append(destination)

        edges = EdgeRepository(self.store)
        targets = binding.relationships.get(relationship, {})
        this_name = binding.metatype.name
        node_ids: List[str] = []
        for destination in flagged:
            target = targets.get(destination)
            if target is None:
                continue
            if target.forward:
                found = await edges.find_by_relationship(this_name, target.relationship_name,
                                                         target.other_metatype_name, container_id)
                node_ids.extend(edge.origin_id for edge in found)
            if target.reverse:
                found = await edges.find_by_relationship(target.other_metatype_name, target.relationship_name,
                                                         this_name, container_id)
                node_ids.extend(edge.destination_id for edge in found)
        return list(dict.fromkeys(node_ids))

    @staticmethod
    def reshape(node: Node, binding: MetatypeBinding) -> Dict[str, Any]:
        field_names = {key.property_name: name for name, key in binding.properties.items()}
        output: Dict[str, Any] = {}
        properties = node.properties or {}
        for prop, value in properties.items():
            if prop not in field_names:
                output[string_to_valid_property_name(prop)] = value
        for prop, name in field_names.items():
            if prop in properties:
                output[name] = properties[prop]
        output['_record'] = {
            'id': node.id,
            'data_source_id': node.data_source_id,
            'original_id': node.original_data_id,
            'import_id': node.import_data_id,
            'metatype_id': node.metatype_id,
            'metatype_name': node.metatype_name,
            'metadata': node.metadata,
            'created_at': _isoformat(node.created_at),
            'created_by': node.created_by,
            'modified_at': _isoformat(node.modified_at),
            'modified_by': node.modified_by,
        }
        return output
