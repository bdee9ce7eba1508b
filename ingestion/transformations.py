"""
Type transformations: deciding whether one applies to a payload, turning a
payload into nodes and edges, and moving transformations between containers
by name.
"""
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple, Union

from ontograph.errors import NotFoundError, ValidationError
from ontograph.models import Edge, Metatype, MetatypeRelationship, Node, split_pair_name
from ontograph.ontology import OntologyStore

from .mappers import TypeTransformationMapper
from .models import Condition, KeyMapping, TypeMapping, TypeTransformation


def get_path(payload: Any, path: Optional[str]) -> Any:
    """Resolve a dotted key path. Returns ``None`` when any segment is absent."""
    if not path:
        return None
    value = payload
    for part in path.split('.'):
        if isinstance(value, dict) and part in value:
            value = value[part]
        elif isinstance(value, list) and part.isdigit() and int(part) < len(value):
            value = value[int(part)]
        else:
            return None
    return value


def _has_path(payload: Any, path: str) -> bool:
    value = payload
    for part in path.split('.'):
        if isinstance(value, dict) and part in value:
            value = value[part]
        else:
            return False
    return True


def _to_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _evaluate(condition: Condition, payload: Any) -> bool:
    operator = condition.operator
    if operator == 'exists':
        return _has_path(payload, condition.key)

    value = get_path(payload, condition.key)
    expected = condition.value
    if operator == '==':
        return value == expected or (value is not None and str(value) == str(expected))
    if operator == '!=':
        return not (value == expected or (value is not None and str(value) == str(expected)))
    if operator == 'in':
        candidates = expected if isinstance(expected, list) else [v.strip() for v in str(expected).split(',')]
        return value in candidates or str(value) in [str(c) for c in candidates]
    if operator == 'contains':
        if isinstance(value, list):
            return expected in value
        return value is not None and str(expected) in str(value)

    left, right = _to_float(value), _to_float(expected)
    if left is None or right is None:
        return False
    return {'<': left < right, '<=': left <= right, '>': left > right, '>=': left >= right}[operator]


def condition_matches(condition: Condition, payload: Any) -> bool:
    """Evaluate a condition and its subexpressions left to right."""
    result = _evaluate(condition, payload)
    for sub in condition.subexpressions:
        if sub.expression == 'AND':
            result = result and condition_matches(sub, payload)
        else:
            result = result or condition_matches(sub, payload)
    return result


def transformation_applies(transformation: TypeTransformation, payload: Any) -> bool:
    return all(condition_matches(c, payload) for c in transformation.conditions)


def _records(transformation: TypeTransformation, payload: Any) -> List[Tuple[Any, Optional[Any]]]:
    """Pairs of (payload, root array element) the transformation runs over."""
    if not transformation.root_array:
        return [(payload, None)]
    elements = get_path(payload, transformation.root_array)
    if not isinstance(elements, list):
        return []
    return [(payload, element) for element in elements]


def _resolve(transformation: TypeTransformation, payload: Any, element: Any, path: Optional[str]) -> Any:
    prefix = f"{transformation.root_array}[]." if transformation.root_array else None
    if prefix and path and path.startswith(prefix):
        return get_path(element, path[len(prefix):])
    return get_path(payload, path)


def _original_id(value: Any) -> Optional[str]:
    return None if value is None else str(value)


@dataclass
class PendingEdge:
    """An edge whose endpoints are still known only by their original ids."""
    edge: Edge
    origin_original_id: Optional[str]
    destination_original_id: Optional[str]


class TransformationApplier:
    """Turns payloads into graph records according to a mapping's transformations."""

    def __init__(self, ontology: OntologyStore):
        self.ontology = ontology

    async def _metatype(self, mapping: TypeMapping, transformation: TypeTransformation) -> Metatype:
        if transformation.metatype_id:
            return await self.ontology.retrieve_metatype(transformation.metatype_id)
        return await self.ontology.find_metatype_by_name(mapping.container_id, transformation.metatype_name)

    async def _pair(self, mapping: TypeMapping, transformation: TypeTransformation):
        if transformation.metatype_relationship_pair_id:
            return await self.ontology.retrieve_relationship_pair(transformation.metatype_relationship_pair_id)
        try:
            names = split_pair_name(transformation.metatype_relationship_pair_name)
        except ValueError as e:
            raise ValidationError(str(e))
        return await self.ontology.find_relationship_pair_by_names(mapping.container_id, *names)

    @staticmethod
    def _properties(transformation: TypeTransformation, target: Union[Metatype, MetatypeRelationship],
                    payload: Any, element: Any, node_keys: bool) -> dict:
        properties = {}
        for mapping_key in transformation.keys:
            key_id = mapping_key.metatype_key_id if node_keys else mapping_key.metatype_relationship_key_id
            key_name = mapping_key.metatype_key_name if node_keys else mapping_key.metatype_relationship_key_name
            if not key_id and not key_name:
                continue
            key = target.key_by_id(key_id) if key_id else target.key_by_property_name(key_name)
            if key is None:
                raise ValidationError(f"key '{key_id or key_name}' does not exist on '{target.name}'")
            value = mapping_key.value if mapping_key.value is not None \
                else _resolve(transformation, payload, element, mapping_key.key)
            if value is not None:
                properties[key.property_name] = value
        return properties

    async def apply(self, mapping: TypeMapping, transformation: TypeTransformation, payload: Any,
                    import_id: Optional[str] = None) -> Tuple[List[Node], List[PendingEdge]]:
        """Produce the nodes or pending edges a payload yields, or nothing if conditions fail."""
        if not transformation_applies(transformation, payload):
            return [], []

        nodes: List[Node] = []
        edges: List[PendingEdge] = []
        if transformation.targets_node:
            metatype = await self._metatype(mapping, transformation)
            for record, element in _records(transformation, payload):
                nodes.append(Node(
                    container_id=mapping.container_id,
                    metatype_id=metatype.id,
                    metatype_name=metatype.name,
                    properties=self._properties(transformation, metatype, record, element, node_keys=True),
                    original_data_id=_original_id(
                        _resolve(transformation, record, element, transformation.unique_identifier_key)),
                    data_source_id=mapping.data_source_id,
                    import_data_id=import_id,
                    data_type_mapping_id=mapping.id,
                ))
            return nodes, edges

        pair = await self._pair(mapping, transformation)
        relationship = await self.ontology.retrieve_relationship(pair.relationship_id)
        for record, element in _records(transformation, payload):
            edge = Edge(
                container_id=mapping.container_id,
                relationship_pair_id=pair.id,
                properties=self._properties(transformation, relationship, record, element, node_keys=False),
                original_data_id=_original_id(
                    _resolve(transformation, record, element, transformation.unique_identifier_key)),
                data_source_id=mapping.data_source_id,
                import_data_id=import_id,
                data_type_mapping_id=mapping.id,
            )
            edges.append(PendingEdge(
                edge,
                _original_id(_resolve(transformation, record, element, transformation.origin_id_key)),
                _original_id(_resolve(transformation, record, element, transformation.destination_id_key)),
            ))
        return nodes, edges


class TypeTransformationRepository:
    """Fills names from ids before export and ids from names after import."""

    def __init__(self, ontology: OntologyStore, mapper: Optional[TypeTransformationMapper] = None):
        self.ontology = ontology
        self.mapper = mapper or TypeTransformationMapper()

    async def find_by_id(self, transformation_id: str) -> TypeTransformation:
        return await self.mapper.retrieve(transformation_id)

    async def populate_keys(self, transformation: TypeTransformation) -> TypeTransformation:
        """Fill metatype, pair and key names from their ids. Already named entries are left alone."""
        if transformation.metatype_id:
            metatype = await self.ontology.retrieve_metatype(transformation.metatype_id)
            transformation.metatype_name = metatype.name
            for key in transformation.keys:
                self._name_key(key, metatype, 'metatype_key')

        if transformation.metatype_relationship_pair_id:
            pair = await self.ontology.retrieve_relationship_pair(transformation.metatype_relationship_pair_id)
            transformation.metatype_relationship_pair_name = pair.name
            relationship = await self.ontology.retrieve_relationship(pair.relationship_id)
            for key in transformation.keys:
                self._name_key(key, relationship, 'metatype_relationship_key')
        return transformation

    @staticmethod
    def _name_key(key: KeyMapping, target: Union[Metatype, MetatypeRelationship], prefix: str):
        key_id = getattr(key, f'{prefix}_id')
        if not key_id or getattr(key, f'{prefix}_name'):
            return
        found = target.key_by_id(key_id)
        if found is None:
            raise NotFoundError(f"key {key_id} does not exist on '{target.name}'")
        setattr(key, f'{prefix}_name', found.property_name)

    async def backfill_ids(self, container_id: str, *transformations: TypeTransformation) -> List[TypeTransformation]:
        """Resolve names to ids within a container. Unknown names raise ``NotFoundError``."""
        for transformation in transformations:
            if not transformation.metatype_id and transformation.metatype_name:
                metatype = await self.ontology.find_metatype_by_name(container_id, transformation.metatype_name)
                transformation.metatype_id = metatype.id
                for key in transformation.keys:
                    self._identify_key(key, metatype, 'metatype_key')

            if not transformation.metatype_relationship_pair_id and transformation.metatype_relationship_pair_name:
                try:
                    names = split_pair_name(transformation.metatype_relationship_pair_name)
                except ValueError as e:
                    raise NotFoundError(str(e))
                pair = await self.ontology.find_relationship_pair_by_names(container_id, *names)
                transformation.metatype_relationship_pair_id = pair.id
                relationship = await self.ontology.retrieve_relationship(pair.relationship_id)
                for key in transformation.keys:
                    self._identify_key(key, relationship, 'metatype_relationship_key')
        return list(transformations)

    @staticmethod
    def _identify_key(key: KeyMapping, target: Union[Metatype, MetatypeRelationship], prefix: str):
        key_name = getattr(key, f'{prefix}_name')
        if getattr(key, f'{prefix}_id') or not key_name:
            return
        found = target.key_by_property_name(key_name)
        if found is None:
            raise NotFoundError(f"key '{key_name}' does not exist on '{target.name}'")
        setattr(key, f'{prefix}_id', found.id)
