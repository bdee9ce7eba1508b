"""
Dynamic schema generation.

A container's ontology is read in two bulk calls and turned into a
``SchemaDescription``: plain type, field and argument specs plus the
resolver for each metatype's query field. Nothing here depends on a GraphQL
library; ``graphql_schema.compile_schema`` builds the executable schema.

Type references use GraphQL notation, ``Float`` or ``[JSON]``.
"""
import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .models import Metatype, MetatypeKey, MetatypeRelationshipPair
from .naming import RESERVED_NAMES, NameRegistry
from .ontology import OntologyStore

RECORD_INPUT = 'record_input'
RECORD_INFO = 'recordInfo'
RESULT_LIMIT = 10000

SCALAR_TYPES = {
    'number': 'Float',
    'boolean': 'Boolean',
    'string': 'String',
    'date': 'String',
    'file': 'String',
    'list': '[JSON]',
}

logger = logging.getLogger(__name__)


@dataclass
class ArgSpec:
    name: str
    type: str


@dataclass
class FieldSpec:
    name: str
    type: str
    args: List[ArgSpec] = field(default_factory=list)
    resolver: Optional[Callable] = None
    description: Optional[str] = None
    default_value: Any = None


@dataclass
class TypeSpec:
    """An object, input object or enum type."""
    name: str
    kind: str
    fields: List[FieldSpec] = field(default_factory=list)
    values: Dict[str, Any] = field(default_factory=dict)
    description: Optional[str] = None


@dataclass
class SchemaDescription:
    container_id: str
    types: Dict[str, TypeSpec] = field(default_factory=dict)
    query_fields: List[FieldSpec] = field(default_factory=list)

    def add_type(self, spec: TypeSpec) -> TypeSpec:
        self.types[spec.name] = spec
        return spec


@dataclass
class RelationshipTarget:
    """One relationship between a metatype and another, in either or both directions.

    ``forward`` means the metatype is the pair's origin, ``reverse`` that it is
    the destination. A self-referencing pair sets both.
    """
    relationship_name: str
    other_metatype_name: str
    forward: bool = False
    reverse: bool = False


@dataclass
class MetatypeBinding:
    """What a resolver needs to map generated names back to the ontology."""
    metatype: Metatype
    type_name: str
    properties: Dict[str, MetatypeKey] = field(default_factory=dict)
    # sanitized relationship name -> sanitized metatype name -> target
    relationships: Dict[str, Dict[str, RelationshipTarget]] = field(default_factory=dict)


ResolverFactory = Callable[[str, MetatypeBinding], Callable]


def index_relationship_pairs(pairs: List[MetatypeRelationshipPair]) -> Dict[str, Dict[str, Dict[str, RelationshipTarget]]]:
    """Group pairs under metatype id -> relationship name -> other metatype id.

    Every pair is registered forward under its origin and in reverse under its
    destination.
    """
    index: Dict[str, Dict[str, Dict[str, RelationshipTarget]]] = {}

    def entry(metatype_id, relationship_name, other_id, other_name):
        targets = index.setdefault(metatype_id, {}).setdefault(relationship_name, {})
        if other_id not in targets:
            targets[other_id] = RelationshipTarget(relationship_name, other_name)
        return targets[other_id]

    for pair in pairs:
        entry(pair.origin_metatype_id, pair.relationship_name,
              pair.destination_metatype_id, pair.destination_metatype_name).forward = True
        entry(pair.destination_metatype_id, pair.relationship_name,
              pair.origin_metatype_id, pair.origin_metatype_name).reverse = True
    return index


def _record_types() -> List[TypeSpec]:
    record_input = TypeSpec(RECORD_INPUT, 'input', fields=[
        FieldSpec('data_source_id', 'String'),
        FieldSpec('original_id', 'JSON'),
        FieldSpec('import_id', 'String'),
        FieldSpec('limit', 'Int', default_value=RESULT_LIMIT),
        FieldSpec('page', 'Int', default_value=1),
    ])
    record_info = TypeSpec(RECORD_INFO, 'object', fields=[
        FieldSpec('id', 'String'),
        FieldSpec('data_source_id', 'String'),
        FieldSpec('original_id', 'JSON'),
        FieldSpec('import_id', 'String'),
        FieldSpec('metatype_id', 'String'),
        FieldSpec('metatype_name', 'String'),
        FieldSpec('created_at', 'String'),
        FieldSpec('created_by', 'String'),
        FieldSpec('modified_at', 'String'),
        FieldSpec('modified_by', 'String'),
        FieldSpec('metadata', 'JSON'),
    ])
    return [record_input, record_info]


class SchemaGenerator:
    """Builds a schema description for a container. Holds no state between calls."""

    def __init__(self, ontology: OntologyStore, resolver_factory: ResolverFactory):
        self.ontology = ontology
        self.resolver_factory = resolver_factory

    async def generate(self, container_id: str) -> SchemaDescription:
        start_time = time.perf_counter()
        metatypes, pairs = await asyncio.gather(
            self.ontology.list_metatypes(container_id, with_keys=True),
            self.ontology.list_relationship_pairs(container_id),
        )
        description = self.describe(container_id, metatypes, pairs)
        duration = time.perf_counter() - start_time
        logger.debug(f"Generated schema for container {container_id} with {len(description.types)} types in {duration:.4f}s")
        return description

    def describe(self, container_id: str, metatypes: List[Metatype],
                 pairs: List[MetatypeRelationshipPair]) -> SchemaDescription:
        """Build the description from already loaded ontology records."""
        description = SchemaDescription(container_id)
        for spec in _record_types():
            description.add_type(spec)

        type_names = NameRegistry(RESERVED_NAMES)
        metatype_type_names = {m.id: type_names.claim(m.name) for m in metatypes}
        pair_index = index_relationship_pairs(pairs)

        for metatype in metatypes:
            type_name = metatype_type_names[metatype.id]
            binding = MetatypeBinding(metatype, type_name)

            field_names = NameRegistry({'_record', '_relationship'})
            output_fields: List[FieldSpec] = []
            args: List[ArgSpec] = []
            for key in metatype.keys:
                name = field_names.claim(key.property_name)
                binding.properties[name] = key
                output_fields.append(FieldSpec(name, self._output_type(description, type_names, type_name, key),
                                               description=key.description or None))
                args.append(ArgSpec(name, 'String'))
            output_fields.append(FieldSpec('_record', RECORD_INFO))
            args.append(ArgSpec('_record', RECORD_INPUT))

            relationship_input = self._relationship_input(description, type_names, type_name, binding,
                                                          pair_index.get(metatype.id, {}), metatype_type_names)
            if relationship_input:
                args.append(ArgSpec('_relationship', relationship_input))

            description.add_type(TypeSpec(type_name, 'object', fields=output_fields,
                                          description=metatype.description or None))
            description.query_fields.append(FieldSpec(
                type_name, f'[{type_name}]', args=args,
                resolver=self.resolver_factory(container_id, binding),
                description=metatype.description or None,
            ))
        return description

    @staticmethod
    def _output_type(description: SchemaDescription, type_names: NameRegistry, type_name: str,
                     key: MetatypeKey) -> str:
        if key.data_type != 'enumeration':
            return SCALAR_TYPES.get(key.data_type, 'String')
        if not key.options:
            return 'String'
        enum_name = type_names.claim(f'{type_name}_{key.name}_Enum')
        value_names = NameRegistry({'true', 'false', 'null'})
        values = {}
        for option in key.options:
            if option in values.values():
                continue
            values[value_names.claim(option)] = option
        description.add_type(TypeSpec(enum_name, 'enum', values=values))
        return enum_name

    @staticmethod
    def _relationship_input(description: SchemaDescription, type_names: NameRegistry, type_name: str,
                            binding: MetatypeBinding, relationships: Dict[str, Dict[str, RelationshipTarget]],
                            metatype_type_names: Dict[str, str]) -> Optional[str]:
        """Register the ``_relationship`` input types for a metatype, if it takes part in any pair."""
        if not relationships:
            return None

        relationship_names = NameRegistry()
        destinations: List[str] = []
        for relationship_name, targets in relationships.items():
            # destinations are named after their generated type, so they are already unique
            known = {metatype_type_names[other_id]: target for other_id, target in targets.items()
                     if other_id in metatype_type_names}
            if not known:
                continue
            binding.relationships[relationship_names.claim(relationship_name)] = known
            destinations.extend(name for name in known if name not in destinations)
        if not binding.relationships:
            return None

        destination_input = type_names.claim(f'{type_name}_destination_input')
        description.add_type(TypeSpec(destination_input, 'input', fields=[
            FieldSpec(name, 'Boolean') for name in destinations
        ]))
        relationship_input = type_names.claim(f'{type_name}_relationship_input')
        description.add_type(TypeSpec(relationship_input, 'input', fields=[
            FieldSpec(name, f'[{destination_input}]') for name in binding.relationships
        ]))
        return relationship_input
