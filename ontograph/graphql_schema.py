"""
Compiles schema descriptions into graphql-core schemas and executes queries.
"""
import logging
from typing import Any, Dict, Optional

from graphql import (
    ExecutionResult,
    GraphQLArgument,
    GraphQLBoolean,
    GraphQLEnumType,
    GraphQLEnumValue,
    GraphQLField,
    GraphQLFloat,
    GraphQLInputField,
    GraphQLInputObjectType,
    GraphQLInt,
    GraphQLList,
    GraphQLObjectType,
    GraphQLScalarType,
    GraphQLSchema,
    GraphQLString,
    graphql,
    print_schema,
)
from graphql.pyutils import Undefined
from graphql.utilities import value_from_ast_untyped

from .base import GraphStore
from .ontology import OntologyStore
from .resolver import QueryResolver
from .schema import RESULT_LIMIT, SchemaDescription, SchemaGenerator, TypeSpec


def _identity(value: Any) -> Any:
    return value


GraphQLJSON = GraphQLScalarType(
    name='JSON',
    description='Arbitrary JSON value.',
    serialize=_identity,
    parse_value=_identity,
    parse_literal=lambda value_node, variables=None: value_from_ast_untyped(value_node, variables),
)

BUILTIN_TYPES = {
    'String': GraphQLString,
    'Float': GraphQLFloat,
    'Int': GraphQLInt,
    'Boolean': GraphQLBoolean,
    'JSON': GraphQLJSON,
}


class _Compiler:
    def __init__(self, description: SchemaDescription):
        self.description = description
        self.types: Dict[str, Any] = dict(BUILTIN_TYPES)

    def resolve(self, ref: str):
        if ref.startswith('[') and ref.endswith(']'):
            return GraphQLList(self.resolve(ref[1:-1]))
        if ref not in self.types:
            self.types[ref] = self.build(self.description.types[ref])
        return self.types[ref]

    def build(self, spec: TypeSpec):
        # fields are thunks so types can reference each other in any order
        if spec.kind == 'enum':
            return GraphQLEnumType(spec.name, {name: GraphQLEnumValue(value) for name, value in spec.values.items()},
                                   description=spec.description)
        if spec.kind == 'input':
            return GraphQLInputObjectType(spec.name, lambda: {
                f.name: GraphQLInputField(
                    self.resolve(f.type),
                    default_value=Undefined if f.default_value is None else f.default_value,
                    description=f.description,
                )
                for f in spec.fields
            }, description=spec.description)
        return GraphQLObjectType(spec.name, lambda: {
            f.name: GraphQLField(self.resolve(f.type), description=f.description) for f in spec.fields
        }, description=spec.description)

    def compile(self) -> GraphQLSchema:
        query_fields = {}
        for spec in self.description.query_fields:
            query_fields[spec.name] = GraphQLField(
                self.resolve(spec.type),
                args={arg.name: GraphQLArgument(self.resolve(arg.type)) for arg in spec.args},
                resolve=spec.resolver,
                description=spec.description,
            )
        return GraphQLSchema(query=GraphQLObjectType('Query', query_fields))


def compile_schema(description: SchemaDescription) -> GraphQLSchema:
    """Build an executable schema from a description."""
    return _Compiler(description).compile()


class QueryService:
    """Generates a container's schema on every request and executes documents against it."""

    def __init__(self, ontology: OntologyStore, store: GraphStore, result_limit: int = RESULT_LIMIT):
        self.resolver = QueryResolver(store, result_limit)
        self.generator = SchemaGenerator(ontology, self.resolver.resolver_for_metatype)
        self.logger = logging.getLogger("QueryService")

    async def schema(self, container_id: str) -> GraphQLSchema:
        return compile_schema(await self.generator.generate(container_id))

    async def execute(self, container_id: str, source: str, variables: Optional[Dict[str, Any]] = None,
                      operation_name: Optional[str] = None) -> ExecutionResult:
        schema = await self.schema(container_id)
        result = await graphql(schema, source, variable_values=variables, operation_name=operation_name)
        if result.errors:
            self.logger.debug(f"Query against container {container_id} returned errors: {result.errors}")
        return result

    async def print_schema(self, container_id: str) -> str:
        return print_schema(await self.schema(container_id))
