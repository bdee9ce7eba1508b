"""
ontograph - A knowledge-graph backend with a per-container ontology and a
GraphQL query surface generated from it.
"""

from .base import GraphStore
from .local import LocalGraphStore
from .neo4j import Neo4jGraphStore
from .ontology import OntologyStore, LocalOntologyStore
from .repository import NodeRepository, EdgeRepository
from .graphql_schema import QueryService, compile_schema
from .schema import SchemaGenerator
from .changelist import ChangelistRepository
from .errors import (
    OntographError,
    ConnectionError,
    QueryError,
    ValidationError,
    NotFoundError,
    ConflictError,
    PartialFailure
)

__version__ = "0.1.0"
__all__ = [
    'GraphStore',
    'LocalGraphStore',
    'Neo4jGraphStore',
    'OntologyStore',
    'LocalOntologyStore',
    'NodeRepository',
    'EdgeRepository',
    'QueryService',
    'compile_schema',
    'SchemaGenerator',
    'ChangelistRepository',
    'OntographError',
    'ConnectionError',
    'QueryError',
    'ValidationError',
    'NotFoundError',
    'ConflictError',
    'PartialFailure'
]
