"""
Service container: builds every service handle once from configuration.
"""
import logging
from typing import Optional

from ingestion.ingestion_engine import IngestionEngine
from ingestion.repository import TypeMappingRepository

from .base import GraphStore
from .cache import Cache, create_cache
from .changelist import ChangelistRepository
from .config import Config
from .graphql_schema import QueryService
from .local import LocalGraphStore
from .neo4j import Neo4jGraphStore
from .ontology import LocalOntologyStore, OntologyStore


class Services:
    """Shared handles for the ontology, graph storage, cache and the services built on them."""

    def __init__(self, ontology: OntologyStore, store: GraphStore, cache: Cache,
                 result_limit: int = 10000, cache_ttl: int = 21600):
        self.ontology = ontology
        self.store = store
        self.cache = cache
        self.query = QueryService(ontology, store, result_limit)
        self.changelists = ChangelistRepository(ontology)
        self.type_mappings = TypeMappingRepository(ontology, cache, cache_ttl=cache_ttl)
        self.ingestion = IngestionEngine(store, self.type_mappings)

    @classmethod
    def from_config(cls, ontology: Optional[OntologyStore] = None) -> 'Services':
        logger = logging.getLogger("Services")
        backend = Config.backend()

        if ontology is None:
            ontology = LocalOntologyStore()
            ontology_path = Config.ontology_path()
            if ontology_path:
                logger.debug(f"Loading ontology from file: {ontology_path}")
                ontology.load(ontology_path)

        if backend == 'local':
            logger.debug("Using local backend.")
            store = LocalGraphStore(ontology, db_path=Config.db_path())
        elif backend == 'neo4j':
            logger.debug("Using neo4j backend.")
            neo4j_config = Config.get_neo4j_config()
            if not neo4j_config['password']:
                raise ValueError("For neo4j backend, NEO4J_PASSWORD must be provided.")
            store = Neo4jGraphStore(ontology, **neo4j_config)
        else:
            raise ValueError(f"Unsupported backend '{backend}'.")

        cache_ttl = Config.cache_default_ttl()
        cache = create_cache(Config.cache_backend(), ttl=cache_ttl, redis_config=Config.get_redis_config())
        return cls(ontology, store, cache, result_limit=Config.query_result_limit(), cache_ttl=cache_ttl)

    async def connect(self) -> None:
        await self.store.connect()

    async def close(self) -> None:
        await self.store.disconnect()
        await self.cache.close()
