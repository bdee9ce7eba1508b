"""
Pytest configuration and fixtures.
"""
import pytest
import pytest_asyncio
from unittest.mock import AsyncMock, MagicMock

from ontograph import LocalGraphStore, LocalOntologyStore
from ontograph.models import Metatype, MetatypeKey, MetatypeRelationship, MetatypeRelationshipPair
from ontograph.neo4j import Neo4jGraphStore

CONTAINER_ID = 'container-1'


@pytest.fixture
def test_db_path(tmp_path):
    """Provide a temporary database path."""
    return str(tmp_path / "test_graph.json")


@pytest.fixture
def sample_ontology():
    """Provide a small plant ontology: pumps feed tanks."""
    ontology = LocalOntologyStore()
    # Pump nodes: 'name' is required, 'flow_rate' and 'status' optional
    pump = ontology.add_metatype(Metatype('Pump', CONTAINER_ID, description='A pump', keys=[
        MetatypeKey('name', 'string', required=True),
        MetatypeKey('flow_rate', 'number', description='Litres per second'),
        MetatypeKey('status', 'enumeration', options=['open', 'closed']),
        MetatypeKey('tags', 'list'),
    ]))
    tank = ontology.add_metatype(Metatype('Tank', CONTAINER_ID, keys=[
        MetatypeKey('name', 'string', required=True),
        MetatypeKey('capacity', 'number'),
    ]))
    # feeds edges: 'since' optional
    feeds = ontology.add_relationship(MetatypeRelationship('feeds', CONTAINER_ID, keys=[
        MetatypeKey('since', 'string'),
    ]))
    ontology.add_relationship_pair(MetatypeRelationshipPair(
        CONTAINER_ID, origin_metatype_id=pump.id, destination_metatype_id=tank.id, relationship_id=feeds.id))
    return ontology


@pytest.fixture
def pump(sample_ontology):
    return next(m for m in sample_ontology.metatypes.values() if m.name == 'Pump')


@pytest.fixture
def tank(sample_ontology):
    return next(m for m in sample_ontology.metatypes.values() if m.name == 'Tank')


@pytest.fixture
def feeds_pair(sample_ontology):
    return next(iter(sample_ontology.pairs.values()))


@pytest_asyncio.fixture
async def local_store(sample_ontology, test_db_path):
    """Provide a connected local graph store."""
    store = LocalGraphStore(sample_ontology, db_path=test_db_path)
    await store.connect()
    yield store
    await store.disconnect()


@pytest.fixture
def neo4j_store(sample_ontology):
    """Provide a Neo4j store with its query runner mocked out."""
    store = Neo4jGraphStore(sample_ontology, 'bolt://localhost:7687', 'neo4j', 'password')
    store.driver = MagicMock()
    store.connected = True
    store._run = AsyncMock(return_value=[])
    return store


@pytest.fixture
def mock_redis_client():
    """Provide an async Redis client double backed by a dict."""
    data = {}
    client = MagicMock()

    async def get(key):
        return data.get(key)

    async def set(key, value, ex=None):
        data[key] = value
        return True

    async def delete(key):
        return 1 if data.pop(key, None) is not None else 0

    client.get = AsyncMock(side_effect=get)
    client.set = AsyncMock(side_effect=set)
    client.delete = AsyncMock(side_effect=delete)
    client.aclose = AsyncMock()
    client.data = data
    return client
