"""
Tests for the local graph store and the validation it inherits from GraphStore.
"""
import json
import pytest

from ontograph import LocalGraphStore
from ontograph.errors import ConnectionError, NotFoundError, ValidationError
from ontograph.models import Edge, Node
from ontograph.repository import EdgeRepository, NodeRepository

CONTAINER_ID = 'container-1'


def _pump(pump, name, original_id=None, **properties):
    return Node(container_id=CONTAINER_ID, metatype_id=pump.id, properties={'name': name, **properties},
                original_data_id=original_id, data_source_id='ds-1' if original_id else None)


@pytest.mark.asyncio
async def test_requires_connection(sample_ontology, pump):
    store = LocalGraphStore(sample_ontology)
    with pytest.raises(ConnectionError):
        await store.create_or_update_nodes([_pump(pump, 'P-1')], 'user')


@pytest.mark.asyncio
async def test_create_node_maps_and_validates(local_store, pump):
    saved = await local_store.create_or_update_nodes([_pump(pump, 'P-1', flow_rate='12.5')], 'user')
    node = saved[0]
    assert node.id
    assert node.metatype_name == 'Pump'
    assert node.properties['flow_rate'] == 12.5
    assert node.created_by == 'user'

    with pytest.raises(ValidationError):
        await local_store.create_or_update_nodes([_pump(pump, 'P-2', flow_rate='fast')], 'user')
    with pytest.raises(ValidationError):
        await local_store.create_or_update_nodes(
            [Node(container_id=CONTAINER_ID, metatype_id=pump.id, properties={'flow_rate': 1})], 'user')


@pytest.mark.asyncio
async def test_node_metatype_must_belong_to_container(local_store, pump):
    node = Node(container_id='other-container', metatype_id=pump.id, properties={'name': 'P-1'})
    with pytest.raises(ValidationError):
        await local_store.create_or_update_nodes([node], 'user')


@pytest.mark.asyncio
async def test_upsert_by_original_id(local_store, pump):
    first = (await local_store.create_or_update_nodes([_pump(pump, 'P-1', 'orig-1')], 'alice'))[0]
    second = (await local_store.create_or_update_nodes([_pump(pump, 'P-1 renamed', 'orig-1')], 'bob'))[0]

    assert second.id == first.id
    assert second.created_by == 'alice'
    assert second.modified_by == 'bob'
    assert len(local_store.nodes) == 1

    found = await local_store.retrieve_node_by_original_id('orig-1', 'ds-1')
    assert found.properties['name'] == 'P-1 renamed'


@pytest.mark.asyncio
async def test_archive_hides_node_and_its_edges(local_store, pump, tank, feeds_pair):
    p, t = await local_store.create_or_update_nodes([
        _pump(pump, 'P-1'),
        Node(container_id=CONTAINER_ID, metatype_id=tank.id, properties={'name': 'T-1'}),
    ], 'user')
    edge = (await local_store.create_or_update_edges([Edge(
        container_id=CONTAINER_ID, relationship_pair_id=feeds_pair.id, origin_id=p.id, destination_id=t.id)],
        'user'))[0]

    assert await local_store.archive_node(p.id, 'user')
    assert not await local_store.archive_node(p.id, 'user')
    with pytest.raises(NotFoundError):
        await local_store.retrieve_node(p.id)
    assert local_store.edges[edge.id].archived
    assert await EdgeRepository(local_store).find_by_relationship('Pump', 'feeds', 'Tank') == []


@pytest.mark.asyncio
async def test_permanent_delete_removes_edges(local_store, pump, tank, feeds_pair):
    p, t = await local_store.create_or_update_nodes([
        _pump(pump, 'P-1'),
        Node(container_id=CONTAINER_ID, metatype_id=tank.id, properties={'name': 'T-1'}),
    ], 'user')
    await local_store.create_or_update_edges([Edge(
        container_id=CONTAINER_ID, relationship_pair_id=feeds_pair.id, origin_id=p.id, destination_id=t.id)],
        'user')

    assert await local_store.permanently_delete_node(t.id)
    assert t.id not in local_store.nodes
    assert local_store.edges == {}
    assert not await local_store.permanently_delete_node(t.id)


@pytest.mark.asyncio
async def test_edge_validation(local_store, pump, tank, feeds_pair):
    p, t = await local_store.create_or_update_nodes([
        _pump(pump, 'P-1'),
        Node(container_id=CONTAINER_ID, metatype_id=tank.id, properties={'name': 'T-1'}),
    ], 'user')

    # endpoints reversed
    with pytest.raises(ValidationError):
        await local_store.create_or_update_edges([Edge(
            container_id=CONTAINER_ID, relationship_pair_id=feeds_pair.id, origin_id=t.id, destination_id=p.id)],
            'user')
    # unknown relationship key
    with pytest.raises(ValidationError):
        await local_store.create_or_update_edges([Edge(
            container_id=CONTAINER_ID, relationship_pair_id=feeds_pair.id, origin_id=p.id, destination_id=t.id,
            properties={'weight': 3})], 'user')

    saved = await local_store.create_or_update_edges([Edge(
        container_id=CONTAINER_ID, relationship_pair_id=feeds_pair.id, origin_id=p.id, destination_id=t.id,
        properties={'since': '2020'})], 'user')
    assert saved[0].origin_metatype_name == 'Pump'
    assert saved[0].relationship_name == 'feeds'
    assert saved[0].destination_metatype_name == 'Tank'


@pytest.mark.asyncio
async def test_node_repository_filters(local_store, pump, tank):
    await local_store.create_or_update_nodes([
        _pump(pump, 'P-1', flow_rate=5),
        _pump(pump, 'P-2', flow_rate=15),
        _pump(pump, 'P-3', flow_rate=25),
        Node(container_id=CONTAINER_ID, metatype_id=tank.id, properties={'name': 'T-1'}),
    ], 'user')

    repo = NodeRepository(local_store).where().container_id('eq', CONTAINER_ID) \
        .and_().metatype_id('eq', pump.id) \
        .and_().property('flow_rate', '>', '10', 'number')
    nodes = await repo.list()
    assert [n.properties['name'] for n in nodes] == ['P-2', 'P-3']
    assert await repo.count() == 2

    paged = await NodeRepository(local_store).where().metatype_id('eq', pump.id).list(limit=1, offset=1)
    assert [n.properties['name'] for n in paged] == ['P-2']


def test_package_exports():
    import ontograph

    for name in ontograph.__all__:
        assert hasattr(ontograph, name)
    assert callable(ontograph.NodeRepository.property)


@pytest.mark.asyncio
async def test_list_with_relationships(local_store, pump, tank, feeds_pair):
    p, t = await local_store.create_or_update_nodes([
        _pump(pump, 'P-1'),
        Node(container_id=CONTAINER_ID, metatype_id=tank.id, properties={'name': 'T-1'}),
    ], 'user')
    await local_store.create_or_update_edges([Edge(
        container_id=CONTAINER_ID, relationship_pair_id=feeds_pair.id, origin_id=p.id, destination_id=t.id)],
        'user')

    nodes = await NodeRepository(local_store).where().id('eq', p.id).list(load_relationships=True)
    assert nodes[0].relationships == ['Pump : feeds : Tank']


@pytest.mark.asyncio
async def test_persistence(sample_ontology, pump, test_db_path):
    store = LocalGraphStore(sample_ontology, db_path=test_db_path)
    await store.connect()
    saved = await store.create_or_update_nodes([_pump(pump, 'P-1')], 'user')
    await store.disconnect()

    with open(test_db_path) as f:
        assert json.load(f)['nodes'][0]['id'] == saved[0].id

    reloaded = LocalGraphStore(sample_ontology, db_path=test_db_path)
    await reloaded.connect()
    node = await reloaded.retrieve_node(saved[0].id)
    assert node.properties == {'name': 'P-1'}
    assert node.created_at == saved[0].created_at


@pytest.mark.asyncio
async def test_invalid_json(sample_ontology, test_db_path):
    with open(test_db_path, 'w') as f:
        f.write('{not json')
    store = LocalGraphStore(sample_ontology, db_path=test_db_path)
    with pytest.raises(ConnectionError):
        await store.connect()


@pytest.mark.asyncio
async def test_performance_metrics(local_store, pump):
    await local_store.create_or_update_nodes([_pump(pump, 'P-1')], 'user')
    metrics = local_store.get_performance_metrics()
    assert 'create_or_update_nodes' in metrics
    assert local_store.get_detailed_metrics()['create_or_update_nodes']['count'] == 1
