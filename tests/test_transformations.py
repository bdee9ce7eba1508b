"""
Tests for type transformation conditions and application.
"""
import pytest

from ingestion.models import Condition, KeyMapping, TypeMapping, TypeTransformation
from ingestion.transformations import (
    TransformationApplier,
    TypeTransformationRepository,
    condition_matches,
    get_path,
    transformation_applies,
)
from ontograph.errors import NotFoundError, ValidationError

CONTAINER_ID = 'container-1'


@pytest.fixture
def mapping():
    return TypeMapping(id='mapping-1', container_id=CONTAINER_ID, data_source_id='ds-1', shape_hash='h', active=True)


def test_get_path():
    payload = {'a': {'b': [{'c': 1}]}}
    assert get_path(payload, 'a.b.0.c') == 1
    assert get_path(payload, 'a.x') is None
    assert get_path(payload, None) is None


@pytest.mark.parametrize('condition,expected', [
    (Condition('type', '==', 'pump'), True),
    (Condition('type', '!=', 'pump'), False),
    (Condition('id', '==', '7'), True),
    (Condition('type', 'in', 'pump,tank'), True),
    (Condition('tags', 'contains', 'hot'), True),
    (Condition('flow', '>', 10), True),
    (Condition('flow', '<=', 10), False),
    (Condition('missing', 'exists'), False),
    (Condition('meta.site', 'exists'), True),
    (Condition('missing', '>', 1), False),
])
def test_condition_operators(condition, expected):
    payload = {'id': 7, 'type': 'pump', 'tags': ['hot'], 'flow': 12.5, 'meta': {'site': None}}
    assert condition_matches(condition, payload) is expected


def test_subexpressions_are_evaluated_left_to_right():
    payload = {'type': 'tank', 'flow': 3}
    condition = Condition('type', '==', 'pump', subexpressions=[
        Condition('flow', '<', 5, expression='OR'),
        Condition('type', '==', 'tank', expression='AND'),
    ])
    assert condition_matches(condition, payload)

    condition.subexpressions.append(Condition('flow', '>', 100, expression='AND'))
    assert not condition_matches(condition, payload)


def test_all_conditions_must_hold():
    transformation = TypeTransformation(metatype_name='Pump', conditions=[
        Condition('type', '==', 'pump'), Condition('flow', '>', 1)])
    assert transformation_applies(transformation, {'type': 'pump', 'flow': 2})
    assert not transformation_applies(transformation, {'type': 'pump', 'flow': 0})


def test_validation_errors():
    assert TypeTransformation().validation_errors()
    assert TypeTransformation(metatype_name='Pump', metatype_relationship_pair_name='A : b : C').validation_errors()
    assert TypeTransformation(metatype_relationship_pair_name='A : b : C').validation_errors()
    assert TypeTransformation(metatype_name='Pump', conditions=[Condition('x', '~=')]).validation_errors()
    assert TypeTransformation(metatype_name='Pump', keys=[KeyMapping(key='id')]).validation_errors()
    assert TypeTransformation(metatype_name='Pump', keys=[KeyMapping(key='id', metatype_key_name='name')]) \
        .validation_errors() == []


@pytest.mark.asyncio
async def test_apply_node_transformation(sample_ontology, mapping, pump):
    transformation = TypeTransformation(
        metatype_name='Pump', unique_identifier_key='id',
        conditions=[Condition('kind', '==', 'pump')],
        keys=[KeyMapping(key='label', metatype_key_name='name'),
              KeyMapping(key='rate', metatype_key_name='flow_rate'),
              KeyMapping(value='open', metatype_key_name='status')])
    applier = TransformationApplier(sample_ontology)

    nodes, edges = await applier.apply(mapping, transformation, {'kind': 'pump', 'id': 9, 'label': 'P-9',
                                                                 'rate': 4}, 'import-1')
    assert edges == []
    assert len(nodes) == 1
    node = nodes[0]
    assert node.metatype_id == pump.id
    assert node.properties == {'name': 'P-9', 'flow_rate': 4, 'status': 'open'}
    assert node.original_data_id == '9'
    assert node.data_source_id == 'ds-1'
    assert node.import_data_id == 'import-1'
    assert node.data_type_mapping_id == 'mapping-1'

    assert await applier.apply(mapping, transformation, {'kind': 'tank', 'id': 1}) == ([], [])


@pytest.mark.asyncio
async def test_apply_root_array(sample_ontology, mapping):
    transformation = TypeTransformation(
        metatype_name='Pump', root_array='pumps', unique_identifier_key='pumps[].id',
        keys=[KeyMapping(key='pumps[].name', metatype_key_name='name'),
              KeyMapping(key='site', metatype_key_name='tags')])
    nodes, _ = await TransformationApplier(sample_ontology).apply(
        mapping, transformation, {'site': ['north'], 'pumps': [{'id': 1, 'name': 'A'}, {'id': 2, 'name': 'B'}]})

    assert [n.original_data_id for n in nodes] == ['1', '2']
    assert [n.properties for n in nodes] == [{'name': 'A', 'tags': ['north']}, {'name': 'B', 'tags': ['north']}]


@pytest.mark.asyncio
async def test_apply_edge_transformation(sample_ontology, mapping, feeds_pair):
    transformation = TypeTransformation(
        metatype_relationship_pair_name='Pump : feeds : Tank', origin_id_key='from', destination_id_key='to',
        keys=[KeyMapping(key='since', metatype_relationship_key_name='since')])
    nodes, edges = await TransformationApplier(sample_ontology).apply(
        mapping, transformation, {'from': 'p1', 'to': 't1', 'since': '2020'})

    assert nodes == []
    pending = edges[0]
    assert pending.edge.relationship_pair_id == feeds_pair.id
    assert pending.edge.properties == {'since': '2020'}
    assert (pending.origin_original_id, pending.destination_original_id) == ('p1', 't1')


@pytest.mark.asyncio
async def test_apply_unknown_key(sample_ontology, mapping):
    transformation = TypeTransformation(metatype_name='Pump', keys=[KeyMapping(key='x', metatype_key_name='color')])
    with pytest.raises(ValidationError):
        await TransformationApplier(sample_ontology).apply(mapping, transformation, {'x': 'red'})


@pytest.mark.asyncio
async def test_populate_keys_and_backfill_ids(sample_ontology, pump, feeds_pair):
    repo = TypeTransformationRepository(sample_ontology)
    name_key = pump.key_by_property_name('name')
    transformation = TypeTransformation(metatype_id=pump.id, keys=[KeyMapping(key='label', metatype_key_id=name_key.id)])

    await repo.populate_keys(transformation)
    assert transformation.metatype_name == 'Pump'
    assert transformation.keys[0].metatype_key_name == 'name'

    transformation.metatype_id = None
    transformation.keys[0].metatype_key_id = None
    await repo.backfill_ids(CONTAINER_ID, transformation)
    assert transformation.metatype_id == pump.id
    assert transformation.keys[0].metatype_key_id == name_key.id

    edge_transformation = TypeTransformation(metatype_relationship_pair_id=feeds_pair.id)
    await repo.populate_keys(edge_transformation)
    assert edge_transformation.metatype_relationship_pair_name == 'Pump : feeds : Tank'


@pytest.mark.asyncio
async def test_backfill_unknown_names(sample_ontology):
    repo = TypeTransformationRepository(sample_ontology)
    with pytest.raises(NotFoundError):
        await repo.backfill_ids(CONTAINER_ID, TypeTransformation(metatype_name='Valve'))
    with pytest.raises(NotFoundError):
        await repo.backfill_ids(CONTAINER_ID, TypeTransformation(
            metatype_name='Pump', keys=[KeyMapping(key='x', metatype_key_name='color')]))
    with pytest.raises(NotFoundError):
        await repo.backfill_ids(CONTAINER_ID, TypeTransformation(metatype_relationship_pair_name='Pump feeds Tank'))
