"""
Tests for ontology storage, property mapping and validation.
"""
import pytest

from ontograph.errors import NotFoundError, ValidationError
from ontograph.models import Metatype, MetatypeKey, MetatypeRelationshipPair, split_pair_name
from ontograph.ontology import LocalOntologyStore, format_ontology, map_properties, validate_properties

CONTAINER_ID = 'container-1'


def test_add_metatype_assigns_ids(pump):
    assert pump.id
    assert all(key.id for key in pump.keys)
    assert all(key.metatype_id == pump.id for key in pump.keys)


def test_add_metatype_rejects_colliding_key_names():
    ontology = LocalOntologyStore()
    with pytest.raises(ValidationError) as exc:
        ontology.add_metatype(Metatype('Valve', CONTAINER_ID, keys=[
            MetatypeKey('flow rate', 'number'),
            MetatypeKey('flow-rate', 'number'),
        ]))
    assert 'flow_rate' in exc.value.errors[0]


def test_add_metatype_rejects_invalid_keys():
    ontology = LocalOntologyStore()
    with pytest.raises(ValidationError):
        ontology.add_metatype(Metatype('Valve', CONTAINER_ID, keys=[MetatypeKey('state', 'enumeration')]))
    with pytest.raises(ValidationError):
        ontology.add_metatype(Metatype('Valve', CONTAINER_ID, keys=[MetatypeKey('state', 'color')]))


def test_pair_name_is_derived(feeds_pair):
    assert feeds_pair.origin_metatype_name == 'Pump'
    assert feeds_pair.destination_metatype_name == 'Tank'
    assert feeds_pair.name == 'Pump : feeds : Tank'


def test_pair_from_legacy_name():
    pair = MetatypeRelationshipPair.from_dict({'container_id': CONTAINER_ID, 'name': 'Pump : feeds : Tank'})
    assert (pair.origin_metatype_name, pair.relationship_name, pair.destination_metatype_name) == \
        ('Pump', 'feeds', 'Tank')


def test_split_pair_name_requires_three_parts():
    assert split_pair_name('A : has : B') == ('A', 'has', 'B')
    with pytest.raises(ValueError):
        split_pair_name('A : has : B : C')
    with pytest.raises(ValueError):
        split_pair_name('A has B')


@pytest.mark.asyncio
async def test_find_by_names(sample_ontology, pump):
    found = await sample_ontology.find_metatype_by_name(CONTAINER_ID, 'Pump')
    assert found.id == pump.id
    pair = await sample_ontology.find_relationship_pair_by_names(CONTAINER_ID, 'Pump', 'feeds', 'Tank')
    assert pair.relationship_name == 'feeds'

    with pytest.raises(NotFoundError):
        await sample_ontology.find_metatype_by_name('other-container', 'Pump')
    with pytest.raises(NotFoundError):
        await sample_ontology.find_relationship_pair_by_names(CONTAINER_ID, 'Tank', 'feeds', 'Pump')


@pytest.mark.asyncio
async def test_list_is_scoped_to_container(sample_ontology):
    assert len(await sample_ontology.list_metatypes(CONTAINER_ID)) == 2
    assert await sample_ontology.list_metatypes('other-container') == []
    without_keys = await sample_ontology.list_metatypes(CONTAINER_ID, with_keys=False)
    assert all(m.keys == [] for m in without_keys)


def test_map_properties_converts_declared_types(pump):
    mapped = map_properties(pump, {'name': 'P-1', 'flow_rate': '12.5', 'extra': 'x'})
    assert mapped == {'name': 'P-1', 'flow_rate': 12.5, 'extra': 'x'}


def test_map_properties_passes_unconvertible_values_through(pump):
    mapped = map_properties(pump, {'name': 'P-1', 'flow_rate': 'fast'})
    assert mapped['flow_rate'] == 'fast'


def test_validate_properties(pump):
    assert validate_properties(pump, {'name': 'P-1', 'flow_rate': 3, 'status': 'open'})

    with pytest.raises(ValidationError, match='Missing required'):
        validate_properties(pump, {'flow_rate': 3})

    with pytest.raises(ValidationError) as exc:
        validate_properties(pump, {'name': 'P-1', 'flow_rate': 'fast', 'color': 'red'})
    assert len(exc.value.errors) == 2

    with pytest.raises(ValidationError):
        validate_properties(pump, {'name': 'P-1', 'status': 'half'})


def test_persistence_round_trip(sample_ontology, tmp_path):
    path = str(tmp_path / 'ontology.json')
    sample_ontology.save(path)

    loaded = LocalOntologyStore()
    loaded.load(path)
    assert set(loaded.metatypes) == set(sample_ontology.metatypes)
    assert next(iter(loaded.pairs.values())).name == 'Pump : feeds : Tank'


@pytest.mark.asyncio
async def test_format_ontology(sample_ontology):
    summary = format_ontology(await sample_ontology.list_metatypes(CONTAINER_ID),
                              await sample_ontology.list_relationship_pairs(CONTAINER_ID))
    assert 'Pump: keys = {name (string, required)' in summary
    assert 'status (enumeration[open, closed])' in summary
    assert '  - Pump : feeds : Tank' in summary
