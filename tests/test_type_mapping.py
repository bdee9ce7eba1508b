"""
Tests for the type mapping repository: saves, caching and import.
"""
import copy

import pytest
import pytest_asyncio
from unittest.mock import AsyncMock, patch

from ingestion.mappers import DataSourceMapper
from ingestion.models import DataSource, KeyMapping, TypeMapping, TypeTransformation
from ingestion.repository import TypeMappingRepository, mapping_cache_key, shape_hash_cache_key
from ontograph.cache import MemoryCache
from ontograph.errors import ConflictError, NotFoundError, PartialFailure, ValidationError
from ontograph.models import Metatype, MetatypeKey

CONTAINER_ID = 'container-1'


@pytest.fixture
def cache():
    return MemoryCache()


@pytest.fixture
def repo(sample_ontology, cache):
    return TypeMappingRepository(sample_ontology, cache)


@pytest_asyncio.fixture
async def data_source(repo):
    return await repo.data_source_mapper.create('user', DataSource(container_id=CONTAINER_ID, name='plant feed'))


def _pump_transformation(**kwargs):
    return TypeTransformation(metatype_name='Pump', unique_identifier_key='id',
                              keys=[KeyMapping(key='name', metatype_key_name='name')], **kwargs)


def _mapping(data_source, shape_hash='hash-1'):
    return TypeMapping(container_id=data_source.container_id, data_source_id=data_source.id, shape_hash=shape_hash)


@pytest.mark.asyncio
async def test_save_creates_mapping_and_transformations(repo, data_source):
    mapping = _mapping(data_source)
    mapping.add_transformation(_pump_transformation(), _pump_transformation(root_array='items'))
    saved = await repo.save(mapping, 'alice')

    assert saved.id
    assert saved.created_by == 'alice'
    assert len(saved.transformations) == 2
    for transformation in saved.transformations:
        assert transformation.id
        assert transformation.type_mapping_id == saved.id
        assert transformation.container_id == CONTAINER_ID
        assert transformation.data_source_id == data_source.id
        assert transformation.shape_hash == 'hash-1'


@pytest.mark.asyncio
async def test_save_issues_one_bulk_update_and_one_bulk_create(repo, data_source):
    mapping = _mapping(data_source)
    mapping.add_transformation(_pump_transformation(), _pump_transformation())
    await repo.save(mapping, 'alice')

    removed = mapping.transformations[0]
    mapping.remove_transformation(removed)
    mapping.add_transformation(_pump_transformation(), _pump_transformation())

    mapper = repo.transformation_mapper
    with patch.object(mapper, 'bulk_update', wraps=mapper.bulk_update) as bulk_update, \
            patch.object(mapper, 'bulk_create', wraps=mapper.bulk_create) as bulk_create, \
            patch.object(mapper, 'bulk_delete', wraps=mapper.bulk_delete) as bulk_delete:
        await repo.save(mapping, 'bob')

    assert bulk_update.await_count == 1
    assert len(bulk_update.await_args.args[1]) == 1
    assert bulk_create.await_count == 1
    assert len(bulk_create.await_args.args[1]) == 2
    assert bulk_delete.await_count == 1
    assert len(mapping.transformations) == 3
    assert mapping.removed_transformations == []
    assert removed.id not in mapper.transformations


@pytest.mark.asyncio
async def test_invalid_transformation_rolls_back_everything(repo, data_source):
    mapping = _mapping(data_source)
    mapping.add_transformation(_pump_transformation(), TypeTransformation())

    with pytest.raises(ValidationError):
        await repo.save(mapping, 'alice')

    assert mapping.id is None
    assert repo.mapper.mappings == {}
    assert repo.transformation_mapper.transformations == {}


@pytest.mark.asyncio
async def test_failed_update_restores_previous_state(repo, data_source):
    mapping = _mapping(data_source)
    mapping.add_transformation(_pump_transformation())
    await repo.save(mapping, 'alice')
    before = dict(repo.transformation_mapper.transformations)

    mapping.active = True
    mapping.add_transformation(TypeTransformation(metatype_relationship_pair_name='Pump : feeds : Tank'))
    with pytest.raises(ValidationError):
        await repo.save(mapping, 'bob')

    stored = await repo.mapper.retrieve(mapping.id)
    assert stored.active is False
    assert stored.modified_by == 'alice'
    assert repo.transformation_mapper.transformations == before


@pytest.mark.asyncio
async def test_transformation_cannot_move_to_another_mapping(repo, data_source):
    first = _mapping(data_source, 'hash-1')
    first.add_transformation(_pump_transformation())
    await repo.save(first, 'alice')

    second = _mapping(data_source, 'hash-2')
    second.add_transformation(copy.deepcopy(first.transformations[0]))
    with pytest.raises(ValidationError):
        await repo.save(second, 'bob')

    assert second.id is None
    assert await repo.count_for_data_source(data_source.id) == 1
    assert len((await repo.find_by_id(first.id)).transformations) == 1


@pytest.mark.asyncio
async def test_cannot_remove_another_mappings_transformation(repo, data_source):
    first = _mapping(data_source, 'hash-1')
    first.add_transformation(_pump_transformation())
    await repo.save(first, 'alice')
    second = await repo.save(_mapping(data_source, 'hash-2'), 'alice')

    second.active = True
    second.removed_transformations.append(copy.deepcopy(first.transformations[0]))
    with pytest.raises(ValidationError):
        await repo.save(second, 'bob')

    assert len((await repo.find_by_id(first.id)).transformations) == 1
    assert (await repo.mapper.retrieve(second.id)).active is False

@pytest.mark.asyncio
async def test_mapping_validation(repo):
    with pytest.raises(ValidationError):
        await repo.save(TypeMapping(container_id=CONTAINER_ID), 'alice')


@pytest.mark.asyncio
async def test_find_by_id_caches_whole_mapping(repo, cache, data_source):
    mapping = _mapping(data_source)
    mapping.add_transformation(_pump_transformation())
    await repo.save(mapping, 'alice')

    found = await repo.find_by_id(mapping.id)
    assert len(found.transformations) == 1
    assert mapping_cache_key(mapping.id) in cache.cache
    assert shape_hash_cache_key(data_source.id, 'hash-1') in cache.cache

    repo.mapper.retrieve = AsyncMock(side_effect=AssertionError("cache should answer"))
    cached = await repo.find_by_id(mapping.id)
    assert cached.id == mapping.id
    assert cached.transformations[0].keys[0].metatype_key_name == 'name'

    by_hash = await repo.find_by_shape_hash('hash-1', data_source.id)
    assert by_hash.id == mapping.id


@pytest.mark.asyncio
async def test_save_invalidates_cache(repo, cache, data_source):
    mapping = _mapping(data_source)
    await repo.save(mapping, 'alice')
    await repo.find_by_id(mapping.id)

    mapping.active = True
    await repo.save(mapping, 'alice')
    assert mapping_cache_key(mapping.id) not in cache.cache
    assert (await repo.find_by_id(mapping.id)).active is True


@pytest.mark.asyncio
async def test_cache_failures_do_not_fail_reads(repo, cache, data_source):
    mapping = _mapping(data_source)
    await repo.save(mapping, 'alice')

    cache.get = AsyncMock(side_effect=RuntimeError("cache down"))
    cache.set = AsyncMock(side_effect=RuntimeError("cache down"))
    cache.delete = AsyncMock(side_effect=RuntimeError("cache down"))

    assert (await repo.find_by_id(mapping.id)).id == mapping.id
    assert not await repo.delete_cached(mapping)
    mapping.active = True
    await repo.save(mapping, 'alice')


@pytest.mark.asyncio
async def test_list_and_counts(repo, data_source):
    with_transformation = _mapping(data_source, 'hash-1')
    with_transformation.add_transformation(_pump_transformation())
    await repo.save(with_transformation, 'alice')
    await repo.save(_mapping(data_source, 'hash-2'), 'alice')

    mappings = await repo.list(data_source_id=data_source.id)
    assert sorted(len(m.transformations) for m in mappings) == [0, 1]
    assert await repo.count_for_data_source(data_source.id) == 2
    assert await repo.count_for_data_source_no_transformations(data_source.id) == 1


@pytest.mark.asyncio
async def test_delete_removes_transformations(repo, data_source):
    mapping = _mapping(data_source)
    mapping.add_transformation(_pump_transformation())
    await repo.save(mapping, 'alice')

    assert await repo.delete(mapping)
    assert repo.transformation_mapper.transformations == {}
    with pytest.raises(NotFoundError):
        await repo.find_by_id(mapping.id)


@pytest.mark.asyncio
async def test_find_or_create(repo, data_source):
    created = await repo.find_or_create(data_source, 'hash-1', {'id': 1})
    assert created.active is False
    assert created.sample_payload == {'id': 1}

    found = await repo.find_or_create(data_source, 'hash-1')
    assert found.id == created.id


@pytest.mark.asyncio
async def test_find_or_create_rereads_after_conflict(repo, data_source):
    existing = await repo.save(_mapping(data_source), 'other-worker')
    not_found_once = AsyncMock(side_effect=[NotFoundError("not yet"), existing])

    with patch.object(repo, 'find_by_shape_hash', not_found_once):
        found = await repo.find_or_create(data_source, 'hash-1')
    assert found.id == existing.id
    assert len(repo.mapper.mappings) == 1


@pytest.mark.asyncio
async def test_unique_shape_per_data_source(repo, data_source):
    await repo.save(_mapping(data_source), 'alice')
    with pytest.raises(ConflictError):
        await repo.save(_mapping(data_source), 'bob')


@pytest.mark.asyncio
async def test_prepare_for_import(repo, data_source, pump):
    mapping = _mapping(data_source)
    mapping.add_transformation(TypeTransformation(
        metatype_id=pump.id, keys=[KeyMapping(key='name', metatype_key_id=pump.key_by_property_name('name').id)]))
    await repo.save(mapping, 'alice')

    prepared = await repo.prepare_for_import(mapping)
    transformation = prepared.transformations[0]
    assert prepared.id is None and prepared.data_source_id is None and prepared.container_id is None
    assert transformation.id is None and transformation.metatype_id is None
    assert transformation.metatype_name == 'Pump'
    assert transformation.keys[0].metatype_key_id is None
    assert transformation.keys[0].metatype_key_name == 'name'

    # the original is untouched
    assert mapping.id and mapping.transformations[0].metatype_id == pump.id

    same_container = await repo.prepare_for_import(mapping, separate_container=False)
    assert same_container.container_id == CONTAINER_ID
    assert same_container.transformations[0].metatype_id == pump.id


@pytest.mark.asyncio
async def test_import_to_data_source(repo, sample_ontology, data_source):
    other_container = 'container-2'
    sample_ontology.add_metatype(Metatype('Pump', other_container, keys=[MetatypeKey('name', 'string')]))
    target = await repo.data_source_mapper.create('user', DataSource(container_id=other_container, name='copy'))

    good = _mapping(data_source, 'hash-1')
    good.active = True
    good.add_transformation(_pump_transformation())
    bad = _mapping(data_source, 'hash-2')
    bad.add_transformation(TypeTransformation(metatype_name='Tank', unique_identifier_key='id'))
    await repo.save(good, 'alice')
    await repo.save(bad, 'alice')

    results = await repo.import_to_data_source(target.id, 'bob', good, bad)

    imported, failure = results
    assert isinstance(imported, TypeMapping)
    assert imported.data_source_id == target.id
    assert imported.container_id == other_container
    assert imported.active is False
    other_pump = await sample_ontology.find_metatype_by_name(other_container, 'Pump')
    assert imported.transformations[0].metatype_id == other_pump.id

    assert isinstance(failure, PartialFailure)
    assert failure.is_error
    assert failure.item is bad
    assert isinstance(failure.error, NotFoundError)
    assert await repo.count_for_data_source(target.id) == 1


@pytest.mark.asyncio
async def test_import_to_missing_data_source(repo, data_source):
    with pytest.raises(NotFoundError):
        await repo.import_to_data_source('missing', 'bob', _mapping(data_source))


def test_data_source_mapper_is_shared(sample_ontology):
    mapper = DataSourceMapper()
    assert TypeMappingRepository(sample_ontology, data_source_mapper=mapper).data_source_mapper is mapper
