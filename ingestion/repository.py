"""
TypeMappingRepository persists and retrieves type mappings together with the
transformations they own. Users should go through the repository rather than
the mappers: it validates, keeps the cache coherent and wraps multi-step
writes in a transaction.
"""
import asyncio
import copy
import logging
from typing import List, Optional, Union

from ontograph.cache import Cache, NullCache
from ontograph.errors import ConflictError, NotFoundError, OntographError, PartialFailure, ValidationError
from ontograph.ontology import OntologyStore
from ontograph.transaction import Transaction

from .mappers import DataSourceMapper, TypeMappingMapper, TypeTransformationMapper
from .models import DataSource, TypeMapping, TypeTransformation
from .transformations import TypeTransformationRepository

MAPPING_TABLE = 'data_type_mappings'
TRANSFORMATION_TABLE = 'data_type_mapping_transformations'


def mapping_cache_key(mapping_id: str) -> str:
    return f"{MAPPING_TABLE}:{mapping_id}"


def shape_hash_cache_key(data_source_id: str, shape_hash: str) -> str:
    return f"{MAPPING_TABLE}:dataSourceID:{data_source_id}:shapeHash:{shape_hash}"


class TypeMappingRepository:
    def __init__(self, ontology: OntologyStore, cache: Optional[Cache] = None,
                 mapper: Optional[TypeMappingMapper] = None,
                 transformation_mapper: Optional[TypeTransformationMapper] = None,
                 data_source_mapper: Optional[DataSourceMapper] = None,
                 cache_ttl: int = 21600):
        self.cache = cache or NullCache()
        self.cache_ttl = cache_ttl
        self.mapper = mapper or TypeMappingMapper()
        self.transformation_mapper = transformation_mapper or TypeTransformationMapper()
        self.data_source_mapper = data_source_mapper or DataSourceMapper()
        self.transformation_repo = TypeTransformationRepository(ontology, self.transformation_mapper)
        self.logger = logging.getLogger("TypeMappingRepository")

    #
    # READS
    #
    async def find_by_id(self, mapping_id: str, load_transformations: bool = True) -> TypeMapping:
        cached = await self._get_cached(mapping_cache_key(mapping_id))
        if cached:
            return cached

        retrieved = await self.mapper.retrieve(mapping_id)
        if load_transformations:
            # only whole mappings are cached
            retrieved.add_transformation(*await self.transformation_mapper.list_for_type_mapping(retrieved.id))
            await self._set_cache(retrieved)
        return retrieved

    async def find_by_shape_hash(self, shape_hash: str, data_source_id: str,
                                 load_transformations: bool = True) -> TypeMapping:
        """Shape hashes are unique only within a data source, so both are needed."""
        cached = await self._get_cached(shape_hash_cache_key(data_source_id, shape_hash))
        if cached:
            return cached

        retrieved = await self.mapper.retrieve_by_shape_hash(data_source_id, shape_hash)
        if load_transformations:
            retrieved.add_transformation(*await self.transformation_mapper.list_for_type_mapping(retrieved.id))
            await self._set_cache(retrieved)
        return retrieved

    async def list(self, container_id: Optional[str] = None, data_source_id: Optional[str] = None,
                   active: Optional[bool] = None, load_transformations: bool = True) -> List[TypeMapping]:
        mappings = await self.mapper.list(container_id=container_id, data_source_id=data_source_id, active=active)
        if load_transformations:
            transformations = await asyncio.gather(
                *(self.transformation_mapper.list_for_type_mapping(m.id) for m in mappings))
            for mapping, owned in zip(mappings, transformations):
                mapping.add_transformation(*owned)
        return mappings

    async def count_for_data_source(self, data_source_id: str) -> int:
        return await self.mapper.count(data_source_id)

    async def count_for_data_source_no_transformations(self, data_source_id: str) -> int:
        mappings = await self.mapper.list(data_source_id=data_source_id)
        count = 0
        for mapping in mappings:
            if not await self.transformation_mapper.list_for_type_mapping(mapping.id):
                count += 1
        return count

    #
    # WRITES
    #
    async def save(self, mapping: TypeMapping, user_id: str, save_transformations: bool = True,
                   transaction: Optional[Transaction] = None) -> TypeMapping:
        """Create or update a mapping and, by default, reconcile its transformations.

        Without a transaction one is opened and committed here; any failure
        rolls it back before re-raising.
        """
        errors = mapping.validation_errors()
        if errors:
            raise ValidationError(f"type mapping does not pass validation {','.join(errors)}", errors)

        internal_transaction = transaction is None
        if internal_transaction:
            transaction = Transaction()

        is_new = not mapping.id
        try:
            if is_new:
                saved = await self.mapper.create(user_id, mapping, transaction)
            else:
                await self.delete_cached(mapping)
                saved = await self.mapper.update(user_id, mapping, transaction)

            mapping.id = saved.id
            mapping.created_at, mapping.created_by = saved.created_at, saved.created_by
            mapping.modified_at, mapping.modified_by = saved.modified_at, saved.modified_by
            for transformation in mapping.transformations:
                transformation.type_mapping_id = mapping.id

            if save_transformations:
                await self.save_transformations(user_id, mapping, transaction)

            if internal_transaction:
                await transaction.commit()
        except Exception:
            if internal_transaction and transaction.active:
                await transaction.rollback()
            if is_new:
                mapping.id = None
            raise
        return mapping

    async def save_transformations(self, user_id: str, mapping: TypeMapping,
                                   transaction: Optional[Transaction] = None) -> List[TypeTransformation]:
        """Delete removed transformations, then bulk update existing ones and bulk create new ones."""
        internal_transaction = transaction is None
        if internal_transaction:
            transaction = Transaction()

        try:
            if mapping.removed_transformations:
                for transformation in mapping.removed_transformations:
                    await self.delete_cached_transformation(transformation)
                await self.transformation_mapper.bulk_delete(mapping.id, mapping.removed_transformations, transaction)

            to_update: List[TypeTransformation] = []
            to_create: List[TypeTransformation] = []
            for transformation in mapping.transformations:
                if transformation.id:
                    await self.delete_cached_transformation(transformation)
                transformation.type_mapping_id = mapping.id
                transformation.container_id = mapping.container_id
                transformation.data_source_id = mapping.data_source_id
                transformation.shape_hash = mapping.shape_hash

                errors = transformation.validation_errors()
                if errors:
                    raise ValidationError(
                        f"one or more transformations do not pass validation {','.join(errors)}", errors)
                (to_update if transformation.id else to_create).append(transformation)

            saved: List[TypeTransformation] = []
            if to_update:
                saved.extend(await self.transformation_mapper.bulk_update(user_id, to_update, transaction))
            if to_create:
                saved.extend(await self.transformation_mapper.bulk_create(user_id, to_create, transaction))

            if internal_transaction:
                await transaction.commit()
        except Exception:
            if internal_transaction and transaction.active:
                await transaction.rollback()
            raise

        mapping.replace_transformations(saved)
        return saved

    async def delete(self, mapping: TypeMapping) -> bool:
        if not mapping.id:
            raise ValidationError("type mapping must have id")
        await self.delete_cached(mapping)

        transaction = Transaction()
        try:
            await self.transformation_mapper.delete_for_type_mapping(mapping.id, transaction)
            deleted = await self.mapper.delete(mapping.id, transaction)
            await transaction.commit()
        except Exception:
            if transaction.active:
                await transaction.rollback()
            raise
        return deleted

    async def find_or_create(self, data_source: DataSource, shape_hash: str, sample_payload=None,
                             user_id: str = 'system') -> TypeMapping:
        """Return the mapping for a shape, creating an inactive one on first sight.

        When a concurrent caller creates the same mapping first, the
        uniqueness conflict is answered by reading theirs.
        """
        try:
            return await self.find_by_shape_hash(shape_hash, data_source.id)
        except NotFoundError:
            pass

        mapping = TypeMapping(container_id=data_source.container_id, data_source_id=data_source.id,
                              shape_hash=shape_hash, sample_payload=sample_payload, active=False)
        try:
            return await self.save(mapping, user_id)
        except ConflictError:
            self.logger.info(f"Type mapping for shape {shape_hash} created concurrently, re-reading")
            return await self.find_by_shape_hash(shape_hash, data_source.id)

    #
    # IMPORT / EXPORT
    #
    async def prepare_for_import(self, mapping: TypeMapping, separate_container: bool = True) -> TypeMapping:
        """Return a neutral copy of a mapping, stripped of ids, for later import.

        For a separate container the metatype, pair and key names are filled in
        and their ids removed, so the import can look them up by name.
        """
        prepared = copy.deepcopy(mapping)
        for transformation in prepared.transformations:
            if separate_container:
                await self.transformation_repo.populate_keys(transformation)
                for key in transformation.keys:
                    key.metatype_key_id = None
                    key.metatype_relationship_key_id = None
                transformation.metatype_id = None
                transformation.metatype_relationship_pair_id = None

            transformation.type_mapping_id = None
            transformation.id = None
            transformation.container_id = None
            transformation.data_source_id = None
            transformation.shape_hash = None
            transformation.created_at = transformation.created_by = None
            transformation.modified_at = transformation.modified_by = None

        if separate_container:
            prepared.container_id = None
        prepared.id = None
        prepared.data_source_id = None
        prepared.removed_transformations = []
        prepared.created_at = prepared.created_by = None
        prepared.modified_at = prepared.modified_by = None
        return prepared

    async def import_to_data_source(self, target_source_id: str, user_id: str,
                                    *mappings: TypeMapping) -> List[Union[TypeMapping, PartialFailure]]:
        """Copy mappings and their transformations into another data source.

        Mappings import concurrently and independently. Each result is the new,
        inactive mapping or a ``PartialFailure`` carrying the untouched original.
        """
        target = await self.data_source_mapper.retrieve(target_source_id)

        async def import_one(original: TypeMapping) -> Union[TypeMapping, PartialFailure]:
            try:
                mapping = await self.prepare_for_import(original, original.container_id != target.container_id)
                mapping.data_source_id = target.id
                mapping.container_id = target.container_id
                mapping.active = False
                await self.transformation_repo.backfill_ids(target.container_id, *mapping.transformations)
                return await self.save(mapping, user_id, True)
            except OntographError as e:
                self.logger.error(f"Unable to import type mapping {original.id} into {target_source_id}: {str(e)}")
                return PartialFailure(original, e)

        return list(await asyncio.gather(*(import_one(m) for m in mappings)))

    #
    # CACHE
    #
    async def _get_cached(self, key: str) -> Optional[TypeMapping]:
        try:
            cached = await self.cache.get(key)
        except Exception as e:
            self.logger.error(f"Unable to read cache key {key}: {str(e)}")
            return None
        return TypeMapping.from_dict(cached) if cached else None

    async def _set_cache(self, mapping: TypeMapping) -> bool:
        serialized = mapping.to_dict()
        stored = True
        for key in (mapping_cache_key(mapping.id), shape_hash_cache_key(mapping.data_source_id, mapping.shape_hash)):
            try:
                if not await self.cache.set(key, serialized, self.cache_ttl):
                    stored = False
            except Exception as e:
                self.logger.error(f"Unable to set cache for type mapping {mapping.id}: {str(e)}")
                stored = False
        return stored

    async def delete_cached(self, mapping: Union[TypeMapping, str]) -> bool:
        """Remove both cache entries of a mapping, given the mapping or its id."""
        if isinstance(mapping, str):
            try:
                mapping = await self.mapper.retrieve(mapping)
            except NotFoundError:
                self.logger.error(f"Unable to retrieve type mapping {mapping} for cache deletion")
                return False

        deleted = True
        for key in (mapping_cache_key(mapping.id), shape_hash_cache_key(mapping.data_source_id, mapping.shape_hash)):
            try:
                await self.cache.delete(key)
            except Exception as e:
                self.logger.error(f"Unable to remove type mapping {mapping.id} from cache: {str(e)}")
                deleted = False
        return deleted

    async def delete_cached_transformation(self, transformation: TypeTransformation) -> bool:
        try:
            return await self.cache.delete(f"{TRANSFORMATION_TABLE}:{transformation.id}")
        except Exception as e:
            self.logger.error(f"Unable to remove type transformation {transformation.id} from cache: {str(e)}")
            return False
