"""
In-process persistence for data sources, type mappings, transformations and
staged records.

Writes accept an optional ``Transaction``; when one is given, each write
registers the undo step that restores the previous state.
"""
import copy
import uuid
from datetime import datetime
from typing import Callable, Dict, List, Optional

from ontograph.errors import ConflictError, NotFoundError, ValidationError
from ontograph.transaction import Transaction

from .models import DataSource, DataStaging, TypeMapping, TypeTransformation


def _journal(transaction: Optional[Transaction], undo: Callable):
    if transaction is not None:
        transaction.add_rollback(undo)


def _restore(table: Dict, key: str, previous):
    def undo():
        if previous is None:
            table.pop(key, None)
        else:
            table[key] = previous
    return undo


class DataSourceMapper:
    def __init__(self):
        self.sources: Dict[str, DataSource] = {}

    async def create(self, user_id: str, source: DataSource) -> DataSource:
        source = copy.deepcopy(source)
        source.id = source.id or str(uuid.uuid4())
        now = datetime.now()
        source.created_at, source.created_by = now, user_id
        source.modified_at, source.modified_by = now, user_id
        self.sources[source.id] = source
        return copy.deepcopy(source)

    async def retrieve(self, source_id: str) -> DataSource:
        if source_id not in self.sources:
            raise NotFoundError(f"data source {source_id} not found")
        return copy.deepcopy(self.sources[source_id])

    async def list(self, container_id: Optional[str] = None) -> List[DataSource]:
        return [copy.deepcopy(s) for s in self.sources.values()
                if container_id is None or s.container_id == container_id]


class TypeMappingMapper:
    """Stores mapping rows. Transformations live in ``TypeTransformationMapper``."""

    def __init__(self):
        self.mappings: Dict[str, TypeMapping] = {}

    @staticmethod
    def _row(mapping: TypeMapping) -> TypeMapping:
        row = copy.deepcopy(mapping)
        row.transformations = []
        row.removed_transformations = []
        return row

    def _check_unique(self, mapping: TypeMapping):
        for existing in self.mappings.values():
            if existing.id != mapping.id and existing.data_source_id == mapping.data_source_id \
                    and existing.shape_hash == mapping.shape_hash:
                raise ConflictError(
                    f"a type mapping for shape {mapping.shape_hash} already exists in data source "
                    f"{mapping.data_source_id}")

    async def create(self, user_id: str, mapping: TypeMapping,
                     transaction: Optional[Transaction] = None) -> TypeMapping:
        row = self._row(mapping)
        row.id = str(uuid.uuid4())
        self._check_unique(row)
        now = datetime.now()
        row.created_at, row.created_by = now, user_id
        row.modified_at, row.modified_by = now, user_id
        self.mappings[row.id] = row
        _journal(transaction, _restore(self.mappings, row.id, None))
        return copy.deepcopy(row)

    async def update(self, user_id: str, mapping: TypeMapping,
                     transaction: Optional[Transaction] = None) -> TypeMapping:
        previous = self.mappings.get(mapping.id)
        if previous is None:
            raise NotFoundError(f"type mapping {mapping.id} not found")
        self._check_unique(mapping)
        row = self._row(mapping)
        row.created_at, row.created_by = previous.created_at, previous.created_by
        row.modified_at, row.modified_by = datetime.now(), user_id
        self.mappings[row.id] = row
        _journal(transaction, _restore(self.mappings, row.id, previous))
        return copy.deepcopy(row)

    async def retrieve(self, mapping_id: str) -> TypeMapping:
        if mapping_id not in self.mappings:
            raise NotFoundError(f"type mapping {mapping_id} not found")
        return copy.deepcopy(self.mappings[mapping_id])

    async def retrieve_by_shape_hash(self, data_source_id: str, shape_hash: str) -> TypeMapping:
        for mapping in self.mappings.values():
            if mapping.data_source_id == data_source_id and mapping.shape_hash == shape_hash:
                return copy.deepcopy(mapping)
        raise NotFoundError(f"no type mapping for shape {shape_hash} in data source {data_source_id}")

    async def delete(self, mapping_id: str, transaction: Optional[Transaction] = None) -> bool:
        previous = self.mappings.pop(mapping_id, None)
        if previous is None:
            return False
        _journal(transaction, _restore(self.mappings, mapping_id, previous))
        return True

    async def list(self, container_id: Optional[str] = None, data_source_id: Optional[str] = None,
                   active: Optional[bool] = None) -> List[TypeMapping]:
        return [copy.deepcopy(m) for m in self.mappings.values()
                if (container_id is None or m.container_id == container_id)
                and (data_source_id is None or m.data_source_id == data_source_id)
                and (active is None or m.active == active)]

    async def count(self, data_source_id: str) -> int:
        return sum(1 for m in self.mappings.values() if m.data_source_id == data_source_id)


class TypeTransformationMapper:
    def __init__(self):
        self.transformations: Dict[str, TypeTransformation] = {}

    async def bulk_create(self, user_id: str, transformations: List[TypeTransformation],
                          transaction: Optional[Transaction] = None) -> List[TypeTransformation]:
        created = []
        now = datetime.now()
        for transformation in transformations:
            row = copy.deepcopy(transformation)
            row.id = str(uuid.uuid4())
            row.created_at, row.created_by = now, user_id
            row.modified_at, row.modified_by = now, user_id
            self.transformations[row.id] = row
            _journal(transaction, _restore(self.transformations, row.id, None))
            created.append(copy.deepcopy(row))
        return created

    def _check_owner(self, transformation_id: str, type_mapping_id: Optional[str]):
        stored = self.transformations.get(transformation_id)
        if stored is not None and stored.type_mapping_id != type_mapping_id:
            raise ValidationError(
                f"type transformation {transformation_id} belongs to type mapping {stored.type_mapping_id}")

    async def bulk_update(self, user_id: str, transformations: List[TypeTransformation],
                          transaction: Optional[Transaction] = None) -> List[TypeTransformation]:
        """Update transformations in place. A transformation never moves between type mappings."""
        missing = [t.id for t in transformations if t.id not in self.transformations]
        if missing:
            raise NotFoundError(f"type transformations not found: {', '.join(missing)}")
        for transformation in transformations:
            self._check_owner(transformation.id, transformation.type_mapping_id)

        updated = []
        for transformation in transformations:
            previous = self.transformations[transformation.id]
            row = copy.deepcopy(transformation)
            row.created_at, row.created_by = previous.created_at, previous.created_by
            row.modified_at, row.modified_by = datetime.now(), user_id
            self.transformations[row.id] = row
            _journal(transaction, _restore(self.transformations, row.id, previous))
            updated.append(copy.deepcopy(row))
        return updated

    async def bulk_delete(self, type_mapping_id: str, transformations: List[TypeTransformation],
                          transaction: Optional[Transaction] = None) -> bool:
        for transformation in transformations:
            self._check_owner(transformation.id, type_mapping_id)

        for transformation in transformations:
            previous = self.transformations.pop(transformation.id, None)
            if previous is not None:
                _journal(transaction, _restore(self.transformations, transformation.id, previous))
        return True

    async def delete_for_type_mapping(self, mapping_id: str, transaction: Optional[Transaction] = None) -> bool:
        owned = [t for t in self.transformations.values() if t.type_mapping_id == mapping_id]
        return await self.bulk_delete(mapping_id, owned, transaction)

    async def retrieve(self, transformation_id: str) -> TypeTransformation:
        if transformation_id not in self.transformations:
            raise NotFoundError(f"type transformation {transformation_id} not found")
        return copy.deepcopy(self.transformations[transformation_id])

    async def list_for_type_mapping(self, mapping_id: str) -> List[TypeTransformation]:
        return [copy.deepcopy(t) for t in self.transformations.values()
                if t.type_mapping_id == mapping_id and not t.archived]


class DataStagingMapper:
    def __init__(self):
        self.records: Dict[str, DataStaging] = {}

    async def create(self, staging: DataStaging) -> DataStaging:
        row = copy.deepcopy(staging)
        row.id = str(uuid.uuid4())
        row.inserted_at = datetime.now()
        self.records[row.id] = row
        return copy.deepcopy(row)

    async def set_errors(self, staging_id: str, errors: List[str]) -> bool:
        if staging_id not in self.records:
            raise NotFoundError(f"staged record {staging_id} not found")
        self.records[staging_id].errors = list(errors)
        return True

    async def list(self, data_source_id: Optional[str] = None,
                   import_id: Optional[str] = None) -> List[DataStaging]:
        return [copy.deepcopy(r) for r in self.records.values()
                if (data_source_id is None or r.data_source_id == data_source_id)
                and (import_id is None or r.import_id == import_id)]
