"""
Domain objects for data sources and type mapping.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from ontograph.models import Record

CONDITION_OPERATORS = ('==', '!=', 'in', 'contains', 'exists', '<', '<=', '>', '>=')
EXPRESSIONS = ('AND', 'OR')


@dataclass
class DataSource(Record):
    container_id: str
    name: str
    adapter_type: str = 'standard'
    active: bool = True
    id: Optional[str] = None
    created_at: Optional[datetime] = None
    created_by: Optional[str] = None
    modified_at: Optional[datetime] = None
    modified_by: Optional[str] = None

    def validation_errors(self) -> List[str]:
        errors = []
        if not self.container_id:
            errors.append('data source container_id is required')
        if not self.name:
            errors.append('data source name is required')
        return errors


@dataclass
class Condition(Record):
    """A test against one payload key.

    Subexpressions are joined to the condition with their ``expression``,
    left to right.
    """
    key: str
    operator: str
    value: Any = None
    expression: Optional[str] = None
    subexpressions: List['Condition'] = field(default_factory=list)

    def validation_errors(self) -> List[str]:
        errors = []
        if not self.key:
            errors.append('condition key is required')
        if self.operator not in CONDITION_OPERATORS:
            errors.append(f"condition operator '{self.operator}' must be one of {', '.join(CONDITION_OPERATORS)}")
        for sub in self.subexpressions:
            if sub.expression not in EXPRESSIONS:
                errors.append(f"subexpression expression '{sub.expression}' must be AND or OR")
            errors.extend(sub.validation_errors())
        return errors

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Condition':
        known = cls._known(data)
        known['subexpressions'] = [Condition.from_dict(s) for s in data.get('subexpressions') or []]
        return cls(**known)


@dataclass
class KeyMapping(Record):
    """Maps a payload path, or a constant value, onto a metatype or relationship key."""
    key: Optional[str] = None
    value: Any = None
    metatype_key_id: Optional[str] = None
    metatype_key_name: Optional[str] = None
    metatype_relationship_key_id: Optional[str] = None
    metatype_relationship_key_name: Optional[str] = None

    def validation_errors(self) -> List[str]:
        errors = []
        if self.key is None and self.value is None:
            errors.append('key mapping requires a payload key or a constant value')
        if not (self.metatype_key_id or self.metatype_key_name
                or self.metatype_relationship_key_id or self.metatype_relationship_key_name):
            errors.append(f"key mapping '{self.key}' has no target key")
        return errors


@dataclass
class TypeTransformation(Record):
    id: Optional[str] = None
    type_mapping_id: Optional[str] = None
    container_id: Optional[str] = None
    data_source_id: Optional[str] = None
    shape_hash: Optional[str] = None
    conditions: List[Condition] = field(default_factory=list)
    keys: List[KeyMapping] = field(default_factory=list)
    metatype_id: Optional[str] = None
    metatype_name: Optional[str] = None
    metatype_relationship_pair_id: Optional[str] = None
    metatype_relationship_pair_name: Optional[str] = None
    unique_identifier_key: Optional[str] = None
    origin_id_key: Optional[str] = None
    destination_id_key: Optional[str] = None
    root_array: Optional[str] = None
    archived: bool = False
    created_at: Optional[datetime] = None
    created_by: Optional[str] = None
    modified_at: Optional[datetime] = None
    modified_by: Optional[str] = None

    @property
    def targets_node(self) -> bool:
        return bool(self.metatype_id or self.metatype_name)

    @property
    def targets_edge(self) -> bool:
        return bool(self.metatype_relationship_pair_id or self.metatype_relationship_pair_name)

    def validation_errors(self) -> List[str]:
        errors = []
        if self.targets_node == self.targets_edge:
            errors.append('transformation must target exactly one of a metatype or a relationship pair')
        if self.targets_edge and not (self.origin_id_key and self.destination_id_key):
            errors.append('relationship transformations require origin_id_key and destination_id_key')
        for condition in self.conditions:
            errors.extend(condition.validation_errors())
        for key in self.keys:
            errors.extend(key.validation_errors())
        return errors

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TypeTransformation':
        known = cls._known(data)
        known['conditions'] = [Condition.from_dict(c) for c in data.get('conditions') or []]
        known['keys'] = [KeyMapping.from_dict(k) for k in data.get('keys') or []]
        return cls(**known)


@dataclass
class TypeMapping(Record):
    container_id: Optional[str] = None
    data_source_id: Optional[str] = None
    shape_hash: Optional[str] = None
    active: bool = False
    sample_payload: Any = None
    id: Optional[str] = None
    transformations: List[TypeTransformation] = field(default_factory=list)
    removed_transformations: List[TypeTransformation] = field(default_factory=list)
    created_at: Optional[datetime] = None
    created_by: Optional[str] = None
    modified_at: Optional[datetime] = None
    modified_by: Optional[str] = None

    def validation_errors(self) -> List[str]:
        errors = []
        if not self.container_id:
            errors.append('type mapping container_id is required')
        if not self.data_source_id:
            errors.append('type mapping data_source_id is required')
        if not self.shape_hash:
            errors.append('type mapping shape_hash is required')
        return errors

    def add_transformation(self, *transformations: TypeTransformation):
        self.transformations.extend(transformations)

    def remove_transformation(self, *transformations: TypeTransformation):
        """Drop transformations, queueing persisted ones for deletion on save."""
        for transformation in transformations:
            self.transformations = [t for t in self.transformations if t is not transformation
                                    and (t.id is None or t.id != transformation.id)]
            if transformation.id:
                self.removed_transformations.append(transformation)

    def replace_transformations(self, transformations: List[TypeTransformation]):
        self.transformations = list(transformations)
        self.removed_transformations = []

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TypeMapping':
        known = cls._known(data)
        known['transformations'] = [TypeTransformation.from_dict(t) for t in data.get('transformations') or []]
        known['removed_transformations'] = [TypeTransformation.from_dict(t)
                                            for t in data.get('removed_transformations') or []]
        return cls(**known)


@dataclass
class DataStaging(Record):
    data_source_id: str
    data: Any
    shape_hash: str
    import_id: Optional[str] = None
    mapping_id: Optional[str] = None
    id: Optional[str] = None
    inserted_at: Optional[datetime] = None
    errors: List[str] = field(default_factory=list)

    _datetime_fields = ('inserted_at',)
