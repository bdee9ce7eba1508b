"""
Domain objects for the ontology, the graph and ontology versioning.
"""
from dataclasses import dataclass, field, fields, asdict
from datetime import datetime
from typing import Any, Dict, List, Optional

DATA_TYPES = ('number', 'boolean', 'string', 'date', 'file', 'list', 'enumeration')

CHANGELIST_STATUSES = ('pending', 'approved', 'rejected', 'applied', 'deprecated', 'ready')

PAIR_NAME_SEPARATOR = ' : '


def parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def _serialize(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, list):
        return [_serialize(v) for v in value]
    if isinstance(value, dict):
        return {k: _serialize(v) for k, v in value.items()}
    return value


class Record:
    """Shared serialization for the dataclass domain objects."""

    _datetime_fields: tuple = ('created_at', 'modified_at')

    def to_dict(self) -> Dict[str, Any]:
        return _serialize(asdict(self))

    @classmethod
    def _known(cls, data: Dict[str, Any]) -> Dict[str, Any]:
        names = {f.name for f in fields(cls)}
        known = {k: v for k, v in data.items() if k in names}
        for name in cls._datetime_fields:
            if name in known:
                known[name] = parse_datetime(known[name])
        return known

    @classmethod
    def from_dict(cls, data: Dict[str, Any]):
        return cls(**cls._known(data))


#
# ONTOLOGY
#
@dataclass
class MetatypeKey(Record):
    property_name: str
    data_type: str
    name: Optional[str] = None
    id: Optional[str] = None
    metatype_id: Optional[str] = None
    description: str = ''
    required: bool = False
    options: Optional[List[str]] = None
    created_at: Optional[datetime] = None
    modified_at: Optional[datetime] = None

    def __post_init__(self):
        if self.name is None:
            self.name = self.property_name

    def validation_errors(self) -> List[str]:
        errors = []
        if not self.property_name or not str(self.property_name).strip():
            errors.append('property_name is required')
        if self.data_type not in DATA_TYPES:
            errors.append(f"data_type '{self.data_type}' must be one of {', '.join(DATA_TYPES)}")
        if self.data_type == 'enumeration' and not self.options:
            errors.append(f"enumeration key '{self.property_name}' must declare options")
        if self.data_type != 'enumeration' and self.options:
            errors.append(f"options are only valid for enumeration keys, not '{self.data_type}'")
        return errors


@dataclass
class Metatype(Record):
    name: str
    container_id: str
    description: str = ''
    id: Optional[str] = None
    keys: List[MetatypeKey] = field(default_factory=list)
    ontology_version_id: Optional[str] = None
    created_at: Optional[datetime] = None
    modified_at: Optional[datetime] = None

    def validation_errors(self) -> List[str]:
        errors = []
        if not self.name:
            errors.append('metatype name is required')
        if not self.container_id:
            errors.append('metatype container_id is required')
        for key in self.keys:
            errors.extend(key.validation_errors())
        return errors

    def key_by_id(self, key_id: str) -> Optional[MetatypeKey]:
        return next((k for k in self.keys if k.id == key_id), None)

    def key_by_property_name(self, property_name: str) -> Optional[MetatypeKey]:
        return next((k for k in self.keys if k.property_name == property_name), None)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Metatype':
        known = cls._known(data)
        known['keys'] = [MetatypeKey.from_dict(k) for k in data.get('keys') or []]
        return cls(**known)


@dataclass
class MetatypeRelationship(Record):
    name: str
    container_id: str
    description: str = ''
    id: Optional[str] = None
    keys: List[MetatypeKey] = field(default_factory=list)
    ontology_version_id: Optional[str] = None
    created_at: Optional[datetime] = None
    modified_at: Optional[datetime] = None

    def key_by_id(self, key_id: str) -> Optional[MetatypeKey]:
        return next((k for k in self.keys if k.id == key_id), None)

    def key_by_property_name(self, property_name: str) -> Optional[MetatypeKey]:
        return next((k for k in self.keys if k.property_name == property_name), None)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MetatypeRelationship':
        known = cls._known(data)
        known['keys'] = [MetatypeKey.from_dict(k) for k in data.get('keys') or []]
        return cls(**known)


@dataclass
class MetatypeRelationshipPair(Record):
    """A directed, named edge type between two metatypes.

    The triple is kept as structured fields. ``name`` is derived for display
    and never parsed when the structured fields are present.
    """
    container_id: str
    origin_metatype_id: Optional[str] = None
    destination_metatype_id: Optional[str] = None
    relationship_id: Optional[str] = None
    origin_metatype_name: Optional[str] = None
    relationship_name: Optional[str] = None
    destination_metatype_name: Optional[str] = None
    relationship_type: str = 'many:many'
    description: str = ''
    id: Optional[str] = None
    ontology_version_id: Optional[str] = None
    created_at: Optional[datetime] = None
    modified_at: Optional[datetime] = None

    @property
    def name(self) -> str:
        return PAIR_NAME_SEPARATOR.join([
            self.origin_metatype_name or '',
            self.relationship_name or '',
            self.destination_metatype_name or '',
        ])

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data['name'] = self.name
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MetatypeRelationshipPair':
        known = cls._known(data)
        if data.get('name') and not (known.get('origin_metatype_name') and known.get('relationship_name')
                                     and known.get('destination_metatype_name')):
            origin, relationship, destination = split_pair_name(data['name'])
            known['origin_metatype_name'] = origin
            known['relationship_name'] = relationship
            known['destination_metatype_name'] = destination
        return cls(**known)


def split_pair_name(name: str) -> tuple:
    """Split a legacy ``origin : relationship : destination`` name.

    Only names with exactly three parts are accepted; anything else is
    ambiguous and rejected rather than guessed at.
    """
    parts = name.split(PAIR_NAME_SEPARATOR)
    if len(parts) != 3 or not all(p.strip() for p in parts):
        raise ValueError(f"relationship pair name '{name}' is not of the form 'origin : relationship : destination'")
    return parts[0].strip(), parts[1].strip(), parts[2].strip()


#
# GRAPH
#
@dataclass
class Node(Record):
    container_id: Optional[str] = None
    metatype_id: Optional[str] = None
    metatype_name: Optional[str] = None
    properties: Dict[str, Any] = field(default_factory=dict)
    id: Optional[str] = None
    graph_id: Optional[str] = None
    original_data_id: Optional[str] = None
    data_source_id: Optional[str] = None
    import_data_id: Optional[str] = None
    data_type_mapping_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    archived: bool = False
    relationships: Optional[List[str]] = None
    created_at: Optional[datetime] = None
    created_by: Optional[str] = None
    modified_at: Optional[datetime] = None
    modified_by: Optional[str] = None
    deleted_at: Optional[datetime] = None

    _datetime_fields = ('created_at', 'modified_at', 'deleted_at')


@dataclass
class Edge(Record):
    container_id: Optional[str] = None
    relationship_pair_id: Optional[str] = None
    origin_id: Optional[str] = None
    destination_id: Optional[str] = None
    origin_metatype_name: Optional[str] = None
    relationship_name: Optional[str] = None
    destination_metatype_name: Optional[str] = None
    properties: Dict[str, Any] = field(default_factory=dict)
    id: Optional[str] = None
    graph_id: Optional[str] = None
    original_data_id: Optional[str] = None
    data_source_id: Optional[str] = None
    import_data_id: Optional[str] = None
    data_type_mapping_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    archived: bool = False
    created_at: Optional[datetime] = None
    created_by: Optional[str] = None
    modified_at: Optional[datetime] = None
    modified_by: Optional[str] = None

    _datetime_fields = ('created_at', 'modified_at')


#
# VERSIONING
#
@dataclass
class Changelist(Record):
    metatypes: List[Dict[str, Any]] = field(default_factory=list)
    metatype_relationships: List[Dict[str, Any]] = field(default_factory=list)
    metatype_relationship_pairs: List[Dict[str, Any]] = field(default_factory=list)

    @classmethod
    def snapshot(cls, metatypes: List[Metatype], relationships: List[MetatypeRelationship],
                 pairs: List[MetatypeRelationshipPair]) -> 'Changelist':
        return cls(
            metatypes=[m.to_dict() for m in metatypes],
            metatype_relationships=[r.to_dict() for r in relationships],
            metatype_relationship_pairs=[p.to_dict() for p in pairs],
        )


@dataclass
class ChangelistRecord(Record):
    container_id: str
    name: str
    status: str = 'pending'
    changelist: Optional[Changelist] = field(default_factory=Changelist)
    base_ontology_version_id: Optional[str] = None
    applied_at: Optional[datetime] = None
    id: Optional[str] = None
    created_at: Optional[datetime] = None
    created_by: Optional[str] = None
    modified_at: Optional[datetime] = None
    modified_by: Optional[str] = None

    _datetime_fields = ('created_at', 'modified_at', 'applied_at')

    def validation_errors(self) -> List[str]:
        errors = []
        if not self.container_id:
            errors.append('changelist container_id is required')
        if not self.name:
            errors.append('changelist name is required')
        if self.status not in CHANGELIST_STATUSES:
            errors.append(f"status '{self.status}' must be one of {', '.join(CHANGELIST_STATUSES)}")
        return errors

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ChangelistRecord':
        known = cls._known(data)
        payload = data.get('changelist')
        known['changelist'] = Changelist.from_dict(payload) if isinstance(payload, dict) else payload
        return cls(**known)


@dataclass
class ChangelistApproval(Record):
    changelist_id: str
    approved_by: str
    approved_at: Optional[datetime] = None
    id: Optional[str] = None

    _datetime_fields = ('approved_at',)
