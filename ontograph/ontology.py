"""
Ontology storage and property validation.

An ontology is scoped to a container and made of metatypes (with their keys),
metatype relationships and relationship pairs. The store is read through an
async interface so that database-backed implementations can be swapped in.
"""
import copy
import json
import os
import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from .errors import NotFoundError, ValidationError
from .models import Metatype, MetatypeKey, MetatypeRelationship, MetatypeRelationshipPair
from .naming import string_to_valid_property_name

_TRUE_STRINGS = {'true', 't', 'yes', 'y', '1'}
_FALSE_STRINGS = {'false', 'f', 'no', 'n', '0'}


def _convert_value(key: MetatypeKey, value: Any) -> Any:
    """Convert a raw value to the key's declared data type."""
    if value is None:
        return None
    data_type = key.data_type
    if data_type == 'number':
        if isinstance(value, bool):
            return int(value)
        if isinstance(value, (int, float)):
            return value
        text = str(value).strip()
        try:
            return int(text)
        except ValueError:
            return float(text)
    if data_type == 'boolean':
        if isinstance(value, bool):
            return value
        if isinstance(value, (int, float)):
            return bool(value)
        text = str(value).strip().lower()
        if text in _TRUE_STRINGS:
            return True
        if text in _FALSE_STRINGS:
            return False
        raise ValueError(f"'{value}' is not a boolean")
    if data_type == 'date':
        if isinstance(value, datetime):
            return value.isoformat()
        return str(value)
    if data_type == 'list':
        if isinstance(value, str):
            parsed = json.loads(value)
            if isinstance(parsed, list):
                return parsed
        return value
    if data_type in ('string', 'file', 'enumeration'):
        if isinstance(value, (dict, list)):
            return json.dumps(value)
        return str(value)
    return value


def _type_mismatch(key: MetatypeKey, value: Any) -> Optional[str]:
    data_type = key.data_type
    if data_type == 'number':
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return 'number'
    elif data_type == 'boolean':
        if not isinstance(value, bool):
            return 'boolean'
    elif data_type in ('string', 'file', 'date'):
        if not isinstance(value, str):
            return data_type
        if data_type == 'date':
            try:
                datetime.fromisoformat(value)
            except ValueError:
                return 'ISO-8601 date'
    elif data_type == 'list':
        if not isinstance(value, list):
            return 'list'
    elif data_type == 'enumeration':
        if value not in (key.options or []):
            return f"one of {', '.join(key.options or [])}"
    return None


def map_properties(metatype: Union[Metatype, MetatypeRelationship],
                   properties: Dict[str, Any]) -> Dict[str, Any]:
    """Map properties to the declared key types of a metatype or relationship.

    Values that cannot be converted are passed through unchanged so that
    validation can report them.
    """
    by_name = {k.property_name: k for k in metatype.keys}
    mapped = {}
    for prop, value in properties.items():
        key = by_name.get(prop)
        if key is None:
            mapped[prop] = value
            continue
        try:
            mapped[prop] = _convert_value(key, value)
        except (ValueError, TypeError):
            mapped[prop] = value
    return mapped


def validate_properties(metatype: Union[Metatype, MetatypeRelationship], properties: Dict[str, Any]) -> bool:
    """Validate properties against metatype or relationship keys. Raises on invalid data."""
    label = metatype.name
    keys = metatype.keys
    by_name = {k.property_name: k for k in keys}

    missing_required = [k.property_name for k in keys
                        if k.required and (properties.get(k.property_name) in (None, ""))]
    if missing_required:
        raise ValidationError(
            f"Missing required properties for '{label}': {', '.join(missing_required)}",
            [f"missing property '{p}'" for p in missing_required]
        )

    errors = []
    for prop_name, prop_value in properties.items():
        key = by_name.get(prop_name)
        if key is None:
            errors.append(
                f"unknown property '{prop_name}', available properties: {', '.join(by_name.keys())}")
            continue
        if prop_value is None:
            continue
        expected = _type_mismatch(key, prop_value)
        if expected:
            errors.append(f"'{prop_name}' (expected {expected}, got {type(prop_value).__name__})")

    if errors:
        raise ValidationError(f"Invalid properties for '{label}': {'; '.join(errors)}", errors)
    return True


class OntologyStore(ABC):
    """Read access to a container's ontology."""

    @abstractmethod
    async def list_metatypes(self, container_id: str, with_keys: bool = True,
                             ontology_version_id: Optional[str] = None) -> List[Metatype]:
        pass

    @abstractmethod
    async def list_relationships(self, container_id: str,
                                 ontology_version_id: Optional[str] = None) -> List[MetatypeRelationship]:
        pass

    @abstractmethod
    async def list_relationship_pairs(self, container_id: str,
                                      ontology_version_id: Optional[str] = None) -> List[MetatypeRelationshipPair]:
        pass

    @abstractmethod
    async def retrieve_metatype(self, metatype_id: str) -> Metatype:
        pass

    @abstractmethod
    async def retrieve_relationship(self, relationship_id: str) -> MetatypeRelationship:
        pass

    @abstractmethod
    async def retrieve_relationship_pair(self, pair_id: str) -> MetatypeRelationshipPair:
        pass

    async def find_metatype_by_name(self, container_id: str, name: str) -> Metatype:
        for metatype in await self.list_metatypes(container_id, with_keys=True):
            if metatype.name == name:
                return metatype
        raise NotFoundError(f"metatype '{name}' not found in container {container_id}")

    async def find_relationship_pair_by_names(self, container_id: str, origin: str, relationship: str,
                                              destination: str) -> MetatypeRelationshipPair:
        for pair in await self.list_relationship_pairs(container_id):
            if (pair.origin_metatype_name, pair.relationship_name, pair.destination_metatype_name) == \
                    (origin, relationship, destination):
                return pair
        raise NotFoundError(
            f"relationship pair '{origin} : {relationship} : {destination}' not found in container {container_id}")


class LocalOntologyStore(OntologyStore):
    """In-memory ontology store with optional JSON persistence."""

    def __init__(self):
        self.metatypes: Dict[str, Metatype] = {}
        self.relationships: Dict[str, MetatypeRelationship] = {}
        self.pairs: Dict[str, MetatypeRelationshipPair] = {}
        self.db_path: Optional[str] = None

    #
    # WRITES
    #
    def add_metatype(self, metatype: Metatype) -> Metatype:
        """Register a metatype and its keys, assigning ids where missing."""
        errors = metatype.validation_errors()
        sanitized: Dict[str, str] = {}
        for key in metatype.keys:
            name = string_to_valid_property_name(key.property_name)
            if name in sanitized and sanitized[name] != key.property_name:
                errors.append(
                    f"keys '{sanitized[name]}' and '{key.property_name}' map to the same property name '{name}'")
            sanitized[name] = key.property_name
        if errors:
            raise ValidationError(f"metatype '{metatype.name}' does not pass validation", errors)

        metatype = copy.deepcopy(metatype)
        if not metatype.id:
            metatype.id = str(uuid.uuid4())
        now = datetime.now()
        metatype.created_at = metatype.created_at or now
        for key in metatype.keys:
            key.id = key.id or str(uuid.uuid4())
            key.metatype_id = metatype.id
        self.metatypes[metatype.id] = metatype
        return copy.deepcopy(metatype)

    def add_relationship(self, relationship: MetatypeRelationship) -> MetatypeRelationship:
        if not relationship.name or not relationship.container_id:
            raise ValidationError("relationship name and container_id are required")
        for key in relationship.keys:
            errors = key.validation_errors()
            if errors:
                raise ValidationError(f"relationship '{relationship.name}' does not pass validation", errors)
        relationship = copy.deepcopy(relationship)
        relationship.id = relationship.id or str(uuid.uuid4())
        relationship.created_at = relationship.created_at or datetime.now()
        for key in relationship.keys:
            key.id = key.id or str(uuid.uuid4())
        self.relationships[relationship.id] = relationship
        return copy.deepcopy(relationship)

    def add_relationship_pair(self, pair: MetatypeRelationshipPair) -> MetatypeRelationshipPair:
        """Register a pair, completing ids from names or names from ids."""
        pair = copy.deepcopy(pair)
        container_id = pair.container_id

        origin = self._resolve_metatype(container_id, pair.origin_metatype_id, pair.origin_metatype_name)
        destination = self._resolve_metatype(container_id, pair.destination_metatype_id,
                                             pair.destination_metatype_name)
        relationship = self._resolve_relationship(container_id, pair.relationship_id, pair.relationship_name)

        pair.origin_metatype_id, pair.origin_metatype_name = origin.id, origin.name
        pair.destination_metatype_id, pair.destination_metatype_name = destination.id, destination.name
        pair.relationship_id, pair.relationship_name = relationship.id, relationship.name
        pair.id = pair.id or str(uuid.uuid4())
        pair.created_at = pair.created_at or datetime.now()
        self.pairs[pair.id] = pair
        return copy.deepcopy(pair)

    def _resolve_metatype(self, container_id: str, metatype_id: Optional[str], name: Optional[str]) -> Metatype:
        for metatype in self.metatypes.values():
            if metatype.container_id != container_id:
                continue
            if (metatype_id and metatype.id == metatype_id) or (not metatype_id and metatype.name == name):
                return metatype
        raise NotFoundError(f"metatype '{metatype_id or name}' not found in container {container_id}")

    def _resolve_relationship(self, container_id: str, relationship_id: Optional[str],
                              name: Optional[str]) -> MetatypeRelationship:
        for relationship in self.relationships.values():
            if relationship.container_id != container_id:
                continue
            if (relationship_id and relationship.id == relationship_id) or \
                    (not relationship_id and relationship.name == name):
                return relationship
        raise NotFoundError(f"relationship '{relationship_id or name}' not found in container {container_id}")

    #
    # READS
    #
    @staticmethod
    def _in_version(record: Any, container_id: str, ontology_version_id: Optional[str]) -> bool:
        return record.container_id == container_id and record.ontology_version_id == ontology_version_id

    async def list_metatypes(self, container_id: str, with_keys: bool = True,
                             ontology_version_id: Optional[str] = None) -> List[Metatype]:
        results = []
        for metatype in self.metatypes.values():
            if not self._in_version(metatype, container_id, ontology_version_id):
                continue
            found = copy.deepcopy(metatype)
            if not with_keys:
                found.keys = []
            results.append(found)
        return results

    async def list_relationships(self, container_id: str,
                                 ontology_version_id: Optional[str] = None) -> List[MetatypeRelationship]:
        return [copy.deepcopy(r) for r in self.relationships.values()
                if self._in_version(r, container_id, ontology_version_id)]

    async def list_relationship_pairs(self, container_id: str,
                                      ontology_version_id: Optional[str] = None) -> List[MetatypeRelationshipPair]:
        return [copy.deepcopy(p) for p in self.pairs.values()
                if self._in_version(p, container_id, ontology_version_id)]

    async def retrieve_metatype(self, metatype_id: str) -> Metatype:
        if metatype_id not in self.metatypes:
            raise NotFoundError(f"metatype {metatype_id} not found")
        return copy.deepcopy(self.metatypes[metatype_id])

    async def retrieve_relationship(self, relationship_id: str) -> MetatypeRelationship:
        if relationship_id not in self.relationships:
            raise NotFoundError(f"relationship {relationship_id} not found")
        return copy.deepcopy(self.relationships[relationship_id])

    async def retrieve_relationship_pair(self, pair_id: str) -> MetatypeRelationshipPair:
        if pair_id not in self.pairs:
            raise NotFoundError(f"relationship pair {pair_id} not found")
        return copy.deepcopy(self.pairs[pair_id])

    #
    # PERSISTENCE
    #
    def to_dict(self) -> Dict[str, Any]:
        return {
            'metatypes': [m.to_dict() for m in self.metatypes.values()],
            'relationships': [r.to_dict() for r in self.relationships.values()],
            'relationship_pairs': [p.to_dict() for p in self.pairs.values()],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LocalOntologyStore':
        """Create a store from a dictionary. Records are loaded as-is, without validation."""
        store = cls()
        for item in data.get('metatypes', []):
            metatype = Metatype.from_dict(item)
            store.metatypes[metatype.id] = metatype
        for item in data.get('relationships', []):
            relationship = MetatypeRelationship.from_dict(item)
            store.relationships[relationship.id] = relationship
        for item in data.get('relationship_pairs', []):
            pair = MetatypeRelationshipPair.from_dict(item)
            store.pairs[pair.id] = pair
        return store

    def load(self, db_path: str) -> None:
        loaded = LocalOntologyStore()
        if os.path.exists(db_path):
            with open(db_path, 'r') as f:
                loaded = LocalOntologyStore.from_dict(json.load(f))
        self.metatypes, self.relationships, self.pairs = loaded.metatypes, loaded.relationships, loaded.pairs
        self.db_path = db_path

    def save(self, db_path: Optional[str] = None) -> None:
        path = db_path or self.db_path
        if not path:
            return
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)


def format_ontology(metatypes: List[Metatype], pairs: List[MetatypeRelationshipPair]) -> str:
    """
    Return a human-readable summary of a container's ontology.
    """
    summary_lines = ["Ontology Summary:", "Metatypes:"]
    for metatype in metatypes:
        keys = []
        for key in metatype.keys:
            type_name = key.data_type
            if key.data_type == 'enumeration':
                type_name = f"enumeration[{', '.join(key.options or [])}]"
            keys.append(f"{key.property_name} ({type_name}{', required' if key.required else ''})")
        summary_lines.append(f"  - {metatype.name}: keys = {{{', '.join(keys)}}}")
    summary_lines.append("Relationship Pairs:")
    for pair in pairs:
        summary_lines.append(f"  - {pair.name}")
    return "\n".join(summary_lines)
