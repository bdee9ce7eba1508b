"""
Payload shape hashing.

Two payloads share a type mapping when they have the same shape: the same
set of key paths with the same value types. Values and key order never
affect the hash.
"""
import hashlib
from typing import Any, Set


def _type_name(value: Any) -> str:
    if value is None:
        return 'null'
    if isinstance(value, bool):
        return 'boolean'
    if isinstance(value, (int, float)):
        return 'number'
    if isinstance(value, str):
        return 'string'
    if isinstance(value, dict):
        return 'object'
    if isinstance(value, (list, tuple)):
        return 'array'
    return type(value).__name__


def _collect(value: Any, path: str, entries: Set[str]):
    if isinstance(value, dict):
        for key, child in value.items():
            child_path = f"{path}.{key}" if path else str(key)
            entries.add(f"{child_path}:{_type_name(child)}")
            _collect(child, child_path, entries)
    elif isinstance(value, (list, tuple)):
        # every element contributes to a single path, so list length never matters
        for element in value:
            entries.add(f"{path}[]:{_type_name(element)}")
            _collect(element, f"{path}[]", entries)


def payload_shape(payload: Any) -> Set[str]:
    """Return the set of ``path:type`` entries describing a payload."""
    entries: Set[str] = set()
    if not isinstance(payload, (dict, list, tuple)):
        entries.add(f":{_type_name(payload)}")
    _collect(payload, '', entries)
    return entries


def shape_hash(payload: Any) -> str:
    """SHA-256 over the sorted shape entries of a payload."""
    digest = hashlib.sha256()
    digest.update('\n'.join(sorted(payload_shape(payload))).encode('utf-8'))
    return digest.hexdigest()
