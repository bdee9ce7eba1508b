"""
Identifier sanitization for generated schema names.

GraphQL names must match ``[_A-Za-z][_A-Za-z0-9]*``. Ontology names are user
supplied and legacy data does not always conform, so every name that reaches
the schema passes through here.
"""
import re
from typing import Dict, Iterable, List, Optional, Set

_INVALID_CHARS = re.compile(r'[^_A-Za-z0-9]')
VALID_NAME = re.compile(r'^[_A-Za-z][_A-Za-z0-9]*$')

# names GraphQL reserves, or which the generated schema already uses
RESERVED_NAMES = frozenset({
    'Query', 'Mutation', 'Subscription', 'String', 'Int', 'Float', 'Boolean',
    'ID', 'JSON', 'record_input', 'recordInfo',
})


def string_to_valid_property_name(value: str) -> str:
    """Deterministically turn any string into a valid identifier."""
    name = _INVALID_CHARS.sub('_', str(value).strip())
    if not name:
        return '_'
    if name[0].isdigit():
        name = f'_{name}'
    # names starting with a double underscore are reserved for introspection
    if name.startswith('__'):
        name = f'x{name}'
    return name


class NameRegistry:
    """Hands out unique sanitized names within one namespace.

    The first claimant of a sanitized name keeps it, later collisions get a
    numeric suffix. Given the same claims in the same order the result is
    always the same.
    """

    def __init__(self, reserved: Optional[Iterable[str]] = None):
        self._taken: Set[str] = set(reserved or ())

    def claim(self, value: str) -> str:
        base = string_to_valid_property_name(value)
        name = base
        counter = 2
        while name in self._taken:
            name = f'{base}_{counter}'
            counter += 1
        self._taken.add(name)
        return name

    def __contains__(self, name: str) -> bool:
        return name in self._taken


def unique_names(values: List[str], reserved: Optional[Iterable[str]] = None) -> Dict[str, str]:
    """Map each value to a unique valid identifier, in declaration order.

    Duplicate input values share a single output name.
    """
    registry = NameRegistry(reserved)
    mapping: Dict[str, str] = {}
    for value in values:
        if value not in mapping:
            mapping[value] = registry.claim(value)
    return mapping


def is_valid_name(value: str) -> bool:
    return bool(VALID_NAME.match(value))
