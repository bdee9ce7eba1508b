"""
Filter grammar and node queries.

Filters arrive as strings of the form ``<op> <value>``. A ``NodeQuery`` is a
conjunction of predicates that can be evaluated in memory or compiled to a
parameterized Cypher ``WHERE`` clause.
"""
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from .errors import QueryValidationError
from .models import Node

OPERATORS = ('eq', 'neq', 'like', 'in', '<', '>')

RECORD_FIELDS = ('id', 'container_id', 'metatype_id', 'data_source_id', 'original_data_id', 'import_data_id')

PROPERTY_PREFIX = 'prop__'


def break_query(query: str) -> Tuple[str, str]:
    """Split a filter string into its operator and value.

    Strings that do not start with a known operator are an equality match on
    the whole string.
    """
    parts = query.split(' ')
    if parts[0] not in OPERATORS:
        return 'eq', query
    return parts[0], ' '.join(parts[1:])


def like_to_regex(pattern: str) -> str:
    """Translate a SQL ``LIKE`` pattern (``%`` and ``_``) to a regular expression."""
    regex = []
    for char in pattern:
        if char == '%':
            regex.append('.*')
        elif char == '_':
            regex.append('.')
        else:
            regex.append(re.escape(char))
    return ''.join(regex)


def _in_values(value: Any) -> List[Any]:
    if isinstance(value, (list, tuple, set)):
        return list(value)
    if value is None or str(value).strip() == '':
        return []
    return [v.strip() for v in str(value).split(',')]


def _to_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _as_text(value: Any) -> str:
    if isinstance(value, bool):
        return 'true' if value else 'false'
    return str(value)


@dataclass
class Predicate:
    field: str
    operator: str
    value: Any
    data_type: Optional[str] = None
    is_property: bool = False

    def __post_init__(self):
        if self.operator not in OPERATORS:
            raise QueryValidationError(
                f"unsupported operator '{self.operator}', expected one of {', '.join(OPERATORS)}")

    @property
    def numeric(self) -> bool:
        return self.data_type == 'number'

    def _compare_one(self, actual: Any) -> bool:
        op, expected = self.operator, self.value
        if op == 'in':
            candidates = _in_values(expected)
            if self.numeric:
                number = _to_float(actual)
                return number is not None and number in [_to_float(c) for c in candidates]
            return _as_text(actual) in [_as_text(c) for c in candidates]
        if op == 'like':
            return re.fullmatch(like_to_regex(str(expected)), _as_text(actual), re.DOTALL) is not None
        if self.numeric:
            left, right = _to_float(actual), _to_float(expected)
            if left is None or right is None:
                return False
        else:
            left, right = _as_text(actual), _as_text(expected)
        if op == 'eq':
            return left == right
        if op == 'neq':
            return left != right
        if op == '<':
            return left < right
        return left > right

    def matches(self, node: Node) -> bool:
        if self.is_property:
            actual = (node.properties or {}).get(self.field)
        else:
            actual = getattr(node, self.field, None)
        if actual is None:
            return False
        if isinstance(actual, list):
            # list values match when any element does, neq when none does
            if self.operator == 'neq':
                return not any(Predicate(self.field, 'eq', self.value, self.data_type)._compare_one(a)
                               for a in actual)
            return any(self._compare_one(a) for a in actual)
        return self._compare_one(actual)


def _cypher_name(name: str) -> str:
    return '`' + name.replace('`', '``') + '`'


class NodeQuery:
    """A conjunction of node predicates plus paging."""

    def __init__(self):
        self.predicates: List[Predicate] = []
        self.limit: Optional[int] = None
        self.offset: Optional[int] = None
        self.load_relationships = False

        self._nodes_scanned = 0
        self._execution_time = 0.0

    def add(self, predicate: Predicate) -> 'NodeQuery':
        self.predicates.append(predicate)
        return self

    def paginate(self, limit: Optional[int], offset: Optional[int]) -> 'NodeQuery':
        self.limit = limit
        self.offset = offset
        return self

    def matches(self, node: Node) -> bool:
        return all(p.matches(node) for p in self.predicates)

    def apply(self, nodes: List[Node]) -> List[Node]:
        """Filter and page an in-memory list of nodes."""
        self._nodes_scanned = len(nodes)
        matched = [n for n in nodes if self.matches(n)]
        start = self.offset or 0
        if self.limit is None:
            return matched[start:]
        return matched[start:start + self.limit]

    def to_cypher(self, alias: str = 'n') -> Tuple[str, Dict[str, Any]]:
        """Compile the predicates to a Cypher boolean expression and its parameters.

        List properties match when any element does (``neq`` when none does),
        the same as in-memory evaluation.
        """
        clauses = [f"coalesce({alias}.archived, false) = false"]
        params: Dict[str, Any] = {}
        for index, predicate in enumerate(self.predicates):
            param = f"p{index}"
            stored = PROPERTY_PREFIX + predicate.field if predicate.is_property else predicate.field
            ref = f"{alias}.{_cypher_name(stored)}"
            op = predicate.operator

            if predicate.data_type == 'list':
                element = 'x'
                if op == 'neq':
                    op = 'eq'
                    prefix = f"none(x IN {ref} WHERE "
                else:
                    prefix = f"any(x IN {ref} WHERE "
                suffix = ")"
            else:
                element, prefix, suffix = ref, '', ''

            if op == 'like':
                params[param] = like_to_regex(str(predicate.value))
                clauses.append(f"{prefix}toString({element}) =~ ${param}{suffix}")
                continue

            if predicate.numeric:
                compared = f"toFloat({element})"
                if op == 'in':
                    params[param] = [_to_float(v) for v in _in_values(predicate.value)]
                else:
                    params[param] = _to_float(predicate.value)
            else:
                compared = f"toString({element})"
                if op == 'in':
                    params[param] = [_as_text(v) for v in _in_values(predicate.value)]
                else:
                    params[param] = _as_text(predicate.value)

            cypher_op = {'eq': '=', 'neq': '<>', '<': '<', '>': '>', 'in': 'IN'}[op]
            clauses.append(f"{prefix}{compared} {cypher_op} ${param}{suffix}")
        return ' AND '.join(clauses), params

    def collect_stats(self) -> Dict[str, float]:
        return {
            'nodes_scanned': self._nodes_scanned,
            'execution_time': self._execution_time,
        }

    def _set_execution_time(self, sec: float):
        self._execution_time = sec
