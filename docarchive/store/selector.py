"""
Selector matching for document stores.

Selectors use a small MongoDB-style query language:

    {}                                  every document
    "abc123"                            shorthand for {"id": "abc123"}
    {"name": "test"}                    equality (a list field matches if it
                                        contains the value)
    {"name": {"$in": ["a", "b"]}}       operators: $eq $ne $in $nin
                                        $gt $gte $lt $lte $exists
    {"$or": [{...}, {...}]}             logical: $and $or $nor
    {"meta.owner": "alice"}             dotted paths into nested mappings

Invariants:
    - Matching never mutates the document
    - Comparing values of incomparable types is a non-match, not an error
    - Unknown operators raise SelectorError
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Mapping

from ..errors import SelectorError
from .base import ID_FIELD, Document, Selector

_MISSING = object()
_LIST_TYPES = (list, tuple, set, frozenset)
_LOGICAL = ("$and", "$or", "$nor")


def _as_mapping(selector: Selector) -> Dict[str, Any]:
    if selector is None:
        return {}
    if isinstance(selector, str):
        return {ID_FIELD: selector}
    if isinstance(selector, Mapping):
        return dict(selector)
    raise SelectorError(f"Selector must be a mapping or an id string, got {type(selector).__name__}")


def logical_clauses(op_name: str, clauses: Any) -> List[Dict[str, Any]]:
    """Sub-selectors of a `$and`/`$or`/`$nor` condition, as mappings.

    Raises:
        SelectorError: If `clauses` is not a non-empty list of selectors
    """
    if not isinstance(clauses, (list, tuple)) or not clauses:
        raise SelectorError(f"{op_name} requires a non-empty list of selectors")
    return [_as_mapping(clause) for clause in clauses]


def _validate(selector: Mapping[str, Any]) -> None:
    for key, condition in selector.items():
        if key.startswith("$"):
            if key not in _LOGICAL:
                raise SelectorError(f"Unsupported selector operator: {key}")
            for clause in logical_clauses(key, condition):
                _validate(clause)
        elif _is_operator_mapping(condition):
            for op_name, expected in condition.items():
                if op_name not in _OPERATORS:
                    raise SelectorError(f"Unsupported selector operator: {op_name}")
                if op_name in ("$in", "$nin") and not isinstance(expected, _LIST_TYPES):
                    raise SelectorError(f"{op_name} requires a list")


def normalize_selector(selector: Selector) -> Dict[str, Any]:
    """Turn any accepted selector form into a validated mapping.

    The whole selector is checked up front, so a malformed selector fails
    even when there is nothing to match it against.

    Raises:
        SelectorError: If the selector is neither None, a string nor a
            mapping, or uses an unsupported or malformed operator
    """
    normalized = _as_mapping(selector)
    _validate(normalized)
    return normalized


def _resolve(document: Mapping[str, Any], path: str) -> Any:
    value: Any = document
    for part in path.split("."):
        if isinstance(value, Mapping) and part in value:
            value = value[part]
        else:
            return _MISSING
    return value


def _equals(value: Any, expected: Any) -> bool:
    if value is _MISSING:
        return expected is None
    if value == expected:
        return True
    if isinstance(value, list) and not isinstance(expected, list):
        return expected in value
    return False


def _compare(op: Callable[[Any, Any], bool]) -> Callable[[Any, Any], bool]:
    def check(value: Any, expected: Any) -> bool:
        if value is _MISSING or value is None:
            return False
        try:
            return op(value, expected)
        except TypeError:
            return False

    return check


def _in(value: Any, expected: Any) -> bool:
    if not isinstance(expected, _LIST_TYPES):
        raise SelectorError("$in requires a list")
    return any(_equals(value, candidate) for candidate in expected)


def _nin(value: Any, expected: Any) -> bool:
    if not isinstance(expected, _LIST_TYPES):
        raise SelectorError("$nin requires a list")
    return not any(_equals(value, candidate) for candidate in expected)


_OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    "$eq": _equals,
    "$ne": lambda value, expected: not _equals(value, expected),
    "$in": _in,
    "$nin": _nin,
    "$gt": _compare(lambda a, b: a > b),
    "$gte": _compare(lambda a, b: a >= b),
    "$lt": _compare(lambda a, b: a < b),
    "$lte": _compare(lambda a, b: a <= b),
    "$exists": lambda value, expected: (value is not _MISSING) == bool(expected),
}


def _is_operator_mapping(condition: Any) -> bool:
    return (
        isinstance(condition, Mapping)
        and len(condition) > 0
        and all(isinstance(key, str) and key.startswith("$") for key in condition)
    )


def _match_condition(value: Any, condition: Any) -> bool:
    if not _is_operator_mapping(condition):
        return _equals(value, condition)

    for op_name, expected in condition.items():
        op = _OPERATORS.get(op_name)
        if op is None:
            raise SelectorError(f"Unsupported selector operator: {op_name}")
        if not op(value, expected):
            return False
    return True


def _match_logical(document: Mapping[str, Any], op_name: str, clauses: Any) -> bool:
    results = (_matches(document, clause) for clause in logical_clauses(op_name, clauses))
    if op_name == "$and":
        return all(results)
    if op_name == "$or":
        return any(results)
    if op_name == "$nor":
        return not any(results)
    raise SelectorError(f"Unsupported selector operator: {op_name}")


def _matches(document: Mapping[str, Any], selector: Mapping[str, Any]) -> bool:
    for key, condition in selector.items():
        if key.startswith("$"):
            if not _match_logical(document, key, condition):
                return False
        elif not _match_condition(_resolve(document, key), condition):
            return False
    return True


def matches(document: Document, selector: Selector) -> bool:
    """Check whether `document` satisfies `selector`.

    Raises:
        SelectorError: If the selector is malformed
    """
    return _matches(document, normalize_selector(selector))
