"""Document-query condition evaluator (MongoDB query dialect) for manifest steps."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any, Dict, List


@dataclass
class ConditionEvalError(Exception):
    code: str
    message: str
    path: str | None = None

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        base = f"{self.code}: {self.message}"
        return f"{base} (path={self.path})" if self.path else base


class ConditionSchemaError(ConditionEvalError):
    def __init__(self, message: str, path: str | None = None) -> None:
        super().__init__("CONDITION_SCHEMA_ERROR", message, path)


class ConditionDepthError(ConditionEvalError):
    def __init__(self, message: str, path: str | None = None) -> None:
        super().__init__("CONDITION_DEPTH_EXCEEDED", message, path)


class TypeErrorInCondition(ConditionEvalError):
    def __init__(self, message: str, path: str | None = None) -> None:
        super().__init__("CONDITION_TYPE_ERROR", message, path)


class UnknownOpError(ConditionEvalError):
    def __init__(self, message: str, path: str | None = None) -> None:
        super().__init__("CONDITION_UNKNOWN_OP", message, path)


LOGICAL_OPS = {"$and", "$or", "$nor"}
FIELD_OPS = {
    "$eq",
    "$ne",
    "$gt",
    "$gte",
    "$lt",
    "$lte",
    "$in",
    "$nin",
    "$exists",
    "$regex",
    "$options",
    "$size",
    "$all",
    "$elemMatch",
    "$not",
}
DEFAULT_DEPTH_LIMIT = 20


def _depth_check(depth: int, limit: int, path: str) -> None:
    if depth > limit:
        raise ConditionDepthError("Depth limit exceeded", path)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and not (
        isinstance(value, float) and not math.isfinite(value)
    )


def _is_operator_doc(spec: Any) -> bool:
    return isinstance(spec, dict) and bool(spec) and all(
        isinstance(key, str) and key.startswith("$") for key in spec
    )


def _candidates(doc: Any, parts: List[str]) -> List[Any]:
    """Values reachable at a dotted field path, fanning out across arrays."""
    if not parts:
        return [doc]
    head, rest = parts[0], parts[1:]
    if isinstance(doc, dict):
        if head not in doc:
            return []
        return _candidates(doc[head], rest)
    if isinstance(doc, list):
        if head.isdigit():
            idx = int(head)
            return _candidates(doc[idx], rest) if idx < len(doc) else []
        found: List[Any] = []
        for item in doc:
            if isinstance(item, (dict, list)):
                found.extend(_candidates(item, parts))
        return found
    return []


def _flatten(values: List[Any]) -> List[Any]:
    flat: List[Any] = []
    for value in values:
        flat.append(value)
        if isinstance(value, list):
            flat.extend(value)
    return flat


def _equals(values: List[Any], expected: Any) -> bool:
    if not values:
        return expected is None
    return any(value == expected for value in _flatten(values))


def _compare(op: str, left: Any, right: Any) -> bool:
    comparable = (_is_number(left) and _is_number(right)) or (
        isinstance(left, str) and isinstance(right, str)
    )
    if not comparable:
        return False
    if op == "$gt":
        return left > right
    if op == "$gte":
        return left >= right
    if op == "$lt":
        return left < right
    return left <= right


def _match_field(values: List[Any], spec: Any, path: str, depth: int, limit: int) -> bool:
    _depth_check(depth, limit, path)
    if not _is_operator_doc(spec):
        return _equals(values, spec)

    for op, arg in spec.items():
        op_path = f"{path}.{op}"
        if op == "$options":
            if "$regex" not in spec:
                raise ConditionSchemaError("$options requires $regex", op_path)
            continue
        if op not in FIELD_OPS:
            raise UnknownOpError(f"Unknown op: {op}", op_path)

        if op == "$eq":
            matched = _equals(values, arg)
        elif op == "$ne":
            matched = not _equals(values, arg)
        elif op in {"$gt", "$gte", "$lt", "$lte"}:
            matched = any(_compare(op, value, arg) for value in _flatten(values))
        elif op in {"$in", "$nin"}:
            if not isinstance(arg, list):
                raise TypeErrorInCondition(f"{op} requires a list", op_path)
            found = any(_equals(values, item) for item in arg)
            matched = found if op == "$in" else not found
        elif op == "$exists":
            matched = bool(values) == bool(arg)
        elif op == "$regex":
            if not isinstance(arg, str):
                raise TypeErrorInCondition("$regex requires a string", op_path)
            flags = 0
            options = spec.get("$options", "")
            if "i" in options:
                flags |= re.IGNORECASE
            if "m" in options:
                flags |= re.MULTILINE
            try:
                pattern = re.compile(arg, flags)
            except re.error as exc:
                raise ConditionSchemaError(f"Invalid regex: {exc}", op_path) from exc
            matched = any(isinstance(v, str) and pattern.search(v) for v in _flatten(values))
        elif op == "$size":
            if not isinstance(arg, int) or isinstance(arg, bool):
                raise TypeErrorInCondition("$size requires an integer", op_path)
            matched = any(isinstance(v, list) and len(v) == arg for v in values)
        elif op == "$all":
            if not isinstance(arg, list):
                raise TypeErrorInCondition("$all requires a list", op_path)
            matched = any(
                isinstance(v, list) and all(item in v for item in arg) for v in values
            )
        elif op == "$elemMatch":
            if not isinstance(arg, dict):
                raise ConditionSchemaError("$elemMatch requires an object", op_path)
            matched = False
            for value in values:
                if not isinstance(value, list):
                    continue
                for item in value:
                    if _is_operator_doc(arg):
                        hit = _match_field([item], arg, op_path, depth + 1, limit)
                    else:
                        hit = isinstance(item, dict) and _match_query(arg, item, op_path, depth + 1, limit)
                    if hit:
                        matched = True
                        break
                if matched:
                    break
        else:
            if not _is_operator_doc(arg):
                raise ConditionSchemaError("$not requires an operator object", op_path)
            matched = not _match_field(values, arg, op_path, depth + 1, limit)

        if not matched:
            return False
    return True


def _match_query(query: Any, doc: Any, path: str, depth: int, limit: int) -> bool:
    _depth_check(depth, limit, path)
    if not isinstance(query, dict):
        raise ConditionSchemaError("Condition must be object", path)

    for key, spec in query.items():
        key_path = f"{path}.{key}"
        if key in LOGICAL_OPS:
            if not isinstance(spec, list) or not spec:
                raise ConditionSchemaError(f"{key} requires a non-empty list", key_path)
            results = (
                _match_query(child, doc, f"{key_path}[{idx}]", depth + 1, limit)
                for idx, child in enumerate(spec)
            )
            if key == "$and":
                matched = all(results)
            elif key == "$or":
                matched = any(results)
            else:
                matched = not any(results)
        elif isinstance(key, str) and key.startswith("$"):
            raise UnknownOpError(f"Unknown op: {key}", key_path)
        else:
            values = _candidates(doc, str(key).split("."))
            matched = _match_field(values, spec, key_path, depth + 1, limit)
        if not matched:
            return False
    return True


def eval_condition(cond: dict, ctx: dict, depth_limit: int = DEFAULT_DEPTH_LIMIT) -> bool:
    if not isinstance(ctx, dict):
        raise ConditionSchemaError("ctx must be object", "$")
    return _match_query(cond, ctx, "$", 1, depth_limit)


def _check_field(spec: Any, path: str, depth: int, limit: int) -> None:
    _depth_check(depth, limit, path)
    if not _is_operator_doc(spec):
        return
    for op, arg in spec.items():
        op_path = f"{path}.{op}"
        if op not in FIELD_OPS:
            raise UnknownOpError(f"Unknown op: {op}", op_path)
        if op in {"$in", "$nin", "$all"} and not isinstance(arg, list):
            raise TypeErrorInCondition(f"{op} requires a list", op_path)
        if op == "$regex":
            if not isinstance(arg, str):
                raise TypeErrorInCondition("$regex requires a string", op_path)
            try:
                re.compile(arg)
            except re.error as exc:
                raise ConditionSchemaError(f"Invalid regex: {exc}", op_path) from exc
        if op == "$options" and "$regex" not in spec:
            raise ConditionSchemaError("$options requires $regex", op_path)
        if op == "$size" and (not isinstance(arg, int) or isinstance(arg, bool)):
            raise TypeErrorInCondition("$size requires an integer", op_path)
        if op == "$elemMatch":
            if not isinstance(arg, dict):
                raise ConditionSchemaError("$elemMatch requires an object", op_path)
            if _is_operator_doc(arg):
                _check_field(arg, op_path, depth + 1, limit)
            else:
                _check_query(arg, op_path, depth + 1, limit)
        if op == "$not":
            if not _is_operator_doc(arg):
                raise ConditionSchemaError("$not requires an operator object", op_path)
            _check_field(arg, op_path, depth + 1, limit)


def _check_query(query: Any, path: str, depth: int, limit: int) -> None:
    _depth_check(depth, limit, path)
    if not isinstance(query, dict):
        raise ConditionSchemaError("Condition must be object", path)
    for key, spec in query.items():
        key_path = f"{path}.{key}"
        if key in LOGICAL_OPS:
            if not isinstance(spec, list) or not spec:
                raise ConditionSchemaError(f"{key} requires a non-empty list", key_path)
            for idx, child in enumerate(spec):
                _check_query(child, f"{key_path}[{idx}]", depth + 1, limit)
        elif isinstance(key, str) and key.startswith("$"):
            raise UnknownOpError(f"Unknown op: {key}", key_path)
        else:
            _check_field(spec, key_path, depth + 1, limit)


def validate_condition(cond: Any, depth_limit: int = DEFAULT_DEPTH_LIMIT) -> None:
    """Raise a ConditionEvalError if ``cond`` cannot be evaluated, without needing data."""
    _check_query(cond, "$", 1, depth_limit)


def evaluate(condition: Dict[str, Any], data: Dict[str, Any]) -> bool:
    return eval_condition(condition, data)
