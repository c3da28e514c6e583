"""Dot-path addressing (``a.b[0].c``) over JSON-like request and result documents."""

from __future__ import annotations

import copy
import re
from dataclasses import dataclass
from typing import Any, Iterable, List, Union


Token = Union[str, int]

_SEGMENT_RE = re.compile(r"^([^\[\]]*)((?:\[\d+\])*)$")
_INDEX_RE = re.compile(r"\[(\d+)\]")

MISSING = object()


@dataclass
class DotPathError(Exception):
    message: str
    path: str
    segment: str | None = None

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        if self.segment is None:
            return f"{self.message} (path={self.path!r})"
        return f"{self.message} (segment={self.segment!r}, path={self.path!r})"


def parse_path(path: str) -> List[Token]:
    """Split a dot-path into key and index tokens.

    ``errors[0].extensions.code`` -> ``["errors", 0, "extensions", "code"]``
    """
    if not isinstance(path, str) or not path.strip():
        raise DotPathError("Path must be a non-empty string", str(path))
    tokens: List[Token] = []
    for raw_segment in path.strip().split("."):
        match = _SEGMENT_RE.match(raw_segment)
        if match is None:
            raise DotPathError("Malformed segment", path, raw_segment)
        name, indexes = match.groups()
        if not name and not indexes:
            raise DotPathError("Empty segment", path, raw_segment)
        if name:
            tokens.append(name)
        tokens.extend(int(idx) for idx in _INDEX_RE.findall(indexes))
    return tokens


def _child(current: Any, token: Token) -> Any:
    if isinstance(current, dict):
        if isinstance(token, str) and token in current:
            return current[token]
        return MISSING
    if isinstance(current, list):
        if isinstance(token, str):
            if not token.isdigit():
                return MISSING
            token = int(token)
        if 0 <= token < len(current):
            return current[token]
    return MISSING


def get_path(doc: Any, path: str, default: Any = None) -> Any:
    current = doc
    for token in parse_path(path):
        current = _child(current, token)
        if current is MISSING:
            return default
    return current


def has_path(doc: Any, path: str) -> bool:
    return get_path(doc, path, MISSING) is not MISSING


def delete_path(doc: Any, path: str) -> bool:
    """Remove the addressed key or list item in place; missing paths are a no-op."""
    tokens = parse_path(path)
    parent = doc
    for token in tokens[:-1]:
        parent = _child(parent, token)
        if parent is MISSING:
            return False
    last = tokens[-1]
    if isinstance(parent, dict):
        if isinstance(last, str) and last in parent:
            del parent[last]
            return True
        return False
    if isinstance(parent, list):
        if isinstance(last, str):
            if not last.isdigit():
                return False
            last = int(last)
        if 0 <= last < len(parent):
            del parent[last]
            return True
    return False


def wrap_value(value: Any, path: str) -> dict:
    """Nest ``value`` under a dotted property path: ``a.b`` -> ``{"a": {"b": value}}``."""
    tokens = parse_path(path)
    for token in tokens:
        if not isinstance(token, str):
            raise DotPathError("Wrap path cannot contain list indexes", path, str(token))
    wrapped: Any = value
    for token in reversed(tokens):
        wrapped = {token: wrapped}
    return wrapped


def _pick(node: Any, tokens: List[Token]) -> Any:
    if not tokens:
        return copy.deepcopy(node)
    token, rest = tokens[0], tokens[1:]
    if isinstance(node, list) and isinstance(token, str) and not token.isdigit():
        picked = []
        for item in node:
            value = _pick(item, tokens)
            if value is not MISSING:
                picked.append(value)
        return picked
    child = _child(node, token)
    if child is MISSING:
        return MISSING
    value = _pick(child, rest)
    if value is MISSING:
        return MISSING
    if isinstance(token, int) or isinstance(node, list):
        return [value]
    return {token: value}


def _merge(left: Any, right: Any) -> Any:
    if isinstance(left, dict) and isinstance(right, dict):
        merged = dict(left)
        for key, value in right.items():
            merged[key] = _merge(merged[key], value) if key in merged else value
        return merged
    if isinstance(left, list) and isinstance(right, list) and len(left) == len(right):
        return [_merge(a, b) for a, b in zip(left, right)]
    return right


def pick_paths(doc: Any, paths: Iterable[str]) -> dict:
    """Deep-pick: keep only the addressed paths, preserving their nesting."""
    result: dict = {}
    for path in paths:
        value = _pick(doc, parse_path(path))
        if value is MISSING or not isinstance(value, dict):
            continue
        result = _merge(result, value)
    return result
