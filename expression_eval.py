"""Response filter expressions: comma-separated deep-pick paths or ``:``-prefixed JMESPath."""

from __future__ import annotations

import logging
from typing import Any, List

import jmespath
from jmespath.exceptions import JMESPathError

from gql2rest.dot_path import DotPathError, pick_paths


JMESPATH_SENTINEL = ":"

logger = logging.getLogger("gql2rest.filters")


def _empty_like(response: Any) -> Any:
    return [] if isinstance(response, list) else {}


def _is_array_of_empty_objects(value: Any) -> bool:
    if not isinstance(value, list) or not value:
        return False
    return all(isinstance(item, dict) and not item for item in value)


def split_fields(filter_query: str) -> List[str]:
    return [field.strip() for field in filter_query.split(",") if field.strip()]


def apply_jmespath(response: Any, expression: str, log: logging.Logger | None = None) -> Any:
    """Evaluate a JMESPath expression; no match or a bad expression yields ``[]``/``{}``."""
    log = log or logger
    empty = _empty_like(response)
    try:
        result = jmespath.search(expression, response)
    except JMESPathError as exc:
        log.warning("jmespath_filter_failed expression=%r error=%s", expression, exc)
        return empty
    if result is None:
        return empty
    log.debug("jmespath_filter_applied expression=%r", expression)
    return result


def apply_field_pick(response: Any, fields: List[str], log: logging.Logger | None = None) -> Any:
    log = log or logger
    if not fields or not response or not isinstance(response, (dict, list)):
        return response
    try:
        if isinstance(response, dict):
            return pick_paths(response, fields)
        picked = [pick_paths(item, fields) if isinstance(item, dict) else item for item in response]
    except DotPathError as exc:
        log.warning("field_filter_failed fields=%s error=%s", fields, exc)
        return _empty_like(response)
    if _is_array_of_empty_objects(picked):
        return []
    log.debug("field_filter_applied fields=%s", fields)
    return picked


def evaluate(expression: str, data: Any, log: logging.Logger | None = None) -> Any:
    """Apply one filter expression to a formatted response. Never raises on a bad expression."""
    if not isinstance(expression, str) or not expression.strip():
        return data
    expression = expression.strip()
    if expression.startswith(JMESPATH_SENTINEL):
        return apply_jmespath(data, expression[len(JMESPATH_SENTINEL):], log)
    return apply_field_pick(data, split_fields(expression), log)


def filter_response(response: Any, query: dict | None, filter_field_name: str, log: logging.Logger | None = None) -> Any:
    if not isinstance(query, dict):
        return response
    filter_query = query.get(filter_field_name)
    if isinstance(filter_query, list):
        filter_query = filter_query[-1] if filter_query else None
    if not filter_query:
        return response
    return evaluate(str(filter_query), response, log)
