"""Default response formatting for GraphQL results returned through REST routes."""

from __future__ import annotations

from typing import Any, Iterable


INTERNAL_SERVER_ERROR_FORMATTED = {
    "errors": [
        {
            "error": {
                "message": "Internal Server Error",
                "name": "X-InternalServerError",
            }
        }
    ]
}


def default_format_error(result: Any, status_code: int | None = None) -> Any:
    return result


def strip_response_data(result: Any) -> Any:
    """Drop the ``data`` envelope (and any warning-only errors).

    ``{"data": {"tweet": {...}}}`` -> ``{...}``; ``{"data": {"count": 3}}`` -> ``3``;
    ``{"data": {"a": 1, "b": 2}}`` -> ``{"a": 1, "b": 2}``.
    """
    if not isinstance(result, dict):
        return {}
    data = result.get("data")
    if not isinstance(data, dict) or not data:
        return {}
    if len(data) == 1:
        return next(iter(data.values()))
    return {key: value for key, value in data.items()}


def hide_fields(response: Any, hidden: Iterable[str] | None) -> Any:
    hidden_set = {name for name in hidden or [] if isinstance(name, str)}
    if not hidden_set:
        return response
    if isinstance(response, dict):
        return {key: value for key, value in response.items() if key not in hidden_set}
    if isinstance(response, list):
        return [
            {key: value for key, value in item.items() if key not in hidden_set}
            if isinstance(item, dict)
            else item
            for item in response
        ]
    return response
