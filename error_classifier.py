"""Classification of GraphQL results and mapping of domain error codes to HTTP statuses."""

from __future__ import annotations

from http import HTTPStatus
from typing import Any, Dict

from gql2rest.dot_path import DotPathError, get_path


DEFAULT_ERROR_CODE_PATH = "errors[0].extensions.code"
CLIENT_ERROR_CODE = 400
SERVER_ERROR_CODE = 500
SUCCESS_STATUS_CODE = 200

_VALID_STATUSES = {status.value for status in HTTPStatus}


def is_valid_status(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value in _VALID_STATUSES


class ErrorClassifier:
    """Holds the manifest's error map and answers questions about one GraphQL result.

    The error map is the manifest ``errors`` object::

        {"errorCodes": {"4003": {"httpCode": 403, "errorDescription": "..."}}}
    """

    def __init__(self, error_map: dict | None, error_code_path: str | None = None) -> None:
        codes = error_map.get("errorCodes") if isinstance(error_map, dict) else None
        self._codes: Dict[Any, dict] = dict(codes) if isinstance(codes, dict) else {}
        self.error_code_path = error_code_path or DEFAULT_ERROR_CODE_PATH

    def is_error(self, result: Any) -> bool:
        """True iff errors are present and data is absent, empty or all null."""
        if not isinstance(result, dict):
            return False
        errors = result.get("errors")
        if not errors:
            return False
        data = result.get("data")
        if not data:
            return True
        if isinstance(data, dict):
            return all(value is None for value in data.values())
        return False

    def error_code(self, result: Any) -> Any:
        try:
            return get_path(result, self.error_code_path)
        except DotPathError:
            return None

    def _entry(self, code: Any) -> dict | None:
        if code is None or not self._codes:
            return None
        try:
            entry = self._codes.get(code)
        except TypeError:
            entry = None
        if entry is None:
            entry = self._codes.get(str(code))
        return entry if isinstance(entry, dict) else None

    def resolve_http_status(self, result: Any) -> int | None:
        entry = self._entry(self.error_code(result))
        if entry is None:
            return None
        status = entry.get("httpCode")
        return status if is_valid_status(status) else None

    def attach_description(self, result: Any) -> Any:
        if not isinstance(result, dict):
            return result
        errors = result.get("errors")
        if not isinstance(errors, list) or not errors or not isinstance(errors[0], dict):
            return result
        entry = self._entry(self.error_code(result))
        description = entry.get("errorDescription") if entry else None
        if description:
            errors[0]["errorDescription"] = description
        return result
