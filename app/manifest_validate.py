"""Registration-time checks for normalized manifest actions."""

from __future__ import annotations

from typing import Any, Dict, List

from action_exec import describe_steps
from condition_eval import ConditionEvalError, validate_condition
from gql2rest.dot_path import DotPathError, parse_path


Issue = Dict[str, Any]


def _issue(code: str, message: str, path: str | None = None, detail: dict | None = None) -> Issue:
    return {"code": code, "message": message, "path": path, "detail": detail}


def _wrap_path_problem(wrap_with: Any) -> str | None:
    if not isinstance(wrap_with, str) or not wrap_with.strip():
        return "must be a non-empty string"
    try:
        tokens = parse_path(wrap_with)
    except DotPathError as exc:
        return exc.message
    if any(isinstance(token, int) for token in tokens):
        return "list indexes are not allowed"
    return None


def validate_action(action: dict, registry: Any, hooks: Dict[str, Any] | None) -> List[Issue]:
    """Issues that prevent ``action`` from being served; an empty list means the route is usable."""
    errors: List[Issue] = describe_steps(action)
    if errors:
        return errors

    for idx, step in enumerate(action["steps"]):
        path = f"$.steps[{idx}]"
        operation = step["operation"]
        if operation not in registry:
            errors.append(
                _issue(
                    "MANIFEST_OPERATION_UNKNOWN",
                    f"GraphQL operation {operation} is not found",
                    f"{path}.operation",
                    {"operation": operation},
                )
            )

        hook_name = step.get("request_hook")
        if hook_name:
            if not hooks or hook_name not in hooks:
                errors.append(
                    _issue(
                        "MANIFEST_HOOK_MISSING",
                        f"Middleware function {hook_name} cannot be found in middlewares file",
                        f"{path}.requestMiddlewareFunction",
                        {"hook": hook_name},
                    )
                )
            elif not callable(hooks[hook_name]):
                errors.append(
                    _issue(
                        "MANIFEST_HOOK_NOT_CALLABLE",
                        f"Middleware {hook_name} is not a function",
                        f"{path}.requestMiddlewareFunction",
                        {"hook": hook_name},
                    )
                )

        condition = step.get("condition")
        if condition is not None:
            try:
                validate_condition(condition)
            except ConditionEvalError as exc:
                errors.append(
                    _issue(
                        "MANIFEST_CONDITION_INVALID",
                        f"condition cannot be compiled: {exc.message}",
                        f"{path}.condition",
                        {"code": exc.code, "at": exc.path},
                    )
                )

        wrap_with = step.get("wrap_body_with")
        if wrap_with is not None:
            wrap_problem = _wrap_path_problem(wrap_with)
            if wrap_problem:
                errors.append(
                    _issue(
                        "MANIFEST_WRAP_INVALID",
                        f"wrapRequestBodyWith is not a usable property path: {wrap_problem}",
                        f"{path}.wrapRequestBodyWith",
                        {"wrapRequestBodyWith": wrap_with},
                    )
                )

        for delete_path in step.get("delete_params") or []:
            try:
                parse_path(delete_path)
            except DotPathError as exc:
                errors.append(
                    _issue(
                        "MANIFEST_DELETE_PATH_INVALID",
                        f"deleted parameter path cannot be parsed: {exc.message}",
                        f"{path}.params",
                        {"param": delete_path, "segment": exc.segment},
                    )
                )

    return errors
