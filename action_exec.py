"""Manifest action execution: REST request -> chained GraphQL operations -> REST response."""

from __future__ import annotations

import copy
import inspect
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

import anyio
from graphql import GraphQLError, parse

from condition_eval import ConditionEvalError, evaluate as evaluate_condition
from error_classifier import CLIENT_ERROR_CODE, SERVER_ERROR_CODE, SUCCESS_STATUS_CODE, ErrorClassifier, is_valid_status
from expression_eval import filter_response
from formatters import INTERNAL_SERVER_ERROR_FORMATTED, default_format_error, hide_fields, strip_response_data
from gql2rest.dot_path import DotPathError, delete_path, wrap_value


Issue = Dict[str, Any]

logger = logging.getLogger("gql2rest.actions")


@dataclass
class RestRequest:
    verb: str
    path: str
    params: Dict[str, Any] = field(default_factory=dict)
    query: Dict[str, Any] = field(default_factory=dict)
    body: Any = None
    headers: Dict[str, str] = field(default_factory=dict)


class StepServerError(Exception):
    """A step failed for a reason the client must not see."""


def _issue(code: str, message: str, path: str | None = None, detail: dict | None = None) -> Issue:
    return {"code": code, "message": message, "path": path, "detail": detail}


def build_param_bag(request: RestRequest) -> Dict[str, Any]:
    bag: Dict[str, Any] = {}
    bag.update(request.params or {})
    bag.update(request.query or {})
    if isinstance(request.body, dict):
        bag.update(request.body)
    return bag


def rename_variables(query_text: str, renames: Dict[str, str]) -> str:
    """Rewrite ``$internal`` references to ``$external``; ``$id`` never touches ``$idList``."""
    for internal, external in renames.items():
        pattern = re.compile(r"\$" + re.escape(internal) + r"(?![A-Za-z0-9_])")
        query_text = pattern.sub(lambda _m, ext=external: "$" + ext, query_text)
    return query_text


def _fresh_request(snapshot: RestRequest) -> RestRequest:
    return RestRequest(
        verb=snapshot.verb,
        path=snapshot.path,
        params=copy.deepcopy(snapshot.params),
        query=copy.deepcopy(snapshot.query),
        body=copy.deepcopy(snapshot.body),
        headers=dict(snapshot.headers),
    )


def _apollo_result(exc: BaseException) -> dict | None:
    result = getattr(exc, "result", None)
    if isinstance(result, dict) and isinstance(result.get("errors"), list) and result["errors"]:
        return result
    return None


async def _call_executor(executor: Any, execution: dict) -> Any:
    if inspect.iscoroutinefunction(executor) or inspect.iscoroutinefunction(getattr(executor, "__call__", None)):
        result = await executor(execution)
    else:
        result = await anyio.to_thread.run_sync(executor, execution)
    if inspect.isawaitable(result):
        result = await result
    return result


def shape_error(result: dict, deps: dict) -> Tuple[int, Any]:
    classifier: ErrorClassifier = deps["classifier"]
    format_error = deps.get("format_error") or default_format_error
    status = classifier.resolve_http_status(result) or CLIENT_ERROR_CODE
    classifier.attach_description(result)
    result.pop("data", None)
    return status, format_error(result, status)


def shape_success(result: dict, step: dict, request: RestRequest, deps: dict) -> Tuple[int, Any]:
    format_data = deps.get("format_data") or strip_response_data
    status = step.get("success_status")
    if not is_valid_status(status):
        status = SUCCESS_STATUS_CODE
    body = format_data(result)
    body = hide_fields(body, step.get("hide"))
    body = filter_response(body, request.query, deps.get("filter_field_name") or "fields", deps.get("logger"))
    return status, body


async def run_step(step: dict, snapshot: RestRequest, deps: dict) -> Tuple[int, Any] | None:
    """Run one step. Returns ``None`` when its condition skips it."""
    log: logging.Logger = deps.get("logger") or logger
    registry = deps["registry"]
    hooks: Dict[str, Any] = deps.get("hooks") or {}
    route = deps.get("route") or snapshot.path
    operation_name = step["operation"]

    request = _fresh_request(snapshot)
    hook_name = step.get("request_hook")
    if hook_name:
        hook = hooks.get(hook_name)
        if not callable(hook):
            raise StepServerError(f"request hook {hook_name!r} unavailable")
        transformed = hook(request, route, snapshot.verb, operation_name)
        if inspect.isawaitable(transformed):
            transformed = await transformed
        if not isinstance(transformed, RestRequest):
            raise StepServerError(f"request hook {hook_name!r} returned {type(transformed).__name__}, expected RestRequest")
        request = transformed

    if isinstance(request.body, dict):
        for path in step.get("delete_params") or []:
            delete_path(request.body, path)

    doc = registry.get(operation_name)
    if doc is None:
        raise StepServerError(f"operation {operation_name!r} not in registry")
    query_text = rename_variables(doc.query_text, step.get("param_renames") or {})

    variables = build_param_bag(request)
    condition = step.get("condition")
    if condition:
        if not evaluate_condition(condition, variables):
            log.debug("step_skipped route=%s operation=%s reason=condition", route, operation_name)
            return None

    wrap_with = step.get("wrap_body_with")
    if wrap_with and request.body:
        request.body = wrap_value(request.body, wrap_with)
        variables = build_param_bag(request)

    try:
        document = parse(query_text)
    except GraphQLError as exc:
        raise StepServerError(f"operation {operation_name!r} does not parse: {exc}") from exc

    execution = {
        "query": document,
        "variables": variables,
        "context": {"headers": request.headers, "rest_request": request},
        "operation_name": operation_name,
    }
    try:
        result = await _call_executor(deps["executor"], execution)
    except Exception as exc:
        result = _apollo_result(exc)
        if result is None:
            raise
        log.info("graphql_error_exception route=%s operation=%s error=%s", route, operation_name, exc)
        # Errors embedded in a raised result always win over any partial data.
        return shape_error({"errors": result["errors"]}, deps)

    if not isinstance(result, dict):
        raise StepServerError(f"executor returned {type(result).__name__}, expected dict")
    if deps["classifier"].is_error(result):
        return shape_error(result, deps)
    return shape_success(result, step, request, deps)


async def execute_action(action: dict, request: RestRequest, deps: dict) -> Tuple[int, Any]:
    """Run every step of a normalized action; the last step that executes produces the response."""
    log: logging.Logger = deps.get("logger") or logger
    route = deps.get("route") or request.path
    snapshot = _fresh_request(request)

    response: Tuple[int, Any] | None = None
    for idx, step in enumerate(action.get("steps") or []):
        try:
            outcome = await run_step(step, snapshot, deps)
        except (StepServerError, ConditionEvalError, DotPathError) as exc:
            log.error("step_failed route=%s step=%s operation=%s error=%s", route, idx, step.get("operation"), exc)
            outcome = (SERVER_ERROR_CODE, copy.deepcopy(INTERNAL_SERVER_ERROR_FORMATTED))
        except Exception:
            log.exception("step_failed route=%s step=%s operation=%s", route, idx, step.get("operation"))
            outcome = (SERVER_ERROR_CODE, copy.deepcopy(INTERNAL_SERVER_ERROR_FORMATTED))
        if outcome is not None:
            response = outcome

    if response is None:
        status = action.get("success_status")
        return (status if is_valid_status(status) else SUCCESS_STATUS_CODE), {}
    return response


def describe_steps(action: dict) -> List[Issue]:
    """Steps whose shape prevents execution; used for registration diagnostics."""
    issues: List[Issue] = []
    steps = action.get("steps")
    if not isinstance(steps, list) or not steps:
        return [_issue("ACTION_NO_STEPS", "action has no steps", "$.steps")]
    for idx, step in enumerate(steps):
        if not isinstance(step, dict) or not isinstance(step.get("operation"), str):
            issues.append(_issue("ACTION_STEP_INVALID", "step must name an operation", f"$.steps[{idx}]"))
    return issues
