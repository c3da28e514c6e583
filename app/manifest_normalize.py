"""Manifest normalization: single-operation shorthand and multi-operation chains share one shape."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List


HTTP_VERBS = ("get", "post", "patch", "delete", "put")
DELETED_MARKER = "__DELETED__"

# Step keys allowed as siblings of ``operation`` in the shorthand form.
SHORTHAND_STEP_KEYS = ("operation", "params", "condition", "onFail", "hide", "wrapRequestBodyWith", "requestMiddlewareFunction")


@dataclass
class ManifestActionError(Exception):
    code: str
    message: str
    path: str | None = None

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        base = f"{self.code}: {self.message}"
        return f"{base} (path={self.path})" if self.path else base


def _split_params(params: Any) -> tuple[Dict[str, str], List[str]]:
    renames: Dict[str, str] = {}
    deletions: List[str] = []
    if not isinstance(params, dict):
        return renames, deletions
    for key, value in params.items():
        if value == DELETED_MARKER:
            deletions.append(key)
        elif isinstance(value, str) and value:
            renames[key] = value
    return renames, deletions


def _normalize_step(raw: dict, default_status: Any) -> dict:
    renames, deletions = _split_params(raw.get("params"))
    hide = raw.get("hide")
    return {
        "operation": raw.get("operation"),
        "param_renames": renames,
        "delete_params": deletions,
        "condition": raw.get("condition"),
        "wrap_body_with": raw.get("wrapRequestBodyWith"),
        "hide": [name for name in hide if isinstance(name, str)] if isinstance(hide, list) else [],
        "request_hook": raw.get("requestMiddlewareFunction"),
        "success_status": raw.get("successStatusCode", default_status),
        "on_fail": raw.get("onFail"),
    }


def normalize_action(verb: str, path: str, raw: Any) -> dict | None:
    """Return the normalized action for ``verb path``, or ``None`` when it declares no operation."""
    verb = verb.lower()
    action_path = f"endpoints.{path}.{verb}"
    if not isinstance(raw, dict):
        return None
    has_single = bool(raw.get("operation"))
    has_multi = bool(raw.get("operations"))
    if has_single and has_multi:
        raise ManifestActionError(
            "MANIFEST_ACTION_AMBIGUOUS",
            'endpoint action has both "operation" and "operations"; only one is allowed',
            action_path,
        )
    if not has_single and not has_multi:
        return None

    success_status = raw.get("successStatusCode")
    if has_single:
        raw_steps = [{key: raw[key] for key in SHORTHAND_STEP_KEYS if key in raw}]
    else:
        raw_steps = raw.get("operations")
        if not isinstance(raw_steps, list) or not raw_steps:
            return None
        if not isinstance(raw_steps[0], dict) or not raw_steps[0].get("operation"):
            return None

    return {
        "verb": verb,
        "path": path.strip(),
        "success_status": success_status,
        "steps": [_normalize_step(step, success_status) for step in raw_steps if isinstance(step, dict)],
    }


def iter_endpoint_actions(endpoints: Any):
    """Yield ``(verb, path, raw_action)`` for every verb declared under every manifest path."""
    if not isinstance(endpoints, dict):
        return
    for path, endpoint in endpoints.items():
        if not path or not isinstance(endpoint, dict):
            continue
        for verb in HTTP_VERBS:
            if endpoint.get(verb):
                yield verb, path.strip(), endpoint[verb]
