"""FastAPI hosting for manifest-declared REST routes backed by GraphQL operations."""

from __future__ import annotations

import json
import logging
import re
import sys
import time
from pathlib import Path
from typing import Any, Callable, Dict

from fastapi import APIRouter, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse, Response
from graphql import GraphQLSchema
from starlette.middleware.base import BaseHTTPMiddleware

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from action_exec import RestRequest, execute_action
from app.config import ConfigError, load_config, validate_config
from app.executor import GraphQLExecutor, check_executor, check_formatter, check_logger
from app.hooks import load_hooks
from app.manifest_normalize import ManifestActionError, iter_endpoint_actions, normalize_action
from app.manifest_validate import validate_action
from error_classifier import ErrorClassifier
from formatters import default_format_error, strip_response_data
from operation_registry import OperationRegistry, RegistryLoadError


logger = logging.getLogger("gql2rest.routes")

_EXPRESS_PARAM_RE = re.compile(r":([A-Za-z_][A-Za-z0-9_]*)")


def join_route(prefix: str, path: str) -> str:
    """``/api/v1`` + ``tweets/:id`` -> ``/api/v1/tweets/{id}``."""
    joined = "/" + "/".join(part.strip("/") for part in (prefix, path) if part and part.strip("/"))
    return _EXPRESS_PARAM_RE.sub(r"{\1}", joined)


def _load_manifest(path: str | Path) -> dict:
    manifest_path = Path(path)
    try:
        manifest = json.loads(manifest_path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise ConfigError("MANIFEST_UNREADABLE", f"cannot load manifest file {manifest_path.resolve()}: {exc}", "manifestFile") from exc
    if not isinstance(manifest, dict) or not isinstance(manifest.get("endpoints"), dict):
        raise ConfigError("MANIFEST_ENDPOINTS_MISSING", 'cannot find "endpoints" object in manifest file', "manifestFile")
    return manifest


async def _read_json_body(request: Request) -> Any:
    """Parsed request body; an empty body is ``{}`` and malformed JSON raises ``ValueError``."""
    raw = await request.body()
    if not raw:
        return {}
    return json.loads(raw)


def _bad_body_response(message: str) -> JSONResponse:
    body = {"errors": [{"code": "REQUEST_BODY_INVALID", "message": message}]}
    return JSONResponse(body, status_code=400)


def _query_dict(request: Request) -> Dict[str, Any]:
    query: Dict[str, Any] = {}
    for key in request.query_params.keys():
        values = request.query_params.getlist(key)
        query[key] = values[0] if len(values) == 1 else values
    return query


def _make_endpoint(action: dict, deps: dict) -> Callable[[Request], Any]:
    route = deps["route"]
    verb = action["verb"].upper()
    log: logging.Logger = deps.get("logger") or logger

    async def endpoint(request: Request) -> Response:
        log.debug("route_invoked verb=%s route=%s path=%s", verb, route, request.url.path)
        try:
            body = await _read_json_body(request)
        except ValueError as exc:
            log.warning("request_body_invalid verb=%s route=%s error=%s", verb, route, exc)
            return _bad_body_response("Request body is not valid JSON")
        rest_request = RestRequest(
            verb=verb,
            path=request.url.path,
            params=dict(request.path_params),
            query=_query_dict(request),
            body=body,
            headers=dict(request.headers),
        )
        status, body = await execute_action(action, rest_request, deps)
        if status == 204:
            return Response(status_code=204)
        return JSONResponse(jsonable_encoder(body), status_code=status)

    endpoint.__name__ = f"{action['verb']}_{re.sub(r'[^A-Za-z0-9_]', '_', route).strip('_')}"
    return endpoint


def register_routes(router: APIRouter, manifest: dict, base_deps: dict, api_prefix: str) -> list[str]:
    """Add one route per valid (verb, path) pair; invalid actions are logged and skipped."""
    log: logging.Logger = base_deps.get("logger") or logger
    added: list[str] = []
    for verb, path, raw_action in iter_endpoint_actions(manifest.get("endpoints")):
        route = join_route(api_prefix, path)
        try:
            action = normalize_action(verb, path, raw_action)
        except ManifestActionError as exc:
            log.error("route_skipped verb=%s route=%s error=%s", verb.upper(), route, exc)
            continue
        if action is None:
            continue
        action["route"] = route
        log.info("Adding endpoint %s %s", verb.upper(), route)
        issues = validate_action(action, base_deps["registry"], base_deps["hooks"])
        if issues:
            for issue in issues:
                log.error(
                    "route_skipped verb=%s route=%s code=%s message=%s path=%s",
                    verb.upper(),
                    route,
                    issue["code"],
                    issue["message"],
                    issue["path"],
                )
            continue
        deps = dict(base_deps, route=route)
        router.add_api_route(route, _make_endpoint(action, deps), methods=[verb.upper()])
        added.append(f"{verb.upper()} {route}")
    return added


def init(
    schema: GraphQLSchema,
    executor: GraphQLExecutor,
    options: Dict[str, Any] | None = None,
    format_error: Callable[..., Any] | None = None,
    format_data: Callable[..., Any] | None = None,
    router: APIRouter | None = None,
) -> APIRouter | None:
    """Build REST routes for every manifest endpoint. Returns ``None`` when initialization fails."""
    options = dict(options or {})
    custom_logger = options.pop("logger", None)
    log = custom_logger or logger
    try:
        check_logger(log)
    except ConfigError as exc:
        logger.error("init_failed error=%s", exc)
        return None

    try:
        config = load_config(options)
        validate_config(config)
        check_executor(executor)
        check_formatter("format_error", format_error)
        check_formatter("format_data", format_data)
        if not isinstance(schema, GraphQLSchema):
            raise ConfigError("SCHEMA_MISSING", "schema object is required but missing", "schema")
        registry = OperationRegistry.load(config["gqlGeneratorOutputFolder"])
        manifest = _load_manifest(config["manifestFile"])
        hooks = load_hooks(config.get("middlewaresFile"))
    except RegistryLoadError as exc:
        log.error("init_failed error=%s hint=run query_synth.generate_query_files before init", exc)
        return None
    except ConfigError as exc:
        log.error("init_failed error=%s", exc)
        return None

    base_deps = {
        "registry": registry,
        "executor": executor,
        "hooks": hooks,
        "classifier": ErrorClassifier(manifest.get("errors"), config.get("graphqlErrorCodeObjPath")),
        "format_data": format_data or strip_response_data,
        "format_error": format_error or default_format_error,
        "filter_field_name": config["filterFieldName"],
        "logger": custom_logger,
    }
    router = router if router is not None else APIRouter()
    added = register_routes(router, manifest, base_deps, config["apiPrefix"])
    log.info("init_done routes=%s api_prefix=%s", len(added), config["apiPrefix"])
    return router


class RequestTimingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        total_ms = (time.perf_counter() - start) * 1000
        logger.info("%s %s %s total_ms=%.1f", request.method, request.url.path, response.status_code, total_ms)
        response.headers["Server-Timing"] = f"total;dur={total_ms:.1f}"
        return response


def create_app(
    schema: GraphQLSchema,
    executor: GraphQLExecutor,
    options: Dict[str, Any] | None = None,
    format_error: Callable[..., Any] | None = None,
    format_data: Callable[..., Any] | None = None,
) -> FastAPI:
    router = init(schema, executor, options, format_error, format_data)
    if router is None:
        raise RuntimeError("gql2rest initialization failed; see error log")
    app = FastAPI(title="gql2rest")
    app.add_middleware(RequestTimingMiddleware)

    @app.get("/health")
    async def health() -> dict:
        return {"ok": True}

    app.include_router(router)
    return app
