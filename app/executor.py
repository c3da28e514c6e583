"""GraphQL executor contract and a graphql-core backed implementation."""

from __future__ import annotations

import inspect
import logging
from typing import Any, Dict, Protocol, TypedDict, runtime_checkable

from graphql import DocumentNode, GraphQLSchema, execute

from app.config import ConfigError


class ExecutionRequest(TypedDict):
    query: DocumentNode
    variables: Dict[str, Any]
    context: Dict[str, Any]
    operation_name: str


@runtime_checkable
class GraphQLExecutor(Protocol):
    def __call__(self, request: ExecutionRequest) -> Any:
        ...


def check_executor(executor: Any) -> None:
    if not isinstance(executor, GraphQLExecutor):
        raise ConfigError("EXECUTOR_INVALID", "the GraphQL execution function provided is not callable", "executor")


def check_logger(log: Any) -> None:
    if log is not None and not isinstance(log, (logging.Logger, logging.LoggerAdapter)):
        raise ConfigError(
            "LOGGER_INVALID",
            f"logger must be a logging.Logger or LoggerAdapter, got {type(log).__name__}",
            "logger",
        )


def check_formatter(name: str, formatter: Any) -> None:
    if formatter is not None and not callable(formatter):
        raise ConfigError("FORMATTER_INVALID", f"{name} provided is not a function", name)


def graphql_core_executor(schema: GraphQLSchema, root_value: Any = None):
    """Executor that runs documents in-process with graphql-core against ``schema``."""

    async def run(request: ExecutionRequest) -> dict:
        result = execute(
            schema,
            request["query"],
            root_value=root_value,
            context_value=request.get("context"),
            variable_values=request.get("variables"),
            operation_name=request.get("operation_name"),
        )
        if inspect.isawaitable(result):
            result = await result
        payload: Dict[str, Any] = {"data": result.data}
        if result.errors:
            payload["errors"] = [error.formatted for error in result.errors]
        return payload

    return run
