"""Query synthesizer: fully expanded GraphQL documents for every root field of a schema.

Each field of the Query, Mutation and Subscription root types becomes one
operation document whose selection set walks the return type recursively:

- scalar and enum fields are selected by name;
- object and interface fields expand their sub-fields and collapse to nothing
  when no sub-field survives;
- union fields fan out into one ``... on Member`` inline fragment per member;
- every field argument is bound to an operation variable, renamed ``name1``,
  ``name2``, ... when the same argument name was already bound elsewhere in the
  document.

Recursion stops at ``depth_limit`` and whenever a ``<parent>To<field>Key``
cross-reference key has already been expanded in the same operation, which
breaks cycles in recursive types.
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Set

from graphql import (
    GraphQLField,
    GraphQLNamedType,
    GraphQLSchema,
    build_schema,
    get_named_type,
    is_interface_type,
    is_object_type,
    is_union_type,
)

from operation_registry import OperationDocument, OperationRegistry


DEFAULT_DEPTH_LIMIT = 100
INDENT = "    "

# (result key, operation keyword, schema attribute)
ROOT_CATEGORIES = (
    ("queries", "query", "query_type"),
    ("mutations", "mutation", "mutation_type"),
    ("subscriptions", "subscription", "subscription_type"),
)

logger = logging.getLogger("gql2rest.synth")


@dataclass
class SynthesisError(Exception):
    code: str
    message: str

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        return f"{self.code}: {self.message}"


@dataclass
class SynthesisContext:
    """State for one synthesis run; ``for_operation`` gives each root field a fresh scope."""

    schema: GraphQLSchema
    depth_limit: int
    arguments: Dict[str, Dict[str, str]] = field(default_factory=dict)
    duplicate_counts: Dict[str, int] = field(default_factory=dict)
    seen_keys: Set[str] = field(default_factory=set)

    def for_operation(self) -> "SynthesisContext":
        return SynthesisContext(self.schema, self.depth_limit)


def _register_args(ctx: SynthesisContext, gql_field: GraphQLField) -> Dict[str, Dict[str, str]]:
    registered: Dict[str, Dict[str, str]] = {}
    for arg_name, arg in gql_field.args.items():
        if arg_name in ctx.duplicate_counts or arg_name in ctx.arguments:
            index = ctx.duplicate_counts.get(arg_name, 0) + 1
            var_name = f"{arg_name}{index}"
            while var_name in ctx.arguments or var_name in registered:
                index += 1
                var_name = f"{arg_name}{index}"
            ctx.duplicate_counts[arg_name] = index
        else:
            var_name = arg_name
        registered[var_name] = {"name": arg_name, "type": str(arg.type)}
    ctx.arguments.update(registered)
    return registered


def _unregister_args(
    ctx: SynthesisContext, registered: Dict[str, Dict[str, str]], counts_before: Dict[str, int]
) -> None:
    for var_name in registered:
        ctx.arguments.pop(var_name, None)
    ctx.duplicate_counts.clear()
    ctx.duplicate_counts.update(counts_before)


def args_to_vars(arguments: Dict[str, Dict[str, str]]) -> str:
    return ", ".join(f"{arg['name']}: ${var_name}" for var_name, arg in arguments.items())


def vars_to_types(arguments: Dict[str, Dict[str, str]]) -> str:
    return ", ".join(f"${var_name}: {arg['type']}" for var_name, arg in arguments.items())


def _expand_children(
    ctx: SynthesisContext, owner: GraphQLNamedType, field_name: str, depth: int
) -> str:
    lines = (
        _expand_field(ctx, owner, field_name, child_name, depth)
        for child_name in owner.fields
    )
    return "\n".join(line for line in lines if line)


def _expand_composite(
    ctx: SynthesisContext, named: GraphQLNamedType, parent_name: str, field_name: str, depth: int
) -> str:
    key = f"{parent_name}To{field_name}Key"
    if key in ctx.seen_keys or depth > ctx.depth_limit:
        return ""
    ctx.seen_keys.add(key)
    return _expand_children(ctx, named, field_name, depth + 1)


def _expand_union(
    ctx: SynthesisContext, named: GraphQLNamedType, parent_name: str, field_name: str, depth: int
) -> str:
    key = f"{parent_name}To{field_name}Key"
    if key in ctx.seen_keys or depth > ctx.depth_limit:
        return ""
    ctx.seen_keys.add(key)
    fragment_indent = INDENT * (depth + 1)
    fragments = []
    for member in named.types:
        body = _expand_children(ctx, member, field_name, depth + 2)
        if body:
            fragments.append(f"{fragment_indent}... on {member.name} {{\n{body}\n{fragment_indent}}}")
    return "\n".join(fragments)


def _expand_field(
    ctx: SynthesisContext, parent_type: GraphQLNamedType, parent_name: str, field_name: str, depth: int
) -> str:
    gql_field = parent_type.fields[field_name]
    named = get_named_type(gql_field.type)
    indent = INDENT * depth

    # Outer fields bind their arguments before children so they keep the declared names.
    registered: Dict[str, Dict[str, str]] = {}
    counts_before: Dict[str, int] = {}
    if gql_field.args:
        counts_before = dict(ctx.duplicate_counts)
        registered = _register_args(ctx, gql_field)
    line = f"{indent}{field_name}"
    if registered:
        line += f"({args_to_vars(registered)})"

    if is_object_type(named) or is_interface_type(named):
        body = _expand_composite(ctx, named, parent_name, field_name, depth)
    elif is_union_type(named):
        body = _expand_union(ctx, named, parent_name, field_name, depth)
    else:
        return line

    if not body:
        if registered:
            _unregister_args(ctx, registered, counts_before)
        return ""
    return f"{line}{{\n{body}\n{indent}}}"


def synthesize_operation(ctx: SynthesisContext, root_type: GraphQLNamedType, kind: str, name: str) -> OperationDocument | None:
    op_ctx = ctx.for_operation()
    selection = _expand_field(op_ctx, root_type, root_type.name, name, 1)
    if not selection:
        return None
    signature = vars_to_types(op_ctx.arguments)
    header = f"{kind} {name}({signature})" if signature else f"{kind} {name}"
    return OperationDocument(
        operation_name=name,
        kind=kind,
        query_text=f"{header}{{\n{selection}\n}}",
        arguments=dict(op_ctx.arguments),
    )


def _check_inputs(schema: object, depth_limit: object) -> None:
    if not isinstance(schema, GraphQLSchema):
        raise SynthesisError("SCHEMA_INVALID", "Missing or invalid GraphQLSchema object")
    if not isinstance(depth_limit, int) or isinstance(depth_limit, bool) or depth_limit < 0:
        raise SynthesisError("DEPTH_LIMIT_INVALID", f"Depth limit must be a non-negative integer, got {depth_limit!r}")


def synthesize(schema: GraphQLSchema, depth_limit: int = DEFAULT_DEPTH_LIMIT, log: logging.Logger | None = None) -> dict:
    """Return ``{"queries", "mutations", "subscriptions"}`` mapping field name -> OperationDocument."""
    log = log or logger
    _check_inputs(schema, depth_limit)
    ctx = SynthesisContext(schema, depth_limit)
    result: Dict[str, Dict[str, OperationDocument]] = {}
    for category, kind, attr in ROOT_CATEGORIES:
        root_type = getattr(schema, attr)
        docs: Dict[str, OperationDocument] = {}
        result[category] = docs
        if root_type is None:
            log.warning("gql_generator_skip category=%s reason=no %s type in schema", category, kind)
            continue
        for name in root_type.fields:
            doc = synthesize_operation(ctx, root_type, kind, name)
            if doc is None:
                log.warning("gql_generator_skip operation=%s reason=empty selection set at depth_limit=%s", name, depth_limit)
                continue
            docs[name] = doc
    return result


def generate_query_files(
    schema: GraphQLSchema,
    dest_dir: str | Path | None,
    depth_limit: int = DEFAULT_DEPTH_LIMIT,
    log: logging.Logger | None = None,
) -> bool:
    """Synthesize every operation and write the registry folder. Returns False on any failure."""
    log = log or logger
    log.info("gql_generator_init depth_limit=%s dest=%s", depth_limit, dest_dir)
    if not dest_dir or not str(dest_dir).strip():
        log.error("gql_generator_failed reason=missing destination directory")
        return False
    try:
        result = synthesize(schema, depth_limit, log)
    except SynthesisError as exc:
        log.error("gql_generator_failed reason=%s", exc)
        return False
    registry = OperationRegistry.from_synthesis(result)
    try:
        written = registry.save(dest_dir)
    except OSError as exc:
        log.error("gql_generator_failed reason=cannot write %s error=%s", dest_dir, exc)
        return False
    log.info(
        "gql_generator_done queries=%s mutations=%s subscriptions=%s dest=%s",
        len(result["queries"]),
        len(result["mutations"]),
        len(result["subscriptions"]),
        written,
    )
    return True


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Generate expanded GraphQL operation documents from an SDL schema")
    parser.add_argument("schema", help="Path to the schema SDL file")
    parser.add_argument("output", help="Folder to write generated operations into (replaced)")
    parser.add_argument("--depth", type=int, default=DEFAULT_DEPTH_LIMIT, help="Recursion depth limit (default: 100)")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO)
    schema = build_schema(Path(args.schema).read_text(encoding="utf-8"))
    return 0 if generate_query_files(schema, args.output, args.depth) else 1


if __name__ == "__main__":
    sys.exit(main())
