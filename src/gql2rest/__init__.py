"""gql2rest kernel utilities."""

from .dot_path import DotPathError, delete_path, get_path, has_path, parse_path, pick_paths, wrap_value

__all__ = [
    "DotPathError",
    "delete_path",
    "get_path",
    "has_path",
    "parse_path",
    "pick_paths",
    "wrap_value",
]
