"""Request-transform hooks loaded from a user-supplied Python file."""

from __future__ import annotations

import importlib.util
import os
from pathlib import Path
from typing import Any, Callable, Dict

from app.config import ConfigError


def load_hooks(path: str | os.PathLike | None) -> Dict[str, Callable[..., Any]]:
    """Public names of the module at ``path``; an empty mapping when no file is configured."""
    if not path:
        return {}
    file_path = Path(path).resolve()
    if not file_path.is_file():
        raise ConfigError("HOOKS_FILE_MISSING", f"middlewares file {file_path} not found", "middlewaresFile")
    spec = importlib.util.spec_from_file_location(f"gql2rest_hooks_{file_path.stem}", file_path)
    if spec is None or spec.loader is None:
        raise ConfigError("HOOKS_FILE_INVALID", f"middlewares file {file_path} is not a Python module", "middlewaresFile")
    module = importlib.util.module_from_spec(spec)
    try:
        spec.loader.exec_module(module)
    except Exception as exc:
        raise ConfigError("HOOKS_FILE_INVALID", f"middlewares file {file_path} failed to load: {exc}", "middlewaresFile") from exc
    exported = getattr(module, "__all__", None)
    names = exported if isinstance(exported, (list, tuple)) else [n for n in vars(module) if not n.startswith("_")]
    return {name: getattr(module, name) for name in names if hasattr(module, name)}
