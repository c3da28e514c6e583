"""Runtime options: defaults, ``GQL2REST_*`` environment overrides, then explicit options."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict

ROOT = Path(__file__).resolve().parents[1]

DEFAULTS: Dict[str, Any] = {
    "apiPrefix": "/api/v1",
    "manifestFile": "manifest.json",
    "gqlGeneratorOutputFolder": "gqlGeneratorOutput",
    "filterFieldName": "fields",
    "graphqlErrorCodeObjPath": "errors[0].extensions.code",
    "middlewaresFile": None,
}

ENV_OPTIONS = {
    "GQL2REST_API_PREFIX": "apiPrefix",
    "GQL2REST_MANIFEST_FILE": "manifestFile",
    "GQL2REST_GQL_OUTPUT_FOLDER": "gqlGeneratorOutputFolder",
    "GQL2REST_FILTER_FIELD_NAME": "filterFieldName",
    "GQL2REST_ERROR_CODE_PATH": "graphqlErrorCodeObjPath",
    "GQL2REST_MIDDLEWARES_FILE": "middlewaresFile",
}

REQUIRED_OPTIONS = ("apiPrefix", "gqlGeneratorOutputFolder", "manifestFile", "filterFieldName")


@dataclass
class ConfigError(Exception):
    code: str
    message: str
    path: str | None = None

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        base = f"{self.code}: {self.message}"
        return f"{base} (option={self.path})" if self.path else base


def _load_env_file(path: Path) -> None:
    if not path.exists():
        return
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = value


def env_options(environ: Dict[str, str] | None = None) -> Dict[str, Any]:
    environ = os.environ if environ is None else environ
    options: Dict[str, Any] = {}
    for env_key, option in ENV_OPTIONS.items():
        value = (environ.get(env_key) or "").strip()
        if value:
            options[option] = value
    return options


def load_config(options: Dict[str, Any] | None = None, environ: Dict[str, str] | None = None) -> Dict[str, Any]:
    if environ is None:
        _load_env_file(ROOT / "app" / ".env")
    config = dict(DEFAULTS)
    config.update(env_options(environ))
    config.update({key: value for key, value in (options or {}).items() if value is not None})
    return config


def validate_config(config: Any) -> None:
    if not isinstance(config, dict) or not config:
        raise ConfigError("CONFIG_MISSING", "configuration options are missing")
    for option in REQUIRED_OPTIONS:
        value = config.get(option)
        if not isinstance(value, (str, os.PathLike)) or not str(value).strip():
            raise ConfigError("CONFIG_REQUIRED", f'value of required option "{option}" is missing', option)
    path = config.get("graphqlErrorCodeObjPath")
    if path is not None and (not isinstance(path, str) or not path.strip()):
        raise ConfigError("CONFIG_INVALID", "graphqlErrorCodeObjPath must be a non-empty string", "graphqlErrorCodeObjPath")
