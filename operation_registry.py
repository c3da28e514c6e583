"""Operation registry: synthesized GraphQL documents addressable by operation name."""

from __future__ import annotations

import json
import os
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List


CATEGORIES = ("queries", "mutations", "subscriptions")
KIND_BY_CATEGORY = {"queries": "query", "mutations": "mutation", "subscriptions": "subscription"}
INDEX_FILE = "index.json"


@dataclass(frozen=True)
class OperationDocument:
    operation_name: str
    kind: str
    query_text: str
    arguments: Dict[str, Dict[str, str]] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "operation_name": self.operation_name,
            "kind": self.kind,
            "arguments": {name: dict(arg) for name, arg in self.arguments.items()},
        }


@dataclass
class RegistryLoadError(Exception):
    message: str
    path: str

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        return f"{self.message} (path={self.path})"


class OperationRegistry:
    def __init__(
        self,
        queries: Dict[str, OperationDocument] | None = None,
        mutations: Dict[str, OperationDocument] | None = None,
        subscriptions: Dict[str, OperationDocument] | None = None,
    ) -> None:
        self._docs: Dict[str, Dict[str, OperationDocument]] = {
            "queries": dict(queries or {}),
            "mutations": dict(mutations or {}),
            "subscriptions": dict(subscriptions or {}),
        }

    @classmethod
    def from_synthesis(cls, result: dict) -> "OperationRegistry":
        return cls(
            queries=result.get("queries"),
            mutations=result.get("mutations"),
            subscriptions=result.get("subscriptions"),
        )

    def get(self, name: str) -> OperationDocument | None:
        """Resolve a route operation name; queries shadow mutations of the same name."""
        return self._docs["queries"].get(name) or self._docs["mutations"].get(name)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.get(name) is not None

    def category(self, category: str) -> Dict[str, OperationDocument]:
        return dict(self._docs[category])

    def names(self, category: str | None = None) -> List[str]:
        if category is not None:
            return sorted(self._docs[category].keys())
        return sorted({name for docs in self._docs.values() for name in docs})

    def save(self, dest_dir: str | os.PathLike) -> Path:
        """Write ``<category>/<Name>.gql`` files plus an index, replacing ``dest_dir`` whole."""
        dest = Path(dest_dir).resolve()
        dest.parent.mkdir(parents=True, exist_ok=True)
        staging = Path(tempfile.mkdtemp(prefix=f".{dest.name}-", dir=dest.parent))
        try:
            index: Dict[str, Any] = {}
            for category in CATEGORIES:
                docs = self._docs[category]
                if not docs:
                    continue
                folder = staging / category
                folder.mkdir()
                entries = {}
                for name, doc in docs.items():
                    (folder / f"{name}.gql").write_text(doc.query_text, encoding="utf-8")
                    entries[name] = {"file": f"{category}/{name}.gql", **doc.to_dict()}
                index[category] = entries
            (staging / INDEX_FILE).write_text(json.dumps(index, indent=2), encoding="utf-8")
            if dest.exists():
                shutil.rmtree(dest)
            os.replace(staging, dest)
        except BaseException:
            shutil.rmtree(staging, ignore_errors=True)
            raise
        return dest

    @classmethod
    def load(cls, src_dir: str | os.PathLike) -> "OperationRegistry":
        root = Path(src_dir)
        index_path = root / INDEX_FILE
        if not index_path.is_file():
            raise RegistryLoadError("Generated operations index not found; run the query generator first", str(index_path))
        try:
            index = json.loads(index_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise RegistryLoadError(f"Unreadable operations index: {exc}", str(index_path)) from exc
        if not isinstance(index, dict):
            raise RegistryLoadError("Operations index must be an object", str(index_path))

        docs: Dict[str, Dict[str, OperationDocument]] = {}
        for category in CATEGORIES:
            entries = index.get(category) or {}
            if not isinstance(entries, dict):
                raise RegistryLoadError(f"Operations index category {category!r} must be an object", str(index_path))
            loaded = {}
            for name, entry in entries.items():
                if not isinstance(entry, dict):
                    raise RegistryLoadError(f"Operations index entry {category}.{name} must be an object", str(index_path))
                rel_file = entry.get("file", f"{category}/{name}.gql")
                if not isinstance(rel_file, str) or not rel_file:
                    raise RegistryLoadError(f"Operations index entry {category}.{name} has no usable file", str(index_path))
                gql_path = root / rel_file
                try:
                    query_text = gql_path.read_text(encoding="utf-8")
                except OSError as exc:
                    raise RegistryLoadError(f"Unreadable operation document: {exc}", str(gql_path)) from exc
                loaded[name] = OperationDocument(
                    operation_name=name,
                    kind=entry.get("kind") or KIND_BY_CATEGORY[category],
                    query_text=query_text,
                    arguments=entry.get("arguments") or {},
                )
            docs[category] = loaded
        return cls(**docs)
