"""Basic file IO helpers."""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any, Dict

import yaml

JSON_SUFFIXES = (".json",)
YAML_SUFFIXES = (".yaml", ".yml")


class DocumentLoader(yaml.SafeLoader):
    """YAML loader that keeps ``on``/``off``/``yes``/``no`` as strings.

    Annotation arguments and pack parameters are literal values copied from
    source code; only ``true``/``false`` should become booleans.
    """


DocumentLoader.yaml_implicit_resolvers = {
    key: [(tag, regexp) for tag, regexp in resolvers if tag != "tag:yaml.org,2002:bool"]
    for key, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}
DocumentLoader.add_implicit_resolver(
    "tag:yaml.org,2002:bool",
    re.compile(r"^(?:true|True|TRUE|false|False|FALSE)$"),
    list("tTfF"),
)


def read_yaml_file(path: Path) -> Any:
    """Return the parsed YAML if the file exists, otherwise ``None``."""

    if not path.exists():
        return None
    with path.open("r", encoding="utf-8") as handle:
        return yaml.load(handle, Loader=DocumentLoader)


def read_text_file(path: Path) -> str:
    """Return the file contents as UTF-8 text, or an empty string if missing."""

    if not path.exists():
        return ""
    return path.read_text(encoding="utf-8")


def read_document(path: Path) -> Dict[str, Any] | None:
    """Load a JSON or YAML mapping; ``None`` when the file does not exist.

    Syntax errors in either format surface as ``ValueError``.
    """

    if not path.exists():
        return None
    if path.suffix.lower() in JSON_SUFFIXES:
        data = json.loads(read_text_file(path))
    else:
        try:
            data = read_yaml_file(path)
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError(f"Document at {path} is not a mapping")
    return data
