"""Turn parser output documents and policy pack documents into engine objects.

Symbol-model documents are JSON or YAML mappings. Spans are written as
``[start_line, start_column, end_line, end_column]``. The raw line index is
given as ``line_lengths``, as the unit ``source`` text, or as a uniform
``line_count`` / ``line_width`` pair.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Mapping, Sequence

from .catalog import get_check
from .errors import ModelError, PackLoadError, RuleDefinitionError
from .model import (
    Annotation,
    Declaration,
    DocComment,
    DocTag,
    ExceptionHandler,
    FieldDeclaration,
    Import,
    MethodDeclaration,
    Parameter,
    ResourceScope,
    SourceUnit,
    Span,
    SuppressionDirective,
    TypeDeclaration,
    Visibility,
)
from .registry import PolicyPack
from .rules import RENDER_FIELDS, Rule, template_fields
from .utils import read_document

logger = logging.getLogger(__name__)

DEFAULT_LINE_WIDTH = 120
DEFAULT_MESSAGE = "{kind} '{name}' violates {rule_id}"


# ----------------------------------------------------------------------
# Symbol-model documents
# ----------------------------------------------------------------------
def load_unit(path: str | Path) -> SourceUnit:
    document_path = Path(path)
    try:
        data = read_document(document_path)
    except (ValueError, OSError) as exc:
        raise ModelError(f"Cannot read symbol model: {exc}", unit=str(document_path)) from exc
    if data is None:
        raise ModelError(f"Symbol model not found: {document_path}", unit=str(document_path))
    data.setdefault("path", str(document_path))
    return unit_from_dict(data)


def unit_from_dict(data: Mapping[str, Any]) -> SourceUnit:
    """Build a ``SourceUnit``; structural defects raise ``ModelError``."""

    if not isinstance(data, Mapping):
        raise ModelError(f"Symbol model document must be a mapping, got {type(data).__name__}")
    unit_path = str(data.get("path") or "<unknown>")
    try:
        return SourceUnit(
            path=unit_path,
            package=str(data.get("package") or ""),
            line_lengths=_line_lengths(data),
            imports=tuple(_import(item) for item in _ensure_list(data.get("imports"))),
            suppressions=tuple(_suppression(item) for item in _ensure_list(data.get("suppressions"))),
            declarations=tuple(_declaration(item) for item in _ensure_list(data.get("declarations"))),
        )
    except ModelError as exc:
        exc.unit = unit_path
        raise
    except (KeyError, TypeError, ValueError) as exc:
        raise ModelError(f"Malformed symbol model: {exc}", unit=unit_path) from exc


def _line_lengths(data: Mapping[str, Any]) -> tuple:
    if "line_lengths" in data:
        return tuple(int(length) for length in _ensure_list(data["line_lengths"]))
    if "source" in data:
        return tuple(len(line) for line in str(data["source"]).split("\n"))
    if "line_count" in data:
        width = int(data.get("line_width", DEFAULT_LINE_WIDTH))
        return (width,) * int(data["line_count"])
    raise ModelError("Symbol model has no line index (line_lengths, source, or line_count)")


def _span(value: Any) -> Span:
    if isinstance(value, Mapping):
        value = [value["start_line"], value["start_column"], value["end_line"], value["end_column"]]
    if not isinstance(value, (list, tuple)) or len(value) != 4:
        raise ModelError(f"Span must have four integers, got {value!r}")
    return Span(*(int(part) for part in value))


def _declaration(item: Mapping[str, Any]) -> Declaration:
    _require_mapping(item, "Declaration")
    kind = str(item.get("kind", "")).strip().lower()
    common: Dict[str, Any] = {
        "name": str(item["name"]),
        "span": _span(item["span"]),
        "visibility": _visibility(item.get("visibility", "package")),
        "modifiers": frozenset(str(modifier) for modifier in _ensure_list(item.get("modifiers"))),
        "annotations": tuple(_annotation(entry) for entry in _ensure_list(item.get("annotations"))),
        "doc": _doc(item["doc"]) if item.get("doc") else None,
    }
    if kind == "type":
        return TypeDeclaration(
            type_kind=str(item.get("type_kind", "class")),
            supertypes=tuple(str(name) for name in _ensure_list(item.get("supertypes"))),
            members=tuple(_declaration(member) for member in _ensure_list(item.get("members"))),
            **common,
        )
    if kind == "method":
        return MethodDeclaration(
            parameters=tuple(_parameter(entry) for entry in _ensure_list(item.get("parameters"))),
            return_type=item.get("return_type"),
            throws=tuple(str(name) for name in _ensure_list(item.get("throws"))),
            handlers=tuple(_handler(entry) for entry in _ensure_list(item.get("handlers"))),
            resource_scopes=tuple(_scope(entry) for entry in _ensure_list(item.get("resource_scopes"))),
            **common,
        )
    if kind == "field":
        return FieldDeclaration(type_name=str(item.get("type", "")), **common)
    raise ModelError(f"Unknown declaration kind {item.get('kind')!r} for '{item.get('name')}'")


def _visibility(value: Any) -> Visibility:
    try:
        return Visibility(str(value).strip().lower())
    except ValueError:
        raise ModelError(f"Unknown visibility {value!r}") from None


def _annotation(item: Mapping[str, Any]) -> Annotation:
    _require_mapping(item, "Annotation")
    arguments = item.get("arguments") or {}
    if not isinstance(arguments, Mapping):
        raise ModelError(f"Arguments of annotation '{item.get('name')}' must be a mapping")
    return Annotation(name=str(item["name"]), span=_span(item["span"]), arguments=dict(arguments))


def _doc(item: Mapping[str, Any]) -> DocComment:
    _require_mapping(item, "Doc comment")
    tags = tuple(_tag(tag) for tag in _ensure_list(item.get("tags")))
    terminal = item.get("terminal_period")
    return DocComment(
        span=_span(item["span"]),
        summary=str(item.get("summary", "")),
        tags=tags,
        terminal_period=None if terminal is None else bool(terminal),
    )


def _tag(item: Mapping[str, Any]) -> DocTag:
    _require_mapping(item, "Doc tag")
    return DocTag(kind=str(item["kind"]).lstrip("@"), text=str(item.get("text", "")), span=_span(item["span"]))


def _parameter(item: Any) -> Parameter:
    if isinstance(item, str):
        return Parameter(name=item)
    _require_mapping(item, "Parameter")
    return Parameter(name=str(item["name"]), type_name=str(item.get("type", "")))


def _handler(item: Mapping[str, Any]) -> ExceptionHandler:
    _require_mapping(item, "Exception handler")
    return ExceptionHandler(
        caught_types=tuple(str(name) for name in _ensure_list(item.get("caught"))),
        span=_span(item["span"]),
        body_empty=bool(item.get("empty", False)),
        has_comment=bool(item.get("comment", False)),
    )


def _scope(item: Mapping[str, Any]) -> ResourceScope:
    _require_mapping(item, "Resource scope")
    return ResourceScope(
        resources=tuple(str(name) for name in _ensure_list(item.get("resources"))),
        span=_span(item["span"]),
    )


def _import(item: Mapping[str, Any]) -> Import:
    _require_mapping(item, "Import")
    return Import(name=str(item["name"]), span=_span(item["span"]), static=bool(item.get("static", False)))


def _suppression(item: Mapping[str, Any]) -> SuppressionDirective:
    _require_mapping(item, "Suppression")
    return SuppressionDirective(text=str(item["text"]), span=_span(item["span"]))


def _require_mapping(item: Any, what: str) -> None:
    if not isinstance(item, Mapping):
        raise ModelError(f"{what} entry must be a mapping, got {type(item).__name__}")


def _ensure_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    raise ModelError(f"Expected a list, got {type(value).__name__}")


# ----------------------------------------------------------------------
# Policy pack documents
# ----------------------------------------------------------------------
def load_pack(path: str | Path) -> PolicyPack:
    pack_path = Path(path)
    try:
        data = read_document(pack_path)
    except (ValueError, OSError) as exc:
        raise PackLoadError(f"Cannot read policy pack {pack_path}: {exc}") from exc
    if data is None:
        raise PackLoadError(f"Policy pack not found: {pack_path}")
    data.setdefault("name", pack_path.stem)
    return pack_from_dict(data)


def pack_from_dict(data: Mapping[str, Any]) -> PolicyPack:
    name = str(data.get("name") or "").strip()
    if not name:
        raise PackLoadError("Policy pack is missing 'name'")
    raw_rules = data.get("rules")
    if not isinstance(raw_rules, list) or not raw_rules:
        raise PackLoadError(f"Policy pack '{name}' must include a non-empty 'rules' list")

    rules = [_rule(name, item) for item in raw_rules]
    logger.debug("event=pack_loaded pack=%s rules=%d", name, len(rules))
    return PolicyPack(name=name, rules=tuple(rules), version=str(data.get("version", "1")))


def _rule(pack: str, item: Any) -> Rule:
    if not isinstance(item, Mapping):
        raise PackLoadError(f"Each rule entry of pack '{pack}' must be a mapping")
    missing = [key for key in ("id", "category", "target", "severity", "check") if key not in item]
    if missing:
        raise PackLoadError(f"Rule in pack '{pack}' is missing keys: {', '.join(missing)}")

    params = item.get("params") or {}
    if not isinstance(params, Mapping):
        raise PackLoadError(f"'params' of rule '{item['id']}' must be a mapping")
    check = get_check(str(item["check"]))
    message = str(item.get("message") or DEFAULT_MESSAGE)
    _check_template(str(item["id"]), message, check.values)
    try:
        return Rule(
            id=str(item["id"]),
            category=str(item["category"]),
            target=str(item["target"]),
            severity=str(item["severity"]),
            message=message,
            predicate=check.predicate,
            description=str(item.get("description", "")),
            params=check.params(params),
        )
    except RuleDefinitionError:
        raise
    except ValueError as exc:
        raise PackLoadError(f"Rule '{item['id']}' in pack '{pack}': {exc}") from exc


def _check_template(rule_id: str, message: str, values: FrozenSet[str]) -> None:
    """Reject message templates that cannot be rendered for this rule's matches."""

    try:
        unknown = template_fields(message) - RENDER_FIELDS - values
    except ValueError as exc:
        raise PackLoadError(f"Message template of rule '{rule_id}' is malformed: {exc}") from exc
    if unknown:
        names = ", ".join(sorted(unknown))
        raise PackLoadError(f"Message template of rule '{rule_id}' uses unknown fields: {names}")


def load_packs(paths: Sequence[str | Path]) -> List[PolicyPack]:
    return [load_pack(path) for path in paths]
