"""Symbol model: the read-only structural view of one source unit.

The external parser produces these objects once per analysis pass. Nothing in
the engine mutates them afterwards; the only writes happen inside
``__post_init__`` where children receive their non-owning back-references
(declaration → enclosing type, annotation → decorated declaration,
doc comment → documented declaration).
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, ClassVar, Dict, FrozenSet, Iterator, List, Mapping, Optional, Tuple

from .errors import ModelError

SENTENCE_END = re.compile(r"\.(?:\s|$)")


class NodeKind(str, Enum):
    """Node kinds a rule can target."""

    TYPE = "type"
    METHOD = "method"
    FIELD = "field"
    DECLARATION = "declaration"
    ANNOTATION = "annotation"
    DOC = "doc"


DECLARATION_KINDS: FrozenSet[NodeKind] = frozenset({NodeKind.TYPE, NodeKind.METHOD, NodeKind.FIELD})


class Visibility(str, Enum):
    PUBLIC = "public"
    PROTECTED = "protected"
    PRIVATE = "private"
    PACKAGE = "package"


@dataclass(frozen=True, order=True)
class Span:
    """A region of a source unit, 1-based, end exclusive on the column."""

    start_line: int
    start_column: int
    end_line: int
    end_column: int

    @property
    def start(self) -> Tuple[int, int]:
        return (self.start_line, self.start_column)

    @property
    def end(self) -> Tuple[int, int]:
        return (self.end_line, self.end_column)

    @property
    def is_empty(self) -> bool:
        return self.end <= self.start

    def contains(self, other: "Span") -> bool:
        return self.start <= other.start and other.end <= self.end

    def to_dict(self) -> Dict[str, int]:
        return {
            "start_line": self.start_line,
            "start_column": self.start_column,
            "end_line": self.end_line,
            "end_column": self.end_column,
        }

    def __str__(self) -> str:
        return f"{self.start_line}:{self.start_column}-{self.end_line}:{self.end_column}"


@dataclass(frozen=True, eq=False)
class Annotation:
    """One annotation as written, arguments in source order."""

    name: str
    span: Span
    arguments: Mapping[str, Any] = field(default_factory=dict)
    target: Optional["Declaration"] = field(default=None, repr=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "arguments", MappingProxyType(dict(self.arguments)))

    @property
    def simple_name(self) -> str:
        return self.name.rsplit(".", 1)[-1]

    def argument(self, name: str, default: Any = None) -> Any:
        return self.arguments.get(name, default)


@dataclass(frozen=True, eq=False)
class DocTag:
    kind: str
    text: str
    span: Span

    @property
    def subject(self) -> str:
        """First word of the tag text (parameter or exception name)."""

        parts = self.text.split(None, 1)
        return parts[0] if parts else ""


@dataclass(frozen=True, eq=False)
class DocComment:
    """A documentation block attached to a declaration."""

    span: Span
    summary: str = ""
    tags: Tuple[DocTag, ...] = ()
    terminal_period: Optional[bool] = None
    owner: Optional["Declaration"] = field(default=None, repr=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "tags", tuple(self.tags))
        if self.terminal_period is None:
            object.__setattr__(self, "terminal_period", bool(SENTENCE_END.search(self.summary)))

    def tag_kinds(self) -> List[str]:
        return [tag.kind for tag in self.tags]

    def has_tag(self, kind: str) -> bool:
        return any(tag.kind == kind for tag in self.tags)


@dataclass(frozen=True, eq=False)
class ExceptionHandler:
    caught_types: Tuple[str, ...]
    span: Span
    body_empty: bool = False
    has_comment: bool = False


@dataclass(frozen=True, eq=False)
class ResourceScope:
    """A block that acquires resources and releases them on exit."""

    resources: Tuple[str, ...]
    span: Span


@dataclass(frozen=True)
class Parameter:
    name: str
    type_name: str = ""


@dataclass(frozen=True, eq=False)
class Import:
    name: str
    span: Span
    static: bool = False

    @property
    def simple_name(self) -> str:
        return self.name.rsplit(".", 1)[-1]


@dataclass(frozen=True, eq=False)
class SuppressionDirective:
    """Inline marker text plus the span it covers."""

    text: str
    span: Span


@dataclass(frozen=True, eq=False)
class Declaration:
    """Common shape of every named structural element."""

    kind: ClassVar[NodeKind] = NodeKind.DECLARATION

    name: str
    span: Span
    visibility: Visibility = Visibility.PACKAGE
    modifiers: FrozenSet[str] = frozenset()
    annotations: Tuple[Annotation, ...] = ()
    doc: Optional[DocComment] = None
    parent: Optional["TypeDeclaration"] = field(default=None, repr=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "modifiers", frozenset(self.modifiers))
        object.__setattr__(self, "annotations", tuple(self.annotations))
        for annotation in self.annotations:
            object.__setattr__(annotation, "target", self)
        if self.doc is not None:
            object.__setattr__(self.doc, "owner", self)

    @property
    def qualified_name(self) -> str:
        """Dotted name through the enclosing types, without the package."""

        names = [ancestor.name for ancestor in reversed(list(self.ancestors()))]
        names.append(self.name)
        return ".".join(names)

    @property
    def is_public(self) -> bool:
        return self.visibility is Visibility.PUBLIC

    def ancestors(self) -> Iterator["TypeDeclaration"]:
        """Walk parent links outward. Navigation only, never ownership."""

        current = self.parent
        while current is not None:
            yield current
            current = current.parent

    def enclosing_type(self) -> Optional["TypeDeclaration"]:
        return self.parent

    def find_annotations(self, name: str) -> List[Annotation]:
        wanted = name.rsplit(".", 1)[-1]
        return [item for item in self.annotations if item.name == name or item.simple_name == wanted]

    def has_annotation(self, name: str) -> bool:
        return bool(self.find_annotations(name))

    def has_modifier(self, modifier: str) -> bool:
        return modifier in self.modifiers


@dataclass(frozen=True, eq=False)
class FieldDeclaration(Declaration):
    kind: ClassVar[NodeKind] = NodeKind.FIELD

    type_name: str = ""


@dataclass(frozen=True, eq=False)
class MethodDeclaration(Declaration):
    kind: ClassVar[NodeKind] = NodeKind.METHOD

    parameters: Tuple[Parameter, ...] = ()
    return_type: Optional[str] = None
    throws: Tuple[str, ...] = ()
    handlers: Tuple[ExceptionHandler, ...] = ()
    resource_scopes: Tuple[ResourceScope, ...] = ()

    def __post_init__(self) -> None:
        super().__post_init__()
        object.__setattr__(self, "parameters", tuple(self.parameters))
        object.__setattr__(self, "throws", tuple(self.throws))
        object.__setattr__(self, "handlers", tuple(self.handlers))
        object.__setattr__(self, "resource_scopes", tuple(self.resource_scopes))


@dataclass(frozen=True, eq=False)
class TypeDeclaration(Declaration):
    kind: ClassVar[NodeKind] = NodeKind.TYPE

    type_kind: str = "class"
    supertypes: Tuple[str, ...] = ()
    members: Tuple[Declaration, ...] = ()

    def __post_init__(self) -> None:
        super().__post_init__()
        object.__setattr__(self, "supertypes", tuple(self.supertypes))
        object.__setattr__(self, "members", tuple(self.members))
        for member in self.members:
            object.__setattr__(member, "parent", self)

    def fields(self) -> List[FieldDeclaration]:
        return [member for member in self.members if isinstance(member, FieldDeclaration)]

    def methods(self) -> List[MethodDeclaration]:
        return [member for member in self.members if isinstance(member, MethodDeclaration)]

    def nested_types(self) -> List["TypeDeclaration"]:
        return [member for member in self.members if isinstance(member, TypeDeclaration)]

    def implements(self, type_name: str) -> bool:
        wanted = type_name.rsplit(".", 1)[-1]
        for supertype in self.supertypes:
            base = supertype.split("<", 1)[0].strip()
            if base == type_name or base.rsplit(".", 1)[-1] == wanted:
                return True
        return False


@dataclass(frozen=True, eq=False)
class SourceUnit:
    """One analysed file. Immutable once constructed."""

    path: str
    declarations: Tuple[Declaration, ...]
    line_lengths: Tuple[int, ...]
    package: str = ""
    imports: Tuple[Import, ...] = ()
    suppressions: Tuple[SuppressionDirective, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "declarations", tuple(self.declarations))
        object.__setattr__(self, "line_lengths", tuple(self.line_lengths))
        object.__setattr__(self, "imports", tuple(self.imports))
        object.__setattr__(self, "suppressions", tuple(self.suppressions))

    # ------------------------------------------------------------------
    # Positions
    # ------------------------------------------------------------------
    @property
    def span(self) -> Span:
        if not self.line_lengths:
            return Span(1, 1, 1, 1)
        return Span(1, 1, len(self.line_lengths), self.line_lengths[-1] + 1)

    def in_bounds(self, line: int, column: int) -> bool:
        if line < 1 or column < 1 or line > len(self.line_lengths):
            return False
        return column <= self.line_lengths[line - 1] + 1

    def offset_of(self, line: int, column: int) -> int:
        """Map a position to a character offset, counting one newline per line."""

        if not self.in_bounds(line, column):
            raise ModelError(f"Position {line}:{column} is outside {self.path}", unit=self.path)
        return sum(length + 1 for length in self.line_lengths[: line - 1]) + column - 1

    def position_of(self, offset: int) -> Tuple[int, int]:
        remaining = offset
        for index, length in enumerate(self.line_lengths, start=1):
            if remaining <= length:
                return (index, remaining + 1)
            remaining -= length + 1
        raise ModelError(f"Offset {offset} is outside {self.path}", unit=self.path)

    # ------------------------------------------------------------------
    # Traversal
    # ------------------------------------------------------------------
    def walk(self) -> Iterator[Declaration]:
        """Yield every declaration depth-first, parents before children."""

        stack: List[Declaration] = list(reversed(self.declarations))
        while stack:
            declaration = stack.pop()
            yield declaration
            if isinstance(declaration, TypeDeclaration):
                stack.extend(reversed(declaration.members))

    def qualified_name(self, declaration: Declaration) -> str:
        if self.package:
            return f"{self.package}.{declaration.qualified_name}"
        return declaration.qualified_name

    def lookup(self, qualified_name: str) -> List[Declaration]:
        """Return declarations whose name matches, with or without the package."""

        return [
            declaration
            for declaration in self.walk()
            if qualified_name in {declaration.qualified_name, self.qualified_name(declaration)}
        ]

    def annotation_target(self, annotation: Annotation) -> Declaration:
        for declaration in self.walk():
            if any(item is annotation for item in declaration.annotations):
                return declaration
        raise ModelError(f"Annotation '{annotation.name}' is not part of {self.path}", unit=self.path)

    def resolve_name(self, simple_name: str) -> str:
        """Return the imported qualified name for ``simple_name`` if one exists."""

        for item in self.imports:
            if not item.static and item.simple_name == simple_name:
                return item.name
        return simple_name


# ----------------------------------------------------------------------
# Validation
# ----------------------------------------------------------------------
def validate_unit(unit: SourceUnit) -> None:
    """Raise ``ModelError`` on the first span that breaks a containment rule."""

    for item in unit.imports:
        _check_bounds(unit, item.span, f"import '{item.name}'")
    for directive in unit.suppressions:
        _check_bounds(unit, directive.span, f"suppression '{directive.text}'")
    for declaration in unit.walk():
        _validate_declaration(unit, declaration)


def _validate_declaration(unit: SourceUnit, declaration: Declaration) -> None:
    label = f"{declaration.kind.value} '{declaration.qualified_name}'"
    if declaration.span.is_empty:
        raise ModelError(f"{label} has an empty span {declaration.span}", unit=unit.path)
    _check_bounds(unit, declaration.span, label)
    if declaration.parent is not None:
        _check_within(unit, declaration.parent.span, declaration.span, label, "its enclosing type")

    for annotation in declaration.annotations:
        _check_within(unit, declaration.span, annotation.span, f"annotation '{annotation.name}' on {label}", label)

    if declaration.doc is not None:
        doc = declaration.doc
        _check_bounds(unit, doc.span, f"doc comment of {label}")
        for tag in doc.tags:
            _check_within(unit, doc.span, tag.span, f"@{tag.kind} tag of {label}", "its doc comment")

    if isinstance(declaration, MethodDeclaration):
        for handler in declaration.handlers:
            _check_within(unit, declaration.span, handler.span, f"exception handler in {label}", label)
        for scope in declaration.resource_scopes:
            _check_within(unit, declaration.span, scope.span, f"resource scope in {label}", label)


def _check_bounds(unit: SourceUnit, span: Span, label: str) -> None:
    if span.end < span.start:
        raise ModelError(f"{label} has an inverted span {span}", unit=unit.path)
    if not unit.in_bounds(span.start_line, span.start_column) or not unit.in_bounds(span.end_line, span.end_column):
        raise ModelError(f"{label} span {span} lies outside unit bounds {unit.span}", unit=unit.path)


def _check_within(unit: SourceUnit, outer: Span, inner: Span, label: str, container: str) -> None:
    _check_bounds(unit, inner, label)
    if not outer.contains(inner):
        raise ModelError(f"{label} span {inner} lies outside {container} {outer}", unit=unit.path)
