"""Built-in policy packs and the check catalogue used by pack documents."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, FrozenSet, List, Mapping, Optional, Sequence

from .errors import RuleDefinitionError
from .registry import PolicyPack
from .rules import Predicate, annotation_policy, concurrency, documentation, exceptions, naming, resources

PackBuilder = Callable[..., PolicyPack]

BUILTIN_PACKS: Dict[str, PackBuilder] = {
    "annotation-policy": annotation_policy.build_pack,
    "nullness": annotation_policy.build_nullness_pack,
    "documentation": documentation.build_pack,
    "resource-lifecycle": resources.build_pack,
    "concurrency": concurrency.build_pack,
    "naming": naming.build_pack,
    "exception-handling": exceptions.build_pack,
}

DEFAULT_PACKS = ("annotation-policy", "nullness", "documentation", "resource-lifecycle", "concurrency")


@dataclass(frozen=True)
class Check:
    """A named predicate plus an optional normalizer for its parameters.

    ``values`` names the message fields the predicate's matches supply.
    """

    predicate: Predicate
    prepare: Optional[Callable[[Mapping[str, Any]], Dict[str, Any]]] = None
    values: FrozenSet[str] = frozenset()

    def params(self, raw: Mapping[str, Any]) -> Dict[str, Any]:
        if self.prepare is None:
            return dict(raw)
        return self.prepare(raw)


def _prepare_annotation_table(raw: Mapping[str, Any]) -> Dict[str, Any]:
    params = dict(raw)
    params["table"] = annotation_policy.parse_annotation_table(params.get("table", {}))
    return params


def _values(*names: str) -> FrozenSet[str]:
    return frozenset(names)


CHECKS: Dict[str, Check] = {
    "banned_annotation": Check(
        annotation_policy.banned_annotation, _prepare_annotation_table, _values("annotation", "reason")
    ),
    "unlisted_annotation": Check(
        annotation_policy.unlisted_annotation, _prepare_annotation_table, _values("annotation")
    ),
    "caution_arguments": Check(
        annotation_policy.caution_arguments,
        _prepare_annotation_table,
        _values("annotation", "missing", "reason", "target"),
    ),
    "conflicting_nullness": Check(annotation_policy.conflicting_nullness, values=_values("nullable", "non_null")),
    "tag_order": Check(documentation.tag_order, values=_values("tag", "detail")),
    "deprecation_mismatch": Check(documentation.deprecation_mismatch, values=_values("detail")),
    "summary_period": Check(documentation.summary_period, values=_values("owner", "detail")),
    "missing_public_doc": Check(documentation.missing_public_doc),
    "close_throws": Check(resources.close_throws, values=_values("owner", "capability", "throws")),
    "guarded_by_unknown_lock": Check(concurrency.guarded_by_unknown_lock, values=_values("lock", "detail")),
    "immutable_mutable_field": Check(concurrency.immutable_mutable_field, values=_values("owner", "marker")),
    "name_matches_pattern": Check(naming.name_matches_pattern, values=_values("pattern")),
    "constant_name": Check(naming.constant_name, values=_values("pattern")),
    "empty_handler": Check(exceptions.empty_handler, values=_values("caught")),
    "broad_catch": Check(exceptions.broad_catch, values=_values("caught")),
}


def get_check(name: str) -> Check:
    try:
        return CHECKS[name]
    except KeyError:
        known = ", ".join(sorted(CHECKS))
        raise RuleDefinitionError(f"Unknown check '{name}' (known: {known})") from None


def build_builtin_pack(name: str, **params: Any) -> PolicyPack:
    try:
        builder = BUILTIN_PACKS[name]
    except KeyError:
        known = ", ".join(sorted(BUILTIN_PACKS))
        raise RuleDefinitionError(f"Unknown built-in pack '{name}' (known: {known})") from None
    return builder(**params)


def builtin_packs(names: Sequence[str] = DEFAULT_PACKS) -> List[PolicyPack]:
    return [build_builtin_pack(name) for name in names]
