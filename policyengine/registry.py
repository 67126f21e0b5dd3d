"""Rule registry assembled from one or more policy packs."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Dict, FrozenSet, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

from .errors import DuplicateRuleError, RuleDefinitionError
from .model import DECLARATION_KINDS, NodeKind
from .rules import CATEGORY_TARGETS, ENGINE_RULES, Category, Rule
from .severity import Severity

logger = logging.getLogger(__name__)

ENGINE_PACK = "engine"


@dataclass(frozen=True)
class PolicyPack:
    """A named, versioned bundle of rule definitions."""

    name: str
    rules: Tuple[Rule, ...]
    version: str = "1"

    def __post_init__(self) -> None:
        object.__setattr__(self, "rules", tuple(self.rules))

    @property
    def rule_ids(self) -> List[str]:
        return [rule.id for rule in self.rules]


@dataclass(frozen=True)
class RegistryConfig:
    """Run-wide policy switches.

    ``permissive`` flips the annotation policy from closed world (anything
    unlisted is banned) to open world. ``severity_overrides`` replaces a rule's
    default severity, e.g. escalating missing documentation to an error.
    """

    permissive: bool = False
    severity_overrides: Mapping[str, Severity] = field(default_factory=dict)
    disabled_rules: FrozenSet[str] = frozenset()

    def __post_init__(self) -> None:
        overrides: Dict[str, Severity] = {}
        for rule_id, value in dict(self.severity_overrides).items():
            try:
                overrides[rule_id] = Severity.parse(value)
            except ValueError as exc:
                raise RuleDefinitionError(f"Invalid severity override for '{rule_id}': {exc}") from exc
        object.__setattr__(self, "severity_overrides", MappingProxyType(overrides))
        object.__setattr__(self, "disabled_rules", frozenset(self.disabled_rules))


class RuleRegistry:
    """Immutable, validated rule set shared read-only by every worker."""

    def __init__(
        self,
        rules: Iterable[Rule],
        config: Optional[RegistryConfig] = None,
        *,
        origins: Optional[Mapping[str, str]] = None,
    ) -> None:
        self._config = config or RegistryConfig()
        origin_of: Dict[str, str] = {rule.id: ENGINE_PACK for rule in ENGINE_RULES}
        by_id: Dict[str, Rule] = {rule.id: rule for rule in ENGINE_RULES}

        for rule in rules:
            pack = (origins or {}).get(rule.id)
            if rule.id in by_id:
                raise DuplicateRuleError(rule.id, origin_of.get(rule.id), pack)
            _validate_rule(rule)
            by_id[rule.id] = rule
            origin_of[rule.id] = pack or "<inline>"

        self._check_config(by_id)
        for rule_id, severity in self._config.severity_overrides.items():
            by_id[rule_id] = replace(by_id[rule_id], severity=severity)

        self._rules: Mapping[str, Rule] = MappingProxyType(by_id)
        self._origins: Mapping[str, str] = MappingProxyType(origin_of)
        self._by_kind: Dict[NodeKind, Tuple[Rule, ...]] = self._index_by_kind()
        logger.debug("event=registry_built rules=%d permissive=%s", len(self), self._config.permissive)

    @classmethod
    def from_packs(cls, packs: Sequence[PolicyPack], config: Optional[RegistryConfig] = None) -> "RuleRegistry":
        """Combine packs; identifier collisions fail with ``DuplicateRuleError``."""

        rules: List[Rule] = []
        origins: Dict[str, str] = {}
        for pack in packs:
            for rule in pack.rules:
                if rule.id in origins:
                    raise DuplicateRuleError(rule.id, origins[rule.id], pack.name)
                origins[rule.id] = pack.name
                rules.append(rule)
        return cls(rules, config, origins=origins)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    @property
    def config(self) -> RegistryConfig:
        return self._config

    @property
    def permissive(self) -> bool:
        return self._config.permissive

    def rules_for(self, kind: NodeKind) -> Tuple[Rule, ...]:
        return self._by_kind.get(NodeKind(kind), ())

    def get(self, rule_id: str) -> Rule:
        try:
            return self._rules[rule_id]
        except KeyError:
            raise KeyError(f"Unknown rule identifier: {rule_id}") from None

    def origin(self, rule_id: str) -> str:
        return self._origins[rule_id]

    def severity_of(self, rule_id: str) -> Severity:
        return self.get(rule_id).severity

    def is_enabled(self, rule_id: str) -> bool:
        return rule_id in self._rules and rule_id not in self._config.disabled_rules

    def __contains__(self, rule_id: object) -> bool:
        return rule_id in self._rules

    def __iter__(self) -> Iterator[Rule]:
        return iter(sorted(self._rules.values(), key=lambda rule: rule.id))

    def __len__(self) -> int:
        return len(self._rules)

    # ------------------------------------------------------------------
    # Construction helpers
    # ------------------------------------------------------------------
    def _check_config(self, by_id: Mapping[str, Rule]) -> None:
        for rule_id in self._config.severity_overrides:
            if rule_id not in by_id:
                raise RuleDefinitionError(f"Severity override names unknown rule '{rule_id}'")
        for rule_id in self._config.disabled_rules:
            if rule_id not in by_id:
                raise RuleDefinitionError(f"Cannot disable unknown rule '{rule_id}'")
            if by_id[rule_id].is_engine_rule:
                raise RuleDefinitionError(f"Engine rule '{rule_id}' cannot be disabled")

    def _index_by_kind(self) -> Dict[NodeKind, Tuple[Rule, ...]]:
        index: Dict[NodeKind, List[Rule]] = {kind: [] for kind in NodeKind}
        for rule in sorted(self._rules.values(), key=lambda item: item.id):
            if rule.is_engine_rule or rule.id in self._config.disabled_rules:
                continue
            if rule.target is NodeKind.DECLARATION:
                for kind in DECLARATION_KINDS:
                    index[kind].append(rule)
            else:
                index[rule.target].append(rule)
        return {kind: tuple(items) for kind, items in index.items()}


def _validate_rule(rule: Rule) -> None:
    if not isinstance(rule.id, str) or not rule.id.strip():
        raise RuleDefinitionError("Rule identifier must be a non-empty string")
    if rule.category is Category.ENGINE:
        raise RuleDefinitionError(f"Rule '{rule.id}' uses the reserved engine category")
    if rule.target is None:
        raise RuleDefinitionError(f"Rule '{rule.id}' does not declare a target node kind")
    allowed = CATEGORY_TARGETS[rule.category]
    if rule.target not in allowed:
        raise RuleDefinitionError(
            f"Rule '{rule.id}' of category '{rule.category.value}' cannot target '{rule.target.value}' nodes"
        )
    if not callable(rule.predicate):
        raise RuleDefinitionError(f"Rule '{rule.id}' has no callable predicate")
    if not isinstance(rule.message, str) or not rule.message:
        raise RuleDefinitionError(f"Rule '{rule.id}' has no message template")
