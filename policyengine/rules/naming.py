"""Naming conventions for types, methods, and constants."""

from __future__ import annotations

import re

from policyengine.model import Declaration, FieldDeclaration, NodeKind
from policyengine.registry import PolicyPack
from policyengine.severity import Severity

from . import Category, MatchResult, Rule, RuleContext, match

TYPE_NAME_RULE = "naming/type-name"
METHOD_NAME_RULE = "naming/method-name"
CONSTANT_NAME_RULE = "naming/constant-name"

TYPE_PATTERN = r"[A-Z][A-Za-z0-9]*"
METHOD_PATTERN = r"[a-z][A-Za-z0-9]*"
CONSTANT_PATTERN = r"[A-Z][A-Z0-9]*(?:_[A-Z0-9]+)*"


def name_matches_pattern(declaration: Declaration, context: RuleContext) -> MatchResult:
    pattern = context.params["pattern"]
    if re.fullmatch(pattern, declaration.name):
        return None
    return match(pattern=pattern)


def constant_name(declaration: FieldDeclaration, context: RuleContext) -> MatchResult:
    if not (declaration.has_modifier("static") and declaration.has_modifier("final")):
        return None
    return name_matches_pattern(declaration, context)


def build_pack(
    type_pattern: str = TYPE_PATTERN,
    method_pattern: str = METHOD_PATTERN,
    constant_pattern: str = CONSTANT_PATTERN,
    *,
    name: str = "naming",
    version: str = "1",
) -> PolicyPack:
    rules = (
        Rule(
            id=TYPE_NAME_RULE,
            category=Category.NAMING,
            target=NodeKind.TYPE,
            severity=Severity.INFO,
            message="Type name '{name}' does not match {pattern}",
            predicate=name_matches_pattern,
            params={"pattern": type_pattern},
        ),
        Rule(
            id=METHOD_NAME_RULE,
            category=Category.NAMING,
            target=NodeKind.METHOD,
            severity=Severity.INFO,
            message="Method name '{name}' does not match {pattern}",
            predicate=name_matches_pattern,
            params={"pattern": method_pattern},
        ),
        Rule(
            id=CONSTANT_NAME_RULE,
            category=Category.NAMING,
            target=NodeKind.FIELD,
            severity=Severity.INFO,
            message="Constant '{name}' does not match {pattern}",
            predicate=constant_name,
            params={"pattern": constant_pattern},
        ),
    )
    return PolicyPack(name=name, rules=rules, version=version)
