import importlib

import pytest

from policyengine.catalog import BUILTIN_PACKS, CHECKS, builtin_packs
from policyengine.errors import DuplicateRuleError, RuleDefinitionError
from policyengine.model import NodeKind
from policyengine.registry import PolicyPack, RegistryConfig, RuleRegistry
from policyengine.rules import ENGINE_RULE_IDS, MODEL_ERROR, RENDER_FIELDS, Category, Rule, template_fields
from policyengine.rules.documentation import MISSING_DOC_RULE
from policyengine.severity import Severity


def _always(node, context):
    return True


def _rule(rule_id, category=Category.NAMING, target=NodeKind.TYPE, **overrides):
    values = {
        "id": rule_id,
        "category": category,
        "target": target,
        "severity": Severity.INFO,
        "message": "{kind} '{name}' matched",
        "predicate": _always,
    }
    values.update(overrides)
    return Rule(**values)


def test_duplicate_identifier_across_packs_is_rejected():
    first = PolicyPack(name="first", rules=(_rule("team/x"),))
    second = PolicyPack(name="second", rules=(_rule("team/x", target=NodeKind.METHOD),))

    with pytest.raises(DuplicateRuleError) as excinfo:
        RuleRegistry.from_packs([first, second])

    assert excinfo.value.rule_id == "team/x"
    assert "first" in str(excinfo.value) and "second" in str(excinfo.value)


def test_rule_cannot_reuse_engine_identifier():
    pack = PolicyPack(name="custom", rules=(_rule(MODEL_ERROR),))

    with pytest.raises(DuplicateRuleError):
        RuleRegistry.from_packs([pack])


def test_category_must_be_compatible_with_target():
    pack = PolicyPack(name="custom", rules=(_rule("team/y", category=Category.EXCEPTION_HANDLING),))

    with pytest.raises(RuleDefinitionError, match="cannot target"):
        RuleRegistry.from_packs([pack])


def test_engine_category_is_reserved():
    pack = PolicyPack(name="custom", rules=(_rule("team/z", category=Category.ENGINE),))

    with pytest.raises(RuleDefinitionError, match="reserved"):
        RuleRegistry.from_packs([pack])


def test_rule_without_predicate_is_rejected():
    pack = PolicyPack(name="custom", rules=(_rule("team/p", predicate=None),))

    with pytest.raises(RuleDefinitionError, match="predicate"):
        RuleRegistry.from_packs([pack])


def test_engine_rules_are_always_registered():
    registry = RuleRegistry([])

    assert len(registry) == len(ENGINE_RULE_IDS)
    for rule_id in ENGINE_RULE_IDS:
        assert rule_id in registry
        assert registry.origin(rule_id) == "engine"
    assert all(not registry.rules_for(kind) for kind in NodeKind)


def test_declaration_rules_reach_every_declaration_kind():
    registry = RuleRegistry([_rule("team/any", target=NodeKind.DECLARATION), _rule("team/type")])

    assert [rule.id for rule in registry.rules_for(NodeKind.TYPE)] == ["team/any", "team/type"]
    assert [rule.id for rule in registry.rules_for(NodeKind.FIELD)] == ["team/any"]
    assert [rule.id for rule in registry.rules_for(NodeKind.METHOD)] == ["team/any"]
    assert registry.rules_for(NodeKind.ANNOTATION) == ()


def test_severity_override_escalates_rule():
    config = RegistryConfig(severity_overrides={MISSING_DOC_RULE: "error"})
    registry = RuleRegistry.from_packs(builtin_packs(), config)

    assert registry.severity_of(MISSING_DOC_RULE) is Severity.ERROR
    assert registry.origin(MISSING_DOC_RULE) == "documentation"


def test_override_of_unknown_rule_is_rejected():
    config = RegistryConfig(severity_overrides={"doc/nope": "error"})

    with pytest.raises(RuleDefinitionError, match="unknown rule"):
        RuleRegistry.from_packs(builtin_packs(), config)


def test_invalid_override_severity_is_rejected():
    with pytest.raises(RuleDefinitionError, match="Invalid severity"):
        RegistryConfig(severity_overrides={MISSING_DOC_RULE: "fatal"})


def test_disabled_rule_is_skipped_but_still_known():
    config = RegistryConfig(disabled_rules=frozenset({MISSING_DOC_RULE}))
    registry = RuleRegistry.from_packs(builtin_packs(), config)

    assert MISSING_DOC_RULE in registry
    assert not registry.is_enabled(MISSING_DOC_RULE)
    assert MISSING_DOC_RULE not in {rule.id for rule in registry.rules_for(NodeKind.METHOD)}


def test_engine_rules_cannot_be_disabled():
    config = RegistryConfig(disabled_rules=frozenset({MODEL_ERROR}))

    with pytest.raises(RuleDefinitionError, match="cannot be disabled"):
        RuleRegistry([], config)


def test_get_unknown_rule_raises_key_error():
    registry = RuleRegistry([])

    with pytest.raises(KeyError):
        registry.get("naming/none")


@pytest.mark.parametrize(
    "module",
    ["policyengine.cli", "policyengine.catalog", "policyengine.loaders", "policyengine.rules.annotation_policy"],
)
def test_public_modules_import(module):
    assert importlib.import_module(module).__name__ == module


def test_every_builtin_pack_registers_together():
    packs = builtin_packs(tuple(BUILTIN_PACKS))
    registry = RuleRegistry.from_packs(packs)

    for pack in packs:
        assert pack.rule_ids
        assert all(rule_id in registry for rule_id in pack.rule_ids)


def test_builtin_messages_only_use_values_their_checks_supply():
    supplied = {check.predicate: check.values for check in CHECKS.values()}

    for pack in builtin_packs(tuple(BUILTIN_PACKS)):
        for rule in pack.rules:
            assert template_fields(rule.message) <= RENDER_FIELDS | supplied[rule.predicate], rule.id
