import json
from pathlib import Path

import pytest

from policyengine.errors import ModelError, PackLoadError, RuleDefinitionError
from policyengine.loaders import load_pack, load_unit, pack_from_dict, unit_from_dict
from policyengine.model import FieldDeclaration, MethodDeclaration, NodeKind, Span
from policyengine.rules import Category
from policyengine.rules.annotation_policy import Tier
from policyengine.severity import Severity

REPO_ROOT = Path(__file__).resolve().parents[1]

RULE_TEMPLATE = {
    "id": "team/banned",
    "category": "annotation-policy",
    "target": "annotation",
    "severity": "error",
    "check": "banned_annotation",
    "params": {"table": {"Memoize": "banned"}},
}


def test_team_pack_document_loads():
    pack = load_pack(REPO_ROOT / "policies" / "team-annotations.yaml")

    assert pack.name == "team-annotations"
    assert pack.version == "2"
    assert pack.rule_ids == ["team/banned-annotation", "team/close-throws"]
    banned = pack.rules[0]
    assert banned.category is Category.ANNOTATION_POLICY
    assert banned.target is NodeKind.ANNOTATION
    assert banned.params["table"]["cacheLoader"].tier is Tier.BANNED
    assert pack.rules[1].params["capabilities"] == ["Closeable", "AutoCloseable", "Releasable"]


def test_pack_rule_defaults_message_template():
    pack = pack_from_dict({"name": "team", "rules": [RULE_TEMPLATE]})

    assert pack.rules[0].message == "{kind} '{name}' violates {rule_id}"
    assert pack.rules[0].severity is Severity.ERROR


def test_pack_without_rules_is_rejected():
    with pytest.raises(PackLoadError, match="non-empty 'rules'"):
        pack_from_dict({"name": "team", "rules": []})


def test_pack_rule_missing_keys_is_rejected():
    rule = {key: value for key, value in RULE_TEMPLATE.items() if key not in {"target", "check"}}

    with pytest.raises(PackLoadError, match="target, check"):
        pack_from_dict({"name": "team", "rules": [rule]})


def test_pack_rule_with_unknown_severity_is_rejected():
    with pytest.raises(PackLoadError, match="Unknown severity"):
        pack_from_dict({"name": "team", "rules": [dict(RULE_TEMPLATE, severity="fatal")]})


def test_pack_rule_with_unknown_check_is_rejected():
    with pytest.raises(RuleDefinitionError, match="Unknown check"):
        pack_from_dict({"name": "team", "rules": [dict(RULE_TEMPLATE, check="no_such_check")]})


def test_missing_pack_document(tmp_path):
    with pytest.raises(PackLoadError, match="not found"):
        load_pack(tmp_path / "absent.yaml")


def test_yaml_literals_stay_strings(tmp_path):
    document = tmp_path / "Flags.yaml"
    document.write_text(
        "\n".join(
            [
                "path: src/Flags.java",
                "line_count: 10",
                "declarations:",
                "  - kind: type",
                "    name: Flags",
                "    span: [1, 1, 9, 2]",
                "    annotations:",
                "      - {name: Switch, arguments: {mode: on, strict: true}, span: [1, 1, 1, 30]}",
            ]
        ),
        encoding="utf-8",
    )

    unit = load_unit(document)

    annotation = unit.declarations[0].annotations[0]
    assert annotation.argument("mode") == "on"
    assert annotation.argument("strict") is True


def test_json_unit_document(tmp_path):
    document = tmp_path / "Job.json"
    document.write_text(
        json.dumps(
            {
                "package": "com.example",
                "line_lengths": [20, 40, 40, 40, 2],
                "declarations": [
                    {
                        "kind": "type",
                        "name": "Job",
                        "span": {"start_line": 1, "start_column": 1, "end_line": 5, "end_column": 2},
                        "members": [
                            {"kind": "field", "name": "id", "type": "long", "span": [2, 5, 2, 20]},
                            {
                                "kind": "method",
                                "name": "run",
                                "parameters": [{"name": "ctx", "type": "Context"}],
                                "throws": ["IOException"],
                                "span": [3, 5, 4, 6],
                            },
                        ],
                    }
                ],
            }
        ),
        encoding="utf-8",
    )

    unit = load_unit(document)

    assert unit.path == str(document)
    job = unit.declarations[0]
    assert job.span == Span(1, 1, 5, 2)
    field, method = job.members
    assert isinstance(field, FieldDeclaration) and field.type_name == "long"
    assert isinstance(method, MethodDeclaration)
    assert method.parameters[0].type_name == "Context"
    assert method.throws == ("IOException",)
    assert unit.qualified_name(method) == "com.example.Job.run"


def test_malformed_unit_documents_raise_model_error():
    with pytest.raises(ModelError, match="line index"):
        unit_from_dict({"path": "a.java", "declarations": []})
    with pytest.raises(ModelError, match="four integers"):
        unit_from_dict({"path": "a.java", "line_count": 3, "declarations": [{"kind": "type", "name": "A", "span": [1, 1]}]})
    with pytest.raises(ModelError, match="Unknown declaration kind"):
        unit_from_dict({"path": "a.java", "line_count": 3, "declarations": [{"kind": "enum", "name": "A", "span": [1, 1, 2, 1]}]})
    with pytest.raises(ModelError) as excinfo:
        unit_from_dict({"path": "a.java", "line_count": 3, "declarations": [{"kind": "type", "span": [1, 1, 2, 1]}]})
    assert excinfo.value.unit == "a.java"


def test_unparseable_unit_documents_raise_model_error(tmp_path):
    broken_yaml = tmp_path / "Broken.yaml"
    broken_yaml.write_text("path: [unclosed\n", encoding="utf-8")
    broken_json = tmp_path / "Broken.json"
    broken_json.write_text('{"path": "src/Broken.java",', encoding="utf-8")

    for document in (broken_yaml, broken_json):
        with pytest.raises(ModelError, match="Cannot read symbol model") as excinfo:
            load_unit(document)
        assert excinfo.value.unit == str(document)


@pytest.mark.parametrize(
    "declaration, entry",
    [
        ({"annotations": ["Data"]}, "Annotation"),
        ({"doc": "Widget."}, "Doc comment"),
        ({"doc": {"span": [1, 1, 1, 10], "tags": ["@since 2"]}}, "Doc tag"),
        ({"members": ["run"]}, "Declaration"),
    ],
)
def test_non_mapping_nested_entries_raise_model_error(declaration, entry):
    data = {
        "path": "src/Widget.java",
        "line_count": 10,
        "declarations": [dict({"kind": "type", "name": "Widget", "span": [2, 1, 9, 2]}, **declaration)],
    }

    with pytest.raises(ModelError, match=f"{entry} entry must be a mapping") as excinfo:
        unit_from_dict(data)
    assert excinfo.value.unit == "src/Widget.java"


def test_non_mapping_method_parts_raise_model_error():
    method = {"kind": "method", "name": "run", "span": [3, 5, 4, 6]}
    for key, value, entry in (
        ("handlers", [["Exception"]], "Exception handler"),
        ("resource_scopes", ["stream"], "Resource scope"),
        ("parameters", [7], "Parameter"),
    ):
        data = {"path": "src/Job.java", "line_count": 10, "declarations": [dict(method, **{key: value})]}
        with pytest.raises(ModelError, match=f"{entry} entry must be a mapping"):
            unit_from_dict(data)


def test_non_mapping_unit_parts_raise_model_error():
    with pytest.raises(ModelError, match="Import entry"):
        unit_from_dict({"path": "a.java", "line_count": 3, "imports": ["java.util.List"]})
    with pytest.raises(ModelError, match="Suppression entry"):
        unit_from_dict({"path": "a.java", "line_count": 3, "suppressions": ["disable all"]})
    with pytest.raises(ModelError, match="document must be a mapping"):
        unit_from_dict(["a.java"])


def test_unparseable_pack_document_raises_pack_load_error(tmp_path):
    document = tmp_path / "team.yaml"
    document.write_text("name: team\nrules: [\n", encoding="utf-8")

    with pytest.raises(PackLoadError, match="Cannot read policy pack"):
        load_pack(document)


def test_pack_rule_message_may_use_match_values():
    rule = dict(RULE_TEMPLATE, message="{qualified_name}: @{annotation} is banned ({reason})")

    pack = pack_from_dict({"name": "team", "rules": [rule]})

    assert pack.rules[0].message == rule["message"]


def test_pack_rule_message_with_unknown_field_is_rejected():
    rule = dict(RULE_TEMPLATE, message="@{annotation} is banned in {module}")

    with pytest.raises(PackLoadError, match="unknown fields: module"):
        pack_from_dict({"name": "team", "rules": [rule]})


def test_pack_rule_message_with_unbalanced_braces_is_rejected():
    rule = dict(RULE_TEMPLATE, message="@{annotation is banned")

    with pytest.raises(PackLoadError, match="is malformed"):
        pack_from_dict({"name": "team", "rules": [rule]})
