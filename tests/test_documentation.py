from policyengine.aggregator import aggregate
from policyengine.evaluator import evaluate_unit
from policyengine.loaders import unit_from_dict
from policyengine.model import Span
from policyengine.registry import RegistryConfig, RuleRegistry
from policyengine.rules import documentation
from policyengine.severity import Severity


def _method(name="fetch", doc=None, visibility="public", annotations=None, line=10):
    method = {
        "kind": "method",
        "name": name,
        "visibility": visibility,
        "span": [line, 5, line + 4, 6],
        "annotations": annotations or [],
    }
    if doc is not None:
        method["doc"] = doc
    return method


def _doc(tags, summary="Fetches the value.", line=5):
    return {
        "span": [line, 5, line + 4, 8],
        "summary": summary,
        "tags": [
            {"kind": kind, "text": text, "span": [line + 1 + index, 8, line + 1 + index, 40]}
            for index, (kind, text) in enumerate(tags)
        ],
    }


def _unit(*members, type_doc=True):
    declaration = {
        "kind": "type",
        "name": "Repo",
        "visibility": "public",
        "span": [3, 1, 59, 2],
        "members": list(members),
    }
    if type_doc:
        declaration["doc"] = {"span": [1, 1, 2, 4], "summary": "Stores values."}
    return unit_from_dict({"path": "src/Repo.java", "line_count": 60, "declarations": [declaration]})


def _report(unit, config=None, **params):
    registry = RuleRegistry.from_packs([documentation.build_pack(**params)], config)
    return aggregate([evaluate_unit(unit, registry)], registry)


def _rules(report):
    return [finding.rule for finding in report.findings]


def test_return_before_param_is_out_of_order():
    unit = _unit(_method(doc=_doc([("return", "the value"), ("param", "key the key")])))

    report = _report(unit)

    assert _rules(report) == [documentation.TAG_ORDER_RULE]
    finding = report.findings[0]
    assert finding.severity is Severity.WARNING
    assert finding.span == Span(7, 8, 7, 40)
    assert "@param must come before @return" in finding.message


def test_param_before_return_is_accepted():
    unit = _unit(_method(doc=_doc([("param", "key the key"), ("return", "the value")])))

    assert _report(unit).findings == ()


def test_full_canonical_sequence_is_accepted():
    tags = [
        ("param", "key the key"),
        ("param", "fallback the fallback"),
        ("return", "the value"),
        ("exception", "IOException on read failure"),
        ("throws", "TimeoutException when slow"),
        ("see", "Cache"),
        ("since", "2.0"),
    ]
    doc = {
        "span": [10, 5, 20, 8],
        "summary": "Fetches the value.",
        "tags": [{"kind": kind, "text": text, "span": [11 + i, 8, 11 + i, 40]} for i, (kind, text) in enumerate(tags)],
    }
    unit = _unit(_method(doc=doc, line=21))

    assert _report(unit).findings == ()


def test_throws_tags_must_be_alphabetical():
    unit = _unit(
        _method(doc=_doc([("throws", "TimeoutException when slow"), ("throws", "IOException on failure")]))
    )

    report = _report(unit)

    assert _rules(report) == [documentation.TAG_ORDER_RULE]
    assert "@throws IOException must come before @throws TimeoutException" in report.findings[0].message


def test_single_tags_may_not_repeat():
    unit = _unit(_method(doc=_doc([("return", "the value"), ("return", "again")])))

    report = _report(unit)

    assert _rules(report) == [documentation.TAG_ORDER_RULE]
    assert "only once" in report.findings[0].message


def test_unknown_tags_are_ignored_for_ordering():
    unit = _unit(_method(doc=_doc([("param", "key the key"), ("apiNote", "fast"), ("return", "the value")])))

    assert _report(unit).findings == ()


def test_deprecated_tag_without_annotation():
    unit = _unit(_method(doc=_doc([("deprecated", "use load")])))

    report = _report(unit)

    assert _rules(report) == [documentation.DEPRECATION_RULE]
    assert report.findings[0].severity is Severity.ERROR
    assert report.findings[0].message == "method 'fetch' has a @deprecated doc tag but no @Deprecated annotation"


def test_deprecated_annotation_without_tag():
    unit = _unit(_method(doc=_doc([]), annotations=[{"name": "Deprecated", "span": [10, 5, 10, 16]}]))

    report = _report(unit)

    assert _rules(report) == [documentation.DEPRECATION_RULE]
    assert "no @deprecated doc tag" in report.findings[0].message


def test_deprecated_annotation_with_tag_is_consistent():
    unit = _unit(
        _method(
            doc=_doc([("deprecated", "use load")]),
            annotations=[{"name": "Deprecated", "span": [10, 5, 10, 16]}],
        )
    )

    assert _report(unit).findings == ()


def test_summary_must_end_with_period():
    unit = _unit(_method(doc=_doc([], summary="Fetches the value")))

    report = _report(unit)

    assert _rules(report) == [documentation.SUMMARY_RULE]
    assert report.findings[0].message == "Documentation of 'fetch': summary fragment does not end with a period"


def test_summary_abbreviation_ends_sentence_early():
    unit = _unit(_method(doc=_doc([], summary="Fetches a value, e.g. from disk.")))

    report = _report(unit)

    assert _rules(report) == [documentation.SUMMARY_RULE]
    assert "ends early at 'Fetches a value, e.g.'" in report.findings[0].message


def test_empty_summary_is_flagged():
    unit = _unit(_method(doc=_doc([], summary="")))

    report = _report(unit)

    assert _rules(report) == [documentation.SUMMARY_RULE]
    assert "missing" in report.findings[0].message


def test_missing_public_documentation():
    unit = _unit(
        _method("fetch"),
        _method("hidden", visibility="private", line=20),
        {"kind": "field", "name": "size", "visibility": "public", "span": [30, 5, 30, 30]},
        type_doc=False,
    )

    report = _report(unit)

    assert [(finding.rule, finding.message) for finding in report.findings] == [
        (documentation.MISSING_DOC_RULE, "Public type 'Repo' has no documentation comment"),
        (documentation.MISSING_DOC_RULE, "Public method 'Repo.fetch' has no documentation comment"),
    ]
    assert report.summary.warning == 2


def test_missing_documentation_can_be_escalated():
    unit = _unit(_method("fetch"))
    config = RegistryConfig(severity_overrides={documentation.MISSING_DOC_RULE: "error"})

    report = _report(unit, config=config)

    assert report.summary.error == 1
    assert report.findings[0].severity is Severity.ERROR
    assert not report.passed
