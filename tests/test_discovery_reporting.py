"""
Category inference and the tree / flow / summary aggregations.
"""

import pytest

from contrivance.services.discovery_reporting import (
    build_category_tree,
    build_flow_graph,
    infer_category,
    summarize_by_category,
)


def _vendor(question_id, selections):
    return {"question_id": question_id, "question_type": "vendor_multi", "vendor_selections": selections}


def _multi(question_id, values):
    return {"question_id": question_id, "question_type": "multi_select", "response_value": values}


@pytest.mark.parametrize("question_id,expected", [
    ("security_siem", "Security"),
    ("cloud_provider", "Infrastructure"),
    ("devsecops_security", "Security"),
    ("programming_languages", "Development"),
    ("analytics_stack", "Data"),
    ("daily_ops", "AI/LLM"),
    ("llm_usage", "AI/LLM"),
    ("Security_Upper", "Other"),
    ("budget", "Other"),
    (None, "Other"),
])
def test_infer_category(question_id, expected):
    assert infer_category(question_id) == expected


def test_tree_counts_and_order():
    responses = [
        _multi("llm_usage", ["openai"]),
        _vendor("security_edr", {"EDR": ["crowdstrike"], "XDR": ["crowdstrike", "palo alto"]}),
        _vendor("cloud_provider", {"IaaS": ["aws"]}),
        {"question_id": "security_notes", "question_type": "text", "response_value": "none"},
    ]
    tree = build_category_tree(responses, root_name="Acme")
    assert tree["name"] == "Acme"
    assert [c["name"] for c in tree["children"]] == ["Security", "Infrastructure", "AI/LLM"]
    assert tree["children"][0]["children"] == [
        {"name": "crowdstrike", "value": 2},
        {"name": "palo alto", "value": 1},
    ]


def test_tree_empty():
    assert build_category_tree([]) == {"name": "Discovery", "children": []}


def test_flow_graph_keeps_kinds_apart():
    responses = [
        _vendor("data_platform", {"Warehouse": ["Data", "snowflake"]}),
        _vendor("data_lake", {"Lake": ["snowflake"]}),
    ]
    graph = build_flow_graph(responses)
    assert graph["nodes"] == [
        {"name": "Data", "kind": "category"},
        {"name": "Data", "kind": "vendor"},
        {"name": "snowflake", "kind": "vendor"},
    ]
    assert graph["links"] == [
        {"source": 0, "target": 1, "value": 1},
        {"source": 0, "target": 2, "value": 2},
    ]


def test_multi_select_string_value_ignored():
    graph = build_flow_graph([_multi("cloud_regions", "us-east-1")])
    assert graph["links"] == []
    assert graph["nodes"] == [{"name": "Infrastructure", "kind": "category"}]


def test_summary_by_category():
    responses = [
        _vendor("security_siem", {"SIEM": ["splunk"]}),
        _vendor("security_edr", {"EDR": ["splunk", "crowdstrike"]}),
        _multi("budget", ["q3"]),
    ]
    summary = summarize_by_category(responses)
    assert [s["category"] for s in summary] == ["Security", "Other"]
    assert summary[0]["response_count"] == 2
    assert summary[0]["vendor_counts"] == {"splunk": 2, "crowdstrike": 1}
    assert summary[1]["vendor_counts"] == {}
