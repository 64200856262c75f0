"""
Read-only aggregation over discovery responses for the analytics views.

All functions are pure: they take response dicts (``DiscoveryResponse.to_dict()``
shape) and return plain structures ready for JSON.

Category inference is a best-effort substring heuristic on ``question_id``.
It is case-sensitive and the first matching rule wins, so for example
``"daily_ops"`` lands in AI/LLM and ``"devsecops_security"`` in Security.
"""

from collections import OrderedDict

CATEGORY_SECURITY = "Security"
CATEGORY_INFRASTRUCTURE = "Infrastructure"
CATEGORY_DEVELOPMENT = "Development"
CATEGORY_DATA = "Data"
CATEGORY_AI = "AI/LLM"
CATEGORY_OTHER = "Other"

CATEGORY_ORDER = (
    CATEGORY_SECURITY,
    CATEGORY_INFRASTRUCTURE,
    CATEGORY_DEVELOPMENT,
    CATEGORY_DATA,
    CATEGORY_AI,
    CATEGORY_OTHER,
)

# (substrings, category), checked in order
_CATEGORY_RULES = (
    (("security",), CATEGORY_SECURITY),
    (("cloud", "infrastructure"), CATEGORY_INFRASTRUCTURE),
    (("dev", "programming"), CATEGORY_DEVELOPMENT),
    (("data", "analytics"), CATEGORY_DATA),
    (("ai", "llm"), CATEGORY_AI),
)


def infer_category(question_id: str) -> str:
    question_id = question_id or ""
    for needles, category in _CATEGORY_RULES:
        if any(needle in question_id for needle in needles):
            return category
    return CATEGORY_OTHER


def _selected_items(response: dict) -> list[tuple[str, str]]:
    """(kind, name) pairs a response contributes to the visualizations.

    vendor_multi → every vendor across all of its categories, repeats kept;
    multi_select with a list value → every selection. Other types contribute
    nothing.
    """
    question_type = response.get("question_type")
    if question_type == "vendor_multi":
        items = []
        for vendors in (response.get("vendor_selections") or {}).values():
            if isinstance(vendors, list):
                items.extend(("vendor", str(v)) for v in vendors)
        return items
    if question_type == "multi_select" and isinstance(response.get("response_value"), list):
        return [("selection", str(v)) for v in response["response_value"]]
    return []


def build_category_tree(responses: list[dict], root_name: str = "Discovery") -> dict:
    """Two-level hierarchy: category → item, each item weighted by occurrences.

    Categories appear in fixed order; empty ones are omitted.
    """
    counts: dict[str, OrderedDict] = {c: OrderedDict() for c in CATEGORY_ORDER}
    for response in responses:
        bucket = counts[infer_category(response.get("question_id"))]
        for _kind, name in _selected_items(response):
            bucket[name] = bucket.get(name, 0) + 1

    children = []
    for category in CATEGORY_ORDER:
        items = counts[category]
        if items:
            children.append({
                "name": category,
                "children": [{"name": name, "value": count} for name, count in items.items()],
            })
    return {"name": root_name, "children": children}


def build_flow_graph(responses: list[dict]) -> dict:
    """Flow graph of category → vendor/selection links weighted by count.

    Nodes are keyed by (kind, name) so a vendor and a category with the same
    name stay distinct; a repeated pair increments one link's ``value``.
    Link ``source``/``target`` are indexes into ``nodes``.
    """
    nodes: list[dict] = []
    node_index: dict[tuple[str, str], int] = {}
    link_values: OrderedDict = OrderedDict()

    def _node(kind: str, name: str) -> int:
        key = (kind, name)
        if key not in node_index:
            node_index[key] = len(nodes)
            nodes.append({"name": name, "kind": kind})
        return node_index[key]

    for response in responses:
        source = _node("category", infer_category(response.get("question_id")))
        for kind, name in _selected_items(response):
            target = _node(kind, name)
            link_values[(source, target)] = link_values.get((source, target), 0) + 1

    links = [
        {"source": source, "target": target, "value": value}
        for (source, target), value in link_values.items()
    ]
    return {"nodes": nodes, "links": links}


def summarize_by_category(responses: list[dict]) -> list[dict]:
    """Per-category response counts with their vendor tallies, in category order."""
    summary: dict[str, dict] = {}
    for response in responses:
        category = infer_category(response.get("question_id"))
        entry = summary.setdefault(category, {
            "category": category,
            "response_count": 0,
            "question_ids": [],
            "vendor_counts": {},
        })
        entry["response_count"] += 1
        entry["question_ids"].append(response.get("question_id"))
        for kind, name in _selected_items(response):
            if kind == "vendor":
                entry["vendor_counts"][name] = entry["vendor_counts"].get(name, 0) + 1
    return [summary[c] for c in CATEGORY_ORDER if c in summary]
