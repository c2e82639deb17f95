"""Tests for parsing and validating designer graphs."""

import pytest

from orchestrator.core.exceptions import GraphError
from orchestrator.engine.graph_parser import parse_workflow, resolve_executor_id, validate_workflow
from orchestrator.engine.types import StepKind

from conftest import approval_graph


def _decision_graph(labels):
    nodes = [
        {"id": "start", "kind": "trigger"},
        {"id": "route", "kind": "decision", "data": {"config": {"defaultDecision": "yes"}}},
    ]
    edges = [{"source": "start", "target": "route"}]
    for index, label in enumerate(labels):
        target = f"end{index}"
        nodes.append({"id": target, "kind": "action", "data": {"actionType": "generic"}})
        edges.append({"source": "route", "target": target, "label": label})
    return {"nodes": nodes, "edges": edges}


def test_parse_linear_graph():
    parsed = parse_workflow(approval_graph(), {"templateId": "tpl_1"})

    assert parsed.start_node_id == "start"
    assert list(parsed.steps) == ["start", "mail", "manager", "end"]
    assert parsed.get_step("start").executor_id == "trigger-executor"
    assert parsed.get_step("mail").executor_id == "email-action-executor"
    assert parsed.get_step("manager").kind == StepKind.APPROVAL
    assert parsed.get_step("manager").next_step_ids == ["end"]
    assert parsed.get_step("end").next_step_ids == []
    assert parsed.metadata == {"templateId": "tpl_1"}


def test_parse_is_deterministic():
    assert parse_workflow(approval_graph()).to_dict() == parse_workflow(approval_graph()).to_dict()


def test_type_is_accepted_as_kind_alias():
    graph = {
        "nodes": [{"id": "s", "type": "trigger"}, {"id": "a", "type": "send-email"}],
        "edges": [{"source": "s", "target": "a"}],
    }
    parsed = parse_workflow(graph)

    assert parsed.get_step("a").kind == StepKind.ACTION
    assert parsed.get_step("a").executor_id == "email-action-executor"


def test_decision_conditions_keep_labels():
    parsed = parse_workflow(_decision_graph(["Yes", "No"]))

    assert parsed.get_step("route").conditions == {"Yes": "end0", "No": "end1"}


def test_single_unlabeled_decision_edge_is_fallthrough():
    parsed = parse_workflow(_decision_graph([None]))

    assert parsed.get_step("route").conditions == {}
    assert parsed.get_step("route").next_step_ids == ["end0"]


@pytest.mark.parametrize("labels", [["yes", "YES"], ["yes", None], ["yes", "  "]])
def test_bad_decision_labels_are_rejected(labels):
    with pytest.raises(GraphError):
        parse_workflow(_decision_graph(labels))


def test_duplicate_node_ids():
    graph = approval_graph()
    graph["nodes"].append({"id": "mail", "kind": "action"})

    with pytest.raises(GraphError) as exc_info:
        parse_workflow(graph)
    assert exc_info.value.details["node_ids"] == ["mail"]


def test_edge_to_unknown_node():
    graph = approval_graph()
    graph["edges"].append({"source": "end", "target": "ghost"})

    with pytest.raises(GraphError, match="ghost"):
        parse_workflow(graph)


def test_missing_and_ambiguous_start():
    no_trigger = {"nodes": [{"id": "a", "kind": "action"}], "edges": []}
    two_triggers = {"nodes": [{"id": "a", "kind": "trigger"}, {"id": "b", "kind": "trigger"}], "edges": []}

    with pytest.raises(GraphError, match="No start node"):
        parse_workflow(no_trigger)
    with pytest.raises(GraphError, match="Ambiguous start node"):
        parse_workflow(two_triggers)


def test_unknown_kind():
    with pytest.raises(GraphError, match="Unknown node kinds"):
        parse_workflow({"nodes": [{"id": "s", "kind": "trigger"}, {"id": "x", "kind": "teleport"}], "edges": []})


def test_unmapped_action_type_uses_generic_executor():
    assert resolve_executor_id(StepKind.ACTION, "Launch Rocket") == "generic-action-executor"
    assert resolve_executor_id(StepKind.ACTION, "Send Email") == "email-action-executor"
    assert resolve_executor_id(StepKind.DECISION, None) == "decision-evaluator"


def test_validate_accepts_approval_graph():
    result = validate_workflow(approval_graph())

    assert result.is_valid
    assert result.errors == []


def test_validate_rejects_fan_out_from_non_decision():
    graph = approval_graph()
    graph["nodes"].append({"id": "other", "kind": "action"})
    graph["edges"].append({"source": "mail", "target": "other"})

    result = validate_workflow(graph)

    assert not result.is_valid
    assert any("only decision nodes may branch" in e for e in result.errors)


def test_validate_reports_unreachable_nodes():
    graph = approval_graph()
    graph["nodes"].append({"id": "orphan", "kind": "action"})

    result = validate_workflow(graph)

    assert any("orphan" in e and "reachable" in e for e in result.errors)


def test_validate_requires_decision_fan_out():
    graph = {
        "nodes": [{"id": "s", "kind": "trigger"}, {"id": "d", "kind": "decision"}],
        "edges": [{"source": "s", "target": "d"}],
    }

    result = validate_workflow(graph)

    assert any("must have an outgoing edge" in e for e in result.errors)


def test_validate_end_marker_with_outgoing_edge():
    graph = approval_graph()
    graph["nodes"][1]["data"]["config"]["isEnd"] = True

    result = validate_workflow(graph)

    assert any("marked as end" in e for e in result.errors)


def test_validate_cycles_need_a_retry_label():
    graph = {
        "nodes": [
            {"id": "s", "kind": "trigger"},
            {"id": "review", "kind": "approval"},
            {"id": "check", "kind": "decision"},
            {"id": "done", "kind": "action"},
        ],
        "edges": [
            {"source": "s", "target": "review"},
            {"source": "review", "target": "check"},
            {"source": "check", "target": "done", "label": "ok"},
            {"source": "check", "target": "review", "label": "back"},
        ],
    }
    assert any("Cycle" in e for e in validate_workflow(graph).errors)

    graph["edges"][3]["label"] = "retry"
    assert validate_workflow(graph).is_valid


def test_validate_reports_parse_errors_instead_of_raising():
    result = validate_workflow({"nodes": [], "edges": []})

    assert not result.is_valid
    assert result.errors
