"""Tests for the executor dispatch table."""

import pytest

from orchestrator.core.exceptions import ExecutorNotFoundError, RegistryFrozenError
from orchestrator.engine.step_registry import StepRegistryClass, register_all_executors
from orchestrator.engine.types import ExecutionContext, ExecutionResult, StepDefinition, StepKind
from orchestrator.executors.base import BaseExecutor


class ExplodingExecutor(BaseExecutor):
    @property
    def executor_id(self) -> str:
        return "exploding"

    @property
    def description(self) -> str:
        return "Always raises"

    async def execute(self, step, payload, context):
        raise RuntimeError("boom")


class SilentDecisionExecutor(BaseExecutor):
    @property
    def executor_id(self) -> str:
        return "silent-decision"

    @property
    def description(self) -> str:
        return "Succeeds without a token"

    async def execute(self, step, payload, context):
        return ExecutionResult.ok("done")


def _context() -> ExecutionContext:
    return ExecutionContext(tenant_id="tenant-a", requester_id="u1", instance_id="inst_1")


def test_register_all_executors_populates_fresh_registry(registry):
    ids = {e["id"] for e in registry.list_executors()}

    assert {
        "trigger-executor",
        "email-action-executor",
        "approval-action-executor",
        "decision-evaluator",
        "generic-action-executor",
    } <= ids


def test_unknown_executor():
    with pytest.raises(ExecutorNotFoundError):
        StepRegistryClass().get_executor("nope")


def test_frozen_registry_rejects_registration():
    registry = register_all_executors(StepRegistryClass())
    registry.freeze()

    with pytest.raises(RegistryFrozenError):
        registry.register_executor("exploding", ExplodingExecutor())
    # A second bulk registration on a frozen registry is a no-op
    assert register_all_executors(registry) is registry


async def test_handler_exception_becomes_failed_result():
    registry = StepRegistryClass()
    registry.register_executor("exploding", ExplodingExecutor())
    step = StepDefinition(node_id="s1", kind=StepKind.ACTION, executor_id="exploding")

    result = await registry.execute_step(step, {}, _context())

    assert not result.success
    assert "RuntimeError: boom" in result.error


async def test_decision_without_token_fails():
    registry = StepRegistryClass()
    registry.register_executor("silent-decision", SilentDecisionExecutor())
    step = StepDefinition(node_id="d1", kind=StepKind.DECISION, executor_id="silent-decision")

    result = await registry.execute_step(step, {}, _context())

    assert not result.success
    assert "no decision token" in result.error


async def test_decision_evaluator_rules_then_condition(registry):
    rules_step = StepDefinition(
        node_id="d1",
        kind=StepKind.DECISION,
        executor_id="decision-evaluator",
        config={"rules": [{"condition": "amount > 1000", "decision": "director"}], "defaultDecision": "manager"},
    )
    condition_step = StepDefinition(
        node_id="d2",
        kind=StepKind.DECISION,
        executor_id="decision-evaluator",
        config={"condition": "amount < 100", "trueDecision": "auto", "falseDecision": "manager"},
    )

    assert (await registry.execute_step(rules_step, {"amount": 5000}, _context())).decision == "director"
    assert (await registry.execute_step(rules_step, {"amount": 50}, _context())).decision == "manager"
    assert (await registry.execute_step(condition_step, {"amount": 50}, _context())).decision == "auto"


async def test_email_without_recipient_fails(registry):
    step = StepDefinition(node_id="m", kind=StepKind.ACTION, executor_id="email-action-executor")

    result = await registry.execute_step(step, {}, _context())

    assert not result.success
    assert "recipient" in result.error
