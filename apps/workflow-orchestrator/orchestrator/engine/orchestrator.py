"""
Workflow instance state machine.

pending -> running -> {waiting_approval | completed | failed}
waiting_approval --approve--> running | completed
waiting_approval --reject---> failed
waiting_approval --delegate-> waiting_approval (same step, new holder)

Every mutation goes through ``InstanceRepository.save``, a compare-and-swap
on the instance version, so two concurrent decisions cannot both succeed.
Notifications, timers and failure listeners run only after commit.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..core.exceptions import (
    AmbiguousTransitionError,
    ExecutorNotFoundError,
    InstanceNotFoundError,
    InvalidDecisionError,
    InvalidInstanceStateError,
    StaleStateError,
    TemplateInactiveError,
    TemplateNotFoundError,
    TemplateValidationError,
    UnmatchedDecisionError,
)
from ..repositories.unit_of_work import UnitOfWork
from .assignment import ApproverAuthorizer, AssigneeResolver
from .escalation import EscalationScheduler
from .graph_parser import parse_workflow, validate_workflow
from .notifications import DatabaseNotifier, Notifier, Priority
from .step_registry import StepRegistryClass, step_registry
from .types import (
    APPROVABLE_STATUSES,
    ApprovalDecision,
    DecisionType,
    ExecutionContext,
    ExecutionRecord,
    ExecutionResult,
    ExecutionStatus,
    InstanceContext,
    InstanceRecord,
    InstanceStatus,
    ParsedWorkflowGraph,
    StepDefinition,
    StepKind,
)

logger = logging.getLogger(__name__)

FailureListener = Callable[[InstanceRecord, str, str], Awaitable[None]]

DECISION_EXECUTOR_ID = "approval-decision"

# Token from an auto-approval or AI step that ends the instance as rejected
REJECT_TOKEN = "reject"


def select_next_step(step: StepDefinition, decision: str | None) -> str | None:
    """
    Choose the successor of a completed step, or None when the step is an end.

    Raises:
        UnmatchedDecisionError: A decision token matched no condition label.
        AmbiguousTransitionError: A non-decision step has several successors.
    """
    if step.kind == StepKind.DECISION and step.conditions:
        token = (decision or "").strip().casefold()
        for label, target in step.conditions.items():
            if label.strip().casefold() == token:
                return target
        raise UnmatchedDecisionError(step.node_id, decision or "", list(step.conditions))

    if not step.next_step_ids:
        return None
    if len(step.next_step_ids) > 1:
        raise AmbiguousTransitionError(step.node_id, step.next_step_ids)
    return step.next_step_ids[0]


def is_reject(token: str | None) -> bool:
    return (token or "").strip().casefold() == REJECT_TOKEN


def timeout_minutes(step: StepDefinition) -> float | None:
    """Escalation timeout declared on a step (``timeoutMinutes`` or ``escalationTimeoutHours``)."""
    if step.config.get("timeoutMinutes"):
        return float(step.config["timeoutMinutes"])
    if step.config.get("escalationTimeoutHours"):
        return float(step.config["escalationTimeoutHours"]) * 60
    return None


class Orchestrator:
    """Creates instances and drives them through their parsed step graph."""

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        registry: StepRegistryClass | None = None,
        notifier: Notifier | None = None,
        escalations: EscalationScheduler | None = None,
        max_iterations: int | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._registry = registry or step_registry
        self._notifier = notifier or DatabaseNotifier(session_factory)
        self._escalations = escalations or EscalationScheduler()
        self._escalations.bind(self.handle_escalation)
        self._resolver = AssigneeResolver()
        self._authorizer = ApproverAuthorizer()
        self._failure_listeners: list[FailureListener] = []
        self._max_iterations = max_iterations or settings.max_workflow_iterations

    @property
    def escalations(self) -> EscalationScheduler:
        return self._escalations

    def unit_of_work(self) -> UnitOfWork:
        return UnitOfWork(self._session_factory)

    def add_failure_listener(self, listener: FailureListener) -> None:
        """Register a callback awaited after an instance fails, with (instance, reason, cause)."""
        self._failure_listeners.append(listener)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_instance(
        self,
        template_id: str,
        context: InstanceContext,
        start: bool = False,
    ) -> InstanceRecord:
        """
        Create an instance positioned at the template's start step.

        The instance is persisted as ``running`` with one pending execution
        row. With ``start=True`` automatic steps run immediately.

        Raises:
            TemplateNotFoundError, TemplateInactiveError, TemplateValidationError
        """
        async with self.unit_of_work() as uow:
            await uow.set_tenant(context.tenant_id)

            template = await uow.templates.get(template_id)
            if not template:
                raise TemplateNotFoundError(template_id)
            if not template.is_active:
                raise TemplateInactiveError(template_id)

            validation = validate_workflow(template.graph)
            if not validation.is_valid:
                raise TemplateValidationError(template_id, validation.errors)

            parsed = parse_workflow(
                template.graph,
                {"templateId": template.id, "templateName": template.name, "version": template.version},
            )
            start_step = parsed.get_step(parsed.start_node_id)
            assignee = await self._resolver.resolve(uow, template.id, start_step, context.requester_id)

            now = datetime.now()
            record = InstanceRecord(
                id=uow.instances.new_id(),
                tenant_id=context.tenant_id,
                template_id=template.id,
                template_version=template.version,
                reference_id=context.reference_id,
                requester_id=context.requester_id,
                name=context.name or template.name,
                status=InstanceStatus.RUNNING,
                current_step_id=start_step.node_id,
                trigger_id=context.trigger_id,
                idempotency_key=context.idempotency_key,
                version=0,
                workflow_data={
                    "parsedGraph": parsed.to_dict(),
                    "requestData": context.request_data,
                    "trigger": context.trigger,
                    "currentAssigneeId": assignee,
                    "delegations": [],
                    "escalations": [],
                    "escalationCount": 0,
                    "stepSeq": 1,
                    "stepEnteredAt": now.isoformat(),
                    "stepOutputs": {},
                },
            )
            self._set_escalation_due(record, start_step, now)
            record = await uow.instances.create(record)

            await uow.executions.append(
                record.id,
                start_step.node_id,
                start_step.executor_id,
                ExecutionStatus.PENDING,
                input_data={"requestData": context.request_data, "assigneeId": assignee},
            )

            self._after_step_entered(uow, record, start_step, title="New workflow request")
            await uow.commit()

        logger.info(
            "Created instance %s of template %s (tenant %s, assignee %s)",
            record.id,
            template_id,
            context.tenant_id,
            assignee,
        )

        if start:
            return await self.execute_instance(context.tenant_id, record.id)
        return record

    # ------------------------------------------------------------------
    # Automatic execution
    # ------------------------------------------------------------------

    async def execute_instance(self, tenant_id: str, instance_id: str) -> InstanceRecord:
        """Run automatic steps until the instance waits for a human or terminates."""
        record: InstanceRecord | None = None

        for _ in range(self._max_iterations):
            try:
                record, advanced = await self._execute_current_step(tenant_id, instance_id)
            except StaleStateError:
                logger.info("Instance %s was advanced by another writer; stopping this run", instance_id)
                return await self.get_instance(tenant_id, instance_id)
            if not advanced or record.status != InstanceStatus.RUNNING:
                return record

        logger.error("Instance %s exceeded %d iterations", instance_id, self._max_iterations)
        async with self.unit_of_work() as uow:
            await uow.set_tenant(tenant_id)
            record = await self._load(uow, instance_id)
            if record.status == InstanceStatus.RUNNING:
                await self._close_open_row(uow, record, ExecutionStatus.FAILED, error="Iteration limit exceeded")
                self._fail(uow, record, "Maximum workflow iterations exceeded", cause="execution_error")
                await uow.instances.save(record)
                await uow.commit()
        return record

    async def _execute_current_step(self, tenant_id: str, instance_id: str) -> tuple[InstanceRecord, bool]:
        """Run the current automatic step. Returns the record and whether this call moved it."""
        async with self.unit_of_work() as uow:
            await uow.set_tenant(tenant_id)
            record = await self._load(uow, instance_id)
            if record.status != InstanceStatus.RUNNING:
                return record, False

            step = record.parsed_graph().get_step(record.current_step_id)
            if not step.is_automatic:
                record.status = InstanceStatus.WAITING_APPROVAL
                await uow.instances.save(record)
                await uow.commit()
                return record, False

            execution = await uow.executions.get_open(record.id)
            if execution is not None and execution.status == ExecutionStatus.RUNNING:
                logger.debug("Step %s of %s is already executing", step.node_id, record.id)
                return record, False
            if execution is None:
                execution = await uow.executions.append(
                    record.id, step.node_id, step.executor_id, ExecutionStatus.PENDING
                )
            await uow.instances.claim(record)
            await uow.executions.mark_running(execution.id)
            await uow.commit()

            result, attempts = await self._run_step(step, record)

            if not result.success:
                await uow.executions.close(
                    execution.id, ExecutionStatus.FAILED, output_data=result.data, error=result.error, attempts=attempts
                )
                self._fail(uow, record, f"Step {step.node_id} failed: {result.error}", cause="execution_error")
            else:
                await uow.executions.close(
                    execution.id,
                    ExecutionStatus.COMPLETED,
                    output_data={**result.data, **({"decision": result.decision} if result.decision else {})},
                    attempts=attempts,
                )
                record.workflow_data.setdefault("stepOutputs", {})[step.node_id] = result.data
                if step.kind != StepKind.DECISION and is_reject(result.decision):
                    reason = result.message or f"Step {step.node_id} rejected the request"
                    self._fail(uow, record, reason, cause="rejected")
                else:
                    await self._advance(uow, record, step, result.decision)

            await uow.instances.save(record)
            await uow.commit()
            return record, True

    async def _run_step(self, step: StepDefinition, record: InstanceRecord) -> tuple[ExecutionResult, int]:
        """Execute a step with its configured retries (``retryOnFail``/``retryDelayMs``)."""
        max_retries = int(step.config.get("retryOnFail", 0) or 0)
        retry_delay = int(step.config.get("retryDelayMs", settings.default_retry_delay))
        payload = self._payload(record)
        context = self._context(record)

        result = ExecutionResult.failure("Step did not run")
        attempts = 0
        for attempt in range(max_retries + 1):
            attempts = attempt + 1
            try:
                result = await self._registry.execute_step(step, payload, context)
            except ExecutorNotFoundError as e:
                return ExecutionResult.failure(e.message), attempts
            if result.success:
                break
            if attempt < max_retries:
                logger.info("Retrying step %s of %s (attempt %d)", step.node_id, record.id, attempts + 1)
                await asyncio.sleep(retry_delay / 1000)

        if not result.success and max_retries > 0:
            result.error = f"{result.error} (after {attempts} attempts)"
        return result, attempts

    # ------------------------------------------------------------------
    # Human decisions
    # ------------------------------------------------------------------

    async def process_approval(self, decision: ApprovalDecision) -> InstanceRecord:
        """
        Apply an approve, reject or delegate decision to the current step.

        Raises:
            InstanceNotFoundError: Unknown instance.
            InvalidInstanceStateError: The instance is not awaiting a decision.
            ApprovalAuthorizationError: The user may not act; nothing is changed.
            StaleStateError: A concurrent decision won; retry.
        """
        if decision.decision == DecisionType.DELEGATE and not decision.delegate_to:
            raise InvalidDecisionError("delegate_to is required to delegate", field="delegate_to")

        async with self.unit_of_work() as uow:
            await uow.set_tenant(decision.tenant_id)
            record = await self._load(uow, decision.instance_id)
            if record.status not in APPROVABLE_STATUSES:
                raise InvalidInstanceStateError(record.id, record.status.value, decision.decision.value)
            if record.status == InstanceStatus.RUNNING:
                # Only a step parked with a pending row takes a decision; a running row belongs to its executor
                open_row = await uow.executions.get_open(record.id)
                if open_row is None or open_row.status != ExecutionStatus.PENDING:
                    raise InvalidInstanceStateError(record.id, record.status.value, decision.decision.value)

            step = record.parsed_graph().get_step(record.current_step_id)
            authorized_by = await self._authorizer.authorize(uow, record, step, decision.user_id)
            await uow.instances.claim(record)

            if decision.decision == DecisionType.DELEGATE:
                self._delegate(uow, record, step, decision)
            else:
                await self._decide(uow, record, step, decision, authorized_by)

            await uow.instances.save(record)
            await uow.commit()

        logger.info(
            "Instance %s: %s by %s on step %s -> %s",
            record.id,
            decision.decision.value,
            decision.user_id,
            step.node_id,
            record.status.value,
        )

        if record.status == InstanceStatus.RUNNING:
            return await self.execute_instance(decision.tenant_id, record.id)
        return record

    def _delegate(
        self,
        uow: UnitOfWork,
        record: InstanceRecord,
        step: StepDefinition,
        decision: ApprovalDecision,
    ) -> None:
        previous = record.current_assignee_id
        record.workflow_data.setdefault("delegations", []).append(
            {
                "stepId": step.node_id,
                "previousHolder": previous,
                "newHolder": decision.delegate_to,
                "delegatedBy": decision.user_id,
                "reason": decision.reason or decision.comments,
                "timestamp": datetime.now().isoformat(),
            }
        )
        record.workflow_data["currentAssigneeId"] = decision.delegate_to

        self._notify_after_commit(
            uow,
            record,
            decision.delegate_to,
            "Workflow delegated to you",
            f"{decision.user_id} delegated step '{step.label or step.node_id}' of {record.name} to you",
            "high",
        )

    async def _decide(
        self,
        uow: UnitOfWork,
        record: InstanceRecord,
        step: StepDefinition,
        decision: ApprovalDecision,
        authorized_by: str,
    ) -> None:
        approved = decision.decision == DecisionType.APPROVE
        audit = {
            "decision": decision.decision.value,
            "userId": decision.user_id,
            "authorizedBy": authorized_by,
            "comments": decision.comments,
            "reason": decision.reason,
            **({"metadata": decision.metadata} if decision.metadata else {}),
        }
        await uow.executions.append(
            record.id,
            step.node_id,
            DECISION_EXECUTOR_ID,
            ExecutionStatus.COMPLETED,
            input_data=audit,
        )

        instance_id, step_id = record.id, step.node_id
        uow.after_commit(lambda: self._escalations.cancel(instance_id, step_id))

        if not approved:
            reason = decision.reason or decision.comments or f"Rejected by {decision.user_id}"
            await self._close_open_row(uow, record, ExecutionStatus.FAILED, output=audit, error=reason)
            self._fail(uow, record, reason, cause="rejected")
            return

        token: str | None = None
        if step.kind == StepKind.DECISION:
            result, _ = await self._run_step(step, record)
            if not result.success:
                await self._close_open_row(uow, record, ExecutionStatus.FAILED, output=audit, error=result.error)
                self._fail(uow, record, f"Step {step.node_id} failed: {result.error}", cause="execution_error")
                return
            token = result.decision

        await self._close_open_row(uow, record, ExecutionStatus.COMPLETED, output={**audit, "token": token})
        record.workflow_data.setdefault("stepOutputs", {})[step.node_id] = audit
        await self._advance(uow, record, step, token)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def _advance(
        self,
        uow: UnitOfWork,
        record: InstanceRecord,
        step: StepDefinition,
        decision: str | None,
    ) -> None:
        """Move past a finished step: enter its successor, or complete the instance."""
        try:
            next_id = select_next_step(step, decision)
        except (UnmatchedDecisionError, AmbiguousTransitionError) as e:
            self._fail(uow, record, e.message, cause="execution_error")
            return

        if next_id is None:
            self._complete(uow, record)
            return

        graph = record.parsed_graph()
        await self._enter_step(uow, record, graph, graph.get_step(next_id))

    async def _enter_step(
        self,
        uow: UnitOfWork,
        record: InstanceRecord,
        graph: ParsedWorkflowGraph,
        step: StepDefinition,
    ) -> None:
        now = datetime.now()
        assignee = await self._resolver.resolve(uow, record.template_id, step, record.requester_id)

        record.current_step_id = step.node_id
        record.workflow_data["currentAssigneeId"] = assignee
        record.workflow_data["stepSeq"] = record.step_seq + 1
        record.workflow_data["stepEnteredAt"] = now.isoformat()
        record.workflow_data.pop("originalAssignee", None)
        self._set_escalation_due(record, step, now)

        input_data: dict[str, Any] = {"assigneeId": assignee}
        if step.kind == StepKind.APPROVAL:
            request = await self._registry.execute_step(step, self._payload(record), self._context(record))
            if not request.success:
                await uow.executions.append(
                    record.id, step.node_id, step.executor_id, ExecutionStatus.FAILED, error=request.error
                )
                self._fail(uow, record, f"Step {step.node_id} failed: {request.error}", cause="execution_error")
                return
            input_data["request"] = request.data
            record.status = InstanceStatus.WAITING_APPROVAL
        else:
            record.status = InstanceStatus.RUNNING

        await uow.executions.append(record.id, step.node_id, step.executor_id, ExecutionStatus.PENDING, input_data=input_data)

        if step.kind == StepKind.APPROVAL:
            self._after_step_entered(uow, record, step, title="Approval required")
        else:
            self._after_step_entered(uow, record, step, title=None)

    def _complete(self, uow: UnitOfWork, record: InstanceRecord) -> None:
        record.status = InstanceStatus.COMPLETED
        record.completed_at = datetime.now()
        record.workflow_data["escalationDueAt"] = None
        self._escalations_cancel_after_commit(uow, record)
        self._notify_after_commit(
            uow,
            record,
            record.requester_id,
            "Workflow completed",
            f"Your request '{record.name}' has been completed",
            "medium",
        )

    def _fail(self, uow: UnitOfWork, record: InstanceRecord, reason: str, cause: str) -> None:
        record.status = InstanceStatus.FAILED
        record.failure_reason = reason
        record.completed_at = datetime.now()
        record.workflow_data["escalationDueAt"] = None
        self._escalations_cancel_after_commit(uow, record)

        title = "Workflow rejected" if cause == "rejected" else "Workflow failed"
        self._notify_after_commit(uow, record, record.requester_id, title, f"'{record.name}': {reason}", "high")

        logger.warning("Instance %s failed (%s): %s", record.id, cause, reason)
        snapshot = copy.deepcopy(record)
        for listener in self._failure_listeners:
            uow.after_commit(lambda listener=listener: listener(snapshot, reason, cause))

    async def _close_open_row(
        self,
        uow: UnitOfWork,
        record: InstanceRecord,
        status: ExecutionStatus,
        output: dict[str, Any] | None = None,
        error: str | None = None,
    ) -> ExecutionRecord | None:
        execution = await uow.executions.get_open(record.id)
        if execution:
            await uow.executions.close(execution.id, status, output_data=output, error=error)
        return execution

    # ------------------------------------------------------------------
    # Escalation
    # ------------------------------------------------------------------

    async def handle_escalation(
        self,
        tenant_id: str,
        instance_id: str,
        step_id: str,
        step_seq: int,
    ) -> InstanceRecord | None:
        """
        Reassign a step whose timeout elapsed.

        A no-op (returns None) when the instance is terminal, has moved to
        another step, or re-entered this step since the timer was armed.
        """
        async with self.unit_of_work() as uow:
            await uow.set_tenant(tenant_id)
            record = await uow.instances.get(instance_id)
            if (
                record is None
                or record.is_terminal
                or record.current_step_id != step_id
                or record.step_seq != step_seq
            ):
                logger.debug("Escalation for %s/%s is stale; ignoring", instance_id, step_id)
                return None

            open_row = await uow.executions.get_open(record.id)
            if open_row is not None and open_row.status == ExecutionStatus.RUNNING:
                logger.debug("Step %s of %s is executing; escalation skipped", step_id, instance_id)
                return None

            step = record.parsed_graph().get_step(step_id)
            previous = record.current_assignee_id
            target = step.config.get("escalationTarget")
            if not target:
                target = await self._fallback_escalation_target(uow, record, step, previous)
            if not target or target == previous:
                logger.warning("No escalation target for %s/%s; leaving with %s", instance_id, step_id, previous)
                return None

            data = record.workflow_data
            data.setdefault("originalAssignee", previous)
            data["currentAssigneeId"] = target
            data["escalationCount"] = int(data.get("escalationCount", 0)) + 1
            data["escalationDueAt"] = None
            data.setdefault("escalations", []).append(
                {
                    "stepId": step_id,
                    "stepSeq": step_seq,
                    "previousHolder": previous,
                    "newHolder": target,
                    "timeoutMinutes": timeout_minutes(step),
                    "timestamp": datetime.now().isoformat(),
                }
            )
            record.escalation_count += 1

            try:
                await uow.instances.save(record)
            except StaleStateError:
                logger.info("Escalation for %s/%s lost to a concurrent decision", instance_id, step_id)
                return None

            self._notify_after_commit(
                uow,
                record,
                target,
                "Workflow escalated",
                f"Step '{step.label or step_id}' of {record.name} was escalated to you after timeout",
                "critical",
            )
            await uow.commit()

        logger.info("Escalated %s/%s from %s to %s", instance_id, step_id, previous, target)
        return record

    async def _fallback_escalation_target(
        self,
        uow: UnitOfWork,
        record: InstanceRecord,
        step: StepDefinition,
        previous: str | None,
    ) -> str | None:
        """First supervisor above the current holder in the step's team hierarchy."""
        team_id = step.config.get("teamId")
        teams = [await uow.directory.get_team(team_id)] if team_id else await uow.directory.teams_for_template(record.template_id)
        for team in teams:
            if team is None:
                continue
            for supervisor in [team.primary_supervisor, *team.secondary_supervisors]:
                if supervisor and supervisor != previous:
                    return supervisor
        return None

    async def rehydrate_escalations(self) -> int:
        """Re-arm timers of open instances after a restart. Returns the number armed."""
        async with self.unit_of_work() as uow:
            uow.set_system_scope()
            instances = await uow.instances.scan_open_instances()

        now = datetime.now()
        armed = 0
        for record in instances:
            due = record.workflow_data.get("escalationDueAt")
            if not due or not record.current_step_id:
                continue
            delay = (datetime.fromisoformat(due) - now).total_seconds()
            self._escalations.schedule(record.tenant_id, record.id, record.current_step_id, record.step_seq, delay)
            armed += 1
        if armed:
            logger.info("Re-armed %d escalation timers", armed)
        return armed

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_instance(self, tenant_id: str, instance_id: str) -> InstanceRecord:
        async with self.unit_of_work() as uow:
            await uow.set_tenant(tenant_id)
            return await self._load(uow, instance_id)

    async def get_instance_details(
        self,
        tenant_id: str,
        instance_id: str,
    ) -> tuple[InstanceRecord, list[ExecutionRecord]]:
        """Instance plus its execution history in insertion order."""
        async with self.unit_of_work() as uow:
            await uow.set_tenant(tenant_id)
            record = await self._load(uow, instance_id)
            executions = await uow.executions.list_for_instance(instance_id)
        return record, executions

    async def list_instances(
        self,
        tenant_id: str,
        status: InstanceStatus | None = None,
        template_id: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[InstanceRecord]:
        async with self.unit_of_work() as uow:
            await uow.set_tenant(tenant_id)
            return await uow.instances.list(status=status, template_id=template_id, limit=limit, offset=offset)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _load(self, uow: UnitOfWork, instance_id: str) -> InstanceRecord:
        record = await uow.instances.get(instance_id)
        if record is None:
            raise InstanceNotFoundError(instance_id)
        return record

    def _payload(self, record: InstanceRecord) -> dict[str, Any]:
        return dict(record.workflow_data.get("requestData") or {})

    def _context(self, record: InstanceRecord) -> ExecutionContext:
        workflow_data = {k: v for k, v in record.workflow_data.items() if k != "parsedGraph"}
        return ExecutionContext(
            tenant_id=record.tenant_id,
            requester_id=record.requester_id,
            instance_id=record.id,
            reference_id=record.reference_id,
            request_data=self._payload(record),
            workflow_data=workflow_data,
        )

    def _set_escalation_due(self, record: InstanceRecord, step: StepDefinition, now: datetime) -> None:
        minutes = timeout_minutes(step)
        record.workflow_data["escalationDueAt"] = (now + timedelta(minutes=minutes)).isoformat() if minutes else None

    def _after_step_entered(
        self,
        uow: UnitOfWork,
        record: InstanceRecord,
        step: StepDefinition,
        title: str | None,
    ) -> None:
        """Notify the new holder and arm the step's escalation timer once committed."""
        if title:
            self._notify_after_commit(
                uow,
                record,
                record.current_assignee_id,
                title,
                f"{record.name}: step '{step.label or step.node_id}' is assigned to you",
                "high" if step.kind == StepKind.APPROVAL else "medium",
            )

        minutes = timeout_minutes(step)
        if minutes:
            tenant_id, instance_id, seq = record.tenant_id, record.id, record.step_seq
            uow.after_commit(
                lambda: self._escalations.schedule(tenant_id, instance_id, step.node_id, seq, minutes * 60)
            )

    def _escalations_cancel_after_commit(self, uow: UnitOfWork, record: InstanceRecord) -> None:
        instance_id = record.id
        uow.after_commit(lambda: self._escalations.cancel_instance(instance_id))

    def _notify_after_commit(
        self,
        uow: UnitOfWork,
        record: InstanceRecord,
        user_id: str | None,
        title: str,
        message: str,
        priority: Priority,
    ) -> None:
        tenant_id = record.tenant_id
        url = f"{settings.public_base_url}/workflows/instances/{record.id}"
        data = {"instanceId": record.id, "stepId": record.current_step_id}
        uow.after_commit(
            lambda: self._notifier.notify(tenant_id, user_id, title, message, priority, url, data)
        )
