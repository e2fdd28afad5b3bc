"""
Async Workflow Executor.

Walks one automation's node graph for one subscriber. Every node attempt is
appended to the automation log before the run moves on, so the log is a
complete, ordered audit trail of each run. Runs execute concurrently as
independent asyncio tasks; within a run, steps are strictly sequential.
"""

from typing import Any, Awaitable, Callable, Dict, Optional, Set, TYPE_CHECKING
from dataclasses import dataclass
from copy import deepcopy
import asyncio
import logging
import uuid

from autoflow.config import settings
from autoflow.engine.conditions import ConditionEvaluator
from autoflow.engine.delays import compute_resume_at
from autoflow.engine.errors import ActionError, AutomationError, StructuralError
from autoflow.engine.graph import AutomationGraph
from autoflow.engine.models import (
    Automation,
    AutomationLogEntry,
    LogStatus,
    Node,
    Run,
    RunStatus,
    CONDITION,
    DELAY,
    END,
)

if TYPE_CHECKING:
    from autoflow.actions.registry import ActionRegistry
    from autoflow.storage.base import LogStore, RunStore
    from autoflow.storage.base import AutomationStore


logger = logging.getLogger(__name__)

AlertCallback = Callable[[Run, Exception], Optional[Awaitable[None]]]


def _error_kind(error: Exception) -> str:
    if isinstance(error, ActionError):
        return error.kind.value
    return type(error).__name__


@dataclass
class RunHandle:
    """
    Handle for a started run.

    ``skipped`` is set when an identical start (same automation, subscriber
    and trigger instance) already completed or is in flight; no task exists
    in that case.
    """
    run_id: Optional[str]
    automation_id: str
    subscriber_id: str
    trigger_instance_id: str
    task: Optional["asyncio.Task[Run]"] = None
    skipped: bool = False

    async def wait(self) -> Optional[Run]:
        """Wait for the run to complete, fail or suspend."""
        if self.task is None:
            return None
        return await self.task


class WorkflowExecutor:
    """
    Starts and resumes runs.

    Handles:
    - Sequential node dispatch (action, condition, delay, end)
    - Retries with exponential backoff for retryable action failures
    - Durable suspension at delay nodes
    - Visit budget guarding against cycles
    - Idempotent starts per trigger instance

    Usage:
        executor = WorkflowExecutor(registry, automations, runs, logs)
        handle = await executor.start(automation, "s1", {"country": "US"})
        run = await handle.wait()
    """

    def __init__(
        self,
        registry: "ActionRegistry",
        automations: "AutomationStore",
        runs: "RunStore",
        logs: "LogStore",
        evaluator: Optional[ConditionEvaluator] = None,
        max_attempts: Optional[int] = None,
        retry_base_delay: Optional[float] = None,
        retry_max_delay: Optional[float] = None,
        visit_budget_factor: Optional[int] = None,
        alert: Optional[AlertCallback] = None,
    ):
        self.registry = registry
        self.automations = automations
        self.runs = runs
        self.logs = logs
        self.evaluator = evaluator or ConditionEvaluator()
        self.max_attempts = max(1, max_attempts or settings.ACTION_MAX_ATTEMPTS)
        self.retry_base_delay = (
            settings.RETRY_BASE_DELAY if retry_base_delay is None else retry_base_delay
        )
        self.retry_max_delay = (
            settings.RETRY_MAX_DELAY if retry_max_delay is None else retry_max_delay
        )
        self.visit_budget_factor = visit_budget_factor or settings.VISIT_BUDGET_FACTOR
        self.alert = alert

        self._start_lock = asyncio.Lock()
        self._tasks: Set[asyncio.Task] = set()

    # ============================================================
    # Public API
    # ============================================================

    async def start(
        self,
        automation: Automation,
        subscriber_id: str,
        initial_context: Dict[str, Any],
        trigger_instance_id: Optional[str] = None,
    ) -> RunHandle:
        """
        Start a run at the automation's entry node.

        The run executes in a background task; the returned handle can be
        awaited for its outcome.

        Raises:
            AutomationLoadError: If the automation fails validation
        """
        graph = AutomationGraph.load(automation, self.registry, self.evaluator)
        trigger_instance_id = trigger_instance_id or str(uuid.uuid4())

        async with self._start_lock:
            if await self._already_started(automation.id, subscriber_id, trigger_instance_id):
                logger.info(
                    f"Skipping duplicate start of automation '{automation.id}' for "
                    f"subscriber {subscriber_id} (trigger {trigger_instance_id})"
                )
                return RunHandle(
                    run_id=None,
                    automation_id=automation.id,
                    subscriber_id=subscriber_id,
                    trigger_instance_id=trigger_instance_id,
                    skipped=True,
                )

            context = deepcopy(initial_context)
            context.setdefault("subscriberId", subscriber_id)
            run = Run(
                automation_id=automation.id,
                subscriber_id=subscriber_id,
                trigger_instance_id=trigger_instance_id,
                current_node_id=graph.entry_node_id,
                context=context,
            )
            await self.runs.save(run)

        logger.info(
            f"Started run {run.run_id} of automation '{automation.name}' "
            f"for subscriber {subscriber_id}"
        )
        task = asyncio.create_task(self._execute(graph, run))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        return RunHandle(
            run_id=run.run_id,
            automation_id=automation.id,
            subscriber_id=subscriber_id,
            trigger_instance_id=trigger_instance_id,
            task=task,
        )

    async def resume(self, run_id: str) -> Optional[Run]:
        """
        Continue a suspended run from its persisted cursor.

        Returns the run after it completes, fails or suspends again, or None
        if the run does not exist or is not suspended.
        """
        run = await self.runs.claim(run_id)
        if run is None:
            logger.warning(f"Run {run_id} is not suspended; nothing to resume")
            return None

        logger.info(f"Resuming run {run_id} at node '{run.current_node_id}'")

        automation = await self.automations.get(run.automation_id)
        if automation is None:
            error = ActionError.unavailable(f"Automation '{run.automation_id}' was deleted")
            await self._fail_at_node(run, run.current_node_id, error)
            return run

        graph = AutomationGraph(automation)
        errors = graph.validate(self.registry, self.evaluator)
        if errors:
            error = StructuralError(f"Automation '{automation.id}' is invalid: {'; '.join(errors)}")
            await self._fail_at_node(run, run.current_node_id, error)
            return run

        return await self._execute(graph, run)

    async def drain(self) -> None:
        """Wait for all runs started by this executor to settle."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    @property
    def active_runs(self) -> int:
        return len(self._tasks)

    # ============================================================
    # Run loop
    # ============================================================

    async def _already_started(
        self, automation_id: str, subscriber_id: str, trigger_instance_id: str
    ) -> bool:
        existing = await self.runs.find_by_trigger(automation_id, subscriber_id, trigger_instance_id)
        if existing is not None:
            return existing.status != RunStatus.FAILED
        status = await self.logs.query_for_idempotency(
            automation_id, subscriber_id, trigger_instance_id
        )
        return status == LogStatus.SUCCESS

    async def _execute(self, graph: AutomationGraph, run: Run) -> Run:
        """Advance the run until it completes, fails or suspends."""
        max_visits = graph.max_visits(self.visit_budget_factor)

        try:
            while run.current_node_id is not None:
                if await self.automations.get(run.automation_id) is None:
                    error = ActionError.unavailable(f"Automation '{run.automation_id}' was deleted")
                    await self._fail_at_node(run, run.current_node_id, error)
                    return run

                node = graph.get(run.current_node_id)
                if node is None:
                    error = StructuralError(
                        f"Node '{run.current_node_id}' not found in automation '{graph.automation_id}'"
                    )
                    await self._fail_at_node(run, run.current_node_id, error)
                    return run

                if run.visits >= max_visits:
                    error = StructuralError(
                        f"Cycle suspected: run exceeded {max_visits} node visits"
                    )
                    await self._fail_at_node(run, node.id, error)
                    return run
                run.visits += 1

                try:
                    next_node_id = await self._step(node, run)
                except ActionError as e:
                    # Every attempt was already logged by _run_action
                    await self._mark_failed(run, e)
                    return run
                except AutomationError as e:
                    await self._fail_at_node(run, node.id, e)
                    return run

                if run.status == RunStatus.SUSPENDED:
                    return run

                run.current_node_id = next_node_id
                await self.runs.save(run)

            run.status = RunStatus.COMPLETED
            await self.runs.save(run)
            logger.info(f"Run {run.run_id} completed after {run.visits} node visit(s)")
            return run

        except Exception as e:
            logger.exception(f"Run {run.run_id} crashed: {e}")
            try:
                await self._fail_at_node(run, run.current_node_id, e)
            except Exception as record_error:
                logger.exception(f"Could not record failure of run {run.run_id}: {record_error}")
                run.status = RunStatus.FAILED
                run.error = str(e)
            return run

    async def _step(self, node: Node, run: Run) -> Optional[str]:
        """Execute one node and return the id of the next node (None = stop)."""
        logger.info(
            f"Run {run.run_id}: executing node '{node.id}' ({node.type}) "
            f"for subscriber {run.subscriber_id}"
        )

        if node.type == CONDITION:
            return await self._run_condition(node, run)
        if node.type == DELAY:
            return await self._run_delay(node, run)
        if node.type == END:
            await self._log(run, node.id, LogStatus.SUCCESS, self._input(node, run), {"end": True})
            return None

        output = await self._run_action(node, run)
        run.context.update(output)
        return node.next

    async def _run_condition(self, node: Node, run: Run) -> Optional[str]:
        result = self.evaluator.evaluate(node.params, run.context)
        await self._log(run, node.id, LogStatus.SUCCESS, self._input(node, run), {"result": result})

        branches = node.branches
        target = None
        if branches is not None:
            target = branches.true if result else branches.false
        if target is None:
            logger.info(f"Run {run.run_id}: condition '{node.id}' has no {str(result).lower()} branch; stopping")
        return target

    async def _run_delay(self, node: Node, run: Run) -> Optional[str]:
        resume_at = compute_resume_at(node.params)
        await self._log(
            run, node.id, LogStatus.SUCCESS, self._input(node, run),
            {"resumeAt": resume_at.isoformat()},
        )
        if node.next is None:
            return None

        run.status = RunStatus.SUSPENDED
        run.current_node_id = node.next
        run.resume_at = resume_at
        await self.runs.save(run)
        logger.info(f"Run {run.run_id} suspended until {resume_at.isoformat()} (next node '{node.next}')")
        return node.next

    async def _run_action(self, node: Node, run: Run) -> Dict[str, Any]:
        """Run an action, retrying retryable failures with exponential backoff."""
        action_type = node.action_type
        for attempt in range(1, self.max_attempts + 1):
            log_input = self._input(node, run)
            try:
                output = await self.registry.execute(action_type, node.params, run.context)
            except ActionError as e:
                await self._log(
                    run, node.id, LogStatus.FAILURE, log_input,
                    {"error": e.message, "kind": e.kind.value}, attempt=attempt,
                )
                if not e.retryable or attempt >= self.max_attempts:
                    logger.error(
                        f"Run {run.run_id}: action '{action_type}' at node '{node.id}' "
                        f"failed after {attempt} attempt(s): {e}"
                    )
                    raise
                delay = self._backoff(attempt)
                logger.warning(
                    f"Run {run.run_id}: action '{action_type}' failed "
                    f"(attempt {attempt}/{self.max_attempts}): {e}. Retrying in {delay:.2f}s"
                )
                await asyncio.sleep(delay)
                continue

            await self._log(run, node.id, LogStatus.SUCCESS, log_input, output, attempt=attempt)
            return output

        raise RuntimeError("Unexpected retry loop exit")

    def _backoff(self, attempt: int) -> float:
        return min(self.retry_base_delay * (2 ** (attempt - 1)), self.retry_max_delay)

    # ============================================================
    # Logging and failure
    # ============================================================

    @staticmethod
    def _input(node: Node, run: Run) -> Dict[str, Any]:
        return {"params": deepcopy(node.params), "context": deepcopy(run.context)}

    async def _log(
        self,
        run: Run,
        node_id: str,
        status: LogStatus,
        log_input: Dict[str, Any],
        output: Dict[str, Any],
        attempt: int = 1,
    ) -> None:
        entry = AutomationLogEntry(
            automation_id=run.automation_id,
            node_id=node_id,
            subscriber_id=run.subscriber_id,
            run_id=run.run_id,
            trigger_instance_id=run.trigger_instance_id,
            status=status,
            attempt=attempt,
            input=log_input,
            output=output,
        )
        await self.logs.append(entry)

    async def _fail_at_node(self, run: Run, node_id: Optional[str], error: Exception) -> None:
        """Record a failure entry for the node, then fail the run."""
        await self._log(
            run,
            node_id or "",
            LogStatus.FAILURE,
            {"context": deepcopy(run.context)},
            {"error": str(error), "kind": _error_kind(error)},
        )
        await self._mark_failed(run, error)

    async def _mark_failed(self, run: Run, error: Exception) -> None:
        run.status = RunStatus.FAILED
        run.error = str(error)
        await self.runs.save(run)
        logger.error(f"Run {run.run_id} failed at node '{run.current_node_id}': {error}")

        if self.alert is not None:
            try:
                result = self.alert(run, error)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as alert_error:
                logger.warning(f"Alert callback failed for run {run.run_id}: {alert_error}")
