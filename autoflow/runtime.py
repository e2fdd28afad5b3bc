"""
Runtime wiring.

Builds the event bus, stores, action registry, executor, trigger matcher
and delay scheduler from settings, and starts/stops them together.
"""

from typing import Optional
import logging

from autoflow.actions import (
    ActionRegistry,
    EmailSender,
    InMemoryEmailSender,
    InMemoryTaggingService,
    TaggingService,
    register_builtin_actions,
)
from autoflow.config import Settings, settings as default_settings
from autoflow.engine.conditions import ConditionEvaluator
from autoflow.engine.executor import WorkflowExecutor
from autoflow.engine.scheduler import DelayScheduler
from autoflow.engine.triggers import TriggerMatcher
from autoflow.events import EventBus
from autoflow.storage import (
    AutomationStore,
    LogStore,
    MemoryAutomationStore,
    MemoryLogStore,
    MemoryRunStore,
    RunStore,
    SqliteAutomationStore,
    SqliteDatabase,
    SqliteLogStore,
    SqliteRunStore,
)


logger = logging.getLogger(__name__)


class AutomationRuntime:
    """All engine components for one process."""

    def __init__(
        self,
        bus: EventBus,
        automations: AutomationStore,
        runs: RunStore,
        logs: LogStore,
        registry: ActionRegistry,
        executor: WorkflowExecutor,
        matcher: TriggerMatcher,
        scheduler: DelayScheduler,
        email_sender: EmailSender,
        tagging_service: TaggingService,
        database: Optional[SqliteDatabase] = None,
    ):
        self.bus = bus
        self.automations = automations
        self.runs = runs
        self.logs = logs
        self.registry = registry
        self.executor = executor
        self.matcher = matcher
        self.scheduler = scheduler
        self.email_sender = email_sender
        self.tagging_service = tagging_service
        self.database = database

    def start(self, run_scheduler: bool = True) -> None:
        """Subscribe to events and start the delay scheduler. Needs a running loop."""
        self.matcher.subscribe()
        if run_scheduler:
            self.scheduler.start()

    async def stop(self) -> None:
        self.matcher.close()
        await self.scheduler.stop()
        await self.matcher.drain()
        if self.database is not None:
            self.database.close()


def build_runtime(
    config: Optional[Settings] = None,
    email_sender: Optional[EmailSender] = None,
    tagging_service: Optional[TaggingService] = None,
) -> AutomationRuntime:
    """
    Build a runtime from settings.

    Automations, runs and logs are kept in SQLite when ``DATABASE_PATH``
    is set, in memory otherwise.
    """
    config = config or default_settings

    database = None
    if config.DATABASE_PATH:
        database = SqliteDatabase(config.DATABASE_PATH)
        automations: AutomationStore = SqliteAutomationStore(database)
        runs: RunStore = SqliteRunStore(database)
        logs: LogStore = SqliteLogStore(database)
        logger.info(f"Using SQLite storage at {config.DATABASE_PATH}")
    else:
        automations = MemoryAutomationStore()
        runs = MemoryRunStore()
        logs = MemoryLogStore()
        logger.info("Using in-memory storage")

    email_sender = email_sender or InMemoryEmailSender()
    tagging_service = tagging_service or InMemoryTaggingService()
    registry = register_builtin_actions(ActionRegistry(), email_sender, tagging_service)

    bus = EventBus()
    evaluator = ConditionEvaluator()
    executor = WorkflowExecutor(
        registry,
        automations,
        runs,
        logs,
        evaluator=evaluator,
        max_attempts=config.ACTION_MAX_ATTEMPTS,
        retry_base_delay=config.RETRY_BASE_DELAY,
        retry_max_delay=config.RETRY_MAX_DELAY,
        visit_budget_factor=config.VISIT_BUDGET_FACTOR,
    )
    matcher = TriggerMatcher(bus, automations, executor, evaluator)
    scheduler = DelayScheduler(
        runs,
        executor,
        interval=config.SCHEDULER_INTERVAL,
        batch_size=config.SCHEDULER_BATCH_SIZE,
    )

    return AutomationRuntime(
        bus=bus,
        automations=automations,
        runs=runs,
        logs=logs,
        registry=registry,
        executor=executor,
        matcher=matcher,
        scheduler=scheduler,
        email_sender=email_sender,
        tagging_service=tagging_service,
        database=database,
    )
