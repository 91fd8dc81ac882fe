"""
Execution context for dependency injection and sub-workflow composition.

Provides access to:
- Durable store (for audit entries and sub-workflow engines)
- Executor registry (for nested loop/parallel step dispatch)
- Workflow registry (for sub-workflow lookup)
- Service resolver (for call steps)
- Workflow call stack (for recursion depth limiting)

This replaces process-wide singletons: every registry an executor needs is
handed to it explicitly, so tests can isolate registrations.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from .config import EngineSettings
from .exceptions import RecursionDepthExceededError

if TYPE_CHECKING:
    from ..storage.store import Store
    from .execution import Entry
    from .executor_base import ExecutorRegistry
    from .registry import WorkflowRegistry
    from .schema import WorkflowDef

ServiceResolver = Callable[[str], Any]


class ExecutionContext:
    """
    Context providing dependencies for workflow execution.

    Design:
    - Immutable after creation (use create_child_context for nesting)
    - Contains references to shared resources (registries, store)
    - Tracks the sub-workflow call chain for depth limiting
    """

    def __init__(
        self,
        workflow: WorkflowDef,
        store: Store,
        executor_registry: ExecutorRegistry,
        workflow_registry: WorkflowRegistry,
        service_resolver: ServiceResolver | None = None,
        settings: EngineSettings | None = None,
        workflow_stack: list[str] | None = None,
    ):
        """
        Initialize execution context with shared resources.

        Args:
            workflow: Workflow currently being executed
            store: Durable store shared by every engine of this run
            executor_registry: Step type -> executor class mapping
            workflow_registry: Workflow definitions available to sub-workflow steps
            service_resolver: Name -> service object lookup for call steps
            settings: Engine tunables (recursion depth, default loop bound)
            workflow_stack: Ids of the parent workflows, outermost first
        """
        self.workflow = workflow
        self.store = store
        self.executor_registry = executor_registry
        self.workflow_registry = workflow_registry
        self.service_resolver = service_resolver
        self.settings = settings or EngineSettings()
        self.workflow_stack = workflow_stack or []

    @property
    def max_recursion_depth(self) -> int:
        return self.settings.max_recursion_depth

    def get_workflow(self, workflow_id: str) -> WorkflowDef | None:
        return self.workflow_registry.get(workflow_id)

    async def record(self, entry: Entry) -> Entry:
        """Append an audit entry to the store."""
        return await self.store.record(entry)

    def create_child_context(self, workflow: WorkflowDef) -> ExecutionContext:
        """
        Create child context for a sub-workflow.

        Preserves shared resources while pushing the current workflow onto the
        call stack.

        Raises:
            RecursionDepthExceededError: If running ``workflow`` would exceed the depth limit
        """
        self.check_recursion_depth(workflow.id)
        return ExecutionContext(
            workflow=workflow,
            store=self.store,
            executor_registry=self.executor_registry,
            workflow_registry=self.workflow_registry,
            service_resolver=self.service_resolver,
            settings=self.settings,
            workflow_stack=self.workflow_stack + [self.workflow.id],
        )

    def check_recursion_depth(self, workflow_id: str) -> None:
        """
        Check if running this workflow would exceed the recursion depth limit.

        Recursive workflows (A→A, A→B→A) are allowed up to max_recursion_depth.

        Raises:
            RecursionDepthExceededError: If the limit would be exceeded
        """
        current_depth = len(self.workflow_stack) + 1
        if current_depth >= self.max_recursion_depth:
            raise RecursionDepthExceededError(
                workflow_id=workflow_id,
                current_depth=current_depth + 1,
                max_depth=self.max_recursion_depth,
                workflow_stack=self.workflow_stack + [self.workflow.id],
            )


__all__ = ["ExecutionContext", "ServiceResolver"]
