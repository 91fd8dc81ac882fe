"""Durable workflow execution engine.

Workflows are YAML-defined step graphs executed one step at a time against a
durable store. Executions can halt (for a human, an approval, an external
event), be persisted, and resume later from another process.

Example:
    from durable_workflow import Engine, InMemoryStore, load_workflow

    workflow = load_workflow("workflows/refund.yaml")
    engine = Engine(workflow, store=InMemoryStore())
    result = await engine.run({"amount": 42})
"""

from .engine import (
    FINISHED,
    ConfigError,
    DurableWorkflowError,
    Engine,
    EngineSettings,
    Entry,
    Execution,
    ExecutionError,
    ExecutionResult,
    ExecutionStatus,
    ExecutorRegistry,
    HaltResult,
    RecursionDepthExceededError,
    State,
    StepExecutor,
    ValidationError,
    WorkflowDef,
    WorkflowRegistry,
    configure_logging,
    create_default_registry,
    load_workflow,
    load_workflow_from_file,
    parse_workflow,
    validate_workflow,
)
from .runners import AsyncRunner, Event, InlineAdapter, QueueAdapter, StreamRunner, SyncRunner
from .storage import InMemoryStore, SqliteStore, Store

__version__ = "0.1.0"

__all__ = [
    "FINISHED",
    "AsyncRunner",
    "ConfigError",
    "DurableWorkflowError",
    "Engine",
    "EngineSettings",
    "Entry",
    "Event",
    "Execution",
    "ExecutionError",
    "ExecutionResult",
    "ExecutionStatus",
    "ExecutorRegistry",
    "HaltResult",
    "InMemoryStore",
    "InlineAdapter",
    "QueueAdapter",
    "RecursionDepthExceededError",
    "SqliteStore",
    "State",
    "StepExecutor",
    "Store",
    "StreamRunner",
    "SyncRunner",
    "ValidationError",
    "WorkflowDef",
    "WorkflowRegistry",
    "configure_logging",
    "create_default_registry",
    "load_workflow",
    "load_workflow_from_file",
    "parse_workflow",
    "validate_workflow",
]
