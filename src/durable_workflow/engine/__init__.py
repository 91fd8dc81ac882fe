"""Workflow engine core: definitions, executors, validation and the dispatch loop.

Key Components:

- Engine: step-dispatch loop with halt/resume over a durable Store
- WorkflowDef / StepDef / InputDef: immutable workflow definitions
- State: immutable runtime state threaded through executors
- StepOutcome / ContinueResult / HaltResult: executor return values
- ExecutionResult: what run/resume return to callers
- Execution / Entry: storage-facing records
- StepExecutor / ExecutorRegistry: step type plug-in point
- WorkflowRegistry: workflows available to sub-workflow steps
- Resolver / ConditionEvaluator: ``$ref`` resolution and route conditions
- load_workflow / validate_workflow: YAML loading and static validation
"""

from .condition import OPERATORS, ConditionEvaluator
from .config import EngineSettings, configure_logging
from .engine import Engine
from .exceptions import (
    ConfigError,
    DurableWorkflowError,
    ExecutionError,
    RecursionDepthExceededError,
    ValidationError,
)
from .execution import Entry, EntryAction, Execution
from .execution_context import ExecutionContext, ServiceResolver
from .execution_result import (
    ContinueResult,
    ExecutionResult,
    ExecutionStatus,
    HaltResult,
    StepOutcome,
)
from .executor_base import ExecutorRegistry, StepExecutor, create_default_registry
from .executors_call import CallConfig, CallExecutor, OutputConfig
from .executors_core import (
    AssignExecutor,
    EndExecutor,
    HaltExecutor,
    RouterExecutor,
    StartExecutor,
)
from .executors_interactive import ApprovalExecutor
from .executors_loop import LoopExecutor
from .executors_parallel import ParallelExecutor
from .executors_transform import OPERATIONS, TransformExecutor
from .executors_workflow import WorkflowExecutor
from .load_result import LoadResult
from .loader import load_workflow, load_workflow_from_file, parse_workflow
from .registry import WorkflowRegistry
from .resolver import Resolver
from .schema import FINISHED, Condition, InputDef, InputType, Route, StepConfig, StepDef, WorkflowDef
from .state import State
from .validation import is_valid_workflow, validate_workflow

__all__ = [
    "FINISHED",
    "OPERATIONS",
    "OPERATORS",
    "ApprovalExecutor",
    "AssignExecutor",
    "CallConfig",
    "CallExecutor",
    "Condition",
    "ConditionEvaluator",
    "ConfigError",
    "ContinueResult",
    "DurableWorkflowError",
    "EndExecutor",
    "Engine",
    "EngineSettings",
    "Entry",
    "EntryAction",
    "Execution",
    "ExecutionContext",
    "ExecutionError",
    "ExecutionResult",
    "ExecutionStatus",
    "ExecutorRegistry",
    "HaltExecutor",
    "HaltResult",
    "InputDef",
    "InputType",
    "LoadResult",
    "LoopExecutor",
    "OutputConfig",
    "ParallelExecutor",
    "RecursionDepthExceededError",
    "Resolver",
    "Route",
    "RouterExecutor",
    "ServiceResolver",
    "StartExecutor",
    "State",
    "StepConfig",
    "StepDef",
    "StepExecutor",
    "StepOutcome",
    "TransformExecutor",
    "ValidationError",
    "WorkflowDef",
    "WorkflowExecutor",
    "WorkflowRegistry",
    "configure_logging",
    "create_default_registry",
    "is_valid_workflow",
    "load_workflow",
    "load_workflow_from_file",
    "parse_workflow",
    "validate_workflow",
]
