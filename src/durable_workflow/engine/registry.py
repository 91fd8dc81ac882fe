"""
Workflow registry for loaded workflow definitions.

Holds WorkflowDefs keyed by id. The sub-workflow step looks its targets up
here, so an Engine receives the registry explicitly rather than through a
process-wide global.

Features:
- Register workflows with duplicate detection
- Retrieve workflows by id
- Load workflows from directories (recursive)
- Track the source directory of each workflow
"""

from __future__ import annotations

import logging
from pathlib import Path

from .executor_base import ExecutorRegistry
from .load_result import LoadResult
from .loader import load_workflow_from_file
from .schema import WorkflowDef

logger = logging.getLogger(__name__)


class WorkflowRegistry:
    """
    Registry of workflow definitions.

    Example:
        registry = WorkflowRegistry()
        registry.load_from_directory("workflows/")
        engine = Engine(registry.get("refund"), store=store, workflow_registry=registry)
    """

    def __init__(self, workflows: list[WorkflowDef] | None = None) -> None:
        self._workflows: dict[str, WorkflowDef] = {}
        self._workflow_sources: dict[str, Path] = {}
        for workflow in workflows or []:
            self.register(workflow)

    def register(self, workflow: WorkflowDef, source_dir: Path | None = None) -> None:
        """
        Register a workflow definition.

        Raises:
            ValueError: If a different workflow with the same id is already registered
        """
        existing = self._workflows.get(workflow.id)
        if existing is not None and existing is not workflow:
            raise ValueError(
                f"Workflow '{workflow.id}' already registered. Use clear() or unregister() first."
            )

        self._workflows[workflow.id] = workflow
        if source_dir is not None:
            self._workflow_sources[workflow.id] = source_dir
        logger.debug(f"Registered workflow: {workflow.id}")

    def unregister(self, workflow_id: str) -> None:
        """
        Raises:
            KeyError: If the workflow is not registered
        """
        if workflow_id not in self._workflows:
            raise KeyError(f"Workflow '{workflow_id}' not found in registry")

        del self._workflows[workflow_id]
        self._workflow_sources.pop(workflow_id, None)
        logger.debug(f"Unregistered workflow: {workflow_id}")

    def get(self, workflow_id: str) -> WorkflowDef | None:
        return self._workflows.get(workflow_id)

    def exists(self, workflow_id: str) -> bool:
        return workflow_id in self._workflows

    def __contains__(self, workflow_id: object) -> bool:
        return workflow_id in self._workflows

    def __len__(self) -> int:
        return len(self._workflows)

    def list_ids(self) -> list[str]:
        return sorted(self._workflows.keys())

    def list_all(self) -> list[WorkflowDef]:
        return list(self._workflows.values())

    def get_workflow_source(self, workflow_id: str) -> Path | None:
        return self._workflow_sources.get(workflow_id)

    def clear(self) -> None:
        self._workflows.clear()
        self._workflow_sources.clear()

    def load_from_directory(
        self,
        directory: str | Path,
        executor_registry: ExecutorRegistry | None = None,
    ) -> LoadResult[int]:
        """
        Load every workflow YAML file under ``directory`` (recursive).

        Invalid files and duplicate ids are logged and skipped.

        Returns:
            LoadResult.success(count) with the number of workflows loaded
            LoadResult.failure(error_message) if the directory doesn't exist
        """
        dir_path = Path(directory)
        logger.info(f"Loading workflows from directory: {dir_path}")

        if not dir_path.exists():
            error_msg = f"Directory not found: {dir_path}"
            logger.error(error_msg)
            return LoadResult.failure(error_msg)

        if not dir_path.is_dir():
            error_msg = f"Not a directory: {dir_path}"
            logger.error(error_msg)
            return LoadResult.failure(error_msg)

        yaml_files = sorted(list(dir_path.glob("**/*.yaml")) + list(dir_path.glob("**/*.yml")))
        loaded_count = 0

        for yaml_file in yaml_files:
            result = load_workflow_from_file(yaml_file, executor_registry)
            if not result.is_success or result.value is None:
                logger.warning(f"Failed to load workflow from {yaml_file.name}: {result.error}")
                continue

            try:
                self.register(result.value, source_dir=dir_path)
                loaded_count += 1
            except ValueError as e:
                logger.warning(f"Skipping duplicate workflow: {e}")

        logger.info(
            f"Successfully loaded {loaded_count} workflows from {dir_path} "
            f"({len(yaml_files)} YAML files found)"
        )
        return LoadResult.success(loaded_count)


__all__ = ["WorkflowRegistry"]
