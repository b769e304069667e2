"""
Editing Session
Owns the current graph of one workflow during editing and coordinates its
saves: validate first, at most one save in flight, later edits coalesced
into a single follow-up save.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Tuple, Union

from . import graph as ops
from .converters import encode
from .errors import InvalidWorkflow, UnknownStep
from .models import RoleConfig, StepType, Violation, WorkflowGraph
from .roles import normalize_roles, toggle_role
from .validator import validate

logger = logging.getLogger(__name__)

Document = Dict[str, Any]
PersistFn = Callable[[str, Document], Awaitable[Any]]


class SaveCoordinator:
    """
    Serializes saves of one workflow.

    ``persist(workflow_id, document)`` is awaited for at most one document
    at a time. A save requested while another is in flight waits for it and
    is merged with any other waiting request: only the most recent document
    is persisted next, and all merged callers get that result.
    """

    def __init__(self, workflow_id: str, persist: PersistFn):
        self.workflow_id = workflow_id
        self._persist = persist
        self._pending: Optional[Tuple[Document, "asyncio.Future[Document]"]] = None
        self._worker: Optional["asyncio.Task[None]"] = None
        self.latest: Optional[Document] = None
        self.persist_calls = 0

    @property
    def busy(self) -> bool:
        return self._worker is not None and not self._worker.done()

    async def save(self, graph: WorkflowGraph) -> Document:
        """
        Validate and persist a graph.

        Raises:
            InvalidWorkflow: if the graph has violations (nothing is persisted)
        """
        violations = validate(graph)
        if violations:
            logger.warning(
                "Refusing to save workflow %s: %d violation(s)",
                self.workflow_id, len(violations),
            )
            raise InvalidWorkflow(violations)

        document = encode(graph)
        if self._pending is not None:
            # coalesce into the save that is already queued
            future = self._pending[1]
            self._pending = (document, future)
        else:
            future = asyncio.get_running_loop().create_future()
            self._pending = (document, future)

        if not self.busy:
            self._worker = asyncio.create_task(self._drain())

        return await asyncio.shield(future)

    async def _drain(self) -> None:
        while self._pending is not None:
            document, future = self._pending
            self._pending = None
            self.persist_calls += 1
            logger.info("Saving workflow %s (save #%d)", self.workflow_id, self.persist_calls)
            try:
                await self._persist(self.workflow_id, document)
            except asyncio.CancelledError:
                logger.warning("Save of workflow %s was cancelled", self.workflow_id)
                future.cancel()
                if self._pending is not None:
                    self._pending[1].cancel()
                    self._pending = None
                raise
            except Exception as exc:
                logger.warning("Save of workflow %s failed: %s", self.workflow_id, exc)
                future.set_exception(exc)
            else:
                self.latest = document
                future.set_result(document)


class EditorSession:
    """
    The editor's exclusive handle on one workflow graph.

    Mutations go through the graph operations and replace ``self.graph`` only
    when they succeed.
    """

    def __init__(self, workflow_id: str, graph: WorkflowGraph, persist: PersistFn):
        self.workflow_id = workflow_id
        self.graph = graph
        self.saves = SaveCoordinator(workflow_id, persist)

    def add_step(self, step_type: Union[StepType, str], position=None, configuration=None) -> str:
        """Add a step and return its generated id."""
        self.graph = ops.add_step(self.graph, step_type, position, configuration)
        return self.graph.steps[-1].id

    def remove_step(self, step_id: str) -> None:
        self.graph = ops.remove_step(self.graph, step_id)

    def connect(self, source: str, target: str) -> str:
        """Connect two steps and return the connection id."""
        self.graph = ops.add_connection(self.graph, source, target)
        return self.graph.connections[-1].id

    def disconnect(self, connection_id: str) -> None:
        self.graph = ops.remove_connection(self.graph, connection_id)

    def move_step(self, step_id: str, position) -> None:
        self.graph = ops.move_step(self.graph, step_id, position)

    def configure_step(self, step_id: str, configuration) -> None:
        self.graph = ops.update_step_config(self.graph, step_id, configuration)

    def assign_roles(self, step_id: str, selected: Iterable[Optional[str]]) -> None:
        """Replace a step's roles with the editor's current selection."""
        self._update_roles(step_id, lambda config: normalize_roles(config, selected))

    def toggle_role(self, step_id: str, role: str) -> None:
        self._update_roles(step_id, lambda config: toggle_role(config, role))

    def _update_roles(self, step_id: str, change: Callable[[RoleConfig], RoleConfig]) -> None:
        step = ops.get_step(self.graph, step_id)
        if step is None:
            raise UnknownStep(step_id)
        self.graph = ops.update_step_config(self.graph, step_id, change(step.data))

    def violations(self) -> List[Violation]:
        return validate(self.graph)

    async def save(self) -> Document:
        return await self.saves.save(self.graph)
