"""
Persistence endpoint client used by the editor side.

Each save sends the complete encoded document; the store replaces what it
had. Loading decodes (and therefore validates) what comes back.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from .config import settings
from .converters import decode
from .errors import InvalidWorkflow, WorkflowNotFound
from .models import Violation, WorkflowGraph

logger = logging.getLogger(__name__)


class WorkflowStoreClient:
    """
    Async client for the workflow persistence endpoint.

    ``save`` has the ``persist(workflow_id, document)`` signature expected by
    SaveCoordinator.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._client = httpx.AsyncClient(
            base_url=base_url or settings.store_base_url,
            timeout=timeout if timeout is not None else settings.store_timeout_seconds,
            transport=transport,
        )

    async def __aenter__(self) -> "WorkflowStoreClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def _raise_for_error(self, workflow_id: str, response: httpx.Response) -> None:
        if response.status_code == 404:
            raise WorkflowNotFound(workflow_id)
        if response.status_code == 422:
            error = response.json().get("error", {})
            if error.get("code") == InvalidWorkflow.code:
                raise InvalidWorkflow([Violation.model_validate(d) for d in error.get("details", [])])
        response.raise_for_status()

    async def save(self, workflow_id: str, document: Dict[str, Any]) -> Dict[str, Any]:
        """Replace the stored document. The transport verb is PATCH but the body is always whole."""
        response = await self._client.patch(f"/workflows/{workflow_id}", json=document)
        self._raise_for_error(workflow_id, response)
        logger.info("Persisted workflow %s", workflow_id)
        return response.json()

    async def load(self, workflow_id: str) -> WorkflowGraph:
        response = await self._client.get(f"/workflows/{workflow_id}")
        self._raise_for_error(workflow_id, response)
        return decode(response.json()["document"])
