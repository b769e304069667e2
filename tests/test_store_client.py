# tests/test_store_client.py
import asyncio
import json

import httpx
import pytest

from approvalflow.converters import encode
from approvalflow.errors import InvalidWorkflow, UnsupportedVersion, WorkflowNotFound
from approvalflow.models import ViolationCode
from approvalflow.session import SaveCoordinator
from approvalflow.store_client import WorkflowStoreClient
from approvalflow.templates import instantiate


def _client(handler):
    return WorkflowStoreClient(base_url="http://store.test", transport=httpx.MockTransport(handler))


def test_save_sends_whole_document():
    graph = instantiate("singleApproval")
    seen = []

    def handler(request):
        seen.append(request)
        body = json.loads(request.content)
        return httpx.Response(200, json={"id": "wf_1", "name": "Purchase", "document": body})

    async def scenario():
        async with _client(handler) as client:
            return await client.save("wf_1", encode(graph))

    result = asyncio.run(scenario())
    assert seen[0].method == "PATCH"
    assert seen[0].url.path == "/workflows/wf_1"
    assert json.loads(seen[0].content) == encode(graph)
    assert result["document"] == encode(graph)


def test_load_decodes_document():
    graph = instantiate("parallelApproval")

    def handler(request):
        assert request.method == "GET"
        return httpx.Response(200, json={"id": "wf_1", "name": "Purchase", "document": encode(graph)})

    async def scenario():
        async with _client(handler) as client:
            return await client.load("wf_1")

    assert asyncio.run(scenario()) == graph


def test_load_refuses_newer_document():
    def handler(request):
        return httpx.Response(200, json={"id": "wf_1", "name": "x", "document": {"version": 9, "nodes": []}})

    async def scenario():
        async with _client(handler) as client:
            await client.load("wf_1")

    with pytest.raises(UnsupportedVersion):
        asyncio.run(scenario())


def test_missing_workflow():
    def handler(request):
        return httpx.Response(404, json={"detail": "Workflow not found"})

    async def scenario():
        async with _client(handler) as client:
            await client.save("wf_missing", {"version": 1})

    with pytest.raises(WorkflowNotFound) as exc_info:
        asyncio.run(scenario())
    assert exc_info.value.workflow_id == "wf_missing"


def test_server_side_violations_are_rebuilt():
    error = {
        "error": {
            "code": "INVALID_WORKFLOW",
            "message": "Workflow has 1 violation(s)",
            "details": [{"code": "UNREACHABLE_STEP", "entity_ids": ["f1"], "message": "unreachable"}],
            "phase": "save",
        }
    }

    def handler(request):
        return httpx.Response(422, json=error)

    async def scenario():
        async with _client(handler) as client:
            await client.save("wf_1", {"version": 1})

    with pytest.raises(InvalidWorkflow) as exc_info:
        asyncio.run(scenario())
    violation = exc_info.value.violations[0]
    assert violation.code == ViolationCode.UNREACHABLE_STEP
    assert violation.entity_ids == ("f1",)


def test_other_errors_raise_http_status():
    def handler(request):
        return httpx.Response(500, text="boom")

    async def scenario():
        async with _client(handler) as client:
            await client.save("wf_1", {"version": 1})

    with pytest.raises(httpx.HTTPStatusError):
        asyncio.run(scenario())


def test_client_plugs_into_save_coordinator():
    graph = instantiate("twoStepApproval")
    bodies = []

    def handler(request):
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"id": "wf_1", "name": "x", "document": bodies[-1]})

    async def scenario():
        async with _client(handler) as client:
            coordinator = SaveCoordinator("wf_1", client.save)
            return await coordinator.save(graph)

    assert asyncio.run(scenario()) == encode(graph)
    assert bodies == [encode(graph)]
