"""Tests for the Portfolio Tracker MCP tools against a mocked backend API."""
import asyncio
import json
import os
import sys

import httpx
import pytest

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

import stdio_server
from stdio_server import call_tool, list_tools


@pytest.fixture
def backend():
    """
    Route the MCP HTTP client to an in-process mock API.

    Yields the list of recorded requests; set `responses[(method, path)]`
    on the fixture to control what the mock returns.
    """
    recorded = []
    responses = {}

    def handler(request: httpx.Request) -> httpx.Response:
        recorded.append(request)
        status, body = responses.get((request.method, request.url.path), (200, {"ok": True}))
        return httpx.Response(status, json=body)

    stdio_server.http_client = httpx.AsyncClient(
        base_url="http://testserver",
        headers={"X-User-Id": "user-alice"},
        transport=httpx.MockTransport(handler),
    )
    recorded_state = {"requests": recorded, "responses": responses}
    yield recorded_state
    asyncio.run(stdio_server.http_client.aclose())
    stdio_server.http_client = None


def run_tool(name: str, arguments: dict):
    result = asyncio.run(call_tool(name, arguments))
    return json.loads(result[0].text)


def test_tool_names_are_unique():
    tools = asyncio.run(list_tools())
    names = [tool.name for tool in tools]
    assert len(names) == len(set(names))
    assert {"create_task", "add_subtask", "rollup_portfolio", "calculate_project_completion"} <= set(names)


def test_create_task_posts_body(backend):
    backend["responses"][("POST", "/api/tasks")] = (201, {"id": "t1", "title": "Research"})

    data = run_tool("create_task", {
        "project_id": "p1",
        "section_id": "s1",
        "title": "Research",
        "tags": ["ux"],
    })

    assert data == {"id": "t1", "title": "Research"}
    request = backend["requests"][0]
    assert request.method == "POST"
    assert request.headers["X-User-Id"] == "user-alice"
    assert json.loads(request.content) == {
        "project_id": "p1",
        "section_id": "s1",
        "title": "Research",
        "tags": ["ux"],
    }


def test_get_project_full_uses_expand(backend):
    run_tool("get_project", {"project_id": "p1", "full": True})

    request = backend["requests"][0]
    assert request.url.path == "/api/projects/p1"
    assert request.url.params["expand"] == "full"


def test_complete_task_patches_status(backend):
    run_tool("complete_task", {"task_id": "t1"})

    request = backend["requests"][0]
    assert request.method == "PATCH"
    assert json.loads(request.content) == {"status": "completed"}


def test_subtask_tools_hit_link_route(backend):
    run_tool("add_subtask", {"parent_task_id": "t1", "subtask_id": "t2"})
    run_tool("remove_subtask", {"parent_task_id": "t1", "subtask_id": "t2"})

    assert [(r.method, r.url.path) for r in backend["requests"]] == [
        ("POST", "/api/tasks/t1/subtasks/t2"),
        ("DELETE", "/api/tasks/t1/subtasks/t2"),
    ]


def test_api_errors_are_reported(backend):
    backend["responses"][("POST", "/api/portfolios/missing/rollup")] = (404, {"detail": "Portfolio not found"})

    data = run_tool("rollup_portfolio", {"portfolio_id": "missing"})

    assert data["error"] == "API error: 404"
    assert "Portfolio not found" in data["detail"]


def test_unknown_tool(backend):
    assert run_tool("does_not_exist", {}) == {"error": "Unknown tool: does_not_exist"}
    assert backend["requests"] == []


def test_every_kind_has_update_and_delete_tools():
    names = {tool.name for tool in asyncio.run(list_tools())}
    for kind in ["organization", "workspace", "team", "portfolio", "project", "section", "task"]:
        assert f"update_{kind}" in names
        assert f"delete_{kind}" in names


def test_update_and_delete_tools_hit_entity_routes(backend):
    run_tool("update_organization", {"organization_id": "o1", "name": "Acme Corp"})
    run_tool("delete_organization", {"organization_id": "o1"})
    run_tool("update_workspace", {"workspace_id": "w1", "description": "Platform"})
    run_tool("delete_workspace", {"workspace_id": "w1"})
    run_tool("delete_team", {"team_id": "tm1"})
    run_tool("update_portfolio", {"portfolio_id": "pf1", "name": "Q1"})
    run_tool("delete_portfolio", {"portfolio_id": "pf1"})
    run_tool("update_section", {"section_id": "s1", "name": "Build"})
    run_tool("delete_section", {"section_id": "s1"})

    assert [(r.method, r.url.path) for r in backend["requests"]] == [
        ("PATCH", "/api/organizations/o1"),
        ("DELETE", "/api/organizations/o1"),
        ("PATCH", "/api/workspaces/w1"),
        ("DELETE", "/api/workspaces/w1"),
        ("DELETE", "/api/teams/tm1"),
        ("PATCH", "/api/portfolios/pf1"),
        ("DELETE", "/api/portfolios/pf1"),
        ("PATCH", "/api/sections/s1"),
        ("DELETE", "/api/sections/s1"),
    ]
    assert json.loads(backend["requests"][0].content) == {"name": "Acme Corp"}
    assert json.loads(backend["requests"][2].content) == {"description": "Platform"}


def test_create_task_forwards_subtask_ids(backend):
    run_tool("create_task", {
        "project_id": "p1",
        "section_id": "s1",
        "title": "Epic",
        "subtask_ids": ["t1", "t2"],
    })

    assert json.loads(backend["requests"][0].content)["subtask_ids"] == ["t1", "t2"]
