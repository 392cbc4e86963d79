#!/usr/bin/env python3
"""
Portfolio Tracker MCP Server - STDIO Mode

This is the stdio-based server for desktop MCP clients.
For HTTP/SSE access, use server.py instead; it serves the same tools.
"""

import os
import sys
import json
import asyncio
from typing import Any, Optional
import httpx
from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import Tool, TextContent

# Configuration
API_BASE_URL = os.getenv("PORTFOLIO_TRACKER_API_URL", "http://localhost:8000")
USER_ID = os.getenv("PORTFOLIO_TRACKER_USER_ID")


def validate_user_id():
    """
    Validate the identity configuration.

    Raises SystemExit if PORTFOLIO_TRACKER_USER_ID is missing or a placeholder.
    Deferred to runtime (not import time) so the module can be imported by
    tests and tooling.
    """
    INVALID_IDS = ["SET_YOUR_USER_ID_HERE", "YOUR_USER_ID", "PLACEHOLDER", "", "null", "None", "undefined"]
    if not USER_ID or USER_ID.strip() in INVALID_IDS:
        print("ERROR: Invalid or missing PORTFOLIO_TRACKER_USER_ID", file=sys.stderr)
        sys.exit(1)


# Initialize MCP server
server = Server("portfolio-tracker")

# HTTP client for API calls
http_client: Optional[httpx.AsyncClient] = None


async def get_client() -> httpx.AsyncClient:
    global http_client
    if http_client is None:
        headers = {}
        if USER_ID:
            headers["X-User-Id"] = USER_ID
        http_client = httpx.AsyncClient(base_url=API_BASE_URL, timeout=30.0, headers=headers)
    return http_client


async def api_request(method: str, endpoint: str, data: dict = None) -> dict:
    """Make an API request to the backend."""
    client = await get_client()
    try:
        if method == "GET":
            response = await client.get(endpoint, params=data)
        elif method == "POST":
            response = await client.post(endpoint, json=data)
        elif method == "PATCH":
            response = await client.patch(endpoint, json=data)
        elif method == "DELETE":
            response = await client.delete(endpoint)
        else:
            return {"error": f"Unsupported method: {method}"}

        if response.status_code >= 400:
            return {"error": f"API error: {response.status_code}", "detail": response.text}

        if response.status_code == 204 or not response.text:
            return {"success": True}

        return response.json()
    except httpx.RequestError as e:
        return {"error": f"Request failed: {str(e)}"}
    except json.JSONDecodeError:
        return {"error": "Invalid JSON response from API"}


def pick(arguments: dict, keys: list) -> dict:
    """Copy the given keys from the tool arguments when present."""
    return {k: arguments[k] for k in keys if k in arguments}


STATUS_SCHEMA = {"type": "string", "enum": ["not_started", "in_progress", "completed"]}


@server.list_tools()
async def list_tools() -> list[Tool]:
    """List all available tools."""
    return [
        # Organizations and workspaces
        Tool(name="list_organizations", description="List your organizations",
             inputSchema={"type": "object", "properties": {}, "required": []}),
        Tool(name="create_organization", description="Create an organization",
             inputSchema={"type": "object", "properties": {
                 "name": {"type": "string", "description": "Organization name"}
             }, "required": ["name"]}),
        Tool(name="list_workspaces", description="List workspaces, optionally within one organization",
             inputSchema={"type": "object", "properties": {
                 "organization_id": {"type": "string", "description": "Organization ID (optional)"}
             }, "required": []}),
        Tool(name="create_workspace", description="Create a workspace in an organization",
             inputSchema={"type": "object", "properties": {
                 "organization_id": {"type": "string", "description": "Organization ID"},
                 "name": {"type": "string", "description": "Workspace name"},
                 "description": {"type": "string", "description": "Workspace description (optional)"}
             }, "required": ["organization_id", "name"]}),
        Tool(name="update_organization", description="Rename an organization",
             inputSchema={"type": "object", "properties": {
                 "organization_id": {"type": "string", "description": "Organization ID"},
                 "name": {"type": "string", "description": "New organization name"}
             }, "required": ["organization_id"]}),
        Tool(name="delete_organization", description="Delete an organization. Its workspaces are not removed",
             inputSchema={"type": "object", "properties": {
                 "organization_id": {"type": "string", "description": "Organization ID"}
             }, "required": ["organization_id"]}),
        Tool(name="update_workspace", description="Update a workspace",
             inputSchema={"type": "object", "properties": {
                 "workspace_id": {"type": "string", "description": "Workspace ID"},
                 "name": {"type": "string", "description": "New workspace name"},
                 "description": {"type": "string", "description": "New workspace description"}
             }, "required": ["workspace_id"]}),
        Tool(name="delete_workspace", description="Delete a workspace",
             inputSchema={"type": "object", "properties": {
                 "workspace_id": {"type": "string", "description": "Workspace ID"}
             }, "required": ["workspace_id"]}),

        # Teams
        Tool(name="list_teams", description="List teams, optionally within one workspace",
             inputSchema={"type": "object", "properties": {
                 "workspace_id": {"type": "string", "description": "Workspace ID (optional)"}
             }, "required": []}),
        Tool(name="create_team", description="Create a team in a workspace",
             inputSchema={"type": "object", "properties": {
                 "workspace_id": {"type": "string", "description": "Workspace ID"},
                 "name": {"type": "string", "description": "Team name"},
                 "description": {"type": "string", "description": "Team description (optional)"},
                 "member_ids": {"type": "array", "items": {"type": "string"}, "description": "Member user IDs"}
             }, "required": ["workspace_id", "name"]}),
        Tool(name="update_team", description="Update a team. member_ids replaces the whole member set",
             inputSchema={"type": "object", "properties": {
                 "team_id": {"type": "string", "description": "Team ID"},
                 "name": {"type": "string", "description": "New team name"},
                 "description": {"type": "string", "description": "New team description"},
                 "member_ids": {"type": "array", "items": {"type": "string"}, "description": "Member user IDs"}
             }, "required": ["team_id"]}),
        Tool(name="delete_team", description="Delete a team. Projects keep their team_id",
             inputSchema={"type": "object", "properties": {
                 "team_id": {"type": "string", "description": "Team ID"}
             }, "required": ["team_id"]}),

        # Portfolios
        Tool(name="list_portfolios", description="List portfolios, optionally within one workspace",
             inputSchema={"type": "object", "properties": {
                 "workspace_id": {"type": "string", "description": "Workspace ID (optional)"}
             }, "required": []}),
        Tool(name="create_portfolio", description="Create a portfolio in a workspace",
             inputSchema={"type": "object", "properties": {
                 "workspace_id": {"type": "string", "description": "Workspace ID"},
                 "name": {"type": "string", "description": "Portfolio name"},
                 "description": {"type": "string", "description": "Portfolio description (optional)"}
             }, "required": ["workspace_id", "name"]}),
        Tool(name="get_portfolio", description="Get a portfolio with its projects",
             inputSchema={"type": "object", "properties": {
                 "portfolio_id": {"type": "string", "description": "Portfolio ID"}
             }, "required": ["portfolio_id"]}),
        Tool(name="rollup_portfolio",
             description="Recompute a portfolio's completion status from its projects' tasks and store it",
             inputSchema={"type": "object", "properties": {
                 "portfolio_id": {"type": "string", "description": "Portfolio ID"}
             }, "required": ["portfolio_id"]}),
        Tool(name="update_portfolio", description="Update a portfolio's name or description",
             inputSchema={"type": "object", "properties": {
                 "portfolio_id": {"type": "string", "description": "Portfolio ID"},
                 "name": {"type": "string", "description": "New portfolio name"},
                 "description": {"type": "string", "description": "New portfolio description"}
             }, "required": ["portfolio_id"]}),
        Tool(name="delete_portfolio", description="Delete a portfolio",
             inputSchema={"type": "object", "properties": {
                 "portfolio_id": {"type": "string", "description": "Portfolio ID"}
             }, "required": ["portfolio_id"]}),

        # Projects
        Tool(name="list_projects", description="List projects, optionally filtered by portfolio or team",
             inputSchema={"type": "object", "properties": {
                 "portfolio_id": {"type": "string", "description": "Portfolio ID (optional)"},
                 "team_id": {"type": "string", "description": "Team ID (optional)"}
             }, "required": []}),
        Tool(name="create_project", description="Create a project in a portfolio",
             inputSchema={"type": "object", "properties": {
                 "portfolio_id": {"type": "string", "description": "Portfolio ID"},
                 "name": {"type": "string", "description": "Project name"},
                 "description": {"type": "string", "description": "Project description (optional)"},
                 "team_id": {"type": "string", "description": "Team ID in the same workspace (optional)"}
             }, "required": ["portfolio_id", "name"]}),
        Tool(name="get_project",
             description="Get a project. Set full=true to include its sections and their tasks",
             inputSchema={"type": "object", "properties": {
                 "project_id": {"type": "string", "description": "Project ID"},
                 "full": {"type": "boolean", "description": "Include sections and tasks"}
             }, "required": ["project_id"]}),
        Tool(name="update_project", description="Update a project",
             inputSchema={"type": "object", "properties": {
                 "project_id": {"type": "string", "description": "Project ID"},
                 "name": {"type": "string", "description": "New project name"},
                 "description": {"type": "string", "description": "New project description"},
                 "status": STATUS_SCHEMA,
                 "team_id": {"type": "string", "description": "Team ID"}
             }, "required": ["project_id"]}),
        Tool(name="calculate_project_completion",
             description="Recompute a project's completion percentage from its tasks and store it",
             inputSchema={"type": "object", "properties": {
                 "project_id": {"type": "string", "description": "Project ID"}
             }, "required": ["project_id"]}),
        Tool(name="delete_project", description="Delete a project",
             inputSchema={"type": "object", "properties": {
                 "project_id": {"type": "string", "description": "Project ID"}
             }, "required": ["project_id"]}),

        # Sections
        Tool(name="list_sections", description="List the sections of a project",
             inputSchema={"type": "object", "properties": {
                 "project_id": {"type": "string", "description": "Project ID"}
             }, "required": ["project_id"]}),
        Tool(name="create_section", description="Create a section in a project",
             inputSchema={"type": "object", "properties": {
                 "project_id": {"type": "string", "description": "Project ID"},
                 "name": {"type": "string", "description": "Section name"}
             }, "required": ["project_id", "name"]}),
        Tool(name="get_section", description="Get a section with its tasks",
             inputSchema={"type": "object", "properties": {
                 "section_id": {"type": "string", "description": "Section ID"}
             }, "required": ["section_id"]}),
        Tool(name="update_section", description="Rename a section",
             inputSchema={"type": "object", "properties": {
                 "section_id": {"type": "string", "description": "Section ID"},
                 "name": {"type": "string", "description": "New section name"}
             }, "required": ["section_id"]}),
        Tool(name="delete_section", description="Delete a section. Its tasks are not removed",
             inputSchema={"type": "object", "properties": {
                 "section_id": {"type": "string", "description": "Section ID"}
             }, "required": ["section_id"]}),

        # Tasks
        Tool(name="list_tasks", description="List tasks with optional filters",
             inputSchema={"type": "object", "properties": {
                 "project_id": {"type": "string", "description": "Project ID"},
                 "section_id": {"type": "string", "description": "Section ID"},
                 "assignee_id": {"type": "string", "description": "Assignee user ID"},
                 "status": STATUS_SCHEMA,
                 "parent_task_id": {"type": "string", "description": "Only subtasks of this task"}
             }, "required": []}),
        Tool(name="create_task", description="Create a task, or a subtask when parent_task_id is set",
             inputSchema={"type": "object", "properties": {
                 "project_id": {"type": "string", "description": "Project ID"},
                 "section_id": {"type": "string", "description": "Section ID in that project"},
                 "title": {"type": "string", "description": "Task title"},
                 "description": {"type": "string", "description": "Task description"},
                 "assignee_id": {"type": "string", "description": "Assignee user ID"},
                 "parent_task_id": {"type": "string", "description": "Parent task ID"},
                 "tags": {"type": "array", "items": {"type": "string"}},
                 "custom_fields": {"type": "object", "additionalProperties": {"type": "string"}},
                 "dependencies": {"type": "array", "items": {"type": "string"}, "description": "Task IDs"},
                 "subtask_ids": {"type": "array", "items": {"type": "string"},
                                 "description": "Existing task IDs in the same project to attach as subtasks"}
             }, "required": ["project_id", "section_id", "title"]}),
        Tool(name="get_task", description="Get a task with its direct subtasks",
             inputSchema={"type": "object", "properties": {
                 "task_id": {"type": "string", "description": "Task ID"}
             }, "required": ["task_id"]}),
        Tool(name="update_task", description="Update a task. Does not refresh project roll-ups",
             inputSchema={"type": "object", "properties": {
                 "task_id": {"type": "string", "description": "Task ID"},
                 "title": {"type": "string"},
                 "description": {"type": "string"},
                 "assignee_id": {"type": "string"},
                 "status": STATUS_SCHEMA,
                 "tags": {"type": "array", "items": {"type": "string"}},
                 "custom_fields": {"type": "object", "additionalProperties": {"type": "string"}},
                 "dependencies": {"type": "array", "items": {"type": "string"}}
             }, "required": ["task_id"]}),
        Tool(name="complete_task", description="Mark a task as completed",
             inputSchema={"type": "object", "properties": {
                 "task_id": {"type": "string", "description": "Task ID"}
             }, "required": ["task_id"]}),
        Tool(name="delete_task", description="Delete a task and all of its subtasks",
             inputSchema={"type": "object", "properties": {
                 "task_id": {"type": "string", "description": "Task ID"}
             }, "required": ["task_id"]}),
        Tool(name="add_subtask", description="Make an existing task a subtask of another task",
             inputSchema={"type": "object", "properties": {
                 "parent_task_id": {"type": "string", "description": "Parent task ID"},
                 "subtask_id": {"type": "string", "description": "Task ID to attach"}
             }, "required": ["parent_task_id", "subtask_id"]}),
        Tool(name="remove_subtask", description="Detach a subtask from its parent task",
             inputSchema={"type": "object", "properties": {
                 "parent_task_id": {"type": "string", "description": "Parent task ID"},
                 "subtask_id": {"type": "string", "description": "Subtask ID to detach"}
             }, "required": ["parent_task_id", "subtask_id"]}),
    ]


@server.call_tool()
async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
    """Handle tool calls."""
    result = None

    # Organizations and workspaces
    if name == "list_organizations":
        result = await api_request("GET", "/api/organizations")
    elif name == "create_organization":
        result = await api_request("POST", "/api/organizations", {"name": arguments["name"]})
    elif name == "list_workspaces":
        result = await api_request("GET", "/api/workspaces", pick(arguments, ["organization_id"]))
    elif name == "create_workspace":
        data = pick(arguments, ["organization_id", "name", "description"])
        result = await api_request("POST", "/api/workspaces", data)
    elif name == "update_organization":
        data = pick(arguments, ["name"])
        result = await api_request("PATCH", f"/api/organizations/{arguments['organization_id']}", data)
    elif name == "delete_organization":
        result = await api_request("DELETE", f"/api/organizations/{arguments['organization_id']}")
    elif name == "update_workspace":
        data = pick(arguments, ["name", "description"])
        result = await api_request("PATCH", f"/api/workspaces/{arguments['workspace_id']}", data)
    elif name == "delete_workspace":
        result = await api_request("DELETE", f"/api/workspaces/{arguments['workspace_id']}")

    # Teams
    elif name == "list_teams":
        result = await api_request("GET", "/api/teams", pick(arguments, ["workspace_id"]))
    elif name == "create_team":
        data = pick(arguments, ["workspace_id", "name", "description", "member_ids"])
        result = await api_request("POST", "/api/teams", data)
    elif name == "update_team":
        data = pick(arguments, ["name", "description", "member_ids"])
        result = await api_request("PATCH", f"/api/teams/{arguments['team_id']}", data)
    elif name == "delete_team":
        result = await api_request("DELETE", f"/api/teams/{arguments['team_id']}")

    # Portfolios
    elif name == "list_portfolios":
        result = await api_request("GET", "/api/portfolios", pick(arguments, ["workspace_id"]))
    elif name == "create_portfolio":
        data = pick(arguments, ["workspace_id", "name", "description"])
        result = await api_request("POST", "/api/portfolios", data)
    elif name == "get_portfolio":
        result = await api_request("GET", f"/api/portfolios/{arguments['portfolio_id']}", {"expand": "projects"})
    elif name == "rollup_portfolio":
        result = await api_request("POST", f"/api/portfolios/{arguments['portfolio_id']}/rollup")
    elif name == "update_portfolio":
        data = pick(arguments, ["name", "description"])
        result = await api_request("PATCH", f"/api/portfolios/{arguments['portfolio_id']}", data)
    elif name == "delete_portfolio":
        result = await api_request("DELETE", f"/api/portfolios/{arguments['portfolio_id']}")

    # Projects
    elif name == "list_projects":
        result = await api_request("GET", "/api/projects", pick(arguments, ["portfolio_id", "team_id"]))
    elif name == "create_project":
        data = pick(arguments, ["portfolio_id", "name", "description", "team_id"])
        result = await api_request("POST", "/api/projects", data)
    elif name == "get_project":
        expand = "full" if arguments.get("full") else "sections"
        result = await api_request("GET", f"/api/projects/{arguments['project_id']}", {"expand": expand})
    elif name == "update_project":
        data = pick(arguments, ["name", "description", "status", "team_id"])
        result = await api_request("PATCH", f"/api/projects/{arguments['project_id']}", data)
    elif name == "calculate_project_completion":
        result = await api_request("POST", f"/api/projects/{arguments['project_id']}/calculate-completion")
    elif name == "delete_project":
        result = await api_request("DELETE", f"/api/projects/{arguments['project_id']}")

    # Sections
    elif name == "list_sections":
        result = await api_request("GET", "/api/sections", {"project_id": arguments["project_id"]})
    elif name == "create_section":
        data = pick(arguments, ["project_id", "name"])
        result = await api_request("POST", "/api/sections", data)
    elif name == "get_section":
        result = await api_request("GET", f"/api/sections/{arguments['section_id']}", {"expand": "tasks"})
    elif name == "update_section":
        data = pick(arguments, ["name"])
        result = await api_request("PATCH", f"/api/sections/{arguments['section_id']}", data)
    elif name == "delete_section":
        result = await api_request("DELETE", f"/api/sections/{arguments['section_id']}")

    # Tasks
    elif name == "list_tasks":
        params = pick(arguments, ["project_id", "section_id", "assignee_id", "status", "parent_task_id"])
        result = await api_request("GET", "/api/tasks", params)
    elif name == "create_task":
        data = {
            "project_id": arguments["project_id"],
            "section_id": arguments["section_id"],
            "title": arguments["title"],
        }
        data.update(pick(arguments, ["description", "assignee_id", "parent_task_id", "tags", "custom_fields", "dependencies",
                                  "subtask_ids"]))
        result = await api_request("POST", "/api/tasks", data)
    elif name == "get_task":
        result = await api_request("GET", f"/api/tasks/{arguments['task_id']}", {"expand": "subtasks"})
    elif name == "update_task":
        data = pick(arguments, ["title", "description", "assignee_id", "status", "tags", "custom_fields", "dependencies"])
        result = await api_request("PATCH", f"/api/tasks/{arguments['task_id']}", data)
    elif name == "complete_task":
        result = await api_request("PATCH", f"/api/tasks/{arguments['task_id']}", {"status": "completed"})
    elif name == "delete_task":
        result = await api_request("DELETE", f"/api/tasks/{arguments['task_id']}")
    elif name == "add_subtask":
        endpoint = f"/api/tasks/{arguments['parent_task_id']}/subtasks/{arguments['subtask_id']}"
        result = await api_request("POST", endpoint)
    elif name == "remove_subtask":
        endpoint = f"/api/tasks/{arguments['parent_task_id']}/subtasks/{arguments['subtask_id']}"
        result = await api_request("DELETE", endpoint)

    else:
        result = {"error": f"Unknown tool: {name}"}

    return [TextContent(type="text", text=json.dumps(result, indent=2, default=str))]


async def main():
    # Validate identity before starting server
    validate_user_id()

    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())


if __name__ == "__main__":
    asyncio.run(main())
