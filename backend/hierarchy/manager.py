"""
Per-kind operations for the Organization → Workspace → Team/Portfolio →
Project → Section → Task hierarchy.

Each kind gets create/get/list/update/delete functions that wrap the
owner-scoped store with:

- required-field checks (ValidationError, raised before any store access)
- parent checks: every parent id must resolve under the same owner
  (NotFoundError naming the parent kind otherwise)
- a whitelist of updatable fields per kind

Status fields are never recomputed here. Project completion and portfolio
status only change when the roll-up functions are called explicitly.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

import models
from hierarchy import store
from hierarchy import cascade
from hierarchy.errors import ValidationError

logger = logging.getLogger(__name__)

# Fields a caller may supply on create, beyond the required ones
CREATE_FIELDS = {
    "organizations": {"name"},
    "workspaces": {"organization_id", "name", "description"},
    "teams": {"workspace_id", "name", "description", "member_ids"},
    "portfolios": {"workspace_id", "name", "description"},
    "projects": {"portfolio_id", "team_id", "name", "description"},
    "sections": {"project_id", "name"},
    "tasks": {
        "section_id", "project_id", "parent_task_id", "title", "description",
        "assignee_id", "tags", "custom_fields", "dependencies", "subtask_ids",
    },
}

REQUIRED_FIELDS = {
    "organizations": ("name",),
    "workspaces": ("organization_id", "name"),
    "teams": ("workspace_id", "name"),
    "portfolios": ("workspace_id", "name"),
    "projects": ("portfolio_id", "name"),
    "sections": ("project_id", "name"),
    "tasks": ("section_id", "project_id", "title"),
}

# Parent foreign keys are never updatable; moving an entity is not supported
UPDATABLE_FIELDS = {
    "organizations": {"name"},
    "workspaces": {"name", "description"},
    "teams": {"name", "description", "member_ids"},
    "portfolios": {"name", "description"},
    "projects": {"name", "description", "status", "completion_percentage", "team_id"},
    "sections": {"name"},
    "tasks": {
        "title", "description", "assignee_id", "tags", "custom_fields",
        "dependencies", "status", "parent_task_id",
    },
}


# ============== Validation helpers ==============

def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _require_fields(kind: str, data: Dict[str, Any]) -> None:
    missing = [field for field in REQUIRED_FIELDS[kind] if _is_blank(data.get(field))]
    if missing:
        logger.info(f"Rejected {kind} create: missing {missing}")
        raise ValidationError(
            f"{', '.join(missing)} required",
            details={field: "required" for field in missing},
        )


def _reject_unknown(kind: str, data: Dict[str, Any], allowed: Iterable[str], action: str) -> None:
    unknown = set(data) - set(allowed)
    if unknown:
        logger.info(f"Rejected {kind} {action}: unsupported fields {sorted(unknown)}")
        raise ValidationError(
            f"Cannot {action} field(s) on {store.resource_name(kind)}: {', '.join(sorted(unknown))}",
            details={field: "not allowed" for field in unknown},
        )


def _unique(values: Optional[Iterable[Any]]) -> List[Any]:
    """Deduplicate while keeping first-seen order (set semantics, stable output)."""
    return list(dict.fromkeys(values or []))


def parse_status(value: Any) -> models.WorkStatus:
    try:
        return models.WorkStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in models.WorkStatus)
        raise ValidationError(f"Invalid status '{value}'. Expected one of: {allowed}")


def _check_percentage(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError("completion_percentage must be a number")
    if value < 0 or value > 100:
        raise ValidationError("completion_percentage must be between 0 and 100")
    return float(value)


def _check_team_placement(db: Session, team_id: str, portfolio, owner_id: str) -> None:
    """A project's team must exist and live in the portfolio's workspace."""
    team = store.require_entity(db, "teams", team_id, owner_id)
    if team.workspace_id != portfolio.workspace_id:
        logger.info(f"Team {team_id} is in workspace {team.workspace_id}, portfolio is in {portfolio.workspace_id}")
        raise ValidationError("Team must belong to the same workspace as the portfolio")


def _create(db: Session, kind: str, data: Dict[str, Any], owner_id: str, defaults: Optional[Dict[str, Any]] = None) -> str:
    fields = {key: value for key, value in data.items() if value is not None}
    fields.update(defaults or {})
    entity_id = store.create_entity(db, kind, owner_id, fields)
    logger.info(f"{store.resource_name(kind)} created: {entity_id} by owner {owner_id}")
    return entity_id


def _update(db: Session, kind: str, entity_id: str, updates: Dict[str, Any], owner_id: str) -> None:
    _reject_unknown(kind, updates, UPDATABLE_FIELDS[kind], "update")

    for field in REQUIRED_FIELDS[kind]:
        if field in updates and _is_blank(updates[field]):
            raise ValidationError(f"{field} cannot be empty", details={field: "required"})

    fields = dict(updates)
    if "status" in fields:
        fields["status"] = parse_status(fields["status"])
    if "completion_percentage" in fields:
        fields["completion_percentage"] = _check_percentage(fields["completion_percentage"])
    for list_field in ("member_ids", "tags"):
        if list_field in fields:
            fields[list_field] = _unique(fields[list_field])
    if "dependencies" in fields:
        fields["dependencies"] = list(fields["dependencies"] or [])
    if "custom_fields" in fields:
        fields["custom_fields"] = dict(fields["custom_fields"] or {})

    store.update_entity(db, kind, entity_id, owner_id, fields)
    logger.info(f"{store.resource_name(kind)} updated: {entity_id} ({', '.join(sorted(fields))})")


def _prepare_create(kind: str, data: Dict[str, Any]) -> Dict[str, Any]:
    data = dict(data or {})
    _require_fields(kind, data)
    _reject_unknown(kind, data, CREATE_FIELDS[kind], "set")
    return data


# ============== Organizations ==============

def create_organization(db: Session, data: Dict[str, Any], owner_id: str) -> str:
    data = _prepare_create("organizations", data)
    return _create(db, "organizations", data, owner_id)


def get_organization(db: Session, organization_id: str, owner_id: str):
    return store.get_entity(db, "organizations", organization_id, owner_id)


def list_organizations(db: Session, owner_id: str) -> List[models.Organization]:
    return store.list_entities(db, "organizations", owner_id)


def update_organization(db: Session, organization_id: str, updates: Dict[str, Any], owner_id: str) -> None:
    _update(db, "organizations", organization_id, updates, owner_id)


def delete_organization(db: Session, organization_id: str, owner_id: str) -> None:
    store.delete_entity(db, "organizations", organization_id, owner_id)


# ============== Workspaces ==============

def create_workspace(db: Session, data: Dict[str, Any], owner_id: str) -> str:
    data = _prepare_create("workspaces", data)
    store.require_entity(db, "organizations", data["organization_id"], owner_id)
    return _create(db, "workspaces", data, owner_id)


def get_workspace(db: Session, workspace_id: str, owner_id: str):
    return store.get_entity(db, "workspaces", workspace_id, owner_id)


def list_workspaces(db: Session, owner_id: str, filters: Optional[Dict[str, Any]] = None) -> List[models.Workspace]:
    return store.list_entities(db, "workspaces", owner_id, filters)


def update_workspace(db: Session, workspace_id: str, updates: Dict[str, Any], owner_id: str) -> None:
    _update(db, "workspaces", workspace_id, updates, owner_id)


def delete_workspace(db: Session, workspace_id: str, owner_id: str) -> None:
    store.delete_entity(db, "workspaces", workspace_id, owner_id)


# ============== Teams ==============

def create_team(db: Session, data: Dict[str, Any], owner_id: str) -> str:
    data = _prepare_create("teams", data)
    store.require_entity(db, "workspaces", data["workspace_id"], owner_id)
    data["member_ids"] = _unique(data.get("member_ids"))
    return _create(db, "teams", data, owner_id)


def get_team(db: Session, team_id: str, owner_id: str):
    return store.get_entity(db, "teams", team_id, owner_id)


def list_teams(db: Session, owner_id: str, filters: Optional[Dict[str, Any]] = None) -> List[models.Team]:
    return store.list_entities(db, "teams", owner_id, filters)


def update_team(db: Session, team_id: str, updates: Dict[str, Any], owner_id: str) -> None:
    _update(db, "teams", team_id, updates, owner_id)


def delete_team(db: Session, team_id: str, owner_id: str) -> None:
    store.delete_entity(db, "teams", team_id, owner_id)


# ============== Portfolios ==============

def create_portfolio(db: Session, data: Dict[str, Any], owner_id: str) -> str:
    data = _prepare_create("portfolios", data)
    store.require_entity(db, "workspaces", data["workspace_id"], owner_id)
    return _create(db, "portfolios", data, owner_id)


def get_portfolio(db: Session, portfolio_id: str, owner_id: str):
    return store.get_entity(db, "portfolios", portfolio_id, owner_id)


def list_portfolios(db: Session, owner_id: str, filters: Optional[Dict[str, Any]] = None) -> List[models.Portfolio]:
    return store.list_entities(db, "portfolios", owner_id, filters)


def update_portfolio(db: Session, portfolio_id: str, updates: Dict[str, Any], owner_id: str) -> None:
    _update(db, "portfolios", portfolio_id, updates, owner_id)


def delete_portfolio(db: Session, portfolio_id: str, owner_id: str) -> None:
    store.delete_entity(db, "portfolios", portfolio_id, owner_id)


# ============== Projects ==============

def create_project(db: Session, data: Dict[str, Any], owner_id: str) -> str:
    data = _prepare_create("projects", data)
    portfolio = store.require_entity(db, "portfolios", data["portfolio_id"], owner_id)
    if data.get("team_id") is not None:
        _check_team_placement(db, data["team_id"], portfolio, owner_id)

    return _create(
        db, "projects", data, owner_id,
        defaults={"status": models.WorkStatus.not_started, "completion_percentage": 0.0},
    )


def get_project(db: Session, project_id: str, owner_id: str):
    return store.get_entity(db, "projects", project_id, owner_id)


def list_projects(db: Session, owner_id: str, filters: Optional[Dict[str, Any]] = None) -> List[models.Project]:
    return store.list_entities(db, "projects", owner_id, filters)


def update_project(db: Session, project_id: str, updates: Dict[str, Any], owner_id: str) -> None:
    if updates.get("team_id") is not None:
        project = store.get_entity(db, "projects", project_id, owner_id)
        # Invisible projects fall through so the store reports NotFound/Forbidden
        if project is not None:
            portfolio = store.require_entity(db, "portfolios", project.portfolio_id, owner_id)
            _check_team_placement(db, updates["team_id"], portfolio, owner_id)
    _update(db, "projects", project_id, updates, owner_id)


def delete_project(db: Session, project_id: str, owner_id: str) -> None:
    store.delete_entity(db, "projects", project_id, owner_id)


# ============== Sections ==============

def create_section(db: Session, data: Dict[str, Any], owner_id: str) -> str:
    data = _prepare_create("sections", data)
    store.require_entity(db, "projects", data["project_id"], owner_id)
    return _create(db, "sections", data, owner_id)


def get_section(db: Session, section_id: str, owner_id: str):
    return store.get_entity(db, "sections", section_id, owner_id)


def list_sections(db: Session, owner_id: str, filters: Optional[Dict[str, Any]] = None) -> List[models.Section]:
    return store.list_entities(db, "sections", owner_id, filters)


def update_section(db: Session, section_id: str, updates: Dict[str, Any], owner_id: str) -> None:
    _update(db, "sections", section_id, updates, owner_id)


def delete_section(db: Session, section_id: str, owner_id: str) -> None:
    store.delete_entity(db, "sections", section_id, owner_id)


# ============== Tasks ==============

def create_task(db: Session, data: Dict[str, Any], owner_id: str) -> str:
    """
    Create a task, or a subtask when parent_task_id is set.

    The section must belong to the given project; a parent task must exist
    under the same owner and in the same project. New tasks always start
    as not_started.

    subtask_ids attaches existing tasks of the same project under the new
    task. They are all checked before anything is written, then linked one
    by one after the insert (not atomic with it).
    """
    data = _prepare_create("tasks", data)
    subtask_ids = _unique(data.pop("subtask_ids", None))

    store.require_entity(db, "projects", data["project_id"], owner_id)
    section = store.require_entity(db, "sections", data["section_id"], owner_id)
    if section.project_id != data["project_id"]:
        logger.info(f"Section {section.id} belongs to project {section.project_id}, not {data['project_id']}")
        raise ValidationError("Section must belong to the given project")

    parent_task_id = data.get("parent_task_id")
    if parent_task_id is not None:
        parent = store.require_entity(db, "tasks", parent_task_id, owner_id)
        if parent.project_id != data["project_id"]:
            logger.info(f"Parent task {parent.id} is in project {parent.project_id}, not {data['project_id']}")
            raise ValidationError("Parent task must be in the same project")

    for subtask_id in subtask_ids:
        subtask = store.require_entity(db, "tasks", subtask_id, owner_id)
        if subtask.project_id != data["project_id"]:
            raise ValidationError("Parent task must be in the same project")
        # The new task sits below parent_task_id, so none of its ancestors may become its subtask
        if parent_task_id is not None and (
            subtask_id == parent_task_id or cascade.is_descendant(db, subtask_id, parent_task_id, owner_id)
        ):
            raise ValidationError("Cannot create circular subtask relationship")

    data["tags"] = _unique(data.get("tags"))
    data["custom_fields"] = dict(data.get("custom_fields") or {})
    data["dependencies"] = list(data.get("dependencies") or [])

    task_id = _create(db, "tasks", data, owner_id, defaults={"status": models.WorkStatus.not_started})

    for subtask_id in subtask_ids:
        cascade.add_subtask(db, task_id, subtask_id, owner_id)

    return task_id


def get_task(db: Session, task_id: str, owner_id: str):
    return store.get_entity(db, "tasks", task_id, owner_id)


def list_tasks(db: Session, owner_id: str, filters: Optional[Dict[str, Any]] = None) -> List[models.Task]:
    filters = dict(filters or {})
    if filters.get("status") is not None:
        filters["status"] = parse_status(filters["status"])
    return store.list_entities(db, "tasks", owner_id, filters)


def update_task(db: Session, task_id: str, updates: Dict[str, Any], owner_id: str) -> None:
    """
    Partially update a task.

    section_id and project_id are not updatable. Setting parent_task_id goes
    through the same checks as linking a subtask; setting it to None unlinks.
    Changing status does not refresh any roll-up.
    """
    parent_task_id = updates.get("parent_task_id")
    if parent_task_id is not None:
        task = store.get_entity(db, "tasks", task_id, owner_id)
        if task is not None:
            cascade.check_link(db, parent_task_id, task_id, owner_id)
    _update(db, "tasks", task_id, updates, owner_id)


def delete_task(db: Session, task_id: str, owner_id: str) -> int:
    """Delete a task and its whole subtask subtree. Returns the number of tasks removed."""
    return cascade.delete_task_cascade(db, task_id, owner_id)
