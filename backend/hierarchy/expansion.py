"""
Expanded reads: an entity together with its direct children.

Children are looked up by their parent foreign key at read time; nothing
here is persisted. Every function returns None when the root entity is
missing or owned by someone else, and never returns a partial expansion.
"""

import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from hierarchy import store
from hierarchy.errors import ValidationError

logger = logging.getLogger(__name__)


def _oldest_first(db: Session, kind: str, owner_id: str, filters: Dict[str, Any]):
    return list(reversed(store.list_entities(db, kind, owner_id, filters)))


def get_portfolio_with_projects(db: Session, portfolio_id: str, owner_id: str) -> Optional[Dict[str, Any]]:
    portfolio = store.get_entity(db, "portfolios", portfolio_id, owner_id)
    if portfolio is None:
        return None

    projects = _oldest_first(db, "projects", owner_id, {"portfolio_id": portfolio_id})
    return {**store.as_dict(portfolio), "projects": projects}


def get_project_with_sections(db: Session, project_id: str, owner_id: str) -> Optional[Dict[str, Any]]:
    project = store.get_entity(db, "projects", project_id, owner_id)
    if project is None:
        return None

    sections = _oldest_first(db, "sections", owner_id, {"project_id": project_id})
    return {**store.as_dict(project), "sections": sections}


def get_project_with_full_hierarchy(db: Session, project_id: str, owner_id: str) -> Optional[Dict[str, Any]]:
    """
    Project with its sections, each section with its tasks.

    One query per section after the project and section lookups.
    """
    project = store.get_entity(db, "projects", project_id, owner_id)
    if project is None:
        return None

    sections = []
    for section in _oldest_first(db, "sections", owner_id, {"project_id": project_id}):
        tasks = _oldest_first(db, "tasks", owner_id, {"section_id": section.id})
        sections.append({**store.as_dict(section), "tasks": tasks})

    logger.debug(f"Expanded project {project_id}: {len(sections)} section(s)")
    return {**store.as_dict(project), "sections": sections}


def get_section_with_tasks(db: Session, section_id: str, owner_id: str) -> Optional[Dict[str, Any]]:
    section = store.get_entity(db, "sections", section_id, owner_id)
    if section is None:
        return None

    tasks = _oldest_first(db, "tasks", owner_id, {"section_id": section_id})
    return {**store.as_dict(section), "tasks": tasks}


def get_task_with_subtasks(db: Session, task_id: str, owner_id: str) -> Optional[Dict[str, Any]]:
    task = store.get_entity(db, "tasks", task_id, owner_id)
    if task is None:
        return None

    subtasks = _oldest_first(db, "tasks", owner_id, {"parent_task_id": task_id})
    return {
        **store.as_dict(task),
        "subtask_ids": [subtask.id for subtask in subtasks],
        "subtasks": subtasks,
    }


# Supported ?expand= values per collection
EXPANSIONS = {
    "portfolios": {"projects": get_portfolio_with_projects},
    "projects": {
        "sections": get_project_with_sections,
        "full": get_project_with_full_hierarchy,
    },
    "sections": {"tasks": get_section_with_tasks},
    "tasks": {"subtasks": get_task_with_subtasks},
}


def expand_entity(db: Session, kind: str, entity_id: str, owner_id: str, expand: str) -> Optional[Dict[str, Any]]:
    """
    Resolve an ?expand= request for one entity.

    Raises:
        ValidationError: the expansion is not supported for this kind
    """
    resolver = EXPANSIONS.get(kind, {}).get(expand)
    if resolver is None:
        supported = ", ".join(sorted(EXPANSIONS.get(kind, {}))) or "none"
        raise ValidationError(f"Unsupported expand '{expand}' for {kind}. Supported: {supported}")
    return resolver(db, entity_id, owner_id)
