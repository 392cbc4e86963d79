"""
Tests for expanded reads.
"""

from datetime import datetime, timezone
from typing import Dict, Any

import pytest
from sqlalchemy.orm import Session

import models
from hierarchy import expansion, manager
from hierarchy.errors import ValidationError
from tests.conftest import OWNER_A, OWNER_B, make_task


def test_portfolio_with_projects(test_db: Session, hierarchy: Dict[str, Any]):
    second = manager.create_project(test_db, {"portfolio_id": hierarchy["portfolio_id"], "name": "Launch"}, OWNER_A)

    expanded = expansion.get_portfolio_with_projects(test_db, hierarchy["portfolio_id"], OWNER_A)

    assert expanded["id"] == hierarchy["portfolio_id"]
    assert expanded["name"] == "Q4"
    assert {p.id for p in expanded["projects"]} == {hierarchy["project_id"], second}


def test_project_with_sections(test_db: Session, hierarchy: Dict[str, Any]):
    expanded = expansion.get_project_with_sections(test_db, hierarchy["project_id"], OWNER_A)

    assert [s.name for s in expanded["sections"]] == ["Planning"]


def test_project_with_full_hierarchy(test_db: Session, hierarchy: Dict[str, Any]):
    research = make_task(test_db, hierarchy, "Research")
    empty_section = manager.create_section(test_db, {"project_id": hierarchy["project_id"], "name": "Later"}, OWNER_A)

    expanded = expansion.get_project_with_full_hierarchy(test_db, hierarchy["project_id"], OWNER_A)

    sections = {s["id"]: s for s in expanded["sections"]}
    assert [t.id for t in sections[hierarchy["section_id"]]["tasks"]] == [research]
    assert sections[empty_section]["tasks"] == []


def test_section_with_tasks(test_db: Session, hierarchy: Dict[str, Any]):
    task_id = make_task(test_db, hierarchy, "Research")

    expanded = expansion.get_section_with_tasks(test_db, hierarchy["section_id"], OWNER_A)
    assert [t.id for t in expanded["tasks"]] == [task_id]


def test_task_with_subtasks(test_db: Session, hierarchy: Dict[str, Any]):
    parent = make_task(test_db, hierarchy, "Parent")
    child = make_task(test_db, hierarchy, "Child", parent_task_id=parent)

    expanded = expansion.get_task_with_subtasks(test_db, parent, OWNER_A)

    assert expanded["subtask_ids"] == [child]
    assert [t.title for t in expanded["subtasks"]] == ["Child"]


@pytest.mark.parametrize("resolver,key", [
    (expansion.get_portfolio_with_projects, "portfolio_id"),
    (expansion.get_project_with_sections, "project_id"),
    (expansion.get_project_with_full_hierarchy, "project_id"),
    (expansion.get_section_with_tasks, "section_id"),
])
def test_expansion_hidden_from_other_owner(test_db: Session, hierarchy: Dict[str, Any], resolver, key):
    assert resolver(test_db, hierarchy[key], OWNER_B) is None
    assert resolver(test_db, "missing", OWNER_A) is None


def test_task_expansion_hidden_from_other_owner(test_db: Session, hierarchy: Dict[str, Any]):
    task_id = make_task(test_db, hierarchy, "Private")
    assert expansion.get_task_with_subtasks(test_db, task_id, OWNER_B) is None


def test_expand_entity_dispatch(test_db: Session, hierarchy: Dict[str, Any]):
    expanded = expansion.expand_entity(test_db, "projects", hierarchy["project_id"], OWNER_A, "full")
    assert "tasks" in expanded["sections"][0]

    with pytest.raises(ValidationError):
        expansion.expand_entity(test_db, "projects", hierarchy["project_id"], OWNER_A, "tasks")
    with pytest.raises(ValidationError):
        expansion.expand_entity(test_db, "organizations", hierarchy["organization_id"], OWNER_A, "workspaces")


def backdate(db: Session, model, entity_id: str) -> None:
    """Move an entity's created_at into the past so ordering does not depend on clock resolution."""
    db.query(model).filter(model.id == entity_id).update({"created_at": datetime(2024, 1, 1, tzinfo=timezone.utc)})
    db.commit()


def test_expanded_children_are_oldest_first(test_db: Session, hierarchy: Dict[str, Any]):
    build = manager.create_section(test_db, {"project_id": hierarchy["project_id"], "name": "Build"}, OWNER_A)
    backdate(test_db, models.Section, hierarchy["section_id"])

    parent = make_task(test_db, hierarchy, "Parent")
    first = make_task(test_db, hierarchy, "First", parent_task_id=parent)
    second = make_task(test_db, hierarchy, "Second", parent_task_id=parent)
    backdate(test_db, models.Task, first)

    sections = expansion.get_project_with_sections(test_db, hierarchy["project_id"], OWNER_A)["sections"]
    assert [s.id for s in sections] == [hierarchy["section_id"], build]

    expanded = expansion.get_task_with_subtasks(test_db, parent, OWNER_A)
    assert expanded["subtask_ids"] == [first, second]
    assert [t.id for t in expanded["subtasks"]] == [first, second]

    # Plain lists stay newest first
    assert [s.id for s in manager.list_sections(test_db, OWNER_A, {"project_id": hierarchy["project_id"]})] == [
        build, hierarchy["section_id"]
    ]
