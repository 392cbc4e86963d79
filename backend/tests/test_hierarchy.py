"""
Tests for per-kind hierarchy operations.

Covers:
- Required fields rejected before anything is written
- Parent references must resolve under the caller's identity
- Updatable-field whitelists
- Creation defaults for projects, teams and tasks
"""

import logging
from typing import Dict, Any

import pytest
from sqlalchemy.orm import Session

import models
from hierarchy import manager
from hierarchy.errors import ValidationError, ForbiddenError, NotFoundError
from tests.conftest import OWNER_A, OWNER_B, make_task

logger = logging.getLogger(__name__)


# ============== Required fields ==============


@pytest.mark.parametrize("kind,create,data", [
    ("organizations", manager.create_organization, {}),
    ("organizations", manager.create_organization, {"name": "   "}),
    ("workspaces", manager.create_workspace, {"name": "Eng"}),
    ("teams", manager.create_team, {"name": "Core"}),
    ("portfolios", manager.create_portfolio, {"workspace_id": "ws-1"}),
    ("projects", manager.create_project, {"name": "Redesign"}),
    ("sections", manager.create_section, {"project_id": "p-1", "name": ""}),
    ("tasks", manager.create_task, {"section_id": "s-1", "project_id": "p-1"}),
])
def test_missing_required_field_writes_nothing(test_db: Session, kind, create, data):
    with pytest.raises(ValidationError):
        create(test_db, data, OWNER_A)

    model = {
        "organizations": models.Organization,
        "workspaces": models.Workspace,
        "teams": models.Team,
        "portfolios": models.Portfolio,
        "projects": models.Project,
        "sections": models.Section,
        "tasks": models.Task,
    }[kind]
    assert test_db.query(model).count() == 0


def test_validation_error_lists_missing_fields(test_db: Session):
    with pytest.raises(ValidationError) as exc_info:
        manager.create_task(test_db, {"project_id": "p-1"}, OWNER_A)

    assert set(exc_info.value.details) == {"section_id", "title"}


def test_unknown_create_field_rejected(test_db: Session):
    with pytest.raises(ValidationError):
        manager.create_organization(test_db, {"name": "Acme", "color": "red"}, OWNER_A)


# ============== Parent checks ==============


def test_workspace_requires_existing_organization(test_db: Session):
    with pytest.raises(NotFoundError) as exc_info:
        manager.create_workspace(test_db, {"organization_id": "missing", "name": "Eng"}, OWNER_A)
    assert exc_info.value.resource == "Organization"


def test_parent_owned_by_someone_else_is_not_found(test_db: Session, hierarchy: Dict[str, Any]):
    with pytest.raises(NotFoundError):
        manager.create_section(test_db, {"project_id": hierarchy["project_id"], "name": "Mine"}, OWNER_B)

    assert len(manager.list_sections(test_db, OWNER_B)) == 0


def test_task_section_must_belong_to_project(test_db: Session, hierarchy: Dict[str, Any]):
    other_project = manager.create_project(
        test_db, {"portfolio_id": hierarchy["portfolio_id"], "name": "Other"}, OWNER_A
    )

    with pytest.raises(ValidationError):
        manager.create_task(
            test_db,
            {"section_id": hierarchy["section_id"], "project_id": other_project, "title": "Misplaced"},
            OWNER_A,
        )


def test_subtask_parent_must_be_in_same_project(test_db: Session, hierarchy: Dict[str, Any]):
    parent_id = make_task(test_db, hierarchy, "Parent")
    other_project = manager.create_project(
        test_db, {"portfolio_id": hierarchy["portfolio_id"], "name": "Other"}, OWNER_A
    )
    other_section = manager.create_section(test_db, {"project_id": other_project, "name": "Backlog"}, OWNER_A)

    with pytest.raises(ValidationError):
        manager.create_task(
            test_db,
            {
                "section_id": other_section,
                "project_id": other_project,
                "title": "Stray",
                "parent_task_id": parent_id,
            },
            OWNER_A,
        )


def test_project_team_must_share_portfolio_workspace(test_db: Session, hierarchy: Dict[str, Any]):
    other_workspace = manager.create_workspace(
        test_db, {"organization_id": hierarchy["organization_id"], "name": "Ops"}, OWNER_A
    )
    foreign_team = manager.create_team(test_db, {"workspace_id": other_workspace, "name": "SRE"}, OWNER_A)
    local_team = manager.create_team(test_db, {"workspace_id": hierarchy["workspace_id"], "name": "Core"}, OWNER_A)

    with pytest.raises(ValidationError):
        manager.create_project(
            test_db,
            {"portfolio_id": hierarchy["portfolio_id"], "name": "Infra", "team_id": foreign_team},
            OWNER_A,
        )

    project_id = manager.create_project(
        test_db,
        {"portfolio_id": hierarchy["portfolio_id"], "name": "Infra", "team_id": local_team},
        OWNER_A,
    )
    assert manager.get_project(test_db, project_id, OWNER_A).team_id == local_team


# ============== Defaults ==============


def test_project_defaults(test_db: Session, hierarchy: Dict[str, Any]):
    project = manager.get_project(test_db, hierarchy["project_id"], OWNER_A)

    assert project.status == models.WorkStatus.not_started
    assert project.completion_percentage == 0.0


def test_task_defaults(test_db: Session, hierarchy: Dict[str, Any]):
    task = manager.get_task(test_db, make_task(test_db, hierarchy, "Write brief"), OWNER_A)

    assert task.status == models.WorkStatus.not_started
    assert task.tags == []
    assert task.custom_fields == {}
    assert task.dependencies == []
    assert task.parent_task_id is None


def test_team_member_ids_deduplicated(test_db: Session, hierarchy: Dict[str, Any]):
    team_id = manager.create_team(
        test_db,
        {"workspace_id": hierarchy["workspace_id"], "name": "Core", "member_ids": ["u1", "u2", "u1"]},
        OWNER_A,
    )
    assert manager.get_team(test_db, team_id, OWNER_A).member_ids == ["u1", "u2"]

    manager.update_team(test_db, team_id, {"member_ids": ["u3", "u3"]}, OWNER_A)
    assert manager.get_team(test_db, team_id, OWNER_A).member_ids == ["u3"]


def test_task_tags_deduplicated(test_db: Session, hierarchy: Dict[str, Any]):
    task_id = make_task(test_db, hierarchy, "Tagged", tags=["ux", "ux", "copy"])
    assert manager.get_task(test_db, task_id, OWNER_A).tags == ["ux", "copy"]


# ============== Updates ==============


def test_update_whitelisted_fields(test_db: Session, hierarchy: Dict[str, Any]):
    manager.update_project(
        test_db,
        hierarchy["project_id"],
        {"name": "Redesign v2", "status": "in_progress", "completion_percentage": 40},
        OWNER_A,
    )

    project = manager.get_project(test_db, hierarchy["project_id"], OWNER_A)
    assert project.name == "Redesign v2"
    assert project.status == models.WorkStatus.in_progress
    assert project.completion_percentage == 40.0


@pytest.mark.parametrize("updates", [
    {"portfolio_id": "elsewhere"},
    {"owner_id": OWNER_B},
    {"id": "new-id"},
])
def test_update_rejects_non_whitelisted_fields(test_db: Session, hierarchy: Dict[str, Any], updates):
    with pytest.raises(ValidationError):
        manager.update_project(test_db, hierarchy["project_id"], updates, OWNER_A)

    project = manager.get_project(test_db, hierarchy["project_id"], OWNER_A)
    assert project.portfolio_id == hierarchy["portfolio_id"]
    assert project.owner_id == OWNER_A


def test_update_rejects_blank_required_field(test_db: Session, hierarchy: Dict[str, Any]):
    with pytest.raises(ValidationError):
        manager.update_section(test_db, hierarchy["section_id"], {"name": " "}, OWNER_A)


def test_update_rejects_invalid_status(test_db: Session, hierarchy: Dict[str, Any]):
    task_id = make_task(test_db, hierarchy, "Task")
    with pytest.raises(ValidationError):
        manager.update_task(test_db, task_id, {"status": "done"}, OWNER_A)


@pytest.mark.parametrize("value", [-1, 100.5, "half"])
def test_update_rejects_out_of_range_percentage(test_db: Session, hierarchy: Dict[str, Any], value):
    with pytest.raises(ValidationError):
        manager.update_project(test_db, hierarchy["project_id"], {"completion_percentage": value}, OWNER_A)


def test_update_by_other_owner_forbidden(test_db: Session, hierarchy: Dict[str, Any]):
    with pytest.raises(ForbiddenError):
        manager.update_portfolio(test_db, hierarchy["portfolio_id"], {"name": "Mine now"}, OWNER_B)


def test_status_change_does_not_touch_rollup(test_db: Session, hierarchy: Dict[str, Any]):
    task_id = make_task(test_db, hierarchy, "Only task")
    manager.update_task(test_db, task_id, {"status": "completed"}, OWNER_A)

    assert manager.get_project(test_db, hierarchy["project_id"], OWNER_A).completion_percentage == 0.0


# ============== Lists and deletes ==============


def test_list_tasks_by_status(test_db: Session, hierarchy: Dict[str, Any]):
    done = make_task(test_db, hierarchy, "Done")
    make_task(test_db, hierarchy, "Open")
    manager.update_task(test_db, done, {"status": "completed"}, OWNER_A)

    completed = manager.list_tasks(test_db, OWNER_A, {"status": "completed"})
    assert [t.id for t in completed] == [done]

    with pytest.raises(ValidationError):
        manager.list_tasks(test_db, OWNER_A, {"status": "finished"})


def test_delete_section_leaves_project(test_db: Session, hierarchy: Dict[str, Any]):
    manager.delete_section(test_db, hierarchy["section_id"], OWNER_A)

    assert manager.get_section(test_db, hierarchy["section_id"], OWNER_A) is None
    assert manager.get_project(test_db, hierarchy["project_id"], OWNER_A) is not None
    logger.info("✓ Only tasks cascade on delete")
