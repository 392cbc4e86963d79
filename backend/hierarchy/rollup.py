"""
Completion roll-ups for projects and portfolios.

Roll-ups are pull-based: nothing here runs when a task changes. The stored
project completion_percentage and portfolio status are snapshots from the
last explicit call and may be stale until it is made again.
"""

import logging
from typing import Any, Dict, List

from sqlalchemy.orm import Session

import models
from hierarchy import store

logger = logging.getLogger(__name__)


def completion_percentage(completed: int, total: int) -> float:
    """100 * completed / total, or 0 when there is nothing to complete."""
    if total == 0:
        return 0.0
    return completed * 100 / total


def _count_tasks(db: Session, project_id: str, owner_id: str):
    tasks = store.list_entities(db, "tasks", owner_id, {"project_id": project_id})
    completed = sum(1 for task in tasks if task.status == models.WorkStatus.completed)
    return completed, len(tasks)


def calculate_project_completion(db: Session, project_id: str, owner_id: str) -> float:
    """
    Recompute a project's completion percentage from its tasks and store it.

    Every task of the project counts, subtasks included. The result is
    persisted even when it is 0.

    Raises:
        NotFoundError: the project is missing or owned by someone else
    """
    logger.debug(f"Calculating completion for project {project_id}")
    store.require_entity(db, "projects", project_id, owner_id)

    completed, total = _count_tasks(db, project_id, owner_id)
    percentage = completion_percentage(completed, total)

    store.update_entity(db, "projects", project_id, owner_id, {"completion_percentage": percentage})
    logger.info(f"Project {project_id} completion: {completed}/{total} = {percentage:.2f}%")
    return percentage


def calculate_portfolio_status(db: Session, portfolio_id: str, owner_id: str) -> Dict[str, Any]:
    """
    Aggregate task completion across every project in a portfolio.

    The overall percentage is weighted by task count, not averaged over
    projects: a portfolio with projects at 3/3 and 1/3 is at 4/6.

    Returns:
        Status snapshot, also persisted on the portfolio:
        {completion_percentage, total_tasks, completed_tasks,
         projects: [{id, name, completion_percentage}, ...]}

    Raises:
        NotFoundError: the portfolio is missing or owned by someone else
    """
    logger.debug(f"Calculating status for portfolio {portfolio_id}")
    store.require_entity(db, "portfolios", portfolio_id, owner_id)

    projects = store.list_entities(db, "projects", owner_id, {"portfolio_id": portfolio_id})

    total_tasks = 0
    completed_tasks = 0
    summaries: List[Dict[str, Any]] = []
    for project in projects:
        completed, total = _count_tasks(db, project.id, owner_id)
        total_tasks += total
        completed_tasks += completed
        summaries.append({
            "id": project.id,
            "name": project.name,
            "completion_percentage": completion_percentage(completed, total),
        })

    status = {
        "completion_percentage": completion_percentage(completed_tasks, total_tasks),
        "total_tasks": total_tasks,
        "completed_tasks": completed_tasks,
        "projects": summaries,
    }

    store.update_entity(db, "portfolios", portfolio_id, owner_id, {"status": status})
    logger.info(
        f"Portfolio {portfolio_id} status: {completed_tasks}/{total_tasks} tasks across "
        f"{len(projects)} project(s) = {status['completion_percentage']:.2f}%"
    )
    return status
