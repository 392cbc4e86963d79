"""
Subtask tree mutations: cascade delete, link and unlink.

A task's children are the tasks whose parent_task_id points at it. That
foreign key is the only stored side of the relationship, so the parent's
child list is always derived by query and can never disagree with it, and
linking the same pair twice leaves exactly one link.

None of these operations are atomic. A cascade delete commits each task as
it goes; if the store fails part-way, the error propagates and the tasks
already deleted stay deleted. Retrying a delete is safe.
"""

import logging
from collections import deque
from typing import List, Optional, Set, Tuple

from sqlalchemy.orm import Session

import models
from hierarchy import store
from hierarchy.errors import ValidationError, NotFoundError

logger = logging.getLogger(__name__)


def list_subtask_ids(db: Session, task_id: str, owner_id: str) -> List[str]:
    """Ids of the direct subtasks of a task, oldest first."""
    children = store.list_entities(db, "tasks", owner_id, {"parent_task_id": task_id})
    return [child.id for child in reversed(children)]


def is_descendant(db: Session, ancestor_id: str, task_id: str, owner_id: str) -> bool:
    """
    Check if task_id appears anywhere in the subtask tree below ancestor_id.
    Uses BFS over the derived child lists.
    """
    visited = set()
    queue = deque([ancestor_id])

    while queue:
        current_id = queue.popleft()
        if current_id in visited:
            continue
        visited.add(current_id)

        for child_id in list_subtask_ids(db, current_id, owner_id):
            if child_id == task_id:
                return True
            queue.append(child_id)

    return False


def check_link(db: Session, parent_id: str, child_id: str, owner_id: str) -> Tuple[models.Task, models.Task]:
    """
    Validate that child_id may become a subtask of parent_id.

    Raises:
        NotFoundError: either task is missing or owned by someone else
        ValidationError: the tasks are in different projects, or the link
            would make a task its own ancestor
    """
    parent = store.get_entity(db, "tasks", parent_id, owner_id)
    child = store.get_entity(db, "tasks", child_id, owner_id)
    if parent is None or child is None:
        missing = parent_id if parent is None else child_id
        logger.info(f"Cannot link subtask {child_id} to {parent_id}: task {missing} not found")
        raise NotFoundError("Task", missing)

    if parent_id == child_id:
        logger.info(f"Self-reference detected: task {child_id} cannot be its own subtask")
        raise ValidationError("A task cannot be its own subtask")

    if parent.project_id != child.project_id:
        logger.info(f"Cannot link task {child_id} (project {child.project_id}) under {parent_id} (project {parent.project_id})")
        raise ValidationError("Parent task must be in the same project")

    if is_descendant(db, child_id, parent_id, owner_id):
        logger.info(f"Circular subtask detected: task {parent_id} is a descendant of task {child_id}")
        raise ValidationError("Cannot create circular subtask relationship")

    return parent, child


def add_subtask(db: Session, parent_id: str, child_id: str, owner_id: str) -> None:
    """
    Make child_id a subtask of parent_id.

    Linking an already-linked pair is a no-op. A child linked elsewhere is
    moved, since a task has at most one parent.
    """
    logger.debug(f"Linking task {child_id} under {parent_id} for owner {owner_id}")
    _, child = check_link(db, parent_id, child_id, owner_id)

    if child.parent_task_id == parent_id:
        logger.debug(f"Task {child_id} is already a subtask of {parent_id}")
        return

    if child.parent_task_id is not None:
        logger.info(f"Moving task {child_id} from parent {child.parent_task_id} to {parent_id}")

    store.update_entity(db, "tasks", child_id, owner_id, {"parent_task_id": parent_id})
    logger.info(f"Task {child_id} linked as subtask of {parent_id}")


def remove_subtask(db: Session, parent_id: str, child_id: str, owner_id: str) -> None:
    """
    Detach child_id from parent_id.

    Silently does nothing when child_id is not currently a subtask of
    parent_id.
    """
    logger.debug(f"Unlinking task {child_id} from {parent_id} for owner {owner_id}")
    parent = store.get_entity(db, "tasks", parent_id, owner_id)
    child = store.get_entity(db, "tasks", child_id, owner_id)
    if parent is None or child is None:
        raise NotFoundError("Task", parent_id if parent is None else child_id)

    if child.parent_task_id != parent_id:
        logger.debug(f"Task {child_id} is not a subtask of {parent_id}, nothing to unlink")
        return

    store.update_entity(db, "tasks", child_id, owner_id, {"parent_task_id": None})
    logger.info(f"Task {child_id} unlinked from {parent_id}")


def delete_task_cascade(
    db: Session,
    task_id: str,
    owner_id: str,
    _visited: Optional[Set[str]] = None,
) -> int:
    """
    Delete a task and, depth-first, every task below it.

    A task that is already gone is a no-op, so calling this twice is safe.
    A task owned by someone else raises ForbiddenError from the store. A
    parent that was deleted earlier is tolerated.

    Returns:
        Number of tasks deleted
    """
    task = store.get_entity(db, "tasks", task_id, owner_id)
    if task is None:
        # Absent: no-op. Someone else's: the store raises ForbiddenError.
        store.delete_entity(db, "tasks", task_id, owner_id)
        return 0

    parent_task_id = task.parent_task_id
    visited = _visited if _visited is not None else set()
    visited.add(task_id)

    deleted = 0
    for child_id in list_subtask_ids(db, task_id, owner_id):
        if child_id in visited:
            logger.warning(f"Cycle in subtask tree at task {child_id}, skipping")
            continue
        deleted += delete_task_cascade(db, child_id, owner_id, visited)

    if parent_task_id and store.get_entity(db, "tasks", parent_task_id, owner_id) is None:
        logger.warning(f"Parent task {parent_task_id} of {task_id} no longer exists")

    store.delete_entity(db, "tasks", task_id, owner_id)
    deleted += 1

    logger.info(f"Task {task_id} deleted with {deleted - 1} descendant(s)")
    return deleted
