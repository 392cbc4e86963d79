"""
Owner-scoped entity store.

Generic create/get/list/update/delete over one table per entity kind.
Every operation is scoped by the owning identity:

- get returns None for entities owned by someone else (indistinguishable
  from absence)
- update and delete raise ForbiddenError for entities owned by someone else
- update raises NotFoundError when the id does not exist at all
- delete of a missing id is a no-op, so deletes are safe to retry

Each call commits its own unit of work. Multi-step callers (cascade delete,
subtask linking) therefore get no atomicity across steps.
"""

import logging
import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

import models
from time_utils import utc_now
from hierarchy.errors import ValidationError, ForbiddenError, NotFoundError

logger = logging.getLogger(__name__)

COLLECTIONS = {
    "organizations": models.Organization,
    "workspaces": models.Workspace,
    "teams": models.Team,
    "portfolios": models.Portfolio,
    "projects": models.Project,
    "sections": models.Section,
    "tasks": models.Task,
}

RESOURCE_NAMES = {
    "organizations": "Organization",
    "workspaces": "Workspace",
    "teams": "Team",
    "portfolios": "Portfolio",
    "projects": "Project",
    "sections": "Section",
    "tasks": "Task",
}

# Closed set of equality filters per kind; owner_id is always applied on top
FILTER_FIELDS = {
    "organizations": frozenset(),
    "workspaces": frozenset({"organization_id"}),
    "teams": frozenset({"workspace_id"}),
    "portfolios": frozenset({"workspace_id"}),
    "projects": frozenset({"portfolio_id", "team_id"}),
    "sections": frozenset({"project_id"}),
    "tasks": frozenset({"project_id", "section_id", "assignee_id", "status", "parent_task_id"}),
}

# Assigned by the store only
RESERVED_FIELDS = frozenset({"id", "owner_id", "created_at", "updated_at"})


def get_model(kind: str):
    """Return the ORM class stored under a collection name."""
    model = COLLECTIONS.get(kind)
    if model is None:
        raise ValidationError(f"Unknown entity kind: {kind}")
    return model


def resource_name(kind: str) -> str:
    return RESOURCE_NAMES.get(kind, kind)


def as_dict(entity) -> Dict[str, Any]:
    """Column values of a stored entity as a plain dict."""
    return {attr.key: getattr(entity, attr.key) for attr in inspect(entity).mapper.column_attrs}


def _reject_reserved(kind: str, fields: Dict[str, Any]) -> None:
    reserved = RESERVED_FIELDS.intersection(fields)
    if reserved:
        raise ValidationError(
            f"Fields assigned by the server cannot be set on {resource_name(kind)}: {', '.join(sorted(reserved))}",
            details={field: "read-only" for field in reserved},
        )


def _commit(db: Session, action: str, kind: str, entity_id: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Store {action} failed for {kind}/{entity_id}: {e}")
        raise


def create_entity(db: Session, kind: str, owner_id: str, fields: Dict[str, Any]) -> str:
    """
    Insert a new entity owned by owner_id.

    Args:
        db: Database session
        kind: Collection name (e.g. "tasks")
        owner_id: Owning identity, fixed for the entity's lifetime
        fields: Entity-specific column values

    Returns:
        The generated entity id
    """
    model = get_model(kind)
    _reject_reserved(kind, fields)

    now = utc_now()
    entity_id = str(uuid.uuid4())
    entity = model(id=entity_id, owner_id=owner_id, created_at=now, updated_at=now, **fields)

    db.add(entity)
    _commit(db, "create", kind, entity_id)

    logger.debug(f"Stored {kind}/{entity_id} for owner {owner_id}")
    return entity_id


def get_entity(db: Session, kind: str, entity_id: str, owner_id: str):
    """Fetch an entity, or None if it is missing or owned by someone else."""
    model = get_model(kind)
    if not entity_id:
        return None

    entity = db.get(model, entity_id)
    if entity is None:
        return None

    if entity.owner_id != owner_id:
        logger.debug(f"{kind}/{entity_id} is not visible to owner {owner_id}")
        return None

    return entity


def require_entity(db: Session, kind: str, entity_id: str, owner_id: str):
    """Like get_entity, but raise NotFoundError instead of returning None."""
    entity = get_entity(db, kind, entity_id, owner_id)
    if entity is None:
        raise NotFoundError(resource_name(kind), entity_id)
    return entity


def list_entities(
    db: Session,
    kind: str,
    owner_id: str,
    filters: Optional[Dict[str, Any]] = None,
) -> List[Any]:
    """
    List the owner's entities of one kind, newest first.

    Filters are equality matches on the kind's recognized fields only.
    None values are skipped so optional query parameters can be passed
    straight through.
    """
    model = get_model(kind)
    filters = filters or {}

    unknown = set(filters) - FILTER_FIELDS[kind]
    if unknown:
        raise ValidationError(
            f"Unsupported filter(s) for {kind}: {', '.join(sorted(unknown))}",
            details={field: "unsupported filter" for field in unknown},
        )

    query = db.query(model).filter(model.owner_id == owner_id)
    for field, value in filters.items():
        if value is None:
            continue
        query = query.filter(getattr(model, field) == value)

    return query.order_by(model.created_at.desc()).all()


def update_entity(db: Session, kind: str, entity_id: str, owner_id: str, fields: Dict[str, Any]) -> None:
    """
    Apply a partial update.

    Raises:
        NotFoundError: the id does not exist under any owner
        ForbiddenError: the entity belongs to another owner
    """
    model = get_model(kind)
    _reject_reserved(kind, fields)

    entity = db.get(model, entity_id) if entity_id else None
    if entity is None:
        raise NotFoundError(resource_name(kind), entity_id)
    if entity.owner_id != owner_id:
        logger.info(f"Owner {owner_id} attempted to update {kind}/{entity_id} owned by someone else")
        raise ForbiddenError(resource_name(kind), entity_id)

    for key, value in fields.items():
        setattr(entity, key, value)
    entity.updated_at = utc_now()

    _commit(db, "update", kind, entity_id)
    logger.debug(f"Updated {kind}/{entity_id}: {sorted(fields)}")


def delete_entity(db: Session, kind: str, entity_id: str, owner_id: str) -> None:
    """
    Permanently delete an entity.

    Deleting an id that does not exist is a no-op.

    Raises:
        ForbiddenError: the entity belongs to another owner
    """
    model = get_model(kind)

    entity = db.get(model, entity_id) if entity_id else None
    if entity is None:
        logger.debug(f"{kind}/{entity_id} already absent, nothing to delete")
        return
    if entity.owner_id != owner_id:
        logger.info(f"Owner {owner_id} attempted to delete {kind}/{entity_id} owned by someone else")
        raise ForbiddenError(resource_name(kind), entity_id)

    db.delete(entity)
    _commit(db, "delete", kind, entity_id)
    logger.debug(f"Deleted {kind}/{entity_id}")
