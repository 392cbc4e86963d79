from sqlalchemy import Column, String, Text, DateTime, Enum, Float, Index, JSON
from sqlalchemy.dialects.postgresql import JSONB
import enum
from database import Base

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests and local runs)
JSONType = JSON().with_variant(JSONB(), "postgresql")


class WorkStatus(str, enum.Enum):
    not_started = "not_started"
    in_progress = "in_progress"
    completed = "completed"


class OwnedMixin:
    """Columns shared by every stored entity.

    id is an opaque UUID string, owner_id is fixed at creation. Timestamps are
    written by the store adapter, never by callers.
    """

    id = Column(String(36), primary_key=True)
    owner_id = Column(String(128), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)


class Organization(OwnedMixin, Base):
    __tablename__ = "organizations"

    name = Column(String(255), nullable=False)


class Workspace(OwnedMixin, Base):
    __tablename__ = "workspaces"

    organization_id = Column(String(36), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text)


class Team(OwnedMixin, Base):
    __tablename__ = "teams"

    workspace_id = Column(String(36), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text)

    # Team membership is the one genuinely many-to-many id list
    member_ids = Column(JSONType, default=list)


class Portfolio(OwnedMixin, Base):
    __tablename__ = "portfolios"

    workspace_id = Column(String(36), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text)

    # Snapshot written by the portfolio roll-up, None until first computed
    status = Column(JSONType, nullable=True)


class Project(OwnedMixin, Base):
    __tablename__ = "projects"

    portfolio_id = Column(String(36), nullable=False, index=True)
    team_id = Column(String(36), nullable=True, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    status = Column(Enum(WorkStatus, name="work_status"), nullable=False, default=WorkStatus.not_started)
    completion_percentage = Column(Float, nullable=False, default=0.0)


class Section(OwnedMixin, Base):
    __tablename__ = "sections"

    project_id = Column(String(36), nullable=False, index=True)
    name = Column(String(255), nullable=False)


class Task(OwnedMixin, Base):
    __tablename__ = "tasks"

    section_id = Column(String(36), nullable=False, index=True)
    # Denormalized from the section so project roll-ups need one query
    project_id = Column(String(36), nullable=False, index=True)
    # Set when this task is a subtask; the parent's child list is derived from it
    parent_task_id = Column(String(36), nullable=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text)
    assignee_id = Column(String(128), nullable=True, index=True)
    status = Column(Enum(WorkStatus, name="work_status"), nullable=False, default=WorkStatus.not_started)

    tags = Column(JSONType, default=list)
    custom_fields = Column(JSONType, default=dict)
    dependencies = Column(JSONType, default=list)

    __table_args__ = (
        Index("ix_tasks_owner_project", "owner_id", "project_id"),
    )
