from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List, Dict

from models import WorkStatus


class OwnedBase(BaseModel):
    id: str
    owner_id: str
    created_at: datetime
    updated_at: datetime


# Organization schemas
class OrganizationCreate(BaseModel):
    name: str

    class Config:
        extra = "forbid"


class OrganizationUpdate(BaseModel):
    name: Optional[str] = None

    class Config:
        extra = "forbid"


class Organization(OwnedBase):
    name: str

    class Config:
        from_attributes = True


# Workspace schemas
class WorkspaceCreate(BaseModel):
    organization_id: str
    name: str
    description: Optional[str] = None

    class Config:
        extra = "forbid"


class WorkspaceUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None

    class Config:
        extra = "forbid"


class Workspace(OwnedBase):
    organization_id: str
    name: str
    description: Optional[str] = None

    class Config:
        from_attributes = True


# Team schemas
class TeamCreate(BaseModel):
    workspace_id: str
    name: str
    description: Optional[str] = None
    member_ids: List[str] = []

    class Config:
        extra = "forbid"


class TeamUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    member_ids: Optional[List[str]] = None

    class Config:
        extra = "forbid"


class Team(OwnedBase):
    workspace_id: str
    name: str
    description: Optional[str] = None
    member_ids: List[str] = []

    class Config:
        from_attributes = True


# Portfolio schemas
class ProjectSummary(BaseModel):
    """Per-project line of a portfolio roll-up."""
    id: str
    name: str
    completion_percentage: float


class PortfolioStatus(BaseModel):
    """
    Snapshot written by the portfolio roll-up.

    completion_percentage is weighted by task count across all projects,
    not an average of the project percentages.
    """
    completion_percentage: float
    total_tasks: int
    completed_tasks: int
    projects: List[ProjectSummary] = []


class PortfolioCreate(BaseModel):
    workspace_id: str
    name: str
    description: Optional[str] = None

    class Config:
        extra = "forbid"


class PortfolioUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None

    class Config:
        extra = "forbid"


class Portfolio(OwnedBase):
    workspace_id: str
    name: str
    description: Optional[str] = None
    status: Optional[PortfolioStatus] = None

    class Config:
        from_attributes = True


# Project schemas
class ProjectCreate(BaseModel):
    portfolio_id: str
    name: str
    description: Optional[str] = None
    team_id: Optional[str] = None

    class Config:
        extra = "forbid"


class ProjectUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    team_id: Optional[str] = None
    status: Optional[WorkStatus] = None
    completion_percentage: Optional[float] = Field(None, ge=0, le=100, description="Percentage between 0 and 100")

    class Config:
        extra = "forbid"


class Project(OwnedBase):
    portfolio_id: str
    team_id: Optional[str] = None
    name: str
    description: Optional[str] = None
    status: WorkStatus
    completion_percentage: float

    class Config:
        from_attributes = True


# Section schemas
class SectionCreate(BaseModel):
    project_id: str
    name: str

    class Config:
        extra = "forbid"


class SectionUpdate(BaseModel):
    name: Optional[str] = None

    class Config:
        extra = "forbid"


class Section(OwnedBase):
    project_id: str
    name: str

    class Config:
        from_attributes = True


# Task schemas
class TaskCreate(BaseModel):
    section_id: str
    project_id: str
    title: str
    description: Optional[str] = None
    assignee_id: Optional[str] = None
    parent_task_id: Optional[str] = None
    tags: List[str] = []
    custom_fields: Dict[str, str] = {}
    dependencies: List[str] = []
    # Existing tasks to attach under the new one
    subtask_ids: List[str] = []

    class Config:
        extra = "forbid"


class TaskUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    assignee_id: Optional[str] = None
    status: Optional[WorkStatus] = None
    parent_task_id: Optional[str] = None
    tags: Optional[List[str]] = None
    custom_fields: Optional[Dict[str, str]] = None
    dependencies: Optional[List[str]] = None

    class Config:
        extra = "forbid"


class Task(OwnedBase):
    section_id: str
    project_id: str
    parent_task_id: Optional[str] = None
    title: str
    description: Optional[str] = None
    assignee_id: Optional[str] = None
    status: WorkStatus
    tags: List[str] = []
    custom_fields: Dict[str, str] = {}
    dependencies: List[str] = []

    class Config:
        from_attributes = True


# Expanded views (?expand=...)
class PortfolioWithProjects(Portfolio):
    projects: List[Project] = []


class ProjectWithSections(Project):
    sections: List[Section] = []


class SectionWithTasks(Section):
    tasks: List[Task] = []


class ProjectWithHierarchy(Project):
    sections: List[SectionWithTasks] = []


class TaskWithSubtasks(Task):
    subtask_ids: List[str] = []
    subtasks: List[Task] = []


# List responses
class OrganizationList(BaseModel):
    items: List[Organization] = []


class WorkspaceList(BaseModel):
    items: List[Workspace] = []


class TeamList(BaseModel):
    items: List[Team] = []


class PortfolioList(BaseModel):
    items: List[Portfolio] = []


class ProjectList(BaseModel):
    items: List[Project] = []


class SectionList(BaseModel):
    items: List[Section] = []


class TaskList(BaseModel):
    items: List[Task] = []


# Roll-up and mutation results
class PortfolioRollup(BaseModel):
    status: PortfolioStatus


class ProjectCompletion(BaseModel):
    completion_percentage: float


class TaskDeleteResult(BaseModel):
    message: str
    deleted_count: int


class SubtaskLinkResult(BaseModel):
    parent_task_id: str
    subtask_ids: List[str] = []
