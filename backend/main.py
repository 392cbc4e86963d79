from fastapi import FastAPI, Depends, Query, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from typing import Optional
import logging
import os

from database import get_db, engine, Base, is_production_like
import schemas
from auth.dependencies import get_current_user_id
from hierarchy import manager, expansion, cascade, rollup
from hierarchy.errors import ValidationError, ForbiddenError, NotFoundError

# Configure logging
logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())
logger = logging.getLogger(__name__)

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv(
        "CORS_ORIGINS",
        "http://localhost:3000,http://localhost:3001,http://localhost:5173",
    ).split(",")
    if origin.strip()
]

app = FastAPI(
    title="Portfolio Tracker API",
    description="Organizations, workspaces, portfolios, projects, sections and tasks with subtask trees and completion roll-ups",
    version="1.0.0"
)

# CORS middleware for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============== Startup ==============

@app.on_event("startup")
def create_tables():
    """Create missing tables for local and test runs."""
    if is_production_like():
        logger.info("Production-like environment, skipping table creation")
        return

    Base.metadata.create_all(bind=engine)
    logger.info("Database tables ensured")


# ============== Error handlers ==============

@app.exception_handler(ValidationError)
async def handle_validation_error(request: Request, exc: ValidationError):
    logger.info(f"{request.method} {request.url.path} rejected: {exc.message}")
    content = {"detail": exc.message}
    if exc.details:
        content["errors"] = exc.details
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=content)


@app.exception_handler(RequestValidationError)
async def handle_request_validation_error(request: Request, exc: RequestValidationError):
    # Malformed bodies are reported the same way as failed field checks
    logger.info(f"{request.method} {request.url.path} rejected: invalid request body")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": "Invalid request", "errors": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(ForbiddenError)
async def handle_forbidden_error(request: Request, exc: ForbiddenError):
    return JSONResponse(status_code=status.HTTP_403_FORBIDDEN, content={"detail": str(exc)})


@app.exception_handler(NotFoundError)
async def handle_not_found_error(request: Request, exc: NotFoundError):
    logger.debug(f"{exc.resource} {exc.resource_id} not found for {request.method} {request.url.path}")
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


def _found(entity, resource: str, entity_id: str):
    if entity is None:
        raise NotFoundError(resource, entity_id)
    return entity


# Health check
@app.get("/health")
def health_check():
    return {"status": "healthy"}


@app.get("/")
def root():
    return {
        "name": "Portfolio Tracker API",
        "version": app.version,
        "endpoints": {
            "organizations": "/api/organizations",
            "workspaces": "/api/workspaces",
            "teams": "/api/teams",
            "portfolios": "/api/portfolios",
            "projects": "/api/projects",
            "sections": "/api/sections",
            "tasks": "/api/tasks",
        },
    }


# ============== Organizations ==============

@app.post("/api/organizations", response_model=schemas.Organization, status_code=status.HTTP_201_CREATED)
def create_organization(
    organization: schemas.OrganizationCreate,
    owner_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    logger.debug(f"User {owner_id} creating organization: {organization.name}")
    organization_id = manager.create_organization(db, organization.model_dump(exclude_unset=True), owner_id)
    return manager.get_organization(db, organization_id, owner_id)


@app.get("/api/organizations", response_model=schemas.OrganizationList)
def list_organizations(
    owner_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    organizations = manager.list_organizations(db, owner_id)
    logger.debug(f"User {owner_id} retrieved {len(organizations)} organizations")
    return {"items": organizations}


@app.get("/api/organizations/{organization_id}", response_model=schemas.Organization)
def get_organization(
    organization_id: str,
    owner_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    return _found(manager.get_organization(db, organization_id, owner_id), "Organization", organization_id)


@app.patch("/api/organizations/{organization_id}", response_model=schemas.Organization)
def update_organization(
    organization_id: str,
    organization_update: schemas.OrganizationUpdate,
    owner_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    manager.update_organization(db, organization_id, organization_update.model_dump(exclude_unset=True), owner_id)
    return manager.get_organization(db, organization_id, owner_id)


@app.delete("/api/organizations/{organization_id}")
def delete_organization(
    organization_id: str,
    owner_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Delete an organization. Workspaces below it are not removed."""
    manager.delete_organization(db, organization_id, owner_id)
    logger.info(f"Organization {organization_id} deleted by user {owner_id}")
    return {"message": "Organization deleted"}


# ============== Workspaces ==============

@app.post("/api/workspaces", response_model=schemas.Workspace, status_code=status.HTTP_201_CREATED)
def create_workspace(
    workspace: schemas.WorkspaceCreate,
    owner_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    logger.debug(f"User {owner_id} creating workspace: {workspace.name}")
    workspace_id = manager.create_workspace(db, workspace.model_dump(exclude_unset=True), owner_id)
    return manager.get_workspace(db, workspace_id, owner_id)


@app.get("/api/workspaces", response_model=schemas.WorkspaceList)
def list_workspaces(
    organization_id: Optional[str] = Query(None),
    owner_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    workspaces = manager.list_workspaces(db, owner_id, {"organization_id": organization_id})
    return {"items": workspaces}


@app.get("/api/workspaces/{workspace_id}", response_model=schemas.Workspace)
def get_workspace(
    workspace_id: str,
    owner_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    return _found(manager.get_workspace(db, workspace_id, owner_id), "Workspace", workspace_id)


@app.patch("/api/workspaces/{workspace_id}", response_model=schemas.Workspace)
def update_workspace(
    workspace_id: str,
    workspace_update: schemas.WorkspaceUpdate,
    owner_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    manager.update_workspace(db, workspace_id, workspace_update.model_dump(exclude_unset=True), owner_id)
    return manager.get_workspace(db, workspace_id, owner_id)


@app.delete("/api/workspaces/{workspace_id}")
def delete_workspace(
    workspace_id: str,
    owner_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    manager.delete_workspace(db, workspace_id, owner_id)
    logger.info(f"Workspace {workspace_id} deleted by user {owner_id}")
    return {"message": "Workspace deleted"}


# ============== Teams ==============

@app.post("/api/teams", response_model=schemas.Team, status_code=status.HTTP_201_CREATED)
def create_team(
    team: schemas.TeamCreate,
    owner_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    logger.debug(f"User {owner_id} creating team: {team.name}")
    team_id = manager.create_team(db, team.model_dump(exclude_unset=True), owner_id)
    return manager.get_team(db, team_id, owner_id)


@app.get("/api/teams", response_model=schemas.TeamList)
def list_teams(
    workspace_id: Optional[str] = Query(None),
    owner_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    teams = manager.list_teams(db, owner_id, {"workspace_id": workspace_id})
    return {"items": teams}


@app.get("/api/teams/{team_id}", response_model=schemas.Team)
def get_team(
    team_id: str,
    owner_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    return _found(manager.get_team(db, team_id, owner_id), "Team", team_id)


@app.patch("/api/teams/{team_id}", response_model=schemas.Team)
def update_team(
    team_id: str,
    team_update: schemas.TeamUpdate,
    owner_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Update team details. member_ids replaces the whole member set."""
    manager.update_team(db, team_id, team_update.model_dump(exclude_unset=True), owner_id)
    return manager.get_team(db, team_id, owner_id)


@app.delete("/api/teams/{team_id}")
def delete_team(
    team_id: str,
    owner_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    manager.delete_team(db, team_id, owner_id)
    logger.info(f"Team {team_id} deleted by user {owner_id}")
    return {"message": "Team deleted"}


# ============== Portfolios ==============

@app.post("/api/portfolios", response_model=schemas.Portfolio, status_code=status.HTTP_201_CREATED)
def create_portfolio(
    portfolio: schemas.PortfolioCreate,
    owner_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    logger.debug(f"User {owner_id} creating portfolio: {portfolio.name}")
    portfolio_id = manager.create_portfolio(db, portfolio.model_dump(exclude_unset=True), owner_id)
    return manager.get_portfolio(db, portfolio_id, owner_id)


@app.get("/api/portfolios", response_model=schemas.PortfolioList)
def list_portfolios(
    workspace_id: Optional[str] = Query(None),
    owner_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    portfolios = manager.list_portfolios(db, owner_id, {"workspace_id": workspace_id})
    return {"items": portfolios}


@app.get("/api/portfolios/{portfolio_id}")
def get_portfolio(
    portfolio_id: str,
    expand: Optional[str] = Query(None, description="'projects' to include the portfolio's projects"),
    owner_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Get a portfolio. The stored status is the snapshot from the last roll-up."""
    if expand:
        expanded = expansion.expand_entity(db, "portfolios", portfolio_id, owner_id, expand)
        return schemas.PortfolioWithProjects.model_validate(_found(expanded, "Portfolio", portfolio_id))

    portfolio = manager.get_portfolio(db, portfolio_id, owner_id)
    return schemas.Portfolio.model_validate(_found(portfolio, "Portfolio", portfolio_id))


@app.patch("/api/portfolios/{portfolio_id}", response_model=schemas.Portfolio)
def update_portfolio(
    portfolio_id: str,
    portfolio_update: schemas.PortfolioUpdate,
    owner_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    manager.update_portfolio(db, portfolio_id, portfolio_update.model_dump(exclude_unset=True), owner_id)
    return manager.get_portfolio(db, portfolio_id, owner_id)


@app.delete("/api/portfolios/{portfolio_id}")
def delete_portfolio(
    portfolio_id: str,
    owner_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    manager.delete_portfolio(db, portfolio_id, owner_id)
    logger.info(f"Portfolio {portfolio_id} deleted by user {owner_id}")
    return {"message": "Portfolio deleted"}


@app.post("/api/portfolios/{portfolio_id}/rollup", response_model=schemas.PortfolioRollup)
def rollup_portfolio(
    portfolio_id: str,
    owner_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """
    Recompute the portfolio status from live task counts and store it.

    Task changes never trigger this; call it whenever a fresh status is needed.
    """
    logger.debug(f"User {owner_id} rolling up portfolio {portfolio_id}")
    return {"status": rollup.calculate_portfolio_status(db, portfolio_id, owner_id)}


# ============== Projects ==============

@app.post("/api/projects", response_model=schemas.Project, status_code=status.HTTP_201_CREATED)
def create_project(
    project: schemas.ProjectCreate,
    owner_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Create a project. It starts not_started at 0% completion."""
    logger.debug(f"User {owner_id} creating project: {project.name}")
    project_id = manager.create_project(db, project.model_dump(exclude_unset=True), owner_id)
    return manager.get_project(db, project_id, owner_id)


@app.get("/api/projects", response_model=schemas.ProjectList)
def list_projects(
    portfolio_id: Optional[str] = Query(None),
    team_id: Optional[str] = Query(None),
    owner_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    projects = manager.list_projects(db, owner_id, {"portfolio_id": portfolio_id, "team_id": team_id})
    logger.debug(f"User {owner_id} retrieved {len(projects)} projects")
    return {"items": projects}


@app.get("/api/projects/{project_id}")
def get_project(
    project_id: str,
    expand: Optional[str] = Query(None, description="'sections', or 'full' for sections with their tasks"),
    owner_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    if expand:
        expanded = _found(
            expansion.expand_entity(db, "projects", project_id, owner_id, expand),
            "Project",
            project_id,
        )
        if expand == "full":
            return schemas.ProjectWithHierarchy.model_validate(expanded)
        return schemas.ProjectWithSections.model_validate(expanded)

    project = manager.get_project(db, project_id, owner_id)
    return schemas.Project.model_validate(_found(project, "Project", project_id))


@app.patch("/api/projects/{project_id}", response_model=schemas.Project)
def update_project(
    project_id: str,
    project_update: schemas.ProjectUpdate,
    owner_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    manager.update_project(db, project_id, project_update.model_dump(exclude_unset=True), owner_id)
    return manager.get_project(db, project_id, owner_id)


@app.delete("/api/projects/{project_id}")
def delete_project(
    project_id: str,
    owner_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Delete a project. Its sections and tasks are not removed."""
    manager.delete_project(db, project_id, owner_id)
    logger.info(f"Project {project_id} deleted by user {owner_id}")
    return {"message": "Project deleted"}


@app.post("/api/projects/{project_id}/calculate-completion", response_model=schemas.ProjectCompletion)
def calculate_project_completion(
    project_id: str,
    owner_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Recompute and store the project's completion percentage from its tasks."""
    percentage = rollup.calculate_project_completion(db, project_id, owner_id)
    return {"completion_percentage": percentage}


# ============== Sections ==============

@app.post("/api/sections", response_model=schemas.Section, status_code=status.HTTP_201_CREATED)
def create_section(
    section: schemas.SectionCreate,
    owner_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    logger.debug(f"User {owner_id} creating section: {section.name}")
    section_id = manager.create_section(db, section.model_dump(exclude_unset=True), owner_id)
    return manager.get_section(db, section_id, owner_id)


@app.get("/api/sections", response_model=schemas.SectionList)
def list_sections(
    project_id: Optional[str] = Query(None),
    owner_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    sections = manager.list_sections(db, owner_id, {"project_id": project_id})
    return {"items": sections}


@app.get("/api/sections/{section_id}")
def get_section(
    section_id: str,
    expand: Optional[str] = Query(None, description="'tasks' to include the section's tasks"),
    owner_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    if expand:
        expanded = expansion.expand_entity(db, "sections", section_id, owner_id, expand)
        return schemas.SectionWithTasks.model_validate(_found(expanded, "Section", section_id))

    section = manager.get_section(db, section_id, owner_id)
    return schemas.Section.model_validate(_found(section, "Section", section_id))


@app.patch("/api/sections/{section_id}", response_model=schemas.Section)
def update_section(
    section_id: str,
    section_update: schemas.SectionUpdate,
    owner_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    manager.update_section(db, section_id, section_update.model_dump(exclude_unset=True), owner_id)
    return manager.get_section(db, section_id, owner_id)


@app.delete("/api/sections/{section_id}")
def delete_section(
    section_id: str,
    owner_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    manager.delete_section(db, section_id, owner_id)
    logger.info(f"Section {section_id} deleted by user {owner_id}")
    return {"message": "Section deleted"}


# ============== Tasks ==============

@app.post("/api/tasks", response_model=schemas.Task, status_code=status.HTTP_201_CREATED)
def create_task(
    task: schemas.TaskCreate,
    owner_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Create a task, or a subtask when parent_task_id is given."""
    logger.debug(f"User {owner_id} creating task: {task.title}")
    task_id = manager.create_task(db, task.model_dump(exclude_unset=True), owner_id)
    return manager.get_task(db, task_id, owner_id)


@app.get("/api/tasks", response_model=schemas.TaskList)
def list_tasks(
    project_id: Optional[str] = Query(None),
    section_id: Optional[str] = Query(None),
    assignee_id: Optional[str] = Query(None),
    task_status: Optional[str] = Query(None, alias="status", description="not_started, in_progress or completed"),
    parent_task_id: Optional[str] = Query(None),
    owner_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    filters = {
        "project_id": project_id,
        "section_id": section_id,
        "assignee_id": assignee_id,
        "status": task_status,
        "parent_task_id": parent_task_id,
    }
    tasks = manager.list_tasks(db, owner_id, filters)
    logger.debug(f"User {owner_id} retrieved {len(tasks)} tasks")
    return {"items": tasks}


@app.get("/api/tasks/{task_id}")
def get_task(
    task_id: str,
    expand: Optional[str] = Query(None, description="'subtasks' to include direct subtasks"),
    owner_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    if expand:
        expanded = expansion.expand_entity(db, "tasks", task_id, owner_id, expand)
        return schemas.TaskWithSubtasks.model_validate(_found(expanded, "Task", task_id))

    task = manager.get_task(db, task_id, owner_id)
    return schemas.Task.model_validate(_found(task, "Task", task_id))


@app.patch("/api/tasks/{task_id}", response_model=schemas.Task)
def update_task(
    task_id: str,
    task_update: schemas.TaskUpdate,
    owner_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """
    Update a task.

    Completing a task does not refresh the project or portfolio roll-up.
    """
    manager.update_task(db, task_id, task_update.model_dump(exclude_unset=True), owner_id)
    return manager.get_task(db, task_id, owner_id)


@app.delete("/api/tasks/{task_id}", response_model=schemas.TaskDeleteResult)
def delete_task(
    task_id: str,
    owner_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Delete a task together with all of its subtasks, recursively."""
    deleted = manager.delete_task(db, task_id, owner_id)
    logger.info(f"Task {task_id} deleted by user {owner_id} ({deleted} task(s) removed)")
    return {"message": "Task deleted", "deleted_count": deleted}


@app.post("/api/tasks/{parent_id}/subtasks/{subtask_id}", response_model=schemas.SubtaskLinkResult)
def add_subtask(
    parent_id: str,
    subtask_id: str,
    owner_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Make an existing task a subtask of another. Linking twice is a no-op."""
    cascade.add_subtask(db, parent_id, subtask_id, owner_id)
    return {"parent_task_id": parent_id, "subtask_ids": cascade.list_subtask_ids(db, parent_id, owner_id)}


@app.delete("/api/tasks/{parent_id}/subtasks/{subtask_id}", response_model=schemas.SubtaskLinkResult)
def remove_subtask(
    parent_id: str,
    subtask_id: str,
    owner_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Detach a subtask from its parent. The subtask itself is kept."""
    cascade.remove_subtask(db, parent_id, subtask_id, owner_id)
    return {"parent_task_id": parent_id, "subtask_ids": cascade.list_subtask_ids(db, parent_id, owner_id)}
