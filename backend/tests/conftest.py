"""
Test configuration and fixtures for portfolio tracker tests.

Provides:
- Test database with SQLite in-memory for speed
- FastAPI test client with database dependency override
- Identity helpers (X-User-Id headers for two independent owners)
- Common fixtures for an organization → workspace → portfolio → project → section chain
"""

import os
import sys
import logging
from typing import Generator, Dict, Any

# Keep startup table creation away from the on-disk default database
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Add backend directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from database import Base, get_db
from main import app
import models
from hierarchy import manager

# Configure logging for tests
logging.basicConfig(level=logging.WARNING)
logger = logging.getLogger(__name__)

# SQLite in-memory database for fast testing
SQLALCHEMY_TEST_DATABASE_URL = "sqlite:///:memory:"

OWNER_A = "user-alice"
OWNER_B = "user-bob"


def headers_for(owner_id: str) -> Dict[str, str]:
    """Request headers identifying the caller."""
    return {"X-User-Id": owner_id}


@pytest.fixture(scope="function")
def test_db() -> Generator[Session, None, None]:
    """
    Create a fresh in-memory SQLite database for each test.

    This ensures test isolation and fast execution.
    """
    logger.debug("Creating test database")

    engine = create_engine(
        SQLALCHEMY_TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    Base.metadata.create_all(bind=engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    db = TestingSessionLocal()

    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)
        logger.debug("Test database cleaned up")


@pytest.fixture(scope="function")
def client(test_db: Session) -> TestClient:
    """
    Create FastAPI test client with database dependency override.
    """
    def override_get_db():
        try:
            yield test_db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def owner_headers() -> Dict[str, str]:
    return headers_for(OWNER_A)


@pytest.fixture(scope="function")
def other_owner_headers() -> Dict[str, str]:
    return headers_for(OWNER_B)


@pytest.fixture(scope="function")
def hierarchy(test_db: Session) -> Dict[str, Any]:
    """
    Create one organization → workspace → portfolio → project → section chain
    owned by OWNER_A, and return the ids keyed by kind.
    """
    organization_id = manager.create_organization(test_db, {"name": "Acme"}, OWNER_A)
    workspace_id = manager.create_workspace(
        test_db, {"organization_id": organization_id, "name": "Eng"}, OWNER_A
    )
    portfolio_id = manager.create_portfolio(
        test_db, {"workspace_id": workspace_id, "name": "Q4"}, OWNER_A
    )
    project_id = manager.create_project(
        test_db, {"portfolio_id": portfolio_id, "name": "Redesign"}, OWNER_A
    )
    section_id = manager.create_section(
        test_db, {"project_id": project_id, "name": "Planning"}, OWNER_A
    )
    logger.debug(f"Created hierarchy ending in section {section_id}")

    return {
        "organization_id": organization_id,
        "workspace_id": workspace_id,
        "portfolio_id": portfolio_id,
        "project_id": project_id,
        "section_id": section_id,
    }


def make_task(db: Session, hierarchy: Dict[str, Any], title: str, owner_id: str = OWNER_A, **kwargs) -> str:
    """Create a task in the hierarchy's section and return its id."""
    data = {
        "section_id": hierarchy["section_id"],
        "project_id": hierarchy["project_id"],
        "title": title,
    }
    data.update(kwargs)
    return manager.create_task(db, data, owner_id)


def complete_task(db: Session, task_id: str, owner_id: str = OWNER_A) -> None:
    manager.update_task(db, task_id, {"status": models.WorkStatus.completed}, owner_id)
