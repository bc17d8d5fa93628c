import os
import tempfile
from decimal import Decimal
from pathlib import Path
from uuid import uuid4

_default_test_secret = "test-jwt-secret-for-pytest-only-0000000000000000"
if len(os.environ.get("JWT_SECRET", "")) < 32:
    os.environ["JWT_SECRET"] = _default_test_secret
os.environ.setdefault("ENV", "test")

_tmp_dir = tempfile.mkdtemp(prefix="worklog-tests-")
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", f"sqlite:///{Path(_tmp_dir) / 'worklog.db'}")
os.environ["DATABASE_URL"] = TEST_DATABASE_URL

import pytest
from fastapi.testclient import TestClient

from worklog import database
from worklog import models  # noqa: F401
from worklog.models.campaign import Campaign
from worklog.models.company import Company
from worklog.models.employee import Employee
from worklog.models.project import Project
from worklog.models.task import Task


def _truncate_all() -> None:
    with database.engine.begin() as conn:
        for table in reversed(database.Base.metadata.sorted_tables):
            conn.execute(table.delete())


@pytest.fixture(scope="session", autouse=True)
def _prepare_test_database() -> None:
    database.configure_database()
    database.Base.metadata.create_all(database.engine)
    yield
    database.engine.dispose()


@pytest.fixture(scope="function", autouse=True)
def _truncate_tables_between_tests():
    _truncate_all()
    yield
    _truncate_all()


def _persist(row):
    db = database.SessionLocal()
    try:
        db.add(row)
        db.commit()
        db.refresh(row)
        return row
    finally:
        db.close()


@pytest.fixture
def company_factory():
    def create(name: str = "Acme AS", company_id: str = None) -> Company:
        return _persist(Company(id=company_id or str(uuid4()), name=name))

    return create


@pytest.fixture
def project_factory():
    def create(company_id: str = None, name: str = "Website relaunch", value=None) -> Project:
        return _persist(
            Project(
                id=str(uuid4()),
                company_id=company_id,
                name=name,
                value=None if value is None else Decimal(str(value)),
            )
        )

    return create


@pytest.fixture
def task_factory():
    def create(project_id: str = None, title: str = "Design review") -> Task:
        return _persist(Task(id=str(uuid4()), project_id=project_id, title=title))

    return create


@pytest.fixture
def campaign_factory():
    def create(company_id: str = None, name: str = "Spring campaign") -> Campaign:
        return _persist(Campaign(id=str(uuid4()), company_id=company_id, name=name))

    return create


@pytest.fixture
def employee_factory():
    def create(user_id: str = None, name: str = "Employee", hourly_salary=0, is_active: bool = True) -> Employee:
        return _persist(
            Employee(
                user_id=user_id or str(uuid4()),
                name=name,
                hourly_salary=Decimal(str(hourly_salary)),
                is_active=is_active,
            )
        )

    return create


@pytest.fixture
def client():
    from worklog.main import app

    return TestClient(app)


@pytest.fixture
def auth_headers(client):
    def build(user_id: str = "user-1", role: str = "EMPLOYEE") -> dict:
        resp = client.post("/auth/token", json={"user_id": user_id, "role": role})
        assert resp.status_code == 200, f"token request failed: {resp.status_code} {resp.text}"
        data = resp.json()
        assert "access_token" in data, f"token response missing access_token: {data}"
        return {"Authorization": f"Bearer {data['access_token']}"}

    return build
