"""
Shared fixtures: an in-memory SQLite database per test, seeded
organization/staff/donor rows and a FastAPI test client bound to the
same session.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database.database import Base, get_db
import database.models  # noqa: F401
from database.models import Organization, Staff, Donor, Project, Donation

ORG_ID = "org_test"
OTHER_ORG_ID = "org_other"
USER_ID = "user_test"


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = Session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def org(db):
    """The test organization plus a second one for isolation checks."""
    organization = Organization(
        id=ORG_ID,
        name="Hope Shelter",
        website_summary="Hope Shelter houses families.\n\nWe run a food pantry every week.",
        writing_instructions="Keep it warm and short.",
        memory=[],
    )
    db.add_all([organization, Organization(id=OTHER_ORG_ID, name="Other Org", memory=[])])
    db.commit()
    return organization


@pytest.fixture
def staff(db, org):
    member = Staff(
        organization_id=ORG_ID,
        first_name="Sarah",
        last_name="Lee",
        email="sarah@example.com",
        signature="Warmly,\nSarah",
    )
    db.add(member)
    db.commit()
    db.refresh(member)
    return member


@pytest.fixture
def donor(db, org):
    person = Donor(
        organization_id=ORG_ID,
        first_name="John",
        last_name="Smith",
        email="john@example.com",
        state="CA",
        gender="male",
        notes=[],
    )
    db.add(person)
    db.commit()
    db.refresh(person)
    return person


@pytest.fixture
def other_donor(db, org):
    person = Donor(
        organization_id=OTHER_ORG_ID,
        first_name="Olga",
        last_name="Other",
        email="olga@example.com",
        notes=[],
    )
    db.add(person)
    db.commit()
    db.refresh(person)
    return person


@pytest.fixture
def project(db, org):
    item = Project(organization_id=ORG_ID, name="General", active=True, tags=[])
    db.add(item)
    db.commit()
    db.refresh(item)
    return item


@pytest.fixture
def donation(db, donor, project):
    gift = Donation(
        donor_id=donor.id,
        project_id=project.id,
        amount=5000,
        currency="USD",
        date=datetime(2024, 3, 5),
    )
    db.add(gift)
    db.commit()
    db.refresh(gift)
    return gift


class FakeExecutor:
    """Records submitted jobs instead of running them."""

    def __init__(self):
        self.submitted = []

    def submit(self, job_id, func, *args):
        self.submitted.append({"job_id": job_id, "func": func, "args": args})
        return job_id


@pytest.fixture
def fake_executor():
    return FakeExecutor()


@pytest.fixture
def client(db):
    """TestClient whose requests share the test session."""
    from fastapi.testclient import TestClient
    from donor_crm_backend import app

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def headers():
    return {"x-user-id": USER_ID, "x-organization-id": ORG_ID}
