"""
Shared fixtures: an in-memory database, report/user factories, a recording
mail sender and audit log, and an authenticated TestClient.
"""

import os

# Must be set before app modules read the settings
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["SMTP_USER"] = ""
os.environ["SMTP_PASS"] = ""
os.environ["EMAIL_DELAY_MS"] = "0"
os.environ["EMAIL_BATCH_DELAY_MS"] = "0"

import uuid  # noqa: E402
from datetime import datetime, timezone  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlmodel import Session, SQLModel  # noqa: E402

from app.db.db import engine, init_db  # noqa: E402
from app.models.found_item import FoundItem  # noqa: E402
from app.models.lost_item import LostItem  # noqa: E402
from app.models.user import User  # noqa: E402
from app.routers.auth import create_access_token  # noqa: E402
from app.services.report_store import generate_unique_id  # noqa: E402


def utc(year, month, day, hour=0, minute=0):
    return datetime(year, month, day, hour, minute, tzinfo=timezone.utc)


def lost_report(**overrides):
    """Unsaved lost report; the default matches found_report()."""
    fields = {
        "id": uuid.uuid4(),
        "unique_id": "LNF-LOST-00001",
        "user_id": 1,
        "item_name": "Black Dell Laptop",
        "description": "Dell Latitude with a sticker on the lid",
        "category": "Electronics",
        "last_known_location": "Main Library",
        "date_lost": utc(2024, 1, 10),
    }
    fields.update(overrides)
    return LostItem(**fields)


def found_report(**overrides):
    fields = {
        "id": uuid.uuid4(),
        "unique_id": "LNF-FOUND-00001",
        "user_id": 2,
        "item_name": "Dell Laptop Black",
        "description": "Found on a desk on the second floor",
        "category": "Electronics",
        "location_found": "main library ",
        "date_found": utc(2024, 1, 11),
    }
    fields.update(overrides)
    return FoundItem(**fields)


class RecordingMailSender:
    """Mail sender double; fails for any recipient listed in fail_for."""

    def __init__(self, events=None, fail_for=(), raise_for=()):
        self.sent = []
        self.events = events if events is not None else []
        self.fail_for = set(fail_for)
        self.raise_for = set(raise_for)

    async def send(self, email):
        self.events.append(("send", email.recipient_email))

        if email.recipient_email in self.raise_for:
            raise ConnectionError("SMTP connection refused")

        if email.recipient_email in self.fail_for:
            return False

        self.sent.append(email)
        return True


class RecordingAuditLog:
    def __init__(self):
        self.emails = []
        self.activities = []

    def record_email(self, **entry):
        self.emails.append(entry)

    def record_activity(self, **entry):
        self.activities.append(entry)


class RecordingSleep:
    """Stands in for asyncio.sleep; records delays without waiting."""

    def __init__(self, events=None):
        self.delays = []
        self.events = events if events is not None else []

    async def __call__(self, seconds):
        self.delays.append(seconds)
        self.events.append(("sleep", seconds))


@pytest.fixture
def db():
    SQLModel.metadata.drop_all(engine)
    init_db()
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture
def session(db):
    with Session(engine) as session:
        yield session


@pytest.fixture
def make_user(session):
    counter = {"n": 0}

    def _make(role="user", status="active", **overrides):
        counter["n"] += 1
        fields = {
            "public_id": uuid.uuid4().hex,
            "full_name": f"User {counter['n']}",
            "email": f"user{counter['n']}@campus.edu",
            "role": role,
            "status": status,
        }
        fields.update(overrides)

        user = User(**fields)
        session.add(user)
        session.commit()
        session.refresh(user)
        return user

    return _make


@pytest.fixture
def save_report(session):
    """Persist a report built by lost_report()/found_report() with a real unique id."""

    def _save(report):
        report_type = "lost" if isinstance(report, LostItem) else "found"
        report.unique_id = generate_unique_id(session, report_type)
        session.add(report)
        session.commit()
        session.refresh(report)
        return report

    return _save


@pytest.fixture
def client(db):
    from app.main import app

    with TestClient(app) as test_client:
        yield test_client


def auth_headers(user):
    return {"Authorization": f"Bearer {create_access_token(user)}"}


class RecordingTrigger:
    def __init__(self):
        self.created = []
        self.resolved = []

    async def on_report_created(self, report_id, report_type):
        self.created.append((str(report_id), report_type))

    async def on_report_resolved(self, report_id, report_type):
        self.resolved.append((str(report_id), report_type))


@pytest.fixture
def trigger(client):
    """Replaces the app's match trigger so routes can be checked without the queue."""
    recorder = RecordingTrigger()
    client.app.state.match_trigger = recorder
    return recorder
