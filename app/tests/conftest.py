import os

# settings are read at import time; point them at SQLite before importing the app
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ADMIN_ADDRESSES", '["0xAdA0000000000000000000000000000000000001"]')

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# FORCE model registration
import app.models  # noqa

from app.db.base import Base
from app.db.session import get_db
from app.main import create_app
from app.services.notification_service import NotificationService

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


class RecordingNotifier(NotificationService):
    def __init__(self):
        self.sent = []

    def notify(self, db, **kwargs):
        self.sent.append(kwargs)


class FailingNotifier(NotificationService):
    def __init__(self):
        self.attempts = 0

    def notify(self, db, **kwargs):
        self.attempts += 1
        raise RuntimeError("notification backend unavailable")


@pytest.fixture(scope="function")
def db():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db):
    application = create_app()

    def override_get_db():
        s = TestingSessionLocal()
        try:
            yield s
        finally:
            s.close()

    application.dependency_overrides[get_db] = override_get_db
    return TestClient(application)


@pytest.fixture
def recorder():
    return RecordingNotifier()


@pytest.fixture
def failing_notifier():
    return FailingNotifier()
