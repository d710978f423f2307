import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from mastermore.db.base import Base
from mastermore.db.sessions import get_db
from mastermore.core.security import create_access_token, get_password_hash
from mastermore.models import User
from mastermore.services.course_builder import CourseBuilder
from mastermore.services.completion_recorder import CompletionRecorder
from mastermore.services.grading import GradingAggregator
import mastermore.models  # noqa: F401


engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def builder(db):
    return CourseBuilder(db)


@pytest.fixture
def recorder(db):
    return CompletionRecorder(db)


@pytest.fixture
def grading(db):
    return GradingAggregator(db)


def make_user(db, email, role="student", level="B2", name="Test User"):
    user = User(
        name=name,
        email=email,
        password_hash=get_password_hash("secret123"),
        role=role,
        level=level,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def student(db):
    return make_user(db, "student@example.com")


@pytest.fixture
def other_student(db):
    return make_user(db, "other@example.com", name="Other Student")


@pytest.fixture
def admin(db):
    return make_user(db, "admin@example.com", role="admin", name="Admin")


def auth_headers(user):
    return {"Authorization": f"Bearer {create_access_token({'sub': str(user.id)})}"}


@pytest.fixture
def client(db):
    from mastermore.main import app

    def override_get_db():
        session = TestingSessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def correct_option_id(question):
    return str(next(opt.id for opt in question.options if opt.is_correct))


def wrong_option_id(question):
    return str(next(opt.id for opt in question.options if not opt.is_correct))
