"""
Shared fixtures: in-memory database, API client and fake collaborators.
"""

import os
import tempfile
from uuid import uuid4

# must be set before cbtprep.config is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["LOG_DIR"] = tempfile.mkdtemp(prefix="cbtprep-log-")
os.environ["ALOC_ACCESS_TOKEN"] = ""
os.environ["PAYSTACK_SECRET_KEY"] = ""
os.environ["AI_API_KEY"] = ""
os.environ["UNLOCK_CODES"] = "08148800,09019180,08039890"

import pytest
from fastapi.testclient import TestClient

from cbtprep.database import Base, engine, SessionLocal
from cbtprep.main import app
from cbtprep.models import User
from cbtprep.utils.explanations import get_explainer, FALLBACK_EXPLANATION
from cbtprep.utils.fallback import FallbackQuestionGenerator, get_fallback_generator
from cbtprep.utils.paystack import PaystackClient, get_payment_gateway
from cbtprep.utils.question_source import get_question_source

FOUR_SUBJECTS = [
    {"id": "mathematics", "name": "Mathematics"},
    {"id": "english", "name": "English"},
    {"id": "biology", "name": "Biology"},
    {"id": "physics", "name": "Physics"},
]


def make_record(subject, i, answer="a"):
    return {
        "id": f"{subject.lower()}-{i}",
        "question": f"{subject} question {i}",
        "option": {"a": "first", "b": "second", "c": "third", "d": "fourth"},
        "answer": answer,
        "solution": f"Because {i}",
        "examtype": "utme",
        "examyear": "2019",
        "subject": subject,
    }


class FakeSource:
    """Returns `per_subject` records for every subject unless overridden in `yields`."""

    def __init__(self, yields=None, fail_for=()):
        self.yields = yields or {}
        self.fail_for = set(fail_for)
        self.calls = []

    def fetch_questions(self, subject, count, exam_type="utme"):
        self.calls.append(subject)
        if subject in self.fail_for:
            return []
        n = min(self.yields.get(subject, count), count)
        return [make_record(subject, i) for i in range(n)]


class EmptyGenerator:
    def generate(self, subject, count, exam_type="utme"):
        return []


class FakeExplainer:
    def __init__(self, text=FALLBACK_EXPLANATION):
        self.text = text
        self.calls = []

    def explain(self, question, correct_answer, user_answer, subject):
        self.calls.append((question, correct_answer, user_answer, subject))
        return self.text


@pytest.fixture(autouse=True)
def reset_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    app.dependency_overrides.clear()


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def fake_source():
    return FakeSource()


@pytest.fixture
def fake_explainer():
    return FakeExplainer()


@pytest.fixture
def client(fake_source, fake_explainer):
    app.dependency_overrides[get_question_source] = lambda: fake_source
    app.dependency_overrides[get_fallback_generator] = lambda: FallbackQuestionGenerator()
    app.dependency_overrides[get_payment_gateway] = lambda: PaystackClient(secret_key="")
    app.dependency_overrides[get_explainer] = lambda: fake_explainer
    with TestClient(app) as c:
        yield c


def _create_user(db, premium=False, email=None):
    user = User(
        id=str(uuid4()),
        email=email or f"{uuid4().hex[:8]}@example.com",
        password_hash="not-a-real-hash",
        nickname="Tester",
        is_premium=premium,
        is_activated=premium,
        total_score=0,
        tests_completed=0,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def user(db):
    return _create_user(db)


@pytest.fixture
def premium_user(db):
    return _create_user(db, premium=True)


@pytest.fixture
def make_user(db):
    return lambda **kw: _create_user(db, **kw)


def headers_for(user):
    return {"Authorization": f"Bearer {user.id}"}


@pytest.fixture
def auth_headers(user):
    return headers_for(user)


@pytest.fixture
def premium_headers(premium_user):
    return headers_for(premium_user)
