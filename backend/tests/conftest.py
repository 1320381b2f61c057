import os
import tempfile
import uuid
from pathlib import Path

import pytest

# Point the app at a throwaway database and keep the live summarizer off
# before anything imports learnhub.
_DB_DIR = Path(tempfile.mkdtemp(prefix="learnhub-tests-"))
os.environ["DATABASE_URL"] = f"sqlite:///{_DB_DIR / 'test.db'}"
os.environ["SUMMARY_ENABLED"] = "false"

from fastapi.testclient import TestClient  # noqa: E402
from sqlmodel import Session  # noqa: E402

from learnhub.database import engine  # noqa: E402
from learnhub.main import app  # noqa: E402
from learnhub import services  # noqa: E402


def unique(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:8]}"


@pytest.fixture(scope="session")
def client():
    return TestClient(app)


@pytest.fixture
def session():
    """A session on the test database for service-level tests."""
    with Session(engine) as s:
        yield s


@pytest.fixture
def registries(session):
    return services.Registries(session)


def _signup(client, type_: str) -> dict:
    email = f"{unique(type_)}@example.com"
    password = "password123"
    r = client.post('/users', json={
        'email': email,
        'password': password,
        'firstname': 'Ada',
        'lastname': 'Lovelace',
        'type': type_,
    })
    assert r.status_code == 201, r.text
    login = client.post('/auth/login', json={'email': email, 'password': password})
    assert login.status_code == 200, login.text
    token = login.json()['access_token']
    return {
        'uuid': r.json()['uuid'],
        'email': email,
        'password': password,
        'headers': {'Authorization': f'Bearer {token}'},
    }


@pytest.fixture
def teacher(client):
    return _signup(client, 'teacher')


@pytest.fixture
def other_teacher(client):
    return _signup(client, 'teacher')


@pytest.fixture
def student(client):
    return _signup(client, 'student')


@pytest.fixture
def course(client, teacher):
    r = client.post('/courses', json={
        'title': unique('Databases'),
        'description': 'Relational basics',
        'tags': ['sql', 'database'],
        'creator_id': teacher['uuid'],
    }, headers=teacher['headers'])
    assert r.status_code == 201, r.text
    return r.json()


@pytest.fixture
def chapter(client, teacher, course):
    r = client.post('/chapters', json={
        'title': unique('Normal forms'),
        'content': 'First, second and third normal form.',
        'course_id': course['uuid'],
    }, headers=teacher['headers'])
    assert r.status_code == 201, r.text
    return r.json()


def quiz_payload(chapter_id: str, creator_id: str, correct=(0, 1, 0)) -> dict:
    return {
        'title': unique('Quiz'),
        'chapter_id': chapter_id,
        'creator_id': creator_id,
        'questions': [
            {'text': f'Question {i}', 'options': ['A', 'B', 'C'], 'correct_option': c}
            for i, c in enumerate(correct)
        ],
    }
