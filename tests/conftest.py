"""
Shared test fixtures for Scorebook.
Everything runs against the in-memory document store and identity service.
Zero network calls.
"""
import pytest

from scorebook.config import config

JWT_SECRET = "test-jwt-secret-with-enough-length-for-hs256"


@pytest.fixture(autouse=True)
def jwt_secret(monkeypatch):
    """Token signing and validation read SUPABASE_JWT_SECRET from the environment."""
    monkeypatch.setenv("SUPABASE_JWT_SECRET", JWT_SECRET)
    return JWT_SECRET


@pytest.fixture
def store():
    from scorebook.services.documents import MemoryDocumentStore
    return MemoryDocumentStore()


@pytest.fixture
def identity(jwt_secret):
    from scorebook.services.identity import MemoryIdentityService
    return MemoryIdentityService(jwt_secret)


@pytest.fixture
def teacher_identity(identity):
    """Identity service with the fixed teacher account already provisioned."""
    from scorebook.app import provision_teacher
    provision_teacher(identity)
    return identity


@pytest.fixture
def app(store, teacher_identity):
    from scorebook.app import create_app
    application = create_app(store=store, identity=teacher_identity)
    application.config.update(TESTING=True)
    yield application
    application.extensions['scorebook']['dashboards'].close_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def teacher_client(app):
    """A second browser, signed in as the teacher."""
    c = app.test_client()
    resp = c.post("/api/auth/teacher/login", json={
        "username": config.teacher_user_name,
        "password": config.teacher_password_code,
    })
    assert resp.status_code == 200
    return c


@pytest.fixture
def add_grade(store):
    """Write a grade record straight into the store; returns its id."""
    from scorebook.services.documents import grades_collection

    def _add(student_id, test="MIDTERM", subject="MATH", term="T1", score=80, **extra):
        record = {"test": test, "subject": subject, "term": term, "score": score}
        record.update(extra)
        return store.add(grades_collection(student_id), record)
    return _add
