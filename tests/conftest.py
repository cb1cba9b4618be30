import pytest
from unittest.mock import Mock, MagicMock, patch
from fastapi.testclient import TestClient

from main import app
from app.database import get_db
from app.auth.dependencies import CurrentUser, get_current_user
from app.models.course import Course, CourseAddon
from app.models.enrollment import Enrollment, EnrollmentStatus


USER_ID = "7d2f5a8e-1c3b-4f6a-9e0d-2b4c6d8e0f11"
COURSE_ID = "c0a80121-7ac0-4e1c-b1a2-0d3e4f5a6b7c"
ADDON_ID = "a1b2c3d4-e5f6-4789-a012-3456789abcde"


@pytest.fixture(autouse=True)
def mock_redis():
    """Redis stand-in so reconciliation locks never touch the network"""
    client = MagicMock()
    client.set.return_value = True
    with patch("app.redis_client.get_redis_client", return_value=client):
        yield client


@pytest.fixture
def mock_db():
    """Mock database session"""
    db = MagicMock()
    db.query.return_value = db
    db.filter.return_value = db
    db.order_by.return_value = db
    db.distinct.return_value = db
    db.first.return_value = None
    db.all.return_value = []
    db.count.return_value = 0
    return db


@pytest.fixture
def current_user():
    return CurrentUser(id=USER_ID, email="student@test.com")


@pytest.fixture
def course():
    c = Mock(spec=Course)
    c.id = COURSE_ID
    c.title = "JEE Advanced 2027 Batch"
    c.subject = "Physics, Chemistry"
    c.subject_list = ["Physics", "Chemistry"]
    c.price = 5000
    c.discounted_price = 4000
    c.effective_price = 4000.0
    c.is_free = False
    return c


@pytest.fixture
def free_course():
    c = Mock(spec=Course)
    c.id = COURSE_ID
    c.title = "Free Crash Course"
    c.subject = "Mathematics"
    c.subject_list = ["Mathematics"]
    c.price = 0
    c.discounted_price = None
    c.effective_price = 0.0
    c.is_free = True
    return c


def make_addon(subject_name: str, price: float, id: str = ADDON_ID):
    addon = Mock(spec=CourseAddon)
    addon.id = id
    addon.subject_name = subject_name
    addon.price = price
    addon.course_id = COURSE_ID
    return addon


def make_enrollment(subject_name=None, status=EnrollmentStatus.SUCCESS, order_id=None, course=None):
    row = Mock(spec=Enrollment)
    row.id = "e-" + (subject_name or "main")
    row.user_id = USER_ID
    row.course_id = COURSE_ID
    row.subject_name = subject_name
    row.status = status
    row.order_id = order_id
    row.course = course
    return row


@pytest.fixture
def client_with_user(mock_db, current_user):
    """TestClient with an authenticated student and mocked DB"""
    app.dependency_overrides[get_db] = lambda: mock_db
    app.dependency_overrides[get_current_user] = lambda: current_user
    client = TestClient(app)
    yield client, mock_db, current_user
    app.dependency_overrides.clear()


@pytest.fixture
def unauthenticated_client(mock_db):
    """TestClient with mocked DB but no auth"""
    app.dependency_overrides[get_db] = lambda: mock_db
    client = TestClient(app)
    yield client, mock_db
    app.dependency_overrides.clear()


@pytest.fixture
def client():
    return TestClient(app)
