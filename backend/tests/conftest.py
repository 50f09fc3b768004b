import os
import tempfile
import uuid
from collections.abc import Generator
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session, sessionmaker

TEST_DATABASE_URL = os.getenv('TEST_DATABASE_URL') or (
    f"sqlite+pysqlite:///{Path(tempfile.gettempdir()) / f'exam_attempts_test_{os.getpid()}.db'}"
)

os.environ.setdefault('DATABASE_URL', TEST_DATABASE_URL)
os.environ.setdefault('JWT_SECRET_KEY', 'test-access-secret-32-chars-min-0001')
os.environ.setdefault('APP_ENV', 'test')
os.environ.setdefault('CORS_ORIGINS', 'http://localhost:3001')
os.environ.setdefault('LOG_LEVEL', 'WARNING')

from app.core.clock import get_clock
from app.core.security import ROLE_ADMIN, ROLE_PARTICIPANT, create_access_token
from app.db.base import Base
from app.db.session import build_engine, get_db
from app.main import app
from app.models.exam import ExamQuestion, ExamTest


engine = build_engine(TEST_DATABASE_URL)
TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


NOW = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)


class FrozenClock:
    def __init__(self, now: datetime = NOW):
        self.current = now

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs: float) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


@pytest.fixture(autouse=True)
def setup_database() -> Generator[None, None, None]:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)

    yield

    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture()
def client(db_session: Session, clock: FrozenClock) -> Generator[TestClient, None, None]:
    def _override_db() -> Generator[Session, None, None]:
        try:
            yield db_session
        except Exception:
            db_session.rollback()
            raise

    app.dependency_overrides[get_db] = _override_db
    app.dependency_overrides[get_clock] = lambda: clock

    with TestClient(app) as api_client:
        yield api_client

    app.dependency_overrides.clear()


def create_exam(
    db: Session,
    *,
    questions: list[dict],
    duration_minutes: int = 30,
    start_window: datetime | None = None,
    end_window: datetime | None = None,
    passing_score_percent: int | None = None,
    is_active: bool = True,
) -> ExamTest:
    test = ExamTest(
        title='Networking fundamentals',
        duration_minutes=duration_minutes,
        start_window=start_window or NOW - timedelta(hours=1),
        end_window=end_window or NOW + timedelta(hours=8),
        passing_score_percent=passing_score_percent,
        is_active=is_active,
    )
    for index, item in enumerate(questions):
        test.questions.append(
            ExamQuestion(
                kind=item.get('kind', 'multiple_choice'),
                prompt=item.get('prompt', f'Question {index + 1}'),
                options=item.get('options', ['a', 'b', 'c', 'd']),
                correct_answer=item.get('correct_answer'),
                points=item.get('points'),
                order_index=index,
            )
        )
    db.add(test)
    db.commit()
    return test


def auth_header(user_id: uuid.UUID, role: str = ROLE_PARTICIPANT) -> dict[str, str]:
    return {'Authorization': f'Bearer {create_access_token(str(user_id), role)}'}


def admin_header() -> dict[str, str]:
    return auth_header(uuid.uuid4(), ROLE_ADMIN)


def start(client: TestClient, test: ExamTest, user_id: uuid.UUID) -> dict:
    response = client.post('/api/v1/attempts', headers=auth_header(user_id), json={'test_id': str(test.id)})
    assert response.status_code in (200, 201), response.text
    return response.json()
