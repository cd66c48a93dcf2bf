"""
Test configuration and fixtures
"""
import os
import tempfile
from typing import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

_tmp = tempfile.mkdtemp(prefix="formbuilder-tests-")

# Set testing environment before the application modules read it
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_tmp, 'app.db')}"
os.environ["JWT_SECRET"] = "test-jwt-secret-for-testing-only"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["UPLOAD_DIR"] = os.path.join(_tmp, "uploads")
os.environ.pop("SMTP_HOST", None)

from formbuilder import models  # noqa: E402
from formbuilder.core import security  # noqa: E402
from formbuilder.database import Base, build_engine, get_db_session  # noqa: E402
from formbuilder.main import app  # noqa: E402
from formbuilder.services.collaboration import CollaborationHub, get_hub  # noqa: E402
from formbuilder.services.notifier import get_notifier  # noqa: E402


class RecordingNotifier:
    """Collects notifications instead of sending mail"""

    def __init__(self):
        self.submissions = []
        self.invitations = []

    async def notify_submission(self, **kwargs):
        self.submissions.append(kwargs)

    async def notify_invitation(self, email, form_title, role, temporary_password=None):
        self.invitations.append(
            {
                "email": email,
                "form_title": form_title,
                "role": role,
                "temporary_password": temporary_password,
            }
        )


class MemoryDrafts:
    def __init__(self):
        self.saved = {}

    async def load(self, room_id):
        return self.saved.get(room_id)

    async def persist(self, room_id, document):
        self.saved[room_id] = document


@pytest.fixture
async def engine(tmp_path):
    test_engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(
        bind=engine, class_=AsyncSession, autoflush=False, expire_on_commit=False
    )


@pytest.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Session for tests that call the crud layer directly"""
    async with session_factory() as session:
        yield session


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def drafts():
    return MemoryDrafts()


@pytest.fixture
def hub(drafts):
    return CollaborationHub(drafts.load, drafts.persist, save_delay=0.05)


@pytest.fixture
async def client(session_factory, notifier, hub) -> AsyncGenerator[AsyncClient, None]:
    """Test client with database, notifier and collaboration hub overridden"""

    async def override_get_db_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_get_db_session
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_hub] = lambda: hub

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
    await hub.close()


async def make_user(db: AsyncSession, email: str) -> models.User:
    async with db.begin():
        user = models.User(email=email, password_hash=security.get_password_hash("secret123"))
        db.add(user)
    return user


def auth_headers(user_id: int) -> dict:
    return {"Authorization": f"Bearer {security.create_access_token(user_id)}"}


@pytest.fixture
async def owner(db) -> models.User:
    return await make_user(db, "owner@example.com")


@pytest.fixture
async def other_user(db) -> models.User:
    return await make_user(db, "other@example.com")


def sample_document(title="Customer survey", **overrides) -> dict:
    document = {
        "title": title,
        "description": "How did we do?",
        "settings": {"is_quiz": True, "update_window_hours": 24},
        "sections": [
            {
                "title": "General",
                "description": "First section",
                "seq_order": 0,
                "items": [
                    {
                        "title": "Favourite colour",
                        "kind": "QUESTION_ITEM",
                        "question": {
                            "kind": "CHOICE_QUESTION",
                            "required": True,
                            "grading": {"point_value": 2, "answer_key": ["Blue"]},
                            "options": {
                                "type": "RADIO",
                                "choices": [{"value": "Red"}, {"value": "Blue"}],
                            },
                        },
                    },
                    {
                        "title": "Comments",
                        "kind": "QUESTION_ITEM",
                        "question": {"kind": "TEXT_QUESTION"},
                    },
                ],
            },
            {"title": "Thanks", "seq_order": 1, "items": []},
        ],
        "navigation_rules": [
            {"section_id": 0, "target_section_id": 1, "condition": "always"}
        ],
    }
    document.update(overrides)
    return document
