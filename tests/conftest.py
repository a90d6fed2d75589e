import os
import sys
from datetime import datetime, timedelta, timezone
from io import BytesIO
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from PIL import Image
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

# Ensure project root is on sys.path for 'app' imports
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from app.api.dependencies.database import get_db
from app.api.dependencies.services import build_receipt_view_model
from app.db.base_class import Base
from app.db import base as models_import  # noqa: F401 - ensure models are imported
from app.db.live_query import ReceiptChangeFeed
from app.schemas.auth import Identity
from app.services.image_services import ImageStore
from app.services.session_services import SessionProvider, SessionRegistry


class FakeStorageError(Exception):
    """Mimics the ``code`` attribute of ``minio.error.S3Error``."""

    def __init__(self, code, message=""):
        super().__init__(f"{code}: {message}")
        self.code = code


class FakeMinio:
    """In-memory stand-in for the subset of the MinIO client the store uses."""

    def __init__(self):
        self.objects = {}
        self.failing = set()
        self.calls = []

    def _maybe_fail(self, operation):
        self.calls.append(operation)
        if operation in self.failing:
            raise FakeStorageError("InternalError", f"{operation} failed")

    def put_object(self, bucket, key, data, length, content_type=None):
        self._maybe_fail("put_object")
        self.objects[(bucket, key)] = data.read(length)

    def stat_object(self, bucket, key):
        self._maybe_fail("stat_object")
        if (bucket, key) not in self.objects:
            raise FakeStorageError("NoSuchKey", "Object does not exist")
        return SimpleNamespace(object_name=key, size=len(self.objects[(bucket, key)]))

    def presigned_get_object(self, bucket, key, expires=timedelta(days=7)):
        self._maybe_fail("presigned_get_object")
        return f"http://minio.test/{bucket}/{key}?X-Amz-Expires={int(expires.total_seconds())}"

    def remove_object(self, bucket, key):
        self._maybe_fail("remove_object")
        self.objects.pop((bucket, key), None)

    def has(self, key, bucket="receipts"):
        return (bucket, key) in self.objects


def make_jpeg(color=(200, 30, 30)):
    buffer = BytesIO()
    Image.new("RGB", (8, 8), color).save(buffer, format="JPEG")
    return buffer.getvalue()


class TickingClock:
    """One second per call so consecutive uploads never share a key."""

    def __init__(self, start=datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self):
        current = self.now
        self.now = self.now + timedelta(seconds=1)
        return current


@pytest.fixture
def db_env(tmp_path):
    # File-based SQLite so snapshot sessions see what other sessions committed
    engine = create_engine(
        f"sqlite:///{tmp_path / 'test.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    session_factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    change_feed = ReceiptChangeFeed()
    change_feed.bind(session_factory)
    yield SimpleNamespace(engine=engine, session_factory=session_factory, change_feed=change_feed)
    change_feed.unbind(session_factory)
    engine.dispose()


@pytest.fixture
def fake_minio():
    return FakeMinio()


@pytest.fixture
def image_store(fake_minio):
    return ImageStore(fake_minio, bucket="receipts", clock=TickingClock())


@pytest.fixture
def jpeg_bytes():
    return make_jpeg()


@pytest.fixture
def view_model_factory(db_env, image_store):
    """Build view models over the test database, fake storage and change feed."""
    built = []

    def _factory(session):
        view_model = build_receipt_view_model(
            session,
            session_factory=db_env.session_factory,
            image_store=image_store,
            change_feed=db_env.change_feed,
        )
        built.append(view_model)
        return view_model

    yield _factory
    for view_model in built:
        view_model.dispose()


@pytest.fixture
def client(db_env, image_store):
    """TestClient over the app with test database, fake storage and a fresh registry."""
    from main import app

    def _override_get_db():
        db = db_env.session_factory()
        try:
            yield db
        finally:
            db.close()

    def _factory(session):
        return build_receipt_view_model(
            session,
            session_factory=db_env.session_factory,
            image_store=image_store,
            change_feed=db_env.change_feed,
        )

    app.dependency_overrides[get_db] = _override_get_db
    app.state.session_registry = SessionRegistry(view_model_factory=_factory)

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
    app.state.session_registry = None


@pytest.fixture
def signed_in(view_model_factory):
    """Open a signed-in session for a user id and return its view model."""

    def _sign_in(uid="u1"):
        session = SessionProvider(session_id=f"session-{uid}")
        session.resolve(Identity(id=uid, email=f"{uid}@mail.com"))
        return view_model_factory(session)

    return _sign_in
