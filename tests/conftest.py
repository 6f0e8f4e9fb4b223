from pathlib import Path
import io
import os
import sys
import tempfile

ROOT = Path(__file__).resolve().parents[1]
BACKEND_DIR = ROOT / "backend"
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

_DB_DIR = tempfile.mkdtemp(prefix="dance-entry-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{_DB_DIR}/test.db"
os.environ["JWT_SECRET_KEY"] = "test-only-jwt-secret-0123456789abcdefghijklmnop"
os.environ["APP_TIMEZONE"] = "UTC"
os.environ["APP_URL"] = "http://testserver"
for _name in ("EMAIL_FUNCTION_URL", "ADMIN_EMAIL", "ADMIN_PASSWORD", "ALLOWED_ORIGINS"):
    os.environ.pop(_name, None)

import pytest

import email_workflows
import utils
from auth import get_password_hash, issue_token_pair
from database import Base, SessionLocal, engine
from debug_log import ring_buffer
from models import User, UserRole
from rate_limit import reset_all_limiters


class FakeS3:
    def __init__(self):
        self.objects = {}
        self.deleted = []

    def put_object(self, Bucket, Key, Body, ContentType=None):
        self.objects[Key] = {"body": Body, "content_type": ContentType}

    def get_object(self, Bucket, Key):
        return {"Body": io.BytesIO(self.objects[Key]["body"])}

    def generate_presigned_url(self, operation, Params, ExpiresIn):
        return f"https://fake-s3.local/{Params['Bucket']}/{Params['Key']}?expires={ExpiresIn}"

    def delete_objects(self, Bucket, Delete):
        for item in Delete["Objects"]:
            self.deleted.append(item["Key"])
            self.objects.pop(item["Key"], None)
        return {"Deleted": [{"Key": item["Key"]} for item in Delete["Objects"]]}


@pytest.fixture(scope="session", autouse=True)
def _create_tables():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def _clean_state():
    reset_all_limiters()
    ring_buffer.clear()
    yield
    with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())
    reset_all_limiters()


@pytest.fixture(autouse=True)
def fake_s3(monkeypatch):
    fake = FakeS3()
    monkeypatch.setattr(utils, "S3_CLIENT", fake)
    monkeypatch.setattr(utils, "S3_BUCKET_NAME", "test-bucket")
    return fake


@pytest.fixture(autouse=True)
def sent_emails(monkeypatch):
    outbox = []

    def _fake_send(to_email, subject, html, text, sender=None):
        outbox.append({"to": to_email, "subject": subject, "html": html, "text": text})

    monkeypatch.setattr(email_workflows, "send_email", _fake_send)
    return outbox


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    from fastapi.testclient import TestClient
    from server import app

    with TestClient(app) as test_client:
        yield test_client


def make_user(db, email, name="Test User", role=UserRole.PARTICIPANT, password="password123"):
    user = User(email=email, name=name, role=role, hashed_password=get_password_hash(password))
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def auth_headers(user):
    return {"Authorization": f"Bearer {issue_token_pair(user)['access_token']}"}


def csrf_headers(client):
    response = client.get("/api/auth/csrf")
    assert response.status_code == 200
    return {"X-CSRF-Token": response.json()["csrf_token"]}


@pytest.fixture
def participant(db):
    return make_user(db, "dancer@example.com", name="Dancer One")


@pytest.fixture
def admin(db):
    return make_user(db, "admin@example.com", name="Admin", role=UserRole.ADMIN)


@pytest.fixture
def participant_headers(client, participant):
    return {**auth_headers(participant), **csrf_headers(client)}


@pytest.fixture
def admin_headers(client, admin):
    return {**auth_headers(admin), **csrf_headers(client)}


BASIC_COMPLETE = {
    "dance_style": "Ballroom",
    "category_division": "Professional",
    "representative_name": "Taro",
    "representative_furigana": "TARO",
    "representative_email": "taro@example.com",
    "partner_name": "Hanako",
    "partner_furigana": "HANAKO",
    "phone_number": "090-1234-5678",
    "real_name": "Taro Valqua",
    "real_name_kana": "TARO VALQUA",
    "partner_real_name": "Hanako Valqua",
    "partner_real_name_kana": "HANAKO VALQUA",
    "emergency_contact_name_1": "Mother",
    "emergency_contact_phone_1": "03-1234-5678",
    "agreement_checked": True,
    "privacy_policy_checked": True,
}

PRELIMINARY_COMPLETE = {
    "work_title": "Spring",
    "work_title_kana": "SPRING",
    "work_story": "A story",
    "music_title": "Song",
    "cd_title": "Album",
    "artist": "Artist",
    "record_number": "ABC-1",
    "jasrac_code": "123-4567-8",
    "choreographer1_name": "Choreo",
    "choreographer1_furigana": "CHOREO",
}
