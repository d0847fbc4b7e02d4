import os

os.environ["DATABASE_URL"] = "sqlite:///./test.db"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["HEARTBEAT_BACKEND"] = "memory"
os.environ["ADMIN_PHONE"] = "9000000000"
os.environ["ADMIN_PASSWORD"] = "adminpassword"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from mepcalls.core.config import settings
from mepcalls.core.database import Base
from mepcalls.main import app
from mepcalls.core import database
from mepcalls.models import CallLog, ExcludedContact, Role, SystemConfig, User
from mepcalls.services.bootstrap import ensure_user

SQLALCHEMY_DATABASE_URL = settings.database_url

engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(scope="session", autouse=True)
def setup_database():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    ensure_user(db, "Admin User", "9000000000", "adminpassword", Role.ADMIN)
    ensure_user(db, "Asha", "9000000001", "ashapassword", Role.STAFF)
    ensure_user(db, "Ravi", "9000000002", "ravipassword", Role.STAFF)
    db.close()
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def clean_tables():
    yield
    session = TestingSessionLocal()
    session.query(CallLog).delete()
    session.query(ExcludedContact).delete()
    session.query(SystemConfig).delete()
    session.commit()
    session.close()


@pytest.fixture()
def staff_ids(db):
    return {user.phone: user.id for user in db.query(User).all()}


@pytest.fixture()
def client():
    app.dependency_overrides[database.get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def login(client, phone, password):
    response = client.post("/auth/login", json={"phone": phone, "password": password})
    return response.json()["access_token"]


def auth(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def admin_headers(client):
    return auth(login(client, "9000000000", "adminpassword"))


@pytest.fixture()
def asha_headers(client):
    return auth(login(client, "9000000001", "ashapassword"))


@pytest.fixture()
def ravi_headers(client):
    return auth(login(client, "9000000002", "ravipassword"))
