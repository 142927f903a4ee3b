import os

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["AUTO_CREATE_DB"] = "false"
os.environ["RATE_LIMIT"] = "10000/minute"
os.environ["ENABLE_NOTIFICATIONS"] = "true"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from app.auth.security import create_access_token, get_password_hash
from app.db import Base, create_db_engine, get_db
from app.main import app
from app.models.models import User
from app.services.catalog import Catalog
from app.services.projects import create_project


@pytest.fixture
def engine():
    eng = create_db_engine("sqlite://")
    Base.metadata.create_all(bind=eng)
    yield eng
    Base.metadata.drop_all(bind=eng)
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(session_factory):
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def catalog():
    return Catalog()


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make(role="CUSTOMER", name=None, password="secret123", **extra):
        counter["n"] += 1
        user = User(
            name=name or f"{role.title()} {counter['n']}",
            email=f"{role.lower()}{counter['n']}@example.com",
            password_hash=get_password_hash(password),
            role=role,
            **extra,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def admin(make_user):
    return make_user("ADMIN")


@pytest.fixture
def super_admin(make_user):
    return make_user("SUPER_ADMIN")


@pytest.fixture
def customer(make_user, admin):
    return make_user("CUSTOMER", assigned_to_id=admin.id)


@pytest.fixture
def project(db, admin, customer, catalog):
    return create_project(
        db,
        {"name": "Verma Villa", "client_id": customer.id, "budget": 1000.0},
        catalog.stages,
        actor=admin,
    )


def auth_headers(user):
    return {"Authorization": f"Bearer {create_access_token(str(user.id), role=user.role)}"}
