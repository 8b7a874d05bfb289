import os
from datetime import datetime, timedelta

os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "0123456789abcdef0123456789abcdef0123456789abcdef0123456789abcdef")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("LOG_JSON", "false")

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from gatehouse import models  # noqa: F401
from gatehouse.api import deps
from gatehouse.api.auth import router as auth_router
from gatehouse.api.error_handling import register_exception_handlers
from gatehouse.api.users import router as users_router
from gatehouse.config import get_settings
from gatehouse.database import Base
from gatehouse.models.user import Role, TwoFactorMethod, User
from gatehouse.services import clock
from gatehouse.services.notifications import OTPDispatcher
from gatehouse.services.passwords import hash_password

PASSWORD = "TestPass123!"


class FrozenClock:
    """Stands in for ``clock.now``; moves only when told to."""

    def __init__(self, start: datetime):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


class RecordingSender:
    def __init__(self):
        self.sent = []

    def send_otp(self, destination, code, purpose):
        self.sent.append({"destination": destination, "code": code, "purpose": purpose})
        return True

    @property
    def last_code(self) -> str:
        return self.sent[-1]["code"]


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def frozen_clock(monkeypatch):
    fake = FrozenClock(datetime(2026, 1, 15, 9, 30, 0))
    monkeypatch.setattr(clock, "now", fake)
    return fake


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def dispatcher(sender):
    return OTPDispatcher({TwoFactorMethod.EMAIL: sender, TwoFactorMethod.SMS: sender})


@pytest.fixture
def make_user(db):
    def _make_user(
        username: str = "alice",
        email: str | None = None,
        role: Role = Role.USER,
        password: str = PASSWORD,
        **fields,
    ) -> User:
        user = User(
            username=username,
            email=email or f"{username}@example.com",
            password_hash=hash_password(password),
            role=role.value,
            **fields,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make_user


@pytest.fixture
def app(session_factory, dispatcher):
    app = FastAPI()
    register_exception_handlers(app)
    app.include_router(auth_router, prefix="/api")
    app.include_router(users_router, prefix="/api")

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[deps.get_db] = override_get_db
    app.dependency_overrides[deps.get_otp_dispatcher] = lambda: dispatcher
    return app


@pytest.fixture
def client(app):
    return TestClient(app)
