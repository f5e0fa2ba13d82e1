"""
Shared fixtures: in-memory SQLite database, inventory seeding, API client.

Environment is pinned before any `app` import so app.config picks it up.
"""
import os

TEST_ENCRYPTION_KEY = "00112233445566778899aabbccddeeff00112233445566778899aabbccddeeff"
TEST_BINDING_SECRET = "test-binding-secret"

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENCRYPTION_KEY"] = TEST_ENCRYPTION_KEY
os.environ["WARRANTY_STEP_SECRET"] = TEST_BINDING_SECRET
os.environ["JWT_SECRET_KEY"] = "test-jwt-secret"
os.environ["MAILGUN_DOMAIN"] = ""
os.environ["MAILGUN_API_KEY"] = ""
os.environ["LOG_LEVEL"] = "WARNING"

from uuid import uuid4

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.database import Base
from app.models.db_models import (
    ProductDB, SerialDB, WarrantyRegistrationDB, UserDB, WarrantyStep, utcnow,
)
from app.services.warranty.binding_token import DeviceBindingToken
from app.services.warranty.pii_codec import PIICodec


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def codec():
    return PIICodec(TEST_ENCRYPTION_KEY)


@pytest.fixture
def binding():
    return DeviceBindingToken(secret=TEST_BINDING_SECRET, ttl_days=365)


# =============================================================================
# INVENTORY SEEDING
# =============================================================================

@pytest.fixture
def make_product(db_session):
    def _make(warranty_years=5, is_active=True, deleted=False, model_number="IMP-100"):
        product = ProductDB(
            id=str(uuid4()),
            model_number=model_number,
            brand="Acme",
            type="round",
            size="300cc",
            warranty_years=warranty_years,
            is_active=is_active,
            deleted_at=utcnow() if deleted else None,
        )
        db_session.add(product)
        db_session.commit()
        return product
    return _make


@pytest.fixture
def make_serial(db_session):
    def _make(serial_number, product, deleted=False):
        serial = SerialDB(
            id=str(uuid4()),
            serial_number=serial_number,
            full_serial_number=f"FULL-{serial_number}",
            product_id=product.id if product is not None else None,
            deleted_at=utcnow() if deleted else None,
        )
        db_session.add(serial)
        db_session.commit()
        return serial
    return _make


@pytest.fixture
def make_blank(db_session):
    """Blank record the way batch creation leaves it: created_at == updated_at."""
    def _make():
        now = utcnow()
        record = WarrantyRegistrationDB(
            id=str(uuid4()),
            step=int(WarrantyStep.BLANK),
            created_at=now,
            updated_at=now,
        )
        db_session.add(record)
        db_session.commit()
        return record
    return _make


@pytest.fixture
def make_user(db_session):
    def _make(username="admin", password="password123", role="admin", is_active=True):
        from app.auth import hash_password

        user = UserDB(
            id=str(uuid4()),
            username=username,
            email=f"{username}@example.com",
            password_hash=hash_password(password),
            role=role,
            is_active=is_active,
        )
        db_session.add(user)
        db_session.commit()
        return user
    return _make


# =============================================================================
# API CLIENT
# =============================================================================

@pytest.fixture
def client(session_factory):
    from fastapi.testclient import TestClient
    from app.main import app
    from app.database import get_db, get_session_factory

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory

    # Secure cookies only travel over https
    with TestClient(app, base_url="https://testserver") as test_client:
        yield test_client

    app.dependency_overrides.clear()
