# backend/tests/conftest.py
"""
Pytest configuration.

Every test gets a fresh in-memory SQLite database, a FakePaymentProcessor
and no network access: Resend is patched globally and the processor client
is injected everywhere.
"""

import os

# Set testing mode BEFORE any teachtape imports so the engine binds to the test URL
os.environ["is_testing"] = "true"
os.environ.setdefault("CI", "1")

import unittest.mock

global_resend_mock = unittest.mock.patch("resend.Emails.send")
mocked_send = global_resend_mock.start()
mocked_send.return_value = {"id": "test-email-id"}

from typing import Iterator

from fastapi.testclient import TestClient
from pydantic import SecretStr
import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from teachtape.api.dependencies.database import get_db
from teachtape.api.dependencies.services import get_payment_processor_dep
from teachtape.core.config import settings
from teachtape.database import Base
from teachtape.integrations.payment_processor import FakePaymentProcessor
from teachtape.main import app
import teachtape.models  # noqa: F401

from tests.factories import DataFactory

settings.is_testing = True


@pytest.fixture
def engine() -> Iterator[Engine]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db(engine: Engine) -> Iterator[Session]:
    session = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def processor() -> FakePaymentProcessor:
    return FakePaymentProcessor()


@pytest.fixture
def factory(db: Session, processor: FakePaymentProcessor) -> DataFactory:
    return DataFactory(db, processor)


@pytest.fixture(autouse=True)
def _default_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    """Pin the settings tests depend on, whatever the local .env says."""
    mocked_send.reset_mock(side_effect=True)
    monkeypatch.setattr(settings, "environment", "development")
    monkeypatch.setattr(settings, "stripe_secret_key", SecretStr(""))
    monkeypatch.setattr(settings, "stripe_webhook_secret", SecretStr(""))
    monkeypatch.setattr(settings, "zoom_webhook_secret_token", SecretStr(""))
    monkeypatch.setattr(settings, "webhook_allow_unsigned", False)
    monkeypatch.setattr(settings, "resend_api_key", None)
    monkeypatch.setattr(settings, "platform_fee_percentage", 10.0)
    monkeypatch.setattr(settings, "buyer_service_fee_percentage", 0.0)
    monkeypatch.setattr(settings, "buyer_service_fee_flat_cents", 0)
    monkeypatch.setattr(settings, "film_review_refund_on_expiry", True)
    monkeypatch.setattr(settings, "frontend_url", "https://app.example.test")


@pytest.fixture
def client(db: Session, processor: FakePaymentProcessor) -> Iterator[TestClient]:
    def _override_get_db() -> Iterator[Session]:
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_payment_processor_dep] = lambda: processor
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()


def auth_headers(profile_id: str) -> dict[str, str]:
    return {"X-Profile-Id": profile_id}
