import os

os.environ["TESTING"] = "1"
os.environ["TWILIO_VALIDATE_SIGNATURE"] = "0"
os.environ.pop("ANTHROPIC_API_KEY", None)
os.environ.pop("REDIS_URL", None)
os.environ.pop("POSTHOG_API_KEY", None)

import pytest

from src.backend.app import cache
from src.backend.app import models as dbm
from src.backend.app.db import Base, SessionLocal, engine


OWNER_PHONE = "+15550001111"
BUSINESS_NUMBER = "+15550009999"
CUSTOMER_PHONE = "+15552223333"


@pytest.fixture(autouse=True)
def _fresh_schema():
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)
    cache._mem.clear()
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_business(db):
    def _make(**overrides):
        fields = {
            "name": "Acme Plumbing",
            "owner_phone": OWNER_PHONE,
            "owner_email": "owner@acme.test",
            "twilio_number": BUSINESS_NUMBER,
            "api_key": "test-api-key",
            "timezone": "America/New_York",
            "onboarding_step": "complete",
            "onboarding_complete": True,
        }
        fields.update(overrides)
        business = dbm.Business(**fields)
        db.add(business)
        db.commit()
        return business

    return _make


@pytest.fixture
def business(make_business):
    return make_business()
