import asyncio
from dataclasses import dataclass
from datetime import date, datetime

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import NullPool

from app.api.deps import get_now
from app.core.db import init_db, make_session_maker
from app.main import create_app
from app.models import AvailabilityRule, Business, Service, User
from app.services import verification_service
from app.services.rate_limiter import InMemoryRateLimiter

# Sunday morning; the Monday after is the first open day in the fixtures
NOW = datetime(2026, 3, 1, 8, 0)
MONDAY = date(2026, 3, 2)
OTP_CODE = "1234"


@dataclass
class Seed:
    owner: User
    business: Business
    service: Service


@pytest.fixture
def engine(tmp_path):
    """File-backed SQLite so every session gets its own connection."""
    return create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'booking.db'}", poolclass=NullPool)


@pytest_asyncio.fixture
async def session_maker(engine):
    await init_db(engine)
    yield make_session_maker(engine)
    await engine.dispose()


@pytest_asyncio.fixture
async def session(session_maker):
    async with session_maker() as s:
        yield s


@pytest_asyncio.fixture
async def seeded(session_maker) -> Seed:
    """Owner with one business, a 30 minute service and Monday 09:00-12:00 hours."""
    async with session_maker() as s:
        owner = User(email="dana@mytor.co.il", full_name="Dana", hashed_password="not-used")
        s.add(owner)
        await s.flush()
        business = Business(user_id=owner.id, name="Dana Hair", slug="dana-hair")
        s.add(business)
        await s.flush()
        service = Service(business_id=business.id, name="Haircut", duration_minutes=30)
        s.add(service)
        await s.flush()
        s.add(AvailabilityRule(business_id=business.id, day_of_week=1, start_time="09:00", end_time="12:00"))
        await s.commit()
        return Seed(owner=owner, business=business, service=service)


@pytest.fixture
def verify_phone(session_maker):
    """Run the send/confirm code exchange for a phone."""

    async def _verify(phone: str) -> None:
        async with session_maker() as s:
            record = await verification_service.issue_code(s, phone)
            await verification_service.verify_code(s, phone, record.otp_code)
            await s.commit()

    return _verify


@pytest.fixture
def rate_limiter():
    return InMemoryRateLimiter()


@pytest.fixture
def client(engine, rate_limiter, monkeypatch):
    """TestClient on a fresh database with a fixed clock and predictable OTP codes."""
    monkeypatch.setattr(verification_service, "generate_code", lambda: OTP_CODE)
    asyncio.run(init_db(engine))
    app = create_app(session_maker=make_session_maker(engine), rate_limiter=rate_limiter)
    app.dependency_overrides[get_now] = lambda: NOW
    with TestClient(app) as c:
        yield c
    asyncio.run(engine.dispose())


def signup(client: TestClient, email: str = "dana@mytor.co.il") -> dict[str, str]:
    response = client.post(
        "/api/v1/auth/signup",
        json={"email": email, "password": "s3cret-pass", "full_name": "Dana"},
    )
    assert response.status_code == 201, response.text
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


@pytest.fixture
def owner_headers(client):
    return signup(client)


@pytest.fixture
def shop(client, owner_headers) -> dict:
    """Business 'dana-hair' with a 30 minute haircut, open Monday 09:00-12:00."""
    business = client.post(
        "/api/v1/businesses", json={"name": "Dana Hair", "slug": "dana-hair"}, headers=owner_headers
    ).json()
    service = client.post(
        f"/api/v1/businesses/{business['id']}/services",
        json={"name": "Haircut", "duration_minutes": 30},
        headers=owner_headers,
    ).json()
    rule = client.post(
        f"/api/v1/businesses/{business['id']}/availability",
        json={"day_of_week": 1, "start_time": "09:00", "end_time": "12:00"},
        headers=owner_headers,
    )
    assert rule.status_code == 201, rule.text
    return {"business_id": business["id"], "service_id": service["id"], "slug": business["slug"]}


@pytest.fixture
def other_owner_headers(client):
    return signup(client, "yossi@mytor.co.il")
