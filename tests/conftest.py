"""Tests configuration and fixtures."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

from safealert.config import Settings
from safealert.crud.crud import EmergencyContactSource, PanicEventStore
from safealert.database import database
from safealert.exceptions import ProviderError
from safealert.models.models import EmergencyContact, User
from safealert.utils.alerts import NotificationDispatcher
from safealert.utils.maps import HOSPITAL_CATEGORY
from safealert.utils.panic import PanicOrchestrator


HOSPITALS = [
    {"poi": {"name": "Far General"}, "dist": 4200.0, "address": {"freeformAddress": "900 Far St"}},
    {"poi": {"name": "Mercy Hospital"}, "dist": 850.5, "address": {"freeformAddress": "12 Mercy Ave"}},
    {"poi": {}, "dist": 1200.0},
    {"poi": {"name": "St. Luke"}, "dist": 2300.0, "address": {"freeformAddress": "4 Luke Rd"}},
]

POLICE_STATIONS = [
    {"poi": {"name": "1st Precinct"}, "dist": 640.0, "address": {"freeformAddress": "16 Ericsson Pl"}},
    {"poi": {"name": "5th Precinct"}, "dist": 310.0, "address": {"freeformAddress": "19 Elizabeth St"}},
]

ADDRESS = {"address": {"freeformAddress": "City Hall Park, New York, NY 10007"}}

IMAGE_ANALYSIS = {
    "description": "a person standing on a dark street",
    "confidence": 0.87,
    "objects": [{"name": "person", "confidence": 0.9, "rectangle": {"x": 1, "y": 2, "w": 3, "h": 4}}],
    "tags": [{"name": "street", "confidence": 0.95}],
    "isAdultContent": False,
    "isRacyContent": False,
    "landmarks": [],
}

PHOTO = "data:image/jpeg;base64,aGVsbG8gd29ybGQ="

CAROL = {"name": "Carol", "email": "carol@example.com", "phone_number": "+15550001", "is_primary": True}

TEST_SECRET = "test_secret_key_for_jwt_signing_min_32_chars"


def issue_token(settings, email, expires_in=timedelta(minutes=30)):
    """Bearer token as the identity service would issue it."""
    now = datetime.now(timezone.utc)
    claims = {"sub": email, "iat": now, "exp": now + expires_in}
    return jwt.encode(claims, settings.secret_key, algorithm=settings.algorithm)


class FakeMapsClient:
    """Healthy Azure Maps stand-in, flip `fail` to simulate an outage."""

    def __init__(self):
        self.fail = False
        self.calls = []

    async def find_nearby_places(self, location, category_code):
        self.calls.append(("nearby", category_code))
        await asyncio.sleep(0)
        if self.fail:
            raise ProviderError("Azure Maps error: 503 - unavailable")
        return HOSPITALS if category_code == HOSPITAL_CATEGORY else POLICE_STATIONS

    async def reverse_geocode(self, location):
        self.calls.append(("reverse", None))
        await asyncio.sleep(0)
        if self.fail:
            raise ProviderError("Azure Maps error: 503 - unavailable")
        return ADDRESS


class FakeVisionClient:
    def __init__(self):
        self.fail = False
        self.calls = 0

    async def analyze_image(self, photo_data_uri):
        self.calls += 1
        await asyncio.sleep(0)
        if self.fail:
            raise ProviderError("Azure Vision error: 500 - boom")
        return dict(IMAGE_ANALYSIS)


class RecordingTransport:
    """Email transport that records every batch instead of sending it."""

    def __init__(self):
        self.fail = False
        self.sent = []

    async def send_mail(self, to, subject, html, text):
        self.sent.append({"to": list(to), "subject": subject, "html": html, "text": text})
        if self.fail:
            return {"success": False, "error": "SendGrid returned status 503"}
        return {"success": True, "messageId": f"msg_{len(self.sent)}"}


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'safealert_test.db'}",
        secret_key=TEST_SECRET,
        azure_maps_key="maps-key",
        azure_vision_endpoint="https://vision.example.com",
        azure_vision_key="vision-key",
        provider_timeout_seconds=2,
    )


@pytest.fixture
def fake_maps() -> FakeMapsClient:
    return FakeMapsClient()


@pytest.fixture
def fake_vision() -> FakeVisionClient:
    return FakeVisionClient()


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


async def seed_user(session_factory, email="alice@example.com", name="Alice", contacts=()):
    async with session_factory() as db:
        user = User(name=name, email=email)
        user.emergency_contacts = [EmergencyContact(**contact) for contact in contacts]
        db.add(user)
        await db.commit()
        await db.refresh(user)
        return user


@pytest.fixture
async def session_factory(settings):
    engine = database.create_engine_from_settings(settings)
    await database.create_tables(engine)
    yield database.create_session_factory(engine)
    await engine.dispose()


@pytest.fixture
def make_user(session_factory):
    async def _make_user(**kwargs):
        return await seed_user(session_factory, **kwargs)
    return _make_user


@pytest.fixture
def store(session_factory) -> PanicEventStore:
    return PanicEventStore(session_factory)


@pytest.fixture
def orchestrator(session_factory, store, fake_maps, fake_vision, transport) -> PanicOrchestrator:
    return PanicOrchestrator(
        contacts=EmergencyContactSource(session_factory),
        store=store,
        dispatcher=NotificationDispatcher(transport, store),
        maps_client=fake_maps,
        vision_client=fake_vision,
    )
