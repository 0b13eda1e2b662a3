"""
Test fixtures for the SSGMS API.

Tests run in-process: the FastAPI app is driven through ``httpx.ASGITransport``
against a throw-away SQLite database (foreign keys on), with the identity
provider and document storage replaced by in-memory fakes.  Session tokens
are minted with the same secret the app verifies them with.
"""
import dataclasses
import datetime
import os
import time
import uuid
from decimal import Decimal

TEST_JWT_SECRET = "test-secret-for-ssgms-session-tokens-32chars"

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["JWT_SECRET"] = TEST_JWT_SECRET

import httpx
import pytest
import pytest_asyncio
from jose import jwt
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

import ssgms.models  # noqa: F401  (registers tables on Base.metadata)
from ssgms.database import Base, build_engine, get_db
from ssgms.main import app
from ssgms.models import Disbursement, FundSource, Grant, GrantYear, Profile
from ssgms.services.display_names import updated_by_names
from ssgms.services.identity_admin import GeneratedLink, get_identity_admin
from ssgms.services.storage import get_document_storage

BASE_URL = "http://testserver"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def make_token(
    user_id: uuid.UUID,
    email: str,
    secret: str = TEST_JWT_SECRET,
    audience: str = "authenticated",
    expires_in: int = 3600,
) -> str:
    """Mint an identity-provider style session token."""
    return jwt.encode(
        {
            "sub": str(user_id),
            "email": email,
            "aud": audience,
            "exp": int(time.time()) + expires_in,
        },
        secret,
        algorithm="HS256",
    )


def auth_headers(token: str) -> dict:
    """Return auth header dict for a given token."""
    return {"Authorization": f"Bearer {token}"}


@dataclasses.dataclass
class Member:
    id: uuid.UUID
    email: str
    role: str

    @property
    def headers(self) -> dict:
        return auth_headers(make_token(self.id, self.email))


class FakeIdentityAdmin:
    """Records admin API calls instead of making them."""

    def __init__(self):
        self.links: list[dict] = []
        self.deleted: list[uuid.UUID] = []
        self.fail_with: Exception | None = None

    async def generate_link(self, link_type, email, redirect_to=None, data=None):
        if self.fail_with is not None:
            raise self.fail_with
        user_id = uuid.uuid4()
        self.links.append({
            "type": link_type,
            "email": email,
            "redirect_to": redirect_to,
            "data": data,
            "user_id": user_id,
        })
        return GeneratedLink(
            user_id=user_id,
            action_link=f"https://auth.example.test/verify?type={link_type}&token={user_id.hex}",
        )

    async def delete_user(self, user_id):
        if self.fail_with is not None:
            raise self.fail_with
        self.deleted.append(user_id)


class FakeDocumentStorage:
    bucket = "grant-documents"

    def __init__(self):
        self.objects: dict[str, bytes] = {}
        self.removed: list[str] = []

    async def upload(self, name, data, content_type=None):
        self.objects[name] = data
        return f"https://storage.example.test/storage/v1/object/public/{self.bucket}/{name}"

    async def remove(self, name):
        self.removed.append(name)
        self.objects.pop(name, None)


class Seeder:
    """Writes fixture rows through short-lived committed sessions."""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    async def _add(self, row):
        async with self.session_factory() as session:
            session.add(row)
            await session.commit()
            return row

    async def profile(self, role="user", status="active", email=None, full_name=None, profile_id=None):
        return await self._add(Profile(
            id=profile_id or uuid.uuid4(),
            email=email or f"{role}-{uuid.uuid4().hex[:8]}@example.test",
            role=role,
            status=status,
            full_name=full_name,
        ))

    async def fund_source(self, name=None, description=None):
        return await self._add(FundSource(
            source_name=name or f"Source {uuid.uuid4().hex[:6]}",
            description=description,
        ))

    async def year(self, value=2024):
        return await self._add(GrantYear(year_value=value))

    async def grant(
        self,
        *,
        year,
        fund_source,
        project_name="Rural Water Supply",
        amount="10000.00",
        status="approved",
        created_at=None,
        user_id=None,
        document_url=None,
    ):
        return await self._add(Grant(
            project_name=project_name,
            amount_approved=Decimal(amount),
            status=status,
            year_id=year.id,
            fund_source_id=fund_source.id,
            created_at=created_at or datetime.datetime(2024, 3, 15, 9, 0, tzinfo=datetime.timezone.utc),
            user_id=user_id,
            document_url=document_url,
        ))

    async def disbursement(self, *, grant, amount, payment_date=datetime.date(2024, 4, 1)):
        return await self._add(Disbursement(
            grant_id=grant.id,
            amount=Decimal(amount),
            payment_date=payment_date,
        ))


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def engine(tmp_path):
    eng = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'ssgms-test.db'}")
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def seed(session_factory):
    return Seeder(session_factory)


@pytest.fixture(autouse=True)
def _fresh_name_cache():
    updated_by_names.clear()
    yield
    updated_by_names.clear()


# ---------------------------------------------------------------------------
# App client
# ---------------------------------------------------------------------------

@pytest.fixture
def identity():
    return FakeIdentityAdmin()


@pytest.fixture
def storage():
    return FakeDocumentStorage()


@pytest_asyncio.fixture
async def client(session_factory, identity, storage):
    """Async HTTP client bound to the app, with the test database and fakes."""

    async def _get_test_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _get_test_db
    app.dependency_overrides[get_identity_admin] = lambda: identity
    app.dependency_overrides[get_document_storage] = lambda: storage
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url=BASE_URL, timeout=30.0) as c:
        yield c
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Team members
# ---------------------------------------------------------------------------

async def _member(seed, role):
    p = await seed.profile(role=role, email=f"{role.replace('_', '.')}@example.test", full_name=f"Test {role}")
    return Member(id=p.id, email=p.email, role=p.role)


@pytest_asyncio.fixture
async def super_admin(seed):
    return await _member(seed, "super_admin")


@pytest_asyncio.fixture
async def admin(seed):
    return await _member(seed, "admin")


@pytest_asyncio.fixture
async def staff(seed):
    return await _member(seed, "user")


@pytest_asyncio.fixture
async def ledger(seed):
    """One year, one fund source and a 10,000.00 grant to pay out of."""
    year = await seed.year(2024)
    source = await seed.fund_source("State Development Fund")
    grant = await seed.grant(year=year, fund_source=source, amount="10000.00")
    return {"year": year, "fund_source": source, "grant": grant}
