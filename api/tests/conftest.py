"""
Shared fixtures: an in-memory SQLite database, user/property factories and an
HTTP client bound to the FastAPI app.

Run with:
    pytest api/tests -v
"""
import os

# Settings are read at import time, so configure them before importing the app
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["DATABASE_URL_SYNC"] = "sqlite://"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["RATE_LIMIT_STORAGE_URI"] = "memory://"
os.environ["API_SECRET_KEY"] = "test-secret-key-that-is-long-enough-for-hs256"

import uuid
from datetime import date
from decimal import Decimal

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.config import settings
from app.core.database import Base, get_db
from app.core.identity import identity_for
from app.core.security import create_access_token, hash_password
from app.main import app
from app.models.billing import Invoice, InvoiceStatus
from app.models.property import Property, Unit
from app.models.user import User, UserRole

PASSWORD = "Sup3r-Secret-Pass!"
_PASSWORD_HASH = hash_password(PASSWORD)

PDF_BYTES = b"%PDF-1.4\n1 0 obj\n<<>>\nendobj\ntrailer\n<<>>\n%%EOF\n"
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


# ─── Database ─────────────────────────────────────────────────────────────────

@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db(engine):
    factory = async_sessionmaker(engine, expire_on_commit=False)
    async with factory() as session:
        yield session


@pytest.fixture(autouse=True)
def upload_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "upload_dir", str(tmp_path / "uploads"))
    return tmp_path / "uploads"


# ─── Factories ────────────────────────────────────────────────────────────────

async def make_user(db, role: UserRole, first_name: str = "Test", email: str | None = None) -> User:
    user = User(
        id=uuid.uuid4(),
        email=email or f"{first_name.lower()}-{uuid.uuid4().hex[:8]}@example.com",
        hashed_password=_PASSWORD_HASH,
        first_name=first_name,
        last_name="User",
        role=role,
        is_active=True,
    )
    db.add(user)
    await db.commit()
    return user


async def make_property(db, landlord: User, name: str = "Maple Court") -> Property:
    prop = Property(
        id=uuid.uuid4(),
        landlord_id=landlord.id,
        name=name,
        address="12 Maple Court",
        city="Springfield",
        units=[],
    )
    db.add(prop)
    await db.commit()
    return prop


async def make_unit(db, prop: Property, unit_number: str, rent: str, tenant: User | None = None) -> Unit:
    unit = Unit(
        id=uuid.uuid4(),
        property_id=prop.id,
        unit_number=unit_number,
        rent=Decimal(rent),
        tenant_id=tenant.id if tenant else None,
    )
    db.add(unit)
    await db.commit()
    return unit


async def make_invoice(
    db,
    tenant: User,
    unit: Unit,
    amount: str = "1200.00",
    due: date = date(2025, 1, 5),
    status: InvoiceStatus = InvoiceStatus.PENDING,
) -> Invoice:
    invoice = Invoice(
        id=uuid.uuid4(),
        tenant_id=tenant.id,
        unit_id=unit.id,
        amount=Decimal(amount),
        due_date=due,
        status=status,
        description="Rent",
        payments=[],
    )
    db.add(invoice)
    await db.commit()
    return invoice


@pytest.fixture
async def landlord(db):
    return await make_user(db, UserRole.LANDLORD, "Lena")


@pytest.fixture
async def tenant(db):
    return await make_user(db, UserRole.TENANT, "Tom")


@pytest.fixture
async def other_tenant(db):
    return await make_user(db, UserRole.TENANT, "Olga")


@pytest.fixture
async def other_landlord(db):
    return await make_user(db, UserRole.LANDLORD, "Oscar")


@pytest.fixture
async def building(db, landlord, tenant, other_tenant):
    """A property with two occupied units and one vacant unit."""
    prop = await make_property(db, landlord)
    await make_unit(db, prop, "1A", "1200.00", tenant)
    await make_unit(db, prop, "1B", "950.00", other_tenant)
    await make_unit(db, prop, "2A", "1100.00")
    return prop


@pytest.fixture
async def unit(db, building, tenant):
    return (
        await db.execute(select(Unit).where(Unit.property_id == building.id, Unit.tenant_id == tenant.id))
    ).scalar_one()


@pytest.fixture
async def invoice(db, tenant, unit):
    return await make_invoice(db, tenant, unit)


@pytest.fixture
def landlord_identity(landlord):
    return identity_for(landlord)


@pytest.fixture
def tenant_identity(tenant):
    return identity_for(tenant)


# ─── HTTP ─────────────────────────────────────────────────────────────────────

def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token({'sub': str(user.id)})}"}


@pytest.fixture
async def client(engine):
    factory = async_sessionmaker(engine, expire_on_commit=False)

    async def override_get_db():
        async with factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()
