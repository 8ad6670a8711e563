import os
import tempfile

# Environment must be in place before farmlink.core.config is imported
_TEST_DB_PATH = os.path.join(tempfile.gettempdir(), f"test_farmlink_{os.getpid()}.db")
os.environ["APP_DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DB_PATH}"
os.environ["APP_DEBUG"] = "false"
os.environ["APP_RATE_LIMIT_ENABLED"] = "false"
os.environ["APP_JWT_SECRET"] = "test-jwt-secret"
os.environ["APP_STRIPE_SECRET_KEY"] = "sk_test_farmlink"
os.environ["APP_STRIPE_WEBHOOK_SECRET"] = "whsec_test_farmlink"
os.environ["APP_REALTIME_BROADCAST_URL"] = ""

from collections.abc import AsyncGenerator, Callable, Awaitable
from datetime import date
from decimal import Decimal

import pytest
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy.ext.asyncio import AsyncSession

from farmlink.core.config import settings
from farmlink.db.base import Base
from farmlink.db.session import async_session_factory, engine
from farmlink.main import app
from farmlink.models.contract import Contract
from farmlink.models.profile import Profile
from farmlink.services.escrow import EscrowOrchestrator


@pytest.fixture(autouse=True)
async def setup_test_database() -> AsyncGenerator[None, None]:
    """Fresh schema for every test; overrides and pooled connections are reset afterwards."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield

    app.dependency_overrides.clear()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_factory() as session:
        yield session


@pytest.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    """Provide an async HTTP client wired to the FastAPI app (no real server)."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac


@pytest.fixture
def orchestrator() -> EscrowOrchestrator:
    return EscrowOrchestrator(commission_rate=Decimal("0.05"))


@pytest.fixture
def make_profile(db: AsyncSession) -> Callable[..., Awaitable[Profile]]:
    async def _make(user_type: str = "buyer", full_name: str | None = None) -> Profile:
        profile = Profile(
            full_name=full_name or f"Test {user_type}",
            user_type=user_type,
            company_name="Acme Foods" if user_type == "buyer" else None,
            location="Nakuru",
        )
        db.add(profile)
        await db.commit()
        await db.refresh(profile)
        return profile

    return _make


@pytest.fixture
async def farmer(make_profile) -> Profile:
    return await make_profile("farmer", "Grace Farmer")


@pytest.fixture
async def buyer(make_profile) -> Profile:
    return await make_profile("buyer", "Bob Buyer")


@pytest.fixture
def make_contract(db: AsyncSession) -> Callable[..., Awaitable[Contract]]:
    async def _make(
        farmer: Profile,
        buyer: Profile | None = None,
        quantity: str = "10",
        price_per_unit: str = "5",
        status: str = "pending",
        total_amount: str | None = None,
    ) -> Contract:
        qty = Decimal(quantity)
        price = Decimal(price_per_unit)
        contract = Contract(
            farmer_id=farmer.id,
            buyer_id=buyer.id if buyer else None,
            crop_type="Maize",
            quantity=qty,
            price_per_unit=price,
            total_amount=Decimal(total_amount) if total_amount else qty * price,
            delivery_date=date(2026, 12, 1),
            status=status,
        )
        db.add(contract)
        await db.commit()
        await db.refresh(contract)
        return contract

    return _make


def auth_headers(profile: Profile) -> dict[str, str]:
    token = jwt.encode({"sub": str(profile.id)}, settings.jwt_secret, algorithm=settings.jwt_algorithm)
    return {"Authorization": f"Bearer {token}"}
