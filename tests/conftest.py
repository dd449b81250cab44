import os
import tempfile

_DB_DIR = tempfile.mkdtemp(prefix="brimasouk-test-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_DB_DIR}/test.db"
os.environ["ENVIRONMENT"] = "test"
os.environ["ENABLE_NOTIFICATION_SUBSCRIBER"] = "false"

import fakeredis.aioredis  # noqa: E402
import httpx  # noqa: E402
import pytest  # noqa: E402

from brimasouk.accounts import commands as account_commands  # noqa: E402
from brimasouk.auth import CurrentUser, create_token  # noqa: E402
from brimasouk.catalog import commands as catalog_commands  # noqa: E402
from brimasouk.database import async_session, drop_schema, engine, init_schema  # noqa: E402
from brimasouk.main import app  # noqa: E402
from brimasouk.notifications import Notifier  # noqa: E402
from brimasouk.payments import PaymentGateway  # noqa: E402

ADMIN = CurrentUser(id="admin-1", role="admin", email="admin@brimasouk.tn", name="Admin")


def auth(user: CurrentUser) -> dict:
    token = create_token({"id": user.id, "role": user.role, "email": user.email, "name": user.name})
    return {"Authorization": f"Bearer {token}"}


def as_current(agg) -> CurrentUser:
    return CurrentUser(id=agg.id, role=agg.role, email=agg.email, name=agg.full_name)


@pytest.fixture
async def db():
    await init_schema()
    yield
    await drop_schema()
    await engine.dispose()


@pytest.fixture
async def session(db):
    async with async_session() as s:
        yield s


@pytest.fixture
def admin() -> CurrentUser:
    return ADMIN


@pytest.fixture
async def customer(session) -> CurrentUser:
    agg = await account_commands.register_user(session, "Amira Ben Salah", "amira@example.tn")
    return as_current(agg)


@pytest.fixture
async def make_artisan(session):
    counter = {"n": 0}

    async def _make(approved: bool = True) -> CurrentUser:
        counter["n"] += 1
        agg = await account_commands.register_user(
            session,
            f"Artisan {counter['n']}",
            f"artisan{counter['n']}@example.tn",
            role="artisan",
            region="Nabeul",
            artisan_description="Pottery",
        )
        if approved:
            await account_commands.approve_artisan(session, ADMIN, agg.id)
        return as_current(agg)

    return _make


@pytest.fixture
async def artisan(make_artisan) -> CurrentUser:
    return await make_artisan()


@pytest.fixture
async def make_product(session, artisan):
    async def _make(
        price: float = 100,
        stock: int = 10,
        approve: bool = True,
        markup: float | None = None,
        category: str = "Home",
        owner: CurrentUser | None = None,
    ):
        agg = await catalog_commands.create_product(
            session, owner or artisan, "Clay vase", "Hand made clay vase", category, price, stock
        )
        if approve:
            agg = await catalog_commands.approve_product(session, ADMIN, agg.id, markup)
        return agg

    return _make


@pytest.fixture
async def redis():
    r = fakeredis.aioredis.FakeRedis(decode_responses=True)
    yield r
    await r.aclose()


@pytest.fixture
def notifier(redis) -> Notifier:
    return Notifier(redis)


@pytest.fixture
async def payments():
    gateway = PaymentGateway(httpx.AsyncClient(base_url="https://epay.test"), live=False)
    yield gateway
    await gateway.aclose()


@pytest.fixture
async def client(db, notifier, payments):
    app.state.notifier = notifier
    app.state.payments = payments
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
