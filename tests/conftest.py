"""
Shared fixtures.

Every test gets its own in-memory SQLite database. StaticPool keeps the one
connection alive for the whole test so every session sees the same tables.
"""
import uuid
from decimal import Decimal

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.pool import StaticPool

from orderhub import models  # noqa: F401
from orderhub.core.division_marker import build_division_marker
from orderhub.database import Base, build_engine, build_session_factory
from orderhub.main import create_app
from orderhub.models.order import Order, OrderStatus, StoreResponseStatus
from orderhub.models.store import Store
from orderhub.services.notification_service import OrderNotifier
from orderhub.services.order_events import OrderEventBus


# ─── Database ──────────────────────────────────────────────────────────────────
@pytest_asyncio.fixture
async def engine():
    test_engine = build_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


# ─── Events ────────────────────────────────────────────────────────────────────
class RecordingListener:
    """Collects every published event in order."""

    def __init__(self):
        self.events = []

    async def __call__(self, event):
        self.events.append(event)

    def kinds(self):
        return [e.kind.value for e in self.events]


@pytest.fixture
def recorder():
    return RecordingListener()


@pytest.fixture
def event_bus(session_factory, recorder):
    bus = OrderEventBus()
    bus.subscribe(OrderNotifier(session_factory).handle)
    bus.subscribe(recorder)
    bus.start()
    yield bus
    bus.stop()


# ─── HTTP ──────────────────────────────────────────────────────────────────────
@pytest_asyncio.fixture
async def app(session_factory, recorder):
    application = create_app(session_factory)
    # ASGITransport does not run the lifespan
    application.state.event_bus.subscribe(recorder)
    application.state.event_bus.start()
    yield application
    application.state.event_bus.stop()


@pytest_asyncio.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http_client:
        yield http_client


# ─── Data helpers ──────────────────────────────────────────────────────────────
def make_item(product_name, store_name=None, unit_price="10.00", quantity=1, discounted_price=None, **extra):
    item = {
        "product_id": str(uuid.uuid4()),
        "product_name": product_name,
        "quantity": quantity,
        "unit_price": unit_price,
        "discounted_price": discounted_price,
    }
    if store_name is not None:
        item["store_name"] = store_name
    item.update(extra)
    return item


@pytest.fixture
def add_store(db_session):
    async def _add_store(name, status="active"):
        store = Store(name=name, status=status)
        db_session.add(store)
        await db_session.commit()
        return store
    return _add_store


@pytest.fixture
def add_order(db_session):
    async def _add_order(order_code="ORD-20260101-0001", items=None, **fields):
        order = Order(
            order_code=order_code,
            customer_name=fields.pop("customer_name", "Asha Verma"),
            customer_phone=fields.pop("customer_phone", "+919800000001"),
            items=items or [],
            subtotal=Decimal("0.00"),
            total_amount=Decimal("0.00"),
            order_status=fields.pop("order_status", OrderStatus.PENDING.value),
            **fields,
        )
        db_session.add(order)
        await db_session.commit()
        return order
    return _add_order


@pytest.fixture
def add_division(db_session):
    """Division row linked to original_ref the way the splitter writes it."""
    async def _add_division(original_ref, store=None, response=StoreResponseStatus.PENDING.value,
                            order_code=None, legacy=False, **fields):
        division = Order(
            order_code=order_code,
            customer_phone=fields.pop("customer_phone", "+919800000001"),
            items=[],
            subtotal=Decimal("0.00"),
            total_amount=Decimal("0.00"),
            order_status=fields.pop(
                "order_status",
                OrderStatus.ASSIGNED.value if store else OrderStatus.PENDING.value,
            ),
            assigned_store_id=store.id if store else None,
            main_store_name=store.name if store else None,
            store_response_status=response,
            details=build_division_marker(original_ref),
            original_order_code=None if legacy else original_ref,
            **fields,
        )
        db_session.add(division)
        await db_session.commit()
        return division
    return _add_division
