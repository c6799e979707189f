"""Shared fixtures: a throwaway SQLite store per test."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from storefront import db, inventory
from storefront.commands import OrderPlacementEngine
from storefront.models import AuditEntry
from storefront.tables import order_lines, orders, products


class RecordingAuditSink:
    def __init__(self) -> None:
        self.entries: list[AuditEntry] = []

    async def record(self, actor_id: str, action: str, details: str) -> AuditEntry:
        entry = AuditEntry(
            actor_id=actor_id,
            action=action,
            details=details,
            timestamp=datetime.now(timezone.utc),
        )
        self.entries.append(entry)
        return entry


class RecordingRedis:
    def __init__(self) -> None:
        self.published: list[tuple[str, str]] = []

    async def publish(self, channel: str, message: str) -> int:
        self.published.append((channel, message))
        return 1


@pytest.fixture
async def engine(tmp_path):
    eng = db.create_engine(f"sqlite+aiosqlite:///{tmp_path / 'store.db'}")
    await db.create_all(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return db.session_factory(engine)


@pytest.fixture
def read_session_factory(engine):
    return db.read_session_factory(engine)


@pytest.fixture
def audit():
    return RecordingAuditSink()


@pytest.fixture
def redis():
    return RecordingRedis()


@pytest.fixture
def placement(session_factory, audit, redis):
    return OrderPlacementEngine(session_factory, audit=audit, redis=redis)


@pytest.fixture
def add_item(session_factory):
    async def _add_item(name: str, price: str, stock: int, item_id: str | None = None) -> str:
        async with session_factory() as session, session.begin():
            return await inventory.create_item(
                session, name, Decimal(price), stock, category="test", item_id=item_id
            )

    return _add_item


@pytest.fixture
def stock_of(session_factory):
    async def _stock_of(item_id: str) -> int:
        async with session_factory() as session:
            result = await session.execute(
                select(products.c.stock).where(products.c.id == item_id)
            )
            return result.scalar_one()

    return _stock_of


@pytest.fixture
def price_of(session_factory):
    async def _price_of(item_id: str) -> Decimal:
        async with session_factory() as session:
            result = await session.execute(
                select(products.c.unit_price).where(products.c.id == item_id)
            )
            return result.scalar_one()

    return _price_of


@pytest.fixture
def ledger_counts(session_factory):
    async def _ledger_counts() -> tuple[int, int]:
        async with session_factory() as session:
            n_orders = (await session.execute(select(func.count()).select_from(orders))).scalar_one()
            n_lines = (await session.execute(select(func.count()).select_from(order_lines))).scalar_one()
            return n_orders, n_lines

    return _ledger_counts
