"""
Store Service — FastAPI エントリーポイント

Command (POST) と Query (GET) のエンドポイントを分離する。
注文確定は 1 つの DB トランザクションで行い、
コミット後に監査ログと OrderPlaced イベントを記録する。
"""

import logging
from contextlib import asynccontextmanager

import redis.asyncio as aioredis
from fastapi import Depends, FastAPI, HTTPException
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from . import db, queries
from .audit import DatabaseAuditSink
from .commands import OrderPlacementEngine
from .config import configure_logging, get_settings
from .errors import (
    CapabilityRequiredError,
    CartValidationError,
    InsufficientStockError,
    ItemNotFoundError,
    PersistenceError,
)
from .identity import Identity, current_identity, require_staff
from .models import CartLine

logger = logging.getLogger(__name__)

engine: AsyncEngine | None = None
async_session: async_sessionmaker[AsyncSession] | None = None
read_session: async_sessionmaker[AsyncSession] | None = None
redis_pool: aioredis.Redis | None = None
placement: OrderPlacementEngine | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    global engine, async_session, read_session, redis_pool, placement
    settings = get_settings()
    configure_logging(settings.log_level)

    engine = db.create_engine(
        settings.database_url,
        echo=settings.db_echo,
        pool_size=settings.db_pool_size,
        sqlite_busy_timeout=settings.sqlite_busy_timeout,
    )
    if settings.create_tables:
        await db.create_all(engine)
    async_session = db.session_factory(engine)
    read_session = db.read_session_factory(engine)
    if settings.redis_url:
        redis_pool = aioredis.from_url(settings.redis_url, decode_responses=True)
    placement = OrderPlacementEngine(
        async_session,
        audit=DatabaseAuditSink(async_session),
        redis=redis_pool,
    )
    yield
    if redis_pool is not None:
        await redis_pool.aclose()
        redis_pool = None
    await engine.dispose()


app = FastAPI(title="Store Service", lifespan=lifespan)


# ── Request Models ───────────────────────────────


class PlaceOrderRequest(BaseModel):
    items: list[CartLine]


async def staff_identity(identity: Identity = Depends(current_identity)) -> Identity:
    try:
        return require_staff(identity)
    except CapabilityRequiredError as e:
        raise HTTPException(status_code=403, detail=str(e))


# ── Command Endpoints (Write 側) ─────────────────


@app.post("/commands/orders", status_code=201)
async def cmd_place_order(
    req: PlaceOrderRequest,
    identity: Identity = Depends(current_identity),
):
    """注文確定コマンド"""
    try:
        order = await placement.place_order(identity.user_id, req.items)
    except CartValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ItemNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InsufficientStockError as e:
        raise HTTPException(
            status_code=409,
            detail={
                "message": str(e),
                "item_id": e.item_id,
                "requested": e.requested,
                "available": e.available,
            },
        )
    except PersistenceError:
        raise HTTPException(
            status_code=503,
            detail="Order could not be recorded, please try again",
        )
    return order.model_dump(mode="json")


# ── Query Endpoints (Read 側) ────────────────────


@app.get("/queries/orders/history")
async def query_order_history(identity: Identity = Depends(current_identity)):
    """呼び出し元の注文履歴"""
    async with read_session() as session:
        return await queries.order_history(session, identity.user_id)


@app.get("/queries/orders")
async def query_all_orders(identity: Identity = Depends(staff_identity)):
    """全注文（スタッフのみ）"""
    async with read_session() as session:
        return await queries.all_orders(session)


@app.get("/queries/products")
async def query_list_products():
    async with read_session() as session:
        return await queries.list_products(session)


@app.get("/queries/products/{item_id}")
async def query_get_product(item_id: str):
    async with read_session() as session:
        product = await queries.get_product(session, item_id)
        if not product:
            raise HTTPException(404, "Product not found")
        return product


@app.get("/queries/activity")
async def query_recent_activity(identity: Identity = Depends(staff_identity)):
    """監査ログの直近分（スタッフのみ）"""
    async with read_session() as session:
        return await queries.recent_activity(session, get_settings().activity_limit)


@app.get("/health")
async def health():
    ok = await db.ping(engine)
    if not ok:
        raise HTTPException(503, "Database unavailable")
    return {"status": "ok", "service": "store-service"}
