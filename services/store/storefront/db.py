"""
Store Service — DB エンジンとセッション

本番は PostgreSQL (asyncpg)。行ロックは SELECT ... FOR UPDATE で取る。

開発・テスト用の SQLite (aiosqlite) は FOR UPDATE を持たないため、
書き込みセッションのトランザクション開始を BEGIN IMMEDIATE にして
書き込みを DB 単位で直列化する。同じ商品を売り越さないという保証は
変わらない（粒度が粗いだけ）。

読み取り専用セッション (read_session_factory) は通常の BEGIN で始まり、
書き込みロックを取らない。
"""

import logging

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from .tables import metadata

logger = logging.getLogger(__name__)

READ_ONLY_OPTION = "store_read_only"


def create_engine(
    url: str,
    *,
    echo: bool = False,
    pool_size: int = 5,
    sqlite_busy_timeout: float = 15.0,
) -> AsyncEngine:
    if url.startswith("sqlite"):
        engine = create_async_engine(
            url,
            echo=echo,
            connect_args={"timeout": sqlite_busy_timeout},
        )
        _use_immediate_transactions(engine)
    else:
        engine = create_async_engine(url, echo=echo, pool_size=pool_size)
    logger.info("Created async engine for %s", url.split("@")[-1])
    return engine


def _use_immediate_transactions(engine: AsyncEngine) -> None:
    # pysqlite 独自の暗黙 BEGIN を止め、SQLAlchemy の begin で自前の BEGIN を発行する
    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        if conn.get_execution_options().get(READ_ONLY_OPTION):
            conn.exec_driver_sql("BEGIN")
        else:
            conn.exec_driver_sql("BEGIN IMMEDIATE")


def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


def read_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """クエリ用。PostgreSQL では通常のセッションと同じ。"""
    return async_sessionmaker(
        engine.execution_options(**{READ_ONLY_OPTION: True}),
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def create_all(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
    logger.info("Database tables created / verified.")


async def ping(engine: AsyncEngine) -> bool:
    """DB 接続確認（/health 用）。"""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception:
        logger.exception("Database ping failed")
        return False
    return True
