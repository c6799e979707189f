"""
Store Service — 監査ログ (Audit Sink)

注文確定トランザクションの外で記録する。書き込み失敗は呼び出し側で
ログに残して握りつぶす。確定済みの注文を失敗扱いにしてはならない。

カタログ編集 (product.created / product.updated) は編集と同じ
トランザクションで append_entry を使って記録する。
"""

import logging
from datetime import datetime, timezone
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .models import AuditEntry
from .tables import activity_log

logger = logging.getLogger(__name__)


class AuditSink(Protocol):
    async def record(self, actor_id: str, action: str, details: str) -> AuditEntry: ...


async def append_entry(
    session: AsyncSession,
    actor_id: str,
    action: str,
    details: str,
) -> AuditEntry:
    """開いているセッションに監査ログを 1 行追記する。"""
    entry = AuditEntry(
        actor_id=actor_id,
        action=action,
        details=details,
        timestamp=datetime.now(timezone.utc),
    )
    await session.execute(
        activity_log.insert().values(
            actor_id=entry.actor_id,
            action=entry.action,
            details=entry.details,
            created_at=entry.timestamp,
        )
    )
    return entry


class DatabaseAuditSink:
    """activity_log テーブルに追記する。注文とは別のセッションを使う。"""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def record(self, actor_id: str, action: str, details: str) -> AuditEntry:
        async with self.session_factory() as session, session.begin():
            entry = await append_entry(session, actor_id, action, details)
        logger.debug("Audit recorded: %s by %s", action, actor_id)
        return entry
