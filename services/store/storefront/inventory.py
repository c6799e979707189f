"""
Store Service — 在庫ストア (Inventory Store)

lock_and_read / decrement は注文確定トランザクションの中でのみ呼ぶ。
lock_and_read は行ロック (SELECT ... FOR UPDATE) を取り、
コミットまたはロールバックまで他のトランザクションをブロックする。
"""

from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .audit import append_entry
from .models import LockedItem
from .tables import products


class InventoryStore:
    async def lock_and_read(
        self,
        session: AsyncSession,
        item_id: str,
    ) -> LockedItem | None:
        """行ロックを取って単価と在庫数を読む。存在しなければ None。"""
        result = await session.execute(
            select(products.c.id, products.c.unit_price, products.c.stock)
            .where(products.c.id == item_id)
            .with_for_update()
        )
        row = result.fetchone()
        if row is None:
            return None
        return LockedItem(item_id=row.id, unit_price=row.unit_price, stock=row.stock)

    async def decrement(self, session: AsyncSession, item_id: str, amount: int) -> None:
        await session.execute(
            update(products)
            .where(products.c.id == item_id)
            .values(
                stock=products.c.stock - amount,
                updated_at=datetime.now(timezone.utc),
            )
        )


# ── 管理者向け操作（カタログ編集） ───────────────
# actor_id を渡すと編集と同じトランザクションで監査ログを残す


async def create_item(
    session: AsyncSession,
    name: str,
    unit_price: Decimal,
    stock: int,
    category: str = "",
    description: str = "",
    item_id: str | None = None,
    actor_id: str | None = None,
) -> str:
    item_id = item_id or str(uuid4())
    now = datetime.now(timezone.utc)
    await session.execute(
        products.insert().values(
            id=item_id,
            name=name,
            description=description,
            unit_price=unit_price,
            stock=stock,
            category=category,
            created_at=now,
            updated_at=now,
        )
    )
    if actor_id is not None:
        await append_entry(
            session, actor_id, "product.created",
            f"Product {item_id} '{name}' created: price={unit_price}, stock={stock}",
        )
    return item_id


async def update_price(
    session: AsyncSession,
    item_id: str,
    unit_price: Decimal,
    actor_id: str | None = None,
) -> bool:
    result = await session.execute(
        update(products)
        .where(products.c.id == item_id)
        .values(unit_price=unit_price, updated_at=datetime.now(timezone.utc))
    )
    if result.rowcount == 0:
        return False
    if actor_id is not None:
        await append_entry(
            session, actor_id, "product.updated", f"Product {item_id} price set to {unit_price}"
        )
    return True
