"""
Store Service — クエリハンドラ (Read 側)

読み取り専用。ロックは取らない。
直前にコミットされた注文が見えるかどうかは保証しない。
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .tables import activity_log, order_lines, orders, products


def _isoformat(value) -> str | None:
    return value.isoformat() if value else None


async def _orders_with_lines(session: AsyncSession, buyer_id: str | None) -> list[dict]:
    stmt = (
        select(
            orders.c.id,
            orders.c.buyer_id,
            orders.c.total,
            orders.c.created_at,
            order_lines.c.item_id,
            order_lines.c.quantity,
            order_lines.c.unit_price,
            products.c.name,
        )
        .join(order_lines, order_lines.c.order_id == orders.c.id)
        .join(products, products.c.id == order_lines.c.item_id)
        .order_by(orders.c.created_at.desc(), orders.c.id, order_lines.c.id)
    )
    if buyer_id is not None:
        stmt = stmt.where(orders.c.buyer_id == buyer_id)

    result = await session.execute(stmt)

    # 注文 ID ごとに明細をまとめる（dict は挿入順を保つので新しい順のまま）
    grouped: dict[str, dict] = {}
    for row in result.fetchall():
        order = grouped.get(row.id)
        if order is None:
            order = grouped[row.id] = {
                "id": row.id,
                "buyer_id": row.buyer_id,
                "total": row.total,
                "created_at": _isoformat(row.created_at),
                "lines": [],
            }
        order["lines"].append(
            {
                "item_id": row.item_id,
                "name": row.name,
                "quantity": row.quantity,
                "unit_price": row.unit_price,
            }
        )
    return list(grouped.values())


async def order_history(session: AsyncSession, buyer_id: str) -> list[dict]:
    """購入者自身の注文履歴（新しい順）"""
    return await _orders_with_lines(session, buyer_id)


async def all_orders(session: AsyncSession) -> list[dict]:
    """全購入者の注文（スタッフ用）"""
    return await _orders_with_lines(session, None)


def _product_dict(row) -> dict:
    return {
        "id": row.id,
        "name": row.name,
        "description": row.description,
        "unit_price": row.unit_price,
        "stock": row.stock,
        "category": row.category,
        "updated_at": _isoformat(row.updated_at),
    }


async def get_product(session: AsyncSession, item_id: str) -> dict | None:
    result = await session.execute(select(products).where(products.c.id == item_id))
    row = result.fetchone()
    if not row:
        return None
    return _product_dict(row)


async def list_products(session: AsyncSession) -> list[dict]:
    result = await session.execute(select(products).order_by(products.c.name))
    return [_product_dict(row) for row in result.fetchall()]


async def recent_activity(session: AsyncSession, limit: int = 100) -> list[dict]:
    """監査ログの直近 limit 件（新しい順）"""
    result = await session.execute(
        select(activity_log)
        .order_by(activity_log.c.created_at.desc(), activity_log.c.id.desc())
        .limit(limit)
    )
    return [
        {
            "id": row.id,
            "actor_id": row.actor_id,
            "action": row.action,
            "details": row.details,
            "created_at": _isoformat(row.created_at),
        }
        for row in result.fetchall()
    ]
