"""
Store Service — 注文台帳 (Order Ledger)

注文ヘッダと明細を追記する。更新・削除はしない。
"""

from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from .tables import order_lines, orders


class OrderLedger:
    async def insert_order(
        self,
        session: AsyncSession,
        buyer_id: str,
        total: Decimal,
    ) -> tuple[str, datetime]:
        order_id = str(uuid4())
        created_at = datetime.now(timezone.utc)
        await session.execute(
            orders.insert().values(
                id=order_id,
                buyer_id=buyer_id,
                total=total,
                created_at=created_at,
            )
        )
        return order_id, created_at

    async def insert_line(
        self,
        session: AsyncSession,
        order_id: str,
        item_id: str,
        quantity: int,
        unit_price: Decimal,
    ) -> None:
        await session.execute(
            order_lines.insert().values(
                order_id=order_id,
                item_id=item_id,
                quantity=quantity,
                unit_price=unit_price,
            )
        )
