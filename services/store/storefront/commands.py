"""
Store Service — 注文確定エンジン (Order Placement Engine)

1 つの DB トランザクションの中で次を行う:

  ┌─────────────────────────────────────────────────────────┐
  │  1. 商品ごとに行ロックを取り、在庫数と単価を読む          │
  │     ├─ 商品なし   → ItemNotFoundError                     │
  │     └─ 在庫不足   → InsufficientStockError                │
  │  2. ロック下で読んだ単価で合計金額を計算                  │
  │  3. 注文ヘッダを記録                                      │
  │  4. 明細を記録し、在庫を減らす                            │
  │  5. コミット（どこで失敗しても全体をロールバック）        │
  └─────────────────────────────────────────────────────────┘

コミット後に監査ログの記録と OrderPlaced イベントの発行を行う。
どちらも失敗してもログに残すだけで、注文の結果は変わらない。

同じ商品が同時に注文されても売り越さないのは、DB の行ロックによる。
プロセス内のロックや楽観的リトライは使わない。
"""

import json
import logging
from collections.abc import Iterable
from decimal import Decimal

import redis.asyncio as aioredis
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .audit import AuditSink
from .errors import (
    EmptyCartError,
    InsufficientStockError,
    InvalidCartLineError,
    InvalidQuantityError,
    ItemNotFoundError,
    PersistenceError,
)
from .events import OrderPlaced, OrderPlacedLine
from .inventory import InventoryStore
from .ledger import OrderLedger
from .models import CartLine, LockedItem, Order, OrderLine

logger = logging.getLogger(__name__)

ORDER_PLACED = "order.placed"
CENT = Decimal("0.01")


def merge_cart(cart_lines: Iterable[CartLine | tuple[str, int]]) -> dict[str, int]:
    """
    カートを検証し、商品 ID ごとに数量を合算する。

    同じ商品が複数行にあれば 1 行にまとめる（最初に現れた順を保つ）。
    合算後の数量で在庫を 1 回だけ確認するため。
    トランザクションを開く前に呼ぶ。
    """
    merged: dict[str, int] = {}
    for line in cart_lines:
        if isinstance(line, CartLine):
            item_id, quantity = line.item_id, line.quantity
        else:
            try:
                item_id, quantity = line
            except (TypeError, ValueError):
                raise InvalidCartLineError(line) from None
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise InvalidQuantityError(item_id, quantity)
        merged[item_id] = merged.get(item_id, 0) + quantity
    if not merged:
        raise EmptyCartError()
    return merged


class OrderPlacementEngine:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        audit: AuditSink | None = None,
        redis: aioredis.Redis | None = None,
        inventory: InventoryStore | None = None,
        ledger: OrderLedger | None = None,
    ):
        self.session_factory = session_factory
        self.audit = audit
        self.redis = redis
        self.inventory = inventory or InventoryStore()
        self.ledger = ledger or OrderLedger()

    async def place_order(
        self,
        buyer_id: str,
        cart_lines: Iterable[CartLine | tuple[str, int]],
    ) -> Order:
        """
        注文確定コマンド

        検証エラーはトランザクションを開かずに送出する。
        在庫不足・DB 障害はロールバック後に送出する。自動リトライはしない。
        """
        quantities = merge_cart(cart_lines)

        try:
            async with self.session_factory() as session, session.begin():
                order = await self._place_in_transaction(session, buyer_id, quantities)
        except InsufficientStockError as e:
            logger.warning("Order rejected for buyer %s: %s", buyer_id, e)
            raise
        except (SQLAlchemyError, OSError) as e:
            # OSError: asyncpg の接続拒否・切断は SQLAlchemy で包まれずに届く
            logger.error("Order placement failed for buyer %s: %s", buyer_id, e)
            raise PersistenceError(f"Could not place order: {e}") from e

        logger.info(
            "Order %s placed by %s: %d line(s), total=%s",
            order.id, buyer_id, len(order.lines), order.total,
        )
        await self._after_commit(order)
        return order

    async def _place_in_transaction(
        self,
        session: AsyncSession,
        buyer_id: str,
        quantities: dict[str, int],
    ) -> Order:
        # ── Step 1: ロックしてから在庫を確認する ─────
        # ロック順を商品 ID 順に固定し、カート同士のデッドロックを避ける
        locked: dict[str, LockedItem] = {}
        for item_id in sorted(quantities):
            requested = quantities[item_id]
            item = await self.inventory.lock_and_read(session, item_id)
            if item is None:
                raise ItemNotFoundError(item_id, requested)
            if item.stock < requested:
                raise InsufficientStockError(item_id, requested, item.stock)
            locked[item_id] = item

        # ── Step 2: ロック時の単価で合計 ──────────────
        total = sum(
            (locked[item_id].unit_price * qty for item_id, qty in quantities.items()),
            Decimal("0"),
        ).quantize(CENT)

        # ── Step 3: 注文ヘッダ ────────────────────────
        order_id, created_at = await self.ledger.insert_order(session, buyer_id, total)

        # ── Step 4: 明細と在庫の減算 ──────────────────
        lines = []
        for item_id, qty in quantities.items():
            unit_price = locked[item_id].unit_price
            await self.ledger.insert_line(session, order_id, item_id, qty, unit_price)
            await self.inventory.decrement(session, item_id, qty)
            lines.append(
                OrderLine(
                    order_id=order_id,
                    item_id=item_id,
                    quantity=qty,
                    unit_price=unit_price,
                )
            )

        return Order(
            id=order_id,
            buyer_id=buyer_id,
            total=total,
            created_at=created_at,
            lines=tuple(lines),
        )

    async def _after_commit(self, order: Order) -> None:
        if self.audit is not None:
            details = (
                f"Order {order.id}: "
                + ", ".join(f"{line.item_id} x{line.quantity}" for line in order.lines)
                + f" total={order.total}"
            )
            try:
                await self.audit.record(order.buyer_id, ORDER_PLACED, details)
            except Exception:
                logger.exception("Failed to record audit entry for order %s", order.id)

        if self.redis is not None:
            event = OrderPlaced(
                order_id=order.id,
                buyer_id=order.buyer_id,
                total=order.total,
                lines=[
                    OrderPlacedLine(
                        item_id=line.item_id,
                        quantity=line.quantity,
                        unit_price=line.unit_price,
                    )
                    for line in order.lines
                ],
                timestamp=order.created_at,
            )
            try:
                await self.redis.publish(
                    "order_events",
                    json.dumps({
                        "event_type": "OrderPlaced",
                        "data": event.model_dump(mode="json"),
                    }, default=str),
                )
            except Exception:
                logger.exception("Failed to publish OrderPlaced for order %s", order.id)
