"""
Store Service — ドメインモデル

Order / OrderLine は注文確定時に一度だけ作られ、以後変更されない。
OrderLine.unit_price はロック取得時に読んだ単価（販売時点の価格）。
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict


class CartLine(BaseModel):
    """カートの 1 行（永続化しない）"""
    item_id: str
    quantity: int


class LockedItem(BaseModel):
    """行ロック下で読んだ在庫の状態"""
    model_config = ConfigDict(frozen=True)

    item_id: str
    unit_price: Decimal
    stock: int


class OrderLine(BaseModel):
    model_config = ConfigDict(frozen=True)

    order_id: str
    item_id: str
    quantity: int
    unit_price: Decimal

    @property
    def subtotal(self) -> Decimal:
        return self.unit_price * self.quantity


class Order(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    buyer_id: str
    total: Decimal
    created_at: datetime
    lines: tuple[OrderLine, ...] = ()


class AuditEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    actor_id: str
    action: str
    details: str
    timestamp: datetime
