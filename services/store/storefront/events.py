"""
Store Service — イベント定義

注文確定のコミット後に Redis Pub/Sub (order_events) へ発行する。
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel


class OrderPlacedLine(BaseModel):
    item_id: str
    quantity: int
    unit_price: Decimal


class OrderPlaced(BaseModel):
    """注文が確定された"""
    order_id: str
    buyer_id: str
    total: Decimal
    lines: list[OrderPlacedLine]
    timestamp: datetime
