"""
Store Service — エラー定義

検証エラー        : トランザクション開始前に拒否する
業務ルールエラー  : トランザクションをロールバックして呼び出し元に返す
インフラエラー    : PersistenceError。自動リトライはしない
"""


class StoreError(Exception):
    """Store Service の例外の基底クラス"""


class CartValidationError(StoreError):
    pass


class EmptyCartError(CartValidationError):
    def __init__(self) -> None:
        super().__init__("Cart is empty")


class InvalidQuantityError(CartValidationError):
    def __init__(self, item_id: str, quantity: object) -> None:
        self.item_id = item_id
        self.quantity = quantity
        super().__init__(
            f"Invalid quantity for item {item_id}: {quantity!r} (must be a positive integer)"
        )


class InvalidCartLineError(CartValidationError):
    """(item_id, quantity) の形になっていないカート行"""

    def __init__(self, line: object) -> None:
        self.line = line
        super().__init__(f"Malformed cart line: {line!r}")


class InsufficientStockError(StoreError):
    """在庫不足。どの商品がいくつ足りないかを保持する。"""

    def __init__(self, item_id: str, requested: int, available: int) -> None:
        self.item_id = item_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for item {item_id}: "
            f"requested={requested}, available={available}"
        )

    @property
    def shortfall(self) -> int:
        return self.requested - self.available


class ItemNotFoundError(InsufficientStockError):
    """商品が存在しない。在庫 0 の在庫不足として扱える。"""

    def __init__(self, item_id: str, requested: int = 0) -> None:
        StoreError.__init__(self, f"Item {item_id} not found")
        self.item_id = item_id
        self.requested = requested
        self.available = 0


class PersistenceError(StoreError):
    """ロック待ちタイムアウト・デッドロック・接続断・コミット失敗など"""


class CapabilityRequiredError(StoreError):
    def __init__(self, capability: str) -> None:
        self.capability = capability
        super().__init__(f"Capability '{capability}' required")
