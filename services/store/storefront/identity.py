"""
Store Service — 呼び出し元の識別情報

認証は上流のゲートウェイが行い、結果をヘッダで渡す:
  X-User-Id            : 利用者 ID
  X-User-Capabilities  : カンマ区切りの権限（"staff" で全注文の参照が可能）

スタッフかどうかはロールの継承ではなく、真偽値の権限として扱う。
"""

from fastapi import Header, HTTPException
from pydantic import BaseModel

from .errors import CapabilityRequiredError

STAFF = "staff"


class Identity(BaseModel):
    user_id: str
    is_staff: bool = False

    @classmethod
    def from_headers(cls, user_id: str, capabilities: str = "") -> "Identity":
        caps = {c.strip().lower() for c in capabilities.split(",") if c.strip()}
        return cls(user_id=user_id, is_staff=STAFF in caps)


def require_staff(identity: Identity) -> Identity:
    if not identity.is_staff:
        raise CapabilityRequiredError(STAFF)
    return identity


# ── FastAPI 依存関数 ─────────────────────────────


async def current_identity(
    x_user_id: str | None = Header(default=None),
    x_user_capabilities: str = Header(default=""),
) -> Identity:
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Missing caller identity")
    return Identity.from_headers(x_user_id, x_user_capabilities)
