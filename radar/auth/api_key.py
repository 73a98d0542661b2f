"""
API Key 认证

请求头 `Authorization: Bearer <key>` → SHA-256 → 查 api_keys（未撤销、未过期）
→ 租户状态 → 用户状态 → 限流 → APIKeyContext。
明文 Key 只在签发时返回一次，库中只存哈希和前 12 位前缀。
"""

import hashlib
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from radar.auth.rate_limit import get_rate_limiter
from radar.db.session import get_db
from radar.infra.logging import bind_log_context
from radar.models import APIKey, Tenant, User

logger = logging.getLogger(__name__)

KEY_PREFIX_LENGTH = 12


def hash_api_key(raw_key: str) -> str:
    return hashlib.sha256(raw_key.encode("utf-8")).hexdigest()


def generate_api_key(prefix: str) -> tuple[str, str, str]:
    """返回 (明文 Key, 哈希, 识别前缀)"""
    raw_key = prefix + secrets.token_urlsafe(32)
    return raw_key, hash_api_key(raw_key), raw_key[:KEY_PREFIX_LENGTH]


def _deny(status_code: int, code: str, detail: str, headers: dict | None = None) -> HTTPException:
    return HTTPException(status_code=status_code, detail={"code": code, "detail": detail}, headers=headers)


def extract_bearer_token(authorization: str | None) -> str:
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise _deny(status.HTTP_401_UNAUTHORIZED, "UNAUTHORIZED", "Missing or invalid Authorization header")
    return token.strip()


@dataclass
class APIKeyContext:
    """一次请求的调用方：Key、用户、租户"""
    api_key: APIKey
    user: User
    tenant: Tenant

    @property
    def role(self) -> str:
        return self.user.role


async def _load_credentials(db: AsyncSession, raw_key: str, now: datetime) -> tuple[APIKey, User, Tenant] | None:
    result = await db.execute(
        select(APIKey, User, Tenant)
        .join(User, User.id == APIKey.user_id)
        .join(Tenant, Tenant.id == APIKey.tenant_id)
        .where(
            APIKey.hashed_key == hash_api_key(raw_key),
            APIKey.revoked.is_(False),
            or_(APIKey.expires_at.is_(None), APIKey.expires_at > now),
        )
    )
    return result.one_or_none()


async def get_api_key_context(
    request: Request,
    authorization: str | None = Header(None),
    db: AsyncSession = Depends(get_db),
) -> APIKeyContext:
    raw_key = extract_bearer_token(authorization)
    now = datetime.now(timezone.utc)

    credentials = await _load_credentials(db, raw_key, now)
    if credentials is None:
        raise _deny(status.HTTP_401_UNAUTHORIZED, "INVALID_API_KEY", "Invalid API key")
    api_key, user, tenant = credentials

    if not tenant.is_active:
        raise _deny(status.HTTP_403_FORBIDDEN, "TENANT_DISABLED", f"Tenant is {tenant.status}")
    if not user.is_active:
        raise _deny(status.HTTP_403_FORBIDDEN, "USER_DISABLED", "User is disabled")

    limiter = get_rate_limiter()
    if not limiter.allow(key=api_key.id, limit_override=api_key.rate_limit_per_minute):
        logger.warning(f"API key {api_key.prefix} rate limited")
        raise _deny(
            status.HTTP_429_TOO_MANY_REQUESTS,
            "RATE_LIMIT_EXCEEDED",
            "Rate limit exceeded",
            headers={"Retry-After": str(limiter.retry_after(api_key.id))},
        )

    # AuditLogMiddleware 从 request.state 读取操作人
    request.state.tenant_id = tenant.id
    request.state.user_id = user.id
    bind_log_context(tenant_id=tenant.id, user_id=user.id)

    api_key.last_used_at = now
    await db.commit()

    return APIKeyContext(api_key=api_key, user=user, tenant=tenant)
