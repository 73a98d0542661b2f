"""
平台管理员 Token 认证

/admin/* 接口（租户、套餐目录）通过 X-Admin-Token 请求头认证，
与环境变量 ADMIN_TOKEN 比对。未配置 ADMIN_TOKEN 时管理接口整体不可用。
"""

import secrets

from fastapi import Header, HTTPException, status

from radar.config import get_settings


async def verify_admin_token(
    x_admin_token: str | None = Header(None, alias="X-Admin-Token"),
) -> str:
    settings = get_settings()

    if not settings.admin_token:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"code": "ADMIN_API_NOT_CONFIGURED", "detail": "Admin API is not configured. Set ADMIN_TOKEN."},
        )

    if not x_admin_token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": "MISSING_ADMIN_TOKEN", "detail": "Missing X-Admin-Token header"},
        )

    if not secrets.compare_digest(x_admin_token, settings.admin_token):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"code": "INVALID_ADMIN_TOKEN", "detail": "Invalid admin token"},
        )

    return x_admin_token
