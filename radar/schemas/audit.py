"""审计日志的响应模型"""

from datetime import datetime

from pydantic import BaseModel


class AuditLogResponse(BaseModel):
    id: str
    request_id: str
    tenant_id: str | None = None
    user_id: str | None = None
    action: str
    resource_type: str | None = None
    resource_id: str | None = None
    method: str
    path: str
    query_params: dict | None = None
    status_code: int
    duration_ms: float
    ip_address: str | None = None
    user_agent: str | None = None
    error_message: str | None = None
    created_at: datetime

    class Config:
        from_attributes = True


class AuditLogListResponse(BaseModel):
    items: list[AuditLogResponse]
    limit: int
    offset: int


class AuditStatsResponse(BaseModel):
    period_hours: int
    total_requests: int
    error_requests: int
    error_rate: float
    avg_duration_ms: float
    by_action: dict[str, int]
