"""
Coach 聊天与风险检测接口

- POST /v1/chat                        : 发送消息，经 AI 路由生成回复
- GET  /v1/chat/sessions               : 我的会话列表
- GET  /v1/chat/sessions/{session_id}  : 会话消息（按时间正序）
- POST /v1/chat/analyze-risk           : 只做风险检测，不落库
- GET  /v1/risk-alerts                 : 我的风险预警
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from radar.api.deps import get_current_context, get_db_session, require_feature
from radar.auth.api_key import APIKeyContext
from radar.models import RiskAlert
from radar.schemas.chat import (
    ChatMessageResponse,
    ChatRequest,
    ChatResponse,
    ChatSessionSummary,
    CollaborativeAnswer,
)
from radar.schemas.risk import (
    AnalyzeRiskRequest,
    RiskAlertListResponse,
    RiskAlertResponse,
    RiskDetectionResponse,
)
from radar.services import chat as chat_service
from radar.services import risk as risk_service
from radar.services.chat import CHAT_FEATURE

router = APIRouter()


def _err(code: str, detail: str) -> dict:
    return {"code": code, "detail": detail}


# ==================== 聊天 ====================


@router.post(
    "/v1/chat",
    response_model=ChatResponse,
    dependencies=[Depends(require_feature(CHAT_FEATURE))],
)
async def send_chat_message(
    payload: ChatRequest,
    context: APIKeyContext = Depends(get_current_context),
    db: AsyncSession = Depends(get_db_session),
):
    """
    发送一条聊天消息

    用户消息先落库并做风险检测；AI 调用失败返回 502，
    已保存的用户消息和失败的调用记录不会回滚。
    """
    try:
        turn = await chat_service.send_message(
            db,
            user=context.user,
            tenant=context.tenant,
            message=payload.message,
            session_id=payload.session_id,
            collaborative=payload.collaborative,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=_err("MESSAGE_REQUIRED", str(e)))

    return ChatResponse(
        session_id=turn.session_id,
        message=ChatMessageResponse.model_validate(turn.user_message),
        reply=ChatMessageResponse.model_validate(turn.assistant_message),
        risk=RiskDetectionResponse(**turn.risk.to_dict()),
        risk_alert_id=turn.alert.id if turn.alert else None,
        collaborative_responses=[CollaborativeAnswer.model_validate(r) for r in turn.collaborative_responses],
    )


@router.get(
    "/v1/chat/sessions",
    response_model=list[ChatSessionSummary],
    dependencies=[Depends(require_feature(CHAT_FEATURE))],
)
async def list_chat_sessions(
    limit: int = Query(20, ge=1, le=100),
    context: APIKeyContext = Depends(get_current_context),
    db: AsyncSession = Depends(get_db_session),
):
    sessions = await chat_service.list_sessions(db, context.user.id, limit=limit)
    return [ChatSessionSummary(**s) for s in sessions]


@router.get(
    "/v1/chat/sessions/{session_id}",
    response_model=list[ChatMessageResponse],
    dependencies=[Depends(require_feature(CHAT_FEATURE))],
)
async def get_chat_session(
    session_id: str,
    context: APIKeyContext = Depends(get_current_context),
    db: AsyncSession = Depends(get_db_session),
):
    messages = await chat_service.get_session_messages(db, context.user.id, session_id)
    if not messages:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=_err("SESSION_NOT_FOUND", "Chat session not found"),
        )
    return [ChatMessageResponse.model_validate(m) for m in messages]


# ==================== 风险检测 ====================


@router.post("/v1/chat/analyze-risk", response_model=RiskDetectionResponse)
async def analyze_risk(
    payload: AnalyzeRiskRequest,
    _: APIKeyContext = Depends(get_current_context),
):
    """对一段文本（和可选标签）做风险检测，不创建预警"""
    result = risk_service.detect_risk(tags=payload.tags, text=payload.message)
    return RiskDetectionResponse(**result.to_dict())


@router.get("/v1/risk-alerts", response_model=RiskAlertListResponse)
async def list_my_risk_alerts(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    context: APIKeyContext = Depends(get_current_context),
    db: AsyncSession = Depends(get_db_session),
):
    condition = RiskAlert.user_id == context.user.id
    total = await db.scalar(select(func.count(RiskAlert.id)).where(condition)) or 0
    result = await db.execute(
        select(RiskAlert).where(condition).order_by(RiskAlert.created_at.desc()).offset(offset).limit(limit)
    )
    return RiskAlertListResponse(
        items=[RiskAlertResponse.model_validate(a) for a in result.scalars().all()],
        total=total,
    )
