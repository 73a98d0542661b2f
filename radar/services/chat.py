"""
Coach 聊天服务

一轮对话：
1. 保存用户消息并做文本风险检测（无论 AI 是否成功都会保留）
2. 预检查 chat 额度
3. 取会话最近 10 条消息作为上下文，经 AI 路由调用
4. 保存助手消息，记录用量
"""

from dataclasses import dataclass
from uuid import uuid4

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from radar.exceptions import AIRouterError
from radar.infra.logging import get_logger
from radar.models import ChatMessage, RiskAlert, Tenant, User
from radar.services import plans as plan_service
from radar.services import risk as risk_service
from radar.services.ai_router import AIRequestPayload, AIRouterRequest, route_ai_request

logger = get_logger(__name__)

CHAT_FEATURE = "chat"
HISTORY_LIMIT = 10


@dataclass
class ChatTurn:
    session_id: str
    user_message: ChatMessage
    assistant_message: ChatMessage
    risk: risk_service.RiskDetectionResult
    alert: RiskAlert | None
    collaborative_responses: list


async def get_history(session: AsyncSession, user_id: str, session_id: str, limit: int = HISTORY_LIMIT) -> list[ChatMessage]:
    """会话最近 limit 条消息（按时间正序）"""
    result = await session.execute(
        select(ChatMessage)
        .where(ChatMessage.user_id == user_id, ChatMessage.session_id == session_id)
        .order_by(ChatMessage.created_at.desc())
        .limit(limit)
    )
    return list(reversed(result.scalars().all()))


async def send_message(
    session: AsyncSession,
    *,
    user: User,
    tenant: Tenant,
    message: str,
    session_id: str | None = None,
    collaborative: bool = False,
) -> ChatTurn:
    if not message or not message.strip():
        raise ValueError("Mensagem é obrigatória")

    session_id = session_id or str(uuid4())
    history = await get_history(session, user.id, session_id)

    user_message = ChatMessage(
        tenant_id=user.tenant_id,
        user_id=user.id,
        session_id=session_id,
        role="user",
        content=message,
    )
    session.add(user_message)
    await session.flush()

    risk, alert = await risk_service.process_chat_message(
        session, user=user, message_id=user_message.id, content=message
    )
    user_message.risk_level = risk.level
    await session.commit()

    plan_slug = await plan_service.get_user_plan_slug(session, user, tenant)
    await plan_service.ensure_available(session, user, CHAT_FEATURE, plan_slug=plan_slug)

    request = AIRouterRequest(
        feature_key=CHAT_FEATURE,
        user_role=user.role,
        plan_slug=plan_slug,
        tenant=tenant,
        user_id=user.id,
        payload=AIRequestPayload(
            messages=[{"role": m.role, "content": m.content} for m in history],
            prompt=message,
            collaborative=collaborative,
        ),
    )

    try:
        response = await route_ai_request(session, request)
    except AIRouterError:
        await session.commit()
        raise

    assistant_message = ChatMessage(
        tenant_id=user.tenant_id,
        user_id=user.id,
        session_id=session_id,
        role="assistant",
        content=response.content,
        provider=response.provider_used,
        model=response.model,
        persona=response.persona_used,
        tokens=response.tokens_total,
    )
    session.add(assistant_message)
    await plan_service.check_and_record(
        session, user, CHAT_FEATURE, plan_slug=plan_slug, details={"session_id": session_id}
    )
    await session.commit()

    return ChatTurn(
        session_id=session_id,
        user_message=user_message,
        assistant_message=assistant_message,
        risk=risk,
        alert=alert,
        collaborative_responses=response.collaborative_responses,
    )


async def list_sessions(session: AsyncSession, user_id: str, *, limit: int = 20) -> list[dict]:
    result = await session.execute(
        select(
            ChatMessage.session_id,
            func.count(ChatMessage.id).label("messages"),
            func.max(ChatMessage.created_at).label("last_activity"),
        )
        .where(ChatMessage.user_id == user_id, ChatMessage.channel == "app")
        .group_by(ChatMessage.session_id)
        .order_by(func.max(ChatMessage.created_at).desc())
        .limit(limit)
    )
    return [
        {"session_id": row.session_id, "messages": row.messages, "last_activity": row.last_activity}
        for row in result.all()
    ]


async def get_session_messages(session: AsyncSession, user_id: str, session_id: str) -> list[ChatMessage]:
    result = await session.execute(
        select(ChatMessage)
        .where(ChatMessage.user_id == user_id, ChatMessage.session_id == session_id)
        .order_by(ChatMessage.created_at)
    )
    return list(result.scalars().all())
