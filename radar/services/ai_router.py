"""
AI 路由服务

所有需要调用大模型的功能（聊天、神谕、日记分析...）都通过 route_ai_request()，
不直接调用提供商。路由器负责：

1. 选择提供商：按 功能 + 租户 + 套餐 + 角色 匹配 AIProviderRoute，
   排序为 租户专属优先 → principal → fallback → colaborativo → priority → weight；
   没有任何匹配时使用租户 settings.ai 或全局默认配置
2. 检查限额：主提供商的单用户日/月上限、租户的 AI 日调用上限
3. 选择人设：按功能/角色/套餐匹配 AIPersona，作为系统提示词
4. 调用：普通模式按顺序尝试，失败自动切换下一个；
   协作模式并行调用前 N 个提供商，第一个成功的作为主回复
5. 记录：每次尝试写一条 AIUsageLog（成功或失败）

路由表在进程内缓存 ai_routes_cache_ttl 秒，管理端修改路由后调用 clear_route_cache()。
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from radar.config import get_settings
from radar.exceptions import AIRouterError, FeatureDisabledError, LLMError, PlanLimitError
from radar.infra.llm import LLMResult, chat_completion_with_config
from radar.infra.logging import RequestTimer, get_logger
from radar.models import AIPersona, AIProviderRoute, AIUsageLog, Tenant
from radar.models.ai import ROUTE_ROLE_ORDER
from radar.services.plans import period_starts

logger = get_logger(__name__)


# ==================== 数据结构 ====================


@dataclass
class AIRequestPayload:
    """一次 AI 调用的输入"""
    messages: list[dict[str, str]] = field(default_factory=list)
    prompt: str | None = None
    system_prompt: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    persona_slug: str | None = None
    collaborative: bool = False
    json_mode: bool = False


@dataclass
class AIRouterRequest:
    feature_key: str
    user_role: str
    plan_slug: str
    payload: AIRequestPayload
    tenant: Tenant | None = None
    user_id: str | None = None


@dataclass
class ProviderChoice:
    """一个候选提供商"""
    provider: str
    model: str
    route_role: str = "principal"
    priority: int = 100
    weight: int = 1
    limit_daily: int | None = None
    limit_monthly: int | None = None
    tenant_specific: bool = False
    origin: str = "route"  # route / tenant_default / fallback


@dataclass
class CollaborativeResponse:
    provider: str
    model: str
    content: str
    tokens_total: int


@dataclass
class AIRouterResponse:
    content: str
    provider_used: str
    model: str
    persona_used: str | None = None
    tokens_input: int = 0
    tokens_output: int = 0
    latency_ms: int = 0
    collaborative_responses: list[CollaborativeResponse] = field(default_factory=list)

    @property
    def tokens_total(self) -> int:
        return self.tokens_input + self.tokens_output


@dataclass
class _Attempt:
    choice: ProviderChoice
    result: LLMResult | None
    error: str | None
    latency_ms: int


# ==================== 路由表缓存 ====================

_route_cache: dict[tuple[str | None, str], tuple[float, list[ProviderChoice]]] = {}


def clear_route_cache() -> None:
    _route_cache.clear()


async def _load_routes(
    session: AsyncSession, tenant_id: str | None, feature_key: str
) -> list[tuple[AIProviderRoute, bool]]:
    conditions = [
        AIProviderRoute.feature_key == feature_key,
        AIProviderRoute.is_active.is_(True),
    ]
    if tenant_id:
        conditions.append(or_(AIProviderRoute.tenant_id == tenant_id, AIProviderRoute.tenant_id.is_(None)))
    else:
        conditions.append(AIProviderRoute.tenant_id.is_(None))

    result = await session.execute(select(AIProviderRoute).where(*conditions))
    return [(route, route.tenant_id is not None) for route in result.scalars().all()]


async def get_routes_for_feature(
    session: AsyncSession, tenant_id: str | None, feature_key: str
) -> list[tuple[ProviderChoice, str | None, str | None]]:
    """
    读取功能的全部可用路由（带缓存）

    Returns:
        [(候选, plan_slug 条件, user_role 条件)]
    """
    ttl = get_settings().ai_routes_cache_ttl
    key = (tenant_id, feature_key)
    cached = _route_cache.get(key)
    now = time.monotonic()
    if cached and now - cached[0] < ttl:
        return cached[1]

    routes = await _load_routes(session, tenant_id, feature_key)
    entries = [
        (
            ProviderChoice(
                provider=route.provider,
                model=route.model,
                route_role=route.route_role,
                priority=route.priority,
                weight=route.weight,
                limit_daily=route.limit_daily,
                limit_monthly=route.limit_monthly,
                tenant_specific=tenant_specific,
            ),
            route.plan_slug,
            route.user_role,
        )
        for route, tenant_specific in routes
    ]
    _route_cache[key] = (now, entries)
    return entries


def select_providers(
    entries: list[tuple[ProviderChoice, str | None, str | None]],
    plan_slug: str,
    user_role: str,
) -> list[ProviderChoice]:
    """按套餐/角色过滤并排序候选提供商，同一 provider+model 只保留第一个"""
    matched = [
        choice
        for choice, route_plan, route_role in entries
        if (route_plan is None or route_plan == plan_slug)
        and (route_role is None or route_role == user_role)
    ]
    matched.sort(
        key=lambda c: (
            0 if c.tenant_specific else 1,
            ROUTE_ROLE_ORDER.get(c.route_role, 99),
            c.priority,
            -c.weight,
        )
    )

    seen: set[tuple[str, str]] = set()
    unique = []
    for choice in matched:
        key = (choice.provider, choice.model)
        if key in seen:
            continue
        seen.add(key)
        unique.append(choice)
    return unique


def default_provider(tenant: Tenant | None) -> ProviderChoice:
    """没有匹配路由时的默认提供商：租户配置 > 全局配置"""
    settings = get_settings()
    ai = tenant.ai_settings if tenant else {}
    if ai.get("provider"):
        return ProviderChoice(
            provider=ai["provider"],
            model=ai.get("model") or settings.llm_model,
            origin="tenant_default",
        )
    return ProviderChoice(provider=settings.llm_provider, model=settings.llm_model, origin="fallback")


async def resolve_providers(session: AsyncSession, request: AIRouterRequest) -> list[ProviderChoice]:
    tenant_id = request.tenant.id if request.tenant else None
    entries = await get_routes_for_feature(session, tenant_id, request.feature_key)
    providers = select_providers(entries, request.plan_slug, request.user_role)
    if not providers:
        providers = [default_provider(request.tenant)]
    return providers


# ==================== 限额 ====================


async def _count_calls(session: AsyncSession, since: datetime, *conditions) -> int:
    return await session.scalar(
        select(func.count(AIUsageLog.id)).where(
            AIUsageLog.success.is_(True),
            AIUsageLog.created_at >= since,
            *conditions,
        )
    ) or 0


async def check_provider_limits(
    session: AsyncSession, user_id: str, feature_key: str, choice: ProviderChoice
) -> None:
    """主提供商的单用户日/月调用上限"""
    if choice.limit_daily is None and choice.limit_monthly is None:
        return

    day_start, _, month_start = period_starts(datetime.now(timezone.utc))
    conditions = (
        AIUsageLog.user_id == user_id,
        AIUsageLog.feature_key == feature_key,
        AIUsageLog.provider == choice.provider,
    )

    if choice.limit_daily is not None:
        used = await _count_calls(session, day_start, *conditions)
        if used >= choice.limit_daily:
            raise PlanLimitError(
                f"Limite diário de IA atingido ({choice.limit_daily})",
                code="AI_LIMIT_REACHED",
                extra={"provider": choice.provider, "period": "daily"},
            )

    if choice.limit_monthly is not None:
        used = await _count_calls(session, month_start, *conditions)
        if used >= choice.limit_monthly:
            raise PlanLimitError(
                f"Limite mensal de IA atingido ({choice.limit_monthly})",
                code="AI_LIMIT_REACHED",
                extra={"provider": choice.provider, "period": "monthly"},
            )


async def check_tenant_quota(session: AsyncSession, tenant: Tenant) -> None:
    """租户级 AI 日调用上限"""
    if tenant.max_ai_requests_per_day is None:
        return
    day_start, _, _ = period_starts(datetime.now(timezone.utc))
    used = await _count_calls(session, day_start, AIUsageLog.tenant_id == tenant.id)
    if used >= tenant.max_ai_requests_per_day:
        raise PlanLimitError(
            "Limite diário de IA do tenant atingido",
            code="AI_LIMIT_REACHED",
            extra={"scope": "tenant"},
        )


# ==================== 人设 ====================


async def select_persona(session: AsyncSession, request: AIRouterRequest) -> AIPersona | None:
    """
    选择人设

    指定 persona_slug 时只在该 slug 中选择；否则取第一个满足角色/套餐限制的人设，
    租户专属人设优先于全局人设。
    """
    tenant_id = request.tenant.id if request.tenant else None
    conditions = [
        AIPersona.feature_key == request.feature_key,
        AIPersona.is_active.is_(True),
        or_(AIPersona.tenant_id == tenant_id, AIPersona.tenant_id.is_(None)) if tenant_id
        else AIPersona.tenant_id.is_(None),
    ]
    if request.payload.persona_slug:
        conditions.append(AIPersona.slug == request.payload.persona_slug)

    result = await session.execute(select(AIPersona).where(*conditions).order_by(AIPersona.created_at))
    personas = sorted(result.scalars().all(), key=lambda p: 0 if p.tenant_id else 1)

    for persona in personas:
        if persona.allowed_roles and request.user_role not in persona.allowed_roles:
            continue
        if persona.allowed_plans and request.plan_slug not in persona.allowed_plans:
            continue
        return persona
    return None


def build_messages(payload: AIRequestPayload, persona: AIPersona | None) -> list[dict[str, str]]:
    """
    组装最终消息列表：系统提示词 + 历史消息 + prompt

    系统提示词优先级：payload.system_prompt > messages 自带的 system > 人设
    """
    messages: list[dict[str, str]] = []
    history = list(payload.messages)
    has_system = any(m.get("role") == "system" for m in history)

    if payload.system_prompt:
        messages.append({"role": "system", "content": payload.system_prompt})
        history = [m for m in history if m.get("role") != "system"]
    elif persona and not has_system:
        messages.append({"role": "system", "content": persona.system_prompt})

    messages.extend(history)
    if payload.prompt:
        messages.append({"role": "user", "content": payload.prompt})
    return messages


# ==================== 调用 ====================


async def _call_provider(
    choice: ProviderChoice, messages: list[dict[str, str]], payload: AIRequestPayload
) -> _Attempt:
    settings = get_settings()
    timer = RequestTimer()
    try:
        provider_config = settings.get_provider_config(choice.provider, choice.model)
        result = await chat_completion_with_config(
            messages=messages,
            provider_config=provider_config,
            temperature=payload.temperature,
            max_tokens=payload.max_tokens,
            json_mode=payload.json_mode,
        )
        return _Attempt(choice=choice, result=result, error=None, latency_ms=timer.elapsed_ms())
    except (LLMError, ValueError) as e:
        logger.warning(f"提供商调用失败 {choice.provider}/{choice.model}: {e}")
        return _Attempt(choice=choice, result=None, error=str(e), latency_ms=timer.elapsed_ms())


def _log_attempt(
    session: AsyncSession, request: AIRouterRequest, attempt: _Attempt, persona: AIPersona | None
) -> None:
    result = attempt.result
    session.add(
        AIUsageLog(
            tenant_id=request.tenant.id if request.tenant else None,
            user_id=request.user_id,
            feature_key=request.feature_key,
            provider=attempt.choice.provider,
            model=result.model if result else attempt.choice.model,
            persona=persona.slug if persona else None,
            tokens_input=result.tokens_input if result else 0,
            tokens_output=result.tokens_output if result else 0,
            latency_ms=attempt.latency_ms,
            success=result is not None,
            error=attempt.error,
        )
    )


async def _call_with_fallback(
    session: AsyncSession,
    request: AIRouterRequest,
    providers: list[ProviderChoice],
    messages: list[dict[str, str]],
    persona: AIPersona | None,
    timer: RequestTimer,
) -> AIRouterResponse:
    last_error: str | None = None
    for choice in providers:
        attempt = await _call_provider(choice, messages, request.payload)
        _log_attempt(session, request, attempt, persona)
        if attempt.result is not None:
            result = attempt.result
            return AIRouterResponse(
                content=result.content,
                provider_used=choice.provider,
                model=result.model,
                persona_used=persona.slug if persona else None,
                tokens_input=result.tokens_input,
                tokens_output=result.tokens_output,
                latency_ms=timer.elapsed_ms(),
            )
        last_error = attempt.error
        logger.info(f"降级：{choice.provider} 失败，尝试下一个提供商")

    raise AIRouterError(
        last_error or "Todos os providers falharam",
        extra={"provider_used": "fallback-failed", "providers_tried": [p.provider for p in providers]},
    )


async def _call_collaborative(
    session: AsyncSession,
    request: AIRouterRequest,
    providers: list[ProviderChoice],
    messages: list[dict[str, str]],
    persona: AIPersona | None,
    timer: RequestTimer,
) -> AIRouterResponse:
    limit = get_settings().ai_collaborative_max_providers
    attempts = await asyncio.gather(
        *(_call_provider(choice, messages, request.payload) for choice in providers[:limit])
    )

    responses: list[CollaborativeResponse] = []
    tokens_input = tokens_output = 0
    for attempt in attempts:
        _log_attempt(session, request, attempt, persona)
        if attempt.result is None:
            continue
        tokens_input += attempt.result.tokens_input
        tokens_output += attempt.result.tokens_output
        responses.append(
            CollaborativeResponse(
                provider=attempt.choice.provider,
                model=attempt.result.model,
                content=attempt.result.content,
                tokens_total=attempt.result.tokens_total,
            )
        )

    if not responses:
        raise AIRouterError("Nenhum provider respondeu", extra={"provider_used": "collaborative"})

    primary = responses[0]
    return AIRouterResponse(
        content=primary.content,
        provider_used="collaborative",
        model=primary.model,
        persona_used=persona.slug if persona else None,
        tokens_input=tokens_input,
        tokens_output=tokens_output,
        latency_ms=timer.elapsed_ms(),
        collaborative_responses=responses,
    )


async def route_ai_request(session: AsyncSession, request: AIRouterRequest) -> AIRouterResponse:
    """
    路由一次 AI 请求

    调用记录（AIUsageLog）只 add 到会话，由调用方 commit。

    Raises:
        FeatureDisabledError: 租户关闭了该功能
        PlanLimitError: 提供商或租户 AI 限额用完（code=AI_LIMIT_REACHED）
        AIRouterError: 所有提供商都调用失败
    """
    timer = RequestTimer()

    if request.tenant is not None and not request.tenant.feature_enabled(request.feature_key):
        raise FeatureDisabledError(f"Feature '{request.feature_key}' desativada para este tenant")

    providers = await resolve_providers(session, request)

    if request.user_id:
        await check_provider_limits(session, request.user_id, request.feature_key, providers[0])
    if request.tenant is not None:
        await check_tenant_quota(session, request.tenant)

    persona = await select_persona(session, request)
    messages = build_messages(request.payload, persona)

    if request.payload.collaborative and len(providers) > 1:
        response = await _call_collaborative(session, request, providers, messages, persona, timer)
    else:
        response = await _call_with_fallback(session, request, providers, messages, persona, timer)

    logger.info(
        f"AI 请求完成: {request.feature_key} -> {response.provider_used}",
        extra={
            "feature": request.feature_key,
            "provider": response.provider_used,
            "tokens": response.tokens_total,
            "latency_ms": response.latency_ms,
        },
    )
    return response
