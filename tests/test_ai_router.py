"""
AI 路由服务测试

- select_providers: 套餐/角色过滤、排序、去重
- build_messages: 系统提示词优先级
- _call_with_fallback: 主提供商失败时切换到备用，并记录每次尝试
- _call_collaborative: 并行调用前 N 个提供商，第一个成功的作为主回复
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from radar.exceptions import AIRouterError, LLMError
from radar.infra.llm import LLMResult
from radar.infra.logging import RequestTimer
from radar.services.ai_router import (
    AIRequestPayload,
    AIRouterRequest,
    ProviderChoice,
    _call_collaborative,
    _call_with_fallback,
    build_messages,
    default_provider,
    select_providers,
)


def _entry(provider, model="m", role="principal", priority=100, plan=None, user_role=None, tenant=False, weight=1):
    choice = ProviderChoice(
        provider=provider,
        model=model,
        route_role=role,
        priority=priority,
        weight=weight,
        tenant_specific=tenant,
    )
    return choice, plan, user_role


class TestSelectProviders:
    def test_filters_by_plan_and_role(self):
        entries = [
            _entry("openai"),
            _entry("deepseek", plan="premium"),
            _entry("groq", user_role="profissional"),
        ]
        chosen = select_providers(entries, plan_slug="free", user_role="usuaria")
        assert [c.provider for c in chosen] == ["openai"]

        chosen = select_providers(entries, plan_slug="premium", user_role="profissional")
        assert {c.provider for c in chosen} == {"openai", "deepseek", "groq"}

    def test_ordering(self):
        entries = [
            _entry("colab", role="colaborativo", priority=1),
            _entry("fallback", role="fallback", priority=1),
            _entry("main-low", role="principal", priority=50),
            _entry("main-high", role="principal", priority=10),
            _entry("tenant", role="fallback", priority=999, tenant=True),
        ]
        chosen = select_providers(entries, plan_slug="free", user_role="usuaria")
        assert [c.provider for c in chosen] == ["tenant", "main-high", "main-low", "fallback", "colab"]

    def test_weight_breaks_ties(self):
        entries = [_entry("light", weight=1), _entry("heavy", weight=5)]
        chosen = select_providers(entries, plan_slug="free", user_role="usuaria")
        assert [c.provider for c in chosen] == ["heavy", "light"]

    def test_deduplicates_provider_model(self):
        entries = [
            _entry("openai", model="gpt-4o-mini", tenant=True),
            _entry("openai", model="gpt-4o-mini"),
            _entry("openai", model="gpt-4o"),
        ]
        chosen = select_providers(entries, plan_slug="free", user_role="usuaria")
        assert [(c.model, c.tenant_specific) for c in chosen] == [("gpt-4o-mini", True), ("gpt-4o", False)]


def test_default_provider_uses_tenant_ai_settings():
    tenant = SimpleNamespace(ai_settings={"provider": "groq", "model": "llama"})
    choice = default_provider(tenant)
    assert (choice.provider, choice.model, choice.origin) == ("groq", "llama", "tenant_default")

    choice = default_provider(None)
    assert choice.origin == "fallback"


class TestBuildMessages:
    def test_persona_prompt_prepended(self):
        persona = SimpleNamespace(system_prompt="Você é o Coach")
        payload = AIRequestPayload(messages=[{"role": "user", "content": "oi"}], prompt="tudo bem?")
        messages = build_messages(payload, persona)
        assert messages == [
            {"role": "system", "content": "Você é o Coach"},
            {"role": "user", "content": "oi"},
            {"role": "user", "content": "tudo bem?"},
        ]

    def test_existing_system_message_wins_over_persona(self):
        persona = SimpleNamespace(system_prompt="persona")
        payload = AIRequestPayload(messages=[{"role": "system", "content": "oráculo"}])
        messages = build_messages(payload, persona)
        assert [m["content"] for m in messages if m["role"] == "system"] == ["oráculo"]

    def test_explicit_system_prompt_replaces_others(self):
        payload = AIRequestPayload(
            messages=[{"role": "system", "content": "old"}, {"role": "user", "content": "q"}],
            system_prompt="new",
        )
        messages = build_messages(payload, SimpleNamespace(system_prompt="persona"))
        assert messages == [{"role": "system", "content": "new"}, {"role": "user", "content": "q"}]


def _request() -> AIRouterRequest:
    return AIRouterRequest(
        feature_key="chat",
        user_role="usuaria",
        plan_slug="free",
        payload=AIRequestPayload(prompt="oi"),
        tenant=SimpleNamespace(id="tenant-1"),
        user_id="user-1",
    )


@pytest.mark.asyncio
async def test_fallback_to_next_provider():
    session = MagicMock()
    providers = [ProviderChoice("openai", "gpt-4o-mini"), ProviderChoice("deepseek", "deepseek-chat")]
    llm = AsyncMock(
        side_effect=[
            LLMError("timeout"),
            LLMResult(content="olá", provider="deepseek", model="deepseek-chat", tokens_input=3, tokens_output=4),
        ]
    )

    with patch("radar.services.ai_router.chat_completion_with_config", llm):
        response = await _call_with_fallback(
            session, _request(), providers, [{"role": "user", "content": "oi"}], None, RequestTimer()
        )

    assert response.content == "olá"
    assert response.provider_used == "deepseek"
    assert response.tokens_total == 7
    # 失败和成功各记录一次
    logs = [call.args[0] for call in session.add.call_args_list]
    assert [(log.provider, log.success) for log in logs] == [("openai", False), ("deepseek", True)]


@pytest.mark.asyncio
async def test_all_providers_fail():
    session = MagicMock()
    providers = [ProviderChoice("openai", "gpt-4o-mini")]
    llm = AsyncMock(side_effect=LLMError("down"))

    with patch("radar.services.ai_router.chat_completion_with_config", llm):
        with pytest.raises(AIRouterError) as exc_info:
            await _call_with_fallback(session, _request(), providers, [], None, RequestTimer())

    assert exc_info.value.code == "AI_PROVIDERS_FAILED"
    assert exc_info.value.extra["provider_used"] == "fallback-failed"
    assert session.add.call_count == 1


async def _llm_by_provider(*, messages, provider_config, **kwargs):
    provider = provider_config["provider"]
    if provider == "openai":
        raise LLMError("timeout")
    return LLMResult(
        content=f"resposta {provider}",
        provider=provider,
        model=provider_config["model"],
        tokens_input=2,
        tokens_output=3,
    )


@pytest.mark.asyncio
async def test_collaborative_first_success_is_primary():
    session = MagicMock()
    providers = [
        ProviderChoice("openai", "gpt-4o-mini"),
        ProviderChoice("groq", "llama-3.1-8b-instant"),
        ProviderChoice("deepseek", "deepseek-chat"),
        ProviderChoice("openrouter", "mistral-7b", route_role="colaborativo"),
    ]
    llm = AsyncMock(side_effect=_llm_by_provider)

    with patch("radar.services.ai_router.chat_completion_with_config", llm):
        response = await _call_collaborative(
            session, _request(), providers, [{"role": "user", "content": "oi"}], None, RequestTimer()
        )

    # 最多并行调用 ai_collaborative_max_providers(3) 个
    assert llm.await_count == 3
    assert response.provider_used == "collaborative"
    assert response.content == "resposta groq"
    assert response.model == "llama-3.1-8b-instant"
    assert [r.provider for r in response.collaborative_responses] == ["groq", "deepseek"]
    assert (response.tokens_input, response.tokens_output) == (4, 6)
    logs = [call.args[0] for call in session.add.call_args_list]
    assert [(log.provider, log.success) for log in logs] == [("openai", False), ("groq", True), ("deepseek", True)]


@pytest.mark.asyncio
async def test_collaborative_all_fail():
    session = MagicMock()
    providers = [ProviderChoice("openai", "gpt-4o-mini"), ProviderChoice("openai", "gpt-4o")]
    llm = AsyncMock(side_effect=_llm_by_provider)

    with patch("radar.services.ai_router.chat_completion_with_config", llm):
        with pytest.raises(AIRouterError) as exc_info:
            await _call_collaborative(session, _request(), providers, [], None, RequestTimer())

    assert exc_info.value.extra["provider_used"] == "collaborative"
    assert session.add.call_count == 2
