"""
神谕服务测试

测试 radar/services/oracle.py：
- 身份映射（管理员可指定身份，普通用户固定）
- 模型输出解析（JSON / 非 JSON）
- ask_oracle 调用链：额度预检 → AI 路由 → 记录用量；AI 失败时不记录用量
"""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from radar.exceptions import AIRouterError
from radar.services.ai_router import AIRouterResponse
from radar.services.oracle import (
    OracleQuestion,
    ask_oracle,
    build_system_prompt,
    build_user_context,
    oracle_role_for,
    parse_oracle_response,
)


class TestOracleRole:
    def test_admin_can_pick_profile(self):
        assert oracle_role_for("admin", "dev") == "dev"
        assert oracle_role_for("super_admin", "whitelabel") == "whitelabel"

    def test_admin_unknown_profile_defaults_to_admin(self):
        assert oracle_role_for("admin", "hacker") == "admin"
        assert oracle_role_for("admin") == "admin"

    def test_regular_users_cannot_escalate(self):
        assert oracle_role_for("usuaria", "admin") == "usuaria"
        assert oracle_role_for("profissional", "dev") == "profissional"


def test_system_prompt_contains_role_section():
    assert "PARA ADMIN" in build_system_prompt("admin")
    # 未知身份按 usuaria 处理
    assert build_system_prompt("desconhecido") == build_system_prompt("usuaria")


def test_user_context_lists_question_metadata():
    context = build_user_context(
        OracleQuestion(question="Como exporto?", role="usuaria", plan="free", manual_context="tela diário")
    )
    assert "- Plano: free" in context
    assert "- Página atual: não informada" in context
    assert "- Contexto adicional: tela diário" in context
    assert context.endswith("PERGUNTA:\nComo exporto?")


class TestParseResponse:
    def test_full_json(self):
        raw = json.dumps(
            {
                "modo": "passo_a_passo",
                "risco": "medio",
                "titulo_curto": "Exportar",
                "resposta_principal": "Use o menu",
                "passos": ["Abra o diário", 2],
                "links_sugeridos": [{"label": "Diário", "url": "/diario"}, "ruim"],
                "mensagem_final_seguranca": "Cuide-se",
            }
        )
        answer = parse_oracle_response(raw)
        assert answer.modo == "passo_a_passo"
        assert answer.risco == "medio"
        assert answer.passos == ["Abra o diário", "2"]
        assert answer.links_sugeridos == [{"label": "Diário", "url": "/diario"}]
        assert answer.mensagem_final_seguranca == "Cuide-se"

    def test_plain_text_becomes_main_answer(self):
        answer = parse_oracle_response("Não sei responder")
        assert answer.resposta_principal == "Não sei responder"
        assert answer.modo == "explicacao"
        assert answer.risco == "baixo"

    def test_json_array_is_not_an_answer(self):
        answer = parse_oracle_response("[1, 2]")
        assert answer.resposta_principal == "[1, 2]"

    def test_missing_fields_get_defaults(self):
        answer = parse_oracle_response('{"resposta_principal": "ok"}')
        assert answer.titulo_curto == "Resposta do Oráculo"
        assert answer.passos == []


def _user():
    return SimpleNamespace(id="user-1", role="usuaria")


@pytest.mark.asyncio
async def test_ask_oracle_records_usage_after_success():
    session = MagicMock()
    session.commit = AsyncMock()
    response = AIRouterResponse(
        content='{"resposta_principal": "Olá"}',
        provider_used="openai",
        model="gpt-4o-mini",
        tokens_input=10,
        tokens_output=20,
    )

    with patch("radar.services.oracle.plan_service") as plans, \
            patch("radar.services.oracle.route_ai_request", AsyncMock(return_value=response)) as route:
        plans.get_user_plan_slug = AsyncMock(return_value="free")
        plans.ensure_available = AsyncMock()
        plans.check_and_record = AsyncMock()

        result = await ask_oracle(
            session, user=_user(), tenant=SimpleNamespace(id="t1"), question=OracleQuestion(question="Oi?")
        )

    assert result.answer.resposta_principal == "Olá"
    assert result.meta["provider"] == "openai"
    assert result.meta["tokens_output"] == 20
    request = route.call_args.args[1]
    assert request.feature_key == "oraculo"
    assert request.payload.json_mode is True
    plans.ensure_available.assert_awaited_once()
    plans.check_and_record.assert_awaited_once()
    session.commit.assert_awaited()


@pytest.mark.asyncio
async def test_ask_oracle_failure_does_not_consume_quota():
    session = MagicMock()
    session.commit = AsyncMock()

    with patch("radar.services.oracle.plan_service") as plans, \
            patch("radar.services.oracle.route_ai_request", AsyncMock(side_effect=AIRouterError("falhou"))):
        plans.get_user_plan_slug = AsyncMock(return_value="free")
        plans.ensure_available = AsyncMock()
        plans.check_and_record = AsyncMock()

        with pytest.raises(AIRouterError):
            await ask_oracle(
                session, user=_user(), tenant=SimpleNamespace(id="t1"), question=OracleQuestion(question="Oi?")
            )

    plans.check_and_record.assert_not_awaited()
    # 失败的调用记录仍然提交
    session.commit.assert_awaited_once()


@pytest.mark.asyncio
async def test_ask_oracle_rejects_blank_question():
    with pytest.raises(ValueError):
        await ask_oracle(MagicMock(), user=_user(), tenant=SimpleNamespace(id="t1"), question=OracleQuestion(question="  "))
